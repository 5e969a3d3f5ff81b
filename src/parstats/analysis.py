"""
The per-unit analysis step: fit a linear model to one unit's rows and keep
only the coefficient of interest and its confidence interval.

Everything here is a pure function of its inputs so that the same step can
run inside a plain loop, inside one job-array element or inside an MPI
worker process without modification.
"""

from __future__ import annotations

import ast
import logging
import math
from dataclasses import dataclass
from typing import Any, List

import pandas as pd
import statsmodels.formula.api as smf
from patsy import ModelDesc, PatsyError

from .data import unit_subset
from .errors import ModelFitError, ModelSpecError
from .results import UnitResult

logger = logging.getLogger(__name__)


def _parse_formula(formula: str) -> ModelDesc:
    try:
        return ModelDesc.from_formula(formula)
    except PatsyError as exc:
        raise ModelSpecError(f"Formula '{formula}' could not be parsed: {exc}") from exc


def _factor_columns(code: str) -> List[str]:
    """Data columns read by one patsy factor, e.g. ``month`` for ``C(month, Sum)``."""
    names: List[str] = []

    def visit(node: ast.AST) -> None:
        if isinstance(node, ast.Call):
            func = node.func
            if isinstance(func, ast.Name) and func.id == "Q":
                if node.args and isinstance(node.args[0], ast.Constant):
                    names.append(str(node.args[0].value))
                return
            if isinstance(func, ast.Name) and func.id == "C":
                # Only the data argument; the rest are contrasts and levels
                if node.args:
                    visit(node.args[0])
                return
            for arg in node.args:
                visit(arg)
            for keyword in node.keywords:
                visit(keyword.value)
            return
        if isinstance(node, ast.Attribute):
            # np.pi and friends
            return
        if isinstance(node, ast.Name):
            names.append(node.id)
            return
        for child in ast.iter_child_nodes(node):
            visit(child)

    visit(ast.parse(code.strip(), mode="eval").body)
    return names


def _termlist_columns(terms: List[Any]) -> List[str]:
    columns: List[str] = []
    for term in terms:
        for factor in term.factors:
            for name in _factor_columns(factor.code):
                if name not in columns:
                    columns.append(name)
    return columns


@dataclass(frozen=True)
class ModelSpec:
    """Which model to fit per unit and which coefficient to report.

    Attributes:
        formula: A patsy formula such as ``"arr_delay ~ dep_delay + distance"``.
        term: Name of the fitted parameter to report, e.g. ``"distance"``.
            It must be a right-hand-side variable or term; a categorical
            level such as ``"C(month)[T.2]"`` is accepted too.
        confidence: Confidence level of the reported interval.
    """

    formula: str
    term: str
    confidence: float = 0.95

    def __post_init__(self) -> None:
        if "~" not in self.formula:
            raise ModelSpecError(
                f"Formula '{self.formula}' must have the form 'response ~ predictors'."
            )
        if not self.term:
            raise ModelSpecError("A coefficient term to report is required.")
        if not 0.0 < self.confidence < 1.0:
            raise ModelSpecError(
                f"Confidence level must be between 0 and 1, got {self.confidence}."
            )

        rhs = _parse_formula(self.formula).rhs_termlist
        term_names = [term.name() for term in rhs]
        if not (
            self.term in _termlist_columns(rhs)
            or self.term in term_names
            or any(self.term.startswith(f"{name}[") for name in term_names)
        ):
            raise ModelSpecError(
                f"Term '{self.term}' does not appear on the right-hand side of "
                f"'{self.formula}'."
            )

    @property
    def alpha(self) -> float:
        return 1.0 - self.confidence

    def variables(self) -> List[str]:
        """Column names the formula reads from the data, in order of appearance."""
        desc = _parse_formula(self.formula)
        columns = _termlist_columns(desc.lhs_termlist)
        for name in _termlist_columns(desc.rhs_termlist):
            if name not in columns:
                columns.append(name)
        return columns


def _plain(value: Any) -> Any:
    # numpy scalars -> builtin types so results pickle and print cleanly
    item = getattr(value, "item", None)
    return item() if callable(item) else value


def fit_subset(unit: Any, subset: pd.DataFrame, spec: ModelSpec) -> UnitResult:
    """Fit ``spec.formula`` to ``subset`` and extract ``spec.term``.

    The fitted model object is discarded before returning.

    Raises:
        ModelFitError: If the fit fails, the term is not a fitted parameter,
            or the interval cannot be computed (too few residual degrees of
            freedom).
    """
    unit = _plain(unit)
    logger.debug("Fitting %s for unit %r on %d rows", spec.formula, unit, len(subset))

    try:
        fitted = smf.ols(spec.formula, data=subset).fit()
    except Exception as exc:
        raise ModelFitError(
            f"Fitting '{spec.formula}' failed for unit {unit!r}: {exc}", unit=unit
        ) from exc

    if spec.term not in fitted.params.index:
        available = ", ".join(str(name) for name in fitted.params.index)
        raise ModelFitError(
            f"Term '{spec.term}' is not a fitted parameter for unit {unit!r}. "
            f"Available: {available}.",
            unit=unit,
        )

    if fitted.df_resid < 1:
        raise ModelFitError(
            f"Unit {unit!r} has too few observations ({len(subset)}) "
            f"to estimate an interval for '{spec.term}'.",
            unit=unit,
        )

    interval = fitted.conf_int(alpha=spec.alpha).loc[spec.term]
    lower = float(interval.iloc[0])
    upper = float(interval.iloc[1])
    estimate = float(fitted.params[spec.term])

    if not all(math.isfinite(v) for v in (lower, estimate, upper)):
        raise ModelFitError(
            f"Interval for '{spec.term}' is not finite for unit {unit!r}; "
            "are the predictors collinear?",
            unit=unit,
        )

    return UnitResult(unit=unit, lower=lower, estimate=estimate, upper=upper)


def fit_unit(
    frame: pd.DataFrame, unit_column: str, unit: Any, spec: ModelSpec
) -> UnitResult:
    """Select one unit's rows from ``frame`` and fit them."""
    return fit_subset(unit, unit_subset(frame, unit_column, unit), spec)
