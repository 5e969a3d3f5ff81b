"""Rich output formatters for the parstats CLI."""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.table import Table

from ..analysis import ModelSpec
from ..results import UnitResult, results_frame

console = Console()


def print_results_table(results: Sequence[UnitResult], spec: ModelSpec) -> None:
    """Display the results table sorted by unit.

    Args:
        results: Results from any of the three patterns.
        spec: The model, used for the column titles.
    """
    if not results:
        console.print("[dim]No results.[/dim]")
        return

    level = f"{spec.confidence:.0%}"
    table = Table(title=f"{spec.term} by unit ({spec.formula})")
    table.add_column("Unit", style="cyan", no_wrap=True)
    table.add_column(f"Lower {level}", justify="right", style="dim")
    table.add_column("Estimate", justify="right", style="bold")
    table.add_column(f"Upper {level}", justify="right", style="dim")

    for row in results_frame(results).itertuples(index=False):
        table.add_row(
            str(row.unit),
            f"{row.lower:.4g}",
            f"{row.estimate:.4g}",
            f"{row.upper:.4g}",
        )

    console.print(table)


def print_units_table(units: Sequence[Any], unit_column: str) -> None:
    """Display units alongside the array index that selects each one."""
    if not units:
        console.print("[dim]No units in dataset.[/dim]")
        return

    table = Table(title=f"Units ({unit_column})")
    table.add_column("Array index", justify="right", style="cyan")
    table.add_column(unit_column, style="white")
    for index, unit in enumerate(units):
        table.add_row(str(index), str(unit))

    console.print(table)
    console.print(f"[dim]{len(units)} units -> --array=0-{len(units) - 1}[/dim]")


def print_missing(missing: Sequence[Any], units: Sequence[Any], array_spec: str) -> None:
    """Report units with no result row and the array spec to re-run them."""
    if not missing:
        console.print(f"[green]All {len(units)} units have results.[/green]")
        return

    table = Table(title="Missing units")
    table.add_column("Array index", justify="right", style="cyan")
    table.add_column("Unit", style="yellow")
    positions = {unit: index for index, unit in enumerate(units)}
    for unit in missing:
        table.add_row(str(positions[unit]), str(unit))

    console.print(table)
    console.print(
        f"{len(missing)} of {len(units)} units missing. "
        f"Re-submit only these with [bold]--array={array_spec}[/bold] "
        "(parstats submit array --missing-only)."
    )
