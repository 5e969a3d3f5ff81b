"""
Logging helpers for parstats.

Provides a single entrypoint `configure_logging` to establish pleasant
defaults for the example scripts and the CLI, while keeping per-unit
details available at DEBUG level.
"""

from __future__ import annotations

import logging
from typing import Optional


def _quiet_third_party() -> None:
    """Reduce verbosity of common third-party libraries."""
    for name in (
        "matplotlib",
        "numexpr",
        "numexpr.utils",
        "patsy",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(level: int = logging.INFO, use_rich: bool = True) -> None:
    """Configure application logging.

    Args:
        level: Root logging level (default: logging.INFO).
        use_rich: If True, install a Rich handler with a concise format
            (no duplicated level text in messages).
    """
    _quiet_third_party()

    # Remove any pre-existing handlers to avoid duplicate output
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(level)

    handler: Optional[logging.Handler] = None
    if use_rich:
        from rich.logging import RichHandler

        handler = RichHandler(
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
            enable_link_path=False,
        )
    else:
        # Plain handler for batch logs, where ANSI styling only adds noise
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
