"""Pattern 1: fit one regression per year in a plain loop.

    python sequential_loop.py [--env wages]
"""

import argparse
from pathlib import Path

from parstats.cli.formatters import print_results_table
from parstats.cli.utils import load_frame
from parstats.config import load_settings
from parstats.logging import configure_logging
from parstats.patterns import run_sequential
from parstats.results import write_results

HERE = Path(__file__).resolve().parent


def main():
    parser = argparse.ArgumentParser(description="Per-year regressions, one after another")
    parser.add_argument(
        "--env", default=None, help="Analysisfile environment (default: $PARSTATS_ENV)"
    )
    args = parser.parse_args()

    configure_logging()
    settings = load_settings(HERE / "Analysisfile.toml", env=args.env)
    frame = load_frame(settings)

    results = run_sequential(frame, settings.unit_column, settings.model)

    write_results(settings.results_path, results)
    print_results_table(results, settings.model)


if __name__ == "__main__":
    main()
