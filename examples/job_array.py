"""Pattern 2: fit the one year picked by an array index.

Run by hand for a single year:

    python job_array.py 3

or let SLURM run one copy per year (see slurm/job_array.sbatch), in which
case the index comes from SLURM_ARRAY_TASK_ID. Every copy appends one line
to the shared rows file; ``parstats combine`` assembles the final table.
"""

import argparse
from pathlib import Path

from parstats.cli.utils import load_frame
from parstats.config import load_settings
from parstats.logging import configure_logging
from parstats.patterns import resolve_array_index, run_array_task

HERE = Path(__file__).resolve().parent


def main():
    parser = argparse.ArgumentParser(description="One year's regression")
    parser.add_argument("index", nargs="?", type=int, help="0-based year index")
    parser.add_argument(
        "--env", default=None, help="Analysisfile environment (default: $PARSTATS_ENV)"
    )
    args = parser.parse_args()

    # Batch logs are plain files; skip the colours
    configure_logging(use_rich=False)
    settings = load_settings(HERE / "Analysisfile.toml", env=args.env)
    frame = load_frame(settings)

    index = resolve_array_index(args.index)
    run_array_task(frame, settings.unit_column, settings.model, index, settings.rows_path)


if __name__ == "__main__":
    main()
