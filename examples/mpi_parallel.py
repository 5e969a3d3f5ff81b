"""Pattern 3: the loop from sequential_loop.py, iterations spread over MPI workers.

    mpiexec -n 5 python -m mpi4py.futures mpi_parallel.py

Rank 0 runs this script; the other four ranks become pool workers. Inside a
batch job use slurm/mpi_parallel.sbatch instead of calling mpiexec directly.
"""

import argparse
from pathlib import Path

from parstats.cli.formatters import print_results_table
from parstats.cli.utils import load_frame
from parstats.config import load_settings
from parstats.logging import configure_logging
from parstats.patterns import run_parallel
from parstats.results import write_results

HERE = Path(__file__).resolve().parent


def main():
    parser = argparse.ArgumentParser(description="Per-year regressions on an MPI pool")
    parser.add_argument(
        "--env", default=None, help="Analysisfile environment (default: $PARSTATS_ENV)"
    )
    args = parser.parse_args()

    configure_logging()
    settings = load_settings(HERE / "Analysisfile.toml", env=args.env)
    frame = load_frame(settings)

    # Blocks until every year has come back from the workers
    results = run_parallel(frame, settings.unit_column, settings.model)

    write_results(settings.results_path, results)
    print_results_table(results, settings.model)


if __name__ == "__main__":
    main()
