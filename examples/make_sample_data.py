"""Write the two workshop datasets next to this script.

    python make_sample_data.py [--rows-per-year 500]
"""

import argparse
from pathlib import Path

from parstats.data import sample_dataset

HERE = Path(__file__).resolve().parent


def main():
    parser = argparse.ArgumentParser(description="Generate the workshop datasets")
    parser.add_argument("--rows-per-year", type=int, default=500)
    parser.add_argument("--seed", type=int, default=2024)
    args = parser.parse_args()

    data_dir = HERE / "data"
    data_dir.mkdir(exist_ok=True)
    years = range(1990, 2001)

    for kind in ("flights", "wages"):
        frame = sample_dataset(
            kind, years=years, rows_per_year=args.rows_per_year, seed=args.seed
        )
        target = data_dir / f"{kind}.csv"
        frame.to_csv(target, index=False)
        print(f"{target}: {len(frame)} rows, columns {', '.join(frame.columns)}")


if __name__ == "__main__":
    main()
