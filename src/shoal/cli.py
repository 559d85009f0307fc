"""Command-line entry point: fetch LME catch tonnage and write the raw panel CSV.

Usage:
  shoal-fetch [--regions 1,2,3] [--year-start 1950] [--year-end 2019]
              [--output data/lme_panel.csv] [--cache-dir data/cache]
"""

import argparse
import sys
import time
from pathlib import Path

from shoal.config import CATEGORIES, REGION_IDS, RETRY_WAVES, YEAR_END, YEAR_START
from shoal.fetcher import SauFetcher
from shoal.panel import aggregate_to_categories, complete_panel, save_panel_csv


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fetch Sea Around Us LME catch by functional group into a flat panel CSV",
    )
    parser.add_argument(
        "--regions",
        default=None,
        help="Comma-separated LME ids (default: all 1-66)",
    )
    parser.add_argument("--year-start", type=int, default=YEAR_START)
    parser.add_argument("--year-end", type=int, default=YEAR_END)
    parser.add_argument("--output", type=Path, default=Path("data") / "lme_panel.csv")
    parser.add_argument("--cache-dir", type=Path, default=Path("data") / "cache")
    parser.add_argument(
        "--retry-waves",
        type=int,
        default=RETRY_WAVES,
        help=f"Retry passes for transient failures (default: {RETRY_WAVES})",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if args.regions:
        region_ids = [int(r.strip()) for r in args.regions.split(",")]
    else:
        region_ids = list(REGION_IDS)

    print("=" * 60)
    print(f"Fetching {len(region_ids)} region(s), {args.year_start}-{args.year_end}")
    print("=" * 60)

    t0 = time.time()
    fetcher = SauFetcher(cache_dir=args.cache_dir)
    raw, failures = fetcher.fetch_panel(
        region_ids, args.year_start, args.year_end, max_waves=args.retry_waves
    )
    for region_id, reason in failures.items():
        print(f"  WARNING: region {region_id} skipped ({reason})")

    panel = aggregate_to_categories(raw)
    panel = complete_panel(panel, range(args.year_start, args.year_end + 1), CATEGORIES)
    save_panel_csv(panel, args.output)

    n_regions = panel["region_id"].n_unique() if panel.height else 0
    print(f"  {args.output} ({panel.height} rows, {n_regions} regions)")
    print(f"  Done in {time.time() - t0:.1f}s")
    return 0 if n_regions else 1


if __name__ == "__main__":
    sys.exit(main())
