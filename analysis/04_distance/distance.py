"""
LME Catch Composition — Aitchison Distance Series (Phase 04)

Tracks how similar the regional catch compositions are over time: for each
year, the mean pairwise Aitchison distance across all regions without
essential zeros.  Runs on the observed (closed) panel and, when a block-model
fit is available, on the model-smoothed panel.

Usage:
  uv run python analysis/04_distance/distance.py
      [--variant ar1] [--reference demersal] [--workers 4]
      [--dataset lme] [--run-id lme-261019]
      [--composition-dir PATH] [--block-model-dir PATH]

Outputs (in results/<dataset>/04_distance/<date>/):
  - data/distance_<source>.parquet          year, n_regions, mean_distance
  - data/distance_by_region_<source>.parquet year, region_id, mean_distance
  - data/exclusions_<source>.parquet        regions dropped for essential zeros
where <source> is "observed" or "smoothed_<variant>".
"""

import argparse
import sys
from pathlib import Path

import polars as pl

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

try:
    from analysis.run_context import RunContext, resolve_upstream_dir
except ModuleNotFoundError:
    from run_context import RunContext, resolve_upstream_dir

try:
    from analysis.distance_data import DEFAULT_DISTANCE_WORKERS, distance_summary_table
except ModuleNotFoundError:
    from distance_data import (  # type: ignore[no-redef]
        DEFAULT_DISTANCE_WORKERS,
        distance_summary_table,
    )

from shoal.config import CATEGORIES
from shoal.panel import load_panel_csv

DISTANCE_PRIMER = """\
# Aitchison Distance Series

## Purpose

Measures whether the catch compositions of the Large Marine Ecosystems are
converging or diverging over time.

## Method

- Distance between two compositions: Euclidean distance of their CLR
  coordinates (Aitchison distance).  Identical for every ALR reference.
- Yearly score: mean over all distinct region pairs.
- Regions with a zero share in any year or category are excluded for the
  whole series; zeros are never imputed.
- "smoothed" runs use the block model's posterior-mean compositions.
"""


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aitchison distance series (Phase 04)")
    parser.add_argument("--variant", default=None, help="Smoothed panel variant (default: none)")
    parser.add_argument(
        "--reference",
        default=None,
        choices=list(CATEGORIES),
        help="Compute through ALR with this reference (results are identical to CLR)",
    )
    parser.add_argument("--workers", type=int, default=DEFAULT_DISTANCE_WORKERS)
    parser.add_argument("--dataset", default="lme")
    parser.add_argument("--results-root", type=Path, default=Path("results"))
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--composition-dir", type=Path, default=None)
    parser.add_argument("--block-model-dir", type=Path, default=None)
    return parser.parse_args()


def print_header(title: str) -> None:
    """Print a section header."""
    print(f"\n{'═' * 72}")
    print(f"  {title}")
    print(f"{'═' * 72}")


def run_source(label: str, panel: pl.DataFrame, args: argparse.Namespace, data_dir: Path) -> None:
    print_header(f"Distance series: {label}")
    yearly, by_region, excluded = distance_summary_table(
        panel, reference=args.reference, max_workers=args.workers
    )
    for err in excluded.values():
        print(f"  WARNING: {err}")

    yearly.write_parquet(data_dir / f"distance_{label}.parquet")
    by_region.write_parquet(data_dir / f"distance_by_region_{label}.parquet")
    pl.DataFrame(
        [{"region_id": rid, "detail": str(err)} for rid, err in excluded.items()],
        schema={"region_id": pl.Int64, "detail": pl.Utf8},
    ).write_parquet(data_dir / f"exclusions_{label}.parquet")

    if yearly.height == 0:
        print("  No years to report")
        return
    first, last = yearly.row(0, named=True), yearly.row(-1, named=True)
    print(f"  Regions used: {by_region['region_id'].n_unique()}  (excluded: {len(excluded)})")
    print(f"  {first['year']}: {first['mean_distance']:.4f}")
    print(f"  {last['year']}: {last['mean_distance']:.4f}")


def main() -> None:
    args = parse_args()

    with RunContext(
        dataset=args.dataset,
        analysis_name="04_distance",
        params=vars(args),
        results_root=args.results_root,
        primer=DISTANCE_PRIMER,
        run_id=args.run_id,
    ) as ctx:
        print_header("Aitchison Distance Series (Phase 04)")
        composition_dir = resolve_upstream_dir(
            "01_composition", ctx.dataset_root, args.run_id, args.composition_dir
        )
        observed = load_panel_csv(composition_dir / "data" / "panel_closed.csv")
        run_source("observed", observed, args, ctx.data_dir)

        if args.variant:
            block_dir = resolve_upstream_dir(
                "02_block_model", ctx.dataset_root, args.run_id, args.block_model_dir
            )
            fitted_path = block_dir / "data" / f"fitted_{args.variant}.csv"
            if not fitted_path.exists():
                print(f"  WARNING: no smoothed panel at {fitted_path}")
                return
            run_source(f"smoothed_{args.variant}", load_panel_csv(fitted_path), args, ctx.data_dir)


if __name__ == "__main__":
    main()
