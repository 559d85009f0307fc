"""
LME Catch Composition — ALR Coordinates (Phase 01)

Closes the raw tonnage panel into compositions, records regions excluded for
degenerate years or essential zeros, chooses (or reuses pinned) ALR reference
categories per region, and writes one ALR coordinate table per region for the
block model phase.

Usage:
  uv run python analysis/01_composition/composition.py --panel data/lme_panel.csv
      [--regions 1,2,3] [--reference demersal] [--min-mean-share 0.05]
      [--dataset lme] [--run-id lme-261019]

Outputs (in results/<dataset>/01_composition/<date>/):
  - data/panel_closed.csv          closed compositions (region_id, year, category, value)
  - data/alr/region_NN.parquet     ALR coordinates per modelled region
  - data/references.json           reference category per region + panel hash
  - data/exclusions.parquet        excluded regions and reasons
Pinned references live one level up, in results/<dataset>/references.json.
"""

import argparse
import json
import sys
from pathlib import Path

import polars as pl

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

try:
    from analysis.run_context import RunContext
except ModuleNotFoundError:
    from run_context import RunContext

try:
    from analysis.composition_data import (
        MIN_REFERENCE_MEAN_SHARE,
        alr_table,
        choose_reference,
        reference_diagnostics,
    )
except ModuleNotFoundError:
    from composition_data import (  # type: ignore[no-redef]
        MIN_REFERENCE_MEAN_SHARE,
        alr_table,
        choose_reference,
        reference_diagnostics,
    )

from shoal.config import CATEGORIES
from shoal.errors import EssentialZeroExclusionError, UndefinedLogRatioError
from shoal.panel import (
    close_panel,
    complete_panel,
    composition_matrix,
    load_panel_csv,
    panel_hash,
    regions_with_zeros,
    save_panel_csv,
)

PINNED_REFERENCES_FILENAME = "references.json"

COMPOSITION_PRIMER = """\
# Catch Composition (ALR Coordinates)

## Purpose

Turns LME catch tonnage by functional group into compositions (shares summing
to one) and maps each region's series into additive log-ratio coordinates, the
space in which the block model treats the composition as multivariate Gaussian.

## Method

- Closure: each (region, year) is divided by its total catch.
- Exclusion: regions with any zero-total year, or any essential zero in any
  category, are excluded; log-ratios are undefined at zero and zeros are
  never imputed.
- Reference: the category with the lowest variance of log-share among those
  with mean share >= 5% (ties broken by category order). References are pinned
  to the panel's SHA-256 so reruns on the same data reuse them.

## Outputs

- `panel_closed.csv`, `alr/region_NN.parquet`, `references.json`, `exclusions.parquet`
"""


# ── Reference Pinning ────────────────────────────────────────────────────────


def load_pinned_references(path: Path, dataset_hash: str) -> dict[int, str]:
    """Return pinned references when ``path`` exists and matches ``dataset_hash``.

    A file pinned to a different panel version is ignored (empty dict).
    """
    if not path.exists():
        return {}
    with open(path) as f:
        pinned = json.load(f)
    if pinned.get("panel_hash") != dataset_hash:
        return {}
    return {int(k): v for k, v in pinned.get("references", {}).items()}


def write_references(path: Path, dataset_hash: str, references: dict[int, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "panel_hash": dataset_hash,
        "references": {str(k): v for k, v in sorted(references.items())},
    }
    with open(path, "w") as f:
        json.dump(payload, f, indent=2)


def exclusion_table(
    degenerate: dict[int, Exception],
    zero_regions: dict[int, EssentialZeroExclusionError],
) -> pl.DataFrame:
    rows = [
        {"region_id": rid, "reason": type(err).__name__, "detail": str(err)}
        for rid, err in sorted({**degenerate, **zero_regions}.items())
    ]
    return pl.DataFrame(
        rows, schema={"region_id": pl.Int64, "reason": pl.Utf8, "detail": pl.Utf8}
    )


# ── CLI ──────────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Catch composition ALR coordinates (Phase 01)")
    parser.add_argument("--panel", type=Path, required=True, help="Raw panel CSV (tonnes)")
    parser.add_argument("--dataset", default="lme", help="Dataset label for results/ layout")
    parser.add_argument("--regions", default=None, help="Comma-separated region ids")
    parser.add_argument(
        "--reference",
        default=None,
        choices=list(CATEGORIES),
        help="Force one reference category for all regions (skips heuristic and pinning)",
    )
    parser.add_argument(
        "--min-mean-share",
        type=float,
        default=MIN_REFERENCE_MEAN_SHARE,
        help=f"Minimum mean share of a reference (default: {MIN_REFERENCE_MEAN_SHARE})",
    )
    parser.add_argument("--results-root", type=Path, default=Path("results"))
    parser.add_argument("--run-id", default=None, help="Group outputs under a pipeline run id")
    return parser.parse_args()


def print_header(title: str) -> None:
    """Print a section header."""
    print(f"\n{'═' * 72}")
    print(f"  {title}")
    print(f"{'═' * 72}")


def main() -> None:
    args = parse_args()

    with RunContext(
        dataset=args.dataset,
        analysis_name="01_composition",
        params=vars(args),
        results_root=args.results_root,
        primer=COMPOSITION_PRIMER,
        run_id=args.run_id,
    ) as ctx:
        print_header("Catch Composition (Phase 01)")

        raw = load_panel_csv(args.panel)
        if args.regions:
            wanted = [int(r) for r in args.regions.split(",")]
            raw = raw.filter(pl.col("region_id").is_in(wanted))
        years = range(int(raw["year"].min()), int(raw["year"].max()) + 1)
        panel = complete_panel(raw, years, CATEGORIES)
        print(f"  Panel: {panel['region_id'].n_unique()} regions, {years.start}-{years.stop - 1}")

        closed, degenerate = close_panel(panel)
        for rid, err in degenerate.items():
            print(f"  WARNING: excluded region {rid}: {err}")
        save_panel_csv(closed, ctx.data_dir / "panel_closed.csv")

        zero_regions: dict[int, EssentialZeroExclusionError] = {}
        for rid, cats in regions_with_zeros(closed).items():
            n_zeros = closed.filter(
                (pl.col("region_id") == rid) & (pl.col("value") == 0.0)
            ).height
            zero_regions[rid] = EssentialZeroExclusionError(rid, n_zeros, cats)
        print(f"  Essential-zero regions (excluded from ALR): {len(zero_regions)}")
        exclusion_table(degenerate, zero_regions).write_parquet(
            ctx.data_dir / "exclusions.parquet"
        )

        dataset_hash = panel_hash(closed)
        pinned_path = ctx.dataset_root / PINNED_REFERENCES_FILENAME
        pinned = {} if args.reference else load_pinned_references(pinned_path, dataset_hash)
        if pinned:
            print(f"  Reusing {len(pinned)} pinned reference(s) from {pinned_path}")

        print_header("ALR Coordinates")
        alr_dir = ctx.data_dir / "alr"
        alr_dir.mkdir(exist_ok=True)
        references: dict[int, str] = {}
        modelled = sorted(set(closed["region_id"].unique().to_list()) - set(zero_regions))
        for rid in modelled:
            comp, region_years = composition_matrix(closed, rid, CATEGORIES)
            try:
                if args.reference:
                    reference = args.reference
                elif rid in pinned:
                    reference = pinned[rid]
                else:
                    reference = choose_reference(comp, CATEGORIES, args.min_mean_share)
                table = alr_table(comp, region_years, CATEGORIES, reference)
            except UndefinedLogRatioError as e:
                print(f"  WARNING: region {rid}: {e}")
                continue
            references[rid] = reference
            table.write_parquet(alr_dir / f"region_{rid:02d}.parquet")

            diag = reference_diagnostics(comp, CATEGORIES, args.min_mean_share)
            ref_row = diag.filter(pl.col("category") == reference).row(0, named=True)
            print(
                f"  [{rid:2d}] ref={reference:<14} mean={ref_row['mean_share']:.3f} "
                f"logvar={ref_row['log_variance']:.4f}"
            )

        write_references(ctx.data_dir / PINNED_REFERENCES_FILENAME, dataset_hash, references)
        if not args.reference:
            write_references(pinned_path, dataset_hash, references)
        print(f"\n  {len(references)} region(s) written to {alr_dir}")


if __name__ == "__main__":
    main()
