"""
LME Catch Composition — Model Evaluation (Phase 03)

Scores every fitted block-model variant on every region with DIC, WAIC, and
the grouped log-CPO (leave out a time point's whole cross-coordinate group),
then ranks the variants.  PSIS-LOO from ArviZ is reported alongside as a
cross-check.

Usage:
  uv run python analysis/03_evaluation/evaluation.py
      [--variants ar1,rw2] [--dataset lme] [--run-id lme-261019]
      [--composition-dir PATH] [--block-model-dir PATH]

Outputs (in results/<dataset>/03_evaluation/<date>/):
  - data/criteria.parquet     one row per (variant, region)
  - data/comparison.parquet   variants ranked on criteria summed over shared regions
"""

import argparse
import sys
import warnings
from pathlib import Path

import arviz as az
import numpy as np
import polars as pl

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

try:
    from analysis.run_context import RunContext, resolve_upstream_dir
except ModuleNotFoundError:
    from run_context import RunContext, resolve_upstream_dir

try:
    from analysis.evaluation_data import (
        compare_variants,
        evaluate,
        log_likelihood_dataset,
        pointwise_log_likelihood,
        posterior_draws,
    )
except ModuleNotFoundError:
    from evaluation_data import (  # type: ignore[no-redef]
        compare_variants,
        evaluate,
        log_likelihood_dataset,
        pointwise_log_likelihood,
        posterior_draws,
    )

try:
    from analysis.block_data import build_block_response, build_friends, observed_values
except ModuleNotFoundError:
    from block_data import (  # type: ignore[no-redef]
        build_block_response,
        build_friends,
        observed_values,
    )

try:
    from analysis.block_model import load_alr_tables
except ModuleNotFoundError:
    from block_model import load_alr_tables  # type: ignore[no-redef]

EVALUATION_PRIMER = """\
# Model Evaluation

## Purpose

Compares the latent-trend structures of the ALR block model on the same
regions.  All criteria are on the deviance scale: lower is better.

## Criteria

| Criterion | Definition |
|-----------|------------|
| DIC | mean deviance + var(deviance)/2 |
| WAIC | -2 (lppd - p_waic) |
| log-CPO | -mean log p(y_i given all rows except i and its time-point group) |
| LOOIC | ArviZ PSIS-LOO on the deviance scale (cross-check) |

The log-CPO group of a row is every row built from the same time point: a
shared time effect couples them, so holding out one alone would leak.

Rows whose held-out density underflows to 0 are clamped and counted in
`n_clamped`.
"""


def score_region(idata: az.InferenceData, alr_table: pl.DataFrame) -> dict:
    """Evaluate one region's posterior against its own block response."""
    block = build_block_response(alr_table, time_col="year")
    y = observed_values(block)
    samples = posterior_draws(idata, block.index("category_index") - 1)
    result = evaluate(samples, y, build_friends(block))

    n_chains = idata.posterior.sizes["chain"]
    ll = pointwise_log_likelihood(samples, y)
    with_ll = idata.copy() + az.InferenceData(log_likelihood=log_likelihood_dataset(ll, n_chains))
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        loo = az.loo(with_ll, pointwise=True, scale="deviance")
    result["looic"] = float(loo.elpd_loo)
    result["max_pareto_k"] = float(np.max(loo.pareto_k.values))
    return result


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Block model evaluation (Phase 03)")
    parser.add_argument("--variants", default=None, help="Comma-separated variants (default: all)")
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


def main() -> None:
    args = parse_args()

    with RunContext(
        dataset=args.dataset,
        analysis_name="03_evaluation",
        params=vars(args),
        results_root=args.results_root,
        primer=EVALUATION_PRIMER,
        run_id=args.run_id,
    ) as ctx:
        print_header("Model Evaluation (Phase 03)")
        composition_dir = resolve_upstream_dir(
            "01_composition", ctx.dataset_root, args.run_id, args.composition_dir
        )
        block_dir = resolve_upstream_dir(
            "02_block_model", ctx.dataset_root, args.run_id, args.block_model_dir
        )
        tables, _ = load_alr_tables(composition_dir)

        idata_root = block_dir / "data" / "idata"
        if args.variants:
            variants = [v.strip() for v in args.variants.split(",")]
        else:
            variants = sorted(p.name for p in idata_root.iterdir() if p.is_dir())
        print(f"  Variants: {', '.join(variants)}")

        rows: list[dict] = []
        for variant in variants:
            print_header(f"Variant: {variant}")
            for path in sorted((idata_root / variant).glob("region_*.nc")):
                rid = int(path.stem.split("_")[1])
                if rid not in tables:
                    print(f"  WARNING: region {rid} has a posterior but no ALR table")
                    continue
                idata = az.from_netcdf(str(path))
                result = score_region(idata, tables[rid])
                if result["n_clamped"]:
                    print(f"  WARNING: region {rid}: {result['n_clamped']} CPO row(s) clamped")
                print(
                    f"  [{rid:2d}] DIC={result['dic']:9.2f}  WAIC={result['waic']:9.2f}  "
                    f"logCPO={result['log_cpo']:7.3f}  LOOIC={result['looic']:9.2f}"
                )
                rows.append({"variant": variant, "region_id": rid, **result})

        if not rows:
            print("  No fitted posteriors found")
            return

        criteria = pl.DataFrame(rows)
        criteria.write_parquet(ctx.data_dir / "criteria.parquet")

        # Compare on regions every variant fitted
        n_variants = criteria["variant"].n_unique()
        shared = (
            criteria.group_by("region_id")
            .agg(pl.col("variant").n_unique().alias("n"))
            .filter(pl.col("n") == n_variants)["region_id"]
        )
        summed = (
            criteria.filter(pl.col("region_id").is_in(shared.to_list()))
            .group_by("variant")
            .agg(
                pl.col("dic").sum(),
                pl.col("p_d").sum(),
                pl.col("waic").sum(),
                pl.col("p_waic").sum(),
                pl.col("log_cpo").mean(),
                pl.col("n_clamped").sum(),
            )
        )
        comparison = compare_variants({r["variant"]: r for r in summed.iter_rows(named=True)})
        comparison.write_parquet(ctx.data_dir / "comparison.parquet")

        print_header(f"Comparison ({len(shared)} shared regions)")
        for r in comparison.iter_rows(named=True):
            print(
                f"  {r['variant']:<18} WAIC={r['waic']:10.2f} (rank {r['rank_waic']})  "
                f"DIC rank {r['rank_dic']}  logCPO rank {r['rank_log_cpo']}"
            )


if __name__ == "__main__":
    main()
