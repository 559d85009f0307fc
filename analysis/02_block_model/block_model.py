"""
LME Catch Composition — ALR Block Model (Phase 02)

Fits the logistic-normal block model to each region's ALR coordinates: the
K = D-1 coordinate series are stacked into one N·K-row response with one
Gaussian channel per coordinate, per-coordinate intercepts (and optionally
linear trends), a time-point effect shared by all coordinates, and the latent
temporal terms of the chosen model variant.  Regions are fitted independently
on a thread pool; each engine call runs under a timeout, engine failures are
retried with backoff, and every region ends with a recorded status.

Usage:
  uv run python analysis/02_block_model/block_model.py
      [--variants ar1,rw2] [--regions 1,2,3]
      [--n-samples 1000] [--n-tune 1000] [--n-chains 2]
      [--timeout 1800] [--workers 1] [--max-retries 2]
      [--dataset lme] [--run-id lme-261019] [--composition-dir PATH]

Outputs (in results/<dataset>/02_block_model/<date>/):
  - data/idata/<variant>/region_NN.nc   posterior (NetCDF)
  - data/fits_<variant>.parquet         per-region status + convergence
  - data/fitted_<variant>.csv           smoothed compositions panel
  - data/fitted_summary_<variant>.parquet  per-row fitted mean and 95% interval
  - data/latent_summary_<variant>.parquet  per-region latent-process mean and 95% interval
"""

import argparse
import functools
import json
import sys
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from pathlib import Path

import arviz as az
import numpy as np
import nutpie
import polars as pl
import pymc as pm
import pytensor.tensor as pt

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

try:
    from analysis.run_context import RunContext, resolve_upstream_dir
except ModuleNotFoundError:
    from run_context import RunContext, resolve_upstream_dir

try:
    from analysis.block_data import (
        BlockResponse,
        build_block_response,
        observed_values,
        unstack_rows,
    )
except ModuleNotFoundError:
    from block_data import (  # type: ignore[no-redef]
        BlockResponse,
        build_block_response,
        observed_values,
        unstack_rows,
    )

try:
    from analysis.model_spec import (
        PRODUCTION_VARIANT,
        VARIANTS,
        ModelVariant,
        SharedCopy,
        build_process,
        copy_targets,
        validate_variant,
    )
except ModuleNotFoundError:
    from model_spec import (  # type: ignore[no-redef]
        PRODUCTION_VARIANT,
        VARIANTS,
        ModelVariant,
        SharedCopy,
        build_process,
        copy_targets,
        validate_variant,
    )

try:
    from analysis.composition_data import alr_inverse
except ModuleNotFoundError:
    from composition_data import alr_inverse  # type: ignore[no-redef]

from shoal.config import CATEGORIES
from shoal.errors import (
    DegenerateCompositionError,
    DimensionMismatchError,
    InferenceTimeoutError,
    UndefinedLogRatioError,
)

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_N_SAMPLES: int = 1000
DEFAULT_N_TUNE: int = 1000
DEFAULT_N_CHAINS: int = 2
RANDOM_SEED: int = 42
RHAT_THRESHOLD: float = 1.01
ESS_THRESHOLD: int = 400
MAX_DIVERGENCES: int = 10

DEFAULT_TIMEOUT: float = 1800.0
"""Seconds allowed for one engine call (one region, one variant)."""
ENGINE_MAX_RETRIES: int = 2
"""Retries after the first failed engine call, before the region is skipped."""
ENGINE_RETRY_DELAY: float = 5.0
"""Base backoff in seconds; doubles with each retry."""
DEFAULT_FIT_WORKERS: int = 1
N_COORDS: int = len(CATEGORIES) - 1
"""ALR coordinates per region (one fewer than the number of categories)."""

STRUCTURAL_ERRORS = (
    DegenerateCompositionError,
    DimensionMismatchError,
    UndefinedLogRatioError,
)

Engine = Callable[[BlockResponse, ModelVariant], az.InferenceData]
"""Inference engine boundary: block response + variant in, posterior out."""

BLOCK_MODEL_PRIMER = """\
# ALR Block Model

## Purpose

Estimates smooth, correlated temporal trends in the catch composition of each
Large Marine Ecosystem, treating the composition as logistic-normal: its ALR
coordinates are multivariate Gaussian.

## Method

The K = D-1 ALR series are stacked into an N·K-row block response.  Row block
k feeds Gaussian channel k:

```
y[t,k] = alpha[k] (+ beta[k] * time[t]) + gamma[t] + f_k(t) + eps[t,k]
eps[t,k] ~ Normal(0, sigma[k])
gamma[t] ~ Normal(0, sd_gamma)        -- shared by all k at time t
f_k     ~ AR1 | RW1 | RW2 | copied    -- per variant
```

gamma carries the contemporaneous correlation between coordinates; f_k is
either one process per coordinate (replicated), one process shared by all
coordinates, or one coordinate's process copied onto the others with a scale.

Sampling: PyMC graph compiled and sampled with nutpie.

## Failure handling

Structural input errors fail a region without retry.  Engine errors are
retried with exponential backoff; a timeout skips the region.  No region's
failure aborts the batch.
"""


# ── Model ────────────────────────────────────────────────────────────────────


def _index_and_mask(block: BlockResponse, column: str) -> tuple[np.ndarray, np.ndarray]:
    """0-based index array (nulls → 0) and a float mask that zeroes null rows."""
    series = block.frame[column]
    mask = series.is_not_null().to_numpy().astype(np.float64)
    idx = (series.fill_null(1).to_numpy().astype(np.int64)) - 1
    return idx, mask


def build_block_graph(block: BlockResponse, variant: ModelVariant) -> pm.Model:
    """Build the ALR block model graph (no sampling).

    Model structure:
        alpha[k] (+ beta[k] * standardized time) + latent terms → eta (per row)
        y[row] ~ Normal(eta[row], sigma[category[row]])

    Args:
        block: Block response from ``build_block_response()``.
        variant: Latent-term structure.

    Returns:
        PyMC model with Deterministic ``eta`` (dims "row") and ``sigma`` (dims "coord").
    """
    validate_variant(variant, block.frame.columns)

    cat = block.index("category_index") - 1
    y = observed_values(block)
    t = block.index("time").astype(np.float64)
    t_std = (t - t.mean()) / max(t.std(), 1e-9)

    coords = {
        "coord": list(block.coord_names),
        "row": np.arange(block.n_rows),
    }

    with pm.Model(coords=coords) as model:
        alpha = pm.Normal("alpha", mu=0, sigma=5, dims="coord")
        eta = alpha[cat]

        if variant.linear_trend:
            beta = pm.Normal("beta", mu=0, sigma=1, dims="coord")
            eta = eta + beta[cat] * t_std

        processes: dict = {}
        for spec in variant.terms:
            if isinstance(spec, SharedCopy):
                source = variant.term(spec.source)
                src = processes[spec.source]
                targets = copy_targets(spec, source.index, block.n_coords)
                if spec.fixed:
                    scales = pt.ones(len(targets))
                else:
                    scales = pm.Normal(f"{spec.name}_scale", mu=1, sigma=1, shape=len(targets))
                for j, column in enumerate(targets):
                    idx, mask = _index_and_mask(block, column)
                    eta = eta + scales[j] * src[0, idx] * mask
                continue

            idx, mask = _index_and_mask(block, spec.index)
            n_levels = int(block.frame[spec.index].max())
            if spec.replicate is not None:
                rep, _ = _index_and_mask(block, spec.replicate)
                n_rep = int(block.frame[spec.replicate].max())
            else:
                rep = np.zeros(block.n_rows, dtype=np.int64)
                n_rep = 1
            f = build_process(spec, n_levels, n_rep)
            processes[spec.name] = f
            eta = eta + f[rep, idx] * mask

        eta = pm.Deterministic("eta", eta, dims="row")
        sigma = pm.HalfNormal("sigma", sigma=1.0, dims="coord")
        pm.Normal("obs", mu=eta, sigma=sigma[cat], observed=y, dims="row")

    return model


def sample_block_model(
    block: BlockResponse,
    variant: ModelVariant,
    n_samples: int = DEFAULT_N_SAMPLES,
    n_tune: int = DEFAULT_N_TUNE,
    n_chains: int = DEFAULT_N_CHAINS,
    seed: int = RANDOM_SEED,
) -> az.InferenceData:
    """Build the block model and sample it with nutpie.

    This is the default inference engine; see ``make_engine()``.
    """
    model = build_block_graph(block, variant)
    compiled = nutpie.compile_pymc_model(model)
    t0 = time.time()
    idata = nutpie.sample(
        compiled,
        draws=n_samples,
        tune=n_tune,
        chains=n_chains,
        seed=seed,
        progress_bar=False,
        store_divergences=True,
    )
    print(f"    {variant.name}: sampled {n_chains}x{n_samples} in {time.time() - t0:.1f}s")
    return idata


def make_engine(
    n_samples: int = DEFAULT_N_SAMPLES,
    n_tune: int = DEFAULT_N_TUNE,
    n_chains: int = DEFAULT_N_CHAINS,
    seed: int = RANDOM_SEED,
) -> Engine:
    """Bind sampler settings into an Engine callable."""
    return functools.partial(
        sample_block_model, n_samples=n_samples, n_tune=n_tune, n_chains=n_chains, seed=seed
    )


# ── Batch Fitting ────────────────────────────────────────────────────────────


@dataclass
class RegionFit:
    """Outcome of fitting one region: status is "ok", "failed", or "skipped"."""

    region_id: int
    status: str
    idata: az.InferenceData | None = None
    block: BlockResponse | None = None
    error: str | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def call_with_timeout(fn: Callable[[], az.InferenceData], timeout: float | None):
    """Run ``fn`` and give up after ``timeout`` seconds.

    The worker thread cannot be killed; on timeout its result is discarded.

    Raises:
        InferenceTimeoutError: If ``fn`` does not return in time.
    """
    if timeout is None:
        return fn()
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        msg = f"inference engine exceeded {timeout:.0f}s"
        raise InferenceTimeoutError(msg) from None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def fit_region(
    region_id: int,
    table: pl.DataFrame,
    variant: ModelVariant,
    engine: Engine,
    *,
    n_coords: int | None = N_COORDS,
    timeout: float | None = DEFAULT_TIMEOUT,
    max_retries: int = ENGINE_MAX_RETRIES,
    retry_delay: float = ENGINE_RETRY_DELAY,
) -> RegionFit:
    """Build one region's block response and run the engine on it.

    Structural errors fail the region immediately.  A timeout skips it.  Any
    other engine exception is retried ``max_retries`` times with exponential
    backoff before the region is skipped.

    ``n_coords`` is the declared number of ALR coordinates; a table with a
    different column count fails the region.  None accepts any count.
    """
    t0 = time.time()
    try:
        block = build_block_response(table, n_coords, time_col="year")
        validate_variant(variant, block.frame.columns)
    except (*STRUCTURAL_ERRORS, ValueError) as e:
        return RegionFit(region_id, "failed", error=f"{type(e).__name__}: {e}")

    last_error = ""
    for attempt in range(1, max_retries + 2):
        try:
            idata = call_with_timeout(lambda: engine(block, variant), timeout)
        except InferenceTimeoutError as e:
            return RegionFit(
                region_id,
                "skipped",
                block=block,
                error=f"InferenceTimeoutError: {e}",
                attempts=attempt,
                elapsed=time.time() - t0,
            )
        except Exception as e:  # engine boundary: any failure is retried, then recorded
            last_error = f"{type(e).__name__}: {e}"
            print(f"    WARNING: region {region_id} attempt {attempt} failed ({last_error})")
            if attempt <= max_retries:
                time.sleep(retry_delay * 2 ** (attempt - 1))
            continue
        return RegionFit(
            region_id, "ok", idata=idata, block=block, attempts=attempt, elapsed=time.time() - t0
        )

    return RegionFit(
        region_id,
        "skipped",
        block=block,
        error=last_error,
        attempts=max_retries + 1,
        elapsed=time.time() - t0,
    )


def fit_regions(
    tables: Mapping[int, pl.DataFrame],
    variant: ModelVariant,
    engine: Engine,
    *,
    max_workers: int = DEFAULT_FIT_WORKERS,
    n_coords: int | None = N_COORDS,
    timeout: float | None = DEFAULT_TIMEOUT,
    max_retries: int = ENGINE_MAX_RETRIES,
    retry_delay: float = ENGINE_RETRY_DELAY,
) -> dict[int, RegionFit]:
    """Fit every region independently; results keyed by region id, in id order."""
    fit = functools.partial(
        fit_region,
        variant=variant,
        engine=engine,
        n_coords=n_coords,
        timeout=timeout,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {rid: pool.submit(fit, rid, table) for rid, table in tables.items()}
        results = {rid: future.result() for rid, future in futures.items()}
    return dict(sorted(results.items()))


# ── Post-Processing ──────────────────────────────────────────────────────────


def _stacked(idata: az.InferenceData, var: str) -> np.ndarray:
    """Posterior draws of ``var`` with chain and draw flattened into axis 0."""
    values = idata.posterior[var].values
    return values.reshape(-1, *values.shape[2:])


def summarize_fitted(idata: az.InferenceData, block: BlockResponse) -> pl.DataFrame:
    """Posterior summary of the linear predictor per block row.

    Returns DataFrame with columns: row, year, coord, observed, eta_mean,
    eta_sd, eta_q2.5, eta_q97.5.
    """
    eta = _stacked(idata, "eta")
    cat = block.index("category_index") - 1
    pos = block.index("temporal_replicate_index") - 1
    return pl.DataFrame(
        {
            "row": np.arange(block.n_rows),
            "year": [block.times[p] for p in pos],
            "coord": [block.coord_names[k] for k in cat],
            "observed": observed_values(block),
            "eta_mean": eta.mean(axis=0),
            "eta_sd": eta.std(axis=0),
            "eta_q2.5": np.quantile(eta, 0.025, axis=0),
            "eta_q97.5": np.quantile(eta, 0.975, axis=0),
        }
    )


LATENT_SCHEMA = {
    "term": pl.Utf8,
    "replicate": pl.Int64,
    "level": pl.Int64,
    "mean": pl.Float64,
    "q2.5": pl.Float64,
    "q97.5": pl.Float64,
}


def summarize_latent(idata: az.InferenceData, variant: ModelVariant) -> pl.DataFrame:
    """Posterior summary of each latent process per (replicate, level).

    Returns DataFrame with columns: term, replicate, level, mean, q2.5, q97.5.
    """
    frames: list[pl.DataFrame] = []
    for spec in variant.terms:
        if spec.name not in idata.posterior:
            continue
        draws = _stacked(idata, spec.name)  # (S, n_rep, n_levels)
        n_rep, n_levels = draws.shape[1], draws.shape[2]
        rep, level = np.meshgrid(np.arange(1, n_rep + 1), np.arange(1, n_levels + 1), indexing="ij")
        frames.append(
            pl.DataFrame(
                {
                    "term": [spec.name] * (n_rep * n_levels),
                    "replicate": rep.ravel(),
                    "level": level.ravel(),
                    "mean": draws.mean(axis=0).ravel(),
                    "q2.5": np.quantile(draws, 0.025, axis=0).ravel(),
                    "q97.5": np.quantile(draws, 0.975, axis=0).ravel(),
                }
            )
        )
    if not frames:
        return pl.DataFrame(schema=LATENT_SCHEMA)
    return pl.concat(frames)


def latent_summary_table(fits: Mapping[int, RegionFit], variant: ModelVariant) -> pl.DataFrame:
    """``summarize_latent`` for every fitted region, with a leading ``region_id`` column."""
    frames = [
        summarize_latent(fit.idata, variant).select(
            pl.lit(rid).cast(pl.Int64).alias("region_id"), pl.all()
        )
        for rid, fit in fits.items()
        if fit.ok and fit.idata is not None
    ]
    if not frames:
        return pl.DataFrame(schema={"region_id": pl.Int64, **LATENT_SCHEMA})
    return pl.concat(frames)


def extract_fitted_compositions(
    idata: az.InferenceData,
    block: BlockResponse,
    reference_position: int,
    region_id: int,
    categories: tuple[str, ...] | list[str] = CATEGORIES,
) -> pl.DataFrame:
    """Smoothed compositions from the posterior-mean linear predictor.

    Returns a panel frame (region_id, year, category, value) with every
    (year, category) present and each year summing to 1.
    """
    eta_mean = _stacked(idata, "eta").mean(axis=0)
    z = unstack_rows(eta_mean, block)  # (N, K)
    comp = alr_inverse(z, reference_position)  # (N, D)
    n_time, n_parts = comp.shape
    return pl.DataFrame(
        {
            "region_id": [region_id] * (n_time * n_parts),
            "year": np.repeat(np.asarray(block.times, dtype=np.int64), n_parts),
            "category": list(categories) * n_time,
            "value": comp.ravel(),
        },
        schema={
            "region_id": pl.Int64,
            "year": pl.Int64,
            "category": pl.Utf8,
            "value": pl.Float64,
        },
    )


def check_convergence(idata: az.InferenceData, params: list[str] | None = None) -> dict:
    """Check convergence diagnostics for one region's block model.

    Returns dict with: rhat_max, ess_bulk_min, n_divergences, passed.
    """
    if params is None:
        params = [v for v in ("alpha", "beta", "sigma") if v in idata.posterior]

    summary = az.summary(idata, var_names=params, kind="diagnostics")
    rhat_max = float(summary["r_hat"].max())
    ess_min = float(summary["ess_bulk"].min())
    n_divergences = int(idata.sample_stats.get("diverging", np.zeros(1)).sum())

    return {
        "rhat_max": rhat_max,
        "ess_bulk_min": ess_min,
        "n_divergences": n_divergences,
        "passed": (
            rhat_max <= RHAT_THRESHOLD
            and ess_min >= ESS_THRESHOLD
            and n_divergences <= MAX_DIVERGENCES
        ),
    }


def fit_table(fits: Mapping[int, RegionFit], variant: str) -> pl.DataFrame:
    """One row per region: status, error, attempts, elapsed, convergence."""
    rows: list[dict] = []
    for rid, fit in fits.items():
        row = {
            "region_id": rid,
            "variant": variant,
            "status": fit.status,
            "error": fit.error,
            "attempts": fit.attempts,
            "elapsed_seconds": round(fit.elapsed, 1),
            "rhat_max": None,
            "ess_bulk_min": None,
            "n_divergences": None,
            "converged": None,
        }
        if fit.ok and fit.idata is not None:
            diag = check_convergence(fit.idata)
            row.update(
                rhat_max=diag["rhat_max"],
                ess_bulk_min=diag["ess_bulk_min"],
                n_divergences=diag["n_divergences"],
                converged=diag["passed"],
            )
        rows.append(row)
    return pl.DataFrame(
        rows,
        schema={
            "region_id": pl.Int64,
            "variant": pl.Utf8,
            "status": pl.Utf8,
            "error": pl.Utf8,
            "attempts": pl.Int64,
            "elapsed_seconds": pl.Float64,
            "rhat_max": pl.Float64,
            "ess_bulk_min": pl.Float64,
            "n_divergences": pl.Int64,
            "converged": pl.Boolean,
        },
    )


# ── Upstream Loading ─────────────────────────────────────────────────────────


def load_alr_tables(
    composition_dir: Path,
    regions: list[int] | None = None,
) -> tuple[dict[int, pl.DataFrame], dict[int, str]]:
    """Load per-region ALR tables and their reference categories from Phase 01."""
    data_dir = composition_dir / "data"
    with open(data_dir / "references.json") as f:
        references = {int(k): v for k, v in json.load(f)["references"].items()}

    tables: dict[int, pl.DataFrame] = {}
    for rid in sorted(references):
        if regions is not None and rid not in regions:
            continue
        path = data_dir / "alr" / f"region_{rid:02d}.parquet"
        if path.exists():
            tables[rid] = pl.read_parquet(path)
    return tables, {rid: references[rid] for rid in tables}


# ── CLI ──────────────────────────────────────────────────────────────────────


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ALR block model per region (Phase 02)")
    parser.add_argument(
        "--variants",
        default=PRODUCTION_VARIANT.name,
        help=f"Comma-separated variants from {sorted(VARIANTS)} "
        f"(default: {PRODUCTION_VARIANT.name})",
    )
    parser.add_argument("--regions", default=None, help="Comma-separated region ids")
    parser.add_argument("--n-samples", type=int, default=DEFAULT_N_SAMPLES)
    parser.add_argument("--n-tune", type=int, default=DEFAULT_N_TUNE)
    parser.add_argument("--n-chains", type=int, default=DEFAULT_N_CHAINS)
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds per engine call (default: {DEFAULT_TIMEOUT:.0f})",
    )
    parser.add_argument("--workers", type=int, default=DEFAULT_FIT_WORKERS)
    parser.add_argument("--max-retries", type=int, default=ENGINE_MAX_RETRIES)
    parser.add_argument("--dataset", default="lme")
    parser.add_argument("--results-root", type=Path, default=Path("results"))
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--composition-dir", type=Path, default=None)
    return parser.parse_args()


def print_header(title: str) -> None:
    """Print a section header."""
    print(f"\n{'═' * 72}")
    print(f"  {title}")
    print(f"{'═' * 72}")


def main() -> None:
    args = parse_args()
    variant_names = [v.strip() for v in args.variants.split(",")]
    unknown = [v for v in variant_names if v not in VARIANTS]
    if unknown:
        print(f"ERROR: unknown variant(s) {unknown}; choose from {sorted(VARIANTS)}")
        sys.exit(2)
    regions = [int(r) for r in args.regions.split(",")] if args.regions else None

    with RunContext(
        dataset=args.dataset,
        analysis_name="02_block_model",
        params=vars(args),
        results_root=args.results_root,
        primer=BLOCK_MODEL_PRIMER,
        run_id=args.run_id,
    ) as ctx:
        print_header("ALR Block Model (Phase 02)")
        composition_dir = resolve_upstream_dir(
            "01_composition", ctx.dataset_root, args.run_id, args.composition_dir
        )
        tables, references = load_alr_tables(composition_dir, regions)
        print(f"  Upstream:  {composition_dir}")
        print(f"  Regions:   {len(tables)}")
        print(f"  MCMC:      {args.n_samples} samples, {args.n_tune} tune, {args.n_chains} chains")
        print(f"  Timeout:   {args.timeout:.0f}s per region, {args.max_retries} retries")

        engine = make_engine(args.n_samples, args.n_tune, args.n_chains)

        for name in variant_names:
            variant = VARIANTS[name]
            print_header(f"Variant: {name}")
            print(f"  {variant.describe()}")

            fits = fit_regions(
                tables,
                variant,
                engine,
                max_workers=args.workers,
                timeout=args.timeout,
                max_retries=args.max_retries,
            )

            idata_dir = ctx.data_dir / "idata" / name
            idata_dir.mkdir(parents=True, exist_ok=True)
            fitted: list[pl.DataFrame] = []
            summaries: list[pl.DataFrame] = []
            for rid, fit in fits.items():
                if not fit.ok or fit.idata is None or fit.block is None:
                    print(f"  WARNING: region {rid} {fit.status}: {fit.error}")
                    continue
                fit.idata.to_netcdf(str(idata_dir / f"region_{rid:02d}.nc"))
                ref_pos = list(CATEGORIES).index(references[rid])
                fitted.append(extract_fitted_compositions(fit.idata, fit.block, ref_pos, rid))
                summaries.append(
                    summarize_fitted(fit.idata, fit.block).with_columns(
                        pl.lit(rid).cast(pl.Int64).alias("region_id")
                    )
                )

            table = fit_table(fits, name)
            table.write_parquet(ctx.data_dir / f"fits_{name}.parquet")
            latent_summary_table(fits, variant).write_parquet(
                ctx.data_dir / f"latent_summary_{name}.parquet"
            )
            if fitted:
                pl.concat(fitted).write_csv(ctx.data_dir / f"fitted_{name}.csv")
                pl.concat(summaries).write_parquet(
                    ctx.data_dir / f"fitted_summary_{name}.parquet"
                )

            counts = table.group_by("status").len().sort("status")
            for row in counts.iter_rows(named=True):
                print(f"  {row['status']:<8} {row['len']}")


if __name__ == "__main__":
    main()
