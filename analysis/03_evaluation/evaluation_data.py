"""Model evaluation criteria for the ALR block model — pure functions, no I/O.

All criteria work on posterior draws of the linear predictor ``eta`` (S, n)
and the per-row observation scale ``sigma`` (S, n), flattened over chains.
Every criterion is oriented so that lower is better:

    DIC                 mean deviance + var(deviance) / 2
    WAIC                -2 (lppd - p_waic)
    grouped log-CPO     -mean_i log p(y_i | y without {i} ∪ friends[i])

The leave-group-out densities are estimated from the full posterior by
importance weighting with 1 / p(y_group | theta_s), entirely in log space.
All three are sums or means over draws, so permuting the draws does not
change them.

Log-likelihood uses manual computation from the saved posterior (no model
rebuild) in the same way as the PPC phase.
"""

import warnings
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import arviz as az
import numpy as np
import polars as pl
import xarray as xr
from numpy.typing import NDArray
from scipy.special import logsumexp
from scipy.stats import norm

from shoal.errors import DimensionMismatchError, NumericUnderflowWarning

CPO_EPSILON: float = 1e-300
"""Floor on a leave-group-out density; log densities below log(CPO_EPSILON) are raised to it."""
LOG_CPO_FLOOR: float = float(np.log(CPO_EPSILON))


# ── Posterior Draws ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PosteriorDraws:
    """Flattened posterior draws aligned with the block response rows.

    Attributes:
        eta: (S, n) linear predictor per draw and row.
        sigma: (S, n) observation standard deviation per draw and row.
    """

    eta: NDArray[np.float64]
    sigma: NDArray[np.float64]

    def __post_init__(self) -> None:
        if self.eta.ndim != 2 or self.eta.shape != self.sigma.shape:
            msg = f"eta {self.eta.shape} and sigma {self.sigma.shape} must both be (S, n)"
            raise DimensionMismatchError(msg)

    @property
    def n_draws(self) -> int:
        return self.eta.shape[0]

    @property
    def n_rows(self) -> int:
        return self.eta.shape[1]

    def permuted(self, order: NDArray[np.int64]) -> "PosteriorDraws":
        """Same draws in a different order."""
        return PosteriorDraws(eta=self.eta[order], sigma=self.sigma[order])


def posterior_draws(
    idata: az.InferenceData,
    category: NDArray[np.int64],
) -> PosteriorDraws:
    """Extract flattened ``eta`` and per-row ``sigma`` draws from a fitted posterior.

    Args:
        idata: Posterior with ``eta`` (chain, draw, row) and ``sigma`` (chain, draw, coord).
        category: 0-based category of each block row (maps sigma onto rows).
    """
    eta = idata.posterior["eta"].values
    sigma = idata.posterior["sigma"].values
    eta = eta.reshape(-1, eta.shape[-1]).astype(np.float64)
    sigma = sigma.reshape(-1, sigma.shape[-1]).astype(np.float64)
    return PosteriorDraws(eta=eta, sigma=sigma[:, np.asarray(category)])


# ── Log-Likelihood ───────────────────────────────────────────────────────────


def pointwise_log_likelihood(
    samples: PosteriorDraws,
    observed: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Gaussian log density of each observed row under each draw, shape (S, n)."""
    y = np.asarray(observed, dtype=np.float64)
    if y.shape != (samples.n_rows,):
        msg = f"Expected {samples.n_rows} observed values, got shape {y.shape}"
        raise DimensionMismatchError(msg)
    return norm.logpdf(y[np.newaxis, :], loc=samples.eta, scale=samples.sigma)


def log_likelihood_dataset(log_lik: NDArray[np.float64], n_chains: int = 1) -> xr.Dataset:
    """Wrap an (S, n) log-likelihood as an ArviZ ``log_likelihood`` group."""
    n_draws = log_lik.shape[0] // n_chains
    values = log_lik[: n_chains * n_draws].reshape(n_chains, n_draws, -1)
    return xr.Dataset(
        {"obs": (["chain", "draw", "row"], values)},
        coords={
            "chain": np.arange(n_chains),
            "draw": np.arange(n_draws),
            "row": np.arange(values.shape[-1]),
        },
    )


# ── DIC / WAIC ───────────────────────────────────────────────────────────────


def dic_parts(samples: PosteriorDraws, observed: NDArray[np.float64]) -> dict[str, float]:
    """DIC with its components: mean deviance and effective parameters p_D."""
    ll = pointwise_log_likelihood(samples, observed)
    deviance = -2.0 * ll.sum(axis=1)
    mean_deviance = float(deviance.mean())
    p_d = float(deviance.var()) / 2.0
    return {"dic": mean_deviance + p_d, "mean_deviance": mean_deviance, "p_d": p_d}


def dic(samples: PosteriorDraws, observed: NDArray[np.float64]) -> float:
    """Deviance information criterion (Gelman's p_D = var(deviance) / 2)."""
    return dic_parts(samples, observed)["dic"]


def waic_parts(samples: PosteriorDraws, observed: NDArray[np.float64]) -> dict[str, float]:
    """WAIC with lppd and p_waic (variance of log density per row, as in ArviZ)."""
    ll = pointwise_log_likelihood(samples, observed)
    lppd = float(np.sum(logsumexp(ll, axis=0) - np.log(samples.n_draws)))
    p_waic = float(np.sum(ll.var(axis=0)))
    return {"waic": -2.0 * (lppd - p_waic), "lppd": lppd, "p_waic": p_waic}


def waic(samples: PosteriorDraws, observed: NDArray[np.float64]) -> float:
    """Widely applicable information criterion on the deviance scale."""
    return waic_parts(samples, observed)["waic"]


# ── Grouped Log-CPO ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GroupedCpo:
    """Pointwise result of the grouped leave-out predictive score.

    Attributes:
        score: -mean(log_cpo); lower is better.
        log_cpo: (n,) log leave-group-out predictive density per row.
        n_clamped: Rows whose density fell below CPO_EPSILON and was clamped.
        clamped_rows: 0-based positions of those rows.
    """

    score: float
    log_cpo: NDArray[np.float64]
    n_clamped: int
    clamped_rows: tuple[int, ...]


def grouped_log_cpo_pointwise(
    samples: PosteriorDraws,
    observed: NDArray[np.float64],
    friends: Sequence[NDArray[np.int64]],
) -> GroupedCpo:
    """Grouped leave-out predictive density for every row.

    For row i with group G = {i} ∪ friends[i]:

        p(y_i | y_-G) ≈ Σ_s p(y_i|θ_s) / p(y_G|θ_s)  /  Σ_s 1 / p(y_G|θ_s)

    Log densities below ``LOG_CPO_FLOOR`` (including -inf and NaN) are raised
    to the floor and a NumericUnderflowWarning is issued.  The clamp is done in
    log space, so it preserves the order of the unclamped densities.
    """
    ll = pointwise_log_likelihood(samples, observed)
    n = samples.n_rows
    if len(friends) != n:
        msg = f"friends has {len(friends)} entries for {n} rows"
        raise DimensionMismatchError(msg)

    log_cpo = np.empty(n, dtype=np.float64)
    for i in range(n):
        group = np.union1d([i], np.asarray(friends[i], dtype=np.int64))
        ll_group = ll[:, group].sum(axis=1)
        log_cpo[i] = logsumexp(ll[:, i] - ll_group) - logsumexp(-ll_group)

    # +inf is not an underflow; it surfaces in the score
    clamped = (np.isnan(log_cpo) | (log_cpo < LOG_CPO_FLOOR)) & ~np.isposinf(log_cpo)
    log_cpo[clamped] = LOG_CPO_FLOOR

    rows = tuple(int(r) for r in np.flatnonzero(clamped))
    if rows:
        warnings.warn(
            f"Grouped CPO density fell below the floor on {len(rows)} row(s); "
            f"clamped to {CPO_EPSILON:g}",
            NumericUnderflowWarning,
            stacklevel=2,
        )
    return GroupedCpo(
        score=float(-log_cpo.mean()),
        log_cpo=log_cpo,
        n_clamped=len(rows),
        clamped_rows=rows,
    )


def grouped_log_cpo(
    samples: PosteriorDraws,
    observed: NDArray[np.float64],
    friends: Sequence[NDArray[np.int64]],
) -> float:
    """Negated mean log leave-group-out predictive density; lower is better."""
    return grouped_log_cpo_pointwise(samples, observed, friends).score


# ── Variant Comparison ───────────────────────────────────────────────────────


def evaluate(
    samples: PosteriorDraws,
    observed: NDArray[np.float64],
    friends: Sequence[NDArray[np.int64]],
) -> dict[str, float | int]:
    """All criteria for one fitted model, as a flat dict."""
    d = dic_parts(samples, observed)
    w = waic_parts(samples, observed)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", NumericUnderflowWarning)
        cpo = grouped_log_cpo_pointwise(samples, observed, friends)
    return {
        "dic": d["dic"],
        "p_d": d["p_d"],
        "waic": w["waic"],
        "p_waic": w["p_waic"],
        "log_cpo": cpo.score,
        "n_clamped": cpo.n_clamped,
        "n_draws": samples.n_draws,
    }


def compare_variants(results: Mapping[str, Mapping[str, float | int]]) -> pl.DataFrame:
    """Rank fitted variants by each criterion (1 = best, lowest score).

    Args:
        results: {variant_name: evaluate(...) dict}.  Summed criteria across
            regions are fine too, as long as every variant saw the same regions.

    Returns:
        DataFrame sorted by WAIC with columns: variant, dic, p_d, waic, p_waic,
        log_cpo, n_clamped, rank_dic, rank_waic, rank_log_cpo, d_waic.
    """
    if not results:
        msg = "compare_variants needs at least one variant"
        raise ValueError(msg)

    df = pl.DataFrame(
        [
            {
                "variant": name,
                "dic": float(r["dic"]),
                "p_d": float(r["p_d"]),
                "waic": float(r["waic"]),
                "p_waic": float(r["p_waic"]),
                "log_cpo": float(r["log_cpo"]),
                "n_clamped": int(r.get("n_clamped", 0)),
            }
            for name, r in results.items()
        ]
    )
    return (
        df.with_columns(
            pl.col("dic").rank("min").cast(pl.Int64).alias("rank_dic"),
            pl.col("waic").rank("min").cast(pl.Int64).alias("rank_waic"),
            pl.col("log_cpo").rank("min").cast(pl.Int64).alias("rank_log_cpo"),
            (pl.col("waic") - pl.col("waic").min()).alias("d_waic"),
        )
        .sort(["waic", "variant"])
    )
