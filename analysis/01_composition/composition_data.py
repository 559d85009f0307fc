"""Composition transforms — pure functions, no I/O.

Closure, additive log-ratio (ALR) coordinates and their inverse, centered
log-ratio (CLR) coordinates, and the reference-category heuristic.  All
functions accept a single composition (1-D) or a series of compositions
(2-D, one row per time step) and return numpy arrays.
"""

from __future__ import annotations

import warnings
from collections.abc import Sequence

import numpy as np
import polars as pl
from numpy.typing import ArrayLike, NDArray

from shoal.errors import DegenerateCompositionError, UndefinedLogRatioError

# ── Constants ────────────────────────────────────────────────────────────────

MIN_REFERENCE_MEAN_SHARE: float = 0.05
"""Categories with a smaller mean share are not considered as ALR references."""

MIN_SERIES_LENGTH: int = 10
"""Shorter series give unstable log-variance estimates for reference selection."""


# ── Closure ──────────────────────────────────────────────────────────────────


def closure(x: ArrayLike) -> NDArray[np.float64]:
    """Scale non-negative parts so each composition sums to 1.

    Raises:
        DegenerateCompositionError: If any composition sums to 0.
        ValueError: If any part is negative.
    """
    arr = np.asarray(x, dtype=np.float64)
    if np.any(arr < 0):
        msg = "Compositions must be non-negative"
        raise ValueError(msg)
    totals = arr.sum(axis=-1, keepdims=True)
    if np.any(totals == 0):
        bad = np.flatnonzero(totals.ravel() == 0)
        msg = f"Composition sums to 0 (row(s) {bad.tolist()}); cannot close"
        raise DegenerateCompositionError(msg)
    return arr / totals


# ── Log-Ratio Coordinates ───────────────────────────────────────────────────


def resolve_reference(
    reference: str | int,
    categories: Sequence[str] | None = None,
) -> int:
    """Turn a category label or position into a 0-based position."""
    if isinstance(reference, str):
        if categories is None:
            msg = "A category label reference requires the category list"
            raise ValueError(msg)
        try:
            return list(categories).index(reference)
        except ValueError:
            msg = f"Reference {reference!r} is not one of {list(categories)}"
            raise ValueError(msg) from None
    return int(reference)


def alr(
    Y: ArrayLike,
    reference: str | int,
    categories: Sequence[str] | None = None,
) -> NDArray[np.float64]:
    """Additive log-ratio coordinates ln(x_c / x_ref) for every c != ref.

    Args:
        Y: (D,) or (N, D) compositions (closed or raw; the ratio is scale-free).
        reference: Reference category label (with ``categories``) or 0-based position.
        categories: Category labels in column order.

    Returns:
        (D-1,) or (N, D-1) array; non-reference categories keep their order.

    Raises:
        UndefinedLogRatioError: If any numerator or reference value is exactly 0.
    """
    arr = np.asarray(Y, dtype=np.float64)
    ref = resolve_reference(reference, categories)
    d = arr.shape[-1]
    if not 0 <= ref < d:
        msg = f"Reference position {ref} out of range for {d} parts"
        raise ValueError(msg)

    if np.any(arr == 0):
        zero_cols = sorted({int(c) for c in np.argwhere(arr == 0)[:, -1]})
        labels = [categories[c] if categories is not None else str(c) for c in zero_cols]
        where = "reference" if ref in zero_cols else "numerator"
        msg = (
            f"ALR undefined: zero value(s) in {where} part(s) {labels}; "
            f"choose a reference and series with strictly positive support"
        )
        raise UndefinedLogRatioError(msg)

    logs = np.log(arr)
    others = [c for c in range(d) if c != ref]
    return logs[..., others] - logs[..., [ref]]


def alr_inverse(Z: ArrayLike, reference_position: int) -> NDArray[np.float64]:
    """Map ALR coordinates back to closed compositions.

    exp(z) for each coordinate, 1 reinserted at ``reference_position``, then
    closure.  Exact left inverse of :func:`alr` up to floating point.
    """
    arr = np.asarray(Z, dtype=np.float64)
    d = arr.shape[-1] + 1
    if not 0 <= reference_position < d:
        msg = f"Reference position {reference_position} out of range for {d} parts"
        raise ValueError(msg)
    # Shift by the row max before exponentiating; closure removes the factor.
    shift = np.maximum(arr.max(axis=-1, keepdims=True), 0.0)
    expz = np.exp(arr - shift)
    ref_part = np.exp(-shift)
    parts = np.insert(expz, reference_position, 0.0, axis=-1)
    parts[..., reference_position] = ref_part[..., 0]
    return closure(parts)


def clr(x: ArrayLike) -> NDArray[np.float64]:
    """Centered log-ratio: ln(x) minus its row mean.

    Raises:
        UndefinedLogRatioError: If any part is exactly 0.
    """
    arr = np.asarray(x, dtype=np.float64)
    if np.any(arr == 0):
        msg = "CLR undefined for compositions with zero parts"
        raise UndefinedLogRatioError(msg)
    logs = np.log(arr)
    return logs - logs.mean(axis=-1, keepdims=True)


def alr_to_clr(Z: ArrayLike, reference_position: int) -> NDArray[np.float64]:
    """Convert ALR coordinates to CLR coordinates without leaving log space."""
    arr = np.asarray(Z, dtype=np.float64)
    full = np.insert(arr, reference_position, 0.0, axis=-1)
    return full - full.mean(axis=-1, keepdims=True)


# ── Reference Selection ─────────────────────────────────────────────────────


def reference_diagnostics(
    Y: ArrayLike,
    categories: Sequence[str],
    min_mean_share: float = MIN_REFERENCE_MEAN_SHARE,
) -> pl.DataFrame:
    """Per-category statistics that drive reference selection.

    Returns DataFrame with columns: category, position, mean_share, min_share,
    log_variance (null when any share is 0), eligible.
    """
    comp = closure(Y)
    rows: list[dict] = []
    for j, cat in enumerate(categories):
        col = comp[:, j]
        positive = bool(np.all(col > 0))
        log_var = float(np.var(np.log(col))) if positive else None
        mean_share = float(col.mean())
        rows.append(
            {
                "category": cat,
                "position": j,
                "mean_share": mean_share,
                "min_share": float(col.min()),
                "log_variance": log_var,
                "eligible": positive and mean_share >= min_mean_share,
            }
        )
    return pl.DataFrame(
        rows,
        schema={
            "category": pl.Utf8,
            "position": pl.Int64,
            "mean_share": pl.Float64,
            "min_share": pl.Float64,
            "log_variance": pl.Float64,
            "eligible": pl.Boolean,
        },
    )


def choose_reference(
    Y: ArrayLike,
    categories: Sequence[str],
    min_mean_share: float = MIN_REFERENCE_MEAN_SHARE,
) -> str:
    """Pick the ALR reference: lowest log-variance among well-supported categories.

    Deterministic: ties break on category order.  If no category reaches
    ``min_mean_share``, falls back to the strictly positive category with the
    largest mean share.

    Raises:
        UndefinedLogRatioError: If no category is strictly positive throughout.
    """
    arr = np.asarray(Y, dtype=np.float64)
    if arr.ndim == 2 and arr.shape[0] < MIN_SERIES_LENGTH:
        warnings.warn(
            f"Only {arr.shape[0]} time steps for reference selection "
            f"(recommended >= {MIN_SERIES_LENGTH}); log-variance estimates are noisy.",
            stacklevel=2,
        )

    diag = reference_diagnostics(np.atleast_2d(arr), categories, min_mean_share)
    eligible = diag.filter(pl.col("eligible"))
    if eligible.height > 0:
        best = eligible.sort(["log_variance", "position"]).row(0, named=True)
        return best["category"]

    positive = diag.filter(pl.col("log_variance").is_not_null())
    if positive.height == 0:
        msg = "No category is strictly positive across the series; ALR has no valid reference"
        raise UndefinedLogRatioError(msg)
    best = positive.sort(["mean_share", "position"], descending=[True, False]).row(0, named=True)
    return best["category"]


def alr_table(
    Y: ArrayLike,
    years: Sequence[int],
    categories: Sequence[str],
    reference: str,
) -> pl.DataFrame:
    """ALR coordinates as a DataFrame: ``year`` plus one ``alr_<category>`` column each."""
    z = alr(np.atleast_2d(np.asarray(Y, dtype=np.float64)), reference, categories)
    names = [f"alr_{c}" for c in categories if c != reference]
    data: dict = {"year": list(years)}
    for k, name in enumerate(names):
        data[name] = z[:, k]
    return pl.DataFrame(data)
