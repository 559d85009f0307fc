"""Aitchison distances between regional catch compositions — pure, no I/O.

The Aitchison distance between two compositions is the Euclidean distance
between their CLR coordinates.  Computing through ALR coordinates first (with
any reference) and mapping those into CLR gives the same numbers, so the
choice of ALR reference never changes a distance.

Regions with an essential zero anywhere in the panel are excluded as a whole,
never imputed; each exclusion is recorded as an EssentialZeroExclusionError.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import polars as pl
from numpy.typing import ArrayLike, NDArray
from scipy.spatial.distance import pdist, squareform

from shoal.config import CATEGORIES
from shoal.errors import EssentialZeroExclusionError
from shoal.panel import regions_with_zeros

try:
    from analysis.composition_data import alr, alr_to_clr, closure, clr, resolve_reference
except ModuleNotFoundError:
    from composition_data import (  # type: ignore[no-redef]
        alr,
        alr_to_clr,
        closure,
        clr,
        resolve_reference,
    )

DEFAULT_DISTANCE_WORKERS: int = 4


# ── Panel Preparation ────────────────────────────────────────────────────────


def exclude_zero_regions(
    panel: pl.DataFrame,
) -> tuple[pl.DataFrame, dict[int, EssentialZeroExclusionError]]:
    """Drop every region that has a zero value in any (year, category).

    Returns:
        (panel without those regions, {region_id: EssentialZeroExclusionError})
    """
    excluded: dict[int, EssentialZeroExclusionError] = {}
    for rid, cats in regions_with_zeros(panel).items():
        n_zeros = panel.filter((pl.col("region_id") == rid) & (pl.col("value") == 0.0)).height
        excluded[rid] = EssentialZeroExclusionError(rid, n_zeros, cats)
    kept = panel.filter(~pl.col("region_id").is_in(list(excluded)))
    return kept, excluded


def year_compositions(
    panel: pl.DataFrame,
    year: int,
    categories: Sequence[str] = CATEGORIES,
) -> tuple[list[int], NDArray[np.float64]]:
    """Closed (R, D) composition matrix of every region observed in ``year``.

    Rows follow ascending region id; columns follow ``categories``.
    """
    sub = panel.filter(pl.col("year") == year)
    if sub.height == 0:
        return [], np.empty((0, len(categories)))
    wide = sub.pivot(on="category", index="region_id", values="value").sort("region_id")
    for c in categories:
        if c not in wide.columns:
            wide = wide.with_columns(pl.lit(0.0).alias(c))
    matrix = wide.select(list(categories)).fill_null(0.0).to_numpy().astype(np.float64)
    return wide["region_id"].to_list(), closure(matrix)


# ── Distances ────────────────────────────────────────────────────────────────


def _clr_coordinates(
    compositions: NDArray[np.float64],
    reference: str | int | None,
    categories: Sequence[str] | None,
) -> NDArray[np.float64]:
    if reference is None:
        return clr(compositions)
    ref = resolve_reference(reference, categories)
    return alr_to_clr(alr(compositions, ref), ref)


def pairwise_distance(
    compositions: ArrayLike,
    reference: str | int | None = None,
    categories: Sequence[str] | None = CATEGORIES,
) -> NDArray[np.float64]:
    """Symmetric (R, R) Aitchison distance matrix with a zero diagonal.

    Args:
        compositions: (R, D) strictly positive compositions, one row per region.
        reference: Optional ALR reference (label or position).  The result is
            the same for every choice, and for None (direct CLR).
        categories: Category labels, needed only for a label reference.

    Raises:
        UndefinedLogRatioError: If any part is exactly 0.
    """
    arr = np.atleast_2d(np.asarray(compositions, dtype=np.float64))
    if arr.shape[0] < 2:
        return np.zeros((arr.shape[0], arr.shape[0]))
    coords = _clr_coordinates(arr, reference, categories)
    return squareform(pdist(coords, metric="euclidean"))


def aitchison_distance(
    x: ArrayLike,
    y: ArrayLike,
    reference: str | int | None = None,
    categories: Sequence[str] | None = CATEGORIES,
) -> float:
    """Aitchison distance between two compositions."""
    stacked = np.vstack([np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)])
    return float(pairwise_distance(stacked, reference, categories)[0, 1])


def mean_distance(matrix: ArrayLike) -> float:
    """Mean over distinct region pairs (strict upper triangle); nan below 2 regions."""
    arr = np.asarray(matrix, dtype=np.float64)
    n = arr.shape[0]
    if n < 2:
        return float("nan")
    return float(arr[np.triu_indices(n, k=1)].mean())


def mean_distance_by_region(matrix: ArrayLike, regions: Sequence[int]) -> dict[int, float]:
    """Each region's mean distance to the other regions (diagonal excluded)."""
    arr = np.asarray(matrix, dtype=np.float64)
    n = arr.shape[0]
    if len(regions) != n:
        msg = f"{len(regions)} region ids for a {n}x{n} distance matrix"
        raise ValueError(msg)
    if n < 2:
        return {int(r): float("nan") for r in regions}
    row_means = arr.sum(axis=1) / (n - 1)
    return {int(r): float(m) for r, m in zip(regions, row_means)}


# ── Yearly Series ────────────────────────────────────────────────────────────


class DistanceSeries:
    """Mean pairwise Aitchison distance per year, computed on demand.

    Iterating yields ``(year, mean_distance)`` in ascending year order.  Each
    iteration starts over from the panel, so the series can be consumed more
    than once.  Zero-containing regions are dropped before any distance is
    computed; ``exclusions`` lists them.
    """

    def __init__(
        self,
        panel: pl.DataFrame,
        years: Sequence[int] | None = None,
        reference: str | int | None = None,
        categories: Sequence[str] = CATEGORIES,
    ) -> None:
        self.panel = panel
        self.reference = reference
        self.categories = tuple(categories)
        if years is None:
            years = sorted(panel["year"].unique().to_list())
        self.years = tuple(int(y) for y in years)
        self._exclusions: dict[int, EssentialZeroExclusionError] | None = None

    @property
    def exclusions(self) -> dict[int, EssentialZeroExclusionError]:
        if self._exclusions is None:
            _, self._exclusions = exclude_zero_regions(self.panel)
        return self._exclusions

    def __len__(self) -> int:
        return len(self.years)

    def __iter__(self) -> Iterator[tuple[int, float]]:
        kept = self.panel.filter(~pl.col("region_id").is_in(list(self.exclusions)))
        for year in self.years:
            yield year, self.mean_for_year(kept, year)

    def mean_for_year(self, panel: pl.DataFrame, year: int) -> float:
        _, comps = year_compositions(panel, year, self.categories)
        return mean_distance(pairwise_distance(comps, self.reference, self.categories))


def _year_rows(
    panel: pl.DataFrame,
    year: int,
    reference: str | int | None,
    categories: Sequence[str],
) -> tuple[dict, list[dict]]:
    regions, comps = year_compositions(panel, year, categories)
    matrix = pairwise_distance(comps, reference, categories)
    summary = {"year": year, "n_regions": len(regions), "mean_distance": mean_distance(matrix)}
    by_region = [
        {"year": year, "region_id": rid, "mean_distance": d}
        for rid, d in mean_distance_by_region(matrix, regions).items()
    ]
    return summary, by_region


def distance_summary_table(
    panel: pl.DataFrame,
    years: Sequence[int] | None = None,
    reference: str | int | None = None,
    categories: Sequence[str] = CATEGORIES,
    max_workers: int = DEFAULT_DISTANCE_WORKERS,
) -> tuple[pl.DataFrame, pl.DataFrame, dict[int, EssentialZeroExclusionError]]:
    """Per-year and per-(year, region) mean distances for a whole panel.

    Years are computed on a thread pool and merged keyed by year.

    Returns:
        (yearly frame [year, n_regions, mean_distance],
         region frame [year, region_id, mean_distance],
         {region_id: EssentialZeroExclusionError})
    """
    kept, excluded = exclude_zero_regions(panel)
    if years is None:
        years = sorted(kept["year"].unique().to_list())

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            int(y): pool.submit(_year_rows, kept, int(y), reference, categories) for y in years
        }
        results = {y: f.result() for y, f in futures.items()}

    yearly = pl.DataFrame(
        [results[y][0] for y in sorted(results)],
        schema={"year": pl.Int64, "n_regions": pl.Int64, "mean_distance": pl.Float64},
    )
    by_region = pl.DataFrame(
        [row for y in sorted(results) for row in results[y][1]],
        schema={"year": pl.Int64, "region_id": pl.Int64, "mean_distance": pl.Float64},
    )
    return yearly, by_region, excluded
