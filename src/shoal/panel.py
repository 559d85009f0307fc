"""LME catch panel: aggregation, completion, closure, and flat-file I/O.

A panel is a long polars DataFrame with columns ``region_id``, ``year``,
``category``, ``value``.  Values are tonnes before closure and shares after.
Zeros are essential zeros (no catch) and are never imputed.
"""

import hashlib
from pathlib import Path

import numpy as np
import polars as pl

from shoal.config import CATEGORIES
from shoal.errors import DegenerateCompositionError
from shoal.taxonomy import category_for

PANEL_SCHEMA = {
    "region_id": pl.Int64,
    "year": pl.Int64,
    "category": pl.Utf8,
    "value": pl.Float64,
}


def empty_panel() -> pl.DataFrame:
    return pl.DataFrame(schema=PANEL_SCHEMA)


# ── Aggregation ─────────────────────────────────────────────────────────────


def aggregate_to_categories(raw: pl.DataFrame) -> pl.DataFrame:
    """Sum raw functional-group tonnage into the eight panel categories.

    Args:
        raw: Frame with ``region_id``, ``year``, ``group``, ``tonnes``.

    Raises:
        KeyError: If any functional group has no category mapping.
    """
    if raw.height == 0:
        return empty_panel()

    groups = raw["group"].unique().to_list()
    mapping = {g: category_for(g) for g in groups}
    unknown = sorted(g for g, c in mapping.items() if c is None)
    if unknown:
        msg = f"Unmapped functional groups: {', '.join(unknown)}"
        raise KeyError(msg)

    return (
        raw.with_columns(
            pl.col("group").replace_strict(mapping, return_dtype=pl.Utf8).alias("category")
        )
        .group_by("region_id", "year", "category")
        .agg(pl.col("tonnes").sum().alias("value"))
        .select(list(PANEL_SCHEMA))
        .cast(PANEL_SCHEMA)
        .sort("region_id", "year", "category")
    )


# ── Completion ──────────────────────────────────────────────────────────────


def complete_panel(
    panel: pl.DataFrame,
    years: range | list[int],
    categories: tuple[str, ...] | list[str] = CATEGORIES,
    regions: list[int] | None = None,
) -> pl.DataFrame:
    """Fill every absent (region, year, category) combination with 0.

    Only regions present in ``panel`` (or the explicit ``regions`` list) are
    completed.  Existing values are untouched, so per-(region, year) totals
    are unchanged.
    """
    if regions is None:
        regions = sorted(panel["region_id"].unique().to_list())

    grid = (
        pl.DataFrame({"region_id": list(regions)}, schema={"region_id": pl.Int64})
        .join(pl.DataFrame({"year": list(years)}, schema={"year": pl.Int64}), how="cross")
        .join(
            pl.DataFrame({"category": list(categories)}, schema={"category": pl.Utf8}),
            how="cross",
        )
    )

    order = {c: i for i, c in enumerate(categories)}
    return (
        grid.join(panel, on=["region_id", "year", "category"], how="left")
        .with_columns(pl.col("value").fill_null(0.0))
        .with_columns(
            pl.col("category").replace_strict(order, return_dtype=pl.Int64).alias("_pos")
        )
        .sort("region_id", "year", "_pos")
        .drop("_pos")
    )


# ── Closure ─────────────────────────────────────────────────────────────────


def close_panel(
    panel: pl.DataFrame,
) -> tuple[pl.DataFrame, dict[int, DegenerateCompositionError]]:
    """Divide each (region, year) by its total.

    A region with any zero-total year cannot be closed; it is dropped as a
    whole and returned in the exclusion dict.

    Returns:
        (closed panel, {region_id: DegenerateCompositionError})
    """
    totals = panel.group_by("region_id", "year").agg(pl.col("value").sum().alias("_total"))
    bad = totals.filter(pl.col("_total") <= 0.0)

    excluded: dict[int, DegenerateCompositionError] = {}
    for region_id, group in bad.group_by("region_id"):
        rid = region_id[0] if isinstance(region_id, tuple) else region_id
        years = sorted(group["year"].to_list())
        excluded[int(rid)] = DegenerateCompositionError(
            f"region {rid}: zero total catch in {len(years)} year(s), first {years[0]}"
        )

    closed = (
        panel.filter(~pl.col("region_id").is_in(list(excluded)))
        .join(totals, on=["region_id", "year"], how="left")
        .with_columns((pl.col("value") / pl.col("_total")).alias("value"))
        .drop("_total")
    )
    return closed, excluded


# ── Queries ─────────────────────────────────────────────────────────────────


def regions_with_zeros(panel: pl.DataFrame) -> dict[int, list[str]]:
    """Map each region containing an essential zero to the categories involved."""
    zeros = panel.filter(pl.col("value") == 0.0)
    out: dict[int, list[str]] = {}
    for region_id, group in zeros.group_by("region_id"):
        rid = region_id[0] if isinstance(region_id, tuple) else region_id
        cats = group["category"].unique().to_list()
        out[int(rid)] = [c for c in CATEGORIES if c in cats] + sorted(
            c for c in cats if c not in CATEGORIES
        )
    return dict(sorted(out.items()))


def composition_matrix(
    panel: pl.DataFrame,
    region_id: int,
    categories: tuple[str, ...] | list[str] = CATEGORIES,
) -> tuple[np.ndarray, list[int]]:
    """Return one region's (n_years, D) composition matrix and its sorted years.

    Categories absent from the panel for a year are 0 in the matrix.
    """
    sub = panel.filter(pl.col("region_id") == region_id)
    wide = sub.pivot(on="category", index="year", values="value").sort("year")
    for c in categories:
        if c not in wide.columns:
            wide = wide.with_columns(pl.lit(0.0).alias(c))
    matrix = wide.select(list(categories)).fill_null(0.0).to_numpy().astype(np.float64)
    return matrix, wide["year"].to_list()


def panel_hash(panel: pl.DataFrame) -> str:
    """SHA-256 of the panel's sorted CSV text, used as a dataset-version fingerprint."""
    canonical = panel.select(list(PANEL_SCHEMA)).sort("region_id", "year", "category")
    return hashlib.sha256(canonical.write_csv().encode("utf-8")).hexdigest()


# ── Flat-file I/O ───────────────────────────────────────────────────────────


def save_panel_csv(panel: pl.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    panel.select(list(PANEL_SCHEMA)).write_csv(path)


def load_panel_csv(path: Path) -> pl.DataFrame:
    """Load a panel CSV keyed by (region_id, year, category, value)."""
    return pl.read_csv(path, schema_overrides=PANEL_SCHEMA).select(list(PANEL_SCHEMA))
