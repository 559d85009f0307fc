"""Shared fixtures for Shoal tests.

Synthetic catch compositions with the production shape (70 years, 8
categories → 7 ALR coordinates), a small long-format panel, and the block
response built from it.
"""

import sys
from pathlib import Path

import numpy as np
import polars as pl
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.block_data import BlockResponse, build_block_response
from analysis.composition_data import alr_table, closure

from shoal.config import CATEGORIES

N_YEARS = 70
YEARS = list(range(1950, 1950 + N_YEARS))

# ── Composition fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def positive_series() -> np.ndarray:
    """70 x 8 strictly positive closed compositions with a smooth drift."""
    rng = np.random.default_rng(42)
    base = np.array([0.30, 0.25, 0.05, 0.10, 0.08, 0.04, 0.06, 0.12])
    t = np.linspace(0, 1, N_YEARS)[:, None]
    drift = np.array([0.5, -0.3, 0.1, 0.0, 0.2, -0.4, 0.3, -0.1])
    logits = np.log(base) + t * drift + rng.normal(0, 0.05, (N_YEARS, len(base)))
    return closure(np.exp(logits))


@pytest.fixture
def alr_frame(positive_series: np.ndarray) -> pl.DataFrame:
    """ALR table (year + 7 coordinates) relative to 'demersal'."""
    return alr_table(positive_series, YEARS, CATEGORIES, "demersal")


@pytest.fixture
def block(alr_frame: pl.DataFrame) -> BlockResponse:
    """Production-shaped block response: 490 rows, 7 channels."""
    return build_block_response(alr_frame, n_coords=7, time_col="year")


# ── Panel fixtures ───────────────────────────────────────────────────────────


def make_panel(values: dict[int, np.ndarray], years: list[int]) -> pl.DataFrame:
    """Long panel from {region_id: (n_years, 8) array}."""
    rows = []
    for rid, matrix in values.items():
        for i, year in enumerate(years):
            for j, cat in enumerate(CATEGORIES):
                rows.append(
                    {"region_id": rid, "year": year, "category": cat, "value": float(matrix[i, j])}
                )
    return pl.DataFrame(
        rows,
        schema={
            "region_id": pl.Int64,
            "year": pl.Int64,
            "category": pl.Utf8,
            "value": pl.Float64,
        },
    )


@pytest.fixture
def small_panel() -> pl.DataFrame:
    """Three regions x 5 years of tonnage; region 3 has an essential zero in 1952."""
    rng = np.random.default_rng(7)
    years = [1950, 1951, 1952, 1953, 1954]
    values = {rid: rng.uniform(10, 1000, (len(years), len(CATEGORIES))) for rid in (1, 2, 3)}
    values[3][2, 5] = 0.0
    return make_panel(values, years)


@pytest.fixture
def panel_builder():
    """The make_panel helper, for tests that need a custom panel."""
    return make_panel
