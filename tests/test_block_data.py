"""
Tests for the block response builder and the friends grouping.

The production shape (N = 70 years, K = 7 ALR coordinates) is used wherever
the structural properties are checked.

Run: uv run pytest tests/test_block_data.py -v
"""

import sys
from pathlib import Path

import numpy as np
import polars as pl
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.block_data import (
    INDEX_COLUMNS,
    build_block_response,
    build_friends,
    copy_column,
    observed_values,
    response_column,
    unstack_rows,
)

from shoal.errors import DimensionMismatchError

# ── Shape and response ──────────────────────────────────────────────────────


class TestBlockShape:
    """N·K rows with exactly one observed channel per row."""

    def test_row_count(self, block):
        assert block.n_rows == 490
        assert block.n_time == 70
        assert block.n_coords == 7

    def test_one_value_per_row(self, block):
        resp = block.response
        assert resp.shape == (490, 7)
        assert (np.sum(~np.isnan(resp), axis=1) == 1).all()

    def test_value_in_own_category_column(self, block):
        resp = block.response
        cat = block.index("category_index")
        observed_col = np.argmax(~np.isnan(resp), axis=1) + 1
        np.testing.assert_array_equal(observed_col, cat)

    def test_block_order_matches_input(self, block, alr_frame):
        y = observed_values(block)
        for k, name in enumerate(block.coord_names):
            np.testing.assert_allclose(y[k * 70 : (k + 1) * 70], alr_frame[name].to_numpy())

    def test_columns(self, block):
        expected = (
            [response_column(k) for k in range(1, 8)]
            + list(INDEX_COLUMNS)
            + [copy_column(k) for k in range(1, 8)]
        )
        assert block.frame.columns == expected

    def test_times_from_year_column(self, block):
        assert block.times[0] == 1950
        assert block.times[-1] == 2019

    def test_coord_names(self, block, alr_frame):
        assert block.coord_names == tuple(c for c in alr_frame.columns if c != "year")


# ── Index columns ───────────────────────────────────────────────────────────


class TestIndexColumns:
    """Shared, category, temporal replicate, and time indices."""

    def test_shared_index_groups(self, block):
        shared = block.index("shared_effect_index")
        values, counts = np.unique(shared, return_counts=True)
        assert len(values) == 70
        assert (counts == 7).all()

    def test_same_time_point_same_shared_value(self, block):
        shared = block.index("shared_effect_index")
        for t in (0, 35, 69):
            rows = [k * 70 + t for k in range(7)]
            assert len(set(shared[rows])) == 1

    def test_category_constant_within_block(self, block):
        cat = block.index("category_index")
        for k in range(7):
            assert (cat[k * 70 : (k + 1) * 70] == k + 1).all()

    def test_temporal_and_time_run_1_to_n(self, block):
        for name in ("temporal_replicate_index", "time"):
            idx = block.index(name)
            np.testing.assert_array_equal(idx[:70], np.arange(1, 71))
            np.testing.assert_array_equal(idx[70:140], np.arange(1, 71))

    def test_unknown_index_raises(self, block):
        with pytest.raises(KeyError):
            block.index("copy_1")


class TestCopyBlock:
    """Copy column k carries 1..N on block k rows, null elsewhere."""

    def test_shape(self, block):
        assert block.copy_index.shape == (490, 7)

    def test_pattern(self, block):
        copy = block.copy_index
        for k in range(7):
            col = copy[:, k]
            np.testing.assert_array_equal(col[k * 70 : (k + 1) * 70], np.arange(1, 71))
            outside = np.delete(col, np.arange(k * 70, (k + 1) * 70))
            assert np.isnan(outside).all()

    def test_integer_dtype_in_frame(self, block):
        assert block.frame.schema[copy_column(1)] == pl.Int64


# ── Inputs ──────────────────────────────────────────────────────────────────


class TestInputs:
    """Accepted table types and dimension errors."""

    def test_numpy_input(self):
        arr = np.arange(12, dtype=float).reshape(4, 3)
        block = build_block_response(arr)
        assert block.n_rows == 12
        assert block.times == (1, 2, 3, 4)
        np.testing.assert_allclose(observed_values(block), arr.T.ravel())

    def test_mapping_input(self):
        block = build_block_response({"year": [2000, 2001], "a": [0.1, 0.2], "b": [0.3, 0.4]})
        assert block.n_rows == 4
        assert block.coord_names == ("a", "b")
        assert block.times == (2000, 2001)

    def test_declared_k_mismatch(self, alr_frame):
        with pytest.raises(DimensionMismatchError, match="Expected 6"):
            build_block_response(alr_frame, n_coords=6)

    def test_short_column(self):
        with pytest.raises(DimensionMismatchError):
            build_block_response({"a": [0.1, 0.2, 0.3], "b": [0.3, 0.4]})

    def test_missing_value_in_frame(self, alr_frame):
        col = alr_frame.columns[3]
        holed = alr_frame.with_columns(
            pl.when(pl.col("year") == 1960).then(None).otherwise(pl.col(col)).alias(col)
        )
        with pytest.raises(DimensionMismatchError, match=col):
            build_block_response(holed, n_coords=7)

    def test_nan_value(self):
        with pytest.raises(DimensionMismatchError):
            build_block_response(np.array([[0.1, np.nan], [0.2, 0.3]]))

    def test_no_columns(self):
        with pytest.raises(DimensionMismatchError, match="no coordinate"):
            build_block_response({"year": [2000, 2001]})

    def test_no_rows(self):
        with pytest.raises(DimensionMismatchError):
            build_block_response(np.empty((0, 3)))

    def test_one_dimensional_array(self):
        with pytest.raises(DimensionMismatchError, match="2-D"):
            build_block_response(np.arange(5.0))


# ── Row views ───────────────────────────────────────────────────────────────


class TestRowViews:
    def test_unstack_inverts_stacking(self, block, alr_frame):
        z = unstack_rows(observed_values(block), block)
        np.testing.assert_allclose(z, alr_frame.drop("year").to_numpy())

    def test_unstack_leading_axes(self, block):
        draws = np.tile(observed_values(block), (5, 1))
        assert unstack_rows(draws, block).shape == (5, 70, 7)

    def test_unstack_wrong_length(self, block):
        with pytest.raises(DimensionMismatchError):
            unstack_rows(np.zeros(10), block)


# ── Friends ─────────────────────────────────────────────────────────────────


class TestFriends:
    """Rows sharing a time point are held out together."""

    def test_length_and_size(self, block):
        friends = build_friends(block)
        assert len(friends) == 490
        assert all(len(f) == 6 for f in friends)

    def test_excludes_self(self, block):
        friends = build_friends(block)
        assert all(i not in f for i, f in enumerate(friends))

    def test_symmetric(self, block):
        friends = build_friends(block)
        for i, f in enumerate(friends):
            for j in f:
                assert i in friends[int(j)]

    def test_same_time_point(self, block):
        friends = build_friends(block)
        shared = block.index("shared_effect_index")
        for i in (0, 100, 489):
            assert (shared[friends[i]] == shared[i]).all()

    def test_single_coordinate_has_no_friends(self):
        block = build_block_response(np.array([[0.1], [0.2], [0.3]]))
        assert all(len(f) == 0 for f in build_friends(block))
