"""Block-structured multivariate response for the ALR block model — pure, no I/O.

K ALR coordinate series of length N are stacked into N·K rows.  Row block k
(rows kN .. (k+1)N-1, 0-based) carries coordinate k in response column
``y_{k+1}``; every other response column is null on those rows, so each row
feeds exactly one Gaussian channel.  Index columns let the model express:

  shared_effect_index       1..N, repeated per block; one latent value per
                            time point shared by all K channels (the
                            contemporaneous-correlation term)
  category_index            1..K, constant within a block
  temporal_replicate_index  1..N within each block; the time position of a
                            per-category (replicated) temporal process
  time                      1..N per block; linear trend covariate
  copy_1 .. copy_K          1..N on block k rows of column k, null elsewhere;
                            lets one category's process be reused by the others

Index values are 1-based labels; row positions are 0-based.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np
import polars as pl

from shoal.errors import DimensionMismatchError

INDEX_COLUMNS: tuple[str, ...] = (
    "shared_effect_index",
    "category_index",
    "temporal_replicate_index",
    "time",
)


def response_column(k: int) -> str:
    """Name of the response column for 1-based coordinate ``k``."""
    return f"y_{k}"


def copy_column(k: int) -> str:
    """Name of the copy-index column for 1-based coordinate ``k``."""
    return f"copy_{k}"


@dataclass(frozen=True)
class BlockResponse:
    """N·K-row block response plus its index columns.

    Attributes:
        frame: polars DataFrame with y_1..y_K, the INDEX_COLUMNS, and copy_1..copy_K.
        n_time: N, number of time points.
        n_coords: K, number of ALR coordinates.
        coord_names: Source column name of each coordinate, in block order.
        times: Original time labels (e.g. years), length N.
    """

    frame: pl.DataFrame
    n_time: int
    n_coords: int
    coord_names: tuple[str, ...]
    times: tuple[int, ...]

    @property
    def n_rows(self) -> int:
        return self.frame.height

    @property
    def response(self) -> np.ndarray:
        """(N·K, K) float matrix with NaN as the missing marker."""
        cols = [response_column(k) for k in range(1, self.n_coords + 1)]
        return self.frame.select(cols).to_numpy().astype(np.float64)

    @property
    def copy_index(self) -> np.ndarray:
        """(N·K, K) float matrix of 1-based copy indices, NaN where not applicable."""
        cols = [copy_column(k) for k in range(1, self.n_coords + 1)]
        return self.frame.select(cols).cast(pl.Float64).to_numpy()

    def index(self, name: str) -> np.ndarray:
        """Integer index column (1-based labels) as a numpy array."""
        if name not in INDEX_COLUMNS:
            msg = f"Unknown index column {name!r}; expected one of {INDEX_COLUMNS}"
            raise KeyError(msg)
        return self.frame[name].to_numpy().astype(np.int64)


# ── Builder ──────────────────────────────────────────────────────────────────


def _coordinate_columns(
    table: pl.DataFrame | Mapping[str, Sequence[float]] | np.ndarray,
    time_col: str,
) -> tuple[list[str], list[np.ndarray], list[int] | None, int]:
    """Split the input into named coordinate arrays, optional time labels, and N."""
    if isinstance(table, np.ndarray):
        if table.ndim != 2:
            msg = f"ALR table must be 2-D (N x K), got shape {table.shape}"
            raise DimensionMismatchError(msg)
        names = [f"coord_{k}" for k in range(1, table.shape[1] + 1)]
        return (
            names,
            [table[:, k].astype(np.float64) for k in range(table.shape[1])],
            None,
            table.shape[0],
        )

    if isinstance(table, pl.DataFrame):
        times = table[time_col].to_list() if time_col in table.columns else None
        names = [c for c in table.columns if c != time_col]
        arrays = []
        for c in names:
            # Nulls shorten a coordinate series and count as a length mismatch
            arrays.append(table[c].drop_nulls().cast(pl.Float64).to_numpy())
        return names, arrays, times, table.height

    times = list(table[time_col]) if time_col in table else None
    names = [c for c in table if c != time_col]
    arrays = [np.asarray(table[c], dtype=np.float64) for c in names]
    n_expected = len(times) if times is not None else (len(arrays[0]) if arrays else 0)
    return names, arrays, times, n_expected


def build_block_response(
    table: pl.DataFrame | Mapping[str, Sequence[float]] | np.ndarray,
    n_coords: int | None = None,
    *,
    time_col: str = "year",
) -> BlockResponse:
    """Stack K coordinate series into the N·K-row block response.

    Args:
        table: N rows x K coordinate columns (ordered, contiguous time steps).
            A polars DataFrame or mapping may also carry a ``time_col`` column.
        n_coords: Declared K.  Defaults to the number of coordinate columns.
        time_col: Name of the optional time-label column.

    Returns:
        BlockResponse with exactly N·K rows and one non-missing response per row.

    Raises:
        DimensionMismatchError: If the column count differs from ``n_coords``,
            any column's length differs from N, or any value is NaN.
    """
    names, arrays, times, n_time = _coordinate_columns(table, time_col)
    k_total = len(names)
    if n_coords is not None and k_total != n_coords:
        msg = f"Expected {n_coords} coordinate columns, got {k_total} ({names})"
        raise DimensionMismatchError(msg)
    if k_total == 0:
        msg = "ALR table has no coordinate columns"
        raise DimensionMismatchError(msg)

    for name, arr in zip(names, arrays):
        if len(arr) != n_time or np.isnan(arr).any():
            n_values = int(np.sum(~np.isnan(arr)))
            msg = f"Coordinate {name!r} has {n_values} values, expected {n_time}"
            raise DimensionMismatchError(msg)
    if n_time == 0:
        msg = "ALR table has no rows"
        raise DimensionMismatchError(msg)

    within = np.arange(1, n_time + 1, dtype=np.int64)
    blocks: list[pl.DataFrame] = []
    for k, arr in enumerate(arrays, start=1):
        block: dict[str, pl.Series] = {}
        for j in range(1, k_total + 1):
            block[response_column(j)] = pl.Series(
                response_column(j), arr if j == k else [None] * n_time, dtype=pl.Float64
            )
        block["shared_effect_index"] = pl.Series("shared_effect_index", within)
        block["category_index"] = pl.Series("category_index", np.full(n_time, k, dtype=np.int64))
        block["temporal_replicate_index"] = pl.Series("temporal_replicate_index", within)
        block["time"] = pl.Series("time", within)
        for j in range(1, k_total + 1):
            block[copy_column(j)] = pl.Series(
                copy_column(j), within if j == k else [None] * n_time, dtype=pl.Int64
            )
        blocks.append(pl.DataFrame(block))

    frame = pl.concat(blocks, how="vertical")
    labels = tuple(int(t) for t in times) if times is not None else tuple(within.tolist())
    return BlockResponse(
        frame=frame,
        n_time=n_time,
        n_coords=k_total,
        coord_names=tuple(names),
        times=labels,
    )


# ── Row Views ────────────────────────────────────────────────────────────────


def observed_values(block: BlockResponse) -> np.ndarray:
    """The single observed response of each row, length N·K."""
    resp = block.response
    cat = block.index("category_index") - 1
    return resp[np.arange(block.n_rows), cat]


def unstack_rows(values: np.ndarray, block: BlockResponse) -> np.ndarray:
    """Reshape a per-row vector (length N·K, block order) back to (N, K).

    Works on trailing axes too: (..., N·K) → (..., N, K).
    """
    arr = np.asarray(values)
    if arr.shape[-1] != block.n_rows:
        msg = f"Expected {block.n_rows} row values, got {arr.shape[-1]}"
        raise DimensionMismatchError(msg)
    lead = arr.shape[:-1]
    return np.swapaxes(arr.reshape(*lead, block.n_coords, block.n_time), -1, -2)


# ── Friends Grouping ─────────────────────────────────────────────────────────


def build_friends(block: BlockResponse) -> list[np.ndarray]:
    """Rows that must be held out together with each row.

    friends[i] lists the 0-based positions of every other row with the same
    ``shared_effect_index``: the K-1 rows created from the same time point.
    The relation is symmetric and never contains i itself.
    """
    shared = block.index("shared_effect_index")
    members: dict[int, np.ndarray] = {
        int(v): np.flatnonzero(shared == v) for v in np.unique(shared)
    }
    return [members[int(v)][members[int(v)] != i] for i, v in enumerate(shared)]
