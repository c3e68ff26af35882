"""
Aggregation Engine
Cumulative sums over time so any trailing window total is a single row lookup
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .validation import ShapeMismatchError, check_same_shape


@dataclass(frozen=True)
class CumulativeMatrix:
    """
    Cumulative sums along the time axis of a most-recent-first matrix

    Row ``d - 1`` holds, per location, the total over the ``d`` most recent
    time points. ``row_totals[d - 1]`` is the same total summed over all
    locations.
    """
    values: np.ndarray
    row_totals: np.ndarray

    @property
    def max_duration(self) -> int:
        return self.values.shape[0]

    def window_row(self, duration: int, columns: np.ndarray) -> np.ndarray:
        """Per-location totals of the trailing window of the given duration"""
        return self.values[duration - 1, columns]

    def window_total(self, duration: int, columns: np.ndarray) -> float:
        """Total over the given columns and trailing duration"""
        return self.window_row(duration, columns).sum()

    def zone_totals(self, columns: np.ndarray) -> np.ndarray:
        """Window totals of a zone for every duration 1..max_duration"""
        return self.values[:, columns].sum(axis=1)


@dataclass(frozen=True)
class AggregatedPass:
    """
    Derived, read-only structures for one data pass (observed or replicate)

    ``cells`` keeps the most-recent-first matrices truncated to max_duration
    for scorers whose statistic is not a function of window totals alone.
    """
    counts: CumulativeMatrix
    baselines: CumulativeMatrix
    extras: Dict[str, CumulativeMatrix] = field(default_factory=dict)
    cells: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def max_duration(self) -> int:
        return self.counts.max_duration

    @property
    def n_locations(self) -> int:
        return self.counts.values.shape[1]


def build_cumulative(matrix: np.ndarray, max_duration: Optional[int] = None) -> CumulativeMatrix:
    """
    Build the cumulative-sum structure of a most-recent-first matrix

    Integer matrices are summed exactly in int64; anything else is summed in
    float64.

    Args:
        matrix: 2D array, row 0 is the most recent time point
        max_duration: Number of trailing time points to keep (default: all)

    Returns:
        CumulativeMatrix over the first max_duration rows
    """
    matrix = np.asarray(matrix)
    if matrix.ndim != 2:
        raise ShapeMismatchError(f"expected a 2D matrix, got {matrix.ndim} dimensions")

    if max_duration is not None:
        matrix = matrix[:max_duration]

    dtype = np.int64 if np.issubdtype(matrix.dtype, np.integer) else np.float64
    values = np.cumsum(matrix, axis=0, dtype=dtype)
    row_totals = values.sum(axis=1)

    values.setflags(write=False)
    row_totals.setflags(write=False)
    return CumulativeMatrix(values=values, row_totals=row_totals)


def aggregate(
    counts: np.ndarray,
    baselines: np.ndarray,
    extras: Optional[Dict[str, np.ndarray]] = None,
    cells: Optional[Dict[str, np.ndarray]] = None,
    max_duration: Optional[int] = None
) -> AggregatedPass:
    """
    Aggregate counts, baselines and model-specific quantities for one pass

    Args:
        counts: Most-recent-first count matrix
        baselines: Most-recent-first baseline matrix, same shape
        extras: Further matrices (same shape) to accumulate, keyed by name
        cells: Matrices (same shape) to keep cell-by-cell, keyed by name
        max_duration: Number of trailing time points scanned

    Returns:
        AggregatedPass with every structure truncated to max_duration
    """
    extras = extras or {}
    cells = cells or {}

    named = [("baselines", baselines), *extras.items(), *cells.items()]
    check_same_shape(counts, [matrix for _, matrix in named], [name for name, _ in named])

    return AggregatedPass(
        counts=build_cumulative(counts, max_duration),
        baselines=build_cumulative(baselines, max_duration),
        extras={name: build_cumulative(matrix, max_duration) for name, matrix in extras.items()},
        cells={name: np.asarray(matrix)[:max_duration] for name, matrix in cells.items()}
    )
