"""
Input validation and reshaping for scan analyses

All checks run before any aggregation so that a bad input never yields a
partial result.
"""

from typing import Iterable, List, Optional, Sequence

import numpy as np


class ScanInputError(ValueError):
    """Invalid input to a scan analysis."""
    pass


class ShapeMismatchError(ScanInputError):
    """Matrices that must share a shape do not."""
    pass


def _as_matrix(values, name: str) -> np.ndarray:
    """Coerce a vector or matrix to a 2D array; a vector becomes a single time point"""
    array = np.asarray(values)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if array.ndim != 2:
        raise ScanInputError(f"{name} must be a vector or a matrix, got {array.ndim} dimensions")
    if array.size == 0:
        raise ScanInputError(f"{name} must not be empty")
    return array


def validate_counts(counts) -> np.ndarray:
    """
    Validate the observed counts

    Args:
        counts: Matrix (time x locations) of non-negative integers, oldest
            time point first. A vector is treated as a single time point.

    Returns:
        int64 matrix of counts
    """
    array = _as_matrix(counts, "counts")

    if array.dtype == bool or not np.issubdtype(array.dtype, np.number):
        raise ScanInputError("counts must be integer")

    if not np.issubdtype(array.dtype, np.integer):
        array = array.astype(float)
        if not np.all(np.isfinite(array)) or np.any(array != np.round(array)):
            raise ScanInputError("counts must be integer")

    if np.any(array < 0):
        raise ScanInputError("counts must be non-negative")

    return array.astype(np.int64)


def validate_baselines(baselines, shape: tuple) -> np.ndarray:
    """Validate expected values; must be strictly positive and match the counts"""
    array = _as_matrix(baselines, "baselines").astype(float)

    if array.shape != shape:
        raise ShapeMismatchError(
            f"baselines has shape {array.shape}, counts has shape {shape}"
        )
    if not np.all(np.isfinite(array)) or np.any(array <= 0):
        raise ScanInputError("baselines must be positive")

    return array


def validate_dispersion(thetas, shape: tuple) -> np.ndarray:
    """
    Validate the negative binomial dispersion parameter

    Args:
        thetas: Scalar (same for all cells), vector with one value per
            location, or a matrix of the same shape as the counts
        shape: Shape of the counts matrix

    Returns:
        Matrix of dispersion parameters with the given shape
    """
    array = np.asarray(thetas, dtype=float)

    if array.ndim == 0 or array.size == 1:
        array = np.full(shape, float(array.reshape(-1)[0]))
    elif array.ndim == 1:
        if len(array) != shape[1]:
            raise ScanInputError(
                "If thetas is supplied as a vector, it must be of the same length "
                "as the number of locations."
            )
        array = np.tile(array, (shape[0], 1))
    elif array.shape != shape:
        raise ShapeMismatchError(
            f"thetas has shape {array.shape}, counts has shape {shape}"
        )

    if not np.all(np.isfinite(array)) or np.any(array <= 0):
        raise ScanInputError("thetas must be positive")

    return array


def validate_zones(zones: Iterable[Iterable[int]], n_locations: int) -> List[np.ndarray]:
    """
    Validate zones and convert them to 0-based column indices

    Args:
        zones: Sequence of zones, each a collection of 1-based location numbers
        n_locations: Number of locations (columns of the counts)

    Returns:
        List of 0-based index arrays, one per zone, in the given order
    """
    converted = []

    for number, zone in enumerate(zones, start=1):
        members = np.asarray(list(zone))
        if members.size == 0:
            raise ScanInputError(f"zone {number} is empty")
        if not np.issubdtype(members.dtype, np.integer):
            if not np.issubdtype(members.dtype, np.number) or np.any(members != np.round(members)):
                raise ScanInputError(f"zone {number} contains non-integer location indices")
        members = members.astype(np.int64)
        if members.min() < 1 or members.max() > n_locations:
            raise ScanInputError(
                f"zone {number} has location indices outside 1..{n_locations}"
            )
        if len(np.unique(members)) != len(members):
            raise ScanInputError(f"zone {number} contains duplicate locations")
        converted.append(members - 1)

    if not converted:
        raise ScanInputError("at least one zone must be supplied")

    return converted


def validate_max_duration(max_duration: Optional[int], n_times: int) -> int:
    """Default to all time points; otherwise require 1..n_times"""
    if max_duration is None:
        return n_times
    if int(max_duration) != max_duration or not 1 <= max_duration <= n_times:
        raise ScanInputError(f"max_duration must be an integer in 1..{n_times}")
    return int(max_duration)


def validate_n_mcsim(n_mcsim: int) -> int:
    if int(n_mcsim) != n_mcsim or n_mcsim < 0:
        raise ScanInputError("n_mcsim must be a non-negative integer")
    return int(n_mcsim)


def population_baselines(counts: np.ndarray, population=None) -> np.ndarray:
    """
    Expected counts for the population-based Poisson scan

    Each time point's total count is distributed over locations in proportion
    to their population, so baselines and counts share the same row totals.

    Args:
        counts: Validated count matrix (time x locations)
        population: Scalar, vector per location or matrix matching counts;
            None means equal population everywhere

    Returns:
        Baseline matrix with the same shape as counts
    """
    shape = counts.shape

    if population is None:
        population = np.ones(shape)
    else:
        population = np.asarray(population, dtype=float)
        if population.ndim <= 1 and population.size in (1, shape[1]):
            population = np.broadcast_to(population.reshape(1, -1), shape).astype(float)
        elif population.shape != shape:
            raise ShapeMismatchError(
                f"population has shape {population.shape}, counts has shape {shape}"
            )

    if not np.all(np.isfinite(population)) or np.any(population <= 0):
        raise ScanInputError("population must be positive")

    shares = population / population.sum(axis=1, keepdims=True)
    baselines = counts.sum(axis=1, keepdims=True) * shares

    if np.any(baselines <= 0):
        raise ScanInputError(
            "population-based baselines require at least one case at every time point"
        )

    return baselines


def check_same_shape(reference: np.ndarray, others: Sequence[np.ndarray], names: Sequence[str]):
    """Raise ShapeMismatchError unless all matrices share reference's shape"""
    for other, name in zip(others, names):
        if np.shape(other) != np.shape(reference):
            raise ShapeMismatchError(
                f"{name} has shape {np.shape(other)}, expected {np.shape(reference)}"
            )
