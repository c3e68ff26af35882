"""
Pytest configuration and fixtures for Outbreak Scan tests
"""

import json

import numpy as np
import pandas as pd
import pytest

from outbreak_scan.models import ScoreBatch
from outbreak_scan.scorers import ScanModel
from outbreak_scan.windows import WindowEnumerator


@pytest.fixture
def small_counts():
    """Two time points, two locations; location 1 is elevated."""
    return np.array([[5, 1], [5, 1]])


@pytest.fixture
def small_baselines():
    """Baselines of 2.0 in every cell."""
    return np.full((2, 2), 2.0)


@pytest.fixture
def null_grid():
    """
    Poisson counts drawn at their baselines (no outbreak).

    Returns (counts, baselines, zones) with 6 time points, 8 locations,
    and zones made of every single location and every adjacent pair.
    """
    rng = np.random.default_rng(11)
    baselines = np.full((6, 8), 5.0)
    counts = rng.poisson(baselines)
    zones = [[i] for i in range(1, 9)] + [[i, i + 1] for i in range(1, 8)]
    return counts, baselines, zones


@pytest.fixture
def outbreak_grid():
    """
    Negative binomial counts with location 3 elevated in the two latest periods.

    Returns (counts, baselines, thetas, zones).
    """
    rng = np.random.default_rng(5)
    baselines = np.full((6, 10), 5.0)
    thetas = np.full((6, 10), 10.0)
    counts = rng.negative_binomial(thetas, thetas / (thetas + baselines))
    counts[-2:, 2] = 40
    zones = [[i] for i in range(1, 11)] + [[i, i + 1] for i in range(1, 10)]
    return counts, baselines, thetas, zones


@pytest.fixture
def score_zone():
    """
    Score every duration of one zone directly through a model.

    The counts passed in are most-recent-first, as models expect.
    """
    def _score(model: ScanModel, counts, columns, max_duration=None) -> ScoreBatch:
        counts = np.asarray(counts)
        max_duration = max_duration or counts.shape[0]
        enumerator = WindowEnumerator([np.asarray(columns)], max_duration, counts.shape[1])
        data = model.aggregate(counts, max_duration)
        batch = next(enumerator.batches(data))
        return model.score(batch, data)

    return _score


@pytest.fixture
def csv_inputs(tmp_path, small_counts, small_baselines):
    """Counts, baselines and zones written to files for the CLI."""
    columns = ["loc1", "loc2"]
    counts_path = tmp_path / "counts.csv"
    baselines_path = tmp_path / "baselines.csv"
    zones_path = tmp_path / "zones.json"

    pd.DataFrame(small_counts, columns=columns).to_csv(counts_path, index=False)
    pd.DataFrame(small_baselines, columns=columns).to_csv(baselines_path, index=False)
    zones_path.write_text(json.dumps([[1], [2], [1, 2]]))

    return {
        "counts": str(counts_path),
        "baselines": str(baselines_path),
        "zones": str(zones_path)
    }
