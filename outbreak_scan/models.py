"""
Data Models for the Space-Time Outbreak Scan
Window statistics, score records and the result bundle handed back to callers
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd


class Distribution(Enum):
    """Count distributions supported by the scan"""
    POISSON = "poisson"
    NEGATIVE_BINOMIAL = "negative binomial"


class ScanType(Enum):
    """How the null expectation is formed"""
    POPULATION_BASED = "population-based"
    EXPECTATION_BASED = "expectation-based"


class ScoreVariant(Enum):
    """Relative risk shape assumed inside a window"""
    HOTSPOT = "hotspot"  # constant over the window
    EMERGING = "emerging"  # non-decreasing towards the most recent time point


class StoreMode(Enum):
    """Storage policy for window scores"""
    STORE_EVERYTHING = "store_everything"
    MAX_ONLY = "max_only"
    REPLICATE_MAX = "replicate_max"


@dataclass(frozen=True)
class WindowBatch:
    """
    Aggregated sufficient statistics for one zone over durations 1..max_duration

    Every array is indexed by ``duration - 1``; entry i describes the window
    made of the zone's columns and the ``i + 1`` most recent time points.
    """
    zone_index: int
    columns: np.ndarray
    durations: np.ndarray
    storage_indices: np.ndarray
    counts: np.ndarray
    baselines: np.ndarray
    totals: np.ndarray
    covers_all: bool
    extras: Dict[str, np.ndarray] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.durations)


@dataclass
class ScoreBatch:
    """Scores (and model auxiliaries) for every window in a WindowBatch"""
    scores: np.ndarray
    auxiliaries: Dict[str, np.ndarray] = field(default_factory=dict)


@dataclass
class ScoreRecord:
    """Score of a single window; zone numbers are 1-based"""
    zone: int
    duration: int
    score: float
    auxiliaries: Dict[str, float] = field(default_factory=dict)


@dataclass
class GumbelFit:
    """Gumbel distribution fitted to replicate maxima"""
    location: float
    scale: float
    pvalue: float
    method: str


@dataclass
class MostLikelyCluster:
    """
    The highest scoring window on the observed data

    The observed, baselines and dispersions matrices cover the cluster's
    locations (columns) and duration (rows), in chronological order.
    """
    zone_number: int
    locations: List[int]
    duration: int
    score: float
    relative_risks: Dict[str, float]
    observed: np.ndarray
    baselines: np.ndarray
    dispersions: Optional[np.ndarray] = None


@dataclass
class ScanResult:
    """Result bundle of one scan analysis"""
    distribution: Distribution
    scan_type: ScanType
    mlc: MostLikelyCluster
    table: pd.DataFrame
    replicate_statistics: pd.DataFrame
    mc_pvalue: Optional[float]
    gumbel_pvalue: Optional[float]
    n_zones: int
    n_locations: int
    max_duration: int
    n_mcsim: int
    variant: Optional[ScoreVariant] = None
    gumbel_fit: Optional[GumbelFit] = None
    seed_entropy: Optional[int] = None
    setting: str = "univariate"

    @property
    def observed_statistic(self) -> float:
        """The scan statistic, i.e. the score of the most likely cluster"""
        return self.mlc.score

    def summary(self) -> dict:
        """Return a flat summary of the analysis"""
        return {
            "distribution": self.distribution.value,
            "type": self.scan_type.value,
            "variant": self.variant.value if self.variant else None,
            "setting": self.setting,
            "mlc_zone": self.mlc.zone_number,
            "mlc_locations": list(self.mlc.locations),
            "mlc_duration": self.mlc.duration,
            "scan_statistic": self.mlc.score,
            "mc_pvalue": self.mc_pvalue,
            "gumbel_pvalue": self.gumbel_pvalue,
            "n_zones": self.n_zones,
            "n_locations": self.n_locations,
            "max_duration": self.max_duration,
            "n_mcsim": self.n_mcsim
        }
