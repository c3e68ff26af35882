"""
Space-Time Outbreak Scan
Scan statistics over a time x location grid of counts: Poisson and negative
binomial window scores, Monte Carlo replicates and Gumbel P-values
"""

from .models import (
    Distribution,
    ScanType,
    ScoreVariant,
    StoreMode,
    WindowBatch,
    ScoreBatch,
    ScoreRecord,
    GumbelFit,
    MostLikelyCluster,
    ScanResult
)

from .validation import ScanInputError, ShapeMismatchError

from .aggregation import CumulativeMatrix, AggregatedPass, build_cumulative, aggregate

from .windows import WindowEnumerator

from .scorers import (
    ScanModel,
    PopulationPoissonModel,
    ExpectationPoissonModel,
    NegativeBinomialModel
)

from .storage import ResultStore

from .simulation import NullModelSimulator

from .significance import mc_pvalue, gumbel_pvalue

from .scan import (
    SpaceTimeScan,
    scan_negative_binomial,
    scan_expectation_poisson,
    scan_population_poisson
)

from .reporting import top_clusters, score_locations, save_result

__version__ = "1.0.0"

__all__ = [
    # Models
    "Distribution",
    "ScanType",
    "ScoreVariant",
    "StoreMode",
    "WindowBatch",
    "ScoreBatch",
    "ScoreRecord",
    "GumbelFit",
    "MostLikelyCluster",
    "ScanResult",

    # Errors
    "ScanInputError",
    "ShapeMismatchError",

    # Aggregation and enumeration
    "CumulativeMatrix",
    "AggregatedPass",
    "build_cumulative",
    "aggregate",
    "WindowEnumerator",

    # Scorers
    "ScanModel",
    "PopulationPoissonModel",
    "ExpectationPoissonModel",
    "NegativeBinomialModel",

    # Storage, simulation, significance
    "ResultStore",
    "NullModelSimulator",
    "mc_pvalue",
    "gumbel_pvalue",

    # Scan
    "SpaceTimeScan",
    "scan_negative_binomial",
    "scan_expectation_poisson",
    "scan_population_poisson",

    # Reporting
    "top_clusters",
    "score_locations",
    "save_result"
]
