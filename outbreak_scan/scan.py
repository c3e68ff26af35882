"""
Space-Time Scan Engine
Scores every (zone, duration) window, finds the most likely cluster and
estimates its significance by Monte Carlo simulation
"""

import logging
import time
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .config import ScanConfig
from .models import MostLikelyCluster, ScanResult, ScoreVariant
from .scorers import (
    ExpectationPoissonModel,
    NegativeBinomialModel,
    PopulationPoissonModel,
    ScanModel
)
from .significance import gumbel_pvalue, mc_pvalue
from .simulation import NullModelSimulator
from .storage import ResultStore
from .validation import (
    ScanInputError,
    population_baselines,
    validate_baselines,
    validate_counts,
    validate_dispersion,
    validate_max_duration,
    validate_n_mcsim,
    validate_zones
)
from .windows import WindowEnumerator

logger = logging.getLogger(__name__)

Zones = Iterable[Iterable[int]]


class SpaceTimeScan:
    """
    Scan engine for one analysis

    Works on most-recent-first matrices: row 0 of the counts (and of the
    model's baselines) is the latest time point, so a window of duration d is
    made of the first d rows.

    Workflow:
    1. Aggregate the observed counts and score every window
    2. Keep every score or only the maximum
    3. Repeat the pass on n_mcsim null-model replicates, keeping each maximum
    4. Compute Monte Carlo and Gumbel P-values of the observed maximum
    """

    def __init__(
        self,
        model: ScanModel,
        zones: Sequence[np.ndarray],
        max_duration: int,
        store_everything: bool = True,
        seed: Optional[int] = None,
        workers: Optional[int] = None,
        backend: Optional[str] = None,
        gumbel_method: Optional[str] = None,
        gumbel_min_replicates: Optional[int] = None
    ):
        """
        Initialize the scan engine

        Args:
            model: Scan model holding baselines (and dispersions)
            zones: 0-based location indices of each zone
            max_duration: Longest trailing window scanned
            store_everything: Keep every window's score, not just the maximum
            seed: Top-level seed for the replicate random streams
            workers: Parallel workers for replicates (default from config)
            backend: "process" or "thread" (default from config)
            gumbel_method: "ML" or "MoM" (default from config)
            gumbel_min_replicates: Minimum finite replicates for a Gumbel fit
        """
        self.model = model
        self.enumerator = WindowEnumerator(zones, max_duration, model.shape[1])
        self.store_everything = store_everything
        self.seed = seed if seed is not None else ScanConfig.RANDOM_SEED
        self.workers = workers or ScanConfig.WORKERS
        self.backend = backend or ScanConfig.PARALLEL_BACKEND
        self.gumbel_method = gumbel_method or ScanConfig.GUMBEL_METHOD
        self.gumbel_min_replicates = gumbel_min_replicates or ScanConfig.GUMBEL_MIN_REPLICATES
        self._check_settings()

    def _check_settings(self):
        """Reject bad engine settings before any pass is run"""
        if self.backend not in ScanConfig.PARALLEL_BACKENDS:
            raise ScanInputError(
                f"unknown parallel backend {self.backend!r}; expected one of "
                f"{', '.join(ScanConfig.PARALLEL_BACKENDS)}"
            )
        if self.gumbel_method not in ScanConfig.GUMBEL_METHODS:
            raise ScanInputError(
                f"unknown Gumbel fitting method {self.gumbel_method!r}; expected one of "
                f"{', '.join(ScanConfig.GUMBEL_METHODS)}"
            )
        if self.workers < 1:
            raise ScanInputError(f"workers must be at least 1, got {self.workers}")
        if self.gumbel_min_replicates < 2:
            raise ScanInputError(
                f"gumbel_min_replicates must be at least 2, got {self.gumbel_min_replicates}"
            )

    def observed_pass(self, counts: np.ndarray) -> ResultStore:
        """Score every window of the observed counts"""
        store = ResultStore.for_windows(
            self.enumerator.n_windows, self.store_everything, self.model.aux_columns
        )
        return self.enumerator.scan(self.model, counts, store)

    def run(self, counts: np.ndarray, n_mcsim: int = 0) -> ScanResult:
        """
        Run the complete analysis

        Args:
            counts: Most-recent-first count matrix
            n_mcsim: Number of Monte Carlo replicates

        Returns:
            ScanResult bundle
        """
        started = time.perf_counter()
        logger.info(
            f"Scanning {self.enumerator.n_zones} zones x {self.enumerator.max_duration} "
            f"durations ({self.model.scan_type.value} {self.model.distribution.value})"
        )

        table = self.observed_pass(counts).to_frame()
        top = table.iloc[0]
        observed_max = float(top["score"])
        logger.info(
            f"Most likely cluster: zone {int(top['zone'])}, duration {int(top['duration'])}, "
            f"score {observed_max:.4f} ({time.perf_counter() - started:.2f}s)"
        )

        simulator = NullModelSimulator(
            self.model, self.enumerator, seed=self.seed,
            workers=self.workers, backend=self.backend
        )
        replicates = simulator.run(n_mcsim).to_frame(sort=False)

        mc = None
        gumbel = None
        if n_mcsim > 0:
            mc = mc_pvalue(observed_max, replicates["score"])
            gumbel = gumbel_pvalue(
                observed_max, replicates["score"],
                method=self.gumbel_method,
                min_replicates=self.gumbel_min_replicates
            )

        return ScanResult(
            distribution=self.model.distribution,
            scan_type=self.model.scan_type,
            variant=self.model.variant,
            mlc=self._most_likely_cluster(counts, top),
            table=table,
            replicate_statistics=replicates,
            mc_pvalue=mc,
            gumbel_pvalue=gumbel.pvalue if gumbel else None,
            gumbel_fit=gumbel,
            n_zones=self.enumerator.n_zones,
            n_locations=self.enumerator.n_locations,
            max_duration=self.enumerator.max_duration,
            n_mcsim=n_mcsim,
            seed_entropy=simulator.entropy
        )

    def _most_likely_cluster(self, counts: np.ndarray, top: pd.Series) -> MostLikelyCluster:
        """Slice the MLC's data and return it in chronological order"""
        zone_number = int(top["zone"])
        duration = int(top["duration"])
        columns = self.enumerator.zones[zone_number - 1]

        def window(matrix):
            return np.flipud(np.asarray(matrix)[:duration][:, columns])

        dispersion = self.model.dispersion
        return MostLikelyCluster(
            zone_number=zone_number,
            locations=(columns + 1).tolist(),
            duration=duration,
            score=float(top["score"]),
            relative_risks={name: float(top[name]) for name in self.model.aux_columns},
            observed=window(counts),
            baselines=window(self.model.baselines),
            dispersions=window(dispersion) if dispersion is not None else None
        )


def _most_recent_first(matrix: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(np.flipud(matrix))


def _run(
    model_factory,
    counts: np.ndarray,
    zones: Sequence[np.ndarray],
    n_mcsim: Optional[int],
    max_only: bool,
    max_duration: Optional[int],
    seed: Optional[int],
    workers: Optional[int]
) -> ScanResult:
    n_mcsim = validate_n_mcsim(ScanConfig.DEFAULT_MCSIM if n_mcsim is None else n_mcsim)
    max_duration = validate_max_duration(max_duration, counts.shape[0])

    engine = SpaceTimeScan(
        model=model_factory(),
        zones=zones,
        max_duration=max_duration,
        store_everything=not max_only,
        seed=seed,
        workers=workers
    )
    return engine.run(_most_recent_first(counts), n_mcsim)


def scan_negative_binomial(
    counts,
    zones: Zones,
    baselines,
    thetas=1.0,
    variant: Union[str, ScoreVariant] = "hotspot",
    n_mcsim: Optional[int] = None,
    max_only: bool = False,
    max_duration: Optional[int] = None,
    seed: Optional[int] = None,
    workers: Optional[int] = None
) -> ScanResult:
    """
    Expectation-based negative binomial space-time scan

    Args:
        counts: Observed counts (time x locations), oldest time point first
        zones: Zones as collections of 1-based location numbers
        baselines: Expected counts, same shape as counts
        thetas: Dispersion (scalar, one per location, or a matrix); the
            variance of a count with mean mu is mu + mu^2/theta
        variant: "hotspot" (constant relative risk) or "emerging" (relative
            risk non-decreasing towards the present)
        n_mcsim: Monte Carlo replicates (default from config)
        max_only: Keep only the best window instead of the full table
        max_duration: Longest trailing window (default: all time points)
        seed: Seed for the replicate random streams
        workers: Parallel workers for the replicates

    Returns:
        ScanResult bundle
    """
    counts = validate_counts(counts)
    zones = validate_zones(zones, counts.shape[1])
    baselines = validate_baselines(baselines, counts.shape)
    thetas = validate_dispersion(thetas, counts.shape)

    try:
        variant = ScoreVariant(variant)
    except ValueError:
        raise ScanInputError(f"variant must be 'hotspot' or 'emerging', got {variant!r}")

    return _run(
        lambda: NegativeBinomialModel(
            _most_recent_first(baselines), _most_recent_first(thetas), variant
        ),
        counts, zones, n_mcsim, max_only, max_duration, seed, workers
    )


def scan_expectation_poisson(
    counts,
    zones: Zones,
    baselines,
    n_mcsim: Optional[int] = None,
    max_only: bool = False,
    max_duration: Optional[int] = None,
    seed: Optional[int] = None,
    workers: Optional[int] = None
) -> ScanResult:
    """
    Expectation-based Poisson space-time scan

    Arguments as for scan_negative_binomial, without dispersion.
    """
    counts = validate_counts(counts)
    zones = validate_zones(zones, counts.shape[1])
    baselines = validate_baselines(baselines, counts.shape)

    return _run(
        lambda: ExpectationPoissonModel(_most_recent_first(baselines)),
        counts, zones, n_mcsim, max_only, max_duration, seed, workers
    )


def scan_population_poisson(
    counts,
    zones: Zones,
    baselines=None,
    population=None,
    n_mcsim: Optional[int] = None,
    max_only: bool = False,
    max_duration: Optional[int] = None,
    seed: Optional[int] = None,
    workers: Optional[int] = None
) -> ScanResult:
    """
    Population-based Poisson space-time scan

    Either baselines or population may be given. From a population (scalar,
    one value per location, or a matrix) the baselines distribute each time
    point's total count by population share; with neither, every location
    gets an equal share.
    """
    counts = validate_counts(counts)
    zones = validate_zones(zones, counts.shape[1])

    if baselines is not None and population is not None:
        raise ScanInputError("supply either baselines or population, not both")
    if baselines is not None:
        baselines = validate_baselines(baselines, counts.shape)
    else:
        baselines = population_baselines(counts, population)

    return _run(
        lambda: PopulationPoissonModel(_most_recent_first(baselines)),
        counts, zones, n_mcsim, max_only, max_duration, seed, workers
    )
