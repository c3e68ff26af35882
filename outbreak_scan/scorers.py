"""
Model Scorers for Space-Time Scan Statistics

Each model family knows how to aggregate one data pass, score every window of
a zone from those aggregates, and draw a count matrix under its null
hypothesis. The family is chosen once per analysis; scoring is vectorized
over durations so the per-window work stays in numpy.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import brentq
from scipy.special import xlogy

from .aggregation import AggregatedPass, aggregate
from .models import Distribution, ScanType, ScoreBatch, ScoreVariant, WindowBatch


class ScanModel(ABC):
    """
    Base class for scan model families

    Matrices held by a model are most-recent-first: row 0 is the latest time
    point.
    """

    distribution: Distribution
    scan_type: ScanType
    aux_columns: Tuple[str, ...] = ()

    def __init__(self, baselines: np.ndarray):
        self.baselines = np.asarray(baselines, dtype=float)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.baselines.shape

    @property
    def variant(self) -> Optional[ScoreVariant]:
        return None

    @property
    def dispersion(self) -> Optional[np.ndarray]:
        return None

    def effective_baseline(self) -> np.ndarray:
        """Baselines as they enter the window aggregates"""
        return self.baselines

    def aggregate(self, counts: np.ndarray, max_duration: int) -> AggregatedPass:
        """Cumulative structures needed to score one pass over the given counts"""
        return aggregate(counts, self.effective_baseline(), max_duration=max_duration)

    @abstractmethod
    def score(self, batch: WindowBatch, data: AggregatedPass) -> ScoreBatch:
        """Score every window in a zone's batch"""
        pass

    @abstractmethod
    def simulate(self, rng: np.random.Generator) -> np.ndarray:
        """Draw a count matrix under the null hypothesis"""
        pass


class PopulationPoissonModel(ScanModel):
    """
    Population-based Poisson scan (Kulldorff)

    Compares elevated risk inside the zone with the risk outside it, for the
    same trailing window. Windows where the observed total does not exceed
    the baseline total score negative infinity.
    """

    distribution = Distribution.POISSON
    scan_type = ScanType.POPULATION_BASED
    aux_columns = ("relrisk_in", "relrisk_out")

    def score(self, batch: WindowBatch, data: AggregatedPass) -> ScoreBatch:
        C = batch.counts.astype(float)
        B = batch.baselines
        T = batch.totals.astype(float)

        risk_in = C / B
        outside_count = T - C
        outside_base = T - B

        # A zone spanning every location has no outside
        risk_out = np.ones_like(C)
        if not batch.covers_all:
            np.divide(outside_count, outside_base, out=risk_out, where=outside_base > 0)

        scores = np.full(len(C), -np.inf)
        elevated = C > B
        scores[elevated] = (
            xlogy(C, risk_in) + xlogy(outside_count, risk_out)
        )[elevated]

        return ScoreBatch(
            scores=scores,
            auxiliaries={"relrisk_in": risk_in, "relrisk_out": risk_out}
        )

    def simulate(self, rng: np.random.Generator) -> np.ndarray:
        return rng.poisson(self.baselines)


class ExpectationPoissonModel(ScanModel):
    """Expectation-based Poisson scan: observed totals against known expectations"""

    distribution = Distribution.POISSON
    scan_type = ScanType.EXPECTATION_BASED
    aux_columns = ("relrisk",)

    def score(self, batch: WindowBatch, data: AggregatedPass) -> ScoreBatch:
        C = batch.counts.astype(float)
        B = batch.baselines

        scores = np.zeros(len(C))
        elevated = C > B
        scores[elevated] = (xlogy(C, C / B) + B - C)[elevated]

        return ScoreBatch(
            scores=scores,
            auxiliaries={"relrisk": np.maximum(1.0, C / B)}
        )

    def simulate(self, rng: np.random.Generator) -> np.ndarray:
        return rng.poisson(self.baselines)


def _nb_gradient(q: float, y: np.ndarray, mu: np.ndarray, theta: np.ndarray) -> float:
    """Derivative of the NB log-likelihood in log(q), for counts with mean q*mu"""
    return float(np.sum(theta * (y - mu * q) / (theta + mu * q)))


def nb_loglik_ratio(y: np.ndarray, mu: np.ndarray, theta: np.ndarray, q: float) -> float:
    """
    Log-likelihood ratio of relative risk q against q = 1

    Counts y are negative binomial with mean q*mu and variance
    q*mu + (q*mu)^2/theta.
    """
    return float(np.sum(
        xlogy(y, q) - (y + theta) * np.log1p(mu * (q - 1.0) / (theta + mu))
    ))


def nb_relrisk_mle(
    y: np.ndarray,
    mu: np.ndarray,
    theta: np.ndarray,
    lower: float = 0.0
) -> float:
    """
    Maximum likelihood relative risk shared by a set of NB cells

    The log-likelihood is concave in log(q), so the constrained maximum is
    either ``lower`` or the root of the gradient above it.

    Args:
        y: Observed counts
        mu: Baselines (expected counts under the null)
        theta: Dispersion parameters
        lower: Smallest admissible relative risk

    Returns:
        Estimated relative risk, at least ``lower``
    """
    if not np.any(y > 0):
        return lower
    if _nb_gradient(lower, y, mu, theta) <= 0:
        return lower

    upper = float(np.max(y / mu))
    if upper <= lower or _nb_gradient(upper, y, mu, theta) >= 0:
        return max(upper, lower)

    return brentq(_nb_gradient, lower, upper, args=(y, mu, theta), xtol=1e-12)


def _monotone_relrisk(y: np.ndarray, mu: np.ndarray, theta: np.ndarray) -> np.ndarray:
    """
    Relative risk per row, non-decreasing from the oldest (last) row to row 0

    Pool-adjacent-violators run oldest-first. Each block holds the pooled
    MLE of its cells; the log-likelihood is separable and concave in log(q),
    so clipping the unconstrained fit at 1 gives the fit constrained to q >= 1.
    """
    blocks = []
    for row in range(len(y) - 1, -1, -1):
        blocks.append(([row], nb_relrisk_mle(y[row], mu[row], theta[row])))
        while len(blocks) > 1 and blocks[-2][1] > blocks[-1][1]:
            rows, _ = blocks.pop()
            merged = blocks[-1][0] + rows
            blocks[-1] = (merged, nb_relrisk_mle(
                y[merged].ravel(), mu[merged].ravel(), theta[merged].ravel()
            ))

    trajectory = np.empty(len(y))
    for rows, q in blocks:
        trajectory[rows] = max(q, 1.0)
    return trajectory


class NegativeBinomialModel(ScanModel):
    """
    Expectation-based negative binomial scan

    Baselines and dispersions are taken as known (typically fitted on past
    data). The score is the log-likelihood ratio of an elevated relative risk
    inside the window against no elevation:

    - hotspot: one relative risk for the whole window
    - emerging: a relative risk that never decreases towards the most recent
      time point, fitted by pool-adjacent-violators with the pooled maximum
      likelihood estimate of each merged block, then clipped at 1.
    """

    distribution = Distribution.NEGATIVE_BINOMIAL
    scan_type = ScanType.EXPECTATION_BASED
    aux_columns = ("relrisk",)

    def __init__(
        self,
        baselines: np.ndarray,
        dispersion: np.ndarray,
        variant: ScoreVariant = ScoreVariant.HOTSPOT
    ):
        super().__init__(baselines)
        self._dispersion = np.broadcast_to(
            np.asarray(dispersion, dtype=float), self.baselines.shape
        ).copy()
        self._variant = ScoreVariant(variant)
        self.overdispersion = 1.0 + self.baselines / self._dispersion

    @property
    def variant(self) -> ScoreVariant:
        return self._variant

    @property
    def dispersion(self) -> np.ndarray:
        return self._dispersion

    def effective_baseline(self) -> np.ndarray:
        """Baseline variance mu * (1 + mu / theta)"""
        return self.baselines * self.overdispersion

    def aggregate(self, counts: np.ndarray, max_duration: int) -> AggregatedPass:
        effective = self.effective_baseline()
        return aggregate(
            counts,
            self.baselines,
            extras={
                "numerator": self.baselines * (counts - self.baselines) / effective
            },
            cells={
                "counts": counts,
                "baselines": self.baselines,
                "dispersion": self._dispersion
            },
            max_duration=max_duration
        )

    def score(self, batch: WindowBatch, data: AggregatedPass) -> ScoreBatch:
        y = data.cells["counts"][:, batch.columns].astype(float)
        mu = data.cells["baselines"][:, batch.columns]
        theta = data.cells["dispersion"][:, batch.columns]

        if self._variant is ScoreVariant.HOTSPOT:
            scores, relrisk = self._score_hotspot(batch, y, mu, theta)
        else:
            scores, relrisk = self._score_emerging(batch, y, mu, theta)

        return ScoreBatch(scores=scores, auxiliaries={"relrisk": relrisk})

    def _score_hotspot(self, batch, y, mu, theta):
        scores = np.zeros(len(batch))
        relrisk = np.ones(len(batch))

        for i, duration in enumerate(batch.durations):
            # Non-positive score at q = 1 means the maximum over q >= 1 is at 1
            if batch.extras["numerator"][i] <= 0:
                continue
            cells = (y[:duration].ravel(), mu[:duration].ravel(), theta[:duration].ravel())
            q = nb_relrisk_mle(*cells, lower=1.0)
            relrisk[i] = q
            scores[i] = max(0.0, nb_loglik_ratio(*cells, q))

        return scores, relrisk

    def _score_emerging(self, batch, y, mu, theta):
        scores = np.zeros(len(batch))
        relrisk = np.ones(len(batch))

        # Log-likelihood gradient at q = 1, one value per period
        period_gradient = np.sum(theta * (y - mu) / (theta + mu), axis=1)
        if not np.any(period_gradient > 0):
            return scores, relrisk

        for i, duration in enumerate(batch.durations):
            if not np.any(period_gradient[:duration] > 0):
                continue

            trajectory = _monotone_relrisk(y[:duration], mu[:duration], theta[:duration])
            llr = sum(
                nb_loglik_ratio(y[r], mu[r], theta[r], trajectory[r])
                for r in range(duration)
            )
            scores[i] = max(0.0, llr)
            relrisk[i] = trajectory[0]

        return scores, relrisk

    def simulate(self, rng: np.random.Generator) -> np.ndarray:
        theta = self._dispersion
        return rng.negative_binomial(theta, theta / (theta + self.baselines))
