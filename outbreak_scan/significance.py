"""
Significance Estimation
Monte Carlo and Gumbel P-values for the observed scan statistic
"""

import warnings
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from .models import GumbelFit


def mc_pvalue(observed: float, replicates: Sequence[float]) -> Optional[float]:
    """
    Monte Carlo P-value of the observed statistic

    P = (1 + #{replicates >= observed}) / (N + 1)

    Args:
        observed: Observed scan statistic
        replicates: Replicate scan statistics

    Returns:
        P-value in [1/(N+1), 1], or None when there are no replicates
    """
    replicates = np.asarray(replicates, dtype=float)
    if replicates.size == 0:
        return None
    return float((1 + np.sum(replicates >= observed)) / (replicates.size + 1))


def fit_gumbel(replicates: Sequence[float], method: str = "ML"):
    """
    Fit a Gumbel (maximum) distribution

    Args:
        replicates: Sample of maxima
        method: "ML" for maximum likelihood, "MoM" for method of moments

    Returns:
        (location, scale) tuple
    """
    x = np.asarray(replicates, dtype=float)

    if method == "ML":
        location, scale = stats.gumbel_r.fit(x)
    elif method == "MoM":
        scale = np.std(x, ddof=1) * np.sqrt(6) / np.pi
        location = np.mean(x) - np.euler_gamma * scale
    else:
        raise ValueError(f"Unknown Gumbel fitting method: {method}")

    return float(location), float(scale)


def gumbel_pvalue(
    observed: float,
    replicates: Sequence[float],
    method: str = "ML",
    min_replicates: int = 2
) -> Optional[GumbelFit]:
    """
    P-value from a Gumbel distribution fitted to replicate statistics

    Only finite replicates enter the fit. When too few remain, or they carry
    no spread, the P-value is unavailable and None is returned.

    Args:
        observed: Observed scan statistic
        replicates: Replicate scan statistics
        method: "ML" or "MoM"
        min_replicates: Smallest number of finite replicates to fit

    Returns:
        GumbelFit with the upper-tail probability, or None
    """
    x = np.asarray(replicates, dtype=float)
    if x.size == 0:
        return None

    x = x[np.isfinite(x)]
    if x.size < min_replicates:
        warnings.warn(
            f"Gumbel P-value unavailable: {x.size} finite replicates, "
            f"need at least {min_replicates}"
        )
        return None

    if np.ptp(x) == 0:
        warnings.warn("Gumbel P-value unavailable: replicate statistics are all equal")
        return None

    try:
        location, scale = fit_gumbel(x, method)
    except (RuntimeError, FloatingPointError) as e:
        warnings.warn(f"Gumbel fit failed: {str(e)}")
        return None

    if not np.isfinite(scale) or scale <= 0:
        warnings.warn(f"Gumbel fit produced an invalid scale: {scale}")
        return None

    pvalue = float(stats.gumbel_r.sf(observed, loc=location, scale=scale))
    return GumbelFit(location=location, scale=scale, pvalue=pvalue, method=method)
