from __future__ import annotations

"""
dendrosim.transforms
====================

Closed-form reliability transforms used to calibrate and read the simulation.

Mathematical conventions
------------------------
For a pool of n series whose mean pairwise correlation is rbar (coherence),
the Expressed Population Signal is

    EPS = n * rbar / (1 + (n - 1) * rbar)

which is exactly inverted by

    rbar = EPS / (n - EPS * (n - 1)).

Noise calibration assumes a unit-variance signal s and independent Gaussian
noise e with sd sigma:

    cor(s, s + e)          = 1 / sqrt(1 + sigma^2)   =>  sigma = sqrt(1 - x^2) / x
    cor(s + e1, s + e2)    = 1 / (1 + sigma^2)       =>  sigma = sqrt(1 - x) / sqrt(x)

EPS is the finite-sample reading of the infinite-population reliability; the
simulation itself never relies on an infinite population (see config.pop_size).

Policy: out-of-domain arguments raise NumericDomainError naming the argument.
Nothing is clamped.
"""

from typing import Dict, Sequence, Union

import logging
import math

import numpy as np
from scipy import stats as scipy_stats

from .errors import NumericDomainError

LOG = logging.getLogger(__name__)

ArrayLike = Union[float, int, Sequence[float], np.ndarray]

EPS_NOISY = 0.5
EPS_GOLD_STANDARD = 0.85


def _as_float_array(x: ArrayLike, name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise NumericDomainError(f"{name} must be numeric, got {x!r}") from e
    if not np.all(np.isfinite(arr)):
        raise NumericDomainError(f"{name} must be finite, got {x!r}")
    return arr


def _out(arr: np.ndarray) -> Union[float, np.ndarray]:
    return float(arr) if arr.ndim == 0 else arr


def _check_sizes(n: np.ndarray, name: str = "n") -> None:
    if np.any(n < 1) or np.any(n != np.floor(n)):
        raise NumericDomainError(f"{name} must be an integer >= 1, got {n.tolist()!r}")


def coherence_to_eps(rbar: ArrayLike, n: ArrayLike) -> Union[float, np.ndarray]:
    """
    Expressed Population Signal of a pool of ``n`` series with coherence ``rbar``.

    Broadcasts over array input. Valid for rbar in (-1/(n-1), 1].
    """
    r = _as_float_array(rbar, "rbar")
    nn = _as_float_array(n, "n")
    _check_sizes(nn)

    r_b, n_b = np.broadcast_arrays(r, nn)
    if np.any(r_b > 1.0) or np.any(r_b < -1.0):
        raise NumericDomainError(f"rbar must be in [-1, 1], got {rbar!r}")
    multi = n_b > 1.0
    lower = np.full(n_b.shape, -np.inf)
    lower[multi] = -1.0 / (n_b[multi] - 1.0)
    if np.any(multi & (r_b <= lower)):
        raise NumericDomainError(
            f"rbar must exceed -1/(n-1) for a pool of n series, got rbar={rbar!r}, n={n!r}"
        )

    eps = (n_b * r_b) / (1.0 + (n_b - 1.0) * r_b)
    return _out(eps)


def eps_to_coherence(eps: ArrayLike, n: ArrayLike) -> Union[float, np.ndarray]:
    """Exact inverse of :func:`coherence_to_eps`. Valid for eps <= 1."""
    e = _as_float_array(eps, "eps")
    nn = _as_float_array(n, "n")
    _check_sizes(nn)

    e_b, n_b = np.broadcast_arrays(e, nn)
    if np.any(e_b > 1.0):
        raise NumericDomainError(f"eps must be <= 1, got {eps!r}")

    # n - eps*(n-1) >= 1 whenever eps <= 1 and n >= 1
    rbar = e_b / (n_b - e_b * (n_b - 1.0))
    return _out(rbar)


def critical_correlation(n: int, p_value: float) -> float:
    """
    Smallest |r| significant at two-tailed ``p_value`` for a sample of ``n`` pairs.

    df = n - 2, t* = t.isf(p/2, df), r* = sqrt(t*^2 / (t*^2 + df)).
    """
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)):
        raise NumericDomainError(f"n must be an integer sample size, got {n!r}")
    if int(n) <= 2:
        raise NumericDomainError(f"n must be > 2 for a correlation significance test, got n={n!r}")
    p = float(p_value)
    if not math.isfinite(p) or not (0.0 < p < 1.0):
        raise NumericDomainError(f"p_value must be in (0, 1), got p_value={p_value!r}")

    df = float(int(n) - 2)
    t_stat = float(scipy_stats.t.isf(p / 2.0, df))
    r = math.sqrt(t_stat**2 / (t_stat**2 + df))
    LOG.debug("critical_correlation n=%s p=%s -> t=%.6g r=%.6g", n, p, t_stat, r)
    return float(r)


def target_correlation_to_noise_sd(x: float) -> float:
    """Noise sd that lowers a unit-variance signal's self-correlation to ``x``."""
    xf = float(x)
    if not math.isfinite(xf) or not (0.0 < xf <= 1.0):
        raise NumericDomainError(f"target correlation x must be in (0, 1], got x={x!r}")
    return math.sqrt(1.0 - xf**2) / xf


def target_coherence_to_noise_sd(x: float) -> float:
    """Noise sd giving mean pairwise correlation ``x`` among noisy copies of one signal."""
    xf = float(x)
    if not math.isfinite(xf) or not (0.0 < xf <= 1.0):
        raise NumericDomainError(f"target coherence x must be in (0, 1], got x={x!r}")
    return math.sqrt(1.0 - xf) / math.sqrt(xf)


def coherence_breaks_for_eps(
    n: int,
    thresholds: Sequence[float] = (EPS_NOISY, EPS_GOLD_STANDARD),
) -> Dict[float, float]:
    """Coherence a pool of ``n`` series needs to reach each EPS threshold."""
    return {float(t): float(eps_to_coherence(float(t), n)) for t in thresholds}


__all__ = [
    "EPS_NOISY",
    "EPS_GOLD_STANDARD",
    "coherence_to_eps",
    "eps_to_coherence",
    "critical_correlation",
    "target_correlation_to_noise_sd",
    "target_coherence_to_noise_sd",
    "coherence_breaks_for_eps",
]
