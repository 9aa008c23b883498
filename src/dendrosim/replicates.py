# src/dendrosim/replicates.py
"""Core (replicate-measurement) generation around each specimen's pool signal."""
from __future__ import annotations

from typing import Optional

import logging
import math

import numpy as np

from .errors import InvalidParameterError

LOG = logging.getLogger(__name__)


def build_replicate_set(
    pool: np.ndarray,
    n_cores: int,
    noise: float,
    *,
    rng: np.random.Generator,
    pop_size: Optional[int] = None,
) -> np.ndarray:
    """
    Replicate cores for every specimen of ``pool`` at one noise magnitude.

    Returns an array of shape (pop_size, years, n_cores) where
    ``out[s, :, k] = pool[:, s] + N(0, noise)``. Cores are not re-standardized.
    Callers regenerate this for every evaluated noise level.
    """
    p = np.asarray(pool, dtype=np.float64)
    if p.ndim != 2:
        raise ValueError(f"pool must be a 2-D years x specimens matrix, got shape {p.shape}")
    n_years, n_specimens = p.shape
    if pop_size is not None and int(pop_size) != n_specimens:
        raise InvalidParameterError(f"pop_size={pop_size!r} does not match the pool's {n_specimens} specimens")
    if isinstance(n_cores, bool) or not isinstance(n_cores, (int, np.integer)) or n_cores < 1:
        raise InvalidParameterError(f"n_cores must be a positive int, got {n_cores!r}")
    nz = float(noise)
    if not math.isfinite(nz) or nz <= 0.0:
        raise InvalidParameterError(f"noise must be finite and > 0, got {noise!r}")

    cores = rng.normal(0.0, nz, size=(n_specimens, n_years, int(n_cores)))
    cores += p.T[:, :, None]
    LOG.debug("replicate set: specimens=%d years=%d cores=%d noise=%.6g", n_specimens, n_years, n_cores, nz)
    return cores


__all__ = ["build_replicate_set"]
