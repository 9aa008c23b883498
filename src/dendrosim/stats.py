# src/dendrosim/stats.py
"""
Numeric primitives for the simulation: standardization, Pearson correlation,
mean inter-series correlation and season averaging.

Every statistic that could be undefined (zero variance, too few series) raises
DegenerateStatisticError instead of returning NaN.
"""
from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from .errors import DegenerateStatisticError, InvalidParameterError

# Below this sample sd a series counts as constant.
_SD_FLOOR = 1e-12

ClimateLike = Union[pd.DataFrame, np.ndarray]


def climate_matrix(climate: ClimateLike) -> np.ndarray:
    """Coerce a year x month table to a finite float64 matrix."""
    if isinstance(climate, pd.DataFrame):
        values = climate.to_numpy(dtype=np.float64)
    else:
        values = np.asarray(climate, dtype=np.float64)
    if values.ndim != 2:
        raise InvalidParameterError(f"climate must be a 2-D year x month table, got shape {values.shape}")
    if values.shape[0] < 3:
        raise InvalidParameterError(f"climate must cover at least 3 years, got {values.shape[0]}")
    if values.shape[1] < 1:
        raise InvalidParameterError("climate must have at least one month column")
    if not np.all(np.isfinite(values)):
        raise InvalidParameterError("climate contains non-finite values (NaN/Inf)")
    return values


def standardize(x: np.ndarray, *, ddof: int = 1) -> np.ndarray:
    """Column-wise z-score of a 1-D or 2-D array (sample sd, ddof=1 by default)."""
    arr = np.asarray(x, dtype=np.float64)
    if arr.ndim not in (1, 2):
        raise ValueError(f"standardize expects a 1-D or 2-D array, got shape {arr.shape}")
    if arr.shape[0] <= ddof:
        raise DegenerateStatisticError(f"need more than {ddof} rows to standardize, got {arr.shape[0]}")
    mu = arr.mean(axis=0)
    sd = arr.std(axis=0, ddof=ddof)
    if np.any(~np.isfinite(sd)) or np.any(sd < _SD_FLOOR):
        raise DegenerateStatisticError("cannot standardize a zero-variance series")
    return (arr - mu) / sd


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation of two equal-length 1-D series."""
    xa = np.asarray(x, dtype=np.float64).ravel()
    ya = np.asarray(y, dtype=np.float64).ravel()
    if xa.shape != ya.shape:
        raise ValueError(f"pearson: length mismatch {xa.shape} vs {ya.shape}")
    if xa.size < 2:
        raise DegenerateStatisticError(f"pearson needs at least 2 observations, got {xa.size}")
    xc = xa - xa.mean()
    yc = ya - ya.mean()
    sx = float(np.sqrt(xc @ xc))
    sy = float(np.sqrt(yc @ yc))
    if sx < _SD_FLOOR or sy < _SD_FLOOR:
        raise DegenerateStatisticError("pearson correlation undefined for a zero-variance series")
    r = float((xc @ yc) / (sx * sy))
    # rounding can push |r| a hair past 1
    return max(-1.0, min(1.0, r))


def mean_offdiagonal_correlation(m: np.ndarray) -> float:
    """
    Mean of the off-diagonal entries of the column correlation matrix of ``m``.

    Computed without materialising the P x P matrix: for column z-scores Z,
    sum_ij r_ij = |Z.sum(axis=1)|^2 / (n - 1) and the diagonal contributes P.
    """
    arr = np.asarray(m, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError(f"expected a 2-D years x series matrix, got shape {arr.shape}")
    n_rows, n_cols = arr.shape
    if n_cols < 2:
        raise DegenerateStatisticError(f"coherence needs at least 2 series, got {n_cols}")
    z = standardize(arr, ddof=1)
    row_sum = z.sum(axis=1)
    total = float(row_sum @ row_sum) / float(n_rows - 1)
    return min(1.0, (total - n_cols) / float(n_cols * (n_cols - 1)))


def _month_positions(months: Sequence[int], n_cols: int) -> List[int]:
    idx = []
    for m in months:
        mi = int(m)
        if not (1 <= mi <= n_cols):
            raise InvalidParameterError(f"month index {m!r} out of range 1..{n_cols}")
        idx.append(mi - 1)
    if not idx:
        raise InvalidParameterError("season must name at least one month")
    return idx


def season_signal(climate: np.ndarray, months: Sequence[int]) -> np.ndarray:
    """Row-wise mean of the 1-based month columns ``months``."""
    arr = np.asarray(climate, dtype=np.float64)
    return arr[:, _month_positions(months, arr.shape[1])].mean(axis=1)


def standardize_months(climate: np.ndarray, months: Sequence[int]) -> np.ndarray:
    """
    Copy of ``climate`` with the 1-based ``months`` columns z-scored.

    Other columns are left as they are, so a flat month nobody asked for does not
    stop a run. A flat requested month is a configuration problem.
    """
    arr = np.array(climate, dtype=np.float64)
    for i in sorted(set(_month_positions(months, arr.shape[1]))):
        try:
            arr[:, i] = standardize(arr[:, i])
        except DegenerateStatisticError as e:
            raise InvalidParameterError(f"climate month column {i + 1} is constant and cannot be used in a season") from e
    return arr


__all__ = [
    "climate_matrix",
    "standardize",
    "pearson",
    "mean_offdiagonal_correlation",
    "season_signal",
    "standardize_months",
]
