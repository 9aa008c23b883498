from __future__ import annotations

"""
dendrosim.sampling
==================

Random streams + population subsampling + per-draw statistics.

Key policies:
- Every random stage takes an explicit numpy Generator; nothing touches the
  global numpy state.
- Specimens are drawn without replacement; each gets exactly one core, chosen
  uniformly and independently of the other specimens and draws.
- An undefined statistic aborts the repetition (DegenerateStatisticError with
  the offending cell attached); no NaN is written to the table.
"""

from typing import Any, Dict, List, Tuple

import logging

import numpy as np

from .errors import DegenerateStatisticError, InvalidParameterError
from .stats import mean_offdiagonal_correlation, pearson

LOG = logging.getLogger(__name__)

# Stage codes keep the three nested sampling scopes on disjoint streams.
STAGES: Dict[str, int] = {"population": 0, "replicates": 1, "subsample": 2}


def rng_for_stage(seed: int, stage: str, *indices: int) -> np.random.Generator:
    """
    Stable RNG keyed by (seed, stage, *indices).

    Per-cell streams use indices (tree_index, noise_index) from
    ``SimConfig.cell_index`` so that results do not depend on loop or worker order.
    """
    if stage not in STAGES:
        raise ValueError(f"unknown stage {stage!r}; expected one of {sorted(STAGES)}")
    keys = (seed, *indices)
    if not all(isinstance(x, (int, np.integer)) and not isinstance(x, bool) for x in keys):
        raise TypeError("seed and indices must all be ints.")
    ss = np.random.SeedSequence([int(seed), STAGES[stage], *[int(i) for i in indices]])
    return np.random.default_rng(ss)


def draw_subsample(replicates: np.ndarray, n_trees: int, *, rng: np.random.Generator) -> np.ndarray:
    """
    One random sub-population: ``n_trees`` distinct specimens, one random core each.

    ``replicates`` has shape (pop_size, years, n_cores); returns (years, n_trees).
    """
    if not isinstance(rng, np.random.Generator):
        raise TypeError(f"rng must be a numpy.random.Generator, got {type(rng).__name__}")
    if replicates.ndim != 3:
        raise ValueError(f"replicates must be (pop_size, years, n_cores), got shape {replicates.shape}")
    pop_size, _, n_cores = replicates.shape
    n = int(n_trees)
    if n < 1 or n > pop_size:
        raise InvalidParameterError(f"n_trees must be in [1, {pop_size}], got {n_trees!r}")

    trees = rng.choice(pop_size, size=n, replace=False)
    cores = rng.integers(0, n_cores, size=n)
    # advanced indices around a slice land first: (n, years)
    return replicates[trees, :, cores].T


def measure_draw(sub_pop: np.ndarray, analysis_signal: np.ndarray) -> Tuple[float, float]:
    """(cor, rbt) of one draw: chronology-to-climate correlation and coherence."""
    rbt = mean_offdiagonal_correlation(sub_pop)
    chronology = sub_pop.mean(axis=1)
    cor = pearson(chronology, analysis_signal)
    return cor, rbt


def simulate_subsamples(
    replicates: np.ndarray,
    n_trees: int,
    noise: float,
    analysis_signal: np.ndarray,
    n_reps: int,
    *,
    rng: np.random.Generator,
) -> List[Dict[str, Any]]:
    """K independent draws for one (n_trees, noise) cell, ordered by repetition."""
    if isinstance(n_reps, bool) or int(n_reps) != n_reps or int(n_reps) < 1:
        raise InvalidParameterError(f"n_reps must be a positive int, got {n_reps!r}")
    signal = np.asarray(analysis_signal, dtype=np.float64)
    if signal.shape != (replicates.shape[1],):
        raise ValueError(
            f"analysis signal length {signal.shape} does not match {replicates.shape[1]} years"
        )

    rows: List[Dict[str, Any]] = []
    rows_append = rows.append
    for rep in range(int(n_reps)):
        sub_pop = draw_subsample(replicates, n_trees, rng=rng)
        try:
            cor, rbt = measure_draw(sub_pop, signal)
        except DegenerateStatisticError as e:
            raise e.with_context(n_trees=int(n_trees), noise=float(noise), rep=rep) from e
        rows_append(
            {
                "n_trees": int(n_trees),
                "noise": float(noise),
                "rep": rep,
                "cor": cor,
                "rbt": rbt,
            }
        )
    return rows


__all__ = [
    "STAGES",
    "rng_for_stage",
    "draw_subsample",
    "measure_draw",
    "simulate_subsamples",
]
