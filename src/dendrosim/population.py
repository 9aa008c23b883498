# src/dendrosim/population.py
"""
Synthetic population: one climate-driven reference signal and the specimen pool
derived from it.

    driver = standardize( standardize(mean(climate[:, driver_season])) + N(0, sd_truth) )
    pool[:, s] = driver + N(0, sd_sub)          for every specimen s
    pool = standardize(pool)                    column-wise

sd_truth and sd_sub come from the target correlation and target coherence
(see transforms). Both arrays are returned read-only.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import logging

import numpy as np

from .config import SimConfig
from .errors import InvalidParameterError
from .stats import season_signal, standardize
from .transforms import target_coherence_to_noise_sd, target_correlation_to_noise_sd

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Population:
    """DriverSignal (years,) and SpecimenPool (years, pop_size) of one run."""

    driver: np.ndarray
    pool: np.ndarray
    sd_truth: float
    sd_sub: float

    @property
    def n_years(self) -> int:
        return int(self.pool.shape[0])

    @property
    def pop_size(self) -> int:
        return int(self.pool.shape[1])


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


def build_driver_signal(
    climate: np.ndarray,
    driver_season: Sequence[int],
    target_cor: float,
    *,
    rng: np.random.Generator,
) -> np.ndarray:
    """Reference signal whose correlation with the driver season targets ``target_cor``."""
    sd_truth = target_correlation_to_noise_sd(target_cor)
    season = standardize(season_signal(climate, driver_season))
    noisy = season + rng.normal(0.0, sd_truth, size=season.shape[0])
    return _readonly(standardize(noisy))


def build_specimen_pool(
    driver: np.ndarray,
    target_rbt: float,
    pop_size: int,
    *,
    rng: np.random.Generator,
) -> np.ndarray:
    """Years x pop_size matrix of noisy driver copies, standardized per column."""
    if isinstance(pop_size, bool) or int(pop_size) != pop_size or int(pop_size) < 1:
        raise InvalidParameterError(f"pop_size must be a positive int, got {pop_size!r}")
    d = np.asarray(driver, dtype=np.float64)
    if d.ndim != 1:
        raise ValueError(f"driver must be 1-D, got shape {d.shape}")
    sd_sub = target_coherence_to_noise_sd(target_rbt)
    # one independent noise column per specimen
    pool = d[:, None] + rng.normal(0.0, sd_sub, size=(d.shape[0], int(pop_size)))
    return _readonly(standardize(pool))


def generate_population(climate: np.ndarray, cfg: SimConfig, *, rng: np.random.Generator) -> Population:
    driver = build_driver_signal(climate, cfg.driver_season, cfg.target_cor, rng=rng)
    pool = build_specimen_pool(driver, cfg.target_rbt, cfg.resolved_pop_size, rng=rng)
    pop = Population(
        driver=driver,
        pool=pool,
        sd_truth=target_correlation_to_noise_sd(cfg.target_cor),
        sd_sub=target_coherence_to_noise_sd(cfg.target_rbt),
    )
    LOG.debug(
        "population built: years=%d specimens=%d sd_truth=%.6g sd_sub=%.6g",
        pop.n_years,
        pop.pop_size,
        pop.sd_truth,
        pop.sd_sub,
    )
    return pop


__all__ = [
    "Population",
    "build_driver_signal",
    "build_specimen_pool",
    "generate_population",
]
