from __future__ import annotations

import numpy as np
import pytest

from dendrosim import population as P
from dendrosim.config import SimConfig
from dendrosim.errors import InvalidParameterError, NumericDomainError
from dendrosim.stats import mean_offdiagonal_correlation, pearson, standardize


def _cfg(**overrides) -> SimConfig:
    base = dict(
        noise=[0.2],
        n_tree_sample=[5],
        driver_season=[1],
        analysis_season=[1],
        target_cor=0.6,
        target_rbt=0.4,
        pop_size=200,
        seed=1,
    )
    base.update(overrides)
    return SimConfig(**base)


def test_driver_signal_is_standardized_and_readonly(climate_2m) -> None:
    clim = standardize(climate_2m)
    driver = P.build_driver_signal(clim, [1], 0.6, rng=np.random.default_rng(0))
    assert driver.shape == (50,)
    assert driver.mean() == pytest.approx(0.0, abs=1e-12)
    assert driver.std(ddof=1) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        driver[0] = 1.0


def test_driver_signal_correlation_converges_to_target() -> None:
    rng = np.random.default_rng(7)
    clim = standardize(rng.standard_normal((100_000, 1)))
    driver = P.build_driver_signal(clim, [1], 0.7, rng=rng)
    assert abs(pearson(driver, clim[:, 0]) - 0.7) < 0.01


def test_driver_signal_averages_multiple_months() -> None:
    rng = np.random.default_rng(8)
    clim = standardize(rng.standard_normal((50_000, 3)))
    driver = P.build_driver_signal(clim, [1, 2], 0.8, rng=rng)
    season = clim[:, :2].mean(axis=1)
    assert abs(pearson(driver, season) - 0.8) < 0.01
    # the unused month stays uncorrelated
    assert abs(pearson(driver, clim[:, 2])) < 0.02


def test_driver_signal_perfect_target_copies_the_season(climate_2m) -> None:
    clim = standardize(climate_2m)
    driver = P.build_driver_signal(clim, [2], 1.0, rng=np.random.default_rng(0))
    np.testing.assert_allclose(driver, clim[:, 1], atol=1e-12)


def test_driver_signal_rejects_bad_target(climate_2m) -> None:
    with pytest.raises(NumericDomainError):
        P.build_driver_signal(standardize(climate_2m), [1], 0.0, rng=np.random.default_rng(0))


def test_specimen_pool_shape_standardized_and_readonly() -> None:
    rng = np.random.default_rng(9)
    driver = standardize(rng.standard_normal(40))
    pool = P.build_specimen_pool(driver, 0.4, 30, rng=rng)
    assert pool.shape == (40, 30)
    np.testing.assert_allclose(pool.mean(axis=0), 0.0, atol=1e-12)
    np.testing.assert_allclose(pool.std(axis=0, ddof=1), 1.0, atol=1e-12)
    assert not pool.flags.writeable


def test_specimen_pool_coherence_converges_to_target() -> None:
    rng = np.random.default_rng(10)
    driver = standardize(rng.standard_normal(2000))
    pool = P.build_specimen_pool(driver, 0.5, 1000, rng=rng)
    assert abs(mean_offdiagonal_correlation(pool) - 0.5) < 0.02


def test_specimen_pool_rejects_bad_size() -> None:
    with pytest.raises(InvalidParameterError):
        P.build_specimen_pool(np.arange(10.0), 0.5, 0, rng=np.random.default_rng(0))


def test_generate_population_uses_resolved_pop_size(climate_2m) -> None:
    cfg = _cfg(pop_size="infinite", infinite_pop_size=150)
    pop = P.generate_population(standardize(climate_2m), cfg, rng=np.random.default_rng(0))
    assert pop.pop_size == 150
    assert pop.n_years == 50
    assert pop.sd_truth == pytest.approx(0.8 / 0.6)
    assert pop.sd_sub == pytest.approx(np.sqrt(0.6) / np.sqrt(0.4))


def test_generate_population_is_deterministic_for_a_generator_seed(climate_2m) -> None:
    cfg = _cfg()
    clim = standardize(climate_2m)
    a = P.generate_population(clim, cfg, rng=np.random.default_rng(42))
    b = P.generate_population(clim, cfg, rng=np.random.default_rng(42))
    np.testing.assert_array_equal(a.pool, b.pool)
    np.testing.assert_array_equal(a.driver, b.driver)
