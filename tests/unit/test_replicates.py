from __future__ import annotations

import numpy as np
import pytest

from dendrosim.errors import InvalidParameterError
from dendrosim.replicates import build_replicate_set


def _pool(years: int = 30, specimens: int = 12) -> np.ndarray:
    return np.random.default_rng(0).standard_normal((years, specimens))


def test_replicate_set_shape() -> None:
    reps = build_replicate_set(_pool(), 7, 0.3, rng=np.random.default_rng(1))
    assert reps.shape == (12, 30, 7)


def test_replicates_center_on_the_specimen_signal() -> None:
    pool = _pool(years=20, specimens=3)
    reps = build_replicate_set(pool, 20_000, 0.5, rng=np.random.default_rng(2))
    np.testing.assert_allclose(reps.mean(axis=2), pool.T, atol=0.02)
    resid = reps - pool.T[:, :, None]
    assert resid.std() == pytest.approx(0.5, rel=0.01)


def test_replicates_are_not_restandardized() -> None:
    pool = _pool()
    reps = build_replicate_set(pool, 5, 2.0, rng=np.random.default_rng(3))
    assert reps[0].std(axis=0, ddof=1).mean() > 1.5


def test_fresh_noise_per_call() -> None:
    pool = _pool()
    rng = np.random.default_rng(4)
    a = build_replicate_set(pool, 4, 0.3, rng=rng)
    b = build_replicate_set(pool, 4, 0.3, rng=rng)
    assert not np.array_equal(a, b)


def test_pool_is_not_modified() -> None:
    pool = _pool()
    before = pool.copy()
    build_replicate_set(pool, 3, 1.0, rng=np.random.default_rng(5))
    np.testing.assert_array_equal(pool, before)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_cores": 0},
        {"n_cores": True},
        {"noise": 0.0},
        {"noise": -1.0},
        {"noise": float("nan")},
        {"pop_size": 99},
    ],
)
def test_invalid_arguments(kwargs) -> None:
    args = dict(n_cores=3, noise=0.5, pop_size=None)
    args.update(kwargs)
    with pytest.raises(InvalidParameterError):
        build_replicate_set(_pool(), args["n_cores"], args["noise"], rng=np.random.default_rng(0), pop_size=args["pop_size"])
