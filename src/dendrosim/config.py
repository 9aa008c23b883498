# src/dendrosim/config.py
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

import math
import numbers

import numpy as np

from .errors import InvalidParameterError

# ---------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------
SeedPolicy = Literal["stable_per_cell", "sequential"]
Executor = Literal["process", "thread"]
PopSize = Union[int, Literal["infinite"]]

INFINITE = "infinite"
DEFAULT_INFINITE_POP_SIZE = 1000


# ---------------------------------------------------------------------
# Canonical config used by core.py / cli.py / tests
# ---------------------------------------------------------------------
@dataclass
class SimConfig:
    """
    Parameters of one sampling-design simulation.

    ``pop_size`` is either a positive int or ``"infinite"``. The infinite
    sentinel only matters to how results are read (EPS assumes an unbounded
    population); the simulation resolves it to ``infinite_pop_size`` and always
    works on a finite specimen matrix.

    Month indices in ``driver_season`` / ``analysis_season`` are 1-based
    column positions of the climate table.
    """

    noise: List[float]
    n_tree_sample: List[int]
    driver_season: List[int]
    analysis_season: List[int]
    target_cor: float
    target_rbt: float

    pop_size: PopSize = 1000
    rep_sub_core: int = 100
    rep_sub_pop: int = 100
    p_value: float = 0.01

    seed: Optional[int] = None
    seed_policy: SeedPolicy = "stable_per_cell"
    jobs: int = 1
    executor: Executor = "process"

    infinite_pop_size: int = DEFAULT_INFINITE_POP_SIZE

    # internal caches for stable_per_cell mapping
    _tree_index_map: Dict[int, int] = field(default_factory=dict, init=False, repr=False)
    _noise_index_map: Dict[float, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for name in ("noise", "n_tree_sample", "driver_season", "analysis_season"):
            setattr(self, name, _as_plain_list(getattr(self, name)))
        for name in (
            "pop_size",
            "rep_sub_core",
            "rep_sub_pop",
            "jobs",
            "infinite_pop_size",
            "seed",
            "target_cor",
            "target_rbt",
            "p_value",
        ):
            setattr(self, name, _as_plain_scalar(getattr(self, name)))
        if isinstance(self.seed_policy, str):
            self.seed_policy = self.seed_policy.lower()  # type: ignore[assignment]
        if isinstance(self.executor, str):
            self.executor = self.executor.lower()  # type: ignore[assignment]
        if isinstance(self.pop_size, str):
            self.pop_size = self.pop_size.strip().lower()  # type: ignore[assignment]
        validate_cfg(self)
        # Order-invariant cell indices: sorted unique values, so re-ordering the
        # input lists never changes which random stream a cell gets.
        self._tree_index_map = {k: i for i, k in enumerate(sorted(int(n) for n in self.n_tree_sample))}
        self._noise_index_map = {k: i for i, k in enumerate(sorted(round(float(x), 12) for x in self.noise))}

    @property
    def is_infinite_population(self) -> bool:
        return self.pop_size == INFINITE

    @property
    def resolved_pop_size(self) -> int:
        """Number of specimen columns actually simulated."""
        if self.is_infinite_population:
            return int(self.infinite_pop_size)
        return int(self.pop_size)  # type: ignore[arg-type]

    @property
    def n_cells(self) -> int:
        return len(self.n_tree_sample) * len(self.noise)

    def cell_index(self, n_trees: int, noise: float) -> Tuple[int, int]:
        try:
            i = self._tree_index_map[int(n_trees)]
        except KeyError as e:
            raise InvalidParameterError(
                f"cell_index: n_trees {n_trees!r} not present in n_tree_sample={self.n_tree_sample!r}"
            ) from e
        try:
            j = self._noise_index_map[round(float(noise), 12)]
        except KeyError as e:
            raise InvalidParameterError(f"cell_index: noise {noise!r} not present in noise={self.noise!r}") from e
        return i, j

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for k in [k for k in d if k.startswith("_")]:
            d.pop(k)
        d["resolved_pop_size"] = self.resolved_pop_size
        return d


def _as_plain_scalar(x: Any) -> Any:
    # numpy scalars become the matching Python type; everything else passes through
    if isinstance(x, np.generic):
        return x.item()
    return x


def _as_plain_list(values: Any) -> Any:
    if isinstance(values, np.ndarray) and values.ndim == 1:
        values = values.tolist()
    elif isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        return values
    return [_as_plain_scalar(v) for v in values]


def _is_int(x: Any) -> bool:
    return isinstance(x, numbers.Integral) and not isinstance(x, (bool, np.bool_))


def _finite(x: Any) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, (bool, np.bool_)) and math.isfinite(float(x))


def _positive_int(x: Any) -> bool:
    return _is_int(x) and x > 0


def _int_list(values: Any, name: str, *, min_value: int) -> List[int]:
    if not isinstance(values, (list, tuple)) or len(values) == 0:
        raise InvalidParameterError(f"{name} must be a non-empty list")
    out: List[int] = []
    for i, v in enumerate(values):
        if not _is_int(v) or v < min_value:
            raise InvalidParameterError(f"{name}[{i}] must be an int >= {min_value}, got {v!r}")
        out.append(int(v))
    return out


def validate_cfg(cfg: SimConfig) -> None:
    # --- targets ---
    for name in ("target_cor", "target_rbt"):
        v = getattr(cfg, name)
        if not _finite(v) or not (0.0 < float(v) <= 1.0):
            raise InvalidParameterError(f"{name} must be finite and in (0, 1], got {v!r}")
    if not _finite(cfg.p_value) or not (0.0 < float(cfg.p_value) < 1.0):
        raise InvalidParameterError(f"p_value must be in (0, 1), got {cfg.p_value!r}")

    # --- noise ---
    if not isinstance(cfg.noise, (list, tuple)) or len(cfg.noise) == 0:
        raise InvalidParameterError("noise must be a non-empty list")
    for i, x in enumerate(cfg.noise):
        if not _finite(x) or float(x) <= 0.0:
            raise InvalidParameterError(f"noise[{i}] must be finite and > 0, got {x!r}")
    keys = [round(float(x), 12) for x in cfg.noise]
    if len(set(keys)) != len(keys):
        raise InvalidParameterError(f"noise contains duplicates (after rounding to 12 decimals). Got: {cfg.noise!r}")

    # --- sizes ---
    if cfg.pop_size != INFINITE and not _positive_int(cfg.pop_size):
        raise InvalidParameterError(f"pop_size must be a positive int or {INFINITE!r}, got {cfg.pop_size!r}")
    if not _positive_int(cfg.infinite_pop_size):
        raise InvalidParameterError(f"infinite_pop_size must be a positive int, got {cfg.infinite_pop_size!r}")
    if not _positive_int(cfg.rep_sub_core):
        raise InvalidParameterError(f"rep_sub_core must be a positive int, got {cfg.rep_sub_core!r}")
    if not _positive_int(cfg.rep_sub_pop):
        raise InvalidParameterError(f"rep_sub_pop must be a positive int, got {cfg.rep_sub_pop!r}")

    # Coherence is the mean of off-diagonal correlations: a single tree has none.
    trees = _int_list(cfg.n_tree_sample, "n_tree_sample", min_value=2)
    if len(set(trees)) != len(trees):
        raise InvalidParameterError(f"n_tree_sample contains duplicates: {cfg.n_tree_sample!r}")
    pop = cfg.resolved_pop_size
    too_big = [n for n in trees if n > pop]
    if too_big:
        raise InvalidParameterError(f"n_tree_sample values {too_big} exceed the population size {pop}")

    _int_list(cfg.driver_season, "driver_season", min_value=1)
    _int_list(cfg.analysis_season, "analysis_season", min_value=1)

    # --- seeding / execution ---
    if cfg.seed is not None and (not _is_int(cfg.seed) or cfg.seed < 0):
        raise InvalidParameterError(f"seed must be None or an int >= 0, got {cfg.seed!r}")
    if cfg.seed_policy not in ("stable_per_cell", "sequential"):
        raise InvalidParameterError(f"seed_policy invalid: {cfg.seed_policy!r}")
    if cfg.executor not in ("process", "thread"):
        raise InvalidParameterError(f"executor must be 'process' or 'thread', got {cfg.executor!r}")
    if not _positive_int(cfg.jobs):
        raise InvalidParameterError(f"jobs must be a positive int, got {cfg.jobs!r}")
    if cfg.jobs > 1 and cfg.seed_policy == "sequential":
        raise InvalidParameterError(
            "seed_policy='sequential' shares one random stream and cannot run with jobs > 1; "
            "use seed_policy='stable_per_cell'"
        )


__all__ = [
    "DEFAULT_INFINITE_POP_SIZE",
    "Executor",
    "INFINITE",
    "PopSize",
    "SeedPolicy",
    "SimConfig",
    "validate_cfg",
]
