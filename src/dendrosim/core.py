from __future__ import annotations

"""
dendrosim.core
==============

Core simulation harness:
- simulate_grid
- summarize_simulation

Build the population once -> for every (n_trees, noise) cell regenerate the
cores and draw rep_sub_pop sub-populations -> one table row per draw.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import logging
import math
import time

import numpy as np
import pandas as pd

from .config import SimConfig, validate_cfg
from .population import generate_population
from .replicates import build_replicate_set
from .sampling import rng_for_stage, simulate_subsamples
from .stats import (
    ClimateLike,
    climate_matrix,
    mean_offdiagonal_correlation,
    pearson,
    season_signal,
    standardize_months,
)
from .transforms import coherence_to_eps, critical_correlation

LOG = logging.getLogger(__name__)

TABLE_COLUMNS = ("n_trees", "noise", "rep", "cor", "rbt")


@dataclass(frozen=True)
class SimulationResult:
    """Results table plus the population's summary scalars."""

    table: pd.DataFrame
    truth_rbt: float
    truth_cor: float
    signific_cor: float
    seed: int
    n_years: int
    pop_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "truth_rbt": float(self.truth_rbt),
            "truth_cor": float(self.truth_cor),
            "signific_cor": float(self.signific_cor),
            "seed": int(self.seed),
            "n_years": int(self.n_years),
            "pop_size": int(self.pop_size),
            "rows": int(len(self.table)),
        }


def _simulate_cell(
    pool: np.ndarray,
    signal: np.ndarray,
    n_trees: int,
    noise: float,
    *,
    n_cores: int,
    n_reps: int,
    rng_cores: np.random.Generator,
    rng_draws: np.random.Generator,
) -> List[Dict[str, Any]]:
    replicates = build_replicate_set(pool, n_cores, noise, rng=rng_cores)
    return simulate_subsamples(replicates, n_trees, noise, signal, n_reps, rng=rng_draws)


# -------------------------
# Parallel-safe worker (must be top-level for ProcessPool pickling)
# -------------------------


def _run_cell_worker(
    pool: np.ndarray,
    signal: np.ndarray,
    n_trees: int,
    noise: float,
    *,
    tree_index: int,
    noise_index: int,
    seed: int,
    n_cores: int,
    n_reps: int,
) -> List[Dict[str, Any]]:
    # Deterministic per-cell RNGs (stable across process/thread/sequential execution)
    return _simulate_cell(
        pool,
        signal,
        int(n_trees),
        float(noise),
        n_cores=n_cores,
        n_reps=n_reps,
        rng_cores=rng_for_stage(seed, "replicates", tree_index, noise_index),
        rng_draws=rng_for_stage(seed, "subsample", tree_index, noise_index),
    )


def _resolve_seed(cfg: SimConfig) -> int:
    if cfg.seed is not None:
        return int(cfg.seed)
    # fresh OS entropy, recorded on the result so the run can be replayed
    return int(np.random.SeedSequence().entropy)


def _cells(cfg: SimConfig) -> List[Tuple[int, float]]:
    return [(int(n), float(x)) for n in cfg.n_tree_sample for x in cfg.noise]


def _run_cells_parallel(
    cfg: SimConfig,
    pool: np.ndarray,
    signal: np.ndarray,
    seed: int,
) -> List[Dict[str, Any]]:
    if cfg.executor == "thread":
        from concurrent.futures import ThreadPoolExecutor as Executor
        from concurrent.futures import as_completed
    else:
        from concurrent.futures import ProcessPoolExecutor as Executor
        from concurrent.futures import as_completed

    rows: List[Dict[str, Any]] = []
    with Executor(max_workers=int(cfg.jobs)) as ex:
        futs = {}
        for n_trees, noise in _cells(cfg):
            i, j = cfg.cell_index(n_trees, noise)
            fut = ex.submit(
                _run_cell_worker,
                pool,
                signal,
                n_trees,
                noise,
                tree_index=i,
                noise_index=j,
                seed=seed,
                n_cores=int(cfg.rep_sub_core),
                n_reps=int(cfg.rep_sub_pop),
            )
            futs[fut] = (n_trees, noise)
        for fut in as_completed(futs):
            n_trees, noise = futs[fut]
            rows.extend(fut.result())
            LOG.info("cell done: n_trees=%d noise=%.6g", n_trees, noise)
    return rows


def simulate_grid(climate: ClimateLike, cfg: SimConfig) -> SimulationResult:
    """
    Run the sampling-design simulation across every (n_trees, noise) cell.

    ``climate`` is a detrended year x month table (DataFrame or array); the
    months named by the two seasons are column-standardized here. Parameters
    are fully validated before any random number is drawn.

    IMPORTANT: the stable_per_cell seed policy derives each cell's streams from
    cfg.cell_index, so results do not change when the input lists are re-ordered
    or when cells run in parallel.
    """
    validate_cfg(cfg)
    # only the season months are standardized; month ranges are checked here,
    # still before any randomness
    values = standardize_months(climate_matrix(climate), [*cfg.driver_season, *cfg.analysis_season])
    n_years = int(values.shape[0])
    signal = season_signal(values, cfg.analysis_season)
    signific_cor = critical_correlation(n_years, cfg.p_value)

    seed = _resolve_seed(cfg)
    t0 = time.time()
    LOG.info(
        "Running simulate_grid: years=%d pop_size=%d n_tree_sample=%s noise=%s rep_sub_core=%d rep_sub_pop=%d "
        "seed=%d seed_policy=%s jobs=%d",
        n_years,
        cfg.resolved_pop_size,
        list(cfg.n_tree_sample),
        list(cfg.noise),
        cfg.rep_sub_core,
        cfg.rep_sub_pop,
        seed,
        cfg.seed_policy,
        cfg.jobs,
    )

    if cfg.seed_policy == "sequential":
        base_rng = np.random.default_rng(seed)
        pop_rng = base_rng
    else:
        base_rng = None
        pop_rng = rng_for_stage(seed, "population")

    population = generate_population(values, cfg, rng=pop_rng)
    pool = population.pool

    # population-level values: no subsampling, no core noise
    truth_rbt = mean_offdiagonal_correlation(pool)
    truth_cor = pearson(pool.mean(axis=1), signal)
    LOG.info("population: truth_rbt=%.4f truth_cor=%.4f signific_cor=%.4f", truth_rbt, truth_cor, signific_cor)

    rows: List[Dict[str, Any]] = []
    if cfg.jobs > 1:
        rows = _run_cells_parallel(cfg, pool, signal, seed)
    else:
        for n_trees, noise in _cells(cfg):
            if base_rng is not None:
                cell_rows = _simulate_cell(
                    pool,
                    signal,
                    n_trees,
                    noise,
                    n_cores=int(cfg.rep_sub_core),
                    n_reps=int(cfg.rep_sub_pop),
                    rng_cores=base_rng,
                    rng_draws=base_rng,
                )
            else:
                i, j = cfg.cell_index(n_trees, noise)
                cell_rows = _run_cell_worker(
                    pool,
                    signal,
                    n_trees,
                    noise,
                    tree_index=i,
                    noise_index=j,
                    seed=seed,
                    n_cores=int(cfg.rep_sub_core),
                    n_reps=int(cfg.rep_sub_pop),
                )
            rows.extend(cell_rows)
            LOG.info("cell done: n_trees=%d noise=%.6g", n_trees, noise)

    table = pd.DataFrame.from_records(rows, columns=list(TABLE_COLUMNS))
    table = table.sort_values(["n_trees", "noise", "rep"], kind="mergesort").reset_index(drop=True)

    total = cfg.n_cells * int(cfg.rep_sub_pop)
    if len(table) != total:
        raise RuntimeError(f"simulate_grid produced {len(table)} rows, expected {total}")

    LOG.info("simulate_grid finished: rows=%d elapsed=%.2fs", len(table), time.time() - t0)
    return SimulationResult(
        table=table,
        truth_rbt=float(truth_rbt),
        truth_cor=float(truth_cor),
        signific_cor=float(signific_cor),
        seed=seed,
        n_years=n_years,
        pop_size=population.pop_size,
    )


def summarize_simulation(
    table: pd.DataFrame,
    *,
    quantiles: Sequence[float] = (0.025, 0.5, 0.975),
) -> pd.DataFrame:
    """
    Aggregate draw-level rows to one summary row per (n_trees, noise) cell.
    """
    if table is None or table.empty:
        return pd.DataFrame()
    missing = [c for c in ("n_trees", "noise", "cor", "rbt") if c not in table.columns]
    if missing:
        raise ValueError(f"table is missing columns {missing}")

    q_raw = [float(x) for x in quantiles]
    if len(q_raw) == 0:
        raise ValueError("quantiles must be non-empty.")
    for qq in q_raw:
        if not math.isfinite(qq) or not (0.0 <= qq <= 1.0):
            raise ValueError(f"Invalid quantile {qq!r}")
    q = sorted({round(qq, 12) for qq in q_raw})
    if len(q) != len(q_raw):
        raise ValueError(f"quantiles contains duplicates after rounding: {quantiles!r}")

    def _q_label(qq: float) -> str:
        return f"q{int(round(qq * 1000.0)):04d}"

    groups: List[Dict[str, Any]] = []
    for (n_trees, noise), g in table.groupby(["n_trees", "noise"], sort=True):
        row: Dict[str, Any] = {"n_trees": int(n_trees), "noise": float(noise), "n_rows": int(len(g))}
        for col in ("cor", "rbt"):
            s = pd.to_numeric(g[col], errors="coerce")
            row[f"{col}_mean"] = float(s.mean())
            row[f"{col}_std"] = float(s.std(ddof=1)) if s.notna().sum() >= 2 else float("nan")
            qs = s.quantile(q)
            for qq in q:
                row[f"{col}_{_q_label(qq)}"] = float(qs.loc[qq])
        eps = coherence_to_eps(g["rbt"].to_numpy(dtype=float), int(n_trees))
        row["eps_mean"] = float(np.mean(eps))
        groups.append(row)

    return pd.DataFrame(groups).sort_values(["n_trees", "noise"], kind="mergesort").reset_index(drop=True)


__all__ = [
    "TABLE_COLUMNS",
    "SimulationResult",
    "simulate_grid",
    "summarize_simulation",
]
