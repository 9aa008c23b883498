# src/dendrosim/summary.py
"""
Tabular read-outs of a results table for the downstream figure/heat-map tools.

The spread table answers "how wide is the 95% band of chronology-climate
correlations for n trees at this coherence level": draws are bucketed by
quantile ranges of the coherence column, then summarized per tree count.
"""
from __future__ import annotations

from typing import Dict, List

import numpy as np
import pandas as pd

from .transforms import coherence_to_eps


def split_by_tree_count(table: pd.DataFrame) -> Dict[int, pd.DataFrame]:
    """Sub-table per n_trees value (one figure per group downstream)."""
    return {int(n): g.reset_index(drop=True) for n, g in table.groupby("n_trees", sort=True)}


def coherence_bins(rbt: pd.Series, n_bins: int = 5, digits: int = 2) -> np.ndarray:
    """Quantile break points of the coherence column, rounded to ``digits``."""
    if int(n_bins) < 1:
        raise ValueError(f"n_bins must be >= 1, got {n_bins!r}")
    s = pd.to_numeric(pd.Series(rbt), errors="coerce").dropna()
    if s.empty:
        raise ValueError("coherence_bins needs at least one finite rbt value")
    probs = np.linspace(0.0, 1.0, int(n_bins) + 1)
    return np.round(s.quantile(probs).to_numpy(dtype=float), int(digits))


def _bin_eps(mid: float, n_trees: int) -> float:
    # bins span every tree count, so a midpoint can sit below -1/(n-1) for large n
    if n_trees > 1 and mid <= -1.0 / (n_trees - 1):
        return float("nan")
    return float(coherence_to_eps(mid, n_trees))


def correlation_spread_table(table: pd.DataFrame, n_bins: int = 5, digits: int = 2) -> pd.DataFrame:
    """
    Long table: one row per (n_trees, coherence bin).

    Bins are half-open (lo <= rbt < hi), so draws sitting exactly on the top
    break are not counted anywhere. ``eps`` is NaN where the bin midpoint lies
    outside the coherence range reachable by n_trees series.
    """
    for col in ("n_trees", "cor", "rbt"):
        if col not in table.columns:
            raise ValueError(f"table is missing column {col!r}")
    breaks = coherence_bins(table["rbt"], n_bins=n_bins, digits=digits)
    tree_values = sorted(int(n) for n in table["n_trees"].unique())

    rows: List[Dict[str, object]] = []
    for n_trees in tree_values:
        g = table[table["n_trees"] == n_trees]
        for lo, hi in zip(breaks[:-1], breaks[1:]):
            in_bin = g[(g["rbt"] >= lo) & (g["rbt"] < hi)]
            cor = pd.to_numeric(in_bin["cor"], errors="coerce").dropna()
            if cor.empty:
                spread = float("nan")
            else:
                spread = float(cor.quantile(0.975) - cor.quantile(0.025))
            mid = float((lo + hi) / 2.0)
            rows.append(
                {
                    "n_trees": n_trees,
                    "rbt_bin": f"{lo:g}-{hi:g}",
                    "rbt_lo": float(lo),
                    "rbt_hi": float(hi),
                    "rbt_mid": mid,
                    "cor_spread": spread,
                    "n_rows": int(len(in_bin)),
                    "eps": _bin_eps(mid, n_trees),
                }
            )
    return pd.DataFrame(rows)


__all__ = [
    "coherence_bins",
    "correlation_spread_table",
    "split_by_tree_count",
]
