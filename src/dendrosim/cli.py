from __future__ import annotations

"""
dendrosim.cli
=============

CLI entrypoint + YAML schema parsing.

This file owns:
- YAML load errors
- YAML schema mapping -> SimConfig, climate CSV loading
- artifact bundle writing + stable JSON diagnostics

Example config::

    climate:
      path: climate_detrended.csv   # first column = year, one column per month
    noise: [0.13, 0.27, 0.5, 1.0]
    pop_size: 1000                  # or "infinite"
    n_tree_sample: [5, 10, 20]
    driver_season: [3, 4]
    analysis_season: [3, 4]
    target_cor: 0.6
    target_rbt: 0.4
    rep_sub_core: 100
    rep_sub_pop: 100
    p_value: 0.01
    seed: 7
"""

import argparse
import hashlib
import json
import logging
import platform
import sys
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
import scipy
import yaml

from .config import INFINITE, SimConfig
from .core import simulate_grid, summarize_simulation
from .errors import InvalidParameterError
from .summary import correlation_spread_table

LOG = logging.getLogger(__name__)

_CONFIG_KEYS = (
    "noise",
    "pop_size",
    "n_tree_sample",
    "driver_season",
    "analysis_season",
    "target_cor",
    "target_rbt",
    "rep_sub_core",
    "rep_sub_pop",
    "p_value",
    "seed",
    "seed_policy",
    "jobs",
    "executor",
    "infinite_pop_size",
)


def _load_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise OSError(f"Could not read YAML config at path={path!r}: {e}") from e

    try:
        obj = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            loc = f"line={getattr(mark, 'line', '?')}, column={getattr(mark, 'column', '?')}"
            raise ValueError(f"YAML parse error in {path!r} ({loc}): {e}") from e
        raise ValueError(f"YAML parse error in {path!r}: {e}") from e

    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ValueError(f"YAML config must parse to a mapping/dict, got {type(obj).__name__}")
    return dict(obj)


def _cfg_from_dict(d: dict[str, Any]) -> SimConfig:
    def _f(x: Any, name: str) -> float:
        if isinstance(x, bool):
            raise InvalidParameterError(f"{name} must be a number, got {x!r}")
        try:
            v = float(x)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"{name} must be a number, got {x!r}") from e
        if not np.isfinite(v):
            raise InvalidParameterError(f"{name} must be finite, got {v!r}")
        return v

    def _i(x: Any, name: str) -> int:
        if isinstance(x, bool):
            raise InvalidParameterError(f"{name} must be an int, got {x!r}")
        if isinstance(x, float) and not x.is_integer():
            raise InvalidParameterError(f"{name} must be an int (no silent truncation), got {x!r}")
        try:
            return int(x)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"{name} must be an int, got {x!r}") from e

    def _list(x: Any, name: str) -> list[Any]:
        if isinstance(x, (int, float)) and not isinstance(x, bool):
            return [x]
        if not isinstance(x, (list, tuple)):
            raise InvalidParameterError(f"{name} must be a list, got {type(x).__name__}")
        return list(x)

    unknown = sorted(k for k in d if k not in _CONFIG_KEYS and k != "climate")
    if unknown:
        raise InvalidParameterError(f"Unknown config keys: {unknown}")
    for k in ("noise", "n_tree_sample", "driver_season", "analysis_season", "target_cor", "target_rbt"):
        if k not in d:
            raise InvalidParameterError(f"config requires {k!r}")

    kwargs: dict[str, Any] = {
        "noise": [_f(x, f"noise[{i}]") for i, x in enumerate(_list(d["noise"], "noise"))],
        "n_tree_sample": [_i(x, f"n_tree_sample[{i}]") for i, x in enumerate(_list(d["n_tree_sample"], "n_tree_sample"))],
        "driver_season": [_i(x, f"driver_season[{i}]") for i, x in enumerate(_list(d["driver_season"], "driver_season"))],
        "analysis_season": [
            _i(x, f"analysis_season[{i}]") for i, x in enumerate(_list(d["analysis_season"], "analysis_season"))
        ],
        "target_cor": _f(d["target_cor"], "target_cor"),
        "target_rbt": _f(d["target_rbt"], "target_rbt"),
    }

    if "pop_size" in d:
        ps = d["pop_size"]
        # unquoted YAML `pop_size: true` arrives as a bool
        if ps is True or (isinstance(ps, str) and ps.strip().lower() in (INFINITE, "inf", "true")):
            kwargs["pop_size"] = INFINITE
        else:
            kwargs["pop_size"] = _i(ps, "pop_size")
    for k in ("rep_sub_core", "rep_sub_pop", "jobs", "infinite_pop_size"):
        if k in d:
            kwargs[k] = _i(d[k], k)
    if "p_value" in d:
        kwargs["p_value"] = _f(d["p_value"], "p_value")
    if d.get("seed") is not None:
        kwargs["seed"] = _i(d["seed"], "seed")
    for k in ("seed_policy", "executor"):
        if k in d:
            kwargs[k] = str(d[k])

    return SimConfig(**kwargs)


def _load_climate(d: dict[str, Any], base_dir: Path) -> pd.DataFrame:
    block = d.get("climate")
    if not isinstance(block, dict) or "path" not in block:
        raise InvalidParameterError("config requires a 'climate' mapping with a 'path' to a CSV file")
    path = Path(str(block["path"])).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    try:
        df = pd.read_csv(path, index_col=0)
    except OSError as e:
        raise InvalidParameterError(f"Could not read climate CSV at {str(path)!r}: {e}") from e
    if df.shape[1] == 0:
        raise InvalidParameterError(f"climate CSV {str(path)!r} has no month columns")
    return df


def main(argv: Sequence[str] | None = None) -> int:
    def _now_stamp() -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def _atomic_write_text(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
        tmp.replace(path)

    def _atomic_write_csv(df: pd.DataFrame, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        df.to_csv(tmp, index=False)
        tmp.replace(path)

    def _sha256_file(path: Path) -> str:
        h = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                h.update(chunk)
        return h.hexdigest()

    ap = argparse.ArgumentParser(description="Simulate tree-ring sampling designs (trees x cores x noise).")
    ap.add_argument("--config", type=str, default=None, help="Path to YAML config.")
    ap.add_argument("--out_dir", type=str, default=None, help="Write a full artifact bundle to this directory.")
    ap.add_argument("--seed", type=int, default=None, help="Override the config seed.")
    ap.add_argument("--jobs", type=int, default=None, help="Override the number of parallel workers.")
    ap.add_argument("--print_head", type=int, default=5, help="Print first N rows of summary.")
    ap.add_argument("--log_level", type=str, default="INFO", help="Logging level.")
    ap.add_argument("--overwrite", action="store_true", help="Overwrite outputs in out_dir if non-empty.")
    args = ap.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    if args.config is None:
        print("ERROR: Please provide --config path/to/config.yaml (or call simulate_grid() from Python).", file=sys.stderr)
        return 2

    run_started_utc = _now_iso()
    t0 = time.time()

    config_path = Path(args.config).expanduser()
    if not config_path.exists():
        print(f"ERROR: config path does not exist: {str(config_path)!r}", file=sys.stderr)
        return 2

    try:
        cfg_dict = _load_yaml(str(config_path))
        if args.seed is not None:
            cfg_dict["seed"] = args.seed
        if args.jobs is not None:
            cfg_dict["jobs"] = args.jobs
        cfg = _cfg_from_dict(cfg_dict)
        climate = _load_climate(cfg_dict, config_path.resolve().parent)
    except (OSError, ValueError) as e:
        LOG.exception("Config loading/validation failed.")
        print(f"ERROR: config loading/validation failed: {e}", file=sys.stderr)
        return 2

    out_dir = Path(args.out_dir).expanduser() if args.out_dir else Path.cwd() / "artifacts" / _now_stamp()
    if out_dir.exists() and any(out_dir.iterdir()) and not bool(args.overwrite):
        out_dir = out_dir / f"run_{_now_stamp()}"
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        result = simulate_grid(climate, cfg)
        df_sum = summarize_simulation(result.table)
        df_spread = correlation_spread_table(result.table)
    except InvalidParameterError as e:
        LOG.exception("Config rejected against the climate table.")
        print(f"ERROR: config loading/validation failed: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        LOG.exception("Simulation failed.")
        print(f"ERROR: simulation failed: {e}", file=sys.stderr)
        return 1

    outputs: dict[str, str] = {}
    file_hashes: dict[str, str] = {}

    diag = {
        "run_started_utc": run_started_utc,
        "run_finished_utc": _now_iso(),
        "elapsed_seconds": float(time.time() - t0),
        "cells": int(cfg.n_cells),
        "seed_policy": str(cfg.seed_policy),
        **result.to_dict(),
    }

    try:
        for name, df in (("sim_long.csv", result.table), ("sim_summary.csv", df_sum), ("spread_table.csv", df_spread)):
            _atomic_write_csv(df, out_dir / name)
            outputs[name] = str(out_dir / name)

        cfg_snapshot = {"config_path": str(config_path), **cfg.to_dict(), "seed_resolved": int(result.seed)}
        _atomic_write_text(out_dir / "config_resolved.json", json.dumps(cfg_snapshot, indent=2, sort_keys=True) + "\n")
        _atomic_write_text(out_dir / "diagnostics.json", json.dumps(diag, indent=2, sort_keys=True) + "\n")
        outputs["config_resolved.json"] = str(out_dir / "config_resolved.json")
        outputs["diagnostics.json"] = str(out_dir / "diagnostics.json")
        for name, p in outputs.items():
            file_hashes[name] = _sha256_file(Path(p))

        manifest = {
            "run_started_utc": run_started_utc,
            "run_finished_utc": _now_iso(),
            "python": sys.version,
            "platform": platform.platform(),
            "numpy": np.__version__,
            "pandas": pd.__version__,
            "scipy": scipy.__version__,
            "config_path": str(config_path),
            "config_sha256": _sha256_file(config_path),
            "outputs": outputs,
            "file_sha256": file_hashes,
            "diagnostics": diag,
        }
        _atomic_write_text(out_dir / "manifest.json", json.dumps(manifest, indent=2, sort_keys=True) + "\n")
    except OSError as e:
        LOG.exception("Writing outputs failed.")
        print(f"ERROR: writing outputs failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(diag, sort_keys=True))

    if args.print_head and int(args.print_head) > 0:
        with pd.option_context("display.width", 160, "display.max_columns", 200):
            print(df_sum.head(int(args.print_head)))

    print(f"[dendrosim] outputs written to: {out_dir}", file=sys.stderr)
    return 0
