from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml

from dendrosim.cli import _cfg_from_dict, _load_yaml, main
from dendrosim.config import INFINITE
from dendrosim.errors import InvalidParameterError


def _cfg_dict(**overrides):
    d = {
        "noise": [0.2, 0.5],
        "pop_size": 80,
        "n_tree_sample": [5],
        "driver_season": [1],
        "analysis_season": [2],
        "target_cor": 0.6,
        "target_rbt": 0.4,
        "rep_sub_core": 4,
        "rep_sub_pop": 6,
        "seed": 3,
    }
    d.update(overrides)
    return d


def _write_bundle(tmp_path: Path, **overrides) -> Path:
    years = pd.Index(range(1961, 2001), name="year")
    clim = pd.DataFrame(np.random.default_rng(0).standard_normal((40, 2)), index=years, columns=["jan", "feb"])
    clim.to_csv(tmp_path / "climate.csv")
    cfg = _cfg_dict(climate={"path": "climate.csv"}, **overrides)
    path = tmp_path / "sim.yaml"
    path.write_text(yaml.safe_dump(cfg), encoding="utf-8")
    return path


def test_cfg_from_dict_basic():
    cfg = _cfg_from_dict(_cfg_dict())
    assert cfg.noise == [0.2, 0.5]
    assert cfg.n_tree_sample == [5]
    assert cfg.seed == 3
    assert cfg.rep_sub_pop == 6


def test_cfg_from_dict_scalars_and_infinite_population():
    cfg = _cfg_from_dict(_cfg_dict(noise=0.3, driver_season=4, pop_size="infinite", analysis_season=[4]))
    assert cfg.noise == [0.3]
    assert cfg.driver_season == [4]
    assert cfg.pop_size == INFINITE


@pytest.mark.parametrize(
    "overrides, match",
    [
        ({"rep_sub_pop": 2.5}, "no silent truncation"),
        ({"target_cor": "high"}, "target_cor"),
        ({"bogus": 1}, "Unknown config keys"),
        ({"noise": {"a": 1}}, "noise"),
    ],
)
def test_cfg_from_dict_errors(overrides, match):
    with pytest.raises(InvalidParameterError, match=match):
        _cfg_from_dict(_cfg_dict(**overrides))


def test_cfg_from_dict_requires_core_keys():
    d = _cfg_dict()
    d.pop("target_rbt")
    with pytest.raises(InvalidParameterError, match="target_rbt"):
        _cfg_from_dict(d)


def test_load_yaml_rejects_non_mapping(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        _load_yaml(str(p))


def test_main_writes_artifact_bundle(tmp_path, capsys):
    cfg_path = _write_bundle(tmp_path)
    out_dir = tmp_path / "out"
    rc = main(["--config", str(cfg_path), "--out_dir", str(out_dir), "--print_head", "0"])
    assert rc == 0
    for name in ("sim_long.csv", "sim_summary.csv", "spread_table.csv", "config_resolved.json", "diagnostics.json", "manifest.json"):
        assert (out_dir / name).exists(), name

    long = pd.read_csv(out_dir / "sim_long.csv")
    assert len(long) == 2 * 6
    manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
    assert set(manifest["file_sha256"]) >= {"sim_long.csv", "diagnostics.json"}

    diag = json.loads(capsys.readouterr().out.strip().splitlines()[0])
    assert diag["rows"] == 12
    assert diag["n_years"] == 40
    assert diag["seed"] == 3


def test_main_seed_override(tmp_path):
    cfg_path = _write_bundle(tmp_path)
    rc = main(["--config", str(cfg_path), "--out_dir", str(tmp_path / "o"), "--seed", "99", "--print_head", "0"])
    assert rc == 0
    resolved = json.loads((tmp_path / "o" / "config_resolved.json").read_text(encoding="utf-8"))
    assert resolved["seed"] == 99


def test_main_missing_config_returns_2(tmp_path):
    assert main([]) == 2
    assert main(["--config", str(tmp_path / "nope.yaml")]) == 2


def test_main_invalid_config_returns_2(tmp_path):
    cfg_path = _write_bundle(tmp_path, target_cor=1.5)
    assert main(["--config", str(cfg_path), "--out_dir", str(tmp_path / "o")]) == 2


def test_main_month_out_of_range_returns_2(tmp_path):
    cfg_path = _write_bundle(tmp_path, analysis_season=[5])
    assert main(["--config", str(cfg_path), "--out_dir", str(tmp_path / "o")]) == 2


def test_cfg_from_dict_yaml_true_means_infinite_population():
    d = yaml.safe_load("pop_size: true\n")
    assert d["pop_size"] is True
    cfg = _cfg_from_dict(_cfg_dict(**d))
    assert cfg.pop_size == INFINITE
    assert cfg.resolved_pop_size == cfg.infinite_pop_size


def test_cfg_from_dict_yaml_false_population_rejected():
    with pytest.raises(InvalidParameterError, match="pop_size"):
        _cfg_from_dict(_cfg_dict(pop_size=False))
