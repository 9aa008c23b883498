"""
Pytest bootstrap for src/ layout.

Puts ./src on sys.path so `import dendrosim` works without an editable
install, and provides shared climate fixtures.
"""
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

repo_root = Path(__file__).resolve().parents[1]
src = repo_root / "src"
if src.is_dir():
    src_str = str(src)
    if src_str not in sys.path:
        # Put first so local src wins over any installed copy.
        sys.path.insert(0, src_str)


@pytest.fixture
def climate_2m() -> np.ndarray:
    """50 years x 2 months of independent standard normals."""
    return np.random.default_rng(2024).standard_normal((50, 2))


@pytest.fixture
def climate_df() -> pd.DataFrame:
    rng = np.random.default_rng(11)
    years = pd.Index(range(1951, 2001), name="year")
    return pd.DataFrame(rng.standard_normal((50, 12)), index=years, columns=[f"m{m:02d}" for m in range(1, 13)])
