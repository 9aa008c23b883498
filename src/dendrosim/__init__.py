"""Monte-Carlo sampling-design simulator for tree-ring chronologies."""

from importlib import metadata as _metadata

from .config import SimConfig
from .core import SimulationResult, simulate_grid, summarize_simulation
from .errors import DegenerateStatisticError, InvalidParameterError, NumericDomainError, SimulationError
from .summary import correlation_spread_table
from .transforms import (
    coherence_to_eps,
    critical_correlation,
    eps_to_coherence,
    target_coherence_to_noise_sd,
    target_correlation_to_noise_sd,
)

try:
    __version__ = _metadata.version("dendrosim")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local usage
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "SimConfig",
    "SimulationResult",
    "simulate_grid",
    "summarize_simulation",
    "correlation_spread_table",
    "coherence_to_eps",
    "eps_to_coherence",
    "critical_correlation",
    "target_correlation_to_noise_sd",
    "target_coherence_to_noise_sd",
    "SimulationError",
    "InvalidParameterError",
    "NumericDomainError",
    "DegenerateStatisticError",
]
