# src/dendrosim/errors.py
"""
Semantic exception hierarchy shared by every dendrosim module.

- InvalidParameterError: rejected configuration, raised before any simulation work.
- NumericDomainError: an analytic transform was called outside its domain.
- DegenerateStatisticError: a correlation or coherence is undefined for a draw.
"""

from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base error for dendrosim."""


class InvalidParameterError(SimulationError, ValueError):
    """User-fixable configuration error."""


class NumericDomainError(SimulationError, ValueError):
    """Analytic transform argument outside its valid domain."""


class DegenerateStatisticError(SimulationError, FloatingPointError):
    """Correlation/coherence undefined (zero variance or too few series).

    The offending cell and repetition are attached once known so a failing
    run can be replayed from its seed.
    """

    def __init__(
        self,
        msg: str,
        *,
        n_trees: Optional[int] = None,
        noise: Optional[float] = None,
        rep: Optional[int] = None,
    ) -> None:
        self.reason = str(msg)
        self.n_trees = n_trees
        self.noise = noise
        self.rep = rep
        super().__init__(self._render())

    def _render(self) -> str:
        ctx = [
            f"{k}={v!r}"
            for k, v in (("n_trees", self.n_trees), ("noise", self.noise), ("rep", self.rep))
            if v is not None
        ]
        if not ctx:
            return self.reason
        return f"{self.reason} ({', '.join(ctx)})"

    def __reduce__(self):
        # keyword-only context must survive the trip back from a worker process
        return (_rebuild_degenerate, (self.reason, self.n_trees, self.noise, self.rep))

    def with_context(
        self,
        *,
        n_trees: Optional[int] = None,
        noise: Optional[float] = None,
        rep: Optional[int] = None,
    ) -> "DegenerateStatisticError":
        """Return a copy carrying (n_trees, noise, rep); existing fields win."""
        return DegenerateStatisticError(
            self.reason,
            n_trees=self.n_trees if self.n_trees is not None else n_trees,
            noise=self.noise if self.noise is not None else noise,
            rep=self.rep if self.rep is not None else rep,
        )


def _rebuild_degenerate(
    reason: str,
    n_trees: Optional[int],
    noise: Optional[float],
    rep: Optional[int],
) -> DegenerateStatisticError:
    return DegenerateStatisticError(reason, n_trees=n_trees, noise=noise, rep=rep)


__all__ = [
    "SimulationError",
    "InvalidParameterError",
    "NumericDomainError",
    "DegenerateStatisticError",
]
