"""Exception and warning types raised by the inference engine."""

from __future__ import annotations

__all__ = [
    "ShapeError",
    "DegenerateInputError",
    "DivergedChainError",
    "RunCancelledError",
    "NonConvergenceWarning",
    "DegenerateInputWarning",
]


class ShapeError(ValueError):
    """Input dimensionality mismatch (rows, columns or coefficient length)."""


class DegenerateInputError(ValueError):
    """
    Single-class labels or a zero-variance predictor.

    Only raised under strict validation; the estimators emit
    :class:`DegenerateInputWarning` instead and return a trivial fit.
    """


class DivergedChainError(RuntimeError):
    """An MCMC chain produced non-finite posterior values or stalled."""

    def __init__(self, message: str, *, chain_id: int | None = None,
                 acceptance_rate: float | None = None) -> None:
        super().__init__(message)
        self.chain_id = chain_id
        self.acceptance_rate = acceptance_rate


class RunCancelledError(RuntimeError):
    """A fit or sampling run was stopped through its cancellation signal."""


class NonConvergenceWarning(UserWarning):
    """An iterative procedure stopped before reaching its tolerance."""


class DegenerateInputWarning(UserWarning):
    """The input is degenerate but a well-defined trivial answer was returned."""
