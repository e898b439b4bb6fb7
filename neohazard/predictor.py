"""
Logistic link shared by both estimators.

A coefficient vector is intercept-first: ``beta[0]`` is the intercept and
``beta[1:]`` are the slopes, so a row ``x`` is scored on ``[1, x]``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ._math import LOGIT_CLAMP, _sigmoid
from .exceptions import ShapeError

__all__ = ["add_intercept", "linear_predictor", "hazard_probability"]


def add_intercept(X: np.ndarray) -> np.ndarray:
    """Prepend a column of ones to a 2-D design matrix."""
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2:
        raise ShapeError(f"X must be 2D, got shape {X.shape}.")
    return np.hstack((np.ones((X.shape[0], 1), dtype=np.float64), X))


def linear_predictor(coef: Sequence[float] | np.ndarray, x: Sequence[float] | np.ndarray) -> np.ndarray | float:
    """
    Clamped linear predictor ``beta . [1, x]``.

    ``x`` may be a single row (returns a float) or an ``(n, p)`` matrix
    (returns an ``(n,)`` array). The result is clipped to +-30.
    """
    beta = np.asarray(coef, dtype=np.float64)
    if beta.ndim != 1 or beta.shape[0] < 1:
        raise ShapeError(f"Coefficient vector must be 1D and non-empty, got shape {beta.shape}.")
    X = np.asarray(x, dtype=np.float64)
    p = beta.shape[0] - 1
    if X.ndim == 1:
        if X.shape[0] != p:
            raise ShapeError(f"Feature row has length {X.shape[0]}, coefficient vector expects {p}.")
        z = beta[0] + float(X @ beta[1:])
        return float(np.clip(z, -LOGIT_CLAMP, LOGIT_CLAMP))
    if X.ndim != 2 or X.shape[1] != p:
        raise ShapeError(f"Feature matrix has shape {X.shape}, coefficient vector expects {p} columns.")
    z = beta[0] + X @ beta[1:]
    return np.clip(z, -LOGIT_CLAMP, LOGIT_CLAMP)


def hazard_probability(coef: Sequence[float] | np.ndarray, x: Sequence[float] | np.ndarray) -> np.ndarray | float:
    """
    Hazard probability ``1 / (1 + exp(-(beta . [1, x])))``.

    Always strictly inside (0, 1) because the linear predictor is clamped
    before exponentiation.
    """
    z = linear_predictor(coef, x)
    if isinstance(z, float):
        return float(_sigmoid(z))
    return _sigmoid(z)
