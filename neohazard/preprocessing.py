"""
Feature standardisation for the coordinate-descent fitter.

The fitter solves on centred/scaled columns, as glmnet does, and maps the
solution back to the caller's units with :meth:`StandardScaler.unscale_coef`.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

__all__ = ["StandardScaler"]


class StandardScaler:
    """Column centring/scaling; zero-variance columns keep scale 1."""

    def __init__(self) -> None:
        self.mean_: Optional[np.ndarray] = None
        self.scale_: Optional[np.ndarray] = None

    def fit(self, X: np.ndarray) -> "StandardScaler":
        X = np.asarray(X, dtype=np.float64)
        self.mean_ = np.mean(X, axis=0)
        scale = np.std(X, axis=0)
        # zero-variance columns are left unscaled (they are centred to 0)
        scale[scale == 0.0] = 1.0
        self.scale_ = scale
        return self

    def transform(self, X: np.ndarray) -> np.ndarray:
        if self.mean_ is None or self.scale_ is None:
            raise RuntimeError("StandardScaler must be fitted before calling transform().")
        X = np.asarray(X, dtype=np.float64)
        return (X - self.mean_) / self.scale_

    def fit_transform(self, X: np.ndarray) -> np.ndarray:
        return self.fit(X).transform(X)

    def unscale_coef(self, w: np.ndarray, b: float) -> tuple[np.ndarray, float]:
        """
        Map slopes/intercept fitted on standardised columns back to raw units.

        ``b + sum(w_j (x_j - m_j) / s_j)  ==  b' + sum(w'_j x_j)``
        """
        if self.mean_ is None or self.scale_ is None:
            raise RuntimeError("StandardScaler must be fitted before calling unscale_coef().")
        w_raw = np.asarray(w, dtype=np.float64) / self.scale_
        b_raw = float(b) - float(np.dot(w_raw, self.mean_))
        return w_raw, b_raw
