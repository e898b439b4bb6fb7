"""
Low-level numerical helpers used throughout the NEOHAZARD package.

The functions in this module are intentionally lightweight so they can be
imported by the predictor, the solvers and the sampler without creating
cyclic dependencies.
"""

from __future__ import annotations

import numpy as np

__all__ = [
    "LOGIT_CLAMP",
    "_sigmoid",
    "_softplus",
    "_binary_log_loss_from_logits",
    "_bernoulli_log_likelihood",
    "_soft_threshold",
]

# sigmoid(+-30) is still strictly inside (0, 1) in float64; +-40 is not.
LOGIT_CLAMP = 30.0


def _sigmoid(z: np.ndarray | float) -> np.ndarray | float:
    """Numerically stable logistic sigmoid on a clamped linear predictor."""
    z = np.clip(z, -LOGIT_CLAMP, LOGIT_CLAMP)
    return 1.0 / (1.0 + np.exp(-z))


def _softplus(z: np.ndarray | float) -> np.ndarray | float:
    """Stable computation of log(1 + exp(z))."""
    z = np.asarray(z)
    return np.log1p(np.exp(-np.abs(z))) + np.maximum(z, 0.0)


def _binary_log_loss_from_logits(y: np.ndarray, z: np.ndarray) -> float:
    """
    Binary cross-entropy given logits.

    Parameters
    ----------
    y :
        Binary labels in {0, 1}.
    z :
        Logits (X w + b).
    """
    return float(np.mean(_softplus(z) - y * z))


def _bernoulli_log_likelihood(y: np.ndarray, z: np.ndarray) -> float:
    """Summed Bernoulli log-likelihood given logits (unclamped)."""
    return float(np.sum(y * z - _softplus(z)))


def _soft_threshold(w: np.ndarray | float, thresh: float) -> np.ndarray | float:
    """Proximal operator for the L1 norm."""
    return np.sign(w) * np.maximum(np.abs(w) - thresh, 0.0)
