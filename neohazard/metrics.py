"""
Scores used to compare the two estimators on held-out data.

Accuracy and the proper scoring rules return ``None`` for an empty test set
so an undefined score can never be mistaken for a real one.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

__all__ = [
    "accuracy_score",
    "brier_score",
    "log_loss",
    "calculate_youden_j",
    "roc_auc_score",
]


def accuracy_score(
    y_true: Iterable[int] | np.ndarray,
    y_pred: Iterable[int] | np.ndarray,
) -> Optional[float]:
    """Fraction of matching labels; ``None`` when there are no rows."""
    yt = np.asarray(y_true, dtype=int)
    yp = np.asarray(y_pred, dtype=int)
    if yt.size == 0:
        return None
    return float(np.mean(yt == yp))


def brier_score(
    y_true: Iterable[int] | np.ndarray,
    probas: Iterable[float] | np.ndarray,
) -> Optional[float]:
    """Mean squared error of the predicted probabilities."""
    yt = np.asarray(y_true, dtype=np.float64)
    pr = np.asarray(probas, dtype=np.float64)
    if yt.size == 0:
        return None
    return float(np.mean((pr - yt) ** 2))


def log_loss(
    y_true: Iterable[int] | np.ndarray,
    probas: Iterable[float] | np.ndarray,
    eps: float = 1e-15,
) -> Optional[float]:
    """Mean binary cross-entropy of the predicted probabilities."""
    yt = np.asarray(y_true, dtype=np.float64)
    pr = np.clip(np.asarray(probas, dtype=np.float64), eps, 1.0 - eps)
    if yt.size == 0:
        return None
    return float(-np.mean(yt * np.log(pr) + (1.0 - yt) * np.log1p(-pr)))


def calculate_youden_j(
    y_true: Iterable[int] | np.ndarray,
    y_pred: Iterable[int] | np.ndarray,
) -> float:
    """
    Compute Youden's J statistic (sensitivity + specificity - 1).

    Parameters
    ----------
    y_true :
        Ground truth labels in {0, 1}.
    y_pred :
        Predicted labels in {0, 1}.
    """
    yt = np.asarray(y_true, dtype=bool)
    yp = np.asarray(y_pred, dtype=bool)

    tp = np.sum(yt & yp)
    tn = np.sum(~yt & ~yp)
    fp = np.sum(~yt & yp)
    fn = np.sum(yt & ~yp)

    sens = tp / (tp + fn) if (tp + fn) > 0 else 0.0
    spec = tn / (tn + fp) if (tn + fp) > 0 else 0.0
    return float(sens + spec - 1.0)


def _rankdata_average(a: np.ndarray) -> np.ndarray:
    """Tie-aware ranking with averaging; helper for ROC AUC."""
    order = np.argsort(a, kind="mergesort")
    ranks = np.empty_like(order, dtype=np.float64)
    i = 0
    n = a.size
    while i < n:
        j = i + 1
        while j < n and a[order[j]] == a[order[i]]:
            j += 1
        rank = 0.5 * (i + j - 1) + 1.0
        ranks[order[i:j]] = rank
        i = j
    return ranks


def roc_auc_score(
    y_true: Iterable[int] | np.ndarray,
    y_score: Iterable[float] | np.ndarray,
) -> float:
    """
    Area under the ROC curve for binary classification.

    Mann-Whitney formulation with average ranks for ties; matches
    scikit-learn's binary ROC AUC.
    """
    y = np.asarray(y_true, dtype=np.int64)
    if not np.array_equal(np.unique(y), [0, 1]):
        raise ValueError("roc_auc_score is undefined unless both labels 0 and 1 are present.")
    scores = np.asarray(y_score, dtype=np.float64)
    ranks = _rankdata_average(scores)

    pos = np.sum(y == 1)
    neg = np.sum(y == 0)
    sum_ranks_pos = np.sum(ranks[y == 1])
    u = sum_ranks_pos - pos * (pos + 1) / 2.0
    return float(u / (pos * neg))
