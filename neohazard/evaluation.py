"""
Score either estimator on a test set.

A 1-D coefficient vector takes the frequentist path; a sample set (a 2-D
array, a :class:`~neohazard.sampler.PosteriorChain` or a
:class:`~neohazard.sampler.PosteriorFit`) takes the Bayesian path, where
each row's probability is the posterior-predictive mean and its interval
comes from percentiles of the per-draw probabilities. The evaluator does
not care how the draws were produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm

from ._math import LOGIT_CLAMP, _sigmoid
from .data import check_coefficients, check_design
from .exceptions import ShapeError
from .linear_model import RegularizationPath
from .metrics import accuracy_score, brier_score, calculate_youden_j, log_loss, roc_auc_score
from .predictor import add_intercept, hazard_probability
from .sampler import PosteriorChain, PosteriorFit

__all__ = [
    "PredictiveResult",
    "PredictiveEvaluator",
    "compare_results",
    "wald_covariance",
]

logger = logging.getLogger(__name__)

# rows x draws held in memory at once when averaging over a chain
_BLOCK_CELLS = 2_000_000


def _frozen(a: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if a is None:
        return None
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


@dataclass(frozen=True)
class PredictiveResult:
    """
    Per-row predictions for one scoring call.

    ``accuracy`` and the other scores are ``None`` when undefined: no rows,
    or no ground truth supplied. ``roc_auc`` is also ``None`` when the test
    labels hold a single class.
    """

    method: str
    probabilities: np.ndarray
    labels: np.ndarray
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None
    y_true: Optional[np.ndarray] = None
    threshold: float = 0.5
    interval: Optional[float] = None
    n_draws: int = 1
    accuracy: Optional[float] = None
    brier: Optional[float] = None
    log_loss: Optional[float] = None
    roc_auc: Optional[float] = None
    youden_j: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("probabilities", "labels", "lower", "upper", "y_true"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    def __len__(self) -> int:
        return int(self.probabilities.shape[0])

    @property
    def n_rows(self) -> int:
        return len(self)

    @property
    def defined(self) -> bool:
        """Whether ``accuracy`` is a real score."""
        return self.accuracy is not None

    @property
    def has_intervals(self) -> bool:
        return self.lower is not None and self.upper is not None

    @property
    def mean_interval_width(self) -> Optional[float]:
        if not self.has_intervals or self.n_rows == 0:
            return None
        return float(np.mean(self.upper - self.lower))

    def scores(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "n_rows": self.n_rows,
            "accuracy": self.accuracy,
            "brier": self.brier,
            "log_loss": self.log_loss,
            "roc_auc": self.roc_auc,
            "youden_j": self.youden_j,
            "mean_interval_width": self.mean_interval_width,
        }

    def summary(self) -> str:
        if not self.defined:
            reason = "empty test set" if self.n_rows == 0 else "no ground truth"
            return f"{self.method}: accuracy undefined ({reason}), {self.n_rows} rows"
        return f"{self.method}: accuracy {self.accuracy:.4f} on {self.n_rows} rows"

    def to_frame(self) -> pd.DataFrame:
        data: Dict[str, Any] = {
            "probability": self.probabilities,
            "label": self.labels,
        }
        if self.has_intervals:
            data["lower"] = self.lower
            data["upper"] = self.upper
        if self.y_true is not None:
            data["y_true"] = self.y_true
        return pd.DataFrame(data)


def wald_covariance(
    coef: Sequence[float] | np.ndarray,
    X: pd.DataFrame | np.ndarray,
    *,
    l2: float = 0.0,
) -> np.ndarray:
    """
    Inverse observed information of a logistic fit at ``coef``.

    ``l2`` is added to the slope diagonal (not the intercept) of the
    summed information, e.g. ``n * strength * (1 - l1_ratio)`` for a ridge
    part fitted on raw columns.
    """
    X_arr, _, _ = check_design(X)
    beta = check_coefficients(coef, X_arr.shape[1])
    Xa = add_intercept(X_arr)
    p = _sigmoid(Xa @ beta)
    info = (Xa * (p * (1.0 - p))[:, None]).T @ Xa
    info[np.diag_indices_from(info)] += np.r_[0.0, np.full(X_arr.shape[1], float(l2))]
    cov = np.linalg.pinv(info)
    return 0.5 * (cov + cov.T)


class PredictiveEvaluator:
    """
    Turn a fitted estimate into probabilities, labels, intervals and scores.

    Parameters
    ----------
    threshold :
        A row is labelled hazardous when its probability is >= threshold.
    interval :
        Central mass of the reported interval (0.95 -> 2.5th/97.5th percentiles).
    """

    def __init__(self, threshold: float = 0.5, interval: float = 0.95) -> None:
        if not 0.0 < float(threshold) < 1.0:
            raise ValueError("threshold must lie strictly between 0 and 1.")
        if not 0.0 < float(interval) < 1.0:
            raise ValueError("interval must lie strictly between 0 and 1.")
        self.threshold = float(threshold)
        self.interval = float(interval)

    @staticmethod
    def _as_draws(estimate) -> Optional[np.ndarray]:
        """Return ``(n_draws, p + 1)`` for sample sets, ``None`` for a point estimate."""
        if isinstance(estimate, PosteriorFit):
            return estimate.pooled().samples
        if isinstance(estimate, PosteriorChain):
            return estimate.samples
        if isinstance(estimate, RegularizationPath):
            raise TypeError(
                "Pick one coefficient vector from the path first, "
                "e.g. path.coefficients(-1) or path.at(strength)."
            )
        arr = np.asarray(estimate, dtype=np.float64)
        if arr.ndim == 1:
            return None
        if arr.ndim != 2 or arr.shape[0] == 0:
            raise ShapeError(f"Posterior draws must be a non-empty 2D array, got shape {arr.shape}.")
        return arr

    def _posterior_predictive(self, draws: np.ndarray, X: np.ndarray):
        n = X.shape[0]
        lo_q = 50.0 * (1.0 - self.interval)
        hi_q = 100.0 - lo_q
        mean = np.empty(n, dtype=np.float64)
        lower = np.empty(n, dtype=np.float64)
        upper = np.empty(n, dtype=np.float64)
        block = max(1, _BLOCK_CELLS // draws.shape[0])
        for start in range(0, n, block):
            sl = slice(start, min(start + block, n))
            z = X[sl] @ draws[:, 1:].T + draws[:, 0]
            probs = _sigmoid(np.clip(z, -LOGIT_CLAMP, LOGIT_CLAMP))
            mean[sl] = probs.mean(axis=1)
            lower[sl], upper[sl] = np.percentile(probs, [lo_q, hi_q], axis=1)
        # keep the posterior-predictive mean inside its own interval
        return mean, np.minimum(lower, mean), np.maximum(upper, mean)

    def _wald_interval(self, beta: np.ndarray, cov: np.ndarray, X: np.ndarray):
        d = beta.shape[0]
        cov = np.asarray(cov, dtype=np.float64)
        if cov.shape != (d, d):
            raise ShapeError(f"coef_cov must have shape {(d, d)}, got {cov.shape}.")
        Xa = add_intercept(X)
        z = np.clip(Xa @ beta, -LOGIT_CLAMP, LOGIT_CLAMP)
        se = np.sqrt(np.maximum(np.einsum("ij,jk,ik->i", Xa, cov, Xa), 0.0))
        crit = float(norm.ppf(0.5 + 0.5 * self.interval))
        return _sigmoid(z - crit * se), _sigmoid(z + crit * se)

    def evaluate(
        self,
        estimate,
        X_test: pd.DataFrame | np.ndarray,
        y_test: Optional[Sequence[int] | np.ndarray] = None,
        *,
        threshold: Optional[float] = None,
        coef_cov: Optional[np.ndarray] = None,
    ) -> PredictiveResult:
        """
        Score ``estimate`` on ``X_test``.

        Parameters
        ----------
        estimate :
            Intercept-first coefficient vector (frequentist), or posterior
            draws as a 2-D array, PosteriorChain or PosteriorFit (Bayesian).
        X_test, y_test :
            Test design and optional labels. Zero rows are accepted.
        threshold :
            Overrides the evaluator's threshold for this call.
        coef_cov :
            Covariance of a point estimate; enables Wald intervals on the
            frequentist path.
        """
        thr = self.threshold if threshold is None else float(threshold)
        draws = self._as_draws(estimate)
        width = (draws.shape[1] if draws is not None else np.asarray(estimate).shape[0]) - 1
        X, y, _ = check_design(X_test, y_test, n_features=width, allow_empty=True)

        lower = upper = None
        if draws is None:
            beta = check_coefficients(estimate, width)
            method, n_draws = "frequentist", 1
            probs = hazard_probability(beta, X) if X.shape[0] else np.empty(0)
            if coef_cov is not None:
                lower, upper = self._wald_interval(beta, coef_cov, X)
        else:
            method, n_draws = "bayesian", int(draws.shape[0])
            probs, lower, upper = self._posterior_predictive(draws, X)

        labels = (probs >= thr).astype(int)

        scores: Dict[str, Optional[float]] = {}
        if y is not None and y.size:
            scores["accuracy"] = accuracy_score(y, labels)
            scores["brier"] = brier_score(y, probs)
            scores["log_loss"] = log_loss(y, probs)
            scores["youden_j"] = calculate_youden_j(y, labels)
            if np.unique(y).size == 2:
                scores["roc_auc"] = roc_auc_score(y, probs)
        elif X.shape[0] == 0:
            logger.info("Empty test set: accuracy is undefined.")

        result = PredictiveResult(
            method=method,
            probabilities=probs,
            labels=labels,
            lower=lower,
            upper=upper,
            y_true=y,
            threshold=thr,
            interval=self.interval if lower is not None else None,
            n_draws=n_draws,
            **scores,
        )
        logger.debug(result.summary())
        return result


def compare_results(results: Mapping[str, PredictiveResult]) -> pd.DataFrame:
    """Scalar scores of several evaluations side by side, one row per method."""
    rows = {name: res.scores() for name, res in results.items()}
    return pd.DataFrame.from_dict(rows, orient="index")
