"""
Frequentist estimator: elastic-net logistic regression along a penalty path.

The path is walked from the strongest to the weakest penalty and each fit is
warm-started from the previous solution, which is why ``strengths`` must be
strictly decreasing.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ._solvers import _CDLogistic
from .data import check_design, parameter_names, warn_degenerate
from .exceptions import NonConvergenceWarning
from .preprocessing import StandardScaler

__all__ = ["RegularizationPath", "RegularizedFitter"]

logger = logging.getLogger(__name__)


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


@dataclass(frozen=True)
class RegularizationPath:
    """
    Coefficient vectors fitted across strictly decreasing penalty strengths.

    Attributes
    ----------
    strengths :
        ``(k,)`` penalty strengths, strictly decreasing.
    coef_ :
        ``(p + 1, k)`` matrix, one intercept-first coefficient vector per column.
    n_iter :
        Coordinate-descent sweeps used at each strength.
    converged :
        Whether each strength reached the tolerance within ``max_iter``.
    """

    strengths: np.ndarray
    coef_: np.ndarray
    n_iter: np.ndarray
    converged: np.ndarray
    l1_ratio: float = 1.0
    feature_names: Tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        for name in ("strengths", "coef_", "n_iter", "converged"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    def __len__(self) -> int:
        return int(self.strengths.shape[0])

    def __iter__(self) -> Iterator[Tuple[float, np.ndarray]]:
        for i in range(len(self)):
            yield float(self.strengths[i]), self.coefficients(i)

    @property
    def all_converged(self) -> bool:
        return bool(np.all(self.converged))

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return parameter_names(self.feature_names, self.coef_.shape[0] - 1)

    def coefficients(self, index: int = -1) -> np.ndarray:
        """Coefficient vector at position ``index`` of the path (default: weakest penalty)."""
        return self.coef_[:, index]

    def at(self, strength: float) -> np.ndarray:
        """Coefficient vector fitted at exactly ``strength``."""
        hits = np.where(np.isclose(self.strengths, float(strength), rtol=1e-12, atol=0.0))[0]
        if hits.size == 0:
            raise KeyError(f"Strength {strength!r} is not on the path {self.strengths.tolist()}.")
        return self.coefficients(int(hits[0]))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.coef_,
            index=list(self.parameter_names),
            columns=pd.Index(self.strengths, name="strength"),
        )


class RegularizedFitter:
    """
    Penalised logistic regression fitted by cyclic coordinate descent.

    Objective at each strength ``lam``::

        mean binomial NLL + lam * (l1_ratio * |w|_1 + (1 - l1_ratio) / 2 * |w|_2^2)

    The intercept is never penalised. With ``standardize=True`` the problem
    is solved on standardised columns and the coefficients are reported on
    the original scale.

    Parameters
    ----------
    l1_ratio :
        Elastic-net mix in [0, 1]; 1 is the lasso, 0 is ridge.
    tol :
        Stop a strength when no coefficient moves more than this in a sweep.
    max_iter :
        Sweep cap per strength; hitting it raises a NonConvergenceWarning.
    standardize :
        Fit on centred/scaled columns.
    verbose :
        Log one line per strength at INFO instead of DEBUG.
    """

    def __init__(
        self,
        l1_ratio: float = 1.0,
        tol: float = 1e-7,
        max_iter: int = 1000,
        standardize: bool = True,
        verbose: bool = False,
    ) -> None:
        if not 0.0 <= float(l1_ratio) <= 1.0:
            raise ValueError(f"l1_ratio must lie in [0, 1], got {l1_ratio!r}.")
        if float(tol) <= 0.0:
            raise ValueError("tol must be positive.")
        if int(max_iter) < 1:
            raise ValueError("max_iter must be at least 1.")
        self.l1_ratio = float(l1_ratio)
        self.tol = float(tol)
        self.max_iter = int(max_iter)
        self.standardize = bool(standardize)
        self.verbose = bool(verbose)

    def get_params(self) -> dict:
        return {
            "l1_ratio": self.l1_ratio,
            "tol": self.tol,
            "max_iter": self.max_iter,
            "standardize": self.standardize,
            "verbose": self.verbose,
        }

    @staticmethod
    def _check_strengths(strengths: Sequence[float] | np.ndarray) -> np.ndarray:
        lams = np.atleast_1d(np.asarray(strengths, dtype=np.float64))
        if lams.ndim != 1 or lams.size == 0:
            raise ValueError("strengths must be a non-empty 1D sequence.")
        if np.any(~np.isfinite(lams)) or np.any(lams <= 0.0):
            raise ValueError("strengths must be finite and positive.")
        if np.any(np.diff(lams) >= 0.0):
            raise ValueError("strengths must be strictly decreasing.")
        return lams

    def fit(
        self,
        X: pd.DataFrame | np.ndarray,
        y: Sequence[int] | np.ndarray,
        strengths: Sequence[float] | np.ndarray,
        *,
        feature_names: Optional[Sequence[str]] = None,
        cancel=None,
    ) -> RegularizationPath:
        """
        Fit one coefficient vector per strength.

        Parameters
        ----------
        X, y :
            Training design ``(n, p)`` and labels in {0, 1}.
        strengths :
            Strictly decreasing positive penalty strengths.
        feature_names :
            Column names; taken from ``X`` when it is a DataFrame.
        cancel :
            Optional object with ``is_set()``, polled between sweeps.
        """
        if feature_names is None and isinstance(X, pd.DataFrame):
            feature_names = [str(c) for c in X.columns]
        X_arr, y_arr, info = check_design(X, y)
        lams = self._check_strengths(strengths)
        n, p = X_arr.shape
        names = tuple(feature_names) if feature_names is not None else ()
        warn_degenerate(info, feature_names)

        coef = np.zeros((p + 1, lams.size), dtype=np.float64)
        n_iter = np.zeros(lams.size, dtype=np.int64)
        converged = np.ones(lams.size, dtype=bool)

        if info.single_class:
            py = np.clip(np.mean(y_arr), 1e-6, 1 - 1e-6)
            coef[0, :] = np.log(py / (1 - py))
            return RegularizationPath(lams, coef, n_iter, converged, self.l1_ratio, names)

        scaler = None
        X_fit = X_arr
        if self.standardize:
            scaler = StandardScaler()
            X_fit = scaler.fit_transform(X_arr)

        log = logger.info if self.verbose else logger.debug
        w_ws: Optional[np.ndarray] = None
        b_ws: Optional[float] = None
        active_ws = None
        lam_prev = None

        for t, lam in enumerate(lams):
            solver = _CDLogistic(lam=lam, l1_ratio=self.l1_ratio, tol=self.tol,
                                 max_iter=self.max_iter)
            solver.fit(X_fit, y_arr, w0=w_ws, b0=b_ws, lam_prev=lam_prev,
                       active_init=active_ws, skip=info.constant_columns, cancel=cancel)

            # Warm-start for the next strength
            w_ws = solver.w_
            b_ws = solver.b_
            active_ws = np.where(np.abs(w_ws) > 0)[0]
            lam_prev = lam

            if scaler is not None:
                w_out, b_out = scaler.unscale_coef(solver.w_, solver.b_)
            else:
                w_out, b_out = solver.w_, solver.b_
            coef[0, t] = b_out
            coef[1:, t] = w_out
            n_iter[t] = solver.n_iter_
            converged[t] = solver.converged_

            log("[path] lam=%.4g -> %d nonzero, %d sweeps%s", lam, int(active_ws.size),
                solver.n_iter_, "" if solver.converged_ else " (not converged)")

        if not np.all(converged):
            bad = lams[~converged].tolist()
            msg = (f"Coordinate descent did not reach tol={self.tol:g} within "
                   f"max_iter={self.max_iter} at strengths {bad}.")
            logger.warning(msg)
            warnings.warn(msg, NonConvergenceWarning, stacklevel=2)

        return RegularizationPath(lams, coef, n_iter, converged, self.l1_ratio, names)
