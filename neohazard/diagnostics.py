"""
Mixing diagnostics for posterior chains.

All functions read the draws and never modify them. The effective sample
size follows Geyer's initial monotone sequence estimator in its multi-chain
form (as used by Stan and ArviZ); R-hat is the split Gelman-Rubin statistic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from .data import parameter_names
from .exceptions import ShapeError
from .sampler import PosteriorChain, PosteriorFit

__all__ = [
    "autocorrelation",
    "effective_sample_size",
    "split_rhat",
    "DiagnosticsReport",
    "ConvergenceDiagnostics",
]

logger = logging.getLogger(__name__)


def _autocovariance(x: np.ndarray) -> np.ndarray:
    """Biased autocovariance at lags 0..n-1 via FFT."""
    x = np.asarray(x, dtype=np.float64)
    n = x.shape[0]
    xc = x - x.mean()
    size = 1 << int(np.ceil(np.log2(2 * n)))
    f = np.fft.rfft(xc, n=size)
    return np.fft.irfft(f * np.conjugate(f), n=size)[:n] / n


def autocorrelation(x: Sequence[float] | np.ndarray, max_lag: int = 20) -> np.ndarray:
    """
    Autocorrelation of a 1-D trace at lags ``1..max_lag``.

    Lags the trace is too short for are NaN. A constant trace is perfectly
    autocorrelated (all ones).
    """
    x = np.asarray(x, dtype=np.float64)
    if x.ndim != 1:
        raise ShapeError(f"autocorrelation expects a 1D trace, got shape {x.shape}.")
    out = np.full(int(max_lag), np.nan, dtype=np.float64)
    n = x.shape[0]
    if n < 2:
        return out
    if np.ptp(x) == 0.0:
        out[: min(max_lag, n - 1)] = 1.0
        return out
    acov = _autocovariance(x)
    m = min(int(max_lag), n - 1)
    out[:m] = acov[1 : m + 1] / acov[0]
    return out


def _as_chain_matrix(draws: np.ndarray | Sequence[np.ndarray]) -> np.ndarray:
    """Coerce a trace (n,) or list of traces into (m, n), trimmed to equal length."""
    if isinstance(draws, np.ndarray) and draws.ndim == 1:
        return draws[None, :].astype(np.float64)
    if isinstance(draws, np.ndarray) and draws.ndim == 2:
        return draws.astype(np.float64)
    traces = [np.asarray(d, dtype=np.float64) for d in draws]
    n = min(t.shape[0] for t in traces)
    return np.vstack([t[:n] for t in traces])


def effective_sample_size(draws: np.ndarray | Sequence[np.ndarray]) -> float:
    """
    Effective sample size of one parameter.

    Parameters
    ----------
    draws :
        A single trace ``(n,)`` or one trace per chain ``(m, n)``.
    """
    chains = _as_chain_matrix(draws)
    m, n = chains.shape
    if n < 2:
        return float(m * n)
    if np.ptp(chains) == 0.0:
        return 1.0

    acov = np.vstack([_autocovariance(c) for c in chains])
    mean_var = float(np.mean(acov[:, 0])) * n / (n - 1.0)
    var_plus = mean_var * (n - 1.0) / n
    if m > 1:
        var_plus += float(np.var(chains.mean(axis=1), ddof=1))
    if var_plus <= 0.0:
        return 1.0

    def rho(t: int) -> float:
        return 1.0 - (mean_var - float(np.mean(acov[:, t]))) / var_plus

    if n < 4:
        tau = 1.0 + 2.0 * max(rho(1), 0.0)
        return float(m * n / tau)

    rho_hat = np.zeros(n, dtype=np.float64)
    rho_hat[0] = 1.0
    rho_even, rho_odd = 1.0, rho(1)
    rho_hat[1] = rho_odd

    # Geyer: sum consecutive pairs while their sum stays positive
    t = 1
    while t < n - 3 and rho_even + rho_odd > 0.0:
        rho_even, rho_odd = rho(t + 1), rho(t + 2)
        if rho_even + rho_odd >= 0.0:
            rho_hat[t + 1] = rho_even
            rho_hat[t + 2] = rho_odd
        t += 2
    max_t = t - 2
    if rho_even > 0.0:
        rho_hat[max_t + 1] = rho_even

    # initial monotone sequence
    t = 1
    while t <= max_t - 2:
        if rho_hat[t + 1] + rho_hat[t + 2] > rho_hat[t - 1] + rho_hat[t]:
            rho_hat[t + 1] = 0.5 * (rho_hat[t - 1] + rho_hat[t])
            rho_hat[t + 2] = rho_hat[t + 1]
        t += 2

    total = float(m * n)
    tau = -1.0 + 2.0 * float(np.sum(rho_hat[: max_t + 1])) + rho_hat[max_t + 1]
    tau = max(tau, 1.0 / np.log10(total)) if total > 1 else max(tau, 1.0)
    return float(total / tau)


def split_rhat(draws: np.ndarray | Sequence[np.ndarray]) -> float:
    """
    Split-R-hat of one parameter; NaN when chains are shorter than 4 draws.

    Each chain is cut in half so a single chain still yields a statistic.
    """
    chains = _as_chain_matrix(draws)
    m, n = chains.shape
    half = n // 2
    if half < 2:
        return float("nan")
    halves = np.vstack([chains[:, :half], chains[:, n - half:]])
    within = float(np.mean(np.var(halves, axis=1, ddof=1)))
    if within == 0.0:
        return float("nan")
    between = float(np.var(halves.mean(axis=1), ddof=1))
    var_plus = within * (half - 1.0) / half + between
    return float(np.sqrt(var_plus / within))


@dataclass(frozen=True)
class DiagnosticsReport:
    """
    Per-parameter mixing summary of one or more chains.

    ``converged`` is advisory: it never blocks prediction, and ``reasons``
    lists the checks that failed.
    """

    parameter_names: Tuple[str, ...]
    mean: np.ndarray
    median: np.ndarray
    sd: np.ndarray
    q_low: np.ndarray
    q_high: np.ndarray
    autocorr: np.ndarray
    ess: np.ndarray
    rhat: np.ndarray
    n_samples: int
    n_chains: int
    converged: bool
    reasons: Tuple[str, ...] = ()
    thresholds: dict = field(default_factory=dict)

    @property
    def min_ess(self) -> float:
        return float(np.min(self.ess)) if self.ess.size else float("nan")

    def autocorr_at(self, lag: int) -> np.ndarray:
        """Autocorrelation of every parameter at ``lag`` (1-based)."""
        if not 1 <= lag <= self.autocorr.shape[1]:
            raise ValueError(f"lag must lie in [1, {self.autocorr.shape[1]}].")
        return self.autocorr[:, lag - 1]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "mean": self.mean,
                "median": self.median,
                "sd": self.sd,
                "q2.5": self.q_low,
                "q97.5": self.q_high,
                "ess": self.ess,
                "rhat": self.rhat,
            },
            index=pd.Index(self.parameter_names, name="parameter"),
        )
        for lag in range(1, self.autocorr.shape[1] + 1):
            df[f"acf{lag}"] = self.autocorr[:, lag - 1]
        return df


class ConvergenceDiagnostics:
    """
    Summarise a posterior chain and flag whether it looks converged.

    Parameters
    ----------
    max_lag :
        Largest autocorrelation lag reported.
    ess_threshold :
        Minimum effective sample size required of every parameter.
    autocorr_bound :
        Largest tolerated autocorrelation at ``reference_lag``.
    reference_lag :
        Lag at which ``autocorr_bound`` is checked.
    rhat_bound :
        Largest tolerated split-R-hat (skipped when R-hat is undefined).
    """

    def __init__(
        self,
        max_lag: int = 20,
        ess_threshold: float = 200.0,
        autocorr_bound: float = 0.3,
        reference_lag: int = 5,
        rhat_bound: float = 1.05,
    ) -> None:
        if int(max_lag) < 1:
            raise ValueError("max_lag must be at least 1.")
        if not 1 <= int(reference_lag) <= int(max_lag):
            raise ValueError("reference_lag must lie in [1, max_lag].")
        self.max_lag = int(max_lag)
        self.ess_threshold = float(ess_threshold)
        self.autocorr_bound = float(autocorr_bound)
        self.reference_lag = int(reference_lag)
        self.rhat_bound = float(rhat_bound)

    @staticmethod
    def _collect(chain) -> Tuple[List[np.ndarray], Tuple[str, ...]]:
        if isinstance(chain, PosteriorFit):
            draws = [c.samples for c in chain.chains]
            names = chain.chains[0].parameter_names
        elif isinstance(chain, PosteriorChain):
            draws = [chain.samples]
            names = chain.parameter_names
        elif isinstance(chain, np.ndarray):
            if chain.ndim != 2:
                raise ShapeError(f"Draws must be 2D (n_samples, n_params), got shape {chain.shape}.")
            draws = [chain]
            names = parameter_names(None, chain.shape[1] - 1)
        else:
            draws = [np.asarray(c, dtype=np.float64) for c in chain]
            if not draws or any(d.ndim != 2 for d in draws):
                raise ShapeError("Expected a non-empty list of 2D (n_samples, n_params) arrays.")
            names = parameter_names(None, draws[0].shape[1] - 1)
        widths = {d.shape[1] for d in draws}
        if len(widths) != 1:
            raise ShapeError(f"Chains disagree on parameter count: {sorted(widths)}.")
        if any(d.shape[0] == 0 for d in draws):
            raise ShapeError("Cannot diagnose an empty chain.")
        return draws, names

    def diagnose(self, chain) -> DiagnosticsReport:
        """
        Build a :class:`DiagnosticsReport`.

        ``chain`` may be a :class:`PosteriorChain`, a :class:`PosteriorFit`,
        an ``(n_samples, n_params)`` array, or a list of such arrays.
        """
        draws, names = self._collect(chain)
        pooled = np.vstack(draws)
        n_total, n_par = pooled.shape
        n_min = min(d.shape[0] for d in draws)

        acf = np.empty((n_par, self.max_lag), dtype=np.float64)
        ess = np.empty(n_par, dtype=np.float64)
        rhat = np.empty(n_par, dtype=np.float64)
        for j in range(n_par):
            traces = [d[:n_min, j] for d in draws]
            acf[j] = np.mean([autocorrelation(t, self.max_lag) for t in traces], axis=0)
            ess[j] = effective_sample_size(traces)
            rhat[j] = split_rhat(traces)

        reasons = []
        if not np.all(ess > self.ess_threshold):
            reasons.append(f"min ESS {float(np.min(ess)):.1f} <= {self.ess_threshold:g}")
        ref = acf[:, self.reference_lag - 1]
        if np.any(np.isnan(ref)):
            reasons.append(f"autocorrelation at lag {self.reference_lag} undefined (chain too short)")
        elif np.any(np.abs(ref) > self.autocorr_bound):
            reasons.append(
                f"max |ACF({self.reference_lag})| {float(np.max(np.abs(ref))):.3f} > {self.autocorr_bound:g}"
            )
        finite_rhat = rhat[np.isfinite(rhat)]
        if finite_rhat.size and np.any(finite_rhat > self.rhat_bound):
            reasons.append(f"max R-hat {float(np.max(finite_rhat)):.3f} > {self.rhat_bound:g}")

        converged = not reasons
        if not converged:
            logger.info("Chain not flagged converged: %s", "; ".join(reasons))

        return DiagnosticsReport(
            parameter_names=tuple(names),
            mean=pooled.mean(axis=0),
            median=np.median(pooled, axis=0),
            sd=pooled.std(axis=0, ddof=1) if n_total > 1 else np.zeros(n_par),
            q_low=np.percentile(pooled, 2.5, axis=0),
            q_high=np.percentile(pooled, 97.5, axis=0),
            autocorr=acf,
            ess=ess,
            rhat=rhat,
            n_samples=int(n_total),
            n_chains=len(draws),
            converged=converged,
            reasons=tuple(reasons),
            thresholds={
                "ess_threshold": self.ess_threshold,
                "autocorr_bound": self.autocorr_bound,
                "reference_lag": self.reference_lag,
                "rhat_bound": self.rhat_bound,
            },
        )
