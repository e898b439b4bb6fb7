"""
Bayesian estimator: random-walk Metropolis sampling of logistic coefficients.

Model::

    y_i ~ Bernoulli(p_i),   logit(p_i) = beta . [1, x_i]
    beta_k ~ Normal(prior_mean, prior_variance)   independently

Three symmetric proposals are available:

``laplace``
    Multivariate random walk whose covariance is ``proposal_scale**2``
    times the inverse negative Hessian of the log-posterior at its mode
    (the MCMClogit scheme).
``isotropic``
    Random walk with covariance ``proposal_scale**2 * I``.
``componentwise``
    Metropolis-within-Gibbs: one coordinate at a time, step size
    ``proposal_scale * sqrt(diag(H^-1))``.

Every chain owns a generator spawned from ``SeedSequence(seed)`` so chains
are reproducible and independent of how they are scheduled.
"""

from __future__ import annotations

import dataclasses
import logging
import multiprocessing as mp
import warnings
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ._math import _bernoulli_log_likelihood, _sigmoid
from .data import check_cancel, check_design, parameter_names, warn_degenerate
from .exceptions import DivergedChainError, NonConvergenceWarning
from .predictor import add_intercept

__all__ = [
    "PROPOSALS",
    "SamplerConfig",
    "PosteriorChain",
    "PosteriorFit",
    "PosteriorSampler",
    "log_posterior",
    "posterior_mode",
]

logger = logging.getLogger(__name__)

PROPOSALS = ("laplace", "isotropic", "componentwise")


@dataclass(frozen=True)
class SamplerConfig:
    """
    One MCMC configuration.

    Parameters mirror the options a caller sets once per comparison run:
    prior spread, chain count and length, burn-in, thinning, seed and the
    random-walk proposal.
    """

    prior_variance: float = 1e6
    prior_mean: float = 0.0
    n_chains: int = 1
    iterations: int = 10_000
    burn_in: int = 1_000
    thin: int = 1
    seed: int = 0
    proposal_scale: float = 1.1
    proposal: str = "laplace"
    min_acceptance: float = 0.01
    acceptance_band: Tuple[float, float] = (0.1, 0.7)
    grace_period: int = 100
    init_jitter: float = 1.0
    n_jobs: int = 1

    def __post_init__(self) -> None:
        if not np.isfinite(self.prior_variance) or self.prior_variance <= 0:
            raise ValueError("prior_variance must be positive and finite.")
        if not np.isfinite(self.prior_mean):
            raise ValueError("prior_mean must be finite.")
        if int(self.n_chains) < 1:
            raise ValueError("n_chains must be at least 1.")
        if int(self.iterations) < 1:
            raise ValueError("iterations must be at least 1.")
        if not 0 <= int(self.burn_in) < int(self.iterations):
            raise ValueError("burn_in must satisfy 0 <= burn_in < iterations.")
        if int(self.thin) < 1:
            raise ValueError("thin must be at least 1.")
        if self.n_retained < 1:
            raise ValueError("iterations, burn_in and thin leave no retained samples.")
        if int(self.seed) < 0:
            raise ValueError("seed must be a non-negative integer.")
        if not self.proposal_scale > 0:
            raise ValueError("proposal_scale must be positive.")
        if self.proposal not in PROPOSALS:
            raise ValueError(f"Unknown proposal '{self.proposal}'. Use one of {PROPOSALS}.")
        if not 0.0 <= self.min_acceptance < 1.0:
            raise ValueError("min_acceptance must lie in [0, 1).")
        lo, hi = self.acceptance_band
        if not 0.0 <= lo < hi <= 1.0:
            raise ValueError("acceptance_band must be (low, high) with 0 <= low < high <= 1.")
        if int(self.grace_period) < 0:
            raise ValueError("grace_period must be non-negative.")
        if self.init_jitter < 0:
            raise ValueError("init_jitter must be non-negative.")
        if int(self.n_jobs) < 1:
            raise ValueError("n_jobs must be at least 1.")

    @property
    def n_retained(self) -> int:
        """Samples kept per chain: ``floor((iterations - burn_in) / thin)``."""
        return (int(self.iterations) - int(self.burn_in)) // int(self.thin)

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "SamplerConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown sampler options: {unknown}")
        opts = dict(options)
        if "acceptance_band" in opts:
            opts["acceptance_band"] = tuple(float(v) for v in opts["acceptance_band"])
        return cls(**opts)

    def replace(self, **changes: Any) -> "SamplerConfig":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


@dataclass(frozen=True)
class PosteriorChain:
    """
    Retained draws of one chain (or the pooled draws of several).

    Attributes
    ----------
    samples :
        ``(n_kept, p + 1)`` intercept-first coefficient vectors.
    log_posterior :
        Unnormalised log-posterior of each retained draw.
    acceptance_rate :
        Accepted / proposed moves over the whole run, burn-in included.
    chain_id :
        Position in the fit; ``-1`` for pooled draws.
    """

    samples: np.ndarray
    log_posterior: np.ndarray
    acceptance_rate: float
    chain_id: int = 0
    seed: int = 0
    proposal: str = "laplace"
    warnings: Tuple[str, ...] = ()
    feature_names: Tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", _frozen(np.asarray(self.samples, dtype=np.float64)))
        object.__setattr__(self, "log_posterior", _frozen(np.asarray(self.log_posterior, dtype=np.float64)))

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def n_params(self) -> int:
        return int(self.samples.shape[1])

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return parameter_names(self.feature_names, self.n_params - 1)

    @property
    def healthy(self) -> bool:
        """No acceptance warnings were raised for this chain."""
        return not self.warnings

    def mean(self) -> np.ndarray:
        return self.samples.mean(axis=0)

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.samples, columns=list(self.parameter_names))
        df["log_posterior"] = self.log_posterior
        return df


@dataclass(frozen=True)
class PosteriorFit:
    """All chains of one sampling call plus the shared Laplace quantities."""

    chains: Tuple[PosteriorChain, ...]
    config: SamplerConfig
    mode: np.ndarray
    mode_covariance: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "chains", tuple(self.chains))
        object.__setattr__(self, "mode", _frozen(self.mode))
        object.__setattr__(self, "mode_covariance", _frozen(self.mode_covariance))

    def __len__(self) -> int:
        return len(self.chains)

    def __iter__(self) -> Iterator[PosteriorChain]:
        return iter(self.chains)

    @property
    def acceptance_rates(self) -> np.ndarray:
        return np.array([c.acceptance_rate for c in self.chains], dtype=np.float64)

    @property
    def warnings(self) -> Tuple[str, ...]:
        return tuple(w for c in self.chains for w in c.warnings)

    def pooled(self) -> PosteriorChain:
        """Concatenate every chain's retained draws, in chain order."""
        first = self.chains[0]
        n_total = sum(len(c) for c in self.chains)
        rate = float(np.sum([c.acceptance_rate * len(c) for c in self.chains]) / max(n_total, 1))
        return PosteriorChain(
            samples=np.vstack([c.samples for c in self.chains]),
            log_posterior=np.concatenate([c.log_posterior for c in self.chains]),
            acceptance_rate=rate,
            chain_id=-1,
            seed=first.seed,
            proposal=first.proposal,
            warnings=self.warnings,
            feature_names=first.feature_names,
        )

    def posterior_mean(self) -> np.ndarray:
        return self.pooled().mean()


def log_posterior(
    beta: np.ndarray,
    Xa: np.ndarray,
    y: np.ndarray,
    prior_mean: float = 0.0,
    prior_variance: float = 1e6,
) -> float:
    """
    Unnormalised log-posterior of intercept-first ``beta``.

    ``Xa`` already carries the leading column of ones.
    """
    with np.errstate(over="ignore", invalid="ignore"):
        z = Xa @ beta
        d = beta - prior_mean
        return _bernoulli_log_likelihood(y, z) - 0.5 * float(d @ d) / prior_variance


def _log_posterior_from_logits(z, beta, y, prior_mean, prior_variance) -> float:
    with np.errstate(over="ignore", invalid="ignore"):
        d = beta - prior_mean
        return _bernoulli_log_likelihood(y, z) - 0.5 * float(d @ d) / prior_variance


def posterior_mode(
    Xa: np.ndarray,
    y: np.ndarray,
    prior_mean: float = 0.0,
    prior_variance: float = 1e6,
    *,
    max_iter: int = 100,
    tol: float = 1e-8,
) -> Tuple[np.ndarray, np.ndarray, bool]:
    """
    Damped Newton search for the posterior mode.

    Returns
    -------
    mode :
        Intercept-first coefficient vector at the mode.
    neg_hessian :
        Negative Hessian of the log-posterior there (positive definite).
    converged :
        Whether the Newton step fell below ``tol``.
    """
    d = Xa.shape[1]
    prec = 1.0 / prior_variance
    beta = np.full(d, float(prior_mean), dtype=np.float64)
    lp = log_posterior(beta, Xa, y, prior_mean, prior_variance)
    converged = False

    for _ in range(max_iter):
        p = _sigmoid(Xa @ beta)
        grad = Xa.T @ (y - p) - prec * (beta - prior_mean)
        H = (Xa * (p * (1.0 - p))[:, None]).T @ Xa + prec * np.eye(d)
        step = np.linalg.solve(H, grad)

        t = 1.0
        for _ in range(30):
            cand = beta + t * step
            lp_cand = log_posterior(cand, Xa, y, prior_mean, prior_variance)
            if np.isfinite(lp_cand) and lp_cand >= lp - 1e-12:
                break
            t *= 0.5
        else:
            break
        beta, lp = cand, lp_cand
        if np.max(np.abs(t * step)) < tol:
            converged = True
            break

    p = _sigmoid(Xa @ beta)
    H = (Xa * (p * (1.0 - p))[:, None]).T @ Xa + prec * np.eye(d)
    return beta, H, converged


def _stable_cholesky(cov: np.ndarray) -> np.ndarray:
    cov = 0.5 * (cov + cov.T)
    jitter = 0.0
    scale = float(np.mean(np.diag(cov))) or 1.0
    for _ in range(8):
        try:
            return np.linalg.cholesky(cov + jitter * np.eye(cov.shape[0]))
        except np.linalg.LinAlgError:
            jitter = scale * 1e-10 if jitter == 0.0 else jitter * 10.0
    raise np.linalg.LinAlgError("Proposal covariance is not positive definite.")


@dataclass(frozen=True)
class _ChainTask:
    chain_id: int
    seed_seq: np.random.SeedSequence
    Xa: np.ndarray
    y: np.ndarray
    config: SamplerConfig
    start: np.ndarray
    post_chol: np.ndarray
    feature_names: Tuple[str, ...]


def _run_chain(task: _ChainTask, cancel=None) -> PosteriorChain:
    """Run one chain to completion; top-level so process pools can pickle it."""
    cfg = task.config
    rng = np.random.default_rng(task.seed_seq)
    Xa, y = task.Xa, task.y
    n_par = Xa.shape[1]
    mu, var = float(cfg.prior_mean), float(cfg.prior_variance)

    if cfg.proposal == "laplace":
        step_chol = cfg.proposal_scale * task.post_chol
    elif cfg.proposal == "isotropic":
        step_chol = cfg.proposal_scale * np.eye(n_par)
    else:
        step_sd = cfg.proposal_scale * np.sqrt(np.sum(task.post_chol ** 2, axis=1))

    beta = task.start + cfg.init_jitter * (task.post_chol @ rng.standard_normal(n_par))
    z = Xa @ beta
    lp = _log_posterior_from_logits(z, beta, y, mu, var)
    if not np.isfinite(lp):
        raise DivergedChainError(
            f"Chain {task.chain_id}: initial log-posterior is not finite.", chain_id=task.chain_id
        )

    n_keep = cfg.n_retained
    draws = np.empty((n_keep, n_par), dtype=np.float64)
    lps = np.empty(n_keep, dtype=np.float64)
    accepted = 0
    proposed = 0
    k = 0

    def _reject_non_finite(it: int, value: float) -> None:
        if it >= cfg.grace_period:
            raise DivergedChainError(
                f"Chain {task.chain_id}: non-finite log-posterior ({value}) at iteration {it}.",
                chain_id=task.chain_id,
                acceptance_rate=accepted / max(proposed, 1),
            )

    for it in range(cfg.iterations):
        check_cancel(cancel, f"Chain {task.chain_id}")
        if cfg.proposal == "componentwise":
            for j in range(n_par):
                delta = step_sd[j] * rng.standard_normal()
                log_u = np.log(rng.random())
                proposed += 1
                cand = beta.copy()
                cand[j] += delta
                with np.errstate(over="ignore", invalid="ignore"):
                    z_cand = z + delta * Xa[:, j]
                lp_cand = _log_posterior_from_logits(z_cand, cand, y, mu, var)
                if not np.isfinite(lp_cand):
                    _reject_non_finite(it, lp_cand)
                    continue
                if log_u < lp_cand - lp:
                    beta, z, lp = cand, z_cand, lp_cand
                    accepted += 1
        else:
            cand = beta + step_chol @ rng.standard_normal(n_par)
            log_u = np.log(rng.random())
            proposed += 1
            with np.errstate(over="ignore", invalid="ignore"):
                z_cand = Xa @ cand
            lp_cand = _log_posterior_from_logits(z_cand, cand, y, mu, var)
            if not np.isfinite(lp_cand):
                _reject_non_finite(it, lp_cand)
            elif log_u < lp_cand - lp:
                beta, z, lp = cand, z_cand, lp_cand
                accepted += 1

        if it >= cfg.burn_in and (it - cfg.burn_in + 1) % cfg.thin == 0:
            draws[k] = beta
            lps[k] = lp
            k += 1

    rate = accepted / max(proposed, 1)
    if rate < cfg.min_acceptance:
        raise DivergedChainError(
            f"Chain {task.chain_id}: acceptance rate {rate:.4f} is below "
            f"min_acceptance={cfg.min_acceptance:g}.",
            chain_id=task.chain_id,
            acceptance_rate=rate,
        )

    notes = []
    lo, hi = cfg.acceptance_band
    if not lo <= rate <= hi:
        notes.append(
            f"chain {task.chain_id}: acceptance rate {rate:.3f} outside [{lo:g}, {hi:g}]; "
            f"retune proposal_scale"
        )

    return PosteriorChain(
        samples=draws[:k],
        log_posterior=lps[:k],
        acceptance_rate=float(rate),
        chain_id=task.chain_id,
        seed=int(cfg.seed),
        proposal=cfg.proposal,
        warnings=tuple(notes),
        feature_names=task.feature_names,
    )


# parent-side poll interval while waiting on worker chains
_POLL_SECONDS = 0.05

# stop flag shared with the parent; set in each pool worker by _init_worker
_worker_stop = None


def _init_worker(stop) -> None:
    global _worker_stop
    _worker_stop = stop


def _run_chain_in_worker(task: _ChainTask) -> PosteriorChain:
    return _run_chain(task, _worker_stop)


class PosteriorSampler:
    """
    Draw posterior samples of Bayesian logistic-regression coefficients.

    Parameters
    ----------
    config :
        Default :class:`SamplerConfig`; a config passed to :meth:`sample`
        takes precedence.
    verbose :
        Log one line per finished chain at INFO instead of DEBUG.
    """

    def __init__(self, config: Optional[SamplerConfig] = None, verbose: bool = False) -> None:
        self.config = config if config is not None else SamplerConfig()
        self.verbose = bool(verbose)

    def sample(
        self,
        X: pd.DataFrame | np.ndarray,
        y: Sequence[int] | np.ndarray,
        config: Optional[SamplerConfig | Mapping[str, Any]] = None,
        *,
        feature_names: Optional[Sequence[str]] = None,
        cancel=None,
    ) -> PosteriorFit:
        """
        Run ``config.n_chains`` independent chains.

        Raises
        ------
        ShapeError
            ``X`` and ``y`` disagree on rows.
        DivergedChainError
            A chain stalled or produced non-finite log-posterior values.
        RunCancelledError
            ``cancel.is_set()`` became true before every chain finished. With
            ``n_jobs > 1`` the signal reaches the workers through a shared
            process event, so running chains stop at their next iteration.
        """
        if config is None:
            cfg = self.config
        elif isinstance(config, SamplerConfig):
            cfg = config
        else:
            cfg = SamplerConfig.from_dict(config)

        if feature_names is None and isinstance(X, pd.DataFrame):
            feature_names = [str(c) for c in X.columns]
        X_arr, y_arr, info = check_design(X, y)
        warn_degenerate(info, feature_names)
        names = tuple(feature_names) if feature_names is not None else ()

        Xa = add_intercept(X_arr)
        y_f = y_arr.astype(np.float64)
        mode, neg_hess, ok = posterior_mode(Xa, y_f, cfg.prior_mean, cfg.prior_variance)
        if not ok:
            logger.warning("Posterior mode search did not converge; proposals use the last Newton iterate.")
        mode_cov = np.linalg.inv(neg_hess)
        mode_cov = 0.5 * (mode_cov + mode_cov.T)
        post_chol = _stable_cholesky(mode_cov)

        seeds = np.random.SeedSequence(int(cfg.seed)).spawn(int(cfg.n_chains))
        tasks = [
            _ChainTask(i, seeds[i], Xa, y_f, cfg, mode, post_chol, names)
            for i in range(int(cfg.n_chains))
        ]

        log = logger.info if self.verbose else logger.debug
        if cfg.n_jobs == 1 or cfg.n_chains == 1:
            chains = []
            for task in tasks:
                chain = _run_chain(task, cancel)
                log("[mcmc] chain %d: %d draws, acceptance %.3f", task.chain_id, len(chain), chain.acceptance_rate)
                chains.append(chain)
        else:
            chains = self._sample_parallel(tasks, cfg, cancel, log)

        for chain in chains:
            for note in chain.warnings:
                logger.warning(note)
                warnings.warn(note, NonConvergenceWarning, stacklevel=2)

        return PosteriorFit(chains=tuple(chains), config=cfg, mode=mode, mode_covariance=mode_cov)

    @staticmethod
    def _sample_parallel(tasks, cfg: SamplerConfig, cancel, log):
        max_workers = min(int(cfg.n_jobs), len(tasks))
        ctx = mp.get_context()
        stop = ctx.Event()
        ex = ProcessPoolExecutor(max_workers=max_workers, mp_context=ctx,
                                 initializer=_init_worker, initargs=(stop,))
        owners = {ex.submit(_run_chain_in_worker, task): task for task in tasks}
        pending = set(owners)
        done = {}
        try:
            while pending:
                if cancel is not None and cancel.is_set():
                    stop.set()
                    check_cancel(cancel, "Sampling")
                finished, pending = wait(pending, timeout=_POLL_SECONDS, return_when=FIRST_COMPLETED)
                for fut in finished:
                    task = owners[fut]
                    chain = fut.result()
                    log("[mcmc|parallel] chain %d: %d draws, acceptance %.3f",
                        task.chain_id, len(chain), chain.acceptance_rate)
                    done[task.chain_id] = chain
            check_cancel(cancel, "Sampling")
        except BaseException:
            # running chains see the stop flag at their next iteration
            stop.set()
            ex.shutdown(wait=False, cancel_futures=True)
            raise
        ex.shutdown(wait=True)
        return [done[task.chain_id] for task in tasks]
