"""
NEOHAZARD package
-----------------

Hazard classification of near-Earth objects with two estimators on the same
six orbital/physical features: an elastic-net logistic regression path fitted
by coordinate descent, and a Bayesian logistic regression sampled by
random-walk Metropolis. Both feed one predictive evaluator.
"""

from __future__ import annotations

from ._version import __version__
from .data import FEATURE_COLUMNS, LABEL_COLUMN, Dataset
from .diagnostics import (
    ConvergenceDiagnostics,
    DiagnosticsReport,
    autocorrelation,
    effective_sample_size,
    split_rhat,
)
from .evaluation import PredictiveEvaluator, PredictiveResult, compare_results, wald_covariance
from .exceptions import (
    DegenerateInputError,
    DegenerateInputWarning,
    DivergedChainError,
    NonConvergenceWarning,
    RunCancelledError,
    ShapeError,
)
from .linear_model import RegularizationPath, RegularizedFitter
from .predictor import hazard_probability, linear_predictor
from .sampler import PosteriorChain, PosteriorFit, PosteriorSampler, SamplerConfig

__all__ = [
    "__version__",
    "FEATURE_COLUMNS",
    "LABEL_COLUMN",
    "Dataset",
    "ConvergenceDiagnostics",
    "DiagnosticsReport",
    "autocorrelation",
    "effective_sample_size",
    "split_rhat",
    "PredictiveEvaluator",
    "PredictiveResult",
    "compare_results",
    "wald_covariance",
    "DegenerateInputError",
    "DegenerateInputWarning",
    "DivergedChainError",
    "NonConvergenceWarning",
    "RunCancelledError",
    "ShapeError",
    "RegularizationPath",
    "RegularizedFitter",
    "hazard_probability",
    "linear_predictor",
    "PosteriorChain",
    "PosteriorFit",
    "PosteriorSampler",
    "SamplerConfig",
]
