"""
Design-matrix containers and call-entry validation.

The preprocessing stage (download, column pruning, imputation,
oversampling, train/test split) happens outside this package; what arrives
here is a clean numeric matrix of the six orbital/physical predictors and a
binary hazard label.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import DegenerateInputError, DegenerateInputWarning, RunCancelledError, ShapeError

__all__ = [
    "FEATURE_COLUMNS",
    "LABEL_COLUMN",
    "SOURCE_COLUMN_ALIASES",
    "Dataset",
    "DesignInfo",
    "check_design",
    "check_labels",
    "check_coefficients",
    "check_cancel",
    "warn_degenerate",
    "parameter_names",
]

logger = logging.getLogger(__name__)

FEATURE_COLUMNS: Tuple[str, ...] = (
    "absolute_magnitude",
    "relative_velocity",
    "orbit_uncertainty",
    "minimum_orbit_intersection",
    "perihelion_distance",
    "eccentricity",
)
LABEL_COLUMN = "hazardous"

# Headers used by the NASA near-Earth-object table.
SOURCE_COLUMN_ALIASES: Mapping[str, str] = {
    "Absolute Magnitude": "absolute_magnitude",
    "Relative Velocity km per sec": "relative_velocity",
    "Orbit Uncertainity": "orbit_uncertainty",
    "Minimum Orbit Intersection": "minimum_orbit_intersection",
    "Perihelion Distance": "perihelion_distance",
    "Eccentricity": "eccentricity",
    "Hazardous": "hazardous",
}


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


def parameter_names(feature_names: Optional[Sequence[str]], p: int) -> Tuple[str, ...]:
    """Names for an intercept-first coefficient vector over ``p`` features."""
    if feature_names is None or len(feature_names) != p:
        feature_names = [f"x{j}" for j in range(p)]
    return ("intercept",) + tuple(str(f) for f in feature_names)


@dataclass(frozen=True)
class DesignInfo:
    """What :func:`check_design` learned about a training design."""

    single_class: bool = False
    constant_columns: Tuple[int, ...] = ()

    @property
    def degenerate(self) -> bool:
        return self.single_class or bool(self.constant_columns)

    def describe(self, feature_names: Optional[Sequence[str]] = None) -> str:
        parts = []
        if self.single_class:
            parts.append("label vector has a single class")
        if self.constant_columns:
            if feature_names is not None:
                cols = [str(feature_names[j]) for j in self.constant_columns]
            else:
                cols = [str(j) for j in self.constant_columns]
            parts.append(f"zero-variance columns: {cols}")
        return "; ".join(parts)


def check_labels(y: Iterable[int] | np.ndarray, n_rows: Optional[int] = None) -> np.ndarray:
    """Return ``y`` as a 1-D int array in {0, 1}."""
    y_arr = np.asarray(y)
    if y_arr.ndim != 1:
        raise ShapeError(f"y must be a 1D array of binary labels, got shape {y_arr.shape}.")
    if n_rows is not None and y_arr.shape[0] != n_rows:
        raise ShapeError(f"X has {n_rows} rows but y has {y_arr.shape[0]}.")
    if y_arr.dtype == bool:
        return y_arr.astype(int)
    y_float = y_arr.astype(np.float64)
    if np.any(np.isnan(y_float)):
        raise ValueError("y contains missing values.")
    if not np.all((y_float == 0.0) | (y_float == 1.0)):
        raise ValueError("y must contain only the labels 0 and 1.")
    return y_float.astype(int)


def check_design(
    X: pd.DataFrame | np.ndarray,
    y: Optional[Iterable[int] | np.ndarray] = None,
    *,
    n_features: Optional[int] = None,
    strict: bool = False,
    allow_empty: bool = False,
) -> Tuple[np.ndarray, Optional[np.ndarray], DesignInfo]:
    """
    Validate a design matrix (and optional labels) at call entry.

    Parameters
    ----------
    X :
        ``(n, p)`` numeric matrix or DataFrame.
    y :
        Optional labels in {0, 1}, row-aligned with ``X``.
    n_features :
        Required column count, if any.
    strict :
        Raise :class:`DegenerateInputError` on single-class labels or
        zero-variance columns instead of reporting them in the returned
        :class:`DesignInfo`.
    allow_empty :
        Accept a zero-row matrix (scoring only).
    """
    if isinstance(X, pd.DataFrame):
        X_arr = X.to_numpy(dtype=np.float64)
    else:
        X_arr = np.asarray(X, dtype=np.float64)
    if X_arr.ndim == 1 and n_features is not None and X_arr.shape[0] == 0:
        X_arr = X_arr.reshape(0, n_features)
    if X_arr.ndim != 2:
        raise ShapeError(f"X must be 2D, got shape {X_arr.shape}.")
    n, p = X_arr.shape
    if n_features is not None and p != n_features:
        raise ShapeError(f"X has {p} columns, expected {n_features}.")
    if n == 0 and not allow_empty:
        raise ShapeError("X must have at least one row.")
    if np.any(~np.isfinite(X_arr)):
        raise ValueError("X contains missing or non-finite values.")

    y_arr = None if y is None else check_labels(y, n_rows=n)

    if n == 0:
        return X_arr, y_arr, DesignInfo()

    single = y_arr is not None and np.unique(y_arr).size < 2
    constant = tuple(int(j) for j in np.where(np.ptp(X_arr, axis=0) == 0.0)[0])
    info = DesignInfo(single_class=bool(single), constant_columns=constant)
    if strict and info.degenerate:
        raise DegenerateInputError(info.describe())
    return X_arr, y_arr, info


def warn_degenerate(info: DesignInfo, feature_names: Optional[Sequence[str]] = None) -> None:
    if info.degenerate:
        msg = info.describe(feature_names)
        logger.warning("Degenerate training input: %s", msg)
        warnings.warn(f"Degenerate training input: {msg}", DegenerateInputWarning, stacklevel=3)


def check_coefficients(coef: Sequence[float] | np.ndarray, n_features: int) -> np.ndarray:
    """Return an intercept-first coefficient vector of length ``n_features + 1``."""
    beta = np.asarray(coef, dtype=np.float64)
    if beta.ndim != 1 or beta.shape[0] != n_features + 1:
        raise ShapeError(
            f"Coefficient vector must have length {n_features + 1} "
            f"(intercept + {n_features} slopes), got shape {beta.shape}."
        )
    return beta


def check_cancel(cancel, what: str) -> None:
    """Raise :class:`RunCancelledError` if ``cancel.is_set()``."""
    if cancel is not None and cancel.is_set():
        raise RunCancelledError(f"{what} was cancelled; partial results discarded.")


@dataclass(frozen=True)
class Dataset:
    """
    Row-aligned features and hazard labels.

    ``X`` and ``y`` are stored as read-only copies so a dataset can be
    shared between concurrent fits.
    """

    X: np.ndarray
    y: np.ndarray
    feature_names: Tuple[str, ...] = field(default=FEATURE_COLUMNS)

    def __post_init__(self) -> None:
        X_arr, y_arr, _ = check_design(self.X, self.y, n_features=len(self.feature_names))
        object.__setattr__(self, "X", _readonly(X_arr))
        object.__setattr__(self, "y", _readonly(y_arr))
        object.__setattr__(self, "feature_names", tuple(map(str, self.feature_names)))

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        *,
        features: Sequence[str] = FEATURE_COLUMNS,
        label: str = LABEL_COLUMN,
    ) -> "Dataset":
        """
        Build a dataset from a DataFrame holding the feature and label columns.

        The NASA table's original headers are accepted and renamed.
        """
        df = df.rename(columns=dict(SOURCE_COLUMN_ALIASES))
        missing = [c for c in list(features) + [label] if c not in df.columns]
        if missing:
            raise ShapeError(f"Input is missing columns: {missing}")
        if df[list(features) + [label]].isna().to_numpy().any():
            raise ValueError("Input contains missing values; impute or drop them upstream.")
        y = df[label]
        if y.dtype == object:
            y = y.map(lambda v: str(v).strip().lower() in ("true", "1"))
        return cls(
            X=df[list(features)].to_numpy(dtype=np.float64),
            y=np.asarray(y, dtype=int),
            feature_names=tuple(features),
        )

    @property
    def n_rows(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])

    def __len__(self) -> int:
        return self.n_rows

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.X, columns=list(self.feature_names))
        df[LABEL_COLUMN] = self.y
        return df
