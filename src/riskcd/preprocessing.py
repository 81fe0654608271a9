"""
Input handling for the riskcd estimators.

Features arrive as a :class:`pandas.DataFrame` or a 2D array without an
intercept column; :func:`build_design` validates them together with the labels
and weights and prepends the constant intercept column.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, DimensionMismatchError

__all__ = ["Design", "add_intercept", "build_design", "transform_features"]


@dataclass(frozen=True)
class Design:
    """Validated training data; ``X`` carries the intercept in column 0."""

    X: np.ndarray
    y: np.ndarray
    weights: np.ndarray
    feature_names: List[str]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.X.shape


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


def _ensure_matrix(
    X: pd.DataFrame | np.ndarray,
    feature_names: Optional[Sequence[str]],
) -> Tuple[np.ndarray, List[str]]:
    if isinstance(X, pd.DataFrame):
        names = [str(c) for c in X.columns] if feature_names is None else [str(f) for f in feature_names]
        frame = X
    else:
        arr = np.asarray(X)
        if arr.ndim != 2:
            raise ConfigurationError("X must be a 2D matrix of features.")
        if feature_names is None:
            names = [f"x{j + 1}" for j in range(arr.shape[1])]
        else:
            names = [str(f) for f in feature_names]
        frame = pd.DataFrame(arr)
    if len(names) != frame.shape[1]:
        raise DimensionMismatchError(
            f"Got {len(names)} feature names for {frame.shape[1]} columns."
        )
    try:
        mat = frame.to_numpy(dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("X must contain only numeric values.") from exc
    if not np.all(np.isfinite(mat)):
        raise ConfigurationError("X contains NaN or infinite values.")
    return mat, names


def add_intercept(X: np.ndarray) -> np.ndarray:
    """Prepend a column of ones."""
    X = np.asarray(X, dtype=np.float64)
    return np.hstack((np.ones((X.shape[0], 1)), X))


def build_design(
    X: pd.DataFrame | np.ndarray,
    y: Iterable[int] | np.ndarray,
    weights: Optional[Iterable[float] | np.ndarray] = None,
    *,
    feature_names: Optional[Sequence[str]] = None,
) -> Design:
    mat, names = _ensure_matrix(X, feature_names)
    n = mat.shape[0]

    y_arr = np.asarray(y, dtype=np.float64)
    if y_arr.ndim != 1:
        raise ConfigurationError("y must be a 1D array of binary labels.")
    if y_arr.shape[0] != n:
        raise DimensionMismatchError("X and y must have the same number of rows.")
    if not np.all((y_arr == 0) | (y_arr == 1)):
        raise ConfigurationError("y must contain only 0/1 labels.")

    if weights is None:
        w_arr = np.ones(n, dtype=np.float64)
    else:
        w_arr = np.asarray(weights, dtype=np.float64)
        if w_arr.shape != (n,):
            raise DimensionMismatchError("weights must have one entry per row of X.")
        if not np.all(np.isfinite(w_arr)) or np.any(w_arr < 0):
            raise ConfigurationError("weights must be finite and non-negative.")
        if w_arr.sum() <= 0:
            raise ConfigurationError("weights must not all be zero.")

    return Design(
        X=_readonly(add_intercept(mat)),
        y=_readonly(y_arr),
        weights=_readonly(w_arr),
        feature_names=names,
    )


def transform_features(
    X: pd.DataFrame | np.ndarray,
    feature_names: Sequence[str],
) -> np.ndarray:
    """Design matrix for new rows, columns aligned with ``feature_names``."""
    if isinstance(X, pd.DataFrame):
        lookup = {str(c): c for c in X.columns}
        missing = [c for c in feature_names if c not in lookup]
        if missing:
            raise ConfigurationError(f"Input is missing features: {missing}")
        X = X[[lookup[c] for c in feature_names]]
    mat, _ = _ensure_matrix(X, feature_names)
    return add_intercept(mat)
