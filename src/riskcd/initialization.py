"""
Starting points for the integer coordinate descent.

Two paths produce an initial ``(gamma, beta)``:

* a user supplied ``beta`` is brought onto the integer grid ``[a, b]`` and,
  when ``gamma`` is missing, the intercept and scale are refitted jointly;
* otherwise an unpenalised weighted logistic regression is rescaled so its
  largest coefficient sits at ``(b - a) / 2`` and randomly rounded, so every
  restart explores a different integer neighbourhood of the same fit.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ._solvers import _CDLogistic
from .exceptions import ConfigurationError, DimensionMismatchError, NumericalError

__all__ = [
    "randomized_round",
    "rescale_to_range",
    "constant_columns",
    "continuous_fit",
    "initialize",
]


def _target_magnitude(a: int, b: int) -> float:
    return (float(b) - float(a)) / 2.0


def randomized_round(v: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    Round each entry down with probability ``ceil(v) - v`` and up otherwise.

    Integer entries are returned unchanged.
    """
    v = np.asarray(v, dtype=np.float64)
    lower = np.floor(v)
    up = rng.random(v.shape) < (v - lower)
    return (lower + up).astype(np.int64)


def rescale_to_range(beta: np.ndarray, a: int, b: int) -> Tuple[np.ndarray, float]:
    """
    Rescale ``beta`` when ``beta[1:]`` is non-integer or leaves ``[a, b]``.

    The scalar maps the largest non-intercept magnitude to ``(b - a) / 2``.
    When every non-intercept entry is zero the scalar is 1, so the call is a
    no-op. Returns the (possibly) rescaled copy and the scalar used.
    """
    beta = np.asarray(beta, dtype=np.float64)
    coef = beta[1:]
    on_grid = np.all(coef == np.round(coef)) and np.all((coef >= a) & (coef <= b))
    if on_grid:
        return beta.copy(), 1.0
    peak = float(np.max(np.abs(coef))) if coef.size else 0.0
    scalar = 1.0 if peak == 0.0 else _target_magnitude(a, b) / peak
    return beta * scalar, scalar


def constant_columns(X: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """
    Indices ``j >= 1`` of feature columns holding a single value over the rows
    with positive weight. Such a column only duplicates the intercept.
    """
    rows = np.asarray(X)[np.asarray(weights) > 0, 1:]
    if rows.shape[0] == 0:
        return np.arange(1, np.asarray(X).shape[1])
    return np.flatnonzero(np.ptp(rows, axis=0) == 0.0) + 1


def continuous_fit(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    *,
    max_iter: int = 1000,
    tol: float = 1e-6,
) -> np.ndarray:
    """
    Unpenalised weighted logistic coefficients, intercept first.

    Constant feature columns are aliased with the intercept and have no
    identifiable coefficient; they come back as NaN.
    """
    coef = np.full(X.shape[1], np.nan)
    keep = np.setdiff1d(np.arange(1, X.shape[1]), constant_columns(X, weights))
    solver = _CDLogistic(tol=tol, max_iter=max_iter)
    solver.fit(X[:, keep], y, sample_weight=weights)
    coef[0] = solver.b_
    coef[keep] = solver.w_
    return coef


def _refit_intercept_gamma(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    beta: np.ndarray,
) -> Tuple[float, float]:
    """Joint (gamma, intercept) for fixed non-intercept points."""
    s = X[:, 1:] @ beta[1:]
    if s.size and float(np.ptp(s)) > 0.0:
        solver = _CDLogistic().fit(s[:, None], y, sample_weight=weights)
        slope = float(solver.w_[0])
        if slope > 0.0:
            return slope, float(np.rint(solver.b_ / slope))

    # constant or label-reversing scores: unit scale, intercept at the base rate
    offset = float(np.average(s, weights=weights)) if s.size else 0.0
    ybar = float(np.clip(np.average(y, weights=weights), 1e-6, 1 - 1e-6))
    return 1.0, float(np.rint(np.log(ybar / (1 - ybar)) - offset))


def initialize(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    a: int = -10,
    b: int = 10,
    *,
    gamma: Optional[float] = None,
    beta: Optional[np.ndarray] = None,
    coef: Optional[np.ndarray] = None,
    rng: Optional[np.random.Generator] = None,
    verbose: bool = False,
) -> Tuple[float, np.ndarray]:
    """
    Starting ``(gamma, beta)`` for one coordinate descent run.

    Parameters
    ----------
    X :
        Design matrix with the intercept in column 0.
    gamma, beta :
        Optional user starting values. ``gamma`` is only honoured together
        with ``beta``; without ``beta`` it is derived from the logistic fit.
    coef :
        Precomputed :func:`continuous_fit` result, reused across restarts.
    rng :
        Source of randomness for randomized rounding.

    Raises
    ------
    NumericalError
        If a feature column is constant, or the resulting gamma or any beta
        entry is NaN or infinite.
    """
    n, p = X.shape
    if gamma is not None and np.isfinite(gamma) and gamma < 0:
        raise ConfigurationError("gamma must be non-negative.")

    if beta is not None:
        beta = np.asarray(beta, dtype=np.float64)
        if beta.shape != (p,):
            raise DimensionMismatchError(f"beta must have length {p}, got shape {beta.shape}.")
        if not np.all(np.isfinite(beta)) or (gamma is not None and not np.isfinite(gamma)):
            raise NumericalError("Supplied gamma/beta contain NaN or infinite values.")

    flat = constant_columns(X, weights)
    if flat.size:
        raise NumericalError(
            f"Feature column(s) {flat.tolist()} take a single value; "
            "their points cannot be told apart from the intercept."
        )

    if beta is not None:
        scaled, scalar = rescale_to_range(beta, a, b)
        if verbose and scalar != 1.0:
            print(f"[init] beta rescaled by {scalar:.4g} onto the integer range [{a}, {b}]")
        start = np.rint(scaled)
        start[1:] = np.clip(start[1:], a, b)
        if gamma is None:
            gamma, start[0] = _refit_intercept_gamma(X, y, weights, start)
        else:
            gamma = float(gamma) / scalar
    else:
        if rng is None:
            rng = np.random.default_rng()
        if coef is None:
            coef = continuous_fit(X, y, weights)
        coef = np.asarray(coef, dtype=np.float64)
        if not np.all(np.isfinite(coef)):
            raise NumericalError("Logistic starting fit produced non-finite coefficients.")
        peak = float(np.max(np.abs(coef[1:]))) if p > 1 else 0.0
        scalar = 1.0 if peak == 0.0 else _target_magnitude(a, b) / peak
        gamma = 1.0 / scalar
        start = randomized_round(coef * scalar, rng).astype(np.float64)
        start[1:] = np.clip(start[1:], a, b)

    gamma = float(gamma)
    if not np.isfinite(gamma) or not np.all(np.isfinite(start)):
        raise NumericalError("Initial gamma or beta is NaN or infinite.")
    return gamma, start.astype(np.int64)
