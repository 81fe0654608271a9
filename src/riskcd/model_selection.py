"""
Cross-validation of the L0 penalty ``lambda0``.

Folds are stratified on the label. Each fold walks the whole lambda0 path,
training a best-of-N model on the other folds and scoring the held-out rows
by weighted binomial deviance.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold

from ._math import _sigmoid
from ._parallel import attached, effective_workers, run_tasks, shared_arrays
from .exceptions import ConfigurationError, DimensionMismatchError, NumericalError
from .linear_model import _check_params, train_restarts
from .metrics import binomial_deviance, roc_auc_score
from .preprocessing import build_design

__all__ = ["CVResult", "stratified_folds", "lambda_grid", "cross_validate"]


@dataclass(frozen=True, eq=False)
class CVResult:
    """
    Per-lambda0 cross-validation summary.

    ``fold_deviance`` has one row per fold and one column per lambda0 value;
    failed fits are NaN. ``available`` is False for lambda0 values where every
    fold failed; their summary statistics are NaN.
    """

    lambda0: np.ndarray
    mean_deviance: np.ndarray
    std_deviance: np.ndarray
    se_deviance: np.ndarray
    mean_auc: np.ndarray
    mean_nonzero: np.ndarray
    fold_deviance: np.ndarray
    foldids: np.ndarray
    available: np.ndarray
    lambda_min: float
    lambda_1se: float

    def select(self, rule: str = "min") -> float:
        rule = rule.lower()
        if rule == "min":
            return self.lambda_min
        if rule == "1se":
            return self.lambda_1se
        raise ConfigurationError(f"Unknown selection rule '{rule}'. Use 'min' or '1se'.")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "lambda0": self.lambda0,
            "mean_deviance": self.mean_deviance,
            "std_deviance": self.std_deviance,
            "se_deviance": self.se_deviance,
            "mean_auc": self.mean_auc,
            "mean_nonzero": self.mean_nonzero,
            "available": self.available,
        })


def stratified_folds(y, nfolds: int = 5, seed: Optional[int] = None) -> np.ndarray:
    """Fold id (0..nfolds-1) per row, preserving the class balance."""
    y = np.asarray(y).astype(int)
    if not isinstance(nfolds, (int, np.integer)) or nfolds < 2:
        raise ConfigurationError(f"nfolds must be an integer >= 2, got {nfolds!r}.")
    skf = StratifiedKFold(n_splits=int(nfolds), shuffle=True, random_state=seed)
    foldids = np.empty(y.shape[0], dtype=np.int64)
    try:
        for f, (_, val_idx) in enumerate(skf.split(np.zeros((y.shape[0], 1)), y)):
            foldids[val_idx] = f
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    return foldids


def lambda_grid(
    X: np.ndarray,
    y: np.ndarray,
    weights: Optional[np.ndarray] = None,
    nlambda: int = 25,
    lambda_min_ratio: Optional[float] = None,
) -> np.ndarray:
    """
    Decreasing log-spaced lambda0 values.

    The largest value is the weighted correlation scale
    ``max_j |sum_i w_i z_ij (y_i - ybar)| / n`` of the standardised
    non-intercept columns ``z``; the smallest is that times
    ``lambda_min_ratio`` (0.01 when ``n < p``, else 1e-4).
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    n, p = X.shape
    w = np.ones(n) if weights is None else np.asarray(weights, dtype=np.float64)
    if p < 2:
        raise ConfigurationError("A lambda0 grid needs at least one feature column.")
    if not isinstance(nlambda, (int, np.integer)) or nlambda < 1:
        raise ConfigurationError(f"nlambda must be a positive integer, got {nlambda!r}.")

    Z = X[:, 1:]
    mu = np.average(Z, axis=0, weights=w)
    sd = np.sqrt(np.average((Z - mu) ** 2, axis=0, weights=w))
    sd[sd == 0.0] = 1.0
    ybar = np.average(y, weights=w)
    lam_max = float(np.max(np.abs(((Z - mu) / sd).T @ (w * (y - ybar))))) / n
    if lam_max <= 0.0:
        lam_max = 1.0
    if lambda_min_ratio is None:
        lambda_min_ratio = 0.01 if n < p else 1e-4
    return np.exp(np.linspace(math.log(lam_max), math.log(lam_max * lambda_min_ratio), int(nlambda)))


def _fold_path_worker(args):
    """
    Run ONE fold across the entire lambda0 path.

    Returns deviance, AUC and number of nonzero points per lambda0 for the
    held-out rows of this fold; failed fits are NaN.
    """
    data, fold, val_idx, grid, entropy, beta, params, verbose = args
    with attached(data) as arrays:
        return _fold_path(arrays["X"], arrays["y"], arrays["weights"],
                          fold, val_idx, grid, entropy, beta, params, verbose)


def _fold_path(X, y, weights, fold, val_idx, grid, entropy, beta, params, verbose):
    n = X.shape[0]
    mask = np.ones(n, dtype=bool)
    mask[val_idx] = False
    Xtr, ytr, wtr = X[mask, :], y[mask], weights[mask]
    Xva, yva, wva = X[val_idx, :], y[val_idx], weights[val_idx]
    both_classes = 0 < yva.sum() < yva.shape[0]

    dev = np.full(len(grid), np.nan)
    auc = np.full(len(grid), np.nan)
    nnz = np.full(len(grid), np.nan)
    for t, lam in enumerate(grid):
        seed = np.random.SeedSequence(entropy, spawn_key=(fold, t))
        try:
            best, _ = train_restarts(Xtr, ytr, wtr, lambda0=float(lam), beta=beta,
                                     seed=seed, n_jobs=1, verbose=False, **params)
        except NumericalError as exc:
            if verbose:
                print(f"[CV] fold {fold + 1} lambda0={lam:.4g} failed: {exc}")
            continue
        p_va = _sigmoid(best.gamma * (Xva @ best.beta))
        dev[t] = binomial_deviance(yva, p_va, wva)
        if both_classes:
            auc[t] = roc_auc_score(yva, p_va)
        nnz[t] = np.count_nonzero(best.beta[1:])
        if verbose:
            print(f"[CV] fold {fold + 1} lambda0={lam:.4g} -> deviance={dev[t]:.6f} "
                  f"nonzero={int(nnz[t])}")
    return dev, auc, nnz


def _nan_mean(values: np.ndarray) -> np.ndarray:
    valid = ~np.isnan(values)
    counts = valid.sum(axis=0)
    total = np.where(valid, values, 0.0).sum(axis=0)
    return np.where(counts > 0, total / np.maximum(counts, 1), np.nan)


def cross_validate(
    X: pd.DataFrame | np.ndarray,
    y,
    weights=None,
    foldids: Optional[Sequence[int] | np.ndarray] = None,
    nfolds: int = 5,
    lambda0: Optional[Sequence[float] | np.ndarray] = None,
    nlambda: int = 25,
    seed: Optional[int] = None,
    a: int = -10,
    b: int = 10,
    beta: Optional[Sequence[float] | np.ndarray] = None,
    n_train_runs: int = 5,
    max_iters: int = 100,
    tol: float = 1e-5,
    shuffle: bool = True,
    *,
    feature_names: Optional[Sequence[str]] = None,
    n_jobs: Optional[int] = 1,
    verbose: bool = False,
) -> CVResult:
    """
    Cross-validated deviance over a lambda0 grid.

    Parameters
    ----------
    X, y, weights :
        Training data as for :func:`riskcd.fit`.
    foldids :
        Explicit fold id per row; otherwise ``nfolds`` stratified folds are
        drawn from ``seed``.
    lambda0 :
        Explicit penalty grid; otherwise ``nlambda`` values from
        :func:`lambda_grid`.
    beta :
        Optional starting points reused in every fold.
    n_jobs :
        Worker processes, one task per fold.

    Returns
    -------
    CVResult
        ``lambda_min`` has the lowest mean deviance; ``lambda_1se`` is the
        largest lambda0 whose mean deviance is within one standard error of
        that minimum.
    """
    _check_params(n_train_runs, 0.0, a, b, max_iters, tol)
    design = build_design(X, y, weights, feature_names=feature_names)
    n, p = design.X.shape

    if seed is None:
        seed = int(np.random.SeedSequence().generate_state(1)[0])
    if foldids is None:
        foldids = stratified_folds(design.y, nfolds, seed)
    else:
        foldids = np.asarray(foldids)
        if foldids.shape != (n,):
            raise DimensionMismatchError("foldids must have one entry per row of X.")
        _, foldids = np.unique(foldids, return_inverse=True)
        if foldids.max() < 1:
            raise ConfigurationError("foldids must define at least two folds.")
    k = int(foldids.max()) + 1

    if lambda0 is None:
        grid = lambda_grid(design.X, design.y, design.weights, nlambda)
    else:
        grid = np.atleast_1d(np.asarray(lambda0, dtype=np.float64))
        if grid.ndim != 1 or grid.size == 0 or not np.all(np.isfinite(grid)) or np.any(grid < 0):
            raise ConfigurationError("lambda0 must be a non-empty 1D sequence of non-negative values.")

    params = {"n_train_runs": n_train_runs, "a": a, "b": b,
              "max_iters": max_iters, "tol": tol, "shuffle": shuffle}
    entropy = np.random.SeedSequence(seed).entropy
    parallel = effective_workers(n_jobs, k) > 1

    with shared_arrays({"X": design.X, "y": design.y, "weights": design.weights},
                       enabled=parallel) as data:
        args_list = [(data, f, np.flatnonzero(foldids == f), grid, entropy, beta, params, verbose)
                     for f in range(k)]
        per_fold = run_tasks(_fold_path_worker, args_list, n_jobs)

    fold_dev = np.vstack([d for d, _, _ in per_fold])
    fold_auc = np.vstack([au for _, au, _ in per_fold])
    fold_nnz = np.vstack([nz for _, _, nz in per_fold])

    valid = ~np.isnan(fold_dev)
    counts = valid.sum(axis=0)
    available = counts > 0
    if not np.any(available):
        raise NumericalError("Cross-validation failed for every fold and lambda0 value.")

    mean_dev = _nan_mean(fold_dev)
    sq = np.where(valid, (fold_dev - np.where(available, mean_dev, 0.0)) ** 2, 0.0).sum(axis=0)
    std_dev = np.where(counts > 1, np.sqrt(sq / np.maximum(counts - 1, 1)), 0.0)
    std_dev = np.where(available, std_dev, np.nan)
    se_dev = std_dev / np.sqrt(np.maximum(counts, 1))

    if verbose:
        tag = "[CV|parallel]" if parallel else "[CV]"
        for i, lam in enumerate(grid):
            print(f"{tag} lambda0={lam:.4g} -> mean={mean_dev[i]:.6f} +- {se_dev[i]:.6f}")

    i_min = int(np.nanargmin(mean_dev))
    threshold = mean_dev[i_min] + se_dev[i_min]
    within = np.flatnonzero(available & (np.nan_to_num(mean_dev, nan=np.inf) <= threshold))
    lambda_1se = float(np.max(grid[within]))

    return CVResult(
        lambda0=grid,
        mean_deviance=mean_dev,
        std_deviance=std_dev,
        se_deviance=se_dev,
        mean_auc=_nan_mean(fold_auc),
        mean_nonzero=_nan_mean(fold_nnz),
        fold_deviance=fold_dev,
        foldids=foldids.astype(np.int64),
        available=available,
        lambda_min=float(grid[i_min]),
        lambda_1se=lambda_1se,
    )
