"""
Functional API: train a risk score model with restarts, predict with it and
read risks off its score table.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ._math import _objective, _sigmoid
from ._parallel import attached, effective_workers, run_tasks, shared_arrays
from ._solvers import OptimizerStatus, _IntegerCD
from .exceptions import ConfigurationError, DimensionMismatchError, NumericalError
from .initialization import continuous_fit, initialize
from .preprocessing import Design, build_design, transform_features
from .scorecard import build_score_card, build_score_map

__all__ = [
    "FittedModel",
    "RestartResult",
    "train_restarts",
    "make_model",
    "fit",
    "predict",
    "risk_for_score",
]


def _is_count(value) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool) and value >= 0


def _check_params(n_train_runs, lambda0, a, b, max_iters, tol) -> None:
    if not _is_count(n_train_runs):
        raise ConfigurationError(f"n_train_runs must be a non-negative integer, got {n_train_runs!r}.")
    if not _is_count(max_iters):
        raise ConfigurationError(f"max_iters must be a non-negative integer, got {max_iters!r}.")
    if not (np.isfinite(lambda0) and lambda0 >= 0):
        raise ConfigurationError("lambda0 must be a finite non-negative number.")
    if not (np.isfinite(tol) and tol >= 0):
        raise ConfigurationError("tol must be a finite non-negative number.")
    if int(a) != a or int(b) != b or a > b:
        raise ConfigurationError(f"[a, b] must be an integer range with a <= b, got [{a}, {b}].")


def _as_seed_sequence(seed) -> np.random.SeedSequence:
    if isinstance(seed, np.random.SeedSequence):
        return seed
    return np.random.SeedSequence(seed)


@dataclass(frozen=True, eq=False)
class RestartResult:
    """Outcome of one coordinate descent run; ``error`` is set when it failed."""

    run: int
    gamma: float = math.nan
    beta: Optional[np.ndarray] = None
    objective: float = math.inf
    status: OptimizerStatus = OptimizerStatus.INIT
    n_iter: int = 0
    trace: Tuple[float, ...] = ()
    error: Optional[str] = None


def _restart_worker(args) -> RestartResult:
    data, run, seed_seq, gamma, beta, coef, params, verbose = args
    with attached(data) as arrays:
        return _run_once(arrays["X"], arrays["y"], arrays["weights"],
                         run, seed_seq, gamma, beta, coef, params, verbose)


def _run_once(X, y, weights, run, seed_seq, gamma, beta, coef, params, verbose) -> RestartResult:
    rng = np.random.default_rng(seed_seq)
    try:
        g0, b0 = initialize(X, y, weights, params["a"], params["b"],
                            gamma=gamma, beta=beta, coef=coef, rng=rng, verbose=verbose)
    except NumericalError as exc:
        if verbose:
            print(f"[restart] run {run + 1} skipped: {exc}")
        return RestartResult(run=run, error=str(exc))

    cd = _IntegerCD(
        lambda0=params["lambda0"], a=params["a"], b=params["b"],
        max_iters=params["max_iters"], tol=params["tol"],
        shuffle=params["shuffle"], verbose=verbose,
    )
    cd.fit(X, y, weights, g0, b0, rng=rng)
    if verbose:
        print(f"[restart] run {run + 1}: objective={cd.objective_:.6f} "
              f"({cd.status_.value} after {cd.n_iter_} sweeps)")
    return RestartResult(
        run=run,
        gamma=float(cd.gamma_),
        beta=cd.beta_.copy(),
        objective=float(cd.objective_),
        status=cd.status_,
        n_iter=int(cd.n_iter_),
        trace=tuple(cd.trace_),
    )


def train_restarts(
    X: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    *,
    n_train_runs: int = 5,
    lambda0: float = 0.0,
    a: int = -10,
    b: int = 10,
    gamma: Optional[float] = None,
    beta: Optional[np.ndarray] = None,
    max_iters: int = 100,
    tol: float = 1e-5,
    shuffle: bool = True,
    seed=None,
    n_jobs: Optional[int] = 1,
    verbose: bool = False,
) -> Tuple[RestartResult, List[RestartResult]]:
    """
    Best of ``n_train_runs`` independent coordinate descent runs.

    ``X`` must already carry the intercept column. Each run draws its own
    random stream from ``SeedSequence(seed).spawn``, so results do not depend
    on execution order. Runs whose initialisation fails are excluded; if all
    fail the ``NumericalError`` propagates. Ties keep the earliest run.
    With ``n_train_runs == 0`` the initial point is returned unoptimised.

    Returns the best run and the list of every run.
    """
    _check_params(n_train_runs, lambda0, a, b, max_iters, tol)
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    if y.shape != (X.shape[0],) or weights.shape != (X.shape[0],):
        raise DimensionMismatchError("y and weights must have one entry per row of X.")

    params = {"lambda0": float(lambda0), "a": int(a), "b": int(b),
              "max_iters": int(max_iters), "tol": float(tol), "shuffle": bool(shuffle)}
    root = _as_seed_sequence(seed)
    coef = continuous_fit(X, y, weights) if beta is None else None

    if n_train_runs == 0:
        g0, b0 = initialize(X, y, weights, params["a"], params["b"], gamma=gamma, beta=beta,
                            coef=coef, rng=np.random.default_rng(root), verbose=verbose)
        obj = _objective(X, y, g0, b0, weights, params["lambda0"])
        only = RestartResult(run=0, gamma=g0, beta=b0, objective=obj, trace=(obj,))
        return only, [only]

    children = root.spawn(n_train_runs)
    parallel = effective_workers(n_jobs, n_train_runs) > 1
    with shared_arrays({"X": X, "y": y, "weights": weights}, enabled=parallel) as data:
        args_list = [(data, r, children[r], gamma, beta, coef, params, verbose)
                     for r in range(n_train_runs)]
        runs = run_tasks(_restart_worker, args_list, n_jobs)

    finished = [r for r in runs if r.error is None]
    if not finished:
        raise NumericalError(f"All {n_train_runs} restarts failed to initialise: {runs[0].error}")
    best = min(finished, key=lambda r: r.objective)
    if verbose:
        print(f"[restart] best run {best.run + 1} of {n_train_runs}: objective={best.objective:.6f}")
    return best, runs


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Immutable result of one training call.

    ``beta[0]`` is the intercept and ``X`` includes the intercept column.
    ``model_card`` maps feature names to points and ``score_map`` maps total
    scores to risks; both are empty for models with fewer than two features.
    """

    gamma: float
    beta: np.ndarray
    X: np.ndarray
    y: np.ndarray
    weights: np.ndarray
    lambda0: float
    model_card: Mapping[str, int]
    score_map: pd.DataFrame
    feature_names: Tuple[str, ...]
    a: int = -10
    b: int = 10
    objective: float = math.nan
    status: OptimizerStatus = OptimizerStatus.CONVERGED
    n_iter: int = 0
    trace: Tuple[float, ...] = field(default=(), repr=False)
    n_failed_runs: int = 0

    @property
    def intercept(self) -> int:
        return int(self.beta[0])

    @property
    def coef(self) -> np.ndarray:
        return self.beta[1:]

    @property
    def converged(self) -> bool:
        return self.status is OptimizerStatus.CONVERGED


def _readonly(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


def make_model(
    design: Design,
    gamma: float,
    beta: np.ndarray,
    *,
    lambda0: float,
    a: int,
    b: int,
    objective: float,
    status: OptimizerStatus,
    n_iter: int = 0,
    trace: Sequence[float] = (),
    n_failed_runs: int = 0,
) -> FittedModel:
    """Assemble a :class:`FittedModel` and its score tables."""
    beta = _readonly(np.asarray(beta, dtype=np.int64))
    return FittedModel(
        gamma=float(gamma),
        beta=beta,
        X=design.X,
        y=design.y,
        weights=design.weights,
        lambda0=float(lambda0),
        model_card=MappingProxyType(build_score_card(beta, design.feature_names)),
        score_map=build_score_map(gamma, beta, design.X),
        feature_names=tuple(design.feature_names),
        a=int(a),
        b=int(b),
        objective=float(objective),
        status=status,
        n_iter=int(n_iter),
        trace=tuple(trace),
        n_failed_runs=int(n_failed_runs),
    )


def fit(
    X: pd.DataFrame | np.ndarray,
    y,
    gamma: Optional[float] = None,
    beta: Optional[Sequence[float] | np.ndarray] = None,
    weights=None,
    n_train_runs: int = 5,
    lambda0: float = 0.0,
    a: int = -10,
    b: int = 10,
    max_iters: int = 100,
    tol: float = 1e-5,
    shuffle: bool = True,
    seed=None,
    *,
    feature_names: Optional[Sequence[str]] = None,
    n_jobs: Optional[int] = 1,
    verbose: bool = False,
) -> FittedModel:
    """
    Fit an integer risk score model.

    Parameters
    ----------
    X :
        Features without an intercept column; a column of ones is prepended.
    y :
        Binary labels in {0, 1}.
    gamma, beta :
        Optional starting values. ``beta`` includes the intercept, so it has
        one entry more than ``X`` has columns.
    weights :
        Non-negative row weights, default all ones.
    n_train_runs :
        Number of restarts; the lowest objective wins.
    lambda0 :
        L0 penalty per nonzero non-intercept coefficient.
    a, b :
        Integer range of the non-intercept points.
    max_iters, tol :
        Sweep limit and convergence tolerance of each run.
    shuffle :
        Visit coordinates in a random order each sweep.
    seed :
        Makes initial rounding and coordinate order reproducible.
    n_jobs :
        Worker processes for the restarts (1 = in-process).
    """
    _check_params(n_train_runs, lambda0, a, b, max_iters, tol)
    design = build_design(X, y, weights, feature_names=feature_names)
    best, runs = train_restarts(
        design.X, design.y, design.weights,
        n_train_runs=n_train_runs, lambda0=lambda0, a=a, b=b,
        gamma=gamma, beta=beta, max_iters=max_iters, tol=tol,
        shuffle=shuffle, seed=seed, n_jobs=n_jobs, verbose=verbose,
    )
    return make_model(
        design, best.gamma, best.beta,
        lambda0=lambda0, a=a, b=b,
        objective=best.objective, status=best.status,
        n_iter=best.n_iter, trace=best.trace,
        n_failed_runs=sum(r.error is not None for r in runs),
    )


def predict(
    model: FittedModel,
    X_new: Optional[pd.DataFrame | np.ndarray] = None,
    type: str = "response",
) -> np.ndarray:
    """
    Predictions of a fitted model.

    ``type="response"`` gives risks ``sigmoid(gamma * X beta)``, ``"link"``
    the log-odds ``gamma * X beta`` and ``"score"`` the integer total points
    without the intercept. ``X_new`` defaults to the training rows.
    """
    if X_new is None:
        X_design = model.X
    else:
        X_design = transform_features(X_new, model.feature_names)
    if X_design.shape[1] != model.beta.shape[0]:
        raise DimensionMismatchError(
            f"Expected {model.beta.shape[0] - 1} feature columns, got {X_design.shape[1] - 1}."
        )
    if type == "score":
        return X_design[:, 1:] @ model.beta[1:]
    link = model.gamma * (X_design @ model.beta)
    if type == "link":
        return link
    if type == "response":
        return _sigmoid(link)
    raise ConfigurationError(f"Unknown prediction type '{type}'. Use 'response', 'link' or 'score'.")


def risk_for_score(model: FittedModel, score: int) -> float:
    """Risk of a patient with total points ``score``."""
    if float(score) != round(float(score)):
        raise ConfigurationError(f"score must be an integer, got {score!r}.")
    return float(_sigmoid(model.gamma * (model.intercept + int(round(float(score))))))
