"""
High-level estimators that expose the riskcd workflow with a
scikit-learn-inspired API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .linear_model import FittedModel, fit, predict, risk_for_score
from .model_selection import CVResult, cross_validate
from .scorecard import score_card_frame

__all__ = ["RiskScoreClassifier", "RiskScoreCV"]


class _RiskScoreMixin:
    """Prediction API shared by the estimators; needs ``model_``."""

    def _check_fitted(self) -> FittedModel:
        if getattr(self, "model_", None) is None:
            raise RuntimeError("fit must be called before predict.")
        return self.model_

    def predict_proba(self, X: pd.DataFrame | np.ndarray) -> np.ndarray:
        p = predict(self._check_fitted(), X, type="response")
        return np.column_stack([1.0 - p, p])

    def decision_function(self, X: pd.DataFrame | np.ndarray) -> np.ndarray:
        return predict(self._check_fitted(), X, type="link")

    def predict_score(self, X: pd.DataFrame | np.ndarray) -> np.ndarray:
        return predict(self._check_fitted(), X, type="score")

    def predict(self, X: pd.DataFrame | np.ndarray, *, threshold: float = 0.5) -> np.ndarray:
        proba = self.predict_proba(X)
        return (proba[:, 1] >= float(threshold)).astype(int)

    def score(self, X: pd.DataFrame | np.ndarray, y: Iterable[int] | np.ndarray) -> float:
        preds = self.predict(X)
        y_arr = np.asarray(y, dtype=int)
        return float(np.mean(preds == y_arr))

    def risk_for_score(self, score: int) -> float:
        return risk_for_score(self._check_fitted(), score)

    @property
    def score_card_(self) -> pd.DataFrame:
        return score_card_frame(self._check_fitted())

    @property
    def score_map_(self) -> pd.DataFrame:
        return self._check_fitted().score_map.copy()

    def set_params(self, **params):
        for key, value in params.items():
            if not hasattr(self, key) or key.endswith("_"):
                raise ValueError(f"Unknown parameter '{key}'.")
            setattr(self, key, value)
        return self


@dataclass
class RiskScoreClassifier(_RiskScoreMixin):
    """
    Integer risk score model with a fixed L0 penalty.

    Parameters mirror :func:`riskcd.fit` so the estimator can be used inside
    scikit-learn style workflows (fit / predict / score).
    """

    lambda0: float = 0.0
    a: int = -10
    b: int = 10
    n_train_runs: int = 5
    max_iters: int = 100
    tol: float = 1e-5
    shuffle: bool = True
    seed: Optional[int] = None
    n_jobs: Optional[int] = 1
    verbose: bool = False

    def fit(
        self,
        X: pd.DataFrame | np.ndarray,
        y: Iterable[int] | np.ndarray,
        *,
        sample_weight: Optional[Iterable[float] | np.ndarray] = None,
        feature_names: Optional[Sequence[str]] = None,
        gamma: Optional[float] = None,
        beta: Optional[Sequence[float] | np.ndarray] = None,
    ) -> "RiskScoreClassifier":
        self.model_ = fit(
            X, y, gamma=gamma, beta=beta, weights=sample_weight,
            n_train_runs=self.n_train_runs, lambda0=self.lambda0,
            a=self.a, b=self.b, max_iters=self.max_iters, tol=self.tol,
            shuffle=self.shuffle, seed=self.seed,
            feature_names=feature_names, n_jobs=self.n_jobs, verbose=self.verbose,
        )
        self.feature_names_ = list(self.model_.feature_names)
        self.classes_ = np.array([0, 1], dtype=int)
        return self

    def get_params(self, deep: bool = True) -> Dict[str, object]:
        return {
            "lambda0": self.lambda0,
            "a": self.a,
            "b": self.b,
            "n_train_runs": self.n_train_runs,
            "max_iters": self.max_iters,
            "tol": self.tol,
            "shuffle": self.shuffle,
            "seed": self.seed,
            "n_jobs": self.n_jobs,
            "verbose": self.verbose,
        }


@dataclass
class RiskScoreCV(_RiskScoreMixin):
    """
    Cross-validates ``lambda0`` and refits on all rows with the chosen value.

    ``cv_rule`` is ``"min"`` (lowest mean deviance) or ``"1se"`` (largest
    lambda0 within one standard error of it, i.e. a sparser card).
    """

    lambda0: Optional[Sequence[float]] = None
    nlambda: int = 25
    nfolds: int = 5
    cv_rule: str = "min"
    a: int = -10
    b: int = 10
    n_train_runs: int = 5
    max_iters: int = 100
    tol: float = 1e-5
    shuffle: bool = True
    seed: Optional[int] = None
    n_jobs: Optional[int] = 1
    verbose: bool = False

    def fit(
        self,
        X: pd.DataFrame | np.ndarray,
        y: Iterable[int] | np.ndarray,
        *,
        sample_weight: Optional[Iterable[float] | np.ndarray] = None,
        feature_names: Optional[Sequence[str]] = None,
        foldids: Optional[Sequence[int]] = None,
        beta: Optional[Sequence[float] | np.ndarray] = None,
    ) -> "RiskScoreCV":
        cv: CVResult = cross_validate(
            X, y, weights=sample_weight, foldids=foldids, nfolds=self.nfolds,
            lambda0=self.lambda0, nlambda=self.nlambda, seed=self.seed,
            a=self.a, b=self.b, beta=beta, n_train_runs=self.n_train_runs,
            max_iters=self.max_iters, tol=self.tol, shuffle=self.shuffle,
            feature_names=feature_names, n_jobs=self.n_jobs, verbose=self.verbose,
        )
        self.cv_result_ = cv
        self.lambda0_ = cv.select(self.cv_rule)
        if self.verbose:
            print(f"[CV] selected lambda0={self.lambda0_:.4g} ({self.cv_rule})")

        self.model_ = fit(
            X, y, beta=beta, weights=sample_weight,
            n_train_runs=self.n_train_runs, lambda0=self.lambda0_,
            a=self.a, b=self.b, max_iters=self.max_iters, tol=self.tol,
            shuffle=self.shuffle, seed=self.seed,
            feature_names=feature_names, n_jobs=self.n_jobs, verbose=self.verbose,
        )
        self.feature_names_ = list(self.model_.feature_names)
        self.classes_ = np.array([0, 1], dtype=int)
        return self

    def get_params(self, deep: bool = True) -> Dict[str, object]:
        return {
            "lambda0": self.lambda0,
            "nlambda": self.nlambda,
            "nfolds": self.nfolds,
            "cv_rule": self.cv_rule,
            "a": self.a,
            "b": self.b,
            "n_train_runs": self.n_train_runs,
            "max_iters": self.max_iters,
            "tol": self.tol,
            "shuffle": self.shuffle,
            "seed": self.seed,
            "n_jobs": self.n_jobs,
            "verbose": self.verbose,
        }
