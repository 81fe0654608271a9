"""
Metrics used to score held-out folds.

The implementations mirror scikit-learn's behaviour closely while supporting
per-row weights for the deviance.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

__all__ = [
    "binomial_deviance",
    "roc_auc_score",
]


def binomial_deviance(
    y_true: Iterable[int] | np.ndarray,
    y_prob: Iterable[float] | np.ndarray,
    sample_weight: Optional[Iterable[float] | np.ndarray] = None,
    *,
    eps: float = 1e-15,
) -> float:
    """
    Weighted mean binomial deviance, ``-2 * sum(w * loglik) / sum(w)``.

    Parameters
    ----------
    y_true :
        Ground truth labels in {0, 1}.
    y_prob :
        Predicted probabilities of the positive class.
    sample_weight :
        Non-negative row weights; defaults to ones.
    """
    y = np.asarray(y_true, dtype=np.float64)
    p = np.clip(np.asarray(y_prob, dtype=np.float64), eps, 1.0 - eps)
    w = np.ones_like(y) if sample_weight is None else np.asarray(sample_weight, dtype=np.float64)
    loglik = y * np.log(p) + (1.0 - y) * np.log1p(-p)
    return float(-2.0 * np.sum(w * loglik) / max(float(np.sum(w)), 1e-12))


def _rankdata_average(a: np.ndarray) -> np.ndarray:
    """Tie-aware ranking with averaging; helper for ROC AUC."""
    order = np.argsort(a, kind="mergesort")
    ranks = np.empty_like(order, dtype=np.float64)
    i = 0
    n = a.size
    while i < n:
        j = i + 1
        while j < n and a[order[j]] == a[order[i]]:
            j += 1
        rank = 0.5 * (i + j - 1) + 1.0
        ranks[order[i:j]] = rank
        i = j
    return ranks


def roc_auc_score(
    y_true: Iterable[int] | np.ndarray,
    y_score: Iterable[float] | np.ndarray,
) -> float:
    """
    Area under the ROC curve for binary classification (Mann-Whitney form).

    Raises ``ValueError`` when only one class is present.
    """
    y = np.asarray(y_true, dtype=np.int64)
    scores = np.asarray(y_score, dtype=np.float64)

    pos = int(np.sum(y == 1))
    neg = int(np.sum(y == 0))
    if pos == 0 or neg == 0:
        raise ValueError("roc_auc_score is undefined when only one class is present.")

    ranks = _rankdata_average(scores)
    u = np.sum(ranks[y == 1]) - pos * (pos + 1) / 2.0
    return float(u / (pos * neg))
