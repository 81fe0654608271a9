"""
Low-level numerical helpers used throughout the riskcd package.

The functions in this module are intentionally lightweight so they can be
imported by both the solvers and the higher level estimators without creating
cyclic dependencies.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .exceptions import DimensionMismatchError

__all__ = [
    "_LOGIT_BOUND",
    "_sigmoid",
    "_softplus",
    "_binary_log_loss_from_logits",
    "_objective",
]

# Logits beyond this magnitude are saturated by _sigmoid.
_LOGIT_BOUND = 40.0


def _sigmoid(z: np.ndarray | float) -> np.ndarray | float:
    """Numerically stable logistic sigmoid."""
    z = np.clip(z, -_LOGIT_BOUND, _LOGIT_BOUND)
    return 1.0 / (1.0 + np.exp(-z))


def _softplus(z: np.ndarray | float) -> np.ndarray | float:
    """Stable computation of log(1 + exp(z))."""
    z = np.asarray(z)
    return np.log1p(np.exp(-np.abs(z))) + np.maximum(z, 0.0)


def _binary_log_loss_from_logits(
    y: np.ndarray,
    z: np.ndarray,
    sample_weight: Optional[np.ndarray] = None,
) -> float:
    """
    Weighted binary cross-entropy given logits.

    Parameters
    ----------
    y :
        Binary labels in {0, 1}.
    z :
        Logits (gamma * X beta).
    sample_weight :
        Non-negative per-row weights; ``None`` means all ones. The weighted
        losses are averaged over rows, not normalised by the weight total.
    """
    loss = _softplus(z) - y * z
    if sample_weight is not None:
        loss = sample_weight * loss
    return float(np.mean(loss))


def _objective(
    X: np.ndarray,
    y: np.ndarray,
    gamma: float,
    beta: np.ndarray,
    weights: np.ndarray,
    lambda0: float = 0.0,
) -> float:
    """
    Penalised weighted logistic loss of a risk score model.

    ``mean(w * logloss(y, sigmoid(gamma * X beta))) + lambda0 * nnz(beta[1:])``
    where column 0 of ``X`` is the intercept and is never penalised.
    """
    n, p = X.shape
    if beta.shape[0] != p:
        raise DimensionMismatchError(
            f"beta has {beta.shape[0]} entries but X has {p} columns."
        )
    if y.shape[0] != n or weights.shape[0] != n:
        raise DimensionMismatchError(
            f"X has {n} rows but y has {y.shape[0]} and weights has {weights.shape[0]}."
        )
    z = gamma * (X @ beta)
    penalty = lambda0 * float(np.count_nonzero(beta[1:]))
    return _binary_log_loss_from_logits(y, z, weights) + penalty
