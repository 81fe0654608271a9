"""
Point tables for fitted risk score models.

A score card lists the integer points of every feature with a nonzero
coefficient; the score map lists every integer total score a patient can reach
together with its predicted risk.
"""

from __future__ import annotations

import math
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from ._math import _sigmoid

__all__ = ["build_score_card", "build_score_map", "score_card_frame"]

_MIN_CARD_FEATURES = 2


def build_score_card(beta: np.ndarray, feature_names: Sequence[str]) -> Dict[str, int]:
    """
    Feature -> points for the nonzero non-intercept coefficients.

    Models with fewer than two such coefficients do not make a usable card
    and yield an empty mapping.
    """
    coef = np.asarray(beta)[1:]
    active = np.flatnonzero(coef)
    if active.size < _MIN_CARD_FEATURES:
        return {}
    return {str(feature_names[j]): int(coef[j]) for j in active}


def build_score_map(
    gamma: float,
    beta: np.ndarray,
    X: np.ndarray,
    *,
    decimals: int = 4,
) -> pd.DataFrame:
    """
    Total score -> risk table.

    The score range is the sum over contributing features of the smallest and
    largest points each one can add given its observed minimum and maximum.
    Each feature is bounded on its own, so some totals at the edges may not
    be reached by any actual row. Risks are ``sigmoid(gamma * (beta[0] +
    score))`` rounded to ``decimals`` places.
    """
    beta = np.asarray(beta)
    coef = beta[1:]
    active = np.flatnonzero(coef)
    if active.size < _MIN_CARD_FEATURES:
        return pd.DataFrame({"score": pd.Series(dtype=np.int64), "risk": pd.Series(dtype=np.float64)})

    feats = np.asarray(X, dtype=np.float64)[:, 1:][:, active]
    points = coef[active].astype(np.float64)
    at_min = points * feats.min(axis=0)
    at_max = points * feats.max(axis=0)
    low = float(np.sum(np.minimum(at_min, at_max)))
    high = float(np.sum(np.maximum(at_min, at_max)))

    scores = np.arange(math.floor(round(low, 9)), math.ceil(round(high, 9)) + 1, dtype=np.int64)
    risk = _sigmoid(float(gamma) * (float(beta[0]) + scores))
    return pd.DataFrame({"score": scores, "risk": np.round(risk, decimals)})


def score_card_frame(model) -> pd.DataFrame:
    """Score card of a fitted model as a two-column table."""
    card = dict(model.model_card)
    return pd.DataFrame({
        "feature": list(card.keys()),
        "points": np.array(list(card.values()), dtype=np.int64),
    })
