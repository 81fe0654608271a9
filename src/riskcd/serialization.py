"""Persistence helpers for riskcd models."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from ._solvers import OptimizerStatus
from .linear_model import FittedModel, make_model
from .preprocessing import Design
from .scorecard import build_score_map

__all__ = [
    "save_model_npz",
    "load_model_npz",
    "save_score_card_json",
    "load_score_card_json",
]


def _nan_to_none(x):
    if isinstance(x, float) and np.isnan(x):
        return None
    if isinstance(x, np.ndarray):
        return [_nan_to_none(v) for v in x.tolist()]
    return x


def _none_to_nan(x):
    if x is None:
        return float("nan")
    return x


def save_model_npz(model: FittedModel, path: str | Path) -> None:
    """
    Persist a fitted model, including its training rows, to a compressed npz
    file. The score card and score map are rebuilt by :func:`load_model_npz`.
    """
    state = {
        "feature_names": np.array(model.feature_names, dtype=object),
        "gamma": np.array([model.gamma], dtype=np.float64),
        "beta": np.asarray(model.beta, dtype=np.int64),
        "X": np.asarray(model.X, dtype=np.float64),
        "y": np.asarray(model.y, dtype=np.float64),
        "weights": np.asarray(model.weights, dtype=np.float64),
        "lambda0": np.array([model.lambda0], dtype=np.float64),
        "bounds": np.array([model.a, model.b], dtype=np.int64),
        "objective": np.array([model.objective], dtype=np.float64),
        "status": np.array([model.status.value], dtype=object),
        "n_iter": np.array([model.n_iter], dtype=np.int64),
        "trace": np.asarray(model.trace, dtype=np.float64),
        "n_failed_runs": np.array([model.n_failed_runs], dtype=np.int64),
    }
    np.savez_compressed(path, **state)


def load_model_npz(path: str | Path) -> FittedModel:
    """Load a model stored by :func:`save_model_npz`."""
    blob = np.load(path, allow_pickle=True)
    design = Design(
        X=blob["X"].astype(np.float64),
        y=blob["y"].astype(np.float64),
        weights=blob["weights"].astype(np.float64),
        feature_names=[str(f) for f in blob["feature_names"]],
    )
    a, b = (int(v) for v in blob["bounds"])
    return make_model(
        design,
        float(blob["gamma"][0]),
        blob["beta"].astype(np.int64),
        lambda0=float(blob["lambda0"][0]),
        a=a,
        b=b,
        objective=float(blob["objective"][0]),
        status=OptimizerStatus(str(blob["status"][0])),
        n_iter=int(blob["n_iter"][0]),
        trace=blob["trace"].tolist(),
        n_failed_runs=int(blob["n_failed_runs"][0]),
    )


def save_score_card_json(model: FittedModel, path: str | Path, *, decimals: int = 4) -> None:
    """Write the published point table and score map to a JSON file."""
    score_map = build_score_map(model.gamma, model.beta, model.X, decimals=decimals)
    payload = {
        "intercept": model.intercept,
        "gamma": _nan_to_none(float(model.gamma)),
        "lambda0": model.lambda0,
        "objective": _nan_to_none(float(model.objective)),
        "points": {feat: int(pts) for feat, pts in model.model_card.items()},
        "score_map": [
            {"score": int(s), "risk": _nan_to_none(float(r))}
            for s, r in zip(score_map["score"], score_map["risk"])
        ],
    }
    Path(path).write_text(json.dumps(payload, indent=2))


def load_score_card_json(path: str | Path) -> dict:
    """Load a card written by :func:`save_score_card_json`."""
    raw = json.loads(Path(path).read_text())
    raw["gamma"] = float(_none_to_nan(raw["gamma"]))
    raw["objective"] = float(_none_to_nan(raw["objective"]))
    raw["points"] = {feat: int(pts) for feat, pts in raw["points"].items()}
    raw["score_map"] = [
        {"score": int(row["score"]), "risk": float(_none_to_nan(row["risk"]))}
        for row in raw["score_map"]
    ]
    return raw
