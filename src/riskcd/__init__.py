"""
riskcd package
--------------

Integer risk score models fitted by coordinate descent: a sparse points table
with a shared scale factor, trained with multiple restarts and an optional
cross-validated L0 penalty.
"""

from __future__ import annotations

from ._version import __version__
from ._solvers import OptimizerStatus
from .exceptions import ConfigurationError, DimensionMismatchError, NumericalError, RiskCDError
from .linear_model import FittedModel, fit, predict, risk_for_score
from .model import RiskScoreClassifier, RiskScoreCV
from .model_selection import CVResult, cross_validate, lambda_grid, stratified_folds
from .serialization import load_model_npz, save_model_npz, save_score_card_json

__all__ = [
    "__version__",
    "FittedModel",
    "CVResult",
    "OptimizerStatus",
    "RiskScoreClassifier",
    "RiskScoreCV",
    "fit",
    "predict",
    "risk_for_score",
    "cross_validate",
    "lambda_grid",
    "stratified_folds",
    "save_model_npz",
    "load_model_npz",
    "save_score_card_json",
    "RiskCDError",
    "ConfigurationError",
    "DimensionMismatchError",
    "NumericalError",
]
