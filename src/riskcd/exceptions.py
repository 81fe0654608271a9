"""Exception hierarchy for riskcd."""

from __future__ import annotations

__all__ = [
    "RiskCDError",
    "ConfigurationError",
    "DimensionMismatchError",
    "NumericalError",
]


class RiskCDError(Exception):
    """Base class for all riskcd errors."""


class ConfigurationError(RiskCDError, ValueError):
    """Invalid arguments; raised before any optimisation work starts."""


class DimensionMismatchError(ConfigurationError):
    """Shapes of X, y, weights or beta disagree."""


class NumericalError(RiskCDError, ArithmeticError):
    """A starting point (gamma, beta) is NaN, infinite or otherwise degenerate."""
