"""Exception hierarchy for the EquiCurve simulation core."""

from __future__ import annotations


class EquiCurveError(Exception):
    """Base class for every error raised by the package."""


class InvalidParameter(EquiCurveError, ValueError):
    """A model, campaign or strategy parameter is outside its documented domain."""


class DegenerateEstimation(EquiCurveError, ValueError):
    """Regression inputs lack the variation required to identify the parameters."""


class StrategyContractViolation(EquiCurveError, ValueError):
    """A strategy produced a non-finite or out-of-range price or effort."""


class UnknownExperimentConfiguration(EquiCurveError, KeyError):
    """An experiment or configuration key is not registered."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class CollinearityWarning(UserWarning):
    """Effort and price observations are correlated enough to bias the estimator."""


__all__ = [
    "EquiCurveError",
    "InvalidParameter",
    "DegenerateEstimation",
    "StrategyContractViolation",
    "UnknownExperimentConfiguration",
    "CollinearityWarning",
]
