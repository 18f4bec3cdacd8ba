"""
Plausibility checks of simulated campaigns against empirical reference patterns.

Reward-based campaigns raise money along a characteristic curve: a strong
launch, a quiet middle and a late surge. Splitting the horizon at roughly 23%
and 77% of its days, the reference shares of total funding are 42%, 28% and
30%. A simulated campaign whose shares deviate by less than 0.30 in total
(sum of absolute differences) is considered realistic.

The parameter check compares alpha, beta and gamma to the ranges typically
recovered from real campaigns. Violations are informational: they never stop a
simulation and are only reported.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import CampaignConfig, EquiCurveConfig, ModelParameters
from .errors import InvalidParameter

REFERENCE_PATTERN = {"first_week": 0.42, "middle": 0.28, "last_week": 0.30}
PARAMETER_RANGES = {
    "alpha": {"min": 100.0, "max": 10_000.0},
    "beta": {"min": 0.3, "max": 0.7},
    "gamma": {"min": 0.8, "max": 1.5},
}
FIRST_SEGMENT_SHARE = 0.23
LAST_SEGMENT_START = 0.77


@dataclass(frozen=True)
class PatternValidation:
    pattern: Mapping[str, float]
    expected: Mapping[str, float]
    deviation: float
    is_realistic: bool
    analysis: str


@dataclass(frozen=True)
class ParameterValidation:
    is_valid: bool
    issues: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class ValidationReport:
    overall_valid: bool
    funding_pattern: PatternValidation
    parameters: ParameterValidation
    metrics: Mapping[str, Any]
    recommendation: str

    @property
    def pattern_deviation(self) -> float:
        return self.funding_pattern.deviation

    @property
    def is_realistic(self) -> bool:
        return self.funding_pattern.is_realistic

    @property
    def parameter_issues(self) -> Sequence[str]:
        return self.parameters.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_valid": self.overall_valid,
            "pattern_deviation": self.pattern_deviation,
            "is_realistic": self.is_realistic,
            "funding_pattern": dict(self.funding_pattern.pattern),
            "analysis": self.funding_pattern.analysis,
            "parameter_issues": list(self.parameter_issues),
            "metrics": dict(self.metrics),
            "recommendation": self.recommendation,
        }


def _cumulative(record: Any) -> float:
    if isinstance(record, Mapping):
        return float(record["cumulative_raised"])
    return float(record.cumulative_raised)


class CampaignValidator:
    """Compare funding shape and demand parameters with reference benchmarks."""

    def __init__(
        self,
        reference_pattern: Optional[Mapping[str, float]] = None,
        tolerance: float = 0.3,
        parameter_ranges: Optional[Mapping[str, Mapping[str, float]]] = None,
    ):
        self.reference_pattern = dict(reference_pattern or REFERENCE_PATTERN)
        self.tolerance = tolerance
        self.parameter_ranges = {key: dict(value) for key, value in (parameter_ranges or PARAMETER_RANGES).items()}

    @classmethod
    def from_config(cls, config: EquiCurveConfig) -> "CampaignValidator":
        return cls(
            reference_pattern=config.REFERENCE_PATTERN,
            tolerance=config.PATTERN_TOLERANCE,
            parameter_ranges=config.PARAMETER_RANGES,
        )

    def validate_pattern(self, history: Sequence[Any], duration: int) -> PatternValidation:
        if not history:
            raise InvalidParameter("Cannot validate a campaign with an empty history")
        if len(history) < duration:
            raise InvalidParameter(f"History covers {len(history)} days but the campaign lasts {duration}")
        first_end = math.floor(duration * FIRST_SEGMENT_SHARE)
        last_start = math.floor(duration * LAST_SEGMENT_START)
        total = _cumulative(history[-1])
        if total <= 0:
            raise InvalidParameter("Cannot validate the funding pattern of a campaign that raised nothing")

        raised_first = _cumulative(history[first_end])
        raised_before_last = _cumulative(history[last_start])
        pattern = {
            "first_week": raised_first / total,
            "middle": (raised_before_last - raised_first) / total,
            "last_week": (total - raised_before_last) / total,
        }
        deviation = sum(abs(pattern[key] - self.reference_pattern[key]) for key in pattern)
        return PatternValidation(
            pattern=pattern,
            expected=dict(self.reference_pattern),
            deviation=deviation,
            is_realistic=deviation < self.tolerance,
            analysis=self.analyze_pattern(pattern),
        )

    @staticmethod
    def analyze_pattern(pattern: Mapping[str, float]) -> str:
        if pattern["first_week"] > 0.6:
            return "Front-loaded: Unusually high early momentum"
        if pattern["last_week"] > 0.5:
            return "Hockey stick: Unrealistic final surge"
        if pattern["first_week"] < 0.2:
            return "Slow start: Low initial traction"
        return "Realistic funding curve"

    def validate_parameters(self, alpha: float, beta: float, gamma: float) -> ParameterValidation:
        issues: List[str] = []
        ranges = self.parameter_ranges
        if gamma < ranges["gamma"]["min"]:
            issues.append(f"Price elasticity (γ={gamma}) below typical range - demand too inelastic")
        elif gamma > ranges["gamma"]["max"]:
            issues.append(f"Price elasticity (γ={gamma}) above typical range - demand too elastic")
        if beta < ranges["beta"]["min"]:
            issues.append(f"Effort elasticity (β={beta}) too low - marketing ineffective")
        elif beta > ranges["beta"]["max"]:
            issues.append(f"Effort elasticity (β={beta}) too high - unrealistic marketing impact")
        if alpha < ranges["alpha"]["min"]:
            issues.append(f"Base demand (α={alpha}) too low for viable campaign")
        elif alpha > ranges["alpha"]["max"]:
            issues.append(f"Base demand (α={alpha}) unrealistically high")
        return ParameterValidation(is_valid=not issues, issues=tuple(issues))

    @staticmethod
    def recommendation(pattern: PatternValidation, parameters: ParameterValidation) -> str:
        if not pattern.is_realistic and not parameters.is_valid:
            return "Results unrealistic - adjust both parameters and strategy"
        if not pattern.is_realistic:
            return "Funding pattern atypical - consider adjusting pricing strategy"
        if not parameters.is_valid:
            return "Parameter issues: " + "; ".join(parameters.issues)
        return "Results within realistic bounds"

    def generate_report(
        self,
        outcome: Any,
        parameters: ModelParameters,
        campaign: Optional[CampaignConfig] = None,
    ) -> ValidationReport:
        duration = campaign.duration if campaign is not None else outcome.duration
        target = campaign.target if campaign is not None else outcome.target
        pattern = self.validate_pattern(outcome.history, duration)
        params = self.validate_parameters(parameters.alpha, parameters.beta, parameters.gamma)
        raised = outcome.total_raised
        metrics: Dict[str, Any] = {
            "daily_avg_progress": raised / target / duration,
            "final_success_rate": 100.0 if outcome.success else raised / target * 100.0,
            "roi": outcome.metrics.get("roi", "N/A"),
        }
        return ValidationReport(
            overall_valid=pattern.is_realistic and params.is_valid,
            funding_pattern=pattern,
            parameters=params,
            metrics=metrics,
            recommendation=self.recommendation(pattern, params),
        )


__all__ = [
    "REFERENCE_PATTERN",
    "PARAMETER_RANGES",
    "PatternValidation",
    "ParameterValidation",
    "ValidationReport",
    "CampaignValidator",
]
