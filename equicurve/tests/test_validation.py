"""Funding-pattern and parameter plausibility checks."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
for candidate in (PARENT, ROOT):
    path_str = str(candidate)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from equicurve.config import CampaignConfig, EquiCurveConfig, ModelParameters
from equicurve.errors import InvalidParameter
from equicurve.hooks import EffortCostHook
from equicurve.simulation import CampaignSimulator
from equicurve.strategies import FixedStrategy
from equicurve.validation import CampaignValidator, ParameterValidation, PatternValidation

PARAMS = ModelParameters(alpha=1000.0, beta=0.5, gamma=1.2, sigma=0.0)
CAMPAIGN = CampaignConfig(duration=30, target=100_000.0, initial_price=1.0)


def _history(cumulative):
    return [SimpleNamespace(cumulative_raised=value) for value in cumulative]


def _reference_shaped(duration: int = 30):
    # Index 6 holds 42% and index 23 holds 70% of the final total.
    values = []
    for idx in range(duration):
        if idx <= 6:
            values.append(42.0 * (idx + 1) / 7)
        elif idx <= 23:
            values.append(42.0 + 28.0 * (idx - 6) / 17)
        else:
            values.append(70.0 + 30.0 * (idx - 23) / 6)
    return _history(values)


def test_reference_shaped_campaign_is_realistic() -> None:
    result = CampaignValidator().validate_pattern(_reference_shaped(), 30)
    assert result.pattern["first_week"] == pytest.approx(0.42)
    assert result.pattern["middle"] == pytest.approx(0.28)
    assert result.pattern["last_week"] == pytest.approx(0.30)
    assert result.deviation == pytest.approx(0.0, abs=1e-12)
    assert result.is_realistic
    assert result.analysis == "Realistic funding curve"


def test_final_day_surge_is_a_hockey_stick() -> None:
    result = CampaignValidator().validate_pattern(_history([0.0] * 29 + [100.0]), 30)
    assert result.pattern == {"first_week": 0.0, "middle": 0.0, "last_week": 1.0}
    assert result.deviation == pytest.approx(1.4)
    assert not result.is_realistic
    assert result.analysis == "Hockey stick: Unrealistic final surge"


def test_front_loaded_and_slow_start_labels() -> None:
    validator = CampaignValidator()
    front = validator.validate_pattern(_history([100.0] * 30), 30)
    assert front.analysis == "Front-loaded: Unusually high early momentum"
    slow_values = [1.0] * 7 + [60.0] * 17 + [100.0] * 6
    slow = validator.validate_pattern(_history(slow_values), 30)
    assert slow.pattern["first_week"] == pytest.approx(0.01)
    assert slow.analysis == "Slow start: Low initial traction"


def test_segment_boundaries_follow_duration() -> None:
    # duration 10: first segment ends at index 2, last segment starts after index 7.
    cumulative = [10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0, 90.0, 100.0]
    result = CampaignValidator().validate_pattern(_history(cumulative), 10)
    assert result.pattern["first_week"] == pytest.approx(0.3)
    assert result.pattern["middle"] == pytest.approx(0.5)
    assert result.pattern["last_week"] == pytest.approx(0.2)


def test_deviation_sums_absolute_share_differences() -> None:
    pattern = {"first_week": 0.57, "middle": 0.28, "last_week": 0.15}
    cumulative = [57.0] * 7 + [85.0] * 17 + [100.0] * 6
    result = CampaignValidator().validate_pattern(_history(cumulative), 30)
    assert result.pattern == pytest.approx(pattern)
    assert result.deviation == pytest.approx(0.3)
    assert result.analysis == "Realistic funding curve"


@pytest.mark.parametrize(
    "history, duration",
    [
        ([], 30),
        (_history([10.0] * 5), 30),
        (_history([0.0] * 30), 30),
    ],
)
def test_unusable_histories_are_rejected(history, duration) -> None:
    with pytest.raises(InvalidParameter):
        CampaignValidator().validate_pattern(history, duration)


def test_parameter_messages() -> None:
    validator = CampaignValidator()
    low = validator.validate_parameters(50.0, 0.2, 0.5)
    assert not low.is_valid
    assert low.issues == (
        "Price elasticity (γ=0.5) below typical range - demand too inelastic",
        "Effort elasticity (β=0.2) too low - marketing ineffective",
        "Base demand (α=50.0) too low for viable campaign",
    )
    high = validator.validate_parameters(20_000.0, 0.9, 2.0)
    assert high.issues == (
        "Price elasticity (γ=2.0) above typical range - demand too elastic",
        "Effort elasticity (β=0.9) too high - unrealistic marketing impact",
        "Base demand (α=20000.0) unrealistically high",
    )


def test_parameter_bounds_are_inclusive() -> None:
    validator = CampaignValidator()
    assert validator.validate_parameters(100.0, 0.3, 0.8).is_valid
    assert validator.validate_parameters(10_000.0, 0.7, 1.5).is_valid


def test_recommendation_priority() -> None:
    realistic = PatternValidation({}, {}, 0.1, True, "Realistic funding curve")
    atypical = PatternValidation({}, {}, 0.9, False, "Hockey stick: Unrealistic final surge")
    good = ParameterValidation(True)
    bad = ParameterValidation(False, ("Base demand (α=50) too low for viable campaign",))
    recommend = CampaignValidator.recommendation
    assert recommend(atypical, bad) == "Results unrealistic - adjust both parameters and strategy"
    assert recommend(atypical, good) == "Funding pattern atypical - consider adjusting pricing strategy"
    assert recommend(realistic, bad) == "Parameter issues: Base demand (α=50) too low for viable campaign"
    assert recommend(realistic, good) == "Results within realistic bounds"


def test_report_on_reference_scenario() -> None:
    outcome = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0), include_noise=False).run()
    report = CampaignValidator().generate_report(outcome, PARAMS, CAMPAIGN)
    assert report.metrics["final_success_rate"] == pytest.approx(67.08, abs=0.01)
    assert report.metrics["daily_avg_progress"] == pytest.approx(0.6708204 / 30)
    assert report.metrics["roi"] == "N/A"
    assert report.parameters.is_valid
    # Constant revenue gives 7/30, 17/30 and 6/30 of the total.
    assert report.funding_pattern.pattern["first_week"] == pytest.approx(7 / 30)
    assert not report.is_realistic
    assert report.overall_valid is False
    assert report.recommendation == "Funding pattern atypical - consider adjusting pricing strategy"
    assert report.to_dict()["parameter_issues"] == []


def test_report_includes_roi_when_costs_are_tracked() -> None:
    outcome = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0), hooks=[EffortCostHook()], include_noise=False).run()
    report = CampaignValidator().generate_report(outcome, PARAMS)
    assert report.metrics["roi"] == pytest.approx(outcome.metrics["roi"])


def test_validator_reads_config_overrides() -> None:
    config = EquiCurveConfig(PATTERN_TOLERANCE=2.0)
    validator = CampaignValidator.from_config(config)
    result = validator.validate_pattern(_history([0.0] * 29 + [100.0]), 30)
    assert result.is_realistic
