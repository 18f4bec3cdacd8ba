"""Single-campaign simulation loop and outcome invariants."""

from __future__ import annotations

import dataclasses
import math
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
for candidate in (PARENT, ROOT):
    path_str = str(candidate)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from equicurve.config import CampaignConfig, EquiCurveConfig, ModelParameters
from equicurve.errors import InvalidParameter, StrategyContractViolation
from equicurve.noise import RandomNumberSource
from equicurve.simulation import EXPORT_COLUMNS, CampaignSimulator, simulate_campaign
from equicurve.strategies import BondingCurveStrategy, CallableStrategy, DynamicFeedbackStrategy, FixedStrategy

PARAMS = ModelParameters(alpha=1000.0, beta=0.5, gamma=1.2, sigma=0.0)
CAMPAIGN = CampaignConfig(duration=30, target=100_000.0, initial_price=1.0)


def test_reference_scenario_without_noise() -> None:
    simulator = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0, effort=5.0), include_noise=False)
    outcome = simulator.run()
    daily = 1000.0 * math.sqrt(5.0)
    assert len(outcome.history) == 30
    for record in outcome.history:
        assert record.demand == pytest.approx(2236.07, abs=0.01)
        assert record.revenue == pytest.approx(daily)
    assert outcome.history[-1].cumulative_raised == pytest.approx(67082.04, abs=0.01)
    assert outcome.total_raised == pytest.approx(30 * daily)
    assert outcome.success is False


@pytest.mark.parametrize("seed", [1, 2, 3])
def test_outcome_consistency_with_noise(seed: int) -> None:
    params = ModelParameters(alpha=1500.0, beta=0.5, gamma=1.2, sigma=0.3)
    strategy = DynamicFeedbackStrategy(1.0, duration=30)
    outcome = CampaignSimulator(params, CAMPAIGN, strategy, rng=RandomNumberSource(seed)).run()
    assert outcome.history[-1].cumulative_raised == pytest.approx(sum(day.revenue for day in outcome.history))
    assert outcome.total_demand == pytest.approx(sum(day.demand for day in outcome.history))
    assert outcome.success == (outcome.total_raised >= CAMPAIGN.target)
    assert [day.day for day in outcome.history] == list(range(1, 31))


def test_success_is_decided_at_the_horizon() -> None:
    params = ModelParameters(alpha=20_000.0, beta=0.5, gamma=1.2, sigma=0.0)
    outcome = CampaignSimulator(params, CAMPAIGN, FixedStrategy(1.0), include_noise=False).run()
    crossed = next(record.day for record in outcome.history if record.cumulative_raised >= CAMPAIGN.target)
    assert crossed < 30
    assert len(outcome.history) == 30, "Revenue keeps accruing after the target is crossed"
    assert outcome.success
    assert outcome.history[-1].percent_complete > 100.0


def test_same_seed_reproduces_the_campaign() -> None:
    params = ModelParameters(alpha=1000.0, beta=0.5, gamma=1.2, sigma=0.25)
    strategy = BondingCurveStrategy(1.0)
    first = CampaignSimulator(params, CAMPAIGN, strategy, rng=RandomNumberSource(99)).run()
    second = CampaignSimulator(params, CAMPAIGN, strategy, rng=RandomNumberSource(99)).run()
    assert first.total_raised == second.total_raised
    other = CampaignSimulator(params, CAMPAIGN, strategy, rng=RandomNumberSource(100)).run()
    assert other.total_raised != first.total_raised


def test_non_positive_price_is_a_contract_violation() -> None:
    strategy = CallableStrategy(lambda day, raised, target: 1.0 if day < 5 else 0.0, lambda *args: 5.0, initial_price=1.0)
    with pytest.raises(StrategyContractViolation, match="day 5"):
        CampaignSimulator(PARAMS, CAMPAIGN, strategy, include_noise=False).run()


def test_non_finite_effort_is_a_contract_violation() -> None:
    strategy = CallableStrategy(lambda *args: 1.0, lambda *args: float("nan"))
    with pytest.raises(StrategyContractViolation):
        CampaignSimulator(PARAMS, CAMPAIGN, strategy, include_noise=False).run()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"alpha": 0.0, "beta": 0.5, "gamma": 1.2},
        {"alpha": -5.0, "beta": 0.5, "gamma": 1.2},
        {"alpha": 1000.0, "beta": 0.5, "gamma": 1.2, "sigma": -0.1},
        {"alpha": float("inf"), "beta": 0.5, "gamma": 1.2},
        {"alpha": 1000.0, "beta": float("nan"), "gamma": 1.2},
    ],
)
def test_invalid_model_parameters_are_rejected(kwargs) -> None:
    with pytest.raises(InvalidParameter):
        ModelParameters(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"duration": 0, "target": 1000.0},
        {"duration": 12.5, "target": 1000.0},
        {"duration": 30, "target": 0.0},
        {"duration": 30, "target": 1000.0, "initial_price": -1.0},
    ],
)
def test_invalid_campaign_config_is_rejected(kwargs) -> None:
    with pytest.raises(InvalidParameter):
        CampaignConfig(**kwargs)


def test_wide_elasticities_are_accepted() -> None:
    params = ModelParameters(alpha=1000.0, beta=1.4, gamma=3.0)
    assert params.is_price_elastic


def test_records_and_outcome_are_immutable() -> None:
    outcome = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0), include_noise=False).run()
    with pytest.raises(dataclasses.FrozenInstanceError):
        outcome.history[0].price = 2.0
    with pytest.raises(dataclasses.FrozenInstanceError):
        outcome.success = True
    with pytest.raises(TypeError):
        outcome.history[0].extras["fee"] = 1.0


def test_history_frame_exports_columns_in_order() -> None:
    outcome = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0), include_noise=False).run()
    frame = outcome.history_frame()
    assert tuple(frame.columns[: len(EXPORT_COLUMNS)]) == EXPORT_COLUMNS
    assert len(frame) == 30
    assert frame["cumulative_raised"].iloc[-1] == pytest.approx(outcome.total_raised)


def test_numeric_metrics_flatten_success() -> None:
    outcome = CampaignSimulator(PARAMS, CAMPAIGN, FixedStrategy(1.0), include_noise=False).run()
    metrics = outcome.numeric_metrics()
    assert metrics["success"] == 0.0
    assert metrics["total_raised"] == pytest.approx(outcome.total_raised)
    assert metrics["percent_complete"] == pytest.approx(67.082, abs=1e-3)


def test_simulate_campaign_from_config_and_selector() -> None:
    config = EquiCurveConfig(SIGMA=0.0, INCLUDE_NOISE=False)
    outcome = simulate_campaign(config, "fixed")
    assert outcome.total_raised == pytest.approx(30 * 1000.0 * math.sqrt(5.0))
    dynamic = simulate_campaign(config, "dynamic", rng=RandomNumberSource(5))
    assert dynamic.strategy["strategy"] == "dynamic"
    explicit = simulate_campaign(parameters=PARAMS, campaign=CAMPAIGN, strategy=FixedStrategy(1.0), include_noise=False)
    assert explicit.total_raised == pytest.approx(outcome.total_raised)


def test_from_inputs_validates_ui_fields() -> None:
    config = EquiCurveConfig.from_inputs(alpha=1000, beta=0.5, gamma=1.2, duration=30, target=100000, initial_price=1.0, strategy="bonding")
    assert config.STRATEGY == "bonding"
    with pytest.raises(InvalidParameter):
        EquiCurveConfig.from_inputs(alpha=float("nan"), beta=0.5, gamma=1.2, duration=30, target=100000, initial_price=1.0)
    with pytest.raises(InvalidParameter):
        EquiCurveConfig.from_inputs(alpha=1000, beta=0.5, gamma=1.2, duration=30, target=100000, initial_price=1.0, strategy="magic")
    with pytest.raises(InvalidParameter):
        EquiCurveConfig.from_inputs(alpha=1000, beta=0.5, gamma=1.2, duration=-3, target=100000, initial_price=1.0)
