"""Pricing and effort strategies."""

from __future__ import annotations

import math
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

from equicurve.errors import InvalidParameter
from equicurve.strategies import (
    BONDING_CURVES,
    EFFORT_PATTERNS,
    AdaptiveEffortStrategy,
    AdaptivePricingStrategy,
    AllocatedEffortStrategy,
    BondingCurveStrategy,
    CallableStrategy,
    DualPartyStrategy,
    DynamicFeedbackStrategy,
    EffortPatternStrategy,
    FixedStrategy,
    LinearPathStrategy,
    StepFunctionStrategy,
    TrustAwareStrategy,
    build_strategy,
)

TARGET = 100_000.0


def test_fixed_strategy_is_constant() -> None:
    strategy = FixedStrategy(1.5, effort=4.0)
    for day in (1, 10, 30):
        assert strategy.get_price(day, day * 1000.0, TARGET) == 1.5
        assert strategy.get_effort(day, day * 1000.0, TARGET) == 4.0


def test_linear_path_interpolates_between_endpoints() -> None:
    strategy = LinearPathStrategy(1.0, 0.5, duration=30)
    assert strategy.get_price(1, 0.0, TARGET) == pytest.approx(1.0)
    assert strategy.get_price(30, 0.0, TARGET) == pytest.approx(0.5)
    assert strategy.get_price(15, 0.0, TARGET) == pytest.approx(1.0 - 0.5 * 14 / 29)
    assert LinearPathStrategy(1.0, 2.0, duration=1).get_price(1, 0.0, TARGET) == 1.0


def test_step_function_uses_latest_threshold() -> None:
    strategy = StepFunctionStrategy(1.2, [(20, 0.6), (1, 1.0), (10, 0.8)])
    assert strategy.get_price(1, 0.0, TARGET) == 1.0
    assert strategy.get_price(9, 0.0, TARGET) == 1.0
    assert strategy.get_price(10, 0.0, TARGET) == 0.8
    assert strategy.get_price(25, 0.0, TARGET) == 0.6
    late_start = StepFunctionStrategy(1.2, [(5, 0.9)])
    assert late_start.get_price(3, 0.0, TARGET) == 1.2


def test_dynamic_feedback_price_tracks_progress_gap() -> None:
    strategy = DynamicFeedbackStrategy(1.0, effort_budget=150, duration=30, adjustment_rate=0.05)
    on_pace = strategy.get_price(15, TARGET * 0.5, TARGET)
    ahead = strategy.get_price(15, TARGET * 0.9, TARGET)
    behind = strategy.get_price(15, TARGET * 0.1, TARGET)
    assert on_pace == pytest.approx(1.0)
    assert ahead == pytest.approx(1.0 + 0.4 * 0.05)
    assert behind == pytest.approx(1.0 - 0.4 * 0.05)


def test_dynamic_feedback_effort_doubles_when_behind() -> None:
    strategy = DynamicFeedbackStrategy(1.0, effort_budget=150, duration=30)
    day = 10
    base = 150 * (1 - day / 30) / (30 - day + 1)
    assert strategy.get_effort(day, TARGET * 0.9, TARGET) == pytest.approx(base)
    assert strategy.get_effort(day, 0.0, TARGET) == pytest.approx(base * 2)
    assert strategy.get_effort(30, 0.0, TARGET) == 0.0


def test_adaptive_pricing_bands_and_floor() -> None:
    strategy = AdaptivePricingStrategy(1.0, sensitivity=0.1, duration=30)
    day = 15  # expected progress 0.5
    assert strategy.get_price(day, TARGET * 0.65, TARGET) == pytest.approx(1.2)
    assert strategy.get_price(day, TARGET * 0.55, TARGET) == pytest.approx(1.1)
    assert strategy.get_price(day, TARGET * 0.5, TARGET) == pytest.approx(1.0)
    assert strategy.get_price(day, TARGET * 0.45, TARGET) == pytest.approx(0.9)
    assert strategy.get_price(day, TARGET * 0.1, TARGET) == pytest.approx(0.8)
    aggressive = AdaptivePricingStrategy(1.0, sensitivity=0.4, duration=30)
    assert aggressive.get_price(day, 0.0, TARGET) == pytest.approx(0.5)


@pytest.mark.parametrize("curve", BONDING_CURVES)
def test_bonding_curves_rise_with_progress(curve: str) -> None:
    strategy = BondingCurveStrategy(1.0, curve=curve, steepness=0.5)
    prices = [strategy.get_price(1, TARGET * p, TARGET) for p in (0.0, 0.25, 0.5, 0.75, 1.0)]
    assert all(b > a for a, b in zip(prices, prices[1:])), f"{curve} curve must be increasing"


def test_bonding_curve_formulas_and_effort() -> None:
    k = 0.5
    assert BondingCurveStrategy(1.0, "linear", k).get_price(1, TARGET * 0.4, TARGET) == pytest.approx(1.2)
    assert BondingCurveStrategy(1.0, "exponential", k).get_price(1, TARGET, TARGET) == pytest.approx(math.exp(0.5))
    assert BondingCurveStrategy(1.0, "logarithmic", k).get_price(1, TARGET, TARGET) == pytest.approx(1 + 0.5 * math.log(2))
    assert BondingCurveStrategy(1.0, "sigmoid", 1.0).get_price(1, TARGET * 0.5, TARGET) == pytest.approx(1.5)
    strategy = BondingCurveStrategy(2.0, "linear", 1.0, base_effort=5.0)
    assert strategy.get_effort(1, TARGET, TARGET) == pytest.approx(5.0 * math.sqrt(2.0))


def test_unknown_bonding_curve_is_rejected() -> None:
    with pytest.raises(InvalidParameter):
        BondingCurveStrategy(1.0, curve="cubic")


@pytest.mark.parametrize("pattern", EFFORT_PATTERNS)
def test_effort_patterns_spend_exactly_the_budget(pattern: str) -> None:
    strategy = EffortPatternStrategy(1.0, pattern=pattern, total_budget=150.0, duration=30)
    total = sum(strategy.get_effort(day, 0.0, TARGET) for day in range(1, 31))
    assert total == pytest.approx(150.0)
    assert strategy.get_price(7, 0.0, TARGET) == 1.0


@pytest.mark.parametrize("duration", [1, 2])
@pytest.mark.parametrize("pattern", EFFORT_PATTERNS)
def test_short_horizons_still_spend_the_budget(pattern: str, duration: int) -> None:
    strategy = EffortPatternStrategy(1.0, pattern=pattern, total_budget=150.0, duration=duration)
    efforts = [strategy.get_effort(day, 0.0, TARGET) for day in range(1, duration + 1)]
    assert sum(efforts) == pytest.approx(150.0)
    assert all(effort >= 0.0 for effort in efforts)


def test_one_day_tapering_patterns_fall_back_to_an_even_split() -> None:
    for pattern in ("front-loaded", "middle-peak"):
        strategy = EffortPatternStrategy(1.0, pattern=pattern, total_budget=150.0, duration=1)
        assert strategy.get_effort(1, 0.0, TARGET) == pytest.approx(150.0)


def test_effort_pattern_shapes() -> None:
    def efforts(pattern: str):
        strategy = EffortPatternStrategy(1.0, pattern=pattern, duration=30)
        return [strategy.get_effort(day, 0.0, TARGET) for day in range(1, 31)]

    front, back, middle, u_shape = efforts("front-loaded"), efforts("back-loaded"), efforts("middle-peak"), efforts("u-shape")
    assert front == sorted(front, reverse=True)
    assert back == sorted(back)
    assert middle.index(max(middle)) == 14
    assert u_shape[0] > u_shape[14] < u_shape[-1]


def test_dual_party_effort() -> None:
    strategy = DualPartyStrategy(1.0, entrepreneur_effort=4.0, platform_effort=4.0, platform_multiplier=1.5)
    assert strategy.get_effort(1, 0.0, TARGET) == pytest.approx(10.0)
    assert strategy.get_price(1, 0.0, TARGET) == 1.0


def test_adaptive_effort_is_clamped() -> None:
    strategy = AdaptiveEffortStrategy(1.0, base_budget=150.0, duration=30, adaptation_rate=0.2)
    assert strategy.get_effort(30, 0.0, TARGET) == pytest.approx(5.0 + 5.0 * 0.2 * 1.0)
    assert strategy.get_effort(1, TARGET * 20, TARGET) == 1.0
    wild = AdaptiveEffortStrategy(1.0, base_budget=150.0, duration=30, adaptation_rate=50.0)
    assert wild.get_effort(30, 0.0, TARGET) == pytest.approx(15.0)


def test_trust_aware_reads_signals() -> None:
    strategy = TrustAwareStrategy(1.0)
    assert strategy.get_price(5, 0.0, TARGET) == 1.0
    assert strategy.get_effort(5, 0.0, TARGET) == pytest.approx(5.0)
    state = SimpleNamespace(signals={"perceived_progress": 0.6, "trust": 1.0})
    assert strategy.get_price(5, TARGET * 0.1, TARGET, state) == pytest.approx(1.0 + 0.5 * 0.1)
    assert strategy.get_effort(5, TARGET * 0.1, TARGET, state) == pytest.approx(7.0)
    distrust = SimpleNamespace(signals={"trust": -5.0})
    assert strategy.get_effort(5, 0.0, TARGET, distrust) == 1.0


def test_allocated_effort_weights_channels() -> None:
    strategy = AllocatedEffortStrategy(1.0, {"marketing": 0.5, "community": 0.5}, total_budget=150, duration=30)
    assert strategy.get_effort(1, 0.0, TARGET) == pytest.approx(5.0 * (0.5 * 1.2 + 0.5 * 1.1))


def test_callable_strategy_wraps_functions() -> None:
    strategy = CallableStrategy(lambda day, raised, target: 2.0 - day * 0.01, lambda day, raised, target: 3.0)
    assert strategy.initial_price == pytest.approx(1.99)
    assert strategy.get_price(10, 0.0, TARGET) == pytest.approx(1.9)
    assert strategy.get_effort(10, 0.0, TARGET) == 3.0


def test_build_strategy_selector() -> None:
    assert isinstance(build_strategy("fixed", 1.0, 30), FixedStrategy)
    assert isinstance(build_strategy("dynamic", 1.0, 30), DynamicFeedbackStrategy)
    bonding = build_strategy("bonding", 1.0, 30)
    assert isinstance(bonding, BondingCurveStrategy)
    assert (bonding.curve, bonding.steepness) == ("linear", 0.5)
    step = build_strategy("step", 2.0, 30, step_ratios=[(1, 1.0), (10, 0.5)])
    assert step.get_price(12, 0.0, TARGET) == pytest.approx(1.0)
    linear = build_strategy("linear", 2.0, 30, final_price_ratio=0.5)
    assert linear.get_price(30, 0.0, TARGET) == pytest.approx(1.0)
    with pytest.raises(InvalidParameter):
        build_strategy("martingale", 1.0, 30)


def test_strategy_rejects_non_positive_initial_price() -> None:
    with pytest.raises(InvalidParameter):
        FixedStrategy(0.0)
