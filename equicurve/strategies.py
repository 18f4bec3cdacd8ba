"""
Pricing and effort strategies.

Every strategy answers two questions for a given day: what price to charge and
how much promotional effort to spend. Both answers are pure functions of the
campaign state passed in (day, cumulative raised, target and, optionally, the
read-only :class:`~equicurve.simulation.CampaignState` carrying signals
published by augmentation hooks). Strategies never draw random numbers; only
the demand model injects noise.

The simulator checks every answer at the boundary and raises
:class:`~equicurve.errors.StrategyContractViolation` for a non-finite or
non-positive price or a negative effort.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import InvalidParameter
from .utils import clamp, require_finite, stable_sigmoid

if TYPE_CHECKING:
    from .simulation import CampaignState

DEFAULT_EFFORT = 5.0
DEFAULT_EFFORT_BUDGET = 150.0

BONDING_CURVES = ("linear", "exponential", "logarithmic", "sigmoid")
EFFORT_PATTERNS = ("constant", "front-loaded", "back-loaded", "middle-peak", "u-shape", "exponential")

# Effort channel multipliers used by allocation-based strategies.
CHANNEL_MULTIPLIERS = {"marketing": 1.2, "development": 0.8, "community": 1.1}


def _progress(cumulative_raised: float, target: float) -> float:
    return cumulative_raised / target if target > 0 else 0.0


class PricingStrategy(ABC):
    """Common interface for every price/effort policy."""

    name = "strategy"

    def __init__(self, initial_price: float):
        self.initial_price = require_finite("initial_price", initial_price, positive=True)

    @abstractmethod
    def get_price(self, day: int, cumulative_raised: float, target: float, state: Optional["CampaignState"] = None) -> float:
        ...

    @abstractmethod
    def get_effort(self, day: int, cumulative_raised: float, target: float, state: Optional["CampaignState"] = None) -> float:
        ...

    def describe(self) -> Dict[str, Any]:
        return {"strategy": self.name, "initial_price": self.initial_price}

    def __repr__(self) -> str:
        params = ", ".join(f"{key}={value!r}" for key, value in self.describe().items() if key != "strategy")
        return f"{type(self).__name__}({params})"


class FixedStrategy(PricingStrategy):
    name = "fixed"

    def __init__(self, initial_price: float, effort: float = DEFAULT_EFFORT):
        super().__init__(initial_price)
        self.effort = require_finite("effort", effort, non_negative=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        return self.effort

    def describe(self):
        return {**super().describe(), "effort": self.effort}


class LinearPathStrategy(PricingStrategy):
    """Price moves linearly from ``initial_price`` on day 1 to ``final_price`` on the last day."""

    name = "linear"

    def __init__(self, initial_price: float, final_price: float, duration: int, effort: float = DEFAULT_EFFORT):
        super().__init__(initial_price)
        self.final_price = require_finite("final_price", final_price, positive=True)
        self.duration = int(duration)
        self.effort = require_finite("effort", effort, non_negative=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        if self.duration <= 1:
            return self.initial_price
        progress = (day - 1) / (self.duration - 1)
        return self.initial_price + (self.final_price - self.initial_price) * progress

    def get_effort(self, day, cumulative_raised, target, state=None):
        return self.effort

    def describe(self):
        return {**super().describe(), "final_price": self.final_price, "duration": self.duration}


class StepFunctionStrategy(PricingStrategy):
    """Piecewise-constant price; each step applies from its day onward."""

    name = "step"

    def __init__(self, initial_price: float, steps: Iterable[Tuple[int, float]], effort: float = DEFAULT_EFFORT):
        super().__init__(initial_price)
        ordered: List[Tuple[int, float]] = []
        for step_day, price in steps:
            ordered.append((int(step_day), require_finite("step price", price, positive=True)))
        self.steps = tuple(sorted(ordered, key=lambda item: item[0]))
        self.effort = require_finite("effort", effort, non_negative=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        for step_day, price in reversed(self.steps):
            if day >= step_day:
                return price
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        return self.effort

    def describe(self):
        return {**super().describe(), "steps": list(self.steps)}


class DynamicFeedbackStrategy(PricingStrategy):
    """Nudges price with the progress gap and front-loads effort when behind pace.

    Price is ``initial * (1 + (progress - expected) * adjustment_rate)`` where the
    expected progress is the linear pace ``day / duration``. Effort spreads the
    remaining budget over the remaining days and doubles while behind pace.
    """

    name = "dynamic"

    def __init__(
        self,
        initial_price: float,
        effort_budget: float = DEFAULT_EFFORT_BUDGET,
        duration: int = 30,
        adjustment_rate: float = 0.05,
    ):
        super().__init__(initial_price)
        self.effort_budget = require_finite("effort_budget", effort_budget, non_negative=True)
        self.duration = int(duration)
        if self.duration <= 0:
            raise InvalidParameter(f"duration must be positive, got {duration}")
        self.adjustment_rate = require_finite("adjustment_rate", adjustment_rate)

    def expected_progress(self, day: int) -> float:
        return day / self.duration

    def get_price(self, day, cumulative_raised, target, state=None):
        gap = _progress(cumulative_raised, target) - self.expected_progress(day)
        return self.initial_price * (1.0 + gap * self.adjustment_rate)

    def get_effort(self, day, cumulative_raised, target, state=None):
        expected = self.expected_progress(day)
        remaining_budget = self.effort_budget * (1.0 - expected)
        remaining_days = self.duration - day + 1
        if remaining_days <= 0 or remaining_budget <= 0:
            return 0.0
        urgency = 2.0 if _progress(cumulative_raised, target) < expected else 1.0
        return remaining_budget / remaining_days * urgency

    def describe(self):
        return {
            **super().describe(),
            "effort_budget": self.effort_budget,
            "duration": self.duration,
            "adjustment_rate": self.adjustment_rate,
        }


class AdaptivePricingStrategy(DynamicFeedbackStrategy):
    """Steps price up or down by ``sensitivity`` according to the performance ratio."""

    name = "adaptive"

    def __init__(
        self,
        initial_price: float,
        sensitivity: float = 0.1,
        effort_budget: float = DEFAULT_EFFORT_BUDGET,
        duration: int = 30,
        price_floor_ratio: float = 0.5,
    ):
        super().__init__(initial_price, effort_budget=effort_budget, duration=duration)
        self.sensitivity = require_finite("sensitivity", sensitivity, non_negative=True)
        self.price_floor_ratio = require_finite("price_floor_ratio", price_floor_ratio, positive=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        expected = self.expected_progress(day)
        performance = _progress(cumulative_raised, target) / expected if expected > 0 else 1.0
        if performance > 1.2:
            adjustment = self.sensitivity * 2
        elif performance > 1.0:
            adjustment = self.sensitivity
        elif performance < 0.8:
            adjustment = -self.sensitivity * 2
        elif performance < 1.0:
            adjustment = -self.sensitivity
        else:
            adjustment = 0.0
        floor = self.initial_price * self.price_floor_ratio
        return max(self.initial_price * (1.0 + adjustment), floor)

    def describe(self):
        return {**super().describe(), "sensitivity": self.sensitivity}


class BondingCurveStrategy(PricingStrategy):
    """Price rises deterministically with the share of the target already sold."""

    name = "bonding"

    def __init__(
        self,
        initial_price: float,
        curve: str = "linear",
        steepness: float = 0.5,
        base_effort: float = DEFAULT_EFFORT,
    ):
        super().__init__(initial_price)
        if curve not in BONDING_CURVES:
            raise InvalidParameter(f"Unknown bonding curve '{curve}'. Expected one of: {', '.join(BONDING_CURVES)}")
        self.curve = curve
        self.steepness = require_finite("steepness", steepness)
        self.base_effort = require_finite("base_effort", base_effort, non_negative=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        progress = _progress(cumulative_raised, target)
        k = self.steepness
        if self.curve == "linear":
            return self.initial_price * (1.0 + k * progress)
        if self.curve == "exponential":
            return self.initial_price * math.exp(k * progress)
        if self.curve == "logarithmic":
            return self.initial_price * (1.0 + k * math.log1p(progress))
        return self.initial_price * (1.0 + k * stable_sigmoid(10.0 * (progress - 0.5)))

    def get_effort(self, day, cumulative_raised, target, state=None):
        ratio = self.get_price(day, cumulative_raised, target, state) / self.initial_price
        return self.base_effort * math.sqrt(max(ratio, 0.0))

    def describe(self):
        return {**super().describe(), "curve": self.curve, "steepness": self.steepness}


class EffortPatternStrategy(PricingStrategy):
    """Fixed price with effort distributed over the horizon by a named shape.

    The raw shape is evaluated at ``tau = day / duration`` and rescaled so the
    campaign spends exactly ``total_budget`` effort units.
    """

    name = "effort-pattern"

    def __init__(
        self,
        initial_price: float,
        pattern: str = "constant",
        total_budget: float = DEFAULT_EFFORT_BUDGET,
        duration: int = 30,
    ):
        super().__init__(initial_price)
        if pattern not in EFFORT_PATTERNS:
            raise InvalidParameter(f"Unknown effort pattern '{pattern}'. Expected one of: {', '.join(EFFORT_PATTERNS)}")
        self.pattern = pattern
        self.total_budget = require_finite("total_budget", total_budget, non_negative=True)
        self.duration = int(duration)
        if self.duration <= 0:
            raise InvalidParameter(f"duration must be positive, got {duration}")
        weights = [self._shape(day / self.duration) for day in range(1, self.duration + 1)]
        total = sum(weights)
        if total <= 0:
            # A one-day horizon zeroes the tapering shapes; spend the budget evenly.
            weights = [1.0] * self.duration
            total = float(self.duration)
        self._allocation = tuple(self.total_budget * weight / total for weight in weights)

    def _shape(self, tau: float) -> float:
        if self.pattern == "front-loaded":
            return 2.0 * (1.0 - tau)
        if self.pattern == "back-loaded":
            return 2.0 * tau
        if self.pattern == "middle-peak":
            return 4.0 * tau * (1.0 - tau)
        if self.pattern == "u-shape":
            return 1.0 + 2.0 * abs(tau - 0.5)
        if self.pattern == "exponential":
            return math.exp(2.0 * tau - 1.0)
        return 1.0

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        if 1 <= day <= self.duration:
            return self._allocation[day - 1]
        return 0.0

    def describe(self):
        return {**super().describe(), "pattern": self.pattern, "total_budget": self.total_budget}


class DualPartyStrategy(PricingStrategy):
    """Entrepreneur and platform both promote; platform effort is amplified."""

    name = "dual-party"

    def __init__(
        self,
        initial_price: float,
        entrepreneur_effort: float,
        platform_effort: float,
        platform_multiplier: float = 1.5,
    ):
        super().__init__(initial_price)
        self.entrepreneur_effort = require_finite("entrepreneur_effort", entrepreneur_effort, non_negative=True)
        self.platform_effort = require_finite("platform_effort", platform_effort, non_negative=True)
        self.platform_multiplier = require_finite("platform_multiplier", platform_multiplier, non_negative=True)

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        return self.entrepreneur_effort + self.platform_effort * self.platform_multiplier

    def describe(self):
        return {
            **super().describe(),
            "entrepreneur_effort": self.entrepreneur_effort,
            "platform_effort": self.platform_effort,
            "platform_multiplier": self.platform_multiplier,
        }


class AdaptiveEffortStrategy(PricingStrategy):
    """Raises effort when behind pace and eases off when ahead, within ``[1, 3 * base]``."""

    name = "adaptive-effort"

    def __init__(
        self,
        initial_price: float,
        base_budget: float = DEFAULT_EFFORT_BUDGET,
        duration: int = 30,
        adaptation_rate: float = 0.2,
    ):
        super().__init__(initial_price)
        self.duration = int(duration)
        if self.duration <= 0:
            raise InvalidParameter(f"duration must be positive, got {duration}")
        self.base_budget = require_finite("base_budget", base_budget, positive=True)
        self.adaptation_rate = require_finite("adaptation_rate", adaptation_rate)

    @property
    def base_effort(self) -> float:
        return self.base_budget / self.duration

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        gap = _progress(cumulative_raised, target) - day / self.duration
        base = self.base_effort
        effort = base + base * self.adaptation_rate * -gap
        return clamp(effort, 1.0, base * 3.0)

    def describe(self):
        return {**super().describe(), "base_budget": self.base_budget, "adaptation_rate": self.adaptation_rate}


class TrustAwareStrategy(PricingStrategy):
    """Reacts to the perceived progress and trust signals of a principal-agent hook.

    Without those signals it behaves like a fixed strategy at the neutral
    trust level of 0.5.
    """

    name = "trust-aware"

    def __init__(self, initial_price: float, price_floor_ratio: float = 0.5):
        super().__init__(initial_price)
        self.price_floor_ratio = price_floor_ratio

    def get_price(self, day, cumulative_raised, target, state=None):
        actual = _progress(cumulative_raised, target)
        perceived = actual if state is None else state.signals.get("perceived_progress", actual)
        price = self.initial_price * (1.0 + (perceived - actual) * 0.1)
        return max(price, self.initial_price * self.price_floor_ratio)

    def get_effort(self, day, cumulative_raised, target, state=None):
        trust = 0.5 if state is None else state.signals.get("trust", 0.5)
        return clamp(DEFAULT_EFFORT + (trust - 0.5) * 4.0, 1.0, 10.0)


class AllocatedEffortStrategy(PricingStrategy):
    """Splits a per-day budget across channels with different effectiveness."""

    name = "allocated"

    def __init__(
        self,
        initial_price: float,
        allocation: Mapping[str, float],
        multipliers: Optional[Mapping[str, float]] = None,
        total_budget: float = DEFAULT_EFFORT_BUDGET,
        duration: int = 30,
    ):
        super().__init__(initial_price)
        if not allocation:
            raise InvalidParameter("allocation must name at least one channel")
        self.allocation = dict(allocation)
        self.multipliers = dict(CHANNEL_MULTIPLIERS if multipliers is None else multipliers)
        self.total_budget = require_finite("total_budget", total_budget, non_negative=True)
        self.duration = int(duration)

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.initial_price

    def get_effort(self, day, cumulative_raised, target, state=None):
        base = self.total_budget / self.duration
        weight = sum(share * self.multipliers.get(channel, 1.0) for channel, share in self.allocation.items())
        return base * weight

    def describe(self):
        return {**super().describe(), "allocation": dict(self.allocation)}


class CallableStrategy(PricingStrategy):
    """Adapts a pair of plain functions ``(day, raised, target) -> value``."""

    name = "callable"

    def __init__(
        self,
        price_fn: Callable[[int, float, float], float],
        effort_fn: Callable[[int, float, float], float],
        initial_price: Optional[float] = None,
    ):
        super().__init__(initial_price if initial_price is not None else price_fn(1, 0.0, 1.0))
        self.price_fn = price_fn
        self.effort_fn = effort_fn

    def get_price(self, day, cumulative_raised, target, state=None):
        return self.price_fn(day, cumulative_raised, target)

    def get_effort(self, day, cumulative_raised, target, state=None):
        return self.effort_fn(day, cumulative_raised, target)


def _ratio_steps(initial_price: float, step_ratios: Sequence[Sequence[float]]) -> List[Tuple[int, float]]:
    return [(int(day), initial_price * ratio) for day, ratio in step_ratios]


def build_strategy(
    kind: str,
    initial_price: float,
    duration: int,
    effort_budget: float = DEFAULT_EFFORT_BUDGET,
    base_effort: float = DEFAULT_EFFORT,
    **options: Any,
) -> PricingStrategy:
    """Construct a strategy from a selector name and plain options.

    ``fixed``, ``dynamic`` and ``bonding`` are the basic selector values; the
    remaining kinds cover the experiment catalog. Price-valued options may be
    given relative to the initial price (``final_price_ratio``, ``step_ratios``).
    """
    kind = str(kind).strip().lower()
    if kind == "fixed":
        return FixedStrategy(initial_price, effort=options.get("effort", base_effort))
    if kind == "dynamic":
        return DynamicFeedbackStrategy(
            initial_price,
            effort_budget=options.get("effort_budget", effort_budget),
            duration=duration,
            adjustment_rate=options.get("adjustment_rate", 0.05),
        )
    if kind == "bonding":
        return BondingCurveStrategy(
            initial_price,
            curve=options.get("curve", "linear"),
            steepness=options.get("steepness", 0.5),
            base_effort=options.get("base_effort", base_effort),
        )
    if kind == "linear":
        final_price = options.get("final_price")
        if final_price is None:
            final_price = initial_price * options.get("final_price_ratio", 1.0)
        return LinearPathStrategy(initial_price, final_price, duration, effort=options.get("effort", base_effort))
    if kind == "step":
        steps = options.get("steps")
        if steps is None:
            steps = _ratio_steps(initial_price, options.get("step_ratios", ()))
        return StepFunctionStrategy(initial_price, steps, effort=options.get("effort", base_effort))
    if kind == "adaptive":
        return AdaptivePricingStrategy(
            initial_price,
            sensitivity=options.get("sensitivity", 0.1),
            effort_budget=options.get("effort_budget", effort_budget),
            duration=duration,
        )
    if kind == "effort-pattern":
        return EffortPatternStrategy(
            initial_price,
            pattern=options.get("pattern", "constant"),
            total_budget=options.get("total_budget", effort_budget),
            duration=duration,
        )
    if kind == "dual-party":
        return DualPartyStrategy(
            initial_price,
            entrepreneur_effort=options.get("entrepreneur_effort", base_effort),
            platform_effort=options.get("platform_effort", 0.0),
            platform_multiplier=options.get("platform_multiplier", 1.5),
        )
    if kind == "adaptive-effort":
        return AdaptiveEffortStrategy(
            initial_price,
            base_budget=options.get("base_budget", effort_budget),
            duration=duration,
            adaptation_rate=options.get("adaptation_rate", 0.2),
        )
    if kind == "trust-aware":
        return TrustAwareStrategy(initial_price)
    if kind == "allocated":
        return AllocatedEffortStrategy(
            initial_price,
            allocation=options.get("allocation", {}),
            multipliers=options.get("multipliers"),
            total_budget=options.get("total_budget", effort_budget),
            duration=duration,
        )
    raise InvalidParameter(f"Unknown strategy kind '{kind}'. Expected one of: {', '.join(STRATEGY_KINDS)}")


STRATEGY_KINDS = (
    "fixed",
    "dynamic",
    "bonding",
    "linear",
    "step",
    "adaptive",
    "effort-pattern",
    "dual-party",
    "adaptive-effort",
    "trust-aware",
    "allocated",
)


__all__ = [
    "PricingStrategy",
    "FixedStrategy",
    "LinearPathStrategy",
    "StepFunctionStrategy",
    "DynamicFeedbackStrategy",
    "AdaptivePricingStrategy",
    "BondingCurveStrategy",
    "EffortPatternStrategy",
    "DualPartyStrategy",
    "AdaptiveEffortStrategy",
    "TrustAwareStrategy",
    "AllocatedEffortStrategy",
    "CallableStrategy",
    "build_strategy",
    "BONDING_CURVES",
    "EFFORT_PATTERNS",
    "CHANNEL_MULTIPLIERS",
    "STRATEGY_KINDS",
]
