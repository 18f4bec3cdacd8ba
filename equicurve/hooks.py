"""
Composable per-day augmentations of the campaign loop.

A hook observes and enriches one simulation without owning the day loop.
The simulator calls, in list order:

``start(state)``
    once before day 1; resets the hook's internal accumulators.
``before_day(state)``
    before the strategy is consulted; may publish ``state.signals``.
``condition(state, factors)``
    contributes demand conditioning for the day.
``after_day(state, values) -> dict``
    after revenue is accumulated; returns extra fields for the day's record.
``finish(state, success) -> dict``
    once after the horizon; returns outcome metrics.

Because each hook only touches its own fields, any combination can be run
together (fees with network effects, market conditions with principal-agent
dynamics, and so on).
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .demand import (
    MARKET_REGIMES,
    PLATFORM_TYPES,
    ConditioningFactors,
    Shock,
    competition_multiplier,
    market_cycle_multiplier,
    network_multiplier,
    shock_multiplier,
)
from .errors import InvalidParameter
from .utils import clamp, require_finite

if TYPE_CHECKING:
    from .simulation import CampaignState

FEE_STRUCTURES = ("fixed", "success-based", "progressive", "performance-based", "hybrid")
ENTREPRENEUR_TYPES = ("honest", "optimistic", "deceptive")
INCENTIVE_MECHANISMS = ("none", "fixed-fee", "success-sharing", "effort-based", "trust-based")
GOVERNANCE_BONUS = {"centralized": 10.0, "hybrid": 20.0, "decentralized": 30.0}


class CampaignHook:
    """No-op base class; subclasses override the stages they need."""

    name = "hook"

    def start(self, state: "CampaignState") -> None:
        pass

    def before_day(self, state: "CampaignState") -> None:
        pass

    def condition(self, state: "CampaignState", factors: ConditioningFactors) -> None:
        pass

    def after_day(self, state: "CampaignState", values: Mapping[str, float]) -> Dict[str, Any]:
        return {}

    def finish(self, state: "CampaignState", success: bool) -> Dict[str, Any]:
        return {}


class FeeHook(CampaignHook):
    """Splits each day's revenue between platform and entrepreneur.

    ``base_share`` only matters for the hybrid structure: that share of the
    rate is charged every day and the remainder is a bonus charged on the
    final day of a successful campaign.
    """

    name = "fees"

    def __init__(self, structure: str = "fixed", rate: float = 0.05, base_share: float = 0.6):
        if structure not in FEE_STRUCTURES:
            raise InvalidParameter(f"Unknown fee structure '{structure}'. Expected one of: {', '.join(FEE_STRUCTURES)}")
        self.structure = structure
        self.rate = require_finite("fee rate", rate, non_negative=True)
        self.base_share = clamp(require_finite("base_share", base_share), 0.0, 1.0)
        self.platform_revenue = 0.0
        self.entrepreneur_revenue = 0.0

    def start(self, state):
        self.platform_revenue = 0.0
        self.entrepreneur_revenue = 0.0

    def fee_rate(self, progress: float, is_final_day: bool, target_met: bool) -> float:
        if self.structure == "fixed":
            return self.rate
        if self.structure == "success-based":
            return self.rate if is_final_day and target_met else 0.0
        if self.structure == "progressive":
            return min(self.rate * (1.0 + progress), self.rate * 2.0)
        if self.structure == "performance-based":
            return self.rate * (0.5 + 0.5 * min(progress, 1.0))
        bonus = self.rate * (1.0 - self.base_share) if is_final_day and target_met else 0.0
        return self.rate * self.base_share + bonus

    def after_day(self, state, values):
        rate = self.fee_rate(state.progress, state.is_final_day, state.target_met)
        fee = values["revenue"] * rate
        entrepreneur = values["revenue"] - fee
        self.platform_revenue += fee
        self.entrepreneur_revenue += entrepreneur
        return {"fee_rate": rate, "platform_fee": fee, "entrepreneur_revenue": entrepreneur}

    def finish(self, state, success):
        raised = state.cumulative_raised
        return {
            "platform_revenue": self.platform_revenue,
            "entrepreneur_revenue": self.entrepreneur_revenue,
            "effective_fee_rate": self.platform_revenue / raised if raised > 0 else 0.0,
        }


class MarketHook(CampaignHook):
    """Applies a market regime, competing campaigns and external shocks."""

    name = "market"

    def __init__(self, regime: str = "neutral", competitor_count: int = 0, shocks: Iterable[Any] = ()):
        if regime not in MARKET_REGIMES:
            raise InvalidParameter(f"Unknown market regime '{regime}'. Expected one of: {', '.join(MARKET_REGIMES)}")
        if competitor_count < 0:
            raise InvalidParameter(f"competitor_count must be >= 0, got {competitor_count}")
        self.regime = regime
        self.competitor_count = int(competitor_count)
        self.shocks: Tuple[Shock, ...] = tuple(_coerce_shock(shock) for shock in shocks)

    def condition(self, state, factors):
        factors.market_regime = self.regime
        factors.competitor_count = self.competitor_count
        factors.shocks = self.shocks

    def after_day(self, state, values):
        day = state.day
        return {
            "market_multiplier": market_cycle_multiplier(self.regime, day, state.duration),
            "competition_multiplier": competition_multiplier(self.competitor_count),
            "shock_multiplier": shock_multiplier(self.shocks, day),
            "active_shocks": sum(1 for shock in self.shocks if shock.is_active(day)),
        }

    def finish(self, state, success):
        daily = [record.demand for record in state.history]
        mean_demand = sum(daily) / len(daily) if daily else 0.0
        variance = sum((value - mean_demand) ** 2 for value in daily) / len(daily) if daily else 0.0
        return {
            "market_regime": self.regime,
            "competitor_count": self.competitor_count,
            "demand_volatility": math.sqrt(variance) / mean_demand if mean_demand > 0 else 0.0,
        }


def _coerce_shock(shock: Any) -> Shock:
    if isinstance(shock, Shock):
        return shock
    if isinstance(shock, Mapping):
        return Shock(
            start_day=int(shock["start_day"]),
            end_day=int(shock["end_day"]),
            impact=float(shock["impact"]),
            label=str(shock.get("label", "")),
        )
    start_day, end_day, impact = shock
    return Shock(int(start_day), int(end_day), float(impact))


class PrincipalAgentHook(CampaignHook):
    """Trust, moral hazard and perceived progress between platform and entrepreneur.

    Before each day the entrepreneur reports a perceived progress that diverges
    from the actual progress according to their type; the divergence erodes
    trust while sustained effort rebuilds it. Trust and moral hazard condition
    demand, and the incentive mechanism decides the platform's daily share.
    """

    name = "principal-agent"

    def __init__(
        self,
        information_asymmetry: float = 0.3,
        entrepreneur_type: str = "honest",
        incentive_mechanism: str = "fixed-fee",
        governance: str = "centralized",
    ):
        if entrepreneur_type not in ENTREPRENEUR_TYPES:
            raise InvalidParameter(
                f"Unknown entrepreneur type '{entrepreneur_type}'. Expected one of: {', '.join(ENTREPRENEUR_TYPES)}"
            )
        if incentive_mechanism not in INCENTIVE_MECHANISMS:
            raise InvalidParameter(
                f"Unknown incentive mechanism '{incentive_mechanism}'. "
                f"Expected one of: {', '.join(INCENTIVE_MECHANISMS)}"
            )
        if governance not in GOVERNANCE_BONUS:
            raise InvalidParameter(
                f"Unknown governance model '{governance}'. Expected one of: {', '.join(GOVERNANCE_BONUS)}"
            )
        self.information_asymmetry = clamp(require_finite("information_asymmetry", information_asymmetry), 0.0, 1.0)
        self.entrepreneur_type = entrepreneur_type
        self.incentive_mechanism = incentive_mechanism
        self.governance = governance
        self._reset()

    def _reset(self) -> None:
        self.trust = 0.5
        self.moral_hazard = 0.0
        self.platform_payoff = 0.0
        self.entrepreneur_payoff = 0.0
        self._actual_progress = 0.0
        self._perceived_progress = 0.0

    def start(self, state):
        self._reset()

    def perceived_progress(self, actual: float, day: int, noise: float) -> float:
        asymmetry = self.information_asymmetry
        if self.entrepreneur_type == "optimistic":
            return min(actual * (1.0 + asymmetry * 0.5), 1.0)
        if self.entrepreneur_type == "deceptive":
            return actual + asymmetry * 0.3 * math.sin(day / 5.0)
        return actual + (noise - 0.5) * asymmetry * 0.1

    def before_day(self, state):
        self._actual_progress = state.progress
        noise = state.rng.uniform() if self.entrepreneur_type == "honest" else 0.5
        self._perceived_progress = self.perceived_progress(self._actual_progress, state.day, noise)
        state.signals.update(
            {
                "actual_progress": self._actual_progress,
                "perceived_progress": self._perceived_progress,
                "information_gap": abs(self._perceived_progress - self._actual_progress),
                "trust": self.trust,
                "moral_hazard": self.moral_hazard,
            }
        )

    def condition(self, state, factors):
        factors.trust = self.trust
        factors.moral_hazard = self.moral_hazard

    def platform_share(self, target_met: bool) -> float:
        mechanism = self.incentive_mechanism
        if mechanism == "success-sharing":
            return 0.03 + (0.02 if target_met else 0.0)
        if mechanism == "effort-based":
            return 0.05 + (0.02 if self.moral_hazard > 0.5 else 0.0)
        if mechanism == "trust-based":
            return clamp(0.05 - (self.trust - 0.5) * 0.02, 0.02, 0.08)
        return 0.05

    def after_day(self, state, values):
        effort = values["effort"]
        gap = abs(self._perceived_progress - self._actual_progress)
        effort_signal = 0.02 if effort > 5 else -0.01
        self.trust = clamp(self.trust - gap * 0.5 + effort_signal, 0.0, 1.0)
        if effort < 3:
            self.moral_hazard += 0.1
        elif effort > 7:
            self.moral_hazard = max(0.0, self.moral_hazard - 0.05)

        share = self.platform_share(state.target_met)
        platform = values["revenue"] * share
        self.platform_payoff += platform
        self.entrepreneur_payoff += values["revenue"] - platform
        return {
            "trust_level": self.trust,
            "moral_hazard": self.moral_hazard,
            "information_gap": gap,
            "perceived_progress": self._perceived_progress,
            "platform_payoff": platform,
            "entrepreneur_payoff": values["revenue"] - platform,
        }

    def alignment_score(self) -> float:
        score = (
            self.trust * 25.0
            - self.moral_hazard * 20.0
            + (1.0 - self.information_asymmetry) * 25.0
            + GOVERNANCE_BONUS[self.governance]
        )
        return max(0.0, score)

    def finish(self, state, success):
        return {
            "final_trust": self.trust,
            "total_moral_hazard": self.moral_hazard,
            "alignment_score": self.alignment_score(),
            "platform_payoff": self.platform_payoff,
            "entrepreneur_payoff": self.entrepreneur_payoff,
        }


class NetworkEffectsHook(CampaignHook):
    """Grows a user base and community that amplify later demand."""

    name = "network"

    def __init__(self, viral_coefficient: float = 0.1, platform_type: str = "web3", initial_engagement: float = 0.0):
        if platform_type not in PLATFORM_TYPES:
            raise InvalidParameter(
                f"Unknown platform type '{platform_type}'. Expected one of: {', '.join(PLATFORM_TYPES)}"
            )
        self.viral_coefficient = require_finite("viral_coefficient", viral_coefficient, non_negative=True)
        self.platform_type = platform_type
        self.initial_engagement = clamp(require_finite("initial_engagement", initial_engagement), 0.0, 100.0)
        self._reset()

    def _reset(self) -> None:
        self.user_base = 0.0
        self.engagement = self.initial_engagement
        self.network_value = 0.0
        self._multiplier = 1.0

    def start(self, state):
        self._reset()

    def condition(self, state, factors):
        factors.user_base = self.user_base
        factors.viral_coefficient = self.viral_coefficient
        factors.engagement = self.engagement
        factors.platform_type = self.platform_type
        self._multiplier = network_multiplier(self.user_base, self.viral_coefficient, self.engagement, self.platform_type)

    def after_day(self, state, values):
        self.user_base += values["demand"] * 0.1
        self.engagement = min(100.0, self.engagement + values["effort"] * 2.0 + self.user_base * 0.05)
        self.network_value += self.user_base * self.engagement / 1000.0
        return {
            "network_multiplier": self._multiplier,
            "user_base": self.user_base,
            "community_engagement": self.engagement,
            "network_value": self.network_value,
        }

    def virality_score(self, duration: int) -> float:
        growth_rate = self.user_base / duration
        return growth_rate * 2.0 + self.engagement * 0.5 + min(self.network_value, 100.0) * 0.3

    def finish(self, state, success):
        return {
            "user_base": self.user_base,
            "community_engagement": self.engagement,
            "network_value": self.network_value,
            "virality_score": self.virality_score(state.duration),
        }


class SuccessMetricsHook(CampaignHook):
    """Scores a campaign beyond the binary target: caps, community, brand and reach."""

    name = "success-metrics"

    def __init__(self, soft_cap_ratio: float = 0.6, hard_cap_ratio: float = 1.5):
        self.soft_cap_ratio = require_finite("soft_cap_ratio", soft_cap_ratio, positive=True)
        self.hard_cap_ratio = require_finite("hard_cap_ratio", hard_cap_ratio, positive=True)
        if self.hard_cap_ratio < self.soft_cap_ratio:
            raise InvalidParameter(
                f"hard_cap_ratio ({hard_cap_ratio}) must not be below soft_cap_ratio ({soft_cap_ratio})"
            )
        self._reset()

    def _reset(self) -> None:
        self.community_growth = 0.0
        self.brand_awareness = 0.0
        self.network_effects = 0.0

    def start(self, state):
        self._reset()

    def _momentum(self, day: int, duration: int) -> float:
        if day <= duration / 3.0:
            return 1.2
        if day >= duration * 5.0 / 6.0:
            return 0.8
        return 1.0

    def after_day(self, state, values):
        demand, effort, day = values["demand"], values["effort"], state.day
        self.community_growth += (
            min(demand / 100.0, 1.0) * min(effort / 10.0, 1.0) * self._momentum(day, state.duration) * 10.0
        )
        self.brand_awareness += effort * 2.0
        if state.cumulative_raised > state.target * 0.5:
            self.brand_awareness += 20.0
        self.network_effects += (state.cumulative_demand / 100.0) * math.sqrt(day)
        return {
            "community_growth": self.community_growth,
            "brand_awareness": self.brand_awareness,
            "network_effects": self.network_effects,
        }

    def funding_level(self, raised: float, target: float) -> str:
        if raised >= target * self.hard_cap_ratio:
            return "Exceptional Success"
        if raised >= target:
            return "Full Success"
        if raised >= target * self.soft_cap_ratio:
            return "Partial Success"
        return "Failed"

    def overall_score(self, raised: float, target: float) -> float:
        funding = min(raised / target * 100.0, 100.0)
        community = min(self.community_growth / 5.0, 100.0)
        brand = min(self.brand_awareness / 1000.0, 100.0)
        network = min(self.network_effects / 50.0, 100.0)
        return funding * 0.4 + community * 0.25 + brand * 0.2 + network * 0.15

    def finish(self, state, success):
        raised, target = state.cumulative_raised, state.target
        return {
            "soft_cap_reached": raised >= target * self.soft_cap_ratio,
            "hard_cap_reached": raised >= target * self.hard_cap_ratio,
            "funding_level": self.funding_level(raised, target),
            "community_growth": self.community_growth,
            "brand_awareness": self.brand_awareness,
            "network_effects": self.network_effects,
            "overall_score": self.overall_score(raised, target),
        }


class EffortCostHook(CampaignHook):
    """Charges a convex cost ``C(E) = c1*E + c2*E**2`` for each day's effort."""

    name = "effort-cost"

    def __init__(self, linear_cost: float = 10.0, quadratic_cost: float = 0.5):
        self.linear_cost = require_finite("linear_cost", linear_cost, non_negative=True)
        self.quadratic_cost = require_finite("quadratic_cost", quadratic_cost, non_negative=True)
        self.total_costs = 0.0

    def start(self, state):
        self.total_costs = 0.0

    def cost(self, effort: float) -> float:
        return self.linear_cost * effort + self.quadratic_cost * effort ** 2

    def marginal_cost(self, effort: float) -> float:
        return self.linear_cost + 2.0 * self.quadratic_cost * effort

    def after_day(self, state, values):
        daily_cost = self.cost(values["effort"])
        self.total_costs += daily_cost
        return {
            "daily_cost": daily_cost,
            "cumulative_costs": self.total_costs,
            "net_revenue": values["revenue"] - daily_cost,
            "cumulative_profit": state.cumulative_raised - self.total_costs,
        }

    def finish(self, state, success):
        net_profit = state.cumulative_raised - self.total_costs
        metrics: Dict[str, Any] = {"total_costs": self.total_costs, "net_profit": net_profit}
        if self.total_costs > 0:
            metrics["roi"] = net_profit / self.total_costs * 100.0
        return metrics


HOOK_TYPES = {
    "fees": FeeHook,
    "market": MarketHook,
    "principal_agent": PrincipalAgentHook,
    "network": NetworkEffectsHook,
    "success_metrics": SuccessMetricsHook,
    "effort_cost": EffortCostHook,
}


def build_hooks(settings: Mapping[str, Any]) -> Sequence[CampaignHook]:
    """Instantiate hooks for every augmentation key present in ``settings``.

    Each key maps to a dict of constructor options; ``None`` or a missing key
    leaves the augmentation out.
    """
    hooks = []
    for key, hook_type in HOOK_TYPES.items():
        options: Optional[Mapping[str, Any]] = settings.get(key)
        if options is None:
            continue
        hooks.append(hook_type(**dict(options)))
    return hooks


__all__ = [
    "CampaignHook",
    "FeeHook",
    "MarketHook",
    "PrincipalAgentHook",
    "NetworkEffectsHook",
    "SuccessMetricsHook",
    "EffortCostHook",
    "HOOK_TYPES",
    "build_hooks",
    "FEE_STRUCTURES",
    "ENTREPRENEUR_TYPES",
    "INCENTIVE_MECHANISMS",
    "GOVERNANCE_BONUS",
]
