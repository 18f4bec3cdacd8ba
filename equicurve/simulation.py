"""
Day-by-day campaign simulation.

:class:`CampaignSimulator` runs one campaign over days ``1..duration``. Each
day it asks the strategy for a price and an effort, evaluates demand through
the :class:`~equicurve.demand.DemandModel`, books ``revenue = demand * price``
and appends an immutable :class:`DayRecord`. Augmentation hooks
(:mod:`equicurve.hooks`) add fees, market conditions, principal-agent
dynamics, network effects, success metrics or effort costs around that loop.

Success is decided once, after the final day: ``cumulative_raised >= target``.
Days after the target is crossed still accrue revenue and metrics.

:class:`MultiRoundSimulator` chains independent sub-campaigns, carrying brand
momentum and user loyalty from one round to the next.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import CampaignConfig, EquiCurveConfig, ModelParameters
from .demand import ConditioningFactors, DemandModel
from .errors import InvalidParameter, StrategyContractViolation
from .hooks import CampaignHook
from .noise import RandomNumberSource
from .strategies import PricingStrategy, build_strategy
from .utils import clamp, is_number

EXPORT_COLUMNS = ("day", "price", "effort", "demand", "revenue", "cumulative_raised", "percent_complete")


@dataclass(frozen=True)
class DayRecord:
    """One simulated day. Hook-specific fields live in ``extras``."""

    day: int
    price: float
    effort: float
    demand: float
    revenue: float
    cumulative_raised: float
    cumulative_demand: float
    percent_complete: float
    extras: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __getitem__(self, key: str) -> Any:
        if key in self.extras:
            return self.extras[key]
        try:
            return getattr(self, key)
        except AttributeError as exc:
            raise KeyError(key) from exc

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def as_row(self) -> Dict[str, Any]:
        row = {
            "day": self.day,
            "price": self.price,
            "effort": self.effort,
            "demand": self.demand,
            "revenue": self.revenue,
            "cumulative_raised": self.cumulative_raised,
            "cumulative_demand": self.cumulative_demand,
            "percent_complete": self.percent_complete,
        }
        row.update(self.extras)
        return row


@dataclass(frozen=True)
class CampaignOutcome:
    """Terminal, read-only result of one simulation."""

    success: bool
    total_raised: float
    total_demand: float
    history: Tuple[DayRecord, ...]
    target: float
    duration: int
    metrics: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    strategy: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def percent_complete(self) -> float:
        return self.total_raised / self.target * 100.0

    def numeric_metrics(self) -> Dict[str, float]:
        """Flatten the outcome into the numeric metrics averaged by the experiment runner."""
        values: Dict[str, float] = {
            "success": 1.0 if self.success else 0.0,
            "total_raised": float(self.total_raised),
            "total_demand": float(self.total_demand),
            "percent_complete": self.percent_complete,
        }
        for key, value in self.metrics.items():
            if isinstance(value, bool):
                values[key] = 1.0 if value else 0.0
            elif is_number(value) and math.isfinite(float(value)):
                values[key] = float(value)
        return values

    def history_frame(self) -> pd.DataFrame:
        """History as a DataFrame, export columns first."""
        frame = pd.DataFrame([record.as_row() for record in self.history])
        if frame.empty:
            return pd.DataFrame(columns=list(EXPORT_COLUMNS))
        ordered = list(EXPORT_COLUMNS) + [column for column in frame.columns if column not in EXPORT_COLUMNS]
        return frame[ordered]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "total_raised": self.total_raised,
            "total_demand": self.total_demand,
            "target": self.target,
            "duration": self.duration,
            "metrics": dict(self.metrics),
            "strategy": dict(self.strategy),
            "history": [record.as_row() for record in self.history],
        }


@dataclass(frozen=True)
class MultiRoundOutcome(CampaignOutcome):
    round_outcomes: Tuple[CampaignOutcome, ...] = ()


@dataclass
class CampaignState:
    """Mutable per-run state shared with strategies and hooks."""

    parameters: ModelParameters
    campaign: CampaignConfig
    rng: RandomNumberSource
    day: int = 0
    cumulative_raised: float = 0.0
    cumulative_demand: float = 0.0
    history: List[DayRecord] = field(default_factory=list)
    signals: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> float:
        return self.campaign.target

    @property
    def duration(self) -> int:
        return self.campaign.duration

    @property
    def progress(self) -> float:
        return self.cumulative_raised / self.campaign.target

    @property
    def expected_progress(self) -> float:
        return self.day / self.campaign.duration

    @property
    def is_final_day(self) -> bool:
        return self.day == self.campaign.duration

    @property
    def target_met(self) -> bool:
        return self.cumulative_raised >= self.campaign.target


def _checked(strategy: PricingStrategy, label: str, value: Any, day: int, *, positive: bool) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise StrategyContractViolation(
            f"{type(strategy).__name__} returned a non-numeric {label} {value!r} on day {day}"
        ) from exc
    if not math.isfinite(number) or (number <= 0 if positive else number < 0):
        bound = "> 0" if positive else ">= 0"
        raise StrategyContractViolation(
            f"{type(strategy).__name__} returned {label}={number} on day {day}; expected a finite value {bound}"
        )
    return number


class CampaignSimulator:
    """Drives one campaign through its horizon.

    Parameters
    ----------
    parameters : ModelParameters
        Demand law coefficients.
    campaign : CampaignConfig
        Horizon, target and launch price.
    strategy : PricingStrategy
        Price/effort policy consulted every day.
    hooks : sequence of CampaignHook, optional
        Augmentations applied in order.
    rng : RandomNumberSource, optional
        Noise source; a fresh unseeded source is created when omitted.
    include_noise : bool
        Disable to evaluate the deterministic demand law.
    """

    def __init__(
        self,
        parameters: ModelParameters,
        campaign: CampaignConfig,
        strategy: PricingStrategy,
        hooks: Sequence[CampaignHook] = (),
        rng: Optional[RandomNumberSource] = None,
        include_noise: bool = True,
        demand_model: Optional[DemandModel] = None,
    ):
        if not isinstance(strategy, PricingStrategy):
            raise InvalidParameter(f"strategy must be a PricingStrategy, got {type(strategy).__name__}")
        self.parameters = parameters
        self.campaign = campaign
        self.strategy = strategy
        self.hooks = list(hooks)
        self.demand_model = demand_model or DemandModel(parameters, rng=rng, include_noise=include_noise)

    @property
    def rng(self) -> RandomNumberSource:
        return self.demand_model.rng

    def run(self) -> CampaignOutcome:
        state = CampaignState(parameters=self.parameters, campaign=self.campaign, rng=self.rng)
        for hook in self.hooks:
            hook.start(state)

        target = self.campaign.target
        for day in range(1, self.campaign.duration + 1):
            state.day = day
            for hook in self.hooks:
                hook.before_day(state)

            raised = state.cumulative_raised
            price = _checked(self.strategy, "price", self.strategy.get_price(day, raised, target, state), day, positive=True)
            effort = _checked(self.strategy, "effort", self.strategy.get_effort(day, raised, target, state), day, positive=False)

            factors = ConditioningFactors(day=day, duration=self.campaign.duration)
            for hook in self.hooks:
                hook.condition(state, factors)
            demand = self.demand_model.demand(price, effort, factors)
            revenue = demand * price

            state.cumulative_raised += revenue
            state.cumulative_demand += demand
            values = {"day": day, "price": price, "effort": effort, "demand": demand, "revenue": revenue}
            extras: Dict[str, Any] = {}
            for hook in self.hooks:
                extras.update(hook.after_day(state, values) or {})

            state.history.append(
                DayRecord(
                    day=day,
                    price=price,
                    effort=effort,
                    demand=demand,
                    revenue=revenue,
                    cumulative_raised=state.cumulative_raised,
                    cumulative_demand=state.cumulative_demand,
                    percent_complete=state.cumulative_raised / target * 100.0,
                    extras=MappingProxyType(extras),
                )
            )

        success = state.cumulative_raised >= target
        metrics: Dict[str, Any] = {}
        for hook in self.hooks:
            metrics.update(hook.finish(state, success) or {})
        return CampaignOutcome(
            success=success,
            total_raised=state.cumulative_raised,
            total_demand=state.cumulative_demand,
            history=tuple(state.history),
            target=target,
            duration=self.campaign.duration,
            metrics=MappingProxyType(metrics),
            strategy=MappingProxyType(self.strategy.describe()),
        )


def simulate_campaign(
    config: Optional[EquiCurveConfig] = None,
    strategy: Union[PricingStrategy, str, None] = None,
    hooks: Sequence[CampaignHook] = (),
    rng: Optional[RandomNumberSource] = None,
    include_noise: Optional[bool] = None,
    *,
    parameters: Optional[ModelParameters] = None,
    campaign: Optional[CampaignConfig] = None,
) -> CampaignOutcome:
    """Run a single campaign.

    Either pass an :class:`EquiCurveConfig` or both ``parameters`` and
    ``campaign``. ``strategy`` may be an instance or a selector string
    (``fixed``, ``dynamic``, ``bonding``); it defaults to the config's selector.
    """
    if config is None and (parameters is None or campaign is None):
        config = EquiCurveConfig()
    if parameters is None:
        parameters = config.model_parameters()
    if campaign is None:
        campaign = config.campaign_config()
    if include_noise is None:
        include_noise = config.INCLUDE_NOISE if config is not None else True
    if strategy is None:
        strategy = config.STRATEGY if config is not None else "fixed"
    if isinstance(strategy, str):
        effort_budget = config.EFFORT_BUDGET if config is not None else 150.0
        base_effort = config.BASE_EFFORT if config is not None else 5.0
        strategy = build_strategy(
            strategy,
            campaign.initial_price,
            campaign.duration,
            effort_budget=effort_budget,
            base_effort=base_effort,
        )
    simulator = CampaignSimulator(parameters, campaign, strategy, hooks=hooks, rng=rng, include_noise=include_noise)
    return simulator.run()


@dataclass(frozen=True)
class RoundSpec:
    """One sub-campaign of a multi-round raise."""

    target: float
    duration: int
    strategy: Union[PricingStrategy, str] = "fixed"
    initial_price: float = 1.0
    stop_on_failure: bool = False
    strategy_options: Mapping[str, Any] = field(default_factory=dict)

    def campaign_config(self) -> CampaignConfig:
        return CampaignConfig(duration=self.duration, target=self.target, initial_price=self.initial_price)

    def build_strategy(self) -> PricingStrategy:
        if isinstance(self.strategy, PricingStrategy):
            return self.strategy
        return build_strategy(self.strategy, self.initial_price, self.duration, **dict(self.strategy_options))


class MultiRoundSimulator:
    """Sequential funding rounds with brand momentum and user loyalty carry-over.

    Brand value accumulated in earlier rounds raises the base demand of later
    rounds by ``momentum_carryover * brand / 100``. A failed round stops the
    sequence when its spec sets ``stop_on_failure``. Overall success means every
    completed round succeeded, or the total raised covers the sum of all round
    targets, including rounds that never ran.
    """

    def __init__(
        self,
        parameters: ModelParameters,
        rounds: Sequence[RoundSpec],
        momentum_carryover: float = 0.3,
        hooks: Sequence[CampaignHook] = (),
        rng: Optional[RandomNumberSource] = None,
        include_noise: bool = True,
    ):
        if not rounds:
            raise InvalidParameter("MultiRoundSimulator needs at least one round")
        self.parameters = parameters
        self.rounds = list(rounds)
        self.momentum_carryover = momentum_carryover
        self.hooks = list(hooks)
        self.rng = rng or RandomNumberSource()
        self.include_noise = include_noise

    def momentum_bonus(self, round_index: int, brand_value: float) -> float:
        if round_index == 0:
            return 0.0
        return self.momentum_carryover * (brand_value / 100.0)

    @staticmethod
    def brand_gain(outcome: CampaignOutcome, round_index: int) -> float:
        performance = outcome.total_raised / outcome.target
        return (20.0 if outcome.success else 5.0) + performance * 10.0 + round_index * 5.0

    @staticmethod
    def next_loyalty(loyalty: float, success: bool, round_index: int) -> float:
        if round_index == 0:
            return 0.7 if success else 0.3
        return clamp(loyalty + (0.1 if success else -0.2), 0.0, 1.0)

    def run(self) -> MultiRoundOutcome:
        brand_value = 0.0
        user_loyalty = 0.0
        outcomes: List[CampaignOutcome] = []
        round_rows: List[Dict[str, Any]] = []

        for index, spec in enumerate(self.rounds):
            bonus = self.momentum_bonus(index, brand_value)
            parameters = self.parameters.with_alpha(self.parameters.alpha * (1.0 + bonus))
            simulator = CampaignSimulator(
                parameters,
                spec.campaign_config(),
                spec.build_strategy(),
                hooks=self.hooks,
                rng=self.rng.spawn(f"round:{index + 1}"),
                include_noise=self.include_noise,
            )
            outcome = simulator.run()
            outcomes.append(outcome)

            brand_value += self.brand_gain(outcome, index)
            user_loyalty = self.next_loyalty(user_loyalty, outcome.success, index)
            round_rows.append(
                {
                    "round": index + 1,
                    "success": outcome.success,
                    "raised": outcome.total_raised,
                    "target": outcome.target,
                    "momentum_bonus": bonus,
                    "brand_value": brand_value,
                    "user_loyalty": user_loyalty,
                }
            )
            if not outcome.success and spec.stop_on_failure:
                break

        return self._combine(outcomes, round_rows, brand_value, user_loyalty)

    def _combine(
        self,
        outcomes: List[CampaignOutcome],
        round_rows: List[Dict[str, Any]],
        brand_value: float,
        user_loyalty: float,
    ) -> MultiRoundOutcome:
        total_target = sum(spec.target for spec in self.rounds)
        history: List[DayRecord] = []
        absolute_day = 0
        cumulative_raised = 0.0
        cumulative_demand = 0.0
        for round_number, outcome in enumerate(outcomes, start=1):
            for record in outcome.history:
                absolute_day += 1
                cumulative_raised += record.revenue
                cumulative_demand += record.demand
                extras = dict(record.extras)
                extras.update(
                    {
                        "round": round_number,
                        "round_day": record.day,
                        "absolute_day": absolute_day,
                        "round_cumulative_raised": record.cumulative_raised,
                    }
                )
                history.append(
                    dataclasses.replace(
                        record,
                        day=absolute_day,
                        cumulative_raised=cumulative_raised,
                        cumulative_demand=cumulative_demand,
                        percent_complete=cumulative_raised / total_target * 100.0,
                        extras=MappingProxyType(extras),
                    )
                )

        total_raised = sum(outcome.total_raised for outcome in outcomes)
        all_succeeded = all(outcome.success for outcome in outcomes)
        success = all_succeeded or total_raised >= total_target
        metrics = {
            "rounds_completed": len(outcomes),
            "final_brand_value": brand_value,
            "final_user_loyalty": user_loyalty,
            "average_round_success": sum(1 for outcome in outcomes if outcome.success) / len(outcomes) * 100.0,
            "time_to_completion": sum(outcome.duration for outcome in outcomes),
            "round_results": tuple(round_rows),
        }
        return MultiRoundOutcome(
            success=success,
            total_raised=total_raised,
            total_demand=sum(outcome.total_demand for outcome in outcomes),
            history=tuple(history),
            target=total_target,
            duration=sum(outcome.duration for outcome in outcomes),
            metrics=MappingProxyType(metrics),
            strategy=MappingProxyType({"strategy": "multi-round", "rounds": len(self.rounds)}),
            round_outcomes=tuple(outcomes),
        )


__all__ = [
    "EXPORT_COLUMNS",
    "DayRecord",
    "CampaignOutcome",
    "MultiRoundOutcome",
    "CampaignState",
    "CampaignSimulator",
    "simulate_campaign",
    "RoundSpec",
    "MultiRoundSimulator",
]
