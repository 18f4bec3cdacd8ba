"""
Multiplicative demand law and its conditioning factors.

The base law is ``D = alpha * E**beta * P**(-gamma)``. Optional noise multiplies
it by a log-normal factor drawn from the model's :class:`RandomNumberSource`.
Conditioning factors describe the environment on a given day (market regime,
competitors, shocks, trust and network state). Each factor is optional and
they compose multiplicatively.

Notes
-----
Market regime multipliers, with t the current day and T the horizon:

=========  ==========================
bull       1.2 + 0.3 t/T
bear       0.8 - 0.2 t/T
volatile   1 + 0.3 sin(2 pi 3t/T)
recession  0.6 - 0.1 t/T
neutral    1
=========  ==========================
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from .config import ModelParameters
from .errors import InvalidParameter
from .noise import RandomNumberSource
from .utils import require_finite

MARKET_REGIMES = ("bull", "bear", "volatile", "recession", "neutral")
PLATFORM_TYPES = ("web3", "traditional", "hybrid")
COMPETITION_DECAY = 0.85


@dataclass(frozen=True)
class Shock:
    """External demand shock active on days ``start_day..end_day`` inclusive."""

    start_day: int
    end_day: int
    impact: float
    label: str = ""

    def __post_init__(self) -> None:
        if self.end_day < self.start_day:
            raise InvalidParameter(f"Shock ends (day {self.end_day}) before it starts (day {self.start_day})")
        require_finite("shock impact", self.impact, non_negative=True)

    def is_active(self, day: int) -> bool:
        return self.start_day <= day <= self.end_day


def market_cycle_multiplier(regime: str, day: int, duration: int) -> float:
    progress = day / duration
    if regime == "bull":
        return 1.2 + 0.3 * progress
    if regime == "bear":
        return 0.8 - 0.2 * progress
    if regime == "volatile":
        return 1.0 + 0.3 * math.sin(2.0 * math.pi * 3.0 * progress)
    if regime == "recession":
        return 0.6 - 0.1 * progress
    if regime == "neutral":
        return 1.0
    raise InvalidParameter(f"Unknown market regime '{regime}'. Expected one of: {', '.join(MARKET_REGIMES)}")


def competition_multiplier(competitor_count: int) -> float:
    if competitor_count < 0:
        raise InvalidParameter(f"competitor_count must be >= 0, got {competitor_count}")
    return COMPETITION_DECAY ** competitor_count


def shock_multiplier(shocks: Sequence[Shock], day: int) -> float:
    multiplier = 1.0
    for shock in shocks:
        if shock.is_active(day):
            multiplier *= shock.impact
    return multiplier


def trust_multiplier(trust: float, moral_hazard: float = 0.0) -> float:
    return (0.7 + 0.6 * trust) * max(0.0, 1.0 - 0.1 * moral_hazard)


def platform_multiplier(platform_type: str, user_base: float) -> float:
    """Web3 platforms penalise thin communities and reward established ones."""
    if platform_type == "web3":
        return 1.5 if user_base > 50 else 0.8
    if platform_type == "traditional":
        return 1.0
    if platform_type == "hybrid":
        return 1.2
    raise InvalidParameter(f"Unknown platform type '{platform_type}'. Expected one of: {', '.join(PLATFORM_TYPES)}")


def network_multiplier(user_base: float, viral_coefficient: float, engagement: float, platform_type: str = "web3") -> float:
    """Metcalfe-style amplification, floored at 0.5."""
    network_size_effect = math.sqrt(max(user_base, 0.0) / 100.0)
    viral_effect = 1.0 + viral_coefficient * engagement / 100.0
    boost = network_size_effect * viral_effect * platform_multiplier(platform_type, user_base) * 0.1
    return max(0.5, 1.0 + boost)


@dataclass
class ConditioningFactors:
    """Per-day environment. Any factor left as ``None`` contributes 1."""

    day: Optional[int] = None
    duration: Optional[int] = None
    market_regime: Optional[str] = None
    competitor_count: Optional[int] = None
    shocks: Tuple[Shock, ...] = field(default_factory=tuple)
    trust: Optional[float] = None
    moral_hazard: float = 0.0
    user_base: Optional[float] = None
    viral_coefficient: float = 0.0
    engagement: float = 0.0
    platform_type: str = "web3"
    extra_multiplier: float = 1.0

    def market_multiplier(self) -> float:
        if self.market_regime is None:
            return 1.0
        if self.day is None or not self.duration:
            raise InvalidParameter("market_regime conditioning requires day and duration")
        return market_cycle_multiplier(self.market_regime, self.day, self.duration)

    def competition_multiplier(self) -> float:
        if self.competitor_count is None:
            return 1.0
        return competition_multiplier(self.competitor_count)

    def shock_multiplier(self) -> float:
        if not self.shocks:
            return 1.0
        if self.day is None:
            raise InvalidParameter("shock conditioning requires the current day")
        return shock_multiplier(self.shocks, self.day)

    def trust_multiplier(self) -> float:
        if self.trust is None:
            return 1.0
        return trust_multiplier(self.trust, self.moral_hazard)

    def network_multiplier(self) -> float:
        if self.user_base is None:
            return 1.0
        return network_multiplier(self.user_base, self.viral_coefficient, self.engagement, self.platform_type)

    def multiplier(self) -> float:
        return (
            self.market_multiplier()
            * self.competition_multiplier()
            * self.shock_multiplier()
            * self.trust_multiplier()
            * self.network_multiplier()
            * self.extra_multiplier
        )


class DemandModel:
    """Evaluates daily demand for a price/effort pair under the configured law."""

    def __init__(
        self,
        parameters: ModelParameters,
        rng: Optional[RandomNumberSource] = None,
        include_noise: bool = True,
    ):
        self.parameters = parameters
        self.rng = rng or RandomNumberSource()
        self.include_noise = include_noise

    @property
    def alpha(self) -> float:
        return self.parameters.alpha

    def base_demand(self, price: float, effort: float) -> float:
        """Deterministic demand with no noise and no conditioning."""
        if not math.isfinite(price) or price <= 0:
            raise InvalidParameter(f"price must be a finite value > 0, got {price}")
        if not math.isfinite(effort) or effort < 0:
            raise InvalidParameter(f"effort must be a finite value >= 0, got {effort}")
        beta = self.parameters.beta
        if effort == 0:
            if beta > 0:
                return 0.0
            if beta < 0:
                raise InvalidParameter("effort of 0 is undefined for a negative effort elasticity")
            effort_term = 1.0
        else:
            effort_term = effort ** beta
        return self.parameters.alpha * effort_term * price ** (-self.parameters.gamma)

    def demand(
        self,
        price: float,
        effort: float,
        factors: Optional[ConditioningFactors] = None,
        include_noise: Optional[bool] = None,
    ) -> float:
        demand = self.base_demand(price, effort)
        if self.include_noise if include_noise is None else include_noise:
            demand *= self.rng.log_normal(self.parameters.sigma)
        if factors is not None:
            demand *= factors.multiplier()
        return demand

    def expected_noise_mean(self) -> float:
        return math.exp(self.parameters.sigma ** 2 / 2.0)

    def with_alpha(self, alpha: float) -> "DemandModel":
        """Copy with a rescaled base demand that shares this model's noise stream."""
        return DemandModel(self.parameters.with_alpha(alpha), rng=self.rng, include_noise=self.include_noise)


__all__ = [
    "MARKET_REGIMES",
    "PLATFORM_TYPES",
    "Shock",
    "ConditioningFactors",
    "DemandModel",
    "market_cycle_multiplier",
    "competition_multiplier",
    "shock_multiplier",
    "trust_multiplier",
    "platform_multiplier",
    "network_multiplier",
]
