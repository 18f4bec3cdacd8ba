"""
Declarative catalog of the standard EquiCurve experiments.

Each experiment is a table of settings overrides applied on top of the base
settings of an :class:`~equicurve.config.EquiCurveConfig`, plus a trial count,
an objective and a metric extractor. One generic factory,
:func:`simulate_from_settings`, turns any settings dict into a simulation:

``alpha, beta, gamma, sigma, duration, target, initial_price``
    demand law and campaign (``alpha_multiplier`` rescales alpha).
``strategy, strategy_options``
    selector passed to :func:`~equicurve.strategies.build_strategy`.
``fees, market, principal_agent, network, success_metrics, effort_cost``
    hook options; a missing key leaves that augmentation out.
``rounds``
    list of round dicts (``target_share``, ``duration``, ``strategy``,
    ``stop_on_failure``) for a multi-round raise.
"""

from __future__ import annotations

import copy
import dataclasses
import itertools
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import CampaignConfig, EquiCurveConfig, ModelParameters
from .errors import UnknownExperimentConfiguration
from .experiments import (
    AggregateResult,
    ExperimentConfiguration,
    ExperimentResult,
    ExperimentRunner,
    metric_objective,
    success_rate_objective,
    weighted_metric_objective,
)
from .hooks import build_hooks
from .noise import RandomNumberSource
from .simulation import CampaignOutcome, CampaignSimulator, MultiRoundSimulator, RoundSpec
from .strategies import build_strategy
from .utils import derive_trial_seed, fast_mean
from .validation import CampaignValidator


def simulate_from_settings(settings: Mapping[str, Any], rng: Optional[RandomNumberSource] = None) -> CampaignOutcome:
    """Build and run the simulation described by a flat settings dict."""
    parameters = ModelParameters(
        alpha=settings["alpha"] * settings.get("alpha_multiplier", 1.0),
        beta=settings["beta"],
        gamma=settings["gamma"],
        sigma=settings.get("sigma", 0.2),
    )
    include_noise = settings.get("include_noise", True)
    hooks = build_hooks(settings)
    initial_price = settings.get("initial_price", 1.0)

    rounds = settings.get("rounds")
    if rounds:
        specs = [
            RoundSpec(
                target=settings["target"] * spec["target_share"],
                duration=spec["duration"],
                strategy=spec.get("strategy", settings.get("strategy", "fixed")),
                initial_price=initial_price,
                stop_on_failure=spec.get("stop_on_failure", False),
                strategy_options=spec.get("strategy_options", {}),
            )
            for spec in rounds
        ]
        simulator = MultiRoundSimulator(
            parameters,
            specs,
            momentum_carryover=settings.get("momentum_carryover", 0.3),
            hooks=hooks,
            rng=rng,
            include_noise=include_noise,
        )
        return simulator.run()

    campaign = CampaignConfig(duration=settings["duration"], target=settings["target"], initial_price=initial_price)
    strategy = build_strategy(
        settings.get("strategy", "fixed"),
        initial_price,
        campaign.duration,
        effort_budget=settings.get("effort_budget", 150.0),
        base_effort=settings.get("base_effort", 5.0),
        **dict(settings.get("strategy_options") or {}),
    )
    simulator = CampaignSimulator(parameters, campaign, strategy, hooks=hooks, rng=rng, include_noise=include_noise)
    return simulator.run()


def simulate_configuration(configuration: ExperimentConfiguration, rng: RandomNumberSource) -> CampaignOutcome:
    """Runner factory: the configuration's params are a complete settings dict."""
    return simulate_from_settings(configuration.params, rng)


# Metric extractors -----------------------------------------------------------

def pricing_metrics(outcome: CampaignOutcome) -> Dict[str, float]:
    metrics = outcome.numeric_metrics()
    prices = [record.price for record in outcome.history]
    mean_price = fast_mean(prices)
    variance = sum((price - mean_price) ** 2 for price in prices) / len(prices)
    metrics.update(
        {
            "average_price": mean_price,
            "final_price": prices[-1],
            "price_volatility": math.sqrt(variance) / mean_price,
        }
    )
    return metrics


def effort_metrics(outcome: CampaignOutcome) -> Dict[str, float]:
    metrics = outcome.numeric_metrics()
    efforts = [record.effort for record in outcome.history]
    total_effort = sum(efforts)
    metrics["total_effort"] = total_effort
    metrics["peak_effort_day"] = float(outcome.history[efforts.index(max(efforts))].day)
    if total_effort > 0:
        metrics["raised_per_effort"] = outcome.total_raised / total_effort
    return metrics


def timing_metrics(outcome: CampaignOutcome) -> Dict[str, float]:
    """Adds ``days_to_half_target``, which is absent when half the target is never reached."""
    metrics = outcome.numeric_metrics()
    for record in outcome.history:
        if record.cumulative_raised >= outcome.target * 0.5:
            metrics["days_to_half_target"] = float(record.day)
            break
    return metrics


# Definitions -----------------------------------------------------------------

@dataclass(frozen=True)
class ExperimentDefinition:
    key: str
    title: str
    category: str
    configurations: Tuple[Mapping[str, Any], ...]
    trials: int = 20
    objective: Callable[[AggregateResult], float] = success_rate_objective
    metric_extractor: Optional[Callable[[CampaignOutcome], Mapping[str, float]]] = None
    validate_optimal: bool = False
    description: str = ""

    def build_configurations(self, base_config: EquiCurveConfig) -> List[ExperimentConfiguration]:
        configurations = []
        for row in self.configurations:
            overrides = dict(row)
            name = overrides.pop("name")
            configurations.append(ExperimentConfiguration(name=name, params=_merge_settings(base_config, overrides)))
        return configurations


def _merge_settings(base_config: EquiCurveConfig, overrides: Mapping[str, Any]) -> Dict[str, Any]:
    settings = base_config.base_settings()
    hook_defaults = {
        "fees": base_config.FEES,
        "success_metrics": base_config.SUCCESS_METRICS,
        "effort_cost": base_config.EFFORT_COST,
    }
    for key, value in overrides.items():
        defaults = hook_defaults.get(key)
        if defaults is not None and isinstance(value, Mapping):
            settings[key] = {**copy.deepcopy(defaults), **value}
        else:
            settings[key] = copy.deepcopy(value)
    return settings


def _sweep(parameter: str, values: Sequence[Any], **extra: Any) -> Tuple[Dict[str, Any], ...]:
    return tuple({"name": f"{parameter}={value}", parameter: value, **extra} for value in values)


def _hybrid_fee(base: float, bonus: float) -> Dict[str, Any]:
    rate = base + bonus
    return {"name": f"base {base:.0%} + bonus {bonus:.0%}", "fees": {"structure": "hybrid", "rate": rate, "base_share": base / rate}}


def _rounds(*specs: Tuple[float, int], strategies: Sequence[str] = ()) -> List[Dict[str, Any]]:
    rounds = []
    for idx, (share, duration) in enumerate(specs):
        entry: Dict[str, Any] = {"target_share": share, "duration": duration}
        if idx < len(strategies):
            entry["strategy"] = strategies[idx]
        rounds.append(entry)
    return rounds


_PA_DEFAULTS = {"incentive_mechanism": "fixed-fee", "governance": "centralized"}


def _principal_agent(name: str, asymmetry: float, entrepreneur_type: str, **extra: Any) -> Dict[str, Any]:
    options = {**_PA_DEFAULTS, "information_asymmetry": asymmetry, "entrepreneur_type": entrepreneur_type, **extra}
    return {"name": name, "strategy": "trust-aware", "principal_agent": options}


EXPERIMENTS: Dict[str, ExperimentDefinition] = {}


def register_experiment(definition: ExperimentDefinition) -> ExperimentDefinition:
    EXPERIMENTS[definition.key] = definition
    return definition


# Elasticity
register_experiment(ExperimentDefinition(
    key="price-elasticity",
    title="Price elasticity sweep",
    category="elasticity",
    configurations=_sweep("gamma", [0.5, 0.8, 1.0, 1.2, 1.5, 1.8, 2.0]),
    trials=5,
    description="Success rate as demand becomes more price sensitive.",
))
register_experiment(ExperimentDefinition(
    key="effort-elasticity",
    title="Effort elasticity sweep",
    category="elasticity",
    configurations=_sweep("beta", [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9]),
    trials=5,
    metric_extractor=effort_metrics,
))
register_experiment(ExperimentDefinition(
    key="cross-elasticity",
    title="Effort x price elasticity grid",
    category="elasticity",
    configurations=tuple(
        {"name": f"beta={beta}, gamma={gamma}", "beta": beta, "gamma": gamma}
        for beta, gamma in itertools.product([0.3, 0.5, 0.7], [0.8, 1.2, 1.6])
    ),
    trials=3,
))

# Fees
register_experiment(ExperimentDefinition(
    key="fixed-fees",
    title="Fixed platform fee rates",
    category="fees",
    configurations=tuple(
        {"name": f"fixed {rate:.0%}", "fees": {"structure": "fixed", "rate": rate}}
        for rate in [0.02, 0.03, 0.05, 0.07, 0.10, 0.15]
    ),
    objective=weighted_metric_objective("platform_revenue"),
))
register_experiment(ExperimentDefinition(
    key="dynamic-fees",
    title="Fee structures",
    category="fees",
    configurations=(
        {"name": "fixed 5%", "fees": {"structure": "fixed", "rate": 0.05}},
        {"name": "success-based 8%", "fees": {"structure": "success-based", "rate": 0.08}},
        {"name": "progressive 4%", "fees": {"structure": "progressive", "rate": 0.04}},
        {"name": "performance-based 6%", "fees": {"structure": "performance-based", "rate": 0.06}},
    ),
    objective=weighted_metric_objective("platform_revenue"),
))
register_experiment(ExperimentDefinition(
    key="hybrid-fees",
    title="Hybrid base + success bonus fees",
    category="fees",
    configurations=tuple(
        _hybrid_fee(base, bonus)
        for base, bonus in [(0.02, 0.02), (0.03, 0.03), (0.04, 0.02), (0.02, 0.04)]
    ) + ({"name": "base 5% + bonus 0%", "fees": {"structure": "fixed", "rate": 0.05}},),
    objective=weighted_metric_objective("platform_revenue"),
))

# Pricing
register_experiment(ExperimentDefinition(
    key="static-pricing",
    title="Static price paths",
    category="pricing",
    configurations=(
        {"name": "fixed", "strategy": "fixed"},
        {"name": "linear decay", "strategy": "linear", "strategy_options": {"final_price_ratio": 0.5}},
        {"name": "linear increase", "strategy": "linear", "strategy_options": {"final_price_ratio": 1.5}},
        {"name": "step down", "strategy": "step", "strategy_options": {"step_ratios": [(1, 1.0), (10, 0.8), (20, 0.6)]}},
    ),
    metric_extractor=pricing_metrics,
))
register_experiment(ExperimentDefinition(
    key="dynamic-pricing",
    title="Feedback and adaptive pricing",
    category="pricing",
    configurations=({"name": "dynamic feedback", "strategy": "dynamic"},) + tuple(
        {"name": f"adaptive s={s}", "strategy": "adaptive", "strategy_options": {"sensitivity": s}}
        for s in [0.05, 0.1, 0.2]
    ),
    metric_extractor=pricing_metrics,
))
register_experiment(ExperimentDefinition(
    key="bonding-curves",
    title="Bonding curve shapes",
    category="pricing",
    configurations=tuple(
        {"name": f"{curve} k={k}", "strategy": "bonding", "strategy_options": {"curve": curve, "steepness": k}}
        for curve, k in [
            ("linear", 0.5), ("linear", 1.0), ("exponential", 0.3),
            ("exponential", 0.5), ("logarithmic", 0.5), ("sigmoid", 1.0),
        ]
    ),
    metric_extractor=pricing_metrics,
))

# Effort
register_experiment(ExperimentDefinition(
    key="effort-patterns",
    title="Temporal effort patterns",
    category="effort",
    configurations=tuple(
        {"name": pattern, "strategy": "effort-pattern", "strategy_options": {"pattern": pattern}, "effort_cost": {}}
        for pattern in ["constant", "front-loaded", "back-loaded", "middle-peak", "u-shape", "exponential"]
    ),
    metric_extractor=effort_metrics,
))
register_experiment(ExperimentDefinition(
    key="effort-allocation",
    title="Effort allocation across channels",
    category="effort",
    configurations=tuple(
        {"name": name, "strategy": "allocated", "strategy_options": {"allocation": allocation}}
        for name, allocation in [
            ("marketing-heavy", {"marketing": 0.6, "development": 0.2, "community": 0.2}),
            ("development-heavy", {"marketing": 0.2, "development": 0.6, "community": 0.2}),
            ("community-heavy", {"marketing": 0.2, "development": 0.2, "community": 0.6}),
            ("balanced", {"marketing": 0.34, "development": 0.33, "community": 0.33}),
            ("marketing-only", {"marketing": 1.0}),
        ]
    ),
    metric_extractor=effort_metrics,
))
register_experiment(ExperimentDefinition(
    key="platform-effort",
    title="Entrepreneur vs platform effort",
    category="effort",
    configurations=tuple(
        {
            "name": f"entrepreneur {e:g} + platform {p:g}",
            "strategy": "dual-party",
            "strategy_options": {"entrepreneur_effort": e, "platform_effort": p, "platform_multiplier": 1.5},
            "fees": {"structure": "fixed", "rate": 0.05},
        }
        for e, p in [(8, 0), (6, 2), (4, 4), (2, 6), (0, 8)]
    ),
    metric_extractor=effort_metrics,
))

# Market
register_experiment(ExperimentDefinition(
    key="market-cycles",
    title="Market regimes",
    category="market",
    configurations=tuple(
        {"name": regime, "market": {"regime": regime}}
        for regime in ["bull", "bear", "volatile", "recession", "neutral"]
    ),
    trials=100,
))
register_experiment(ExperimentDefinition(
    key="competition",
    title="Competing campaigns",
    category="market",
    configurations=tuple(
        {"name": f"{count} competitors", "market": {"competitor_count": count}}
        for count in [0, 1, 2, 3, 5, 8, 12]
    ),
))
register_experiment(ExperimentDefinition(
    key="external-shocks",
    title="External demand shocks",
    category="market",
    configurations=(
        {"name": "no shock", "market": {}},
        {"name": "early boost", "market": {"shocks": [(5, 10, 1.5)]}},
        {"name": "early dip", "market": {"shocks": [(5, 10, 0.6)]}},
        {"name": "mid-campaign crisis", "market": {"shocks": [(15, 20, 0.4)]}},
        {"name": "late surge", "market": {"shocks": [(25, 30, 1.8)]}},
        {"name": "multiple shocks", "market": {"shocks": [(8, 10, 0.7), (18, 22, 1.4)]}},
    ),
    metric_extractor=timing_metrics,
))

# Duration
register_experiment(ExperimentDefinition(
    key="duration-optimization",
    title="Campaign duration",
    category="duration",
    configurations=_sweep("duration", [7, 14, 30, 60, 90]),
    metric_extractor=timing_metrics,
    validate_optimal=True,
))
register_experiment(ExperimentDefinition(
    key="multi-round",
    title="Multi-round funding",
    category="duration",
    configurations=(
        {"name": "single round", "rounds": _rounds((1.0, 30))},
        {"name": "two equal rounds", "rounds": _rounds((0.5, 15), (0.5, 15))},
        {"name": "small then large", "rounds": _rounds((0.3, 10), (0.7, 20))},
        {
            "name": "three equal rounds",
            "rounds": _rounds((1 / 3, 10), (1 / 3, 10), (1 / 3, 10), strategies=["fixed", "dynamic", "bonding"]),
        },
        {"name": "escalating", "rounds": _rounds((0.2, 8), (0.3, 10), (0.5, 12))},
        {"name": "de-escalating", "rounds": _rounds((0.5, 12), (0.3, 10), (0.2, 8))},
    ),
))

# Success
register_experiment(ExperimentDefinition(
    key="funding-thresholds",
    title="Soft and hard caps",
    category="success",
    configurations=tuple(
        {"name": f"soft {soft:.0%} / hard {hard:.0%}", "success_metrics": {"soft_cap_ratio": soft, "hard_cap_ratio": hard}}
        for soft, hard in [(0.4, 1.2), (0.5, 1.5), (0.6, 1.8), (0.7, 2.0), (0.8, 2.5)]
    ),
    objective=metric_objective("overall_score"),
))
register_experiment(ExperimentDefinition(
    key="success-metrics",
    title="Focus strategies scored beyond funding",
    category="success",
    configurations=tuple(
        {
            "name": name,
            "strategy": "allocated",
            "strategy_options": {"allocation": allocation},
            "success_metrics": {},
        }
        for name, allocation in [
            ("funding focus", {"marketing": 1.0, "development": 0.8, "community": 0.9}),
            ("community focus", {"marketing": 0.4, "development": 0.4, "community": 1.6}),
            ("brand focus", {"marketing": 1.5, "development": 0.3, "community": 0.6}),
            ("product focus", {"marketing": 0.4, "development": 1.6, "community": 0.4}),
        ]
    ),
    objective=metric_objective("overall_score"),
))

# Principal-agent
register_experiment(ExperimentDefinition(
    key="information-asymmetry",
    title="Information asymmetry and entrepreneur type",
    category="principal-agent",
    configurations=(
        _principal_agent("transparent honest", 0.0, "honest"),
        _principal_agent("low asymmetry honest", 0.1, "honest"),
        _principal_agent("high asymmetry honest", 0.5, "honest"),
        _principal_agent("low asymmetry optimistic", 0.2, "optimistic"),
        _principal_agent("high asymmetry optimistic", 0.6, "optimistic"),
        _principal_agent("low asymmetry deceptive", 0.2, "deceptive"),
        _principal_agent("high asymmetry deceptive", 0.6, "deceptive"),
        _principal_agent("opaque deceptive", 0.9, "deceptive"),
    ),
    objective=metric_objective("alignment_score"),
))
register_experiment(ExperimentDefinition(
    key="incentive-mechanisms",
    title="Platform incentive mechanisms",
    category="principal-agent",
    configurations=tuple(
        _principal_agent(mechanism, 0.3, "honest", incentive_mechanism=mechanism)
        for mechanism in ["fixed-fee", "success-sharing", "effort-based", "trust-based"]
    ),
    objective=metric_objective("alignment_score"),
))
register_experiment(ExperimentDefinition(
    key="governance-models",
    title="Governance models",
    category="principal-agent",
    configurations=tuple(
        _principal_agent(governance, 0.3, "honest", governance=governance)
        for governance in ["centralized", "hybrid", "decentralized"]
    ),
    objective=metric_objective("alignment_score"),
))

# Network
register_experiment(ExperimentDefinition(
    key="viral-mechanics",
    title="Viral coefficient",
    category="network",
    configurations=tuple(
        {"name": f"viral={viral}", "network": {"viral_coefficient": viral}}
        for viral in [0.0, 0.05, 0.1, 0.2, 0.3]
    ),
    objective=metric_objective("virality_score"),
))
register_experiment(ExperimentDefinition(
    key="community-building",
    title="Pre-launch community",
    category="network",
    configurations=tuple(
        {
            "name": f"engagement={engagement}",
            "network": {"initial_engagement": engagement, "viral_coefficient": viral},
        }
        for engagement, viral in [(0, 0.05), (20, 0.08), (40, 0.1), (60, 0.15), (80, 0.2)]
    ),
    objective=metric_objective("virality_score"),
))

# Comparative
register_experiment(ExperimentDefinition(
    key="traditional-vs-web3",
    title="Traditional vs web3 vs hybrid platforms",
    category="comparative",
    configurations=(
        {
            "name": "traditional",
            "fees": {"structure": "fixed", "rate": 0.08},
            "network": {"platform_type": "traditional", "viral_coefficient": 0.05},
        },
        {
            "name": "web3",
            "alpha_multiplier": 1.2,
            "sigma": 0.3,
            "strategy": "bonding",
            "fees": {"structure": "fixed", "rate": 0.025},
            "network": {"platform_type": "web3", "viral_coefficient": 0.2},
        },
        {
            "name": "hybrid",
            "alpha_multiplier": 1.1,
            "fees": {"structure": "fixed", "rate": 0.05},
            "network": {"platform_type": "hybrid", "viral_coefficient": 0.1},
        },
    ),
    objective=weighted_metric_objective("entrepreneur_revenue"),
))


def list_experiments() -> List[ExperimentDefinition]:
    return list(EXPERIMENTS.values())


def get_experiment(key: str) -> ExperimentDefinition:
    normalized = key.strip().lower()
    if normalized not in EXPERIMENTS:
        raise UnknownExperimentConfiguration(
            f"Unknown experiment '{key}'. Available: {', '.join(EXPERIMENTS.keys())}"
        )
    return EXPERIMENTS[normalized]


def run_experiment(
    key: str,
    base_config: Optional[EquiCurveConfig] = None,
    runner: Optional[ExperimentRunner] = None,
    trials: Optional[int] = None,
    verbose: bool = False,
) -> ExperimentResult:
    """Run a catalog experiment and, where flagged, validate its optimum."""
    definition = get_experiment(key)
    base_config = base_config or EquiCurveConfig()
    if runner is None:
        runner = ExperimentRunner(
            trials_per_config=definition.trials,
            seed=base_config.RANDOM_SEED,
            n_jobs=base_config.N_JOBS,
            verbose=verbose,
        )
    if verbose:
        print(f"[Experiment] {definition.title} ({definition.key})")
    result = runner.run(
        definition.build_configurations(base_config),
        simulate_configuration,
        trials_per_config=trials or definition.trials,
        objective=definition.objective,
        metric_extractor=definition.metric_extractor,
        name=definition.key,
    )
    if definition.validate_optimal and result.optimal is not None:
        settings = result.optimal.configuration.params
        rng = RandomNumberSource(derive_trial_seed(base_config.RANDOM_SEED, f"{definition.key}:validation"))
        outcome = simulate_from_settings(settings, rng)
        parameters = ModelParameters(
            alpha=settings["alpha"] * settings.get("alpha_multiplier", 1.0),
            beta=settings["beta"],
            gamma=settings["gamma"],
            sigma=settings["sigma"],
        )
        report = CampaignValidator.from_config(base_config).generate_report(outcome, parameters)
        if verbose:
            print(f"[Validation] {result.optimal.name}: {report.recommendation}")
        result = dataclasses.replace(result, validation=report)
    return result


__all__ = [
    "ExperimentDefinition",
    "EXPERIMENTS",
    "register_experiment",
    "list_experiments",
    "get_experiment",
    "run_experiment",
    "simulate_from_settings",
    "simulate_configuration",
    "pricing_metrics",
    "effort_metrics",
    "timing_metrics",
]
