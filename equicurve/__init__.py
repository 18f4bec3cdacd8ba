"""Public API for the EquiCurve package.

Monte Carlo simulation of crowdfunding campaigns under a multiplicative demand
law, with a library of pricing/effort strategies, composable campaign
augmentations, a parameter estimator and a plausibility validator.
"""

__version__ = "1.0.0"

from .catalog import (
    ExperimentDefinition,
    get_experiment,
    list_experiments,
    run_experiment,
    simulate_from_settings,
)
from .cli import run_cli
from .config import (
    CalibrationProfile,
    CampaignConfig,
    EquiCurveConfig,
    ModelParameters,
    apply_calibration_profile,
    get_calibration_profile,
    list_calibration_profiles,
    load_calibration_profile,
)
from .demand import ConditioningFactors, DemandModel, Shock
from .errors import (
    CollinearityWarning,
    DegenerateEstimation,
    EquiCurveError,
    InvalidParameter,
    StrategyContractViolation,
    UnknownExperimentConfiguration,
)
from .estimation import EstimationResult, ParameterEstimator
from .experiments import (
    AggregateResult,
    ExperimentConfiguration,
    ExperimentResult,
    ExperimentRunner,
    metric_objective,
    success_rate_objective,
    weighted_metric_objective,
)
from .hooks import (
    CampaignHook,
    EffortCostHook,
    FeeHook,
    MarketHook,
    NetworkEffectsHook,
    PrincipalAgentHook,
    SuccessMetricsHook,
)
from .noise import RandomNumberSource
from .simulation import (
    CampaignOutcome,
    CampaignSimulator,
    DayRecord,
    MultiRoundOutcome,
    MultiRoundSimulator,
    RoundSpec,
    simulate_campaign,
)
from .statistical_tests import EffectSizeCalculator, StatisticalTestResult, compare_configurations
from .strategies import (
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
    PricingStrategy,
    StepFunctionStrategy,
    TrustAwareStrategy,
    build_strategy,
)
from .utils import fast_mean, stable_sigmoid
from .validation import CampaignValidator, ValidationReport

__all__ = [
    "__version__",
    "ExperimentDefinition",
    "get_experiment",
    "list_experiments",
    "run_experiment",
    "simulate_from_settings",
    "run_cli",
    "CalibrationProfile",
    "CampaignConfig",
    "EquiCurveConfig",
    "ModelParameters",
    "apply_calibration_profile",
    "get_calibration_profile",
    "list_calibration_profiles",
    "load_calibration_profile",
    "ConditioningFactors",
    "DemandModel",
    "Shock",
    "CollinearityWarning",
    "DegenerateEstimation",
    "EquiCurveError",
    "InvalidParameter",
    "StrategyContractViolation",
    "UnknownExperimentConfiguration",
    "EstimationResult",
    "ParameterEstimator",
    "AggregateResult",
    "ExperimentConfiguration",
    "ExperimentResult",
    "ExperimentRunner",
    "metric_objective",
    "success_rate_objective",
    "weighted_metric_objective",
    "CampaignHook",
    "EffortCostHook",
    "FeeHook",
    "MarketHook",
    "NetworkEffectsHook",
    "PrincipalAgentHook",
    "SuccessMetricsHook",
    "RandomNumberSource",
    "CampaignOutcome",
    "CampaignSimulator",
    "DayRecord",
    "MultiRoundOutcome",
    "MultiRoundSimulator",
    "RoundSpec",
    "simulate_campaign",
    "EffectSizeCalculator",
    "StatisticalTestResult",
    "compare_configurations",
    "AdaptiveEffortStrategy",
    "AdaptivePricingStrategy",
    "AllocatedEffortStrategy",
    "BondingCurveStrategy",
    "CallableStrategy",
    "DualPartyStrategy",
    "DynamicFeedbackStrategy",
    "EffortPatternStrategy",
    "FixedStrategy",
    "LinearPathStrategy",
    "PricingStrategy",
    "StepFunctionStrategy",
    "TrustAwareStrategy",
    "build_strategy",
    "fast_mean",
    "stable_sigmoid",
    "CampaignValidator",
    "ValidationReport",
]
