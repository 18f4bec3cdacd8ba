"""Command-line entry points for EquiCurve simulations and experiments."""

from __future__ import annotations

import argparse
import json
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

from .catalog import get_experiment, list_experiments, run_experiment
from .config import (
    STRATEGY_SELECTOR,
    EquiCurveConfig,
    apply_calibration_profile,
    get_calibration_profile,
    list_calibration_profiles,
    load_calibration_profile,
)
from .errors import EquiCurveError, UnknownExperimentConfiguration
from .noise import RandomNumberSource
from .simulation import simulate_campaign
from .statistical_tests import results_table
from .validation import CampaignValidator


def _parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="EquiCurve crowdfunding campaign simulator")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--list-experiments", action="store_true", help="List the registered experiments and exit.")
    mode.add_argument("--list-calibrations", action="store_true", help="List built-in calibration profiles and exit.")
    mode.add_argument("--experiment", type=str, help="Run a catalog experiment by key.")
    mode.add_argument("--simulate", action="store_true", help="Run a single campaign and validate it (default).")

    parser.add_argument("--strategy", choices=STRATEGY_SELECTOR, help="Strategy for --simulate.")
    parser.add_argument("--alpha", type=float, help="Base demand scale.")
    parser.add_argument("--beta", type=float, help="Effort elasticity.")
    parser.add_argument("--gamma", type=float, help="Price elasticity.")
    parser.add_argument("--sigma", type=float, help="Log-normal noise standard deviation.")
    parser.add_argument("--duration", type=int, help="Campaign length in days.")
    parser.add_argument("--target", type=float, help="Funding target.")
    parser.add_argument("--initial-price", type=float, help="Launch price.")
    parser.add_argument("--no-noise", action="store_true", help="Disable demand noise.")

    parser.add_argument("--trials", type=int, help="Trials per configuration (overrides the catalog default).")
    parser.add_argument("--seed", type=int, help="Base random seed for reproducible runs.")
    parser.add_argument("--jobs", type=int, default=1, help="Worker processes for experiments.")
    parser.add_argument("--calibration-profile", type=str, help="Apply a built-in calibration profile.")
    parser.add_argument("--calibration-file", type=str, help="Apply a calibration profile loaded from JSON.")
    parser.add_argument("--output", type=str, help="Write the results table (experiment) or history (simulate) to CSV.")
    parser.add_argument("--verbose", action="store_true", help="Print per-configuration progress.")
    return parser.parse_args(argv)


def _build_config(base_config: EquiCurveConfig, args: argparse.Namespace) -> EquiCurveConfig:
    config = base_config
    if args.calibration_profile:
        config = apply_calibration_profile(config, get_calibration_profile(args.calibration_profile))
        print(f"[CLI] Applied calibration profile '{config.active_calibration}'")
    if args.calibration_file:
        config = apply_calibration_profile(config, load_calibration_profile(args.calibration_file))
        print(f"[CLI] Applied calibration file '{args.calibration_file}'")

    overrides: Dict[str, Any] = {}
    for attr, key in (
        ("alpha", "ALPHA"),
        ("beta", "BETA"),
        ("gamma", "GAMMA"),
        ("sigma", "SIGMA"),
        ("duration", "DURATION"),
        ("target", "TARGET"),
        ("initial_price", "INITIAL_PRICE"),
        ("strategy", "STRATEGY"),
        ("seed", "RANDOM_SEED"),
    ):
        value = getattr(args, attr)
        if value is not None:
            overrides[key] = value
    if args.no_noise:
        overrides["INCLUDE_NOISE"] = False
    overrides["N_JOBS"] = max(1, args.jobs)
    config = config.copy_with_overrides(overrides)
    # Validates every numeric input before anything runs.
    config.model_parameters()
    config.campaign_config()
    return config


def _run_single(config: EquiCurveConfig, args: argparse.Namespace) -> Dict[str, Any]:
    rng = RandomNumberSource(config.RANDOM_SEED)
    outcome = simulate_campaign(config, rng=rng)
    report = CampaignValidator.from_config(config).generate_report(
        outcome, config.model_parameters(), config.campaign_config()
    )
    status = "SUCCESS" if outcome.success else "FAILED"
    print(
        f"[CLI] {config.STRATEGY} strategy: raised {outcome.total_raised:,.0f} of {config.TARGET:,.0f} "
        f"({outcome.percent_complete:.1f}%) -> {status}"
    )
    print(f"[Validation] {report.funding_pattern.analysis}; deviation={report.pattern_deviation:.3f}")
    print(f"[Validation] {report.recommendation}")
    if args.output:
        path = Path(args.output).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        outcome.history_frame().to_csv(path, index=False)
        print(f"[CLI] History written to {path}")
    return {"mode": "simulate", "outcome": outcome, "report": report}


def _run_experiment(config: EquiCurveConfig, args: argparse.Namespace) -> Dict[str, Any]:
    definition = get_experiment(args.experiment)
    result = run_experiment(definition.key, base_config=config, trials=args.trials, verbose=args.verbose)
    print(result.summary())
    if result.optimal is not None:
        print(f"[Experiment] Optimal configuration: {result.optimal.name} ({result.objective_name})")
    if result.failures:
        print(f"[Experiment] Coverage {result.coverage:.0%}: {len(result.failures)} trial(s) failed")
    if result.validation is not None:
        print(f"[Validation] {result.validation.recommendation}")
    if args.output:
        path = Path(args.output).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        results_table(result).to_csv(path, index=False)
        print(f"[CLI] Results written to {path}")
    return {"mode": "experiment", "experiment": definition.key, "result": result}


def run_cli(base_config: Optional[EquiCurveConfig] = None, argv: Optional[List[str]] = None) -> Dict[str, Any]:
    """Parse ``argv`` and run the requested mode, returning its artefacts."""
    args = _parse_cli_args(argv)
    if args.list_experiments:
        for definition in list_experiments():
            print(f"{definition.key:<24} [{definition.category}] {definition.title}")
        return {"mode": "list-experiments", "experiments": [d.key for d in list_experiments()]}
    if args.list_calibrations:
        for profile in list_calibration_profiles():
            print(f"{profile.name:<18} {profile.description}")
        return {"mode": "list-calibrations", "profiles": [p.name for p in list_calibration_profiles()]}

    config = _build_config(base_config or EquiCurveConfig(), args)
    if args.experiment:
        return _run_experiment(config, args)
    return _run_single(config, args)


def main(argv: Optional[List[str]] = None) -> int:
    warnings.filterwarnings("ignore", category=RuntimeWarning)
    try:
        result = run_cli(argv=argv)
    except UnknownExperimentConfiguration as exc:
        print(f"[CLI] {exc}", file=sys.stderr)
        return 2
    except (EquiCurveError, KeyError, FileNotFoundError, ValueError) as exc:
        print(f"[CLI] Error: {exc}", file=sys.stderr)
        return 1
    if result.get("mode") == "simulate":
        print(json.dumps(result["report"].to_dict(), indent=2, default=str))
    return 0


__all__ = ["run_cli", "main"]


if __name__ == "__main__":
    sys.exit(main())
