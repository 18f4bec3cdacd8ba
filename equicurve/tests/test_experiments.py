"""Monte Carlo runner: aggregation, failures, objectives and seeding."""

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

from equicurve.catalog import simulate_configuration
from equicurve.config import EquiCurveConfig
from equicurve.errors import InvalidParameter
from equicurve.experiments import (
    ExperimentConfiguration,
    ExperimentRunner,
    metric_objective,
    select_optimal,
    weighted_metric_objective,
)


def _metrics(outcome):
    return outcome.metrics


def _scripted_factory(script):
    """Factory returning pre-baked outcomes keyed by configuration and call order."""
    calls = {}

    def factory(configuration, rng):
        index = calls.get(configuration.name, 0)
        calls[configuration.name] = index + 1
        entry = script[configuration.name][index]
        if isinstance(entry, Exception):
            raise entry
        success, metrics = entry
        return SimpleNamespace(success=success, metrics=metrics)

    return factory


def test_aggregates_success_rate_and_means() -> None:
    script = {
        "a": [(True, {"total_raised": 120.0}), (False, {"total_raised": 60.0}), (True, {"total_raised": 90.0})],
        "b": [(False, {"total_raised": 10.0}), (False, {"total_raised": 20.0}), (False, {"total_raised": 30.0})],
    }
    runner = ExperimentRunner(trials_per_config=3, seed=1)
    result = runner.run(
        [ExperimentConfiguration("a"), ExperimentConfiguration("b")],
        _scripted_factory(script),
        metric_extractor=_metrics,
    )
    a, b = result.by_name("a"), result.by_name("b")
    assert a.success_rate == pytest.approx(200.0 / 3.0)
    assert a.get("total_raised") == pytest.approx(90.0)
    assert b.success_rate == 0.0
    assert b.get("total_raised") == pytest.approx(20.0)
    assert result.optimal is a
    assert result.coverage == 1.0


def test_missing_metrics_are_excluded_from_means() -> None:
    script = {"only": [(True, {"x": 4.0}), (True, {}), (False, {"x": 8.0, "y": float("nan")})]}
    result = ExperimentRunner(trials_per_config=3, seed=1).run(
        [ExperimentConfiguration("only")], _scripted_factory(script), metric_extractor=_metrics
    )
    aggregate = result[0]
    assert aggregate.get("x") == pytest.approx(6.0)
    assert aggregate.metric_counts["x"] == 2
    assert "y" not in aggregate.means
    assert math.isnan(aggregate.get("y"))


def test_failed_trial_is_recorded_and_sweep_continues(capsys) -> None:
    script = {
        "fragile": [(True, {"v": 1.0}), RuntimeError("boom"), (False, {"v": 3.0}), (True, {"v": 5.0})],
        "steady": [(True, {"v": 2.0})] * 4,
    }
    result = ExperimentRunner(trials_per_config=4, seed=3).run(
        [{"name": "fragile"}, {"name": "steady"}], _scripted_factory(script), metric_extractor=_metrics
    )
    fragile = result.by_name("fragile")
    assert fragile.completed_trials == 3
    assert fragile.failed_trials == 1
    assert fragile.coverage == pytest.approx(0.75)
    assert fragile.success_rate == pytest.approx(200.0 / 3.0)
    assert fragile.failures[0].trial == 1
    assert "RuntimeError: boom" in fragile.failures[0].error
    assert result.by_name("steady").coverage == 1.0
    assert result.coverage == pytest.approx(7 / 8)
    assert len(result.failures) == 1
    assert "1 trial(s) failed" in capsys.readouterr().out


def test_configuration_with_only_failures_is_never_optimal() -> None:
    script = {"broken": [ValueError("bad")] * 2, "ok": [(False, {"v": 1.0})] * 2}
    result = ExperimentRunner(trials_per_config=2, seed=0).run(
        [ExperimentConfiguration("broken"), ExperimentConfiguration("ok")],
        _scripted_factory(script),
        metric_extractor=_metrics,
    )
    assert math.isnan(result.by_name("broken").success_rate)
    assert result.optimal.name == "ok"


def test_objective_ties_go_to_the_first_configuration() -> None:
    script = {name: [(True, {"v": 1.0})] * 2 for name in ("first", "second", "third")}
    result = ExperimentRunner(trials_per_config=2, seed=0).run(
        [ExperimentConfiguration(name) for name in ("first", "second", "third")],
        _scripted_factory(script),
        metric_extractor=_metrics,
    )
    assert result.optimal.name == "first"
    assert select_optimal(list(reversed(result.results)), metric_objective("v")).name == "third"


def test_metric_and_weighted_objectives() -> None:
    script = {
        "rich-but-risky": [(True, {"fee": 100.0}), (False, {"fee": 100.0})],
        "modest-and-safe": [(True, {"fee": 70.0}), (True, {"fee": 70.0})],
    }
    configs = [ExperimentConfiguration("rich-but-risky"), ExperimentConfiguration("modest-and-safe")]
    by_mean = ExperimentRunner(trials_per_config=2, seed=0).run(
        configs, _scripted_factory(script), objective=metric_objective("fee"), metric_extractor=_metrics
    )
    assert by_mean.optimal.name == "rich-but-risky"
    weighted = ExperimentRunner(trials_per_config=2, seed=0).run(
        configs, _scripted_factory(script), objective=weighted_metric_objective("fee"), metric_extractor=_metrics
    )
    assert weighted.optimal.name == "modest-and-safe"
    assert weighted.objective_name == "fee_x_success_rate"


def _random_factory(configuration, rng):
    return SimpleNamespace(success=rng.uniform() < 0.5, metrics={"draw": rng.uniform()})


def test_seeded_runs_are_reproducible() -> None:
    configs = [ExperimentConfiguration("x"), ExperimentConfiguration("y")]
    first = ExperimentRunner(trials_per_config=5, seed=42).run(configs, _random_factory, metric_extractor=_metrics)
    second = ExperimentRunner(trials_per_config=5, seed=42).run(configs, _random_factory, metric_extractor=_metrics)
    for a, b in zip(first, second):
        assert a.samples["draw"] == b.samples["draw"]
        assert a.success_count == b.success_count
    assert first.by_name("x").samples["draw"] != first.by_name("y").samples["draw"]
    other = ExperimentRunner(trials_per_config=5, seed=43).run(configs, _random_factory, metric_extractor=_metrics)
    assert other.by_name("x").samples["draw"] != first.by_name("x").samples["draw"]


def test_per_configuration_trial_counts() -> None:
    result = ExperimentRunner(trials_per_config=4, seed=1).run(
        [{"name": "short", "trials": 2}, {"name": "default"}], _random_factory, metric_extractor=_metrics
    )
    assert result.by_name("short").trials == 2
    assert result.by_name("default").trials == 4


def test_invalid_sweeps_are_rejected() -> None:
    runner = ExperimentRunner(trials_per_config=1)
    with pytest.raises(InvalidParameter):
        runner.run([], _random_factory)
    with pytest.raises(InvalidParameter):
        runner.run([{"name": "dup"}, {"name": "dup"}], _random_factory)
    with pytest.raises(InvalidParameter):
        ExperimentRunner(trials_per_config=0)


def test_unpicklable_factory_falls_back_to_sequential(capsys) -> None:
    runner = ExperimentRunner(trials_per_config=2, seed=1, n_jobs=2)
    result = runner.run(
        [ExperimentConfiguration("a"), ExperimentConfiguration("b")],
        lambda configuration, rng: SimpleNamespace(success=True, metrics={}),
        metric_extractor=_metrics,
    )
    assert "running sequentially" in capsys.readouterr().out
    assert all(aggregate.success_rate == 100.0 for aggregate in result)


def test_parallel_batches_match_serial_results() -> None:
    settings = EquiCurveConfig(DURATION=5, TARGET=5_000.0).base_settings()
    configs = [
        ExperimentConfiguration("fixed", {**settings, "strategy": "fixed"}),
        ExperimentConfiguration("bonding", {**settings, "strategy": "bonding"}),
    ]
    serial = ExperimentRunner(trials_per_config=3, seed=11).run(configs, simulate_configuration)
    parallel = ExperimentRunner(trials_per_config=3, seed=11, n_jobs=2).run(configs, simulate_configuration)
    for a, b in zip(serial, parallel):
        assert a.completed_trials == b.completed_trials == 3
        assert a.samples["total_raised"] == pytest.approx(b.samples["total_raised"])


def test_result_frame_and_summary() -> None:
    result = ExperimentRunner(trials_per_config=3, seed=5).run(
        [ExperimentConfiguration("x"), ExperimentConfiguration("y")], _random_factory, metric_extractor=_metrics
    )
    frame = result.to_frame()
    assert list(frame["configuration"]) == ["x", "y"]
    assert {"success_rate", "coverage", "mean_draw", "optimal"} <= set(frame.columns)
    assert frame["optimal"].sum() == 1
    assert result.summary().startswith("experiment: 2 configurations")
