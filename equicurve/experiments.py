"""
Monte Carlo experiment runner.

An experiment is a list of :class:`ExperimentConfiguration` points, a trial
count and a ``simulator_factory(configuration, rng) -> CampaignOutcome``. The
runner executes every trial with its own seeded
:class:`~equicurve.noise.RandomNumberSource`, reduces the outcomes of each
configuration into an :class:`AggregateResult` and picks the optimum under a
caller-supplied objective.

Metrics that a trial does not report are left out of that metric's mean rather
than counted as zero. A trial that raises is recorded as a
:class:`TrialFailure`; the sweep continues and the affected aggregate reports
reduced ``coverage``.

With ``n_jobs > 1`` the trials of every configuration are split into batches
and distributed over a process pool. Each worker returns its own partial
accumulation and the parent merges them, so no counters are shared between
processes. Seeds depend only on the configuration name and trial index, so a
seeded sweep gives the same aggregates serially and in parallel.
"""

from __future__ import annotations

import math
import multiprocessing as mp
import pickle
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .errors import InvalidParameter
from .noise import RandomNumberSource
from .utils import derive_trial_seed, fast_mean

SimulatorFactory = Callable[["ExperimentConfiguration", RandomNumberSource], Any]
MetricExtractor = Callable[[Any], Mapping[str, float]]


@dataclass(frozen=True)
class ExperimentConfiguration:
    """One point of a parameter sweep."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)
    trials: Optional[int] = None

    def __getitem__(self, key: str) -> Any:
        return self.params[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


@dataclass(frozen=True)
class TrialFailure:
    configuration: str
    trial: int
    error: str


@dataclass
class _Accumulator:
    """Partial reduction of one configuration's trials."""

    name: str
    requested: int
    completed: int = 0
    success_count: int = 0
    samples: Dict[str, List[float]] = field(default_factory=dict)
    failures: List[TrialFailure] = field(default_factory=list)

    def add(self, success: bool, metrics: Mapping[str, float]) -> None:
        self.completed += 1
        if success:
            self.success_count += 1
        for key, value in metrics.items():
            if value is None:
                continue
            number = float(value)
            if math.isnan(number):
                continue
            self.samples.setdefault(key, []).append(number)

    def merge(self, other: "_Accumulator") -> None:
        self.completed += other.completed
        self.success_count += other.success_count
        for key, values in other.samples.items():
            self.samples.setdefault(key, []).extend(values)
        self.failures.extend(other.failures)


@dataclass(frozen=True)
class AggregateResult:
    """Statistics of one configuration over its completed trials."""

    configuration: ExperimentConfiguration
    trials: int
    completed_trials: int
    success_count: int
    means: Mapping[str, float]
    metric_counts: Mapping[str, int]
    samples: Mapping[str, Tuple[float, ...]]
    failures: Tuple[TrialFailure, ...] = ()

    @property
    def name(self) -> str:
        return self.configuration.name

    @property
    def success_rate(self) -> float:
        if self.completed_trials == 0:
            return float("nan")
        return self.success_count / self.completed_trials * 100.0

    @property
    def failed_trials(self) -> int:
        return len(self.failures)

    @property
    def coverage(self) -> float:
        return self.completed_trials / self.trials if self.trials else 0.0

    def get(self, metric: str, default: float = float("nan")) -> float:
        return self.means.get(metric, default)

    def as_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "configuration": self.name,
            "trials": self.trials,
            "completed_trials": self.completed_trials,
            "failed_trials": self.failed_trials,
            "coverage": self.coverage,
            "success_rate": self.success_rate,
        }
        for key, value in self.means.items():
            row[f"mean_{key}"] = value
        return row


def success_rate_objective(aggregate: AggregateResult) -> float:
    return aggregate.success_rate


def metric_objective(metric: str) -> Callable[[AggregateResult], float]:
    """Maximise the mean of ``metric``."""

    def objective(aggregate: AggregateResult) -> float:
        return aggregate.get(metric)

    objective.__name__ = f"mean_{metric}"
    return objective


def weighted_metric_objective(metric: str) -> Callable[[AggregateResult], float]:
    """Maximise ``mean(metric) * success_rate / 100``."""

    def objective(aggregate: AggregateResult) -> float:
        return aggregate.get(metric) * aggregate.success_rate / 100.0

    objective.__name__ = f"{metric}_x_success_rate"
    return objective


def select_optimal(
    results: Sequence[AggregateResult],
    objective: Callable[[AggregateResult], float],
) -> Optional[AggregateResult]:
    """Highest objective value; the first configuration wins ties."""
    best: Optional[AggregateResult] = None
    best_value = -math.inf
    for aggregate in results:
        if aggregate.completed_trials == 0:
            continue
        value = objective(aggregate)
        if value is None or math.isnan(value):
            continue
        if best is None or value > best_value:
            best, best_value = aggregate, value
    return best


@dataclass(frozen=True)
class ExperimentResult:
    """Every configuration's aggregate plus the optimum under the objective."""

    results: Tuple[AggregateResult, ...]
    optimal: Optional[AggregateResult]
    objective_name: str
    name: str = "experiment"
    validation: Optional[Any] = None

    def __iter__(self):
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> AggregateResult:
        return self.results[index]

    def by_name(self, name: str) -> AggregateResult:
        for aggregate in self.results:
            if aggregate.name == name:
                return aggregate
        raise KeyError(f"No configuration named '{name}'. Available: {', '.join(a.name for a in self.results)}")

    @property
    def failures(self) -> Tuple[TrialFailure, ...]:
        return tuple(failure for aggregate in self.results for failure in aggregate.failures)

    @property
    def coverage(self) -> float:
        requested = sum(aggregate.trials for aggregate in self.results)
        completed = sum(aggregate.completed_trials for aggregate in self.results)
        return completed / requested if requested else 0.0

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame([aggregate.as_row() for aggregate in self.results])
        if not frame.empty:
            frame["optimal"] = frame["configuration"] == (self.optimal.name if self.optimal else None)
        return frame

    def summary(self) -> str:
        lines = [f"{self.name}: {len(self.results)} configurations, objective={self.objective_name}"]
        for aggregate in self.results:
            marker = "*" if self.optimal is not None and aggregate is self.optimal else " "
            lines.append(
                f" {marker} {aggregate.name:<32} success={aggregate.success_rate:6.1f}%  "
                f"raised={aggregate.get('total_raised'):12.0f}  coverage={aggregate.coverage:.0%}"
            )
        return "\n".join(lines)


def _coerce_configuration(item: Any, index: int) -> ExperimentConfiguration:
    if isinstance(item, ExperimentConfiguration):
        return item
    if isinstance(item, Mapping):
        params = dict(item)
        name = str(params.pop("name", f"config-{index + 1}"))
        trials = params.pop("trials", None)
        return ExperimentConfiguration(name=name, params=params, trials=trials)
    raise InvalidParameter(f"Cannot interpret {item!r} as an experiment configuration")


def _default_extractor(outcome: Any) -> Mapping[str, float]:
    return outcome.numeric_metrics()


_Task = Tuple[ExperimentConfiguration, int, int, SimulatorFactory, Optional[MetricExtractor], Optional[int], bool]


def _run_configuration(task: _Task) -> _Accumulator:
    """Run trials ``[start, stop)`` of one configuration."""
    configuration, start, stop, factory, extractor, base_seed, verbose = task
    extractor = extractor or _default_extractor
    accumulator = _Accumulator(name=configuration.name, requested=stop - start)
    for trial in range(start, stop):
        rng = RandomNumberSource(derive_trial_seed(base_seed, f"{configuration.name}:{trial}"))
        try:
            outcome = factory(configuration, rng)
            metrics = extractor(outcome)
            accumulator.add(bool(outcome.success), metrics)
        except Exception as exc:
            failure = TrialFailure(configuration.name, trial, f"{type(exc).__name__}: {exc}")
            accumulator.failures.append(failure)
            if verbose:
                print(f"[Runner] Trial {trial} of '{configuration.name}' failed: {failure.error}")
    return accumulator


def _finalize(configuration: ExperimentConfiguration, accumulator: _Accumulator) -> AggregateResult:
    means = {key: fast_mean(values) for key, values in accumulator.samples.items()}
    return AggregateResult(
        configuration=configuration,
        trials=accumulator.requested,
        completed_trials=accumulator.completed,
        success_count=accumulator.success_count,
        means=means,
        metric_counts={key: len(values) for key, values in accumulator.samples.items()},
        samples={key: tuple(values) for key, values in accumulator.samples.items()},
        failures=tuple(accumulator.failures),
    )


def _is_picklable(*objects: Any) -> bool:
    try:
        for obj in objects:
            pickle.dumps(obj)
    except (pickle.PicklingError, AttributeError, TypeError):
        return False
    return True


def _split_trials(trials: int, n_chunks: int) -> List[Tuple[int, int]]:
    """Contiguous ``[start, stop)`` ranges covering ``range(trials)``."""
    n_chunks = max(1, min(n_chunks, trials))
    size, extra = divmod(trials, n_chunks)
    ranges, start = [], 0
    for idx in range(n_chunks):
        stop = start + size + (1 if idx < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


def _execute_parallel_tasks(
    tasks: List[_Task],
    worker: Callable[[_Task], _Accumulator],
    n_jobs: int,
    desc: str = "trial batches",
) -> List[_Accumulator]:
    """Execute ``worker`` across ``tasks`` on a spawn-context process pool."""
    if n_jobs <= 1 or len(tasks) <= 1:
        return [worker(task) for task in tasks]
    print(f"[Parallel] Executing {len(tasks)} {desc} across {n_jobs} processes...")
    results: List[Optional[_Accumulator]] = [None] * len(tasks)
    with ProcessPoolExecutor(max_workers=n_jobs, mp_context=mp.get_context("spawn")) as executor:
        futures = {executor.submit(worker, task): idx for idx, task in enumerate(tasks)}
        for future, idx in futures.items():
            configuration, start, stop = tasks[idx][0], tasks[idx][1], tasks[idx][2]
            try:
                results[idx] = future.result()
            except (BrokenProcessPool, pickle.PicklingError, OSError) as exc:
                failed = _Accumulator(name=configuration.name, requested=stop - start)
                error = f"{type(exc).__name__}: {exc}"
                failed.failures.extend(TrialFailure(configuration.name, trial, error) for trial in range(start, stop))
                results[idx] = failed
    return [result for result in results if result is not None]


class ExperimentRunner:
    """Runs Monte Carlo sweeps and reduces them into comparative statistics.

    Parameters
    ----------
    trials_per_config : int
        Default number of trials for configurations without their own count.
    seed : int, optional
        Base seed. Each trial derives its own seed from it and the
        configuration name, so results do not depend on execution order.
    n_jobs : int
        Worker processes; 1 runs in-process.
    verbose : bool
        Print per-configuration progress lines.
    """

    def __init__(self, trials_per_config: int = 20, seed: Optional[int] = None, n_jobs: int = 1, verbose: bool = False):
        if trials_per_config <= 0:
            raise InvalidParameter(f"trials_per_config must be positive, got {trials_per_config}")
        self.trials_per_config = int(trials_per_config)
        self.seed = seed
        self.n_jobs = max(1, int(n_jobs))
        self.verbose = verbose

    def run(
        self,
        configurations: Iterable[Union[ExperimentConfiguration, Mapping[str, Any]]],
        simulator_factory: SimulatorFactory,
        trials_per_config: Optional[int] = None,
        objective: Callable[[AggregateResult], float] = success_rate_objective,
        metric_extractor: Optional[MetricExtractor] = None,
        name: str = "experiment",
    ) -> ExperimentResult:
        configs = [_coerce_configuration(item, idx) for idx, item in enumerate(configurations)]
        if not configs:
            raise InvalidParameter("An experiment needs at least one configuration")
        names = [config.name for config in configs]
        if len(set(names)) != len(names):
            raise InvalidParameter(f"Configuration names must be unique: {names}")
        default_trials = int(trials_per_config or self.trials_per_config)
        if default_trials <= 0:
            raise InvalidParameter(f"trials_per_config must be positive, got {default_trials}")

        n_jobs = self.n_jobs
        if n_jobs > 1 and not _is_picklable(simulator_factory, metric_extractor, configs):
            print("[Parallel] Factory or extractor cannot be pickled; running sequentially.")
            n_jobs = 1

        merged: Dict[str, _Accumulator] = {}
        tasks: List[_Task] = []
        for config in configs:
            trials = int(config.trials or default_trials)
            merged[config.name] = _Accumulator(name=config.name, requested=trials)
            for start, stop in _split_trials(trials, n_jobs):
                tasks.append((config, start, stop, simulator_factory, metric_extractor, self.seed, self.verbose))
        if self.verbose:
            print(f"[Runner] {name}: {len(configs)} configurations, objective={_objective_name(objective)}")
        for partial in _execute_parallel_tasks(tasks, _run_configuration, n_jobs):
            merged[partial.name].merge(partial)

        results = []
        for config in configs:
            aggregate = _finalize(config, merged[config.name])
            results.append(aggregate)
            if self.verbose:
                print(
                    f"[Runner] {config.name}: success {aggregate.success_rate:.1f}% "
                    f"over {aggregate.completed_trials}/{aggregate.trials} trials"
                )
        optimal = select_optimal(results, objective)
        failures = sum(aggregate.failed_trials for aggregate in results)
        if failures:
            print(f"[Runner] {name}: {failures} trial(s) failed; results cover the remaining trials only.")
        return ExperimentResult(
            results=tuple(results),
            optimal=optimal,
            objective_name=_objective_name(objective),
            name=name,
        )


def _objective_name(objective: Callable[..., Any]) -> str:
    return getattr(objective, "__name__", repr(objective))


__all__ = [
    "ExperimentConfiguration",
    "TrialFailure",
    "AggregateResult",
    "ExperimentResult",
    "ExperimentRunner",
    "success_rate_objective",
    "metric_objective",
    "weighted_metric_objective",
    "select_optimal",
]
