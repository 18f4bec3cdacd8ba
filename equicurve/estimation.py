"""
Log-log estimation of the demand law from observed campaign days.

Taking logs of ``D = alpha * E**beta * P**(-gamma)`` gives the linear model

    ln D = ln alpha + beta ln E - gamma ln P

:class:`ParameterEstimator` fits it with two separate simple regressions:

    beta  =  cov(ln E, ln D) / var(ln E)
    gamma = -cov(ln P, ln D) / var(ln P)
    ln alpha = mean(ln D) - beta mean(ln E) + gamma mean(ln P)

Notes
-----
This is not a multiple regression. The covariance between ``ln E`` and ``ln P``
is ignored, so the estimates are exact only when the two regressors are
uncorrelated (for example a full factorial design of effort and price levels).
When they co-move, as they do under most adaptive strategies, beta and gamma
absorb each other's effect. A :class:`~equicurve.errors.CollinearityWarning` is
emitted when ``|corr(ln E, ln P)|`` exceeds ``collinearity_threshold``.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple

import numpy as np
import pandas as pd

from .errors import CollinearityWarning, DegenerateEstimation, InvalidParameter

# Relative variance below which a regressor is treated as constant.
_VARIANCE_TOLERANCE = 1e-12


@dataclass(frozen=True)
class EstimationResult:
    alpha: float
    beta: float
    gamma: float
    r_squared: float
    n_observations: int
    regressor_correlation: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "alpha": self.alpha,
            "beta": self.beta,
            "gamma": self.gamma,
            "r_squared": self.r_squared,
            "n_observations": self.n_observations,
            "regressor_correlation": self.regressor_correlation,
        }


def _as_triples(observations: Any) -> np.ndarray:
    """Normalise tuples, mappings, DayRecords or a DataFrame into an (n, 3) array."""
    if isinstance(observations, pd.DataFrame):
        missing = {"demand", "effort", "price"} - set(observations.columns)
        if missing:
            raise InvalidParameter(f"Observation frame is missing columns: {', '.join(sorted(missing))}")
        return observations[["demand", "effort", "price"]].to_numpy(dtype=float)
    rows = []
    for item in observations:
        if isinstance(item, Mapping):
            rows.append((item["demand"], item["effort"], item["price"]))
        elif hasattr(item, "demand") and hasattr(item, "effort") and hasattr(item, "price"):
            rows.append((item.demand, item.effort, item.price))
        else:
            demand, effort, price = item
            rows.append((demand, effort, price))
    return np.asarray(rows, dtype=float).reshape(-1, 3)


class ParameterEstimator:
    """Recover (alpha, beta, gamma) and R-squared from (demand, effort, price) triples."""

    def __init__(self, min_observations: int = 3, collinearity_threshold: float = 0.3):
        self.min_observations = min_observations
        self.collinearity_threshold = collinearity_threshold

    def estimate(self, observations: Iterable[Any]) -> EstimationResult:
        data = _as_triples(observations)
        n_obs = data.shape[0]
        if n_obs < self.min_observations:
            raise DegenerateEstimation(
                f"insufficient variation: need at least {self.min_observations} observations, got {n_obs}"
            )
        if not np.all(np.isfinite(data)) or np.any(data <= 0):
            raise InvalidParameter("demand, effort and price observations must all be finite and > 0")

        ln_d, ln_e, ln_p = np.log(data[:, 0]), np.log(data[:, 1]), np.log(data[:, 2])
        mean_d, mean_e, mean_p = ln_d.mean(), ln_e.mean(), ln_p.mean()
        var_e = float(np.mean((ln_e - mean_e) ** 2))
        var_p = float(np.mean((ln_p - mean_p) ** 2))
        if var_e <= _VARIANCE_TOLERANCE * max(1.0, mean_e ** 2):
            raise DegenerateEstimation("insufficient variation: effort is constant across observations")
        if var_p <= _VARIANCE_TOLERANCE * max(1.0, mean_p ** 2):
            raise DegenerateEstimation("insufficient variation: price is constant across observations")

        cov_ed = float(np.mean((ln_e - mean_e) * (ln_d - mean_d)))
        cov_pd = float(np.mean((ln_p - mean_p) * (ln_d - mean_d)))
        cov_ep = float(np.mean((ln_e - mean_e) * (ln_p - mean_p)))
        correlation = cov_ep / np.sqrt(var_e * var_p)
        if abs(correlation) > self.collinearity_threshold:
            warnings.warn(
                f"ln(effort) and ln(price) are correlated (r={correlation:.2f}); "
                "the simplified estimator will bias beta and gamma",
                CollinearityWarning,
                stacklevel=2,
            )

        beta = cov_ed / var_e
        gamma = -cov_pd / var_p
        ln_alpha = mean_d - beta * mean_e + gamma * mean_p

        predicted = ln_alpha + beta * ln_e - gamma * ln_p
        ss_res = float(np.sum((ln_d - predicted) ** 2))
        ss_tot = float(np.sum((ln_d - mean_d) ** 2))
        if ss_tot == 0:
            raise DegenerateEstimation("insufficient variation: demand is constant across observations")

        return EstimationResult(
            alpha=float(np.exp(ln_alpha)),
            beta=float(beta),
            gamma=float(gamma),
            r_squared=1.0 - ss_res / ss_tot,
            n_observations=int(n_obs),
            regressor_correlation=float(correlation),
        )


def estimate_parameters(observations: Iterable[Any]) -> Tuple[float, float, float, float]:
    """Convenience wrapper returning ``(alpha, beta, gamma, r_squared)``."""
    result = ParameterEstimator().estimate(observations)
    return result.alpha, result.beta, result.gamma, result.r_squared


__all__ = ["EstimationResult", "ParameterEstimator", "estimate_parameters"]
