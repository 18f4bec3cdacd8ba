"""Numeric helpers shared across the EquiCurve modules."""

from __future__ import annotations

import hashlib
import math
import random
from typing import Any, Iterable, Optional

import numpy as np

from .errors import InvalidParameter


def fast_mean(values: Iterable[float]) -> float:
    """Lightweight mean for Python iterables; matches NumPy for finite inputs."""
    if isinstance(values, np.ndarray):
        if values.size == 0:
            return float("nan")
        with np.errstate(invalid="ignore"):
            return float(values.mean())
    total = 0.0
    count = 0
    for value in values:
        total += float(value)
        count += 1
    if count == 0:
        return float("nan")
    return total / count


def stable_sigmoid(x: Any) -> Any:
    """Numerically stable logistic function without hard clipping."""
    arr = np.asarray(x, dtype=float)
    if arr.ndim == 0:
        val = float(arr)
        if val >= 0:
            return float(1.0 / (1.0 + np.exp(-val)))
        exp_val = np.exp(val)
        return float(exp_val / (1.0 + exp_val))
    result = np.empty_like(arr, dtype=float)
    positive_mask = arr >= 0
    if np.any(positive_mask):
        result[positive_mask] = 1.0 / (1.0 + np.exp(-arr[positive_mask]))
    negative_mask = ~positive_mask
    if np.any(negative_mask):
        exp_x = np.exp(arr[negative_mask])
        result[negative_mask] = exp_x / (1.0 + exp_x)
    return result


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def is_number(value: Any) -> bool:
    """True for real scalars, excluding booleans."""
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float, np.integer, np.floating))


def require_finite(name: str, value: Any, *, positive: bool = False, non_negative: bool = False) -> float:
    """Coerce ``value`` to float and enforce finiteness plus an optional sign constraint."""
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise InvalidParameter(f"{name} must be finite, got {value!r}")
    if positive and number <= 0:
        raise InvalidParameter(f"{name} must be > 0, got {number}")
    if non_negative and number < 0:
        raise InvalidParameter(f"{name} must be >= 0, got {number}")
    return number


def derive_trial_seed(base_seed: Optional[int], key: str) -> int:
    """Return a reproducible per-trial seed, or a fresh OS-derived one when unseeded."""
    if base_seed is None:
        return random.SystemRandom().randint(0, 2**32 - 2)
    key_hash = int(hashlib.sha256(key.encode("utf-8")).hexdigest(), 16) % 1_000_000
    return (int(base_seed) + key_hash) % (2**32 - 1)


__all__ = [
    "fast_mean",
    "stable_sigmoid",
    "clamp",
    "is_number",
    "require_finite",
    "derive_trial_seed",
]
