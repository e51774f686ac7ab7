"""Utility helpers shared across the lifeverse engines."""

from __future__ import annotations

import math
from typing import Any, Iterable

import numpy as np


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``."""
    return max(low, min(high, value))


def round4(value: float) -> float:
    """Round to four decimals, the precision used for persisted results."""
    return float(round(float(value), 4))


def fast_mean(values: Iterable[float], default: float = 0.0) -> float:
    """Lightweight mean for Python iterables; ``default`` when empty."""
    total = 0.0
    count = 0
    for value in values:
        total += float(value)
        count += 1
    if count == 0:
        return default
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


def finite_or_zero(value: Any) -> Any:
    """Replace NaN/inf floats with 0.0 so JSON log records stay parseable."""
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return 0.0
    return value


def linear_quantile(values: Any, q: float, default: float = 0.0) -> float:
    """Linearly interpolated quantile at position ``(n - 1) * q``."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return default
    return float(np.quantile(arr, q))
