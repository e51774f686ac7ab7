"""
Metric catalogue for the personal multi-metric state.

Every simulated or observed state is a ``MetricVector``: a plain ``dict``
mapping each of the nine metric ids to a float. Vectors are always fully
populated and every value is clamped into its metric's declared range after
each mutation, so downstream engines never need to guard against missing keys
or out-of-range values.

Usage
-----
    >>> vector = ensure_vector({"energy": 12})
    >>> vector["energy"], vector["sleepHours"]
    (10.0, 8.0)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError

MetricVector = Dict[str, float]


@dataclass(frozen=True)
class MetricSpec:
    """Closed numeric range and input granularity of a single metric."""

    id: str
    label: str
    min: float
    max: float
    step: float

    @property
    def span(self) -> float:
        return self.max - self.min


METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec("energy", "Energy", 0.0, 10.0, 1.0),
    MetricSpec("focus", "Focus", 0.0, 10.0, 1.0),
    MetricSpec("mood", "Mood", 0.0, 10.0, 1.0),
    MetricSpec("stress", "Stress", 0.0, 10.0, 1.0),
    MetricSpec("sleepHours", "Sleep (hours)", 0.0, 12.0, 0.5),
    MetricSpec("social", "Social", 0.0, 10.0, 1.0),
    MetricSpec("productivity", "Productivity", 0.0, 10.0, 1.0),
    MetricSpec("health", "Health", 0.0, 10.0, 1.0),
    MetricSpec("cashFlow", "Cash flow", 0.0, 1_000_000.0, 100.0),
)

METRIC_IDS: Tuple[str, ...] = tuple(metric.id for metric in METRICS)
METRIC_BY_ID: Dict[str, MetricSpec] = {metric.id: metric for metric in METRICS}

DEFAULT_METRIC_VALUES: Dict[str, float] = {
    "energy": 5.0,
    "focus": 5.0,
    "mood": 5.0,
    "stress": 5.0,
    "sleepHours": 8.0,
    "social": 5.0,
    "productivity": 5.0,
    "health": 5.0,
    "cashFlow": 0.0,
}


def get_metric(metric_id: str) -> MetricSpec:
    """Look up a metric by id, raising ``ConfigurationError`` when unknown."""
    try:
        return METRIC_BY_ID[metric_id]
    except KeyError:
        raise ConfigurationError(
            f"Unknown metric '{metric_id}'. Available: {', '.join(METRIC_IDS)}"
        ) from None


def metric_label(metric_id: str) -> str:
    spec = METRIC_BY_ID.get(metric_id)
    return spec.label if spec is not None else metric_id


def clamp_metric(metric_id: str, value: float) -> float:
    """Clamp ``value`` into the declared range of ``metric_id``."""
    spec = get_metric(metric_id)
    return float(max(spec.min, min(spec.max, value)))


def normalize_metric(metric_id: str, value: float) -> float:
    """Map a metric value onto ``[0, 1]`` relative to its range."""
    spec = get_metric(metric_id)
    if spec.span <= 0:
        return 0.0
    return (clamp_metric(metric_id, value) - spec.min) / spec.span


def clamp_vector(vector: Mapping[str, float]) -> MetricVector:
    """Return a copy of ``vector`` with every known metric clamped."""
    return {metric_id: clamp_metric(metric_id, float(vector[metric_id])) for metric_id in METRIC_IDS}


def ensure_vector(
    values: Optional[Mapping[str, float]] = None,
    defaults: Optional[Mapping[str, float]] = None,
) -> MetricVector:
    """Build a fully populated, clamped vector from partial ``values``.

    Unknown metric ids and non-finite values raise ``ConfigurationError``.
    """
    base = dict(DEFAULT_METRIC_VALUES if defaults is None else defaults)
    for metric_id, value in (values or {}).items():
        get_metric(metric_id)
        numeric = float(value)
        if not math.isfinite(numeric):
            raise ConfigurationError(f"Metric '{metric_id}' has non-finite value {value!r}.")
        base[metric_id] = numeric
    return clamp_vector(base)


def vector_in_bounds(vector: Mapping[str, float]) -> bool:
    """True when ``vector`` is fully populated and inside every range."""
    for spec in METRICS:
        if spec.id not in vector:
            return False
        value = vector[spec.id]
        if not (spec.min <= value <= spec.max):
            return False
    return True
