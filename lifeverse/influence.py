"""
Influence matrices: directed, weighted metric-to-metric effects.

An ``InfluenceMatrix`` is a nested ``dict`` indexed ``matrix[from][to]`` with
weights in ``[-1, 1]``. Missing cells read as zero, so an empty matrix is a
valid "no coupling" graph. Three variants are composed by callers:

- **manual**: edited by hand,
- **learned**: produced by :func:`lifeverse.learning.train_learned_influence_matrix`,
- **mixed**: the elementwise blend ``manual*(1-mix) + learned*mix``.

The module also hosts the default bounded propagation step the path
propagator applies once per simulated day.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, Mapping, Optional, Sequence

import numpy as np

from .errors import ConfigurationError
from .metrics import METRIC_BY_ID, METRIC_IDS, MetricVector, clamp_metric, clamp_vector, get_metric
from .utils import clamp, round4

InfluenceMatrix = Dict[str, Dict[str, float]]

WEIGHTS_SOURCES = ("manual", "learned", "mixed")

# Share of a source's normalised shift that reaches a target with weight 1.
PROPAGATION_GAIN = 0.5
# Largest single-step pull on a target, as a fraction of its range.
MAX_STEP_FRACTION = 0.25


def empty_influence_matrix(
    metric_ids: Sequence[str] = METRIC_IDS, fill: float = 0.0
) -> InfluenceMatrix:
    """Fully populated matrix with every cell set to ``fill``."""
    return {from_id: {to_id: float(fill) for to_id in metric_ids} for from_id in metric_ids}


def matrix_weight(matrix: Optional[Mapping[str, Mapping[str, float]]], from_id: str, to_id: str, default: float = 0.0) -> float:
    if not matrix:
        return default
    row = matrix.get(from_id)
    if not row:
        return default
    value = row.get(to_id)
    return default if value is None else float(value)


def matrix_to_array(
    matrix: Optional[Mapping[str, Mapping[str, float]]],
    metric_ids: Sequence[str] = METRIC_IDS,
    default: float = 0.0,
) -> np.ndarray:
    """Dense ``(from, to)`` array view of ``matrix``."""
    arr = np.full((len(metric_ids), len(metric_ids)), default, dtype=float)
    for i, from_id in enumerate(metric_ids):
        for j, to_id in enumerate(metric_ids):
            arr[i, j] = matrix_weight(matrix, from_id, to_id, default)
    return arr


def iter_edges(matrix: Mapping[str, Mapping[str, float]]) -> Iterable[tuple]:
    """Yield ``(from, to, weight)`` for every non-zero cell."""
    for from_id, row in matrix.items():
        for to_id, weight in row.items():
            if weight:
                yield from_id, to_id, float(weight)


def validate_influence_matrix(
    matrix: Optional[Mapping[str, Mapping[str, float]]],
    name: str = "matrix",
    low: float = -1.0,
    high: float = 1.0,
) -> None:
    """Raise ``ConfigurationError`` for unknown ids or out-of-range cells."""
    if matrix is None:
        return
    for from_id, row in matrix.items():
        if from_id not in METRIC_BY_ID:
            raise ConfigurationError(f"{name}: unknown source metric '{from_id}'.")
        for to_id, weight in (row or {}).items():
            if to_id not in METRIC_BY_ID:
                raise ConfigurationError(f"{name}: unknown target metric '{to_id}'.")
            value = float(weight)
            if not math.isfinite(value) or value < low or value > high:
                raise ConfigurationError(
                    f"{name}[{from_id}][{to_id}] = {weight!r} is outside [{low}, {high}]."
                )


def blend_matrices(manual: InfluenceMatrix, learned: InfluenceMatrix, mix: float) -> InfluenceMatrix:
    """Convex combination ``manual*(1-mix) + learned*mix`` over every cell."""
    clamped_mix = clamp(float(mix), 0.0, 1.0)
    blended: InfluenceMatrix = {}
    for from_id in METRIC_IDS:
        blended[from_id] = {}
        for to_id in METRIC_IDS:
            manual_weight = matrix_weight(manual, from_id, to_id)
            learned_weight = matrix_weight(learned, from_id, to_id)
            blended[from_id][to_id] = round4((1 - clamped_mix) * manual_weight + clamped_mix * learned_weight)
    return blended


def resolve_active_matrix(
    source: str,
    manual: InfluenceMatrix,
    learned: InfluenceMatrix,
    mix: float = 0.5,
) -> InfluenceMatrix:
    """Pick the matrix the simulator should consume for ``source``."""
    if source == "manual":
        return manual
    if source == "learned":
        return learned
    if source == "mixed":
        return blend_matrices(manual, learned, mix)
    raise ConfigurationError(f"Unknown weights source '{source}'. Expected one of {WEIGHTS_SOURCES}.")


def apply_bounded_propagation(
    vector: Mapping[str, float],
    impulses: Mapping[str, float],
    matrix: Optional[Mapping[str, Mapping[str, float]]],
) -> MetricVector:
    """Apply one day of impulses and spread them along the influence edges.

    Impulses move their own metric first. The resulting normalised shift of
    every source metric is pushed to each target through ``matrix``, scaled by
    :data:`PROPAGATION_GAIN` and capped at :data:`MAX_STEP_FRACTION` of the
    target range. The function is pure and the result is clamped.
    """
    current = clamp_vector(vector)
    nudged = dict(current)
    for metric_id, delta in impulses.items():
        if delta:
            nudged[metric_id] = clamp_metric(metric_id, nudged[metric_id] + float(delta))

    shifts = {}
    for metric_id in METRIC_IDS:
        span = METRIC_BY_ID[metric_id].span
        shifts[metric_id] = (nudged[metric_id] - current[metric_id]) / span if span > 0 else 0.0

    if not matrix or not any(shifts.values()):
        return nudged

    result = dict(nudged)
    for to_id in METRIC_IDS:
        pull = 0.0
        for from_id, shift in shifts.items():
            if shift:
                pull += matrix_weight(matrix, from_id, to_id) * shift
        if not pull:
            continue
        pull = clamp(pull * PROPAGATION_GAIN, -MAX_STEP_FRACTION, MAX_STEP_FRACTION)
        result[to_id] = clamp_metric(to_id, result[to_id] + pull * get_metric(to_id).span)
    return result
