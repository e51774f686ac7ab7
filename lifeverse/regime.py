"""
Macro regimes of the simulated life-system.

A regime is a small integer id with a row-stochastic transition matrix
``transition_matrix[from][to]``. The simulator optionally resamples the regime
once per simulated day and shifts the collapse probability by a fixed
per-regime offset: the most severe regime adds risk, the calmest removes some.
"""

from __future__ import annotations

import math
from enum import IntEnum
from typing import Callable, Dict, List, Sequence

from .errors import ConfigurationError

ROW_SUM_TOLERANCE = 1e-6


class RegimeId(IntEnum):
    STEADY = 0
    CALM = 1
    DRIFT = 2
    STRAIN = 3
    CRISIS = 4


REGIME_COLLAPSE_OFFSETS: Dict[int, float] = {
    RegimeId.STEADY: 0.0,
    RegimeId.CALM: -0.02,
    RegimeId.DRIFT: 0.0,
    RegimeId.STRAIN: 0.03,
    RegimeId.CRISIS: 0.06,
}

# Persistent regimes with mild drift toward STEADY; CRISIS is rarely entered directly.
DEFAULT_TRANSITION_MATRIX: List[List[float]] = [
    [0.80, 0.08, 0.08, 0.03, 0.01],
    [0.15, 0.75, 0.06, 0.03, 0.01],
    [0.15, 0.05, 0.70, 0.08, 0.02],
    [0.10, 0.02, 0.10, 0.70, 0.08],
    [0.05, 0.00, 0.10, 0.25, 0.60],
]


def regime_name(regime: int) -> str:
    try:
        return RegimeId(regime).name.lower()
    except ValueError:
        return f"regime_{regime}"


def regime_collapse_offset(regime: int) -> float:
    return REGIME_COLLAPSE_OFFSETS.get(int(regime), 0.0)


def validate_transition_matrix(matrix: Sequence[Sequence[float]]) -> None:
    """Raise ``ConfigurationError`` unless ``matrix`` is square and row-stochastic."""
    size = len(matrix)
    if size == 0:
        raise ConfigurationError("Transition matrix must have at least one regime.")
    for index, row in enumerate(matrix):
        if len(row) != size:
            raise ConfigurationError(
                f"Transition matrix must be square: row {index} has {len(row)} entries, expected {size}."
            )
        total = 0.0
        for value in row:
            numeric = float(value)
            if not math.isfinite(numeric) or numeric < 0:
                raise ConfigurationError(f"Transition matrix row {index} has invalid probability {value!r}.")
            total += numeric
        if abs(total - 1.0) > ROW_SUM_TOLERANCE:
            raise ConfigurationError(f"Transition matrix row {index} sums to {total:.6f}, expected 1.")


def sample_transition(rand: Callable[[], float], current: int, matrix: Sequence[Sequence[float]]) -> int:
    """Draw the next regime from ``matrix[current]``.

    One uniform draw is consumed. If floating error leaves the draw above the
    row's cumulative total, the current regime is kept.
    """
    row = matrix[current] if 0 <= current < len(matrix) else ()
    r = rand()
    cumulative = 0.0
    for index, probability in enumerate(row):
        cumulative += probability
        if r <= cumulative:
            return index
    return current
