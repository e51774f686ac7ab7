"""
Path propagator: advances one simulated run day by day.

Every random number comes from the single batch stream passed in as ``rand``,
and the draw order per run is fixed:

1. weight perturbation (one draw per matrix cell, only with ``weights_noise``),
2. per day: the shock draw (``blackSwan`` mode only), the residual index
   (``forecast_noise`` with a non-empty residual pool), and the regime draw
   (``stochastic_regime``).

With all three toggles off and shocks disabled a run consumes no draws, so
every path of the batch is the same deterministic replay.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Mapping, Optional

from .influence import InfluenceMatrix, matrix_weight
from .metrics import METRIC_IDS, MetricVector, clamp_metric, ensure_vector
from .models import Path, PathPoint
from .regime import regime_collapse_offset, sample_transition
from .scoring import RiskSnapshot, StateScoring
from .utils import clamp, round4

if TYPE_CHECKING:
    from .config import Impulse, MultiverseConfig

RED_THRESHOLD = 0.35
AMBER_THRESHOLD = 0.20
BLACK_SWAN_TAIL = 0.92
BLACK_SWAN_HEAVY = 3.2
BLACK_SWAN_LIGHT = 1.2
DEFAULT_STABILITY = 0.5

# How one unit of forecast residual moves the metrics it touches.
FORECAST_NOISE_COEFFICIENTS: Dict[str, float] = {
    "energy": 0.06,
    "mood": 0.04,
    "stress": -0.05,
}


def impulses_by_day(impulses: Iterable["Impulse"]) -> Dict[int, Dict[str, float]]:
    """Group scheduled impulses by day, summing deltas per metric.

    Day-0 impulses are folded into day 1.
    """
    schedule: Dict[int, Dict[str, float]] = {}
    for impulse in impulses:
        day = max(1, int(impulse.day))
        row = schedule.setdefault(day, {})
        row[impulse.metric_id] = row.get(impulse.metric_id, 0.0) + float(impulse.delta)
    return schedule


def shock_scale(mode: str, rand: Callable[[], float]) -> float:
    """Forecast-noise multiplier; only ``blackSwan`` consumes a draw."""
    if mode == "off":
        return 0.0
    if mode == "normal":
        return 1.0
    return BLACK_SWAN_HEAVY if rand() > BLACK_SWAN_TAIL else BLACK_SWAN_LIGHT


def perturb_matrix(
    base: Optional[Mapping[str, Mapping[str, float]]],
    stability: Optional[Mapping[str, Mapping[str, float]]],
    rand: Callable[[], float],
) -> InfluenceMatrix:
    """Jitter every cell by ``(rand - 0.5) * 2 * sigma``.

    ``sigma = max(0.01, (1 - stability) * 0.2)`` so low-stability edges move
    more. Cells are visited in metric order, one draw each.
    """
    sampled: InfluenceMatrix = {}
    for from_id in METRIC_IDS:
        row = sampled[from_id] = {}
        for to_id in METRIC_IDS:
            base_weight = matrix_weight(base, from_id, to_id)
            st = matrix_weight(stability, from_id, to_id, DEFAULT_STABILITY)
            sigma = max(0.01, (1.0 - st) * 0.2)
            noise = (rand() - 0.5) * 2.0 * sigma
            row[to_id] = clamp(round4(base_weight + noise), -1.0, 1.0)
    return sampled


def siren_level(p_collapse: float) -> str:
    if p_collapse > RED_THRESHOLD:
        return "red"
    if p_collapse >= AMBER_THRESHOLD:
        return "amber"
    return "green"


@dataclass
class RunState:
    """Mutable state of one run between simulated days."""

    vector: MetricVector
    regime: int
    matrix: Optional[Mapping[str, Mapping[str, float]]]


class PathPropagator:
    """Generates paths for one batch configuration.

    Parameters
    ----------
    config : MultiverseConfig
        Validated batch configuration.
    rand : callable
        Zero-argument uniform generator shared by every run of the batch.
    scoring : StateScoring, optional
        Scoring collaborators; defaults to :class:`StateScoring`.
    """

    def __init__(
        self,
        config: "MultiverseConfig",
        rand: Callable[[], float],
        scoring: Optional[StateScoring] = None,
    ):
        self.config = config
        self.rand = rand
        self.scoring = scoring or StateScoring()
        self.schedule = impulses_by_day(config.impulses)
        self.base_vector = ensure_vector(config.base_vector)
        self.residuals = [float(value) for value in config.forecast_residuals]

    def start_run(self) -> RunState:
        matrix = self.config.matrix
        if self.config.toggles.weights_noise:
            matrix = perturb_matrix(self.config.matrix, self.config.stability, self.rand)
        return RunState(vector=dict(self.base_vector), regime=int(self.config.base_regime), matrix=matrix)

    def forecast_noise(self) -> float:
        scale = shock_scale(self.config.shock_mode, self.rand)
        if not (self.config.toggles.forecast_noise and self.residuals):
            return 0.0
        return self.residuals[int(self.rand() * len(self.residuals))] * scale

    def step(self, state: RunState, day: int) -> PathPoint:
        """Advance ``state`` by one day and return that day's point."""
        noise = self.forecast_noise()
        vector = self.scoring.propagate(state.vector, self.schedule.get(day, {}), state.matrix)
        if noise:
            for metric_id, coefficient in FORECAST_NOISE_COEFFICIENTS.items():
                vector[metric_id] = clamp_metric(metric_id, vector[metric_id] + noise * coefficient)
        state.vector = vector

        if self.config.toggles.stochastic_regime:
            state.regime = sample_transition(self.rand, state.regime, self.config.transition_matrix)

        index = self.scoring.compute_index_day(vector)
        snapshot = RiskSnapshot(index=index, risk=max(0.0, 10.0 - index), volatility=abs(noise))
        assessment = self.scoring.assess_collapse_risk(snapshot, vector)
        p_collapse = clamp(assessment.p_collapse + regime_collapse_offset(state.regime), 0.0, 1.0)
        goal_score = self.scoring.goal_score_of(vector, self.config.goal_weights)
        return PathPoint(
            day=day,
            index=round4(index),
            p_collapse=round4(p_collapse),
            siren=siren_level(p_collapse),
            regime_id=state.regime,
            goal_score=None if goal_score is None else round4(goal_score),
            vector=dict(vector) if self.config.record_vectors else None,
        )

    def run_path(self) -> Path:
        state = self.start_run()
        return [self.step(state, day) for day in range(1, self.config.horizon_days + 1)]
