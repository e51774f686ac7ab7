"""
State scoring collaborators used by the multiverse simulator.

The simulator treats all of these as pure functions and reaches them through
a :class:`StateScoring` instance, so a caller can substitute its own models by
subclassing and overriding individual methods:

- :meth:`StateScoring.propagate`: one bounded influence step,
- :meth:`StateScoring.compute_index_day`: composite wellbeing index (0-10),
- :meth:`StateScoring.assess_collapse_risk`: probability of collapse,
- :meth:`StateScoring.rank_hedges`: single-metric corrective actions,
- :meth:`StateScoring.goal_score_of`: alignment with a goal weighting,
- :meth:`StateScoring.summarize_tail`: tail-risk statistics of a batch.

The default formulas are deliberately simple weighted sums and a logistic
risk curve over the same normalised metrics.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .graph import influence_graph
from .influence import apply_bounded_propagation
from .metrics import METRIC_BY_ID, METRIC_IDS, MetricVector, clamp_metric, metric_label, normalize_metric
from .models import CollapseAssessment, Hedge, Path, TailSummary
from .utils import clamp, linear_quantile, round4, stable_sigmoid

INDEX_WEIGHTS: Dict[str, float] = {
    "energy": 0.14,
    "focus": 0.12,
    "mood": 0.14,
    "stress": 0.14,
    "sleepHours": 0.12,
    "social": 0.08,
    "productivity": 0.12,
    "health": 0.12,
    "cashFlow": 0.02,
}

IDEAL_SLEEP_HOURS = 8.0
SLEEP_TOLERANCE_HOURS = 4.0
# Metrics where a lower value is the healthier direction.
INVERTED_METRICS = frozenset({"stress"})
TAIL_LEVEL = 0.975
HEDGE_STEPS = 2


@dataclass
class RiskSnapshot:
    """State summary the collapse model scores alongside the raw vector."""

    index: float
    risk: float
    volatility: float


def oriented_score(metric_id: str, value: float) -> float:
    """Per-metric contribution in ``[0, 1]`` where 1 is the healthy end."""
    if metric_id == "sleepHours":
        return 1.0 - min(1.0, abs(value - IDEAL_SLEEP_HOURS) / SLEEP_TOLERANCE_HOURS)
    if metric_id == "cashFlow":
        return float(np.log1p(max(value, 0.0)) / np.log1p(METRIC_BY_ID["cashFlow"].max))
    normalized = normalize_metric(metric_id, value)
    return 1.0 - normalized if metric_id in INVERTED_METRICS else normalized


class StateScoring:
    """Default implementations of the scoring collaborators."""

    def propagate(
        self,
        vector: Mapping[str, float],
        impulses: Mapping[str, float],
        matrix: Optional[Mapping[str, Mapping[str, float]]],
    ) -> MetricVector:
        return apply_bounded_propagation(vector, impulses, matrix)

    def compute_index_day(self, vector: Mapping[str, float]) -> float:
        total = 0.0
        for metric_id, weight in INDEX_WEIGHTS.items():
            total += weight * oriented_score(metric_id, float(vector[metric_id]))
        return clamp(10.0 * total, 0.0, 10.0)

    def assess_collapse_risk(self, snapshot: RiskSnapshot, vector: Mapping[str, float]) -> CollapseAssessment:
        """Logistic collapse risk driven by index shortfall, stress, sleep debt and volatility."""
        drivers = {
            "index_shortfall": 0.55 * (snapshot.risk - 4.5),
            "stress": 0.18 * (float(vector["stress"]) - 5.0),
            "sleep_debt": 0.35 * max(0.0, 6.0 - float(vector["sleepHours"])),
            "low_energy": 0.12 * (5.0 - float(vector["energy"])),
            "volatility": 0.8 * snapshot.volatility,
        }
        logit = -2.2 + sum(drivers.values())
        return CollapseAssessment(p_collapse=float(stable_sigmoid(logit)), drivers=drivers)

    def collapse_probability(self, vector: Mapping[str, float], volatility: float = 0.0) -> float:
        index = self.compute_index_day(vector)
        snapshot = RiskSnapshot(index=index, risk=max(0.0, 10.0 - index), volatility=volatility)
        return self.assess_collapse_risk(snapshot, vector).p_collapse

    def goal_score_of(
        self, vector: Mapping[str, float], weights: Optional[Mapping[str, float]]
    ) -> Optional[float]:
        """Weighted alignment in ``[-10, 10]``; ``None`` without usable weights.

        A positive weight rewards a high metric value and a negative weight
        rewards a low one.
        """
        if not weights:
            return None
        denominator = sum(abs(float(weight)) for weight in weights.values())
        if denominator <= 0:
            return None
        total = 0.0
        for metric_id, weight in weights.items():
            total += float(weight) * normalize_metric(metric_id, float(vector[metric_id]))
        return 10.0 * total / denominator

    def rank_hedges(
        self,
        base_vector: Mapping[str, float],
        matrix: Optional[Mapping[str, Mapping[str, float]]],
        index_floor: float,
        collapse_constraint_pct: float,
        limit: int = 3,
    ) -> List[Hedge]:
        """Rank single-metric nudges by how much they cut risk and lift the index.

        Each metric is nudged two steps in its healthy direction and pushed
        through one propagation step. Candidates that do not improve the score
        are dropped.
        """
        base_index = self.compute_index_day(base_vector)
        base_p = self.collapse_probability(base_vector)
        graph = influence_graph(matrix or {})

        scored = []
        for order, metric_id in enumerate(METRIC_IDS):
            spec = METRIC_BY_ID[metric_id]
            direction = -1.0 if metric_id in INVERTED_METRICS else 1.0
            if metric_id == "sleepHours" and base_vector[metric_id] > IDEAL_SLEEP_HOURS:
                direction = -1.0
            delta = direction * spec.step * HEDGE_STEPS
            if clamp_metric(metric_id, base_vector[metric_id] + delta) == base_vector[metric_id]:
                continue
            candidate = self.propagate(base_vector, {metric_id: delta}, matrix)
            index = self.compute_index_day(candidate)
            p_collapse = self.collapse_probability(candidate)
            score = (base_p - p_collapse) * 100.0 + (index - base_index)
            if index < index_floor:
                score -= index_floor - index
            if p_collapse * 100.0 > collapse_constraint_pct:
                score -= 0.5 * (p_collapse * 100.0 - collapse_constraint_pct)
            if score <= 0:
                continue
            scored.append((score, order, metric_id, delta, index - base_index, p_collapse - base_p))

        scored.sort(key=lambda item: (-item[0], item[1]))
        hedges: List[Hedge] = []
        for _, _, metric_id, delta, index_delta, p_delta in scored[:limit]:
            reach = sorted(
                graph.successors(metric_id),
                key=lambda target: -graph[metric_id][target]["abs_weight"],
            )[:2]
            note = f"{metric_label(metric_id)} {delta:+g}: index {index_delta:+.2f}, collapse {p_delta * 100:+.1f} pp"
            if reach:
                note += f"; spreads to {', '.join(metric_label(target) for target in reach)}"
            hedges.append(
                Hedge(
                    metric_id=metric_id,
                    delta=delta,
                    note=note,
                    expected_index_delta=round4(index_delta),
                    expected_p_collapse_delta=round4(p_delta),
                )
            )
        return hedges

    def summarize_tail(
        self,
        paths: Sequence[Path],
        index_floor: float,
        base_index: float,
        base_p_collapse: float,
        base_goal_score: Optional[float] = None,
    ) -> TailSummary:
        if not paths:
            return TailSummary(
                var97_5=0.0,
                es97_5=0.0,
                prob_below_floor=0.0,
                prob_ever_red=0.0,
                worst_terminal_index=round4(base_index),
                mean_terminal_p_collapse=round4(base_p_collapse),
                index_floor=index_floor,
                base_index=round4(base_index),
                base_p_collapse=round4(base_p_collapse),
                base_goal_score=base_goal_score,
            )
        terminal_index = np.array([path[-1].index for path in paths], dtype=float)
        terminal_p = np.array([path[-1].p_collapse for path in paths], dtype=float)
        safe_base = max(1e-6, base_index)
        losses = np.maximum(0.0, (safe_base - terminal_index) / safe_base)
        var = linear_quantile(losses, TAIL_LEVEL)
        tail = losses[losses >= var]
        es = float(tail.mean()) if tail.size else var
        ever_red = sum(1 for path in paths if any(point.siren == "red" for point in path))
        return TailSummary(
            var97_5=round4(var),
            es97_5=round4(es),
            prob_below_floor=round4(float(np.mean(terminal_index < index_floor))),
            prob_ever_red=round4(ever_red / len(paths)),
            worst_terminal_index=round4(float(terminal_index.min())),
            mean_terminal_p_collapse=round4(float(terminal_p.mean())),
            index_floor=index_floor,
            base_index=round4(base_index),
            base_p_collapse=round4(base_p_collapse),
            base_goal_score=base_goal_score,
        )
