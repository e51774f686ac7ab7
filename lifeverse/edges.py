"""Edge-list influence estimators over day-to-day deltas.

These are lighter alternatives to the ridge trainer in :mod:`lifeverse.learning`
and produce one ``LearnedInfluenceEdge`` per ordered pair of distinct metrics,
each tagged with the lag that explained the target best.

``baseline`` correlates the source's delta ``lag`` checkins ago with the
target's delta today and keeps the lag with the strongest absolute
correlation. ``advanced`` fits a ridge regression per target over all lagged
source deltas and keeps, per source, the lag with the largest coefficient.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from .checkins import CheckinRecord, checkins_to_frame
from .errors import ConfigurationError
from .learning import fit_ridge_coefficients
from .metrics import DEFAULT_METRIC_VALUES
from .utils import clamp

DEFAULT_LAGS: Tuple[int, ...] = (1, 2, 3)
DEFAULT_RIDGE_ALPHA = 1.2


@dataclass
class LearnedInfluenceEdge:
    from_id: str
    to_id: str
    weight: float
    lag: int
    confidence: float
    method: str


def _daily_deltas(checkins: Iterable[CheckinRecord], metric_ids: Sequence[str]) -> Dict[str, np.ndarray]:
    frame = checkins_to_frame(checkins, metric_ids).sort_values("ts", kind="mergesort")
    values = frame[list(metric_ids)].ffill()
    values = values.fillna({metric_id: DEFAULT_METRIC_VALUES.get(metric_id, 0.0) for metric_id in metric_ids})
    return {metric_id: np.diff(values[metric_id].to_numpy(dtype=float)) for metric_id in metric_ids}


def correlation(x: np.ndarray, y: np.ndarray) -> float:
    """Pearson correlation, 0.0 when either side is constant or too short."""
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    dx = x - x.mean()
    dy = y - y.mean()
    var_x = float(np.dot(dx, dx))
    var_y = float(np.dot(dy, dy))
    if var_x <= np.finfo(float).eps or var_y <= np.finfo(float).eps:
        return 0.0
    return float(np.dot(dx, dy) / math.sqrt(var_x * var_y))


def _lagged_correlation(source: np.ndarray, target: np.ndarray, lag: int) -> Tuple[float, int]:
    if len(source) != len(target) or len(source) <= lag:
        return 0.0, 0
    aligned_source = source[: len(source) - lag]
    aligned_target = target[lag:]
    return correlation(aligned_source, aligned_target), len(aligned_source)


def learn_influence_baseline(
    checkins: Sequence[CheckinRecord],
    metric_ids: Sequence[str],
    lags: Sequence[int] = DEFAULT_LAGS,
) -> List[LearnedInfluenceEdge]:
    if len(checkins) < 3:
        return []
    deltas = _daily_deltas(checkins, metric_ids)

    edges: List[LearnedInfluenceEdge] = []
    for from_id in metric_ids:
        for to_id in metric_ids:
            if from_id == to_id:
                continue
            best_lag = lags[0]
            best_corr, best_n = _lagged_correlation(deltas[from_id], deltas[to_id], best_lag)
            for lag in lags[1:]:
                corr, n_eff = _lagged_correlation(deltas[from_id], deltas[to_id], lag)
                if abs(corr) > abs(best_corr) or (abs(corr) == abs(best_corr) and lag < best_lag):
                    best_lag, best_corr, best_n = lag, corr, n_eff
            weight = clamp(best_corr, -1.0, 1.0)
            confidence = min(1.0, math.sqrt(best_n) / 10) * abs(weight)
            edges.append(LearnedInfluenceEdge(from_id, to_id, weight, best_lag, confidence, "baseline-correlation"))
    return edges


def learn_influence_advanced(
    checkins: Sequence[CheckinRecord],
    metric_ids: Sequence[str],
    lags: Sequence[int] = DEFAULT_LAGS,
    ridge_alpha: float = DEFAULT_RIDGE_ALPHA,
) -> List[LearnedInfluenceEdge]:
    """Experimental estimator: per-target ridge over lagged source deltas."""
    if len(checkins) < 6:
        return []
    deltas = _daily_deltas(checkins, metric_ids)
    max_lag = max(lags)
    length = len(deltas[metric_ids[0]])
    rows = length - max_lag
    if rows < 3:
        return []

    edges: List[LearnedInfluenceEdge] = []
    for to_id in metric_ids:
        labels = [(from_id, lag) for from_id in metric_ids if from_id != to_id for lag in lags]
        if not labels:
            continue
        features = np.column_stack(
            [deltas[from_id][max_lag - lag: length - lag] for from_id, lag in labels]
        )
        target = deltas[to_id][max_lag:]
        coefficients = dict(zip(labels, fit_ridge_coefficients(features, target, ridge_alpha)))

        for from_id in metric_ids:
            if from_id == to_id:
                continue
            best_lag = lags[0]
            best_weight = 0.0
            for lag in lags:
                value = float(coefficients[(from_id, lag)])
                if abs(value) > abs(best_weight) or (abs(value) == abs(best_weight) and lag < best_lag):
                    best_lag, best_weight = lag, value
            weight = clamp(best_weight, -1.0, 1.0)
            confidence = min(1.0, math.sqrt(rows) / 10) * min(1.0, abs(weight))
            edges.append(LearnedInfluenceEdge(from_id, to_id, weight, best_lag, confidence, "advanced-ridge"))
    return edges


def learn_influence(
    checkins: Sequence[CheckinRecord],
    metric_ids: Sequence[str],
    method: str = "baseline",
    lags: Sequence[int] = DEFAULT_LAGS,
    ridge_alpha: float = DEFAULT_RIDGE_ALPHA,
) -> List[LearnedInfluenceEdge]:
    """Dispatch to the baseline or advanced edge estimator."""
    if not metric_ids:
        raise ConfigurationError("Edge learning requires a non-empty metric list.")
    if method == "advanced":
        return learn_influence_advanced(checkins, metric_ids, lags=lags, ridge_alpha=ridge_alpha)
    if method == "baseline":
        return learn_influence_baseline(checkins, metric_ids, lags=lags)
    raise ConfigurationError(f"Unknown edge learning method '{method}'.")
