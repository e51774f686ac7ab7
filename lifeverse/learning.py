"""
Learned influence matrix trainer.

Turns a daily checkin history into the directed, weighted influence graph the
multiverse simulator consumes. For every target metric a ridge regression is
fit on lagged, z-scored values of all metrics (the target included):

1. **Densify** the irregular history into one forward-filled row per day.
2. **Window** the series to the trailing ``trained_on_days`` rows.
3. **Normalise** each metric independently (population z-score; a constant
   metric becomes all zeros since it carries no signal).
4. **Lag**: one feature per (source metric, lag) pair, label = target today.
5. **Select alpha** from :data:`ALPHA_GRID` by walk-forward validation.
6. **Fit** ``(XᵗX + alpha·I)⁻¹ Xᵗy`` and sum each source's lag coefficients
   into a single ``from -> to`` weight.
7. **Rescale** the whole matrix by its largest absolute weight and clamp to
   ``[-1, 1]`` so different targets are comparable.

Too-short windows skip fitting entirely and return a zero matrix with an
explanatory note. A separate stability matrix compares refits on the trailing
30 and 60 days, edge by edge.

The trainer never reads the clock: ``computed_at`` is stamped from the caller,
so identical history and options give identical output.
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .checkins import CheckinRecord, slice_series, to_dense_series
from .errors import ConfigurationError
from .influence import InfluenceMatrix, empty_influence_matrix
from .linalg import EPSILON, identity, invert, multiply, transpose
from .metrics import METRIC_IDS, get_metric
from .utils import clamp, round4

ALPHA_GRID: Tuple[float, ...] = (0.1, 1.0, 10.0)
MIN_ROWS = 12
SHORT_WINDOW_DAYS = 30
LONG_WINDOW_DAYS = 60
STABLE_ZERO_BAND = 0.05
VALID_LAGS = (1, 2, 3)

FORWARD_FILL_NOTE = "Days without a checkin are forward-filled with the last known value."


@dataclass
class LearnedInfluenceMeta:
    trained_on_days: int
    lags: int
    alpha: float
    computed_at: Optional[int]
    note: str


@dataclass
class LearnedMatrix:
    weights: InfluenceMatrix
    stability: InfluenceMatrix
    meta: LearnedInfluenceMeta


@dataclass
class RidgeResult:
    weights: InfluenceMatrix
    alpha: float


def z_score(values: Sequence[float]) -> np.ndarray:
    """Population z-score; all zeros when the series is constant."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return arr.copy()
    std = float(arr.std())
    if std <= EPSILON:
        return np.zeros_like(arr)
    return (arr - arr.mean()) / std


def build_lagged_dataset(normalized: np.ndarray, target_index: int, lags: int) -> Tuple[np.ndarray, np.ndarray]:
    """Lagged design matrix for one target.

    ``normalized`` is ``(days, metrics)``. Feature columns are ordered
    metric-major: ``[m0 lag1, m0 lag2, ..., m1 lag1, ...]``.
    """
    days, n_metrics = normalized.shape
    if days <= lags:
        return np.zeros((0, n_metrics * lags)), np.zeros(0)
    columns = [
        normalized[lags - lag: days - lag, metric_index]
        for metric_index in range(n_metrics)
        for lag in range(1, lags + 1)
    ]
    features = np.column_stack(columns)
    labels = normalized[lags:, target_index].copy()
    return features, labels


def fit_ridge_coefficients(features: np.ndarray, labels: np.ndarray, alpha: float) -> np.ndarray:
    """Solve ``(XᵗX + alpha·I)⁻¹ Xᵗy``."""
    xt = transpose(features)
    xtx = multiply(xt, features) + alpha * identity(features.shape[1])
    xty = multiply(xt, np.asarray(labels, dtype=float).reshape(-1, 1))
    return multiply(invert(xtx), xty)[:, 0]


def choose_alpha(features: np.ndarray, labels: np.ndarray, alpha_grid: Sequence[float] = ALPHA_GRID) -> float:
    """Walk-forward selection of the ridge strength.

    Training always covers at least half the rows and each validation chunk is
    at least a fifth of them; chunks roll forward chronologically. The alpha
    with the lowest mean validation MSE wins, ties going to the smallest alpha.
    """
    rows = features.shape[0]
    min_train = max(6, int(rows * 0.5))
    val_size = max(2, int(rows * 0.2))

    best_alpha = min(alpha_grid)
    best_mse = float("inf")
    for alpha in sorted(alpha_grid):
        mses: List[float] = []
        train_end = min_train
        while train_end + val_size <= rows:
            beta = fit_ridge_coefficients(features[:train_end], labels[:train_end], alpha)
            x_val = features[train_end: train_end + val_size]
            y_val = labels[train_end: train_end + val_size]
            errors = x_val @ beta - y_val
            mses.append(float(np.mean(errors * errors)))
            train_end += val_size
        avg_mse = float(np.mean(mses)) if mses else float("inf")
        if avg_mse < best_mse:
            best_mse = avg_mse
            best_alpha = alpha
    return best_alpha


def train_ridge_matrix(series: pd.DataFrame, metric_ids: Sequence[str], lags: int) -> RidgeResult:
    """Fit every target on ``series`` and return the rescaled weight matrix."""
    n_metrics = len(metric_ids)
    if len(series):
        normalized = np.column_stack([z_score(series[metric_id].to_numpy()) for metric_id in metric_ids])
    else:
        normalized = np.zeros((0, n_metrics))
    raw = np.zeros((n_metrics, n_metrics))
    alphas: List[float] = []

    for target_index in range(n_metrics):
        features, labels = build_lagged_dataset(normalized, target_index, lags)
        if features.shape[0] < MIN_ROWS:
            continue
        alpha = choose_alpha(features, labels)
        alphas.append(alpha)
        beta = fit_ridge_coefficients(features, labels, alpha)
        # sum the lag coefficients of each source into one edge weight
        raw[:, target_index] = beta.reshape(n_metrics, lags).sum(axis=1)

    max_abs = float(np.max(np.abs(raw))) if raw.size else 0.0
    scale = max_abs if max_abs > EPSILON else 1.0
    weights = empty_influence_matrix(metric_ids)
    for i, from_id in enumerate(metric_ids):
        for j, to_id in enumerate(metric_ids):
            weights[from_id][to_id] = round4(clamp(raw[i, j] / scale, -1.0, 1.0))

    alpha = round(float(np.mean(alphas)), 2) if alphas else ALPHA_GRID[1]
    return RidgeResult(weights=weights, alpha=alpha)


def stability_score(short_weight: float, long_weight: float) -> float:
    """Agreement in ``[0, 1]`` between a short- and long-window edge weight."""
    if abs(short_weight) < STABLE_ZERO_BAND and abs(long_weight) < STABLE_ZERO_BAND:
        return 1.0
    sign_agree = 1.0 if np.sign(short_weight) == np.sign(long_weight) else 0.0
    magnitude_agree = 1.0 - clamp(abs(abs(short_weight) - abs(long_weight)), 0.0, 1.0)
    return round4(clamp(sign_agree * 0.6 + magnitude_agree * 0.4, 0.0, 1.0))


def compute_stability(series: pd.DataFrame, metric_ids: Sequence[str], lags: int) -> InfluenceMatrix:
    short = train_ridge_matrix(slice_series(series, SHORT_WINDOW_DAYS), metric_ids, lags).weights
    long = train_ridge_matrix(slice_series(series, LONG_WINDOW_DAYS), metric_ids, lags).weights
    stability = empty_influence_matrix(metric_ids)
    for from_id in metric_ids:
        for to_id in metric_ids:
            stability[from_id][to_id] = stability_score(short[from_id][to_id], long[from_id][to_id])
    return stability


def matrix_stability_score(value: float) -> str:
    """Bucket a stability cell into ``high``, ``medium`` or ``low``."""
    if value >= 0.75:
        return "high"
    if value >= 0.45:
        return "medium"
    return "low"


def _validate_options(metric_ids: Sequence[str], trained_on_days: Union[int, str], lags: int) -> None:
    if not metric_ids:
        raise ConfigurationError("Training requires a non-empty metric list.")
    for metric_id in metric_ids:
        get_metric(metric_id)
    if len(set(metric_ids)) != len(metric_ids):
        raise ConfigurationError("Metric list contains duplicates.")
    if lags not in VALID_LAGS:
        raise ConfigurationError(f"lags must be one of {VALID_LAGS}, got {lags!r}.")
    if trained_on_days != "all":
        if isinstance(trained_on_days, bool) or not isinstance(trained_on_days, Integral) or trained_on_days < 1:
            raise ConfigurationError(f"trained_on_days must be 'all' or a positive integer, got {trained_on_days!r}.")


def insufficient_data_note(lags: int, available_days: int) -> str:
    required = lags + MIN_ROWS + 1
    return (
        f"Not enough history to learn influences: {available_days} day(s) available, "
        f"at least {required} consecutive days are needed for lags={lags}. "
        f"{FORWARD_FILL_NOTE}"
    )


def train_learned_influence_matrix(
    checkins: Iterable[CheckinRecord],
    metric_ids: Sequence[str] = METRIC_IDS,
    trained_on_days: Union[int, str] = "all",
    lags: int = 2,
    computed_at: Optional[int] = None,
    verbose: bool = False,
) -> LearnedMatrix:
    """Train the learned influence matrix and its stability companion.

    Parameters
    ----------
    checkins : iterable of CheckinRecord
        History in any order; it is sorted by timestamp.
    metric_ids : sequence of str
        Metrics to model, in matrix order.
    trained_on_days : int or "all"
        Trailing window length in days.
    lags : int
        Lag order, 1 to 3.
    computed_at : int, optional
        Timestamp stamped into the metadata as given.
    verbose : bool
        Print a one-line summary tagged ``[trainer]``.
    """
    metric_ids = list(metric_ids)
    _validate_options(metric_ids, trained_on_days, lags)

    dense = to_dense_series(checkins, metric_ids)
    if trained_on_days == "all":
        window = len(dense)
    else:
        window = int(clamp(trained_on_days, 1, max(len(dense), 1)))
    selected = slice_series(dense, window)
    available = len(selected)

    if available <= lags + MIN_ROWS:
        if verbose:
            print(f"[trainer] Skipped fit: {available} day(s) for lags={lags}.", flush=True)
        return LearnedMatrix(
            weights=empty_influence_matrix(metric_ids),
            stability=empty_influence_matrix(metric_ids),
            meta=LearnedInfluenceMeta(
                trained_on_days=available,
                lags=lags,
                alpha=ALPHA_GRID[1],
                computed_at=computed_at,
                note=insufficient_data_note(lags, available),
            ),
        )

    trained = train_ridge_matrix(selected, metric_ids, lags)
    stability = compute_stability(selected, metric_ids, lags)
    if verbose:
        print(
            f"[trainer] Fit {len(metric_ids)} target(s) on {available} day(s), lags={lags}, alpha={trained.alpha}.",
            flush=True,
        )
    return LearnedMatrix(
        weights=trained.weights,
        stability=stability,
        meta=LearnedInfluenceMeta(
            trained_on_days=available,
            lags=lags,
            alpha=trained.alpha,
            computed_at=computed_at,
            note=FORWARD_FILL_NOTE,
        ),
    )
