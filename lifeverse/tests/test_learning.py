from __future__ import annotations

import numpy as np
import pytest
from sklearn.linear_model import Ridge

from lifeverse.checkins import DAY_MS, CheckinRecord
from lifeverse.errors import ConfigurationError
from lifeverse.learning import (
    ALPHA_GRID,
    FORWARD_FILL_NOTE,
    build_lagged_dataset,
    choose_alpha,
    fit_ridge_coefficients,
    matrix_stability_score,
    stability_score,
    train_learned_influence_matrix,
    z_score,
)
from lifeverse.metrics import METRIC_IDS

BASE_TS = 1_700_000_000_000


def test_energy_drives_focus_sign(synthetic_checkins) -> None:
    learned = train_learned_influence_matrix(synthetic_checkins, lags=1, computed_at=123)
    weight = learned.weights["energy"]["focus"]
    assert weight > 0
    assert -1.0 <= weight <= 1.0
    # constant metrics carry no signal
    assert learned.weights["mood"]["focus"] == 0.0
    assert learned.weights["energy"]["social"] == 0.0
    assert learned.meta.trained_on_days == 90
    assert learned.meta.lags == 1
    assert learned.meta.computed_at == 123
    assert ALPHA_GRID[0] <= learned.meta.alpha <= ALPHA_GRID[-1]
    assert learned.meta.note == FORWARD_FILL_NOTE


def test_all_weights_bounded_and_rescaled(synthetic_checkins) -> None:
    learned = train_learned_influence_matrix(synthetic_checkins, lags=2)
    values = np.array([[learned.weights[a][b] for b in METRIC_IDS] for a in METRIC_IDS])
    assert np.all(np.abs(values) <= 1.0)
    assert np.max(np.abs(values)) == pytest.approx(1.0)
    stability = np.array([[learned.stability[a][b] for b in METRIC_IDS] for a in METRIC_IDS])
    assert np.all((stability >= 0.0) & (stability <= 1.0))


def test_training_is_deterministic(synthetic_checkins) -> None:
    first = train_learned_influence_matrix(synthetic_checkins, lags=2, trained_on_days=60, computed_at=1)
    second = train_learned_influence_matrix(list(reversed(synthetic_checkins)), lags=2, trained_on_days=60, computed_at=1)
    assert first == second


def test_insufficient_data_guard(make_history) -> None:
    history = make_history(13)
    learned = train_learned_influence_matrix(history, lags=1)
    assert all(value == 0.0 for row in learned.weights.values() for value in row.values())
    assert all(value == 0.0 for row in learned.stability.values() for value in row.values())
    assert learned.meta.trained_on_days == 13
    assert "at least 14" in learned.meta.note

    enough = train_learned_influence_matrix(make_history(14), lags=1)
    assert "Not enough history" not in enough.meta.note


def test_numpy_integer_window_is_accepted(synthetic_checkins) -> None:
    learned = train_learned_influence_matrix(synthetic_checkins, lags=2, trained_on_days=np.int64(60), computed_at=1)
    assert learned == train_learned_influence_matrix(synthetic_checkins, lags=2, trained_on_days=60, computed_at=1)
    assert learned.meta.trained_on_days == 60


def test_guard_applies_to_selected_window(synthetic_checkins) -> None:
    learned = train_learned_influence_matrix(synthetic_checkins, lags=3, trained_on_days=15)
    assert learned.meta.trained_on_days == 15
    assert learned.meta.note.startswith("Not enough history")


def test_empty_history_is_not_an_error() -> None:
    learned = train_learned_influence_matrix([], lags=2)
    assert learned.meta.trained_on_days == 0
    assert learned.weights["energy"]["focus"] == 0.0


def test_sparse_history_is_forward_filled() -> None:
    history = [
        CheckinRecord(ts=BASE_TS + day * DAY_MS, values={"energy": 5.0 + (day % 7), "focus": 3.0 + (day % 5)})
        for day in range(0, 120, 2)
    ]
    learned = train_learned_influence_matrix(history, lags=1)
    assert learned.meta.trained_on_days == 119


@pytest.mark.parametrize(
    "kwargs",
    [
        {"lags": 0},
        {"lags": 4},
        {"trained_on_days": 0},
        {"trained_on_days": "recent"},
        {"metric_ids": []},
        {"metric_ids": ["energy", "energy"]},
        {"metric_ids": ["energy", "luck"]},
    ],
)
def test_invalid_options_raise(synthetic_checkins, kwargs) -> None:
    with pytest.raises(ConfigurationError):
        train_learned_influence_matrix(synthetic_checkins, **kwargs)


def test_ridge_matches_sklearn() -> None:
    rng = np.random.default_rng(0)
    features = rng.normal(size=(40, 5))
    labels = features @ np.array([0.5, -1.0, 0.0, 2.0, 0.3]) + rng.normal(scale=0.1, size=40)
    for alpha in ALPHA_GRID:
        reference = Ridge(alpha=alpha, fit_intercept=False).fit(features, labels).coef_
        assert np.allclose(fit_ridge_coefficients(features, labels, alpha), reference, atol=1e-8)


def test_choose_alpha_prefers_grid_value() -> None:
    rng = np.random.default_rng(1)
    features = rng.normal(size=(30, 3))
    labels = features @ np.array([1.0, 0.0, -0.5])
    assert choose_alpha(features, labels) in ALPHA_GRID


def test_lagged_dataset_layout() -> None:
    normalized = np.arange(30, dtype=float).reshape(10, 3)
    features, labels = build_lagged_dataset(normalized, target_index=1, lags=2)
    assert features.shape == (8, 6)
    assert np.array_equal(labels, normalized[2:, 1])
    assert np.array_equal(features[:, 0], normalized[1:9, 0])
    assert np.array_equal(features[:, 1], normalized[0:8, 0])
    assert np.array_equal(features[:, 2], normalized[1:9, 1])


def test_z_score_of_constant_series_is_zero() -> None:
    assert np.array_equal(z_score([3.0, 3.0, 3.0]), np.zeros(3))
    scored = z_score([1.0, 2.0, 3.0])
    assert scored.mean() == pytest.approx(0.0)
    assert scored.std() == pytest.approx(1.0)


def test_stability_scoring() -> None:
    assert stability_score(0.42, 0.42) == 1.0
    assert stability_score(0.01, -0.03) == 1.0
    assert stability_score(0.8, -0.8) == pytest.approx(0.4)
    assert stability_score(0.8, -0.8) < 0.45
    assert stability_score(0.9, 0.1) == pytest.approx(0.6 + 0.4 * 0.2)
    assert matrix_stability_score(0.75) == "high"
    assert matrix_stability_score(0.5) == "medium"
    assert matrix_stability_score(0.2) == "low"
