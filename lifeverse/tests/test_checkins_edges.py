from __future__ import annotations

import pandas as pd
import pytest

from lifeverse.checkins import DAY_MS, CheckinRecord, checkins_from_frame, load_checkins_csv, slice_series, to_dense_series
from lifeverse.edges import learn_influence, learn_influence_advanced, learn_influence_baseline
from lifeverse.errors import ConfigurationError
from lifeverse.metrics import METRIC_IDS

DAY0 = 1_704_067_200_000  # 2024-01-01T00:00:00Z


def test_dense_series_forward_fills_missing_days() -> None:
    history = [
        CheckinRecord(ts=DAY0 + 3_600_000, values={"energy": 3.0}),
        CheckinRecord(ts=DAY0 + 2 * DAY_MS, values={"energy": 7.0, "mood": 2.0}),
    ]
    dense = to_dense_series(history)
    assert list(dense.index) == [DAY0, DAY0 + DAY_MS, DAY0 + 2 * DAY_MS]
    assert list(dense["energy"]) == [3.0, 3.0, 7.0]
    assert list(dense["mood"]) == [5.0, 5.0, 2.0]
    assert list(dense["sleepHours"]) == [8.0, 8.0, 8.0]
    assert list(dense.columns) == list(METRIC_IDS)


def test_last_checkin_of_the_day_wins_per_metric() -> None:
    history = [
        CheckinRecord(ts=DAY0 + 1000, values={"energy": 2.0, "focus": 6.0}),
        CheckinRecord(ts=DAY0 + 5000, values={"energy": 9.0}),
    ]
    dense = to_dense_series(history)
    assert len(dense) == 1
    assert dense["energy"].iloc[0] == 9.0
    assert dense["focus"].iloc[0] == 6.0


def test_empty_history_gives_empty_series() -> None:
    dense = to_dense_series([])
    assert dense.empty
    assert list(dense.columns) == list(METRIC_IDS)


def test_slice_series_keeps_trailing_rows() -> None:
    frame = pd.DataFrame({"energy": range(10)})
    assert list(slice_series(frame, 3)["energy"]) == [7, 8, 9]
    assert len(slice_series(frame, 50)) == 10


def test_checkins_from_iso_timestamps() -> None:
    frame = pd.DataFrame(
        {
            "ts": ["2024-01-01T00:00:00Z", "2024-01-02T12:00:00Z"],
            "energy": [4.0, None],
            "stress": [6.0, 3.0],
        }
    )
    records = checkins_from_frame(frame)
    assert records[0].ts == DAY0
    assert records[1].ts == DAY0 + DAY_MS + 12 * 3_600_000
    assert records[1].get("energy") is None
    assert records[1]["stress"] == 3.0


def test_load_checkins_csv(tmp_path) -> None:
    path = tmp_path / "history.csv"
    pd.DataFrame({"ts": [DAY0, DAY0 + DAY_MS], "energy": [4, 6], "focus": [5, 5]}).to_csv(path, index=False)
    records = load_checkins_csv(path)
    assert [record.ts for record in records] == [DAY0, DAY0 + DAY_MS]
    assert records[1]["energy"] == 6.0


def test_unknown_metric_column_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        checkins_from_frame(pd.DataFrame({"ts": [DAY0], "luck": [3.0]}))


def test_baseline_edges(synthetic_checkins) -> None:
    edges = learn_influence_baseline(synthetic_checkins, METRIC_IDS)
    assert len(edges) == len(METRIC_IDS) * (len(METRIC_IDS) - 1)
    assert all(edge.from_id != edge.to_id for edge in edges)
    by_pair = {(edge.from_id, edge.to_id): edge for edge in edges}
    energy_focus = by_pair[("energy", "focus")]
    assert energy_focus.weight > 0
    assert energy_focus.lag in (1, 2, 3)
    assert 0.0 <= energy_focus.confidence <= 1.0
    assert energy_focus.method == "baseline-correlation"
    assert by_pair[("mood", "focus")].weight == 0.0


def test_advanced_edges(synthetic_checkins) -> None:
    edges = learn_influence_advanced(synthetic_checkins, METRIC_IDS)
    assert len(edges) == len(METRIC_IDS) * (len(METRIC_IDS) - 1)
    assert all(-1.0 <= edge.weight <= 1.0 for edge in edges)
    assert all(edge.method == "advanced-ridge" for edge in edges)


def test_edge_learning_needs_history(synthetic_checkins) -> None:
    assert learn_influence(synthetic_checkins[:2], METRIC_IDS) == []
    assert learn_influence(synthetic_checkins[:5], METRIC_IDS, method="advanced") == []


def test_edge_learning_rejects_bad_input(synthetic_checkins) -> None:
    with pytest.raises(ConfigurationError):
        learn_influence(synthetic_checkins, [])
    with pytest.raises(ConfigurationError):
        learn_influence(synthetic_checkins, METRIC_IDS, method="magic")


def test_single_metric_has_no_edges(synthetic_checkins) -> None:
    assert learn_influence(synthetic_checkins, ["energy"], method="advanced") == []
    assert learn_influence(synthetic_checkins, ["energy"], method="baseline") == []
