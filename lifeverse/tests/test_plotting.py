from __future__ import annotations

import pytest

from lifeverse.plotting import plot_influence_graph, plot_quantile_fan
from lifeverse.simulation import run_multiverse


def test_quantile_fan_chart(tmp_path, stormy_config) -> None:
    result = run_multiverse(stormy_config.copy_with_overrides({"runs": 30}))
    target = plot_quantile_fan(result, tmp_path / "figures" / "fan.png", series=("index", "p_collapse", "goal_score"))
    assert target.exists()
    assert target.stat().st_size > 0
    with pytest.raises(ValueError):
        plot_quantile_fan(result, tmp_path / "none.png", series=("volume",))


def test_influence_graph_figure(tmp_path) -> None:
    matrix = {"energy": {"focus": 0.6, "stress": -0.4}, "sleepHours": {"energy": 0.02}}
    target = plot_influence_graph(matrix, tmp_path / "graph.png", title="Manual weights")
    assert target.exists()
    empty = plot_influence_graph({}, tmp_path / "empty.png")
    assert empty.exists()
