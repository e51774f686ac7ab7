from __future__ import annotations

import pytest

from lifeverse.aggregation import (
    BRANCH_IDS,
    build_action_levers,
    classify_branch,
    quantile_bands,
    regime_map,
    representative_worst_path,
    sample_paths,
    summarize_branches,
    top_drivers,
    trajectory_explorer,
    wilson_interval,
)
from lifeverse.config import Impulse, MultiverseConfig
from lifeverse.models import Hedge, PathPoint


def point(index: float, p_collapse: float = 0.1, day: int = 1, regime: int = 0, siren: str = "green") -> PathPoint:
    return PathPoint(day=day, index=index, p_collapse=p_collapse, siren=siren, regime_id=regime)


def path_ending(index: float, p_collapse: float = 0.1, horizon: int = 3, regime: int = 0):
    return [point(index, p_collapse, day=day, regime=regime) for day in range(1, horizon + 1)]


@pytest.mark.parametrize(
    "index,p_collapse,expected",
    [
        (7.0, 0.19, "gold"),
        (7.0, 0.2, "grey"),
        (6.9, 0.1, "grey"),
        (5.01, 0.34, "grey"),
        (5.0, 0.0, "abyss"),
        (9.0, 0.35, "abyss"),
    ],
)
def test_branch_boundaries(index, p_collapse, expected) -> None:
    assert classify_branch(point(index, p_collapse)) == expected


def test_wilson_interval() -> None:
    assert wilson_interval(0, 0) == (0.0, 0.0)
    low, high = wilson_interval(5, 10)
    assert low == pytest.approx(0.2366, abs=1e-4)
    assert high == pytest.approx(0.7634, abs=1e-4)
    low, high = wilson_interval(0, 20)
    assert low == 0.0
    assert 0.0 < high < 0.2


def test_top_drivers() -> None:
    config = MultiverseConfig(impulses=[Impulse(1, "energy", 1.0)])
    assert top_drivers(config, "gold") == [
        "Low collapse probability",
        'Lever "Energy" (+1.0)',
        "Normal shock profile",
    ]
    bare = MultiverseConfig(shock_mode="off")
    assert top_drivers(bare, "abyss") == ["Collapse risk dominates", "Shocks disabled", "Weights source: manual"]


def test_quantile_bands_are_ordered() -> None:
    paths = [path_ending(float(value), p_collapse=value / 20) for value in range(11)]
    bands = quantile_bands(paths, 3, base_index=5.0, base_p_collapse=0.1)
    assert bands.days == [1, 2, 3]
    assert bands.index.p10 == [1.0, 1.0, 1.0]
    assert bands.index.p50 == [5.0, 5.0, 5.0]
    assert bands.index.p90 == [9.0, 9.0, 9.0]
    assert bands.goal_score is None


def test_quantile_bands_fall_back_to_baseline() -> None:
    bands = quantile_bands([], 2, base_index=5.5, base_p_collapse=0.12, track_goal=True, base_goal_score=3.0)
    assert bands.index.p10 == bands.index.p90 == [5.5, 5.5]
    assert bands.p_collapse.p50 == [0.12, 0.12]
    assert bands.goal_score.p50 == [3.0, 3.0]


def test_branches_partition_paths() -> None:
    config = MultiverseConfig(horizon_days=3)
    paths = [path_ending(8.0)] * 5 + [path_ending(6.0, 0.25)] * 3 + [path_ending(4.0, 0.5)] * 2
    branches = summarize_branches(paths, config, base_index=5.5, base_p_collapse=0.1)
    assert [branch.id for branch in branches] == list(BRANCH_IDS)
    assert [branch.path_count for branch in branches] == [5, 3, 2]
    assert [branch.probability for branch in branches] == [0.5, 0.3, 0.2]
    assert branches[0].expected_index == [8.0, 8.0, 8.0]
    assert branches[2].tail_risk_chip == "RED 0.0%"
    for branch in branches:
        low, high = branch.probability_ci
        assert low <= branch.probability <= high


def test_branches_without_paths() -> None:
    branches = summarize_branches([], MultiverseConfig(horizon_days=2), base_index=5.5, base_p_collapse=0.1)
    assert all(branch.probability == 0.0 for branch in branches)
    assert all(branch.probability_ci == (0.0, 0.0) for branch in branches)
    assert branches[1].expected_index == [5.5, 5.5]


def test_worst_path_and_explorer() -> None:
    paths = [path_ending(float(value), p_collapse=(10 - value) / 20) for value in range(20, 0, -1)]
    worst = representative_worst_path(paths)
    assert worst[-1].index == 2.0
    explorer = trajectory_explorer(paths, base_index=5.0)
    assert [path[-1].index for path in explorer.best] == [20.0, 19.0, 18.0, 17.0, 16.0]
    assert explorer.worst[0][-1].index == 1.0
    assert len(explorer.probable) == 5
    assert representative_worst_path([]) == []
    assert sample_paths([], []) == [[], [], []]
    assert sample_paths(paths, worst) == [paths[0], paths[10], worst]


def test_regime_map_snapshots() -> None:
    paths = [
        [point(5.0, day=1, regime=0), point(5.0, day=2, regime=1), point(5.0, day=3, regime=3)],
        [point(5.0, day=1, regime=0), point(5.0, day=2, regime=0), point(5.0, day=3, regime=0)],
    ]
    mapping = regime_map(paths, 3)
    assert mapping.next1 == {0: 1.0}
    assert mapping.next3 == {0: 0.5, 3: 0.5}
    assert mapping.horizon == {0: 0.5, 3: 0.5}
    short = regime_map(paths, 1)
    assert short.next3 == short.next1 == {0: 1.0}


def test_action_levers_from_hedges() -> None:
    levers = build_action_levers([Hedge(metric_id="sleepHours", delta=1.0, note="rest")])
    assert levers[0].title == 'Adjust "Sleep (hours)"'
    assert levers[0].reason == "rest"
