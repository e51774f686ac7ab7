from __future__ import annotations

import pytest

from lifeverse.metrics import ensure_vector
from lifeverse.models import PathPoint
from lifeverse.scoring import RiskSnapshot, StateScoring, oriented_score


@pytest.fixture
def scoring() -> StateScoring:
    return StateScoring()


def _terminal(index: float, p_collapse: float = 0.1, siren: str = "green"):
    return [PathPoint(day=1, index=index, p_collapse=p_collapse, siren=siren, regime_id=0)]


def test_default_vector_index(scoring) -> None:
    assert scoring.compute_index_day(ensure_vector()) == pytest.approx(5.5)


def test_index_bounds(scoring) -> None:
    best = ensure_vector(
        {
            "energy": 10,
            "focus": 10,
            "mood": 10,
            "stress": 0,
            "sleepHours": 8,
            "social": 10,
            "productivity": 10,
            "health": 10,
            "cashFlow": 1_000_000,
        }
    )
    assert scoring.compute_index_day(best) == pytest.approx(10.0)
    worst = ensure_vector(
        {"energy": 0, "focus": 0, "mood": 0, "stress": 10, "sleepHours": 0, "social": 0, "productivity": 0, "health": 0}
    )
    assert scoring.compute_index_day(worst) == pytest.approx(0.0)


def test_oriented_score_directions() -> None:
    assert oriented_score("stress", 0.0) == 1.0
    assert oriented_score("sleepHours", 8.0) == 1.0
    assert oriented_score("sleepHours", 12.0) == 0.0
    assert oriented_score("sleepHours", 6.0) == pytest.approx(0.5)
    assert oriented_score("cashFlow", 0.0) == 0.0


def test_stress_and_sleep_debt_raise_collapse_risk(scoring) -> None:
    base = scoring.collapse_probability(ensure_vector())
    assert 0.0 < base < 1.0
    assert scoring.collapse_probability(ensure_vector({"stress": 9.0})) > base
    assert scoring.collapse_probability(ensure_vector({"sleepHours": 3.0})) > base
    assert scoring.collapse_probability(ensure_vector(), volatility=2.0) > base


def test_collapse_assessment_reports_drivers(scoring) -> None:
    vector = ensure_vector({"sleepHours": 4.0})
    assessment = scoring.assess_collapse_risk(RiskSnapshot(index=5.0, risk=5.0, volatility=0.0), vector)
    assert assessment.drivers["sleep_debt"] == pytest.approx(0.7)
    assert assessment.drivers["volatility"] == 0.0
    assert 0.0 < assessment.p_collapse < 1.0


def test_goal_score(scoring) -> None:
    vector = ensure_vector()
    assert scoring.goal_score_of(vector, None) is None
    assert scoring.goal_score_of(vector, {}) is None
    assert scoring.goal_score_of(vector, {"energy": 0.0}) is None
    assert scoring.goal_score_of(vector, {"energy": 1.0}) == pytest.approx(5.0)
    assert scoring.goal_score_of(ensure_vector({"energy": 10.0}), {"energy": 2.0}) == pytest.approx(10.0)
    assert scoring.goal_score_of(ensure_vector({"stress": 10.0}), {"stress": -1.0}) == pytest.approx(-10.0)


def test_hedges_improve_default_state(scoring) -> None:
    matrix = {"energy": {"focus": 0.5, "mood": 0.25}}
    hedges = scoring.rank_hedges(ensure_vector(), matrix, index_floor=5.0, collapse_constraint_pct=20.0)
    assert 0 < len(hedges) <= 3
    for hedge in hedges:
        assert hedge.expected_p_collapse_delta <= 0 or hedge.expected_index_delta > 0
    energy = [hedge for hedge in hedges if hedge.metric_id == "energy"]
    if energy:
        assert "spreads to Focus" in energy[0].note


def test_hedges_skip_saturated_metrics(scoring) -> None:
    vector = ensure_vector({"stress": 0.0, "energy": 10.0})
    hedges = scoring.rank_hedges(vector, {}, index_floor=5.0, collapse_constraint_pct=20.0, limit=9)
    assert all(hedge.metric_id not in ("stress", "energy") for hedge in hedges)


def test_empty_tail_summary(scoring) -> None:
    tail = scoring.summarize_tail([], 5.0, base_index=5.5, base_p_collapse=0.12)
    assert tail.var97_5 == 0.0
    assert tail.es97_5 == 0.0
    assert tail.prob_ever_red == 0.0
    assert tail.worst_terminal_index == 5.5
    assert tail.mean_terminal_p_collapse == 0.12


def test_tail_summary_statistics(scoring) -> None:
    paths = [_terminal(10.0)] * 38 + [_terminal(5.0, p_collapse=0.5, siren="red")] * 2
    tail = scoring.summarize_tail(paths, 6.0, base_index=10.0, base_p_collapse=0.1)
    assert tail.prob_below_floor == pytest.approx(0.05)
    assert tail.prob_ever_red == pytest.approx(0.05)
    assert tail.worst_terminal_index == 5.0
    assert tail.var97_5 == pytest.approx(0.5)
    assert tail.es97_5 == pytest.approx(0.5)
    assert tail.es97_5 >= tail.var97_5
