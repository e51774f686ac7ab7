"""
Branch classification and batch statistics over simulated paths.

All functions here are pure: they take the list of finished paths (possibly
empty after an early cancellation) together with the batch configuration and
baseline reference values, and return plain result dataclasses. When no path
finished, bands fall back to the baseline values and every branch gets
probability zero.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from scipy import stats

from .metrics import metric_label
from .models import (
    ActionLever,
    BranchSummary,
    Distributions,
    Hedge,
    Path,
    PathPoint,
    QuantileBand,
    QuantileBands,
    RegimeMap,
    TrajectoryExplorer,
)
from .utils import fast_mean, linear_quantile, round4

if TYPE_CHECKING:
    from .config import MultiverseConfig

BRANCH_IDS: Tuple[str, ...] = ("gold", "grey", "abyss")
BRANCH_NAMES: Dict[str, str] = {
    "gold": "Gold branch",
    "grey": "Grey branch",
    "abyss": "Abyss",
}
BRANCH_HINTS: Dict[str, str] = {
    "gold": "Low collapse probability",
    "grey": "Growth and risk in balance",
    "abyss": "Collapse risk dominates",
}
SHOCK_PROFILE_NOTES: Dict[str, str] = {
    "off": "Shocks disabled",
    "normal": "Normal shock profile",
    "blackSwan": "Heavy-tail shock profile",
}

QUANTILES = (0.1, 0.5, 0.9)
WORST_PATH_PERCENTILE = 0.05
EXPLORER_SIZE = 5
CONFIDENCE_LEVEL = 0.95


def classify_branch(point: PathPoint) -> str:
    """Sort a terminal point into ``gold``, ``grey`` or ``abyss``."""
    if point.index >= 7 and point.p_collapse < 0.2:
        return "gold"
    if point.index <= 5 or point.p_collapse >= 0.35:
        return "abyss"
    return "grey"


def _band(values: Sequence[float]) -> Tuple[float, float, float]:
    return tuple(round4(linear_quantile(values, q)) for q in QUANTILES)


def quantile_bands(
    paths: Sequence[Path],
    horizon_days: int,
    base_index: float,
    base_p_collapse: float,
    track_goal: bool = False,
    base_goal_score: Optional[float] = None,
) -> QuantileBands:
    """Per-day p10/p50/p90 of index, collapse probability and goal score."""
    index_band = QuantileBand()
    collapse_band = QuantileBand()
    goal_band = QuantileBand() if track_goal else None
    goal_fill = base_goal_score if base_goal_score is not None else 0.0

    for step in range(horizon_days):
        points = [path[step] for path in paths if step < len(path)]
        series = [
            (index_band, [point.index for point in points] or [base_index]),
            (collapse_band, [point.p_collapse for point in points] or [base_p_collapse]),
        ]
        if goal_band is not None:
            goals = [goal_fill if point.goal_score is None else point.goal_score for point in points]
            series.append((goal_band, goals or [goal_fill]))
        for band, values in series:
            p10, p50, p90 = _band(values)
            band.p10.append(p10)
            band.p50.append(p50)
            band.p90.append(p90)

    return QuantileBands(
        days=list(range(1, horizon_days + 1)),
        index=index_band,
        p_collapse=collapse_band,
        goal_score=goal_band,
    )


def wilson_interval(successes: int, trials: int, confidence: float = CONFIDENCE_LEVEL) -> Tuple[float, float]:
    """Wilson score interval for a binomial proportion; ``(0, 0)`` without trials."""
    if trials <= 0:
        return (0.0, 0.0)
    ci = stats.binomtest(successes, trials).proportion_ci(confidence_level=confidence, method="wilson")
    return (round4(ci.low), round4(ci.high))


def top_drivers(config: "MultiverseConfig", branch_id: str) -> List[str]:
    """Up to three short narrative strings explaining a branch."""
    levers = []
    for impulse in config.impulses[:2]:
        levers.append(f'Lever "{metric_label(impulse.metric_id)}" ({impulse.delta:+.1f})')
    runtime = [
        SHOCK_PROFILE_NOTES.get(config.shock_mode, config.shock_mode),
        f"Weights source: {config.weights_source}",
    ]
    return ([BRANCH_HINTS[branch_id]] + levers + runtime)[:3]


def _mean_trajectory(group: Sequence[Path], horizon_days: int, attribute: str, fill: float) -> List[float]:
    trajectory = []
    for step in range(horizon_days):
        values = [getattr(path[step], attribute) if step < len(path) else fill for path in group]
        trajectory.append(round4(fast_mean(values, default=fill)))
    return trajectory


def summarize_branches(
    paths: Sequence[Path],
    config: "MultiverseConfig",
    base_index: float,
    base_p_collapse: float,
    base_goal_score: Optional[float] = None,
) -> List[BranchSummary]:
    groups: Dict[str, List[Path]] = {branch_id: [] for branch_id in BRANCH_IDS}
    for path in paths:
        groups[classify_branch(path[-1])].append(path)

    base_goal = base_goal_score if base_goal_score is not None else 0.0
    total = len(paths)
    summaries = []
    for branch_id in BRANCH_IDS:
        group = groups[branch_id]
        goal_values = [base_goal if path[-1].goal_score is None else path[-1].goal_score for path in group]
        goal_end = round4(fast_mean(goal_values, default=0.0))
        red = sum(1 for path in group if any(point.siren == "red" for point in path))
        red_share = red / max(len(group), 1)
        summaries.append(
            BranchSummary(
                id=branch_id,
                name=BRANCH_NAMES[branch_id],
                probability=round4(len(group) / max(total, 1)),
                probability_ci=wilson_interval(len(group), total),
                expected_index=_mean_trajectory(group, config.horizon_days, "index", base_index),
                expected_p_collapse=_mean_trajectory(group, config.horizon_days, "p_collapse", base_p_collapse),
                goal_score_end=goal_end,
                goal_score_delta=round4(goal_end - base_goal),
                tail_risk_chip=f"RED {red_share * 100:.1f}%",
                red_share=round4(red_share),
                top_drivers=top_drivers(config, branch_id),
                path_count=len(group),
            )
        )
    return summaries


def representative_worst_path(paths: Sequence[Path]) -> Path:
    """Path at the 5th percentile of terminal index (ascending sort)."""
    if not paths:
        return []
    ordered = sorted(paths, key=lambda path: path[-1].index)
    return ordered[int(math.floor(len(ordered) * WORST_PATH_PERCENTILE))]


def trajectory_explorer(paths: Sequence[Path], base_index: float) -> TrajectoryExplorer:
    """Most probable, best and worst paths by terminal point.

    ``probable`` are closest to the median terminal index, ``best`` have the
    highest terminal index, ``worst`` the highest terminal collapse
    probability with ties going to the lower index.
    """
    if not paths:
        return TrajectoryExplorer()
    median = linear_quantile([path[-1].index for path in paths], 0.5, default=base_index)
    probable = sorted(paths, key=lambda path: abs(path[-1].index - median))
    best = sorted(paths, key=lambda path: -path[-1].index)
    worst = sorted(paths, key=lambda path: (-path[-1].p_collapse, path[-1].index))
    return TrajectoryExplorer(
        probable=probable[:EXPLORER_SIZE],
        best=best[:EXPLORER_SIZE],
        worst=worst[:EXPLORER_SIZE],
    )


def regime_distribution(paths: Sequence[Path], step: int, base_regime: int = 0) -> Dict[int, float]:
    """Fraction of paths in each regime at zero-based ``step``."""
    counts: Dict[int, int] = {}
    for path in paths:
        if step < len(path):
            regime = path[step].regime_id
        elif path:
            regime = path[-1].regime_id
        else:
            regime = base_regime
        counts[regime] = counts.get(regime, 0) + 1
    total = max(len(paths), 1)
    return {regime: round4(count / total) for regime, count in sorted(counts.items())}


def regime_map(paths: Sequence[Path], horizon_days: int, base_regime: int = 0) -> RegimeMap:
    """Regime snapshots on day 1, day ``min(3, horizon)`` and the last day."""
    return RegimeMap(
        next1=regime_distribution(paths, 0, base_regime),
        next3=regime_distribution(paths, min(2, horizon_days - 1), base_regime),
        horizon=regime_distribution(paths, horizon_days - 1, base_regime),
    )


def horizon_distributions(paths: Sequence[Path], track_goal: bool) -> Distributions:
    return Distributions(
        horizon_index=[round4(path[-1].index) for path in paths],
        horizon_goal_score=(
            [round4(path[-1].goal_score or 0.0) for path in paths] if track_goal else None
        ),
    )


def build_action_levers(hedges: Sequence[Hedge]) -> List[ActionLever]:
    return [
        ActionLever(
            metric_id=hedge.metric_id,
            title=f'Adjust "{metric_label(hedge.metric_id)}"',
            delta=hedge.delta,
            reason=hedge.note,
        )
        for hedge in hedges
    ]


def sample_paths(paths: Sequence[Path], worst: Path) -> List[Path]:
    """First, middle and representative worst path."""
    if not paths:
        return [[], [], worst]
    return [paths[0], paths[len(paths) // 2], worst]
