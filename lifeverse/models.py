"""
Result dataclasses produced by the multiverse simulator.

Everything here is plain Python data (lists, dicts, floats) so that two runs
of the same configuration compare equal with ``==`` and serialise to JSON via
:meth:`MultiverseRunResult.to_dict`. Tabular views are available as pandas
DataFrames for export and plotting.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import pandas as pd

from .regime import regime_name

if TYPE_CHECKING:
    from .config import MultiverseConfig


@dataclass
class PathPoint:
    """One simulated day of one run."""

    day: int
    index: float
    p_collapse: float
    siren: str
    regime_id: int
    goal_score: Optional[float] = None
    vector: Optional[Dict[str, float]] = None


Path = List[PathPoint]


@dataclass
class QuantileBand:
    p10: List[float] = field(default_factory=list)
    p50: List[float] = field(default_factory=list)
    p90: List[float] = field(default_factory=list)


@dataclass
class QuantileBands:
    days: List[int]
    index: QuantileBand
    p_collapse: QuantileBand
    goal_score: Optional[QuantileBand] = None

    def to_frame(self) -> pd.DataFrame:
        """One row per simulated day with a column per series and quantile."""
        data: Dict[str, List[Any]] = {"day": list(self.days)}
        series = [("index", self.index), ("p_collapse", self.p_collapse)]
        if self.goal_score is not None:
            series.append(("goal_score", self.goal_score))
        for name, band in series:
            data[f"{name}_p10"] = list(band.p10)
            data[f"{name}_p50"] = list(band.p50)
            data[f"{name}_p90"] = list(band.p90)
        return pd.DataFrame(data)


@dataclass
class Hedge:
    """A single-metric adjustment expected to reduce collapse risk."""

    metric_id: str
    delta: float
    note: str
    expected_index_delta: float = 0.0
    expected_p_collapse_delta: float = 0.0


@dataclass
class ActionLever:
    metric_id: str
    title: str
    delta: float
    reason: str


@dataclass
class CollapseAssessment:
    p_collapse: float
    drivers: Dict[str, float] = field(default_factory=dict)


@dataclass
class TailSummary:
    """Downside statistics of the terminal index distribution.

    Losses are relative to the baseline index: ``max(0, (base - x) / base)``.
    """

    var97_5: float
    es97_5: float
    prob_below_floor: float
    prob_ever_red: float
    worst_terminal_index: float
    mean_terminal_p_collapse: float
    index_floor: float
    base_index: float
    base_p_collapse: float
    base_goal_score: Optional[float] = None


@dataclass
class BranchSummary:
    id: str
    name: str
    probability: float
    probability_ci: Tuple[float, float]
    expected_index: List[float]
    expected_p_collapse: List[float]
    goal_score_end: float
    goal_score_delta: float
    tail_risk_chip: str
    red_share: float
    top_drivers: List[str]
    path_count: int = 0


@dataclass
class TrajectoryExplorer:
    probable: List[Path] = field(default_factory=list)
    best: List[Path] = field(default_factory=list)
    worst: List[Path] = field(default_factory=list)


@dataclass
class RegimeMap:
    next1: Dict[int, float]
    next3: Dict[int, float]
    horizon: Dict[int, float]


@dataclass
class Distributions:
    horizon_index: List[float]
    horizon_goal_score: Optional[List[float]] = None


@dataclass
class RunAudit:
    weights_source: str
    mix: float
    forecast_model_type: str
    lags: Optional[int] = None
    trained_on_days: Optional[int] = None


@dataclass
class MultiverseRunResult:
    generated_at: Optional[float]
    config: "MultiverseConfig"
    completed_runs: int
    requested_runs: int
    cancelled: bool
    quantiles: QuantileBands
    distributions: Distributions
    tail: TailSummary
    representative_worst_path: Path
    hedges: List[Hedge]
    action_levers: List[ActionLever]
    audit: RunAudit
    sample_paths: List[Path]
    trajectory_explorer: TrajectoryExplorer
    regime_map: RegimeMap
    branches: List[BranchSummary]

    def branch(self, branch_id: str) -> BranchSummary:
        for summary in self.branches:
            if summary.id == branch_id:
                return summary
        raise KeyError(f"Unknown branch '{branch_id}'.")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe nested representation."""
        payload = asdict(self)
        payload["config"] = self.config.snapshot()
        return payload

    def quantiles_frame(self) -> pd.DataFrame:
        return self.quantiles.to_frame()

    def branches_frame(self) -> pd.DataFrame:
        rows = []
        for summary in self.branches:
            rows.append(
                {
                    "branch": summary.id,
                    "name": summary.name,
                    "probability": summary.probability,
                    "ci_low": summary.probability_ci[0],
                    "ci_high": summary.probability_ci[1],
                    "paths": summary.path_count,
                    "terminal_index": summary.expected_index[-1] if summary.expected_index else None,
                    "terminal_p_collapse": summary.expected_p_collapse[-1] if summary.expected_p_collapse else None,
                    "goal_score_end": summary.goal_score_end,
                    "tail_risk_chip": summary.tail_risk_chip,
                }
            )
        return pd.DataFrame(rows)


def path_to_frame(path: Path) -> pd.DataFrame:
    """Flatten a path (and any recorded metric vectors) into a DataFrame."""
    rows = []
    for point in path:
        row: Dict[str, Any] = {
            "day": point.day,
            "index": point.index,
            "p_collapse": point.p_collapse,
            "siren": point.siren,
            "regime_id": point.regime_id,
            "regime": regime_name(point.regime_id),
            "goal_score": point.goal_score,
        }
        if point.vector:
            row.update(point.vector)
        rows.append(row)
    return pd.DataFrame(rows)
