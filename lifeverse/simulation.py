"""
Batch driver for the stochastic multiverse simulator.

:func:`run_multiverse` is the sequential reference: one RNG stream seeded once
per batch, runs generated one after another, so run ``k`` depends on how many
draws the earlier runs consumed. It supports cooperative cancellation (polled
before every run) and periodic progress callbacks.

:func:`run_multiverse_parallel` splits the runs into a fixed number of lanes,
each with its own substream seeded by :func:`lifeverse.rng.derive_seed`. Its
result depends on the seed and the lane count only, never on how many worker
processes executed the lanes.
"""

from __future__ import annotations

import json
import multiprocessing as mp
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from . import aggregation
from .config import MultiverseConfig
from .metrics import ensure_vector
from .models import MultiverseRunResult, Path, RunAudit
from .propagation import PathPropagator
from .regime import regime_collapse_offset
from .rng import Mulberry32, derive_seed
from .scoring import StateScoring
from .utils import clamp, finite_or_zero

ProgressCallback = Callable[[int, int], None]
CancelCallback = Callable[[], bool]

DEFAULT_LANES = 4


class MultiverseSimulation:
    """Runs one validated batch and assembles its :class:`MultiverseRunResult`.

    Parameters
    ----------
    config : MultiverseConfig
        Batch configuration; validated on construction.
    scoring : StateScoring, optional
        Scoring collaborators shared by propagation, hedges and the tail summary.
    verbose : bool
        Print ``[multiverse]`` progress lines.
    run_log_path : str, optional
        Append JSON-lines progress and summary records to this file.
    """

    def __init__(
        self,
        config: MultiverseConfig,
        scoring: Optional[StateScoring] = None,
        verbose: bool = False,
        run_log_path: Optional[str] = None,
    ):
        self.config = config.validate()
        self.scoring = scoring or StateScoring()
        self.verbose = verbose
        self.run_log_path = run_log_path
        self.tag = f"[multiverse{':' + config.label if config.label else ''}]"

        base_vector = ensure_vector(config.base_vector)
        self.base_vector = base_vector
        self.base_index = self.scoring.compute_index_day(base_vector)
        self.base_p_collapse = clamp(
            self.scoring.collapse_probability(base_vector) + regime_collapse_offset(config.base_regime),
            0.0,
            1.0,
        )
        self.base_goal_score = self.scoring.goal_score_of(base_vector, config.goal_weights)

    def generate_paths(
        self,
        rand: Callable[[], float],
        runs: int,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None,
    ) -> Tuple[List[Path], bool]:
        """Generate up to ``runs`` paths from ``rand``; returns ``(paths, cancelled)``."""
        propagator = PathPropagator(self.config, rand, self.scoring)
        interval = self.config.progress_interval
        paths: List[Path] = []
        cancelled = False
        for run in range(runs):
            if should_cancel is not None and should_cancel():
                cancelled = True
                break
            if run % interval == 0:
                self._report_progress(run, runs, on_progress)
            paths.append(propagator.run_path())
        self._report_progress(len(paths), runs, on_progress)
        return paths, cancelled

    def run(
        self,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCallback] = None,
        generated_at: Optional[float] = None,
    ) -> MultiverseRunResult:
        if self.verbose:
            print(
                f"{self.tag} Starting {self.config.runs} run(s) over {self.config.horizon_days} day(s), "
                f"seed={self.config.seed}, shocks={self.config.shock_mode}.",
                flush=True,
            )
        rand = Mulberry32(self.config.seed)
        paths, cancelled = self.generate_paths(rand, self.config.runs, on_progress, should_cancel)
        return self.summarize(paths, cancelled=cancelled, generated_at=generated_at)

    def summarize(
        self,
        paths: Sequence[Path],
        cancelled: bool = False,
        generated_at: Optional[float] = None,
    ) -> MultiverseRunResult:
        """Aggregate finished paths into the batch result."""
        config = self.config
        track_goal = bool(config.goal_weights)
        quantiles = aggregation.quantile_bands(
            paths,
            config.horizon_days,
            self.base_index,
            self.base_p_collapse,
            track_goal=track_goal,
            base_goal_score=self.base_goal_score,
        )
        tail = self.scoring.summarize_tail(
            paths, config.index_floor, self.base_index, self.base_p_collapse, self.base_goal_score
        )
        worst = aggregation.representative_worst_path(paths)
        hedges = self.scoring.rank_hedges(
            self.base_vector, config.matrix, config.index_floor, config.collapse_constraint_pct
        )
        result = MultiverseRunResult(
            generated_at=generated_at,
            config=config,
            completed_runs=len(paths),
            requested_runs=config.runs,
            cancelled=cancelled,
            quantiles=quantiles,
            distributions=aggregation.horizon_distributions(paths, track_goal),
            tail=tail,
            representative_worst_path=worst,
            hedges=hedges,
            action_levers=aggregation.build_action_levers(hedges),
            audit=RunAudit(
                weights_source=config.weights_source,
                mix=config.mix,
                forecast_model_type=config.forecast_model_type,
                lags=config.lags,
                trained_on_days=config.trained_on_days,
            ),
            sample_paths=aggregation.sample_paths(paths, worst),
            trajectory_explorer=aggregation.trajectory_explorer(paths, self.base_index),
            regime_map=aggregation.regime_map(paths, config.horizon_days, config.base_regime),
            branches=aggregation.summarize_branches(
                paths, config, self.base_index, self.base_p_collapse, self.base_goal_score
            ),
        )
        self._log_summary(result)
        return result

    def _report_progress(self, completed: int, total: int, on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is not None:
            on_progress(completed, total)
        self._log_record({"event": "progress", "completed": completed, "requested": total})
        if self.verbose:
            print(f"{self.tag} {completed}/{total} runs", flush=True)

    def _log_summary(self, result: MultiverseRunResult) -> None:
        record: Dict[str, Any] = {
            "event": "summary",
            "completed": result.completed_runs,
            "requested": result.requested_runs,
            "cancelled": result.cancelled,
            "var97_5": result.tail.var97_5,
            "es97_5": result.tail.es97_5,
            "prob_ever_red": result.tail.prob_ever_red,
        }
        for branch in result.branches:
            record[f"p_{branch.id}"] = branch.probability
        self._log_record(record)
        if self.verbose:
            shares = ", ".join(f"{branch.id}={branch.probability:.3f}" for branch in result.branches)
            state = "cancelled" if result.cancelled else "finished"
            print(f"{self.tag} Batch {state}: {result.completed_runs} path(s); {shares}.", flush=True)

    def _log_record(self, record: Dict[str, Any]) -> None:
        """Append a JSON record for quick diagnostics."""
        if not self.run_log_path:
            return
        enriched = {key: finite_or_zero(value) for key, value in record.items()}
        enriched.setdefault("seed", self.config.seed)
        if self.config.label:
            enriched.setdefault("label", self.config.label)
        with open(self.run_log_path, "a", encoding="utf-8") as log_file:
            log_file.write(json.dumps(enriched, default=float) + "\n")


def run_multiverse(
    config: MultiverseConfig,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCallback] = None,
    scoring: Optional[StateScoring] = None,
    generated_at: Optional[float] = None,
    verbose: bool = False,
    run_log_path: Optional[str] = None,
) -> MultiverseRunResult:
    """Simulate one batch sequentially from a single seeded stream.

    Raises ``ConfigurationError`` for malformed configuration only; a
    cancelled batch returns a valid result built from the finished runs.
    """
    simulation = MultiverseSimulation(config, scoring=scoring, verbose=verbose, run_log_path=run_log_path)
    return simulation.run(on_progress=on_progress, should_cancel=should_cancel, generated_at=generated_at)


def lane_sizes(runs: int, lanes: int) -> List[int]:
    """Split ``runs`` into ``lanes`` near-equal contiguous chunks."""
    lanes = max(1, min(int(lanes), int(runs)))
    base, extra = divmod(int(runs), lanes)
    return [base + (1 if lane < extra else 0) for lane in range(lanes)]


def _run_lane(task: Tuple[Dict[str, Any], int, int, Optional[StateScoring]]) -> List[Path]:
    """Process-pool entry point: generate one lane's paths from its substream."""
    snapshot, lane, runs, scoring = task
    config = MultiverseConfig.from_dict(snapshot)
    simulation = MultiverseSimulation(config, scoring=scoring)
    paths, _ = simulation.generate_paths(Mulberry32(derive_seed(config.seed, lane)), runs)
    return paths


def run_multiverse_parallel(
    config: MultiverseConfig,
    lanes: int = DEFAULT_LANES,
    max_workers: Optional[int] = None,
    scoring: Optional[StateScoring] = None,
    generated_at: Optional[float] = None,
    verbose: bool = False,
    run_log_path: Optional[str] = None,
) -> MultiverseRunResult:
    """Simulate one batch across independently seeded lanes.

    Lane ``k`` draws from ``Mulberry32(derive_seed(seed, k))`` and lanes are
    concatenated in lane order, so ``max_workers`` affects speed only. With
    ``max_workers=1`` (or a single lane) everything runs in-process. A custom
    ``scoring`` must be picklable to cross process boundaries.
    """
    simulation = MultiverseSimulation(config, scoring=scoring, verbose=verbose, run_log_path=run_log_path)
    sizes = lane_sizes(config.runs, lanes)
    snapshot = config.snapshot()
    tasks = [(snapshot, lane, size, scoring) for lane, size in enumerate(sizes)]
    n_jobs = len(tasks) if max_workers is None else max(1, min(int(max_workers), len(tasks)))

    if verbose:
        print(f"{simulation.tag} Executing {len(tasks)} lane(s) across {n_jobs} process(es)...", flush=True)
    if n_jobs == 1:
        lane_paths = [_run_lane(task) for task in tasks]
    else:
        try:
            with ProcessPoolExecutor(max_workers=n_jobs, mp_context=mp.get_context("spawn")) as executor:
                lane_paths = list(executor.map(_run_lane, tasks))
        except (PermissionError, OSError) as exc:
            print(f"{simulation.tag} Falling back to sequential execution ({exc}).", flush=True)
            lane_paths = [_run_lane(task) for task in tasks]

    paths = [path for chunk in lane_paths for path in chunk]
    return simulation.summarize(paths, generated_at=generated_at)
