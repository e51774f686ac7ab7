"""Command-line entry points for lifeverse."""

from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

# Force Matplotlib into a non-interactive backend for headless execution.
os.environ.setdefault("MPLBACKEND", "Agg")

import pandas as pd

from .checkins import load_checkins_csv
from .config import (
    SHOCK_MODES,
    MultiverseConfig,
    ScenarioProfile,
    apply_scenario_profile,
    get_scenario_profile,
    list_scenario_profiles,
    load_scenario_profile,
)
from .edges import learn_influence
from .errors import ConfigurationError
from .graph import compute_centrality_metrics, compute_influence_concentration, influence_graph, strongest_edges
from .influence import WEIGHTS_SOURCES, resolve_active_matrix
from .learning import LearnedMatrix, matrix_stability_score, train_learned_influence_matrix
from .metrics import METRIC_IDS, metric_label
from .models import MultiverseRunResult, path_to_frame
from .simulation import run_multiverse, run_multiverse_parallel

DEFAULT_RESULTS_DIR = "lifeverse_results"


def suppress_runtime_warnings() -> None:
    """Silence noisy numpy runtime warnings that clutter console output."""
    warnings.filterwarnings("ignore", message="Mean of empty slice")
    warnings.filterwarnings("ignore", message="invalid value encountered in scalar divide")
    warnings.filterwarnings("ignore", category=RuntimeWarning, module="numpy")


def _coerce_value(value: str) -> Any:
    for cast in (int, float):
        try:
            return cast(value)
        except (ValueError, TypeError):
            continue
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"none", "null"}:
        return None
    if value and value[0] in "[{":
        return json.loads(value)
    return value


def _parse_overrides(pairs: Optional[List[str]]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Override '{pair}' must look like KEY=VALUE.")
        key, raw = pair.split("=", 1)
        overrides[key.strip()] = _coerce_value(raw.strip())
    return overrides


def _read_json(path: str) -> Any:
    file_path = Path(path).expanduser()
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _write_json(payload: Any, target: Path) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True, default=float)
    return target


def _print_profile_catalog() -> None:
    """Display the registered scenario profiles."""
    catalog: List[ScenarioProfile] = sorted(list_scenario_profiles(), key=lambda profile: profile.name.lower())
    if not catalog:
        print("No built-in scenario profiles are registered.")
        return
    print("Available scenario profiles:")
    for profile in catalog:
        print(f"  - {profile.name}: {profile.description}")


def _train(args: argparse.Namespace) -> LearnedMatrix:
    checkins = load_checkins_csv(args.checkins)
    window: Any = "all" if args.window in (None, "all") else int(args.window)
    learned = train_learned_influence_matrix(
        checkins,
        METRIC_IDS,
        trained_on_days=window,
        lags=args.lags,
        computed_at=args.computed_at,
        verbose=args.verbose,
    )
    print(
        f"[CLI] Learned matrix from {len(checkins)} checkin(s): "
        f"{learned.meta.trained_on_days} day(s), lags={learned.meta.lags}, alpha={learned.meta.alpha}"
    )
    return learned


def _resolve_base_config(args: argparse.Namespace) -> MultiverseConfig:
    config = MultiverseConfig.from_dict(_read_json(args.config)) if args.config else MultiverseConfig()
    if args.scenario:
        config = apply_scenario_profile(config, get_scenario_profile(args.scenario))
    if args.scenario_file:
        config = apply_scenario_profile(config, load_scenario_profile(args.scenario_file))

    overrides: Dict[str, Any] = {}
    for attr, key in (
        ("runs", "runs"),
        ("horizon", "horizon_days"),
        ("seed", "seed"),
        ("shock_mode", "shock_mode"),
        ("weights_source", "weights_source"),
        ("mix", "mix"),
    ):
        value = getattr(args, attr)
        if value is not None:
            overrides[key] = value
    if args.matrix:
        overrides["matrix"] = _read_json(args.matrix)
    overrides.update(_parse_overrides(args.set))
    return config.copy_with_overrides(overrides)


def _simulate(args: argparse.Namespace, results_dir: Path) -> Dict[str, Any]:
    config = _resolve_base_config(args)
    if args.checkins:
        learned = _train(args)
        active = resolve_active_matrix(config.weights_source, config.matrix, learned.weights, config.mix)
        config = config.copy_with_overrides(
            {
                "matrix": active,
                "stability": learned.stability,
                "lags": learned.meta.lags,
                "trained_on_days": learned.meta.trained_on_days,
            }
        )
    elif config.weights_source != "manual":
        raise ConfigurationError(f"weights source '{config.weights_source}' needs --checkins to train a matrix.")

    run_log = results_dir / "run_log.jsonl"
    results_dir.mkdir(parents=True, exist_ok=True)
    if args.lanes:
        result = run_multiverse_parallel(
            config,
            lanes=args.lanes,
            max_workers=args.max_workers,
            generated_at=args.generated_at,
            verbose=args.verbose,
            run_log_path=str(run_log),
        )
    else:
        result = run_multiverse(
            config,
            generated_at=args.generated_at,
            verbose=args.verbose,
            run_log_path=str(run_log),
        )
    return _export_result(result, results_dir, plot=args.plot)


def _export_result(result: MultiverseRunResult, results_dir: Path, plot: bool = False) -> Dict[str, Any]:
    outputs: Dict[str, Any] = {
        "result": _write_json(result.to_dict(), results_dir / "result.json"),
        "config": _write_json(result.config.snapshot(), results_dir / "config_snapshot.json"),
    }
    quantiles_path = results_dir / "quantiles.csv"
    result.quantiles_frame().to_csv(quantiles_path, index=False)
    outputs["quantiles"] = quantiles_path
    branches_path = results_dir / "branches.csv"
    result.branches_frame().to_csv(branches_path, index=False)
    outputs["branches"] = branches_path
    worst_path = results_dir / "worst_path.csv"
    path_to_frame(result.representative_worst_path).to_csv(worst_path, index=False)
    outputs["worst_path"] = worst_path
    if plot:
        from .plotting import plot_influence_graph, plot_quantile_fan

        outputs["fan_chart"] = plot_quantile_fan(result, results_dir / "quantile_fan.png")
        outputs["influence_graph"] = plot_influence_graph(result.config.matrix, results_dir / "influence_graph.png")

    for branch in result.branches:
        low, high = branch.probability_ci
        print(
            f"[CLI] {branch.name}: p={branch.probability:.3f} (95% CI {low:.3f}-{high:.3f}), "
            f"{branch.tail_risk_chip}"
        )
    print(
        f"[CLI] Tail: VaR97.5={result.tail.var97_5:.4f}, ES97.5={result.tail.es97_5:.4f}, "
        f"P(ever red)={result.tail.prob_ever_red:.3f}"
    )
    return {name: str(path) for name, path in outputs.items()}


def _train_task(args: argparse.Namespace, results_dir: Path) -> Dict[str, Any]:
    learned = _train(args)
    outputs: Dict[str, Any] = {
        "learned_matrix": _write_json(asdict(learned), results_dir / "learned_matrix.json"),
    }
    graph = influence_graph(learned.weights)
    centrality = compute_centrality_metrics(graph)
    concentration = compute_influence_concentration(centrality.centrality_by_metric)
    for from_id, to_id, weight in strongest_edges(learned.weights, limit=5):
        level = matrix_stability_score(learned.stability[from_id][to_id])
        print(f"[CLI] {metric_label(from_id)} -> {metric_label(to_id)}: {weight:+.4f} (stability {level})")
    print(f"[CLI] Influence concentration: {concentration.label} (top-1 share {concentration.top1_share:.2f})")
    print(f"[CLI] {learned.meta.note}")

    if args.edge_method:
        edges = learn_influence(load_checkins_csv(args.checkins), METRIC_IDS, method=args.edge_method)
        edges_path = results_dir / "edges.csv"
        pd.DataFrame([asdict(edge) for edge in edges]).to_csv(edges_path, index=False)
        outputs["edges"] = edges_path
    if args.plot:
        from .plotting import plot_influence_graph

        outputs["influence_graph"] = plot_influence_graph(
            learned.weights, results_dir / "learned_influence_graph.png", title="Learned influence graph"
        )
    return {name: str(path) for name, path in outputs.items()}


def _parse_cli_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="lifeverse multiverse simulator and influence trainer")
    parser.add_argument(
        "--task",
        choices=["simulate", "train", "profiles"],
        help="Select which workflow to run.",
    )
    parser.add_argument(
        "--results-dir",
        default=DEFAULT_RESULTS_DIR,
        help="Directory for generated artefacts.",
    )
    parser.add_argument("--config", help="JSON file with a full configuration snapshot.")
    parser.add_argument("--scenario", help="Apply a built-in scenario profile by name.")
    parser.add_argument("--scenario-file", help="Apply a scenario profile loaded from a JSON file.")
    parser.add_argument("--runs", type=int, help="Number of simulated paths.")
    parser.add_argument("--horizon", type=int, help="Simulated days per path.")
    parser.add_argument("--seed", type=int, help="Seed of the batch random stream.")
    parser.add_argument("--shock-mode", choices=list(SHOCK_MODES), help="Forecast-noise shock profile.")
    parser.add_argument("--weights-source", choices=list(WEIGHTS_SOURCES), help="Which influence matrix to simulate with.")
    parser.add_argument("--mix", type=float, help="Learned share of the mixed matrix, in [0, 1].")
    parser.add_argument("--matrix", help="JSON file with the manual influence matrix.")
    parser.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        help="Configuration override; dotted keys address nested fields (repeatable).",
    )
    parser.add_argument("--checkins", help="CSV checkin history with a 'ts' column and one column per metric.")
    parser.add_argument("--lags", type=int, default=2, choices=[1, 2, 3], help="Lag order for training.")
    parser.add_argument("--window", default="all", help="Training window in days or 'all'.")
    parser.add_argument("--computed-at", type=int, help="Timestamp stamped into the learned matrix metadata.")
    parser.add_argument("--generated-at", type=float, help="Timestamp stamped into the simulation result.")
    parser.add_argument(
        "--edge-method",
        choices=["baseline", "advanced"],
        help="Also export an edge list from the chosen estimator (train task).",
    )
    parser.add_argument("--lanes", type=int, help="Run the batch across this many independently seeded lanes.")
    parser.add_argument("--max-workers", type=int, help="Worker processes for lane-parallel runs.")
    parser.add_argument("--plot", action="store_true", help="Write PNG figures next to the results.")
    parser.add_argument("--dump-config", help="Write the resolved configuration snapshot to this path.")
    parser.add_argument("--verbose", action="store_true", help="Print progress lines.")
    return parser.parse_args(list(argv) if argv is not None else None)


def run_cli(argv: Optional[Iterable[str]] = None) -> Optional[Dict[str, Any]]:
    """
    Parse CLI arguments and dispatch the requested workflow.
    Returns a mapping of written artefacts (if any), allowing programmatic reuse.
    """
    suppress_runtime_warnings()
    args = _parse_cli_args(argv)
    if args.task == "profiles":
        _print_profile_catalog()
        return {}
    if not args.task:
        print("No task selected. Use --task with one of 'simulate', 'train', or 'profiles'.")
        print("Run with --help for details.")
        return None

    results_dir = Path(args.results_dir).expanduser()
    print(f"[CLI] Task: {args.task}")
    print(f"[CLI] Results directory: {results_dir}")
    try:
        if args.dump_config:
            target = _write_json(_resolve_base_config(args).snapshot(), Path(args.dump_config).expanduser())
            print(f"[CLI] Wrote configuration snapshot to {target}")
        if args.task == "simulate":
            outputs = _simulate(args, results_dir)
        else:
            if not args.checkins:
                raise ConfigurationError("The train task needs --checkins.")
            outputs = _train_task(args, results_dir)
    except (ConfigurationError, FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[CLI] Error: {exc}")
        return None

    for name, path in outputs.items():
        print(f"[CLI]   - {name}: {path}")
    print("[CLI] Task completed.")
    return outputs


def main(argv: Optional[Iterable[str]] = None) -> None:  # pragma: no cover - thin wrapper
    run_cli(argv=argv)


if __name__ == "__main__":  # pragma: no cover
    main()


__all__ = ["run_cli", "main"]
