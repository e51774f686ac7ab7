"""
Simulation configuration dataclass and scenario profiles for lifeverse.

A :class:`MultiverseConfig` is the complete, immutable input of one simulation
batch. It is designed to support:

1. **Reproducibility**: :meth:`MultiverseConfig.snapshot` returns a JSON-safe
   dictionary and :meth:`MultiverseConfig.from_dict` rebuilds an equal config,
   so every batch can be replayed from its recorded snapshot and seed.

2. **Scenario sweeps**: :meth:`MultiverseConfig.copy_with_overrides` merges a
   dictionary of overrides (dotted keys address nested fields) into a new
   config, and :class:`ScenarioProfile` bundles named override sets.

3. **Fail-fast validation**: :meth:`MultiverseConfig.validate` rejects
   malformed input with ``ConfigurationError`` before any run starts. Runtime
   values (metric levels, weights after perturbation) are clamped instead.
"""

from __future__ import annotations

import copy
import json
import math
import os
from dataclasses import asdict, dataclass, field, fields
from numbers import Integral, Number
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError
from .influence import WEIGHTS_SOURCES, InfluenceMatrix, validate_influence_matrix
from .learning import VALID_LAGS
from .metrics import DEFAULT_METRIC_VALUES, METRIC_BY_ID, MetricVector, ensure_vector
from .regime import DEFAULT_TRANSITION_MATRIX, validate_transition_matrix
from .rng import normalize_seed

SHOCK_MODES = ("off", "normal", "blackSwan")

# Fields that overrides replace entirely rather than deep-merge.
REPLACE_KEYS = {"matrix", "stability", "transition_matrix", "impulses"}


@dataclass(frozen=True)
class Toggles:
    """Per-feature switches for the stochastic inputs of a batch."""

    weights_noise: bool = True
    forecast_noise: bool = True
    stochastic_regime: bool = True


@dataclass(frozen=True)
class Impulse:
    """A scheduled nudge of ``delta`` to ``metric_id`` on simulated ``day``.

    Day 0 means "before the first propagation" and is merged into day 1.
    """

    day: int
    metric_id: str
    delta: float


def _coerce_toggles(value: Any) -> Toggles:
    if isinstance(value, Toggles):
        return value
    if isinstance(value, dict):
        known = {item.name for item in fields(Toggles)}
        unknown = set(value) - known
        if unknown:
            raise KeyError(f"Unknown toggle(s): {', '.join(sorted(unknown))}.")
        return Toggles(**{key: bool(flag) for key, flag in value.items()})
    raise ConfigurationError(f"toggles must be a Toggles instance or a dict, got {value!r}.")


def _coerce_impulse(value: Any) -> Impulse:
    if isinstance(value, Impulse):
        return value
    if isinstance(value, dict):
        return Impulse(day=value["day"], metric_id=value["metric_id"], delta=value["delta"])
    if isinstance(value, (list, tuple)) and len(value) == 3:
        return Impulse(*value)
    raise ConfigurationError(f"Cannot interpret impulse {value!r}.")


@dataclass(frozen=True)
class MultiverseConfig:
    """Immutable input bundle for one simulation batch.

    Attributes
    ----------
    runs : int
        Number of independent paths.
    horizon_days : int
        Simulated days per path.
    seed : int
        Seed of the batch RNG stream (unsigned 32-bit after normalisation).
    base_vector : dict
        Starting metric vector; missing metrics take their default value.
    base_regime : int
        Starting regime id, a row index of ``transition_matrix``.
    matrix : dict
        Active influence matrix ``matrix[from][to]``; an empty matrix means no
        coupling between metrics.
    stability : dict, optional
        Stability of each edge in ``[0, 1]``; scales weight perturbation noise.
    transition_matrix : list of list of float
        Row-stochastic regime transition matrix.
    shock_mode : {"off", "normal", "blackSwan"}
        Scale applied to forecast residuals; ``off`` disables forecast noise.
    toggles : Toggles
        Switches for weights noise, forecast noise and stochastic regimes.
    forecast_residuals : list of float
        Residual pool sampled with replacement when forecast noise is on.
    index_floor, collapse_constraint_pct : float
        Constraints used by hedge ranking and the tail summary.
    goal_weights : dict, optional
        Goal weighting; when given, goal scores are tracked per day.
    impulses : list of Impulse
        Scheduled nudges.
    weights_source, mix, lags, trained_on_days, forecast_model_type
        Provenance of the active matrix, reported in the run audit.
    record_vectors : bool
        Attach the post-step metric vector to every path point.
    progress_interval : int
        Runs between progress callbacks.
    label : str, optional
        Free-form name of the scenario.
    """

    runs: int = 1000
    horizon_days: int = 7
    seed: int = 42
    base_vector: MetricVector = field(default_factory=lambda: dict(DEFAULT_METRIC_VALUES))
    base_regime: int = 0
    matrix: InfluenceMatrix = field(default_factory=dict)
    stability: Optional[InfluenceMatrix] = None
    transition_matrix: List[List[float]] = field(
        default_factory=lambda: [list(row) for row in DEFAULT_TRANSITION_MATRIX]
    )
    shock_mode: str = "normal"
    toggles: Toggles = field(default_factory=Toggles)
    forecast_residuals: List[float] = field(default_factory=list)
    index_floor: float = 5.0
    collapse_constraint_pct: float = 20.0
    goal_weights: Optional[Dict[str, float]] = None
    impulses: List[Impulse] = field(default_factory=list)
    weights_source: str = "manual"
    mix: float = 0.0
    lags: Optional[int] = None
    trained_on_days: Optional[int] = None
    forecast_model_type: str = "residual-bootstrap"
    record_vectors: bool = True
    progress_interval: int = 200
    label: Optional[str] = None

    def __post_init__(self) -> None:
        # Normalise container types so snapshots round-trip to equal configs.
        object.__setattr__(self, "toggles", _coerce_toggles(self.toggles))
        object.__setattr__(self, "impulses", [_coerce_impulse(item) for item in self.impulses])
        object.__setattr__(self, "base_vector", {**DEFAULT_METRIC_VALUES, **dict(self.base_vector)})
        object.__setattr__(self, "transition_matrix", [list(row) for row in self.transition_matrix])
        object.__setattr__(self, "forecast_residuals", list(self.forecast_residuals))

    def validate(self) -> "MultiverseConfig":
        """Raise ``ConfigurationError`` for malformed input; return ``self`` otherwise."""
        normalize_seed(self.seed)
        _require_int(self.runs, "runs", minimum=1)
        _require_int(self.horizon_days, "horizon_days", minimum=1)
        _require_int(self.progress_interval, "progress_interval", minimum=1)
        ensure_vector(self.base_vector)

        validate_transition_matrix(self.transition_matrix)
        _require_int(self.base_regime, "base_regime", minimum=0)
        if self.base_regime >= len(self.transition_matrix):
            raise ConfigurationError(
                f"base_regime {self.base_regime} is outside the {len(self.transition_matrix)} regime(s) "
                "of the transition matrix."
            )

        if self.shock_mode not in SHOCK_MODES:
            raise ConfigurationError(f"Unknown shock mode '{self.shock_mode}'. Expected one of {SHOCK_MODES}.")
        if self.weights_source not in WEIGHTS_SOURCES:
            raise ConfigurationError(
                f"Unknown weights source '{self.weights_source}'. Expected one of {WEIGHTS_SOURCES}."
            )
        _require_finite(self.mix, "mix")
        if not 0.0 <= float(self.mix) <= 1.0:
            raise ConfigurationError(f"mix must be within [0, 1], got {self.mix!r}.")

        validate_influence_matrix(self.matrix, name="matrix", low=-1.0, high=1.0)
        validate_influence_matrix(self.stability, name="stability", low=0.0, high=1.0)

        for residual in self.forecast_residuals:
            _require_finite(residual, "forecast residual")
        _require_finite(self.index_floor, "index_floor")
        _require_finite(self.collapse_constraint_pct, "collapse_constraint_pct")

        if self.goal_weights is not None:
            for metric_id, weight in self.goal_weights.items():
                _require_metric(metric_id, "goal_weights")
                _require_finite(weight, f"goal_weights[{metric_id}]")

        for impulse in self.impulses:
            _require_int(impulse.day, "impulse day", minimum=0)
            _require_metric(impulse.metric_id, "impulse")
            _require_finite(impulse.delta, f"impulse delta for '{impulse.metric_id}'")

        if self.lags is not None and self.lags not in VALID_LAGS:
            raise ConfigurationError(f"lags must be one of {VALID_LAGS}, got {self.lags!r}.")
        if self.trained_on_days is not None:
            _require_int(self.trained_on_days, "trained_on_days", minimum=1)
        return self

    def snapshot(self) -> Dict[str, Any]:
        """Return a deep-copied, JSON-safe representation of the configuration."""
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MultiverseConfig":
        """Rebuild a config from :meth:`snapshot` output or a hand-written dict."""
        known = {item.name for item in fields(cls)}
        unknown = set(payload) - known
        if unknown:
            raise KeyError(f"Unknown configuration attribute(s): {', '.join(sorted(unknown))}.")
        return cls(**copy.deepcopy(payload))

    def copy_with_overrides(self, overrides: Optional[Dict[str, Any]] = None) -> "MultiverseConfig":
        """Return a new config with the provided overrides merged in."""
        payload = self.snapshot()
        if overrides:
            _apply_overrides(payload, overrides)
        return MultiverseConfig.from_dict(payload)


def _require_int(value: Any, name: str, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, Integral) or value < minimum:
        raise ConfigurationError(f"{name} must be an integer >= {minimum}, got {value!r}.")


def _require_finite(value: Any, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, Number) or not math.isfinite(float(value)):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}.")


def _require_metric(metric_id: str, context: str) -> None:
    if metric_id not in METRIC_BY_ID:
        raise ConfigurationError(f"{context}: unknown metric '{metric_id}'.")


def _apply_overrides(payload: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    """Recursively merge ``overrides`` into a snapshot dictionary.

    Influence, stability and transition matrices and the impulse schedule are
    replaced as a whole, so an override can shrink them.
    """
    for key, value in overrides.items():
        # Dotted notation updates nested dicts, e.g. "toggles.weights_noise".
        if "." in key:
            top, *rest = key.split(".")
            if top not in payload:
                raise KeyError(f"Unknown configuration attribute '{top}' in override.")
            current = payload[top]
            if not isinstance(current, dict):
                raise KeyError(f"Attribute '{top}' is not a dictionary; cannot set '{key}'.")
            ref = current
            for part in rest[:-1]:
                if part not in ref or not isinstance(ref[part], dict):
                    ref[part] = {}
                ref = ref[part]
            ref[rest[-1]] = copy.deepcopy(value)
            continue
        if key not in payload:
            raise KeyError(f"Unknown configuration attribute '{key}' in override.")
        current = payload[key]
        if key in REPLACE_KEYS:
            payload[key] = copy.deepcopy(value)
        elif isinstance(current, dict) and isinstance(value, dict):
            payload[key] = _deep_merge_dict(current, value)
        else:
            payload[key] = copy.deepcopy(value)


def _deep_merge_dict(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries without mutating the originals."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dict(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass(frozen=True)
class ScenarioProfile:
    """Named bundle of configuration overrides."""

    name: str
    description: str
    overrides: Dict[str, Any] = field(default_factory=dict)
    source: str = "built-in"

    def to_metadata(self) -> Dict[str, Any]:
        """Return a serializable summary for run artefacts."""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "overrides": copy.deepcopy(self.overrides),
        }


def apply_scenario_profile(config: MultiverseConfig, profile: Optional[ScenarioProfile]) -> MultiverseConfig:
    """Return a config with the profile overrides applied and labelled."""
    if profile is None:
        return config
    overrides = dict(profile.overrides)
    overrides.setdefault("label", profile.name)
    return config.copy_with_overrides(overrides)


def list_scenario_profiles() -> List[ScenarioProfile]:
    """Return the available built-in scenario profiles."""
    return list(SCENARIO_LIBRARY.values())


def get_scenario_profile(name: str) -> ScenarioProfile:
    """Fetch a built-in scenario profile by name (case-insensitive)."""
    normalized = name.strip().lower()
    for profile in SCENARIO_LIBRARY.values():
        if profile.name.lower() == normalized:
            return profile
    raise KeyError(f"Unknown scenario profile '{name}'. Available: {', '.join(SCENARIO_LIBRARY.keys())}")


def load_scenario_profile(path: str | os.PathLike[str]) -> ScenarioProfile:
    """Load a scenario profile definition from a JSON file."""
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {file_path}")
    with file_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    overrides = payload.get("overrides", {})
    if not isinstance(overrides, dict):
        raise ValueError(f"Scenario file {file_path} must define an 'overrides' dictionary.")
    return ScenarioProfile(
        name=payload.get("name") or file_path.stem,
        description=payload.get("description", f"Custom scenario loaded from {file_path.name}"),
        overrides=overrides,
        source=payload.get("source", str(file_path)),
    )


# Residuals of a one-day-ahead index forecast, in index points.
_MILD_RESIDUALS = [-0.4, -0.2, -0.1, 0.0, 0.1, 0.2, 0.3]
_WIDE_RESIDUALS = [-2.5, -1.4, -0.8, -0.3, 0.0, 0.3, 0.6, 1.1, 1.8]

SCENARIO_LIBRARY: Dict[str, ScenarioProfile] = {
    "calm": ScenarioProfile(
        name="calm",
        description=(
            "Settled week: start in the calm regime with small forecast residuals "
            "and ordinary shocks."
        ),
        overrides={
            "base_regime": 1,
            "shock_mode": "normal",
            "forecast_residuals": _MILD_RESIDUALS,
        },
    ),
    "baseline": ScenarioProfile(
        name="baseline",
        description="Default regime dynamics with a moderate residual pool.",
        overrides={
            "shock_mode": "normal",
            "forecast_residuals": _MILD_RESIDUALS + _WIDE_RESIDUALS[2:-2],
        },
    ),
    "storm": ScenarioProfile(
        name="storm",
        description=(
            "Stress test: start under strain with heavy-tailed black-swan shocks "
            "and a wide residual pool."
        ),
        overrides={
            "base_regime": 3,
            "shock_mode": "blackSwan",
            "forecast_residuals": _WIDE_RESIDUALS,
            "toggles": {"weights_noise": True, "forecast_noise": True, "stochastic_regime": True},
        },
    ),
}
