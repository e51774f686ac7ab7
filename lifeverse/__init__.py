"""Public API for the lifeverse package.

Seeded Monte Carlo simulation of a personal multi-metric state ("multiverse"
paths) and a ridge-regression trainer that learns the metric-to-metric
influence matrix the simulator consumes.
"""

__version__ = "0.1.0"

from .checkins import CheckinRecord, load_checkins_csv, to_dense_series
from .config import (
    Impulse,
    MultiverseConfig,
    ScenarioProfile,
    Toggles,
    apply_scenario_profile,
    get_scenario_profile,
    list_scenario_profiles,
    load_scenario_profile,
)
from .edges import LearnedInfluenceEdge, learn_influence
from .errors import ConfigurationError, SingularMatrixWarning
from .influence import blend_matrices, resolve_active_matrix
from .learning import LearnedMatrix, matrix_stability_score, train_learned_influence_matrix
from .metrics import METRIC_IDS, METRICS, ensure_vector
from .models import MultiverseRunResult, PathPoint
from .rng import Mulberry32, derive_seed
from .scoring import StateScoring
from .simulation import MultiverseSimulation, run_multiverse, run_multiverse_parallel
from .worker import MultiverseWorker, WorkerMessage

__all__ = [
    "__version__",
    "CheckinRecord",
    "load_checkins_csv",
    "to_dense_series",
    "Impulse",
    "MultiverseConfig",
    "ScenarioProfile",
    "Toggles",
    "apply_scenario_profile",
    "get_scenario_profile",
    "list_scenario_profiles",
    "load_scenario_profile",
    "LearnedInfluenceEdge",
    "learn_influence",
    "ConfigurationError",
    "SingularMatrixWarning",
    "blend_matrices",
    "resolve_active_matrix",
    "LearnedMatrix",
    "matrix_stability_score",
    "train_learned_influence_matrix",
    "METRIC_IDS",
    "METRICS",
    "ensure_vector",
    "MultiverseRunResult",
    "PathPoint",
    "Mulberry32",
    "derive_seed",
    "StateScoring",
    "MultiverseSimulation",
    "run_multiverse",
    "run_multiverse_parallel",
    "MultiverseWorker",
    "WorkerMessage",
]
