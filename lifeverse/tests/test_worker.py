from __future__ import annotations

import threading

import pytest

from lifeverse.models import MultiverseRunResult
from lifeverse.scoring import StateScoring
from lifeverse.worker import MultiverseWorker

TIMEOUT = 60


def test_worker_reports_progress_then_done(deterministic_config) -> None:
    worker = MultiverseWorker()
    worker.post(deterministic_config.copy_with_overrides({"runs": 450}), generated_at=5.0)
    messages = list(worker.iter_messages(timeout=TIMEOUT))
    assert [message.type for message in messages[:-1]] == ["progress"] * 4
    assert [message.completed for message in messages[:-1]] == [0, 200, 400, 450]
    done = messages[-1]
    assert done.type == "done"
    assert done.terminal
    assert isinstance(done.result, MultiverseRunResult)
    assert done.result.generated_at == 5.0
    assert done.completed == done.total == 450
    assert worker.join(TIMEOUT) is done
    assert not worker.busy


def test_worker_reports_configuration_errors(deterministic_config) -> None:
    worker = MultiverseWorker()
    worker.post(deterministic_config.copy_with_overrides({"runs": 0}))
    messages = list(worker.iter_messages(timeout=TIMEOUT))
    assert len(messages) == 1
    assert messages[0].type == "error"
    assert messages[0].error.startswith("ConfigurationError:")
    assert messages[0].result is None


class GatedScoring(StateScoring):
    """Blocks inside the first run until the test releases it."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()

    def propagate(self, vector, impulses, matrix):
        self.started.set()
        self.release.wait(TIMEOUT)
        return super().propagate(vector, impulses, matrix)


def test_worker_cancellation_returns_partial_result(stormy_config) -> None:
    scoring = GatedScoring()
    worker = MultiverseWorker(scoring=scoring)
    worker.post(stormy_config.copy_with_overrides({"runs": 100_000}))
    assert scoring.started.wait(TIMEOUT)
    with pytest.raises(RuntimeError):
        worker.post(stormy_config)
    worker.cancel()
    scoring.release.set()
    final = worker.join(TIMEOUT)
    assert final is not None and final.type == "done"
    assert final.result.cancelled
    assert 1 <= final.completed < 100_000
    assert final.total == 100_000
