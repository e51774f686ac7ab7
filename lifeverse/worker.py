"""Offload-and-report worker for simulation batches.

The worker owns one background thread per request. The caller posts a full
config, then reads :class:`WorkerMessage` objects from :attr:`MultiverseWorker.messages`:
any number of ``progress`` messages followed by exactly one terminal ``done``
(carrying the result) or ``error`` (carrying the exception text). Cancellation
is cooperative and takes effect before the next run starts.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Iterator, Optional

from .config import MultiverseConfig
from .models import MultiverseRunResult
from .scoring import StateScoring
from .simulation import run_multiverse

TERMINAL_TYPES = ("done", "error")


@dataclass
class WorkerMessage:
    type: str
    completed: int = 0
    total: int = 0
    result: Optional[MultiverseRunResult] = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_TYPES


class MultiverseWorker:
    """Background thread that runs one batch at a time and reports by message."""

    def __init__(self, scoring: Optional[StateScoring] = None, name: str = "lifeverse-multiverse-worker"):
        self.scoring = scoring
        self.name = name
        self.messages: "queue.Queue[WorkerMessage]" = queue.Queue()
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._terminal: Optional[WorkerMessage] = None

    @property
    def busy(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def post(self, config: MultiverseConfig, generated_at: Optional[float] = None) -> None:
        """Start a batch for ``config``; only one batch may be in flight."""
        if self.busy:
            raise RuntimeError("A simulation batch is already running on this worker.")
        self._cancel_event.clear()
        self._terminal = None
        self._thread = threading.Thread(
            target=self._run,
            args=(config, generated_at),
            name=self.name,
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        self._cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> Optional[WorkerMessage]:
        """Wait for the current batch and return its terminal message."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self._terminal

    def iter_messages(self, timeout: Optional[float] = None) -> Iterator[WorkerMessage]:
        """Yield messages until (and including) the terminal one."""
        while True:
            message = self.messages.get(timeout=timeout)
            yield message
            if message.terminal:
                return

    def _emit(self, message: WorkerMessage) -> None:
        if message.terminal:
            self._terminal = message
        self.messages.put(message)

    def _run(self, config: MultiverseConfig, generated_at: Optional[float]) -> None:
        def on_progress(completed: int, total: int) -> None:
            self._emit(WorkerMessage(type="progress", completed=completed, total=total))

        try:
            result = run_multiverse(
                config,
                on_progress=on_progress,
                should_cancel=self._cancel_event.is_set,
                scoring=self.scoring,
                generated_at=generated_at,
            )
        except Exception as exc:
            self._emit(WorkerMessage(type="error", error=f"{type(exc).__name__}: {exc}"))
            return
        self._emit(
            WorkerMessage(
                type="done",
                completed=result.completed_runs,
                total=result.requested_runs,
                result=result,
            )
        )
