"""Background scenario runs with status polling and cancellation."""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .cancellation import CancellationToken

if TYPE_CHECKING:  # pragma: no cover
    from scenario.service import ScenarioService

log = logging.getLogger(__name__)


def _now() -> float:
    return time.time()


@dataclass
class ScenarioRun:
    payload: Any
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: str = "pending"
    steps: List[Dict[str, Any]] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    created_at: float = field(default_factory=_now)
    updated_at: float = field(default_factory=_now)

    _token: CancellationToken = field(default_factory=CancellationToken, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    async def run(self, service: "ScenarioService") -> None:
        self._set_status("running")
        try:
            result = await service.execute_test_async(self.payload, cancel=self._token, on_step=self._on_step)
        except asyncio.CancelledError:
            self._set_status("cancelled")
            raise
        with self._lock:
            self.result = result.as_dict()
            self.status = "cancelled" if self._token.cancelled else result.status.value.lower()
            self.updated_at = _now()

    def request_cancel(self) -> None:
        self._token.cancel()

    def _on_step(self, outcome) -> None:
        with self._lock:
            self.steps.append(outcome.as_dict())
            self.updated_at = _now()

    def _set_status(self, status: str) -> None:
        with self._lock:
            self.status = status
            self.updated_at = _now()

    @property
    def finished(self) -> bool:
        return self.status not in {"pending", "running"}

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "run_id": self.run_id,
                "status": self.status,
                "steps": copy.deepcopy(self.steps),
                "result": copy.deepcopy(self.result),
                "created_at": self.created_at,
                "updated_at": self.updated_at,
                "complete": self.finished,
            }


class RunManager:
    """Runs scenarios on a dedicated event loop thread."""

    def __init__(self, service: "ScenarioService", *, max_finished_runs: int = 100) -> None:
        self.service = service
        self.max_finished_runs = max_finished_runs
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        self._runs: Dict[str, ScenarioRun] = {}
        self._lock = threading.Lock()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def start_run(self, payload: Any) -> str:
        run = ScenarioRun(payload=payload)
        with self._lock:
            self._evict_finished()
            self._runs[run.run_id] = run
        asyncio.run_coroutine_threadsafe(run.run(self.service), self._loop)
        log.info("Started background run %s", run.run_id)
        return run.run_id

    def _evict_finished(self) -> None:
        # Oldest first; dicts keep insertion order.
        finished = [run_id for run_id, run in self._runs.items() if run.finished]
        for run_id in finished[: max(0, len(finished) - self.max_finished_runs)]:
            del self._runs[run_id]

    def get_status(self, run_id: str) -> Optional[Dict[str, Any]]:
        run = self._runs.get(run_id)
        if run is None:
            return None
        return run.snapshot()

    def cancel_run(self, run_id: str) -> bool:
        run = self._runs.get(run_id)
        if run is None:
            return False
        self._loop.call_soon_threadsafe(run.request_cancel)
        log.info("Cancellation requested for run %s", run_id)
        return True

    def shutdown(self) -> None:
        with self._lock:
            runs = list(self._runs.values())
        for run in runs:
            self._loop.call_soon_threadsafe(run.request_cancel)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)


__all__ = ["RunManager", "ScenarioRun"]
