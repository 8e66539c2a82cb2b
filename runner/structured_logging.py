"""Structured JSONL event log for scenario runs."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from scenario.dsl.results import ActionOutcome, ScenarioExecutionResult, StepOutcome

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LogPaths:
    base: Path
    shots: Path
    events: Path


class StructuredLogger:
    """Writes one JSON line per action, step and run event."""

    def __init__(self, run_id: str, paths: LogPaths) -> None:
        self.run_id = run_id
        self.paths = paths
        self._seq = 0
        self._events_file = paths.events.open("a", encoding="utf-8")

    def log_event(
        self,
        event: str,
        *,
        step_order: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        screenshot_path: Optional[str] = None,
    ) -> int:
        self._seq += 1
        record = {
            "ts": time.time(),
            "run_id": self.run_id,
            "seq": self._seq,
            "event": event,
            "step": step_order,
            "payload": payload or {},
            "error": error,
            "screenshot_path": screenshot_path,
        }
        self._events_file.write(json.dumps(record, ensure_ascii=False) + "\n")
        self._events_file.flush()
        return self._seq

    def log_action(self, step_order: int, outcome: ActionOutcome) -> int:
        return self.log_event(
            "action",
            step_order=step_order,
            payload={**outcome.as_dict(), "durationMs": outcome.duration_ms},
            error=outcome.error_message,
            screenshot_path=outcome.screenshot,
        )

    def log_step(self, outcome: StepOutcome) -> int:
        for action in outcome.action_outcomes:
            self.log_action(outcome.step_order, action)
        summary = outcome.as_dict()
        summary.pop("actionResults")
        return self.log_event(
            "step",
            step_order=outcome.step_order,
            payload=summary,
            error=outcome.error_message,
            screenshot_path=outcome.screenshot,
        )

    def log_result(self, result: ScenarioExecutionResult) -> int:
        summary = result.as_dict()
        summary.pop("stepResults")
        return self.log_event("run", payload=summary, error=result.error_message)

    def close(self) -> None:
        try:
            self._events_file.close()
        except OSError as exc:
            log.debug("Failed to close event log %s: %s", self.paths.events, exc)


def prepare_log_paths(run_id: str, base_dir: Path) -> LogPaths:
    base_dir.mkdir(parents=True, exist_ok=True)
    shots_dir = base_dir / "shots"
    shots_dir.mkdir(parents=True, exist_ok=True)
    events_file = base_dir / "events.jsonl"
    return LogPaths(base=base_dir, shots=shots_dir, events=events_file)
