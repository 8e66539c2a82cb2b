"""Result records produced while executing a scenario."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


class ExecutionStatus(str, Enum):
    RUNNING = "Running"
    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True, slots=True)
class ActionOutcome:
    action_order: int
    element: str
    action_type: str
    status: ExecutionStatus
    started_at: datetime
    ended_at: datetime
    error_message: Optional[str] = None
    screenshot: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    @property
    def passed(self) -> bool:
        return self.status is ExecutionStatus.PASSED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "actionOrder": self.action_order,
            "element": self.element,
            "actionType": self.action_type,
            "status": self.status.value,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
            "errorMessage": self.error_message,
            "screenshot": self.screenshot,
        }


@dataclass(frozen=True, slots=True)
class StepOutcome:
    step_order: int
    page_name: str
    status: ExecutionStatus
    started_at: datetime
    ended_at: datetime
    error_message: Optional[str] = None
    screenshot: Optional[str] = None
    action_outcomes: Tuple[ActionOutcome, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        step_order: int,
        page_name: str,
        started_at: datetime,
        action_outcomes: Sequence[ActionOutcome],
        error_message: Optional[str] = None,
        screenshot: Optional[str] = None,
        ended_at: Optional[datetime] = None,
    ) -> "StepOutcome":
        """Derive the step status: Passed only if every action passed and no step error occurred."""

        outcomes = tuple(action_outcomes)
        passed = error_message is None and all(outcome.passed for outcome in outcomes)
        if error_message is None and not passed:
            failed = next(outcome for outcome in outcomes if not outcome.passed)
            error_message = (
                f"Action {failed.action_order} ({failed.action_type}) {failed.status.value.lower()}: "
                f"{failed.error_message or 'no details'}"
            )
        return cls(
            step_order=step_order,
            page_name=page_name,
            status=ExecutionStatus.PASSED if passed else ExecutionStatus.FAILED,
            started_at=started_at,
            ended_at=ended_at or utcnow(),
            error_message=error_message,
            screenshot=screenshot,
            action_outcomes=outcomes,
        )

    @property
    def passed(self) -> bool:
        return self.status is ExecutionStatus.PASSED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stepOrder": self.step_order,
            "pageName": self.page_name,
            "status": self.status.value,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
            "errorMessage": self.error_message,
            "screenshot": self.screenshot,
            "actionResults": [outcome.as_dict() for outcome in self.action_outcomes],
        }


@dataclass(slots=True)
class ScenarioExecutionResult:
    """Aggregate result of one run. Mutable while Running, frozen after :meth:`complete`."""

    scenario_name: str
    run_id: str = ""
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
    step_outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.ended_at is not None

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or utcnow()
        return (end - self.started_at).total_seconds()

    def _ensure_running(self) -> None:
        if self.completed:
            raise RuntimeError("Execution result is already completed")

    def add_step(self, outcome: StepOutcome) -> None:
        self._ensure_running()
        self.step_outcomes.append(outcome)

    def fail(self, message: str) -> None:
        """Record a run-level error; the status becomes Failed on completion. The first error wins."""

        self._ensure_running()
        if self.error_message is None:
            self.error_message = message

    def complete(self) -> "ScenarioExecutionResult":
        self._ensure_running()
        passed = self.error_message is None and all(step.passed for step in self.step_outcomes)
        self.status = ExecutionStatus.PASSED if passed else ExecutionStatus.FAILED
        if not passed and self.error_message is None:
            failed = next(step for step in self.step_outcomes if not step.passed)
            self.error_message = f"Step {failed.step_order} failed: {failed.error_message or 'no details'}"
        self.ended_at = utcnow()
        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "scenarioName": self.scenario_name,
            "runId": self.run_id,
            "status": self.status.value,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
            "durationSeconds": round(self.duration_seconds, 3),
            "errorMessage": self.error_message,
            "stepResults": [step.as_dict() for step in self.step_outcomes],
        }


__all__ = [
    "ActionOutcome",
    "ExecutionStatus",
    "ScenarioExecutionResult",
    "StepOutcome",
    "utcnow",
]
