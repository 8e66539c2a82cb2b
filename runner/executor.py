"""Scenario execution pipeline: parse, run steps, clean up, report."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any, AsyncContextManager, Callable, Optional, Union

from playwright.async_api import Error as PlaywrightError
from pydantic import ValidationError

from scenario.dsl.models import Scenario
from scenario.dsl.results import ScenarioExecutionResult, StepOutcome

from .actions import ActionExecutor
from .cancellation import CancellationToken, ensure_token
from .config import RunConfig, ensure_run_directories, load_config
from .errors import ExecutionError, RunCancelledError, ScenarioParseError
from .session import BrowserSession, launch_session
from .steps import StepRunner
from .structured_logging import StructuredLogger, prepare_log_paths
from .test_data import TestDataProvider

log = logging.getLogger(__name__)

ScenarioPayload = Union[str, bytes, Mapping, Scenario]
SessionFactory = Callable[..., AsyncContextManager[BrowserSession]]
StepListener = Callable[[StepOutcome], Any]


def _describe_validation(exc: ValidationError) -> str:
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        detail = next(error for error in errors if error.get("type") == "json_invalid")
        return f"Invalid scenario JSON: {detail.get('ctx', {}).get('error', detail.get('msg'))}"
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg')}")
    return "Invalid scenario: " + "; ".join(parts)


def parse_scenario(payload: ScenarioPayload) -> Scenario:
    """Validate ``payload`` into a :class:`Scenario` or raise :class:`ScenarioParseError`."""

    if isinstance(payload, Scenario):
        return payload
    try:
        if isinstance(payload, (str, bytes, bytearray)):
            return Scenario.model_validate_json(payload)
        if isinstance(payload, Mapping):
            return Scenario.model_validate(payload)
    except ValidationError as exc:
        raise ScenarioParseError(_describe_validation(exc)) from exc
    raise ScenarioParseError(f"Unsupported scenario payload type: {type(payload).__name__}")


def _guess_name(payload: Any) -> str:
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except ValueError:
            return ""
    if isinstance(payload, Mapping):
        for key, value in payload.items():
            if isinstance(key, str) and key.replace("_", "").lower() == "scenarioname" and isinstance(value, str):
                return value
    return ""


async def _notify(listener: Optional[StepListener], outcome: StepOutcome) -> None:
    if listener is None:
        return
    try:
        result = listener(outcome)
        if inspect.isawaitable(result):
            await result
    except Exception:
        log.exception("Step listener failed for step %s", outcome.step_order)


class ScenarioExecutor:
    """Runs a whole scenario in one browser session.

    Steps run in order and the run halts after the first failed step. The
    logout navigation runs exactly once before the session closes, whatever
    happened before it.
    """

    def __init__(
        self,
        config: Optional[RunConfig] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        test_data: Optional[TestDataProvider] = None,
        headless: Optional[bool] = None,
    ) -> None:
        self.config = config or load_config()
        self.session_factory = session_factory or launch_session
        self.test_data = test_data
        self.headless = self.config.headless if headless is None else headless

    async def execute_scenario(
        self,
        payload: ScenarioPayload,
        *,
        cancel: Optional[CancellationToken] = None,
        on_step: Optional[StepListener] = None,
    ) -> ScenarioExecutionResult:
        run_id = uuid.uuid4().hex
        try:
            scenario = parse_scenario(payload)
        except ScenarioParseError as exc:
            log.warning("Rejected scenario: %s", exc.message)
            result = ScenarioExecutionResult(scenario_name=_guess_name(payload), run_id=run_id)
            result.fail(exc.message)
            return result.complete()

        cancel = ensure_token(cancel)
        result = ScenarioExecutionResult(scenario_name=scenario.scenario_name, run_id=run_id)
        events = self._open_event_log(run_id)
        log.info("Run %s started for scenario '%s' (%d steps)", run_id, scenario.scenario_name, len(scenario.steps))
        try:
            await self._run(scenario, result, cancel, events, on_step)
        except asyncio.CancelledError:
            result.fail("Execution cancelled")
            self._finish(result, events)
            raise
        self._finish(result, events)
        return result

    def _open_event_log(self, run_id: str) -> StructuredLogger:
        base = ensure_run_directories(run_id, self.config)["base"]
        return StructuredLogger(run_id, prepare_log_paths(run_id, base))

    def _finish(self, result: ScenarioExecutionResult, events: StructuredLogger) -> None:
        result.complete()
        try:
            events.log_result(result)
        finally:
            events.close()
        log.info(
            "Run %s finished: %s in %.2fs%s",
            result.run_id,
            result.status.value,
            result.duration_seconds,
            f" ({result.error_message})" if result.error_message else "",
        )

    async def _run(
        self,
        scenario: Scenario,
        result: ScenarioExecutionResult,
        cancel: CancellationToken,
        events: StructuredLogger,
        on_step: Optional[StepListener],
    ) -> None:
        actions = ActionExecutor(self.config, test_data=self.test_data, cancel=cancel)
        steps = StepRunner(actions, self.config, cancel=cancel)
        try:
            async with self.session_factory(self.config, headless=self.headless, cancel=cancel) as session:
                try:
                    for step in scenario.steps:
                        cancel.raise_if_cancelled()
                        outcome = await steps.run(session, step)
                        result.add_step(outcome)
                        events.log_step(outcome)
                        await _notify(on_step, outcome)
                        if not outcome.passed:
                            log.info("Halting after failed step %s: %s", step.order, outcome.error_message)
                            break
                finally:
                    await self._cleanup(session)
        except RunCancelledError as exc:
            log.info("Run %s cancelled", result.run_id)
            result.fail(exc.message)
        except ExecutionError as exc:
            log.error("Run %s aborted: %s", result.run_id, exc.message)
            result.fail(exc.message)
        except PlaywrightError as exc:
            log.error("Run %s aborted by browser error: %s", result.run_id, exc)
            result.fail(f"Browser error: {exc}")
        except Exception as exc:
            log.exception("Run %s aborted by unexpected error", result.run_id)
            result.fail(str(exc) or type(exc).__name__)

    async def _cleanup(self, session: BrowserSession) -> None:
        url = self.config.logout_url
        if not url:
            return
        try:
            await session.navigate(
                url,
                timeout_ms=self.config.cleanup_timeout_ms,
                wait_until="load",
                cancellable=False,
            )
            await asyncio.sleep(self.config.cleanup_settle_ms / 1000)
        except (ExecutionError, PlaywrightError) as exc:
            log.warning("Cleanup navigation to %s failed: %s", url, exc)


__all__ = ["ScenarioExecutor", "parse_scenario"]
