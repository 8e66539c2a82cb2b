"""High level service: run scenario JSON, stream progress, record new scenarios.

This is the one entry point the HTTP layer and the CLI talk to. Every public
method returns a result object; nothing raises for a bad scenario or a
browser failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from runner.analyzer import HtmlPageAnalyzer, PageAnalyzer
from runner.cancellation import CancellationToken
from runner.config import RunConfig, load_config
from runner.executor import ScenarioExecutor, ScenarioPayload, SessionFactory, StepListener
from runner.recorder import ScenarioRecorder, SynthesizedScenario
from runner.test_data import JsonTestDataStore, TestDataProvider

from .dsl.results import ScenarioExecutionResult, StepOutcome

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionEvent:
    """Live progress notification emitted while a scenario runs."""

    type: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def as_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message, "data": self.data, "timestamp": self.timestamp}


def failure_result(message: str, scenario_name: str = "") -> ScenarioExecutionResult:
    result = ScenarioExecutionResult(scenario_name=scenario_name, run_id=uuid.uuid4().hex)
    result.fail(message)
    return result.complete()


def _recording_request(request: Mapping) -> Dict[str, Any]:
    folded = {str(key).replace("_", "").lower(): value for key, value in request.items()}
    pages = folded.get("pages") or folded.get("steps") or []
    if isinstance(pages, (str, bytes)) or not isinstance(pages, list):
        raise ValueError("'pages' must be a list of URLs or page objects")
    credentials = folded.get("credentials") or None
    if credentials is not None and not isinstance(credentials, Mapping):
        raise ValueError("'credentials' must be an object")
    return {
        "pages": pages,
        "credentials": credentials,
        "scenario_name": str(folded.get("scenarioname") or "Recorded scenario"),
        "description": folded.get("description"),
    }


class ScenarioService:
    """Facade pairing each async operation with a blocking wrapper."""

    def __init__(
        self,
        config: Optional[RunConfig] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        analyzer: Optional[PageAnalyzer] = None,
        test_data: Optional[TestDataProvider] = None,
    ) -> None:
        self.config = config or load_config()
        if test_data is None and self.config.test_data_file is not None:
            test_data = JsonTestDataStore.from_file(self.config.test_data_file)
        self.test_data = test_data
        self.analyzer = analyzer or HtmlPageAnalyzer()
        self.executor = ScenarioExecutor(self.config, session_factory=session_factory, test_data=test_data)
        self.recorder = ScenarioRecorder(self.config, analyzer=self.analyzer, session_factory=session_factory)

    # execution

    async def execute_test_async(
        self,
        payload: ScenarioPayload,
        *,
        cancel: Optional[CancellationToken] = None,
        on_step: Optional[StepListener] = None,
    ) -> ScenarioExecutionResult:
        try:
            return await self.executor.execute_scenario(payload, cancel=cancel, on_step=on_step)
        except Exception as exc:
            log.exception("Scenario execution failed unexpectedly")
            return failure_result(f"Test execution failed: {exc}")

    def execute_test(self, payload: ScenarioPayload) -> Dict[str, Any]:
        return asyncio.run(self.execute_test_async(payload)).as_dict()

    async def stream_execution(
        self,
        payload: ScenarioPayload,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[ExecutionEvent]:
        """Yield ``started``, one ``step_completed`` per step, then ``completed``."""

        yield ExecutionEvent("started", "Test execution started")
        queue: asyncio.Queue[StepOutcome] = asyncio.Queue()
        task = asyncio.ensure_future(self.execute_test_async(payload, cancel=cancel, on_step=queue.put_nowait))
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    yield self._step_event(getter.result())
                    continue
                getter.cancel()
                break
            while not queue.empty():
                yield self._step_event(queue.get_nowait())
            result = task.result()
            yield ExecutionEvent(
                "completed",
                f"Test execution {result.status.value.lower()}",
                result.as_dict(),
            )
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    @staticmethod
    def _step_event(outcome: StepOutcome) -> ExecutionEvent:
        return ExecutionEvent(
            "step_completed",
            f"Step {outcome.step_order} {outcome.status.value.lower()}",
            outcome.as_dict(),
        )

    # recording and analysis

    async def generate_scenario_async(self, request: Mapping) -> SynthesizedScenario:
        options = _recording_request(request)
        return await self.recorder.record_from_pages(
            options["pages"],
            credentials=options["credentials"],
            scenario_name=options["scenario_name"],
            description=options["description"],
        )

    def generate_scenario_json(self, request: Mapping) -> Dict[str, Any]:
        return asyncio.run(self.generate_scenario_async(request)).to_payload()

    def analyze_html(self, html: str) -> Dict[str, Any]:
        result = self.analyzer.analyze_html(html)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
        return result.to_payload()

    def test_data_entries(self, data_set: Optional[str] = None) -> List[Dict[str, Any]]:
        entries = getattr(self.test_data, "entries", None)
        return entries(data_set) if callable(entries) else []


__all__ = ["ExecutionEvent", "ScenarioService", "failure_result"]
