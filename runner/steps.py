"""Sequencing of one scenario step and its screenshot evidence."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from scenario.dsl.models import Action, Assertion, Step
from scenario.dsl.results import ActionOutcome, ExecutionStatus, StepOutcome, utcnow

from .actions import ActionExecutor, poll_until
from .cancellation import CancellationToken, ensure_token
from .config import RunConfig
from .errors import RunCancelledError
from .session import BrowserSession

log = logging.getLogger(__name__)


@dataclass(slots=True)
class StepOptions:
    capture_evidence: bool = True
    full_page: bool = False
    pre_navigation_delay_ms: int = 500
    end_of_step_delay_ms: int = 1000

    @classmethod
    def from_config(cls, config: RunConfig) -> "StepOptions":
        return cls(
            full_page=config.full_page_step_screenshots,
            pre_navigation_delay_ms=config.pre_navigation_screenshot_delay_ms,
            end_of_step_delay_ms=config.end_of_step_screenshot_delay_ms,
        )


class StepRunner:
    """Runs every action of a step in order and derives the step outcome.

    One screenshot is kept as evidence: taken just before the last
    navigational action, or at the end of the step when none is marked.
    """

    def __init__(self, actions: ActionExecutor, config: RunConfig, *, cancel: Optional[CancellationToken] = None) -> None:
        self.actions = actions
        self.config = config
        self.cancel = ensure_token(cancel)

    async def run(self, session: BrowserSession, step: Step, options: Optional[StepOptions] = None) -> StepOutcome:
        options = options or StepOptions.from_config(self.config)
        started = utcnow()
        outcomes: List[ActionOutcome] = []
        screenshot: Optional[str] = None
        error: Optional[str] = None

        try:
            self.cancel.raise_if_cancelled()
            if step.page_url:
                await session.navigate(step.page_url, timeout_ms=self.config.navigation_timeout_ms, wait_until="load")
                await session.wait_for_load_state("domcontentloaded", timeout_ms=self.config.navigation_timeout_ms)

            last_navigation = step.last_navigation_index
            for index, action in enumerate(step.actions):
                if index == last_navigation and options.capture_evidence:
                    screenshot = await self._evidence(session, step, options.pre_navigation_delay_ms, options)
                outcomes.append(await self.actions.execute(session, action, step_order=step.order))

            if last_navigation is None and options.capture_evidence:
                screenshot = await self._evidence(session, step, options.end_of_step_delay_ms, options)

            outcomes.extend(await self._check_expectations(session, step))
        except RunCancelledError:
            raise
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            log.warning("Step %s (%s) failed: %s", step.order, step.page_name, error)

        outcome = StepOutcome.build(
            step_order=step.order,
            page_name=step.page_name,
            started_at=started,
            action_outcomes=outcomes,
            error_message=error,
            screenshot=screenshot,
        )
        log.info("Step %s (%s) %s", step.order, step.page_name, outcome.status.value)
        return outcome

    async def _evidence(self, session: BrowserSession, step: Step, delay_ms: int, options: StepOptions) -> Optional[str]:
        await self.cancel.sleep(delay_ms)
        try:
            return await session.screenshot(f"step{step.order}-{step.page_name}", full_page=options.full_page)
        except Exception as exc:
            log.warning("Screenshot for step %s failed: %s", step.order, exc)
            return None

    async def _check_expectations(self, session: BrowserSession, step: Step) -> List[ActionOutcome]:
        order = max((action.order for action in step.actions), default=0)
        outcomes: List[ActionOutcome] = []
        checks: List[Assertion] = []
        if step.expected_navigation:
            checks.append(Assertion(type="url", expected=step.expected_navigation))
        checks.extend(step.assertions)

        for check in checks:
            order += 1
            if check.type == "url":
                outcomes.append(await self._check_url(session, check.expected, order))
                continue
            action = Action.model_validate({
                "order": order,
                "element": check.selector or check.expected,
                "action": "assert_visible" if check.type == "visible" else "assert_text",
                "selector": check.selector or ("body" if check.type == "text" else None),
                "value": check.expected if check.type == "text" else None,
            })
            outcomes.append(await self.actions.execute(session, action, step_order=step.order))
        return outcomes

    async def _check_url(self, session: BrowserSession, expected: str, order: int) -> ActionOutcome:
        started = utcnow()

        async def matches() -> bool:
            return expected.lower() in session.url.lower()

        error: Optional[str] = None
        if not await poll_until(self.cancel, matches, self.config.post_navigation_timeout_ms):
            error = f"Expected URL containing '{expected}' but was '{session.url}'"
        return ActionOutcome(
            action_order=order,
            element=expected,
            action_type="assert_url",
            status=ExecutionStatus.FAILED if error else ExecutionStatus.PASSED,
            started_at=started,
            ended_at=utcnow(),
            error_message=error,
        )


__all__ = ["StepOptions", "StepRunner"]
