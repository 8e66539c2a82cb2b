"""Execution of single declarative actions against a browser session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from playwright.async_api import Locator, TimeoutError as PlaywrightTimeoutError

from scenario.dsl.models import Action
from scenario.dsl.registry import ActionKind, registry
from scenario.dsl.results import ActionOutcome, ExecutionStatus, utcnow

from .cancellation import CancellationToken, ensure_token
from .config import RunConfig
from .errors import ActionAssertionError, ActionValidationError, ElementNotFoundError, RunCancelledError
from .safe_interactions import safe_click, safe_fill, safe_hover, safe_select, safe_set_checked
from .selectors import infer_selector
from .session import BrowserSession
from .test_data import TestDataProvider, resolve_value

log = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 1000
POLL_INTERVAL_MS = 250
LOAD_STATES = ("load", "domcontentloaded", "networkidle")


@dataclass(slots=True)
class ActionContext:
    session: BrowserSession
    action: Action
    step_order: Optional[int]
    selector: Optional[str]
    value: Optional[str]

    @property
    def tag(self) -> str:
        prefix = f"step{self.step_order}-" if self.step_order is not None else ""
        return f"{prefix}action{self.action.order}-{self.action.kind.value}"


Handler = Callable[[ActionContext], Awaitable[Optional[str]]]


async def poll_until(
    cancel: CancellationToken,
    check: Callable[[], Awaitable[bool]],
    timeout_ms: int,
    interval_ms: int = POLL_INTERVAL_MS,
) -> bool:
    """Re-run ``check`` until it returns True or ``timeout_ms`` elapses."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    while True:
        if await check():
            return True
        remaining_ms = int((deadline - loop.time()) * 1000)
        if remaining_ms <= 0:
            return False
        await cancel.sleep(min(interval_ms, remaining_ms))


class ActionExecutor:
    """Runs one :class:`Action` and reports an :class:`ActionOutcome`.

    Failures never propagate: the exception message is captured verbatim in
    the outcome. Only cancellation escapes.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        test_data: Optional[TestDataProvider] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        self.config = config
        self.test_data = test_data
        self.cancel = ensure_token(cancel)
        self._handlers: Dict[ActionKind, Handler] = {
            ActionKind.NAVIGATE: self._navigate,
            ActionKind.FILL: self._fill,
            ActionKind.CLICK: self._click,
            ActionKind.SELECT_OPTION: self._select_option,
            ActionKind.CHECK: self._check,
            ActionKind.UNCHECK: self._uncheck,
            ActionKind.HOVER: self._hover,
            ActionKind.WAIT_FOR_SELECTOR: self._wait_for_selector,
            ActionKind.WAIT_FOR_LOAD_STATE: self._wait_for_load_state,
            ActionKind.DELAY: self._delay,
            ActionKind.SCREENSHOT: self._screenshot,
            ActionKind.ASSERT_VISIBLE: self._assert_visible,
            ActionKind.ASSERT_TEXT: self._assert_text,
            ActionKind.SCROLL_INTO_VIEW: self._scroll_into_view,
        }
        missing = set(ActionKind) - set(self._handlers) - {ActionKind.UNSUPPORTED}
        if missing:
            raise RuntimeError(f"No handler for action kinds: {sorted(kind.value for kind in missing)}")

    @property
    def handled_kinds(self) -> frozenset:
        return frozenset(self._handlers)

    async def execute(self, session: BrowserSession, action: Action, *, step_order: Optional[int] = None) -> ActionOutcome:
        started = utcnow()
        if not action.is_supported:
            log.warning("Skipping unknown action type '%s' (step %s, action %s)", action.action, step_order, action.order)
            return self._outcome(action, ExecutionStatus.SKIPPED, started, error=f"Unknown action type: {action.action}")

        screenshot: Optional[str] = None
        try:
            self.cancel.raise_if_cancelled()
            context = self._context(session, action, step_order)
            log.debug("Executing %s", context.tag)
            screenshot = await self.cancel.guard(self._handlers[action.kind](context))
            if action.delay_ms > 0:
                await self.cancel.sleep(action.delay_ms)
            if self.config.capture_screenshots and screenshot is None:
                screenshot = await self._capture(session, context.tag)
        except RunCancelledError:
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            log.warning("Action %s (%s) failed: %s", action.order, action.action, message)
            failure_shot = await self._capture(session, f"step{step_order}-action{action.order}-FAILED")
            return self._outcome(action, ExecutionStatus.FAILED, started, error=message, screenshot=failure_shot)
        return self._outcome(action, ExecutionStatus.PASSED, started, screenshot=screenshot)

    def _context(self, session: BrowserSession, action: Action, step_order: Optional[int]) -> ActionContext:
        spec = registry.get(action.kind)
        selector = action.selector
        if spec.requires_selector and not selector:
            selector = infer_selector(action.element)
            if selector is None:
                raise ActionValidationError(f"Action '{action.action}' needs a selector or an element label")
        value = resolve_value(action.value, self.test_data)
        if spec.requires_value and value is None:
            raise ActionValidationError(f"Action '{action.action}' needs a value")
        return ActionContext(session=session, action=action, step_order=step_order, selector=selector, value=value)

    def _outcome(
        self,
        action: Action,
        status: ExecutionStatus,
        started,
        *,
        error: Optional[str] = None,
        screenshot: Optional[str] = None,
    ) -> ActionOutcome:
        return ActionOutcome(
            action_order=action.order or 0,
            element=action.element,
            action_type=action.action,
            status=status,
            started_at=started,
            ended_at=utcnow(),
            error_message=error,
            screenshot=screenshot,
        )

    async def _capture(self, session: BrowserSession, tag: str) -> Optional[str]:
        try:
            return await session.screenshot(tag, full_page=True)
        except Exception as exc:
            log.debug("Screenshot %s failed: %s", tag, exc)
            return None

    async def _locate(self, ctx: ActionContext, timeout_ms: int, state: str = "attached") -> Locator:
        locator = ctx.session.page.locator(ctx.selector).first
        try:
            await locator.wait_for(state=state, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFoundError(
                f"No element matching '{ctx.selector}' within {timeout_ms} ms",
                details={"selector": ctx.selector, "state": state},
            ) from exc
        return locator

    # handlers

    async def _navigate(self, ctx: ActionContext) -> None:
        await ctx.session.navigate(ctx.value, timeout_ms=self.config.navigation_timeout_ms)

    async def _fill(self, ctx: ActionContext) -> None:
        if ctx.value is None:
            raise ActionValidationError(f"Action '{ctx.action.action}' needs a value")
        timeout = self.config.fill_timeout_ms
        locator = await self._locate(ctx, timeout)
        await safe_fill(ctx.session.page, locator, ctx.value, timeout=timeout)

    async def _click(self, ctx: ActionContext) -> None:
        timeout = self.config.action_timeout_ms
        locator = await self._locate(ctx, timeout)
        await safe_click(ctx.session.page, locator, timeout=timeout)
        if ctx.action.is_navigation:
            await ctx.session.wait_for_load_state("load", timeout_ms=self.config.post_navigation_timeout_ms)
            await self.cancel.sleep(self.config.navigation_settle_ms)

    async def _select_option(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        await safe_select(ctx.session.page, locator, ctx.value, timeout=self.config.action_timeout_ms)

    async def _check(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        await safe_set_checked(ctx.session.page, locator, True, timeout=self.config.action_timeout_ms)

    async def _uncheck(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        await safe_set_checked(ctx.session.page, locator, False, timeout=self.config.action_timeout_ms)

    async def _hover(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        await safe_hover(ctx.session.page, locator, timeout=self.config.action_timeout_ms)

    async def _scroll_into_view(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        await locator.scroll_into_view_if_needed(timeout=self.config.action_timeout_ms)

    async def _wait_for_selector(self, ctx: ActionContext) -> None:
        await self._locate(ctx, self.config.action_timeout_ms, state="visible")

    async def _wait_for_load_state(self, ctx: ActionContext) -> None:
        state = (ctx.value or "domcontentloaded").strip().lower()
        if state not in LOAD_STATES:
            raise ActionValidationError(f"Unknown load state '{ctx.value}' (expected one of {', '.join(LOAD_STATES)})")
        await ctx.session.wait_for_load_state(state, timeout_ms=self.config.navigation_timeout_ms)

    async def _delay(self, ctx: ActionContext) -> None:
        try:
            delay_ms = int(ctx.value) if ctx.value not in (None, "") else DEFAULT_DELAY_MS
        except ValueError as exc:
            raise ActionValidationError(f"Delay value must be milliseconds, got '{ctx.value}'") from exc
        await self.cancel.sleep(max(delay_ms, 0))

    async def _screenshot(self, ctx: ActionContext) -> str:
        return await ctx.session.screenshot(ctx.value or ctx.tag, full_page=True)

    async def _assert_visible(self, ctx: ActionContext) -> None:
        try:
            await self._locate(ctx, self.config.action_timeout_ms, state="visible")
        except ElementNotFoundError as exc:
            raise ActionAssertionError(
                f"Expected element '{ctx.selector}' to be visible within {self.config.action_timeout_ms} ms",
                details={"selector": ctx.selector},
            ) from exc

    async def _assert_text(self, ctx: ActionContext) -> None:
        locator = await self._locate(ctx, self.config.action_timeout_ms)
        expected = ctx.value.lower()
        seen = {"text": ""}

        async def contains() -> bool:
            seen["text"] = await locator.text_content() or ""
            return expected in seen["text"].lower()

        if not await poll_until(self.cancel, contains, self.config.action_timeout_ms):
            raise ActionAssertionError(
                f"Expected text '{ctx.value}' not found in '{seen['text'].strip()}'",
                details={"selector": ctx.selector},
            )


__all__ = ["ActionContext", "ActionExecutor", "poll_until"]
