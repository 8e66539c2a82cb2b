"""Scenario recorder: walks declared pages and synthesizes a replayable script."""

from __future__ import annotations

import hashlib
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from playwright.async_api import Error as PlaywrightError

from scenario.dsl.models import PageAnalysis, PageElement, PageTarget, Scenario

from .analyzer import HtmlPageAnalyzer, PageAnalyzer
from .cancellation import CancellationToken, ensure_token
from .config import RunConfig, load_config
from .errors import ExecutionError
from .safe_interactions import safe_click, safe_fill
from .selectors import build_selector
from .session import BrowserSession, launch_session

log = logging.getLogger(__name__)

LOGIN_KEYWORDS = ("login", "log in", "sign in")
NAVIGATION_KEYWORDS = LOGIN_KEYWORDS + ("continue", "next", "submit", "commit", "confirm", "finish")
NAVIGATION_CLICK_DELAY_MS = 1000

_NON_FILLABLE_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image", "file"}

PageSpec = Union[str, PageTarget, Mapping]


@dataclass(slots=True)
class RecordedPage:
    order: int
    page_name: str
    page_url: str
    final_url: Optional[str] = None
    iterations: int = 0
    elements_found: int = 0
    stop_reason: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "pageName": self.page_name,
            "pageUrl": self.page_url,
            "finalUrl": self.final_url,
            "iterations": self.iterations,
            "elementsFound": self.elements_found,
            "stopReason": self.stop_reason,
        }


@dataclass(slots=True)
class SynthesizedScenario:
    scenario: Scenario
    pages: List[RecordedPage] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload = self.scenario.to_payload()
        payload["recording"] = [page.as_dict() for page in self.pages]
        return payload


def is_navigation_label(label: Optional[str]) -> bool:
    text = (label or "").lower()
    return any(keyword in text for keyword in NAVIGATION_KEYWORDS)


def is_login_label(label: Optional[str]) -> bool:
    text = (label or "").lower()
    return any(keyword in text for keyword in LOGIN_KEYWORDS)


def find_navigation_button(elements: Sequence[PageElement]) -> Optional[PageElement]:
    """First button, in document order, whose label names a navigation intent."""

    for element in elements:
        if element.type == "button" and is_navigation_label(element.label):
            return element
    return None


def _is_fillable(element: PageElement) -> bool:
    if element.type in {"textarea", "select", "checkbox", "radio"}:
        return True
    return element.type == "input" and (element.input_type or "text") not in _NON_FILLABLE_INPUT_TYPES


def _display_label(element: PageElement) -> str:
    return element.label or element.id or element.name or element.placeholder or element.type


def _credential_for(element: PageElement, credentials: Mapping[str, str]) -> Optional[str]:
    for candidate in (element.label, element.id, element.name, element.placeholder):
        if candidate and candidate.lower() in credentials:
            return credentials[candidate.lower()]
    return None


def synthesize_inputs(
    elements: Sequence[PageElement],
    seen: Set[str],
    credentials: Optional[Mapping[str, str]] = None,
) -> List[Dict[str, Any]]:
    """One action per input-like element not seen before (first seen wins)."""

    lowered = {str(key).lower(): str(value) for key, value in (credentials or {}).items()}
    actions: List[Dict[str, Any]] = []
    for element in elements:
        if not _is_fillable(element):
            continue
        selector = build_selector(element)
        key = element.key or selector
        if key in seen:
            continue
        seen.add(key)
        if element.type in {"checkbox", "radio"}:
            actions.append({"element": _display_label(element), "action": "check", "selector": selector})
            continue
        value = _credential_for(element, lowered)
        actions.append({
            "element": _display_label(element),
            "action": "select_option" if element.type == "select" else "fill",
            "selector": selector,
            "value": value if value is not None else "",
        })
    return actions


def navigation_click(button: PageElement) -> Dict[str, Any]:
    return {
        "element": _display_label(button),
        "action": "click",
        "selector": build_selector(button),
        "isNavigation": True,
        "delayMs": NAVIGATION_CLICK_DELAY_MS,
    }


def _digest(html: str) -> str:
    return hashlib.sha256(html.encode("utf-8", "replace")).hexdigest()


def _targets(pages: Sequence[PageSpec]) -> List[PageTarget]:
    targets: List[PageTarget] = []
    for position, page in enumerate(pages, start=1):
        if isinstance(page, str):
            target = PageTarget(order=position, page_url=page)
        elif isinstance(page, PageTarget):
            target = page
        else:
            target = PageTarget.model_validate(page)
        if target.order is None:
            target = target.model_copy(update={"order": position})
        targets.append(target)
    if not targets:
        raise ValueError("At least one page is required")
    orders = [target.order for target in targets]
    if len(set(orders)) != len(orders):
        raise ValueError(f"Duplicate page order in {orders}")
    return sorted(targets, key=lambda target: target.order)


class ScenarioRecorder:
    """Explores each declared page and turns what it finds into steps.

    For every page the recorder fills in discovered inputs and follows the
    first navigation-like button until the page stops changing, a login
    button is reached, or the iteration cap is hit.
    """

    def __init__(
        self,
        config: Optional[RunConfig] = None,
        *,
        analyzer: Optional[PageAnalyzer] = None,
        session_factory=None,
        headless: Optional[bool] = None,
    ) -> None:
        self.config = config or load_config()
        self.analyzer = analyzer or HtmlPageAnalyzer()
        self.session_factory = session_factory or launch_session
        self.headless = self.config.headless if headless is None else headless

    async def record_from_pages(
        self,
        pages: Sequence[PageSpec],
        analyzer: Optional[PageAnalyzer] = None,
        credentials: Optional[Mapping[str, str]] = None,
        *,
        scenario_name: str = "Recorded scenario",
        description: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> SynthesizedScenario:
        targets = _targets(pages)
        analyzer = analyzer or self.analyzer
        cancel = ensure_token(cancel)
        steps: List[Dict[str, Any]] = []
        recorded: List[RecordedPage] = []

        async with self.session_factory(self.config, headless=self.headless, cancel=cancel) as session:
            try:
                for target in targets:
                    cancel.raise_if_cancelled()
                    actions, page = await self._record_page(session, target, analyzer, credentials, cancel)
                    recorded.append(page)
                    steps.append({
                        "order": target.order,
                        "pageName": page.page_name,
                        "pageUrl": target.page_url,
                        "actions": [{**action, "order": index} for index, action in enumerate(actions, start=1)],
                    })
            finally:
                await self._logout(session)

        scenario = Scenario.model_validate({
            "scenarioName": scenario_name,
            "description": description,
            "steps": steps,
        })
        log.info("Recorded scenario '%s' with %d steps", scenario_name, len(steps))
        return SynthesizedScenario(scenario=scenario, pages=recorded)

    async def _record_page(
        self,
        session: BrowserSession,
        target: PageTarget,
        analyzer: PageAnalyzer,
        credentials: Optional[Mapping[str, str]],
        cancel: CancellationToken,
    ) -> Tuple[List[Dict[str, Any]], RecordedPage]:
        page = RecordedPage(order=target.order, page_name=target.page_name, page_url=target.page_url)
        actions: List[Dict[str, Any]] = []
        seen: Set[str] = set()

        try:
            await session.navigate(target.page_url, timeout_ms=self.config.navigation_timeout_ms, wait_until="load")
            await session.wait_for_load_state("domcontentloaded", timeout_ms=self.config.navigation_timeout_ms)
        except (ExecutionError, PlaywrightError) as exc:
            log.warning("Could not open %s: %s", target.page_url, exc)
            page.stop_reason = "navigation_failed"
            page.final_url = session.url
            return actions, page
        await cancel.sleep(self.config.recorder_settle_ms)

        while True:
            if page.iterations >= self.config.recorder_max_iterations:
                log.warning("Stopping %s after %d iterations", target.page_url, page.iterations)
                page.stop_reason = "max_iterations"
                break
            page.iterations += 1

            html = await session.content()
            analysis = await self._analyze(analyzer, html)
            if not page.page_name:
                page.page_name = analysis.title
            page.elements_found += len(analysis.elements)

            inputs = synthesize_inputs(analysis.elements, seen, credentials)
            actions.extend(inputs)

            button = find_navigation_button(analysis.elements)
            if button is None:
                page.stop_reason = "no_navigation_button"
                break
            actions.append(navigation_click(button))

            if is_login_label(button.label):
                page.stop_reason = "login"
                if credentials:
                    await self._login(session, inputs, button, page, cancel)
                break

            before_url, before_digest = session.url, _digest(html)
            try:
                await self._follow(session, button, cancel)
            except (ExecutionError, PlaywrightError) as exc:
                log.warning("Click on '%s' failed: %s", button.label, exc)
                page.stop_reason = "click_failed"
                break
            if session.url == before_url and _digest(await session.content()) == before_digest:
                page.stop_reason = "no_navigation"
                break

        page.final_url = session.url
        log.info(
            "Recorded page %s: %d actions, %d iterations, stopped (%s)",
            target.page_url,
            len(actions),
            page.iterations,
            page.stop_reason,
        )
        return actions, page

    async def _analyze(self, analyzer: PageAnalyzer, html: str) -> PageAnalysis:
        result = analyzer.analyze_html(html)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _follow(self, session: BrowserSession, button: PageElement, cancel: CancellationToken) -> None:
        locator = session.page.locator(build_selector(button)).first
        await cancel.guard(safe_click(session.page, locator, timeout=self.config.action_timeout_ms))
        await session.wait_for_load_state("load", timeout_ms=self.config.post_navigation_timeout_ms)
        await cancel.sleep(self.config.recorder_settle_ms)

    async def _login(
        self,
        session: BrowserSession,
        inputs: Sequence[Dict[str, Any]],
        button: PageElement,
        page: RecordedPage,
        cancel: CancellationToken,
    ) -> None:
        """Replay the synthesized fills with real values and submit, so later pages are reachable."""

        try:
            for action in inputs:
                if action["action"] != "fill" or not action.get("value"):
                    continue
                locator = session.page.locator(action["selector"]).first
                await safe_fill(session.page, locator, action["value"], timeout=self.config.fill_timeout_ms)
            await self._follow(session, button, cancel)
            page.stop_reason = "logged_in"
        except (ExecutionError, PlaywrightError) as exc:
            log.warning("Login replay on %s failed: %s", page.page_url, exc)
            page.stop_reason = "login_failed"

    async def _logout(self, session: BrowserSession) -> None:
        url = self.config.logout_url
        if not url:
            return
        try:
            await session.navigate(url, timeout_ms=self.config.cleanup_timeout_ms, wait_until="load", cancellable=False)
        except (ExecutionError, PlaywrightError) as exc:
            log.warning("Recorder logout navigation to %s failed: %s", url, exc)


__all__ = [
    "ScenarioRecorder",
    "SynthesizedScenario",
    "RecordedPage",
    "find_navigation_button",
    "synthesize_inputs",
]
