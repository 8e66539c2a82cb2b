"""In-memory stand-ins for Playwright pages and locators."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from runner.session import BrowserSession


@dataclass
class FakeElement:
    visible: bool = True
    enabled: bool = True
    text: str = ""
    value: str = ""
    checked: bool = False
    options: List[str] = field(default_factory=list)
    on_click: Optional[Callable[["FakePage"], None]] = None
    click_error: Optional[str] = None


@dataclass
class FakeResponse:
    status: int = 200

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self.page = page
        self.selector = selector

    @property
    def first(self) -> "FakeLocator":
        return self

    def _element(self) -> FakeElement:
        element = self.page.elements.get(self.selector)
        if element is None:
            raise PlaywrightError(f"No element for {self.selector}")
        return element

    def _log(self, action: str, **details: Any) -> None:
        self.page.calls.append((action, self.selector, details))

    async def wait_for(self, *, state: str = "visible", timeout: Optional[int] = None) -> None:
        self._log("wait_for", state=state, timeout=timeout)
        element = self.page.elements.get(self.selector)
        if element is None or (state == "visible" and not element.visible):
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def scroll_into_view_if_needed(self, *, timeout: Optional[int] = None) -> None:
        self._log("scroll_into_view_if_needed", timeout=timeout)

    async def is_enabled(self) -> bool:
        return self._element().enabled

    async def is_visible(self) -> bool:
        return self._element().visible

    async def click(self, *, timeout: Optional[int] = None, force: bool = False) -> None:
        self._log("click", timeout=timeout, force=force)
        element = self._element()
        if element.click_error and not force:
            raise PlaywrightError(element.click_error)
        if element.on_click is not None:
            element.on_click(self.page)

    async def hover(self, *, timeout: Optional[int] = None, force: bool = False) -> None:
        self._log("hover", timeout=timeout, force=force)

    async def fill(self, value: str, *, timeout: Optional[int] = None) -> None:
        self._log("fill", value=value, timeout=timeout)
        self._element().value = value

    async def input_value(self, *, timeout: Optional[int] = None) -> str:
        return self._element().value

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._log("evaluate", arg=arg)
        if arg is not None:
            self._element().value = arg
        return None

    async def check(self, *, timeout: Optional[int] = None, force: bool = False) -> None:
        self._log("check", timeout=timeout, force=force)
        self._element().checked = True

    async def uncheck(self, *, timeout: Optional[int] = None, force: bool = False) -> None:
        self._log("uncheck", timeout=timeout, force=force)
        self._element().checked = False

    async def select_option(self, value: Optional[str] = None, *, label: Optional[str] = None,
                            timeout: Optional[int] = None) -> List[str]:
        self._log("select_option", value=value, label=label)
        element = self._element()
        wanted = value if value is not None else label
        if wanted not in element.options:
            raise PlaywrightError(f"No option {wanted!r}")
        element.value = wanted
        return [wanted]

    async def text_content(self) -> Optional[str]:
        return self._element().text


class FakePage:
    """Records every call; ``routes`` maps URL -> HTML served on ``goto``."""

    def __init__(
        self,
        *,
        url: str = "about:blank",
        html: str = "<html></html>",
        elements: Optional[Dict[str, FakeElement]] = None,
        routes: Optional[Dict[str, str]] = None,
        statuses: Optional[Dict[str, int]] = None,
        goto_errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self.url = url
        self.html = html
        self.elements: Dict[str, FakeElement] = elements or {}
        self.routes = routes or {}
        self.statuses = statuses or {}
        self.goto_errors = goto_errors or {}
        self.calls: List[tuple] = []
        self.screenshots: List[str] = []

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def gotos(self) -> List[str]:
        return [details["url"] for action, _, details in self.calls if action == "goto"]

    async def goto(self, url: str, *, wait_until: str = "load", timeout: Optional[int] = None):
        self.calls.append(("goto", None, {"url": url, "wait_until": wait_until, "timeout": timeout}))
        if url in self.goto_errors:
            raise self.goto_errors[url]
        self.url = url
        if url in self.routes:
            self.html = self.routes[url]
        if url.startswith("about:"):
            return None
        return FakeResponse(self.statuses.get(url, 200))

    async def wait_for_load_state(self, state: str = "load", *, timeout: Optional[int] = None) -> None:
        self.calls.append(("wait_for_load_state", None, {"state": state, "timeout": timeout}))

    async def screenshot(self, *, path: str, full_page: bool = False) -> bytes:
        Path(path).write_bytes(b"\x89PNG")
        self.screenshots.append(path)
        self.calls.append(("screenshot", None, {"path": path, "full_page": full_page}))
        return b"\x89PNG"

    async def content(self) -> str:
        return self.html


class SessionFactory:
    """Session factory wrapping one :class:`FakePage`, counting opens and closes."""

    def __init__(self, page: FakePage, *, launch_error: Optional[Exception] = None) -> None:
        self.page = page
        self.launch_error = launch_error
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def __call__(self, config, *, headless=None, cancel=None):
        if self.launch_error is not None:
            raise self.launch_error
        self.opened += 1
        session = BrowserSession(self.page, config, cancel=cancel)
        try:
            yield session
        finally:
            self.closed += 1
