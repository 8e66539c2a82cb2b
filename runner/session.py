"""Browser session owning one Playwright browser, context and page."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .cancellation import CancellationToken, ensure_token
from .config import RunConfig
from .errors import BrowserLaunchError, BrowserSessionError, NavigationError

log = logging.getLogger(__name__)

_TAG_SANITIZER = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(slots=True)
class NavigationResult:
    url: str
    status: Optional[int]
    ok: bool
    final_url: str

    def as_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "status": self.status, "ok": self.ok, "finalUrl": self.final_url}


def screenshot_filename(tag: str, moment: Optional[datetime] = None) -> str:
    stamp = (moment or datetime.now()).strftime("%Y%m%d-%H%M%S")
    safe_tag = _TAG_SANITIZER.sub("-", tag).strip("-") or "screenshot"
    return f"{safe_tag}-{stamp}.png"


def _json_version_url(base: str) -> str:
    base = (base or "").strip()
    if not base:
        return ""
    working = base
    if working.startswith("//"):
        working = f"http:{working}"
    elif "://" not in working:
        working = f"http://{working}"
    try:
        parsed = urlsplit(working)
    except ValueError:
        return ""
    scheme = {"ws": "http", "wss": "https"}.get(parsed.scheme, parsed.scheme or "http")
    return urlunsplit((scheme, parsed.netloc, "/json/version", "", ""))


async def wait_cdp(endpoint: str, *, timeout: float = 6.0, poll_interval: float = 0.25) -> bool:
    """Poll the DevTools ``/json/version`` endpoint until it answers."""

    version_url = _json_version_url(endpoint)
    if not version_url:
        return False
    poll_interval = max(poll_interval, 0.25)
    deadline = time.time() + max(timeout, 1.0)
    async with httpx.AsyncClient(timeout=2.0) as client:
        while time.time() < deadline:
            try:
                response = await client.get(version_url)
                if response.status_code == 200:
                    return True
            except httpx.HTTPError as exc:
                log.debug("CDP endpoint %s not ready: %s", version_url, exc)
            await asyncio.sleep(poll_interval)
    log.warning("Timed out waiting for CDP endpoint %s", version_url)
    return False


class BrowserSession:
    """One browser page plus the resources that own it.

    Instances are created with :meth:`open` (or :func:`launch_session`) and
    are never shared between runs.
    """

    def __init__(
        self,
        page: Page,
        config: RunConfig,
        *,
        context: Optional[BrowserContext] = None,
        browser: Optional[Browser] = None,
        playwright: Optional[Playwright] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        self.page = page
        self.config = config
        self.cancel = ensure_token(cancel)
        self._context = context
        self._browser = browser
        self._playwright = playwright
        self._closed = False

    @classmethod
    async def open(
        cls,
        config: RunConfig,
        *,
        headless: Optional[bool] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> "BrowserSession":
        headless = config.headless if headless is None else headless
        playwright = await async_playwright().start()
        browser: Optional[Browser] = None
        try:
            if config.cdp_url:
                if not await wait_cdp(config.cdp_url):
                    raise BrowserLaunchError(f"CDP endpoint {config.cdp_url} did not respond")
                browser = await playwright.chromium.connect_over_cdp(config.cdp_url)
            else:
                browser = await playwright.chromium.launch(headless=headless)
            context = await browser.new_context(viewport=config.viewport)
            page = await context.new_page()
        except BrowserLaunchError:
            await cls._abort_launch(playwright, browser)
            raise
        except PlaywrightError as exc:
            await cls._abort_launch(playwright, browser)
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc
        log.info("Browser session opened (headless=%s, cdp=%s)", headless, bool(config.cdp_url))
        return cls(page, config, context=context, browser=browser, playwright=playwright, cancel=cancel)

    @staticmethod
    async def _abort_launch(playwright: Playwright, browser: Optional[Browser]) -> None:
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                log.debug("Ignoring browser close error after failed launch: %s", exc)
        await playwright.stop()

    @property
    def url(self) -> str:
        return self.page.url

    async def content(self) -> str:
        return await self.cancel.guard(self.page.content())

    async def navigate(
        self,
        url: str,
        *,
        timeout_ms: Optional[int] = None,
        wait_until: Optional[str] = None,
        cancellable: bool = True,
    ) -> NavigationResult:
        timeout_ms = self.config.navigation_timeout_ms if timeout_ms is None else timeout_ms
        wait_until = wait_until or self.config.navigation_wait_until
        goto = self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        try:
            response = await (self.cancel.guard(goto) if cancellable else goto)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"Navigation to {url} timed out after {timeout_ms} ms", details={"url": url}) from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Navigation to {url} failed: {exc}", details={"url": url}) from exc
        if response is None:
            # about:blank, data: URLs and same-document navigations have no response.
            if urlsplit(url).scheme in {"http", "https"} and self.page.url.split("#")[0] != url.split("#")[0]:
                raise NavigationError(f"No response received for {url}", details={"url": url})
            return NavigationResult(url=url, status=None, ok=True, final_url=self.page.url)
        result = NavigationResult(url=url, status=response.status, ok=response.ok, final_url=self.page.url)
        if not result.ok:
            log.warning("Navigation to %s returned HTTP %s", url, response.status)
        return result

    async def wait_for_load_state(self, state: str = "load", *, timeout_ms: Optional[int] = None) -> None:
        timeout_ms = self.config.post_navigation_timeout_ms if timeout_ms is None else timeout_ms
        await self.cancel.guard(self.page.wait_for_load_state(state, timeout=timeout_ms))

    async def screenshot(self, tag: str, *, full_page: bool = True) -> str:
        directory = Path(self.config.screenshot_dir)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / screenshot_filename(tag)
        await self.page.screenshot(path=str(path), full_page=full_page)
        return str(path)

    async def close(self) -> None:
        """Close context, browser and driver; raise once everything was attempted."""

        if self._closed:
            return
        self._closed = True
        errors = []
        for label, closer in (
            ("context", self._context.close if self._context is not None else None),
            ("browser", self._browser.close if self._browser is not None else None),
            ("playwright", self._playwright.stop if self._playwright is not None else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except PlaywrightError as exc:
                log.warning("Failed to close %s: %s", label, exc)
                errors.append(f"{label}: {exc}")
        if errors:
            raise BrowserSessionError("Browser session close failed - " + "; ".join(errors))
        log.info("Browser session closed")


@asynccontextmanager
async def launch_session(
    config: RunConfig,
    *,
    headless: Optional[bool] = None,
    cancel: Optional[CancellationToken] = None,
) -> AsyncIterator[BrowserSession]:
    """Open a session for the duration of the block and always close it."""

    session = await BrowserSession.open(config, headless=headless, cancel=cancel)
    try:
        yield session
    finally:
        await session.close()


__all__ = ["BrowserSession", "NavigationResult", "launch_session", "screenshot_filename", "wait_cdp"]
