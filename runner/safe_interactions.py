"""Shared interaction helpers for robust element manipulation."""

from __future__ import annotations

import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError, Locator, Page

from .errors import ExecutionError

log = logging.getLogger(__name__)

DEFAULT_ACTION_TIMEOUT = 10_000


async def prepare_locator(page: Page, locator: Locator, timeout: Optional[int] = None) -> Locator:
    """Ensure the locator points to a visible, enabled element."""

    del page  # kept for a uniform helper signature

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = locator
    await target.wait_for(state="attached", timeout=timeout)
    await target.scroll_into_view_if_needed(timeout=timeout)
    await target.wait_for(state="visible", timeout=timeout)
    if not await target.is_enabled():
        raise ExecutionError("Element is not enabled for interaction", code="ELEMENT_DISABLED")
    return target


async def safe_click(
    page: Page,
    locator: Locator,
    *,
    timeout: Optional[int] = None,
    force: bool = False,
) -> None:
    """Click an element, retrying once with ``force`` when actionability checks fail."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(page, locator, timeout)

    try:
        await target.click(timeout=timeout, force=force)
    except PlaywrightError as exc:
        if force:
            raise
        log.warning("Click retry with force due to: %s", exc)
        try:
            await target.click(timeout=timeout, force=True)
        except PlaywrightError as force_error:
            raise ExecutionError(f"Click failed - Original: {exc}, Force: {force_error}") from force_error


async def safe_fill(page: Page, locator: Locator, value: str, *, timeout: Optional[int] = None) -> None:
    """Clear a field then type ``value`` into it, verifying the final value."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(page, locator, timeout)

    await target.fill("", timeout=timeout)
    await target.fill(value, timeout=timeout)

    current = await target.input_value(timeout=timeout)
    if current == value:
        return
    log.warning("Fill verification mismatch (expected %r, got %r); setting value via script", value, current)
    await target.evaluate(
        """
        (el, value) => {
            const proto = Object.getPrototypeOf(el);
            const descriptor = proto && Object.getOwnPropertyDescriptor(proto, 'value');
            if (descriptor && descriptor.set) {
                descriptor.set.call(el, value);
            } else {
                el.value = value;
            }
            el.dispatchEvent(new Event('input', { bubbles: true }));
            el.dispatchEvent(new Event('change', { bubbles: true }));
        }
        """,
        value,
    )


async def safe_hover(page: Page, locator: Locator, *, timeout: Optional[int] = None) -> None:
    """Hover over an element, retrying with ``force`` on failure."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(page, locator, timeout)

    try:
        await target.hover(timeout=timeout)
    except PlaywrightError as exc:
        log.warning("Hover retry with force due to: %s", exc)
        try:
            await target.hover(timeout=timeout, force=True)
        except PlaywrightError as force_error:
            raise ExecutionError(f"Hover failed - Original: {exc}, Force: {force_error}") from force_error


async def safe_select(page: Page, locator: Locator, value: str, *, timeout: Optional[int] = None) -> None:
    """Select an option by value, falling back to its visible label."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(page, locator, timeout)

    try:
        await target.select_option(value, timeout=timeout)
    except PlaywrightError as exc:
        log.warning("Select retry by label due to: %s", exc)
        try:
            await target.select_option(label=value, timeout=timeout)
            log.info("Select fallback successful: label-based selection for '%s'", value)
        except PlaywrightError as label_error:
            raise ExecutionError(f"Select failed - Original: {exc}, Label: {label_error}") from label_error


async def safe_set_checked(page: Page, locator: Locator, checked: bool, *, timeout: Optional[int] = None) -> None:
    """Check or uncheck a checkbox or radio, retrying with ``force``."""

    timeout = timeout if timeout is not None else DEFAULT_ACTION_TIMEOUT
    target = await prepare_locator(page, locator, timeout)
    operation = target.check if checked else target.uncheck

    try:
        await operation(timeout=timeout)
    except PlaywrightError as exc:
        log.warning("%s retry with force due to: %s", "Check" if checked else "Uncheck", exc)
        await operation(timeout=timeout, force=True)
