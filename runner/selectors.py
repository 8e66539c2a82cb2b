"""Selector synthesis for recorded elements."""

from __future__ import annotations

import re
from typing import Optional

from scenario.dsl.models import PageElement

UNKNOWN_SELECTOR = "[data-testid='unknown']"

# Letters, digits, '-', '_' and non-ASCII; no leading digit or '-digit'.
_CSS_IDENTIFIER = re.compile(r"(?:--|-?[A-Za-z_\u0080-\U0010FFFF])[A-Za-z0-9_\-\u0080-\U0010FFFF]*")
_SANITIZE = re.compile(r"[^a-z0-9]+")


def is_css_identifier(value: str) -> bool:
    """True when ``value`` can follow ``#`` or ``.`` unescaped.

    Stricter than only rejecting CSS special characters: a leading digit, or a
    hyphen followed by a digit, also fails, so such ids fall back to the
    ``[id='...']`` attribute form.
    """

    return bool(value) and _CSS_IDENTIFIER.fullmatch(value) is not None


def _quote_attr(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _quote_text(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_selector(element: PageElement) -> str:
    """Return a Playwright selector for ``element``.

    Precedence: name, id (``#id`` when it is a valid CSS identifier, else an
    attribute selector), first class, label text, then a sentinel that
    matches nothing.
    """

    if element.name:
        return f"[name='{_quote_attr(element.name)}']"
    if element.id:
        if is_css_identifier(element.id):
            return f"#{element.id}"
        return f"[id='{_quote_attr(element.id)}']"
    if element.class_name:
        first = element.class_name.split()[0]
        if is_css_identifier(first):
            return f".{first}"
        return f"[class~='{_quote_attr(first)}']"
    if element.label:
        return f'text="{_quote_text(element.label.strip())}"'
    return UNKNOWN_SELECTOR


def infer_selector(label: Optional[str]) -> Optional[str]:
    """Guess a selector from a human-readable label (placeholder, name or id match)."""

    if not label or not label.strip():
        return None
    text = label.strip()
    token = _SANITIZE.sub("", text.lower())
    parts = [f"[placeholder*='{_quote_attr(text)}']"]
    if token:
        parts.append(f"[name*='{token}']")
        parts.append(f"[id*='{token}']")
    return ", ".join(parts)


__all__ = ["UNKNOWN_SELECTOR", "build_selector", "infer_selector", "is_css_identifier"]
