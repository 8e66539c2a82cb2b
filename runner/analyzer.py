"""Static HTML analysis producing the interactive elements of a page."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union

from bs4 import BeautifulSoup, Tag

from scenario.dsl.models import PageAnalysis, PageElement

log = logging.getLogger(__name__)

MAX_LINKS = 20

_BUTTON_INPUT_TYPES = {"submit", "button", "reset", "image"}
_ELEMENT_TAGS = ["input", "button", "select", "textarea", "a"]


class PageAnalyzer(Protocol):
    """Anything that turns page HTML into a :class:`PageAnalysis` (sync or async)."""

    def analyze_html(self, html: str) -> Union[PageAnalysis, Awaitable[PageAnalysis]]:
        ...


def _clean(text: str) -> str:
    return " ".join(text.split())


def _text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    return _clean(node.get_text()) or None


def _attr(node: Tag, name: str) -> Optional[str]:
    value = node.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value


def xpath_of(node: Tag) -> str:
    """Positional xpath of ``node``, one ``tag[n]`` segment per ancestor."""

    segments: List[str] = []
    current: Optional[Tag] = node
    while current is not None and current.name != "[document]":
        index = len(current.find_previous_siblings(current.name)) + 1
        segments.append(f"{current.name}[{index}]")
        current = current.parent
    return "/" + "/".join(reversed(segments))


def _label_for(soup: BeautifulSoup, node: Tag) -> Optional[str]:
    element_id = node.get("id")
    if element_id:
        label = soup.find("label", attrs={"for": element_id})
        if label is not None:
            return _text(label)
    return None


def _element_for(soup: BeautifulSoup, node: Tag) -> Optional[Dict[str, Any]]:
    tag = node.name
    base: Dict[str, Any] = {
        "id": _attr(node, "id"),
        "name": _attr(node, "name"),
        "className": _attr(node, "class"),
        "placeholder": _attr(node, "placeholder"),
        "xpath": xpath_of(node),
        "isRequired": node.has_attr("required"),
        "label": _attr(node, "aria-label") or None,
    }

    if tag == "a":
        if not node.get("href"):
            return None
        return {**base, "type": "link", "href": _attr(node, "href"), "label": base["label"] or _text(node)}
    if tag == "button":
        return {**base, "type": "button", "inputType": (_attr(node, "type") or "submit").lower(),
                "label": base["label"] or _text(node)}
    if tag == "input":
        input_type = (_attr(node, "type") or "text").lower()
        if input_type in _BUTTON_INPUT_TYPES:
            return {**base, "type": "button", "inputType": input_type,
                    "label": base["label"] or _attr(node, "value") or None}
        kind = input_type if input_type in {"checkbox", "radio"} else "input"
        base = {**base, "type": kind, "inputType": input_type}
    elif tag == "select":
        base = {**base, "type": "select"}
    elif tag == "textarea":
        base = {**base, "type": "textarea"}
    else:
        return None

    # Enclosing <label> wins over <label for=...>.
    if not base["label"]:
        base["label"] = _text(node.find_parent("label")) or _label_for(soup, node)
    return base


def _title(soup: BeautifulSoup) -> str:
    title = _text(soup.find("title"))
    if title:
        return title
    meta = soup.find("meta", attrs={"property": lambda value: bool(value) and value.lower() == "og:title"})
    if meta is not None and _clean(_attr(meta, "content") or ""):
        return _clean(_attr(meta, "content"))
    return _text(soup.find("h1")) or "Untitled Page"


def describe(title: str, elements: List[PageElement]) -> str:
    """Plain-text summary grouping elements by type and listing required fields."""

    if not elements:
        return f"Page '{title}' has no interactive elements."
    counts = Counter(element.type for element in elements)
    grouped = ", ".join(f"{count} {kind}" for kind, count in sorted(counts.items()))
    lines = [f"Page '{title}' contains {len(elements)} interactive elements: {grouped}."]
    for kind in sorted(counts):
        names = [element.label or element.name or element.id or element.placeholder
                 for element in elements if element.type == kind]
        named = [name for name in names if name]
        if named:
            lines.append(f"{kind.capitalize()}: {', '.join(named)}")
    required = [element.label or element.name or element.id for element in elements if element.is_required]
    required = [name for name in required if name]
    if required:
        lines.append(f"Required fields: {', '.join(required)}")
    return "\n".join(lines)


class HtmlPageAnalyzer:
    """Default :class:`PageAnalyzer` built on BeautifulSoup's ``html.parser`` tree builder."""

    def __init__(self, *, max_links: int = MAX_LINKS) -> None:
        self.max_links = max_links

    def analyze_html(self, html: str) -> PageAnalysis:
        soup = BeautifulSoup(html or "", "html.parser")

        fields: List[Dict[str, Any]] = []
        links: List[Dict[str, Any]] = []
        for node in soup.find_all(_ELEMENT_TAGS):
            item = _element_for(soup, node)
            if item is None:
                continue
            (links if item["type"] == "link" else fields).append(item)

        elements = [PageElement.model_validate(item) for item in fields + links[: self.max_links]]
        title = _title(soup)
        log.debug("Analyzed page '%s': %d elements", title, len(elements))
        return PageAnalysis(title=title, elements=tuple(elements), description=describe(title, elements))


__all__ = ["HtmlPageAnalyzer", "MAX_LINKS", "PageAnalyzer", "describe", "xpath_of"]
