"""Typed models for scenario scripts and recorder page elements."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, ClassVar, Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .registry import ActionKind, registry


def _fold(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


class WireModel(BaseModel):
    """Base model whose input keys match field names case-insensitively.

    ``ScenarioName``, ``scenarioname`` and ``scenario_name`` all bind the same
    field. Output uses camelCase via ``by_alias=True``.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    # Additional input spellings, folded key -> field name.
    KEY_ALIASES: ClassVar[Dict[str, str]] = {}

    @model_validator(mode="before")
    @classmethod
    def _fold_keys(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        fields = {_fold(name): name for name in cls.model_fields}
        extras = {_fold(k): v for k, v in cls.KEY_ALIASES.items()}
        data: Dict[str, Any] = {}
        deferred: List[Tuple[str, Any]] = []
        for key, item in value.items():
            if not isinstance(key, str):
                continue
            folded = _fold(key)
            if folded in fields:
                data.setdefault(fields[folded], item)
            elif folded in extras:
                deferred.append((extras[folded], item))
        for name, item in deferred:
            if data.get(name) is None:
                data[name] = item
        return cls._prepare(data)

    @classmethod
    def _prepare(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        return data

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _normalize_order(items: Sequence[Any], label: str) -> Tuple[Any, ...]:
    """Fill missing ``order`` values from input position, reject duplicates, sort."""

    normalized = []
    for position, item in enumerate(items, start=1):
        if item.order is None:
            item = item.model_copy(update={"order": position})
        normalized.append(item)
    seen: Dict[int, int] = {}
    for item in normalized:
        if item.order in seen:
            raise ValueError(f"duplicate {label} order {item.order}")
        seen[item.order] = 1
    return tuple(sorted(normalized, key=lambda entry: entry.order))


class Action(WireModel):
    """Single declarative browser action inside a step."""

    KEY_ALIASES: ClassVar[Dict[str, str]] = {"url": "value"}

    order: Optional[int] = None
    element: str = ""
    action: str = Field(min_length=1)
    kind: ActionKind = Field(default=ActionKind.UNSUPPORTED, exclude=True)
    value: Optional[str] = None
    selector: Optional[str] = None
    delay_ms: int = Field(default=0, ge=0)
    is_navigation: bool = False

    @classmethod
    def _prepare(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        raw = data.get("action")
        data["kind"] = registry.resolve(raw if isinstance(raw, str) else None)
        value = data.get("value")
        if isinstance(value, bool):
            data["value"] = "true" if value else "false"
        elif isinstance(value, (int, float)):
            data["value"] = str(value)
        if data.get("element") is None:
            data.pop("element", None)
        for optional in ("delay_ms", "is_navigation"):
            if data.get(optional) is None:
                data.pop(optional, None)
        return data

    @field_validator("selector")
    @classmethod
    def _blank_selector(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def is_supported(self) -> bool:
        return self.kind is not ActionKind.UNSUPPORTED


class Assertion(WireModel):
    """Post-action expectation on a step."""

    type: Literal["url", "visible", "text"]
    expected: str = ""
    selector: Optional[str] = None

    @classmethod
    def _prepare(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        kind = data.get("type")
        if isinstance(kind, str):
            kind = kind.strip().lower()
            data["type"] = "visible" if kind == "element" else kind
        if data.get("expected") is None:
            data.pop("expected", None)
        return data


class Step(WireModel):
    """Page-level grouping of actions."""

    order: Optional[int] = None
    page_name: str = ""
    page_url: Optional[str] = None
    actions: Tuple[Action, ...] = ()
    expected_navigation: Optional[str] = None
    assertions: Tuple[Assertion, ...] = ()

    @classmethod
    def _prepare(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        for key in ("page_name", "actions", "assertions"):
            if data.get(key) is None:
                data.pop(key, None)
        if isinstance(data.get("page_url"), str) and not data["page_url"].strip():
            data["page_url"] = None
        return data

    @field_validator("actions")
    @classmethod
    def _order_actions(cls, value: Tuple[Action, ...]) -> Tuple[Action, ...]:
        return _normalize_order(value, "action")

    @property
    def last_navigation_index(self) -> Optional[int]:
        index: Optional[int] = None
        for position, action in enumerate(self.actions):
            if action.is_navigation:
                index = position
        return index


class Scenario(WireModel):
    """Top-level test document."""

    scenario_name: str = Field(min_length=1)
    description: Optional[str] = None
    steps: Tuple[Step, ...] = Field(min_length=1)

    @field_validator("scenario_name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("scenarioName must not be blank")
        return value

    @field_validator("steps")
    @classmethod
    def _order_steps(cls, value: Tuple[Step, ...]) -> Tuple[Step, ...]:
        return _normalize_order(value, "step")


class PageTarget(WireModel):
    """Page the recorder is asked to visit."""

    order: Optional[int] = None
    page_name: str = ""
    page_url: str = Field(min_length=1)


ElementType = Literal["input", "button", "select", "textarea", "link", "checkbox", "radio"]


class PageElement(WireModel):
    """Interactive element discovered by a page analyzer."""

    type: ElementType
    id: Optional[str] = None
    name: Optional[str] = None
    class_name: Optional[str] = None
    placeholder: Optional[str] = None
    label: Optional[str] = None
    xpath: Optional[str] = None
    input_type: Optional[str] = None
    href: Optional[str] = None
    is_required: bool = False

    @classmethod
    def _prepare(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        kind = data.get("type")
        if isinstance(kind, str):
            data["type"] = kind.strip().lower()
        for key in ("id", "name", "class_name", "placeholder", "label", "input_type", "href"):
            value = data.get(key)
            if isinstance(value, str):
                value = value.strip()
                data[key] = value or None
        return data

    @property
    def key(self) -> Optional[str]:
        """Identity used to de-duplicate inputs: label, then id, then name."""

        return self.label or self.id or self.name


class PageAnalysis(WireModel):
    title: str = "Untitled Page"
    elements: Tuple[PageElement, ...] = ()
    description: str = ""


__all__ = [
    "Action",
    "Assertion",
    "ElementType",
    "PageAnalysis",
    "PageElement",
    "PageTarget",
    "Scenario",
    "Step",
    "WireModel",
]
