"""Closed action vocabulary and alias resolution for scenario scripts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Tuple


class ActionKind(str, Enum):
    NAVIGATE = "navigate"
    FILL = "fill"
    CLICK = "click"
    SELECT_OPTION = "select_option"
    CHECK = "check"
    UNCHECK = "uncheck"
    HOVER = "hover"
    WAIT_FOR_SELECTOR = "wait_for_selector"
    WAIT_FOR_LOAD_STATE = "wait_for_load_state"
    DELAY = "delay"
    SCREENSHOT = "screenshot"
    ASSERT_VISIBLE = "assert_visible"
    ASSERT_TEXT = "assert_text"
    SCROLL_INTO_VIEW = "scroll_into_view"
    UNSUPPORTED = "unsupported"


@dataclass(slots=True)
class ActionSpec:
    kind: ActionKind
    aliases: Tuple[str, ...] = ()
    requires_selector: bool = False
    requires_value: bool = False
    description: str | None = None

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.kind.value,
            "aliases": list(self.aliases),
            "requires_selector": self.requires_selector,
            "requires_value": self.requires_value,
            "description": self.description or "",
        }


def normalize_action_name(name: str) -> str:
    """Lower-case ``name`` and drop separators so ``Select-Option`` == ``selectoption``."""

    return "".join(ch for ch in str(name).strip().lower() if ch not in "-_ ")


class ActionRegistry:
    """Maps the action names used in scripts onto :class:`ActionKind` values."""

    def __init__(self) -> None:
        self._specs: Dict[ActionKind, ActionSpec] = {}
        self._aliases: Dict[str, ActionKind] = {}

    def register(self, spec: ActionSpec) -> None:
        if spec.kind in self._specs:
            raise ValueError(f"Action '{spec.kind.value}' already registered")
        names = {normalize_action_name(spec.kind.value), *(normalize_action_name(a) for a in spec.aliases)}
        for alias in names:
            owner = self._aliases.get(alias)
            if owner is not None:
                raise ValueError(f"Alias '{alias}' already bound to '{owner.value}'")
        self._specs[spec.kind] = spec
        for alias in names:
            self._aliases[alias] = spec.kind

    def resolve(self, name: str | None) -> ActionKind:
        if not name:
            return ActionKind.UNSUPPORTED
        return self._aliases.get(normalize_action_name(name), ActionKind.UNSUPPORTED)

    def get(self, kind: ActionKind) -> ActionSpec:
        try:
            return self._specs[kind]
        except KeyError as exc:
            raise KeyError(f"Unknown action '{kind}'") from exc

    def kinds(self) -> List[ActionKind]:
        return list(self._specs)

    def __iter__(self) -> Iterator[ActionSpec]:
        return iter(self._specs.values())

    def metadata(self) -> List[Dict[str, Any]]:
        return [spec.to_metadata() for spec in self._specs.values()]


registry = ActionRegistry()

for _spec in (
    ActionSpec(ActionKind.NAVIGATE, ("goto", "open"), requires_value=True, description="Open a URL"),
    ActionSpec(ActionKind.FILL, ("type", "sendkeys", "input"), requires_selector=True,
               description="Clear a field and type a value"),
    ActionSpec(ActionKind.CLICK, requires_selector=True, description="Click an element"),
    ActionSpec(ActionKind.SELECT_OPTION, ("select",), requires_selector=True, requires_value=True,
               description="Choose an option of a select element"),
    ActionSpec(ActionKind.CHECK, requires_selector=True),
    ActionSpec(ActionKind.UNCHECK, requires_selector=True),
    ActionSpec(ActionKind.HOVER, requires_selector=True),
    ActionSpec(ActionKind.WAIT_FOR_SELECTOR, ("waitfor",), requires_selector=True,
               description="Wait until an element is visible"),
    ActionSpec(ActionKind.WAIT_FOR_LOAD_STATE, description="Wait for a page load state"),
    ActionSpec(ActionKind.DELAY, ("wait", "sleep", "pause"), description="Sleep for a number of milliseconds"),
    ActionSpec(ActionKind.SCREENSHOT, description="Capture a full-page screenshot"),
    ActionSpec(ActionKind.ASSERT_VISIBLE, ("expectvisible",), requires_selector=True),
    ActionSpec(ActionKind.ASSERT_TEXT, ("expecttext",), requires_selector=True, requires_value=True),
    ActionSpec(ActionKind.SCROLL_INTO_VIEW, ("scrollto", "scroll"), requires_selector=True),
    ActionSpec(ActionKind.UNSUPPORTED, description="Placeholder for names outside the vocabulary"),
):
    registry.register(_spec)

del _spec


__all__ = ["ActionKind", "ActionRegistry", "ActionSpec", "normalize_action_name", "registry"]
