"""Error taxonomy for scenario execution and recording."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExecutionError(Exception):
    """Base error carrying a machine-readable ``code`` and optional details."""

    code = "EXECUTION_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ScenarioParseError(ExecutionError):
    code = "INVALID_SCENARIO"


class NavigationError(ExecutionError):
    code = "NAVIGATION"


class ElementNotFoundError(ExecutionError):
    code = "ELEMENT_NOT_FOUND"


class ActionAssertionError(ExecutionError, AssertionError):
    code = "ASSERTION_FAILED"


class ActionValidationError(ExecutionError):
    code = "VALIDATION"


class TestDataError(ExecutionError):
    __test__ = False  # not a pytest class

    code = "TEST_DATA"


class BrowserLaunchError(ExecutionError):
    code = "BROWSER"


class BrowserSessionError(ExecutionError):
    code = "BROWSER"


class RunCancelledError(ExecutionError):
    code = "CANCELLED"

    def __init__(self, message: str = "Execution cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


__all__ = [
    "ActionAssertionError",
    "ActionValidationError",
    "BrowserLaunchError",
    "BrowserSessionError",
    "ElementNotFoundError",
    "ExecutionError",
    "NavigationError",
    "RunCancelledError",
    "ScenarioParseError",
    "TestDataError",
]
