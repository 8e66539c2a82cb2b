"""Scenario script DSL: models, action registry and result records."""

from .models import Action, Assertion, PageAnalysis, PageElement, PageTarget, Scenario, Step
from .registry import ActionKind, ActionRegistry, ActionSpec, registry
from .results import ActionOutcome, ExecutionStatus, ScenarioExecutionResult, StepOutcome

__all__ = [
    "Action",
    "ActionKind",
    "ActionOutcome",
    "ActionRegistry",
    "ActionSpec",
    "Assertion",
    "ExecutionStatus",
    "PageAnalysis",
    "PageElement",
    "PageTarget",
    "Scenario",
    "ScenarioExecutionResult",
    "Step",
    "StepOutcome",
    "registry",
]
