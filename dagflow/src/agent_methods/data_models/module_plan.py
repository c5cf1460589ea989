"""
ModulePlan: the compiler's intermediate tree.

The compiler first builds this engine-agnostic tree (scripts, sleeps,
branches, loops, each wrapped with retry/stop/skip directives) and only then
serializes it to the engine's OpenFlow wire format. Children are owned by
value; nothing points back up the tree.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

# -----------------------------
# Parameters
# -----------------------------


@dataclass(frozen=True)
class StaticParam:
    """A literal value passed to the step as-is."""
    value: Any

    def render(self) -> str:
        return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "static", "value": self.value}


@dataclass(frozen=True)
class ExprParam:
    """An expression evaluated by the engine at run time."""
    expr: str

    def render(self) -> str:
        return self.expr

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "javascript", "expr": self.expr}


Param = Union[StaticParam, ExprParam]


# -----------------------------
# Module bodies
# -----------------------------


@dataclass
class ScriptPlan:
    path: str
    params: Dict[str, Param] = field(default_factory=dict)


@dataclass
class SleepPlan:
    seconds: Union[int, float]


@dataclass
class BranchCase:
    expr: str
    body: List["PlannedModule"] = field(default_factory=list)


@dataclass
class BranchPlan:
    branches: List[BranchCase] = field(default_factory=list)


@dataclass
class LoopPlan:
    iterator_expr: str
    body: List["PlannedModule"] = field(default_factory=list)
    parallel: bool = False
    skip_failures: bool = False


ModulePlan = Union[ScriptPlan, SleepPlan, BranchPlan, LoopPlan]


@dataclass(frozen=True)
class RetryPolicy:
    """Constant-delay retry. attempts == 0 means never retry."""
    attempts: int
    seconds: int = 5

    @classmethod
    def from_count(cls, retries: int) -> "RetryPolicy":
        if retries > 0:
            return cls(attempts=retries, seconds=5)
        return cls(attempts=0, seconds=0)


@dataclass
class PlannedModule:
    """One entry of a module list: a body plus per-step directives."""
    id: str
    plan: ModulePlan
    summary: Optional[str] = None
    retry: Optional[RetryPolicy] = None
    stop_after_expr: Optional[str] = None
    skip_if_expr: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        module: Dict[str, Any] = {"id": self.id}
        if self.summary is not None:
            module["summary"] = self.summary
        plan = self.plan

        if isinstance(plan, ScriptPlan):
            module["value"] = {
                "type": "script",
                "path": plan.path,
                "input_transforms": {name: p.to_wire() for name, p in plan.params.items()},
            }
        elif isinstance(plan, SleepPlan):
            module["value"] = {"type": "rawscript", "content": "", "language": "bun"}
            module["sleep"] = {"type": "static", "value": plan.seconds}
        elif isinstance(plan, BranchPlan):
            module["value"] = {
                "type": "branchone",
                "branches": [
                    {"summary": case.expr, "expr": case.expr, "modules": [m.to_wire() for m in case.body]}
                    for case in plan.branches
                ],
                "default": [],
            }
        elif isinstance(plan, LoopPlan):
            module["value"] = {
                "type": "forloopflow",
                "iterator": {"type": "javascript", "expr": plan.iterator_expr},
                "modules": [m.to_wire() for m in plan.body],
                "skip_failures": plan.skip_failures,
                "parallel": plan.parallel,
            }
        else:
            raise TypeError(f"Unknown module plan: {type(plan).__name__}")

        if self.retry is not None:
            module["retry"] = {"constant": {"attempts": self.retry.attempts, "seconds": self.retry.seconds}}
        if self.stop_after_expr is not None:
            module["stop_after_if"] = {"expr": self.stop_after_expr, "skip_if_stopped": True}
        if self.skip_if_expr is not None:
            module["skip_if"] = {"expr": self.skip_if_expr}
        return module


# -----------------------------
# Whole plan
# -----------------------------

JSON_SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"


@dataclass
class ExecutionPlan:
    """Compiler output: ready to push to the engine via to_openflow()."""
    summary: str
    modules: List[PlannedModule]
    schema_properties: Dict[str, Dict[str, Any]]
    failure_module: Optional[PlannedModule] = None
    same_worker: bool = False

    @property
    def schema(self) -> Dict[str, Any]:
        return {
            "$schema": JSON_SCHEMA_DIALECT,
            "type": "object",
            "properties": dict(self.schema_properties),
            "required": [],
        }

    def flow_value(self) -> Dict[str, Any]:
        value: Dict[str, Any] = {
            "modules": [m.to_wire() for m in self.modules],
            "same_worker": self.same_worker,
        }
        if self.failure_module is not None:
            value["failure_module"] = self.failure_module.to_wire()
        return value

    def to_openflow(self) -> Dict[str, Any]:
        return {"summary": self.summary, "value": self.flow_value(), "schema": self.schema}
