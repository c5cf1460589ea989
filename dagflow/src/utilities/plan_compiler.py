"""
Execution-Plan Compiler
=======================

Turns a validated DAG into a nested execution plan for the workflow engine.

The flat edge list is "un-flattened" in three passes:
1. Kahn topological sort (stable: ties keep author order)
2. scope reconstruction: nodes that belong exclusively to a `condition`
   branch or a `for-each` body are claimed by that construct
3. per-node translation into ModulePlan entries (scripts, sleeps, branches,
   loops) with retry/stop/skip directives and context injection

Validate first (dag_validator.validate_dag). A malformed DAG will not crash
the compiler but may silently lose nodes.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..agent_methods.data_models.dag_spec import DAG, DAGEdge, DAGNode, FLOW_INPUT, REF_PREFIX
from ..agent_methods.data_models.module_plan import (
    BranchCase,
    BranchPlan,
    ExecutionPlan,
    ExprParam,
    LoopPlan,
    Param,
    PlannedModule,
    RetryPolicy,
    ScriptPlan,
    SleepPlan,
)
from .errors import CompilationError
from .input_mapping import build_input_transforms, normalize_expression, normalize_module_id
from .io_logger import get_component_logger
from .node_type_registry import CONDITION, FOR_EACH, WAIT, NodeTypeRegistry, get_default_registry

logger = get_component_logger("PLAN_COMPILER", grouped=True)

DEFAULT_RETRIES = 3
DEFAULT_ITERATOR = "flow_input.items"
CONTROL_CONFIG_KEYS = ("retries", "stopAfterIf", "skipIf")

# Run-level fields every script receives unless the node maps them itself
CONTEXT_FIELDS = {
    "appId": "flow_input.appId",
    "serviceEnvs": "flow_input.serviceEnvs",
}
ERROR_CONTEXT_FIELDS = {
    "failedNodeId": "error.failed_step",
    "errorMessage": "error.message",
}
BASE_SCHEMA_PROPERTIES: Dict[str, Dict[str, Any]] = {
    "appId": {"type": "string", "description": "Application identifier"},
    "serviceEnvs": {"type": "object", "description": "Service URLs and API keys injected at run time"},
}


# -----------------------------
# Graph passes (pure)
# -----------------------------


def topological_sort(nodes: List[DAGNode], edges: List[DAGEdge]) -> List[DAGNode]:
    """Kahn's algorithm; nodes with equal rank keep their original order."""
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    in_degree: Dict[str, int] = {node.id: 0 for node in nodes}

    for edge in edges:
        if edge.from_ in adjacency:
            adjacency[edge.from_].append(edge.to)
        in_degree[edge.to] = in_degree.get(edge.to, 0) + 1

    queue = deque(node.id for node in nodes if in_degree[node.id] == 0)
    ordered_ids: List[str] = []
    while queue:
        current = queue.popleft()
        ordered_ids.append(current)
        for neighbor in adjacency.get(current, []):
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    by_id = {node.id: node for node in nodes}
    return [by_id[node_id] for node_id in ordered_ids if node_id in by_id]


def collect_branch_nodes(
    condition_id: str,
    edges: List[DAGEdge],
    ordered: List[DAGNode],
    incoming: Dict[str, List[DAGEdge]],
) -> Dict[str, Set[str]]:
    """
    Node ids claimed by each branch expression of a condition node.

    A node joins a branch when it is a direct target of that expression, or
    when every one of its incoming edges starts inside the branch. Targets of
    the condition's unconditional edges never join: they run after the branch.
    """
    out_edges = [e for e in edges if e.from_ == condition_id]
    after_nodes = {e.to for e in out_edges if not e.condition}

    branch_roots: Dict[str, Set[str]] = {}
    for edge in out_edges:
        if edge.condition:
            branch_roots.setdefault(edge.condition, set()).add(edge.to)

    branch_sets: Dict[str, Set[str]] = {}
    for expr, roots in branch_roots.items():
        members: Set[str] = set()
        for node in ordered:
            if node.id == condition_id or node.id in after_nodes or node.id in members:
                continue
            if node.id in roots:
                members.add(node.id)
                continue
            node_incoming = incoming.get(node.id, [])
            if node_incoming and all(e.from_ in members for e in node_incoming):
                members.add(node.id)
        branch_sets[expr] = members
    return branch_sets


def collect_loop_body_nodes(
    loop_id: str,
    edges: List[DAGEdge],
    ordered: List[DAGNode],
    incoming: Dict[str, List[DAGEdge]],
) -> Set[str]:
    """Node ids inside a for-each body: direct targets plus nodes fed only from the body."""
    direct_targets = {e.to for e in edges if e.from_ == loop_id}
    body: Set[str] = set()
    for node in ordered:
        if node.id == loop_id or node.id in body:
            continue
        if node.id in direct_targets:
            body.add(node.id)
            continue
        node_incoming = incoming.get(node.id, [])
        if node_incoming and all(e.from_ == loop_id or e.from_ in body for e in node_incoming):
            body.add(node.id)
    return body


def infer_input_schema(dag: DAG) -> Dict[str, Dict[str, Any]]:
    """Declare every top-level `$ref:flow_input.<field>` so the engine accepts it as a run input."""
    properties = {name: dict(spec) for name, spec in BASE_SCHEMA_PROPERTIES.items()}
    prefix = f"{REF_PREFIX}{FLOW_INPUT}."
    for node in dag.nodes:
        for ref in node.input_mapping.values():
            if not isinstance(ref, str) or not ref.startswith(prefix):
                continue
            field = ref[len(prefix):].split(".")[0]
            if field and field not in properties:
                properties[field] = {"type": "string"}
    return properties


# -----------------------------
# Compiler
# -----------------------------


@dataclass
class _Scopes:
    """Members claimed by each condition (per branch expression) and for-each node."""
    branches: Dict[str, Dict[str, Set[str]]] = field(default_factory=dict)
    loops: Dict[str, Set[str]] = field(default_factory=dict)

    def members(self, node_id: str) -> Set[str]:
        if node_id in self.loops:
            return self.loops[node_id]
        return set().union(*self.branches.get(node_id, {}).values())


class PlanCompiler:
    """Compiles DAGs against one node-type registry."""

    def __init__(self, registry: Optional[NodeTypeRegistry] = None):
        self.registry = registry or get_default_registry()

    def compile(self, dag: DAG, name: str) -> ExecutionPlan:
        ordered = topological_sort(dag.nodes, dag.edges)
        main_nodes = [n for n in ordered if n.id != dag.on_error] if dag.on_error else ordered
        node_ids = dag.node_ids()

        modules = self._build_modules(main_nodes, dag, node_ids)

        failure_module = None
        if dag.on_error:
            error_node = dag.get_node(dag.on_error)
            if error_node is not None:
                failure_module = self._failure_module(error_node, node_ids)

        plan = ExecutionPlan(
            summary=name,
            modules=modules,
            schema_properties=infer_input_schema(dag),
            failure_module=failure_module,
        )
        logger.info(f"Compiled '{name}'", data={
            "nodes": len(dag.nodes),
            "top_level_modules": len(modules),
            "has_failure_module": failure_module is not None,
        })
        return plan

    def _build_modules(self, ordered: List[DAGNode], dag: DAG, node_ids: List[str]) -> List[PlannedModule]:
        incoming = dag.incoming_edges()
        scopes = _Scopes()
        for node in ordered:
            if node.type == CONDITION:
                scopes.branches[node.id] = collect_branch_nodes(node.id, dag.edges, ordered, incoming)
            elif node.type == FOR_EACH:
                scopes.loops[node.id] = collect_loop_body_nodes(node.id, dag.edges, ordered, incoming)
        return self._scope_modules(ordered, {node.id for node in ordered}, dag, scopes, node_ids)

    def _scope_modules(
        self,
        ordered: List[DAGNode],
        scope_ids: Set[str],
        dag: DAG,
        scopes: _Scopes,
        node_ids: List[str],
    ) -> List[PlannedModule]:
        """Modules of one scope; constructs inside it claim their members, at any depth."""
        in_scope = [node for node in ordered if node.id in scope_ids]
        consumed: Set[str] = set()
        for node in in_scope:
            consumed.update(scopes.members(node.id))

        modules: List[PlannedModule] = []
        for node in in_scope:
            if node.id in consumed:
                continue
            if node.id in scopes.branches:
                modules.append(self._branch_module(node, dag, in_scope, scopes, node_ids))
            elif node.id in scopes.loops:
                modules.append(self._loop_module(node, dag, in_scope, scopes, node_ids))
            else:
                module = self._node_module(node, node_ids)
                if module is not None:
                    modules.append(module)
        return modules

    def _branch_module(
        self,
        node: DAGNode,
        dag: DAG,
        ordered: List[DAGNode],
        scopes: _Scopes,
        node_ids: List[str],
    ) -> PlannedModule:
        branch_sets = scopes.branches[node.id]
        cases: List[BranchCase] = []
        seen: Set[str] = set()
        for edge in dag.out_edges(node.id):
            if not edge.condition or edge.condition in seen:
                continue
            seen.add(edge.condition)
            cases.append(BranchCase(
                expr=normalize_expression(edge.condition, node_ids),
                body=self._scope_modules(ordered, branch_sets.get(edge.condition, set()), dag, scopes, node_ids),
            ))
        return PlannedModule(id=normalize_module_id(node.id), summary="Branch", plan=BranchPlan(branches=cases))

    def _loop_module(
        self,
        node: DAGNode,
        dag: DAG,
        ordered: List[DAGNode],
        scopes: _Scopes,
        node_ids: List[str],
    ) -> PlannedModule:
        iterator = node.config.get("iterator")
        if not isinstance(iterator, str) or not iterator:
            iterator = DEFAULT_ITERATOR
        return PlannedModule(
            id=normalize_module_id(node.id),
            summary="For each",
            plan=LoopPlan(
                iterator_expr=normalize_expression(iterator, node_ids),
                body=self._scope_modules(ordered, scopes.loops[node.id], dag, scopes, node_ids),
                parallel=bool(node.config.get("parallel", False)),
                skip_failures=bool(node.config.get("skipFailures", False)),
            ),
        )

    def _node_module(self, node: DAGNode, node_ids: List[str]) -> Optional[PlannedModule]:
        module_id = normalize_module_id(node.id)

        if node.type == WAIT:
            seconds = node.config.get("seconds", 0)
            return PlannedModule(id=module_id, summary=f"Wait {seconds}s", plan=SleepPlan(seconds=seconds))

        script_path = self.registry.script_path(node.type)
        if script_path is None:
            if self.registry.is_native(node.type):
                return None
            raise CompilationError(f"No script path for node type: {node.type}")

        config = node.config
        retries = node.retries
        if retries is None:
            config_retries = config.get("retries")
            retries = config_retries if _is_number(config_retries) else DEFAULT_RETRIES
        stop_after = config.get("stopAfterIf")
        skip_if = config.get("skipIf")
        script_config = {k: v for k, v in config.items() if k not in CONTROL_CONFIG_KEYS}

        params = build_input_transforms(script_config, node.input_mapping)
        _inject_missing(params, CONTEXT_FIELDS)

        return PlannedModule(
            id=module_id,
            summary=f"{node.type}: {node.id}",
            plan=ScriptPlan(path=script_path, params=params),
            retry=RetryPolicy.from_count(int(retries)),
            stop_after_expr=normalize_expression(stop_after, node_ids) if isinstance(stop_after, str) else None,
            skip_if_expr=normalize_expression(skip_if, node_ids) if isinstance(skip_if, str) else None,
        )

    def _failure_module(self, node: DAGNode, node_ids: List[str]) -> Optional[PlannedModule]:
        module = self._node_module(node, node_ids)
        if module is None or not isinstance(module.plan, ScriptPlan):
            logger.warning(f"onError node '{node.id}' is not a script; no failure module emitted")
            return None
        _inject_missing(module.plan.params, ERROR_CONTEXT_FIELDS)
        module.summary = f"onError: {node.id}"
        return module


def _inject_missing(params: Dict[str, Param], fields: Dict[str, str]) -> None:
    for name, expr in fields.items():
        if name not in params:
            params[name] = ExprParam(expr)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compile_dag(dag: DAG, name: str, registry: Optional[NodeTypeRegistry] = None) -> ExecutionPlan:
    """Compile a validated DAG into an execution plan."""
    return PlanCompiler(registry).compile(dag, name)
