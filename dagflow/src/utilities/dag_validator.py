"""
Structural validation of a DAG.

All checks run and accumulate issues; nothing short-circuits. The result is
data, so callers can reject the input, show it to a user, or feed it back to
the generation loop.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Set

from ..agent_methods.data_models.dag_spec import (
    DAG,
    DAGEdge,
    DAGNode,
    ValidationIssue,
    ValidationResult,
    is_flow_input_ref,
    is_ref,
    ref_target,
)
from .input_mapping import normalize_module_id
from .node_type_registry import NodeTypeRegistry, get_default_registry


def validate_dag(dag: DAG, registry: Optional[NodeTypeRegistry] = None) -> ValidationResult:
    registry = registry or get_default_registry()
    errors: List[ValidationIssue] = []
    node_ids = dag.node_ids()
    node_id_set = set(node_ids)

    # 1. Duplicate node ids
    if len(node_id_set) != len(node_ids):
        seen: Set[str] = set()
        for node_id in node_ids:
            if node_id in seen:
                errors.append(ValidationIssue(field="nodes", message=f'Duplicate node ID: "{node_id}"'))
            seen.add(node_id)

    # 2. Unknown node types
    for node in dag.nodes:
        if not registry.is_known(node.type):
            errors.append(ValidationIssue(
                field=f"nodes[{node.id}].type",
                message=f'Unknown node type: "{node.type}"',
            ))

    # 3. Edges must reference existing nodes
    for edge in dag.edges:
        if edge.from_ not in node_id_set:
            errors.append(ValidationIssue(field="edges", message=f'Edge references unknown source node: "{edge.from_}"'))
        if edge.to not in node_id_set:
            errors.append(ValidationIssue(field="edges", message=f'Edge references unknown target node: "{edge.to}"'))

    # 4. Cycles
    if has_cycle(dag.nodes, dag.edges):
        errors.append(ValidationIssue(field="edges", message="Workflow contains a cycle"))

    # 5. $ref targets
    for node in dag.nodes:
        for key, ref in node.input_mapping.items():
            if not is_ref(ref) or is_flow_input_ref(ref):
                continue
            target = ref_target(ref)
            if target not in node_id_set:
                errors.append(ValidationIssue(
                    field=f"nodes[{node.id}].inputMapping.{key}",
                    message=f'References unknown node: "{target}"',
                ))

    # 6. Entry node
    targets = {edge.to for edge in dag.edges}
    if dag.nodes and all(node.id in targets for node in dag.nodes):
        errors.append(ValidationIssue(field="nodes", message="No entry node found (all nodes have incoming edges)"))

    # 7. Failure handler must exist
    if dag.on_error is not None and dag.on_error not in node_id_set:
        errors.append(ValidationIssue(field="onError", message=f'onError references unknown node: "{dag.on_error}"'))

    # 8. Ids must stay distinct once normalized into engine module ids
    modules: Dict[str, str] = {}
    for node_id in dict.fromkeys(node_ids):
        module_id = normalize_module_id(node_id)
        if module_id in modules:
            errors.append(ValidationIssue(
                field="nodes",
                message=f'Node IDs "{modules[module_id]}" and "{node_id}" both map to module ID "{module_id}"',
            ))
        else:
            modules[module_id] = node_id

    return ValidationResult(valid=not errors, errors=errors)


def has_cycle(nodes: List[DAGNode], edges: List[DAGEdge]) -> bool:
    """Depth-first search with an on-stack set; a back edge means a cycle."""
    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        if edge.from_ in adjacency:
            adjacency[edge.from_].append(edge.to)

    visited: Set[str] = set()
    on_stack: Set[str] = set()

    for node in nodes:
        if node.id in visited:
            continue
        visited.add(node.id)
        on_stack.add(node.id)
        # Explicit stack of (node id, neighbor iterator) so long chains cannot overflow
        stack = [(node.id, iter(adjacency[node.id]))]
        while stack:
            node_id, neighbors = stack[-1]
            for neighbor in neighbors:
                if neighbor in on_stack:
                    return True
                if neighbor not in visited and neighbor in adjacency:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    stack.append((neighbor, iter(adjacency[neighbor])))
                    break
            else:
                on_stack.discard(node_id)
                stack.pop()
    return False
