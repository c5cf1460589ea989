"""
Tests for structural DAG validation.

Every check accumulates into the result; a DAG with several problems reports
all of them at once.
"""

import pytest
from pydantic import ValidationError

from dagflow.src.agent_methods.data_models.dag_spec import DAG
from dagflow.src.utilities.dag_validator import has_cycle, validate_dag
from dagflow.src.utilities.errors import StructuralValidationError
from dagflow.src.utilities.node_type_registry import NodeTypeRegistry


def make_dag(nodes, edges=(), on_error=None) -> DAG:
    data = {"nodes": list(nodes), "edges": list(edges)}
    if on_error is not None:
        data["onError"] = on_error
    return DAG.model_validate(data)


def messages(result):
    return [e.message for e in result.errors]


class TestValidDags:
    """Well-formed DAGs pass."""

    def test_outreach_dag_is_valid(self, outreach_dag):
        result = validate_dag(outreach_dag)
        assert result.valid
        assert result.errors == []

    def test_flow_input_refs_need_no_node(self):
        dag = make_dag([{"id": "a", "type": "http.call", "inputMapping": {"x": "$ref:flow_input.campaignId"}}])
        assert validate_dag(dag).valid

    def test_literal_mapping_values_are_ignored(self):
        dag = make_dag([{"id": "a", "type": "http.call", "inputMapping": {"limit": 5, "mode": "fast"}}])
        assert validate_dag(dag).valid

    def test_wait_and_for_each_are_accepted(self):
        dag = make_dag(
            [
                {"id": "pause", "type": "wait", "config": {"seconds": 30}},
                {"id": "each-lead", "type": "for-each", "config": {"iterator": "flow_input.leads"}},
                {"id": "send", "type": "http.call", "inputMapping": {"body.to": "$ref:flow_input.email"}},
            ],
            [{"from": "pause", "to": "each-lead"}, {"from": "each-lead", "to": "send"}],
        )
        assert validate_dag(dag).valid

    def test_long_chain(self):
        ids = [f"step-{i}" for i in range(1200)]
        dag = make_dag(
            [{"id": i, "type": "http.call"} for i in ids],
            [{"from": a, "to": b} for a, b in zip(ids, ids[1:])],
        )
        assert validate_dag(dag).valid


class TestModelConstraints:
    """Empty graphs and blank identifiers never reach the validator."""

    def test_empty_node_list_rejected(self):
        with pytest.raises(ValidationError):
            make_dag([])

    @pytest.mark.parametrize("node, edge", [
        ({"id": "", "type": "http.call"}, None),
        ({"id": "a", "type": ""}, None),
        ({"id": "a", "type": "http.call"}, {"from": "", "to": "a"}),
        ({"id": "a", "type": "http.call"}, {"from": "a", "to": ""}),
    ])
    def test_blank_identifiers_rejected(self, node, edge):
        with pytest.raises(ValidationError):
            make_dag([node], [edge] if edge else [])


class TestStructuralErrors:
    """Each failure mode yields the documented issue."""

    def test_duplicate_ids_reported_per_repeat(self):
        dag = make_dag([
            {"id": "a", "type": "http.call"},
            {"id": "a", "type": "http.call"},
            {"id": "a", "type": "http.call"},
        ])
        result = validate_dag(dag)
        assert messages(result).count('Duplicate node ID: "a"') == 2
        assert all(e.field == "nodes" for e in result.errors)

    def test_unknown_node_type(self):
        result = validate_dag(make_dag([{"id": "a", "type": "teleport"}]))
        assert not result.valid
        assert result.errors[0].field == "nodes[a].type"
        assert result.errors[0].message == 'Unknown node type: "teleport"'

    def test_edges_to_missing_nodes(self):
        dag = make_dag([{"id": "a", "type": "http.call"}], [{"from": "ghost", "to": "a"}, {"from": "a", "to": "void"}])
        result = validate_dag(dag)
        assert 'Edge references unknown source node: "ghost"' in messages(result)
        assert 'Edge references unknown target node: "void"' in messages(result)

    def test_cycle_detected(self):
        dag = make_dag(
            [{"id": "start", "type": "http.call"}, {"id": "a", "type": "http.call"}, {"id": "b", "type": "http.call"}],
            [{"from": "start", "to": "a"}, {"from": "a", "to": "b"}, {"from": "b", "to": "a"}],
        )
        result = validate_dag(dag)
        assert messages(result) == ["Workflow contains a cycle"]

    def test_three_node_cycle(self):
        dag = make_dag(
            [{"id": n, "type": "http.call"} for n in ("A", "B", "C")],
            [{"from": "A", "to": "B"}, {"from": "B", "to": "C"}, {"from": "C", "to": "A"}],
        )
        assert has_cycle(dag.nodes, dag.edges)
        assert "Workflow contains a cycle" in messages(validate_dag(dag))

    def test_self_loop_is_a_cycle(self):
        dag = make_dag([{"id": "a", "type": "http.call"}], [{"from": "a", "to": "a"}])
        result = validate_dag(dag)
        assert "Workflow contains a cycle" in messages(result)
        assert "No entry node found (all nodes have incoming edges)" in messages(result)

    def test_diamond_is_not_a_cycle(self):
        dag = make_dag(
            [{"id": n, "type": "http.call"} for n in ("a", "b", "c", "d")],
            [{"from": "a", "to": "b"}, {"from": "a", "to": "c"}, {"from": "b", "to": "d"}, {"from": "c", "to": "d"}],
        )
        assert not has_cycle(dag.nodes, dag.edges)
        assert validate_dag(dag).valid

    def test_ref_to_unknown_node(self):
        dag = make_dag([{"id": "a", "type": "http.call", "inputMapping": {"body.lead": "$ref:fetch-lead.output.lead"}}])
        result = validate_dag(dag)
        assert result.errors[0].field == "nodes[a].inputMapping.body.lead"
        assert result.errors[0].message == 'References unknown node: "fetch-lead"'

    def test_on_error_must_exist(self):
        dag = make_dag([{"id": "a", "type": "http.call"}], on_error="cleanup")
        result = validate_dag(dag)
        assert result.errors[0].field == "onError"
        assert result.errors[0].message == 'onError references unknown node: "cleanup"'

    def test_ids_colliding_as_module_ids(self):
        dag = make_dag([{"id": "lead-search", "type": "http.call"}, {"id": "lead_search", "type": "http.call"}])
        result = validate_dag(dag)
        assert messages(result) == [
            'Node IDs "lead-search" and "lead_search" both map to module ID "lead_search"',
        ]

    def test_errors_accumulate(self):
        dag = make_dag(
            [{"id": "a", "type": "teleport"}, {"id": "a", "type": "http.call", "inputMapping": {"x": "$ref:nope.output"}}],
            [{"from": "a", "to": "missing"}],
        )
        result = validate_dag(dag)
        assert len(result.errors) == 4

    def test_custom_registry(self):
        registry = NodeTypeRegistry.from_mapping({"only-this": "f/nodes/only_this"})
        dag = make_dag([{"id": "a", "type": "http.call"}])
        assert not validate_dag(dag, registry).valid


class TestRaiseForErrors:
    """Callers wanting an exception get the issue list attached."""

    def test_raises_with_issues(self):
        result = validate_dag(make_dag([{"id": "a", "type": "teleport"}]))
        with pytest.raises(StructuralValidationError) as exc_info:
            result.raise_for_errors()
        assert exc_info.value.errors == result.errors
        assert "Unknown node type" in str(exc_info.value)

    def test_valid_result_does_not_raise(self, outreach_dag):
        validate_dag(outreach_dag).raise_for_errors()
