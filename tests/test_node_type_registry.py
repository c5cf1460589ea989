"""
Tests for the node-type registry and its YAML loading.
"""

import pytest

from dagflow.src.utilities.node_type_registry import (
    CONDITION,
    FOR_EACH,
    WAIT,
    Executable,
    NodeTypeRegistry,
)


class TestDefaultRegistry:
    def test_http_call_is_executable(self):
        registry = NodeTypeRegistry()
        assert registry.script_path("http.call") == "f/nodes/http_call"
        assert registry["end-run"] == Executable("f/nodes/end_run")

    def test_native_constructs(self):
        registry = NodeTypeRegistry()
        for node_type in (WAIT, CONDITION, FOR_EACH):
            assert registry.is_native(node_type)
            assert registry.script_path(node_type) is None

    def test_unknown_type(self):
        registry = NodeTypeRegistry()
        assert not registry.is_known("teleport")
        assert registry.script_path("teleport") is None
        assert not registry.is_native("teleport")


class TestFromYaml:
    def test_node_types_key(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text(
            "node_types:\n"
            "  http.call: f/nodes/http_call\n"
            "  crm-sync: f/custom/crm_sync\n"
            "  wait: null\n"
        )
        registry = NodeTypeRegistry.from_yaml(path)
        assert len(registry) == 3
        assert registry.script_path("crm-sync") == "f/custom/crm_sync"
        assert registry.is_native("wait")
        assert not registry.is_known("condition")

    def test_root_mapping(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text("http.call: f/nodes/http_call\n")
        assert list(NodeTypeRegistry.from_yaml(path)) == ["http.call"]

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text("broken: 42\n")
        with pytest.raises(ValueError):
            NodeTypeRegistry.from_yaml(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "registry.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            NodeTypeRegistry.from_yaml(path)
