"""Tests for the workflow graph model."""

from typing import Any

import pytest

from flowdrop.services.workflow.dto import (
    GraphEdge,
    GraphNode,
    PortDefinition,
    WorkflowGraph,
    extract_port_name,
)


class TestExtractPortName:
    """Handle parsing."""

    @pytest.mark.parametrize(
        ("handle", "direction", "expected"),
        [
            ("node2-input-text", "input", "text"),
            ("node1-output-True", "output", "True"),
            ("my-node-output-out-1", "output", "out-1"),
            ("node2-input-trigger", "input", "trigger"),
            ("garbage", "input", ""),
            ("node2-input-text", "output", ""),
            ("", "input", ""),
        ],
    )
    def test_extract_port_name(self, handle: str, direction: str, expected: str) -> None:
        assert extract_port_name(handle, direction) == expected


class TestGraphEdge:
    """Edge classification."""

    def test_trigger_handle_marks_trigger_edge(self) -> None:
        edge = GraphEdge.from_dict(
            {
                "id": "e1",
                "source": "gate",
                "target": "node2",
                "sourceHandle": "gate-output-true",
                "targetHandle": "node2-input-trigger",
            }
        )

        assert edge.is_trigger is True
        assert edge.branch_name == "true"
        assert edge.target_port == "trigger"

    def test_data_handle_is_not_trigger(self) -> None:
        edge = GraphEdge.from_dict(
            {
                "id": "e2",
                "source": "node1",
                "target": "node2",
                "sourceHandle": "node1-output-text",
                "targetHandle": "node2-input-text",
            }
        )

        assert edge.is_trigger is False
        assert edge.source_port == "text"
        assert edge.target_port == "text"

    def test_missing_handles_and_id(self) -> None:
        edge = GraphEdge.from_dict({"source": "a", "target": "b"})

        assert edge.id.startswith("edge_")
        assert edge.source_port == ""
        assert edge.target_port == ""
        assert edge.is_trigger is False


class TestGraphNode:
    """Node normalization."""

    def test_processor_type_prefers_executor_plugin(self) -> None:
        node = GraphNode.from_dict(
            {
                "id": "n1",
                "type": "default",
                "data": {"metadata": {"executor_plugin": "text_input", "id": "other"}},
            }
        )

        assert node.processor_type == "text_input"

    def test_processor_type_falls_back_to_metadata_id_then_type(self) -> None:
        by_id = GraphNode.from_dict({"id": "n1", "type": "x", "data": {"metadata": {"id": "y"}}})
        by_type = GraphNode.from_dict({"id": "n2", "type": "text_output"})

        assert by_id.processor_type == "y"
        assert by_type.processor_type == "text_output"

    def test_config_overlays_metadata_defaults(self) -> None:
        node = GraphNode.from_dict(
            {
                "id": "n1",
                "type": "text_transform",
                "data": {
                    "config": {"prefix": ">"},
                    "metadata": {"config": {"prefix": "", "suffix": "!"}},
                },
            }
        )

        assert node.config == {"prefix": ">", "suffix": "!"}

    def test_label_fallbacks(self) -> None:
        named = GraphNode.from_dict({"id": "n1", "data": {"metadata": {"name": "Input"}}})
        bare = GraphNode.from_dict({"id": "n2"})

        assert named.label == "Input"
        assert bare.label == "n2"

    def test_gateway_and_trigger_ports(self) -> None:
        node = GraphNode.from_dict(
            {
                "id": "gate",
                "type": "if_else",
                "data": {
                    "metadata": {
                        "type": "gateway",
                        "category": "logic",
                        "inputs": [{"id": "trigger", "dataType": "trigger"}],
                        "outputs": [{"id": "true"}, {"id": "false"}],
                    }
                },
            }
        )

        assert node.is_gateway is True
        assert node.category == "logic"
        assert node.has_trigger_input is True
        assert [port.id for port in node.outputs] == ["true", "false"]

    def test_defaults(self) -> None:
        node = GraphNode.from_dict({"id": "n1", "type": "text_input"})

        assert node.is_gateway is False
        assert node.category == "default"
        assert node.position is None

    def test_port_definition_aliases(self) -> None:
        port = PortDefinition.from_dict(
            {"name": "text", "dataType": "string", "required": True, "defaultValue": "hi"}
        )

        assert port.id == "text"
        assert port.data_type == "string"
        assert port.default == "hi"


class TestWorkflowGraph:
    """Graph parsing and the edge index."""

    @pytest.fixture
    def raw(self, node_factory: Any, edge_factory: Any) -> dict[str, Any]:
        return {
            "id": "wf-1",
            "name": "Example",
            "nodes": [
                node_factory("a", "text_input"),
                node_factory("b", "text_transform"),
                node_factory("c", "text_output"),
            ],
            "edges": [
                edge_factory("a", "b", "text", "text"),
                edge_factory("a", "b", "text", "data"),
                edge_factory("b", "c"),
                edge_factory("b", "ghost"),
            ],
        }

    def test_nodes_and_label(self, raw: dict[str, Any]) -> None:
        graph = WorkflowGraph.from_dict(raw)

        assert graph.id == "wf-1"
        assert graph.label == "Example"
        assert list(graph.nodes) == ["a", "b", "c"]
        assert graph.get_node("b").processor_type == "text_transform"
        assert graph.get_node("missing") is None

    def test_edges_to_unknown_nodes_are_dropped(self, raw: dict[str, Any]) -> None:
        graph = WorkflowGraph.from_dict(raw)

        assert len(graph.edges) == 3
        assert [edge.target for edge in graph.dropped_edges] == ["ghost"]

    def test_edge_index(self, raw: dict[str, Any]) -> None:
        graph = WorkflowGraph.from_dict(raw)

        assert len(graph.get_outgoing_edges("a")) == 2
        assert len(graph.get_incoming_edges("b")) == 2
        assert graph.get_incoming_edges("a") == []
        assert [e.target_port for e in graph.get_edges_between("a", "b")] == ["text", "data"]

    def test_duplicate_node_ids_last_wins(self, node_factory: Any) -> None:
        graph = WorkflowGraph.from_dict(
            {
                "id": "wf",
                "nodes": [node_factory("a", "text_input"), node_factory("a", "text_output")],
            }
        )

        assert len(graph.nodes) == 1
        assert graph.nodes["a"].processor_type == "text_output"

    def test_to_dict(self, raw: dict[str, Any]) -> None:
        data = WorkflowGraph.from_dict(raw).to_dict()

        assert data["id"] == "wf-1"
        assert [node["id"] for node in data["nodes"]] == ["a", "b", "c"]
        assert len(data["edges"]) == 3
