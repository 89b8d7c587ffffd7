"""Tests for WorkflowCompiler.

Test Coverage:
- Linear and diamond workflows compile to a valid topological order
- Cycles are rejected with the cycle path
- Structural validation messages
- Port and node mappings, including synthesized default mappings
- Failure wrapping and the consistency check
"""

from typing import Any

import pytest

from flowdrop.services.workflow.compiler import (
    CompiledWorkflow,
    PortMapping,
    WorkflowCompiler,
)
from flowdrop.services.workflow.dto import WorkflowGraph
from flowdrop.services.workflow.exceptions import CompilationError, CycleDetectedError


@pytest.fixture
def compiler() -> WorkflowCompiler:
    return WorkflowCompiler()


def assert_dependencies_first(compiled: CompiledWorkflow) -> None:
    order = compiled.execution_plan.execution_order
    for node_id in order:
        for dependency in compiled.get_dependencies(node_id):
            assert order.index(dependency) < order.index(node_id)


class TestCompileValidWorkflows:
    """Successful compilation."""

    def test_linear_workflow(self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]) -> None:
        compiled = compiler.compile(chain_graph)

        assert compiled.workflow_id == "wf-chain"
        assert compiled.execution_plan.execution_order == ("a", "b", "c")
        assert set(compiled.node_mappings) == {"a", "b", "c"}

    def test_diamond_workflow(
        self, compiler: WorkflowCompiler, diamond_graph: dict[str, Any]
    ) -> None:
        compiled = compiler.compile(diamond_graph)

        order = compiled.execution_plan.execution_order
        assert order[0] == "a"
        assert order[-1] == "d"
        assert_dependencies_first(compiled)
        assert compiled.get_dependencies("d") == ["b", "c"]
        assert compiled.get_dependents("a") == ["b", "c"]

    def test_accepts_parsed_graph(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]
    ) -> None:
        compiled = compiler.compile(WorkflowGraph.from_dict(chain_graph))

        assert compiled.execution_plan.execution_order == ("a", "b", "c")

    def test_single_node(self, compiler: WorkflowCompiler, node_factory: Any) -> None:
        compiled = compiler.compile({"id": "wf", "nodes": [node_factory("only", "text_input")]})

        assert compiled.execution_plan.execution_order == ("only",)
        assert compiled.execution_plan.metadata["root_nodes"] == ["only"]
        assert compiled.execution_plan.metadata["leaf_nodes"] == ["only"]

    def test_metadata(self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]) -> None:
        compiled = compiler.compile(chain_graph)

        assert compiled.metadata["label"] == "Chain"
        assert compiled.metadata["node_count"] == 3
        assert compiled.metadata["edge_count"] == 2
        assert compiled.metadata["dropped_edges"] == []
        assert "compiled_at" in compiled.metadata
        assert compiled.execution_plan.metadata["total_nodes"] == 3

    def test_edges_to_unknown_nodes_are_reported(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any], edge_factory: Any
    ) -> None:
        chain_graph["edges"].append(edge_factory("c", "ghost"))

        compiled = compiler.compile(chain_graph)

        assert compiled.metadata["dropped_edges"] == ["c-out-ghost-in"]
        assert compiled.metadata["edge_count"] == 2

    def test_compiled_workflow_is_read_only(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]
    ) -> None:
        compiled = compiler.compile(chain_graph)

        with pytest.raises(TypeError):
            compiled.node_mappings["z"] = compiled.node_mappings["a"]  # type: ignore[index]

    def test_to_dict(self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]) -> None:
        data = compiler.compile(chain_graph).to_dict()

        assert data["execution_plan"]["execution_order"] == ["a", "b", "c"]
        assert data["node_mappings"]["b"]["processor_type"] == "text_transform"
        assert data["dependency_graph"]["c"]["dependencies"] == ["b"]


class TestCycleRejection:
    """Cyclic workflows never compile."""

    def test_two_node_cycle(
        self, compiler: WorkflowCompiler, node_factory: Any, edge_factory: Any
    ) -> None:
        workflow = {
            "id": "wf-cycle",
            "nodes": [node_factory("a", "text_input"), node_factory("b", "text_output")],
            "edges": [edge_factory("a", "b"), edge_factory("b", "a")],
        }

        with pytest.raises(CycleDetectedError) as exc_info:
            compiler.compile(workflow)

        assert "circular dependency" in str(exc_info.value).lower()
        assert exc_info.value.cycle_path == ["a", "b", "a"]
        assert exc_info.value.error_code == "CYCLE_DETECTED"
        assert exc_info.value.workflow_id == "wf-cycle"

    def test_cycle_behind_valid_prefix(
        self, compiler: WorkflowCompiler, node_factory: Any, edge_factory: Any
    ) -> None:
        workflow = {
            "id": "wf-cycle",
            "nodes": [node_factory(n, "record") for n in ("s", "x", "y")],
            "edges": [edge_factory("s", "x"), edge_factory("x", "y"), edge_factory("y", "x")],
        }

        with pytest.raises(CycleDetectedError) as exc_info:
            compiler.compile(workflow)

        assert exc_info.value.cycle_path == ["x", "y", "x"]

    def test_self_loop(self, compiler: WorkflowCompiler, node_factory: Any, edge_factory: Any) -> None:
        workflow = {
            "id": "wf-loop",
            "nodes": [node_factory("a", "record")],
            "edges": [edge_factory("a", "a")],
        }

        with pytest.raises(CycleDetectedError):
            compiler.compile(workflow)


class TestValidation:
    """Structural validation messages."""

    def test_missing_workflow_id(self, compiler: WorkflowCompiler, node_factory: Any) -> None:
        with pytest.raises(CompilationError, match="Workflow ID is required"):
            compiler.compile({"nodes": [node_factory("a", "text_input")]})

    def test_no_nodes(self, compiler: WorkflowCompiler) -> None:
        with pytest.raises(CompilationError, match="at least one node"):
            compiler.compile({"id": "wf", "nodes": []})

    def test_node_without_id(self, compiler: WorkflowCompiler) -> None:
        with pytest.raises(CompilationError, match="Node at index 0 is missing an ID"):
            compiler.compile({"id": "wf", "nodes": [{"type": "text_input"}]})

    def test_node_without_processor_type(self, compiler: WorkflowCompiler) -> None:
        with pytest.raises(CompilationError, match="Node a is missing a processor type"):
            compiler.compile({"id": "wf", "nodes": [{"id": "a"}]})


class TestMappings:
    """Port and node mappings."""

    def test_port_mappings_follow_edges(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]
    ) -> None:
        plan = compiler.compile(chain_graph).execution_plan

        (mapping,) = plan.get_input_mappings("b")
        assert mapping.source_node == "a"
        assert mapping.source_output == "text"
        assert mapping.target_input == "text"
        assert mapping.edge_id == "a-text-b-text"
        assert plan.get_output_mappings("a") == (mapping,)
        assert plan.get_input_mappings("a") == ()

    def test_every_edge_becomes_a_mapping(
        self, compiler: WorkflowCompiler, node_factory: Any, edge_factory: Any
    ) -> None:
        workflow = {
            "id": "wf",
            "nodes": [node_factory("a", "text_input"), node_factory("b", "text_transform")],
            "edges": [
                edge_factory("a", "b", "text", "text"),
                edge_factory("a", "b", "text", "data"),
            ],
        }

        compiled = compiler.compile(workflow)

        inputs = compiled.execution_plan.get_input_mappings("b")
        assert [m.target_input for m in inputs] == ["text", "data"]
        assert compiled.dependency_graph.edge_count == 1

    def test_edges_without_handles_map_default_ports(
        self, compiler: WorkflowCompiler, diamond_graph: dict[str, Any]
    ) -> None:
        plan = compiler.compile(diamond_graph).execution_plan

        for mapping in plan.get_input_mappings("d"):
            assert mapping.source_output == "default"
            assert mapping.target_input == "default"

    def test_trigger_mapping(self, compiler: WorkflowCompiler, gateway_graph: dict[str, Any]) -> None:
        compiled = compiler.compile(gateway_graph)

        (mapping,) = compiled.execution_plan.get_input_mappings("upper")
        assert mapping.is_trigger is True
        assert mapping.branch_name == "true"
        assert compiled.node_mappings["gate"].is_gateway is True
        assert compiled.node_mappings["upper"].is_gateway is False

    def test_dependency_without_edge_gets_default_mapping(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]
    ) -> None:
        graph = WorkflowGraph.from_dict(chain_graph)
        dependency_graph = compiler.build_dependency_graph(graph)
        dependency_graph.add_edge("a", "c")

        plan = compiler.generate_execution_plan(graph, dependency_graph)

        assert PortMapping(source_node="a", target_node="c") in plan.get_input_mappings("c")

    def test_node_mapping_contents(
        self, compiler: WorkflowCompiler, chain_graph: dict[str, Any]
    ) -> None:
        mapping = compiler.compile(chain_graph).get_node_mapping("b")

        assert mapping is not None
        assert mapping.processor_type == "text_transform"
        assert dict(mapping.config) == {"transformationType": "uppercase"}
        assert mapping.label == "B"
        assert mapping.metadata["position"] == [0.0, 0.0]

    def test_port_mapping_round_trip(self) -> None:
        mapping = PortMapping("a", "b", "text", "trigger", True, "true", "e1")

        assert PortMapping.from_dict(mapping.to_dict()) == mapping


class TestFailureWrapping:
    """Unexpected failures and the consistency check."""

    def test_unexpected_error_is_wrapped(
        self,
        compiler: WorkflowCompiler,
        chain_graph: dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def explode(graph: WorkflowGraph) -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(compiler, "build_dependency_graph", explode)

        with pytest.raises(CompilationError) as exc_info:
            compiler.compile(chain_graph)

        assert str(exc_info.value) == "Failed to compile workflow: boom"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.error_code == "COMPILATION_FAILED"

    def test_mapping_mismatch_is_rejected(
        self,
        compiler: WorkflowCompiler,
        chain_graph: dict[str, Any],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        original = compiler.create_node_mappings

        def drop_last(graph: WorkflowGraph, order: tuple[str, ...]) -> dict[str, Any]:
            mappings = dict(original(graph, order))
            mappings.pop("c")
            return mappings

        monkeypatch.setattr(compiler, "create_node_mappings", drop_last)

        with pytest.raises(CompilationError) as exc_info:
            compiler.compile(chain_graph)

        assert exc_info.value.error_code == "COMPILED_WORKFLOW_MISMATCH"
        assert "missing mappings ['c']" in str(exc_info.value)
