"""Workflow compiler.

Turns a ``WorkflowGraph`` into an immutable ``CompiledWorkflow``: a
topologically ordered execution plan, per-node port mappings and per-node
processor mappings.

Compilation is all-or-nothing. Validation failures and cycles raise
``CompilationError``; any other failure is wrapped in one, so callers never
receive a partially built plan.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from flowdrop.services.workflow.algorithms import GraphAlgorithms
from flowdrop.services.workflow.dto import DEFAULT_PORT, GraphEdge, WorkflowGraph
from flowdrop.services.workflow.exceptions import (
    CompilationError,
    CompiledWorkflowMismatchError,
    CycleDetectedError,
)
from flowdrop.services.workflow.graph import Graph


def _frozen(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class PortMapping:
    """Which output of a source node feeds which input of a target node.

    Attributes:
        source_node: Upstream node id.
        target_node: Downstream node id.
        source_output: Output port name (``"default"`` when unknown).
        target_input: Input port name (``"default"`` when unknown).
        is_trigger: Edge gates control flow instead of carrying data.
        branch_name: Gateway branch the edge leaves from.
        edge_id: Originating edge, None for a synthesized mapping.
    """

    source_node: str
    target_node: str
    source_output: str = DEFAULT_PORT
    target_input: str = DEFAULT_PORT
    is_trigger: bool = False
    branch_name: str = ""
    edge_id: str | None = None

    @classmethod
    def from_edge(cls, edge: GraphEdge) -> PortMapping:
        return cls(
            source_node=edge.source,
            target_node=edge.target,
            source_output=edge.source_port or DEFAULT_PORT,
            target_input=edge.target_port or DEFAULT_PORT,
            is_trigger=edge.is_trigger,
            branch_name=edge.branch_name,
            edge_id=edge.id,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PortMapping:
        return cls(
            source_node=str(data["source_node"]),
            target_node=str(data["target_node"]),
            source_output=str(data.get("source_output") or DEFAULT_PORT),
            target_input=str(data.get("target_input") or DEFAULT_PORT),
            is_trigger=bool(data.get("is_trigger", False)),
            branch_name=str(data.get("branch_name") or ""),
            edge_id=data.get("edge_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_node": self.source_node,
            "target_node": self.target_node,
            "source_output": self.source_output,
            "target_input": self.target_input,
            "is_trigger": self.is_trigger,
            "branch_name": self.branch_name,
            "edge_id": self.edge_id,
        }


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Topologically ordered plan.

    Every node of ``execution_order`` appears after all of its dependencies.
    The plan is read-only and may be shared between workers.
    """

    execution_order: tuple[str, ...]
    input_mappings: Mapping[str, tuple[PortMapping, ...]]
    output_mappings: Mapping[str, tuple[PortMapping, ...]]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def get_input_mappings(self, node_id: str) -> tuple[PortMapping, ...]:
        return self.input_mappings.get(node_id, ())

    def get_output_mappings(self, node_id: str) -> tuple[PortMapping, ...]:
        return self.output_mappings.get(node_id, ())

    def position(self, node_id: str) -> int:
        """Index of a node in the execution order."""
        return self.execution_order.index(node_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_order": list(self.execution_order),
            "input_mappings": {
                node: [m.to_dict() for m in mappings]
                for node, mappings in self.input_mappings.items()
            },
            "output_mappings": {
                node: [m.to_dict() for m in mappings]
                for node, mappings in self.output_mappings.items()
            },
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True, slots=True)
class NodeMapping:
    """Everything the node runtime needs to execute one node."""

    node_id: str
    processor_type: str
    config: Mapping[str, Any]
    label: str = ""
    category: str = "default"
    inputs: tuple[dict[str, Any], ...] = ()
    outputs: tuple[dict[str, Any], ...] = ()
    is_gateway: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "processor_type": self.processor_type,
            "config": dict(self.config),
            "label": self.label,
            "category": self.category,
            "inputs": list(self.inputs),
            "outputs": list(self.outputs),
            "is_gateway": self.is_gateway,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True, slots=True)
class CompiledWorkflow:
    """Result of a successful compilation."""

    workflow_id: str
    execution_plan: ExecutionPlan
    node_mappings: Mapping[str, NodeMapping]
    dependency_graph: Graph[str]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def get_node_mapping(self, node_id: str) -> NodeMapping | None:
        return self.node_mappings.get(node_id)

    def get_dependencies(self, node_id: str) -> list[str]:
        return self.dependency_graph.get_predecessors(node_id)

    def get_dependents(self, node_id: str) -> list[str]:
        return self.dependency_graph.get_successors(node_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "execution_plan": self.execution_plan.to_dict(),
            "node_mappings": {
                node_id: mapping.to_dict()
                for node_id, mapping in self.node_mappings.items()
            },
            "dependency_graph": self.dependency_graph.to_dict(),
            "metadata": dict(self.metadata),
        }


class WorkflowCompiler:
    """Compiles workflow graphs into execution plans.

    Example:
        >>> compiler = WorkflowCompiler()
        >>> compiled = compiler.compile(workflow_data)
        >>> compiled.execution_plan.execution_order
        ('input', 'transform', 'output')
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def compile(self, workflow: WorkflowGraph | Mapping[str, Any]) -> CompiledWorkflow:
        """Compile a workflow.

        Args:
            workflow: A parsed graph, or raw graph data.

        Returns:
            The compiled workflow.

        Raises:
            CycleDetectedError: If the dependency graph has a cycle.
            CompilationError: On any other failure.
        """
        workflow_id = ""
        try:
            graph = (
                workflow
                if isinstance(workflow, WorkflowGraph)
                else WorkflowGraph.from_dict(dict(workflow))
            )
            workflow_id = graph.id

            self.validate_graph(graph)
            dependency_graph = self.build_dependency_graph(graph)

            cycle = GraphAlgorithms.detect_cycle(dependency_graph)
            if cycle is not None:
                raise CycleDetectedError(cycle, workflow_id=graph.id)

            plan = self.generate_execution_plan(graph, dependency_graph)
            node_mappings = self.create_node_mappings(graph, plan.execution_order)

            compiled = CompiledWorkflow(
                workflow_id=graph.id,
                execution_plan=plan,
                node_mappings=node_mappings,
                dependency_graph=dependency_graph,
                metadata=_frozen(
                    {
                        "label": graph.label,
                        "node_count": len(graph.nodes),
                        "edge_count": len(graph.edges),
                        "dropped_edges": [edge.id for edge in graph.dropped_edges],
                        "compiled_at": datetime.now(UTC).isoformat(),
                    }
                ),
            )
            self.validate_compiled_workflow(compiled)

        except CompilationError as e:
            self.logger.error(
                "Workflow compilation failed: %s",
                e.message,
                extra={"context": {"workflow_id": workflow_id, "error_code": e.error_code}},
            )
            raise
        except CompiledWorkflowMismatchError as e:
            self.logger.error(
                "Compiled workflow failed consistency check",
                extra={"context": {"workflow_id": workflow_id, **e.details}},
            )
            raise CompilationError(
                str(e),
                workflow_id=workflow_id or None,
                cause=e,
                error_code=e.error_code,
            ) from e
        except Exception as e:
            self.logger.exception(
                "Unexpected error compiling workflow",
                extra={"context": {"workflow_id": workflow_id}},
            )
            raise CompilationError(
                f"Failed to compile workflow: {e}",
                workflow_id=workflow_id or None,
                cause=e,
            ) from e

        self.logger.info(
            "Compiled workflow %s: %d nodes, %d edges",
            compiled.workflow_id,
            compiled.metadata["node_count"],
            compiled.metadata["edge_count"],
            extra={
                "context": {
                    "workflow_id": compiled.workflow_id,
                    "execution_order": list(plan.execution_order),
                }
            },
        )
        return compiled

    def validate_graph(self, graph: WorkflowGraph) -> None:
        """Structural validation; the first violation wins.

        Raises:
            CompilationError: If the graph has no id, no nodes, or a node
                without an id or a processor type.
        """
        if not graph.id:
            raise CompilationError("Workflow ID is required")

        if not graph.nodes:
            raise CompilationError("Workflow must contain at least one node", workflow_id=graph.id)

        for index, node in enumerate(graph.nodes.values()):
            if not node.id:
                raise CompilationError(
                    f"Node at index {index} is missing an ID",
                    workflow_id=graph.id,
                )
            if not node.processor_type:
                raise CompilationError(
                    f"Node {node.id} is missing a processor type",
                    workflow_id=graph.id,
                    details={"node_id": node.id},
                )

    def build_dependency_graph(self, graph: WorkflowGraph) -> Graph[str]:
        """Build the node dependency graph from the indexed edges."""
        dependency_graph = Graph[str]()
        for node_id in graph.nodes:
            dependency_graph.add_node(node_id)
        for edge in graph.edges:
            dependency_graph.add_edge(edge.source, edge.target)
        return dependency_graph

    def generate_execution_plan(
        self,
        graph: WorkflowGraph,
        dependency_graph: Graph[str],
    ) -> ExecutionPlan:
        """Sort the graph and derive the port mappings of every node.

        Raises:
            CycleDetectedError: If the graph cannot be sorted.
        """
        order = GraphAlgorithms.topological_sort(dependency_graph)
        if order is None:
            cycle = GraphAlgorithms.detect_cycle(dependency_graph) or []
            raise CycleDetectedError(cycle, workflow_id=graph.id)

        input_mappings: dict[str, tuple[PortMapping, ...]] = {}
        output_mappings: dict[str, tuple[PortMapping, ...]] = {}

        for node_id in order:
            input_mappings[node_id] = tuple(
                mapping
                for dependency in dependency_graph.get_predecessors(node_id)
                for mapping in self._mappings_between(graph, dependency, node_id)
            )
            output_mappings[node_id] = tuple(
                mapping
                for dependent in dependency_graph.get_successors(node_id)
                for mapping in self._mappings_between(graph, node_id, dependent)
            )

        return ExecutionPlan(
            execution_order=tuple(order),
            input_mappings=_frozen(input_mappings),
            output_mappings=_frozen(output_mappings),
            metadata=_frozen(
                {
                    "total_nodes": len(order),
                    "root_nodes": GraphAlgorithms.find_roots(dependency_graph),
                    "leaf_nodes": GraphAlgorithms.find_leaves(dependency_graph),
                }
            ),
        )

    def _mappings_between(
        self,
        graph: WorkflowGraph,
        source: str,
        target: str,
    ) -> list[PortMapping]:
        edges = graph.get_edges_between(source, target)
        if not edges:
            # No edge metadata: synthesize a plain data mapping
            return [PortMapping(source_node=source, target_node=target)]
        return [PortMapping.from_edge(edge) for edge in edges]

    def create_node_mappings(
        self,
        graph: WorkflowGraph,
        execution_order: tuple[str, ...],
    ) -> Mapping[str, NodeMapping]:
        """Build the processor mapping of every node in execution order."""
        mappings: dict[str, NodeMapping] = {}
        for node_id in execution_order:
            node = graph.nodes[node_id]
            mappings[node_id] = NodeMapping(
                node_id=node.id,
                processor_type=node.processor_type,
                config=_frozen(node.config),
                label=node.label,
                category=node.category,
                inputs=tuple(port.to_dict() for port in node.inputs),
                outputs=tuple(port.to_dict() for port in node.outputs),
                is_gateway=node.is_gateway,
                metadata=_frozen(
                    {
                        "has_trigger_input": node.has_trigger_input,
                        "position": list(node.position) if node.position else None,
                    }
                ),
            )
        return _frozen(mappings)

    @staticmethod
    def validate_compiled_workflow(compiled: CompiledWorkflow) -> None:
        """Check that the execution order and the node mappings agree.

        Raises:
            CompiledWorkflowMismatchError: On any difference.
        """
        order = set(compiled.execution_plan.execution_order)
        mapped = set(compiled.node_mappings)
        missing = sorted(order - mapped)
        orphans = sorted(mapped - order)
        if missing or orphans:
            raise CompiledWorkflowMismatchError(missing, orphans)


__all__ = [
    "CompiledWorkflow",
    "ExecutionPlan",
    "NodeMapping",
    "PortMapping",
    "WorkflowCompiler",
]
