"""Typed graph model for workflow definitions.

This module normalizes the raw graph JSON produced by the workflow editor
into immutable dataclasses and builds the edge index used for O(1)
neighbor lookups.

Raw format (field names are kept for compatibility with authoring tools)::

    {
        "id": "wf-1",
        "nodes": [
            {"id": "n1", "type": "default",
             "data": {"label": "Input", "config": {...},
                      "metadata": {"executor_plugin": "text_input",
                                   "inputs": [...], "outputs": [...]}}}
        ],
        "edges": [
            {"id": "e1", "source": "n1", "target": "n2",
             "sourceHandle": "n1-output-text", "targetHandle": "n2-input-text"}
        ]
    }

Handles follow ``{nodeId}-{input|output}-{portName}``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

TRIGGER_PORT = "trigger"
DEFAULT_PORT = "default"


def extract_port_name(handle: str, direction: str) -> str:
    """Extract the port name from a connection handle.

    Splits on the literal ``-{direction}-`` and returns the second segment.
    An empty or unparsable handle yields an empty string.

    Args:
        handle: Handle string such as ``"node2-input-text"``.
        direction: ``"input"`` or ``"output"``.

    Returns:
        The port name, or ``""``.

    Example:
        >>> extract_port_name("node1-output-True", "output")
        'True'
        >>> extract_port_name("garbage", "input")
        ''
    """
    if not handle:
        return ""
    parts = handle.split(f"-{direction}-", 1)
    if len(parts) == 2:
        return parts[1]
    return ""


@dataclass(frozen=True, slots=True)
class PortDefinition:
    """A declared input or output port of a node."""

    id: str
    name: str = ""
    data_type: str = "mixed"
    required: bool = False
    default: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PortDefinition:
        return cls(
            id=str(data.get("id") or data.get("name") or ""),
            name=str(data.get("name") or data.get("id") or ""),
            data_type=str(data.get("dataType", data.get("data_type", "mixed"))),
            required=bool(data.get("required", False)),
            default=data.get("defaultValue", data.get("default")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "data_type": self.data_type,
            "required": self.required,
            "default": self.default,
        }


@dataclass(frozen=True, slots=True)
class GraphNode:
    """A processing step of the workflow.

    Attributes:
        id: Unique node id within the workflow.
        processor_type: Processor registry key executing the node.
        label: Display label.
        config: Processor configuration (metadata defaults overlaid by the
            node's own config).
        metadata: Raw node metadata (category, gateway type, schemas).
        inputs: Declared input ports.
        outputs: Declared output ports.
        position: Editor coordinates, ignored by the engine.
    """

    id: str
    processor_type: str
    label: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    inputs: tuple[PortDefinition, ...] = ()
    outputs: tuple[PortDefinition, ...] = ()
    position: tuple[float, float] | None = None

    @classmethod
    def from_dict(cls, node_data: dict[str, Any]) -> GraphNode:
        """Build a node from its raw editor representation.

        The processor type prefers ``data.metadata.executor_plugin``, then
        ``data.metadata.id``, then the node ``type``.
        """
        node_id = str(node_data.get("id") or "")
        data = node_data.get("data") or {}
        metadata = data.get("metadata") or {}

        processor_type = (
            metadata.get("executor_plugin")
            or metadata.get("id")
            or node_data.get("type")
            or ""
        )
        label = data.get("label") or metadata.get("name") or node_id
        config = {**(metadata.get("config") or {}), **(data.get("config") or {})}

        position = None
        raw_position = node_data.get("position")
        if isinstance(raw_position, dict):
            position = (
                float(raw_position.get("x", 0)),
                float(raw_position.get("y", 0)),
            )

        return cls(
            id=node_id,
            processor_type=str(processor_type),
            label=str(label),
            config=config,
            metadata=dict(metadata),
            inputs=tuple(PortDefinition.from_dict(p) for p in metadata.get("inputs") or []),
            outputs=tuple(PortDefinition.from_dict(p) for p in metadata.get("outputs") or []),
            position=position,
        )

    @property
    def is_gateway(self) -> bool:
        """Gateway nodes route control flow through named branches."""
        return self.metadata.get("type") == "gateway"

    @property
    def category(self) -> str:
        return str(self.metadata.get("category") or "default")

    @property
    def has_trigger_input(self) -> bool:
        return any(port.data_type == TRIGGER_PORT for port in self.inputs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "processor_type": self.processor_type,
            "label": self.label,
            "config": self.config,
            "metadata": self.metadata,
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
            "position": list(self.position) if self.position else None,
        }


@dataclass(frozen=True, slots=True)
class GraphEdge:
    """A directed connection between two node ports.

    Attributes:
        id: Edge id (generated when absent).
        source: Source node id.
        target: Target node id.
        source_handle: Raw source handle.
        target_handle: Raw target handle.
        source_port: Port name parsed from the source handle.
        target_port: Port name parsed from the target handle.
        is_trigger: True iff the target port is ``trigger``.
        branch_name: Output branch of a gateway (the source port name).
        data: Extra edge data carried by the editor.
    """

    id: str
    source: str
    target: str
    source_handle: str = ""
    target_handle: str = ""
    source_port: str = ""
    target_port: str = ""
    is_trigger: bool = False
    branch_name: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, edge_data: dict[str, Any]) -> GraphEdge:
        source_handle = str(edge_data.get("sourceHandle") or "")
        target_handle = str(edge_data.get("targetHandle") or "")
        source_port = extract_port_name(source_handle, "output")
        target_port = extract_port_name(target_handle, "input")

        return cls(
            id=str(edge_data.get("id") or f"edge_{uuid.uuid4().hex[:12]}"),
            source=str(edge_data.get("source") or ""),
            target=str(edge_data.get("target") or ""),
            source_handle=source_handle,
            target_handle=target_handle,
            source_port=source_port,
            target_port=target_port,
            is_trigger=target_port == TRIGGER_PORT,
            branch_name=source_port,
            data=dict(edge_data.get("data") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "source_handle": self.source_handle,
            "target_handle": self.target_handle,
            "source_port": self.source_port,
            "target_port": self.target_port,
            "is_trigger": self.is_trigger,
            "branch_name": self.branch_name,
            "data": self.data,
        }


@dataclass(slots=True)
class WorkflowGraph:
    """A parsed workflow with its edge index.

    Edges whose source or target is not a node of the graph are dropped
    with a warning; the rest of the graph stays usable.

    Attributes:
        id: Workflow id.
        label: Workflow label.
        nodes: Nodes keyed by id, in definition order.
        edges: Valid edges, in definition order.
        incoming: Edges entering each node.
        outgoing: Edges leaving each node.
        dropped_edges: Edges discarded because they reference unknown nodes.
    """

    id: str
    label: str = ""
    nodes: dict[str, GraphNode] = field(default_factory=dict)
    edges: list[GraphEdge] = field(default_factory=list)
    incoming: dict[str, list[GraphEdge]] = field(default_factory=dict)
    outgoing: dict[str, list[GraphEdge]] = field(default_factory=dict)
    dropped_edges: list[GraphEdge] = field(default_factory=list)

    @classmethod
    def from_dict(cls, workflow_data: dict[str, Any]) -> WorkflowGraph:
        """Parse raw workflow data and build the edge index."""
        graph = cls(
            id=str(workflow_data.get("id") or ""),
            label=str(workflow_data.get("label") or workflow_data.get("name") or ""),
        )

        for raw_node in workflow_data.get("nodes") or []:
            node = GraphNode.from_dict(raw_node)
            # Duplicate ids: last definition wins, like a dict literal
            graph.nodes[node.id] = node

        for node_id in graph.nodes:
            graph.incoming[node_id] = []
            graph.outgoing[node_id] = []

        for raw_edge in workflow_data.get("edges") or []:
            graph.add_edge(GraphEdge.from_dict(raw_edge))

        return graph

    def add_edge(self, edge: GraphEdge) -> bool:
        """Index an edge, dropping it when an endpoint is unknown.

        Returns:
            True if the edge was indexed.
        """
        if edge.source not in self.nodes or edge.target not in self.nodes:
            logger.warning(
                "Dropping edge %s referencing unknown node",
                edge.id,
                extra={
                    "context": {
                        "workflow_id": self.id,
                        "edge_id": edge.id,
                        "source": edge.source,
                        "target": edge.target,
                    }
                },
            )
            self.dropped_edges.append(edge)
            return False

        self.edges.append(edge)
        self.outgoing[edge.source].append(edge)
        self.incoming[edge.target].append(edge)
        return True

    def get_node(self, node_id: str) -> GraphNode | None:
        return self.nodes.get(node_id)

    def get_incoming_edges(self, node_id: str) -> list[GraphEdge]:
        return self.incoming.get(node_id, [])

    def get_outgoing_edges(self, node_id: str) -> list[GraphEdge]:
        return self.outgoing.get(node_id, [])

    def get_edges_between(self, source: str, target: str) -> list[GraphEdge]:
        """All edges from ``source`` into ``target`` (one per port pair)."""
        return [edge for edge in self.outgoing.get(source, []) if edge.target == target]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "nodes": [node.to_dict() for node in self.nodes.values()],
            "edges": [edge.to_dict() for edge in self.edges],
        }


__all__ = [
    "DEFAULT_PORT",
    "TRIGGER_PORT",
    "GraphEdge",
    "GraphNode",
    "PortDefinition",
    "WorkflowGraph",
    "extract_port_name",
]
