"""Directed graph data structure for dependency analysis.

This module provides a generic directed graph used by the compiler to hold
the dependency graph of a workflow. Node and edge iteration follow
insertion order, so every algorithm that walks the graph is deterministic
for a fixed input graph.

Time Complexity:
- Node/Edge addition: O(1)
- Successor/predecessor lookup: O(1)

Space Complexity: O(V + E)
"""

from collections import defaultdict
from collections.abc import Hashable, Iterator
from typing import Generic, TypeVar

NodeId = TypeVar("NodeId", bound=Hashable)


class Graph(Generic[NodeId]):
    """Directed graph with forward and reverse adjacency.

    In a dependency graph an edge ``source -> target`` means that
    ``target`` depends on ``source``: successors are dependents and
    predecessors are dependencies.

    Type Parameters:
        NodeId: Hashable type used as node identifier (node id strings).

    Example:
        >>> graph = Graph[str]()
        >>> graph.add_edge("a", "b")
        >>> graph.get_successors("a")
        ['b']
        >>> graph.get_in_degree("b")
        1
    """

    __slots__ = ("_adjacency", "_edge_count", "_nodes", "_reverse_adjacency")

    def __init__(self) -> None:
        """Initialize an empty directed graph."""
        self._adjacency: defaultdict[NodeId, list[NodeId]] = defaultdict(list)
        self._reverse_adjacency: defaultdict[NodeId, list[NodeId]] = defaultdict(list)
        # dict keeps insertion order, a set would not
        self._nodes: dict[NodeId, None] = {}
        self._edge_count: int = 0

    @property
    def node_count(self) -> int:
        """Get the number of nodes in the graph."""
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        """Get the number of edges in the graph."""
        return self._edge_count

    @property
    def nodes(self) -> list[NodeId]:
        """Get all nodes in insertion order."""
        return list(self._nodes)

    def add_node(self, node_id: NodeId) -> None:
        """Add a node to the graph.

        If the node already exists, this is a no-op.

        Args:
            node_id: The identifier for the node to add.
        """
        self._nodes.setdefault(node_id, None)

    def add_edge(self, source: NodeId, target: NodeId) -> bool:
        """Add a directed edge from source to target.

        Both nodes are added to the graph if they don't exist. Parallel
        edges collapse into one: several edges between the same two nodes
        (through different ports) form a single dependency.

        Args:
            source: The source node ID.
            target: The target node ID.

        Returns:
            True if a new edge was added, False if it already existed.
        """
        self.add_node(source)
        self.add_node(target)
        if self.has_edge(source, target):
            return False
        self._adjacency[source].append(target)
        self._reverse_adjacency[target].append(source)
        self._edge_count += 1
        return True

    def has_edge(self, source: NodeId, target: NodeId) -> bool:
        """Check if an edge exists from source to target."""
        return target in self._adjacency.get(source, [])

    def get_successors(self, node_id: NodeId) -> list[NodeId]:
        """Get all successor nodes (dependents).

        Args:
            node_id: The node ID.

        Returns:
            List of successor node IDs. Empty list if node has no successors.
        """
        return list(self._adjacency.get(node_id, []))

    def get_predecessors(self, node_id: NodeId) -> list[NodeId]:
        """Get all predecessor nodes (dependencies).

        Args:
            node_id: The node ID.

        Returns:
            List of predecessor node IDs. Empty list if node has no predecessors.
        """
        return list(self._reverse_adjacency.get(node_id, []))

    def get_in_degree(self, node_id: NodeId) -> int:
        """Get the number of dependencies of a node."""
        return len(self._reverse_adjacency.get(node_id, []))

    def get_out_degree(self, node_id: NodeId) -> int:
        """Get the number of dependents of a node."""
        return len(self._adjacency.get(node_id, []))

    def copy(self) -> "Graph[NodeId]":
        """Create a copy with independent adjacency lists.

        Returns:
            A new Graph instance with the same nodes and edges.
        """
        new_graph = Graph[NodeId]()
        new_graph._nodes = dict(self._nodes)
        new_graph._adjacency = defaultdict(
            list,
            {k: v.copy() for k, v in self._adjacency.items()},
        )
        new_graph._reverse_adjacency = defaultdict(
            list,
            {k: v.copy() for k, v in self._reverse_adjacency.items()},
        )
        new_graph._edge_count = self._edge_count
        return new_graph

    def to_dict(self) -> dict[str, dict[str, object]]:
        """Serialize as ``{node: {dependencies, dependents, in_degree}}``."""
        return {
            str(node): {
                "dependencies": [str(n) for n in self.get_predecessors(node)],
                "dependents": [str(n) for n in self.get_successors(node)],
                "in_degree": self.get_in_degree(node),
            }
            for node in self._nodes
        }

    def __contains__(self, node_id: object) -> bool:
        """Check if a node exists in the graph."""
        return node_id in self._nodes

    def __iter__(self) -> Iterator[NodeId]:
        """Iterate over nodes in insertion order."""
        return iter(self._nodes)

    def __len__(self) -> int:
        """Get the number of nodes in the graph."""
        return len(self._nodes)

    def __repr__(self) -> str:
        """Return string representation of the graph."""
        return f"Graph(nodes={self.node_count}, edges={self.edge_count})"
