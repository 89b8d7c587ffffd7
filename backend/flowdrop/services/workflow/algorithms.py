"""Graph algorithms for dependency analysis.

This module provides the algorithms the compiler and the orchestrators run
over a dependency graph:
- Cycle detection using DFS with a recursion stack
- Topological sort using Kahn's algorithm (flat and level-grouped)
- Root, leaf and descendant queries

Every algorithm visits nodes in graph insertion order, so results are
deterministic for a fixed input graph.

Time Complexity:
- Cycle detection: O(V + E)
- Topological sort: O(V + E)
- Descendants: O(V + E)

Space Complexity: O(V + E) for all algorithms.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Hashable, Iterable
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from flowdrop.services.workflow.graph import Graph

NodeId = TypeVar("NodeId", bound=Hashable)


class GraphAlgorithms(Generic[NodeId]):
    """Collection of graph algorithms for workflow dependency graphs.

    Example:
        >>> graph = Graph[str]()
        >>> graph.add_edge("a", "b")
        >>> GraphAlgorithms.detect_cycle(graph) is None
        True
        >>> GraphAlgorithms.topological_sort(graph)
        ['a', 'b']
    """

    @staticmethod
    def detect_cycle(graph: Graph[NodeId]) -> list[NodeId] | None:
        """Detect a cycle using DFS with a recursion stack.

        A DFS is started from every unvisited node; revisiting a node that
        is still on the recursion stack means a back edge, i.e. a cycle.
        The walk is iterative so that long chains cannot exhaust the
        interpreter's recursion limit.

        Args:
            graph: The graph to check for cycles.

        Returns:
            List of node IDs forming the cycle (first node repeated at the
            end) if found, None otherwise.

        Example:
            >>> graph.add_edge("a", "b")
            >>> graph.add_edge("b", "a")
            >>> GraphAlgorithms.detect_cycle(graph)
            ['a', 'b', 'a']
        """
        visited: set[NodeId] = set()
        rec_stack: set[NodeId] = set()

        for start in graph.nodes:
            if start in visited:
                continue

            path: list[NodeId] = [start]
            stack: list[tuple[NodeId, list[NodeId]]] = [(start, graph.get_successors(start))]
            visited.add(start)
            rec_stack.add(start)

            while stack:
                node, pending = stack[-1]
                if not pending:
                    stack.pop()
                    path.pop()
                    rec_stack.discard(node)
                    continue

                neighbor = pending.pop(0)
                if neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    return [*path[cycle_start:], neighbor]
                if neighbor not in visited:
                    visited.add(neighbor)
                    rec_stack.add(neighbor)
                    path.append(neighbor)
                    stack.append((neighbor, graph.get_successors(neighbor)))

        return None

    @staticmethod
    def topological_sort(graph: Graph[NodeId]) -> list[NodeId] | None:
        """Kahn's algorithm producing a flat execution order.

        The queue is seeded with every node of in-degree 0 in insertion
        order; dependents reaching in-degree 0 are appended in the order
        their edges were added.

        Args:
            graph: The graph to sort.

        Returns:
            Node IDs in topological order, or None if the graph has a cycle.

        Example:
            >>> # a -> b, a -> c, b -> d, c -> d
            >>> GraphAlgorithms.topological_sort(graph)
            ['a', 'b', 'c', 'd']
        """
        in_degree: dict[NodeId, int] = {
            node: graph.get_in_degree(node) for node in graph.nodes
        }
        queue: deque[NodeId] = deque(
            node for node, degree in in_degree.items() if degree == 0
        )
        order: list[NodeId] = []

        while queue:
            current = queue.popleft()
            order.append(current)

            for dependent in graph.get_successors(current):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(order) != len(in_degree):
            return None

        return order

    @staticmethod
    def topological_sort_levels(graph: Graph[NodeId]) -> list[list[NodeId]] | None:
        """Kahn's algorithm grouping nodes by execution level.

        Nodes at the same level have no dependency on each other and can
        run concurrently.

        Args:
            graph: The graph to sort.

        Returns:
            List of levels, each a list of node IDs, or None on a cycle.
        """
        in_degree: dict[NodeId, int] = {
            node: graph.get_in_degree(node) for node in graph.nodes
        }
        current_level = [node for node, degree in in_degree.items() if degree == 0]
        levels: list[list[NodeId]] = []
        processed = 0

        while current_level:
            levels.append(current_level)
            processed += len(current_level)
            next_level: list[NodeId] = []

            for node in current_level:
                for dependent in graph.get_successors(node):
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        next_level.append(dependent)

            current_level = next_level

        if processed != len(in_degree):
            return None

        return levels

    @staticmethod
    def find_roots(graph: Graph[NodeId]) -> list[NodeId]:
        """Nodes without dependencies, in insertion order."""
        return [node for node in graph.nodes if graph.get_in_degree(node) == 0]

    @staticmethod
    def find_leaves(graph: Graph[NodeId]) -> list[NodeId]:
        """Nodes without dependents, in insertion order."""
        return [node for node in graph.nodes if graph.get_out_degree(node) == 0]

    @staticmethod
    def get_descendants(
        graph: Graph[NodeId],
        sources: Iterable[NodeId],
    ) -> list[NodeId]:
        """Find every node reachable from the given sources (BFS).

        The sources themselves are not included unless reachable from
        another source.

        Args:
            graph: The graph to walk.
            sources: Starting nodes.

        Returns:
            Reachable node IDs in BFS order.
        """
        start = list(sources)
        seen: set[NodeId] = set()
        queue: deque[NodeId] = deque(start)
        descendants: list[NodeId] = []

        while queue:
            current = queue.popleft()
            for dependent in graph.get_successors(current):
                if dependent not in seen:
                    seen.add(dependent)
                    descendants.append(dependent)
                    queue.append(dependent)

        return descendants


__all__ = [
    "GraphAlgorithms",
]
