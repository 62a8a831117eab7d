"""
Instance dependency graph.

An arena of instance ids with adjacency lists in both directions. Edges
point from an instance to the instances whose outputs it reads, so a
topological order lists dependencies before their dependents.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum

from modtree.core.types import DependencyEdge, InstanceId, InstanceRegistry
from modtree.exceptions import CycleError


class _Color(Enum):
    WHITE = 0  # not visited
    GRAY = 1  # on the current DFS path
    BLACK = 2  # finished


class DependencyGraph:
    """Represents the directed graph of instance dependencies."""

    def __init__(self, registry: InstanceRegistry | None = None):
        self.registry = registry
        self._graph: dict[InstanceId, list[InstanceId]] = {}  # instance -> dependencies
        self._reverse: dict[InstanceId, list[InstanceId]] = defaultdict(list)  # instance -> dependents
        if registry is not None:
            for instance_id in registry:
                self.add_instance(instance_id)

    def add_instance(self, instance_id: InstanceId) -> None:
        """Add an instance with no edges (no-op if already present)."""
        self._graph.setdefault(instance_id, [])

    def add_edge(self, source: InstanceId, target: InstanceId) -> bool:
        """
        Record that ``source`` depends on ``target``.

        Returns:
            False if the edge already existed
        """
        self.add_instance(source)
        self.add_instance(target)
        if target in self._graph[source]:
            return False
        self._graph[source].append(target)
        self._reverse[target].append(source)
        return True

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._graph

    def __len__(self) -> int:
        return len(self._graph)

    @property
    def instances(self) -> list[InstanceId]:
        return list(self._graph)

    def get_dependencies(self, instance_id: InstanceId) -> list[InstanceId]:
        """Get instances that ``instance_id`` reads outputs from."""
        return self._graph.get(instance_id, [])

    def get_dependents(self, instance_id: InstanceId) -> list[InstanceId]:
        """Get instances that read outputs of ``instance_id``."""
        return self._reverse.get(instance_id, [])

    def edges(self) -> list[DependencyEdge]:
        return [DependencyEdge(source, target) for source, targets in self._graph.items() for target in targets]

    def transitive_dependents(self, instance_id: InstanceId) -> set[InstanceId]:
        """Every instance reachable through dependent edges."""
        seen: set[InstanceId] = set()
        stack = list(self.get_dependents(instance_id))
        while stack:
            node = stack.pop()
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self.get_dependents(node))
        return seen

    def _dfs(self) -> tuple[list[InstanceId], list[InstanceId] | None]:
        """
        Depth-first traversal with white/gray/black coloring.

        Returns the post-order (dependencies first) and the first cycle
        found, as a path with its first node repeated at the end.
        """
        color = {node: _Color.WHITE for node in self._graph}
        order: list[InstanceId] = []

        for root in self._graph:
            if color[root] is not _Color.WHITE:
                continue
            # Explicit stack of (node, next neighbor index); the stack is the current path
            color[root] = _Color.GRAY
            stack: list[tuple[InstanceId, int]] = [(root, 0)]
            while stack:
                node, index = stack[-1]
                neighbors = self._graph[node]
                if index == len(neighbors):
                    stack.pop()
                    color[node] = _Color.BLACK
                    order.append(node)
                    continue
                stack[-1] = (node, index + 1)
                neighbor = neighbors[index]
                if color[neighbor] is _Color.GRAY:
                    # Back-edge: the cycle runs from neighbor to node along the path
                    path = [n for n, _ in stack]
                    return order, path[path.index(neighbor) :] + [neighbor]
                if color[neighbor] is _Color.WHITE:
                    color[neighbor] = _Color.GRAY
                    stack.append((neighbor, 0))
        return order, None

    def detect_cycle(self) -> list[InstanceId] | None:
        """Return one cycle path, or None if the graph is acyclic."""
        return self._dfs()[1]

    def topological_sort(self) -> list[InstanceId]:
        """
        Topological sort of instances by dependencies.

        Returns instances in execution order (dependencies before dependents).

        Raises:
            CycleError: if the graph has a cycle
        """
        order, cycle = self._dfs()
        if cycle is not None:
            raise CycleError(cycle)
        return order

    def get_layers(self) -> dict[InstanceId, int]:
        """
        Get layer (execution level) for each instance.

        Instances in the same layer have no path between them and can run
        in parallel. Assumes an acyclic graph.
        """
        layers: dict[InstanceId, int] = {}
        for node in self.topological_sort():
            deps = self._graph[node]
            layers[node] = max((layers[d] + 1 for d in deps), default=0)
        return layers

    def visualize_layers(self) -> str:
        """
        Visualize dependency graph as layers (execution levels).

        Returns a string representation showing instances grouped by execution level.
        """
        grouped: dict[int, list[InstanceId]] = defaultdict(list)
        for node, layer in self.get_layers().items():
            grouped[layer].append(node)

        lines = []
        for layer_num in sorted(grouped):
            names = [str(n) for n in sorted(grouped[layer_num], key=InstanceId.sort_key)]
            lines.append(f"Layer {layer_num}: {' ── '.join(names)}")
        return "\n".join(lines)

    def visualize_tree(self) -> str:
        """
        Visualize the graph as a tree from instances with no dependencies.

        Shows dependents under each instance with tree branches (│, ├─, └─).
        """
        roots = sorted((n for n, deps in self._graph.items() if not deps), key=InstanceId.sort_key)
        if not roots:
            return "No root instances found (all instances have dependencies)"

        lines: list[str] = []

        def build_tree(node: InstanceId, prefix: str, is_last: bool, visited: frozenset[InstanceId]) -> None:
            branch = "└─ " if is_last else "├─ "
            if node in visited:
                lines.append(f"{prefix}{branch}{node} (cyclic reference)")
                return
            lines.append(f"{prefix}{branch}{node}")
            dependents = sorted(self.get_dependents(node), key=InstanceId.sort_key)
            extension = "   " if is_last else "│  "
            for i, dep in enumerate(dependents):
                build_tree(dep, prefix + extension, i == len(dependents) - 1, visited | {node})

        for i, root in enumerate(roots):
            if i > 0:
                lines.append("")
            build_tree(root, "", True, frozenset())
        return "\n".join(lines)
