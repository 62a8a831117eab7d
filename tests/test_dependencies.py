"""
Tests for the dependency graph.
"""

import pytest

from modtree.core.dependencies import DependencyGraph
from modtree.core.types import DependencyEdge, InstanceId
from modtree.exceptions import CycleError

A, B, C, D = (InstanceId(name) for name in "abcd")


def diamond():
    """d reads b and c, both of which read a."""
    graph = DependencyGraph()
    graph.add_edge(B, A)
    graph.add_edge(C, A)
    graph.add_edge(D, B)
    graph.add_edge(D, C)
    return graph


class TestStructure:
    """Building and inspecting the graph."""

    def test_add_edge_is_idempotent(self):
        """Test adding the same edge twice keeps one edge."""
        graph = DependencyGraph()
        assert graph.add_edge(B, A) is True
        assert graph.add_edge(B, A) is False
        assert graph.edges() == [DependencyEdge(B, A)]

    def test_dependencies_and_dependents(self):
        """Test both adjacency directions."""
        graph = diamond()
        assert graph.get_dependencies(D) == [B, C]
        assert graph.get_dependents(A) == [B, C]
        assert graph.get_dependents(D) == []

    def test_isolated_instance(self):
        """Test an instance with no edges is still a node."""
        graph = DependencyGraph()
        graph.add_instance(A)
        assert A in graph
        assert graph.get_dependencies(A) == []
        assert len(graph) == 1

    def test_transitive_dependents(self):
        """Test dependents are collected through every level."""
        graph = diamond()
        assert graph.transitive_dependents(A) == {B, C, D}
        assert graph.transitive_dependents(B) == {D}
        assert graph.transitive_dependents(D) == set()


class TestOrdering:
    """Topological order, layers and cycle detection."""

    def test_dependencies_come_first(self):
        """Test topological order lists dependencies before dependents."""
        order = diamond().topological_sort()
        assert order.index(A) < order.index(B) < order.index(D)
        assert order.index(C) < order.index(D)

    def test_order_is_deterministic(self):
        """Test two identical graphs sort identically."""
        assert diamond().topological_sort() == diamond().topological_sort()

    def test_layers(self):
        """Test layer numbers of the diamond."""
        assert diamond().get_layers() == {A: 0, B: 1, C: 1, D: 2}

    def test_detect_cycle(self):
        """Test a cycle is returned as a closed path."""
        graph = DependencyGraph()
        graph.add_edge(A, B)
        graph.add_edge(B, C)
        graph.add_edge(C, A)
        assert graph.detect_cycle() == [A, B, C, A]

    def test_acyclic_has_no_cycle(self):
        """Test an acyclic graph reports no cycle."""
        assert diamond().detect_cycle() is None

    def test_topological_sort_raises_on_cycle(self):
        """Test sorting a cyclic graph raises CycleError."""
        graph = DependencyGraph()
        graph.add_edge(A, B)
        graph.add_edge(B, A)
        with pytest.raises(CycleError) as exc_info:
            graph.topological_sort()
        assert exc_info.value.cycle == [A, B, A]

    def test_deep_chain(self):
        """A chain longer than the interpreter's recursion limit."""
        nodes = [InstanceId(f"m{i}") for i in range(5000)]
        graph = DependencyGraph()
        for dependent, dependency in zip(nodes, nodes[1:]):
            graph.add_edge(dependent, dependency)
        assert graph.topological_sort() == nodes[::-1]
        assert graph.get_layers()[nodes[0]] == 4999


class TestVisualization:
    """Text renderings used by the graph command."""

    def test_visualize_layers(self):
        """Test the layer listing."""
        assert diamond().visualize_layers() == "Layer 0: a\nLayer 1: b ── c\nLayer 2: d"

    def test_visualize_tree(self):
        """Test the dependents tree drawn from roots."""
        lines = diamond().visualize_tree().splitlines()
        assert lines[0] == "└─ a"
        assert "b" in lines[1] and "c" in lines[3]

    def test_visualize_tree_keyed_instances(self):
        """Test keyed instances render in reference syntax."""
        graph = DependencyGraph()
        graph.add_edge(InstanceId("foo"), InstanceId("bar", "x"))
        assert graph.visualize_tree() == '└─ bar["x"]\n   └─ foo'
