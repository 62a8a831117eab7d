"""
Tests for module tree rendering.
"""

from rich.console import Console

from helpers import declare
from modtree.core.expander import expand
from modtree.core.tree import build_tree, format_declaration


def render(tree):
    console = Console(width=200, record=True, color_system=None)
    console.print(tree)
    return console.export_text()


class TestFormatDeclaration:
    """One line per declaration."""

    def test_for_each(self):
        """Test for_each keys are listed after the name."""
        registry = expand([declare("bar", "./bar", for_each="{x = 1, y = 2, z = 3}")])
        assert format_declaration(registry.declarations["bar"], registry) == "bar{x y z} (./bar)"

    def test_count(self):
        """Test count is shown as a size."""
        registry = expand([declare("web", "./web", count="3")])
        assert format_declaration(registry.declarations["web"], registry) == "web[3] (./web)"

    def test_plain(self):
        """Test a plain module shows only its source."""
        registry = expand([declare("foo", "registry/foo")])
        assert format_declaration(registry.declarations["foo"], registry) == "foo (registry/foo)"

    def test_local_source_resolved_against_base_dir(self, tmp_path):
        """Test ./ sources are resolved against the project directory."""
        registry = expand([declare("foo", "./foo")])
        text = format_declaration(registry.declarations["foo"], registry, base_dir=tmp_path)
        assert text == f"foo ({(tmp_path / 'foo').resolve()})"


class TestBuildTree:
    """Rich tree output."""

    def test_tree_lists_modules_in_order(self):
        """Test modules are listed in declaration order."""
        registry = expand([declare("bar", for_each="{x = 1, y = 2}"), declare("foo")])
        output = render(build_tree(registry))
        lines = [line.rstrip() for line in output.splitlines()]
        assert lines[0] == "*"
        assert "bar{x y} (./bar)" in lines[1]
        assert "foo (./foo)" in lines[2]

    def test_show_instances(self):
        """Test instances are listed under their module."""
        registry = expand([declare("bar", for_each="{x = 1, y = 2}")])
        output = render(build_tree(registry, show_instances=True))
        assert 'bar["x"]' in output
        assert 'bar["y"]' in output

    def test_labels_are_not_markup(self):
        """Test labels are printed literally, not as rich markup."""
        registry = expand([declare("bar", "[bold]src[/bold]")])
        assert "[bold]src[/bold]" in render(build_tree(registry))
