"""
Shared fixtures for modtree tests.
"""

import pytest

from helpers import declare
from modtree.core.executors import SourceRegistry


@pytest.fixture
def bar_foo_declarations():
    """bar expanded over x/y/z, foo reading bar["x"].digest."""
    return [
        declare("bar", for_each="{x = 2, y = 3, z = 4}", value="${each.value}"),
        declare("foo", digest='${module.bar["x"].digest}'),
    ]


@pytest.fixture
def executor():
    """SourceRegistry implementing ./bar and ./foo."""
    registry = SourceRegistry()

    @registry.source("./bar")
    def bar(value):
        return {"digest": f"d{value}"}

    @registry.source("./foo")
    def foo(digest):
        return {"length": len(digest)}

    return registry


MODULES_YAML = """\
module:
  bar:
    source: ./bar
    for_each: ${var.items}
    value: ${each.value}
  foo:
    source: ./foo
    digest: '${module.bar["x"].digest}'

variable:
  items:
    default: {x: 2, y: 3, z: 4}
"""

EXECUTORS_PY = """\
from modtree import module_source


@module_source("./bar")
def bar(value):
    if value == "boom":
        raise RuntimeError("boom")
    return {"digest": f"d{value}"}


@module_source("./foo")
def foo(digest):
    return {"length": len(digest)}
"""

CONFIG_YAML = """\
executors_dir: executors
logging:
  console_enabled: false
"""


@pytest.fixture
def project_dir(tmp_path):
    """A project directory with declarations, config and executors."""
    (tmp_path / "modules.yaml").write_text(MODULES_YAML)
    (tmp_path / "modtree.yaml").write_text(CONFIG_YAML)
    (tmp_path / "executors").mkdir()
    (tmp_path / "executors" / "modules.py").write_text(EXECUTORS_PY)
    return tmp_path
