"""
Tests for project initialization.
"""

import pytest

from modtree.core.initialization import ProjectInitializer, initialize
from modtree.core.types import InstanceId
from modtree.exceptions import ConfigurationError, ReferenceError_


class TestInitialize:
    """Loading a project directory end to end."""

    def test_loads_everything(self, project_dir):
        """Test config, declarations, variables, executors and graph load together."""
        project = initialize(project_dir)
        assert [d.name for d in project.declarations] == ["bar", "foo"]
        assert project.variables == {"items": {"x": 2, "y": 3, "z": 4}}
        assert len(project.registry) == 4
        assert project.graph.get_dependencies(InstanceId("foo")) == [InstanceId("bar", "x")]
        assert "./bar" in project.executor
        assert "./foo" in project.executor

    def test_assignments_override_defaults(self, project_dir):
        """Test name=value assignments override declared defaults."""
        project = initialize(project_dir, assignments=["items={x: 1}"])
        assert project.registry.keys_of("bar") == ("x",)

    def test_var_file(self, project_dir):
        """Test an extra variable file is applied."""
        (project_dir / "prod.yaml").write_text("items: {a: 1, x: 2}\n")
        project = initialize(project_dir, var_files=[project_dir / "prod.yaml"])
        assert project.registry.keys_of("bar") == ("a", "x")

    def test_env_config(self, project_dir):
        """Test the environment config file is merged."""
        (project_dir / "modtree.prod.yaml").write_text("variables:\n  items: {x: 9}\n")
        project = ProjectInitializer(project_dir, env="prod").initialize()
        assert project.variables["items"] == {"x": 9}

    def test_alternative_declarations_file(self, project_dir):
        """Test loading declarations from another file."""
        (project_dir / "other.yaml").write_text("module:\n  solo:\n    source: ./solo\n")
        project = initialize(project_dir, declarations_file=project_dir / "other.yaml")
        assert list(project.registry) == [InstanceId("solo")]

    def test_missing_declarations(self, tmp_path):
        """Test a missing declarations file raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="File not found"):
            initialize(tmp_path, configure_logging=False)

    def test_missing_executors_dir(self, project_dir):
        """Test a missing executors directory raises ConfigurationError."""
        (project_dir / "modtree.yaml").write_text("executors_dir: nowhere\n")
        with pytest.raises(ConfigurationError, match="Executors directory not found"):
            initialize(project_dir, configure_logging=False)

    def test_broken_executor_file(self, project_dir):
        """Test an executor file that fails to import raises ConfigurationError."""
        (project_dir / "executors" / "broken.py").write_text("raise ImportError('nope')\n")
        with pytest.raises(ConfigurationError, match="Failed to import executor file"):
            initialize(project_dir)

    def test_reference_errors_surface(self, project_dir):
        """Test reference errors propagate from initialize()."""
        (project_dir / "modules.yaml").write_text(
            "module:\n  bar:\n    source: ./bar\n    for_each: {x: 1}\n"
            "  foo:\n    source: ./foo\n    d: '${module.bar[\"w\"].digest}'\n"
        )
        with pytest.raises(ReferenceError_, match="w"):
            initialize(project_dir)
