"""
Tests for declarations, instance ids and instances.
"""

import pytest

from helpers import declare
from modtree.core.flow import InstanceState, InstanceTask
from modtree.core.types import InstanceId, ModuleInstance
from modtree.exceptions import InternalError


class TestModuleDeclaration:
    """Declarations are frozen and compared by identity."""

    def test_hashable_with_arguments(self):
        """Test a declaration with arguments can be used in a set."""
        declaration = declare("bar", value="${each.value}", region="x")
        assert {declaration, declaration} == {declaration}

    def test_hashable_with_map_literal_for_each(self):
        """Test a for_each holding a plain dict does not break hashing."""
        declaration = declare("bar", for_each={"x": 2, "y": 3})
        assert hash(declaration) == hash(declaration)

    def test_equal_fields_are_distinct_declarations(self):
        """Test two declarations with the same fields are not equal."""
        assert declare("bar", value=1) != declare("bar", value=1)

    def test_arguments_are_read_only(self):
        """Test the argument mapping cannot be modified after construction."""
        declaration = declare("bar", value=1)
        with pytest.raises(TypeError):
            declaration.arguments["value"] = 2


class TestInstanceId:
    """Instance identity and display."""

    @pytest.mark.parametrize(
        "instance_id, text",
        [
            (InstanceId("foo"), "foo"),
            (InstanceId("bar", "x"), 'bar["x"]'),
            (InstanceId("web", 0), "web[0]"),
        ],
    )
    def test_str(self, instance_id, text):
        """Test instance ids render in reference syntax."""
        assert str(instance_id) == text

    def test_equality_and_hash(self):
        """Test instance ids compare by value."""
        assert InstanceId("bar", "x") == InstanceId("bar", "x")
        assert len({InstanceId("bar", "x"), InstanceId("bar", "x"), InstanceId("bar", "y")}) == 2

    def test_sort_key_orders_mixed_keys(self):
        """Test unkeyed ids sort first, then int keys numerically, then string keys."""
        ids = [InstanceId("web", 10), InstanceId("web", 2), InstanceId("web"), InstanceId("web", "a")]
        assert sorted(ids, key=InstanceId.sort_key) == [
            InstanceId("web"),
            InstanceId("web", 2),
            InstanceId("web", 10),
            InstanceId("web", "a"),
        ]


class TestModuleInstance:
    """Outputs are written exactly once."""

    def test_outputs_write_once(self):
        """Test a second write of outputs raises InternalError."""
        instance = ModuleInstance(InstanceId("a"), declare("a"))
        assert not instance.is_evaluated
        instance.set_outputs({"id": 1})
        assert instance.outputs == {"id": 1}
        with pytest.raises(InternalError, match="already recorded"):
            instance.set_outputs({"id": 2})

    def test_outputs_are_read_only(self):
        """Test recorded outputs cannot be modified."""
        instance = ModuleInstance(InstanceId("a"), declare("a"))
        instance.set_outputs({"id": 1})
        with pytest.raises(TypeError):
            instance.outputs["id"] = 2

    def test_outputs_are_copied(self):
        """Test later changes to the executor's dict do not leak into outputs."""
        outputs = {"id": 1}
        instance = ModuleInstance(InstanceId("a"), declare("a"))
        instance.set_outputs(outputs)
        outputs["id"] = 2
        assert instance.outputs["id"] == 1


class TestInstanceTask:
    """State machine of a single instance."""

    def test_happy_path(self):
        """Test pending -> ready -> running -> done."""
        task = InstanceTask(InstanceId("a"))
        task.mark_ready()
        task.start()
        task.complete()
        assert task.state == InstanceState.DONE
        assert task.is_terminal
        assert task.get_duration() is not None

    def test_pending_can_fail(self):
        """Test a pending task fails directly when skipped."""
        task = InstanceTask(InstanceId("a"))
        task.fail(RuntimeError("upstream"), skipped_reason="upstream_failed")
        assert task.state == InstanceState.FAILED
        assert task.get_summary()["skipped_reason"] == "upstream_failed"

    def test_illegal_transition(self):
        """Test an illegal transition raises InternalError."""
        task = InstanceTask(InstanceId("a"))
        with pytest.raises(InternalError, match="cannot move from pending to done"):
            task.complete()

    def test_terminal_states_are_final(self):
        """Test a failed task cannot move again."""
        task = InstanceTask(InstanceId("a"))
        task.fail(RuntimeError("x"))
        with pytest.raises(InternalError):
            task.mark_ready()
