"""
Tests for expression evaluation.
"""

import pytest

from helpers import declare
from modtree.core.evaluator import EvaluationContext, ExpressionEvaluator, evaluate
from modtree.core.expander import expand
from modtree.core.parser import parse_expression
from modtree.core.types import InstanceId
from modtree.exceptions import EvaluationError, InternalError


@pytest.fixture
def registry(bar_foo_declarations):
    """bar/foo registry with every bar instance evaluated."""
    registry = expand(bar_foo_declarations, variables={"region": "eu", "sizes": [1, 2, 3]})
    for key, value in (("x", 2), ("y", 3), ("z", 4)):
        registry[InstanceId("bar", key)].set_outputs({"digest": f"d{value}", "tags": {"env": "prod"}})
    return registry


def run(text, registry, instance=None):
    context = EvaluationContext(registry, registry.variables)
    if instance is not None:
        context = context.for_instance(registry[instance])
    return ExpressionEvaluator(context).evaluate(parse_expression(text))


class TestReferences:
    """Reading outputs of evaluated instances."""

    def test_attribute(self, registry):
        """Test reading an output attribute of a keyed instance."""
        assert run('module.bar["x"].digest', registry) == "d2"

    def test_nested_path(self, registry):
        """Test an attribute path descends into nested outputs."""
        assert run('module.bar["y"].tags.env', registry) == "prod"

    def test_whole_module_is_keyed_collection(self, registry):
        """Test a whole-module reference yields outputs keyed by instance key."""
        value = run("module.bar", registry)
        assert list(value) == ["x", "y", "z"]
        assert value["z"]["digest"] == "d4"

    def test_indexed_module(self, registry):
        """Test indexing a module selects one instance's outputs."""
        assert run('module.bar["z"]', registry)["digest"] == "d4"

    def test_length_of_attribute(self, registry):
        """Test length() of a string output."""
        assert run('length(module.bar["x"].digest)', registry) == 2

    def test_length_of_collection(self, registry):
        """Test length() of a whole module counts its instances."""
        assert run("length(module.bar)", registry) == 3

    def test_missing_attribute(self, registry):
        """Test reading an undefined output raises EvaluationError."""
        with pytest.raises(EvaluationError, match=r'attribute bar\["x"\].missing is not defined'):
            run('module.bar["x"].missing', registry)

    def test_unevaluated_instance_is_internal_error(self, registry):
        """Test reading outputs before evaluation raises InternalError."""
        with pytest.raises(InternalError, match="read before it was evaluated"):
            run("module.foo.length", registry)


class TestValues:
    """Literals, variables, maps and indexing."""

    def test_map_literal(self, registry):
        """Test inline maps evaluate their values."""
        assert run('{a = 1, b = module.bar["x"].digest}', registry) == {"a": 1, "b": "d2"}

    def test_variable(self, registry):
        """Test var.* reads input variables."""
        assert run("var.region", registry) == "eu"

    def test_unknown_variable(self, registry):
        """Test an undefined variable raises EvaluationError."""
        with pytest.raises(EvaluationError, match="unknown variable nope"):
            run("var.nope", registry)

    def test_sequence_index(self, registry):
        """Test list indexing, including negative indices."""
        assert run("var.sizes[1]", registry) == 2
        assert run("var.sizes[-1]", registry) == 3

    def test_sequence_index_out_of_range(self, registry):
        """Test an index past the end raises EvaluationError."""
        with pytest.raises(EvaluationError, match="out of range"):
            run("var.sizes[3]", registry)

    def test_missing_map_key(self, registry):
        """Test a missing map key raises EvaluationError."""
        with pytest.raises(EvaluationError, match="not found"):
            run('module.bar["x"].tags["team"]', registry)

    def test_index_scalar(self, registry):
        """Test indexing a scalar raises EvaluationError."""
        with pytest.raises(EvaluationError, match="cannot index"):
            run("var.region[0]", registry)

    def test_unknown_function(self, registry):
        """Test calling an unknown function raises EvaluationError."""
        with pytest.raises(EvaluationError, match="unknown function upper"):
            run("upper(var.region)", registry)

    def test_function_arity(self, registry):
        """Test length() rejects extra arguments."""
        with pytest.raises(EvaluationError, match="takes 1 argument"):
            run("length(var.region, var.sizes)", registry)

    def test_length_of_unsized(self, registry):
        """Test length() of a number raises EvaluationError."""
        with pytest.raises(EvaluationError, match="requires a sized value"):
            run("length(42)", registry)

    def test_module_level_evaluate(self):
        """Test evaluate() without a registry for constant expressions."""
        assert evaluate(parse_expression('{k = "v"}')) == {"k": "v"}


class TestEach:
    """each.key, each.value and count.index."""

    def test_each_key_and_value(self, registry):
        """Test each.key and each.value are bound per instance."""
        assert run("each.key", registry, InstanceId("bar", "y")) == "y"
        assert run("each.value", registry, InstanceId("bar", "y")) == 3

    def test_each_outside_expanded_module(self, registry):
        """Test each.* in a singleton raises EvaluationError."""
        with pytest.raises(EvaluationError, match="only available in expanded modules"):
            run("each.key", registry, InstanceId("foo"))

    def test_count_index(self):
        """Test count.index is the instance index."""
        registry = expand([declare("web", count="2")])
        assert run("count.index", registry, InstanceId("web", 1)) == 1

    def test_count_index_in_for_each_module(self, registry):
        """Test count.index in a for_each module raises EvaluationError."""
        with pytest.raises(EvaluationError, match="only available in modules using count"):
            run("count.index", registry, InstanceId("bar", "x"))

    def test_each_in_count_module(self):
        """Test each.value in a count module raises EvaluationError."""
        registry = expand([declare("web", count="2")])
        with pytest.raises(EvaluationError, match="only available in modules using for_each"):
            run("each.value", registry, InstanceId("web", 0))

    def test_evaluate_arguments(self, registry):
        """Test every argument of an instance is evaluated."""
        evaluator = ExpressionEvaluator(
            EvaluationContext(registry, registry.variables).for_instance(registry[InstanceId("bar", "z")])
        )
        assert evaluator.evaluate_arguments(registry[InstanceId("bar", "z")].arguments) == {"value": 4}
