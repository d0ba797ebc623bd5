"""Unit tests for the sparse constraint model builder."""

import pytest

from network_planning.errors import ModelDefinitionError
from network_planning.optimization.model_builder import (
    ConstraintBound,
    ConstraintModelBuilder,
    LpModel,
    validate_model,
)


def build_knapsack() -> LpModel:
    """max 3a + 2b + c  s.t.  a + b + c <= 2, a binary, b integer."""
    builder = ConstraintModelBuilder()
    builder.add_variable("a", kind="binary")
    builder.add_variable("b", kind="integer")
    builder.add_variable("c")
    builder.add_constraint("Cap", ConstraintBound(max=2))
    for name, value in (("a", 3.0), ("b", 2.0), ("c", 1.0)):
        builder.set_objective_coef(name, value)
        builder.set_constraint_coef(name, "Cap", 1.0)
    return builder.build_model(op_type="max")


class TestConstraintBound:
    """Tests for ConstraintBound."""

    def test_equal_takes_precedence(self):
        """Test that equal is used when min/max are also set."""
        bound = ConstraintBound(min=0, max=10, equal=5)
        assert bound.is_satisfied(5)
        assert not bound.is_satisfied(4)

    def test_min_and_max(self):
        """Test range bounds with tolerance."""
        bound = ConstraintBound(min=1, max=3)
        assert bound.is_satisfied(1)
        assert bound.is_satisfied(3)
        assert not bound.is_satisfied(0.5)
        assert not bound.is_satisfied(3.5)
        assert bound.is_satisfied(3.0000001, tolerance=1e-6)

    def test_to_dict_omits_unset(self):
        """Test serialization of a partial bound."""
        assert ConstraintBound(max=0).to_dict() == {'max': 0}
        assert ConstraintBound(min=1, max=2).to_dict() == {'min': 1, 'max': 2}


class TestConstraintModelBuilder:
    """Tests for ConstraintModelBuilder."""

    def test_add_variable_and_kind(self):
        """Test that variables are registered with their integrality tags."""
        model = build_knapsack()

        assert set(model.variables) == {"a", "b", "c"}
        assert model.binaries == {"a"}
        assert model.integers == {"b"}
        assert model.variable_kind("c") == "continuous"

    def test_retagging_variable_replaces_kind(self):
        """Test that re-adding a variable changes its tag but keeps coefficients."""
        builder = ConstraintModelBuilder()
        builder.add_variable("x", kind="binary")
        builder.set_objective_coef("x", 4.0)
        builder.add_variable("x", kind="integer")

        model = builder.build_model()
        assert model.binaries == set()
        assert model.integers == {"x"}
        assert model.variables["x"] == {"OBJ": 4.0}

    def test_unknown_kind_rejected(self):
        """Test that an unknown variable kind raises."""
        builder = ConstraintModelBuilder()
        with pytest.raises(ModelDefinitionError, match="Unknown variable kind"):
            builder.add_variable("x", kind="semicontinuous")

    def test_constraint_coefficients_accumulate(self):
        """Test that constraint coefficients are summed across updates."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=10))
        builder.set_constraint_coef("x", "Row", 2.0)
        builder.set_constraint_coef("x", "Row", 3.0)

        assert builder.build_model().variables["x"]["Row"] == 5.0

    def test_tiny_coefficients_ignored(self):
        """Test that updates below epsilon leave no entry behind."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=10))
        builder.set_constraint_coef("x", "Row", 1e-15)

        assert builder.build_model().variables.get("x", {}) == {}

    def test_objective_coefficient_overwrites(self):
        """Test that the objective coefficient is set, not accumulated."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 2.0)
        builder.set_objective_coef("x", 7.0)

        assert builder.build_model().variables["x"]["OBJ"] == 7.0

    def test_constraint_redefinition_last_wins(self):
        """Test that redefining a constraint replaces its bound."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=10))
        builder.add_constraint("Row", ConstraintBound(min=2))

        assert builder.build_model().constraints["Row"] == ConstraintBound(min=2)
        assert builder.num_constraints == 1

    def test_strict_builder_rejects_redefinition(self):
        """Test that a strict builder raises on redefinition."""
        builder = ConstraintModelBuilder(strict=True)
        builder.add_constraint("Row", ConstraintBound(max=10))
        with pytest.raises(ModelDefinitionError, match="already defined"):
            builder.add_constraint("Row", ConstraintBound(max=5))

    def test_empty_bound_rejected(self):
        """Test that a constraint needs at least one bound."""
        builder = ConstraintModelBuilder()
        with pytest.raises(ModelDefinitionError, match="no bound"):
            builder.add_constraint("Row", ConstraintBound())

    def test_invalid_op_type(self):
        """Test that only min and max are accepted."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 1.0)
        with pytest.raises(ModelDefinitionError, match="op_type"):
            builder.build_model(op_type="maximize")

    def test_built_model_is_independent(self):
        """Test that later builder changes do not leak into a built model."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=1))
        builder.set_constraint_coef("x", "Row", 1.0)
        model = builder.build_model()

        builder.set_constraint_coef("x", "Row", 1.0)
        builder.add_variable("y", kind="binary")

        assert model.variables["x"]["Row"] == 1.0
        assert "y" not in model.variables
        assert model.binaries == set()

    def test_custom_objective_key(self):
        """Test building with a non-default objective key."""
        builder = ConstraintModelBuilder(objective_key="cost")
        builder.set_objective_coef("x", 3.0)
        model = builder.build_model()

        assert model.optimize == "cost"
        assert model.objective_value({"x": 2.0}) == 6.0


class TestLpModel:
    """Tests for LpModel evaluation helpers."""

    def test_objective_and_lhs(self):
        """Test objective and constraint evaluation for an assignment."""
        model = build_knapsack()
        assignment = {"a": 1.0, "b": 1.0}

        assert model.objective_value(assignment) == 5.0
        assert model.constraint_lhs(assignment) == {"Cap": 2.0}

    def test_is_feasible(self):
        """Test feasibility checks against bounds."""
        model = build_knapsack()
        assert model.is_feasible({"a": 1.0, "b": 1.0})
        assert not model.is_feasible({"a": 1.0, "b": 2.0})

    def test_to_dict_layout(self):
        """Test the interchange layout."""
        data = build_knapsack().to_dict()

        assert data['optimize'] == "OBJ"
        assert data['opType'] == "max"
        assert data['constraints'] == {"Cap": {'max': 2}}
        assert data['binaries'] == {"a": 1}
        assert data['ints'] == {"b": 1}
        assert data['variables']["c"] == {"OBJ": 1.0, "Cap": 1.0}


class TestValidateModel:
    """Tests for validate_model."""

    def test_valid_model(self):
        """Test that a well-formed model validates."""
        result = validate_model(build_knapsack())
        assert result.valid
        assert result.errors == []

    def test_missing_objective(self):
        """Test detection of a model with no objective coefficient."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=1))
        builder.set_constraint_coef("x", "Row", 1.0)

        result = validate_model(builder.build_model())
        assert not result.valid
        assert any("Objective" in e for e in result.errors)

    def test_orphan_constraint(self):
        """Test detection of constraints no variable references."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 1.0)
        builder.add_constraint("Unused", ConstraintBound(max=1))

        result = validate_model(builder.build_model())
        assert not result.valid
        assert any("Unused" in e for e in result.errors)

    def test_undefined_constraint_reference(self):
        """Test detection of coefficients on undefined constraints."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 1.0)
        builder.set_constraint_coef("x", "Ghost", 1.0)

        result = validate_model(builder.build_model())
        assert not result.valid
        assert any("Ghost" in e for e in result.errors)

    def test_tag_on_undefined_variable(self):
        """Test detection of integrality tags without a variable."""
        model = build_knapsack()
        model.binaries.add("phantom")

        result = validate_model(model)
        assert not result.valid
        assert any("phantom" in e for e in result.errors)
