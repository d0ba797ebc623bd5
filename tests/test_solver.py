"""Tests for the solver adapter.

Covers structural checks, trivially infeasible models, the legacy
SolverFactory path (mocked), the seeded random-search fallback and, when
highspy is installed, real solves with APPSI HiGHS.
"""

import threading
import time

import pytest
from pyomo.opt import TerminationCondition

from network_planning.errors import (
    JobCancelledError,
    JobTimeoutError,
    ModelDefinitionError,
    SolverFailureError,
)
from network_planning.optimization.model_builder import ConstraintBound, ConstraintModelBuilder
from network_planning.optimization.solver import (
    FALLBACK_SOLVER_NAME,
    SolveResult,
    SolverAdapter,
    TerminationStatus,
    check_model_structure,
)
from tests.fixtures.solver_mocks import create_mock_solver_config


def pick_one_model():
    """max 3a + 2b  s.t.  a + b <= 1 (binaries)."""
    builder = ConstraintModelBuilder()
    for name, value in (("a", 3.0), ("b", 2.0)):
        builder.add_variable(name, kind="binary")
        builder.set_objective_coef(name, value)
        builder.set_constraint_coef(name, "PickOne", 1.0)
    builder.add_constraint("PickOne", ConstraintBound(max=1))
    return builder.build_model(op_type="max")


def mixed_model():
    """min 5n - c  s.t.  n + c >= 4, c <= 50 (n integer, c continuous)."""
    builder = ConstraintModelBuilder()
    builder.add_variable("n", kind="integer")
    builder.add_variable("c", kind="continuous")
    builder.set_objective_coef("n", 5.0)
    builder.set_objective_coef("c", -1.0)
    builder.add_constraint("Cover", ConstraintBound(min=4))
    builder.add_constraint("CapC", ConstraintBound(max=50))
    builder.set_constraint_coef("n", "Cover", 1.0)
    builder.set_constraint_coef("c", "Cover", 1.0)
    builder.set_constraint_coef("c", "CapC", 1.0)
    return builder.build_model(op_type="min")


class TestModelStructure:
    """Tests for check_model_structure."""

    def test_empty_model_rejected(self):
        """Test that a model without variables cannot be solved."""
        model = ConstraintModelBuilder().build_model()
        with pytest.raises(ModelDefinitionError, match="no variables"):
            check_model_structure(model)

    def test_missing_objective_rejected(self):
        """Test that a model without any objective coefficient is rejected."""
        builder = ConstraintModelBuilder()
        builder.add_constraint("Row", ConstraintBound(max=1))
        builder.set_constraint_coef("x", "Row", 1.0)
        with pytest.raises(ModelDefinitionError, match="Objective"):
            check_model_structure(builder.build_model())

    def test_undefined_constraint_rejected(self):
        """Test that coefficients on undefined constraints are rejected."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 1.0)
        builder.set_constraint_coef("x", "Ghost", 1.0)
        with pytest.raises(ModelDefinitionError, match="Ghost"):
            SolverAdapter().solve(builder.build_model())


class TestSolveResult:
    """Tests for SolveResult helpers."""

    def test_status_helpers(self):
        """Test optimal/infeasible helpers and value lookup."""
        result = SolveResult(
            feasible=True,
            termination=TerminationStatus.OPTIMAL,
            assignment={"x": 2.0},
            objective_value=10.0,
        )
        assert result.is_optimal()
        assert not result.is_infeasible()
        assert result.get("x") == 2.0
        assert result.get("missing") == 0.0

    def test_str_marks_approximate(self):
        """Test string representation of a fallback result."""
        result = SolveResult(
            feasible=True,
            termination=TerminationStatus.FEASIBLE,
            objective_value=1234.5,
            is_approximate=True,
        )
        text = str(result)
        assert "FEASIBLE (approximate)" in text
        assert "1,234.50" in text


class TestTriviallyInfeasible:
    """Violated constraints without variables are detected before solving."""

    def test_empty_violated_constraint(self, unavailable_solver_config):
        """Test that an unsatisfiable empty row is infeasible without any solver."""
        builder = ConstraintModelBuilder()
        builder.set_objective_coef("x", 1.0)
        builder.add_constraint("Need", ConstraintBound(min=1))

        adapter = SolverAdapter(solver_config=unavailable_solver_config, seed=1)
        result = adapter.solve(builder.build_model())

        assert not result.feasible
        assert result.termination == TerminationStatus.INFEASIBLE
        assert result.solver_name is None
        assert "Need" in result.message
        unavailable_solver_config.get_best_available_solver.assert_not_called()

    def test_empty_satisfied_constraint_ignored(self, fallback_solver):
        """Test that an empty row satisfied by zero does not block solving."""
        builder = ConstraintModelBuilder()
        builder.add_variable("x", kind="binary")
        builder.set_objective_coef("x", 1.0)
        builder.add_constraint("Slack", ConstraintBound(max=5))

        result = fallback_solver.solve(builder.build_model())
        assert result.feasible
        assert result.get("x") == 0.0


class TestCancellation:
    """Tests for the cancellation token."""

    def test_set_token_raises(self, fallback_solver):
        """Test that a set token stops the solve before it starts."""
        token = threading.Event()
        token.set()
        with pytest.raises(JobCancelledError):
            fallback_solver.solve(pick_one_model(), cancel_token=token)

    def test_unset_token_allows_solve(self, fallback_solver):
        """Test that an unset token does not interfere."""
        result = fallback_solver.solve(pick_one_model(), cancel_token=threading.Event())
        assert result.feasible


class TestLegacySolverPath:
    """Tests for SolverFactory solvers (mocked)."""

    def test_optimal_solution_extracted(self):
        """Test that variable values written by the solver are returned."""
        config = create_mock_solver_config(values={"a": 1.0, "b": 0.0})
        adapter = SolverAdapter(solver_config=config)

        result = adapter.solve(pick_one_model())

        assert result.feasible
        assert result.termination == TerminationStatus.OPTIMAL
        assert result.solver_name == "cbc"
        assert result.assignment == {"a": 1.0, "b": 0.0}
        assert result.objective_value == 3.0
        assert not result.is_approximate
        assert config.created[0].solve_kwargs == {'load_solutions': False}

    def test_integer_values_rounded(self):
        """Test that near-integral values of integer variables are rounded."""
        config = create_mock_solver_config(values={"n": 3.9999999, "c": 0.5})
        result = SolverAdapter(solver_config=config).solve(mixed_model())

        assert result.get("n") == 4.0
        assert result.get("c") == 0.5

    def test_infeasible_termination(self):
        """Test that an infeasible termination yields an infeasible result."""
        config = create_mock_solver_config(termination=TerminationCondition.infeasible)
        result = SolverAdapter(solver_config=config).solve(pick_one_model())

        assert not result.feasible
        assert result.is_infeasible()
        assert result.solver_name == "cbc"

    def test_time_limit_with_solution(self):
        """Test that a time-limited solve with a solution is feasible."""
        config = create_mock_solver_config(
            values={"b": 1.0}, termination=TerminationCondition.maxTimeLimit
        )
        result = SolverAdapter(solver_config=config).solve(pick_one_model())

        assert result.feasible
        assert result.termination == TerminationStatus.TIME_LIMIT
        assert result.objective_value == 2.0

    def test_solver_error_uses_fallback(self):
        """Test that an unexpected termination falls back to random search."""
        config = create_mock_solver_config(termination=TerminationCondition.error)
        result = SolverAdapter(solver_config=config, seed=3).solve(pick_one_model())

        assert result.feasible
        assert result.is_approximate
        assert result.solver_name == FALLBACK_SOLVER_NAME

    def test_cbc_options(self):
        """Test that CBC receives time limit and gap under its option names."""
        config = create_mock_solver_config(values={"a": 1.0})
        config.time_limit_seconds = 30
        config.mip_gap = 0.02

        SolverAdapter(solver_config=config).solve(pick_one_model())

        assert config.created[0].options == {'seconds': 30, 'ratio': 0.02}

    def test_deadline_caps_time_limit(self):
        """Test that the time left before the deadline shortens a longer limit."""
        config = create_mock_solver_config(values={"a": 1.0})
        config.time_limit_seconds = 600

        SolverAdapter(solver_config=config, deadline=time.monotonic() + 5).solve(pick_one_model())

        assert 0 < config.created[0].options['seconds'] <= 5

    def test_deadline_sets_limit_when_none_configured(self):
        """Test that a deadline alone still bounds the solve."""
        config = create_mock_solver_config(values={"a": 1.0})

        SolverAdapter(solver_config=config, deadline=time.monotonic() + 5).solve(pick_one_model())

        assert 0 < config.created[0].options['seconds'] <= 5

    def test_passed_deadline_raises_timeout(self):
        """Test that no solve starts once the deadline has passed."""
        config = create_mock_solver_config(values={"a": 1.0})
        adapter = SolverAdapter(solver_config=config, deadline=time.monotonic() - 1)

        with pytest.raises(JobTimeoutError):
            adapter.solve(pick_one_model())
        assert config.created == []


class TestRandomSearchFallback:
    """Tests for the seeded multi-start fallback."""

    def test_finds_best_binary_assignment(self, fallback_solver):
        """Test that the fallback finds the optimum of a tiny binary model."""
        result = fallback_solver.solve(pick_one_model())

        assert result.feasible
        assert result.is_approximate
        assert result.termination == TerminationStatus.FEASIBLE
        assert result.solver_name == FALLBACK_SOLVER_NAME
        assert result.assignment == {"a": 1.0, "b": 0.0}
        assert result.objective_value == 3.0

    def test_same_seed_same_result(self, unavailable_solver_config):
        """Test that two adapters with the same seed return identical results."""
        first = SolverAdapter(solver_config=unavailable_solver_config, seed=123).solve(mixed_model())
        second = SolverAdapter(solver_config=unavailable_solver_config, seed=123).solve(mixed_model())

        assert first.feasible
        assert first.assignment == second.assignment
        assert first.objective_value == second.objective_value
        assert first.metadata['seed'] == 123

    def test_unseeded_run_can_be_replayed(self, unavailable_solver_config):
        """Test that the seed drawn by an unseeded run reproduces its result."""
        first = SolverAdapter(solver_config=unavailable_solver_config).solve(mixed_model())
        seed = first.metadata['seed']
        replay = SolverAdapter(solver_config=unavailable_solver_config, seed=seed).solve(mixed_model())

        assert isinstance(seed, int)
        assert replay.assignment == first.assignment
        assert replay.objective_value == first.objective_value

    def test_samples_respect_domains(self, fallback_solver):
        """Test that sampled values stay in their variable domains."""
        result = fallback_solver.solve(mixed_model())

        assert result.feasible
        n, c = result.get("n"), result.get("c")
        assert n == int(n)
        assert 0 <= n <= 10
        assert 0 <= c <= 50
        assert n + c >= 4 - 1e-6

    def test_no_feasible_sample(self, fallback_solver):
        """Test that an unsatisfiable model yields NO_SOLUTION."""
        builder = ConstraintModelBuilder()
        for name in ("x", "y"):
            builder.add_variable(name, kind="binary")
            builder.set_objective_coef(name, 1.0)
            builder.set_constraint_coef(name, "TooMuch", 1.0)
        builder.add_constraint("TooMuch", ConstraintBound(min=5))

        result = fallback_solver.solve(builder.build_model())

        assert not result.feasible
        assert result.termination == TerminationStatus.NO_SOLUTION
        assert result.is_approximate
        assert "500 random trials" in result.message

    def test_fallback_disabled(self, unavailable_solver_config):
        """Test that solver failures raise when fallback is disabled."""
        adapter = SolverAdapter(solver_config=unavailable_solver_config, allow_fallback=False)
        with pytest.raises(SolverFailureError, match="No optimization solver"):
            adapter.solve(pick_one_model())

    def test_model_statistics_reported(self, fallback_solver):
        """Test that result counts describe the model."""
        result = fallback_solver.solve(mixed_model())

        assert result.num_variables == 2
        assert result.num_constraints == 2
        assert result.num_integer_vars == 1
        assert result.solve_time_seconds is not None


class TestHighsSolve:
    """Real solves with APPSI HiGHS."""

    def test_pick_one(self, highs_solver):
        """Test the binary model solves to optimality."""
        result = highs_solver.solve(pick_one_model())

        assert result.is_optimal()
        assert result.assignment == {"a": 1.0, "b": 0.0}
        assert result.objective_value == pytest.approx(3.0)
        assert not result.is_approximate

    def test_mixed_integer(self, highs_solver):
        """Test a mixed model: c absorbs the cover constraint up to its cap."""
        result = highs_solver.solve(mixed_model())

        assert result.is_optimal()
        assert result.get("n") == 0.0
        assert result.get("c") == pytest.approx(50.0)
        assert result.objective_value == pytest.approx(-50.0)

    def test_equality_constraint(self, highs_solver):
        """Test that equality bounds are enforced."""
        builder = ConstraintModelBuilder()
        builder.add_variable("x", kind="integer")
        builder.add_variable("y", kind="integer")
        builder.set_objective_coef("x", 1.0)
        builder.set_objective_coef("y", 2.0)
        builder.add_constraint("Sum", ConstraintBound(equal=7))
        builder.set_constraint_coef("x", "Sum", 1.0)
        builder.set_constraint_coef("y", "Sum", 1.0)

        result = highs_solver.solve(builder.build_model(op_type="max"))

        assert result.is_optimal()
        assert result.get("y") == 7.0
        assert result.objective_value == pytest.approx(14.0)

    def test_infeasible(self, highs_solver):
        """Test that HiGHS reports infeasibility."""
        builder = ConstraintModelBuilder()
        builder.add_variable("x", kind="binary")
        builder.set_objective_coef("x", 1.0)
        builder.add_constraint("Impossible", ConstraintBound(min=2))
        builder.set_constraint_coef("x", "Impossible", 1.0)

        result = highs_solver.solve(builder.build_model())

        assert not result.feasible
        assert result.is_infeasible()
