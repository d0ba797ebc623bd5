"""Base class for network planning optimization models.

This module provides an abstract base class that the warehouse and transport
formulations inherit from, providing the common build → validate → solve →
extract workflow.

IMPORTANT: All models must return a Pydantic validated result from
extract_solution().  This ensures strict interface compliance and fail-fast
validation at the model-caller boundary.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging
import time

from pydantic import BaseModel, ValidationError

from .model_builder import ConstraintModelBuilder, LpModel, validate_model
from .solver import SolveResult, SolverAdapter
from ..errors import InfeasibleModelError

logger = logging.getLogger(__name__)


class BaseOptimizationModel(ABC):
    """
    Abstract base class for optimization models.

    Subclasses implement:
    - populate(builder): Add variables, constraints and objective terms
    - extract_solution(result): Turn a feasible SolveResult into a validated result

    This base class provides:
    - Model building and validation
    - Solving through SolverAdapter (with random-search fallback)
    - Fail-fast infeasibility handling
    - Model statistics

    Example:
        class MyModel(BaseOptimizationModel):
            def populate(self, builder):
                builder.add_variable("x", kind="binary")
                builder.set_objective_coef("x", 1.0)

            def extract_solution(self, result):
                return MyResult(x=result.get("x"))

        plan = MyModel().run()
    """

    #: Objective direction passed to build_model()
    op_type: str = "min"

    def __init__(self, solver: Optional[SolverAdapter] = None):
        """
        Args:
            solver: SolverAdapter instance. If None, creates a default adapter.
        """
        self.solver = solver or SolverAdapter()
        self.model: Optional[LpModel] = None
        self.result: Optional[SolveResult] = None
        self.solution: Optional[BaseModel] = None
        self._build_time: Optional[float] = None

    @abstractmethod
    def populate(self, builder: ConstraintModelBuilder) -> None:
        """Add the formulation's variables, constraints and objective terms."""
        raise NotImplementedError("Subclass must implement populate()")

    @abstractmethod
    def extract_solution(self, result: SolveResult) -> BaseModel:
        """
        Build the validated result from a feasible solve.

        Raises:
            ValidationError: If the result does not conform to its schema
        """
        raise NotImplementedError("Subclass must implement extract_solution()")

    def build_model(self) -> LpModel:
        """Build and validate the constraint model.

        Validation findings are logged as warnings.  Constraints that no
        variable references are evaluated by the solver adapter directly, so a
        violated one makes the solve infeasible rather than failing the build.
        """
        build_start = time.time()
        builder = ConstraintModelBuilder()
        self.populate(builder)
        model = builder.build_model(op_type=self.op_type)
        self._build_time = time.time() - build_start

        validation = validate_model(model)
        if not validation.valid:
            logger.warning(
                f"{type(self).__name__} model validation warnings: {validation.errors[:5]}"
            )

        self.model = model
        return model

    def describe_infeasibility(self) -> str:
        """Context logged and raised when the solve is infeasible."""
        return "No feasible solution found"

    def solve(self, cancel_token=None) -> SolveResult:
        """
        Build and solve the model.

        Args:
            cancel_token: Optional cancellation token forwarded to the solver

        Returns:
            SolveResult with the extracted solution in ``metadata``

        Raises:
            InfeasibleModelError: If no feasible solution exists or was found
        """
        model = self.build_model()
        result = self.solver.solve(model, cancel_token=cancel_token)
        self.result = result

        if not result.feasible:
            message = self.describe_infeasibility()
            logger.error(f"{type(self).__name__}: {message} ({result.termination.value})")
            raise InfeasibleModelError(f"{message}: {result.message or result.termination.value}")

        try:
            self.solution = self.extract_solution(result)
        except ValidationError as ve:
            # Schema violations are programming errors, never swallowed
            logger.error(f"CRITICAL: {type(self).__name__} violates its result schema: {ve}")
            raise

        result.metadata.update(self.solution.model_dump(mode='json'))
        return result

    def run(self, cancel_token=None) -> BaseModel:
        """Solve and return the validated solution."""
        self.solve(cancel_token=cancel_token)
        return self.solution

    def get_model_statistics(self) -> Dict[str, Any]:
        """
        Get statistics about the model.

        Example:
            stats = model.get_model_statistics()
            print(f"Variables: {stats['num_variables']}")
        """
        if self.model is None:
            return {
                'built': False,
                'num_variables': 0,
                'num_constraints': 0,
                'num_integer_vars': 0,
            }

        return {
            'built': True,
            'build_time_seconds': self._build_time,
            'num_variables': len(self.model.variables),
            'num_constraints': len(self.model.constraints),
            'num_integer_vars': len(self.model.binaries | self.model.integers),
        }

    def reset(self):
        """
        Reset the model state.

        Clears the built model, results, and solution.
        """
        self.model = None
        self.result = None
        self.solution = None
        self._build_time = None
