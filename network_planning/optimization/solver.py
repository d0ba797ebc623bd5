"""Solver adapter for sparse constraint models.

Translates an ``LpModel`` into a Pyomo ``ConcreteModel`` and solves it with
HiGHS through the APPSI interface, or with any legacy ``SolverFactory`` solver
selected by name.  When no solver can be used the adapter falls back to a
seeded multi-start random search whose results are flagged approximate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import logging
import os
import time

import numpy as np
from pyomo.common.errors import ApplicationError
from pyomo.environ import (
    Binary,
    ConcreteModel,
    ConstraintList,
    NonNegativeIntegers,
    NonNegativeReals,
    Objective,
    Var,
    maximize,
    minimize,
    value,
)
from pyomo.opt import TerminationCondition

from .constants import (
    FALLBACK_CONTINUOUS_MAX,
    FALLBACK_INTEGER_MAX,
    FALLBACK_TRIALS,
    FEASIBILITY_TOLERANCE,
)
from .model_builder import OP_TYPES, LpModel
from .solver_config import SolverConfig, SolverType
from ..errors import JobCancelledError, JobTimeoutError, ModelDefinitionError, SolverFailureError

logger = logging.getLogger(__name__)

FALLBACK_SOLVER_NAME = "random_search"


class TerminationStatus(str, Enum):
    """How a solve ended."""
    OPTIMAL = "optimal"
    FEASIBLE = "feasible"
    TIME_LIMIT = "time_limit"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    NO_SOLUTION = "no_solution"


@dataclass
class SolveResult:
    """
    Results from solving an ``LpModel``.

    Attributes:
        feasible: Whether a feasible assignment was found
        objective_value: Objective of the returned assignment
        assignment: Variable name -> value (integers and binaries rounded)
        solver_name: Solver that produced the result
        termination: How the solve ended
        solve_time_seconds: Wall-clock solve time
        is_approximate: True when produced by the random-search fallback
        num_variables: Number of variables in the model
        num_constraints: Number of constraints in the model
        num_integer_vars: Number of binary and integer variables
        message: Explanation for infeasible or failed solves
        metadata: Extracted solution data added by model classes
    """
    feasible: bool
    objective_value: Optional[float] = None
    assignment: Dict[str, float] = field(default_factory=dict)
    solver_name: Optional[str] = None
    termination: TerminationStatus = TerminationStatus.NO_SOLUTION
    solve_time_seconds: Optional[float] = None
    is_approximate: bool = False
    num_variables: int = 0
    num_constraints: int = 0
    num_integer_vars: int = 0
    message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def is_optimal(self) -> bool:
        """Check if solution is proven optimal."""
        return self.feasible and self.termination == TerminationStatus.OPTIMAL

    def is_feasible(self) -> bool:
        return self.feasible

    def is_infeasible(self) -> bool:
        return self.termination == TerminationStatus.INFEASIBLE

    def get(self, name: str, default: float = 0.0) -> float:
        """Value of a variable in the assignment."""
        return self.assignment.get(name, default)

    def __str__(self) -> str:
        """String representation."""
        status = self.termination.value.upper()
        if self.is_approximate:
            status += " (approximate)"
        result = f"SolveResult: {status}"
        if self.objective_value is not None:
            result += f", objective = {self.objective_value:,.2f}"
        if self.solve_time_seconds is not None:
            result += f", time = {self.solve_time_seconds:.2f}s"
        return result


def check_model_structure(model: LpModel) -> None:
    """Raise ``ModelDefinitionError`` for models the adapter cannot translate."""
    if not model.variables:
        raise ModelDefinitionError("Model has no variables")
    if model.op_type not in OP_TYPES:
        raise ModelDefinitionError(f"Unknown op_type '{model.op_type}'")

    undefined = (model.binaries | model.integers) - set(model.variables)
    if undefined:
        raise ModelDefinitionError(
            f"Integrality tags on undefined variables: {sorted(undefined)}"
        )

    has_objective = False
    for var_name, coefs in model.variables.items():
        for key in coefs:
            if key == model.optimize:
                has_objective = True
            elif key not in model.constraints:
                raise ModelDefinitionError(
                    f"Variable '{var_name}' references undefined constraint '{key}'"
                )
    if not has_objective:
        raise ModelDefinitionError(
            f"Objective '{model.optimize}' not found in any variable definition"
        )


def _constraint_terms(model: LpModel) -> Dict[str, List[Tuple[str, float]]]:
    terms: Dict[str, List[Tuple[str, float]]] = {name: [] for name in model.constraints}
    for var_name, coefs in model.variables.items():
        for key, coef in coefs.items():
            if key in terms and coef != 0.0:
                terms[key].append((var_name, coef))
    return terms


class SolverAdapter:
    """Solves ``LpModel`` instances.

    Args:
        solver_config: Solver detection and limits (None = default config)
        seed: Seed for the fallback search (None = fresh entropy, recorded in
            the result's ``metadata['seed']``)
        fallback_trials: Number of random trials in the fallback search
        allow_fallback: If False, solver failures raise SolverFailureError
        deadline: ``time.monotonic()`` value by which every solve must end;
            caps the configured time limit and the fallback search

    Example:
        adapter = SolverAdapter(seed=42)
        result = adapter.solve(builder.build_model())
        if result.feasible:
            print(result.assignment)
    """

    def __init__(
        self,
        solver_config: Optional[SolverConfig] = None,
        seed: Optional[int] = None,
        fallback_trials: int = FALLBACK_TRIALS,
        allow_fallback: bool = True,
        deadline: Optional[float] = None,
    ):
        self._solver_config = solver_config
        self.seed = seed
        self.fallback_trials = fallback_trials
        self.allow_fallback = allow_fallback
        self.deadline = deadline

    @property
    def solver_config(self) -> SolverConfig:
        if self._solver_config is None:
            self._solver_config = SolverConfig()
        return self._solver_config

    def time_limit(self) -> Optional[float]:
        """Configured time limit, capped by the time left before the deadline.

        Raises:
            JobTimeoutError: If the deadline has already passed
        """
        limit = self.solver_config.time_limit_seconds
        if self.deadline is None:
            return limit
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise JobTimeoutError("No time left to solve before the job deadline")
        return remaining if not limit else min(limit, remaining)

    def solve(self, model: LpModel, cancel_token=None) -> SolveResult:
        """Solve a model.

        Args:
            model: Model to solve
            cancel_token: Object with ``is_set()`` (e.g. ``threading.Event``);
                checked before solving and between fallback trials

        Returns:
            SolveResult, possibly with ``feasible=False``

        Raises:
            ModelDefinitionError: If the model is structurally invalid
            JobCancelledError: If the token is set
            JobTimeoutError: If the deadline has passed before solving
            SolverFailureError: If the solver fails and fallback is disabled
        """
        check_model_structure(model)
        _check_cancelled(cancel_token)
        time_limit = self.time_limit()

        start = time.time()
        terms = _constraint_terms(model)

        violated = [
            name for name, bound in model.constraints.items()
            if not terms[name] and not bound.is_satisfied(0.0, FEASIBILITY_TOLERANCE)
        ]
        if violated:
            logger.info(f"Model infeasible: {len(violated)} constraint(s) without terms are violated")
            return self._result(
                model,
                feasible=False,
                termination=TerminationStatus.INFEASIBLE,
                solver_name=None,
                solve_time=time.time() - start,
                message=f"Constraints without variables cannot be satisfied: {violated[:5]}",
            )

        try:
            result = self._solve_with_pyomo(model, terms, time_limit)
        except (SolverFailureError, ApplicationError, RuntimeError, ImportError, OSError) as e:
            if not self.allow_fallback:
                raise SolverFailureError(f"Solver failed: {e}") from e
            logger.warning(f"Solver unavailable or failed ({e}); using random-search fallback")
            _check_cancelled(cancel_token)
            result = self._solve_with_fallback(model, cancel_token)

        result.solve_time_seconds = time.time() - start
        logger.info(str(result))
        return result

    def _solve_with_pyomo(
        self,
        model: LpModel,
        terms: Dict[str, List[Tuple[str, float]]],
        time_limit: Optional[float] = None,
    ) -> SolveResult:
        pyomo_model, var_map = self._build_pyomo_model(model, terms)
        solver_name = self.solver_config.solver_name or self.solver_config.get_best_available_solver(
            test_if_needed=False
        )

        if solver_name == SolverType.APPSI_HIGHS.value:
            termination, message = self._run_appsi_highs(pyomo_model, time_limit)
        else:
            termination, message = self._run_legacy_solver(pyomo_model, solver_name, time_limit)

        if termination in (TerminationStatus.INFEASIBLE, TerminationStatus.UNBOUNDED):
            return self._result(
                model, feasible=False, termination=termination,
                solver_name=solver_name, message=message,
            )

        assignment = {}
        for name, var in var_map.items():
            val = value(var, exception=False)
            val = 0.0 if val is None else float(val)
            if name in model.binaries or name in model.integers:
                val = float(round(val))
            assignment[name] = val

        return self._result(
            model,
            feasible=True,
            termination=termination,
            solver_name=solver_name,
            assignment=assignment,
            objective_value=model.objective_value(assignment),
        )

    def _build_pyomo_model(self, model: LpModel, terms: Dict[str, List[Tuple[str, float]]]):
        pyomo_model = ConcreteModel()
        names = sorted(model.variables)
        domains = {'binary': Binary, 'integer': NonNegativeIntegers, 'continuous': NonNegativeReals}

        def domain_rule(m, name):
            return domains[model.variable_kind(name)]

        pyomo_model.x = Var(names, within=domain_rule)
        var_map = {name: pyomo_model.x[name] for name in names}

        pyomo_model.constraints = ConstraintList()
        for name, bound in model.constraints.items():
            if not terms[name]:
                continue
            expr = sum(coef * var_map[v] for v, coef in terms[name])
            if bound.equal is not None:
                pyomo_model.constraints.add(expr == bound.equal)
                continue
            if bound.min is not None:
                pyomo_model.constraints.add(expr >= bound.min)
            if bound.max is not None:
                pyomo_model.constraints.add(expr <= bound.max)

        objective_terms = [
            (var_map[name], coefs[model.optimize])
            for name, coefs in model.variables.items()
            if coefs.get(model.optimize, 0.0) != 0.0
        ]
        if objective_terms:
            objective_expr = sum(coef * var for var, coef in objective_terms)
        else:
            # All objective coefficients are zero: any feasible point is optimal
            objective_expr = 0.0 * var_map[names[0]]
        pyomo_model.obj = Objective(
            expr=objective_expr,
            sense=maximize if model.op_type == "max" else minimize,
        )

        return pyomo_model, var_map

    def _run_appsi_highs(
        self, pyomo_model: ConcreteModel, time_limit: Optional[float] = None
    ) -> Tuple[TerminationStatus, Optional[str]]:
        from pyomo.contrib.appsi.base import TerminationCondition as AppsiTC
        from pyomo.contrib.appsi.solvers import Highs

        solver = Highs()
        if not solver.available():
            raise SolverFailureError("APPSI HiGHS is not available")

        solver.config.load_solution = False
        if time_limit:
            solver.config.time_limit = time_limit
        if self.solver_config.mip_gap:
            solver.config.mip_gap = self.solver_config.mip_gap
        solver.highs_options['presolve'] = 'on'
        solver.highs_options['threads'] = os.cpu_count() or 4

        results = solver.solve(pyomo_model)
        tc = results.termination_condition

        if tc == AppsiTC.optimal:
            results.solution_loader.load_vars()
            return TerminationStatus.OPTIMAL, None
        if tc == AppsiTC.maxTimeLimit and results.best_feasible_objective is not None:
            results.solution_loader.load_vars()
            return TerminationStatus.TIME_LIMIT, "Time limit reached with a feasible solution"
        if tc in (AppsiTC.infeasible, AppsiTC.infeasibleOrUnbounded):
            return TerminationStatus.INFEASIBLE, "Model is infeasible. Constraints cannot all be satisfied simultaneously."
        if tc == AppsiTC.unbounded:
            return TerminationStatus.UNBOUNDED, "Model is unbounded"
        raise SolverFailureError(f"HiGHS terminated with {tc}")

    def _run_legacy_solver(
        self, pyomo_model: ConcreteModel, solver_name: str, time_limit: Optional[float] = None
    ) -> Tuple[TerminationStatus, Optional[str]]:
        options: Dict[str, Any] = {}
        if solver_name in (SolverType.CBC.value,):
            if time_limit:
                options['seconds'] = time_limit
            if self.solver_config.mip_gap:
                options['ratio'] = self.solver_config.mip_gap
        elif solver_name == SolverType.GUROBI.value:
            if time_limit:
                options['TimeLimit'] = time_limit
            if self.solver_config.mip_gap:
                options['MIPGap'] = self.solver_config.mip_gap
        elif solver_name == SolverType.HIGHS.value:
            options['presolve'] = 'on'
            if time_limit:
                options['time_limit'] = time_limit
            if self.solver_config.mip_gap:
                options['mip_rel_gap'] = self.solver_config.mip_gap

        solver = self.solver_config.create_solver(solver_name, options)
        results = solver.solve(pyomo_model, load_solutions=False)
        tc = results.solver.termination_condition

        if tc in (TerminationCondition.optimal, TerminationCondition.feasible, TerminationCondition.maxTimeLimit):
            if len(results.solution) == 0:
                raise SolverFailureError(f"{solver_name} returned {tc} without a solution")
            pyomo_model.solutions.load_from(results)
            if tc == TerminationCondition.optimal:
                return TerminationStatus.OPTIMAL, None
            if tc == TerminationCondition.maxTimeLimit:
                return TerminationStatus.TIME_LIMIT, "Time limit reached with a feasible solution"
            return TerminationStatus.FEASIBLE, None
        if tc in (TerminationCondition.infeasible, TerminationCondition.infeasibleOrUnbounded):
            return TerminationStatus.INFEASIBLE, "Model is infeasible. Constraints cannot all be satisfied simultaneously."
        if tc == TerminationCondition.unbounded:
            return TerminationStatus.UNBOUNDED, "Model is unbounded"
        raise SolverFailureError(f"{solver_name} terminated with {tc}")

    def _solve_with_fallback(self, model: LpModel, cancel_token=None) -> SolveResult:
        """Seeded multi-start random search.

        Binaries are sampled from {0, 1}, integers from [0, FALLBACK_INTEGER_MAX]
        and continuous variables from [0, FALLBACK_CONTINUOUS_MAX).  Samples
        violating any bound by more than FEASIBILITY_TOLERANCE are rejected.
        The search stops early once the deadline passes.  The seed used is
        recorded in the result's metadata so an unseeded run can be replayed.
        """
        seed = self.seed if self.seed is not None else int(np.random.SeedSequence().entropy)
        rng = np.random.default_rng(seed)
        names = sorted(model.variables)
        binaries = [n for n in names if n in model.binaries]
        integers = [n for n in names if n in model.integers and n not in model.binaries]
        continuous = [n for n in names if n not in model.binaries and n not in model.integers]
        maximize_objective = model.op_type == "max"

        best_assignment: Optional[Dict[str, float]] = None
        best_objective: Optional[float] = None
        feasible_trials = 0
        trials = 0

        for _ in range(self.fallback_trials):
            _check_cancelled(cancel_token)
            if self.deadline is not None and time.monotonic() >= self.deadline:
                logger.warning(f"Random-search fallback stopped at the deadline after {trials} trials")
                break
            trials += 1

            sample = dict(zip(binaries, rng.integers(0, 2, size=len(binaries)).astype(float)))
            sample.update(zip(integers, rng.integers(0, FALLBACK_INTEGER_MAX + 1, size=len(integers)).astype(float)))
            sample.update(zip(continuous, rng.uniform(0.0, FALLBACK_CONTINUOUS_MAX, size=len(continuous))))

            if not model.is_feasible(sample, FEASIBILITY_TOLERANCE):
                continue
            feasible_trials += 1

            objective = model.objective_value(sample)
            better = (
                best_objective is None
                or (maximize_objective and objective > best_objective)
                or (not maximize_objective and objective < best_objective)
            )
            if better:
                best_objective = objective
                best_assignment = {k: float(v) for k, v in sample.items()}

        logger.info(
            f"Random-search fallback (seed {seed}): {feasible_trials}/{trials} feasible trials"
        )

        if best_assignment is None:
            result = self._result(
                model,
                feasible=False,
                termination=TerminationStatus.NO_SOLUTION,
                solver_name=FALLBACK_SOLVER_NAME,
                is_approximate=True,
                message=f"No feasible assignment found in {trials} random trials",
            )
        else:
            result = self._result(
                model,
                feasible=True,
                termination=TerminationStatus.FEASIBLE,
                solver_name=FALLBACK_SOLVER_NAME,
                assignment=best_assignment,
                objective_value=best_objective,
                is_approximate=True,
            )
        result.metadata['seed'] = seed
        return result

    @staticmethod
    def _result(
        model: LpModel,
        feasible: bool,
        termination: TerminationStatus,
        solver_name: Optional[str],
        assignment: Optional[Dict[str, float]] = None,
        objective_value: Optional[float] = None,
        is_approximate: bool = False,
        solve_time: Optional[float] = None,
        message: Optional[str] = None,
    ) -> SolveResult:
        return SolveResult(
            feasible=feasible,
            objective_value=objective_value,
            assignment=assignment or {},
            solver_name=solver_name,
            termination=termination,
            solve_time_seconds=solve_time,
            is_approximate=is_approximate,
            num_variables=len(model.variables),
            num_constraints=len(model.constraints),
            num_integer_vars=len(model.binaries | model.integers),
            message=message,
        )


def _check_cancelled(cancel_token) -> None:
    if cancel_token is not None and cancel_token.is_set():
        raise JobCancelledError("Solve cancelled")
