"""Sparse constraint model builder.

Models are described as maps rather than matrices: each variable owns a map of
``key -> coefficient`` where a key is either the objective key or a constraint
name, and each constraint owns a bound.  ``ConstraintModelBuilder`` assembles
these maps incrementally and freezes them into an ``LpModel`` that the solver
adapter can translate.

Example:
    builder = ConstraintModelBuilder()
    builder.add_variable("x", kind="binary")
    builder.add_constraint("Cap", ConstraintBound(max=1))
    builder.set_constraint_coef("x", "Cap", 1.0)
    builder.set_objective_coef("x", 5.0)
    model = builder.build_model(op_type="min")
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
import copy
import logging

from .constants import COEFFICIENT_EPSILON, DEFAULT_OBJECTIVE_KEY
from ..errors import ModelDefinitionError

logger = logging.getLogger(__name__)

VARIABLE_KINDS = ("binary", "integer", "continuous")
OP_TYPES = ("min", "max")


@dataclass(frozen=True)
class ConstraintBound:
    """Bound on a constraint's left-hand side.

    ``equal`` takes precedence over ``min``/``max`` when set.
    """
    min: Optional[float] = None
    max: Optional[float] = None
    equal: Optional[float] = None

    def is_satisfied(self, lhs: float, tolerance: float = 0.0) -> bool:
        """Check a left-hand-side value against this bound."""
        if self.equal is not None:
            return abs(lhs - self.equal) <= tolerance
        if self.min is not None and lhs < self.min - tolerance:
            return False
        if self.max is not None and lhs > self.max + tolerance:
            return False
        return True

    def to_dict(self) -> Dict[str, float]:
        result = {}
        if self.min is not None:
            result['min'] = self.min
        if self.max is not None:
            result['max'] = self.max
        if self.equal is not None:
            result['equal'] = self.equal
        return result


@dataclass
class LpModel:
    """Frozen sparse model.

    Attributes:
        optimize: Objective key inside variable coefficient maps
        op_type: 'min' or 'max'
        variables: Variable name -> {constraint name or objective key -> coefficient}
        constraints: Constraint name -> bound
        binaries: Names of binary variables
        integers: Names of general integer variables
    """
    optimize: str
    op_type: str
    variables: Dict[str, Dict[str, float]] = field(default_factory=dict)
    constraints: Dict[str, ConstraintBound] = field(default_factory=dict)
    binaries: Set[str] = field(default_factory=set)
    integers: Set[str] = field(default_factory=set)

    def variable_kind(self, name: str) -> str:
        if name in self.binaries:
            return "binary"
        if name in self.integers:
            return "integer"
        return "continuous"

    def objective_value(self, assignment: Dict[str, float]) -> float:
        """Evaluate the objective for a variable assignment (missing values are 0)."""
        return sum(
            coefs.get(self.optimize, 0.0) * assignment.get(name, 0.0)
            for name, coefs in self.variables.items()
        )

    def constraint_lhs(self, assignment: Dict[str, float]) -> Dict[str, float]:
        """Evaluate every constraint's left-hand side for a variable assignment."""
        lhs = {name: 0.0 for name in self.constraints}
        for var_name, coefs in self.variables.items():
            val = assignment.get(var_name, 0.0)
            if val == 0.0:
                continue
            for key, coef in coefs.items():
                if key in lhs:
                    lhs[key] += coef * val
        return lhs

    def is_feasible(self, assignment: Dict[str, float], tolerance: float = 1e-6) -> bool:
        """Check whether an assignment satisfies every constraint bound."""
        lhs = self.constraint_lhs(assignment)
        return all(
            bound.is_satisfied(lhs[name], tolerance)
            for name, bound in self.constraints.items()
        )

    def to_dict(self) -> Dict:
        """Serialize to the interchange layout used by external solvers."""
        result = {
            'optimize': self.optimize,
            'opType': self.op_type,
            'constraints': {name: b.to_dict() for name, b in self.constraints.items()},
            'variables': copy.deepcopy(self.variables),
        }
        if self.binaries:
            result['binaries'] = {name: 1 for name in sorted(self.binaries)}
        if self.integers:
            result['ints'] = {name: 1 for name in sorted(self.integers)}
        return result


@dataclass
class ModelValidation:
    """Result of ``validate_model``."""
    valid: bool
    errors: List[str] = field(default_factory=list)


class ConstraintModelBuilder:
    """Incrementally assembles an ``LpModel``.

    Args:
        objective_key: Key used for objective coefficients
        strict: If True, redefining a constraint raises ModelDefinitionError.
            Otherwise the last definition wins.
    """

    def __init__(self, objective_key: str = DEFAULT_OBJECTIVE_KEY, strict: bool = False):
        self.objective_key = objective_key
        self.strict = strict
        self._variables: Dict[str, Dict[str, float]] = {}
        self._constraints: Dict[str, ConstraintBound] = {}
        self._binaries: Set[str] = set()
        self._integers: Set[str] = set()

    @property
    def num_variables(self) -> int:
        return len(self._variables)

    @property
    def num_constraints(self) -> int:
        return len(self._constraints)

    def add_variable(self, name: str, kind: Optional[str] = None) -> None:
        """Register a variable, optionally tagging it binary/integer/continuous.

        Re-registering an existing variable keeps its coefficients and applies
        the new tag.
        """
        if kind is not None and kind not in VARIABLE_KINDS:
            raise ModelDefinitionError(f"Unknown variable kind '{kind}' for '{name}'")

        self._variables.setdefault(name, {})
        if kind is None:
            return
        self._binaries.discard(name)
        self._integers.discard(name)
        if kind == "binary":
            self._binaries.add(name)
        elif kind == "integer":
            self._integers.add(name)

    def add_constraint(self, name: str, bound: ConstraintBound) -> None:
        """Register a constraint bound.

        Raises:
            ModelDefinitionError: If the bound is empty, or if the builder is
                strict and the constraint already exists
        """
        if bound.min is None and bound.max is None and bound.equal is None:
            raise ModelDefinitionError(f"Constraint '{name}' has no bound")

        if name in self._constraints:
            if self.strict:
                raise ModelDefinitionError(f"Constraint '{name}' is already defined")
            logger.debug(
                f"Redefining constraint '{name}': {self._constraints[name].to_dict()} "
                f"-> {bound.to_dict()}"
            )
        self._constraints[name] = bound

    def set_objective_coef(self, var: str, value: float, key: Optional[str] = None) -> None:
        """Set (overwrite) a variable's objective coefficient."""
        self._variables.setdefault(var, {})[key or self.objective_key] = value

    def set_constraint_coef(self, var: str, constraint: str, delta: float) -> None:
        """Add ``delta`` to a variable's coefficient in a constraint.

        Updates with magnitude below COEFFICIENT_EPSILON are ignored.
        """
        if abs(delta) < COEFFICIENT_EPSILON:
            return
        coefs = self._variables.setdefault(var, {})
        coefs[constraint] = coefs.get(constraint, 0.0) + delta

    def build_model(
        self,
        objective_key: Optional[str] = None,
        op_type: str = "min",
    ) -> LpModel:
        """Freeze the current state into an independent ``LpModel``."""
        if op_type not in OP_TYPES:
            raise ModelDefinitionError(f"op_type must be 'min' or 'max', got '{op_type}'")

        model = LpModel(
            optimize=objective_key or self.objective_key,
            op_type=op_type,
            variables=copy.deepcopy(self._variables),
            constraints=dict(self._constraints),
            binaries=set(self._binaries),
            integers=set(self._integers),
        )

        logger.debug(
            f"Built model: {len(model.variables)} variables, "
            f"{len(model.constraints)} constraints, "
            f"{len(model.binaries)} binary, {len(model.integers)} integer"
        )
        return model


def validate_model(model: LpModel) -> ModelValidation:
    """Check an ``LpModel`` for structural problems.

    Reports:
        - objective key not present on any variable
        - constraints that no variable references
        - variables referencing undefined constraints
        - binary/integer tags on undefined variables

    Returns:
        ModelValidation with ``valid`` False if any error was found
    """
    errors: List[str] = []

    if not any(model.optimize in coefs for coefs in model.variables.values()):
        errors.append(
            f"Objective variable '{model.optimize}' not found in any variable definition"
        )

    referenced = set()
    for var_name, coefs in model.variables.items():
        for key in coefs:
            if key == model.optimize:
                continue
            if key not in model.constraints:
                errors.append(
                    f"Variable '{var_name}' references undefined constraint '{key}'"
                )
            referenced.add(key)

    for name in model.constraints:
        if name not in referenced:
            errors.append(f"Constraint '{name}' has no variables referencing it")

    for name in sorted((model.binaries | model.integers) - set(model.variables)):
        errors.append(f"Integrality tag on undefined variable '{name}'")

    if errors:
        logger.warning(f"Model validation found {len(errors)} error(s)")

    return ModelValidation(valid=not errors, errors=errors)
