"""Optimization module for network planning.

This module provides the sparse constraint model builder, the solver adapter
(Pyomo + APPSI HiGHS with a random-search fallback) and the base class shared
by the formulations.  The formulations themselves live in
``warehouse_model`` and ``transport_model``.
"""

from .solver_config import (
    SolverConfig,
    SolverType,
    SolverInfo,
    get_global_config,
    get_solver,
)
from .model_builder import (
    ConstraintBound,
    ConstraintModelBuilder,
    LpModel,
    ModelValidation,
    validate_model,
)
from .solver import (
    SolveResult,
    SolverAdapter,
    TerminationStatus,
)
from .base_model import BaseOptimizationModel

__all__ = [
    # Solver configuration
    "SolverConfig",
    "SolverType",
    "SolverInfo",
    "get_global_config",
    "get_solver",
    # Model building
    "ConstraintBound",
    "ConstraintModelBuilder",
    "LpModel",
    "ModelValidation",
    "validate_model",
    # Solving
    "SolveResult",
    "SolverAdapter",
    "TerminationStatus",
    "BaseOptimizationModel",
]
