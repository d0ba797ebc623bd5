"""Solver detection, configuration and selection.

Detects which MIP solvers are usable on this machine and creates configured
solver instances.  HiGHS through Pyomo's APPSI interface is preferred because
it ships as a pip wheel (``highspy``); the legacy ``SolverFactory`` solvers
are detected as alternatives.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional
import logging
import platform
import sys

from pyomo.environ import ConcreteModel, Constraint, Objective, SolverFactory, Var, minimize, value
from pyomo.opt import SolverStatus

logger = logging.getLogger(__name__)


class SolverType(str, Enum):
    """Supported solvers."""
    APPSI_HIGHS = "appsi_highs"
    GUROBI = "gurobi"
    CPLEX = "cplex"
    HIGHS = "highs"
    CBC = "cbc"
    GLPK = "glpk"


@dataclass
class SolverInfo:
    """Detection state of a single solver."""
    name: str
    available: bool
    version: Optional[str] = None
    path: Optional[str] = None
    tested: bool = False
    works: bool = False

    def __str__(self) -> str:
        if not self.available:
            return f"{self.name.upper()}: ✗ unavailable"
        status = f"{self.name.upper()}: ✓ available"
        if self.tested:
            status += " (tested)" if self.works else " (test failed)"
        return status


def _appsi_highs_available() -> bool:
    try:
        from pyomo.contrib.appsi.solvers import Highs
    except ImportError:
        return False
    try:
        return bool(Highs().available())
    except Exception as e:
        logger.debug(f"APPSI HiGHS availability check failed: {e}")
        return False


class SolverConfig:
    """Detects available solvers and creates solver instances.

    Example:
        config = SolverConfig()
        name = config.get_best_available_solver()
        if name != 'appsi_highs':
            solver = config.create_solver(name, options={'seconds': 60})
    """

    #: Order in which solvers are chosen when several are available
    SOLVER_PREFERENCE = [
        SolverType.APPSI_HIGHS,
        SolverType.GUROBI,
        SolverType.CPLEX,
        SolverType.HIGHS,
        SolverType.CBC,
        SolverType.GLPK,
    ]

    def __init__(
        self,
        time_limit_seconds: Optional[float] = None,
        mip_gap: Optional[float] = None,
        solver_name: Optional[str] = None,
    ):
        """
        Args:
            time_limit_seconds: Default time limit passed to solves
            mip_gap: Default relative MIP gap passed to solves
            solver_name: Preferred solver (None = best available)
        """
        self.time_limit_seconds = time_limit_seconds
        self.mip_gap = mip_gap
        self.solver_name = solver_name
        self._solver_info: Dict[str, SolverInfo] = {}
        self._detect_solvers()

    def _detect_solvers(self) -> None:
        for solver_type in SolverType:
            name = solver_type.value
            if solver_type == SolverType.APPSI_HIGHS:
                available = _appsi_highs_available()
            else:
                try:
                    available = bool(SolverFactory(name).available(exception_flag=False))
                except Exception as e:
                    logger.debug(f"Solver '{name}' detection failed: {e}")
                    available = False
            self._solver_info[name] = SolverInfo(name=name, available=available)

        logger.debug(f"Available solvers: {self.get_available_solvers()}")

    def get_available_solvers(self) -> List[str]:
        """Return names of detected solvers, in preference order."""
        return [
            s.value for s in self.SOLVER_PREFERENCE
            if self._solver_info.get(s.value) and self._solver_info[s.value].available
        ]

    def get_solver_info(self, solver_name: str) -> Optional[SolverInfo]:
        return self._solver_info.get(solver_name)

    def get_best_available_solver(self, test_if_needed: bool = True) -> str:
        """Return the preferred solver that is available.

        Args:
            test_if_needed: Run a tiny test model before trusting a solver

        Raises:
            RuntimeError: If no solver is available
        """
        if self.solver_name:
            return self.solver_name

        for solver_name in self.get_available_solvers():
            if not test_if_needed:
                return solver_name
            info = self._solver_info[solver_name]
            if not info.tested:
                self.test_solver(solver_name)
            if info.works:
                return solver_name

        raise RuntimeError(
            "No optimization solver available. Install highspy "
            "(pip install highspy) or another Pyomo-compatible MIP solver."
        )

    def create_solver(self, solver_name: Optional[str] = None, options: Optional[Dict[str, Any]] = None):
        """Create a legacy ``SolverFactory`` solver instance.

        Args:
            solver_name: Solver to create (None = best available)
            options: Solver options to set

        Raises:
            RuntimeError: If the solver is unknown or not available
        """
        if solver_name is None:
            solver_name = self.get_best_available_solver(test_if_needed=False)

        if solver_name not in self._solver_info:
            raise RuntimeError(
                f"Unknown solver '{solver_name}'. Known solvers: {sorted(self._solver_info)}"
            )
        if not self._solver_info[solver_name].available:
            raise RuntimeError(f"Solver '{solver_name}' is not available")

        solver = SolverFactory(solver_name)
        for key, val in (options or {}).items():
            solver.options[key] = val
        return solver

    def test_solver(self, solver_name: str) -> bool:
        """Solve a one-variable model to confirm a solver works."""
        info = self._solver_info.get(solver_name)
        if info is None or not info.available:
            return False

        model = ConcreteModel()
        model.x = Var(bounds=(0, 10))
        model.c = Constraint(expr=model.x >= 1)
        model.obj = Objective(expr=model.x, sense=minimize)

        works = False
        try:
            if solver_name == SolverType.APPSI_HIGHS.value:
                from pyomo.contrib.appsi.solvers import Highs
                Highs().solve(model)
                works = abs(value(model.x) - 1.0) < 1e-6
            else:
                results = SolverFactory(solver_name).solve(model)
                works = (
                    results.solver.status == SolverStatus.ok
                    and abs(value(model.x) - 1.0) < 1e-6
                )
        except Exception as e:
            logger.warning(f"Solver '{solver_name}' failed test solve: {e}")

        info.tested = True
        info.works = works
        return works

    def test_all_solvers(self) -> Dict[str, bool]:
        return {name: self.test_solver(name) for name in self._solver_info}

    def get_working_solvers(self) -> List[str]:
        return [name for name, info in self._solver_info.items() if info.tested and info.works]

    def get_platform_info(self) -> Dict[str, str]:
        return {
            'system': platform.system(),
            'machine': platform.machine(),
            'python_version': sys.version.split()[0],
        }


_global_config: Optional[SolverConfig] = None


def get_global_config() -> SolverConfig:
    """Return the process-wide SolverConfig, creating it on first use."""
    global _global_config
    if _global_config is None:
        _global_config = SolverConfig()
    return _global_config


def get_solver(solver_name: Optional[str] = None, options: Optional[Dict[str, Any]] = None):
    """Create a solver using the global configuration."""
    return get_global_config().create_solver(solver_name, options)
