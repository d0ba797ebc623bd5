"""Base workflow class for optimization job payloads.

This module defines the abstract base class for all workflow types
(Warehouse, Transport, Integrated).  Each workflow prepares its inputs, runs
one or more optimization models and returns a validated plan.  Workflows are
blocking and run on a worker thread; they report progress through a callback
and stop at step boundaries when their cancellation token is set.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging
import threading
import time

from pydantic import BaseModel

from ..errors import JobCancelledError
from ..models.job import ResultType
from ..models.request import OptimizationRequest
from ..optimization.constants import FALLBACK_TRIALS
from ..optimization.solver import SolverAdapter
from ..optimization.solver_config import SolverConfig
from ..services import PlanningServices

logger = logging.getLogger(__name__)

#: Callback receiving (progress percent, step description)
ProgressCallback = Callable[[float, str], None]


@dataclass
class WorkflowConfig:
    """Configuration for a workflow solve.

    Attributes:
        workflow_type: Type of workflow (Warehouse/Transport/Integrated)
        solve_time_limit: Maximum solve time in seconds (None = no limit)
        mip_gap_tolerance: MIP gap tolerance (e.g., 0.01 for 1%)
        solver_name: Solver to use (None = best available)
        seed: Seed for the random-search fallback
        allow_fallback: Whether to fall back to random search when no solver works
        fallback_trials: Trials for the random-search fallback
        deadline: ``time.monotonic()`` value by which all solves must end
    """
    workflow_type: ResultType
    solve_time_limit: Optional[float] = None
    mip_gap_tolerance: Optional[float] = None
    solver_name: Optional[str] = None
    seed: Optional[int] = None
    allow_fallback: bool = True
    fallback_trials: int = FALLBACK_TRIALS
    deadline: Optional[float] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.solve_time_limit is not None and self.solve_time_limit <= 0:
            raise ValueError(f"solve_time_limit must be positive, got {self.solve_time_limit}")
        if self.mip_gap_tolerance is not None and not 0 <= self.mip_gap_tolerance < 1:
            raise ValueError(f"mip_gap_tolerance must be in [0, 1), got {self.mip_gap_tolerance}")
        if self.fallback_trials < 1:
            raise ValueError(f"fallback_trials must be at least 1, got {self.fallback_trials}")

    @classmethod
    def from_request(
        cls,
        workflow_type: ResultType,
        request: OptimizationRequest,
        time_budget_seconds: Optional[float] = None,
    ) -> 'WorkflowConfig':
        """Solver settings from the request; a time budget starts counting now."""
        deadline = None
        if time_budget_seconds is not None:
            deadline = time.monotonic() + max(0.0, time_budget_seconds)
        return cls(
            workflow_type=workflow_type,
            solve_time_limit=request.time_limit_seconds,
            mip_gap_tolerance=request.mip_gap,
            solver_name=request.solver_name,
            seed=request.seed,
            deadline=deadline,
        )


@dataclass
class WorkflowResult:
    """Result from a workflow run.

    Attributes:
        workflow_type: Type of workflow that was run
        solve_timestamp: When the run started
        solution: Validated plan (warehouse, transport or integrated)
        success: Whether a plan was produced
        solve_time_seconds: Wall-clock time of the run
        objective_value: Objective of the plan (sum over models when integrated)
        is_approximate: Whether any model fell back to random search
        metadata: Additional metadata (input sizes, solver settings)
    """
    workflow_type: ResultType
    solve_timestamp: datetime
    solution: Optional[BaseModel] = None
    success: bool = False
    solve_time_seconds: Optional[float] = None
    objective_value: Optional[float] = None
    is_approximate: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form handed to the result service."""
        return {
            'workflow_type': self.workflow_type.value,
            'solve_timestamp': self.solve_timestamp.isoformat(),
            'success': self.success,
            'solve_time_seconds': self.solve_time_seconds,
            'objective_value': self.objective_value,
            'is_approximate': self.is_approximate,
            'metadata': self.metadata,
            'solution': self.solution.model_dump(mode='json') if self.solution is not None else None,
        }


class BaseWorkflow(ABC):
    """Abstract base class for optimization workflows.

    Workflow Execution Steps:
        1. prepare_input_data() - Load and validate input data
        2. run_optimization() - Build, solve and extract one or more models
        3. Build the WorkflowResult

    The cancellation token is checked before every step; a set token raises
    ``JobCancelledError``.  Errors propagate to the caller, which classifies
    them and decides on retries.
    """

    #: Progress reported when the workflow starts optimizing
    progress_start: float = 25.0
    #: Progress reported when the workflow has finished optimizing
    progress_end: float = 90.0

    def __init__(
        self,
        config: WorkflowConfig,
        request: OptimizationRequest,
        services: Optional[PlanningServices] = None,
        scenario_id: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[threading.Event] = None,
        solver: Optional[SolverAdapter] = None,
    ):
        """Initialize workflow.

        Args:
            config: Workflow configuration
            request: Validated job parameters
            services: Collaborators (forecast source, city lookup)
            scenario_id: Scenario the job belongs to
            progress: Progress callback
            cancel_token: Event set when the job is cancelled
            solver: Solver adapter (default built from config)
        """
        self.config = config
        self.request = request
        self.services = services or PlanningServices()
        self.scenario_id = scenario_id
        self.progress = progress
        self.cancel_token = cancel_token
        self.solver = solver or SolverAdapter(
            solver_config=SolverConfig(
                time_limit_seconds=config.solve_time_limit,
                mip_gap=config.mip_gap_tolerance,
                solver_name=config.solver_name,
            ),
            seed=config.seed,
            fallback_trials=config.fallback_trials,
            allow_fallback=config.allow_fallback,
            deadline=config.deadline,
        )
        self.result: Optional[WorkflowResult] = None

        logger.info(
            f"Initialized {self.config.workflow_type.value} workflow"
            + (f" for scenario {scenario_id}" if scenario_id is not None else "")
        )

    @abstractmethod
    def prepare_input_data(self) -> Dict[str, Any]:
        """Prepare and validate input data for the run.

        Raises:
            InvalidInputError: If input data is invalid or incomplete
        """
        pass

    @abstractmethod
    def run_optimization(self, input_data: Dict[str, Any]) -> BaseModel:
        """Solve the workflow's models and return the validated plan.

        Raises:
            InfeasibleModelError: If a model has no feasible solution
        """
        pass

    def report(self, percent: float, step: str) -> None:
        """Forward progress to the callback, if any."""
        logger.debug(f"{self.config.workflow_type.value} workflow: {percent:.0f}% {step}")
        if self.progress is not None:
            self.progress(percent, step)

    def check_cancelled(self) -> None:
        """Raise JobCancelledError if the token is set."""
        if self.cancel_token is not None and self.cancel_token.is_set():
            logger.info(f"{self.config.workflow_type.value} workflow cancelled")
            raise JobCancelledError()

    def execute(self) -> WorkflowResult:
        """Execute the complete workflow.

        Returns:
            WorkflowResult with the validated plan

        Raises:
            JobCancelledError: If the cancellation token is set
            PlanningError: If input preparation or optimization fails
        """
        start_time = datetime.now()
        logger.info(f"Starting {self.config.workflow_type.value} workflow execution")

        try:
            # Step 1: Prepare input data
            self.check_cancelled()
            logger.info("Step 1: Preparing input data")
            input_data = self.prepare_input_data()

            # Step 2: Optimize
            self.check_cancelled()
            logger.info("Step 2: Running optimization")
            solution = self.run_optimization(input_data)
            self.check_cancelled()
        except JobCancelledError:
            raise
        except Exception as e:
            logger.error(f"Workflow execution failed: {e}", exc_info=True)
            raise

        # Step 3: Create result
        solve_time = (datetime.now() - start_time).total_seconds()
        self.result = WorkflowResult(
            workflow_type=self.config.workflow_type,
            solve_timestamp=start_time,
            solution=solution,
            success=True,
            solve_time_seconds=solve_time,
            objective_value=self._objective_value(solution),
            is_approximate=self._is_approximate(solution),
            metadata=self._build_metadata(input_data),
        )

        logger.info(
            f"Workflow execution complete. Objective: {self.result.objective_value}, "
            f"Time: {solve_time:.2f}s"
        )
        return self.result

    def _objective_value(self, solution: BaseModel) -> Optional[float]:
        summary = getattr(solution, 'optimization_summary', None)
        return summary.objective_value if summary is not None else None

    def _is_approximate(self, solution: BaseModel) -> bool:
        summary = getattr(solution, 'optimization_summary', None)
        return bool(summary.is_approximate) if summary is not None else False

    def _build_metadata(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """Metadata describing the run's inputs and solver settings."""
        return {
            'workflow_type': self.config.workflow_type.value,
            'scenario_id': self.scenario_id,
            'solver_name': self.config.solver_name,
            'time_limit_seconds': self.config.solve_time_limit,
            'mip_gap': self.config.mip_gap_tolerance,
            'seed': self.config.seed,
            **{k: v for k, v in input_data.items() if isinstance(v, (int, float, str, bool))},
        }
