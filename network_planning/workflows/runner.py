"""Entry point used by the job orchestrator to run a job payload."""

from typing import Any, Dict, Optional, Type
import logging
import threading

from .base_workflow import BaseWorkflow, ProgressCallback, WorkflowConfig, WorkflowResult
from .integrated_workflow import IntegratedWorkflow
from .transport_workflow import TransportWorkflow
from .warehouse_workflow import WarehouseWorkflow
from ..models.job import ResultType
from ..models.request import OptimizationRequest
from ..services import PlanningServices

logger = logging.getLogger(__name__)

WORKFLOWS: Dict[ResultType, Type[BaseWorkflow]] = {
    ResultType.WAREHOUSE: WarehouseWorkflow,
    ResultType.TRANSPORT: TransportWorkflow,
    ResultType.COMBINED: IntegratedWorkflow,
}


def create_workflow(
    result_type: ResultType,
    request: OptimizationRequest,
    services: Optional[PlanningServices] = None,
    scenario_id: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[threading.Event] = None,
    time_budget_seconds: Optional[float] = None,
) -> BaseWorkflow:
    """Instantiate the workflow for a result type."""
    workflow_cls = WORKFLOWS[ResultType(result_type)]
    config = WorkflowConfig.from_request(ResultType(result_type), request, time_budget_seconds)
    return workflow_cls(
        config=config,
        request=request,
        services=services,
        scenario_id=scenario_id,
        progress=progress,
        cancel_token=cancel_token,
    )


def run_workflow(
    result_type: ResultType,
    params: Dict[str, Any],
    services: Optional[PlanningServices] = None,
    scenario_id: Optional[int] = None,
    warehouse_config: Optional[Dict[str, Any]] = None,
    transport_config: Optional[Dict[str, Any]] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[threading.Event] = None,
    time_budget_seconds: Optional[float] = None,
) -> WorkflowResult:
    """
    Validate a job payload and execute the matching workflow.

    Blocking; the orchestrator calls this on a worker thread.  Solves are
    capped to end within ``time_budget_seconds`` of the call.

    Raises:
        ValidationError: If the payload is invalid
        JobCancelledError: If the cancellation token is set
        JobTimeoutError: If the time budget runs out before a solve
        PlanningError: If the optimization fails
    """
    request = OptimizationRequest.from_params(params, warehouse_config, transport_config)
    workflow = create_workflow(
        result_type, request, services, scenario_id, progress, cancel_token, time_budget_seconds
    )
    return workflow.execute()
