"""Optimization job model."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    """Lifecycle state of an optimization job."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETRYING = "retrying"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class ResultType(str, Enum):
    """What a job optimizes."""
    WAREHOUSE = "warehouse"
    TRANSPORT = "transport"
    COMBINED = "combined"


class OptimizationJob(BaseModel):
    """
    Background optimization job.

    Jobs are created ``queued`` and mutated only by the job orchestrator.
    Terminal jobs (completed, failed, cancelled) are never changed again.

    Attributes:
        id: Job identifier (``job_{timestamp}_{run_id}``)
        scenario_id: Scenario the job belongs to
        run_id: Caller-supplied run identifier
        result_type: What the job optimizes
        params: Workflow parameters
        status: Lifecycle state
        progress: Percent complete (0-100)
        current_step: Human-readable step description
        retry_count: Retries performed so far (never exceeds max_retries)
        max_retries: Retry limit
        error_code: Failure category of the last error
        error_message: Sanitized message of the last error
        error_severity: Severity of the last error
        estimated_completion_minutes: Duration estimate made at submission
        recovery_attempted: Whether a retry was scheduled
        cancel_requested: Whether cancellation was requested while running
        result: Result summary stored on completion
    """
    model_config = ConfigDict(use_enum_values=False)

    id: str = Field(..., description="Job identifier")
    scenario_id: int = Field(..., description="Scenario identifier")
    run_id: str = Field(..., description="Run identifier")
    result_type: ResultType = Field(ResultType.COMBINED, description="Optimization type")
    params: Dict[str, Any] = Field(default_factory=dict, description="Workflow parameters")

    status: JobStatus = Field(JobStatus.QUEUED, description="Lifecycle state")
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: float = Field(0.0, ge=0, le=100)
    current_step: str = "Queued"

    retry_count: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=0)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_severity: Optional[str] = None
    estimated_completion_minutes: int = Field(1, ge=1)
    recovery_attempted: bool = False
    cancel_requested: bool = False
    result: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
