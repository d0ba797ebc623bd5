"""Asynchronous orchestration of optimization jobs.

Jobs are queued in submission order and started by a dispatch loop that keeps
at most ``max_concurrent_jobs`` in flight.  Each job runs its workflow on a
worker thread under a wall-clock timeout; progress reported by the worker is
applied on the event loop thread.  A timed-out attempt keeps its slot until
its worker thread has returned.  Failures are classified and retried with
exponential backoff while they are recoverable and retries remain.  Every
call to a collaborator service goes through the database circuit breaker.

Job lifecycle:
    queued -> running -> completed
                      -> retrying -> running ...
                      -> failed
                      -> cancelled
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging
import math
import threading
import time

from ..errors import (
    ErrorClassifier,
    ErrorCode,
    ErrorContext,
    ErrorDetails,
    InvalidInputError,
    JobCancelledError,
    JobTimeoutError,
    base_retry_delay,
)
from ..models.job import JobStatus, OptimizationJob, ResultType
from ..persistence.job_store import InMemoryJobStore, JobStore
from ..resilience.circuit_breaker import CircuitBreaker, create_database_breaker
from ..services import PlanningServices
from ..workflows.runner import run_workflow

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for the job orchestrator.

    Attributes:
        max_concurrent_jobs: Jobs allowed in flight at once
        job_timeout_seconds: Wall-clock limit per attempt
        poll_interval_seconds: Longest wait for a free slot at capacity
        dispatch_delay_seconds: Pause between two job starts
        retention_seconds: Age after which terminal jobs are removed
        cleanup_interval_seconds: Period of the retention sweep
        max_retries: Retries allowed per job
        retry_delay_overrides: Base retry delay per error code, replacing the defaults
    """
    max_concurrent_jobs: int = 2
    job_timeout_seconds: float = 600.0
    poll_interval_seconds: float = 5.0
    dispatch_delay_seconds: float = 1.0
    retention_seconds: float = 24 * 60 * 60
    cleanup_interval_seconds: float = 60 * 60
    max_retries: int = 3
    retry_delay_overrides: Dict[ErrorCode, float] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration."""
        if self.max_concurrent_jobs < 1:
            raise ValueError(f"max_concurrent_jobs must be at least 1, got {self.max_concurrent_jobs}")
        if self.job_timeout_seconds <= 0:
            raise ValueError(f"job_timeout_seconds must be positive, got {self.job_timeout_seconds}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")
        for name in ('poll_interval_seconds', 'dispatch_delay_seconds',
                     'retention_seconds', 'cleanup_interval_seconds'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        self.retry_delay_overrides = {
            ErrorCode(code): float(delay) for code, delay in self.retry_delay_overrides.items()
        }

    def retry_delay(self, code: ErrorCode, retry_count: int) -> float:
        """Backoff before retry number ``retry_count`` (1-based)."""
        base = self.retry_delay_overrides.get(code, base_retry_delay(code))
        return base * 2 ** (retry_count - 1)


def estimate_duration_minutes(params: Dict[str, Any]) -> int:
    """Rough job duration: 30 s per scenario type plus ~5 s per city pair."""
    cities = params.get('cities') or []
    scenario_types = params.get('scenario_types') or ['default']
    pairs = len(cities) * (len(cities) - 1) / 2
    return max(1, math.ceil(0.5 * len(scenario_types) + 0.08 * pairs))


class JobOrchestrator:
    """
    Queue and run optimization jobs.

    Args:
        services: Collaborators (scenario, configs, results, audit, forecasts, cities)
        config: Orchestrator configuration
        job_store: Where job state is kept (default in memory)
        breaker: Circuit breaker guarding collaborator calls
        runner: Blocking callable executing a job payload (default ``run_workflow``)
        classifier: Maps failures to error details

    Example:
        orchestrator = JobOrchestrator(PlanningServices.in_memory())
        job_id = await orchestrator.add_job(7, "run-42", ResultType.COMBINED, params)
        await orchestrator.wait_until_idle()
        print(orchestrator.get_job(job_id).status)
    """

    def __init__(
        self,
        services: Optional[PlanningServices] = None,
        config: Optional[OrchestratorConfig] = None,
        job_store: Optional[JobStore] = None,
        breaker: Optional[CircuitBreaker] = None,
        runner: Callable[..., Any] = run_workflow,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.services = services or PlanningServices.in_memory()
        self.config = config or OrchestratorConfig()
        self.store = job_store if job_store is not None else InMemoryJobStore()
        self.breaker = breaker or create_database_breaker()
        self.runner = runner
        self.classifier = classifier or ErrorClassifier()

        self._tasks: Dict[str, asyncio.Task] = {}
        self._workers: Dict[str, asyncio.Future] = {}
        self._tokens: Dict[str, threading.Event] = {}
        self._attempts: Dict[str, int] = {}
        self._dispatcher: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def add_job(
        self,
        scenario_id: int,
        run_id: str,
        result_type: ResultType = ResultType.COMBINED,
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Queue a job and return its id.

        Raises:
            RuntimeError: If the orchestrator has been shut down
        """
        if self._closed:
            raise RuntimeError("Orchestrator has been shut down")
        params = dict(params or {})

        job_id = f"job_{int(time.time() * 1000)}_{run_id}"
        suffix = 1
        while self.store.get(job_id) is not None:
            suffix += 1
            job_id = f"job_{int(time.time() * 1000)}_{run_id}_{suffix}"

        job = OptimizationJob(
            id=job_id,
            scenario_id=scenario_id,
            run_id=run_id,
            result_type=ResultType(result_type),
            params=params,
            max_retries=self.config.max_retries,
            estimated_completion_minutes=estimate_duration_minutes(params),
        )
        self.store.save(job)
        logger.info(f"Job {job_id} added to queue for scenario {scenario_id}")

        self._ensure_started()
        self._wakeup.set()
        return job_id

    def get_job(self, job_id: str) -> Optional[OptimizationJob]:
        """Snapshot of a job, or None."""
        job = self.store.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def get_job_by_run_id(self, run_id: str) -> Optional[OptimizationJob]:
        job = self.store.find_by_run_id(run_id)
        return job.model_copy(deep=True) if job is not None else None

    def get_jobs_for_scenario(self, scenario_id: int) -> List[OptimizationJob]:
        return [j.model_copy(deep=True) for j in self.store.find_by_scenario(scenario_id)]

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job.

        Queued and retrying jobs are cancelled immediately.  A running job gets
        its cancellation token set and ends ``cancelled`` once the worker
        observes it.

        Returns:
            False if the job does not exist or is already terminal
        """
        job = self.store.get(job_id)
        if job is None or job.is_terminal:
            return False

        job.cancel_requested = True
        token = self._tokens.get(job_id)
        if token is not None:
            token.set()

        if job.status in (JobStatus.QUEUED, JobStatus.RETRYING):
            self._mark_cancelled(job)
            task = self._tasks.get(job_id)
            if task is not None:
                task.cancel()
        else:
            job.current_step = "Cancelling"
            self.store.save(job)
        logger.info(f"Cancellation requested for job {job_id} ({job.status.value})")
        return True

    def get_stats(self) -> Dict[str, int]:
        """Job counts by status."""
        jobs = self.store.list_jobs()
        stats = {'total': len(jobs)}
        for status in JobStatus:
            stats[status.value] = sum(1 for j in jobs if j.status == status)
        return stats

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Remove terminal jobs completed longer ago than the retention window.

        Returns:
            Number of jobs removed
        """
        cutoff = (now or datetime.now()) - timedelta(seconds=self.config.retention_seconds)
        removed = 0
        for job in self.store.list_jobs():
            if job.is_terminal and job.completed_at is not None and job.completed_at < cutoff:
                self.store.delete(job.id)
                removed += 1
                logger.info(f"Cleaned up old job: {job.id}")
        return removed

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is queued, running or retrying.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        async def _idle():
            while self._has_active_jobs():
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_idle(), timeout)

    async def shutdown(self) -> None:
        """Stop dispatching and cancel in-flight jobs. Queued jobs stay queued."""
        self._closed = True
        for token in self._tokens.values():
            token.set()

        background = [t for t in (self._dispatcher, self._sweeper) if t is not None]
        in_flight = list(self._tasks.values())
        for task in background + in_flight:
            task.cancel()
        await asyncio.gather(*background, *in_flight, return_exceptions=True)
        logger.info(f"Orchestrator shut down ({len(in_flight)} in-flight job(s) cancelled)")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _ensure_started(self) -> None:
        if self._dispatcher is not None and not self._dispatcher.done():
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        self._sweeper = asyncio.create_task(self._cleanup_loop())

    def _has_active_jobs(self) -> bool:
        return bool(self._tasks) or any(
            j.status == JobStatus.QUEUED for j in self.store.list_jobs()
        )

    def _next_queued(self) -> Optional[OptimizationJob]:
        queued = [j for j in self.store.list_jobs() if j.status == JobStatus.QUEUED]
        return min(queued, key=lambda j: j.created_at) if queued else None

    async def _wait_for_wakeup(self, timeout: Optional[float]) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    async def _dispatch_loop(self) -> None:
        while not self._closed:
            job = self._next_queued()
            if job is None:
                self._wakeup.clear()
                await self._wait_for_wakeup(None)
                continue

            if len(self._tasks) >= self.config.max_concurrent_jobs:
                self._wakeup.clear()
                await self._wait_for_wakeup(self.config.poll_interval_seconds)
                continue

            self._start(job)
            if self.config.dispatch_delay_seconds > 0:
                await asyncio.sleep(self.config.dispatch_delay_seconds)

    def _start(self, job: OptimizationJob) -> None:
        job.status = JobStatus.RUNNING
        self.store.save(job)
        task = asyncio.create_task(self._run_job(job))
        self._tasks[job.id] = task
        task.add_done_callback(lambda _t, job_id=job.id: self._on_task_done(job_id))

    def _on_task_done(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        self._workers.pop(job_id, None)
        self._tokens.pop(job_id, None)
        self._attempts.pop(job_id, None)
        if self._wakeup is not None:
            self._wakeup.set()

    async def _cleanup_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.config.cleanup_interval_seconds or 1.0)
            self.cleanup()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_job(self, job: OptimizationJob) -> None:
        try:
            while True:
                token = threading.Event()
                if job.cancel_requested:
                    token.set()
                self._tokens[job.id] = token
                self._attempts[job.id] = self._attempts.get(job.id, 0) + 1
                deadline = time.monotonic() + self.config.job_timeout_seconds

                try:
                    await asyncio.wait_for(
                        self._attempt(job, token, deadline), timeout=self.config.job_timeout_seconds
                    )
                    return
                except asyncio.TimeoutError:
                    token.set()
                    error: BaseException = JobTimeoutError(
                        f"Job timed out after {self.config.job_timeout_seconds:g} seconds"
                    )
                    await self._drain_worker(job)
                except JobCancelledError:
                    self._mark_cancelled(job)
                    return
                except Exception as e:
                    error = e

                if job.cancel_requested:
                    self._mark_cancelled(job)
                    return
                if not await self._handle_failure(job, error):
                    return
        except asyncio.CancelledError:
            if not job.is_terminal:
                self._mark_cancelled(job)
            raise

    async def _drain_worker(self, job: OptimizationJob) -> None:
        """Wait for a timed-out attempt's worker thread to return.

        The job's task stays in flight meanwhile, so it keeps its
        concurrency slot and is not retried while the old thread runs.
        """
        worker = self._workers.pop(job.id, None)
        if worker is None:
            return
        if not worker.done():
            logger.warning(f"Job {job.id} timed out; waiting for its worker thread to stop")
            job.current_step = "Waiting for solver to stop"
            self.store.save(job)
            await asyncio.wait({worker})
        if not worker.cancelled() and worker.exception() is not None:
            logger.debug(f"Timed-out worker for job {job.id} ended with: {worker.exception()}")

    def _check_cancelled(self, token: threading.Event) -> None:
        if token.is_set():
            raise JobCancelledError()

    def _set_progress(self, job: OptimizationJob, percent: float, step: str) -> None:
        job.progress = max(0.0, min(100.0, percent))
        job.current_step = step
        self.store.save(job)

    def _progress_callback(self, job: OptimizationJob) -> Callable[[float, str], None]:
        """Thread-safe progress reporter bound to the current attempt."""
        loop = self._loop
        attempt = self._attempts.get(job.id)

        def _apply(percent: float, step: str) -> None:
            if job.status == JobStatus.RUNNING and self._attempts.get(job.id) == attempt:
                self._set_progress(job, percent, step)

        def report(percent: float, step: str) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_apply, percent, step)

        return report

    async def _guarded(self, operation: Callable[[], Any]) -> Any:
        return await self.breaker.execute(operation)

    async def _attempt(self, job: OptimizationJob, token: threading.Event, deadline: float) -> None:
        services = self.services
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        self._set_progress(job, 5, "Initializing optimization")
        logger.info(f"Starting job {job.id} for scenario {job.scenario_id} (attempt {self._attempts[job.id]})")

        self._check_cancelled(token)
        self._set_progress(job, 10, "Loading scenario data")
        scenario, warehouse_config, transport_config = await asyncio.gather(
            self._guarded(lambda: services.scenarios.get_scenario(job.scenario_id)),
            self._guarded(lambda: services.warehouse_configs.get_warehouse_config(job.scenario_id)),
            self._guarded(lambda: services.transport_configs.get_transport_config(job.scenario_id)),
        )
        if scenario is None:
            raise InvalidInputError(f"Scenario {job.scenario_id} not found")

        self._check_cancelled(token)
        self._set_progress(job, 25, "Running optimization algorithms")
        worker = asyncio.ensure_future(asyncio.to_thread(
            self.runner,
            job.result_type,
            job.params,
            services=services,
            scenario_id=job.scenario_id,
            warehouse_config=warehouse_config,
            transport_config=transport_config,
            progress=self._progress_callback(job),
            cancel_token=token,
            time_budget_seconds=max(0.0, deadline - time.monotonic()),
        ))
        self._workers[job.id] = worker
        result = await asyncio.shield(worker)
        self._workers.pop(job.id, None)

        self._check_cancelled(token)
        self._set_progress(job, 90, "Saving results")
        payload = result.to_dict()
        execution_time = (datetime.now() - job.started_at).total_seconds()
        await self._guarded(lambda: services.results.update_result(job.run_id, 'completed', results=payload))
        await self._guarded(lambda: services.scenarios.update_status(job.scenario_id, 'completed'))
        await self._guarded(lambda: services.audit_log.log_event(
            'complete_optimization',
            job.scenario_id,
            {
                'job_id': job.id,
                'run_id': job.run_id,
                'result_type': job.result_type.value,
                'objective_value': payload.get('objective_value'),
                'is_approximate': payload.get('is_approximate'),
                'execution_time': execution_time,
            },
        ))

        job.result = payload
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now()
        self._set_progress(job, 100, "Completed successfully")
        logger.info(f"Job {job.id} completed successfully in {execution_time:.1f}s")

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _handle_failure(self, job: OptimizationJob, error: BaseException) -> bool:
        """Record a failure; returns True when the job should be retried."""
        context = ErrorContext(
            operation='network_optimization',
            job_id=job.id,
            scenario_id=job.scenario_id,
            run_id=job.run_id,
            additional_data={'result_type': job.result_type.value, 'retry_count': job.retry_count},
        )
        details = self.classifier.classify(error, context)
        logger.error(
            f"Job {job.id} failed [{details.code.value}/{details.severity.value}]: {details.user_message}"
        )

        job.error_message = details.user_message
        job.error_code = details.code.value
        job.error_severity = details.severity.value

        if details.recoverable and job.retry_count < job.max_retries:
            job.retry_count += 1
            job.status = JobStatus.RETRYING
            job.current_step = "Attempting recovery..."
            job.recovery_attempted = True
            self.store.save(job)

            delay = self.config.retry_delay(details.code, job.retry_count)
            logger.info(
                f"Attempting recovery for job {job.id}, attempt {job.retry_count}/{job.max_retries} "
                f"in {delay:g}s"
            )
            await asyncio.sleep(delay)
            job.current_step = "Retrying optimization"
            self.store.save(job)
            return True

        await self._finalize_failure(job, details)
        return False

    async def _finalize_failure(self, job: OptimizationJob, details: ErrorDetails) -> None:
        logger.error(f"Job {job.id} failed permanently after {job.retry_count} retries")
        job.status = JobStatus.FAILED
        job.completed_at = datetime.now()
        job.current_step = "Failed"
        self.store.save(job)

        services = self.services
        try:
            await self._guarded(lambda: services.results.update_result(
                job.run_id, 'failed', error=details.to_dict()
            ))
        except Exception as e:
            logger.error(f"Failed to update optimization result status for job {job.id}: {e}")
        try:
            await self._guarded(lambda: services.scenarios.update_status(job.scenario_id, 'failed'))
        except Exception as e:
            logger.error(f"Failed to update scenario status for job {job.id}: {e}")

    def _mark_cancelled(self, job: OptimizationJob) -> None:
        if job.is_terminal:
            return
        job.status = JobStatus.CANCELLED
        job.cancel_requested = True
        job.completed_at = datetime.now()
        job.current_step = "Cancelled"
        self.store.save(job)
        logger.info(f"Job {job.id} cancelled")
