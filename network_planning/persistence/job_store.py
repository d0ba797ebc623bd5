"""Job storage for the orchestrator.

Two stores are provided:

- ``InMemoryJobStore``: jobs live only as long as the process
- ``JsonFileJobStore``: write-through store keeping one JSON file per job

File Format (``{base_path}/{job_id}.json``):
    {
        "id": "job_1729240000000_run-42",
        "scenario_id": 7,
        "run_id": "run-42",
        "result_type": "combined",
        "status": "completed",
        "progress": 100.0,
        ...
    }
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import json
import logging

from pydantic import ValidationError

from ..errors import PersistenceError
from ..models.job import OptimizationJob

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Storage interface for optimization jobs.

    Stores return the same job object for repeated ``get`` calls on an id
    until it is deleted, so the orchestrator can mutate a job and ``save`` it.
    """

    @abstractmethod
    def save(self, job: OptimizationJob) -> None:
        """Insert or replace a job."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[OptimizationJob]:
        """Job by id, or None."""

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove a job; returns False if it did not exist."""

    @abstractmethod
    def list_jobs(self) -> List[OptimizationJob]:
        """All jobs in submission order."""

    def find_by_run_id(self, run_id: str) -> Optional[OptimizationJob]:
        return next((j for j in self.list_jobs() if j.run_id == run_id), None)

    def find_by_scenario(self, scenario_id: int) -> List[OptimizationJob]:
        return [j for j in self.list_jobs() if j.scenario_id == scenario_id]

    def __len__(self) -> int:
        return len(self.list_jobs())


class InMemoryJobStore(JobStore):
    """Dictionary-backed job store."""

    def __init__(self, jobs: Optional[Iterable[OptimizationJob]] = None):
        self._jobs: Dict[str, OptimizationJob] = {}
        for job in jobs or []:
            self._jobs[job.id] = job

    def save(self, job: OptimizationJob) -> None:
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[OptimizationJob]:
        return self._jobs.get(job_id)

    def delete(self, job_id: str) -> bool:
        return self._jobs.pop(job_id, None) is not None

    def list_jobs(self) -> List[OptimizationJob]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at)


class JsonFileJobStore(InMemoryJobStore):
    """
    Write-through job store persisting each job as a JSON file.

    Existing files under ``base_path`` are loaded at construction, so job
    history survives a restart.  Files that fail to parse are logged and
    skipped.

    Example:
        store = JsonFileJobStore("jobs")
        orchestrator = JobOrchestrator(services, job_store=store)
    """

    def __init__(self, base_path: Path | str = "jobs"):
        super().__init__()
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._load_existing()
        logger.info(f"Initialized JsonFileJobStore at {self.base_path} ({len(self._jobs)} jobs)")

    def _path_for(self, job_id: str) -> Path:
        return self.base_path / f"{job_id}.json"

    def _load_existing(self) -> None:
        for file_path in sorted(self.base_path.glob("*.json")):
            try:
                with open(file_path, 'r') as f:
                    job = OptimizationJob.model_validate(json.load(f))
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Skipping unreadable job file {file_path}: {e}")
                continue
            self._jobs[job.id] = job

    def save(self, job: OptimizationJob) -> None:
        """Store the job and write its file.

        Raises:
            PersistenceError: If the file cannot be written
        """
        super().save(job)
        file_path = self._path_for(job.id)
        try:
            with open(file_path, 'w') as f:
                json.dump(job.model_dump(mode='json'), f, indent=2)
        except OSError as e:
            raise PersistenceError(f"Failed to write job file {file_path}: {e}") from e

    def delete(self, job_id: str) -> bool:
        existed = super().delete(job_id)
        file_path = self._path_for(job_id)
        if file_path.exists():
            file_path.unlink()
            existed = True
        return existed
