"""Tests for the in-memory and JSON file job stores."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from network_planning.errors import PersistenceError
from network_planning.models.job import JobStatus, OptimizationJob, ResultType
from network_planning.persistence.job_store import InMemoryJobStore, JsonFileJobStore


def make_job(job_id: str, scenario_id: int = 1, minutes_ago: int = 0, **fields) -> OptimizationJob:
    return OptimizationJob(
        id=job_id,
        scenario_id=scenario_id,
        run_id=f"run-{job_id}",
        created_at=datetime(2025, 1, 1, 12, 0) - timedelta(minutes=minutes_ago),
        **fields,
    )


class TestInMemoryJobStore:
    """Tests for InMemoryJobStore."""

    def test_save_and_get(self):
        """Test that saved jobs are returned by id."""
        store = InMemoryJobStore()
        job = make_job("a")
        store.save(job)

        assert store.get("a") is job
        assert store.get("missing") is None
        assert len(store) == 1

    def test_list_sorted_by_creation(self):
        """Test submission ordering regardless of insertion order."""
        store = InMemoryJobStore([make_job("new", minutes_ago=0), make_job("old", minutes_ago=30)])
        assert [j.id for j in store.list_jobs()] == ["old", "new"]

    def test_delete(self):
        """Test deleting present and missing jobs."""
        store = InMemoryJobStore([make_job("a")])
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert len(store) == 0

    def test_lookups(self):
        """Test lookup by run id and by scenario."""
        store = InMemoryJobStore([
            make_job("a", scenario_id=1, minutes_ago=2),
            make_job("b", scenario_id=2, minutes_ago=1),
            make_job("c", scenario_id=1),
        ])

        assert store.find_by_run_id("run-b").id == "b"
        assert store.find_by_run_id("run-z") is None
        assert [j.id for j in store.find_by_scenario(1)] == ["a", "c"]


class TestJsonFileJobStore:
    """Tests for JsonFileJobStore."""

    def test_writes_one_file_per_job(self, tmp_path):
        """Test that save writes {job_id}.json."""
        store = JsonFileJobStore(tmp_path / "jobs")
        store.save(make_job("job_1_run"))

        assert (tmp_path / "jobs" / "job_1_run.json").exists()

    def test_survives_restart(self, tmp_path):
        """Test that a new store instance loads earlier jobs."""
        store = JsonFileJobStore(tmp_path)
        job = make_job(
            "job_1_run",
            scenario_id=7,
            result_type=ResultType.TRANSPORT,
            params={"cities": ["Chicago, IL"]},
        )
        store.save(job)
        job.status = JobStatus.COMPLETED
        job.progress = 100.0
        store.save(job)

        reloaded = JsonFileJobStore(tmp_path).get("job_1_run")

        assert reloaded is not None
        assert reloaded.status == JobStatus.COMPLETED
        assert reloaded.result_type == ResultType.TRANSPORT
        assert reloaded.progress == 100.0
        assert reloaded.params == {"cities": ["Chicago, IL"]}
        assert reloaded.created_at == job.created_at

    def test_skips_corrupt_files(self, tmp_path):
        """Test that unreadable files are skipped with a warning."""
        (tmp_path / "broken.json").write_text("{not json")
        (tmp_path / "invalid.json").write_text('{"id": "x"}')
        JsonFileJobStore(tmp_path).save(make_job("good"))

        store = JsonFileJobStore(tmp_path)

        assert [j.id for j in store.list_jobs()] == ["good"]

    def test_delete_removes_file(self, tmp_path):
        """Test that delete unlinks the job file."""
        store = JsonFileJobStore(tmp_path)
        store.save(make_job("a"))

        assert store.delete("a") is True
        assert not (tmp_path / "a.json").exists()
        assert store.delete("a") is False

    def test_write_failure_raises_persistence_error(self, tmp_path):
        """Test that OS errors on write become PersistenceError."""
        store = JsonFileJobStore(tmp_path)

        with patch("builtins.open", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="Failed to write job file"):
                store.save(make_job("a"))
