"""Persistence of optimization jobs."""

from .job_store import JobStore, InMemoryJobStore, JsonFileJobStore

__all__ = ['JobStore', 'InMemoryJobStore', 'JsonFileJobStore']
