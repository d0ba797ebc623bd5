"""Asynchronous job orchestration."""

from .orchestrator import JobOrchestrator, OrchestratorConfig, estimate_duration_minutes

__all__ = ['JobOrchestrator', 'OrchestratorConfig', 'estimate_duration_minutes']
