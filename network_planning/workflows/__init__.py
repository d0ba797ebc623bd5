"""Workflows that execute optimization job payloads."""

from .base_workflow import BaseWorkflow, WorkflowConfig, WorkflowResult
from .warehouse_workflow import WarehouseWorkflow
from .transport_workflow import TransportWorkflow
from .integrated_workflow import IntegratedWorkflow, baseline_integration, combine_year_rows
from .runner import create_workflow, run_workflow

__all__ = [
    'BaseWorkflow',
    'WorkflowConfig',
    'WorkflowResult',
    'WarehouseWorkflow',
    'TransportWorkflow',
    'IntegratedWorkflow',
    'baseline_integration',
    'combine_year_rows',
    'create_workflow',
    'run_workflow',
]
