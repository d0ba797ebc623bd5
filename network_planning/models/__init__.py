"""Data models for the network planning engine."""

from .warehouse import ForecastRow, SKU, OptimizationWeights, WarehouseParams, WarehouseInput
from .transport import TransportParams, TransportWeights, CostMatrix, DemandMap, CapacityMap
from .job import OptimizationJob, JobStatus, ResultType, TERMINAL_STATUSES
from .request import OptimizationRequest

__all__ = [
    # Warehouse planning
    "ForecastRow",
    "SKU",
    "OptimizationWeights",
    "WarehouseParams",
    "WarehouseInput",
    # Transport planning
    "TransportParams",
    "TransportWeights",
    "CostMatrix",
    "DemandMap",
    "CapacityMap",
    # Jobs
    "OptimizationJob",
    "JobStatus",
    "ResultType",
    "TERMINAL_STATUSES",
    # Job parameters
    "OptimizationRequest",
]
