"""Pydantic schemas for optimization model results.

This module defines the strict interface contract between the optimization
models and their callers (workflows, result services, exports).  All models
MUST return results conforming to these schemas.

Design Principles:
1. Fail Fast: Invalid data raises ValidationError immediately at the model boundary
2. Open Extension: Models can add extra fields beyond the schema (extra="allow")
3. Read-only: Results are not modified after they are returned
"""

from __future__ import annotations

from typing import List, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Warehouse capacity plan
# ============================================================================

class WarehouseYearRow(BaseModel):
    """Capacity requirement and decisions for one year.

    Areas are square feet, costs are annual dollars.
    """
    year: int
    storage_pallets: float = Field(..., ge=0)
    storage_area_sqft: float = Field(..., ge=0)
    outbound_dock_area: float = Field(..., ge=0)
    inbound_dock_area: float = Field(..., ge=0)
    outbound_overflow_area: float = Field(0.0, ge=0)
    inbound_overflow_area: float = Field(0.0, ge=0)
    support_area: float = Field(..., ge=0)
    case_pick_area: float = Field(..., ge=0)
    each_pick_area: float = Field(..., ge=0)
    conveyor_area: float = Field(..., ge=0)
    net_area_sqft: float = Field(..., ge=0, description="Year net area plus per-facility areas")
    gross_area_sqft: float = Field(..., ge=0)
    facilities_needed: int = Field(..., ge=1, description="Existing facility plus facilities added so far")
    facility_added: bool = False
    facility_size_added: float = Field(..., ge=0)
    cumulative_facility_size: float = Field(..., ge=0)
    thirdparty_sqft_required: float = Field(..., ge=0)
    internal_cost_annual: float = Field(..., ge=0)
    thirdparty_cost_annual: float = Field(..., ge=0)
    total_cost_annual: float = Field(..., ge=0)
    cost_per_unit: float = Field(..., ge=0)
    utilization_percentage: float = Field(..., ge=0)
    outbound_doors: int = Field(..., ge=0)
    inbound_doors: int = Field(..., ge=0)

    model_config = ConfigDict(extra="allow")


class WarehouseSummary(BaseModel):
    """Solve outcome and horizon totals."""
    status: str
    objective_value: Optional[float] = None
    solve_time: float = Field(0.0, ge=0)
    solver_name: Optional[str] = None
    is_approximate: bool = False
    total_facilities_added: int = Field(0, ge=0)
    total_facility_size_added: float = Field(0.0, ge=0)
    total_thirdparty_space: float = Field(0.0, ge=0)


class WarehousePerformanceMetrics(BaseModel):
    """Growth and efficiency indicators over the horizon."""
    volume_cagr: float
    cost_cagr: float
    avg_utilization: float
    avg_cost_per_unit: float
    thirdparty_dependency: float = Field(..., ge=0, le=1)
    total_internal_space: float = Field(..., ge=0)
    total_thirdparty_space: float = Field(..., ge=0)


class WarehousePlanResult(BaseModel):
    """Complete warehouse capacity plan."""
    model_type: str = "warehouse_capacity"
    results: List[WarehouseYearRow]
    optimization_summary: WarehouseSummary
    performance_metrics: WarehousePerformanceMetrics

    model_config = ConfigDict(extra="allow")

    def to_dataframe(self) -> pd.DataFrame:
        """Year rows as a DataFrame indexed by year."""
        return pd.DataFrame([row.model_dump() for row in self.results]).set_index('year')


# ============================================================================
# Transport facility-location plan
# ============================================================================

class TransportAssignment(BaseModel):
    """Destination served by a facility."""
    facility: str
    destination: str
    demand: float = Field(..., ge=0)
    cost: float = Field(..., ge=0, description="Unit cost ($/unit)")
    distance: float = Field(..., ge=0, description="Miles")


class FacilityMetrics(BaseModel):
    """Load and cost of one open facility."""
    facility: str
    destinations_served: int = Field(..., ge=0)
    total_demand: float = Field(..., ge=0)
    capacity_utilization: float = Field(..., ge=0)
    average_distance: float = Field(..., ge=0)
    total_cost: float = Field(..., ge=0)
    cost_per_unit: float = Field(..., ge=0)


class TransportSummary(BaseModel):
    """Solve outcome and network totals."""
    status: str
    objective_value: Optional[float] = None
    solve_time: float = Field(0.0, ge=0)
    solver_name: Optional[str] = None
    is_approximate: bool = False
    facilities_opened: int = Field(0, ge=0)
    total_demand_served: float = Field(0.0, ge=0)
    total_transportation_cost: float = Field(0.0, ge=0)


class NetworkMetrics(BaseModel):
    """Network-wide service and utilization indicators."""
    service_level_achievement: float = Field(..., ge=0, le=1)
    avg_cost_per_unit: float = Field(..., ge=0)
    weighted_avg_distance: float = Field(..., ge=0)
    avg_facility_utilization: float = Field(..., ge=0)
    network_utilization: float = Field(..., ge=0)
    destinations_per_facility: float = Field(..., ge=0)
    total_transportation_cost: float = Field(..., ge=0)
    demand_within_service_limit: float = Field(..., ge=0)
    total_demand_served: float = Field(..., ge=0)
    facilities_opened: int = Field(..., ge=0)
    total_capacity_available: float = Field(..., ge=0)


class TransportPlanResult(BaseModel):
    """Complete facility-location plan."""
    model_type: str = "transport_facility_location"
    open_facilities: List[str]
    assignments: List[TransportAssignment]
    facility_metrics: List[FacilityMetrics]
    optimization_summary: TransportSummary
    network_metrics: NetworkMetrics

    model_config = ConfigDict(extra="allow")

    def assignments_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [a.model_dump() for a in self.assignments],
            columns=list(TransportAssignment.model_fields),
        )


# ============================================================================
# Integrated plan
# ============================================================================

class CombinedYearRow(BaseModel):
    """Warehouse and transport plans for one year side by side."""
    year: int
    warehouse_facilities: int
    warehouse_gross_area: float
    warehouse_cost: float
    thirdparty_space: float
    network_facilities: int
    transportation_cost: float
    total_annual_cost: float
    utilization_pct: float
    service_level_achievement: float = Field(..., ge=0, le=100, description="Percent")


class BaselineIntegration(BaseModel):
    """Optimized transport cost compared with the current baseline."""
    current_transport_baseline: float = Field(..., gt=0)
    optimized_transport_cost: float
    projected_savings: float
    savings_percentage: float


class IntegratedPlanResult(BaseModel):
    """Warehouse and transport plans with combined yearly view."""
    model_type: str = "integrated"
    warehouse: WarehousePlanResult
    transportation: TransportPlanResult
    combined_rows: List[CombinedYearRow]
    baseline_integration: Optional[BaselineIntegration] = None

    model_config = ConfigDict(extra="allow")
