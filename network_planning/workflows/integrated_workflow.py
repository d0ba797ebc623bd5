"""Integrated warehouse + transport workflow.

Runs the warehouse capacity plan and the transport facility plan for the same
scenario, lines them up per forecast year and, when a current transport
baseline is known, reports the projected savings against it.
"""

from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel

from .base_workflow import BaseWorkflow
from .transport_workflow import TransportWorkflow
from .warehouse_workflow import WarehouseWorkflow
from ..optimization.result_schema import (
    BaselineIntegration,
    CombinedYearRow,
    IntegratedPlanResult,
    TransportPlanResult,
    WarehousePlanResult,
)

logger = logging.getLogger(__name__)


def combine_year_rows(
    warehouse: WarehousePlanResult,
    transport: TransportPlanResult,
) -> List[CombinedYearRow]:
    """One row per warehouse year with the network plan's annual transport cost."""
    transport_cost = transport.optimization_summary.total_transportation_cost
    network_facilities = len(transport.open_facilities)
    service_pct = transport.network_metrics.service_level_achievement * 100

    return [
        CombinedYearRow(
            year=row.year,
            warehouse_facilities=row.facilities_needed,
            warehouse_gross_area=row.gross_area_sqft,
            warehouse_cost=row.total_cost_annual,
            thirdparty_space=row.thirdparty_sqft_required,
            network_facilities=network_facilities,
            transportation_cost=transport_cost,
            total_annual_cost=row.total_cost_annual + transport_cost,
            utilization_pct=row.utilization_percentage,
            service_level_achievement=service_pct,
        )
        for row in warehouse.results
    ]


def baseline_integration(
    baseline_transport_cost: Optional[float],
    transport: TransportPlanResult,
) -> Optional[BaselineIntegration]:
    """Savings of the optimized transport cost against the current baseline."""
    if not baseline_transport_cost:
        return None
    optimized = transport.optimization_summary.total_transportation_cost
    savings = baseline_transport_cost - optimized
    return BaselineIntegration(
        current_transport_baseline=baseline_transport_cost,
        optimized_transport_cost=optimized,
        projected_savings=savings,
        savings_percentage=savings / baseline_transport_cost * 100,
    )


class IntegratedWorkflow(BaseWorkflow):
    """Warehouse and transport plans with a combined yearly view."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        shared = dict(
            config=self.config,
            request=self.request,
            services=self.services,
            scenario_id=self.scenario_id,
            progress=self.progress,
            cancel_token=self.cancel_token,
            solver=self.solver,
        )
        self.warehouse = WarehouseWorkflow(**shared)
        self.transport = TransportWorkflow(**shared)

    def prepare_input_data(self) -> Dict[str, Any]:
        warehouse_input = self.warehouse.prepare_input_data()
        self.check_cancelled()
        transport_input = self.transport.prepare_input_data()
        return {**warehouse_input, **transport_input}

    def run_optimization(self, input_data: Dict[str, Any]) -> IntegratedPlanResult:
        self.report(self.progress_start + 5, "Running warehouse capacity optimization")
        warehouse = self.warehouse.solve_warehouse(input_data)

        self.check_cancelled()
        self.report(self.progress_start + 30, "Running transport facility optimization")
        transport = self.transport.solve_transport(input_data)

        self.check_cancelled()
        self.report(self.progress_end - 5, "Combining warehouse and transport plans")
        baseline = baseline_integration(self.request.baseline_transport_cost, transport)
        if baseline is not None:
            logger.info(
                f"Baseline vs optimized transport: ${baseline.current_transport_baseline:,.2f} -> "
                f"${baseline.optimized_transport_cost:,.2f} "
                f"(savings {baseline.savings_percentage:.1f}%)"
            )

        return IntegratedPlanResult(
            warehouse=warehouse,
            transportation=transport,
            combined_rows=combine_year_rows(warehouse, transport),
            baseline_integration=baseline,
        )

    def _objective_value(self, solution: BaseModel) -> Optional[float]:
        return (
            solution.warehouse.optimization_summary.objective_value
            + solution.transportation.optimization_summary.objective_value
        )

    def _is_approximate(self, solution: BaseModel) -> bool:
        return (
            solution.warehouse.optimization_summary.is_approximate
            or solution.transportation.optimization_summary.is_approximate
        )
