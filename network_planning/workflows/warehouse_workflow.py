"""Warehouse capacity workflow."""

from typing import Any, Dict
import logging

from .base_workflow import BaseWorkflow
from ..errors import WarehouseDataError
from ..optimization.result_schema import WarehousePlanResult
from ..optimization.warehouse_model import WarehouseCapacityModel

logger = logging.getLogger(__name__)


class WarehouseWorkflow(BaseWorkflow):
    """Multi-year warehouse capacity plan for one scenario."""

    def prepare_input_data(self) -> Dict[str, Any]:
        """Forecast and SKU rows from the request, else from the forecast source.

        Raises:
            WarehouseDataError: If no forecast or SKU rows are available
        """
        forecast, skus = self.request.forecast, self.request.skus
        if (not forecast or not skus) and self.scenario_id is not None:
            logger.info(f"Loading forecast and SKUs for scenario {self.scenario_id}")
            forecast, skus = self.services.forecasts.get_forecast(self.scenario_id)

        if not forecast or not skus:
            raise WarehouseDataError("Empty forecast or SKU data")

        return {
            'forecast': forecast,
            'skus': skus,
            'num_forecast_years': len(forecast),
            'num_skus': len(skus),
        }

    def run_optimization(self, input_data: Dict[str, Any]) -> WarehousePlanResult:
        self.report(self.progress_start + 5, "Running warehouse capacity optimization")
        return self.solve_warehouse(input_data)

    def solve_warehouse(self, input_data: Dict[str, Any]) -> WarehousePlanResult:
        model = WarehouseCapacityModel(
            forecast=input_data['forecast'],
            skus=input_data['skus'],
            params=self.request.warehouse,
            weights=self.request.weights,
            service_level_requirement=self.request.service_level_requirement,
            solver=self.solver,
        )
        return model.run(cancel_token=self.cancel_token)
