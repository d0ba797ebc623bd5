"""Transport facility-location workflow."""

from typing import Any, Dict
import logging

from .base_workflow import BaseWorkflow
from ..costs.geo_cost import CostMatrixGenerator
from ..errors import InvalidInputError
from ..optimization.result_schema import TransportPlanResult
from ..optimization.transport_model import TransportFacilityModel

logger = logging.getLogger(__name__)


class TransportWorkflow(BaseWorkflow):
    """Facility selection and destination assignment for one scenario."""

    def prepare_input_data(self) -> Dict[str, Any]:
        """Cost matrix from the request, else priced from city names.

        Raises:
            InvalidInputError: If neither a matrix nor city names are given,
                or no candidate facility could be located
        """
        request = self.request
        matrix = request.cost_matrix
        if matrix is None:
            facilities, destinations = request.facility_names, request.destination_names
            if not facilities or not destinations:
                raise InvalidInputError(
                    "Transport optimization requires a cost matrix or facility and destination cities"
                )
            logger.info(
                f"Pricing {len(facilities)} facilities x {len(destinations)} destinations from city names"
            )
            matrix = CostMatrixGenerator(self.services.city_lookup).generate(facilities, destinations)
            if not matrix.facilities:
                raise InvalidInputError("None of the candidate facilities could be located")

        return {
            'cost_matrix': matrix,
            'num_facilities': len(matrix.facilities),
            'num_destinations': len(matrix.destinations),
        }

    def run_optimization(self, input_data: Dict[str, Any]) -> TransportPlanResult:
        self.report(self.progress_start + 5, "Running transport facility optimization")
        return self.solve_transport(input_data)

    def solve_transport(self, input_data: Dict[str, Any]) -> TransportPlanResult:
        request = self.request
        model = TransportFacilityModel(
            matrix=input_data['cost_matrix'],
            params=request.transport,
            demand=request.demand,
            capacity=request.capacity,
            facility_bounds=(request.min_facilities, request.max_facilities),
            solver=self.solver,
        )
        return model.run(cancel_token=self.cancel_token)
