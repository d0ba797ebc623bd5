"""Transport facility-location and assignment model.

Chooses which candidate facilities to open and which open facility serves
each destination.

Decision variables:
    x_i  (binary) facility i is open
    y_ij (binary) destination j is served by facility i

Constraints:
    Serve_j:          sum_i y_ij = 1
    Min_Facilities:   sum_i x_i >= min
    Max_Facilities:   sum_i x_i <= max
    Mandatory_i:      x_i = 1 for mandatory facilities
    Link_i_j:         y_ij - x_i <= 0
    Cap_i:            sum_j demand_j * y_ij - capacity_i * x_i <= 0
    Service_Level:    sum_{dist_ij <= max_dist} demand_j * y_ij >= service_level * total_demand

Objective (minimize):
    cost_w * fixed_cost * x_i
    + cost_w * unit_cost_ij * demand_j * y_ij
    + service_w * 10 * max(0, dist_ij - max_dist) * demand_j * y_ij
"""

from typing import List, Optional, Tuple
import logging
import re

from .base_model import BaseOptimizationModel
from .constants import (
    DEFAULT_DESTINATION_DEMAND,
    DEFAULT_FACILITY_CAPACITY,
    DISTANCE_PENALTY_SCALE,
)
from .model_builder import ConstraintBound, ConstraintModelBuilder
from .result_schema import (
    FacilityMetrics,
    NetworkMetrics,
    TransportAssignment,
    TransportPlanResult,
    TransportSummary,
)
from .solver import SolveResult, SolverAdapter
from ..errors import InvalidInputError
from ..models.transport import CapacityMap, CostMatrix, DemandMap, TransportParams

logger = logging.getLogger(__name__)


def sanitize_name(name: str) -> str:
    """Replace characters other than letters, digits and underscore."""
    return re.sub(r"[^A-Za-z0-9_]", "_", str(name))


class TransportFacilityModel(BaseOptimizationModel):
    """
    Facility-location MIP over a cost matrix.

    Args:
        matrix: Facility × destination unit costs (and optionally distances)
        params: Transport parameters
        demand: Units per destination (default 1000 each)
        capacity: Units per facility (default params.max_capacity_per_facility)
        facility_bounds: (min, max) open facilities overriding params
        solver: SolverAdapter instance

    Example:
        model = TransportFacilityModel(matrix, TransportParams(max_facilities=2))
        plan = model.run()
        print(plan.open_facilities)
    """

    def __init__(
        self,
        matrix: CostMatrix,
        params: Optional[TransportParams] = None,
        demand: Optional[DemandMap] = None,
        capacity: Optional[CapacityMap] = None,
        facility_bounds: Optional[Tuple[Optional[int], Optional[int]]] = None,
        solver: Optional[SolverAdapter] = None,
    ):
        super().__init__(solver)
        if not matrix.facilities:
            raise InvalidInputError("Cost matrix has no facilities")
        if not matrix.destinations:
            raise InvalidInputError("Cost matrix has no destinations")

        self.matrix = matrix
        self.params = params or TransportParams()
        self.facilities = list(matrix.facilities)
        self.destinations = list(matrix.destinations)

        if demand is None:
            self.demand = {d: DEFAULT_DESTINATION_DEMAND for d in self.destinations}
        else:
            self.demand = {d: float(demand.get(d, 0.0)) for d in self.destinations}

        default_capacity = self.params.max_capacity_per_facility or DEFAULT_FACILITY_CAPACITY
        capacity = capacity or {}
        self.capacity = {f: float(capacity.get(f, default_capacity)) for f in self.facilities}

        min_f, max_f = facility_bounds or (None, None)
        self.min_facilities = self.params.required_facilities if min_f is None else min_f
        self.max_facilities = self.params.max_facilities if max_f is None else max_f

        self.mandatory = [f for f in self.params.mandatory_facilities if f in self.facilities]
        for f in self.params.mandatory_facilities:
            if f not in self.facilities:
                logger.warning(f"Mandatory facility '{f}' is not in the cost matrix; ignoring")

        if self.min_facilities > self.max_facilities:
            raise InvalidInputError(
                f"Minimum facilities ({self.min_facilities}) exceeds maximum facilities "
                f"({self.max_facilities})"
            )
        if self.min_facilities > len(self.facilities):
            raise InvalidInputError(
                f"Minimum facilities ({self.min_facilities}) exceeds the "
                f"{len(self.facilities)} candidate facilities"
            )
        if len(self.mandatory) > self.max_facilities:
            raise InvalidInputError(
                f"{len(self.mandatory)} mandatory facilities exceed maximum facilities "
                f"({self.max_facilities})"
            )

        self.total_demand = sum(self.demand.values())

        logger.info(
            f"Transport model: {len(self.facilities)} candidate facilities, "
            f"{len(self.destinations)} destinations, total demand {self.total_demand:,.0f}"
        )

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def open_var(self, i: int) -> str:
        return f"x_{i}_{sanitize_name(self.facilities[i])}"

    def assign_var(self, i: int, j: int) -> str:
        return f"y_{i}_{j}"

    def distance(self, i: int, j: int) -> float:
        """Lane distance in miles, derived from cost when the matrix has none."""
        if self.matrix.distance is not None:
            return self.matrix.distance[i][j]
        return self.matrix.cost[i][j] / self.params.cost_per_mile

    # ------------------------------------------------------------------
    # Formulation
    # ------------------------------------------------------------------

    def populate(self, builder: ConstraintModelBuilder) -> None:
        p = self.params
        cost_w = p.weights.cost
        service_w = p.weights.service_level

        for j in range(len(self.destinations)):
            builder.add_constraint(f"Serve_{j}", ConstraintBound(equal=1))

        builder.add_constraint('Min_Facilities', ConstraintBound(min=self.min_facilities))
        builder.add_constraint('Max_Facilities', ConstraintBound(max=self.max_facilities))
        builder.add_constraint(
            'Service_Level',
            ConstraintBound(min=self.total_demand * p.service_level_requirement),
        )

        for i, facility in enumerate(self.facilities):
            x = self.open_var(i)
            builder.add_variable(x, 'binary')
            builder.set_objective_coef(x, cost_w * p.fixed_cost_per_facility)
            builder.set_constraint_coef(x, 'Min_Facilities', 1)
            builder.set_constraint_coef(x, 'Max_Facilities', 1)

            if facility in self.mandatory:
                mandatory = f"Mandatory_{i}"
                builder.add_constraint(mandatory, ConstraintBound(equal=1))
                builder.set_constraint_coef(x, mandatory, 1)

            cap = f"Cap_{i}"
            builder.add_constraint(cap, ConstraintBound(max=0))
            builder.set_constraint_coef(x, cap, -self.capacity[facility])

            for j, dest in enumerate(self.destinations):
                y = self.assign_var(i, j)
                units = self.demand[dest]
                unit_cost = self.matrix.cost[i][j]
                dist = self.distance(i, j)

                builder.add_variable(y, 'binary')
                builder.set_constraint_coef(y, f"Serve_{j}", 1)

                link = f"Link_{i}_{j}"
                builder.add_constraint(link, ConstraintBound(max=0))
                builder.set_constraint_coef(y, link, 1)
                builder.set_constraint_coef(x, link, -1)

                builder.set_constraint_coef(y, cap, units)

                over = max(0.0, dist - p.max_distance_miles)
                builder.set_objective_coef(
                    y,
                    cost_w * unit_cost * units + service_w * DISTANCE_PENALTY_SCALE * over * units,
                )

                if dist <= p.max_distance_miles:
                    builder.set_constraint_coef(y, 'Service_Level', units)

    def describe_infeasibility(self) -> str:
        return (
            f"Transport MIP infeasible or no solution "
            f"({len(self.facilities)} facilities, {len(self.destinations)} destinations)"
        )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_solution(self, result: SolveResult) -> TransportPlanResult:
        p = self.params
        open_facilities = [
            f for i, f in enumerate(self.facilities) if result.get(self.open_var(i)) > 0.5
        ]

        assignments: List[TransportAssignment] = []
        for i, facility in enumerate(self.facilities):
            for j, dest in enumerate(self.destinations):
                if result.get(self.assign_var(i, j)) > 0.5:
                    assignments.append(TransportAssignment(
                        facility=facility,
                        destination=dest,
                        demand=self.demand[dest],
                        cost=self.matrix.cost[i][j],
                        distance=self.distance(i, j),
                    ))

        total_cost = sum(a.cost * a.demand for a in assignments)
        total_served = sum(a.demand for a in assignments)

        facility_metrics: List[FacilityMetrics] = []
        for facility in open_facilities:
            served = [a for a in assignments if a.facility == facility]
            demand = sum(a.demand for a in served)
            cost = sum(a.cost * a.demand for a in served)
            cap = self.capacity[facility]
            facility_metrics.append(FacilityMetrics(
                facility=facility,
                destinations_served=len(served),
                total_demand=demand,
                capacity_utilization=demand / cap if cap > 0 else 0.0,
                average_distance=sum(a.distance for a in served) / len(served) if served else 0.0,
                total_cost=cost,
                cost_per_unit=cost / demand if demand > 0 else 0.0,
            ))

        within = sum(a.demand for a in assignments if a.distance <= p.max_distance_miles)
        total_capacity = sum(self.capacity[f] for f in open_facilities)
        n_open = len(facility_metrics)

        network = NetworkMetrics(
            service_level_achievement=within / total_served if total_served > 0 else 0.0,
            avg_cost_per_unit=total_cost / total_served if total_served > 0 else 0.0,
            weighted_avg_distance=(
                sum(a.distance * a.demand for a in assignments) / total_served
                if total_served > 0 else 0.0
            ),
            avg_facility_utilization=(
                sum(m.capacity_utilization for m in facility_metrics) / n_open if n_open else 0.0
            ),
            network_utilization=total_served / total_capacity if total_capacity > 0 else 0.0,
            destinations_per_facility=(
                sum(m.destinations_served for m in facility_metrics) / n_open if n_open else 0.0
            ),
            total_transportation_cost=total_cost,
            demand_within_service_limit=within,
            total_demand_served=total_served,
            facilities_opened=len(open_facilities),
            total_capacity_available=total_capacity,
        )

        summary = TransportSummary(
            status="Optimal" if result.is_optimal() else result.termination.value.title(),
            objective_value=result.objective_value,
            solve_time=result.solve_time_seconds or 0.0,
            solver_name=result.solver_name,
            is_approximate=result.is_approximate,
            facilities_opened=len(open_facilities),
            total_demand_served=total_served,
            total_transportation_cost=total_cost,
        )

        logger.info(
            f"Transport plan: {len(open_facilities)} facilities opened ({', '.join(open_facilities)}), "
            f"cost ${total_cost:,.2f}, service level {network.service_level_achievement:.1%}"
        )

        return TransportPlanResult(
            open_facilities=open_facilities,
            assignments=assignments,
            facility_metrics=facility_metrics,
            optimization_summary=summary,
            network_metrics=network,
        )


def optimize_transport(
    matrix: CostMatrix,
    params: Optional[TransportParams] = None,
    demand: Optional[DemandMap] = None,
    capacity: Optional[CapacityMap] = None,
    facility_bounds: Optional[Tuple[Optional[int], Optional[int]]] = None,
    solver: Optional[SolverAdapter] = None,
    cancel_token=None,
) -> TransportPlanResult:
    """Build, solve and extract a facility-location plan.

    Raises:
        InfeasibleModelError: If no feasible plan exists
    """
    model = TransportFacilityModel(matrix, params, demand, capacity, facility_bounds, solver)
    return model.run(cancel_token=cancel_token)
