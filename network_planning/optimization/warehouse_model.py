"""Multi-year warehouse capacity planning model.

For every forecast year the model decides whether to add a facility, how much
internal space to add, and how much third-party space to rent so that the
gross area requirement derived from the SKU assortment is covered.

Decision variables (per year y):
    add_y   (binary)     open an additional facility in year y
    size_y  (integer)    square feet of internal space added in year y
    third_y (continuous) square feet of third-party space rented in year y

Constraints:
    Facility_Size_Link_y: size_y - design_area * add_y <= 0
    Capacity_y: sum_{p<=y} (per_facility_area * add_p - size_p) - third_y
                <= initial_area - gross_y
    ServiceLevel_y: -sum_{p<=y} size_p <= -(gross_y * service_level - initial_area)
    Max_Facilities: sum_y add_y <= max_facilities
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import math

from .base_model import BaseOptimizationModel
from .constants import (
    SQ_INCHES_PER_SQ_FOOT,
    WAREHOUSE_SIZE_OBJECTIVE_SCALE,
    WAREHOUSE_THIRDPARTY_OBJECTIVE_SCALE,
)
from .model_builder import ConstraintBound, ConstraintModelBuilder
from .result_schema import (
    WarehousePerformanceMetrics,
    WarehousePlanResult,
    WarehouseSummary,
    WarehouseYearRow,
)
from .solver import SolveResult, SolverAdapter
from ..errors import WarehouseDataError
from ..models.warehouse import ForecastRow, OptimizationWeights, SKU, WarehouseParams

logger = logging.getLogger(__name__)


@dataclass
class AreaRequirement:
    """Area breakdown for a daily and storage pallet load."""
    storage_area: float
    outbound_area: float
    inbound_area: float
    outbound_overflow: float
    inbound_overflow: float
    support_area: float
    net_area: float
    gross_area: float
    outbound_doors: int
    inbound_doors: int


@dataclass
class YearRequirement:
    """Pallet flows and area requirement for one forecast year."""
    year: int
    annual_units: float
    demand_factor: float
    annual_pallets: float
    daily_pallets: float
    storage_pallets: float
    area: AreaRequirement


def _doors(daily_pallets: float, pallets_per_door: float) -> int:
    return math.ceil(daily_pallets / pallets_per_door)


def calculate_area(storage_pallets: float, daily_pallets: float, params: WarehouseParams) -> AreaRequirement:
    """
    Convert pallet load into an area requirement.

    Storage area is the pallet footprint divided over the rack levels that fit
    under the ceiling and grossed up for aisles.  Dock doors are capped at the
    configured maximum; door demand above the cap is reported as overflow area.

    Args:
        storage_pallets: Pallets held in storage
        daily_pallets: Pallets moved per operating day
        params: Warehouse parameters

    Returns:
        AreaRequirement with net and gross area
    """
    pallet_sqft = (params.pallet_length_inches * params.pallet_width_inches) / SQ_INCHES_PER_SQ_FOOT
    levels = math.floor(params.ceiling_height_inches / params.rack_height_inches) or 1
    storage_area = storage_pallets * pallet_sqft / levels / (1 - params.aisle_factor)

    outbound_needed = _doors(daily_pallets, params.outbound_pallets_per_door_per_day)
    inbound_needed = _doors(daily_pallets, params.inbound_pallets_per_door_per_day)
    outbound_doors = min(outbound_needed, params.max_outbound_doors)
    inbound_doors = min(inbound_needed, params.max_inbound_doors)

    outbound_area = outbound_doors * params.outbound_area_per_door
    inbound_area = inbound_doors * params.inbound_area_per_door
    outbound_overflow = max(0, outbound_needed - params.max_outbound_doors) * params.outbound_area_per_door
    inbound_overflow = max(0, inbound_needed - params.max_inbound_doors) * params.inbound_area_per_door

    support_area = params.support_area
    net = storage_area + outbound_area + inbound_area + outbound_overflow + inbound_overflow + support_area

    return AreaRequirement(
        storage_area=storage_area,
        outbound_area=outbound_area,
        inbound_area=inbound_area,
        outbound_overflow=outbound_overflow,
        inbound_overflow=inbound_overflow,
        support_area=support_area,
        net_area=net,
        gross_area=net / params.max_utilization,
        outbound_doors=outbound_doors,
        inbound_doors=inbound_doors,
    )


def prepare_warehouse_data(
    forecast: List[ForecastRow],
    skus: List[SKU],
    params: WarehouseParams,
) -> Dict[int, YearRequirement]:
    """
    Derive per-year pallet flows and area requirements.

    Each year's SKU volumes are the baseline volumes scaled by
    ``year_units / baseline_units``.

    Raises:
        WarehouseDataError: If forecast or SKU data is empty
    """
    if not forecast or not skus:
        raise WarehouseDataError("Empty forecast or SKU data")

    base_units = sum(s.annual_volume for s in skus)
    requirements: Dict[int, YearRequirement] = {}

    for row in sorted(forecast, key=lambda r: r.year):
        demand_factor = row.annual_units / base_units if base_units > 0 else 1.0
        annual_pallets = sum(
            s.annual_volume * demand_factor / s.units_per_pallet for s in skus
        )
        daily_pallets = annual_pallets / params.operating_days
        storage_pallets = daily_pallets * params.DOH

        requirements[row.year] = YearRequirement(
            year=row.year,
            annual_units=row.annual_units,
            demand_factor=demand_factor,
            annual_pallets=annual_pallets,
            daily_pallets=daily_pallets,
            storage_pallets=storage_pallets,
            area=calculate_area(storage_pallets, daily_pallets, params),
        )

    return requirements


def _cagr(first: float, last: float, span: int) -> float:
    return (last / max(1e-9, first)) ** (1.0 / span) - 1.0


class WarehouseCapacityModel(BaseOptimizationModel):
    """
    Warehouse capacity planning MIP.

    Example:
        model = WarehouseCapacityModel(forecast, skus, WarehouseParams())
        plan = model.run()
        print(plan.performance_metrics.avg_utilization)
    """

    def __init__(
        self,
        forecast: List[ForecastRow],
        skus: List[SKU],
        params: Optional[WarehouseParams] = None,
        weights: Optional[OptimizationWeights] = None,
        service_level_requirement: float = 0.95,
        solver: Optional[SolverAdapter] = None,
    ):
        super().__init__(solver)
        self.params = params or WarehouseParams()
        self.weights = weights or OptimizationWeights()
        self.service_level_requirement = service_level_requirement
        self.requirements = prepare_warehouse_data(forecast, skus, self.params)
        self.years = sorted(self.requirements)

        logger.info(
            f"Warehouse capacity model: {len(self.years)} years "
            f"({self.years[0]}-{self.years[-1]}), {len(skus)} SKUs"
        )

    def populate(self, builder: ConstraintModelBuilder) -> None:
        p = self.params
        w = self.weights

        builder.add_constraint('Max_Facilities', ConstraintBound(max=p.max_facilities))

        for y in self.years:
            add, size, third = f"add_{y}", f"size_{y}", f"third_{y}"
            builder.add_variable(add, 'binary')
            builder.add_variable(size, 'integer')
            builder.add_variable(third, 'continuous')

            builder.set_objective_coef(add, w.cost * p.fixed_cost_per_facility)
            builder.set_objective_coef(size, w.utilization * WAREHOUSE_SIZE_OBJECTIVE_SCALE)
            builder.set_objective_coef(third, w.service_level * WAREHOUSE_THIRDPARTY_OBJECTIVE_SCALE)

            builder.set_constraint_coef(add, 'Max_Facilities', 1)

            link = f"Facility_Size_Link_{y}"
            builder.add_constraint(link, ConstraintBound(max=0))
            builder.set_constraint_coef(size, link, 1)
            builder.set_constraint_coef(add, link, -p.facility_design_area)

            gross = self.requirements[y].area.gross_area
            capacity = f"Capacity_{y}"
            builder.add_constraint(capacity, ConstraintBound(max=p.initial_facility_area - gross))
            builder.set_constraint_coef(third, capacity, -1)

            service = f"ServiceLevel_{y}"
            builder.add_constraint(
                service,
                ConstraintBound(max=-(gross * self.service_level_requirement - p.initial_facility_area)),
            )

            for py in self.years:
                if py > y:
                    break
                builder.set_constraint_coef(f"add_{py}", capacity, p.per_facility_area)
                builder.set_constraint_coef(f"size_{py}", capacity, -1)
                builder.set_constraint_coef(f"size_{py}", service, -1)

    def describe_infeasibility(self) -> str:
        return "Warehouse optimization infeasible - check capacity constraints"

    def extract_solution(self, result: SolveResult) -> WarehousePlanResult:
        p = self.params
        rows: List[WarehouseYearRow] = []
        cumulative_adds = 0
        cumulative_size = p.initial_facility_area
        total_size_added = 0.0

        for y in self.years:
            req = self.requirements[y]
            added = result.get(f"add_{y}") > 0.5
            size_added = max(0.0, result.get(f"size_{y}"))
            third = max(0.0, result.get(f"third_{y}"))

            cumulative_adds += int(added)
            cumulative_size += size_added
            total_size_added += size_added
            facilities = 1 + cumulative_adds

            case_pick = facilities * p.case_pick_area_fixed
            each_pick = facilities * p.each_pick_area_fixed
            conveyor = facilities * p.min_conveyor
            total_net = req.area.net_area + case_pick + each_pick + conveyor

            internal_cost = cumulative_size * p.cost_per_sqft_annual
            third_cost = third * p.thirdparty_cost_per_sqft
            total_cost = internal_cost + third_cost
            utilization = total_net / cumulative_size if cumulative_size > 0 else 0.0

            rows.append(WarehouseYearRow(
                year=y,
                storage_pallets=req.storage_pallets,
                storage_area_sqft=req.area.storage_area,
                outbound_dock_area=req.area.outbound_area,
                inbound_dock_area=req.area.inbound_area,
                outbound_overflow_area=req.area.outbound_overflow,
                inbound_overflow_area=req.area.inbound_overflow,
                support_area=req.area.support_area,
                case_pick_area=case_pick,
                each_pick_area=each_pick,
                conveyor_area=conveyor,
                net_area_sqft=total_net,
                gross_area_sqft=total_net / p.max_utilization,
                facilities_needed=facilities,
                facility_added=added,
                facility_size_added=size_added,
                cumulative_facility_size=cumulative_size,
                thirdparty_sqft_required=third,
                internal_cost_annual=internal_cost,
                thirdparty_cost_annual=third_cost,
                total_cost_annual=total_cost,
                cost_per_unit=total_cost / req.annual_units if req.annual_units > 0 else 0.0,
                utilization_percentage=utilization * 100,
                outbound_doors=req.area.outbound_doors,
                inbound_doors=req.area.inbound_doors,
            ))

        first, last = rows[0], rows[-1]
        span = max(1, last.year - first.year)
        total_third = sum(r.thirdparty_sqft_required for r in rows)
        total_internal = last.cumulative_facility_size

        summary = WarehouseSummary(
            status="Optimal" if result.is_optimal() else result.termination.value.title(),
            objective_value=result.objective_value,
            solve_time=result.solve_time_seconds or 0.0,
            solver_name=result.solver_name,
            is_approximate=result.is_approximate,
            total_facilities_added=cumulative_adds,
            total_facility_size_added=total_size_added,
            total_thirdparty_space=total_third,
        )
        metrics = WarehousePerformanceMetrics(
            volume_cagr=_cagr(first.storage_pallets, last.storage_pallets, span),
            cost_cagr=_cagr(first.total_cost_annual, last.total_cost_annual, span),
            avg_utilization=sum(r.utilization_percentage for r in rows) / len(rows),
            avg_cost_per_unit=sum(r.cost_per_unit for r in rows) / len(rows),
            thirdparty_dependency=total_third / max(1e-9, total_internal + total_third),
            total_internal_space=total_internal,
            total_thirdparty_space=total_third,
        )

        logger.info(
            f"Warehouse plan: {cumulative_adds} facilities added, "
            f"{total_internal:,.0f} sq ft internal, "
            f"average utilization {metrics.avg_utilization:.1f}%"
        )

        return WarehousePlanResult(
            results=rows,
            optimization_summary=summary,
            performance_metrics=metrics,
        )


def optimize_warehouse(
    forecast: List[ForecastRow],
    skus: List[SKU],
    params: Optional[WarehouseParams] = None,
    weights: Optional[OptimizationWeights] = None,
    service_level_requirement: float = 0.95,
    solver: Optional[SolverAdapter] = None,
    cancel_token=None,
) -> WarehousePlanResult:
    """Build, solve and extract a warehouse capacity plan.

    Raises:
        WarehouseDataError: If forecast or SKU data is empty
        InfeasibleModelError: If no feasible plan exists
    """
    model = WarehouseCapacityModel(
        forecast, skus, params, weights, service_level_requirement, solver
    )
    return model.run(cancel_token=cancel_token)
