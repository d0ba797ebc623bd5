"""Warehouse capacity planning input models."""

from typing import List

from pydantic import BaseModel, Field, field_validator

from ..optimization.constants import (
    DEFAULT_COST_WEIGHT,
    DEFAULT_SERVICE_WEIGHT,
    DEFAULT_UTILIZATION_WEIGHT,
    WAREHOUSE_FACILITY_FIXED_COST,
)


class ForecastRow(BaseModel):
    """Annual unit forecast for one year."""
    year: int = Field(..., description="Forecast year")
    annual_units: float = Field(..., description="Units shipped in the year", ge=0)


class SKU(BaseModel):
    """
    Baseline assortment line.

    Attributes:
        sku: SKU identifier
        annual_volume: Baseline annual units
        units_per_case: Units in one case
        cases_per_pallet: Cases on one pallet
    """
    sku: str = Field(..., description="SKU identifier")
    annual_volume: float = Field(..., description="Baseline annual units", ge=0)
    units_per_case: float = Field(..., description="Units per case", gt=0)
    cases_per_pallet: float = Field(..., description="Cases per pallet", gt=0)

    @property
    def units_per_pallet(self) -> float:
        return self.units_per_case * self.cases_per_pallet


class OptimizationWeights(BaseModel):
    """Relative weights of the objective terms."""
    cost: float = Field(DEFAULT_COST_WEIGHT, description="Weight on cost terms", ge=0)
    utilization: float = Field(DEFAULT_UTILIZATION_WEIGHT, description="Weight on utilization terms", ge=0)
    service_level: float = Field(DEFAULT_SERVICE_WEIGHT, description="Weight on service-level terms", ge=0)


class WarehouseParams(BaseModel):
    """
    Warehouse sizing and cost parameters.

    Area values are square feet, dimensions are inches and costs are dollars
    per square foot per year unless noted.
    """
    operating_days: float = Field(260, description="Operating days per year", gt=0)
    DOH: float = Field(14, description="Days of holding used for storage sizing", ge=0)
    pallet_length_inches: float = Field(48, gt=0)
    pallet_width_inches: float = Field(40, gt=0)
    ceiling_height_inches: float = Field(432, gt=0)
    rack_height_inches: float = Field(96, gt=0)
    aisle_factor: float = Field(0.35, description="Fraction of floor lost to aisles", ge=0, lt=1)

    outbound_pallets_per_door_per_day: float = Field(480, gt=0)
    inbound_pallets_per_door_per_day: float = Field(480, gt=0)
    max_outbound_doors: int = Field(15, ge=0)
    max_inbound_doors: int = Field(12, ge=0)
    outbound_area_per_door: float = Field(4000, ge=0)
    inbound_area_per_door: float = Field(4000, ge=0)

    min_office: float = Field(5000, ge=0)
    min_battery: float = Field(3000, ge=0)
    min_packing: float = Field(6000, ge=0)
    max_utilization: float = Field(0.85, description="Net-to-gross ratio", gt=0, le=1)

    initial_facility_area: float = Field(352000, description="Existing internal sq ft", ge=0)
    case_pick_area_fixed: float = Field(24000, description="Case-pick area per facility", ge=0)
    each_pick_area_fixed: float = Field(44000, description="Each-pick area per facility", ge=0)
    min_conveyor: float = Field(6000, description="Conveyor area per facility", ge=0)
    facility_design_area: float = Field(400000, description="Max size added with one facility", ge=0)

    cost_per_sqft_annual: float = Field(8.5, ge=0)
    thirdparty_cost_per_sqft: float = Field(12.0, ge=0)
    max_facilities: int = Field(6, description="Facilities that may be added over the horizon", ge=0)
    fixed_cost_per_facility: float = Field(
        WAREHOUSE_FACILITY_FIXED_COST, description="Objective cost of adding a facility", ge=0
    )

    @property
    def per_facility_area(self) -> float:
        """Case-pick, each-pick and conveyor area required by every facility."""
        return self.case_pick_area_fixed + self.each_pick_area_fixed + self.min_conveyor

    @property
    def support_area(self) -> float:
        return self.min_office + self.min_battery + self.min_packing


class WarehouseInput(BaseModel):
    """Complete input for one warehouse capacity plan."""
    forecast: List[ForecastRow] = Field(..., description="Forecast rows (baseline and horizon years)")
    skus: List[SKU] = Field(..., description="Baseline assortment")
    params: WarehouseParams = Field(default_factory=WarehouseParams)
    weights: OptimizationWeights = Field(default_factory=OptimizationWeights)
    service_level_requirement: float = Field(0.95, ge=0, le=1)

    @field_validator('forecast')
    @classmethod
    def forecast_years_unique(cls, v: List[ForecastRow]) -> List[ForecastRow]:
        years = [row.year for row in v]
        if len(years) != len(set(years)):
            raise ValueError("forecast must contain at most one row per year")
        return v
