"""Job parameter payload for optimization workflows."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .transport import CapacityMap, CostMatrix, DemandMap, TransportParams
from .warehouse import ForecastRow, OptimizationWeights, SKU, WarehouseParams


class OptimizationRequest(BaseModel):
    """
    Parameters of one optimization job.

    Warehouse inputs come from ``forecast``/``skus`` (or the scenario's forecast
    source when omitted).  Transport inputs come from ``cost_matrix`` or are
    priced from ``facilities``/``destinations`` city names; both default to
    ``cities``.

    Unknown keys are kept so callers can carry their own annotations.
    """
    forecast: List[ForecastRow] = Field(default_factory=list)
    skus: List[SKU] = Field(default_factory=list)
    warehouse: WarehouseParams = Field(default_factory=WarehouseParams)
    weights: OptimizationWeights = Field(default_factory=OptimizationWeights)
    service_level_requirement: float = Field(0.95, ge=0, le=1)

    transport: TransportParams = Field(default_factory=TransportParams)
    cost_matrix: Optional[CostMatrix] = None
    cities: List[str] = Field(default_factory=list, description="Cities in the network")
    facilities: List[str] = Field(default_factory=list, description="Candidate facilities")
    destinations: List[str] = Field(default_factory=list, description="Destinations")
    demand: Optional[DemandMap] = None
    capacity: Optional[CapacityMap] = None
    min_facilities: Optional[int] = Field(None, ge=0)
    max_facilities: Optional[int] = Field(None, ge=0)
    baseline_transport_cost: Optional[float] = Field(None, gt=0)

    scenario_types: List[str] = Field(default_factory=list)
    seed: Optional[int] = None
    time_limit_seconds: Optional[float] = Field(None, gt=0)
    mip_gap: Optional[float] = Field(None, ge=0, lt=1)
    solver_name: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @model_validator(mode='after')
    def limits_ordered(self) -> 'OptimizationRequest':
        if (
            self.min_facilities is not None
            and self.max_facilities is not None
            and self.min_facilities > self.max_facilities
        ):
            raise ValueError(
                f"min_facilities ({self.min_facilities}) exceeds max_facilities ({self.max_facilities})"
            )
        return self

    @property
    def facility_names(self) -> List[str]:
        return self.facilities or self.cities

    @property
    def destination_names(self) -> List[str]:
        return self.destinations or self.cities

    @classmethod
    def from_params(
        cls,
        params: Dict[str, Any],
        warehouse_config: Optional[Dict[str, Any]] = None,
        transport_config: Optional[Dict[str, Any]] = None,
    ) -> 'OptimizationRequest':
        """
        Validate job parameters merged over the scenario's stored configuration.

        Values in ``params`` win over the stored configuration.

        Raises:
            ValidationError: If the merged payload is invalid
        """
        data = dict(params)
        if warehouse_config:
            data['warehouse'] = {**warehouse_config, **(params.get('warehouse') or {})}
        if transport_config:
            data['transport'] = {**transport_config, **(params.get('transport') or {})}
        return cls.model_validate(data)
