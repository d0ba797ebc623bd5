"""Transport network input models."""

from typing import Dict, List, Optional

import pandas as pd
from pydantic import BaseModel, Field, model_validator

from ..optimization.constants import (
    DEFAULT_COST_WEIGHT,
    DEFAULT_SERVICE_LEVEL,
    DEFAULT_SERVICE_WEIGHT,
    FALLBACK_DISTANCE_MILES,
    SENTINEL_COST,
)


class TransportWeights(BaseModel):
    """Relative weights of the transport objective terms."""
    cost: float = Field(DEFAULT_COST_WEIGHT, ge=0)
    service_level: float = Field(DEFAULT_SERVICE_WEIGHT, ge=0)


class TransportParams(BaseModel):
    """
    Facility-location parameters.

    Attributes:
        fixed_cost_per_facility: Cost of opening one facility
        cost_per_mile: Used to derive distance from unit cost when the cost
            matrix carries no distances
        service_level_requirement: Fraction of demand that must be served
            within max_distance_miles
        max_distance_miles: Service distance limit
        required_facilities: Minimum number of open facilities
        max_facilities: Maximum number of open facilities
        max_capacity_per_facility: Capacity used for facilities without an
            explicit capacity
        mandatory_facilities: Facilities that must be open
        weights: Objective weights
    """
    fixed_cost_per_facility: float = Field(100000, ge=0)
    cost_per_mile: float = Field(2.5, gt=0)
    service_level_requirement: float = Field(DEFAULT_SERVICE_LEVEL, ge=0, le=1)
    max_distance_miles: float = Field(1000, gt=0)
    required_facilities: int = Field(1, ge=0)
    max_facilities: int = Field(10, ge=0)
    max_capacity_per_facility: Optional[float] = Field(None, gt=0)
    mandatory_facilities: List[str] = Field(default_factory=list)
    weights: TransportWeights = Field(default_factory=TransportWeights)

    @model_validator(mode='after')
    def facility_bounds_ordered(self) -> 'TransportParams':
        if self.required_facilities > self.max_facilities:
            raise ValueError(
                f"required_facilities ({self.required_facilities}) exceeds "
                f"max_facilities ({self.max_facilities})"
            )
        return self


class CostMatrix(BaseModel):
    """
    Dense facility × destination unit-cost matrix.

    ``cost[i][j]`` is dollars per unit from ``facilities[i]`` to
    ``destinations[j]``.  ``distance`` optionally carries miles for the same
    cells.
    """
    facilities: List[str] = Field(..., description="Candidate facility names (row order)")
    destinations: List[str] = Field(..., description="Destination names (column order)")
    cost: List[List[float]] = Field(..., description="Unit cost per row/column")
    distance: Optional[List[List[float]]] = Field(None, description="Miles per row/column")

    @model_validator(mode='after')
    def dimensions_match(self) -> 'CostMatrix':
        n_cols = len(self.destinations)
        grids = {'cost': self.cost}
        if self.distance is not None:
            grids['distance'] = self.distance
        for name, grid in grids.items():
            if len(grid) != len(self.facilities):
                raise ValueError(
                    f"{name} has {len(grid)} rows but there are {len(self.facilities)} facilities"
                )
            for i, row in enumerate(grid):
                if len(row) != n_cols:
                    raise ValueError(
                        f"{name} row {i} has {len(row)} values but there are {n_cols} destinations"
                    )
        if len(set(self.facilities)) != len(self.facilities):
            raise ValueError("facility names must be unique")
        if len(set(self.destinations)) != len(self.destinations):
            raise ValueError("destination names must be unique")
        return self

    @classmethod
    def from_rows(
        cls,
        facilities: List[str],
        destinations: List[str],
        cost: List[List[float]],
        distance: Optional[List[List[float]]] = None,
    ) -> 'CostMatrix':
        """Build a matrix, padding short cost rows with SENTINEL_COST.

        Distance rows are padded with the fallback distance.
        """
        n_cols = len(destinations)
        padded_cost = [list(row) + [SENTINEL_COST] * (n_cols - len(row)) for row in cost]
        padded_distance = None
        if distance is not None:
            padded_distance = [
                list(row) + [FALLBACK_DISTANCE_MILES] * (n_cols - len(row)) for row in distance
            ]
        return cls(
            facilities=list(facilities),
            destinations=list(destinations),
            cost=padded_cost,
            distance=padded_distance,
        )

    def unit_cost(self, facility: str, destination: str) -> float:
        return self.cost[self.facilities.index(facility)][self.destinations.index(destination)]

    def to_dataframe(self) -> pd.DataFrame:
        """Cost grid as a DataFrame indexed by facility with destination columns."""
        return pd.DataFrame(self.cost, index=self.facilities, columns=self.destinations)


#: Destination -> units
DemandMap = Dict[str, float]

#: Facility -> unit capacity
CapacityMap = Dict[str, float]
