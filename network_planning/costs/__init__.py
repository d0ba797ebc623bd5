"""Lane cost calculation.

Key components:
- haversine_miles: Great-circle distance between two coordinates
- unit_cost: Zone-priced cost per unit for a lane distance
- CostMatrixGenerator: Facility x destination cost matrix from city names
"""

from .geo_cost import (
    CostMatrixGenerator,
    CostModelConfig,
    haversine_miles,
    unit_cost,
    zone_multiplier,
)

__all__ = [
    'CostMatrixGenerator',
    'CostModelConfig',
    'haversine_miles',
    'unit_cost',
    'zone_multiplier',
]
