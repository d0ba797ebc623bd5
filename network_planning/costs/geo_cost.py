"""Distance-based transport cost estimation.

Unit cost for a facility → destination lane is the great-circle distance
priced at a base rate per mile, scaled by a distance-zone multiplier, plus a
per-mile fuel surcharge:

    cost = distance × base_rate × zone_multiplier(distance) + distance × fuel_surcharge

Costs are rounded to cents.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging
import math

from ..models.transport import CostMatrix
from ..network.city_lookup import CityLookup
from ..optimization.constants import (
    BASE_COST_PER_MILE,
    EARTH_RADIUS_MILES,
    FALLBACK_DISTANCE_MILES,
    FUEL_SURCHARGE_PER_MILE,
    LONG_HAUL_MULTIPLIER,
    SENTINEL_COST,
    ZONE_BANDS,
)

logger = logging.getLogger(__name__)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles between two (lat, lon) points in degrees."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def zone_multiplier(distance: float) -> float:
    """Zone pricing multiplier: ≤150 mi 0.85, ≤300 mi 0.95, ≤600 mi 1.10, beyond 1.25."""
    for upper, multiplier in ZONE_BANDS:
        if distance <= upper:
            return multiplier
    return LONG_HAUL_MULTIPLIER


def unit_cost(
    distance: float,
    base_rate: float = BASE_COST_PER_MILE,
    fuel_surcharge: float = FUEL_SURCHARGE_PER_MILE,
) -> float:
    """Unit cost in dollars for a lane of the given distance, rounded to cents."""
    cost = distance * base_rate * zone_multiplier(distance) + distance * fuel_surcharge
    return round(cost, 2)


@dataclass
class CostModelConfig:
    """Rates used when pricing lanes.

    Attributes:
        base_rate_per_mile: Base rate in dollars per mile
        fuel_surcharge_per_mile: Fuel surcharge in dollars per mile
        fallback_distance_miles: Distance assumed for unresolved destinations
        sentinel_cost: Cost written into cells without a computed value
    """
    base_rate_per_mile: float = BASE_COST_PER_MILE
    fuel_surcharge_per_mile: float = FUEL_SURCHARGE_PER_MILE
    fallback_distance_miles: float = FALLBACK_DISTANCE_MILES
    sentinel_cost: float = SENTINEL_COST

    def __post_init__(self):
        """Validate configuration."""
        if self.base_rate_per_mile < 0 or self.fuel_surcharge_per_mile < 0:
            raise ValueError("Rates must be non-negative")
        if self.fallback_distance_miles < 0:
            raise ValueError(
                f"fallback_distance_miles must be non-negative, got {self.fallback_distance_miles}"
            )


class CostMatrixGenerator:
    """
    Builds a facility × destination ``CostMatrix`` from city names.

    Facilities that cannot be located are dropped from the matrix.
    Destinations that cannot be located are priced at the fallback distance.
    Each unresolved name is logged once.

    Example:
        generator = CostMatrixGenerator(StaticCityLookup.from_csv("cities.csv"))
        matrix = generator.generate(["Chicago, IL"], ["Dallas, TX", "Boston, MA"])
    """

    def __init__(self, city_lookup: CityLookup, config: Optional[CostModelConfig] = None):
        self.city_lookup = city_lookup
        self.config = config or CostModelConfig()

    def lane_cost(self, distance: float) -> float:
        return unit_cost(distance, self.config.base_rate_per_mile, self.config.fuel_surcharge_per_mile)

    def generate(self, facilities: Sequence[str], destinations: Sequence[str]) -> CostMatrix:
        """
        Price every facility → destination lane.

        Args:
            facilities: Candidate facility names
            destinations: Destination names

        Returns:
            CostMatrix with costs and distances; rows only for located facilities
        """
        destinations = list(destinations)
        dest_coords = []
        for dest in destinations:
            coords = self.city_lookup.lookup(dest)
            if coords is None:
                logger.warning(
                    f"No coordinates found for destination: {dest}, using fallback "
                    f"distance estimate ({self.config.fallback_distance_miles:g} miles)"
                )
            dest_coords.append(coords)

        rows: List[str] = []
        cost: List[List[float]] = []
        distance: List[List[float]] = []
        skipped = set()

        for facility in facilities:
            facility_coords = self.city_lookup.lookup(facility)
            if facility_coords is None:
                if facility not in skipped:
                    logger.warning(f"No coordinates found for facility: {facility}, skipping")
                    skipped.add(facility)
                continue
            if facility in rows:
                continue

            row_cost: List[float] = []
            row_distance: List[float] = []
            for coords in dest_coords:
                if coords is None:
                    miles = self.config.fallback_distance_miles
                else:
                    miles = haversine_miles(facility_coords[0], facility_coords[1], coords[0], coords[1])
                if not math.isfinite(miles):
                    # Unpriceable lane gets the sentinel cost
                    row_cost.append(self.config.sentinel_cost)
                    row_distance.append(self.config.fallback_distance_miles)
                    continue
                row_cost.append(self.lane_cost(miles))
                row_distance.append(round(miles, 2))

            rows.append(facility)
            cost.append(row_cost)
            distance.append(row_distance)

        logger.info(f"Generated cost matrix: {len(rows)} facilities × {len(destinations)} destinations")

        return CostMatrix(facilities=rows, destinations=destinations, cost=cost, distance=distance)
