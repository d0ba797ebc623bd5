"""Centralized constants for network planning models.

This module contains the hardcoded constants used across the constraint model
builder, the solver adapter, the geo-cost module and the two MIP formulations.
Centralizing these values ensures consistency and makes them easy to update.
"""

# ============================================================================
# MODEL BUILDER CONSTANTS
# ============================================================================

#: Default objective key used in variable coefficient maps
DEFAULT_OBJECTIVE_KEY = "OBJ"

#: Constraint coefficient updates smaller than this are dropped
COEFFICIENT_EPSILON = 1e-12


# ============================================================================
# FALLBACK SEARCH CONSTANTS
# ============================================================================

#: Number of random trials in the multi-start fallback search
FALLBACK_TRIALS = 100

#: Integer variables are sampled uniformly from [0, FALLBACK_INTEGER_MAX]
FALLBACK_INTEGER_MAX = 10

#: Continuous variables are sampled uniformly from [0, FALLBACK_CONTINUOUS_MAX)
FALLBACK_CONTINUOUS_MAX = 100.0

#: Constraint violation tolerance when checking sampled points
FEASIBILITY_TOLERANCE = 1e-6


# ============================================================================
# GEO-COST CONSTANTS
# ============================================================================

#: Mean Earth radius in statute miles
EARTH_RADIUS_MILES = 3959.0

#: Base transport rate in dollars per mile
BASE_COST_PER_MILE = 2.85

#: Fuel surcharge in dollars per mile (added after the zone multiplier)
FUEL_SURCHARGE_PER_MILE = 0.35

#: Distance used when a destination cannot be geolocated (miles)
FALLBACK_DISTANCE_MILES = 800.0

#: Cost written into matrix cells that have no computed value
SENTINEL_COST = 99999.0

#: Zone pricing bands as (upper distance bound in miles, multiplier)
#: Distances beyond the last band use LONG_HAUL_MULTIPLIER
ZONE_BANDS = (
    (150.0, 0.85),
    (300.0, 0.95),
    (600.0, 1.10),
)

#: Multiplier for distances beyond the last zone band
LONG_HAUL_MULTIPLIER = 1.25


# ============================================================================
# WAREHOUSE FORMULATION CONSTANTS
# ============================================================================

#: Default fixed cost of opening an additional facility (dollars)
WAREHOUSE_FACILITY_FIXED_COST = 1_000_000.0

#: Objective scale applied to facility size added (per sq ft)
WAREHOUSE_SIZE_OBJECTIVE_SCALE = 100.0

#: Objective scale applied to third-party space (per sq ft)
WAREHOUSE_THIRDPARTY_OBJECTIVE_SCALE = 0.01

#: Square inches per square foot
SQ_INCHES_PER_SQ_FOOT = 144.0


# ============================================================================
# TRANSPORT FORMULATION CONSTANTS
# ============================================================================

#: Demand assigned to destinations without an explicit value
DEFAULT_DESTINATION_DEMAND = 1000.0

#: Capacity assumed for facilities when none is configured
DEFAULT_FACILITY_CAPACITY = 1_000_000.0

#: Objective scale for demand served beyond the service distance
DISTANCE_PENALTY_SCALE = 10.0


# ============================================================================
# OBJECTIVE WEIGHT DEFAULTS
# ============================================================================

#: Default weight on cost terms
DEFAULT_COST_WEIGHT = 0.6

#: Default weight on utilization terms
DEFAULT_UTILIZATION_WEIGHT = 0.1

#: Default weight on service-level terms
DEFAULT_SERVICE_WEIGHT = 0.3

#: Default service-level requirement (fraction of demand)
DEFAULT_SERVICE_LEVEL = 0.95
