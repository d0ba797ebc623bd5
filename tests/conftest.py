"""Pytest configuration and shared fixtures."""

import pytest

from network_planning.models import (
    CostMatrix,
    ForecastRow,
    SKU,
    TransportParams,
)
from network_planning.network.city_lookup import StaticCityLookup
from network_planning.optimization.solver import SolverAdapter
from network_planning.optimization.solver_config import SolverConfig, SolverType, _appsi_highs_available
from tests.fixtures.solver_mocks import create_unavailable_solver_config


CITY_COORDINATES = {
    "Chicago, IL": (41.8781, -87.6298),
    "New York, NY": (40.7128, -74.0060),
    "Dallas, TX": (32.7767, -96.7970),
    "Atlanta, GA": (33.7490, -84.3880),
    "Indianapolis, IN": (39.7684, -86.1581),
    "Houston, TX": (29.7604, -95.3698),
    "Miami, FL": (25.7617, -80.1918),
    "St. Louis, MO": (38.6270, -90.1994),
    "Nashville, TN": (36.1627, -86.7816),
    "Denver, CO": (39.7392, -104.9903),
}


@pytest.fixture
def city_lookup():
    """Fixture for a lookup covering the test network's cities."""
    return StaticCityLookup(CITY_COORDINATES)


@pytest.fixture
def small_forecast():
    """Fixture for a three-year forecast that fits in the existing facility."""
    return [
        ForecastRow(year=2025, annual_units=1_000_000),
        ForecastRow(year=2026, annual_units=1_100_000),
        ForecastRow(year=2027, annual_units=1_210_000),
    ]


@pytest.fixture
def growth_forecast():
    """Fixture for a forecast that outgrows the existing facility."""
    return [
        ForecastRow(year=2025, annual_units=50_000_000),
        ForecastRow(year=2026, annual_units=80_000_000),
        ForecastRow(year=2027, annual_units=110_000_000),
    ]


@pytest.fixture
def small_skus():
    """Fixture for a two-SKU assortment (500 units per pallet)."""
    return [
        SKU(sku="SKU-001", annual_volume=600_000, units_per_case=10, cases_per_pallet=50),
        SKU(sku="SKU-002", annual_volume=400_000, units_per_case=10, cases_per_pallet=50),
    ]


@pytest.fixture
def bulky_skus():
    """Fixture for an assortment with small pallets (50 units per pallet)."""
    return [
        SKU(sku="BULK-001", annual_volume=60_000_000, units_per_case=5, cases_per_pallet=10),
        SKU(sku="BULK-002", annual_volume=40_000_000, units_per_case=5, cases_per_pallet=10),
    ]


@pytest.fixture
def three_by_five_matrix():
    """Fixture for a 3 facility × 5 destination matrix with explicit distances.

    Facility A is cheapest for D1-D2, B for D3-D4, C for D5.  B-D5 is beyond
    the 1000 mile service distance.
    """
    return CostMatrix(
        facilities=["Facility A", "Facility B", "Facility C"],
        destinations=["D1", "D2", "D3", "D4", "D5"],
        cost=[
            [2.0, 3.0, 9.0, 9.5, 8.0],
            [8.5, 9.0, 2.5, 3.0, 12.0],
            [7.0, 8.0, 7.5, 8.0, 1.5],
        ],
        distance=[
            [100.0, 150.0, 700.0, 750.0, 600.0],
            [650.0, 700.0, 120.0, 180.0, 1200.0],
            [500.0, 550.0, 520.0, 580.0, 90.0],
        ],
    )


@pytest.fixture
def transport_params():
    """Fixture for transport parameters with a low fixed cost."""
    return TransportParams(fixed_cost_per_facility=1000, required_facilities=1, max_facilities=3)


@pytest.fixture
def unavailable_solver_config():
    """
    Fixture for a solver configuration without any usable solver.

    Returns:
        Mock SolverConfig whose solver detection raises RuntimeError
    """
    return create_unavailable_solver_config()


@pytest.fixture
def fallback_solver(unavailable_solver_config):
    """Fixture for a seeded adapter that always uses the random-search fallback."""
    return SolverAdapter(solver_config=unavailable_solver_config, seed=42, fallback_trials=500)


@pytest.fixture
def highs_solver():
    """
    Fixture for an adapter solving with APPSI HiGHS.

    Skips the test when highspy is not installed.
    """
    if not _appsi_highs_available():
        pytest.skip("APPSI HiGHS solver not available (install: pip install highspy)")
    return SolverAdapter(
        solver_config=SolverConfig(solver_name=SolverType.APPSI_HIGHS.value),
        allow_fallback=False,
    )
