"""Tests for distance-based transport cost estimation."""

import pytest
from pydantic import ValidationError

from network_planning.costs.geo_cost import (
    CostMatrixGenerator,
    CostModelConfig,
    haversine_miles,
    unit_cost,
    zone_multiplier,
)
from network_planning.models.transport import CostMatrix
from network_planning.optimization.constants import FALLBACK_DISTANCE_MILES, SENTINEL_COST


class TestHaversine:
    """Tests for great-circle distance."""

    def test_chicago_to_new_york(self):
        """Test a well-known distance (about 711 miles)."""
        miles = haversine_miles(41.8781, -87.6298, 40.7128, -74.0060)
        assert 700 < miles < 725

    def test_identity(self):
        """Test that a point is zero miles from itself."""
        assert haversine_miles(32.7767, -96.7970, 32.7767, -96.7970) == 0.0

    def test_symmetry(self):
        """Test that distance does not depend on direction."""
        there = haversine_miles(33.7490, -84.3880, 25.7617, -80.1918)
        back = haversine_miles(25.7617, -80.1918, 33.7490, -84.3880)
        assert there == pytest.approx(back)


class TestZonePricing:
    """Tests for zone multipliers and unit cost."""

    @pytest.mark.parametrize("distance,expected", [
        (0.0, 0.85),
        (150.0, 0.85),
        (150.01, 0.95),
        (300.0, 0.95),
        (450.0, 1.10),
        (600.0, 1.10),
        (600.5, 1.25),
        (2500.0, 1.25),
    ])
    def test_zone_boundaries(self, distance, expected):
        """Test that band upper bounds are inclusive."""
        assert zone_multiplier(distance) == expected

    def test_short_haul_cost(self):
        """Test 100 miles: 100 × 2.85 × 0.85 + 100 × 0.35."""
        assert unit_cost(100) == 277.25

    def test_long_haul_cost(self):
        """Test 1000 miles: 1000 × 2.85 × 1.25 + 1000 × 0.35."""
        assert unit_cost(1000) == 3912.5

    def test_fallback_distance_cost(self):
        """Test the cost assigned to unresolved destinations."""
        assert unit_cost(FALLBACK_DISTANCE_MILES) == 3130.0

    def test_custom_rates(self):
        """Test that rates can be overridden."""
        assert unit_cost(100, base_rate=1.0, fuel_surcharge=0.0) == 85.0

    def test_cost_is_rounded_to_cents(self):
        """Test rounding of unit costs."""
        cost = unit_cost(123.456)
        assert cost == round(cost, 2)


class TestCostModelConfig:
    """Tests for CostModelConfig validation."""

    def test_defaults(self):
        """Test default rates."""
        config = CostModelConfig()
        assert config.base_rate_per_mile == 2.85
        assert config.fuel_surcharge_per_mile == 0.35
        assert config.sentinel_cost == SENTINEL_COST

    def test_negative_rate_rejected(self):
        """Test that negative rates are rejected."""
        with pytest.raises(ValueError, match="non-negative"):
            CostModelConfig(base_rate_per_mile=-1.0)

    def test_negative_fallback_distance_rejected(self):
        """Test that a negative fallback distance is rejected."""
        with pytest.raises(ValueError, match="fallback_distance_miles"):
            CostModelConfig(fallback_distance_miles=-5)


class TestCostMatrixGenerator:
    """Tests for CostMatrixGenerator."""

    def test_full_matrix(self, city_lookup):
        """Test a matrix where every city resolves."""
        generator = CostMatrixGenerator(city_lookup)
        matrix = generator.generate(
            ["Chicago, IL", "Dallas, TX"],
            ["New York, NY", "Houston, TX", "Chicago, IL"],
        )

        assert matrix.facilities == ["Chicago, IL", "Dallas, TX"]
        assert matrix.destinations == ["New York, NY", "Houston, TX", "Chicago, IL"]
        assert matrix.distance[0][2] == 0.0
        assert matrix.cost[0][2] == 0.0
        assert 700 < matrix.distance[0][0] < 725
        assert matrix.cost[0][0] == unit_cost(haversine_miles(41.8781, -87.6298, 40.7128, -74.0060))

    def test_unresolved_destination_uses_fallback(self, city_lookup):
        """Test that unknown destinations are priced at the fallback distance."""
        matrix = CostMatrixGenerator(city_lookup).generate(["Chicago, IL"], ["Atlantis, XX"])

        assert matrix.distance == [[FALLBACK_DISTANCE_MILES]]
        assert matrix.cost == [[3130.0]]

    def test_unresolved_facility_dropped(self, city_lookup):
        """Test that facilities without coordinates get no row."""
        matrix = CostMatrixGenerator(city_lookup).generate(
            ["Gotham, NJ", "Dallas, TX"], ["Houston, TX"]
        )

        assert matrix.facilities == ["Dallas, TX"]
        assert len(matrix.cost) == 1

    def test_duplicate_facility_kept_once(self, city_lookup):
        """Test that repeated facility names produce one row."""
        matrix = CostMatrixGenerator(city_lookup).generate(
            ["Dallas, TX", "Dallas, TX"], ["Houston, TX"]
        )
        assert matrix.facilities == ["Dallas, TX"]

    def test_lookup_normalizes_names(self, city_lookup):
        """Test that loosely formatted names still resolve."""
        matrix = CostMatrixGenerator(city_lookup).generate(["st louis ,mo"], ["Nashville"])

        assert matrix.facilities == ["st louis ,mo"]
        assert matrix.distance[0][0] < FALLBACK_DISTANCE_MILES

    def test_custom_config(self, city_lookup):
        """Test that configured rates are used."""
        config = CostModelConfig(base_rate_per_mile=1.0, fuel_surcharge_per_mile=0.0)
        matrix = CostMatrixGenerator(city_lookup, config).generate(["Chicago, IL"], ["Atlantis"])

        assert matrix.cost == [[round(FALLBACK_DISTANCE_MILES * 1.25, 2)]]


class TestCostMatrix:
    """Tests for the CostMatrix model."""

    def test_dimension_mismatch_rejected(self):
        """Test that a cost row of the wrong width is rejected."""
        with pytest.raises(ValidationError, match="destinations"):
            CostMatrix(facilities=["A"], destinations=["D1", "D2"], cost=[[1.0]])

    def test_row_count_mismatch_rejected(self):
        """Test that the number of rows must match the facilities."""
        with pytest.raises(ValidationError, match="facilities"):
            CostMatrix(facilities=["A", "B"], destinations=["D1"], cost=[[1.0]])

    def test_duplicate_names_rejected(self):
        """Test that facility names must be unique."""
        with pytest.raises(ValidationError, match="unique"):
            CostMatrix(facilities=["A", "A"], destinations=["D1"], cost=[[1.0], [2.0]])

    def test_from_rows_pads_missing_cells(self):
        """Test that short rows are padded with sentinel cost and fallback distance."""
        matrix = CostMatrix.from_rows(
            ["A"], ["D1", "D2"], cost=[[1.0]], distance=[[10.0]]
        )

        assert matrix.cost == [[1.0, SENTINEL_COST]]
        assert matrix.distance == [[10.0, FALLBACK_DISTANCE_MILES]]

    def test_unit_cost_and_dataframe(self, three_by_five_matrix):
        """Test cell lookup by name and DataFrame export."""
        assert three_by_five_matrix.unit_cost("Facility B", "D3") == 2.5

        df = three_by_five_matrix.to_dataframe()
        assert list(df.index) == ["Facility A", "Facility B", "Facility C"]
        assert df.loc["Facility C", "D5"] == 1.5
