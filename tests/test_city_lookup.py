"""Tests for city coordinate lookup."""

import pytest

from network_planning.network.city_lookup import StaticCityLookup, normalize_city_key


class TestNormalizeCityKey:
    """Tests for normalize_city_key."""

    @pytest.mark.parametrize("raw,expected", [
        ("St. Louis ,MO", "st louis, mo"),
        ("  New   York,NY ", "new york, ny"),
        ("Chicago", "chicago"),
        ("", ""),
    ])
    def test_normalization(self, raw, expected):
        """Test case, period, whitespace and comma normalization."""
        assert normalize_city_key(raw) == expected


class TestStaticCityLookup:
    """Tests for StaticCityLookup."""

    def test_exact_and_normalized_match(self, city_lookup):
        """Test lookup by exact and loosely formatted names."""
        assert city_lookup.lookup("Chicago, IL") == (41.8781, -87.6298)
        assert city_lookup.lookup("CHICAGO ,il") == (41.8781, -87.6298)
        assert city_lookup.lookup("St Louis, MO") == (38.6270, -90.1994)

    def test_city_only_match(self, city_lookup):
        """Test that the city part alone resolves."""
        assert city_lookup.lookup("Denver") == (39.7392, -104.9903)
        assert city_lookup.lookup("Dallas, Texas") == (32.7767, -96.7970)

    def test_unknown_city(self, city_lookup):
        """Test that unknown or empty names return None."""
        assert city_lookup.lookup("Atlantis, XX") is None
        assert city_lookup.lookup("") is None

    def test_city_only_key_does_not_overwrite(self):
        """Test that a second state's city does not replace the first city-only key."""
        lookup = StaticCityLookup()
        lookup.add("Portland, OR", 45.5152, -122.6784)
        lookup.add("Portland, ME", 43.6591, -70.2568)

        assert lookup.lookup("Portland") == (45.5152, -122.6784)
        assert lookup.lookup("Portland, ME") == (43.6591, -70.2568)

    def test_invalid_coordinates_rejected(self):
        """Test that out-of-range coordinates raise."""
        lookup = StaticCityLookup()
        with pytest.raises(ValueError, match="Invalid coordinates"):
            lookup.add("Nowhere", 95.0, 0.0)
        with pytest.raises(ValueError, match="Invalid coordinates"):
            lookup.add("Nowhere", 0.0, -181.0)

    def test_from_records(self):
        """Test building a lookup from tuples."""
        lookup = StaticCityLookup.from_records([("Boston, MA", 42.3601, -71.0589)])
        assert lookup.lookup("boston") == (42.3601, -71.0589)


class TestFromCsv:
    """Tests for loading coordinates from CSV."""

    def test_load_with_state_column(self, tmp_path):
        """Test that city and state columns are combined."""
        path = tmp_path / "cities.csv"
        path.write_text(
            "city,state,lat,lon\n"
            "Chicago,IL,41.8781,-87.6298\n"
            "Dallas,TX,32.7767,-96.7970\n"
            "Broken,XX,,\n"
        )

        lookup = StaticCityLookup.from_csv(path)

        assert lookup.lookup("Chicago, IL") == (41.8781, -87.6298)
        assert lookup.lookup("dallas, tx") == (32.7767, -96.7970)
        assert lookup.lookup("Broken") is None

    def test_load_custom_columns(self, tmp_path):
        """Test custom column names without a state column."""
        path = tmp_path / "places.csv"
        path.write_text("name,latitude,longitude\nDenver,39.7392,-104.9903\n")

        lookup = StaticCityLookup.from_csv(
            path, name_column="name", lat_column="latitude", lon_column="longitude"
        )
        assert lookup.lookup("Denver") == (39.7392, -104.9903)

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            StaticCityLookup.from_csv(tmp_path / "missing.csv")

    def test_missing_columns(self, tmp_path):
        """Test that missing required columns raise ValueError."""
        path = tmp_path / "bad.csv"
        path.write_text("city,lat\nChicago,41.8\n")

        with pytest.raises(ValueError, match="missing columns"):
            StaticCityLookup.from_csv(path)
