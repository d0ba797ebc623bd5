"""City coordinate lookup.

The geo-cost module resolves facility and destination names to coordinates
through the ``CityLookup`` protocol.  ``StaticCityLookup`` is an in-memory
implementation backed by a dict or a CSV file.
"""

from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Tuple, Union
import logging
import re

import pandas as pd

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]


def normalize_city_key(raw: str) -> str:
    """
    Normalize a city name for lookup.

    Lowercases, removes periods, collapses whitespace and normalizes the
    comma separator, so ``"St. Louis ,MO"`` becomes ``"st louis, mo"``.
    """
    if not raw:
        return ""
    key = str(raw).lower().replace(".", "")
    key = re.sub(r"\s+", " ", key)
    key = re.sub(r"\s*,\s*", ", ", key)
    return key.strip()


class CityLookup(Protocol):
    """Resolves a city name to (latitude, longitude)."""

    def lookup(self, name: str) -> Optional[Coordinates]:
        ...


class StaticCityLookup:
    """
    Dict-backed city lookup.

    Names are resolved in order: exact key, normalized key, city part before
    the first comma, normalized city part.

    Example:
        lookup = StaticCityLookup({"Chicago, IL": (41.8781, -87.6298)})
        lookup.lookup("chicago ,il")  # (41.8781, -87.6298)
    """

    def __init__(self, coordinates: Optional[Dict[str, Coordinates]] = None):
        self._coordinates: Dict[str, Coordinates] = {}
        for name, coords in (coordinates or {}).items():
            self.add(name, coords[0], coords[1])

    def __len__(self) -> int:
        return len(self._coordinates)

    def add(self, name: str, latitude: float, longitude: float) -> None:
        """Register a city under its raw name, normalized name and city-only variants."""
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValueError(f"Invalid coordinates for '{name}': ({latitude}, {longitude})")

        coords = (float(latitude), float(longitude))
        raw = str(name).strip()
        self._coordinates[raw] = coords
        self._coordinates[normalize_city_key(raw)] = coords

        city = raw.split(",")[0].strip()
        # City-only keys never overwrite a more specific registration
        self._coordinates.setdefault(city, coords)
        self._coordinates.setdefault(normalize_city_key(city), coords)

    def lookup(self, name: str) -> Optional[Coordinates]:
        if not name:
            return None
        key = str(name).strip()
        city = key.split(",")[0].strip()
        for candidate in (key, normalize_city_key(key), city, normalize_city_key(city)):
            coords = self._coordinates.get(candidate)
            if coords is not None:
                return coords
        return None

    @classmethod
    def from_records(cls, records: Iterable[Tuple[str, float, float]]) -> 'StaticCityLookup':
        lookup = cls()
        for name, lat, lon in records:
            lookup.add(name, lat, lon)
        return lookup

    @classmethod
    def from_csv(
        cls,
        path: Union[str, Path],
        name_column: str = "city",
        lat_column: str = "lat",
        lon_column: str = "lon",
        state_column: Optional[str] = "state",
    ) -> 'StaticCityLookup':
        """
        Load coordinates from a CSV file.

        When ``state_column`` exists in the file, cities are registered as
        ``"City, ST"``.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If required columns are missing
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"City coordinate file not found: {path}")

        df = pd.read_csv(path)
        missing = {name_column, lat_column, lon_column} - set(df.columns)
        if missing:
            raise ValueError(f"City coordinate file {path.name} is missing columns: {sorted(missing)}")

        df = df.dropna(subset=[name_column, lat_column, lon_column])
        use_state = state_column is not None and state_column in df.columns

        lookup = cls()
        for _, row in df.iterrows():
            name = str(row[name_column]).strip()
            if use_state and pd.notna(row[state_column]):
                name = f"{name}, {str(row[state_column]).strip()}"
            lookup.add(name, float(row[lat_column]), float(row[lon_column]))

        logger.info(f"Loaded {len(df)} cities from {path.name}")
        return lookup
