"""
City name resolution for the distribution network.
"""

from .city_lookup import CityLookup, StaticCityLookup, normalize_city_key

__all__ = [
    'CityLookup',
    'StaticCityLookup',
    'normalize_city_key',
]
