"""
SolarScope Geo Module

Roof footprint resolution and address geocoding.
"""

from .footprint_resolver import (
    FootprintResolver,
    OverpassFootprintProvider,
    EdgeFunctionFootprintProvider,
    footprint_to_dict,
)
from .geocoder import NominatimGeocoder

__all__ = [
    "FootprintResolver",
    "OverpassFootprintProvider",
    "EdgeFunctionFootprintProvider",
    "footprint_to_dict",
    "NominatimGeocoder",
]
