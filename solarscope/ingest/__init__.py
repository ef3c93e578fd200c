"""
SolarScope Ingest Module

Upstream provider clients and the on-disk response cache.
"""

from .edge_functions import EdgeFunctionClient
from .nasa_power import NasaPowerClient
from .response_cache import ResponseCache
from .solar_api import GoogleSolarClient

__all__ = [
    "EdgeFunctionClient",
    "NasaPowerClient",
    "ResponseCache",
    "GoogleSolarClient",
]
