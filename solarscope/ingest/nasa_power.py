"""
NASA POWER climatology client.

Long-term monthly/annual averages of all-sky surface shortwave downward
irradiance (ALLSKY_SFC_SW_DWN, kWh/m²/day) for any coordinate. Global
coverage, no imagery. Used as the second irradiation source when Google
Solar has no data for a location.

Docs: https://power.larc.nasa.gov/docs/services/api/temporal/climatology/
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..core.config import settings
from ..core.models import Coordinate
from .http_client import create_session, request_json

logger = logging.getLogger(__name__)

PROVIDER_NAME = "nasa_power"
PARAMETER = "ALLSKY_SFC_SW_DWN"
FILL_VALUE = -999.0


class NasaPowerClient:
    """Annual irradiation from the NASA POWER climatology endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
    ):
        self.base_url = base_url or settings.nasa_power_url
        self.timeout_s = timeout_s or settings.http_timeout_s
        self._session = session or create_session()

    def get_climatology(self, coordinate: Coordinate) -> Optional[Dict[str, Any]]:
        """Raw climatology payload for a point."""
        return request_json(
            self._session,
            "GET",
            self.base_url,
            provider=PROVIDER_NAME,
            timeout=self.timeout_s,
            not_found_ok=True,
            params={
                "parameters": PARAMETER,
                "community": "RE",
                "latitude": coordinate.lat,
                "longitude": coordinate.lng,
                "format": "JSON",
            },
        )


def annual_irradiation_kwh_m2(data: Dict[str, Any]) -> Optional[float]:
    """
    Annual irradiation (kWh/m²/year) from a climatology payload.

    Returns None when the point has no valid annual value.
    """
    values = (((data.get("properties") or {}).get("parameter") or {}).get(PARAMETER)) or {}
    daily = values.get("ANN")
    if daily is None:
        return None
    daily = float(daily)
    if daily <= 0 or daily == FILL_VALUE:
        return None
    return round(daily * 365, 1)
