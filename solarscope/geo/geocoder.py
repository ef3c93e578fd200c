"""
Address geocoding via OSM Nominatim.

Turns a free-text address into a Coordinate before analysis. Failures
leave as UpstreamError with INVALID_ADDRESS (unusable input) or
GEOCODING_FAILED (no match / provider down).
"""

import logging
from typing import Optional

import requests

from ..core.config import settings
from ..core.errors import ErrorCode, UpstreamError
from ..core.models import Coordinate
from ..ingest.http_client import create_session

logger = logging.getLogger(__name__)

MIN_ADDRESS_LENGTH = 5


class NominatimGeocoder:
    """Geocode addresses with the Nominatim search endpoint."""

    name = "nominatim"

    def __init__(
        self,
        url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
        country_codes: Optional[str] = None,
    ):
        self.url = url or settings.nominatim_url
        self.timeout_s = timeout_s or settings.http_timeout_s
        self.country_codes = country_codes
        self._session = session or create_session()

    def geocode(self, address: str) -> Coordinate:
        """
        Geocode an address.

        Raises:
            UpstreamError: INVALID_ADDRESS for blank or too-short input,
                GEOCODING_FAILED when nothing matches or the call fails.
        """
        address = (address or "").strip()
        if len(address) < MIN_ADDRESS_LENGTH:
            raise UpstreamError(ErrorCode.INVALID_ADDRESS, f"Address too short: {address!r}", self.name)

        params = {"q": address, "format": "json", "limit": 1}
        if self.country_codes:
            params["countrycodes"] = self.country_codes

        try:
            resp = self._session.get(self.url, params=params, timeout=self.timeout_s)
            resp.raise_for_status()
            results = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Geocoding failed for %r: %s", address, e, extra={"provider": self.name})
            raise UpstreamError(ErrorCode.GEOCODING_FAILED, f"Geocoding failed: {e}", self.name) from e

        if not results:
            raise UpstreamError(ErrorCode.GEOCODING_FAILED, f"Could not geocode address: {address}", self.name)

        try:
            return Coordinate(float(results[0]["lat"]), float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(ErrorCode.GEOCODING_FAILED, f"Bad geocoder result: {e}", self.name) from e
