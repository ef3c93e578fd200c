"""
Google Solar API client.

Two endpoints are used:
1. dataLayers:get - GeoTIFF layer URLs (DSM, RGB, mask, annual/monthly
   flux, hourly shade) for a radius around a coordinate.
2. buildingInsights:findClosest - per-building solar potential: annual
   sunshine, sunshine quantiles over the roof, roof area, and panel
   configurations with yearly energy.

Both answer 404 when there is no imagery at the requested quality; that is
reported as None (no coverage), not as an error.

Docs: https://developers.google.com/maps/documentation/solar
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..core.config import settings
from ..core.errors import ErrorCode, UpstreamError
from ..core.models import (
    Coordinate,
    ImageryQuality,
    LayerCatalog,
    LayerInfo,
    LayerView,
    parse_provider_date,
)
from .http_client import create_session, request_json

logger = logging.getLogger(__name__)

PROVIDER_NAME = "google_solar"

# dataLayers response field -> (catalog name, title, description)
LAYER_FIELDS = {
    "dsmUrl": ("dsm", "Digital Surface Model", "Elevation of surfaces, including buildings and vegetation"),
    "rgbUrl": ("rgb", "Aerial imagery", "True-color aerial image of the area"),
    "maskUrl": ("mask", "Building mask", "Roof pixels of the target building"),
    "annualFluxUrl": ("annualFlux", "Annual solar flux", "Annual irradiance per pixel (kWh/kW/year)"),
    "monthlyFluxUrl": ("monthlyFlux", "Monthly solar flux", "Irradiance per pixel for each month"),
}


@dataclass
class BuildingInsights:
    """The parts of buildingInsights the fusion engine consumes."""
    annual_sunshine_kwh_m2: Optional[float]
    sunshine_quantiles: List[float] = field(default_factory=list)
    roof_area_m2: Optional[float] = None
    panel_capacity_w: Optional[float] = None
    panel_configs: List[Tuple[int, float]] = field(default_factory=list)
    azimuth_deg: Optional[float] = None
    pitch_deg: Optional[float] = None
    imagery_quality: Optional[ImageryQuality] = None
    imagery_date: Optional[date] = None


@dataclass
class DataLayers:
    """Parsed dataLayers response."""
    layers: LayerCatalog
    imagery_quality: Optional[ImageryQuality]
    imagery_date: Optional[date]


class GoogleSolarClient:
    """Thin client over the Google Solar REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
    ):
        self.api_key = api_key or settings.google_api_key
        self.base_url = (base_url or settings.google_solar_url).rstrip("/")
        self.timeout_s = timeout_s or settings.http_timeout_s
        self._session = session or create_session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.configured:
            raise UpstreamError(ErrorCode.AUTH_REQUIRED, "Google Solar API key not configured", PROVIDER_NAME)
        return request_json(
            self._session,
            "GET",
            f"{self.base_url}/{endpoint}",
            provider=PROVIDER_NAME,
            timeout=self.timeout_s,
            not_found_ok=True,
            params={**params, "key": self.api_key},
        )

    def get_data_layers(
        self,
        coordinate: Coordinate,
        radius_m: float,
        view: LayerView,
        quality: ImageryQuality,
        pixel_size_m: float,
        exact_quality: bool,
    ) -> Optional[Dict[str, Any]]:
        """Raw dataLayers payload, or None when there is no coverage."""
        return self._get("dataLayers:get", {
            "location.latitude": coordinate.lat,
            "location.longitude": coordinate.lng,
            "radiusMeters": radius_m,
            "view": view.value,
            "requiredQuality": quality.value,
            "pixelSizeMeters": pixel_size_m,
            "exactQualityRequired": str(exact_quality).lower(),
        })

    def find_closest_building(
        self,
        coordinate: Coordinate,
        quality: ImageryQuality,
    ) -> Optional[Dict[str, Any]]:
        """Raw buildingInsights payload, or None when there is no coverage."""
        return self._get("buildingInsights:findClosest", {
            "location.latitude": coordinate.lat,
            "location.longitude": coordinate.lng,
            "requiredQuality": quality.value,
        })


# =============================================================================
# PARSING
# =============================================================================

def _quality(value: Any) -> Optional[ImageryQuality]:
    try:
        return ImageryQuality(str(value).upper())
    except ValueError:
        return None


def parse_data_layers(data: Dict[str, Any], pixel_size_m: Optional[float] = None) -> DataLayers:
    """Build the layer catalog from a dataLayers payload."""
    imagery_date = parse_provider_date(data.get("imageryDate"))
    layers: LayerCatalog = {}

    for field_name, (name, title, description) in LAYER_FIELDS.items():
        url = data.get(field_name)
        if url:
            layers[name] = LayerInfo(
                name=name,
                url=url,
                title=title,
                description=description,
                date=imagery_date,
                pixel_size_m=pixel_size_m,
            )

    hourly = data.get("hourlyShadeUrls") or []
    if hourly:
        layers["hourlyShade"] = [
            LayerInfo(
                name="hourlyShade",
                url=url,
                title=f"Hourly shade ({hour:02d})",
                description="Shade mask per hour of day",
                date=imagery_date,
                pixel_size_m=pixel_size_m,
                hour=hour,
            )
            for hour, url in enumerate(hourly)
        ]

    return DataLayers(
        layers=layers,
        imagery_quality=_quality(data.get("imageryQuality")),
        imagery_date=imagery_date,
    )


def parse_building_insights(data: Dict[str, Any]) -> BuildingInsights:
    """Extract the solar potential summary from a buildingInsights payload."""
    potential = data.get("solarPotential") or {}
    whole_roof = potential.get("wholeRoofStats") or {}

    configs = sorted(
        (int(c.get("panelsCount", 0)), float(c.get("yearlyEnergyDcKwh", 0)))
        for c in potential.get("solarPanelConfigs") or []
        if c.get("panelsCount")
    )

    # Orientation of the largest roof segment
    azimuth = pitch = None
    segments = potential.get("roofSegmentStats") or []
    if segments:
        largest = max(segments, key=lambda s: (s.get("stats") or {}).get("areaMeters2", 0))
        azimuth = largest.get("azimuthDegrees")
        pitch = largest.get("pitchDegrees")

    return BuildingInsights(
        annual_sunshine_kwh_m2=potential.get("maxSunshineHoursPerYear"),
        sunshine_quantiles=[float(q) for q in whole_roof.get("sunshineQuantiles") or []],
        roof_area_m2=whole_roof.get("areaMeters2"),
        panel_capacity_w=potential.get("panelCapacityWatts"),
        panel_configs=configs,
        azimuth_deg=azimuth,
        pitch_deg=pitch,
        imagery_quality=_quality(data.get("imageryQuality")),
        imagery_date=parse_provider_date(data.get("imageryDate")),
    )
