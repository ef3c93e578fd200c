"""
Pytest configuration and fixtures for SolarScope tests.

Provides reusable test fixtures for:
- Coordinates and roof polygons around a São Paulo test site
- Footprint and irradiation resolver outcomes
- Provider payloads (Google Solar, NASA POWER, Overpass)
- Analysis services wired to fake resolvers
"""

import json
from unittest.mock import MagicMock, Mock

import pytest

from solarscope.analysis.fusion import FusionEngine
from solarscope.analysis.service import AnalysisService
from solarscope.core.errors import describe, ErrorCode
from solarscope.core.models import (
    IRRADIATION_API_A,
    IRRADIATION_API_B,
    Confidence,
    Coordinate,
    FootprintResult,
    ImageryQuality,
    IrradiationResult,
    Polygon,
    PolygonSource,
)
from solarscope.db.repository import InMemoryAnalysisStore
from solarscope.geo.footprint_resolver import FootprintResolver

SITE_LAT = -23.5613
SITE_LNG = -46.6565
# ~11 m in latitude
DELTA = 0.0001


def square_ring_lnglat(lat=SITE_LAT, lng=SITE_LNG, delta=DELTA):
    """Open lng-first square centered on (lat, lng)."""
    return [
        [lng - delta, lat - delta],
        [lng + delta, lat - delta],
        [lng + delta, lat + delta],
        [lng - delta, lat + delta],
    ]


def square_ring_latlng(lat=SITE_LAT, lng=SITE_LNG, delta=DELTA):
    """Open lat-first square, as drawn on the dashboard."""
    return [[p[1], p[0]] for p in square_ring_lnglat(lat, lng, delta)]


def http_response(payload, status_code=200):
    """Stand-in for a requests.Response carrying a JSON body."""
    response = Mock()
    response.status_code = status_code
    response.text = payload if isinstance(payload, str) else json.dumps(payload)
    return response


# =============================================================================
# GEOMETRY FIXTURES
# =============================================================================

@pytest.fixture
def site() -> Coordinate:
    """Test site on Av. Paulista."""
    return Coordinate(SITE_LAT, SITE_LNG)


@pytest.fixture
def roof_polygon() -> Polygon:
    return Polygon(ring=tuple(map(tuple, square_ring_lnglat())), source=PolygonSource.BUILDING_FOOTPRINT_DB)


@pytest.fixture
def drawn_polygon() -> Polygon:
    return Polygon.from_latlng(square_ring_latlng(delta=0.00005), PolygonSource.USER_DRAWN)


# =============================================================================
# RESOLVER OUTCOME FIXTURES
# =============================================================================

@pytest.fixture
def footprint_found(roof_polygon) -> FootprintResult:
    """40 m² north-facing footprint from the footprint database."""
    return FootprintResult(
        polygon=roof_polygon,
        area_m2=40.0,
        confidence=Confidence.HIGH,
        source="OpenStreetMap",
        azimuth_deg=10.0,
        tilt_deg=20.0,
        neighbor_count=3,
        cache_id="fp-cache",
    )


@pytest.fixture
def footprint_not_found() -> FootprintResult:
    return FootprintResult(
        polygon=None,
        confidence=Confidence.LOW,
        source="none",
        neighbor_count=0,
        advisory=describe(ErrorCode.FOOTPRINT_NOT_FOUND),
    )


@pytest.fixture
def irradiation_measured() -> IrradiationResult:
    """1900 kWh/m²/yr with flux shading 0.05 from high-quality imagery."""
    return IrradiationResult(
        annual_irradiation=1900.0,
        source=IRRADIATION_API_A,
        imagery_quality=ImageryQuality.HIGH,
        shading_index=0.05,
        cache_ids={IRRADIATION_API_A: "solar-cache", IRRADIATION_API_B: None},
        coverage={IRRADIATION_API_A: True, IRRADIATION_API_B: False},
    )


# =============================================================================
# PROVIDER PAYLOADS
# =============================================================================

@pytest.fixture
def data_layers_payload():
    return {
        "imageryDate": {"year": 2023, "month": 4, "day": 12},
        "imageryQuality": "HIGH",
        "dsmUrl": "https://solar.example/dsm.tif",
        "rgbUrl": "https://solar.example/rgb.tif",
        "maskUrl": "https://solar.example/mask.tif",
        "annualFluxUrl": "https://solar.example/annual.tif",
        "monthlyFluxUrl": "https://solar.example/monthly.tif",
        "hourlyShadeUrls": [f"https://solar.example/shade_{i}.tif" for i in range(3)],
    }


@pytest.fixture
def building_insights_payload():
    return {
        "imageryDate": {"year": 2023, "month": 4, "day": 12},
        "imageryQuality": "HIGH",
        "solarPotential": {
            "maxArrayAreaMeters2": 95.0,
            "maxSunshineHoursPerYear": 1800.0,
            "panelCapacityWatts": 400,
            "wholeRoofStats": {
                "areaMeters2": 120.0,
                "sunshineQuantiles": [900, 1200, 1500, 1800],
            },
            "roofSegmentStats": [
                {"pitchDegrees": 18.0, "azimuthDegrees": 350.0, "stats": {"areaMeters2": 70.0}},
                {"pitchDegrees": 18.0, "azimuthDegrees": 170.0, "stats": {"areaMeters2": 50.0}},
            ],
            "solarPanelConfigs": [
                {"panelsCount": 20, "yearlyEnergyDcKwh": 9000.0},
                {"panelsCount": 4, "yearlyEnergyDcKwh": 2000.0},
                {"panelsCount": 10, "yearlyEnergyDcKwh": 5000.0},
            ],
        },
    }


@pytest.fixture
def power_payload():
    """NASA POWER climatology with 5 kWh/m²/day."""
    return {"properties": {"parameter": {"ALLSKY_SFC_SW_DWN": {"JAN": 5.8, "ANN": 5.0}}}}


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def footprint_provider():
    """Radius-query provider that finds no building by default."""
    provider = Mock()
    provider.name = "osm"
    provider.radius_query = True
    provider.lookup.return_value = []
    return provider


@pytest.fixture
def irradiation_resolver(irradiation_measured):
    resolver = MagicMock()
    resolver.resolve.return_value = irradiation_measured
    return resolver


@pytest.fixture
def store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore()


@pytest.fixture
def service(footprint_provider, irradiation_resolver, store) -> AnalysisService:
    """Analysis service with a real footprint resolver over a fake provider."""
    return AnalysisService(
        footprint_resolver=FootprintResolver(providers=[footprint_provider]),
        irradiation_resolver=irradiation_resolver,
        engine=FusionEngine(),
        store=store,
        geocoder=Mock(),
        footprint_timeout_s=5,
        irradiation_timeout_s=5,
    )
