"""
Data models for SolarScope.

Plain dataclasses and enums shared by the resolvers, the fusion engine and
the persistence layer. Records produced by the engine are frozen.

Wire values of the enums follow the dashboard's format (pt-BR labels for
confidence and verdict, GeoJSON lng-first rings).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .coordinates import close_ring, polygon_area_m2, swap_axes
from .errors import ApiErrorRecord


# =============================================================================
# ENUMS
# =============================================================================

class Confidence(str, Enum):
    """Qualitative trust in an analysis."""
    HIGH = "Alta"
    MEDIUM = "Média"
    LOW = "Baixa"


class Verdict(str, Enum):
    """Three-way viability classification."""
    APT = "Apto"
    PARTIAL = "Parcial"
    NOT_APT = "Não apto"


class AreaSource(str, Enum):
    FOOTPRINT = "footprint"
    GOOGLE_MEASURED = "google-measured"
    ESTIMATE = "estimate"
    MANUAL = "manual"


class ShadingSource(str, Enum):
    FLUX_ANALYSIS = "flux_analysis"
    HEURISTIC = "heuristic"
    DEFAULT = "default"


class PolygonSource(str, Enum):
    USER_DRAWN = "user-drawn"
    BUILDING_FOOTPRINT_DB = "building-footprint-db"
    IMAGERY_DERIVED = "imagery-derived"


class ImageryQuality(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return ("LOW", "MEDIUM", "HIGH").index(self.value)

    def lower(self) -> Optional["ImageryQuality"]:
        """Next quality level down, or None below LOW."""
        if self.rank == 0:
            return None
        return ImageryQuality(("LOW", "MEDIUM", "HIGH")[self.rank - 1])


class LayerView(str, Enum):
    """Raster layer bundles offered by the imagery provider."""
    FULL_LAYERS = "FULL_LAYERS"
    DSM_LAYER = "DSM_LAYER"
    IMAGERY_LAYERS = "IMAGERY_LAYERS"
    IMAGERY_AND_ANNUAL_FLUX_LAYERS = "IMAGERY_AND_ANNUAL_FLUX_LAYERS"
    IMAGERY_AND_ALL_FLUX_LAYERS = "IMAGERY_AND_ALL_FLUX_LAYERS"


# Provider names used for irradiation_source, coverage and cache_ids
GEOMETRY_DB = "geometry_db"
IRRADIATION_API_A = "irradiation_api_a"
IRRADIATION_API_B = "irradiation_api_b"
PROVIDERS = (GEOMETRY_DB, IRRADIATION_API_A, IRRADIATION_API_B)

ESTIMATE = "estimate"


# =============================================================================
# GEOMETRY
# =============================================================================

@dataclass(frozen=True)
class Coordinate:
    """A (latitude, longitude) pair in WGS84 degrees."""
    lat: float
    lng: float

    def __post_init__(self):
        if not (-90 <= self.lat <= 90) or not (-180 <= self.lng <= 180):
            raise ValueError(f"Coordinate out of range: lat={self.lat}, lng={self.lng}")

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Polygon:
    """
    Closed roof ring, stored longitude-first.

    The ring is closed on construction. Simplicity is not re-checked here,
    the geometry provider is trusted for that.
    """
    ring: Tuple[Tuple[float, float], ...]
    source: PolygonSource

    def __post_init__(self):
        ring = tuple(close_ring(self.ring))
        if len(ring) < 4 or len(set(ring[:-1])) < 3:
            raise ValueError("Polygon ring needs at least 3 distinct vertices")
        object.__setattr__(self, "ring", ring)
        object.__setattr__(self, "source", PolygonSource(self.source))

    @classmethod
    def from_latlng(cls, ring: List[List[float]], source: PolygonSource) -> "Polygon":
        """Build from a latitude-first ring (dashboard order)."""
        return cls(ring=tuple(swap_axes(ring)), source=source)

    @property
    def area_m2(self) -> float:
        return polygon_area_m2(self.ring)

    def to_latlng(self) -> List[List[float]]:
        """Latitude-first ring for presentation."""
        return [list(p) for p in swap_axes(self.ring)]

    def to_geojson(self) -> Dict[str, Any]:
        return {"type": "Polygon", "coordinates": [[list(p) for p in self.ring]]}


# =============================================================================
# RESOLVER RESULTS
# =============================================================================

@dataclass
class FootprintResult:
    """Roof geometry for a coordinate. polygon=None means 'draw it manually'."""
    polygon: Optional[Polygon]
    area_m2: float = 0.0
    confidence: Confidence = Confidence.LOW
    source: str = "unknown"
    azimuth_deg: Optional[float] = None
    tilt_deg: Optional[float] = None
    neighbor_count: Optional[int] = None   # Buildings inside the search radius
    advisory: Optional[ApiErrorRecord] = None
    cache_id: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.polygon is not None


@dataclass
class LayerInfo:
    """One raster layer returned by the imagery provider."""
    name: str
    url: str
    title: str
    description: str = ""
    date: Optional[date] = None
    pixel_size_m: Optional[float] = None
    hour: Optional[int] = None   # Time-of-day variant of flux/shade layers

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "metadata": {
                "date": _date_dict(self.date),
                "pixelSize": self.pixel_size_m,
            },
        }
        if self.hour is not None:
            data["hour"] = self.hour
        return data


LayerCatalog = Dict[str, Union[LayerInfo, List[LayerInfo]]]


def catalog_to_dict(layers: LayerCatalog) -> Dict[str, Any]:
    return {
        name: [layer.to_dict() for layer in entry] if isinstance(entry, list) else entry.to_dict()
        for name, entry in layers.items()
    }


def count_layers(layers: Dict[str, Any]) -> int:
    """Layers in a catalog, counting each time-of-day variant. Accepts the serialized form too."""
    return sum(len(entry) if isinstance(entry, list) else 1 for entry in layers.values())


@dataclass
class IrradiationResult:
    """Annual irradiation plus the imagery layer catalog for a coordinate."""
    annual_irradiation: float          # kWh/m²/year
    source: str                        # Provider name that measured it
    imagery_quality: Optional[ImageryQuality] = None
    imagery_date: Optional[date] = None
    layers: LayerCatalog = field(default_factory=dict)
    shading_index: Optional[float] = None   # From flux statistics, 0-1
    roof_area_m2: Optional[float] = None
    # Provider production estimates as (panels_count, yearly_kwh), ascending
    panel_configs: List[Tuple[int, float]] = field(default_factory=list)
    panel_capacity_w: Optional[float] = None   # Panel model behind panel_configs
    # Largest measured roof segment
    azimuth_deg: Optional[float] = None
    tilt_deg: Optional[float] = None
    cache_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    coverage: Dict[str, bool] = field(default_factory=dict)
    provider_errors: Dict[str, ApiErrorRecord] = field(default_factory=dict)

    def __post_init__(self):
        if not self.annual_irradiation or self.annual_irradiation <= 0:
            raise ValueError("annual_irradiation must be > 0")
        if self.shading_index is not None:
            self.shading_index = min(1.0, max(0.0, self.shading_index))

    @property
    def layer_count(self) -> int:
        return count_layers(self.layers)

    def catalog_dict(self) -> Dict[str, Any]:
        return catalog_to_dict(self.layers)


# =============================================================================
# FUSED RESULT
# =============================================================================

@dataclass(frozen=True)
class SystemConfig:
    """Suggested PV system sized to the usable roof area."""
    panel_count: int
    panel_power_w: float
    panel_area_m2: float
    module_efficiency_percent: float
    system_power_kwp: float
    occupied_area_m2: float
    power_density_w_m2: float
    area_utilization_percent: float

    @classmethod
    def size(
        cls,
        usable_area_m2: float,
        panel_power_w: float,
        panel_area_m2: float,
        usage_factor: float,
        module_efficiency: float,
        max_panels: Optional[int] = None,
    ) -> "SystemConfig":
        """
        Largest panel count whose footprint fits usable_area × usage_factor.

        max_panels caps the count (a technician-fixed installation); it never
        raises it above what fits.
        """
        budget = max(0.0, usable_area_m2) * usage_factor
        panel_count = int(math.floor(budget / panel_area_m2)) if panel_area_m2 > 0 else 0
        # floor() on floats can overshoot by one at exact multiples
        while panel_count > 0 and panel_count * panel_area_m2 > budget:
            panel_count -= 1
        if max_panels is not None:
            panel_count = min(panel_count, max(0, max_panels))

        system_power_kwp = panel_count * panel_power_w / 1000
        occupied = panel_count * panel_area_m2
        if usable_area_m2 > 0:
            density = system_power_kwp * 1000 / usable_area_m2
            utilization = occupied / usable_area_m2 * 100
        else:
            density = 0.0
            utilization = 0.0

        return cls(
            panel_count=panel_count,
            panel_power_w=panel_power_w,
            panel_area_m2=panel_area_m2,
            module_efficiency_percent=round(module_efficiency * 100, 1),
            system_power_kwp=system_power_kwp,
            occupied_area_m2=occupied,
            power_density_w_m2=density,
            area_utilization_percent=utilization,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "panel_count": self.panel_count,
            "system_power_kwp": round(self.system_power_kwp, 2),
            "panel_power_watts": self.panel_power_w,
            "panel_area_m2": self.panel_area_m2,
            "module_efficiency_percent": self.module_efficiency_percent,
            "occupied_area_m2": round(self.occupied_area_m2, 2),
            "power_density_w_m2": round(self.power_density_w_m2, 1),
            "area_utilization_percent": round(self.area_utilization_percent, 1),
        }


@dataclass(frozen=True)
class FinancialInputs:
    """Technician economics for a payback estimate. Money in the local currency."""
    energy_cost_per_kwh: float
    installation_cost_per_watt: float
    incentives_percent: float = 0.0
    lifetime_years: int = 25
    energy_cost_increase_percent: float = 5.0
    discount_rate_percent: float = 6.0

    def __post_init__(self):
        if self.energy_cost_per_kwh <= 0 or self.installation_cost_per_watt <= 0:
            raise ValueError("energy_cost_per_kwh and installation_cost_per_watt must be positive")
        if not 0 <= self.incentives_percent <= 100:
            raise ValueError("incentives_percent must be in [0, 100]")
        if self.lifetime_years < 1:
            raise ValueError("lifetime_years must be at least 1")


@dataclass(frozen=True)
class FinancialSummary:
    """Cost, savings and return of a suggested system."""
    total_system_watts: float
    total_system_cost: float
    net_system_cost: float
    annual_savings: float
    simple_payback_years: Optional[float]   # None when the system saves nothing
    npv: float
    roi_percent: Optional[float]            # None when the net cost is zero
    total_lifetime_savings: float
    incentives_applied: float

    @classmethod
    def calculate(
        cls,
        annual_production_kwh: float,
        system_watts: float,
        inputs: FinancialInputs,
    ) -> "FinancialSummary":
        """
        Payback, NPV and ROI of a system.

        Savings grow each year with the energy price and are discounted at
        the discount rate for the NPV. Lifetime savings are the undiscounted
        sum over the system lifetime.
        """
        total_cost = system_watts * inputs.installation_cost_per_watt
        net_cost = total_cost * (1 - inputs.incentives_percent / 100)
        annual_savings = annual_production_kwh * inputs.energy_cost_per_kwh

        growth = inputs.energy_cost_increase_percent / 100
        discount = inputs.discount_rate_percent / 100
        npv = -net_cost
        lifetime_savings = 0.0
        for year in range(1, inputs.lifetime_years + 1):
            savings = annual_savings * (1 + growth) ** (year - 1)
            lifetime_savings += savings
            npv += savings / (1 + discount) ** year

        return cls(
            total_system_watts=system_watts,
            total_system_cost=total_cost,
            net_system_cost=net_cost,
            annual_savings=annual_savings,
            simple_payback_years=net_cost / annual_savings if annual_savings > 0 else None,
            npv=npv,
            roi_percent=(lifetime_savings - net_cost) / net_cost * 100 if net_cost > 0 else None,
            total_lifetime_savings=lifetime_savings,
            incentives_applied=inputs.incentives_percent,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_system_watts": self.total_system_watts,
            "total_system_cost": round(self.total_system_cost),
            "net_system_cost": round(self.net_system_cost),
            "annual_savings": round(self.annual_savings),
            "simple_payback_years": (
                round(self.simple_payback_years, 2) if self.simple_payback_years is not None else None
            ),
            "npv": round(self.npv),
            "roi": round(self.roi_percent, 2) if self.roi_percent is not None else None,
            "total_lifetime_savings": round(self.total_lifetime_savings),
            "incentives_applied": self.incentives_applied,
        }


@dataclass(frozen=True)
class AnalysisRecord:
    """The fused, persisted viability result. Immutable once created."""
    id: str
    coordinates: Coordinate
    usable_area_m2: float
    area_source: AreaSource
    annual_irradiation: float
    irradiation_source: str
    shading_index: float
    shading_source: ShadingSource
    shading_loss_percent: int
    estimated_production_kwh: float
    verdict: Verdict
    reasons: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    warnings: Tuple[str, ...]
    coverage: Dict[str, bool]
    cache_ids: Dict[str, Optional[str]]
    system_config: SystemConfig
    confidence: Confidence
    created_at: datetime
    usage_factor: float = 0.8
    version: int = 1
    parent_id: Optional[str] = None
    footprint: Optional[Polygon] = None
    layers: Dict[str, Any] = field(default_factory=dict)
    azimuth_deg: Optional[float] = None
    tilt_deg: Optional[float] = None
    financials: Optional[FinancialSummary] = None

    @property
    def layer_count(self) -> int:
        return count_layers(self.layers)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing payload (camelCase, lat-first footprint ring)."""
        return {
            "id": self.id,
            "coordinates": self.coordinates.to_dict(),
            "usableArea": round(self.usable_area_m2, 2),
            "areaSource": self.area_source.value,
            "usageFactor": self.usage_factor,
            "annualIrradiation": round(self.annual_irradiation, 1),
            "irradiationSource": self.irradiation_source,
            "shadingIndex": round(self.shading_index, 3),
            "shadingSource": self.shading_source.value,
            "shadingLoss": self.shading_loss_percent,
            "estimatedProduction": round(self.estimated_production_kwh),
            "verdict": self.verdict.value,
            "reasons": list(self.reasons),
            "recommendations": list(self.recommendations),
            "warnings": list(self.warnings),
            "coverage": dict(self.coverage),
            "cacheIds": dict(self.cache_ids),
            "suggestedSystemConfig": self.system_config.to_dict(),
            "confidence": self.confidence.value,
            "createdAt": self.created_at.isoformat(),
            "version": self.version,
            "parentId": self.parent_id,
            "footprint": {
                "coordinates": self.footprint.to_latlng(),
                "source": self.footprint.source.value,
            } if self.footprint else None,
            "azimuth": self.azimuth_deg,
            "tilt": self.tilt_deg,
            "layerCount": self.layer_count,
            "layers": self.layers,
            "financials": self.financials.to_dict() if self.financials else None,
        }


def _date_dict(value: Optional[date]) -> Optional[Dict[str, int]]:
    if value is None:
        return None
    return {"year": value.year, "month": value.month, "day": value.day}


def parse_provider_date(data: Optional[Dict[str, Any]]) -> Optional[date]:
    """Parse a {year, month, day} dict as returned by Google Solar."""
    if not data or not data.get("year"):
        return None
    try:
        return date(int(data["year"]), int(data.get("month") or 1), int(data.get("day") or 1))
    except (TypeError, ValueError):
        return None
