"""
Database row model for analysis records.

An AnalysisRecord is persisted as one flat row in the `analyses` table.
Nested values (reasons, coverage, system config, layer catalog, financial
summary) go into JSON columns; the footprint is stored as GeoJSON (lng-first).
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.models import (
    AnalysisRecord,
    AreaSource,
    Confidence,
    Coordinate,
    FinancialSummary,
    Polygon,
    PolygonSource,
    ShadingSource,
    SystemConfig,
    Verdict,
)


@dataclass
class AnalysisRow:
    """`analyses` table record."""

    id: str
    latitude: float
    longitude: float

    # Fused values
    usable_area_m2: float
    area_source: str
    usage_factor: float
    annual_irradiation: float
    irradiation_source: str
    shading_index: float
    shading_source: str
    shading_loss_percent: int
    estimated_production_kwh: float
    verdict: str
    confidence: str

    # JSON columns
    reasons: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    coverage: Dict[str, bool] = field(default_factory=dict)
    cache_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    system_config: Dict[str, Any] = field(default_factory=dict)
    footprint: Optional[Dict[str, Any]] = None
    footprint_source: Optional[str] = None
    layers: Dict[str, Any] = field(default_factory=dict)
    financials: Optional[Dict[str, Any]] = None

    # Roof orientation
    azimuth_deg: Optional[float] = None
    tilt_deg: Optional[float] = None

    # Versioning
    version: int = 1
    parent_id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "AnalysisRow":
        return cls(
            id=record.id,
            latitude=record.coordinates.lat,
            longitude=record.coordinates.lng,
            usable_area_m2=record.usable_area_m2,
            area_source=record.area_source.value,
            usage_factor=record.usage_factor,
            annual_irradiation=record.annual_irradiation,
            irradiation_source=record.irradiation_source,
            shading_index=record.shading_index,
            shading_source=record.shading_source.value,
            shading_loss_percent=record.shading_loss_percent,
            estimated_production_kwh=record.estimated_production_kwh,
            verdict=record.verdict.value,
            confidence=record.confidence.value,
            reasons=list(record.reasons),
            recommendations=list(record.recommendations),
            warnings=list(record.warnings),
            coverage=dict(record.coverage),
            cache_ids=dict(record.cache_ids),
            system_config=asdict(record.system_config),
            footprint=record.footprint.to_geojson() if record.footprint else None,
            footprint_source=record.footprint.source.value if record.footprint else None,
            layers=record.layers,
            financials=asdict(record.financials) if record.financials else None,
            azimuth_deg=record.azimuth_deg,
            tilt_deg=record.tilt_deg,
            version=record.version,
            parent_id=record.parent_id,
            created_at=record.created_at.isoformat(),
        )

    def to_record(self) -> AnalysisRecord:
        footprint = None
        if self.footprint:
            ring = tuple(tuple(p) for p in self.footprint["coordinates"][0])
            footprint = Polygon(ring=ring, source=PolygonSource(self.footprint_source or PolygonSource.BUILDING_FOOTPRINT_DB))

        return AnalysisRecord(
            id=self.id,
            coordinates=Coordinate(self.latitude, self.longitude),
            usable_area_m2=self.usable_area_m2,
            area_source=AreaSource(self.area_source),
            annual_irradiation=self.annual_irradiation,
            irradiation_source=self.irradiation_source,
            shading_index=self.shading_index,
            shading_source=ShadingSource(self.shading_source),
            shading_loss_percent=self.shading_loss_percent,
            estimated_production_kwh=self.estimated_production_kwh,
            verdict=Verdict(self.verdict),
            reasons=tuple(self.reasons),
            recommendations=tuple(self.recommendations),
            warnings=tuple(self.warnings),
            coverage=dict(self.coverage),
            cache_ids=dict(self.cache_ids),
            system_config=SystemConfig(**self.system_config),
            confidence=Confidence(self.confidence),
            created_at=datetime.fromisoformat(self.created_at) if self.created_at else datetime.now(),
            usage_factor=self.usage_factor,
            version=self.version,
            parent_id=self.parent_id,
            footprint=footprint,
            layers=dict(self.layers or {}),
            azimuth_deg=self.azimuth_deg,
            tilt_deg=self.tilt_deg,
            financials=FinancialSummary(**self.financials) if self.financials else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for database insertion."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisRow":
        """Create from database record."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
