"""
Fusion & Verdict Engine

Combines the footprint and irradiation outcomes into one AnalysisRecord:
- Usable roof area, by source priority
- Annual irradiation, by source priority
- Shading index (flux statistics, heuristic or default)
- Production estimate and suggested PV system
- Roof orientation and tilt, when known
- Confidence, verdict and ordered reasons/recommendations/warnings
- Payback, NPV and ROI when the technician supplies costs

Either input may be missing or an error record; the engine degrades to
estimates and lowers confidence instead of failing. Only when there is
neither a roof polygon nor an irradiation measurement does it give up
with ANALYSIS_FAILED.

Source priority:
    area:        footprint-db polygon > user-drawn polygon
                 > provider-measured roof area > regional estimate
    irradiation: provider measurement > latitude table estimate
    orientation: footprint roof plane > provider's largest roof segment
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

import numpy as np

from ..core.config import DEFAULT_FUSION_CONFIG, FusionConfig
from ..core.coordinates import azimuth_deviation, equator_azimuth
from ..core.errors import ApiErrorRecord, ErrorCode, describe
from ..core.models import (
    ESTIMATE,
    GEOMETRY_DB,
    IRRADIATION_API_A,
    IRRADIATION_API_B,
    AnalysisRecord,
    AreaSource,
    Confidence,
    Coordinate,
    FinancialInputs,
    FinancialSummary,
    FootprintResult,
    ImageryQuality,
    IrradiationResult,
    PolygonSource,
    ShadingSource,
    SystemConfig,
    Verdict,
)
from .shading import ShadingEstimate, estimate_shading

logger = logging.getLogger(__name__)

COMPASS_POINTS = ("Norte", "Nordeste", "Leste", "Sudeste", "Sul", "Sudoeste", "Oeste", "Noroeste")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def regional_irradiation(latitude: float, table: Tuple[Tuple[float, float], ...]) -> float:
    """Climatological annual irradiation for a latitude (linear in |lat|, clamped)."""
    lats = np.array([row[0] for row in table], dtype=float)
    values = np.array([row[1] for row in table], dtype=float)
    return round(float(np.interp(abs(latitude), lats, values)), 1)


def compass_point(azimuth: float) -> str:
    """pt-BR name of the nearest of the eight compass points."""
    return COMPASS_POINTS[int((azimuth % 360 + 22.5) // 45) % 8]


@dataclass
class _Assessment:
    """Intermediate values shared by the verdict and text builders."""
    area: float
    area_source: AreaSource
    irradiation: float
    irradiation_source: str
    shading: ShadingEstimate
    shading_loss: int
    confidence: Confidence
    system: SystemConfig
    production: float
    provider_production: bool
    latitude: float
    azimuth: Optional[float] = None
    tilt: Optional[float] = None
    # Degrees between the roof face and the equator-facing azimuth
    azimuth_deviation: Optional[float] = None


class FusionEngine:
    """
    Fuse resolver outcomes into an AnalysisRecord.

    Usage:
        engine = FusionEngine(FusionConfig(min_area_m2=10))
        record = engine.fuse(coordinate, footprint_outcome, irradiation_outcome)
    """

    def __init__(self, config: FusionConfig = DEFAULT_FUSION_CONFIG):
        self.config = config

    def fuse(
        self,
        coordinate: Coordinate,
        footprint: Union[FootprintResult, ApiErrorRecord, None],
        irradiation: Union[IrradiationResult, ApiErrorRecord, None],
        analysis_id: Optional[str] = None,
        version: int = 1,
        parent_id: Optional[str] = None,
        financial_inputs: Optional[FinancialInputs] = None,
    ) -> Union[AnalysisRecord, ApiErrorRecord]:
        """
        Build the analysis record.

        financial_inputs adds a payback/NPV/ROI summary for the suggested
        system; it is skipped when no panel fits.

        Returns:
            AnalysisRecord, or the ANALYSIS_FAILED record when neither a
            roof polygon nor an irradiation result is available.
        """
        fp = footprint if isinstance(footprint, FootprintResult) else None
        irr = irradiation if isinstance(irradiation, IrradiationResult) else None

        if (fp is None or not fp.found) and irr is None:
            logger.warning(
                "No geometry and no irradiation for %.6f, %.6f", coordinate.lat, coordinate.lng,
                extra={"error_code": ErrorCode.ANALYSIS_FAILED.value},
            )
            return describe(ErrorCode.ANALYSIS_FAILED)

        a = self._assess(coordinate, fp, irr)
        verdict, reasons = self._verdict(a)

        financials = None
        if financial_inputs is not None and a.system.panel_count > 0:
            financials = FinancialSummary.calculate(
                a.production, a.system.system_power_kwp * 1000, financial_inputs
            )

        record = AnalysisRecord(
            id=analysis_id or str(uuid.uuid4()),
            coordinates=coordinate,
            usable_area_m2=a.area,
            area_source=a.area_source,
            annual_irradiation=a.irradiation,
            irradiation_source=a.irradiation_source,
            shading_index=a.shading.index,
            shading_source=a.shading.source,
            shading_loss_percent=a.shading_loss,
            estimated_production_kwh=a.production,
            verdict=verdict,
            reasons=tuple(reasons),
            recommendations=tuple(self._recommendations(a, verdict, footprint)),
            warnings=tuple(self._warnings(a, footprint, irradiation)),
            coverage={
                GEOMETRY_DB: bool(fp and fp.found and fp.polygon.source is PolygonSource.BUILDING_FOOTPRINT_DB),
                IRRADIATION_API_A: bool(irr and irr.coverage.get(IRRADIATION_API_A)),
                IRRADIATION_API_B: bool(irr and irr.coverage.get(IRRADIATION_API_B)),
            },
            cache_ids={
                GEOMETRY_DB: fp.cache_id if fp else None,
                IRRADIATION_API_A: irr.cache_ids.get(IRRADIATION_API_A) if irr else None,
                IRRADIATION_API_B: irr.cache_ids.get(IRRADIATION_API_B) if irr else None,
            },
            system_config=a.system,
            confidence=a.confidence,
            created_at=datetime.now(timezone.utc),
            usage_factor=self.config.usage_factor,
            version=version,
            parent_id=parent_id,
            footprint=fp.polygon if fp else None,
            layers=irr.catalog_dict() if irr else {},
            azimuth_deg=a.azimuth,
            tilt_deg=a.tilt,
            financials=financials,
        )
        logger.info(
            "Analysis %s: %s (%s confidence), %.1f m² from %s, %.0f kWh/m²/yr from %s",
            record.id, verdict.value, a.confidence.value, a.area, a.area_source.value,
            a.irradiation, a.irradiation_source,
            extra={"analysis_id": record.id},
        )
        return record

    # =========================================================================
    # FIELD SELECTION
    # =========================================================================

    def _assess(
        self,
        coordinate: Coordinate,
        fp: Optional[FootprintResult],
        irr: Optional[IrradiationResult],
    ) -> _Assessment:
        cfg = self.config

        # 1. Usable area
        if fp is not None and fp.found and fp.area_m2 > 0:
            area = fp.area_m2
            if fp.polygon.source is PolygonSource.USER_DRAWN:
                area_source = AreaSource.MANUAL
            else:
                area_source = AreaSource.FOOTPRINT
        elif irr is not None and irr.roof_area_m2:
            area = float(irr.roof_area_m2)
            area_source = AreaSource.GOOGLE_MEASURED
        else:
            area = cfg.estimated_roof_area_m2
            area_source = AreaSource.ESTIMATE

        # 2. Annual irradiation
        if irr is not None:
            irradiation = irr.annual_irradiation
            irradiation_source = irr.source
        else:
            irradiation = regional_irradiation(coordinate.lat, cfg.latitude_irradiation)
            irradiation_source = ESTIMATE

        # 3. Shading
        shading = estimate_shading(coordinate.lat, fp, irr, cfg)
        shading_loss = round_half_up(shading.index * 100)

        # 4. Confidence
        measured = area_source is not AreaSource.ESTIMATE and irradiation_source != ESTIMATE
        if measured and shading.source is ShadingSource.FLUX_ANALYSIS:
            confidence = Confidence.HIGH
        elif not measured:
            confidence = Confidence.LOW
        else:
            confidence = Confidence.MEDIUM

        # 5. System and production
        system = SystemConfig.size(
            usable_area_m2=area,
            panel_power_w=cfg.panel_power_w,
            panel_area_m2=cfg.panel_area_m2,
            usage_factor=cfg.usage_factor,
            module_efficiency=cfg.module_efficiency,
            max_panels=cfg.panel_count,
        )
        provider_kwh = self._provider_production(irr, system)
        if provider_kwh is not None:
            production = provider_kwh
        else:
            production = (
                irradiation * area * cfg.module_efficiency * cfg.performance_ratio * (1 - shading.index)
            )

        # 6. Orientation
        azimuth = tilt = None
        if fp is not None and fp.found:
            azimuth, tilt = fp.azimuth_deg, fp.tilt_deg
        if irr is not None:
            azimuth = irr.azimuth_deg if azimuth is None else azimuth
            tilt = irr.tilt_deg if tilt is None else tilt
        deviation = None
        if azimuth is not None:
            deviation = azimuth_deviation(azimuth, equator_azimuth(coordinate.lat))

        return _Assessment(
            area=area,
            area_source=area_source,
            irradiation=irradiation,
            irradiation_source=irradiation_source,
            shading=shading,
            shading_loss=shading_loss,
            confidence=confidence,
            system=system,
            production=max(0.0, production),
            provider_production=provider_kwh is not None,
            latitude=coordinate.lat,
            azimuth=azimuth,
            tilt=tilt,
            azimuth_deviation=deviation,
        )

    @staticmethod
    def _provider_production(irr: Optional[IrradiationResult], system: SystemConfig) -> Optional[float]:
        """
        Provider yearly energy scaled to the suggested system.

        Provider configurations use the provider's own panel model, so their
        panel counts do not compare with ours. The configuration closest in
        power to the suggested system gives a specific yield (kWh/kWp) that
        is applied to the system's kWp.
        """
        if irr is None or not irr.panel_configs or not irr.panel_capacity_w:
            return None
        if system.system_power_kwp <= 0:
            return None

        def config_kwp(config: Tuple[int, float]) -> float:
            return config[0] * irr.panel_capacity_w / 1000

        closest = min(irr.panel_configs, key=lambda c: abs(config_kwp(c) - system.system_power_kwp))
        if config_kwp(closest) <= 0:
            return None
        specific_yield = closest[1] / config_kwp(closest)
        return specific_yield * system.system_power_kwp

    # =========================================================================
    # VERDICT
    # =========================================================================

    def _verdict(self, a: _Assessment) -> Tuple[Verdict, List[str]]:
        """
        Evaluate area, irradiation, shading, orientation, tilt and confidence
        in that order.

        Each criterion contributes exactly one reason, so the reason list
        has the same order for every input. Orientation and tilt are skipped
        when the roof plane is unknown.
        """
        cfg = self.config
        reasons: List[str] = []
        not_apt = False
        partial = False

        # Area
        if a.area < cfg.min_area_m2:
            not_apt = True
            reasons.append(f"Área insuficiente para instalação viável ({a.area:.1f}m² - mín. {cfg.min_area_m2:.0f}m²)")
        else:
            reasons.append(f"Área adequada para instalação ({a.area:.1f}m²)")

        # Irradiation
        if a.irradiation < cfg.min_irradiation_kwh_m2:
            not_apt = True
            reasons.append(f"Irradiação solar insuficiente ({a.irradiation:.0f} kWh/m²/ano)")
        else:
            reasons.append(f"Irradiação solar adequada ({a.irradiation:.0f} kWh/m²/ano)")

        # Shading
        if a.shading_loss > cfg.max_shading_percent:
            not_apt = True
            reasons.append(f"Sombreamento excessivo detectado ({a.shading_loss}% de perdas)")
        elif a.shading_loss >= cfg.caution_shading_percent:
            partial = True
            reasons.append(f"Sombreamento moderado presente ({a.shading_loss}% de perdas)")
        else:
            reasons.append(f"Boas condições de sombreamento ({a.shading_loss}% de perdas)")

        # Orientation
        if a.azimuth_deviation is not None:
            ideal = "Norte" if a.latitude < 0 else "Sul"
            deviation = a.azimuth_deviation
            if deviation > cfg.max_azimuth_deviation_deg:
                not_apt = True
                reasons.append(
                    f"Orientação desfavorável - face voltada para {compass_point(a.azimuth)} "
                    f"({deviation:.0f}° do {ideal})"
                )
            elif deviation > cfg.good_azimuth_deviation_deg:
                partial = True
                reasons.append(f"Orientação com perdas direcionais ({deviation:.0f}° do {ideal})")
            elif deviation <= cfg.ideal_azimuth_deviation_deg:
                reasons.append(f"Orientação ideal ({deviation:.0f}° do {ideal})")
            else:
                reasons.append(f"Boa orientação solar ({deviation:.0f}° do {ideal})")

        # Tilt
        if a.tilt is not None:
            optimal = abs(a.latitude)
            deviation = abs(a.tilt - optimal)
            max_tilt = min(cfg.max_tilt_deg, optimal + cfg.max_tilt_deviation_deg)
            if a.tilt < cfg.min_tilt_deg or a.tilt > max_tilt or deviation > cfg.max_tilt_deviation_deg:
                partial = True
                reasons.append(f"Inclinação fora da faixa recomendada ({a.tilt:.0f}° vs {optimal:.0f}° ótimo)")
            elif deviation <= cfg.ideal_tilt_deviation_deg:
                reasons.append(f"Inclinação próxima ao ideal ({a.tilt:.0f}° vs {optimal:.0f}° ótimo)")
            else:
                reasons.append(f"Inclinação aceitável ({a.tilt:.0f}°)")

        # Confidence
        if a.confidence is Confidence.LOW:
            partial = True
            reasons.append("Dados estimados reduzem a confiança da análise")
        else:
            reasons.append(f"Confiança {a.confidence.value.lower()} nos dados utilizados")

        if not_apt:
            verdict = Verdict.NOT_APT
        elif partial:
            verdict = Verdict.PARTIAL
        else:
            verdict = Verdict.APT
        return verdict, reasons

    # =========================================================================
    # TEXTS
    # =========================================================================

    def _recommendations(
        self,
        a: _Assessment,
        verdict: Verdict,
        footprint: Union[FootprintResult, ApiErrorRecord, None],
    ) -> List[str]:
        recommendations: List[str] = []

        advisory = footprint.advisory if isinstance(footprint, FootprintResult) else footprint
        if isinstance(advisory, ApiErrorRecord) and (
            advisory.code is ErrorCode.FOOTPRINT_NOT_FOUND or advisory.requires_drawing
        ):
            recommendations.append(advisory.user_message)

        if verdict is Verdict.NOT_APT:
            recommendations.append("Buscar localização alternativa para instalação")
            return recommendations

        if a.system.panel_count > 0:
            recommendations.append(
                f"Sistema sugerido de {a.system.system_power_kwp:.2f} kWp "
                f"({a.system.panel_count} módulos de {a.system.panel_power_w:.0f} W)"
            )

        if a.shading_loss >= self.config.caution_shading_percent:
            if a.shading_loss <= self.config.optimizer_max_shading_percent:
                recommendations.append("Considerar otimizadores de potência para compensar sombreamento")
            else:
                recommendations.append("Microinversores recomendados para sombreamento alto")
                recommendations.append("Análise detalhada de sombreamento necessária")

        if a.area_source is AreaSource.ESTIMATE:
            recommendations.append("Confirmar a área do telhado em visita técnica")

        return recommendations

    def _warnings(
        self,
        a: _Assessment,
        footprint: Union[FootprintResult, ApiErrorRecord, None],
        irradiation: Union[IrradiationResult, ApiErrorRecord, None],
    ) -> List[str]:
        warnings: List[str] = []

        if isinstance(footprint, ApiErrorRecord):
            warnings.append(f"Footprint indisponível: {footprint.user_message}")
        if isinstance(irradiation, ApiErrorRecord):
            warnings.append(f"Dados de irradiação indisponíveis: {irradiation.user_message}")
        elif isinstance(irradiation, IrradiationResult):
            for provider, error in irradiation.provider_errors.items():
                warnings.append(f"Provedor {provider} indisponível: {error.user_message}")
            if irradiation.imagery_quality is ImageryQuality.LOW:
                warnings.append("Imagens de baixa qualidade para esta região")

        if a.area_source is AreaSource.ESTIMATE:
            warnings.append(f"Área do telhado estimada ({a.area:.0f}m²)")
        if a.irradiation_source == ESTIMATE:
            warnings.append("Irradiação estimada pela latitude; nenhum provedor respondeu")
        if a.shading.warning:
            warnings.append(a.shading.warning)

        if a.area < self.config.min_area_m2:
            warnings.append(f"Mínimo recomendado: {self.config.min_area_m2:.0f}m² para sistema básico")
        if a.shading_loss > self.config.max_shading_percent:
            warnings.append("Perdas por sombreamento inviabilizam economicamente o sistema")
        elif a.shading_loss > self.config.high_shading_warning_percent:
            warnings.append("Sombreamento alto - viabilidade depende de tecnologias modernas")
        if a.azimuth_deviation is not None and a.azimuth_deviation > self.config.max_azimuth_deviation_deg:
            warnings.append("Perdas direcionais superiores a 30% tornam instalação inviável")

        return warnings
