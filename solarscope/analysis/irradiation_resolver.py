"""
Irradiation / imagery resolver.

Collects, for one coordinate:
- annual irradiation (kWh/m²/year)
- the raster layer catalog (DSM, RGB, mask, flux, hourly shade)
- roof sunshine statistics for the shading index
- the provider's own production estimates

from two independent providers:

    irradiation_api_a  Google Solar (dataLayers + buildingInsights)
    irradiation_api_b  NASA POWER climatology (irradiation only, global)

B is only asked when A has no irradiation for the point. Every provider
response goes through the ResponseCache and its cache id is reported.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..core.config import settings
from ..core.errors import ApiErrorRecord, ErrorCode, UpstreamError, describe
from ..core.models import (
    IRRADIATION_API_A,
    IRRADIATION_API_B,
    Coordinate,
    ImageryQuality,
    IrradiationResult,
    LayerView,
)
from ..ingest.nasa_power import NasaPowerClient, annual_irradiation_kwh_m2
from ..ingest.response_cache import ResponseCache
from ..ingest.solar_api import (
    BuildingInsights,
    DataLayers,
    GoogleSolarClient,
    parse_building_insights,
    parse_data_layers,
)
from .shading import flux_shading_index

logger = logging.getLogger(__name__)


def quality_levels(floor: ImageryQuality, exact: bool) -> List[ImageryQuality]:
    """Qualities to try, best first: only the floor when exact, else floor down to LOW."""
    levels = [floor]
    if not exact:
        lower = floor.lower()
        while lower is not None:
            levels.append(lower)
            lower = lower.lower()
    return levels


class IrradiationResolver:
    """Resolve annual irradiation and imagery layers for a coordinate."""

    def __init__(
        self,
        solar_client: Optional[GoogleSolarClient] = None,
        nasa_client: Optional[NasaPowerClient] = None,
        cache: Optional[ResponseCache] = None,
    ):
        self.solar_client = solar_client or GoogleSolarClient()
        self.nasa_client = nasa_client or NasaPowerClient()
        self.cache = cache

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve(
        self,
        coordinate: Coordinate,
        radius_m: Optional[float] = None,
        view: LayerView = LayerView.FULL_LAYERS,
        quality_floor: ImageryQuality = ImageryQuality.HIGH,
        pixel_size_m: float = 0.1,
        exact_quality: bool = False,
    ) -> Union[IrradiationResult, ApiErrorRecord]:
        """
        Resolve irradiation and the layer catalog.

        Args:
            coordinate: Point of interest
            radius_m: Imagery radius around the point (default from settings)
            view: Layer bundle to request
            quality_floor: Preferred imagery quality
            pixel_size_m: Requested raster resolution
            exact_quality: Reject anything below quality_floor instead of
                stepping down HIGH -> MEDIUM -> LOW

        Returns:
            IrradiationResult, or ApiErrorRecord when no provider could
            produce an irradiation value.
        """
        radius_m = radius_m or settings.imagery_radius_m
        coverage = {IRRADIATION_API_A: False, IRRADIATION_API_B: False}
        cache_ids: Dict[str, Optional[str]] = {IRRADIATION_API_A: None, IRRADIATION_API_B: None}
        errors: Dict[str, ApiErrorRecord] = {}

        layers: Optional[DataLayers] = None
        insights: Optional[BuildingInsights] = None

        # === PROVIDER A: Google Solar ===
        if self.solar_client.configured:
            try:
                layers_id, layers = self._data_layers(
                    coordinate, radius_m, view, quality_floor, pixel_size_m, exact_quality
                )
                insights_id, insights = self._building_insights(coordinate, quality_floor, exact_quality)
                cache_ids[IRRADIATION_API_A] = insights_id or layers_id
                coverage[IRRADIATION_API_A] = bool(
                    (layers and layers.layers) or (insights and insights.annual_sunshine_kwh_m2)
                )
            except UpstreamError as e:
                logger.warning(
                    "Google Solar failed: %s", e,
                    extra={"provider": IRRADIATION_API_A, "error_code": e.code.value},
                )
                errors[IRRADIATION_API_A] = e.to_record()
        else:
            logger.debug("Google Solar not configured, skipping")

        annual = insights.annual_sunshine_kwh_m2 if insights else None
        source = IRRADIATION_API_A

        # === PROVIDER B: NASA POWER ===
        if not annual:
            try:
                power_id, climatology = self._fetch(
                    IRRADIATION_API_B,
                    {"lat": coordinate.lat, "lng": coordinate.lng},
                    lambda: self.nasa_client.get_climatology(coordinate),
                )
                cache_ids[IRRADIATION_API_B] = power_id
                annual = annual_irradiation_kwh_m2(climatology) if climatology else None
                coverage[IRRADIATION_API_B] = annual is not None
                source = IRRADIATION_API_B
            except UpstreamError as e:
                logger.warning(
                    "NASA POWER failed: %s", e,
                    extra={"provider": IRRADIATION_API_B, "error_code": e.code.value},
                )
                errors[IRRADIATION_API_B] = e.to_record()

        if not annual:
            if errors:
                # First failure in provider order explains the outcome best
                return next(iter(errors.values()))
            logger.info("No irradiation coverage at %.6f, %.6f", coordinate.lat, coordinate.lng)
            return describe(ErrorCode.EMPTY_RESPONSE)

        shading = None
        if insights:
            shading = flux_shading_index(insights.sunshine_quantiles, insights.annual_sunshine_kwh_m2)

        quality = (insights and insights.imagery_quality) or (layers and layers.imagery_quality) or None
        imagery_date = (layers and layers.imagery_date) or (insights and insights.imagery_date) or None

        result = IrradiationResult(
            annual_irradiation=float(annual),
            source=source,
            imagery_quality=quality,
            imagery_date=imagery_date,
            layers=layers.layers if layers else {},
            shading_index=shading,
            roof_area_m2=insights.roof_area_m2 if insights else None,
            panel_configs=list(insights.panel_configs) if insights else [],
            panel_capacity_w=insights.panel_capacity_w if insights else None,
            azimuth_deg=insights.azimuth_deg if insights else None,
            tilt_deg=insights.pitch_deg if insights else None,
            cache_ids=cache_ids,
            coverage=coverage,
            provider_errors=errors,
        )
        logger.info(
            "Irradiation %.0f kWh/m²/yr from %s, %d layers", result.annual_irradiation, source, result.layer_count,
            extra={"provider": source, "cache_id": cache_ids.get(source)},
        )
        return result

    def data_layers(
        self,
        coordinate: Coordinate,
        radius_m: Optional[float] = None,
        view: LayerView = LayerView.FULL_LAYERS,
        quality_floor: ImageryQuality = ImageryQuality.HIGH,
        pixel_size_m: float = 0.1,
        exact_quality: bool = False,
    ) -> Union[DataLayers, ApiErrorRecord]:
        """Layer catalog only, without the irradiation fallbacks."""
        try:
            _cache_id, layers = self._data_layers(
                coordinate, radius_m or settings.imagery_radius_m, view, quality_floor, pixel_size_m, exact_quality
            )
        except UpstreamError as e:
            return e.to_record()
        if layers is None:
            return describe(ErrorCode.EMPTY_RESPONSE)
        return layers

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _fetch(
        self,
        provider: str,
        params: Dict[str, Any],
        loader: Callable[[], Optional[Dict[str, Any]]],
    ) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        if self.cache is None:
            return None, loader()
        return self.cache.fetch(provider, params, loader)

    def _data_layers(
        self,
        coordinate: Coordinate,
        radius_m: float,
        view: LayerView,
        quality_floor: ImageryQuality,
        pixel_size_m: float,
        exact_quality: bool,
    ) -> Tuple[Optional[str], Optional[DataLayers]]:
        for quality in quality_levels(quality_floor, exact_quality):
            params = {
                "endpoint": "dataLayers",
                "lat": coordinate.lat,
                "lng": coordinate.lng,
                "radius_m": radius_m,
                "view": view.value,
                "quality": quality.value,
                "pixel_size_m": pixel_size_m,
                "exact": exact_quality,
            }
            cache_id, data = self._fetch(
                IRRADIATION_API_A,
                params,
                lambda q=quality: self.solar_client.get_data_layers(
                    coordinate, radius_m, view, q, pixel_size_m, exact_quality
                ),
            )
            if not data:
                logger.debug("No %s imagery layers", quality.value, extra={"provider": IRRADIATION_API_A})
                continue

            parsed = parse_data_layers(data, pixel_size_m)
            if not self._quality_accepted(parsed.imagery_quality, quality_floor, exact_quality):
                continue
            return cache_id, parsed
        return None, None

    def _building_insights(
        self,
        coordinate: Coordinate,
        quality_floor: ImageryQuality,
        exact_quality: bool,
    ) -> Tuple[Optional[str], Optional[BuildingInsights]]:
        for quality in quality_levels(quality_floor, exact_quality):
            params = {
                "endpoint": "buildingInsights",
                "lat": coordinate.lat,
                "lng": coordinate.lng,
                "quality": quality.value,
            }
            cache_id, data = self._fetch(
                IRRADIATION_API_A,
                params,
                lambda q=quality: self.solar_client.find_closest_building(coordinate, q),
            )
            if not data:
                continue

            parsed = parse_building_insights(data)
            if not self._quality_accepted(parsed.imagery_quality, quality_floor, exact_quality):
                continue
            return cache_id, parsed
        return None, None

    @staticmethod
    def _quality_accepted(
        returned: Optional[ImageryQuality],
        floor: ImageryQuality,
        exact: bool,
    ) -> bool:
        if not exact or returned is None:
            return True
        if returned.rank < floor.rank:
            logger.info("Rejecting %s imagery below required %s", returned.value, floor.value)
            return False
        return True
