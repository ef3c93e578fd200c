"""
Shading index estimation.

Three tiers, best first:
1. Flux statistics from the imagery provider (quality MEDIUM or better):
   how far the roof's sunshine distribution falls below its sunniest point.
2. Heuristic from the number of neighbouring buildings and latitude.
3. Zero, with a warning that shading was not assessed.

The index is a fraction in [0, 1]: 0 = no shading losses.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from ..core.config import DEFAULT_FUSION_CONFIG, FusionConfig
from ..core.errors import ApiErrorRecord
from ..core.models import FootprintResult, ImageryQuality, IrradiationResult, ShadingSource


@dataclass(frozen=True)
class ShadingEstimate:
    index: float
    source: ShadingSource
    warning: Optional[str] = None


def flux_shading_index(sunshine_quantiles: Sequence[float], max_sunshine: Optional[float]) -> Optional[float]:
    """
    Shading index from the roof sunshine distribution.

    Args:
        sunshine_quantiles: Annual sunshine hours at evenly spaced quantiles
            over the roof area (as reported by buildingInsights)
        max_sunshine: Sunshine hours of the sunniest roof point

    Returns:
        1 - mean(quantiles) / max, clipped to [0, 1]; None without data.
    """
    if not max_sunshine or max_sunshine <= 0:
        return None
    quantiles = np.asarray(sunshine_quantiles, dtype=float)
    quantiles = quantiles[np.isfinite(quantiles)]
    if quantiles.size == 0:
        return None
    return float(np.clip(1.0 - quantiles.mean() / max_sunshine, 0.0, 1.0))


def heuristic_shading_index(
    neighbor_count: int,
    latitude: float,
    config: FusionConfig = DEFAULT_FUSION_CONFIG,
) -> float:
    """
    Rough shading index for dense surroundings and low sun angles.

    Each neighbouring building adds a fixed share (up to a cap) and every
    degree of latitude beyond the tropics adds a little more.
    """
    neighbors = min(max(0, neighbor_count), config.heuristic_neighbor_cap)
    beyond_tropics = max(0.0, abs(latitude) - 23.5)
    index = (
        config.heuristic_base_shading
        + config.heuristic_per_neighbor * neighbors
        + config.heuristic_per_degree_latitude * beyond_tropics
    )
    return round(min(index, config.heuristic_max_shading), 4)


def estimate_shading(
    latitude: float,
    footprint: Union[FootprintResult, ApiErrorRecord, None],
    irradiation: Union[IrradiationResult, ApiErrorRecord, None],
    config: FusionConfig = DEFAULT_FUSION_CONFIG,
) -> ShadingEstimate:
    """Pick the best available shading signal."""
    if isinstance(irradiation, IrradiationResult) and irradiation.shading_index is not None:
        quality = irradiation.imagery_quality
        if quality is not None and quality.rank >= ImageryQuality.MEDIUM.rank:
            return ShadingEstimate(irradiation.shading_index, ShadingSource.FLUX_ANALYSIS)

    if isinstance(footprint, FootprintResult) and footprint.found and footprint.neighbor_count is not None:
        return ShadingEstimate(
            heuristic_shading_index(footprint.neighbor_count, latitude, config),
            ShadingSource.HEURISTIC,
            "Sombreamento estimado por heurística de vizinhança; confirme em visita técnica",
        )

    return ShadingEstimate(
        0.0,
        ShadingSource.DEFAULT,
        "Sombreamento não avaliado; perdas por sombreamento consideradas nulas",
    )
