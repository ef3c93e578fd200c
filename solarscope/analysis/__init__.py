"""
SolarScope Analysis Module

Irradiation resolution, shading estimation, fusion into a verdict and the
end-to-end analysis service.
"""

from .fusion import FusionEngine, regional_irradiation
from .irradiation_resolver import IrradiationResolver
from .service import AnalysisRequest, AnalysisService
from .shading import ShadingEstimate, estimate_shading, flux_shading_index, heuristic_shading_index

__all__ = [
    "FusionEngine",
    "regional_irradiation",
    "IrradiationResolver",
    "AnalysisRequest",
    "AnalysisService",
    "ShadingEstimate",
    "estimate_shading",
    "flux_shading_index",
    "heuristic_shading_index",
]
