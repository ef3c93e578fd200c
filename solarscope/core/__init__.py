"""Core models, configuration, error taxonomy and response normalization."""

from .config import Settings, settings, FusionConfig, DEFAULT_FUSION_CONFIG
from .errors import (
    ErrorCode,
    ErrorAction,
    ApiErrorRecord,
    UpstreamError,
    classify,
    describe,
)
from .models import (
    Coordinate,
    Polygon,
    PolygonSource,
    FootprintResult,
    IrradiationResult,
    LayerInfo,
    SystemConfig,
    AnalysisRecord,
    Confidence,
    Verdict,
    AreaSource,
    ShadingSource,
    ImageryQuality,
    LayerView,
)
from .normalizer import normalize, Ok, Err

__all__ = [
    "Settings",
    "settings",
    "FusionConfig",
    "DEFAULT_FUSION_CONFIG",
    "ErrorCode",
    "ErrorAction",
    "ApiErrorRecord",
    "UpstreamError",
    "classify",
    "describe",
    "Coordinate",
    "Polygon",
    "PolygonSource",
    "FootprintResult",
    "IrradiationResult",
    "LayerInfo",
    "SystemConfig",
    "AnalysisRecord",
    "Confidence",
    "Verdict",
    "AreaSource",
    "ShadingSource",
    "ImageryQuality",
    "LayerView",
    "normalize",
    "Ok",
    "Err",
]
