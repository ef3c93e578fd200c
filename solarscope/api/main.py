"""
SolarScope REST API - FastAPI Application.

Provides REST endpoints for rooftop solar viability analysis.

Endpoints:
    GET  /                           - API info
    GET  /health                     - Health check
    POST /analyze                    - Analyze a coordinate or address
    GET  /analysis/{id}              - Stored analysis record
    GET  /analysis/{id}/history      - Version timeline of a record
    POST /analysis/{id}/reanalyze    - New version with a drawn roof or new panel settings
    POST /footprints                 - Roof footprint only
    POST /data-layers                - Imagery layer catalog only
    GET  /errors/{code}              - Message and action for an error code

Every failure body has the shape {success: false, error, errorCode, action}.

Usage:
    uvicorn solarscope.api.main:app --reload --port 8000
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..analysis.service import AnalysisRequest, AnalysisService
from ..core.config import settings
from ..core.errors import ApiErrorRecord, ErrorAction, ErrorCode, describe
from ..core.models import (
    AnalysisRecord,
    Confidence,
    FinancialInputs,
    ImageryQuality,
    LayerView,
    PolygonSource,
    catalog_to_dict,
    count_layers,
)
from ..geo.footprint_resolver import footprint_to_dict
from ..utils.logging_config import ensure_logging
from ..utils.validation import (
    ValidationError,
    validate_address,
    validate_coordinates,
    validate_imagery_request,
    validate_polygon,
)

logger = logging.getLogger(__name__)

# Codes caused by the caller's input rather than by an upstream
CLIENT_INPUT_CODES = {
    ErrorCode.INVALID_ADDRESS,
    ErrorCode.GEOCODING_FAILED,
    ErrorCode.FOOTPRINT_NOT_FOUND,
    ErrorCode.FOOTPRINT_INVALID,
}


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class PolygonInput(BaseModel):
    """Roof ring in dashboard order ([lat, lng] vertices)."""
    coordinates: List[List[float]] = Field(..., min_length=3, description="Latitude-first ring")
    source: PolygonSource = Field(PolygonSource.USER_DRAWN, description="Who produced the ring")
    confidence: Optional[Confidence] = Field(None, description="Asserted confidence of the ring")


class ImageryParams(BaseModel):
    radius: Optional[float] = Field(None, description="Imagery radius in meters", example=100)
    view: LayerView = LayerView.FULL_LAYERS
    quality: ImageryQuality = Field(ImageryQuality.HIGH, description="Preferred imagery quality")
    pixel_size: float = Field(0.1, description="Raster resolution in meters")
    exact_quality: bool = Field(False, description="Reject imagery below the requested quality")


class FinancialParams(BaseModel):
    """Technician costs for the payback estimate."""
    energy_cost_per_kwh: float = Field(..., gt=0, description="Energy tariff per kWh", example=0.95)
    installation_cost_per_watt: float = Field(..., gt=0, description="Installed cost per Wp", example=4.5)
    incentives_percent: float = Field(0.0, ge=0, le=100)
    lifetime_years: int = Field(25, ge=1, le=50)
    energy_cost_increase_percent: float = Field(5.0, ge=0)
    discount_rate_percent: float = Field(6.0, ge=0)

    def to_inputs(self) -> FinancialInputs:
        return FinancialInputs(**self.model_dump())


class AnalyzeRequest(ImageryParams):
    """Request to analyze a rooftop."""
    lat: Optional[float] = Field(None, description="Latitude", example=-23.5613)
    lng: Optional[float] = Field(None, description="Longitude", example=-46.6565)
    address: Optional[str] = Field(None, description="Street address", example="Av. Paulista 1000, São Paulo")
    polygon: Optional[PolygonInput] = Field(None, description="Roof drawn by the user")
    financial: Optional[FinancialParams] = Field(None, description="Costs for a payback estimate")


class ConfigOverrides(BaseModel):
    """Panel settings a re-analysis may change."""
    panel_power_w: Optional[float] = Field(None, gt=0)
    panel_area_m2: Optional[float] = Field(None, gt=0)
    panel_count: Optional[int] = Field(None, ge=1, description="Panels the technician will install")
    usage_factor: Optional[float] = Field(None, gt=0, le=1)
    module_efficiency: Optional[float] = Field(None, gt=0, le=1)
    performance_ratio: Optional[float] = Field(None, gt=0, le=1)


class ReanalyzeRequest(BaseModel):
    polygon: Optional[PolygonInput] = None
    overrides: Optional[ConfigOverrides] = None
    financial: Optional[FinancialParams] = None


class FootprintRequest(BaseModel):
    lat: float = Field(..., example=-23.5613)
    lng: float = Field(..., example=-46.6565)


class DataLayersRequest(ImageryParams):
    lat: float = Field(..., example=-23.5613)
    lng: float = Field(..., example=-46.6565)
    radius: Optional[float] = Field(100, description="Imagery radius in meters")


# =============================================================================
# HELPERS
# =============================================================================

@lru_cache
def get_service() -> AnalysisService:
    """Process-wide analysis service (overridden in tests)."""
    return AnalysisService()


def status_for(error: ApiErrorRecord) -> int:
    """HTTP status for an error record."""
    if error.code is ErrorCode.ANALYSIS_FAILED:
        return 502
    if error.code in CLIENT_INPUT_CODES:
        return 422
    if error.action is ErrorAction.LOGIN:
        return 401
    if error.action is ErrorAction.BUY_CREDITS:
        return 402
    return 502


def error_response(error: ApiErrorRecord) -> JSONResponse:
    return JSONResponse(status_code=status_for(error), content=error.to_response())


def validation_response(error: ValidationError) -> JSONResponse:
    body = describe(ErrorCode.INVALID_ADDRESS).to_response()
    body["details"] = str(error)
    if error.field:
        body["field"] = error.field
    if error.suggestions:
        body["suggestions"] = error.suggestions
    return JSONResponse(status_code=422, content=body)


def outcome_response(outcome) -> JSONResponse:
    if isinstance(outcome, ApiErrorRecord):
        return error_response(outcome)
    return JSONResponse(content=AnalysisService.respond(outcome))


def not_found(analysis_id: str) -> JSONResponse:
    body = describe(ErrorCode.ANALYSIS_FAILED).to_response()
    body["error"] = f"Análise {analysis_id} não encontrada"
    return JSONResponse(status_code=404, content=body)


def _polygon(data: Optional[PolygonInput]):
    if data is None:
        return None
    return validate_polygon(data.coordinates, data.source)


# =============================================================================
# APPLICATION
# =============================================================================

app = FastAPI(
    title="SolarScope API",
    description="Rooftop solar viability analysis from footprint and irradiation sources",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def configure_logging():
    ensure_logging()


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    logger.info("Rejected %s: %s", request.url.path, exc)
    return validation_response(exc)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    body = describe(ErrorCode.INVALID_ADDRESS).to_response()
    body["details"] = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=body)


@app.get("/", tags=["General"])
async def root():
    """API info."""
    return {
        "name": "SolarScope API",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "analyze": "POST /analyze",
            "analysis": "GET /analysis/{id}",
            "history": "GET /analysis/{id}/history",
            "reanalyze": "POST /analysis/{id}/reanalyze",
            "footprints": "POST /footprints",
            "data_layers": "POST /data-layers",
            "errors": "GET /errors/{code}",
            "docs": "/docs",
        },
    }


@app.get("/health", tags=["General"])
async def health_check():
    return {"status": "healthy", "version": __version__, "store": settings.store_backend}


@app.post("/analyze", tags=["Analysis"])
def analyze(body: AnalyzeRequest, service: AnalysisService = Depends(get_service)):
    """
    Analyze a rooftop by coordinate or address.

    Returns {success: true, data: AnalysisRecord} or the error body.
    """
    coordinate = None
    address = None
    if body.lat is not None or body.lng is not None:
        if body.lat is None or body.lng is None:
            raise ValidationError("Both lat and lng are required", field="coordinates")
        coordinate = validate_coordinates(body.lat, body.lng)
    else:
        address = validate_address(body.address)

    radius = body.radius or settings.imagery_radius_m
    validate_imagery_request(radius, body.pixel_size)

    request = AnalysisRequest(
        coordinate=coordinate,
        address=address,
        polygon=_polygon(body.polygon),
        polygon_confidence=body.polygon.confidence if body.polygon else None,
        radius_m=radius,
        view=body.view,
        quality=body.quality,
        pixel_size_m=body.pixel_size,
        exact_quality=body.exact_quality,
        financial=body.financial.to_inputs() if body.financial else None,
    )
    outcome = service.analyze(request)
    if isinstance(outcome, AnalysisRecord):
        logger.info("Analysis %s: %s", outcome.id, outcome.verdict.value, extra={"analysis_id": outcome.id})
    return outcome_response(outcome)


@app.get("/analysis/{analysis_id}", tags=["Analysis"])
def get_analysis(analysis_id: str, service: AnalysisService = Depends(get_service)):
    record = service.get(analysis_id)
    if record is None:
        return not_found(analysis_id)
    return outcome_response(record)


@app.get("/analysis/{analysis_id}/history", tags=["Analysis"])
def analysis_history(analysis_id: str, service: AnalysisService = Depends(get_service)):
    """Versions leading to a record (oldest first) and the re-analyses made from it."""
    timeline = service.history(analysis_id)
    if timeline is None:
        return not_found(analysis_id)
    return {
        "success": True,
        "data": {
            "versions": [record.to_dict() for record in timeline["versions"]],
            "children": [record.to_dict() for record in timeline["children"]],
        },
    }


@app.post("/analysis/{analysis_id}/reanalyze", tags=["Analysis"])
def reanalyze(
    analysis_id: str,
    body: Optional[ReanalyzeRequest] = None,
    service: AnalysisService = Depends(get_service),
):
    """Re-run an analysis as a new version, optionally with a drawn roof."""
    body = body or ReanalyzeRequest()
    overrides: Dict[str, Any] = body.overrides.model_dump(exclude_none=True) if body.overrides else {}
    outcome = service.reanalyze(
        analysis_id,
        polygon=_polygon(body.polygon),
        overrides=overrides or None,
        financial=body.financial.to_inputs() if body.financial else None,
    )
    if outcome is None:
        return not_found(analysis_id)
    return outcome_response(outcome)


@app.post("/footprints", tags=["Geometry"])
def footprints(body: FootprintRequest, service: AnalysisService = Depends(get_service)):
    """Roof footprint for a coordinate, or an advisory to draw it manually."""
    coordinate = validate_coordinates(body.lat, body.lng)
    result = service.footprints.resolve(coordinate)
    if isinstance(result, ApiErrorRecord):
        return error_response(result)
    return footprint_to_dict(result)


@app.post("/data-layers", tags=["Imagery"])
def data_layers(body: DataLayersRequest, service: AnalysisService = Depends(get_service)):
    """Imagery layer catalog for a coordinate."""
    coordinate = validate_coordinates(body.lat, body.lng)
    radius = body.radius or settings.imagery_radius_m
    validate_imagery_request(radius, body.pixel_size)

    layers = service.irradiation.data_layers(
        coordinate, radius, body.view, body.quality, body.pixel_size, body.exact_quality
    )
    if isinstance(layers, ApiErrorRecord):
        return error_response(layers)
    return {
        "success": True,
        "data": {
            "imageryQuality": layers.imagery_quality.value if layers.imagery_quality else None,
            "imageryDate": layers.imagery_date.isoformat() if layers.imagery_date else None,
            "layerCount": count_layers(layers.layers),
            "layers": catalog_to_dict(layers.layers),
        },
    }


@app.get("/errors/{code}", tags=["Errors"])
async def error_info(code: str):
    """User message and recovery action for an error code."""
    if code not in ErrorCode.__members__:
        body = describe(ErrorCode.UNKNOWN_ERROR).to_response()
        body["error"] = f"Código de erro desconhecido: {code}"
        return JSONResponse(status_code=404, content=body)
    return describe(ErrorCode[code]).to_dict()


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """Run the API server."""
    import uvicorn

    ensure_logging()
    uvicorn.run(
        "solarscope.api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=False,
    )
    return 0


if __name__ == "__main__":
    import sys
    sys.exit(main())
