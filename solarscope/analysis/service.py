"""
Analysis service: the end-to-end request flow.

    request ──► geocode (address only)
            ──► FootprintResolver ─┐   run concurrently,
            ──► IrradiationResolver┘   each with its own timeout
            ──► FusionEngine
            ──► AnalysisStore.save
            ──► caller response {success, data | error, errorCode, action}

A resolver that misses its deadline is reported as a timeout error and
abandoned; its late result is never used. The executor is shut down with
cancel_futures so nothing queued outlives the request, and an abandoned
resolver thread that is still running no longer writes to the response
cache.

A record that cannot be stored is not returned: the caller gets an error
record instead, so every returned record can be fetched again by id.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.config import FusionConfig, settings
from ..core.errors import ApiErrorRecord, ErrorAction, ErrorCode, UpstreamError, classify, describe
from ..core.models import (
    GEOMETRY_DB,
    AnalysisRecord,
    Confidence,
    Coordinate,
    FinancialInputs,
    ImageryQuality,
    LayerView,
    Polygon,
    PolygonSource,
)
from ..core.normalizer import Err, Ok, to_caller_response
from ..db.repository import AnalysisStore, create_store
from ..geo.footprint_resolver import FootprintResolver
from ..geo.geocoder import NominatimGeocoder
from ..ingest.response_cache import ResponseCache, abandon_on
from .fusion import FusionEngine
from .irradiation_resolver import IrradiationResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRequest:
    """One viability analysis request."""
    coordinate: Optional[Coordinate] = None
    address: Optional[str] = None
    polygon: Optional[Polygon] = None
    polygon_confidence: Optional[Confidence] = None

    # Imagery parameters
    radius_m: Optional[float] = None
    view: LayerView = LayerView.FULL_LAYERS
    quality: ImageryQuality = ImageryQuality.HIGH
    pixel_size_m: float = 0.1
    exact_quality: bool = False

    # Technician costs for a payback estimate
    financial: Optional[FinancialInputs] = None


class AnalysisService:
    """
    Orchestrates resolvers, fusion and persistence.

    Usage:
        service = AnalysisService()
        outcome = service.analyze(AnalysisRequest(coordinate=Coordinate(-23.55, -46.63)))
        response = service.respond(outcome)
    """

    def __init__(
        self,
        footprint_resolver: Optional[FootprintResolver] = None,
        irradiation_resolver: Optional[IrradiationResolver] = None,
        engine: Optional[FusionEngine] = None,
        store: Optional[AnalysisStore] = None,
        geocoder: Optional[NominatimGeocoder] = None,
        footprint_timeout_s: Optional[float] = None,
        irradiation_timeout_s: Optional[float] = None,
    ):
        if footprint_resolver is None or irradiation_resolver is None:
            cache = ResponseCache()
            footprint_resolver = footprint_resolver or FootprintResolver(cache=cache)
            irradiation_resolver = irradiation_resolver or IrradiationResolver(cache=cache)
        self.footprints = footprint_resolver
        self.irradiation = irradiation_resolver
        self.engine = engine or FusionEngine()
        self.store = store if store is not None else create_store()
        self.geocoder = geocoder or NominatimGeocoder()
        self.footprint_timeout_s = footprint_timeout_s or settings.footprint_timeout_s
        self.irradiation_timeout_s = irradiation_timeout_s or settings.irradiation_timeout_s

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def analyze(
        self,
        request: AnalysisRequest,
        config: Optional[FusionConfig] = None,
        version: int = 1,
        parent_id: Optional[str] = None,
    ) -> Union[AnalysisRecord, ApiErrorRecord]:
        """
        Run one analysis and store the record.

        Returns:
            The stored AnalysisRecord, or an ApiErrorRecord. A record the
            store rejects is reported as ANALYSIS_FAILED (or the store's
            auth/credits error) and not returned.
        """
        coordinate = request.coordinate
        if coordinate is None:
            if not request.address:
                return describe(ErrorCode.INVALID_ADDRESS)
            try:
                coordinate = self.geocoder.geocode(request.address)
            except UpstreamError as e:
                logger.warning("Geocoding failed: %s", e, extra={"error_code": e.code.value})
                return e.to_record()

        footprint, irradiation = self._resolve_concurrently(coordinate, request)

        engine = self.engine if config is None else FusionEngine(config)
        outcome = engine.fuse(
            coordinate, footprint, irradiation,
            version=version, parent_id=parent_id, financial_inputs=request.financial,
        )
        if isinstance(outcome, AnalysisRecord):
            try:
                self.store.save(outcome)
            except Exception as e:
                error = self._storage_error(e)
                logger.exception(
                    "Could not store analysis %s", outcome.id,
                    extra={"analysis_id": outcome.id, "error_code": error.code.value},
                )
                return error
        return outcome

    def reanalyze(
        self,
        analysis_id: str,
        polygon: Optional[Polygon] = None,
        overrides: Optional[Dict[str, Any]] = None,
        financial: Optional[FinancialInputs] = None,
    ) -> Union[AnalysisRecord, ApiErrorRecord, None]:
        """
        Re-run a stored analysis as a new version.

        Args:
            analysis_id: Record to re-run
            polygon: New user-drawn roof; defaults to the previous drawn roof
            overrides: FusionConfig fields to change (e.g. panel_power_w, panel_count)
            financial: Technician costs for the new version's payback estimate

        Returns:
            New record with version + 1 and parent_id set, an
            ApiErrorRecord, or None if analysis_id is unknown.
        """
        previous = self.store.get(analysis_id)
        if previous is None:
            return None

        if polygon is None and previous.footprint is not None \
                and previous.footprint.source is PolygonSource.USER_DRAWN:
            polygon = previous.footprint

        config = self.engine.config
        if overrides:
            config = replace(config, **overrides)

        request = AnalysisRequest(coordinate=previous.coordinates, polygon=polygon, financial=financial)
        return self.analyze(request, config=config, version=previous.version + 1, parent_id=previous.id)

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        return self.store.get(analysis_id)

    def history(self, analysis_id: str) -> Optional[Dict[str, List[AnalysisRecord]]]:
        """
        Version timeline of a record.

        Returns:
            {"versions": the record and its ancestors, oldest first,
             "children": records re-analyzed directly from it}, or None if
            analysis_id is unknown.
        """
        versions = self.store.history(analysis_id)
        if not versions:
            return None
        return {"versions": versions, "children": self.store.children(analysis_id)}

    @staticmethod
    def respond(outcome: Union[AnalysisRecord, ApiErrorRecord]) -> Dict[str, Any]:
        """Caller-facing response for an analysis outcome."""
        wrapped = Err(outcome) if isinstance(outcome, ApiErrorRecord) else Ok(outcome)
        return to_caller_response(wrapped, serialize=lambda record: record.to_dict())

    # =========================================================================
    # INTERNAL
    # =========================================================================

    @staticmethod
    def _storage_error(error: Exception) -> ApiErrorRecord:
        """Auth and credit failures keep their code; anything else is ANALYSIS_FAILED."""
        record = describe(classify(str(error)))
        if record.action in (ErrorAction.LOGIN, ErrorAction.BUY_CREDITS):
            return record
        return describe(ErrorCode.ANALYSIS_FAILED)

    @staticmethod
    def _run_resolver(abandoned: threading.Event, resolve: Callable[..., Any], *args: Any) -> Any:
        with abandon_on(abandoned):
            return resolve(*args)

    def _resolve_concurrently(self, coordinate: Coordinate, request: AnalysisRequest):
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="solarscope-resolver")
        # Set once the request stops waiting; late resolvers then skip cache writes
        abandoned = threading.Event()
        started = time.monotonic()
        try:
            footprint_future = executor.submit(
                self._run_resolver, abandoned,
                self.footprints.resolve, coordinate, request.polygon, request.polygon_confidence,
            )
            irradiation_future = executor.submit(
                self._run_resolver, abandoned,
                self.irradiation.resolve,
                coordinate,
                request.radius_m,
                request.view,
                request.quality,
                request.pixel_size_m,
                request.exact_quality,
            )

            footprint = self._join(
                footprint_future, started + self.footprint_timeout_s, ErrorCode.FOOTPRINT_TIMEOUT, GEOMETRY_DB
            )
            irradiation = self._join(
                irradiation_future, started + self.irradiation_timeout_s, ErrorCode.NETWORK_ERROR, "irradiation"
            )
        finally:
            abandoned.set()
            executor.shutdown(wait=False, cancel_futures=True)
        return footprint, irradiation

    @staticmethod
    def _join(future: Future, deadline: float, timeout_code: ErrorCode, name: str):
        """Result of a resolver future, or an error record on timeout/crash."""
        remaining = max(0.0, deadline - time.monotonic())
        try:
            return future.result(timeout=remaining)
        except FutureTimeout:
            future.cancel()
            logger.warning("%s resolver timed out", name, extra={"provider": name, "error_code": timeout_code.value})
            return describe(timeout_code)
        except Exception as e:
            logger.exception("%s resolver crashed", name, extra={"provider": name})
            return describe(classify(str(e)))
