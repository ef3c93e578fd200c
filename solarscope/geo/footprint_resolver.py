"""
Footprint Resolver for SolarScope

Resolves the roof polygon for a coordinate from building footprint sources.

Priority:
1. Caller-drawn polygon (passed straight through, no network)
2. Footprint database behind the backend edge function (Microsoft
   Building Footprints), when configured
3. OpenStreetMap buildings via Overpass

Outcomes:
- FootprintResult with a polygon: building found
- FootprintResult without a polygon, advisory FOOTPRINT_NOT_FOUND: nothing
  in range, the caller should draw the roof manually (not an error)
- ApiErrorRecord: FOOTPRINT_TIMEOUT, FOOTPRINT_INVALID or a transport error

Usage:
    resolver = FootprintResolver()
    outcome = resolver.resolve(Coordinate(-23.5505, -46.6333))
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from ..core.config import settings
from ..core.coordinates import (
    WGS84_GEOD,
    azimuth_deviation,
    close_ring,
    contains_point,
    equator_azimuth,
    haversine_distance_m,
    ring_centroid,
)
from ..core.errors import ApiErrorRecord, ErrorCode, UpstreamError, describe
from ..core.models import (
    GEOMETRY_DB,
    Confidence,
    Coordinate,
    FootprintResult,
    Polygon,
    PolygonSource,
)
from ..ingest.edge_functions import EdgeFunctionClient
from ..ingest.http_client import create_session, request_json
from ..ingest.response_cache import ResponseCache

logger = logging.getLogger(__name__)

Candidate = Dict[str, Any]

# Typical roof pitch by OSM building tag
TILT_BY_BUILDING_TYPE = {
    "house": 20.0,
    "residential": 20.0,
    "detached": 20.0,
    "commercial": 5.0,
    "industrial": 5.0,
    "retail": 5.0,
    "warehouse": 5.0,
}
DEFAULT_TILT_DEG = 15.0


# =============================================================================
# GEOMETRY HELPERS
# =============================================================================

def roof_azimuth(ring_lnglat: Sequence[Sequence[float]]) -> float:
    """
    Azimuth of the best-oriented roof face, degrees clockwise from north (0-360).

    Roof faces are taken to slope down toward the long edges of the footprint
    (edges at least half as long as the longest one). Of the directions
    perpendicular to those edges, the one closest to the equator wins. Used
    when the source has no orientation of its own.
    """
    ring = close_ring(ring_lnglat)
    edges = []
    for (lng1, lat1), (lng2, lat2) in zip(ring, ring[1:]):
        forward, _back, length = WGS84_GEOD.inv(lng1, lat1, lng2, lat2)
        edges.append((forward % 360, length))
    if not edges:
        return 0.0

    longest = max(length for _, length in edges)
    target = equator_azimuth(sum(lat for _, lat in ring[:-1]) / (len(ring) - 1))
    normals = [
        (bearing + turn) % 360
        for bearing, length in edges
        if length >= longest / 2
        for turn in (90.0, 270.0)
    ]
    best = min(normals, key=lambda normal: azimuth_deviation(normal, target))
    return round(best, 1) % 360


def confidence_by_distance(distance_m: float) -> Confidence:
    """Confidence from distance between the point and the building."""
    if distance_m < 15:
        return Confidence.HIGH
    elif distance_m < 50:
        return Confidence.MEDIUM
    else:
        return Confidence.LOW


def _asserted_confidence(candidate: Candidate) -> Optional[Confidence]:
    value = candidate.get("confidence")
    if not value:
        return None
    try:
        return Confidence(value)
    except ValueError:
        logger.debug("Ignoring unknown confidence %r", value)
        return None


def _distance_to_candidate(candidate: Candidate, coordinate: Coordinate) -> float:
    ring = candidate["ring"]
    if contains_point(ring, coordinate.lat, coordinate.lng):
        return 0.0
    lng, lat = ring_centroid(ring)
    return haversine_distance_m(coordinate.lat, coordinate.lng, lat, lng)


# =============================================================================
# PROVIDERS
# =============================================================================

class OverpassFootprintProvider:
    """OSM buildings within a radius, via the Overpass API."""

    name = "osm"
    # Returns every building in range, so the rest count as neighbors
    radius_query = True

    def __init__(
        self,
        url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_s: Optional[float] = None,
    ):
        self.url = url or settings.overpass_url
        self.timeout_s = timeout_s or settings.http_timeout_s
        self._session = session or create_session()

    def lookup(self, coordinate: Coordinate, radius_m: float) -> List[Candidate]:
        """
        All buildings within radius_m, as lng-first candidates.

        Raises:
            UpstreamError: On transport failure or an Overpass-side timeout.
        """
        query = f"""
        [out:json][timeout:10];
        way["building"](around:{radius_m},{coordinate.lat},{coordinate.lng});
        out geom;
        """
        data = request_json(
            self._session,
            "POST",
            self.url,
            provider=self.name,
            timeout=self.timeout_s,
            timeout_code=ErrorCode.FOOTPRINT_TIMEOUT,
            data={"data": query},
        ) or {}

        # Overpass reports its own query timeout as a 200 with a remark
        remark = str(data.get("remark") or "")
        if "timed out" in remark.lower():
            raise UpstreamError(ErrorCode.FOOTPRINT_TIMEOUT, remark, self.name)

        candidates = []
        for element in data.get("elements", []):
            geometry = element.get("geometry") or []
            if len(geometry) < 3:
                continue
            tags = element.get("tags") or {}
            candidates.append({
                # Overpass nodes are lat/lon objects; store lng-first
                "ring": [[node["lon"], node["lat"]] for node in geometry],
                "source": "OpenStreetMap",
                "osm_id": str(element.get("id")),
                "tilt": TILT_BY_BUILDING_TYPE.get(tags.get("building", "yes"), DEFAULT_TILT_DEG),
            })
        return candidates


class EdgeFunctionFootprintProvider:
    """Footprint database lookup through the backend's footprints function."""

    name = "footprint_db"
    radius_query = False

    def __init__(self, client: Optional[EdgeFunctionClient] = None, function_name: Optional[str] = None):
        self.client = client or EdgeFunctionClient()
        self.function_name = function_name or settings.footprints_function

    @property
    def configured(self) -> bool:
        return self.client.configured

    def lookup(self, coordinate: Coordinate, radius_m: float) -> List[Candidate]:
        data = self.client.invoke(
            self.function_name,
            {"lat": coordinate.lat, "lng": coordinate.lng},
            timeout_code=ErrorCode.FOOTPRINT_TIMEOUT,
        )
        polygon = data.get("polygon")
        if not polygon:
            return []

        try:
            # GeoJSON, already lng-first
            ring = [[float(p[0]), float(p[1])] for p in polygon["coordinates"][0]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamError(ErrorCode.FOOTPRINT_INVALID, f"Unparseable footprint polygon: {e}", self.name) from e

        return [{
            "ring": ring,
            "source": data.get("source") or "Building Footprints DB",
            "area": data.get("area"),
            "confidence": data.get("confidence"),
            "azimuth": data.get("azimuth"),
            "tilt": data.get("tilt"),
        }]


FootprintProvider = Union[EdgeFunctionFootprintProvider, OverpassFootprintProvider]


def default_providers() -> List[FootprintProvider]:
    """Edge-function DB first when configured, then Overpass."""
    providers: List[FootprintProvider] = []
    edge = EdgeFunctionFootprintProvider()
    if edge.configured:
        providers.append(edge)
    providers.append(OverpassFootprintProvider())
    return providers


# =============================================================================
# RESOLVER
# =============================================================================

class FootprintResolver:
    """
    Resolves the roof polygon for a coordinate.

    Provider failures do not stop the chain: if one provider fails and a
    later one finds the building, the building wins. Only when nothing was
    found and some provider failed is the failure reported.
    """

    def __init__(
        self,
        providers: Optional[List[FootprintProvider]] = None,
        search_radius_m: Optional[float] = None,
        cache: Optional[ResponseCache] = None,
    ):
        self.providers = providers if providers is not None else default_providers()
        self.search_radius_m = search_radius_m or settings.footprint_search_radius_m
        self.cache = cache

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def resolve(
        self,
        coordinate: Coordinate,
        polygon: Optional[Polygon] = None,
        confidence: Optional[Confidence] = None,
    ) -> Union[FootprintResult, ApiErrorRecord]:
        """
        Resolve the roof footprint at a coordinate.

        Args:
            coordinate: Point of interest
            polygon: Caller-drawn roof; skips every provider when given
            confidence: Caller-asserted confidence for the drawn polygon

        Returns:
            FootprintResult (possibly without polygon) or ApiErrorRecord.
        """
        if polygon is not None:
            return FootprintResult(
                polygon=polygon,
                area_m2=polygon.area_m2,
                confidence=confidence or Confidence.HIGH,
                source=polygon.source.value,
                azimuth_deg=roof_azimuth(polygon.ring),
            )

        failures: List[UpstreamError] = []
        for provider in self.providers:
            try:
                cache_id, candidates = self._lookup(provider, coordinate)
            except UpstreamError as e:
                if e.code is ErrorCode.FOOTPRINT_NOT_FOUND:
                    logger.debug("Footprint provider %s has no building here", provider.name)
                    continue
                logger.warning(
                    "Footprint provider %s failed: %s", provider.name, e,
                    extra={"provider": provider.name, "error_code": e.code.value},
                )
                failures.append(e)
                continue

            if not candidates:
                continue

            try:
                result = self._best_candidate(candidates, coordinate, cache_id)
            except UpstreamError as e:
                failures.append(e)
                continue

            if provider.radius_query:
                result.neighbor_count = len(candidates) - 1
            return result

        if failures:
            return describe(self._failure_code(failures[0]))

        logger.info("No footprint found near %.6f, %.6f", coordinate.lat, coordinate.lng)
        return FootprintResult(
            polygon=None,
            confidence=Confidence.LOW,
            source="none",
            neighbor_count=0,
            advisory=describe(ErrorCode.FOOTPRINT_NOT_FOUND),
        )

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _lookup(self, provider: FootprintProvider, coordinate: Coordinate):
        def load():
            candidates = provider.lookup(coordinate, self.search_radius_m)
            return {"candidates": candidates} if candidates else None

        if self.cache is None:
            data = load()
            return None, (data or {}).get("candidates", [])

        params = {"lat": coordinate.lat, "lng": coordinate.lng, "radius_m": self.search_radius_m}
        cache_id, data = self.cache.fetch(f"{GEOMETRY_DB}_{provider.name}", params, load)
        if not data:
            return None, []
        return cache_id, data["candidates"]

    def _best_candidate(
        self,
        candidates: List[Candidate],
        coordinate: Coordinate,
        cache_id: Optional[str],
    ) -> FootprintResult:
        """Building containing the point, else the nearest one."""
        polygons = []
        for candidate in candidates:
            try:
                polygon = Polygon(ring=tuple(map(tuple, candidate["ring"])), source=PolygonSource.BUILDING_FOOTPRINT_DB)
            except (ValueError, TypeError) as e:
                logger.debug("Skipping degenerate footprint: %s", e)
                continue
            polygons.append((candidate, polygon))

        if not polygons:
            raise UpstreamError(ErrorCode.FOOTPRINT_INVALID, "No valid footprint geometry", GEOMETRY_DB)

        distances = [_distance_to_candidate(c, coordinate) for c, _ in polygons]
        index = min(range(len(polygons)), key=lambda i: distances[i])
        candidate, polygon = polygons[index]
        distance = distances[index]

        area = candidate.get("area") or polygon.area_m2
        if area <= 0:
            raise UpstreamError(ErrorCode.FOOTPRINT_INVALID, "Footprint has zero area", GEOMETRY_DB)

        azimuth = candidate.get("azimuth")
        if azimuth is None:
            azimuth = roof_azimuth(polygon.ring)

        logger.info(
            "Footprint from %s: %.1f m² at %.1f m", candidate["source"], area, distance,
            extra={"provider": GEOMETRY_DB, "cache_id": cache_id},
        )
        return FootprintResult(
            polygon=polygon,
            area_m2=float(area),
            confidence=_asserted_confidence(candidate) or confidence_by_distance(distance),
            source=candidate["source"],
            azimuth_deg=float(azimuth) % 360,
            tilt_deg=candidate.get("tilt"),
            cache_id=cache_id,
        )

    @staticmethod
    def _failure_code(error: UpstreamError) -> ErrorCode:
        # Codes that only make sense for the whole analysis collapse to a transport error
        if error.code in (ErrorCode.UNKNOWN_ERROR, ErrorCode.GEOCODING_FAILED, ErrorCode.ANALYSIS_FAILED):
            return ErrorCode.EDGE_FUNCTION_ERROR
        return error.code


def footprint_to_dict(result: FootprintResult) -> Dict[str, Any]:
    """Dashboard shape: lat-first ring, pt-BR confidence."""
    if not result.found:
        return {
            "success": True,
            "data": None,
            "advisory": result.advisory.to_response() if result.advisory else None,
        }
    return {
        "success": True,
        "data": {
            "coordinates": result.polygon.to_latlng(),
            "area": round(result.area_m2, 2),
            "confidence": result.confidence.value,
            "source": result.source,
            "azimuth": result.azimuth_deg,
            "tilt": result.tilt_deg,
        },
    }
