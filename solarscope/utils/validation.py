"""
Input validation utilities for SolarScope.

Checks caller input at the API/CLI boundary before anything reaches the
resolvers: coordinates, addresses, drawn roof polygons and imagery
request parameters.

Usage:
    from solarscope.utils.validation import (
        validate_coordinates,
        validate_polygon,
        ValidationError,
    )

    coordinate = validate_coordinates(-23.5505, -46.6333)
    polygon = validate_polygon([[-23.55, -46.63], [-23.55, -46.62], [-23.54, -46.62]])
"""

import logging
import math
from typing import List, Optional, Sequence

from ..core.errors import ErrorCode
from ..core.models import Coordinate, Polygon, PolygonSource

logger = logging.getLogger(__name__)

# Brazil bounding box, the product's home market
BRAZIL_BOUNDS = {
    "min_lat": -34.0,
    "max_lat": 5.5,
    "min_lon": -74.0,
    "max_lon": -34.5,
}

MAX_POLYGON_AREA_M2 = 50_000
# Below this a ring is treated as degenerate (collinear or repeated vertices)
MIN_POLYGON_AREA_M2 = 0.01
MAX_RADIUS_M = 175
MIN_PIXEL_SIZE_M = 0.1


class ValidationError(ValueError):
    """Raised when input validation fails."""

    code = ErrorCode.INVALID_ADDRESS

    def __init__(self, message: str, field: str = "", suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field = field
        self.suggestions = suggestions or []


def validate_coordinates(
    latitude: float,
    longitude: float,
    warn_outside_brazil: bool = True,
) -> Coordinate:
    """
    Validate geographic coordinates.

    Args:
        latitude: Latitude in decimal degrees
        longitude: Longitude in decimal degrees
        warn_outside_brazil: Log a warning when outside the main market

    Returns:
        Coordinate

    Raises:
        ValidationError: If coordinates are invalid
    """
    try:
        latitude = float(latitude)
        longitude = float(longitude)
    except (TypeError, ValueError):
        raise ValidationError("Coordinates must be numbers", field="coordinates")

    if math.isnan(latitude) or math.isnan(longitude):
        raise ValidationError("Coordinates must be numbers", field="coordinates")

    if not (-90 <= latitude <= 90):
        raise ValidationError(
            f"Invalid latitude {latitude}: must be between -90 and 90",
            field="latitude",
        )

    if not (-180 <= longitude <= 180):
        raise ValidationError(
            f"Invalid longitude {longitude}: must be between -180 and 180",
            field="longitude",
            suggestions=["Check that latitude and longitude are not swapped"],
        )

    if warn_outside_brazil:
        in_brazil = (
            BRAZIL_BOUNDS["min_lat"] <= latitude <= BRAZIL_BOUNDS["max_lat"]
            and BRAZIL_BOUNDS["min_lon"] <= longitude <= BRAZIL_BOUNDS["max_lon"]
        )
        if not in_brazil:
            logger.warning(
                "Coordinates (%s, %s) are outside Brazil - footprint coverage may be limited",
                latitude, longitude,
            )

    return Coordinate(latitude, longitude)


def validate_address(address: Optional[str]) -> str:
    """
    Validate a free-text address.

    Raises:
        ValidationError: If the address is empty or obviously incomplete
    """
    cleaned = " ".join((address or "").split())
    if not cleaned:
        raise ValidationError(
            "Address cannot be empty",
            field="address",
            suggestions=["Enter an address like 'Av. Paulista 1000, São Paulo'"],
        )
    if len(cleaned) < 5 or not any(ch.isalpha() for ch in cleaned):
        raise ValidationError(
            f"Address too short or incomplete: {cleaned!r}",
            field="address",
            suggestions=["Include street name and city"],
        )
    return cleaned


def validate_polygon(
    ring_latlng: Sequence[Sequence[float]],
    source: PolygonSource = PolygonSource.USER_DRAWN,
) -> Polygon:
    """
    Validate a latitude-first ring drawn by the user.

    Returns:
        Polygon stored longitude-first

    Raises:
        ValidationError: If the ring is degenerate or implausibly large
    """
    try:
        for point in ring_latlng:
            if len(point) != 2:
                raise ValueError("every vertex needs exactly [lat, lng]")
            validate_coordinates(point[0], point[1], warn_outside_brazil=False)
        polygon = Polygon.from_latlng([list(p) for p in ring_latlng], source)
    except ValidationError as e:
        raise ValidationError(f"Invalid polygon vertex: {e}", field="polygon") from e
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid polygon: {e}", field="polygon") from e

    area = polygon.area_m2
    if area < MIN_POLYGON_AREA_M2:
        raise ValidationError("Polygon has zero area", field="polygon")
    if area > MAX_POLYGON_AREA_M2:
        raise ValidationError(
            f"Polygon area {area:.0f} m² exceeds {MAX_POLYGON_AREA_M2} m²",
            field="polygon",
            suggestions=["Draw only the roof of the building being analyzed"],
        )
    return polygon


def validate_imagery_request(radius_m: float, pixel_size_m: float) -> None:
    """
    Validate data-layer request parameters.

    Raises:
        ValidationError: If radius or pixel size is out of range
    """
    if not 0 < radius_m <= MAX_RADIUS_M:
        raise ValidationError(f"radius must be in (0, {MAX_RADIUS_M}] m", field="radius")
    if pixel_size_m < MIN_PIXEL_SIZE_M:
        raise ValidationError(f"pixel size must be at least {MIN_PIXEL_SIZE_M} m", field="pixel_size")
