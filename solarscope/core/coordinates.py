"""
Coordinate and polygon geometry utilities.

Handles:
- Axis order: the engine stores rings longitude-first ([lng, lat], GeoJSON
  order); the dashboard draws latitude-first ([lat, lng]). Conversion happens
  here and nowhere else.
- Geodesic polygon area on the WGS84 ellipsoid (pyproj.Geod)
- Distances and centroids for footprint ranking
"""

from __future__ import annotations

import math
from typing import Sequence

from pyproj import Geod
from shapely.geometry import Polygon as ShapelyPolygon

WGS84_GEOD = Geod(ellps="WGS84")

EARTH_RADIUS_M = 6371000

LngLat = tuple[float, float]


def swap_axes(ring: Sequence[Sequence[float]]) -> list[tuple[float, float]]:
    """Swap [a, b] -> (b, a) for every vertex. Works in both directions."""
    return [(float(p[1]), float(p[0])) for p in ring]


def close_ring(ring: Sequence[Sequence[float]]) -> list[tuple[float, float]]:
    """Return the ring as tuples, appending the first vertex if it is open."""
    coords = [(float(p[0]), float(p[1])) for p in ring]
    if coords and coords[0] != coords[-1]:
        coords.append(coords[0])
    return coords


def polygon_area_m2(ring_lnglat: Sequence[Sequence[float]]) -> float:
    """
    Geodesic area of a lng-first ring in m².

    Args:
        ring_lnglat: Closed or open ring of (lng, lat) vertices

    Returns:
        Absolute area in m² (winding order does not matter)
    """
    coords = close_ring(ring_lnglat)
    if len(coords) < 4:
        return 0.0
    area, _perimeter = WGS84_GEOD.geometry_area_perimeter(ShapelyPolygon(coords))
    return abs(area)


def ring_centroid(ring_lnglat: Sequence[Sequence[float]]) -> LngLat:
    """Planar centroid of a lng-first ring (fine at building scale)."""
    centroid = ShapelyPolygon(close_ring(ring_lnglat)).centroid
    return (centroid.x, centroid.y)


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (math.sin(dphi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2)
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def contains_point(ring_lnglat: Sequence[Sequence[float]], lat: float, lng: float) -> bool:
    """True if (lat, lng) falls inside the lng-first ring."""
    from shapely.geometry import Point

    return ShapelyPolygon(close_ring(ring_lnglat)).contains(Point(lng, lat))


def azimuth_deviation(azimuth: float, target: float) -> float:
    """Smallest angle between two azimuths, 0-180 degrees."""
    diff = abs(azimuth - target) % 360
    return min(diff, 360 - diff)


def equator_azimuth(lat: float) -> float:
    """Azimuth of a roof face pointing at the equator (north in the southern hemisphere)."""
    return 0.0 if lat < 0 else 180.0
