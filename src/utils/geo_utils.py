"""
Geographic utility functions.

Great-circle distance and spherical Web-Mercator projection helpers.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Tuple

if TYPE_CHECKING:
    from src.models import GeoPoint

Coord = Tuple[float, float]  # (lat, lon)
Pixel = Tuple[float, float]  # (x, y) in world pixels

EARTH_RADIUS_M = 6_371_000
TILE_SIZE = 256
SIN_LAT_LIMIT = 0.9999


def haversine_distance(coord1: Coord, coord2: Coord) -> float:
    """
    Calculate the great-circle distance between two points in meters.

    Args:
        coord1: (lat, lon) in degrees.
        coord2: (lat, lon) in degrees.

    Returns:
        Distance in meters.
    """
    lat1, lon1 = math.radians(coord1[0]), math.radians(coord1[1])
    lat2, lon2 = math.radians(coord2[0]), math.radians(coord2[1])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(math.sqrt(a))

    return EARTH_RADIUS_M * c


def point_distance(p1: GeoPoint, p2: GeoPoint) -> float:
    """Distance in meters between two GeoPoints."""
    return haversine_distance(p1.coord, p2.coord)


def project(lat: float, lon: float, zoom: int, tile_size: int = TILE_SIZE) -> Pixel:
    """
    Project (lat, lon) to world pixel coordinates at a zoom level.

    sin(lat) is clamped so latitudes near the poles stay finite.
    """
    sin_lat = math.sin(math.radians(lat))
    sin_lat = min(max(sin_lat, -SIN_LAT_LIMIT), SIN_LAT_LIMIT)

    world_size = tile_size * 2 ** zoom
    x = world_size * (lon + 180) / 360
    y = world_size * (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi))
    return (x, y)


def optimal_zoom(
    coord1: Coord,
    coord2: Coord,
    width: int,
    height: int,
    padding: int,
    max_zoom: int = 19,
    fallback_zoom: int = 15,
) -> int:
    """
    Highest zoom at which both coordinates fit the canvas with padding.

    Scans from max_zoom down to 0. A zoom fits when the projected span
    plus padding on both sides is no larger than the canvas on each axis.
    """
    for zoom in range(max_zoom, -1, -1):
        x1, y1 = project(coord1[0], coord1[1], zoom)
        x2, y2 = project(coord2[0], coord2[1], zoom)
        if abs(x1 - x2) + 2 * padding <= width and abs(y1 - y2) + 2 * padding <= height:
            return zoom
    return fallback_zoom


def tile_range(origin: float, span: int, tile_size: int = TILE_SIZE) -> range:
    """Tile indices covering [origin, origin + span] along one axis."""
    first = math.floor(origin / tile_size)
    last = math.floor((origin + span) / tile_size)
    return range(first, last + 1)
