"""Shared geodesic distance utilities.

Haversine distances plus the point-to-route distance used to place checkpoints
and danger zones relative to a convoy route.
"""
from __future__ import annotations

import math
from typing import Sequence

_EARTH_RADIUS_KM: float = 6371.0088  # Earth mean radius in kilometres


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two WGS-84 coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return _EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def point_to_segment_km(
    lat: float, lon: float,
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """Distance in km from a point to the segment (lat1, lon1)-(lat2, lon2).

    Projects onto a local equirectangular plane centred on the point to find the
    closest position on the segment, then measures it with haversine. Accurate
    for segments up to a few hundred km, which covers road convoy legs.
    """
    cos_lat = math.cos(math.radians(lat))
    ax, ay = (lon1 - lon) * cos_lat, lat1 - lat
    bx, by = (lon2 - lon) * cos_lat, lat2 - lat
    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0.0:
        return haversine_km(lat, lon, lat1, lon1)
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / seg_len_sq))
    return haversine_km(lat, lon, lat1 + t * (lat2 - lat1), lon1 + t * (lon2 - lon1))


def distance_to_route_km(lat: float, lon: float, route: Sequence[Sequence[float]]) -> float | None:
    """Shortest distance in km from a point to a polyline of (lat, lon) pairs.

    Returns None for an empty route.
    """
    if not route:
        return None
    if len(route) == 1:
        return haversine_km(lat, lon, route[0][0], route[0][1])
    return min(
        point_to_segment_km(lat, lon, a[0], a[1], b[0], b[1])
        for a, b in zip(route, route[1:])
    )
