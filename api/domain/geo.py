# SPDX-License-Identifier: Apache-2.0

"""
Geospatial helpers for case and volunteer matching.

Distances use the Haversine formula on a spherical Earth. Bounding boxes are
coarse, conservative prefilters: a box may contain points farther than the
radius but never leaves out a point within it.
"""

import math
from dataclasses import dataclass

from models.entities import GeoPoint

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


@dataclass(frozen=True)
class BoundingBox:
    """Latitude/longitude rectangle used as a storage prefilter."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def spans_all_longitudes(self) -> bool:
        return self.min_lng <= -180.0 and self.max_lng >= 180.0

    def contains(self, point: GeoPoint) -> bool:
        if not self.min_lat <= point.latitude <= self.max_lat:
            return False
        return self.min_lng <= point.longitude <= self.max_lng


def distance_km(p1: GeoPoint, p2: GeoPoint) -> float:
    """
    Great-circle distance between two points.

    Args:
        p1: First point
        p2: Second point

    Returns:
        Distance in kilometers, symmetric and zero for identical points
    """
    lat1 = math.radians(p1.latitude)
    lat2 = math.radians(p2.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(p2.longitude - p1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Rounding can push a marginally above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(center: GeoPoint, radius_km: float) -> BoundingBox:
    """
    Build a rectangle enclosing every point within radius_km of center.

    The longitude span is widened using the cosine of the box's poleward
    latitude edge. When the box touches a pole or crosses the antimeridian
    the full longitude range is returned.

    Args:
        center: Center of the search
        radius_km: Search radius in kilometers

    Returns:
        BoundingBox with latitude clamped to [-90, 90]
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    min_lat = max(-90.0, center.latitude - lat_delta)
    max_lat = min(90.0, center.latitude + lat_delta)

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    poleward = max(abs(min_lat), abs(max_lat))
    lng_delta = radius_km / (KM_PER_DEGREE_LAT * math.cos(math.radians(poleward)))
    min_lng = center.longitude - lng_delta
    max_lng = center.longitude + lng_delta

    if lng_delta >= 180.0 or min_lng < -180.0 or max_lng > 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    return BoundingBox(min_lat, max_lat, min_lng, max_lng)
