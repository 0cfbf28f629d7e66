"""
Local geodesy helpers.

Small-displacement conversions between metres and degrees, plus
great-circle distance and bearing between two fixes.

The metres-per-degree factor is the flat approximation used by dead
reckoning (1 degree of latitude = 111,111 m). It is only accurate for
short displacements, which is all dead reckoning ever produces.
"""

import math
from typing import Tuple

METERS_PER_DEGREE_LAT = 111_111.0
EARTH_RADIUS_M = 6371008.8

# cos(latitude) is clamped to this value so longitude deltas stay finite at the poles
MIN_COS_LAT = 1e-6


def meters_per_degree_lon(latitude_deg: float, min_cos_lat: float = MIN_COS_LAT) -> float:
    """
    Metres spanned by one degree of longitude at a latitude.

    Args:
        latitude_deg: Latitude (degrees)
        min_cos_lat: Floor applied to cos(latitude)

    Returns:
        Metres per degree of longitude (always > 0)
    """
    cos_lat = abs(math.cos(math.radians(latitude_deg)))
    return METERS_PER_DEGREE_LAT * max(cos_lat, min_cos_lat)


def offset_position(
    latitude_deg: float,
    longitude_deg: float,
    north_m: float,
    east_m: float,
    min_cos_lat: float = MIN_COS_LAT,
) -> Tuple[float, float]:
    """
    Move a position by a local north/east displacement.

    Args:
        latitude_deg: Start latitude (degrees)
        longitude_deg: Start longitude (degrees)
        north_m: Northward displacement (m)
        east_m: Eastward displacement (m)
        min_cos_lat: Floor applied to cos(latitude)

    Returns:
        (latitude, longitude) after the displacement
    """
    d_lat = north_m / METERS_PER_DEGREE_LAT
    d_lon = east_m / meters_per_degree_lon(latitude_deg, min_cos_lat)

    latitude = max(-90.0, min(90.0, latitude_deg + d_lat))
    longitude = _wrap_longitude(longitude_deg + d_lon)
    return latitude, longitude


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance between two points in metres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Initial bearing from point 1 to point 2.

    Returns:
        Bearing in degrees, clockwise from true north, in [0, 360)
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_lambda = math.radians(lon2 - lon1)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    return math.degrees(math.atan2(y, x)) % 360.0


def _wrap_longitude(longitude_deg: float) -> float:
    """Wrap longitude into [-180, 180)."""
    if -180.0 <= longitude_deg < 180.0:
        return longitude_deg
    return ((longitude_deg + 180.0) % 360.0) - 180.0
