"""
Great-circle distance helpers.
Spherical-earth haversine; inputs are assumed to be valid finite degrees.
"""

import math

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Haversine distance between two coordinates.

    Args:
        lat1: Latitude of the first point in degrees
        lng1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lng2: Longitude of the second point in degrees

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def format_distance(meters: float) -> str:
    """Human readable distance: whole meters below 1 km, else km to 2 decimals."""
    rounded = round(meters)
    if rounded < 1000:
        return f"{rounded}m"
    return f"{meters / 1000:.2f} km"
