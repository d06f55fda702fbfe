"""
Great-circle helpers for the tracking engine.
"""

import math

EARTH_RADIUS_MILES = 3959.0
METERS_PER_MILE = 1609.344
MPS_TO_MPH = 2.236936


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Same as haversine_miles, in meters (used for debouncing)."""
    return haversine_miles(lat1, lon1, lat2, lon2) * METERS_PER_MILE


def mps_to_mph(speed_mps: float) -> float:
    return speed_mps * MPS_TO_MPH
