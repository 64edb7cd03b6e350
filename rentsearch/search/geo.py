"""
Geo Utilities
Haversine distance and bounding boxes for radius filtering.
"""

import math
from typing import Sequence, Tuple

import numpy as np

EARTH_RADIUS_KM = 6371.0088


def haversine_km_batch(
    lat: float, lon: float, lats: Sequence[float], lons: Sequence[float]
) -> np.ndarray:
    """
    Distances from one point to many points.

    Args:
        lat: Origin latitude
        lon: Origin longitude
        lats: Candidate latitudes
        lons: Candidate longitudes

    Returns:
        Array of distances in km, same order as the inputs
    """
    if len(lats) == 0:
        return np.array([], dtype=np.float64)

    phi1 = np.radians(lat)
    phi2 = np.radians(np.asarray(lats, dtype=np.float64))
    dphi = phi2 - phi1
    dlmb = np.radians(np.asarray(lons, dtype=np.float64) - lon)

    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.minimum(1.0, np.sqrt(a)))


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Lat/lon box enclosing a circle, used as a cheap SQL prefilter.

    Returns:
        (min_lat, max_lat, min_lon, max_lon); longitude spans the full range
        near the poles.
    """
    dlat = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat, max_lat = max(-90.0, lat - dlat), min(90.0, lat + dlat)

    cos_lat = math.cos(math.radians(lat))
    if max_lat >= 90.0 or min_lat <= -90.0 or cos_lat < 1e-6:
        return min_lat, max_lat, -180.0, 180.0

    # Longitude of the circle's tangent points (not at the centre latitude)
    ratio = math.sin(radius_km / EARTH_RADIUS_KM) / cos_lat
    if ratio >= 1.0:
        return min_lat, max_lat, -180.0, 180.0

    dlon = math.degrees(math.asin(ratio))
    if dlon >= 180.0 or lon - dlon < -180.0 or lon + dlon > 180.0:
        # Box crosses the antimeridian; skip the longitude prefilter
        return min_lat, max_lat, -180.0, 180.0

    return min_lat, max_lat, lon - dlon, lon + dlon
