import math
from typing import Iterable, Tuple

import numpy as np

LngLat = Tuple[float, float]

EARTH_RADIUS_M = 6371000.0
# 7 decimal degrees ~ 1 cm
COORD_PRECISION = 7


def haversine_m(a: LngLat, b: LngLat) -> float:
    """Great-circle distance in meters between two (lng, lat) points."""
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    s = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(s))


def haversine_many(point: LngLat, lngs: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Vectorised haversine from one point to arrays of longitudes/latitudes."""
    lon1, lat1 = np.radians(point[0]), np.radians(point[1])
    lon2, lat2 = np.radians(lngs), np.radians(lats)
    s = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(s, 0.0, 1.0)))


def coord_key(lng: float, lat: float) -> Tuple[float, float]:
    return (round(lng, COORD_PRECISION), round(lat, COORD_PRECISION))


def as_lnglat(values: Iterable[float]) -> LngLat:
    lng, lat = list(values)[:2]
    return (float(lng), float(lat))
