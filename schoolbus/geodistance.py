import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Node:
    label: str
    lat: float      # degrees
    lng: float      # degrees

    @property
    def latlng(self):
        return (self.lat, self.lng)


def haversine(a: Node, b: Node) -> float:
    """
    Great-circle distance between two nodes in kilometers.
    """
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2

    # rounding can push h slightly outside [0, 1] for coincident/antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def haversine_to_many(lat: float, lng: float, lats: Sequence[float], lngs: Sequence[float]) -> np.ndarray:
    """
    Distances in km from one coordinate to many, vectorised with numpy.
    """
    lats = np.radians(np.asarray(lats, dtype=np.float64))
    lngs = np.radians(np.asarray(lngs, dtype=np.float64))
    lat0 = math.radians(lat)
    lng0 = math.radians(lng)

    h = np.sin((lats - lat0) / 2) ** 2 + math.cos(lat0) * np.cos(lats) * np.sin((lngs - lng0) / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(h))


@dataclass(frozen=True)
class RouteGeometry:
    """Road-following polyline for a tour, as returned by a routing backend."""
    points: Tuple[Tuple[float, float], ...]     # (lat, lng)
    distance_km: Optional[float] = None
    duration_minutes: Optional[float] = None
