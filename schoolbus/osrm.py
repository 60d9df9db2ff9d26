import logging
import math
from typing import List, Optional, Sequence

import requests

from schoolbus.costmatrix import UNREACHABLE_PENALTY_KM, CostMatrixSource
from schoolbus.errors import RoutingServiceError
from schoolbus.geodistance import Node, RouteGeometry

logger = logging.getLogger(__name__)

OSRM_BASE_URL = "https://router.project-osrm.org"
MAX_PUBLIC_OSRM_NODES = 100


def _coords(nodes: Sequence[Node]) -> str:
    # OSRM wants lng,lat pairs separated by ';'
    return ";".join(f"{node.lng},{node.lat}" for node in nodes)


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class OSRMClient(CostMatrixSource):
    """
    Thin client for the OSRM table and route services.
    Every failure surfaces as RoutingServiceError so callers can fall back
    to straight-line distances.
    """
    name = "osrm"

    def __init__(self, base_url: str = OSRM_BASE_URL, profile: str = "driving", timeout: float = 15,
                 session: Optional[requests.Session] = None, max_nodes: int = MAX_PUBLIC_OSRM_NODES):
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_nodes = max_nodes

    def _get(self, service: str, coords: str, params: dict) -> dict:
        url = f"{self.base_url}/{service}/v1/{self.profile}/{coords}"

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RoutingServiceError(f"OSRM {service} request failed: {e}") from e

        if not isinstance(data, dict):
            raise RoutingServiceError(f"OSRM {service} returned an unexpected body")
        if data.get("code", "Ok") != "Ok":
            raise RoutingServiceError(f"OSRM {service} answered {data.get('code')}: {data.get('message', '')}")

        return data

    def matrix(self, nodes: Sequence[Node]) -> List[List[float]]:
        """
        Road distances in km between every pair of nodes.
        Unroutable pairs get UNREACHABLE_PENALTY_KM.
        """
        if len(nodes) > self.max_nodes:
            raise RoutingServiceError(
                f"OSRM node limit exceeded ({len(nodes)} > {self.max_nodes})"
            )

        data = self._get("table", _coords(nodes), {"annotations": "distance"})

        distances = data.get("distances")
        if not isinstance(distances, list):
            raise RoutingServiceError("OSRM response missing distance matrix")

        logger.debug("OSRM table returned %d rows", len(distances))
        if not all(isinstance(row, list) for row in distances):
            raise RoutingServiceError("OSRM distance matrix rows must be lists")
        return [
            [value / 1000.0 if _finite(value) else UNREACHABLE_PENALTY_KM for value in row]
            for row in distances
        ]

    def route(self, tour: Sequence[int], nodes: Sequence[Node]) -> RouteGeometry:
        if not tour or len(tour) < 2:
            raise RoutingServiceError("a route needs at least two points")

        coords = _coords([nodes[index] for index in tour])
        data = self._get("route", coords, {"overview": "full", "geometries": "geojson"})

        routes = data.get("routes")
        if not isinstance(routes, list) or not routes:
            raise RoutingServiceError("OSRM response missing route geometry")

        try:
            route = routes[0] or {}
            geometry = route.get("geometry") or {}
            coordinates = geometry.get("coordinates")
            if not isinstance(coordinates, list):
                raise RoutingServiceError("OSRM route geometry invalid")
            # geojson points are [lng, lat]
            points = tuple((float(point[1]), float(point[0])) for point in coordinates)
        except (TypeError, ValueError, IndexError, AttributeError) as e:
            raise RoutingServiceError(f"OSRM route geometry invalid: {e}") from e

        distance = route.get("distance")
        duration = route.get("duration")

        return RouteGeometry(
            points=points,
            distance_km=distance / 1000.0 if _finite(distance) else None,
            duration_minutes=duration / 60.0 if _finite(duration) else None,
        )
