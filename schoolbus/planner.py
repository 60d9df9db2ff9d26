"""
Caller-facing layer: turns a school location and student pickups into an
optimized bus route.

This is where input from the user gets tidied up before it reaches the
optimizer. The one adjustment made here is `clamp_agents`: the colony always
gets at least one ant more than there are students. Everything else is
validated by ACOParams and rejected, never silently fixed.
"""
import logging
import time
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

import requests

from schoolbus.antcolony import ACOParams, ColonyOptimizer, SolveResult
from schoolbus.costmatrix import CostMatrixSource, HaversineSource, build_cost_matrix
from schoolbus.errors import DimensionMismatch, InsufficientNodes, InvalidParameter, RoutingServiceError
from schoolbus.geodistance import Node, RouteGeometry

logger = logging.getLogger(__name__)

SCHOOL_LABEL = "School"


def as_node(value, label: str) -> Node:
    """Accept a Node, a (lat, lng) pair or a mapping with lat/lng[/label]."""
    if isinstance(value, Node):
        return value
    if isinstance(value, dict):
        try:
            return Node(str(value.get("label", label)), float(value["lat"]), float(value["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidParameter(f"bad location for {label}: {value!r}") from e
    try:
        lat, lng = value
        return Node(label, float(lat), float(lng))
    except (TypeError, ValueError) as e:
        raise InvalidParameter(f"bad location for {label}: {value!r}") from e


def clamp_agents(n_ants, n_students: int):
    """At least one ant per student plus one. Non-integers pass through for validation to reject."""
    if isinstance(n_ants, int) and not isinstance(n_ants, bool):
        return max(n_ants, n_students + 1)
    return n_ants


@dataclass(frozen=True)
class PlannedRoute:
    nodes: Tuple[Node, ...]
    result: SolveResult
    params: ACOParams
    matrix_source: str
    elapsed: float                      # seconds spent in the optimizer
    road: Optional[RouteGeometry] = None

    @property
    def tour(self) -> Tuple[int, ...]:
        return self.result.tour

    @property
    def length(self) -> float:
        return self.result.length

    @property
    def geometry(self) -> str:
        if self.road is not None and len(self.road.points) > 1:
            return "road"
        return "straight"

    @property
    def path(self) -> Tuple[Tuple[float, float], ...]:
        if self.geometry == "road":
            return self.road.points
        return tuple(self.nodes[index].latlng for index in self.tour)

    @property
    def distance_km(self) -> float:
        if self.road is not None and self.road.distance_km is not None:
            return self.road.distance_km
        return self.length

    @property
    def duration_minutes(self) -> Optional[float]:
        return self.road.duration_minutes if self.road is not None else None

    def stops(self) -> List[Tuple[str, str]]:
        last = len(self.tour) - 1
        out = []
        for position, index in enumerate(self.tour):
            if position == 0:
                prefix = "Start"
            elif position == last:
                prefix = "Return"
            else:
                prefix = f"Stop {position}"
            out.append((prefix, self.nodes[index].label))
        return out

    def summary(self) -> str:
        if self.duration_minutes:
            distance = f"Total path length: {self.distance_km:.2f} km (~{self.duration_minutes:.1f} min)"
        else:
            distance = f"Total path length: {self.distance_km:.2f} km"

        status = (f"Route updated in {self.elapsed:.2f} s using {self.params.n_ants} ants "
                  f"and {self.result.iterations} iterations.")
        if self.geometry == "road":
            status += " Road-following polyline retrieved."
        else:
            status += " Shown as straight segments."

        return f"{distance}\n{status}"


class RoutePlanner:
    """
    Plans one bus route from a school and its student pickups.

    matrix_source : CostMatrixSource used for travel costs; straight-line
        distances are used when it is missing or fails.
    route_source : object with route(tour, nodes) -> RouteGeometry for a
        road-following polyline; straight segments when missing or failing.
    """

    def __init__(self, school, students: Sequence, matrix_source: Optional[CostMatrixSource] = None,
                 route_source=None, workers: int = 1, symmetric: bool = False):
        self.school = as_node(school, SCHOOL_LABEL) if school is not None else None
        self.students = [as_node(s, f"Student {i + 1}") for i, s in enumerate(students)]
        self.matrix_source = matrix_source or HaversineSource()
        self.route_source = route_source
        self.workers = workers
        self.symmetric = symmetric

    def nodes(self) -> List[Node]:
        if self.school is None:
            raise InsufficientNodes("set the school location before computing a route")
        if not self.students:
            raise InsufficientNodes("add at least one student pickup before computing a route")
        return [self.school] + self.students

    def cost_matrix(self, nodes: Sequence[Node]):
        """Return (matrix, name of the source that produced it)."""
        source = self.matrix_source
        if source.name != HaversineSource.name:
            try:
                raw = source.matrix(nodes)
                return build_cost_matrix(nodes, raw, symmetric=self.symmetric), source.name
            except (RoutingServiceError, DimensionMismatch, requests.RequestException) as e:
                logger.warning("%s matrix unavailable, using straight-line distances instead: %s", source.name, e)

        return build_cost_matrix(nodes), HaversineSource.name

    def road_geometry(self, tour, nodes) -> Optional[RouteGeometry]:
        if self.route_source is None:
            return None
        try:
            return self.route_source.route(tour, nodes)
        except (RoutingServiceError, requests.RequestException) as e:
            logger.warning("route geometry fetch failed, drawing straight segments instead: %s", e)
            return None

    def plan(self, params: Optional[ACOParams] = None, rng=None, **optimize_kwargs) -> PlannedRoute:
        nodes = self.nodes()

        params = params or ACOParams()
        params = replace(params, n_ants=clamp_agents(params.n_ants, len(self.students)))
        # fail before any network request is made
        params.validate()

        cost, source_name = self.cost_matrix(nodes)

        t0 = time.perf_counter()
        result = ColonyOptimizer(params, rng=rng, workers=self.workers).optimize(cost, **optimize_kwargs)
        elapsed = time.perf_counter() - t0

        road = self.road_geometry(result.tour, nodes)

        return PlannedRoute(
            nodes=tuple(nodes),
            result=result,
            params=params,
            matrix_source=source_name,
            elapsed=elapsed,
            road=road,
        )
