import logging
from typing import List, Sequence

import networkx as nx
import osmnx as ox

from schoolbus.costmatrix import UNREACHABLE_PENALTY_KM, CostMatrixSource
from schoolbus.errors import RoutingServiceError
from schoolbus.geodistance import Node, RouteGeometry, haversine, haversine_to_many

logger = logging.getLogger(__name__)


def prepare_graph(G: nx.MultiDiGraph, add_travel_time: bool = True) -> nx.MultiDiGraph:
    """Fill in edge lengths (meters) and drive times, then drop stops a bus could not return from."""
    has_length = any("length" in data for _, _, data in G.edges(data=True))
    if not has_length:
        G = ox.distance.add_edge_lengths(G)

    if add_travel_time:
        # travel_time needs speed_kph, which osmnx imputes from maxspeed/highway
        G = ox.routing.add_edge_travel_times(ox.routing.add_edge_speeds(G))

    return largest_strongly_connected_component(G)


def largest_strongly_connected_component(G: nx.MultiDiGraph) -> nx.MultiDiGraph:
    # a bus has to get back to school, so keep only mutually reachable nodes
    sccs = nx.strongly_connected_components(G)
    largest = max(sccs, key=len)
    return G.subgraph(largest).copy()


class RoadNetwork(CostMatrixSource):
    """
    Cost matrix and route geometry from a local OpenStreetMap road graph.

    Nodes carry `x` (lng) and `y` (lat) in degrees, edges a `length` in
    meters and optionally a `travel_time` in seconds.
    """
    name = "osm"

    def __init__(self, graph: nx.MultiDiGraph, weight: str = "length"):
        if len(graph) == 0:
            raise RoutingServiceError("road network is empty")

        self.graph = graph
        self.weight = weight
        self._ids = list(graph.nodes)
        self._lats = [graph.nodes[n]["y"] for n in self._ids]
        self._lngs = [graph.nodes[n]["x"] for n in self._ids]

    @classmethod
    def around(cls, nodes: Sequence[Node], network_type: str = "drive", margin_km: float = 1.0) -> "RoadNetwork":
        """Download the drivable network covering all nodes plus a margin."""
        lat = sum(node.lat for node in nodes) / len(nodes)
        lng = sum(node.lng for node in nodes) / len(nodes)
        center = Node("center", lat, lng)
        radius_km = max(haversine(center, node) for node in nodes) + margin_km

        logger.info("loading %s network, %.1f km around (%.5f, %.5f)", network_type, radius_km, lat, lng)
        try:
            G = ox.graph_from_point((lat, lng), dist=radius_km * 1000, network_type=network_type, simplify=True)
        except Exception as e:
            raise RoutingServiceError(f"could not load road network: {e}") from e

        G = prepare_graph(G)
        logger.info("road network has %d nodes and %d edges", len(G), G.number_of_edges())
        return cls(G)

    def nearest_node(self, lat: float, lng: float):
        distances = haversine_to_many(lat, lng, self._lats, self._lngs)
        return self._ids[int(distances.argmin())]

    def snap(self, nodes: Sequence[Node]) -> list:
        return [self.nearest_node(node.lat, node.lng) for node in nodes]

    def matrix(self, nodes: Sequence[Node]) -> List[List[float]]:
        snapped = self.snap(nodes)

        rows = []
        for src in snapped:
            lengths = nx.single_source_dijkstra_path_length(self.graph, src, weight=self.weight)
            rows.append([
                lengths[dst] / 1000.0 if dst in lengths else UNREACHABLE_PENALTY_KM
                for dst in snapped
            ])
        return rows

    def _edge(self, u, v) -> dict:
        """Attributes of the cheapest edge u -> v."""
        if self.graph.is_multigraph():
            return min(self.graph[u][v].values(), key=lambda data: data.get(self.weight, 0.0))
        return self.graph[u][v]

    def route(self, tour: Sequence[int], nodes: Sequence[Node]) -> RouteGeometry:
        if not tour or len(tour) < 2:
            raise RoutingServiceError("a route needs at least two points")

        snapped = self.snap(nodes)
        points = []
        length_m = 0.0
        seconds = 0.0
        timed = True

        for a, b in zip(tour, tour[1:]):
            try:
                path = nx.shortest_path(self.graph, snapped[a], snapped[b], weight=self.weight)
            except nx.NetworkXNoPath as e:
                raise RoutingServiceError(f"no road path from {nodes[a].label} to {nodes[b].label}") from e

            for u, v in zip(path, path[1:]):
                data = self._edge(u, v)
                length_m += float(data.get("length", 0.0))
                if "travel_time" in data:
                    seconds += float(data["travel_time"])
                else:
                    timed = False

            leg = [(self.graph.nodes[n]["y"], self.graph.nodes[n]["x"]) for n in path]
            # consecutive legs share their joining node
            points.extend(leg if not points else leg[1:])

        return RouteGeometry(
            points=tuple(points),
            distance_km=length_m / 1000.0,
            duration_minutes=seconds / 60.0 if timed else None,
        )
