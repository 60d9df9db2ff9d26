import logging
from typing import List, Optional, Sequence

import numpy as np

from schoolbus.errors import DimensionMismatch, InsufficientNodes
from schoolbus.geodistance import Node, haversine

logger = logging.getLogger(__name__)

# km; stands in for unreachable or missing entries so sums stay finite
UNREACHABLE_PENALTY_KM = 1_000_000.0


class CostMatrixSource:
    """
    Something that can produce an N x N travel-cost matrix (km) for an
    ordered node list. Implementations: HaversineSource (straight line),
    OSRMClient (road network over HTTP) and RoadNetwork (local OSM graph).
    """
    name = "abstract"

    def matrix(self, nodes: Sequence[Node]) -> List[List[Optional[float]]]:
        raise NotImplementedError


class HaversineSource(CostMatrixSource):
    name = "haversine"

    def matrix(self, nodes: Sequence[Node]) -> np.ndarray:
        return haversine_matrix(nodes)


def haversine_matrix(nodes: Sequence[Node]) -> np.ndarray:
    n = len(nodes)
    cost = np.zeros((n, n), dtype=np.float64)

    for i in range(n):
        for j in range(i + 1, n):
            d = haversine(nodes[i], nodes[j])
            cost[i, j] = d
            cost[j, i] = d

    return cost


def build_cost_matrix(nodes: Sequence[Node], external=None, symmetric: bool = False) -> np.ndarray:
    """
    Build the cost matrix used by the optimizer.

    Parameters
    ----------
    nodes : sequence of Node
        Depot first, then pickups.
    external : N x N nested sequence, optional
        Externally computed costs in km (e.g. road distances). Missing or
        non-finite entries are replaced by UNREACHABLE_PENALTY_KM.
    symmetric : bool
        Average an external matrix with its transpose. Without it an
        asymmetric matrix is kept as-is and tours are costed in travel
        direction.

    Returns a read-only float64 array with a zero diagonal.
    """
    n = len(nodes)
    if n < 2:
        raise InsufficientNodes(f"need at least 2 nodes to build a tour, got {n}")

    if external is None:
        cost = haversine_matrix(nodes)
    else:
        cost = _coerce_external(external, n)
        if symmetric:
            cost = (cost + cost.T) / 2.0
        np.fill_diagonal(cost, 0.0)

    cost.setflags(write=False)
    return cost


def _coerce_external(external, n: int) -> np.ndarray:
    rows = list(external)
    if len(rows) != n or any(len(row) != n for row in rows):
        raise DimensionMismatch(f"external matrix is not {n} x {n}")

    cost = np.array(
        [[np.nan if value is None else value for value in row] for row in rows],
        dtype=np.float64,
    )

    bad = ~np.isfinite(cost)
    if bad.any():
        logger.debug("replacing %d missing/non-finite entries with penalty", int(bad.sum()))
        cost[bad] = UNREACHABLE_PENALTY_KM

    return cost


def tour_length(tour: Sequence[int], cost) -> float:
    total = 0.0
    for a, b in zip(tour, tour[1:]):
        total += float(cost[a][b])
    return total
