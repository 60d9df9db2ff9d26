import sys
from typing import Tuple

import numpy as np

# desirability of a zero-cost hop (coincident nodes), instead of 1/0
ZERO_COST_VISIBILITY = float(2 ** 53 - 1)
MAX_WEIGHT = sys.float_info.max

Tour = Tuple[int, ...]


def transition_weights(current: int, candidates: np.ndarray, pheromone: np.ndarray, cost: np.ndarray,
                       alpha: float, beta: float) -> np.ndarray:
    """
    tau^alpha * (1 / cost)^beta for every candidate reachable from `current`.
    """
    tau = pheromone[current, candidates]
    dist = cost[current, candidates]

    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        eta = np.where(dist > 0, 1.0 / dist, ZERO_COST_VISIBILITY)
        weights = (tau ** alpha) * (eta ** beta)

    return np.nan_to_num(weights, nan=0.0, posinf=MAX_WEIGHT, neginf=0.0)


def choose_next(weights: np.ndarray, candidates: np.ndarray, rng: np.random.Generator) -> int:
    """
    Roulette wheel selection proportional to `weights`.
    Falls back to a uniform pick when every weight is zero.
    """
    total = weights.sum()
    if not np.isfinite(total):
        weights = weights / weights.max()
        total = weights.sum()

    if total <= 0.0:
        return int(candidates[rng.integers(len(candidates))])

    # walk the wheel: first candidate whose cumulative weight covers the threshold
    threshold = rng.random() * total
    cumulative = np.cumsum(weights)
    k = int(np.searchsorted(cumulative, threshold, side="left"))

    # rounding can leave a sliver past the last bucket
    return int(candidates[min(k, len(candidates) - 1)])


def build_tour(pheromone: np.ndarray, cost: np.ndarray, alpha: float, beta: float,
               rng: np.random.Generator, origin: int = 0) -> Tour:
    """
    Build one closed tour for one ant.

    Reads `pheromone` and `cost` without modifying them and draws only from
    `rng`, so independent ants can run side by side.
    """
    cost = np.asarray(cost, dtype=np.float64)
    size = len(cost)

    unvisited = np.ones(size, dtype=bool)
    unvisited[origin] = False

    tour = [origin]
    current = origin

    for _ in range(size - 1):
        candidates = np.flatnonzero(unvisited)
        weights = transition_weights(current, candidates, pheromone, cost, alpha, beta)
        next_node = choose_next(weights, candidates, rng)

        tour.append(next_node)
        unvisited[next_node] = False
        current = next_node

    tour.append(origin)
    return tuple(tour)
