import logging
import math
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, fields
from typing import Callable, List, Optional, Tuple

import numpy as np

from schoolbus.ants import Tour, build_tour
from schoolbus.costmatrix import tour_length
from schoolbus.errors import DimensionMismatch, InvalidParameter
from schoolbus.pheromone import PheromoneField

logger = logging.getLogger(__name__)

MAX_ANTS = 10_000
MAX_ITERS = 100_000
SEED_BOUND = 2 ** 63 - 1

# alternative spellings accepted by ACOParams.from_dict
PARAM_ALIASES = {
    "agents": "n_ants",
    "ants": "n_ants",
    "iterations": "n_iters",
    "depositConstant": "q",
    "deposit_constant": "q",
}


@dataclass
class ACOParams:
    n_ants: int = 60             # ants per iteration
    n_iters: int = 120
    alpha: float = 1.2           # pheromone influence
    beta: float = 4.0            # heuristic influence
    evaporation: float = 0.45    # pheromone evaporation rate
    q: float = 120.0             # deposit constant, each tour lays q / length

    def validate(self) -> "ACOParams":
        """Raise InvalidParameter for any value outside its domain. Never clamps."""
        _check_count("n_ants", self.n_ants, MAX_ANTS)
        _check_count("n_iters", self.n_iters, MAX_ITERS)
        _check_positive("alpha", self.alpha)
        _check_positive("beta", self.beta)
        _check_positive("q", self.q)

        _check_real("evaporation", self.evaporation)
        if not 0.0 < self.evaporation < 1.0:
            raise InvalidParameter(f"evaporation must be in (0, 1), got {self.evaporation!r}")

        return self

    @classmethod
    def from_dict(cls, data: dict) -> "ACOParams":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = PARAM_ALIASES.get(key, key)
            if name not in known:
                raise InvalidParameter(f"unknown parameter {key!r}")
            if name in kwargs:
                raise InvalidParameter(f"parameter {key!r} given more than once (as {name!r})")
            kwargs[name] = value
        return cls(**kwargs)


def _check_count(name, value, upper):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if not 1 <= value <= upper:
        raise InvalidParameter(f"{name} must be in [1, {upper}], got {value}")


def _check_real(name, value):
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidParameter(f"{name} must be finite, got {value!r}")


def _check_positive(name, value):
    _check_real(name, value)
    if value <= 0:
        raise InvalidParameter(f"{name} must be > 0, got {value!r}")


@dataclass(frozen=True)
class SolveResult:
    tour: Tour
    length: float
    iterations: int = 0
    history: Tuple[float, ...] = ()   # best-so-far length after each iteration


def _run_ant(job):
    """One ant: build a tour from its own seeded stream and cost it."""
    pheromone, cost, alpha, beta, seed = job
    tour = build_tour(pheromone, cost, alpha, beta, np.random.default_rng(seed))
    return tour, tour_length(tour, cost)


def _is_ragged(cost) -> bool:
    try:
        return len({len(row) for row in cost}) > 1
    except TypeError:
        return False


def _as_matrix(cost) -> np.ndarray:
    try:
        matrix = np.array(cost, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        if _is_ragged(cost):
            raise DimensionMismatch("cost matrix rows have different lengths") from exc
        raise InvalidParameter(f"cost matrix entries must be numbers: {exc}") from exc

    if matrix.size == 0:
        return np.zeros((0, 0), dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatch(f"cost matrix must be square, got shape {matrix.shape}")
    if not np.isfinite(matrix).all() or (matrix < 0).any():
        raise InvalidParameter("cost matrix entries must be finite and non-negative")

    matrix.setflags(write=False)
    return matrix


class ColonyOptimizer:
    """
    Ant Colony Optimization over a dense cost matrix.
    Every tour starts and ends at node 0 (the depot).

    Each ant draws from its own generator seeded from `rng`, so a run is
    reproducible from the seed alone and does not depend on `workers`.
    With workers > 1 the ants of an iteration are built in a process pool;
    the pheromone update waits for all of them.
    """

    def __init__(self, params: Optional[ACOParams] = None, rng=None, workers: int = 1):
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise InvalidParameter(f"workers must be an integer >= 1, got {workers!r}")

        self.p = params or ACOParams()
        self.rng = np.random.default_rng(rng)
        self.workers = workers

    def optimize(self, cost, should_stop: Optional[Callable[[], bool]] = None,
                 time_budget: Optional[float] = None,
                 on_iteration: Optional[Callable[[int, float], None]] = None) -> Optional[SolveResult]:
        """
        Run the colony and return the best tour found, or None when the
        matrix has fewer than 2 nodes.

        `should_stop` and `time_budget` (seconds) are only checked between
        iterations. `on_iteration(iteration, best_length)` is called after
        every pheromone update.
        """
        self.p.validate()
        if time_budget is not None and not time_budget > 0:
            raise InvalidParameter(f"time_budget must be > 0, got {time_budget!r}")

        cost = _as_matrix(cost)
        if len(cost) < 2:
            return None

        if self.workers > 1:
            with ProcessPoolExecutor(max_workers=self.workers) as executor:
                chunk = max(1, math.ceil(self.p.n_ants / self.workers))

                def mapper(jobs):
                    return list(executor.map(_run_ant, jobs, chunksize=chunk))

                return self._solve(cost, mapper, should_stop, time_budget, on_iteration)

        return self._solve(cost, lambda jobs: [_run_ant(job) for job in jobs],
                           should_stop, time_budget, on_iteration)

    def _solve(self, cost, mapper, should_stop, time_budget, on_iteration) -> SolveResult:
        pheromone = PheromoneField(len(cost))

        best_tour = None
        best_length = float("inf")
        history: List[float] = []
        started = time.perf_counter()

        for it in range(self.p.n_iters):
            snapshot = pheromone.snapshot()
            seeds = self.rng.integers(SEED_BOUND, size=self.p.n_ants)
            jobs = [(snapshot, cost, self.p.alpha, self.p.beta, int(seed)) for seed in seeds]

            # barrier: every ant of this iteration is done before the update
            solutions = mapper(jobs)

            for tour, length in solutions:
                if length < best_length:
                    best_length = length
                    best_tour = tour
                    logger.debug("iteration %d: new best %.4f", it, best_length)

            self._update(pheromone, solutions)
            history.append(best_length)

            if on_iteration is not None:
                on_iteration(it + 1, best_length)

            if should_stop is not None and should_stop():
                logger.info("stop requested after %d iterations", it + 1)
                break
            if time_budget is not None and time.perf_counter() - started >= time_budget:
                logger.info("time budget of %.2fs used up after %d iterations", time_budget, it + 1)
                break

        logger.info("ACO finished: %d iterations, %d ants, best length %.4f",
                    len(history), self.p.n_ants, best_length)

        return SolveResult(tour=best_tour, length=best_length,
                           iterations=len(history), history=tuple(history))

    def _update(self, pheromone: PheromoneField, solutions) -> None:
        pheromone.evaporate(self.p.evaporation)

        for tour, length in solutions:
            # zero-length tours (all nodes coincide) lay nothing
            if length <= 0 or math.isinf(length):
                continue
            pheromone.deposit(tour, self.p.q / length)


def optimize(cost, params: Optional[ACOParams] = None, rng=None, workers: int = 1,
             **kwargs) -> Optional[SolveResult]:
    return ColonyOptimizer(params, rng=rng, workers=workers).optimize(cost, **kwargs)
