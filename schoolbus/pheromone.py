from typing import Sequence

import numpy as np

from schoolbus.errors import InvalidParameter

PHEROMONE_FLOOR = 1e-6


class PheromoneField:
    """
    N x N trail intensities for one solve. Owned by a single optimizer run
    and mutated in place once per iteration.
    """

    def __init__(self, size: int, initial: float = 1.0):
        self.size = size
        self.trail = np.full((size, size), float(initial), dtype=np.float64)

    def evaporate(self, rate: float) -> None:
        if not 0.0 < rate < 1.0:
            raise InvalidParameter(f"evaporation rate must be in (0, 1), got {rate!r}")

        self.trail *= (1.0 - rate)
        np.maximum(self.trail, PHEROMONE_FLOOR, out=self.trail)

    def deposit(self, tour: Sequence[int], amount: float) -> None:
        """
        Add `amount` to both directions of every edge of `tour`.
        """
        if len(tour) < 2:
            return

        src = np.asarray(tour[:-1], dtype=np.intp)
        dst = np.asarray(tour[1:], dtype=np.intp)

        # add.at accumulates repeated edges, fancy-index += would not
        np.add.at(self.trail, (src, dst), amount)
        np.add.at(self.trail, (dst, src), amount)

    def snapshot(self) -> np.ndarray:
        view = self.trail.copy()
        view.setflags(write=False)
        return view
