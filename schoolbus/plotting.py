from typing import Optional, Sequence

import matplotlib.pyplot as plt

from schoolbus.planner import PlannedRoute

ROUTE_COLOR = "#ffa600"
SCHOOL_COLOR = "#ef476f"
STUDENT_COLOR = "#0f8ec7"


def plot_route(planned: PlannedRoute, ax=None, save_path: Optional[str] = None, show: bool = False):
    """
    Draw the bus route with the school and numbered pickups.
    Uses the road polyline when one was retrieved, straight segments otherwise.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 8))
    else:
        fig = ax.figure

    lats = [p[0] for p in planned.path]
    lngs = [p[1] for p in planned.path]
    ax.plot(lngs, lats, color=ROUTE_COLOR, linewidth=3, alpha=0.85, zorder=2, label="route")

    school = planned.nodes[0]
    students = planned.nodes[1:]
    ax.scatter([s.lng for s in students], [s.lat for s in students],
               c=STUDENT_COLOR, s=60, zorder=4, label="students")
    ax.scatter([school.lng], [school.lat], c=SCHOOL_COLOR, s=120, zorder=5, label="school")

    # stop numbers in visiting order
    for position, index in enumerate(planned.tour[1:-1], start=1):
        node = planned.nodes[index]
        ax.annotate(str(position), (node.lng, node.lat), textcoords="offset points",
                    xytext=(6, 6), fontsize=8)

    ax.set_xlabel("longitude")
    ax.set_ylabel("latitude")
    ax.set_title(f"{planned.distance_km:.2f} km, {planned.geometry} geometry")
    ax.set_aspect("equal", adjustable="datalim")
    ax.legend()

    if save_path:
        fig.savefig(save_path, bbox_inches="tight")
    if show:
        plt.show()

    return fig, ax


def plot_convergence(history: Sequence[float], ax=None, save_path: Optional[str] = None, show: bool = False):
    """Best tour length after each iteration."""
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    ax.plot(range(1, len(history) + 1), history, linewidth=2, label="best length")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Length (km)")
    ax.set_title("Best tour length per iteration")
    ax.legend()

    if save_path:
        fig.savefig(save_path, bbox_inches="tight")
    if show:
        plt.show()

    return fig, ax
