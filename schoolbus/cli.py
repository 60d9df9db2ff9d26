import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import matplotlib.pyplot as plt
from tqdm import tqdm

from schoolbus.antcolony import ACOParams
from schoolbus.errors import RoutingError, RoutingServiceError
from schoolbus.maplogic import RoadNetwork
from schoolbus.osrm import OSRM_BASE_URL, OSRMClient
from schoolbus.planner import RoutePlanner, clamp_agents
from schoolbus.plotting import plot_convergence, plot_route

logger = logging.getLogger(__name__)


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="schoolbus-route",
        description="Optimize a school bus route through student pickups with ant colony optimization.",
    )
    p.add_argument("problem", help='JSON file: {"school": [lat, lng], "students": [[lat, lng], ...], "params": {...}}')

    aco = p.add_argument_group("ACO parameters (override the problem file)")
    aco.add_argument("--ants", type=int, default=None, help="Ants per iteration (raised to students + 1 if lower)")
    aco.add_argument("--iterations", type=int, default=None, help="Number of iterations")
    aco.add_argument("--alpha", type=float, default=None, help="Pheromone influence")
    aco.add_argument("--beta", type=float, default=None, help="Visibility (1/distance) influence")
    aco.add_argument("--evaporation", type=float, default=None, help="Evaporation rate in (0, 1)")
    aco.add_argument("--q", type=float, default=None, help="Deposit constant")
    aco.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs")
    aco.add_argument("--workers", type=int, default=1, help="Processes building ants in parallel")
    aco.add_argument("--time-budget", type=float, default=None, help="Stop after this many seconds")

    dist = p.add_argument_group("Distances")
    dist.add_argument("--matrix", choices=["haversine", "osrm", "osm"], default="haversine",
                      help="Where travel costs come from (falls back to haversine)")
    dist.add_argument("--osrm-url", default=OSRM_BASE_URL, help="OSRM server")
    dist.add_argument("--symmetric", action="store_true", help="Average road distances in both directions")
    dist.add_argument("--straight", action="store_true", help="Do not request road geometry for the result")

    out = p.add_argument_group("Output")
    out.add_argument("--plot", default=None, help="Save a map of the route to this image file")
    out.add_argument("--convergence", default=None, help="Save the best-length curve to this image file")
    out.add_argument("--quiet", action="store_true", help="No progress bar, warnings only")
    out.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    return p


def load_problem(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise RoutingError("problem file must contain a JSON object")
    return data


def make_source(args, nodes):
    if args.matrix == "osrm":
        return OSRMClient(base_url=args.osrm_url)
    if args.matrix == "osm":
        try:
            return RoadNetwork.around(nodes)
        except RoutingServiceError as e:
            logger.warning("road network unavailable, using straight-line distances instead: %s", e)
    return None


def resolve_params(problem: dict, args) -> ACOParams:
    params = ACOParams.from_dict(problem.get("params") or {})
    overrides = {
        "n_ants": args.ants,
        "n_iters": args.iterations,
        "alpha": args.alpha,
        "beta": args.beta,
        "evaporation": args.evaporation,
        "q": args.q,
    }
    return replace(params, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        problem = load_problem(args.problem)
        planner = RoutePlanner(problem.get("school"), problem.get("students") or [],
                               workers=args.workers, symmetric=args.symmetric)
        nodes = planner.nodes()

        params = resolve_params(problem, args)
        params = replace(params, n_ants=clamp_agents(params.n_ants, len(planner.students))).validate()

        source = make_source(args, nodes)
        if source is not None:
            planner.matrix_source = source
            planner.route_source = None if args.straight else source

        with tqdm(total=params.n_iters, desc="ACO", ncols=100, disable=args.quiet) as bar:
            def progress(iteration, best_length):
                bar.update(1)
                bar.set_postfix(best=f"{best_length:.2f}")

            planned = planner.plan(params, rng=args.seed, time_budget=args.time_budget, on_iteration=progress)

    except (OSError, json.JSONDecodeError) as e:
        print(f"Could not read problem: {e}", file=sys.stderr)
        return 2
    except RoutingError as e:
        print(f"Optimization failed: {e}", file=sys.stderr)
        return 2

    for prefix, label in planned.stops():
        print(f"{prefix}: {label}")
    print(planned.summary())
    print(f"Distances from: {planned.matrix_source}")

    if args.plot:
        fig, _ = plot_route(planned, save_path=args.plot)
        plt.close(fig)
        print("Saved:", args.plot)
    if args.convergence:
        fig, _ = plot_convergence(planned.result.history, save_path=args.convergence)
        plt.close(fig)
        print("Saved:", args.convergence)

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
