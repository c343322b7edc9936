"""
Sap & Sun - headless demo run

Grows a plant from a lone seed with the growth heuristic switched on:
1. Steps the simulation for a number of days (20 ticks per second, 60 s days)
2. Prints a run summary and a census of the final plant
3. Saves a drawing of the plant and a plot of the run's histories

Example:
    python main.py --days 3 --seed 7 --climate droughty
"""

import argparse
import logging

import matplotlib

matplotlib.use("Agg")

from sapsun import graph  # noqa: E402
from sapsun.config import ClimateConfig, SegmentType, SimConfig  # noqa: E402
from sapsun.metabolism import health_summary  # noqa: E402
from sapsun.rollout import run_days  # noqa: E402
from sapsun.simulation import Simulation  # noqa: E402
from sapsun.visualization import plot_plant, plot_trajectory, save_figure  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
)

logger = logging.getLogger(__name__)

CLIMATES = {
    "temperate": ClimateConfig.temperate,
    "droughty": ClimateConfig.droughty,
    "monsoon": ClimateConfig.monsoon,
}


def main() -> None:
    parser = argparse.ArgumentParser(description="Sap & Sun headless plant simulation")
    parser.add_argument("--days", type=int, default=2, help="Days to simulate (default: 2)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "--climate", choices=sorted(CLIMATES), default="temperate", help="Climate preset"
    )
    parser.add_argument(
        "--no-auto-grow", action="store_true", help="Leave the plant as a lone seed"
    )
    parser.add_argument(
        "--plant-figure", default="plant.png", help="Where to save the plant drawing"
    )
    parser.add_argument("--run-figure", default="run.png", help="Where to save the run plot")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings")
    args = parser.parse_args()

    if args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    config = SimConfig(climate=CLIMATES[args.climate]())
    sim = Simulation(config, seed=args.seed, auto_grow=not args.no_auto_grow)

    print("\n" + "=" * 60)
    print("  SAP & SUN: headless plant simulation")
    print("=" * 60)
    print(f"Climate: {args.climate}, seed {args.seed}, {args.days} days "
          f"({args.days * config.ticks_per_day} ticks)")

    trajectory = run_days(sim, args.days)
    trajectory.print_summary()

    store = sim.store
    print("\nFinal plant:")
    for kind in SegmentType:
        print(f"  {kind.name:8s}: {len(graph.segments_by_type(store.table, kind))}")
    health = health_summary(store)
    print(f"  healthy {health.healthy}, stressed {health.stressed}, dead {health.dead}")
    violations = graph.invariant_violations(store.table, store.seed_id)
    if violations:
        for problem in violations:
            logger.warning("Invariant broken: %s", problem)

    save_figure(plot_plant(store.snapshot()), args.plant_figure)
    save_figure(plot_trajectory(trajectory), args.run_figure)
    print(f"\nSaved {args.plant_figure} and {args.run_figure}")


if __name__ == "__main__":
    main()
