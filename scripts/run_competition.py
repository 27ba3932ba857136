"""Run a generator tournament on the standard 15-resident roster and print the ranking.

Usage:
    PYTHONPATH=./src python scripts/run_competition.py [--tries 20] [--priority best_score] [--json]
"""

from __future__ import annotations

import argparse
import json

from residency_scheduler.core.config import get_settings
from residency_scheduler.core.logging import configure_logging
from residency_scheduler.schemas.scheduling import CompetitionParams
from residency_scheduler.services.generators import GENERATORS
from residency_scheduler.services.grid import ScheduleGrid, build_standard_roster
from residency_scheduler.services.metrics import CostWeights
from residency_scheduler.services.scheduler import generate
from residency_scheduler.services.tournament import TournamentProgress


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Compare schedule generators on the standard roster.")
    parser.add_argument("--tries", type=int, default=settings.default_tries, help="Attempts per generator.")
    parser.add_argument("--top", type=int, default=settings.default_top_n, help="Number of results to keep.")
    parser.add_argument(
        "--priority",
        choices=["best_score", "least_understaffing", "most_requirements_met"],
        default="best_score",
    )
    parser.add_argument(
        "--generator",
        action="append",
        choices=sorted(GENERATORS),
        dest="generators",
        help="Generator to include; repeat to select several (defaults to all).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Base seed for reproducible runs.")
    parser.add_argument("--json", action="store_true", help="Print the winning grid as JSON.")
    return parser.parse_args()


def _print_progress(progress: TournamentProgress) -> None:
    if progress.completed == progress.total or progress.completed % 10 == 0:
        print(f"  {progress.percent:3d}% ({progress.completed}/{progress.total})")


def main() -> None:
    args = _parse_args()
    settings = get_settings()
    configure_logging(settings.log_level)

    params = CompetitionParams(
        tries=args.tries,
        top_n=args.top,
        priority=args.priority,
        generator_ids=args.generators or list(GENERATORS),
        seed=args.seed,
    )
    residents = build_standard_roster()
    outcome = generate(
        residents,
        ScheduleGrid.empty(resident.id for resident in residents),
        params,
        _print_progress,
        weights=CostWeights.from_settings(settings),
        max_workers=settings.max_workers,
    )

    if args.json and outcome.results:
        print(json.dumps(outcome.results[0].grid.to_payload(), indent=2))
        return

    for rank, result in enumerate(outcome.results, start=1):
        print(
            f"#{rank} {result.generator_name:<16} violations={result.total_violations:<3} "
            f"understaffed={result.understaffing_violations:<3} cost={result.cost:,.1f}"
        )
    for stats in outcome.generator_stats.values():
        print(
            f"{stats.generator_name:<16} attempts={stats.attempts} failures={stats.failures} "
            f"best={stats.best_violations} worst={stats.worst_violations}"
        )


if __name__ == "__main__":
    main()
