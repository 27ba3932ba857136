"""Runs many generator attempts in parallel and ranks the candidate schedules."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from residency_scheduler.schemas.scheduling import RankingPriority
from residency_scheduler.services.generators import ScheduleGenerator, create_generator
from residency_scheduler.services.grid import Resident, ScheduleGrid
from residency_scheduler.services.metrics import CostWeights, evaluate_schedule
from residency_scheduler.services.rules import RuleSet, load_default_rules

logger = logging.getLogger(__name__)

SEED_STRIDE = 7
SEED_MODULUS = 233280


class TournamentState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    RANKING = "ranking"
    DONE = "done"


@dataclass
class CompetitionResult:
    grid: ScheduleGrid
    generator_id: str
    generator_name: str
    cost: float
    total_violations: int
    understaffing_violations: int
    requirement_violations: int
    attempt_index: int
    seed: int
    sequence: int = 0


@dataclass
class GeneratorStats:
    generator_id: str
    generator_name: str
    attempts: int = 0
    failures: int = 0
    best_cost: float | None = None
    worst_cost: float | None = None
    best_violations: int | None = None
    worst_violations: int | None = None

    def record(self, result: CompetitionResult) -> None:
        self.attempts += 1
        self.best_cost = result.cost if self.best_cost is None else min(self.best_cost, result.cost)
        self.worst_cost = result.cost if self.worst_cost is None else max(self.worst_cost, result.cost)
        violations = result.total_violations
        self.best_violations = violations if self.best_violations is None else min(self.best_violations, violations)
        self.worst_violations = violations if self.worst_violations is None else max(self.worst_violations, violations)

    def record_failure(self) -> None:
        self.attempts += 1
        self.failures += 1


@dataclass
class TournamentProgress:
    completed: int
    total: int

    @property
    def percent(self) -> int:
        return int(self.completed * 100 / self.total) if self.total else 100


@dataclass
class TournamentOutcome:
    results: list[CompetitionResult]
    generator_stats: dict[str, GeneratorStats] = field(default_factory=dict)
    attempts_completed: int = 0
    total_attempts: int = 0
    cancelled: bool = False

    @property
    def feasible(self) -> bool:
        """True when at least one returned candidate has no violations."""

        return any(result.total_violations == 0 for result in self.results)


ProgressCallback = Callable[[TournamentProgress], None]


def _ranking_key(result: CompetitionResult, priority: RankingPriority) -> tuple[float, ...]:
    if priority == "least_understaffing":
        return (result.understaffing_violations, result.total_violations, result.cost)
    if priority == "most_requirements_met":
        return (result.total_violations, result.requirement_violations, result.cost)
    return (result.total_violations, result.cost)


def rank_results(results: Sequence[CompetitionResult], priority: RankingPriority = "best_score") -> list[CompetitionResult]:
    """Sort by the priority policy; equal keys keep dispatch order."""

    ordered = sorted(results, key=lambda result: result.sequence)
    return sorted(ordered, key=lambda result: _ranking_key(result, priority))


def select_top(ranked: Sequence[CompetitionResult], top_n: int) -> list[CompetitionResult]:
    selected: list[CompetitionResult] = []
    seen: set[str] = set()
    for result in ranked:
        fingerprint = result.grid.fingerprint()
        if fingerprint in seen:
            continue
        seen.add(fingerprint)
        selected.append(result)
        if len(selected) >= top_n:
            break
    return selected


def attempt_seed(base_seed: int, attempt_index: int) -> int:
    return base_seed + attempt_index * SEED_STRIDE


class Tournament:
    """Fan-out/fan-in competition between generators.

    ``run`` blocks the caller; ``cancel`` may be called from any thread and stops
    further attempts from starting, returning whatever has already finished.
    """

    def __init__(
        self,
        residents: Sequence[Resident],
        base_grid: ScheduleGrid,
        *,
        generator_ids: Sequence[str],
        tries: int,
        priority: RankingPriority = "best_score",
        top_n: int = 3,
        seed: int | None = None,
        rules: RuleSet | None = None,
        weights: CostWeights | None = None,
        max_workers: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if not generator_ids:
            raise ValueError("At least one generator must be selected")
        if tries < 1 or top_n < 1:
            raise ValueError("tries and top_n must be positive")
        self.rules = rules or load_default_rules()
        self.weights = weights or CostWeights()
        self.generators: list[ScheduleGenerator] = [create_generator(item, self.rules) for item in generator_ids]
        self.residents = list(residents)
        self.base_grid = base_grid.clone()
        self.tries = tries
        self.priority = priority
        self.top_n = top_n
        self.base_seed = seed if seed is not None else int(time.time() * 1000) % SEED_MODULUS
        self.max_workers = max_workers or os.cpu_count() or 1
        self.on_progress = on_progress
        self._cancel_event = threading.Event()
        self._state = TournamentState.IDLE

    @property
    def state(self) -> TournamentState:
        return self._state

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _run_attempt(
        self, generator: ScheduleGenerator, attempt_index: int, sequence: int
    ) -> tuple[ScheduleGenerator, CompetitionResult | None, bool]:
        if self._cancel_event.is_set():
            return generator, None, False
        seed = attempt_seed(self.base_seed, attempt_index)
        try:
            grid = generator.generate(self.residents, self.base_grid.clone(), seed)
            evaluation = evaluate_schedule(self.residents, grid, self.rules, self.weights)
        except Exception:
            logger.exception("Generator %s failed on attempt %d", generator.name, attempt_index)
            return generator, None, True
        result = CompetitionResult(
            grid=grid,
            generator_id=generator.id,
            generator_name=generator.name,
            cost=evaluation.cost,
            total_violations=evaluation.total_violations,
            understaffing_violations=evaluation.understaffing_violations,
            requirement_violations=len(evaluation.requirement_violations),
            attempt_index=attempt_index,
            seed=seed,
            sequence=sequence,
        )
        return generator, result, False

    def _report_progress(self, completed: int, total: int) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(TournamentProgress(completed=completed, total=total))
        except Exception:
            logger.exception("Progress callback failed at %d of %d attempts", completed, total)

    def run(self) -> TournamentOutcome:
        jobs = [(generator, index) for generator in self.generators for index in range(self.tries)]
        stats = {
            generator.id: GeneratorStats(generator_id=generator.id, generator_name=generator.name)
            for generator in self.generators
        }
        results: list[CompetitionResult] = []
        completed = 0
        self._state = TournamentState.RUNNING
        logger.info(
            "Starting tournament: generators=%s tries=%d attempts=%d workers=%d seed=%d",
            [generator.id for generator in self.generators],
            self.tries,
            len(jobs),
            self.max_workers,
            self.base_seed,
        )

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="tournament")
        try:
            futures = [
                executor.submit(self._run_attempt, generator, index, sequence)
                for sequence, (generator, index) in enumerate(jobs)
            ]
            for future in as_completed(futures):
                generator, result, failed = future.result()
                if failed:
                    stats[generator.id].record_failure()
                elif result is not None:
                    stats[generator.id].record(result)
                    results.append(result)
                if failed or result is not None:
                    completed += 1
                    self._report_progress(completed, len(jobs))
                if self._cancel_event.is_set():
                    break
        finally:
            executor.shutdown(wait=not self._cancel_event.is_set(), cancel_futures=True)

        if self.cancelled:
            logger.warning("Tournament cancelled after %d of %d attempts", completed, len(jobs))

        self._state = TournamentState.RANKING
        top = select_top(rank_results(results, self.priority), self.top_n)
        self._state = TournamentState.DONE
        if top:
            winner = top[0]
            logger.info(
                "Tournament finished: winner=%s violations=%d cost=%.1f",
                winner.generator_name,
                winner.total_violations,
                winner.cost,
            )
        else:
            logger.info("Tournament finished without any completed attempt")
        return TournamentOutcome(
            results=top,
            generator_stats=stats,
            attempts_completed=completed,
            total_attempts=len(jobs),
            cancelled=self.cancelled,
        )
