"""Entry points used by the API layer: generate, analyze and adapt."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from residency_scheduler.schemas.scheduling import AdaptationParams, CompetitionParams
from residency_scheduler.services.adapter import AdaptationResult, adapt_schedule
from residency_scheduler.services.grid import Resident, ScheduleGrid
from residency_scheduler.services.metrics import (
    AuditReport,
    CohortFairness,
    CostWeights,
    DiversityStat,
    RelationshipStat,
    RequirementViolation,
    WeeklyViolation,
    acgme_audit,
    assignment_stats,
    diversity_stats,
    evaluate_schedule,
    relationship_stats,
)
from residency_scheduler.services.rules import COHORT_COUNT, TOTAL_WEEKS, AssignmentType, RuleSet, load_default_rules
from residency_scheduler.services.tournament import ProgressCallback, Tournament, TournamentOutcome

logger = logging.getLogger(__name__)


class ScheduleInputError(ValueError):
    """Roster or grid is malformed and no work was started."""


@dataclass
class AnalysisReport:
    requirement_violations: list[RequirementViolation]
    weekly_violations: list[WeeklyViolation]
    fairness: list[CohortFairness]
    diversity: list[DiversityStat]
    relationships: list[RelationshipStat]
    audit: AuditReport
    assignment_stats: dict[str, dict[AssignmentType, int]]
    cost: float
    total_violations: int
    understaffing_violations: int


def validate_inputs(residents: Sequence[Resident], grid: ScheduleGrid | None = None) -> None:
    problems: list[str] = []
    seen: set[str] = set()
    for resident in residents:
        if resident.id in seen:
            problems.append(f"duplicate resident id '{resident.id}'")
        seen.add(resident.id)
        if resident.level not in (1, 2, 3):
            problems.append(f"resident '{resident.id}' has program year {resident.level}, expected 1-3")
        if not 0 <= resident.cohort < COHORT_COUNT:
            problems.append(f"resident '{resident.id}' has cohort {resident.cohort}, expected 0-{COHORT_COUNT - 1}")
    if grid is not None:
        for resident_id in grid:
            if resident_id not in seen:
                problems.append(f"grid row '{resident_id}' has no roster entry")
            elif len(grid.row(resident_id)) != TOTAL_WEEKS:
                problems.append(
                    f"grid row '{resident_id}' has {len(grid.row(resident_id))} weeks, expected {TOTAL_WEEKS}"
                )
    if problems:
        logger.warning("Rejected schedule input: %s", "; ".join(problems))
        raise ScheduleInputError("; ".join(problems))


def create_tournament(
    residents: Sequence[Resident],
    existing_grid: ScheduleGrid,
    params: CompetitionParams,
    on_progress: ProgressCallback | None = None,
    *,
    rules: RuleSet | None = None,
    weights: CostWeights | None = None,
    max_workers: int | None = None,
) -> Tournament:
    """Validate inputs and return a tournament the caller can run or cancel."""

    validate_inputs(residents, existing_grid)
    return Tournament(
        residents,
        existing_grid,
        generator_ids=params.generator_ids,
        tries=params.tries,
        priority=params.priority,
        top_n=params.top_n,
        seed=params.seed,
        rules=rules,
        weights=weights,
        max_workers=max_workers,
        on_progress=on_progress,
    )


def generate(
    residents: Sequence[Resident],
    existing_grid: ScheduleGrid,
    params: CompetitionParams,
    on_progress: ProgressCallback | None = None,
    *,
    rules: RuleSet | None = None,
    weights: CostWeights | None = None,
    max_workers: int | None = None,
) -> TournamentOutcome:
    tournament = create_tournament(
        residents,
        existing_grid,
        params,
        on_progress,
        rules=rules,
        weights=weights,
        max_workers=max_workers,
    )
    return tournament.run()


def analyze(
    residents: Sequence[Resident],
    grid: ScheduleGrid,
    *,
    rules: RuleSet | None = None,
    weights: CostWeights | None = None,
) -> AnalysisReport:
    validate_inputs(residents, grid)
    rules = rules or load_default_rules()
    evaluation = evaluate_schedule(residents, grid, rules, weights)
    return AnalysisReport(
        requirement_violations=evaluation.requirement_violations,
        weekly_violations=evaluation.weekly_violations,
        fairness=evaluation.fairness,
        diversity=diversity_stats(residents, grid, rules),
        relationships=relationship_stats(residents, grid, rules),
        audit=acgme_audit(residents, grid, rules),
        assignment_stats=assignment_stats(residents, grid),
        cost=evaluation.cost,
        total_violations=evaluation.total_violations,
        understaffing_violations=evaluation.understaffing_violations,
    )


def adapt(
    residents: Sequence[Resident],
    grid: ScheduleGrid,
    params: AdaptationParams | None = None,
    *,
    rules: RuleSet | None = None,
) -> AdaptationResult:
    validate_inputs(residents, grid)
    return adapt_schedule(residents, grid, params, rules)
