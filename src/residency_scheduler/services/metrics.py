"""Violation, fairness and cost calculations over a schedule grid."""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Sequence

from residency_scheduler.services.grid import (
    Resident,
    ScheduleCell,
    ScheduleGrid,
    StaffingCounter,
    assignment_counts,
    requirement_count,
)
from residency_scheduler.services.rules import (
    INTERN_LEVEL,
    TOTAL_WEEKS,
    UNBOUNDED,
    AssignmentType,
    ClinicalSetting,
    RuleSet,
    load_default_rules,
)

if TYPE_CHECKING:
    from residency_scheduler.core.config import Settings

HEAVY_INTENSITY = 3
RESTING_INTENSITY = 2
PROGRAM_YEARS = (1, 2, 3)
FAIRNESS_TARGET_LEVEL = 3
CRITICAL_CARE_LIMIT = 8
NIGHT_FLOAT_LIMIT = 8
SETTING_GOAL_WEEKS = 13


@dataclass
class RequirementViolation:
    resident_id: str
    resident_name: str
    type: AssignmentType
    label: str
    target: int
    actual: int


@dataclass
class WeeklyViolation:
    week: int  # 1-based
    type: AssignmentType
    issue: str
    kind: Literal["understaffed", "overstaffed"]
    level: Literal["intern", "senior"]
    expected: int
    actual: int


@dataclass
class ResidentFairness:
    resident_id: str
    name: str
    level: int
    core_weeks: int = 0
    elective_weeks: int = 0
    required_weeks: int = 0
    vacation_weeks: int = 0
    night_float_weeks: int = 0
    intensity_score: int = 0
    max_streak: int = 0
    streak_summary: list[str] = field(default_factory=list)


@dataclass
class CohortFairness:
    level: int
    resident_count: int
    mean_core: float
    sd_core: float
    mean_elective: float
    sd_elective: float
    mean_intensity: float
    sd_intensity: float
    score: int
    residents: list[ResidentFairness] = field(default_factory=list)


@dataclass
class DiversityStat:
    resident_id: str
    unique_partners: int
    percent: float


@dataclass
class RelationshipStat:
    resident_id: str
    unique_partners: int
    diversity_percent: float
    top_partner_id: str | None
    top_partner_weeks: int
    avoided_overlap_weeks: int


@dataclass
class ResidentAudit:
    resident_id: str
    outpatient_weeks: int
    inpatient_weeks: int
    critical_care_weeks: int
    night_float_weeks: int
    critical_care_exceeded: bool
    night_float_exceeded: bool


@dataclass
class AuditReport:
    residents: list[ResidentAudit]
    outpatient_goal_met: int
    inpatient_goal_met: int


@dataclass
class CostWeights:
    violation: float = 10_000
    fairness: float = 10
    streak: float = 100

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CostWeights":
        return cls(
            violation=settings.violation_weight,
            fairness=settings.fairness_weight,
            streak=settings.streak_weight,
        )


@dataclass
class ScheduleEvaluation:
    requirement_violations: list[RequirementViolation]
    weekly_violations: list[WeeklyViolation]
    fairness: list[CohortFairness]
    cost: float

    @property
    def total_violations(self) -> int:
        return len(self.requirement_violations) + len(self.weekly_violations)

    @property
    def understaffing_violations(self) -> int:
        return sum(1 for violation in self.weekly_violations if violation.kind == "understaffed")


def _row(grid: ScheduleGrid, resident: Resident) -> list[ScheduleCell]:
    return grid.row(resident.id) if resident.id in grid else []


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _population_sd(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    mean = _mean(values)
    return math.sqrt(sum((value - mean) ** 2 for value in values) / len(values))


def _coefficient_of_variation(values: Sequence[float]) -> float:
    return _population_sd(values) / (_mean(values) or 1)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def requirement_violations(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None
) -> list[RequirementViolation]:
    rules = rules or load_default_rules()
    violations = []
    for resident in residents:
        row = _row(grid, resident)
        for entry in rules.requirements_for(resident.level):
            actual = requirement_count(row, entry.type, rules)
            if actual < entry.target_weeks:
                violations.append(
                    RequirementViolation(
                        resident_id=resident.id,
                        resident_name=resident.name,
                        type=entry.type,
                        label=entry.label,
                        target=entry.target_weeks,
                        actual=actual,
                    )
                )
    return violations


def weekly_violations(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None
) -> list[WeeklyViolation]:
    rules = rules or load_default_rules()
    counter = StaffingCounter.from_grid(residents, grid)
    violations = []
    for week in range(TOTAL_WEEKS):
        for assignment in rules.staffed_types:
            for level, label in ((INTERN_LEVEL, "intern"), (INTERN_LEVEL + 1, "senior")):
                minimum, maximum = rules.bounds(assignment, level)
                actual = counter.count(week, assignment, level)
                noun = "Interns" if label == "intern" else "Seniors"
                if actual < minimum:
                    violations.append(
                        WeeklyViolation(
                            week=week + 1,
                            type=assignment,
                            issue=f"Min {noun} Unmet: {actual}/{minimum}",
                            kind="understaffed",
                            level=label,
                            expected=minimum,
                            actual=actual,
                        )
                    )
                if maximum < UNBOUNDED and actual > maximum:
                    violations.append(
                        WeeklyViolation(
                            week=week + 1,
                            type=assignment,
                            issue=f"Max {noun} Exceeded: {actual}/{maximum}",
                            kind="overstaffed",
                            level=label,
                            expected=maximum,
                            actual=actual,
                        )
                    )
    return violations


def resident_fairness(resident: Resident, row: Sequence[ScheduleCell], rules: RuleSet) -> ResidentFairness:
    snapshot = ResidentFairness(resident_id=resident.id, name=resident.name, level=resident.level)
    current = 0
    current_types: list[str] = []
    for week, cell in enumerate(row):
        if cell.assignment is None:
            continue
        assignment = cell.assignment
        category = rules.category(assignment)
        intensity = rules.intensity(assignment)
        snapshot.intensity_score += intensity
        if category == "core":
            snapshot.core_weeks += 1
        elif category == "required":
            snapshot.required_weeks += 1
        elif category == "elective":
            snapshot.elective_weeks += 1
        elif category == "vacation":
            snapshot.vacation_weeks += 1
        if assignment is AssignmentType.NIGHT_FLOAT:
            snapshot.night_float_weeks += 1

        # Heavy weeks extend the run, light weeks break it, moderate weeks leave it alone.
        if intensity >= HEAVY_INTENSITY:
            current += 1
            current_types.append(f"{assignment.value} (W{week + 1})")
            if current > snapshot.max_streak:
                snapshot.max_streak = current
                snapshot.streak_summary = list(current_types)
        elif intensity < RESTING_INTENSITY:
            current = 0
            current_types = []
    return snapshot


def fairness_metrics(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None
) -> list[CohortFairness]:
    rules = rules or load_default_rules()
    cohorts = []
    for level in PROGRAM_YEARS:
        snapshots = [
            resident_fairness(resident, _row(grid, resident), rules)
            for resident in residents
            if resident.level == level
        ]
        core = [float(item.core_weeks) for item in snapshots]
        elective = [float(item.elective_weeks) for item in snapshots]
        intensity = [float(item.intensity_score) for item in snapshots]
        if snapshots:
            penalty = 50 * _coefficient_of_variation(core) + 50 * _coefficient_of_variation(intensity)
            score = min(100, max(0, 100 - _round_half_up(penalty)))
        else:
            score = 100
        cohorts.append(
            CohortFairness(
                level=level,
                resident_count=len(snapshots),
                mean_core=_mean(core),
                sd_core=_population_sd(core),
                mean_elective=_mean(elective),
                sd_elective=_population_sd(elective),
                mean_intensity=_mean(intensity),
                sd_intensity=_population_sd(intensity),
                score=score,
                residents=snapshots,
            )
        )
    return cohorts


def _shared_staffed_weeks(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet
) -> dict[str, Counter[str]]:
    shared: dict[str, Counter[str]] = {resident.id: Counter() for resident in residents}
    for week in range(TOTAL_WEEKS):
        on_service: dict[AssignmentType, list[str]] = defaultdict(list)
        for resident in residents:
            row = _row(grid, resident)
            if week < len(row) and rules.is_staffed(row[week].assignment):
                on_service[row[week].assignment].append(resident.id)
        for team in on_service.values():
            for resident_id in team:
                for partner_id in team:
                    if partner_id != resident_id:
                        shared[resident_id][partner_id] += 1
    return shared


def diversity_stats(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None
) -> list[DiversityStat]:
    rules = rules or load_default_rules()
    shared = _shared_staffed_weeks(residents, grid, rules)
    others = len(residents) - 1
    return [
        DiversityStat(
            resident_id=resident.id,
            unique_partners=len(shared[resident.id]),
            percent=(len(shared[resident.id]) / others * 100) if others > 0 else 0.0,
        )
        for resident in residents
    ]


def relationship_stats(
    residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None
) -> list[RelationshipStat]:
    """Co-assignment summary per resident; avoid-lists are reported, never enforced."""

    rules = rules or load_default_rules()
    shared = _shared_staffed_weeks(residents, grid, rules)
    others = len(residents) - 1
    stats = []
    for resident in residents:
        partners = shared[resident.id]
        top = partners.most_common(1)
        stats.append(
            RelationshipStat(
                resident_id=resident.id,
                unique_partners=len(partners),
                diversity_percent=(len(partners) / others * 100) if others > 0 else 0.0,
                top_partner_id=top[0][0] if top else None,
                top_partner_weeks=top[0][1] if top else 0,
                avoided_overlap_weeks=sum(partners[peer] for peer in resident.avoid_resident_ids),
            )
        )
    return stats


def assignment_stats(residents: Sequence[Resident], grid: ScheduleGrid) -> dict[str, dict[AssignmentType, int]]:
    stats = {}
    for resident in residents:
        counts = assignment_counts(_row(grid, resident))
        stats[resident.id] = {assignment: counts[assignment] for assignment in AssignmentType}
    return stats


def acgme_audit(residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet | None = None) -> AuditReport:
    rules = rules or load_default_rules()
    entries = []
    for resident in residents:
        settings: Counter[ClinicalSetting] = Counter()
        night_float = 0
        for cell in _row(grid, resident):
            if cell.assignment is None:
                continue
            settings[rules.metadata(cell.assignment).setting] += 1
            if cell.assignment is AssignmentType.NIGHT_FLOAT:
                night_float += 1
        critical_care = settings[ClinicalSetting.CRITICAL_CARE]
        entries.append(
            ResidentAudit(
                resident_id=resident.id,
                outpatient_weeks=settings[ClinicalSetting.OUTPATIENT],
                inpatient_weeks=settings[ClinicalSetting.INPATIENT] + critical_care,
                critical_care_weeks=critical_care,
                night_float_weeks=night_float,
                critical_care_exceeded=critical_care > CRITICAL_CARE_LIMIT,
                night_float_exceeded=night_float > NIGHT_FLOAT_LIMIT,
            )
        )
    return AuditReport(
        residents=entries,
        outpatient_goal_met=sum(1 for entry in entries if entry.outpatient_weeks >= SETTING_GOAL_WEEKS),
        inpatient_goal_met=sum(1 for entry in entries if entry.inpatient_weeks >= SETTING_GOAL_WEEKS),
    )


def _cost(
    violation_count: int,
    cohorts: Sequence[CohortFairness],
    weights: CostWeights,
) -> float:
    target = next((cohort for cohort in cohorts if cohort.level == FAIRNESS_TARGET_LEVEL), None)
    target_score = target.score if target is not None else 100
    streaks = [float(item.max_streak) for cohort in cohorts for item in cohort.residents]
    return (
        violation_count * weights.violation
        + (100 - target_score) * weights.fairness
        + _population_sd(streaks) * weights.streak
    )


def schedule_cost(
    residents: Sequence[Resident],
    grid: ScheduleGrid,
    rules: RuleSet | None = None,
    weights: CostWeights | None = None,
) -> float:
    """Lower is better; one hard violation outweighs any fairness or streak spread."""

    return evaluate_schedule(residents, grid, rules, weights).cost


def evaluate_schedule(
    residents: Sequence[Resident],
    grid: ScheduleGrid,
    rules: RuleSet | None = None,
    weights: CostWeights | None = None,
) -> ScheduleEvaluation:
    rules = rules or load_default_rules()
    weights = weights or CostWeights()
    requirements = requirement_violations(residents, grid, rules)
    weekly = weekly_violations(residents, grid, rules)
    cohorts = fairness_metrics(residents, grid, rules)
    return ScheduleEvaluation(
        requirement_violations=requirements,
        weekly_violations=weekly,
        fairness=cohorts,
        cost=_cost(len(requirements) + len(weekly), cohorts, weights),
    )
