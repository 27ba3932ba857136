"""Repairs an existing, possibly hand-edited schedule toward compliance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from residency_scheduler.schemas.scheduling import AdaptationParams
from residency_scheduler.services.grid import (
    Resident,
    ScheduleCell,
    ScheduleGrid,
    StaffingCounter,
    requirement_count,
)
from residency_scheduler.services.rules import (
    TOTAL_WEEKS,
    AssignmentType,
    RuleSet,
    load_default_rules,
)

logger = logging.getLogger(__name__)


@dataclass
class AdaptationResult:
    grid: ScheduleGrid
    changes_made: int = 0
    change_log: list[str] = field(default_factory=list)
    failure_reasons: list[str] = field(default_factory=list)


class _ScheduleRepair:
    def __init__(
        self,
        residents: Sequence[Resident],
        grid: ScheduleGrid,
        params: AdaptationParams,
        rules: RuleSet,
    ) -> None:
        self.residents = list(residents)
        self.grid = grid
        self.params = params
        self.rules = rules
        for resident in self.residents:
            grid.ensure_row(resident.id)
        self.counter = StaffingCounter.from_grid(self.residents, grid)
        self.result = AdaptationResult(grid=grid)

    def is_modifiable(self, resident: Resident, week: int) -> bool:
        cell = self.grid.cell(resident.id, week)
        if cell.locked:
            return False
        if cell.assignment is None or cell.assignment is AssignmentType.ELECTIVE:
            return True
        if cell.assignment is AssignmentType.RESEARCH:
            return self.params.allow_research_override
        if cell.assignment is AssignmentType.VACATION:
            return self.params.allow_vacation_override
        return False

    def _assign(self, resident: Resident, week: int, assignment: AssignmentType, message: str) -> None:
        previous = self.grid.cell(resident.id, week).assignment
        if previous is not None:
            self.counter.add(week, previous, resident.level, -1)
        self.grid.set_cell(resident.id, week, ScheduleCell(assignment=assignment, locked=False))
        self.counter.add(week, assignment, resident.level)
        self.result.changes_made += 1
        self.result.change_log.append(message)

    def _needed_for_requirement(self, resident: Resident, assignment: AssignmentType) -> bool:
        row = self.grid.row(resident.id)
        for entry in self.rules.requirements_for(resident.level):
            if assignment in self.rules.family_members(entry.type):
                if requirement_count(row, entry.type, self.rules) <= entry.target_weeks:
                    return True
        return False

    def fill_missing_requirements(self) -> None:
        for resident in self.residents:
            for entry in self.rules.requirements_for(resident.level):
                missing = entry.target_weeks - requirement_count(self.grid.row(resident.id), entry.type, self.rules)
                if missing <= 0:
                    continue
                # Late weeks first: the end of the year is the least disruptive place to catch up.
                for week in range(TOTAL_WEEKS - 1, -1, -1):
                    if missing <= 0:
                        break
                    if not self.is_modifiable(resident, week):
                        continue
                    for assignment in self.rules.placement_types(entry.type):
                        maximum = self.rules.bounds(assignment, resident.level)[1]
                        if self.counter.count(week, assignment, resident.level) < maximum:
                            self._assign(
                                resident,
                                week,
                                assignment,
                                f"Filled {entry.label} req for {resident.name} (W{week + 1})",
                            )
                            missing -= 1
                            break
                if missing > 0:
                    self.result.failure_reasons.append(
                        f"{resident.name}: Could not find enough open slots for {entry.label} (Need {missing} more)."
                    )

    def fix_understaffing(self) -> None:
        for week in range(TOTAL_WEEKS):
            for assignment in self.rules.minimum_staffed_types:
                label = self.rules.metadata(assignment).label
                for intern, noun in ((True, "Interns"), (False, "Seniors")):
                    level = 1 if intern else 2
                    need = self.rules.bounds(assignment, level)[0] - self.counter.count(week, assignment, level)
                    if need <= 0:
                        continue
                    candidates = [
                        resident
                        for resident in self.residents
                        if resident.is_intern == intern and self.is_modifiable(resident, week)
                    ]
                    candidates.sort(key=lambda resident: resident.level)
                    for resident in candidates[:need]:
                        self._assign(resident, week, assignment, f"Moved {resident.name} to {label} (W{week + 1})")
                        need -= 1
                    if need > 0:
                        self.result.failure_reasons.append(
                            f"W{week + 1} {label}: Need {need} more {noun}. No available candidates found."
                        )

    def fix_overstaffing(self) -> None:
        for week in range(TOTAL_WEEKS):
            for assignment in self.rules.staffed_types:
                label = self.rules.metadata(assignment).label
                for intern, noun in ((True, "Interns"), (False, "Seniors")):
                    level = 1 if intern else 2
                    excess = self.counter.count(week, assignment, level) - self.rules.bounds(assignment, level)[1]
                    if excess <= 0:
                        continue
                    assigned = [
                        resident
                        for resident in self.residents
                        if resident.is_intern == intern and self.grid.cell(resident.id, week).assignment is assignment
                    ]
                    unlocked = [resident for resident in assigned if not self.grid.cell(resident.id, week).locked]
                    evictable = sorted(
                        (resident for resident in unlocked if not self._needed_for_requirement(resident, assignment)),
                        key=lambda resident: resident.level,
                    )
                    for resident in evictable[:excess]:
                        self._assign(
                            resident,
                            week,
                            AssignmentType.ELECTIVE,
                            f"Moved {resident.name} from {label} to Elective (W{week + 1})",
                        )
                        excess -= 1
                    if excess > 0:
                        blocker = "All assigned are locked." if not unlocked else "Remaining assignments are locked or required."
                        self.result.failure_reasons.append(
                            f"W{week + 1} {label}: Overstaffed by {excess} {noun}. {blocker}"
                        )


def adapt_schedule(
    residents: Sequence[Resident],
    grid: ScheduleGrid,
    params: AdaptationParams | None = None,
    rules: RuleSet | None = None,
) -> AdaptationResult:
    """Apply the enabled repair strategies to a copy of ``grid``.

    Only unlocked empty, elective or explicitly overridable cells are rewritten,
    and no repair removes weeks a requirement or staffing minimum still depends on.
    """

    params = params or AdaptationParams()
    repair = _ScheduleRepair(residents, grid.clone(), params, rules or load_default_rules())
    if params.fill_missing_requirements:
        repair.fill_missing_requirements()
    if params.fix_understaffing:
        repair.fix_understaffing()
    if params.fix_overstaffing:
        repair.fix_overstaffing()
    logger.info(
        "Adaptation finished: changes=%d unresolved=%d",
        repair.result.changes_made,
        len(repair.result.failure_reasons),
    )
    return repair.result
