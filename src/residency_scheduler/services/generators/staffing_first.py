from __future__ import annotations

from residency_scheduler.services.generators.base import GenerationWorkspace, ScheduleGenerator
from residency_scheduler.services.grid import Resident
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType

CONFLICT_WEIGHT = 10
FRAGMENT_PENALTY = 25


def _isolated_gaps(workspace: GenerationWorkspace, resident: Resident, start: int, length: int) -> int:
    """Count single open weeks that a block at ``start`` would strand on either side."""

    gaps = 0
    before, after = start - 1, start + length
    if before >= 0 and workspace.is_open(resident, before):
        if before == 0 or not workspace.is_open(resident, before - 1):
            gaps += 1
    if after < TOTAL_WEEKS and workspace.is_open(resident, after):
        if after == TOTAL_WEEKS - 1 or not workspace.is_open(resident, after + 1):
            gaps += 1
    return gaps


class StaffingFirstGenerator(ScheduleGenerator):
    """Covers every weekly minimum before any educational requirement is considered."""

    id = "staffing_first"
    name = "Staffing First"

    def _build(self, workspace: GenerationWorkspace) -> None:
        def choose(candidates: list[Resident], assignment: AssignmentType) -> Resident:
            pool = workspace.rng.shuffled(candidates)
            return max(
                pool,
                key=lambda resident: (workspace.remaining_for(resident, assignment), workspace.slack(resident)),
            )

        for week in range(TOTAL_WEEKS):
            for assignment in workspace.rules.core_types:
                for intern in (True, False):
                    workspace.staff_week(week, assignment, intern, choose, respect_slack=False)

        def conflict(resident: Resident, assignment: AssignmentType, start: int, length: int) -> float:
            load = sum(workspace.counter.count(week, assignment, resident.level) for week in range(start, start + length))
            return CONFLICT_WEIGHT * load + FRAGMENT_PENALTY * _isolated_gaps(workspace, resident, start, length)

        for resident in workspace.rng.shuffled(workspace.residents):
            for entry in workspace.rules.requirements_for(resident.level):
                workspace.place_requirement(resident, entry, conflict)
