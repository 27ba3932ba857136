from __future__ import annotations

from residency_scheduler.services.generators.base import GenerationWorkspace, ScheduleGenerator
from residency_scheduler.services.grid import Resident
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType


class GreedyGenerator(ScheduleGenerator):
    """Front-fills staffing minimums week by week, then drops requirements into the quietest windows."""

    id = "greedy"
    name = "Greedy"

    def _build(self, workspace: GenerationWorkspace) -> None:
        order = {resident.id: index for index, resident in enumerate(workspace.rng.shuffled(workspace.residents))}

        def choose(candidates: list[Resident], assignment: AssignmentType) -> Resident:
            return min(
                candidates,
                key=lambda resident: (-workspace.remaining_for(resident, assignment), order[resident.id]),
            )

        for week in range(TOTAL_WEEKS):
            for assignment in workspace.rules.minimum_staffed_types:
                for intern in (True, False):
                    workspace.staff_week(week, assignment, intern, choose)

        def window_load(resident: Resident, assignment: AssignmentType, start: int, length: int) -> float:
            return float(
                sum(workspace.counter.count(week, assignment, resident.level) for week in range(start, start + length))
            )

        for resident in sorted(workspace.residents, key=lambda item: order[item.id]):
            for entry in workspace.rules.requirements_for(resident.level):
                workspace.place_requirement(resident, entry, window_load)
