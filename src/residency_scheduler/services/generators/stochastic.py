from __future__ import annotations

from residency_scheduler.services.generators.base import GenerationWorkspace, ScheduleGenerator
from residency_scheduler.services.grid import Resident
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType

UNDER_MINIMUM_REWARD = 200
OCCUPANCY_WEIGHT = 2


class StochasticGenerator(ScheduleGenerator):
    """Randomised foundation staffing followed by load-balanced requirement placement."""

    id = "stochastic"
    name = "Stochastic"

    def _build(self, workspace: GenerationWorkspace) -> None:
        def choose(candidates: list[Resident], assignment: AssignmentType) -> Resident:
            pool = workspace.rng.shuffled(candidates)
            return max(pool, key=lambda resident: workspace.remaining_for(resident, assignment))

        # Foundation: minimum coverage without spending weeks owed to requirements.
        for week in workspace.rng.shuffled(range(TOTAL_WEEKS)):
            for assignment in workspace.rng.shuffled(workspace.rules.minimum_staffed_types):
                for intern in (True, False):
                    workspace.staff_week(week, assignment, intern, choose)

        def load_score(resident: Resident, assignment: AssignmentType, start: int, length: int) -> float:
            minimum = workspace.rules.bounds(assignment, resident.level)[0]
            score = 0.0
            for week in range(start, start + length):
                count = workspace.counter.count(week, assignment, resident.level)
                if count < minimum:
                    score -= UNDER_MINIMUM_REWARD
                score += OCCUPANCY_WEIGHT * count
            return score

        for resident in workspace.rng.shuffled(workspace.residents):
            for entry in workspace.rules.requirements_for(resident.level):
                workspace.place_requirement(resident, entry, load_score)

        # Balancing: open weeks left now are spare, so the slack guard is lifted.
        for week in range(TOTAL_WEEKS):
            for assignment in workspace.rules.minimum_staffed_types:
                for intern in (True, False):
                    workspace.staff_week(week, assignment, intern, choose, respect_slack=False)
