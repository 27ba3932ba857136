from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from residency_scheduler.services.generators.base import BlockOption, GenerationWorkspace, ScheduleGenerator
from residency_scheduler.services.grid import Resident
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType, RequirementEntry

UNMET_MINIMUM_REWARD = 1000
POOL_STARVATION_PENALTY = 5000
STAFFED_OCCUPANCY_WEIGHT = 100
OCCUPANCY_WEIGHT = 10


@dataclass
class _RequirementBlock:
    resident: Resident
    entry: RequirementEntry
    length: int
    staffed: bool


class EducationFirstGenerator(ScheduleGenerator):
    """Places every requirement block globally before patching residual staffing gaps."""

    id = "education_first"
    name = "Education First"

    def _build(self, workspace: GenerationWorkspace) -> None:
        queue = deque(self._requirement_blocks(workspace))
        # Every re-queued remainder is strictly shorter, so the total work is bounded.
        while queue:
            block = queue.popleft()
            remaining = workspace.remaining(block.resident, block.entry)
            length = min(block.length, remaining)
            if length <= 0:
                continue
            option = self._best_option(workspace, block.resident, block.entry, length)
            if option is None:
                continue
            start, placed, assignment = option
            workspace.place(block.resident, start, placed, assignment)
            if placed < length:
                queue.append(_RequirementBlock(block.resident, block.entry, length - placed, block.staffed))

        def choose(candidates: list[Resident], assignment: AssignmentType) -> Resident:
            pool = workspace.rng.shuffled(candidates)
            return max(
                pool,
                key=lambda resident: (workspace.remaining_for(resident, assignment), workspace.slack(resident)),
            )

        for week in range(TOTAL_WEEKS):
            for assignment in workspace.rules.minimum_staffed_types:
                for intern in (True, False):
                    workspace.staff_week(week, assignment, intern, choose, respect_slack=False, max_length=1)

    def _requirement_blocks(self, workspace: GenerationWorkspace) -> list[_RequirementBlock]:
        blocks = []
        for resident in workspace.residents:
            for entry in workspace.rules.requirements_for(resident.level):
                remaining = workspace.remaining(resident, entry)
                duration = max(workspace.rules.duration(item) for item in workspace.rules.placement_types(entry.type))
                staffed = any(
                    workspace.rules.is_core(item) for item in workspace.rules.placement_types(entry.type)
                )
                while remaining > 0:
                    length = min(duration, remaining)
                    blocks.append(_RequirementBlock(resident, entry, length, staffed))
                    remaining -= length
        workspace.rng.shuffle(blocks)
        blocks.sort(key=lambda block: (not block.staffed, -block.length))
        return blocks

    def _score(
        self,
        workspace: GenerationWorkspace,
        resident: Resident,
        assignment: AssignmentType,
        start: int,
        length: int,
    ) -> float | None:
        minimum, maximum = workspace.rules.bounds(assignment, resident.level)
        staffed = minimum > 0
        score = 0.0
        for week in range(start, start + length):
            count = workspace.counter.count(week, assignment, resident.level)
            if count >= maximum:
                return None
            if staffed:
                if count < minimum:
                    score -= UNMET_MINIMUM_REWARD
                else:
                    score += STAFFED_OCCUPANCY_WEIGHT * count
            else:
                # Committing this resident must leave enough open peers for the week's minimums.
                pool = workspace.open_in_week(week, resident.is_intern) - 1
                if pool < workspace.residual_need(week, resident.is_intern):
                    score += POOL_STARVATION_PENALTY
                score += OCCUPANCY_WEIGHT * count
        return score

    def _best_option(
        self,
        workspace: GenerationWorkspace,
        resident: Resident,
        entry: RequirementEntry,
        length: int,
    ) -> BlockOption | None:
        placement_types = workspace.rules.placement_types(entry.type)
        for size in range(length, 0, -1):
            best: BlockOption | None = None
            best_score = 0.0
            ties = 0
            for start in range(TOTAL_WEEKS - size + 1):
                if not workspace.fits(resident, start, size):
                    continue
                for assignment in placement_types:
                    score = self._score(workspace, resident, assignment, start, size)
                    if score is None:
                        continue
                    if best is None or score < best_score:
                        best, best_score, ties = (start, size, assignment), score, 1
                    elif score == best_score:
                        # Reservoir sampling keeps each tied option equally likely.
                        ties += 1
                        if workspace.rng.randrange(ties) == 0:
                            best = (start, size, assignment)
            if best is not None:
                return best
        return None
