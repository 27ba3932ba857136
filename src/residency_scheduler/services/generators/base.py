from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from typing import Callable, ClassVar, Iterable, MutableSequence, Sequence, TypeVar

from residency_scheduler.services.grid import (
    EMPTY_CELL,
    Resident,
    ScheduleCell,
    ScheduleGrid,
    StaffingCounter,
    assignment_counts,
    can_fit_block,
    clinic_week,
    place_block,
)
from residency_scheduler.services.rules import (
    TOTAL_WEEKS,
    AssignmentType,
    RequirementEntry,
    RuleSet,
    load_default_rules,
)

T = TypeVar("T")

LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280
MAX_STAFFING_ROUNDS = 10
CLINIC_CELL = ScheduleCell(assignment=AssignmentType.CLINIC, locked=True)

# (start week, block length, rotation)
BlockOption = tuple[int, int, AssignmentType]
OptionScorer = Callable[[Resident, AssignmentType, int, int], "float | None"]


class SeededRandom:
    """Linear-congruential generator so attempts replay exactly from their seed."""

    def __init__(self, seed: int) -> None:
        self._state = seed % LCG_MODULUS

    def random(self) -> float:
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self._state / LCG_MODULUS

    def randrange(self, upper: int) -> int:
        return min(int(self.random() * upper), upper - 1)

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        for index in range(len(items) - 1, 0, -1):
            swap = self.randrange(index + 1)
            items[index], items[swap] = items[swap], items[index]
        return items

    def shuffled(self, items: Iterable[T]) -> list[T]:
        values = list(items)
        self.shuffle(values)
        return values


def prepare_grid(residents: Sequence[Resident], existing: ScheduleGrid) -> ScheduleGrid:
    """Pin clinic weeks, keep other locked input cells and clear everything else.

    A locked cell without an assignment carries nothing to keep and is cleared.
    """

    grid = ScheduleGrid()
    for resident in residents:
        source = existing.row(resident.id) if resident.id in existing else None
        row = grid.ensure_row(resident.id)
        for week in range(TOTAL_WEEKS):
            cell = source[week] if source is not None else EMPTY_CELL
            if clinic_week(resident, week):
                row[week] = CLINIC_CELL
            elif cell.locked and cell.assignment is not None:
                row[week] = cell
    return grid


class GenerationWorkspace:
    """Mutable state for a single generator attempt.

    Tracks weekly headcounts, per-resident assignment counts and open weeks
    incrementally so the placement heuristics never rescan the grid.
    """

    def __init__(self, residents: Sequence[Resident], grid: ScheduleGrid, rules: RuleSet, rng: SeededRandom) -> None:
        self.residents = list(residents)
        self.grid = grid
        self.rules = rules
        self.rng = rng
        self.interns = [resident for resident in self.residents if resident.is_intern]
        self.seniors = [resident for resident in self.residents if not resident.is_intern]
        self.counter = StaffingCounter.from_grid(self.residents, grid)
        self._counts: dict[str, Counter[AssignmentType]] = {}
        self._open: dict[str, int] = {}
        self._open_by_week = [[0, 0] for _ in range(TOTAL_WEEKS)]
        for resident in self.residents:
            row = grid.row(resident.id)
            self._counts[resident.id] = assignment_counts(row)
            self._open[resident.id] = 0
            for week, cell in enumerate(row):
                if cell.assignment is None and not cell.locked:
                    self._open[resident.id] += 1
                    self._open_by_week[week][0 if resident.is_intern else 1] += 1

    def group(self, intern: bool) -> list[Resident]:
        return self.interns if intern else self.seniors

    def is_open(self, resident: Resident, week: int) -> bool:
        cell = self.grid.cell(resident.id, week)
        return cell.assignment is None and not cell.locked

    def fits(self, resident: Resident, start: int, length: int) -> bool:
        return can_fit_block(self.grid, resident.id, start, length)

    def within_max(self, resident: Resident, assignment: AssignmentType, start: int, length: int) -> bool:
        maximum = self.rules.bounds(assignment, resident.level)[1]
        return all(self.counter.count(week, assignment, resident.level) < maximum for week in range(start, start + length))

    def can_place(self, resident: Resident, assignment: AssignmentType, start: int, length: int) -> bool:
        return self.fits(resident, start, length) and self.within_max(resident, assignment, start, length)

    def place(self, resident: Resident, start: int, length: int, assignment: AssignmentType) -> None:
        place_block(self.grid, resident.id, start, length, assignment)
        self._counts[resident.id][assignment] += length
        self._open[resident.id] -= length
        slot = 0 if resident.is_intern else 1
        for week in range(start, start + length):
            self.counter.add(week, assignment, resident.level)
            self._open_by_week[week][slot] -= 1

    def shortfall(self, week: int, assignment: AssignmentType, intern: bool) -> int:
        level = 1 if intern else 2
        minimum = self.rules.bounds(assignment, level)[0]
        return max(0, minimum - self.counter.count(week, assignment, level))

    def open_in_week(self, week: int, intern: bool) -> int:
        return self._open_by_week[week][0 if intern else 1]

    def residual_need(self, week: int, intern: bool) -> int:
        """Headcount still missing across every staffing minimum for one level group."""

        return sum(self.shortfall(week, assignment, intern) for assignment in self.rules.minimum_staffed_types)

    def remaining(self, resident: Resident, entry: RequirementEntry) -> int:
        counts = self._counts[resident.id]
        done = sum(counts[member] for member in self.rules.family_members(entry.type))
        return max(0, entry.target_weeks - done)

    def remaining_for(self, resident: Resident, assignment: AssignmentType) -> int:
        return sum(
            self.remaining(resident, entry)
            for entry in self.rules.requirements_for(resident.level)
            if assignment in self.rules.family_members(entry.type)
        )

    def slack(self, resident: Resident) -> int:
        """Open weeks left once every outstanding requirement is accounted for."""

        owed = sum(self.remaining(resident, entry) for entry in self.rules.requirements_for(resident.level))
        return self._open[resident.id] - owed

    def can_afford(self, resident: Resident, assignment: AssignmentType, length: int) -> bool:
        extra = max(0, length - self.remaining_for(resident, assignment))
        return extra <= self.slack(resident)

    def block_lengths(self, assignment: AssignmentType, cap: int | None = None) -> range:
        longest = self.rules.duration(assignment)
        if cap is not None:
            longest = min(longest, cap)
        return range(max(longest, 1), 0, -1)

    def best_option(
        self,
        resident: Resident,
        entry: RequirementEntry,
        remaining: int,
        score: OptionScorer,
    ) -> BlockOption | None:
        """Lowest-scoring valid window, shrinking the block when nothing fits.

        Starts are visited in a seeded order so equal scores break randomly.
        """

        placement_types = self.rules.placement_types(entry.type)
        starts = self.rng.shuffled(range(TOTAL_WEEKS))
        longest = max(self.rules.duration(assignment) for assignment in placement_types)
        for length in range(min(longest, remaining), 0, -1):
            best: BlockOption | None = None
            best_score = 0.0
            for start in starts:
                if not self.fits(resident, start, length):
                    continue
                for assignment in placement_types:
                    if not self.within_max(resident, assignment, start, length):
                        continue
                    value = score(resident, assignment, start, length)
                    if value is None:
                        continue
                    if best is None or value < best_score:
                        best, best_score = (start, length, assignment), value
            if best is not None:
                return best
        return None

    def place_requirement(self, resident: Resident, entry: RequirementEntry, score: OptionScorer) -> None:
        for _ in range(TOTAL_WEEKS):
            remaining = self.remaining(resident, entry)
            if remaining <= 0:
                return
            option = self.best_option(resident, entry, remaining, score)
            if option is None:
                return
            start, length, assignment = option
            self.place(resident, start, length, assignment)

    def staff_week(
        self,
        week: int,
        assignment: AssignmentType,
        intern: bool,
        choose: Callable[[list[Resident], AssignmentType], Resident],
        *,
        respect_slack: bool = True,
        max_length: int | None = None,
    ) -> bool:
        """Add residents starting at ``week`` until the minimum is met or no candidate remains."""

        for _ in range(MAX_STAFFING_ROUNDS):
            if self.shortfall(week, assignment, intern) <= 0:
                return True
            chosen: tuple[Resident, int] | None = None
            for length in self.block_lengths(assignment, max_length):
                candidates = [
                    resident
                    for resident in self.group(intern)
                    if self.can_place(resident, assignment, week, length)
                    and (not respect_slack or self.can_afford(resident, assignment, length))
                ]
                if candidates:
                    chosen = (choose(candidates, assignment), length)
                    break
            if chosen is None:
                return False
            resident, length = chosen
            self.place(resident, week, length, assignment)
        return self.shortfall(week, assignment, intern) <= 0

    def fill_electives(self) -> None:
        for resident in self.residents:
            for week in range(TOTAL_WEEKS):
                if not self.is_open(resident, week):
                    continue
                length = 2 if self.fits(resident, week, 2) else 1
                self.place(resident, week, length, AssignmentType.ELECTIVE)


class ScheduleGenerator(ABC):
    """A scheduling strategy producing a complete grid from a roster and a seed grid."""

    id: ClassVar[str]
    name: ClassVar[str]

    def __init__(self, rules: RuleSet | None = None) -> None:
        self.rules = rules or load_default_rules()

    def generate(self, residents: Sequence[Resident], existing: ScheduleGrid, attempt_seed: int = 0) -> ScheduleGrid:
        grid = prepare_grid(residents, existing)
        workspace = GenerationWorkspace(residents, grid, self.rules, SeededRandom(attempt_seed))
        self._build(workspace)
        workspace.fill_electives()
        return workspace.grid

    @abstractmethod
    def _build(self, workspace: GenerationWorkspace) -> None:
        """Place staffing and requirement blocks; electives are filled afterwards."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"
