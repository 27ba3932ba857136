from __future__ import annotations

import hashlib
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from residency_scheduler.services.rules import (
    COHORT_COUNT,
    INTERN_LEVEL,
    TOTAL_WEEKS,
    AssignmentType,
    RuleSet,
)


@dataclass(frozen=True)
class Resident:
    id: str
    name: str
    level: int
    cohort: int
    avoid_resident_ids: tuple[str, ...] = ()

    @property
    def is_intern(self) -> bool:
        return self.level == INTERN_LEVEL


@dataclass(frozen=True)
class ScheduleCell:
    assignment: AssignmentType | None = None
    locked: bool = False

    @property
    def is_empty(self) -> bool:
        return self.assignment is None


EMPTY_CELL = ScheduleCell()


class ScheduleGrid:
    """52-week assignment rows keyed by resident id.

    Cells are immutable, so ``clone`` only copies the row lists.
    """

    __slots__ = ("_rows",)

    def __init__(self, rows: Mapping[str, Sequence[ScheduleCell]] | None = None) -> None:
        self._rows: dict[str, list[ScheduleCell]] = {}
        for resident_id, cells in (rows or {}).items():
            self._rows[resident_id] = list(cells)

    @classmethod
    def empty(cls, resident_ids: Iterable[str]) -> "ScheduleGrid":
        return cls({resident_id: [EMPTY_CELL] * TOTAL_WEEKS for resident_id in resident_ids})

    @classmethod
    def from_payload(cls, payload: Mapping[str, Sequence[Any]]) -> "ScheduleGrid":
        rows: dict[str, list[ScheduleCell]] = {}
        for resident_id, cells in payload.items():
            row = []
            for cell in cells:
                if isinstance(cell, ScheduleCell):
                    row.append(cell)
                    continue
                if isinstance(cell, Mapping):
                    assignment, locked = cell.get("assignment"), cell.get("locked", False)
                else:
                    assignment, locked = cell.assignment, cell.locked
                row.append(
                    ScheduleCell(
                        assignment=AssignmentType(assignment) if assignment is not None else None,
                        locked=bool(locked),
                    )
                )
            rows[resident_id] = row
        return cls(rows)

    def to_payload(self) -> dict[str, list[dict[str, Any]]]:
        return {
            resident_id: [
                {
                    "assignment": cell.assignment.value if cell.assignment is not None else None,
                    "locked": cell.locked,
                }
                for cell in row
            ]
            for resident_id, row in self._rows.items()
        }

    def clone(self) -> "ScheduleGrid":
        return ScheduleGrid(self._rows)

    def row(self, resident_id: str) -> list[ScheduleCell]:
        return self._rows[resident_id]

    def cell(self, resident_id: str, week: int) -> ScheduleCell:
        return self._rows[resident_id][week]

    def set_cell(self, resident_id: str, week: int, cell: ScheduleCell) -> None:
        self._rows[resident_id][week] = cell

    def ensure_row(self, resident_id: str) -> list[ScheduleCell]:
        if resident_id not in self._rows:
            self._rows[resident_id] = [EMPTY_CELL] * TOTAL_WEEKS
        return self._rows[resident_id]

    def resident_ids(self) -> list[str]:
        return list(self._rows)

    def fingerprint(self) -> str:
        digest = hashlib.sha1()
        for resident_id in sorted(self._rows):
            digest.update(resident_id.encode("utf-8"))
            for cell in self._rows[resident_id]:
                token = cell.assignment.value if cell.assignment is not None else "-"
                digest.update(f"|{token}{'*' if cell.locked else ''}".encode("utf-8"))
        return digest.hexdigest()

    def __contains__(self, resident_id: object) -> bool:
        return resident_id in self._rows

    def __iter__(self) -> Iterator[str]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScheduleGrid):
            return NotImplemented
        return self._rows == other._rows

    def __repr__(self) -> str:
        return f"ScheduleGrid(residents={len(self._rows)})"


class StaffingCounter:
    """Weekly intern/senior headcounts per rotation, kept in sync with placements."""

    def __init__(self) -> None:
        self._counts: list[dict[AssignmentType, list[int]]] = [{} for _ in range(TOTAL_WEEKS)]

    @classmethod
    def from_grid(cls, residents: Iterable[Resident], grid: ScheduleGrid) -> "StaffingCounter":
        counter = cls()
        for resident in residents:
            if resident.id not in grid:
                continue
            for week, cell in enumerate(grid.row(resident.id)):
                if cell.assignment is not None:
                    counter.add(week, cell.assignment, resident.level)
        return counter

    def add(self, week: int, assignment: AssignmentType, level: int, delta: int = 1) -> None:
        slot = self._counts[week].setdefault(assignment, [0, 0])
        slot[0 if level == INTERN_LEVEL else 1] += delta

    def count(self, week: int, assignment: AssignmentType, level: int) -> int:
        slot = self._counts[week].get(assignment)
        if slot is None:
            return 0
        return slot[0 if level == INTERN_LEVEL else 1]

    def interns(self, week: int, assignment: AssignmentType) -> int:
        return self.count(week, assignment, INTERN_LEVEL)

    def seniors(self, week: int, assignment: AssignmentType) -> int:
        return self.count(week, assignment, INTERN_LEVEL + 1)


def clinic_week(resident: Resident, week: int) -> bool:
    """Week indexes are 0-based, so week 1 belongs to cohort 0."""

    return week % COHORT_COUNT == resident.cohort


def can_fit_block(grid: ScheduleGrid, resident_id: str, start: int, duration: int) -> bool:
    if start < 0 or duration < 1 or start + duration > TOTAL_WEEKS:
        return False
    row = grid.row(resident_id)
    return all(row[week].assignment is None and not row[week].locked for week in range(start, start + duration))


def place_block(
    grid: ScheduleGrid,
    resident_id: str,
    start: int,
    duration: int,
    assignment: AssignmentType,
) -> None:
    """Write ``assignment`` over the range; callers check ``can_fit_block`` first."""

    row = grid.row(resident_id)
    cell = ScheduleCell(assignment=assignment, locked=False)
    for week in range(start, start + duration):
        row[week] = cell


def assignment_counts(row: Sequence[ScheduleCell]) -> Counter[AssignmentType]:
    return Counter(cell.assignment for cell in row if cell.assignment is not None)


def requirement_count(row: Sequence[ScheduleCell], assignment: AssignmentType, rules: RuleSet) -> int:
    """Weeks counting toward a requirement, unioning rotation families."""

    members = rules.family_members(assignment)
    return sum(1 for cell in row if cell.assignment in members)


def build_standard_roster(per_level: int = 5) -> list[Resident]:
    residents = []
    for level in (1, 2, 3):
        for index in range(per_level):
            residents.append(
                Resident(
                    id=f"pgy{level}-{index + 1}",
                    name=f"PGY-{level} Resident {index + 1}",
                    level=level,
                    cohort=index % COHORT_COUNT,
                )
            )
    return residents
