from residency_scheduler.services.grid import (
    ScheduleCell,
    ScheduleGrid,
    StaffingCounter,
    build_standard_roster,
    can_fit_block,
    clinic_week,
    place_block,
    requirement_count,
)
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType, load_default_rules

from .factories import build_resident, build_row


def test_can_fit_block_bounds_and_occupancy() -> None:
    grid = ScheduleGrid.empty(["res-1"])
    grid.set_cell("res-1", 5, ScheduleCell(assignment=AssignmentType.ICU))
    grid.set_cell("res-1", 10, ScheduleCell(assignment=None, locked=True))

    assert can_fit_block(grid, "res-1", 0, 4)
    assert not can_fit_block(grid, "res-1", 3, 4)
    assert not can_fit_block(grid, "res-1", 9, 2)
    assert can_fit_block(grid, "res-1", TOTAL_WEEKS - 2, 2)
    assert not can_fit_block(grid, "res-1", TOTAL_WEEKS - 1, 2)
    assert not can_fit_block(grid, "res-1", -1, 1)


def test_place_block_writes_unlocked_cells() -> None:
    grid = ScheduleGrid.empty(["res-1"])

    place_block(grid, "res-1", 2, 3, AssignmentType.NIGHT_FLOAT)

    row = grid.row("res-1")
    assert [cell.assignment for cell in row[2:5]] == [AssignmentType.NIGHT_FLOAT] * 3
    assert all(not cell.locked for cell in row[2:5])
    assert row[1].is_empty and row[5].is_empty


def test_clone_is_independent() -> None:
    grid = ScheduleGrid.empty(["res-1"])
    copy = grid.clone()

    place_block(copy, "res-1", 0, 2, AssignmentType.EMERGENCY)

    assert grid.row("res-1")[0].is_empty
    assert copy.row("res-1")[0].assignment is AssignmentType.EMERGENCY
    assert grid != copy


def test_payload_keeps_lock_flags() -> None:
    grid = ScheduleGrid({"res-1": build_row((AssignmentType.VACATION, 2), fill=AssignmentType.ELECTIVE)})
    grid.set_cell("res-1", 0, ScheduleCell(assignment=AssignmentType.VACATION, locked=True))

    payload = grid.to_payload()
    assert payload["res-1"][0] == {"assignment": "VAC", "locked": True}
    assert payload["res-1"][1] == {"assignment": "VAC", "locked": False}

    restored = ScheduleGrid.from_payload(payload)
    assert restored == grid
    assert restored.fingerprint() == grid.fingerprint()


def test_requirement_count_unions_family() -> None:
    rules = load_default_rules()
    row = build_row(
        (AssignmentType.WARDS_RED, 4),
        (AssignmentType.WARDS_BLUE, 4),
        (AssignmentType.METRO_WARDS, 2),
        (AssignmentType.ICU, 4),
        fill=AssignmentType.ELECTIVE,
    )

    assert requirement_count(row, AssignmentType.WARDS_RED, rules) == 10
    assert requirement_count(row, AssignmentType.ICU, rules) == 4


def test_staffing_counter_splits_interns_and_seniors() -> None:
    intern = build_resident(id="intern", level=1)
    senior = build_resident(id="senior", level=3)
    grid = ScheduleGrid(
        {
            "intern": build_row((AssignmentType.ICU, 2)),
            "senior": build_row((AssignmentType.ICU, 1)),
        }
    )

    counter = StaffingCounter.from_grid([intern, senior], grid)

    assert counter.interns(0, AssignmentType.ICU) == 1
    assert counter.seniors(0, AssignmentType.ICU) == 1
    assert counter.seniors(1, AssignmentType.ICU) == 0


def test_clinic_week_follows_cohort() -> None:
    resident = build_resident(cohort=2)

    assert [week for week in range(12) if clinic_week(resident, week)] == [2, 7]


def test_standard_roster_cycles_cohorts() -> None:
    roster = build_standard_roster()

    assert len(roster) == 15
    assert {resident.level for resident in roster} == {1, 2, 3}
    assert sorted(resident.cohort for resident in roster if resident.level == 2) == [0, 1, 2, 3, 4]
