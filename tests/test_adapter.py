import pytest

from residency_scheduler.schemas.scheduling import AdaptationParams
from residency_scheduler.services.adapter import adapt_schedule
from residency_scheduler.services.generators import StochasticGenerator
from residency_scheduler.services.grid import Resident, ScheduleCell, ScheduleGrid
from residency_scheduler.services.metrics import evaluate_schedule
from residency_scheduler.services.rules import TOTAL_WEEKS, AssignmentType, RuleSet

from .factories import build_compliant_pair, build_resident, build_row, build_rule_set

WARDS_ONLY = {
    1: [],
    2: [{"type": AssignmentType.WARDS_RED, "label": "Wards", "target_weeks": 4}],
    3: [],
}


def _wards_minimum_rules() -> RuleSet:
    return build_rule_set(
        clear_minimums=True,
        rotation_overrides={AssignmentType.WARDS_RED: {"min_seniors": 1, "max_seniors": 2}},
        requirements={1: [], 2: [], 3: []},
    )


def test_compliant_schedule_needs_no_changes() -> None:
    rules, residents, grid = build_compliant_pair()

    result = adapt_schedule(residents, grid, AdaptationParams(), rules)

    assert result.changes_made == 0
    assert result.change_log == []
    assert result.failure_reasons == []
    assert result.grid == grid


def test_missing_requirement_filled_from_year_end() -> None:
    rules = build_rule_set(clear_minimums=True, requirements=WARDS_ONLY)
    senior = build_resident(id="senior-a", name="Senior A")
    grid = ScheduleGrid({"senior-a": build_row(fill=AssignmentType.ELECTIVE)})
    grid.set_cell("senior-a", TOTAL_WEEKS - 1, ScheduleCell(assignment=AssignmentType.ELECTIVE, locked=True))

    result = adapt_schedule([senior], grid, AdaptationParams(fix_understaffing=False, fix_overstaffing=False), rules)

    assert result.changes_made == 4
    assert result.change_log[0] == "Filled Wards req for Senior A (W51)"
    row = result.grid.row("senior-a")
    assert [cell.assignment for cell in row[47:51]] == [AssignmentType.WARDS_RED] * 4
    assert row[TOTAL_WEEKS - 1] == ScheduleCell(assignment=AssignmentType.ELECTIVE, locked=True)
    assert result.failure_reasons == []


def test_missing_requirement_reports_shortfall() -> None:
    rules = build_rule_set(clear_minimums=True, requirements=WARDS_ONLY)
    senior = build_resident(id="senior-a", name="Senior A")
    grid = ScheduleGrid({"senior-a": build_row((AssignmentType.WARDS_RED, 1), fill=AssignmentType.ICU)})

    result = adapt_schedule([senior], grid, AdaptationParams(), rules)

    assert result.changes_made == 0
    assert result.failure_reasons == ["Senior A: Could not find enough open slots for Wards (Need 3 more)."]


def test_understaffing_prefers_junior_seniors() -> None:
    rules = _wards_minimum_rules()
    junior = build_resident(id="junior", name="Junior", level=2)
    chief = build_resident(id="chief", name="Chief", level=3, cohort=1)
    grid = ScheduleGrid(
        {
            "chief": build_row(fill=AssignmentType.ELECTIVE),
            "junior": build_row(fill=AssignmentType.ELECTIVE),
        }
    )

    result = adapt_schedule([chief, junior], grid, AdaptationParams(), rules)

    assert result.changes_made == TOTAL_WEEKS
    assert result.change_log[0] == "Moved Junior to Wards Red (W1)"
    assert all(cell.assignment is AssignmentType.WARDS_RED for cell in result.grid.row("junior"))
    assert all(cell.assignment is AssignmentType.ELECTIVE for cell in result.grid.row("chief"))
    assert result.failure_reasons == []


def test_vacation_is_protected_unless_allowed() -> None:
    rules = _wards_minimum_rules()
    senior = build_resident(id="senior-a", name="Senior A")
    grid = ScheduleGrid({"senior-a": build_row(fill=AssignmentType.VACATION)})

    protected = adapt_schedule([senior], grid, AdaptationParams(), rules)
    assert protected.changes_made == 0
    assert len(protected.failure_reasons) == TOTAL_WEEKS
    assert protected.failure_reasons[0] == "W1 Wards Red: Need 1 more Seniors. No available candidates found."

    overridden = adapt_schedule([senior], grid, AdaptationParams(allow_vacation_override=True), rules)
    assert overridden.changes_made == TOTAL_WEEKS
    assert overridden.failure_reasons == []


def test_research_override_can_be_disabled() -> None:
    rules = _wards_minimum_rules()
    senior = build_resident(id="senior-a", name="Senior A")
    grid = ScheduleGrid({"senior-a": build_row(fill=AssignmentType.RESEARCH)})

    result = adapt_schedule([senior], grid, AdaptationParams(allow_research_override=False), rules)

    assert result.changes_made == 0
    assert len(result.failure_reasons) == TOTAL_WEEKS


def test_overstaffing_evicts_unlocked_juniors_first() -> None:
    rules = build_rule_set(
        clear_minimums=True,
        rotation_overrides={AssignmentType.WARDS_RED: {"max_seniors": 1}},
        requirements={1: [], 2: [], 3: []},
    )
    residents = [
        build_resident(id="locked", name="Locked", level=3),
        build_resident(id="chief", name="Chief", level=3, cohort=1),
        build_resident(id="junior", name="Junior", level=2, cohort=2),
        build_resident(id="second", name="Second", level=2, cohort=3),
    ]
    rows = {resident.id: build_row((AssignmentType.WARDS_RED, 1), fill=AssignmentType.ELECTIVE) for resident in residents}
    rows["locked"][0] = ScheduleCell(assignment=AssignmentType.WARDS_RED, locked=True)
    grid = ScheduleGrid(rows)

    result = adapt_schedule(residents, grid, AdaptationParams(), rules)

    assert result.changes_made == 3
    assert result.change_log == [
        "Moved Junior from Wards Red to Elective (W1)",
        "Moved Second from Wards Red to Elective (W1)",
        "Moved Chief from Wards Red to Elective (W1)",
    ]
    assert result.grid.cell("locked", 0).assignment is AssignmentType.WARDS_RED
    assert result.failure_reasons == []


def test_overstaffing_blocked_by_locks_and_requirements() -> None:
    rules = build_rule_set(
        clear_minimums=True,
        rotation_overrides={AssignmentType.ICU: {"max_seniors": 0}, AssignmentType.WARDS_RED: {"max_seniors": 0}},
        requirements={1: [], 2: [{"type": AssignmentType.ICU, "label": "ICU", "target_weeks": 1}], 3: []},
    )
    senior = build_resident(id="senior-a", name="Senior A")
    row = build_row((AssignmentType.ICU, 1), fill=AssignmentType.ELECTIVE)
    row[1] = ScheduleCell(assignment=AssignmentType.WARDS_RED, locked=True)
    grid = ScheduleGrid({"senior-a": row})

    result = adapt_schedule([senior], grid, AdaptationParams(), rules)

    assert result.changes_made == 0
    assert result.failure_reasons == [
        "W1 Intensive Care: Overstaffed by 1 Seniors. Remaining assignments are locked or required.",
        "W2 Wards Red: Overstaffed by 1 Seniors. All assigned are locked.",
    ]


def test_disabled_strategies_do_nothing(roster: list[Resident], empty_grid: ScheduleGrid, rules: RuleSet) -> None:
    params = AdaptationParams(fill_missing_requirements=False, fix_understaffing=False, fix_overstaffing=False)

    result = adapt_schedule(roster, empty_grid, params, rules)

    assert result.changes_made == 0
    assert result.grid == empty_grid


@pytest.mark.parametrize("seed", [4, 19])
def test_repair_never_increases_violations(
    seed: int, roster: list[Resident], empty_grid: ScheduleGrid, rules: RuleSet
) -> None:
    grid = StochasticGenerator(rules).generate(roster, empty_grid, attempt_seed=seed)
    # Simulate hand edits: clear a stretch of weeks for a few residents.
    for resident in roster[::4]:
        for week in range(10, 18):
            if not grid.cell(resident.id, week).locked:
                grid.set_cell(resident.id, week, ScheduleCell(assignment=AssignmentType.ELECTIVE))
    before = evaluate_schedule(roster, grid, rules).total_violations
    snapshot = grid.to_payload()

    result = adapt_schedule(roster, grid, AdaptationParams(), rules)

    after = evaluate_schedule(roster, result.grid, rules).total_violations
    assert after <= before
    assert grid.to_payload() == snapshot
    for resident in roster:
        for week in range(TOTAL_WEEKS):
            if grid.cell(resident.id, week).locked:
                assert result.grid.cell(resident.id, week) == grid.cell(resident.id, week)


def test_repair_on_empty_grid_improves_it(roster: list[Resident], empty_grid: ScheduleGrid, rules: RuleSet) -> None:
    before = evaluate_schedule(roster, empty_grid, rules).total_violations

    result = adapt_schedule(roster, empty_grid, AdaptationParams(), rules)

    assert result.changes_made > 0
    assert evaluate_schedule(roster, result.grid, rules).total_violations < before
