import pytest

from residency_scheduler.services.generators import GreedyGenerator
from residency_scheduler.services.grid import Resident, ScheduleCell, ScheduleGrid
from residency_scheduler.services.metrics import evaluate_schedule
from residency_scheduler.services.rules import AssignmentType, RuleSet
from residency_scheduler.services.tournament import (
    CompetitionResult,
    Tournament,
    TournamentProgress,
    TournamentState,
    rank_results,
    select_top,
)


def _result(sequence: int, *, total: int, cost: float, understaffing: int = 0, requirements: int = 0) -> CompetitionResult:
    grid = ScheduleGrid.empty(["res-1"])
    grid.set_cell("res-1", 0, ScheduleCell(assignment=AssignmentType.ELECTIVE, locked=sequence % 2 == 0))
    grid.set_cell("res-1", 1 + sequence, ScheduleCell(assignment=AssignmentType.ICU))
    return CompetitionResult(
        grid=grid,
        generator_id="stochastic",
        generator_name="Stochastic",
        cost=cost,
        total_violations=total,
        understaffing_violations=understaffing,
        requirement_violations=requirements,
        attempt_index=sequence,
        seed=sequence,
        sequence=sequence,
    )


def test_best_score_ranks_violations_then_cost() -> None:
    results = [
        _result(0, total=2, cost=20_500),
        _result(1, total=0, cost=900),
        _result(2, total=0, cost=300),
        _result(3, total=1, cost=10_100),
    ]

    ranked = rank_results(results, "best_score")

    assert [item.sequence for item in ranked] == [2, 1, 3, 0]


def test_ranking_ties_keep_dispatch_order() -> None:
    results = [_result(index, total=1, cost=10_000) for index in (4, 1, 3, 2)]

    ranked = rank_results(results, "best_score")

    assert [item.sequence for item in ranked] == [1, 2, 3, 4]


def test_least_understaffing_prefers_coverage() -> None:
    results = [
        _result(0, total=1, cost=10_000, understaffing=1),
        _result(1, total=3, cost=30_000, understaffing=0, requirements=3),
    ]

    assert rank_results(results, "least_understaffing")[0].sequence == 1
    assert rank_results(results, "best_score")[0].sequence == 0


def test_most_requirements_met_breaks_ties_on_requirements() -> None:
    results = [
        _result(0, total=2, cost=20_000, understaffing=0, requirements=2),
        _result(1, total=2, cost=20_100, understaffing=2, requirements=0),
    ]

    assert rank_results(results, "most_requirements_met")[0].sequence == 1
    assert rank_results(results, "best_score")[0].sequence == 0


def test_select_top_skips_duplicate_grids() -> None:
    first = _result(0, total=0, cost=1)
    duplicate = _result(0, total=0, cost=2)
    duplicate.sequence = 5
    other = _result(1, total=0, cost=3)

    top = select_top([first, duplicate, other], top_n=2)

    assert top == [first, other]


def test_tournament_totals_match_recomputed_analysis(
    roster: list[Resident], empty_grid: ScheduleGrid, rules: RuleSet
) -> None:
    tournament = Tournament(
        roster,
        empty_grid,
        generator_ids=["stochastic", "education_first"],
        tries=2,
        top_n=3,
        seed=17,
        rules=rules,
        max_workers=2,
    )
    assert tournament.state is TournamentState.IDLE

    outcome = tournament.run()

    assert tournament.state is TournamentState.DONE
    assert outcome.total_attempts == 4
    assert outcome.attempts_completed == 4
    assert 1 <= len(outcome.results) <= 3
    keys = [(item.total_violations, item.cost) for item in outcome.results]
    assert keys == sorted(keys)
    for result in outcome.results:
        evaluation = evaluate_schedule(roster, result.grid, rules)
        assert result.total_violations == len(evaluation.requirement_violations) + len(evaluation.weekly_violations)
    assert {stats.attempts for stats in outcome.generator_stats.values()} == {2}


def test_failing_generator_is_excluded(
    monkeypatch: pytest.MonkeyPatch, roster: list[Resident], empty_grid: ScheduleGrid
) -> None:
    def _explode(self, residents, existing, attempt_seed=0):
        raise RuntimeError("boom")

    monkeypatch.setattr(GreedyGenerator, "generate", _explode)

    outcome = Tournament(
        roster,
        empty_grid,
        generator_ids=["greedy", "stochastic"],
        tries=2,
        top_n=5,
        seed=3,
    ).run()

    assert outcome.results
    assert all(result.generator_id == "stochastic" for result in outcome.results)
    assert outcome.generator_stats["greedy"].failures == 2
    assert outcome.generator_stats["greedy"].best_cost is None
    assert outcome.generator_stats["stochastic"].failures == 0


def test_progress_reports_every_attempt(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    updates: list[TournamentProgress] = []

    Tournament(
        roster,
        empty_grid,
        generator_ids=["greedy"],
        tries=3,
        seed=9,
        on_progress=updates.append,
    ).run()

    assert [update.completed for update in updates] == [1, 2, 3]
    assert updates[-1].percent == 100
    assert all(update.total == 3 for update in updates)


def test_cancel_returns_partial_results(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    tournament: Tournament | None = None

    def _cancel_after_first(progress: TournamentProgress) -> None:
        assert tournament is not None
        tournament.cancel()

    tournament = Tournament(
        roster,
        empty_grid,
        generator_ids=["greedy"],
        tries=6,
        seed=2,
        max_workers=1,
        on_progress=_cancel_after_first,
    )

    outcome = tournament.run()

    assert outcome.cancelled
    assert outcome.attempts_completed == 1
    assert len(outcome.results) == 1
    assert tournament.state is TournamentState.DONE


def test_same_seed_reproduces_winner(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    def _winner() -> str:
        outcome = Tournament(roster, empty_grid, generator_ids=["greedy"], tries=2, seed=123).run()
        return outcome.results[0].grid.fingerprint()

    assert _winner() == _winner()


def test_invalid_configuration_is_rejected(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    with pytest.raises(ValueError):
        Tournament(roster, empty_grid, generator_ids=[], tries=1)
    with pytest.raises(ValueError):
        Tournament(roster, empty_grid, generator_ids=["greedy"], tries=0)
    with pytest.raises(ValueError):
        Tournament(roster, empty_grid, generator_ids=["unknown"], tries=1)


def test_standard_roster_tournament_finds_feasible_schedule(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    outcome = Tournament(
        roster,
        empty_grid,
        generator_ids=["stochastic", "staffing_first", "education_first"],
        tries=10,
        seed=1,
    ).run()

    assert outcome.attempts_completed == 30
    assert outcome.results[0].total_violations == 0
    assert outcome.feasible


def test_failing_progress_callback_does_not_stop_run(roster: list[Resident], empty_grid: ScheduleGrid) -> None:
    calls: list[int] = []

    def _broken(progress: TournamentProgress) -> None:
        calls.append(progress.completed)
        raise RuntimeError("display went away")

    outcome = Tournament(
        roster,
        empty_grid,
        generator_ids=["greedy"],
        tries=3,
        seed=4,
        max_workers=1,
        on_progress=_broken,
    ).run()

    assert calls == [1, 2, 3]
    assert outcome.attempts_completed == 3
    assert not outcome.cancelled
    assert outcome.results
