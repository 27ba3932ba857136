from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from residency_scheduler.core.config import Settings, get_settings
from residency_scheduler.schemas.scheduling import (
    AdaptRequest,
    AdaptResponse,
    AnalysisResponse,
    AnalyzeRequest,
    CompetitionParams,
    CompetitionResultRead,
    GenerateRequest,
    GenerateResponse,
    GeneratorStatsRead,
    GridPayload,
    ResidentSchema,
)
from residency_scheduler.services import scheduler
from residency_scheduler.services.grid import Resident, ScheduleGrid
from residency_scheduler.services.metrics import CostWeights, evaluate_schedule
from residency_scheduler.services.rules import load_default_rules

router = APIRouter()


def _to_domain(residents: list[ResidentSchema], grid: GridPayload) -> tuple[list[Resident], ScheduleGrid]:
    return [resident.to_resident() for resident in residents], ScheduleGrid.from_payload(grid)


def _input_error(exc: scheduler.ScheduleInputError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(exc))


@router.post("/generate", response_model=GenerateResponse)
async def generate_schedules(
    payload: GenerateRequest,
    settings: Annotated[Settings, Depends(get_settings)],
) -> GenerateResponse:
    residents, grid = _to_domain(payload.residents, payload.grid)
    params = payload.params or CompetitionParams(tries=settings.default_tries, top_n=settings.default_top_n)
    try:
        outcome = await run_in_threadpool(
            scheduler.generate,
            residents,
            grid,
            params,
            weights=CostWeights.from_settings(settings),
            max_workers=settings.max_workers,
        )
    except scheduler.ScheduleInputError as exc:
        raise _input_error(exc) from exc

    return GenerateResponse(
        results=[
            CompetitionResultRead(
                generator_id=result.generator_id,
                generator_name=result.generator_name,
                cost=result.cost,
                total_violations=result.total_violations,
                understaffing_violations=result.understaffing_violations,
                requirement_violations=result.requirement_violations,
                attempt_index=result.attempt_index,
                seed=result.seed,
                grid=result.grid.to_payload(),
            )
            for result in outcome.results
        ],
        generator_stats=[GeneratorStatsRead.model_validate(item) for item in outcome.generator_stats.values()],
        attempts_completed=outcome.attempts_completed,
        total_attempts=outcome.total_attempts,
        cancelled=outcome.cancelled,
        feasible=outcome.feasible,
    )


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_schedule(
    payload: AnalyzeRequest,
    settings: Annotated[Settings, Depends(get_settings)],
) -> AnalysisResponse:
    residents, grid = _to_domain(payload.residents, payload.grid)
    try:
        report = await run_in_threadpool(
            scheduler.analyze, residents, grid, weights=CostWeights.from_settings(settings)
        )
    except scheduler.ScheduleInputError as exc:
        raise _input_error(exc) from exc
    return AnalysisResponse.model_validate(report)


@router.post("/adapt", response_model=AdaptResponse)
async def adapt_schedule(payload: AdaptRequest) -> AdaptResponse:
    residents, grid = _to_domain(payload.residents, payload.grid)
    try:
        result = await run_in_threadpool(scheduler.adapt, residents, grid, payload.params)
    except scheduler.ScheduleInputError as exc:
        raise _input_error(exc) from exc

    rules = load_default_rules()
    before = evaluate_schedule(residents, grid, rules).total_violations
    after = evaluate_schedule(residents, result.grid, rules).total_violations
    return AdaptResponse(
        grid=result.grid.to_payload(),
        changes_made=result.changes_made,
        change_log=result.change_log,
        failure_reasons=result.failure_reasons,
        violations_before=before,
        violations_after=after,
    )
