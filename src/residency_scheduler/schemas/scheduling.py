from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from residency_scheduler.services.generators import GENERATORS
from residency_scheduler.services.grid import Resident
from residency_scheduler.services.rules import COHORT_COUNT, AssignmentType

RankingPriority = Literal["best_score", "least_understaffing", "most_requirements_met"]


class ResidentSchema(BaseModel):
    id: str = Field(min_length=1)
    name: str
    level: int = Field(ge=1, le=3)
    cohort: int = Field(ge=0, lt=COHORT_COUNT)
    avoid_resident_ids: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    def to_resident(self) -> Resident:
        return Resident(
            id=self.id,
            name=self.name,
            level=self.level,
            cohort=self.cohort,
            avoid_resident_ids=tuple(self.avoid_resident_ids),
        )


class ScheduleCellSchema(BaseModel):
    assignment: AssignmentType | None = None
    locked: bool = False

    model_config = ConfigDict(from_attributes=True)


GridPayload = dict[str, list[ScheduleCellSchema]]


class CompetitionParams(BaseModel):
    """Tournament configuration; invalid combinations are rejected before any attempt runs."""

    tries: int = Field(default=100, ge=1, le=1000)
    priority: RankingPriority = "best_score"
    generator_ids: list[str] = Field(default_factory=lambda: list(GENERATORS), min_length=1)
    top_n: int = Field(default=3, ge=1)
    seed: int | None = Field(default=None, ge=0)

    @field_validator("generator_ids")
    @classmethod
    def validate_generator_ids(cls, value: list[str]) -> list[str]:
        unknown = [item for item in value if item not in GENERATORS]
        if unknown:
            raise ValueError(f"unknown generators: {', '.join(unknown)}")
        if len(set(value)) != len(value):
            raise ValueError("generators may only be selected once")
        return value


class AdaptationParams(BaseModel):
    fill_missing_requirements: bool = True
    fix_understaffing: bool = True
    fix_overstaffing: bool = True
    allow_research_override: bool = True
    allow_vacation_override: bool = False


class GenerateRequest(BaseModel):
    residents: list[ResidentSchema]
    grid: GridPayload = Field(default_factory=dict)
    params: CompetitionParams | None = None


class CompetitionResultRead(BaseModel):
    generator_id: str
    generator_name: str
    cost: float
    total_violations: int
    understaffing_violations: int
    requirement_violations: int
    attempt_index: int
    seed: int
    grid: GridPayload


class GeneratorStatsRead(BaseModel):
    generator_id: str
    generator_name: str
    attempts: int
    failures: int
    best_cost: float | None = None
    worst_cost: float | None = None
    best_violations: int | None = None
    worst_violations: int | None = None

    model_config = ConfigDict(from_attributes=True)


class GenerateResponse(BaseModel):
    results: list[CompetitionResultRead]
    generator_stats: list[GeneratorStatsRead]
    attempts_completed: int
    total_attempts: int
    cancelled: bool = False
    feasible: bool = False


class AnalyzeRequest(BaseModel):
    residents: list[ResidentSchema]
    grid: GridPayload


class RequirementViolationRead(BaseModel):
    resident_id: str
    resident_name: str
    type: AssignmentType
    label: str
    target: int
    actual: int

    model_config = ConfigDict(from_attributes=True)


class WeeklyViolationRead(BaseModel):
    week: int
    type: AssignmentType
    issue: str
    kind: Literal["understaffed", "overstaffed"]
    level: Literal["intern", "senior"]
    expected: int
    actual: int

    model_config = ConfigDict(from_attributes=True)


class ResidentFairnessRead(BaseModel):
    resident_id: str
    name: str
    level: int
    core_weeks: int
    elective_weeks: int
    required_weeks: int
    vacation_weeks: int
    night_float_weeks: int
    intensity_score: int
    max_streak: int
    streak_summary: list[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CohortFairnessRead(BaseModel):
    level: int
    resident_count: int
    mean_core: float
    sd_core: float
    mean_elective: float
    sd_elective: float
    mean_intensity: float
    sd_intensity: float
    score: int
    residents: list[ResidentFairnessRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DiversityStatRead(BaseModel):
    resident_id: str
    unique_partners: int
    percent: float

    model_config = ConfigDict(from_attributes=True)


class RelationshipStatRead(BaseModel):
    resident_id: str
    unique_partners: int
    diversity_percent: float
    top_partner_id: str | None = None
    top_partner_weeks: int
    avoided_overlap_weeks: int

    model_config = ConfigDict(from_attributes=True)


class ResidentAuditRead(BaseModel):
    resident_id: str
    outpatient_weeks: int
    inpatient_weeks: int
    critical_care_weeks: int
    night_float_weeks: int
    critical_care_exceeded: bool
    night_float_exceeded: bool

    model_config = ConfigDict(from_attributes=True)


class AuditReportRead(BaseModel):
    residents: list[ResidentAuditRead]
    outpatient_goal_met: int
    inpatient_goal_met: int

    model_config = ConfigDict(from_attributes=True)


class AnalysisResponse(BaseModel):
    requirement_violations: list[RequirementViolationRead]
    weekly_violations: list[WeeklyViolationRead]
    fairness: list[CohortFairnessRead]
    diversity: list[DiversityStatRead]
    relationships: list[RelationshipStatRead]
    audit: AuditReportRead
    assignment_stats: dict[str, dict[AssignmentType, int]]
    cost: float
    total_violations: int
    understaffing_violations: int

    model_config = ConfigDict(from_attributes=True)


class AdaptRequest(BaseModel):
    residents: list[ResidentSchema]
    grid: GridPayload
    params: AdaptationParams = Field(default_factory=AdaptationParams)


class AdaptResponse(BaseModel):
    grid: GridPayload
    changes_made: int
    change_log: list[str]
    failure_reasons: list[str]
    violations_before: int
    violations_after: int
