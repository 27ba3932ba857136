"""Domain representations for rotation rules and loaders."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from functools import cached_property, lru_cache
from importlib import resources
from typing import Literal

from pydantic import BaseModel, Field, model_validator

TOTAL_WEEKS = 52
COHORT_COUNT = 5
INTERN_LEVEL = 1
UNBOUNDED = 10_000


class AssignmentType(str, Enum):
    WARDS_RED = "Wards-R"
    WARDS_BLUE = "Wards-B"
    METRO_WARDS = "Met Wards"
    ICU = "ICU"
    NIGHT_FLOAT = "NF"
    EMERGENCY = "EM"
    CLINIC = "CCIM"
    ELECTIVE = "ELECTIVE"
    VACATION = "VAC"
    CARDIOLOGY = "Cards"
    INFECTIOUS_DISEASE = "ID"
    NEPHROLOGY = "Neph"
    PULMONOLOGY = "Pulm"
    ONCOLOGY = "Onc"
    NEUROLOGY = "Neuro"
    RHEUMATOLOGY = "Rheum"
    GASTROENTEROLOGY = "GI"
    ADDICTION_MEDICINE = "Add Med"
    ENDOCRINOLOGY = "Endo"
    GERIATRICS = "Geri"
    PALLIATIVE_CARE = "HPC"
    METRO = "Metro"
    RESEARCH = "Research"
    CCMA = "CCMA"
    HEART_FAILURE = "Heart Failure"
    CARDIAC_ICU = "Cardiac ICU"
    ENT = "ENT"


class ClinicalSetting(str, Enum):
    INPATIENT = "Inpatient"
    OUTPATIENT = "Outpatient"
    CRITICAL_CARE = "Critical Care"
    EMERGENCY = "Emergency"
    NON_CLINICAL = "Non-Clinical"


RotationCategory = Literal["core", "required", "elective", "vacation", "clinic"]


class RotationMetadata(BaseModel):
    label: str
    category: RotationCategory
    intensity: int = Field(ge=1, le=5)
    duration: int = Field(ge=1, le=TOTAL_WEEKS)
    setting: ClinicalSetting
    min_interns: int = Field(default=0, ge=0)
    max_interns: int | None = Field(default=None, ge=0)
    min_seniors: int = Field(default=0, ge=0)
    max_seniors: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "RotationMetadata":
        if self.max_interns is not None and self.min_interns > self.max_interns:
            raise ValueError(f"{self.label}: min_interns cannot exceed max_interns")
        if self.max_seniors is not None and self.min_seniors > self.max_seniors:
            raise ValueError(f"{self.label}: min_seniors cannot exceed max_seniors")
        return self


class RequirementEntry(BaseModel):
    type: AssignmentType
    label: str
    target_weeks: int = Field(ge=1, le=TOTAL_WEEKS)


class RotationFamily(BaseModel):
    """Concrete rotations that count interchangeably toward one requirement."""

    name: str
    members: list[AssignmentType]
    placement: list[AssignmentType]

    @model_validator(mode="after")
    def validate_placement(self) -> "RotationFamily":
        if not self.placement:
            raise ValueError(f"family {self.name} needs at least one placement type")
        if not set(self.placement).issubset(self.members):
            raise ValueError(f"family {self.name} placement types must be members")
        return self


class RotationRules(BaseModel):
    rotations: dict[AssignmentType, RotationMetadata]
    families: list[RotationFamily] = Field(default_factory=list)
    requirements: dict[int, list[RequirementEntry]]

    @model_validator(mode="after")
    def validate_references(self) -> "RotationRules":
        missing = [item.value for item in AssignmentType if item not in self.rotations]
        if missing:
            raise ValueError(f"missing rotation metadata for: {', '.join(missing)}")
        for level in self.requirements:
            if level not in (1, 2, 3):
                raise ValueError(f"requirement table for unknown program year {level}")
        seen: set[AssignmentType] = set()
        for family in self.families:
            overlap = seen.intersection(family.members)
            if overlap:
                raise ValueError(f"rotation listed in more than one family: {sorted(t.value for t in overlap)}")
            seen.update(family.members)
        return self


@dataclass(frozen=True)
class RuleSet:
    """Wrapper used by generators and metrics to access typed rotation rules."""

    rules: RotationRules

    def metadata(self, assignment: AssignmentType) -> RotationMetadata:
        return self.rules.rotations[assignment]

    def intensity(self, assignment: AssignmentType | None) -> int:
        if assignment is None:
            return 0
        return self.rules.rotations[assignment].intensity

    def duration(self, assignment: AssignmentType) -> int:
        return self.rules.rotations[assignment].duration

    def category(self, assignment: AssignmentType) -> RotationCategory:
        return self.rules.rotations[assignment].category

    def requirements_for(self, level: int) -> list[RequirementEntry]:
        return self.rules.requirements.get(level, [])

    def family_members(self, assignment: AssignmentType) -> frozenset[AssignmentType]:
        return self._family_index.get(assignment, (frozenset({assignment}), (assignment,)))[0]

    def placement_types(self, assignment: AssignmentType) -> tuple[AssignmentType, ...]:
        return self._family_index.get(assignment, (frozenset({assignment}), (assignment,)))[1]

    def bounds(self, assignment: AssignmentType, level: int) -> tuple[int, int]:
        """Return the weekly (min, max) headcount for the given level on a rotation."""

        return self._bounds[(assignment, level == INTERN_LEVEL)]

    def is_staffed(self, assignment: AssignmentType | None) -> bool:
        return assignment in self._staffed_set

    def is_core(self, assignment: AssignmentType | None) -> bool:
        return assignment in self._core_set

    @cached_property
    def staffed_types(self) -> tuple[AssignmentType, ...]:
        """Types whose weekly headcounts are checked (everything but elective, clinic and vacation)."""

        return tuple(
            assignment
            for assignment, meta in self.rules.rotations.items()
            if meta.category in ("core", "required")
        )

    @cached_property
    def core_types(self) -> tuple[AssignmentType, ...]:
        return tuple(
            assignment for assignment, meta in self.rules.rotations.items() if meta.category == "core"
        )

    @cached_property
    def minimum_staffed_types(self) -> tuple[AssignmentType, ...]:
        """Staffed types with a positive intern or senior minimum."""

        return tuple(
            assignment
            for assignment in self.staffed_types
            if self.metadata(assignment).min_interns or self.metadata(assignment).min_seniors
        )

    def minimum_headcount(self, level: int) -> int:
        """Weekly headcount of ``level`` residents needed to cover every staffing minimum."""

        return sum(self.bounds(assignment, level)[0] for assignment in self.staffed_types)

    @cached_property
    def _staffed_set(self) -> frozenset[AssignmentType]:
        return frozenset(self.staffed_types)

    @cached_property
    def _core_set(self) -> frozenset[AssignmentType]:
        return frozenset(self.core_types)

    @cached_property
    def _family_index(self) -> dict[AssignmentType, tuple[frozenset[AssignmentType], tuple[AssignmentType, ...]]]:
        index = {}
        for family in self.rules.families:
            entry = (frozenset(family.members), tuple(family.placement))
            for member in family.members:
                index[member] = entry
        return index

    @cached_property
    def _bounds(self) -> dict[tuple[AssignmentType, bool], tuple[int, int]]:
        bounds = {}
        for assignment, meta in self.rules.rotations.items():
            intern_max = UNBOUNDED if meta.max_interns is None else meta.max_interns
            senior_max = UNBOUNDED if meta.max_seniors is None else meta.max_seniors
            bounds[(assignment, True)] = (meta.min_interns, intern_max)
            bounds[(assignment, False)] = (meta.min_seniors, senior_max)
        return bounds


def _load_rules_from_json() -> RotationRules:
    with resources.files("residency_scheduler.services.data").joinpath("default_rotations.json").open(
        "r", encoding="utf-8"
    ) as handle:
        payload = json.load(handle)
    return RotationRules.model_validate(payload)


@lru_cache(maxsize=1)
def load_default_rules() -> RuleSet:
    """Return the default rotation rules bundled with the application."""

    return RuleSet(rules=_load_rules_from_json())
