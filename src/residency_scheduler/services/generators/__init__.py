from residency_scheduler.services.generators.base import GenerationWorkspace, ScheduleGenerator, SeededRandom
from residency_scheduler.services.generators.education_first import EducationFirstGenerator
from residency_scheduler.services.generators.greedy import GreedyGenerator
from residency_scheduler.services.generators.staffing_first import StaffingFirstGenerator
from residency_scheduler.services.generators.stochastic import StochasticGenerator
from residency_scheduler.services.rules import RuleSet

GENERATORS: dict[str, type[ScheduleGenerator]] = {
    generator.id: generator
    for generator in (StochasticGenerator, GreedyGenerator, StaffingFirstGenerator, EducationFirstGenerator)
}


def create_generator(generator_id: str, rules: RuleSet | None = None) -> ScheduleGenerator:
    try:
        generator_cls = GENERATORS[generator_id]
    except KeyError as exc:
        raise ValueError(f"Unknown generator '{generator_id}'") from exc
    return generator_cls(rules)


__all__ = [
    "GENERATORS",
    "EducationFirstGenerator",
    "GenerationWorkspace",
    "GreedyGenerator",
    "ScheduleGenerator",
    "SeededRandom",
    "StaffingFirstGenerator",
    "StochasticGenerator",
    "create_generator",
]
