from typing import Annotated

from fastapi import APIRouter, Depends

from residency_scheduler.core.config import Settings, get_settings
from residency_scheduler.services.rules import RotationRules, load_default_rules

router = APIRouter()


@router.get("/settings")
async def read_settings(
    settings: Annotated[Settings, Depends(get_settings)]
) -> dict[str, str | int]:
    """Expose basic runtime metadata for diagnostics."""
    return {
        "environment": settings.environment,
        "project": settings.project_name,
        "version": settings.version,
        "default_tries": settings.default_tries,
        "default_top_n": settings.default_top_n,
    }


@router.get("/rotations", response_model=RotationRules)
async def read_rotation_rules() -> RotationRules:
    """Rotation metadata, rotation families and per-year requirement tables."""
    return load_default_rules().rules
