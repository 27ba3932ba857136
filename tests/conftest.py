from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from residency_scheduler.main import create_application
from residency_scheduler.services.grid import Resident, ScheduleGrid, build_standard_roster
from residency_scheduler.services.rules import RuleSet, load_default_rules


@pytest.fixture()
def rules() -> RuleSet:
    return load_default_rules()


@pytest.fixture()
def roster() -> list[Resident]:
    return build_standard_roster()


@pytest.fixture()
def empty_grid(roster: list[Resident]) -> ScheduleGrid:
    return ScheduleGrid.empty(resident.id for resident in roster)


@pytest.fixture()
async def api_client() -> AsyncIterator[AsyncClient]:
    app = create_application()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"
