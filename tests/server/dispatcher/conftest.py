import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from nsbridge.server.dispatcher import RequestDispatcher
from nsbridge.server.managers.locations import LocationRegistry
from nsbridge.server.managers.shares import ShareIntegration
from nsbridge.server.ports import (
    FileListCache,
    FileManager,
    PrivilegeShell,
    StringResources,
    UiLauncher,
)
from nsbridge.storage.memory import MemoryStore


class ResultRecorder:
    """Result/progress sink that remembers every delivery."""

    def __init__(self):
        self.calls: list[tuple[int, int, dict[str, Any]]] = []

    async def __call__(self, server_id: int, opcode: int, payload: dict) -> None:
        self.calls.append((server_id, opcode, payload))

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1][2]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
async def registry(store):
    registry = LocationRegistry()
    await registry.load(store)
    return registry


@pytest.fixture
def launcher():
    mock = AsyncMock(spec=UiLauncher)
    mock.launch_share_manager.return_value = True
    return mock


@pytest.fixture
def shares(store, launcher):
    return ShareIntegration(store, launcher)


@pytest.fixture
def files():
    return AsyncMock(spec=FileManager)


@pytest.fixture
def cache():
    return MagicMock(spec=FileListCache)


@pytest.fixture
def privilege():
    return AsyncMock(spec=PrivilegeShell)


@pytest.fixture
def strings():
    mock = MagicMock(spec=StringResources)
    mock.names.return_value = []
    return mock


@pytest.fixture
def results():
    return ResultRecorder()


@pytest.fixture
def progress():
    return ResultRecorder()


@pytest.fixture
async def dispatcher(
    registry, shares, files, cache, launcher, privilege, strings, results, progress
):
    """Dispatcher with mock collaborators and both sinks registered."""
    dispatcher = RequestDispatcher(
        registry=registry,
        shares=shares,
        files=files,
        cache=cache,
        launcher=launcher,
        privilege=privilege,
        strings=strings,
    )
    dispatcher.register_result_callback(results)
    dispatcher.register_progress_callback(progress)
    yield dispatcher
    await dispatcher.cancel_all()


async def yield_to_event_loop(seconds: float = 0.01) -> None:
    """Let the event loop run pending request tasks."""
    await asyncio.sleep(seconds)


@pytest.fixture
def yield_loop():
    return yield_to_event_loop
