from unittest.mock import AsyncMock

import pytest

from nsbridge.server.ports import UiLauncher
from nsbridge.storage.memory import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def launcher():
    mock = AsyncMock(spec=UiLauncher)
    mock.launch_share_manager.return_value = True
    return mock
