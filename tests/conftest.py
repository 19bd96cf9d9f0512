import pytest

from chat.core.store import SessionStore


@pytest.fixture
def sessions_path(tmp_path):
    return tmp_path / ".data" / "mcp-sessions.json"


@pytest.fixture
def store(sessions_path):
    return SessionStore(sessions_path)
