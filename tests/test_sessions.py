import asyncio

import pytest

from chat.core.ids import CONVERSATION_PREFIX, new_conversation_id
from chat.core.sessions import SessionService
from chat.core.store import SessionStore
from chat.errors import SessionNotFoundError


@pytest.fixture
def service(store):
    store.load()
    return SessionService(store)


def test_ids_are_prefixed_and_unique():
    ids = {new_conversation_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(i.startswith(CONVERSATION_PREFIX) for i in ids)


def test_create_then_get(service):
    created = asyncio.run(service.create({"client": "browser"}))
    assert created["messageCount"] == 0
    assert created["metadata"] == {"client": "browser"}

    info = service.get(created["conversationId"])
    assert info["conversationId"] == created["conversationId"]
    assert info["messageCount"] == 0
    assert info["createdAt"] == created["createdAt"]
    assert "messages" not in info


def test_create_persists(service, sessions_path):
    created = asyncio.run(service.create())
    reloaded = SessionStore(sessions_path)
    reloaded.load()
    assert created["conversationId"] in reloaded


def test_get_unknown_id_raises_not_found(service):
    with pytest.raises(SessionNotFoundError) as exc:
        service.get("mcp-never-created")
    assert exc.value.status_code == 404
    assert "mcp-never-created" in str(exc.value)


def test_get_messages_returns_history_in_order(service, store):
    created = asyncio.run(service.create())
    session = store.get(created["conversationId"])
    session.append("user", "hello")
    session.append("assistant", "hi")

    assert service.get_messages(created["conversationId"]) == {
        "messages": [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi"},
        ]
    }
    assert service.get(created["conversationId"])["messageCount"] == 2

    with pytest.raises(SessionNotFoundError):
        service.get_messages("mcp-missing")


def test_delete_is_idempotent(service, sessions_path):
    cid = asyncio.run(service.create())["conversationId"]

    assert asyncio.run(service.delete(cid)) == {"success": True, "message": "Session deleted"}
    assert asyncio.run(service.delete(cid)) == {"success": False, "message": "Session not found"}

    reloaded = SessionStore(sessions_path)
    reloaded.load()
    assert cid not in reloaded


def test_list_sessions_after_deletes(service, store):
    ids = [asyncio.run(service.create())["conversationId"] for _ in range(5)]
    for cid in ids[:2]:
        asyncio.run(service.delete(cid))
    store.get(ids[4]).append("user", "latest activity")

    listed = service.list_sessions()["sessions"]
    assert len(listed) == 3
    assert {s["id"] for s in listed} == set(ids[2:])
    assert listed[0]["id"] == ids[4]
    assert listed[0]["messageCount"] == 1
    assert all(set(s) == {"id", "date", "messageCount"} for s in listed)
