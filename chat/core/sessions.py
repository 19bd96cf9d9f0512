from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from chat.core.ids import new_conversation_id
from chat.core.models import Session
from chat.core.store import SessionStore
from chat.errors import SessionNotFoundError


logger = logging.getLogger("mcpchat.sessions")


class SessionService:
    """Create/get/delete/list operations over the session store."""

    def __init__(self, store: SessionStore):
        self.store = store

    def _require(self, conversation_id: str) -> Session:
        session = self.store.get(conversation_id)
        if session is None:
            raise SessionNotFoundError(conversation_id)
        return session

    async def create(self, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = Session.new(new_conversation_id(), metadata)
        self.store.put(session)
        logger.info("Created new session: %s", session.conversation_id)
        await self.store.save()
        return {
            "conversationId": session.conversation_id,
            "metadata": session.metadata,
            "createdAt": session.created_at.isoformat(),
            "messageCount": 0,
        }

    def get(self, conversation_id: str) -> Dict[str, Any]:
        return self._require(conversation_id).info()

    def get_messages(self, conversation_id: str) -> Dict[str, Any]:
        return {"messages": self._require(conversation_id).history()}

    async def delete(self, conversation_id: str) -> Dict[str, Any]:
        async with self.store.lock(conversation_id):
            existed = self.store.delete(conversation_id)
        if existed:
            logger.info("Deleted session: %s", conversation_id)
            await self.store.save()
        return {
            "success": existed,
            "message": "Session deleted" if existed else "Session not found",
        }

    def list_sessions(self) -> Dict[str, Any]:
        sessions = sorted(self.store.sessions(), key=lambda s: s.updated_at, reverse=True)
        return {"sessions": [s.summary() for s in sessions]}
