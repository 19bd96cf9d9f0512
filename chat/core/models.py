from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    role: Role
    content: str


class Session(BaseModel):
    """One conversation: an ordered, append-only message history plus client metadata."""

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    messages: List[Message] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utcnow, alias="updatedAt")

    @classmethod
    def new(cls, conversation_id: str, metadata: Dict[str, Any] | None = None) -> "Session":
        now = _utcnow()
        return cls(
            conversation_id=conversation_id,
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def append(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        self.updated_at = _utcnow()
        return message

    def history(self) -> List[Dict[str, str]]:
        return [m.model_dump() for m in self.messages]

    def info(self) -> Dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "metadata": self.metadata,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "messageCount": self.message_count,
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.conversation_id,
            "date": self.updated_at.isoformat(),
            "messageCount": self.message_count,
        }
