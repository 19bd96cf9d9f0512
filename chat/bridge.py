from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, NamedTuple, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError

from chat.core.models import ROLES, Message, Session
from chat.core.store import SessionStore
from chat.errors import InvalidInputError, SessionNotFoundError, UpstreamError
from config.settings import Settings, get_settings


logger = logging.getLogger("mcpchat.bridge")

_END = object()


class PendingTurn(NamedTuple):
    """The user turn a chat request persisted, and the session's prior `updated_at`."""

    message: Message
    previous_update: datetime


class FailedTurnPolicy(str, enum.Enum):
    """What happens to the persisted user turn when the provider fails."""

    KEEP = "keep"
    ROLLBACK = "rollback"


def build_chat_model(settings: Optional[Settings] = None) -> ChatGoogleGenerativeAI:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise UpstreamError(
            "GOOGLE_API_KEY not set. Please configure it in environment or .env"
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=settings.google_api_key,
        temperature=settings.temperature,
        top_p=settings.top_p,
    )


def to_lc_messages(history: Sequence[Dict[str, Any]]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for item in history or []:
        role = item.get("role")
        content = item.get("content") or ""
        if role == "system":
            messages.append(SystemMessage(content=content))
        elif role == "assistant":
            messages.append(AIMessage(content=content))
        else:
            messages.append(HumanMessage(content=content))
    return messages


def _chunk_text(chunk: Any) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text") or "")
    return "".join(parts)


class ChatStream:
    """Live token stream of one model reply.

    Iterating yields text deltas as the provider produces them and raises
    ``UpstreamError`` if the provider fails mid-stream. ``wait()`` resolves to
    the full reply once the completion (including the session append) is done,
    whether or not anyone is still reading.
    """

    def __init__(self, first: Any, queue: "asyncio.Queue[Any]", task: "asyncio.Task[str]"):
        self._first = first
        self._queue = queue
        self._task = task

    async def __aiter__(self) -> AsyncIterator[str]:
        item = self._first
        while item is not _END:
            if isinstance(item, BaseException):
                raise UpstreamError("Model provider failed while streaming") from item
            yield item
            item = await self._queue.get()

    async def wait(self) -> str:
        return await self._task


class ChatCompletionBridge:
    """Relays a message history to the model provider and records the exchange."""

    def __init__(
        self,
        store: SessionStore,
        model_factory: Callable[[], Any] = build_chat_model,
        failure_policy: FailedTurnPolicy = FailedTurnPolicy.KEEP,
    ):
        self.store = store
        self.model_factory = model_factory
        self.failure_policy = FailedTurnPolicy(failure_policy)
        self._tasks: set[asyncio.Task] = set()

    async def chat(
        self,
        messages: Sequence[Dict[str, Any]],
        conversation_id: Optional[str] = None,
    ) -> ChatStream:
        if not conversation_id:
            logger.info("No conversationId provided, using direct messages")
            history = self._validate_direct(messages)
            model = self.model_factory()
            return await self._start(model, history, None, None)

        session = self.store.get(conversation_id)
        if session is None:
            logger.info("Session not found: %s (available: %s)", conversation_id, list(self.store.ids()))
            raise SessionNotFoundError(conversation_id)
        logger.info("Found session: %s with %s messages", conversation_id, session.message_count)

        latest = messages[-1] if messages else None
        if not isinstance(latest, dict) or latest.get("role") != "user" or not isinstance(latest.get("content"), str):
            raise InvalidInputError("Invalid message format")

        # no user turn is persisted when the provider cannot even be built
        model = self.model_factory()

        async with self.store.lock(conversation_id):
            session = self.store.get(conversation_id)
            if session is None:
                raise SessionNotFoundError(conversation_id)
            previous_update = session.updated_at
            user_turn = PendingTurn(session.append("user", latest["content"]), previous_update)
            history = session.history()
            await self.store.save()

        return await self._start(model, history, conversation_id, user_turn)

    async def drain(self) -> None:
        """Wait for every in-flight completion to finish and persist."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- internals ----------
    def _validate_direct(self, messages: Sequence[Dict[str, Any]]) -> List[Dict[str, str]]:
        if not messages:
            raise InvalidInputError("No messages provided")
        try:
            return [Message.model_validate(m).model_dump() for m in messages]
        except ValidationError as exc:
            raise InvalidInputError(
                f"Invalid message format: role must be one of {', '.join(ROLES)}"
            ) from exc

    async def _start(
        self,
        model: Any,
        history: List[Dict[str, str]],
        conversation_id: Optional[str],
        user_turn: Optional[PendingTurn],
    ) -> ChatStream:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        task = asyncio.create_task(self._complete(model, history, conversation_id, user_turn, queue))
        self._tasks.add(task)
        task.add_done_callback(self._forget)

        first = await queue.get()
        if isinstance(first, BaseException):
            raise UpstreamError("Failed to generate a reply") from first
        return ChatStream(first, queue, task)

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            # Failures were already logged and handed to the reader.
            task.exception()

    async def _complete(
        self,
        model: Any,
        history: List[Dict[str, str]],
        conversation_id: Optional[str],
        user_turn: Optional[PendingTurn],
        queue: "asyncio.Queue[Any]",
    ) -> str:
        logger.info("Sending %s messages to the model", len(history))
        parts: List[str] = []
        try:
            async for chunk in model.astream(to_lc_messages(history)):
                text = _chunk_text(chunk)
                if text:
                    parts.append(text)
                    queue.put_nowait(text)
        except Exception as exc:
            logger.exception("Model provider failed for session %s", conversation_id or "<direct>")
            if conversation_id is not None and user_turn is not None:
                await self._on_failure(conversation_id, user_turn)
            queue.put_nowait(exc)
            raise UpstreamError("Model provider failed") from exc

        reply = "".join(parts)
        if conversation_id is None:
            logger.info("Response generated successfully")
        else:
            await self._record_reply(conversation_id, reply)
        queue.put_nowait(_END)
        return reply

    async def _record_reply(self, conversation_id: str, reply: str) -> None:
        async with self.store.lock(conversation_id):
            session: Optional[Session] = self.store.get(conversation_id)
            if session is None:
                logger.warning("Session %s was deleted before the reply finished; dropping it", conversation_id)
                return
            session.append("assistant", reply)
            logger.info(
                "Saved assistant response to session %s (now %s messages)",
                conversation_id,
                session.message_count,
            )
            await self.store.save()

    async def _on_failure(self, conversation_id: str, user_turn: PendingTurn) -> None:
        if self.failure_policy is not FailedTurnPolicy.ROLLBACK:
            logger.info("Keeping unanswered user turn in session %s", conversation_id)
            return
        async with self.store.lock(conversation_id):
            session = self.store.get(conversation_id)
            if session is None:
                return
            # Remove the exact turn this request added, even if later turns followed it.
            for idx in range(len(session.messages) - 1, -1, -1):
                if session.messages[idx] is user_turn.message:
                    newest = idx == len(session.messages) - 1
                    del session.messages[idx]
                    if newest:
                        session.updated_at = user_turn.previous_update
                    logger.info("Rolled back unanswered user turn in session %s", conversation_id)
                    await self.store.save()
                    return
