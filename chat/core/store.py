from __future__ import annotations

"""Process-wide session store.

Sessions live in memory and are mirrored to a single JSON document that maps
conversation id to session record. The whole document is rewritten after every
mutation. Disk failures are logged and never raised: the in-memory map stays
the source of truth for the lifetime of the process.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from chat.core.models import Session
from chat.errors import PersistenceError


logger = logging.getLogger("mcpchat.store")


def load_json(path: str | Path) -> Dict[str, Any] | None:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        raise PersistenceError(f"Could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PersistenceError(f"Expected a JSON object in {path}")
    return data


def atomic_write_json(path: str | Path, data: Any) -> None:
    target = Path(path)
    tmp_path = target.with_suffix(f"{target.suffix}.tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_path, target)
    except (OSError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Could not write {target}: {exc}") from exc


class SessionStore:
    """In-memory map of conversation id -> Session with whole-file persistence.

    ``path=None`` keeps everything in memory; ``load``/``save`` become no-ops.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path is not None else None
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._sessions

    # ---------- persistence ----------
    def load(self) -> int:
        """Replace the in-memory map with the persisted file. Returns the number of sessions loaded."""
        self._sessions = {}
        if self.path is None:
            return 0

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.exception("Error creating data directory %s", self.path.parent)

        try:
            data = load_json(self.path)
            if data is None:
                logger.info("No sessions file found at %s, starting with empty sessions", self.path)
                return 0
            sessions = {cid: Session.model_validate(raw) for cid, raw in data.items()}
        except (PersistenceError, ValidationError):
            logger.exception("Error loading sessions from %s, starting empty", self.path)
            return 0

        self._sessions = sessions
        logger.info("Loaded %s sessions from disk", len(self._sessions))
        return len(self._sessions)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {
            cid: session.model_dump(mode="json", by_alias=True)
            for cid, session in self._sessions.items()
        }

    async def save(self) -> bool:
        """Rewrite the sessions file with the current map.

        Writes are serialized and each one snapshots the map when it gets the
        write lock, so a later write never drops an earlier committed mutation.
        """
        if self.path is None:
            return True
        async with self._write_lock:
            data = self.snapshot()
            try:
                await asyncio.to_thread(atomic_write_json, self.path, data)
            except PersistenceError:
                logger.exception("Error saving sessions")
                return False
        logger.info("Saved %s sessions to disk", len(data))
        return True

    # ---------- map access ----------
    def get(self, conversation_id: str) -> Optional[Session]:
        return self._sessions.get(conversation_id)

    def put(self, session: Session) -> None:
        self._sessions[session.conversation_id] = session

    def delete(self, conversation_id: str) -> bool:
        self._locks.pop(conversation_id, None)
        return self._sessions.pop(conversation_id, None) is not None

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def ids(self) -> Iterator[str]:
        return iter(list(self._sessions))

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Per-session guard for read-modify-persist sequences.

        Unknown ids get a throwaway lock so nothing is registered for sessions
        that are already gone.
        """
        if conversation_id not in self._sessions:
            return asyncio.Lock()
        return self._locks.setdefault(conversation_id, asyncio.Lock())
