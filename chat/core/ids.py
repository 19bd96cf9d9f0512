from __future__ import annotations
import secrets

CONVERSATION_PREFIX = "mcp-"


def _tok(nbytes: int = 12) -> str:
    return secrets.token_urlsafe(nbytes)


def new_conversation_id() -> str:
    """Return an id that is hard to guess; holding it grants full access to the session."""
    return f"{CONVERSATION_PREFIX}{_tok()}"
