from __future__ import annotations

"""Encoding for the AI SDK data stream protocol (``x-vercel-ai-data-stream: v1``).

Each part is ``<type>:<json>\\n``. Only the parts this server emits are covered:
``0`` text delta, ``3`` error, ``d`` finish message.
"""

import json
import logging
from typing import AsyncIterator

from chat.bridge import ChatStream
from chat.errors import UpstreamError


logger = logging.getLogger("mcpchat.stream")

DATA_STREAM_HEADERS = {"x-vercel-ai-data-stream": "v1"}


def text_part(text: str) -> str:
    return f"0:{json.dumps(text, ensure_ascii=False)}\n"


def error_part(message: str) -> str:
    return f"3:{json.dumps(message, ensure_ascii=False)}\n"


def finish_part(reason: str = "stop") -> str:
    return f"d:{json.dumps({'finishReason': reason})}\n"


async def data_stream(stream: ChatStream) -> AsyncIterator[str]:
    try:
        async for token in stream:
            yield text_part(token)
    except UpstreamError as exc:
        logger.warning("Stream failed: %s", exc)
        yield error_part(str(exc))
        return
    yield finish_part("stop")
