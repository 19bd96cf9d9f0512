from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
import logging
from pydantic import BaseModel, Field

from app.streaming import DATA_STREAM_HEADERS, data_stream
from chat.bridge import ChatCompletionBridge, FailedTurnPolicy
from chat.core.sessions import SessionService
from chat.core.store import SessionStore
from chat.errors import AppError, InvalidInputError
from config.settings import Settings, get_settings


logging.basicConfig(level=get_settings().log_level, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("mcpchat")


class ChatData(BaseModel):
    conversationId: Optional[str] = None


class ChatRequest(BaseModel):
    action: Optional[str] = Field(default=None, description="Lifecycle action; anything else means chat")
    conversationId: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Opaque client info stored with the session")
    # raw role/content dicts, validated by the bridge
    messages: Optional[List[Any]] = None
    data: Optional[ChatData] = None


def _require_id(req: ChatRequest, action: str) -> str:
    if not req.conversationId:
        raise InvalidInputError(f"Missing conversationId for {action} action")
    return req.conversationId


def create_app(
    store: Optional[SessionStore] = None,
    bridge: Optional[ChatCompletionBridge] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    if settings is None:
        settings = get_settings()
    if store is None:
        store = SessionStore(settings.sessions_path)
    if bridge is None:
        bridge = ChatCompletionBridge(
            store,
            failure_policy=FailedTurnPolicy(settings.failed_turn_policy),
        )
    sessions = SessionService(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.load()
        yield
        await bridge.drain()

    app = FastAPI(title="MCP Chat Session Server", version="1.0.0", lifespan=lifespan)
    app.state.store = store
    app.state.bridge = bridge

    # CORS: allow local frontend during development
    if settings.app_env.lower() in {"dev", "development", "local"}:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request body: %s", exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    @app.post("/api/mcp-chat")
    async def mcp_chat(req: ChatRequest):
        action = req.action or "chat"
        messages = req.messages or []
        logger.info(
            "MCP-Chat request: action=%s conversation=%s messages=%s",
            action,
            req.conversationId or (req.data.conversationId if req.data else None),
            len(messages),
        )

        try:
            if action == "create":
                return await sessions.create(req.metadata)
            if action == "get":
                return sessions.get(_require_id(req, action))
            if action == "getMessages":
                return sessions.get_messages(_require_id(req, action))
            if action == "delete":
                return await sessions.delete(_require_id(req, action))
            if action == "listSessions":
                return sessions.list_sessions()

            conversation_id = req.data.conversationId if req.data else None
            stream = await bridge.chat(
                messages,
                conversation_id=conversation_id,
            )
            return StreamingResponse(
                data_stream(stream),
                media_type="text/plain; charset=utf-8",
                headers=DATA_STREAM_HEADERS,
            )
        except AppError as e:
            if e.status_code >= 500:
                logger.error("Request failed: %s", e)
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except Exception as e:
            logger.exception("Error in mcp-chat API: %s", e)
            raise HTTPException(status_code=500, detail="Failed to process request")

    @app.get("/health")
    def health():
        return {"status": "ok", "sessions": len(store)}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
