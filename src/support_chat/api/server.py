"""FastAPI surface over the chat session protocol."""

from __future__ import annotations

import hmac
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from support_chat.app import SupportChatApp
from support_chat.core.protocol import ChatIdentity, ChatSessionProtocol
from support_chat.core.types import CloseReason, ExportFormat
from support_chat.errors import AccessDenied, ChatError, ValidationError
from support_chat.log import bind_request_context, get_logger

logger = get_logger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    name: str = ""
    email: str = ""


class SendMessageRequest(CamelModel):
    conversation_id: Optional[str] = None
    secret: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    text: str = ""
    thread_id: Optional[str] = None


class ConversationRequest(CamelModel):
    conversation_id: str
    secret: str


class HistoryRequest(ConversationRequest):
    thread_id: Optional[str] = None


class ExportRequest(ConversationRequest):
    format: ExportFormat = ExportFormat.JSON


class CloseRequest(ConversationRequest):
    reason: CloseReason = CloseReason.USER_CLOSE
    send_transcript: bool = True


class CreateThreadRequest(ConversationRequest):
    thread_name: str
    created_by: str


class CloseThreadRequest(ConversationRequest):
    thread_id: str
    requested_by: str


class ListThreadsRequest(ConversationRequest):
    active_only: bool = True


def get_chat_app(request: Request) -> SupportChatApp:
    return request.app.state.chat_app


def get_protocol(request: Request) -> ChatSessionProtocol:
    return request.app.state.chat_app.protocol


def client_ip(request: Request) -> str:
    """Peer address, or the first X-Forwarded-For hop when the proxy is trusted."""
    chat_app: SupportChatApp = request.app.state.chat_app
    if chat_app.config.server.trust_forwarded:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


chat_router = APIRouter(prefix="/api/chat", tags=["chat"])
cron_router = APIRouter(prefix="/api/cron", tags=["cron"])


@chat_router.post("/register")
async def register(body: RegisterRequest, protocol: ChatSessionProtocol = Depends(get_protocol)):
    identity = protocol.register(body.name, body.email)
    return {"name": identity.name, "email": identity.email, "role": str(identity.role)}


@chat_router.post("/send-message")
async def send_message(
    body: SendMessageRequest,
    request: Request,
    protocol: ChatSessionProtocol = Depends(get_protocol),
):
    identity: ChatIdentity | None = None
    if not body.conversation_id:
        identity = protocol.register(body.name or "", body.email or "")
    result = await protocol.send_message(
        conversation_id=body.conversation_id,
        secret=body.secret,
        identity=identity,
        text=body.text,
        ip_address=client_ip(request),
        thread_id=body.thread_id,
    )
    return {
        "reply": result.reply,
        "conversationId": result.conversation_id,
        "secret": result.secret,
    }


@chat_router.post("/history")
async def history(body: HistoryRequest, protocol: ChatSessionProtocol = Depends(get_protocol)):
    messages = await protocol.get_history(body.conversation_id, body.secret, body.thread_id)
    return {"messages": [m.to_dict() for m in messages]}


@chat_router.post("/export")
async def export_transcript(
    body: ExportRequest, protocol: ChatSessionProtocol = Depends(get_protocol)
):
    exported = await protocol.export_transcript(body.conversation_id, body.secret, body.format)
    return Response(
        content=exported.body,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@chat_router.post("/close")
async def close_conversation(
    body: CloseRequest, protocol: ChatSessionProtocol = Depends(get_protocol)
):
    conversation = await protocol.close_conversation(
        body.conversation_id, body.secret, body.reason, body.send_transcript
    )
    return {"conversationId": conversation.id, "status": str(conversation.status)}


@chat_router.post("/threads")
async def create_thread(
    body: CreateThreadRequest, protocol: ChatSessionProtocol = Depends(get_protocol)
):
    thread = await protocol.create_thread(
        body.conversation_id, body.secret, body.thread_name, body.created_by
    )
    return {"thread": thread.to_dict()}


@chat_router.post("/threads/close")
async def close_thread(
    body: CloseThreadRequest, protocol: ChatSessionProtocol = Depends(get_protocol)
):
    thread = await protocol.close_thread(
        body.conversation_id, body.secret, body.thread_id, body.requested_by
    )
    return {"thread": thread.to_dict()}


@chat_router.post("/threads/list")
async def list_threads(
    body: ListThreadsRequest, protocol: ChatSessionProtocol = Depends(get_protocol)
):
    threads = await protocol.list_threads(body.conversation_id, body.secret, body.active_only)
    return {"threads": [t.to_dict() for t in threads]}


@cron_router.post("/sweep-timeouts")
async def sweep_timeouts(
    chat_app: SupportChatApp = Depends(get_chat_app),
    x_cron_secret: Optional[str] = Header(default=None),
):
    """Expire idle conversations. Guarded by X-Cron-Secret when a cron secret is configured."""
    expected = chat_app.config.server.cron_secret
    if expected and not hmac.compare_digest(expected.encode(), (x_cron_secret or "").encode()):
        raise AccessDenied("Invalid cron secret")
    expired = await chat_app.reaper.sweep()
    return {
        "expiredCount": expired,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def _chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    logger.info("request_failed", path=request.url.path, kind=exc.kind, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors())
    error = ValidationError(f"Invalid request body: {fields}" if fields else "Invalid request body")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_app(chat_app: SupportChatApp, manage_lifecycle: bool = True) -> FastAPI:
    """Build the ASGI app. With ``manage_lifecycle`` the chat app starts and stops with it."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await chat_app.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await chat_app.stop()

    app = FastAPI(title="Support Chat", lifespan=lifespan)
    app.state.chat_app = chat_app

    app.add_middleware(
        CORSMiddleware,
        allow_origins=chat_app.config.server.cors_origins,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        bind_request_context(request_id=uuid.uuid4().hex[:12], path=request.url.path)
        return await call_next(request)

    app.add_exception_handler(ChatError, _chat_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.include_router(chat_router)
    app.include_router(cron_router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "services": [await chat_app.reaper_service.status()],
        }

    return app
