"""Chat turns over server-sent events and WebSocket."""

import asyncio
import json
import logging
from collections import deque
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError, model_validator

from devchat.core.config import settings
from devchat.core.errors import InvalidIdentifier, NotFound, StoreUnavailable, user_message
from devchat.api.deps import get_orchestrator
from devchat.models.chat import FileAttachment
from devchat.services.orchestrator import ConversationOrchestrator, TurnHandle
from devchat.services.relay import error_event

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ChatRequest(BaseModel):
    message: str = ""
    chat_id: str | None = None
    files: list[FileAttachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_payload(self):
        if not self.message and not self.files:
            raise ValueError("Either message text or file attachments are required")
        if len(self.files) > settings.max_files:
            raise ValueError(f"At most {settings.max_files} files per message")
        sizes = [f.size or 0 for f in self.files]
        if any(size > settings.max_file_size for size in sizes) or sum(sizes) > settings.max_total_size:
            raise ValueError("Attached files are too large")
        return self


class ContinueRequest(BaseModel):
    chat_id: str
    previous_response: str = ""


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidIdentifier):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=503, detail=user_message(e))


async def _sse(handle: TurnHandle) -> AsyncIterator[str]:
    try:
        async for event in handle.stream:
            yield event.encode()
    finally:
        handle.cancel()
        await handle.stream.aclose()


@router.post("/new", status_code=201)
async def create_chat(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    chat_id = orchestrator.allocator.new_session_id()
    try:
        session = orchestrator.repository.ensure_session(chat_id)
    except StoreUnavailable as e:
        raise _http_error(e)
    return {"chat_id": session.id, "created_at": session.created_at.isoformat()}


@router.post("/stream")
async def chat_stream(body: ChatRequest, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    try:
        handle = await orchestrator.start_turn(body.chat_id, body.message, body.files)
    except (InvalidIdentifier, StoreUnavailable) as e:
        raise _http_error(e)
    return StreamingResponse(_sse(handle), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/continue")
async def chat_continue(body: ContinueRequest, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    try:
        handle = await orchestrator.continue_turn(body.chat_id, body.previous_response)
    except (InvalidIdentifier, NotFound, StoreUnavailable) as e:
        raise _http_error(e)
    return StreamingResponse(_sse(handle), media_type="text/event-stream", headers=SSE_HEADERS)


async def _open_turn(orchestrator: ConversationOrchestrator, request: dict, chat_id: str | None) -> TurnHandle:
    """Validate a WebSocket request with the same models as the HTTP routes, then open the turn."""
    if request.get("type") == "continue":
        body = ContinueRequest.model_validate(
            {"chat_id": request.get("chat_id") or chat_id, "previous_response": request.get("previous_response", "")}
        )
        return await orchestrator.continue_turn(body.chat_id, body.previous_response)
    body = ChatRequest.model_validate(
        {
            "message": request.get("content", ""),
            "chat_id": request.get("chat_id") or chat_id,
            "files": request.get("files") or [],
        }
    )
    return await orchestrator.start_turn(body.chat_id, body.message, body.files)


def _invalid_request(e: ValidationError) -> str:
    errors = e.errors()
    return f"Invalid request: {errors[0]['msg']}" if errors else "Invalid request."


async def _pump(websocket: WebSocket, handle: TurnHandle) -> None:
    async for event in handle.stream:
        await websocket.send_json(event.as_json())
    await websocket.send_json({"type": "end", "chat_id": handle.session_id, "state": handle.state.value})


def _decode(raw: str) -> dict:
    try:
        request = json.loads(raw)
    except json.JSONDecodeError:
        return {"content": raw}
    return request if isinstance(request, dict) else {"content": raw}


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """One turn at a time per connection; ``{"type": "abort"}`` cancels the turn in flight.

    Requests that arrive while a turn is streaming are queued and run after it.
    """
    await websocket.accept()
    chat_id: str | None = None
    backlog: deque[dict] = deque()
    receiver: asyncio.Task | None = None
    pump: asyncio.Task | None = None

    try:
        while True:
            if backlog:
                request = backlog.popleft()
            else:
                if receiver is None:
                    receiver = asyncio.create_task(websocket.receive_text())
                raw = await receiver
                receiver = None
                request = _decode(raw)

            if request.get("type") == "abort":
                continue

            try:
                handle = await _open_turn(orchestrator, request, chat_id)
            except ValidationError as e:
                logger.info(f"Rejected WebSocket request: {e.error_count()} validation error(s)")
                await websocket.send_json(error_event(_invalid_request(e), "invalid_request").as_json())
                await websocket.send_json({"type": "end", "chat_id": chat_id, "state": "failed"})
                continue
            except (InvalidIdentifier, NotFound, StoreUnavailable) as e:
                await websocket.send_json(error_event(user_message(e)).as_json())
                await websocket.send_json({"type": "end", "chat_id": chat_id, "state": "failed"})
                continue
            chat_id = handle.session_id

            pump = asyncio.create_task(_pump(websocket, handle))
            while not pump.done():
                if receiver is None:
                    receiver = asyncio.create_task(websocket.receive_text())
                done, _ = await asyncio.wait({pump, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if receiver not in done:
                    continue
                incoming = _decode(receiver.result())
                receiver = None
                if incoming.get("type") == "abort":
                    logger.info(f"Client aborted turn in {handle.session_id}")
                    handle.cancel()
                else:
                    backlog.append(incoming)
            await pump
            pump = None

    except WebSocketDisconnect:
        logger.debug(f"WebSocket closed (chat {chat_id})")
    finally:
        for task in (pump, receiver):
            if task is not None and not task.done():
                task.cancel()
