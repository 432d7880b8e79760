"""Conversation endpoints used by the rendering layer.

The controller on `app.state` owns the one session. Clients either poll
`GET /api/conversation` or keep `/api/conversation/ws` open, which pushes a
state snapshot after every change.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..dependencies import get_conversation
from ..errors import (
    CapabilityUnavailable,
    ChatError,
    ConfigError,
    MessageNotFound,
    ValidationError,
)
from ..schemas.chat import ConversationState, SubmitRequest
from ..services.completion import clean_image_uri
from ..services.conversation import ConversationController
from ..services.export import EXPORT_FILENAME

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversation", tags=["conversation"])


def _error_status(e: ChatError) -> int:
    if isinstance(e, ValidationError):
        return 400
    if isinstance(e, MessageNotFound):
        return 404
    if isinstance(e, CapabilityUnavailable):
        return 503
    if isinstance(e, ConfigError):
        return 500
    return 502


@router.get("", response_model=ConversationState)
async def get_state(conversation: ConversationController = Depends(get_conversation)):
    return conversation.state


@router.post("/messages", response_model=ConversationState)
async def post_message(
    body: SubmitRequest,
    wait: bool = False,
    conversation: ConversationController = Depends(get_conversation),
):
    """Submit user text (and/or an image). 202 right away, or 200 once answered with ?wait=true."""
    try:
        image = clean_image_uri(body.image)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    if not body.text.strip() and not image:
        return JSONResponse(status_code=400, content={"error": "Message is required"})
    if conversation.pending:
        return JSONResponse(status_code=409, content={"error": "A reply is still pending"})

    outcome = conversation.submit(body.text, image)
    if wait and outcome is not None:
        await outcome
        return conversation.state
    return JSONResponse(status_code=202, content=conversation.state.model_dump())


@router.post("/reset", response_model=ConversationState)
async def reset_conversation(conversation: ConversationController = Depends(get_conversation)):
    try:
        conversation.reset()
    except ValidationError as e:
        return JSONResponse(status_code=409, content={"error": e.message})
    return conversation.state


@router.get("/export")
async def export_conversation(conversation: ConversationController = Depends(get_conversation)):
    return PlainTextResponse(
        conversation.export(),
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.post("/voice")
async def capture_voice(
    request: Request,
    conversation: ConversationController = Depends(get_conversation),
):
    """
    One-shot voice capture. Accepts:
      - Multipart form-data with fields: file | audio | audioBlob | audio_blob
      - Raw audio: Content-Type audio/* or application/octet-stream
    Returns the transcript; the client decides whether to submit it.
    """
    content_type = (request.headers.get("content-type") or "").lower()
    logger.info("[voice] Incoming POST /voice content-type=%s", content_type)

    data = b""
    filename = "audio.webm"
    if content_type.startswith("multipart/"):
        form = await request.form()
        upload = (
            form.get("file")
            or form.get("audio")
            or form.get("audioBlob")
            or form.get("audio_blob")
        )
        if upload is None or isinstance(upload, str):
            return JSONResponse(status_code=400, content={"success": False, "error": "No audio file in multipart form"})
        data = await upload.read()
        filename = getattr(upload, "filename", None) or filename
    elif content_type.startswith("audio/") or content_type.startswith("application/octet-stream"):
        data = await request.body()
        filename = f"audio{'.webm' if 'webm' in content_type else '.wav'}"
    else:
        return JSONResponse(status_code=400, content={"success": False, "error": "Unsupported content type"})

    try:
        transcript = await conversation.capture_voice(data, filename)
    except ChatError as e:
        logger.warning("[voice] Capture failed (%s): %s", type(e).__name__, e.message)
        return JSONResponse(status_code=_error_status(e), content={"success": False, "error": e.message})
    return {"success": True, "transcript": transcript, "text": transcript}


@router.get("/messages/{message_id}/speech")
async def speak_message(
    message_id: str,
    conversation: ConversationController = Depends(get_conversation),
):
    try:
        audio = await conversation.speak(message_id)
    except ChatError as e:
        logger.warning("[tts] Speech failed for %s (%s): %s", message_id, type(e).__name__, e.message)
        return JSONResponse(status_code=_error_status(e), content={"error": e.message})
    return Response(content=audio, media_type="audio/mpeg")


@router.websocket("/ws")
async def conversation_ws(
    ws: WebSocket,
    conversation: ConversationController = Depends(get_conversation),
):
    await ws.accept()
    client_id = uuid.uuid4().hex[:8]
    logger.info("[client %s] Connected", client_id)

    send_lock = asyncio.Lock()
    updates: "asyncio.Queue[ConversationState]" = asyncio.Queue()
    unsubscribe = conversation.subscribe(updates.put_nowait)

    async def _send(payload: dict):
        # One writer at a time: the pusher and the receive loop share the socket
        async with send_lock:
            await ws.send_text(json.dumps(payload))

    async def _push_states():
        while True:
            state = await updates.get()
            await _send({"type": "state", **state.model_dump()})

    await _send({"type": "state", **conversation.state.model_dump()})
    pusher = asyncio.create_task(_push_states())

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except Exception:
                await _send({"type": "error", "error": "invalid_json"})
                continue
            if not isinstance(msg, dict):
                await _send({"type": "error", "error": "invalid_json"})
                continue

            msg_type = msg.get("type")

            if msg_type == "ping":
                await _send({"type": "pong"})
                continue

            if msg_type == "user_message":
                content = msg.get("content")
                if content is not None and not isinstance(content, str):
                    await _send({"type": "error", "error": "invalid_content"})
                    continue
                content = (content or "").strip()
                if not content:
                    await _send({"type": "error", "error": "empty_message"})
                    continue
                if conversation.pending:
                    await _send({"type": "error", "error": "reply_pending"})
                    continue
                conversation.submit(content)
                await _send({"type": "ack", "message_id": conversation.messages[-1].id})
            else:
                await _send({"type": "error", "error": "unknown_event"})

    except WebSocketDisconnect as e:
        logger.info("[client %s] Disconnected (code=%s)", client_id, getattr(e, "code", "unknown"))
    finally:
        unsubscribe()
        pusher.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await pusher
        except Exception as e:
            logger.debug("[client %s] State pusher stopped with error (ignored): %s", client_id, e)
