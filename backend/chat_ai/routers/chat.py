"""Stateless completion proxy.

Lets a browser front-end reach the completion API without holding the
credential:

    POST /api/chat {"message": "...", "image": "data:..."?}
      200 {"reply": "..."}
      400 {"error": "Message is required"}  (or an invalid-image error)
      405 {"error": "Method not allowed"}   (any other method)
      500 {"error": "<reason>"}             (config, upstream or transport failure)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..dependencies import get_completion_client
from ..errors import ChatError, ValidationError
from ..schemas.chat import ErrorResponse, ProxyReply
from ..services.completion import CompletionClient, clean_image_uri

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "",
    response_model=ProxyReply,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat_proxy(
    request: Request,
    client: CompletionClient = Depends(get_completion_client),
):
    try:
        payload = await request.json()
    except Exception:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    message = payload.get("message")
    if not isinstance(message, str) or not message.strip():
        logger.info("[proxy] Rejected request without message")
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    try:
        image = clean_image_uri(payload.get("image"))
    except ValidationError as e:
        logger.info("[proxy] Rejected request with invalid image")
        return JSONResponse(status_code=400, content={"error": e.message})

    try:
        reply = await client.complete(message, image)
    except ChatError as e:
        logger.error("[proxy] Completion failed (%s): %s", type(e).__name__, e.message)
        return JSONResponse(status_code=500, content={"error": e.message})

    return ProxyReply(reply=reply)


@router.api_route("", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def chat_proxy_wrong_method():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})
