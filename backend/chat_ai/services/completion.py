"""Chat-completions client.

One call per `complete()`: no retries (the SDK is built with max_retries=0),
no caching. Failures are classified into the `chat_ai.errors` taxonomy so the
controller and the proxy router can report them uniformly.

Image policy: images always travel inline as an `image_url` content part next
to the prompt. No textual description of the image is ever synthesised.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Optional, Union

import openai
from openai import AsyncOpenAI

from ..config import Settings
from ..errors import ChatError, ConfigError, TransportError, UpstreamError, ValidationError
from ..schemas.chat import CompletionRequest

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, str]

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
)


def _sniff_mime(data: bytes) -> str:
    for sig, mime in _SIGNATURES:
        if data.startswith(sig):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


_URI_PREFIXES = ("data:image/", "http://", "https://")


def clean_image_uri(value: Optional[str]) -> Optional[str]:
    """Strip an image URI; None or blank means no image. Anything else must be a data: or http(s) URI."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Image must be a data: or http(s) URI string")
    uri = value.strip()
    if not uri:
        return None
    if not uri.lower().startswith(_URI_PREFIXES):
        raise ValidationError("Image must be a data: or http(s) URI string")
    return uri


def to_image_data_url(image: ImageInput) -> str:
    """Return a URI for the image: strings are validated, raw bytes become a base64 data URL."""
    if isinstance(image, str):
        uri = clean_image_uri(image)
        if uri is None:
            raise ValidationError("Image is empty")
        return uri
    if not image:
        raise ValidationError("Image is empty")
    b64_str = base64.b64encode(image).decode("ascii")
    return f"data:{_sniff_mime(image)};base64,{b64_str}"


def _upstream_message(exc: openai.APIStatusError) -> str:
    # The SDK unwraps {"error": {...}} so body is usually {"message": ...}
    body = exc.body
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
        if isinstance(inner, str) and inner:
            return inner
    return exc.message or f"Upstream returned status {exc.status_code}"


def classify_openai_error(exc: openai.APIError) -> ChatError:
    """Map an SDK exception onto UpstreamError or TransportError."""
    if isinstance(exc, openai.APIStatusError):
        return UpstreamError(_upstream_message(exc), status_code=exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return TransportError(str(exc) or "Connection error.")
    # Response arrived but could not be interpreted
    return UpstreamError(exc.message or "Malformed response from AI service")


class CompletionClient:
    """Send a single user prompt (optionally with an image) and return the reply text."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

    def _ensure_client(self) -> AsyncOpenAI:
        if not self.settings.has_api_key:
            raise ConfigError("API key not found. Set OPENAI_API_KEY in the environment or .env file.")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                base_url=self.settings.openai_base_url,
                max_retries=0,
            )
        return self._client

    async def complete(self, prompt: str, image: Optional[ImageInput] = None) -> str:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty")
        client = self._ensure_client()

        request = CompletionRequest(
            prompt=prompt,
            image=to_image_data_url(image) if image is not None else None,
        )
        logger.info(
            "[completion] Sending prompt chars=%d image=%s model=%s",
            len(prompt), request.image is not None, self.settings.openai_model,
        )
        started = time.perf_counter()
        try:
            response = await client.chat.completions.create(
                model=self.settings.openai_model,
                messages=request.to_messages(),
            )
        except openai.APIError as e:
            err = classify_openai_error(e)
            logger.warning("[completion] %s: %s", type(err).__name__, err.message)
            raise err from e

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if not isinstance(content, str):
            logger.warning("[completion] Response had no text content (choices=%d)", len(choices))
            raise UpstreamError("Malformed response from AI service")

        logger.info(
            "[completion] Reply chars=%d in %.2f ms",
            len(content), (time.perf_counter() - started) * 1000,
        )
        return content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
