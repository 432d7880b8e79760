"""Speech capabilities: one-shot voice capture and text-to-speech.

The controller never probes for speech support itself. It is handed a
capability value, either `Available(handle)` wrapping a backend or
`Unavailable(reason)`, and asks that value for the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Optional, Protocol, Tuple, TypeVar, Union

import openai
from openai import AsyncOpenAI

from ..config import Settings
from ..errors import CapabilityUnavailable, ConfigError, UpstreamError, ValidationError
from .completion import classify_openai_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SpeechRecognizer(Protocol):
    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str) -> bytes: ...


@dataclass(frozen=True)
class Available(Generic[T]):
    handle: T


@dataclass(frozen=True)
class Unavailable:
    reason: str = "Speech is not supported"


Capability = Union[Available, Unavailable]


def require(capability: Optional[Capability], what: str):
    """Return the backend behind an Available capability or raise CapabilityUnavailable."""
    if isinstance(capability, Available):
        return capability.handle
    reason = capability.reason if isinstance(capability, Unavailable) else "not configured"
    raise CapabilityUnavailable(f"{what} unavailable: {reason}")


class OpenAISpeech:
    """Whisper transcription and TTS through the same credential as completions."""

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

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        if not audio:
            raise ValidationError("Empty audio data")
        client = self._ensure_client()
        logger.info("[voice] Transcribing bytes=%d filename=%s", len(audio), filename)
        try:
            result = await client.audio.transcriptions.create(
                model=self.settings.openai_transcription_model,
                file=(filename, audio),
                response_format="json",
            )
        except openai.APIError as e:
            raise classify_openai_error(e) from e
        transcript = getattr(result, "text", None) or (isinstance(result, dict) and result.get("text"))
        if not transcript:
            raise UpstreamError("Transcription returned no text")
        return transcript.strip()

    async def synthesize(self, text: str) -> bytes:
        client = self._ensure_client()
        logger.info("[tts] Synthesizing chars=%d voice=%s", len(text), self.settings.openai_speech_voice)
        try:
            response = await client.audio.speech.create(
                model=self.settings.openai_speech_model,
                voice=self.settings.openai_speech_voice,
                input=text,
            )
        except openai.APIError as e:
            raise classify_openai_error(e) from e
        return response.content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


def build_speech_capabilities(settings: Settings) -> Tuple[Capability, Capability]:
    """Return (recognizer, synthesizer) capabilities for the given settings."""
    if not settings.speech_enabled:
        off = Unavailable("speech disabled by SPEECH_ENABLED")
        return off, off
    backend = OpenAISpeech(settings)
    return Available(backend), Available(backend)
