"""Configuration management for the chat backend.

Loads environment variables (from a local .env or the exported shell env).
The settings object is built once per process by `get_settings()` and handed
to the completion client and speech backends by reference.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional
import logging


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    backend_port: int = Field(8000, alias="BACKEND_PORT")
    backend_log_level: str = Field("info", alias="BACKEND_LOG_LEVEL")
    backend_allow_all_origins: bool = Field(False, alias="BACKEND_ALLOW_ALL_ORIGINS")

    # Secret; absence only fails completion attempts, never startup
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    openai_base_url: Optional[str] = Field(None, alias="OPENAI_BASE_URL")
    # Images are sent inline, so the default has to be a vision capable model
    openai_model: str = Field("gpt-4o-mini", alias="OPENAI_MODEL")

    openai_transcription_model: str = Field("whisper-1", alias="OPENAI_TRANSCRIPTION_MODEL")
    openai_speech_model: str = Field("tts-1", alias="OPENAI_SPEECH_MODEL")
    openai_speech_voice: str = Field("alloy", alias="OPENAI_SPEECH_VOICE")
    speech_enabled: bool = Field(True, alias="SPEECH_ENABLED")

    default_image_prompt: str = Field("What's in this image?", alias="DEFAULT_IMAGE_PROMPT")

    @property
    def has_api_key(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()  # type: ignore
    logging.getLogger(__name__).info(
        "Loaded settings model=%s base_url=%s api_key_set=%s speech_enabled=%s",
        s.openai_model, s.openai_base_url or "default", s.has_api_key, s.speech_enabled,
    )
    return s
