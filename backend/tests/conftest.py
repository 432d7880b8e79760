from __future__ import annotations

import pytest

from chat_ai.config import Settings
from stubs import TEST_BASE_URL


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        OPENAI_API_KEY="test-key",
        OPENAI_BASE_URL=TEST_BASE_URL,
        OPENAI_MODEL="gpt-test",
        SPEECH_ENABLED=True,
    )


@pytest.fixture
def keyless_settings() -> Settings:
    return Settings(
        _env_file=None,
        OPENAI_API_KEY=None,
        OPENAI_BASE_URL=TEST_BASE_URL,
        OPENAI_MODEL="gpt-test",
    )
