from __future__ import annotations

import httpx
import pytest

from chat_ai.errors import AuthError, ConfigError, NetworkError, TransportError, UpstreamError, ValidationError
from chat_ai.services.completion import CompletionClient, to_image_data_url
from stubs import UpstreamStub


@pytest.mark.asyncio
async def test_complete_returns_first_choice_text(settings) -> None:
    upstream = UpstreamStub()
    client = CompletionClient(settings, client=upstream.client())

    reply = await client.complete("Hello")

    assert reply == "Hello back"
    assert len(upstream.requests) == 1
    request = upstream.requests[0]
    assert request.method == "POST"
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["authorization"] == "Bearer test-key"
    assert upstream.bodies[0]["model"] == "gpt-test"
    assert upstream.bodies[0]["messages"] == [{"role": "user", "content": "Hello"}]


@pytest.mark.asyncio
async def test_complete_sends_image_inline(settings) -> None:
    upstream = UpstreamStub()
    client = CompletionClient(settings, client=upstream.client())

    await client.complete("What's in this image?", "data:image/png;base64,AAAA")

    messages = upstream.bodies[0]["messages"]
    assert len(messages) == 1
    assert messages[0]["role"] == "user"
    assert messages[0]["content"] == [
        {"type": "text", "text": "What's in this image?"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]


def test_image_bytes_become_data_url() -> None:
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8

    url = to_image_data_url(png)

    assert url.startswith("data:image/png;base64,")
    assert to_image_data_url("https://example.test/cat.jpg") == "https://example.test/cat.jpg"


@pytest.mark.asyncio
async def test_missing_credential_fails_before_any_call(keyless_settings) -> None:
    upstream = UpstreamStub()
    client = CompletionClient(keyless_settings, client=upstream.client())

    with pytest.raises(ConfigError):
        await client.complete("Hello")

    assert upstream.requests == []
    assert AuthError is ConfigError


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected_without_network(settings) -> None:
    upstream = UpstreamStub()
    client = CompletionClient(settings, client=upstream.client())

    with pytest.raises(ValidationError):
        await client.complete("   ")

    assert upstream.requests == []


@pytest.mark.asyncio
async def test_error_status_maps_to_upstream_error_without_retry(settings) -> None:
    upstream = UpstreamStub(
        lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}})
    )
    client = CompletionClient(settings, client=upstream.client())

    with pytest.raises(UpstreamError) as info:
        await client.complete("hi")

    assert info.value.message == "rate limited"
    assert info.value.status_code == 429
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_malformed_body_maps_to_upstream_error(settings) -> None:
    upstream = UpstreamStub(lambda request: httpx.Response(200, json={}))
    client = CompletionClient(settings, client=upstream.client())

    with pytest.raises(UpstreamError):
        await client.complete("hi")


@pytest.mark.asyncio
async def test_connection_failure_maps_to_transport_error(settings) -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    upstream = UpstreamStub(_refuse)
    client = CompletionClient(settings, client=upstream.client())

    with pytest.raises(TransportError):
        await client.complete("hi")

    assert len(upstream.requests) == 1
    assert NetworkError is TransportError
