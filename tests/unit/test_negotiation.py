"""Testes da negociacao da sessao (POST /v2/live) com httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from relive._types import AudioFormat
from relive.client.negotiation import (
    API_KEY_HEADER,
    build_request_body,
    negotiate_session,
)
from relive.config import LanguageConfig, StreamingConfig
from relive.exceptions import NegotiationError

_FORMAT = AudioFormat(encoding="wav/pcm", sample_rate=16000, bit_depth=16, channels=1)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBuildRequestBody:
    def test_merges_audio_format_and_languages(self) -> None:
        body = build_request_body(_FORMAT, StreamingConfig())

        assert body == {
            "encoding": "wav/pcm",
            "sample_rate": 16000,
            "bit_depth": 16,
            "channels": 1,
            "language_config": {
                "languages": ["es", "ru", "en", "fr"],
                "code_switching": True,
            },
        }

    def test_custom_languages(self) -> None:
        config = StreamingConfig(
            language_config=LanguageConfig(languages=["pt"], code_switching=False)
        )
        body = build_request_body(_FORMAT, config)
        assert body["language_config"] == {"languages": ["pt"], "code_switching": False}


class TestNegotiateSession:
    async def test_success_returns_endpoint(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201,
                json={"id": "sess-42", "url": "wss://live.example/v2/live?token=t"},
            )

        async with _client(handler) as client:
            result = await negotiate_session(
                "https://api.example",
                "secret",
                _FORMAT,
                StreamingConfig(),
                client=client,
            )

        assert result.url == "wss://live.example/v2/live?token=t"
        assert result.id == "sess-42"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.example/v2/live"
        assert request.headers[API_KEY_HEADER] == "secret"
        assert request.headers["content-type"] == "application/json"
        body = json.loads(request.content)
        assert body["sample_rate"] == 16000
        assert body["language_config"]["code_switching"] is True

    async def test_unauthorized_raises_with_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text='{"message": "invalid key"}')

        async with _client(handler) as client:
            with pytest.raises(NegotiationError) as exc_info:
                await negotiate_session(
                    "https://api.example", "bad", _FORMAT, StreamingConfig(), client=client
                )

        assert exc_info.value.status_code == 401
        assert "invalid key" in exc_info.value.detail

    async def test_empty_error_body_uses_reason_phrase(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with _client(handler) as client:
            with pytest.raises(NegotiationError) as exc_info:
                await negotiate_session(
                    "https://api.example", "k", _FORMAT, StreamingConfig(), client=client
                )

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "Internal Server Error"

    async def test_network_failure_has_no_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(NegotiationError) as exc_info:
                await negotiate_session(
                    "https://api.example", "k", _FORMAT, StreamingConfig(), client=client
                )

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.detail

    async def test_body_without_url_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"id": "sess-1"})

        async with _client(handler) as client:
            with pytest.raises(NegotiationError) as exc_info:
                await negotiate_session(
                    "https://api.example", "k", _FORMAT, StreamingConfig(), client=client
                )

        assert exc_info.value.status_code == 201

    async def test_non_json_body_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with _client(handler) as client:
            with pytest.raises(NegotiationError):
                await negotiate_session(
                    "https://api.example", "k", _FORMAT, StreamingConfig(), client=client
                )

    async def test_injected_client_is_not_closed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"url": "wss://x"})

        async with _client(handler) as client:
            await negotiate_session(
                "https://api.example", "k", _FORMAT, StreamingConfig(), client=client
            )
            assert not client.is_closed
