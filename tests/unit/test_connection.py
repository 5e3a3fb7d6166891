"""Testes do WebSocketConnection contra um servidor websockets local."""

from __future__ import annotations

import json
import socket

import pytest
from websockets.asyncio.server import serve

from relive.client.connection import WebSocketConnection, connect_websocket
from relive.exceptions import TransportError


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _ack_then_close(ws) -> None:
    """Servidor minimo: confirma o primeiro frame binario e fecha com 4500."""
    frame = await ws.recv()
    await ws.send(
        json.dumps(
            {
                "type": "audio_chunk",
                "acknowledged": True,
                "data": {"byte_range": [0, len(frame)], "time_range": [0.0, 0.1]},
            }
        )
    )
    await ws.close(code=4500, reason="forced")


class TestWebSocketConnection:
    async def test_send_receive_and_close_code(self) -> None:
        async with serve(_ack_then_close, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            connection = await connect_websocket(f"ws://127.0.0.1:{port}")
            assert isinstance(connection, WebSocketConnection)

            await connection.send(b"\x00" * 320)
            received = [message async for message in connection]

        assert len(received) == 1
        assert json.loads(received[0])["data"]["byte_range"] == [0, 320]
        assert connection.close_code == 4500
        assert connection.close_reason == "forced"

    async def test_send_after_close_raises_transport_error(self) -> None:
        async with serve(_ack_then_close, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            connection = await connect_websocket(f"ws://127.0.0.1:{port}")
            await connection.send(b"\x01")
            _ = [message async for message in connection]

            with pytest.raises(TransportError):
                await connection.send(b"\x02")

    async def test_client_close_sends_code(self) -> None:
        codes: list[int | None] = []
        reasons: list[str | None] = []

        async def handler(ws) -> None:
            # Iterar levantaria ConnectionClosedError para codes fora de 1000/1001
            await ws.wait_closed()
            codes.append(ws.close_code)
            reasons.append(ws.close_reason)

        async with serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            connection = await connect_websocket(f"ws://127.0.0.1:{port}")
            await connection.close(code=4500, reason="forced reconnect")

        assert codes == [4500]
        assert reasons == ["forced reconnect"]
        assert connection.close_code == 4500


class TestConnectWebsocket:
    async def test_refused_connection_raises_transport_error(self) -> None:
        with pytest.raises(TransportError):
            await connect_websocket(f"ws://127.0.0.1:{_unused_port()}", open_timeout_s=2.0)

    async def test_invalid_uri_raises_transport_error(self) -> None:
        with pytest.raises(TransportError):
            await connect_websocket("not-a-websocket-url")
