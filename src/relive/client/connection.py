"""Conexao duplex com o servidor de transcricao.

``Connection`` e o contrato que a sessao usa; ``WebSocketConnection`` o
implementa sobre a biblioteca ``websockets``. A sessao nunca toca o
socket diretamente, o que permite substituir o transporte em testes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from relive._types import CLOSE_NORMAL
from relive.exceptions import TransportError
from relive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from websockets.asyncio.client import ClientConnection

logger = get_logger("client.connection")


class Connection(Protocol):
    """Transporte orientado a mensagens usado pela sessao."""

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    async def send(self, data: bytes | str) -> None: ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[bytes | str]: ...


Connector = Callable[[str], Awaitable[Connection]]


class WebSocketConnection:
    """Adapter de ``websockets`` para o contrato ``Connection``.

    - ``send`` em socket fechado levanta TransportError.
    - A iteracao termina silenciosamente quando o socket fecha; o motivo
      fica em ``close_code``/``close_reason``.
    """

    __slots__ = ("_ws",)

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    @property
    def close_reason(self) -> str | None:
        return self._ws.close_reason

    async def send(self, data: bytes | str) -> None:
        try:
            await self._ws.send(data)
        except ConnectionClosed as exc:
            raise TransportError(f"envio em conexao fechada ({exc})") from exc

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        await self._ws.close(code=code, reason=reason)

    async def __aiter__(self) -> AsyncIterator[bytes | str]:
        try:
            async for message in self._ws:
                yield message
        except ConnectionClosed:
            return


async def connect_websocket(url: str, *, open_timeout_s: float = 10.0) -> WebSocketConnection:
    """Abre uma conexao WebSocket para ``url``.

    Raises:
        TransportError: Se o handshake falhar, expirar ou o host estiver inacessivel.
    """
    try:
        ws = await connect(url, open_timeout=open_timeout_s)
    except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as exc:
        logger.warning("websocket_connect_failed", error=str(exc))
        raise TransportError(f"falha ao conectar: {exc}") from exc
    return WebSocketConnection(ws)
