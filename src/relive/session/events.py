"""Eventos internos da sessao, consumidos por um unico dispatcher serializado.

Produtores (fonte de audio, reader tasks das conexoes, timer de reconexao
forcada, tasks de conexao) apenas enfileiram eventos; somente o dispatcher
muta o estado da sessao.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relive.client.connection import Connection
    from relive.exceptions import TransportError


@dataclass(frozen=True, slots=True)
class ChunkSubmitted:
    data: bytes


@dataclass(frozen=True, slots=True)
class StopRequested:
    pass


@dataclass(frozen=True, slots=True)
class ForceReconnectRequested:
    pass


@dataclass(frozen=True, slots=True)
class ConnectionOpened:
    """Tentativa de conexao ``handle_id`` concluiu o handshake."""

    handle_id: int
    connection: Connection


@dataclass(frozen=True, slots=True)
class ConnectionFailed:
    """Tentativa de conexao ``handle_id`` falhou antes de abrir."""

    handle_id: int
    error: TransportError


@dataclass(frozen=True, slots=True)
class MessageReceived:
    handle_id: int
    raw: bytes | str


@dataclass(frozen=True, slots=True)
class ConnectionClosed:
    handle_id: int
    code: int
    reason: str = ""


SessionEvent = (
    ChunkSubmitted
    | StopRequested
    | ForceReconnectRequested
    | ConnectionOpened
    | ConnectionFailed
    | MessageReceived
    | ConnectionClosed
)
