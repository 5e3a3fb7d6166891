"""Tipos fundamentais do relive.

Enums, dataclasses e constantes compartilhados pela sessao, pelo cliente
de negociacao e pelo driver da CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Close codes do WebSocket (RFC 6455 + faixa de aplicacao 4000-4999)
CLOSE_NORMAL = 1000
CLOSE_PROTOCOL_ERROR = 1002
CLOSE_ABNORMAL = 1006
CLOSE_FORCED_RECONNECT = 4500


class SessionState(Enum):
    """Estado da sessao de streaming retomavel.

    Transicoes validas:
        NEGOTIATING -> CONNECTING (endpoint obtido)
        CONNECTING -> OPEN (conexao aberta)
        OPEN -> CLOSING (fechamento local ou fase terminal do stop)
        OPEN/CLOSING -> ABRUPTLY_CLOSED (close com code != 1000)
        ABRUPTLY_CLOSED -> CONNECTING (reconexao agendada)
        Qualquer nao-terminal -> TERMINATED (close limpo)
        Qualquer nao-terminal -> FATAL_ABORTED (erro irrecuperavel)
    """

    NEGOTIATING = "negotiating"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    ABRUPTLY_CLOSED = "abruptly_closed"
    TERMINATED = "terminated"
    FATAL_ABORTED = "fatal_aborted"


class ConnectionState(Enum):
    """Estado de um ConnectionHandle individual."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class AudioFormat:
    """Metadados de formato do audio enviado ao servidor."""

    encoding: str
    sample_rate: int
    bit_depth: int
    channels: int

    @property
    def bytes_per_second(self) -> int:
        """Bytes de audio PCM por segundo de tempo real."""
        return self.sample_rate * self.channels * (self.bit_depth // 8)

    def to_request_fields(self) -> dict[str, object]:
        """Campos mesclados no corpo da request de negociacao."""
        return {
            "encoding": self.encoding,
            "sample_rate": self.sample_rate,
            "bit_depth": self.bit_depth,
            "channels": self.channels,
        }
