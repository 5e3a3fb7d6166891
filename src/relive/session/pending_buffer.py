"""PendingAudioBuffer — audio submetido e ainda nao confirmado pelo servidor.

Regiao contigua de bytes: cresce pelo fim (append) e encolhe apenas pela
frente, quando um ack avanca o offset confirmado. Invariante:

    snapshot() == todos_os_bytes_submetidos[acknowledged_offset:]

O offset confirmado e absoluto, monotonicamente nao-decrescente e nunca
maior que total_submitted. Acks que violam isso levantam ProtocolError
sem alterar o estado.

Sem threading/locking: mutado apenas pelo dispatcher da sessao.
"""

from __future__ import annotations

from relive.exceptions import AcknowledgmentOverrunError, AcknowledgmentRegressionError


class PendingAudioBuffer:
    """Buffer de audio pendente com offset de ack absoluto."""

    __slots__ = ("_acknowledged", "_buffer", "_total_submitted")

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._total_submitted = 0
        self._acknowledged = 0

    @property
    def total_submitted(self) -> int:
        """Total de bytes submetidos desde o inicio da sessao."""
        return self._total_submitted

    @property
    def acknowledged_offset(self) -> int:
        """Offset absoluto ate onde o servidor confirmou o audio."""
        return self._acknowledged

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return bool(self._buffer)

    def append(self, data: bytes) -> int:
        """Adiciona bytes ao fim do buffer.

        Returns:
            Offset absoluto do inicio do chunk.
        """
        start = self._total_submitted
        self._buffer.extend(data)
        self._total_submitted += len(data)
        return start

    def acknowledge(self, offset: int) -> int:
        """Aplica um ack absoluto, descartando a frente do buffer.

        Args:
            offset: Offset absoluto (exclusivo) confirmado pelo servidor.

        Returns:
            Quantidade de bytes descartados.

        Raises:
            AcknowledgmentRegressionError: offset < acknowledged_offset.
            AcknowledgmentOverrunError: offset > total_submitted.
        """
        if offset < self._acknowledged:
            raise AcknowledgmentRegressionError(offset, self._acknowledged)
        if offset > self._total_submitted:
            raise AcknowledgmentOverrunError(offset, self._total_submitted)

        trimmed = offset - self._acknowledged
        if trimmed:
            del self._buffer[:trimmed]
            self._acknowledged = offset
        return trimmed

    def snapshot(self) -> bytes:
        """Copia do conteudo pendente (usada no catch-up write)."""
        return bytes(self._buffer)
