"""ResumableStreamSession — streaming de audio com retomada apos queda de conexao.

Dono da conexao atual, do PendingAudioBuffer e do offset de ack. Garante
que todo byte submetido chega ao servidor ate a fronteira de ack, atraves
de qualquer numero de quedas de transporte:

- A frente do buffer so avanca por ack confirmado, nunca por envio.
- Ao (re)abrir uma conexao, o buffer inteiro e reenviado numa unica
  mensagem (catch-up write) antes de qualquer outra, seguido do
  stop_recording se o stop ja foi pedido.
- Close com code != 1000 antes do stop confirmado dispara reconexao
  para a mesma URL apos ``ReconnectPolicy.delay_for(tentativa)``.

Todas as fontes de eventos (chunks, mensagens, closes, timer de reconexao
forcada) apenas enfileiram eventos tipados. Um unico dispatcher consome a
fila e e o unico que muta o estado, entao nenhum handler intercala com
outro. Envios sao aguardados dentro do handler: a ordem no fio e a ordem
de submissao.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from relive._types import (
    CLOSE_ABNORMAL,
    CLOSE_FORCED_RECONNECT,
    CLOSE_NORMAL,
    CLOSE_PROTOCOL_ERROR,
    ConnectionState,
    SessionState,
)
from relive.client.connection import connect_websocket
from relive.client.messages import (
    AudioChunkEvent,
    SessionEndedEvent,
    StopRecordingAckEvent,
    StopRecordingCommand,
    decode_message,
)
from relive.exceptions import (
    ProtocolError,
    ReconnectExhaustedError,
    SessionError,
    TransportError,
)
from relive.logging import get_logger
from relive.session.events import (
    ChunkSubmitted,
    ConnectionClosed,
    ConnectionFailed,
    ConnectionOpened,
    ForceReconnectRequested,
    MessageReceived,
    StopRequested,
)
from relive.session.pending_buffer import PendingAudioBuffer
from relive.session.state_machine import SessionStateMachine

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    from relive.client.connection import Connection, Connector
    from relive.client.messages import ServerMessage
    from relive.exceptions import ReliveError
    from relive.session.events import SessionEvent

logger = get_logger("session.resumable")


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Politica de reconexao apos close abrupto.

    Default: espera fixa de 1s, sem backoff e sem limite de tentativas.

    Atributos:
        delay_s: Espera antes da primeira tentativa.
        backoff_factor: Multiplicador da espera a cada tentativa consecutiva.
        max_delay_s: Teto da espera.
        max_attempts: Tentativas consecutivas sem sucesso antes de abortar
            (None = ilimitado).

    Raises:
        ValueError: Se algum parametro for invalido.
    """

    delay_s: float = 1.0
    backoff_factor: float = 1.0
    max_delay_s: float = 30.0
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.delay_s < 0:
            msg = f"delay_s deve ser >= 0, recebeu {self.delay_s}"
            raise ValueError(msg)
        if self.backoff_factor < 1.0:
            msg = f"backoff_factor deve ser >= 1.0, recebeu {self.backoff_factor}"
            raise ValueError(msg)
        if self.max_delay_s < self.delay_s:
            msg = f"max_delay_s ({self.max_delay_s}) deve ser >= delay_s ({self.delay_s})"
            raise ValueError(msg)
        if self.max_attempts is not None and self.max_attempts < 1:
            msg = f"max_attempts deve ser >= 1, recebeu {self.max_attempts}"
            raise ValueError(msg)

    def delay_for(self, attempt: int) -> float:
        """Espera em segundos antes da tentativa ``attempt`` (1-based)."""
        delay = self.delay_s * self.backoff_factor ** max(0, attempt - 1)
        return min(delay, self.max_delay_s)


class _ConnectionHandle:
    """Uma tentativa de conexao. So o handle atual afeta o estado da sessao."""

    __slots__ = ("connection", "forced", "handle_id", "reader_task", "state")

    def __init__(self, handle_id: int) -> None:
        self.handle_id = handle_id
        self.state = ConnectionState.CONNECTING
        self.forced = False
        self.connection: Connection | None = None
        self.reader_task: asyncio.Task[None] | None = None


class ResumableStreamSession:
    """Sessao de streaming com buffer de retomada e reconexao automatica.

    Args:
        url: Endpoint WebSocket obtido na negociacao (imutavel).
        connector: Abre uma conexao para a URL (default: WebSocket real).
        policy: Politica de reconexao.
        on_message: Callback sincrono chamado com cada mensagem decodificada.
        session_id: ID da sessao (apenas para logs).
        clock: Relogio monotonic usado para medir o tempo em cada estado.
    """

    def __init__(
        self,
        url: str,
        *,
        connector: Connector | None = None,
        policy: ReconnectPolicy | None = None,
        on_message: Callable[[ServerMessage], None] | None = None,
        session_id: str | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._url = url
        self._connector = connector or connect_websocket
        self._policy = policy or ReconnectPolicy()
        self._on_message = on_message
        self._session_id = session_id

        self._buffer = PendingAudioBuffer()
        self._state_machine = SessionStateMachine(clock=clock)
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._handle: _ConnectionHandle | None = None
        self._next_handle_id = 0

        self._stop_requested = False
        self._stop_confirmed = False
        self._reconnect_attempts = 0
        self._reconnect_count = 0
        self._last_connecting_ms = 0
        self._fatal_error: ReliveError | None = None

        self._dispatcher_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._started: asyncio.Future[None] | None = None
        self._closed = asyncio.Event()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state_machine.state

    @property
    def bytes_submitted(self) -> int:
        """Total de bytes submetidos ja processados pelo dispatcher."""
        return self._buffer.total_submitted

    @property
    def bytes_acknowledged(self) -> int:
        return self._buffer.acknowledged_offset

    @property
    def pending_bytes(self) -> int:
        return self._buffer.pending_bytes

    @property
    def closed(self) -> bool:
        """True quando a sessao atingiu um estado terminal."""
        return self._closed.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def stop_confirmed(self) -> bool:
        return self._stop_confirmed

    @property
    def reconnect_count(self) -> int:
        """Total de reconexoes agendadas desde o inicio da sessao."""
        return self._reconnect_count

    @property
    def last_connecting_ms(self) -> int:
        """Tempo (ms) em CONNECTING antes da ultima conexao aberta."""
        return self._last_connecting_ms

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Abre a primeira conexao e inicia o dispatcher.

        Raises:
            TransportError: Se a primeira conexao falhar (irrecuperavel).
            SessionError: Se a sessao ja foi iniciada.
        """
        if self._dispatcher_task is not None:
            msg = "Sessao ja iniciada"
            raise SessionError(msg)

        self._state_machine.transition(SessionState.CONNECTING)
        self._started = asyncio.get_running_loop().create_future()
        self._dispatcher_task = asyncio.create_task(self._dispatch_loop())
        self._begin_connect(delay_s=0.0)
        await self._started

    def submit_chunk(self, data: bytes) -> None:
        """Submete o proximo trecho de audio, na ordem do stream.

        Nao bloqueia e nao levanta erro por falha de transporte.
        """
        if self._closed.is_set():
            logger.warning(
                "chunk_dropped_session_closed",
                session_id=self._session_id,
                bytes=len(data),
            )
            return
        if not data:
            return
        self._enqueue(ChunkSubmitted(data=bytes(data)))

    def request_stop(self) -> None:
        """Pede o fim da gravacao (idempotente)."""
        self._enqueue(StopRequested())

    def force_reconnect(self) -> None:
        """Fecha a conexao atual com code 4500 para exercitar a retomada.

        Seguro a qualquer momento: no-op se nao ha conexao aberta.
        """
        self._enqueue(ForceReconnectRequested())

    async def flush(self) -> None:
        """Aguarda ate que todos os eventos enfileirados tenham sido tratados."""
        if self._closed.is_set():
            return
        await self._events.join()

    async def wait_closed(self) -> SessionState:
        """Aguarda o estado terminal da sessao.

        Returns:
            SessionState.TERMINATED em encerramento limpo.

        Raises:
            TransportError, ProtocolError, ReconnectExhaustedError: Se a
                sessao foi abortada.
        """
        if self._dispatcher_task is None:
            msg = "Sessao nao iniciada"
            raise SessionError(msg)
        await self._closed.wait()
        if self._fatal_error is not None:
            raise self._fatal_error
        return self._state_machine.state

    async def aclose(self) -> None:
        """Encerra localmente: cancela tasks e fecha a conexao atual."""
        if self._state_machine.can_transition(SessionState.TERMINATED):
            self._state_machine.transition(SessionState.TERMINATED)

        if self._dispatcher_task is not None and not self._dispatcher_task.done():
            self._dispatcher_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher_task

        handle = self._handle
        if handle is not None and handle.connection is not None:
            if handle.reader_task is not None:
                handle.reader_task.cancel()
            if handle.state is ConnectionState.OPEN:
                handle.state = ConnectionState.CLOSING
                await self._close_connection(handle.connection, CLOSE_NORMAL, "client shutdown")
            handle.state = ConnectionState.CLOSED

        self._finalize()

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    def _enqueue(self, event: SessionEvent) -> None:
        if self._closed.is_set():
            return
        self._events.put_nowait(event)

    async def _dispatch_loop(self) -> None:
        try:
            while not self._state_machine.is_terminal:
                event = await self._events.get()
                try:
                    await self._handle_event(event)
                finally:
                    self._events.task_done()
        finally:
            self._finalize()

    async def _handle_event(self, event: SessionEvent) -> None:
        if isinstance(event, ChunkSubmitted):
            await self._on_chunk_submitted(event)
        elif isinstance(event, MessageReceived):
            await self._on_message_received(event)
        elif isinstance(event, StopRequested):
            await self._on_stop_requested()
        elif isinstance(event, ForceReconnectRequested):
            self._on_force_reconnect()
        elif isinstance(event, ConnectionOpened):
            await self._on_connection_opened(event)
        elif isinstance(event, ConnectionFailed):
            self._on_connection_failed(event)
        elif isinstance(event, ConnectionClosed):
            self._on_connection_closed(event)

    def _finalize(self) -> None:
        if self._closed.is_set():
            return
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        if self._started is not None and not self._started.done():
            error = self._fatal_error or TransportError("sessao encerrada antes de abrir")
            self._started.set_exception(error)
        # Eventos restantes nao serao tratados; liberar quem espera em flush()
        while not self._events.empty():
            self._events.get_nowait()
            self._events.task_done()
        self._closed.set()
        logger.info(
            "session_finished",
            session_id=self._session_id,
            state=self._state_machine.state.value,
            bytes_submitted=self._buffer.total_submitted,
            bytes_acknowledged=self._buffer.acknowledged_offset,
            pending_bytes=self._buffer.pending_bytes,
            reconnects=self._reconnect_count,
        )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def _on_chunk_submitted(self, event: ChunkSubmitted) -> None:
        self._buffer.append(event.data)
        if self._is_open():
            await self._send(event.data)

    async def _on_stop_requested(self) -> None:
        if self._stop_requested:
            logger.debug("stop_already_requested", session_id=self._session_id)
            return

        self._stop_requested = True
        if self._is_open():
            await self._send_stop()
        else:
            logger.info(
                "stop_recording_deferred",
                session_id=self._session_id,
                state=self._state_machine.state.value,
            )

    def _on_force_reconnect(self) -> None:
        handle = self._handle
        if (
            handle is None
            or handle.connection is None
            or handle.state is not ConnectionState.OPEN
            or self._state_machine.state is not SessionState.OPEN
        ):
            logger.debug(
                "forced_reconnect_ignored",
                session_id=self._session_id,
                state=self._state_machine.state.value,
            )
            return

        handle.state = ConnectionState.CLOSING
        handle.forced = True
        self._state_machine.transition(SessionState.CLOSING)
        logger.info(
            "forced_reconnect",
            session_id=self._session_id,
            handle_id=handle.handle_id,
            pending_bytes=self._buffer.pending_bytes,
        )
        self._spawn(
            self._close_connection(handle.connection, CLOSE_FORCED_RECONNECT, "forced reconnect")
        )

    async def _on_connection_opened(self, event: ConnectionOpened) -> None:
        handle = self._handle
        if handle is None or handle.handle_id != event.handle_id:
            logger.debug("stale_connection_opened", handle_id=event.handle_id)
            self._spawn(self._close_connection(event.connection, CLOSE_NORMAL, "stale"))
            return

        handle.connection = event.connection
        handle.state = ConnectionState.OPEN
        handle.reader_task = self._spawn(self._read_loop(handle.handle_id, event.connection))
        connecting_ms = self._state_machine.transition(SessionState.OPEN)
        self._last_connecting_ms = connecting_ms
        self._reconnect_attempts = 0

        logger.info(
            "connection_opened",
            session_id=self._session_id,
            handle_id=handle.handle_id,
            connecting_ms=connecting_ms,
            pending_bytes=self._buffer.pending_bytes,
        )

        if self._buffer:
            catch_up = self._buffer.snapshot()
            if await self._send(catch_up):
                logger.info(
                    "catch_up_sent",
                    session_id=self._session_id,
                    handle_id=handle.handle_id,
                    from_offset=self._buffer.acknowledged_offset,
                    bytes=len(catch_up),
                )

        if self._stop_requested:
            await self._send_stop()

        if self._started is not None and not self._started.done():
            self._started.set_result(None)

    def _on_connection_failed(self, event: ConnectionFailed) -> None:
        handle = self._handle
        if handle is None or handle.handle_id != event.handle_id:
            return

        handle.state = ConnectionState.CLOSED
        if self._started is not None and not self._started.done():
            logger.error(
                "initial_connection_failed",
                session_id=self._session_id,
                error=str(event.error),
            )
            self._abort(event.error)
            return

        logger.warning(
            "reconnect_attempt_failed",
            session_id=self._session_id,
            handle_id=event.handle_id,
            attempt=self._reconnect_attempts,
            error=str(event.error),
        )
        self._state_machine.transition(SessionState.ABRUPTLY_CLOSED)
        self._schedule_reconnect()

    async def _on_message_received(self, event: MessageReceived) -> None:
        handle = self._handle
        if handle is None or handle.handle_id != event.handle_id:
            logger.debug("stale_message_ignored", handle_id=event.handle_id)
            return

        message = decode_message(event.raw)
        if message is None:
            return

        self._present(message)

        if isinstance(message, AudioChunkEvent):
            self._process_ack(message)
        elif isinstance(message, (StopRecordingAckEvent, SessionEndedEvent)):
            self._confirm_stop(message)

    def _on_connection_closed(self, event: ConnectionClosed) -> None:
        handle = self._handle
        if handle is None or handle.handle_id != event.handle_id:
            logger.debug("stale_close_ignored", handle_id=event.handle_id, code=event.code)
            return

        handle.state = ConnectionState.CLOSED
        logger.info(
            "connection_closed",
            session_id=self._session_id,
            handle_id=handle.handle_id,
            code=event.code,
            reason=event.reason,
            state_ms=self._state_machine.elapsed_in_state_ms,
            pending_bytes=self._buffer.pending_bytes,
        )

        # Close forcado localmente reconecta mesmo se o servidor ecoar 1000
        clean = event.code == CLOSE_NORMAL and not handle.forced
        if clean or self._stop_confirmed:
            self._state_machine.transition(SessionState.TERMINATED)
            return

        self._state_machine.transition(SessionState.ABRUPTLY_CLOSED)
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Protocol helpers
    # ------------------------------------------------------------------

    def _process_ack(self, message: AudioChunkEvent) -> None:
        offset = message.byte_range_end
        if not message.acknowledged or offset is None:
            logger.warning(
                "audio_chunk_not_acknowledged",
                session_id=self._session_id,
                error=str(message.error) if message.error is not None else None,
            )
            return

        try:
            trimmed = self._buffer.acknowledge(offset)
        except ProtocolError as exc:
            logger.error(
                "ack_protocol_error",
                session_id=self._session_id,
                offset=offset,
                acknowledged=self._buffer.acknowledged_offset,
                submitted=self._buffer.total_submitted,
                error=str(exc),
            )
            self._abort(exc, close_code=CLOSE_PROTOCOL_ERROR)
            return

        logger.debug(
            "ack_processed",
            session_id=self._session_id,
            offset=offset,
            trimmed=trimmed,
            pending_bytes=self._buffer.pending_bytes,
        )

    def _confirm_stop(self, message: StopRecordingAckEvent | SessionEndedEvent) -> None:
        if self._stop_confirmed:
            return
        if not self._stop_requested:
            # Confirmacao so vale apos request_stop()
            logger.warning(
                "stop_confirmation_without_request",
                session_id=self._session_id,
                via=message.type,
                pending_bytes=self._buffer.pending_bytes,
            )
            return
        if isinstance(message, StopRecordingAckEvent) and not message.acknowledged:
            return

        self._stop_confirmed = True
        logger.info("stop_confirmed", session_id=self._session_id, via=message.type)
        if self._state_machine.state is SessionState.OPEN:
            self._state_machine.transition(SessionState.CLOSING)

    def _schedule_reconnect(self) -> None:
        max_attempts = self._policy.max_attempts
        if max_attempts is not None and self._reconnect_attempts >= max_attempts:
            logger.error(
                "reconnect_exhausted",
                session_id=self._session_id,
                attempts=self._reconnect_attempts,
            )
            self._abort(ReconnectExhaustedError(self._reconnect_attempts))
            return

        self._reconnect_attempts += 1
        self._reconnect_count += 1
        delay_s = self._policy.delay_for(self._reconnect_attempts)
        logger.info(
            "reconnect_scheduled",
            session_id=self._session_id,
            attempt=self._reconnect_attempts,
            delay_s=delay_s,
            pending_bytes=self._buffer.pending_bytes,
        )
        self._state_machine.transition(SessionState.CONNECTING)
        self._begin_connect(delay_s=delay_s)

    def _abort(self, error: ReliveError, close_code: int | None = None) -> None:
        self._fatal_error = error
        handle = self._handle
        if (
            close_code is not None
            and handle is not None
            and handle.connection is not None
            and handle.state is ConnectionState.OPEN
        ):
            handle.state = ConnectionState.CLOSING
            self._spawn(self._close_connection(handle.connection, close_code, str(error)[:120]))
        self._state_machine.transition(SessionState.FATAL_ABORTED)

    def _is_open(self) -> bool:
        handle = self._handle
        return (
            handle is not None
            and handle.connection is not None
            and handle.state is ConnectionState.OPEN
        )

    async def _send(self, data: bytes | str) -> bool:
        handle = self._handle
        if handle is None or handle.connection is None:
            return False
        try:
            await handle.connection.send(data)
        except TransportError as exc:
            # O close chega pelo reader task e dispara a reconexao
            logger.warning(
                "send_failed",
                session_id=self._session_id,
                handle_id=handle.handle_id,
                error=str(exc),
            )
            return False
        return True

    async def _send_stop(self) -> None:
        if await self._send(StopRecordingCommand().to_frame()):
            logger.info(
                "stop_recording_sent",
                session_id=self._session_id,
                pending_bytes=self._buffer.pending_bytes,
            )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _begin_connect(self, delay_s: float) -> None:
        self._next_handle_id += 1
        handle = _ConnectionHandle(self._next_handle_id)
        self._handle = handle
        self._connect_task = self._spawn(self._connect(handle.handle_id, delay_s))

    async def _connect(self, handle_id: int, delay_s: float) -> None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        logger.info("connection_opening", session_id=self._session_id, handle_id=handle_id)
        try:
            connection = await self._connector(self._url)
        except TransportError as exc:
            self._enqueue(ConnectionFailed(handle_id=handle_id, error=exc))
            return
        except OSError as exc:
            self._enqueue(ConnectionFailed(handle_id=handle_id, error=TransportError(str(exc))))
            return
        self._enqueue(ConnectionOpened(handle_id=handle_id, connection=connection))

    async def _read_loop(self, handle_id: int, connection: Connection) -> None:
        try:
            async for raw in connection:
                self._enqueue(MessageReceived(handle_id=handle_id, raw=raw))
        except TransportError as exc:
            logger.warning("receive_failed", handle_id=handle_id, error=str(exc))

        code = connection.close_code
        self._enqueue(
            ConnectionClosed(
                handle_id=handle_id,
                code=code if code is not None else CLOSE_ABNORMAL,
                reason=connection.close_reason or "",
            )
        )

    async def _close_connection(self, connection: Connection, code: int, reason: str) -> None:
        try:
            await connection.close(code=code, reason=reason)
        except (TransportError, OSError) as exc:
            logger.debug("connection_close_failed", code=code, error=str(exc))

    def _present(self, message: ServerMessage) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(message)
        except Exception as exc:
            logger.error(
                "message_callback_failed",
                session_id=self._session_id,
                message_type=message.type,
                error=str(exc),
            )
