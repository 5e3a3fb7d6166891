"""Driver da sessao ao vivo: negocia, conecta, transmite o arquivo e aguarda o fim.

Nao encerra o processo: erros propagam para a CLI, que decide o exit code.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from relive.audio.source import AudioFileSource
from relive.client.negotiation import negotiate_session
from relive.config import StreamingConfig
from relive.exceptions import ConfigError
from relive.logging import get_logger
from relive.presenter import present_message
from relive.session.resumable import ReconnectPolicy, ResumableStreamSession
from relive.session.supervisor import ForcedReconnectSupervisor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    import httpx

    from relive._types import SessionState
    from relive.client.connection import Connector
    from relive.client.messages import ServerMessage
    from relive.config import ClientSettings

logger = get_logger("runner")


async def run_live_session(
    settings: ClientSettings,
    audio_path: Path | None = None,
    *,
    streaming_config: StreamingConfig | None = None,
    connector: Connector | None = None,
    http_client: httpx.AsyncClient | None = None,
    presenter: Callable[[ServerMessage], None] = present_message,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> SessionState:
    """Executa uma sessao completa de transcricao ao vivo a partir de um arquivo.

    Fluxo:
        1. Detecta o formato do audio.
        2. Negocia a sessao (POST /v2/live).
        3. Abre a sessao retomavel e arma a reconexao forcada.
        4. Transmite o arquivo em tempo real; ao fim, desarma o timer e
           pede o stop.
        5. Aguarda o encerramento confirmado pelo servidor.

    Returns:
        Estado terminal da sessao (TERMINATED).

    Raises:
        ConfigError: Parametros de reconexao invalidos.
        AudioFormatError: Arquivo ausente ou invalido.
        NegotiationError: Negociacao recusada ou falha de rede.
        TransportError: Primeira conexao falhou.
        ProtocolError: Ack regrediu ou ultrapassou o audio submetido.
        ReconnectExhaustedError: Politica limitada esgotou as tentativas.
    """
    path = audio_path or settings.audio_file
    source = AudioFileSource(path, chunk_duration_ms=settings.chunk_duration_ms, sleep=sleep)
    config = streaming_config or StreamingConfig()
    try:
        policy = ReconnectPolicy(
            delay_s=settings.reconnect_delay_s,
            max_attempts=settings.reconnect_max_attempts,
        )
    except ValueError as exc:
        msg = f"Politica de reconexao invalida: {exc}"
        raise ConfigError(msg) from exc

    initiated = await negotiate_session(
        settings.api_url,
        settings.api_key,
        source.audio_format,
        config,
        client=http_client,
    )

    session = ResumableStreamSession(
        initiated.url,
        connector=connector,
        policy=policy,
        on_message=presenter,
        session_id=initiated.id,
    )
    await session.start()

    supervisor: ForcedReconnectSupervisor | None = None
    if settings.force_reconnect_interval_s > 0:
        supervisor = ForcedReconnectSupervisor(session, settings.force_reconnect_interval_s)

    def on_end() -> None:
        if supervisor is not None:
            supervisor.disarm()
        session.request_stop()

    logger.info("streaming_started", session_id=initiated.id, path=str(path))
    play_task = asyncio.create_task(source.play(session.submit_chunk, on_end))
    if supervisor is not None:
        supervisor.start()

    wait_task = asyncio.create_task(session.wait_closed())
    try:
        done, _pending = await asyncio.wait(
            {play_task, wait_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if play_task in done and wait_task not in done:
            # Propaga falha de leitura do arquivo; fim normal segue aguardando o servidor
            play_task.result()
        return await wait_task
    finally:
        for task in (play_task, wait_task):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if supervisor is not None:
            supervisor.disarm()
        if not session.closed:
            await session.aclose()
