"""ForcedReconnectSupervisor — timer que forca reconexoes periodicas.

Fecha a conexao atual a cada ``interval_s`` para exercitar o caminho de
retomada em condicoes reais. Deve ser desarmado exatamente uma vez, quando
a fonte de audio termina, para nao sobreviver a sessao.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Protocol

from relive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger("session.supervisor")


class _Reconnectable(Protocol):
    def force_reconnect(self) -> None: ...


class ForcedReconnectSupervisor:
    """Dispara ``force_reconnect()`` periodicamente.

    Args:
        session: Sessao alvo.
        interval_s: Intervalo entre reconexoes forcadas (> 0).
        sleep: Funcao de espera (injetavel para testes).
    """

    def __init__(
        self,
        session: _Reconnectable,
        interval_s: float,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if interval_s <= 0:
            msg = f"interval_s deve ser positivo, recebeu {interval_s}"
            raise ValueError(msg)
        self._session = session
        self._interval_s = interval_s
        self._sleep = sleep or asyncio.sleep
        self._task: asyncio.Task[None] | None = None
        self._disarmed = False
        self._fired = 0

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fired(self) -> int:
        """Quantas reconexoes forcadas foram disparadas."""
        return self._fired

    def start(self) -> None:
        if self._task is not None or self._disarmed:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("forced_reconnect_armed", interval_s=self._interval_s)

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval_s)
            self._fired += 1
            self._session.force_reconnect()

    def disarm(self) -> bool:
        """Cancela o timer. Retorna False se ja estava desarmado."""
        if self._disarmed:
            return False
        self._disarmed = True
        if self._task is not None:
            self._task.cancel()
        logger.info("forced_reconnect_disarmed", fired=self._fired)
        return True

    async def wait_stopped(self) -> None:
        if self._task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
