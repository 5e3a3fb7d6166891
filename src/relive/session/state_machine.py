"""SessionStateMachine — maquina de estados da sessao de streaming retomavel.

Componente puro e sincrono: nao conhece WebSocket nem asyncio. O caller
(ResumableStreamSession) e responsavel por chamar transition() nos
momentos corretos.

Estados:
    NEGOTIATING -> CONNECTING -> OPEN -> (CLOSING | ABRUPTLY_CLOSED)
    ABRUPTLY_CLOSED -> CONNECTING (reconexao) | TERMINATED

Regras:
- TERMINATED e FATAL_ABORTED sao terminais: nenhuma transicao a partir deles.
- Qualquer estado nao-terminal pode ir para FATAL_ABORTED.
- Transicoes invalidas levantam InvalidTransitionError.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from relive._types import SessionState
from relive.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Callable

# Transicoes validas: {estado_atual: {estados_alvo_permitidos}}
_VALID_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.NEGOTIATING: frozenset({SessionState.CONNECTING, SessionState.FATAL_ABORTED}),
    SessionState.CONNECTING: frozenset(
        {
            SessionState.OPEN,
            SessionState.ABRUPTLY_CLOSED,
            SessionState.TERMINATED,
            SessionState.FATAL_ABORTED,
        }
    ),
    SessionState.OPEN: frozenset(
        {
            SessionState.CLOSING,
            SessionState.ABRUPTLY_CLOSED,
            SessionState.TERMINATED,
            SessionState.FATAL_ABORTED,
        }
    ),
    SessionState.CLOSING: frozenset(
        {SessionState.ABRUPTLY_CLOSED, SessionState.TERMINATED, SessionState.FATAL_ABORTED}
    ),
    SessionState.ABRUPTLY_CLOSED: frozenset(
        {SessionState.CONNECTING, SessionState.TERMINATED, SessionState.FATAL_ABORTED}
    ),
    SessionState.TERMINATED: frozenset(),
    SessionState.FATAL_ABORTED: frozenset(),
}

_TERMINAL_STATES = frozenset({SessionState.TERMINATED, SessionState.FATAL_ABORTED})


class SessionStateMachine:
    """Maquina de estados para a sessao de streaming retomavel.

    Args:
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._state = SessionState.NEGOTIATING
        self._clock = clock or time.monotonic
        self._state_entered_at = self._clock()

    @property
    def state(self) -> SessionState:
        """Estado atual da sessao."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in _TERMINAL_STATES

    @property
    def elapsed_in_state_ms(self) -> int:
        """Tempo (em milissegundos) que a sessao esta no estado atual."""
        elapsed_s = self._clock() - self._state_entered_at
        return int(elapsed_s * 1000)

    def can_transition(self, target: SessionState) -> bool:
        return target in _VALID_TRANSITIONS[self._state]

    def transition(self, target: SessionState) -> int:
        """Transita para o estado alvo.

        Args:
            target: Estado alvo da transicao.

        Returns:
            Tempo (ms) passado no estado anterior.

        Raises:
            InvalidTransitionError: Se a transicao e invalida.
        """
        if target not in _VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, target.value)

        elapsed_ms = self.elapsed_in_state_ms
        self._state = target
        self._state_entered_at = self._clock()
        return elapsed_ms
