"""Exceptions tipadas do relive.

Hierarquia:
    ReliveError (base)
    +-- ConfigError
    |   +-- MissingAPIKeyError
    +-- AudioError
    |   +-- AudioFormatError
    +-- NegotiationError
    +-- SessionError
    |   +-- InvalidTransitionError
    |   +-- TransportError
    |   +-- ReconnectExhaustedError
    +-- ProtocolError
        +-- AcknowledgmentRegressionError
        +-- AcknowledgmentOverrunError
"""

from __future__ import annotations


class ReliveError(Exception):
    """Base para todas as exceptions do relive."""


# --- Configuracao ---


class ConfigError(ReliveError):
    """Erro de configuracao do cliente."""


class MissingAPIKeyError(ConfigError):
    """Variavel de ambiente com a API key ausente ou vazia."""

    def __init__(self, env_var: str) -> None:
        self.env_var = env_var
        super().__init__(f"API key nao encontrada: defina a variavel de ambiente {env_var}")


# --- Audio ---


class AudioError(ReliveError):
    """Erro relacionado ao arquivo de audio de entrada."""


class AudioFormatError(AudioError):
    """Formato de audio nao suportado ou arquivo invalido."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Formato de audio invalido: {detail}")


# --- Negociacao ---


class NegotiationError(ReliveError):
    """Falha ao iniciar a sessao ao vivo (HTTP nao-2xx ou erro de rede).

    Fatal: nenhuma sessao existe ainda, nao ha o que recuperar.
    """

    def __init__(self, status_code: int | None, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            msg = f"Falha na negociacao da sessao: {detail}"
        else:
            msg = f"Falha na negociacao da sessao (HTTP {status_code}): {detail}"
        super().__init__(msg)


# --- Sessao ---


class SessionError(ReliveError):
    """Erro relacionado a sessao de streaming."""


class InvalidTransitionError(SessionError):
    """Transicao de estado invalida na maquina de estados da sessao."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Transicao invalida: {from_state} -> {to_state}")


class TransportError(SessionError):
    """Falha de socket apos a negociacao.

    Recuperavel via protocolo de reconexao, exceto na primeira conexao.
    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Erro de transporte: {detail}")


class ReconnectExhaustedError(SessionError):
    """Politica de reconexao limitada esgotou as tentativas."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Reconexao abandonada apos {attempts} tentativas")


# --- Protocolo ---


class ProtocolError(ReliveError):
    """Mensagem do servidor viola o protocolo de streaming."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Erro de protocolo: {detail}")


class AcknowledgmentRegressionError(ProtocolError):
    """Offset de ack menor que o ultimo offset confirmado."""

    def __init__(self, offset: int, current: int) -> None:
        self.offset = offset
        self.current = current
        super().__init__(f"offset de ack regrediu: {offset} < {current}")


class AcknowledgmentOverrunError(ProtocolError):
    """Offset de ack alem do total de bytes submetidos."""

    def __init__(self, offset: int, submitted: int) -> None:
        self.offset = offset
        self.submitted = submitted
        super().__init__(f"offset de ack {offset} alem dos {submitted} bytes submetidos")
