"""Configuracao do cliente: settings de ambiente e configuracao de streaming.

``ClientSettings`` e carregado de variaveis de ambiente. ``StreamingConfig``
e a configuracao estatica enviada ao servidor na negociacao.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from relive.exceptions import ConfigError, MissingAPIKeyError

if TYPE_CHECKING:
    from collections.abc import Mapping

API_KEY_ENV = "GLADIA_API_KEY"
DEFAULT_API_URL = "https://api.gladia.io"
DEFAULT_AUDIO_FILE = "data/anna-and-sasha-16000.wav"


class LanguageConfig(BaseModel):
    """Idiomas esperados no audio e se o servidor pode alternar entre eles."""

    model_config = ConfigDict(frozen=True)

    languages: list[str] = Field(default_factory=lambda: ["es", "ru", "en", "fr"])
    code_switching: bool = True


class StreamingConfig(BaseModel):
    """Configuracao de streaming mesclada no corpo da request de negociacao."""

    model_config = ConfigDict(frozen=True)

    language_config: LanguageConfig = LanguageConfig()

    def to_request_fields(self) -> dict[str, object]:
        return self.model_dump(mode="json")


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Parametros do cliente carregados de variaveis de ambiente.

    Atributos:
        api_key: Chave da API (GLADIA_API_KEY, obrigatoria).
        api_url: URL base do servico (RELIVE_API_URL).
        audio_file: Arquivo de audio usado quando a CLI nao recebe FILE
            (RELIVE_AUDIO_FILE).
        chunk_duration_ms: Duracao de cada chunk enviado (RELIVE_CHUNK_DURATION_MS).
        force_reconnect_interval_s: Intervalo da reconexao forcada; 0 desliga
            (RELIVE_FORCE_RECONNECT_INTERVAL_S).
        reconnect_delay_s: Espera antes de cada reconexao (RELIVE_RECONNECT_DELAY_S).
        reconnect_max_attempts: Limite de tentativas consecutivas; None = sem
            limite (RELIVE_RECONNECT_MAX_ATTEMPTS).

    Raises:
        ConfigError: Se algum valor estiver fora da faixa valida.
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    audio_file: Path = Path(DEFAULT_AUDIO_FILE)
    chunk_duration_ms: int = 100
    force_reconnect_interval_s: float = 10.0
    reconnect_delay_s: float = 1.0
    reconnect_max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.chunk_duration_ms <= 0:
            msg = f"RELIVE_CHUNK_DURATION_MS deve ser positivo, recebeu {self.chunk_duration_ms}"
            raise ConfigError(msg)
        if self.force_reconnect_interval_s < 0:
            msg = (
                "RELIVE_FORCE_RECONNECT_INTERVAL_S deve ser >= 0, "
                f"recebeu {self.force_reconnect_interval_s}"
            )
            raise ConfigError(msg)
        if self.reconnect_delay_s < 0:
            msg = f"RELIVE_RECONNECT_DELAY_S deve ser >= 0, recebeu {self.reconnect_delay_s}"
            raise ConfigError(msg)
        if self.reconnect_max_attempts is not None and self.reconnect_max_attempts < 1:
            msg = (
                "RELIVE_RECONNECT_MAX_ATTEMPTS deve ser >= 1, "
                f"recebeu {self.reconnect_max_attempts}"
            )
            raise ConfigError(msg)


def _parse_number(environ: Mapping[str, str], name: str, default: str, kind: type) -> object:
    raw = environ.get(name, default)
    try:
        return kind(raw)
    except ValueError as exc:
        msg = f"Valor invalido para {name}: {raw!r}"
        raise ConfigError(msg) from exc


def load_settings(environ: Mapping[str, str] | None = None) -> ClientSettings:
    """Carrega ClientSettings do ambiente.

    Args:
        environ: Mapeamento de variaveis (default: os.environ).

    Raises:
        MissingAPIKeyError: Se GLADIA_API_KEY estiver ausente ou vazia.
        ConfigError: Se algum valor numerico for invalido ou fora da faixa.
    """
    env = os.environ if environ is None else environ

    api_key = env.get(API_KEY_ENV, "").strip()
    if not api_key:
        raise MissingAPIKeyError(API_KEY_ENV)

    raw_max_attempts = env.get("RELIVE_RECONNECT_MAX_ATTEMPTS", "").strip()
    max_attempts = (
        _parse_number(env, "RELIVE_RECONNECT_MAX_ATTEMPTS", raw_max_attempts, int)
        if raw_max_attempts
        else None
    )

    return ClientSettings(
        api_key=api_key,
        api_url=env.get("RELIVE_API_URL", DEFAULT_API_URL).rstrip("/"),
        audio_file=Path(env.get("RELIVE_AUDIO_FILE", DEFAULT_AUDIO_FILE)).expanduser(),
        chunk_duration_ms=_parse_number(env, "RELIVE_CHUNK_DURATION_MS", "100", int),  # type: ignore[arg-type]
        force_reconnect_interval_s=_parse_number(  # type: ignore[arg-type]
            env, "RELIVE_FORCE_RECONNECT_INTERVAL_S", "10.0", float
        ),
        reconnect_delay_s=_parse_number(env, "RELIVE_RECONNECT_DELAY_S", "1.0", float),  # type: ignore[arg-type]
        reconnect_max_attempts=max_attempts,  # type: ignore[arg-type]
    )
