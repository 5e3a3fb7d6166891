"""Modelos Pydantic e decoder das mensagens do WebSocket de transcricao ao vivo.

Frames inbound sao objetos JSON com discriminador ``type``. O decoder
retorna o evento tipado ou ``None`` para mensagens malformadas, que sao
logadas e descartadas sem afetar o estado da sessao.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from relive.logging import get_logger

logger = get_logger("client.messages")

# ---------------------------------------------------------------------------
# Client -> Server
# ---------------------------------------------------------------------------


class StopRecordingCommand(BaseModel):
    """Sinaliza fim do audio; o servidor finaliza e encerra a sessao."""

    model_config = ConfigDict(frozen=True)

    type: Literal["stop_recording"] = "stop_recording"

    def to_frame(self) -> str:
        return self.model_dump_json()


# ---------------------------------------------------------------------------
# Server -> Client
# ---------------------------------------------------------------------------


class AudioChunkData(BaseModel):
    model_config = ConfigDict(frozen=True)

    byte_range: tuple[int, int]
    time_range: tuple[float, float] | None = None


class AudioChunkEvent(BaseModel):
    """Confirmacao (ou rejeicao) de recebimento de um trecho de audio."""

    model_config = ConfigDict(frozen=True)

    type: Literal["audio_chunk"] = "audio_chunk"
    acknowledged: bool
    data: AudioChunkData | None = None
    error: Any = None

    @property
    def byte_range_end(self) -> int | None:
        """Offset absoluto (exclusivo) ate onde o audio foi confirmado."""
        if self.data is None:
            return None
        return self.data.byte_range[1]


class Utterance(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    start: float
    end: float
    language: str | None = None
    confidence: float | None = None


class TranscriptData(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    is_final: bool
    utterance: Utterance


class PartialTranscriptEvent(BaseModel):
    """Hipotese intermediaria de transcricao (pode mudar)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["transcript"] = "transcript"
    data: TranscriptData

    @property
    def utterance(self) -> Utterance:
        return self.data.utterance


class FinalTranscriptEvent(BaseModel):
    """Utterance confirmada (nao muda)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["transcript"] = "transcript"
    data: TranscriptData

    @property
    def utterance(self) -> Utterance:
        return self.data.utterance


class StopRecordingAckEvent(BaseModel):
    """Servidor confirmou o stop_recording; a sessao entra na fase terminal."""

    model_config = ConfigDict(frozen=True)

    type: Literal["stop_recording"] = "stop_recording"
    acknowledged: bool = True
    error: Any = None


class SessionEndedEvent(BaseModel):
    """Servidor encerrou a sessao."""

    model_config = ConfigDict(frozen=True)

    type: Literal["end_session"] = "end_session"


class ServerErrorEvent(BaseModel):
    """Erro reportado pelo servidor."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    message: str = "erro desconhecido"
    code: str | int | None = None


class LifecycleEvent(BaseModel):
    """Evento de ciclo de vida sem efeito no estado (start_session, post_transcript, ...)."""

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] | None = Field(default=None)


ServerMessage = (
    AudioChunkEvent
    | PartialTranscriptEvent
    | FinalTranscriptEvent
    | StopRecordingAckEvent
    | SessionEndedEvent
    | ServerErrorEvent
    | LifecycleEvent
)

# Mapeamento de type -> classe de evento (transcript e resolvido por is_final)
_EVENT_TYPES: dict[str, type[BaseModel]] = {
    "audio_chunk": AudioChunkEvent,
    "stop_recording": StopRecordingAckEvent,
    "end_session": SessionEndedEvent,
    "error": ServerErrorEvent,
}

_LIFECYCLE_TYPES = frozenset(
    {
        "start_session",
        "start_recording",
        "end_recording",
        "speech_start",
        "speech_end",
        "post_transcript",
        "post_final_transcript",
        "post_chapterization",
        "post_summarization",
        "translation",
        "named_entity_recognition",
        "sentiment_analysis",
    }
)


def decode_message(raw: str | bytes) -> ServerMessage | None:
    """Decodifica um frame inbound em evento tipado.

    Fluxo:
        1. Deserializa JSON.
        2. Extrai campo ``type``.
        3. Valida contra o modelo Pydantic correto.

    Returns:
        O evento, ou ``None`` se o frame e malformado ou de tipo desconhecido.
    """
    # 1. Parse JSON
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("malformed_json", error=str(exc), raw=_preview(raw))
        return None

    if not isinstance(data, dict):
        logger.warning("invalid_message_format", raw=_preview(raw))
        return None

    # 2. Extrair type
    message_type = data.get("type")
    if not isinstance(message_type, str):
        logger.warning("missing_type_field", data_keys=list(data.keys()))
        return None

    # 3. Validar
    try:
        if message_type == "transcript":
            transcript = TranscriptData.model_validate(data.get("data"))
            if transcript.is_final:
                return FinalTranscriptEvent(data=transcript)
            return PartialTranscriptEvent(data=transcript)

        event_class = _EVENT_TYPES.get(message_type)
        if event_class is not None:
            return event_class.model_validate(data)  # type: ignore[return-value]

        if message_type in _LIFECYCLE_TYPES:
            payload = data.get("data")
            return LifecycleEvent(
                type=message_type,
                data=payload if isinstance(payload, dict) else None,
            )
    except ValidationError as exc:
        logger.warning(
            "message_validation_failed",
            message_type=message_type,
            errors=exc.error_count(),
        )
        return None

    logger.warning("unknown_message_type", message_type=message_type)
    return None


def _preview(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        return raw[:200].decode("utf-8", errors="replace")
    return raw[:200]
