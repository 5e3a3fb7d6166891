"""Renderizacao das mensagens do servidor para o terminal.

Sem estado: cada mensagem vira zero ou uma linha.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from relive.client.messages import (
    AudioChunkEvent,
    FinalTranscriptEvent,
    LifecycleEvent,
    PartialTranscriptEvent,
    ServerErrorEvent,
    SessionEndedEvent,
    StopRecordingAckEvent,
)

if TYPE_CHECKING:
    from relive.client.messages import ServerMessage


def format_timestamp(seconds: float) -> str:
    """Formata segundos como ``mm:ss.fff``."""
    millis = max(0, round(seconds * 1000))
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{minutes:02d}:{secs:02d}.{millis:03d}"


def _banner(label: str) -> str:
    return f"#### {label} ####"


def format_message(message: ServerMessage) -> str | None:
    """Converte uma mensagem em linha de texto, ou None se nao ha o que mostrar."""
    if isinstance(message, PartialTranscriptEvent):
        return f"  ... {message.utterance.text.strip()}"

    if isinstance(message, FinalTranscriptEvent):
        utterance = message.utterance
        start = format_timestamp(utterance.start)
        end = format_timestamp(utterance.end)
        language = utterance.language or "??"
        return f"{start} --> {end} | {language} | {utterance.text.strip()}"

    if isinstance(message, AudioChunkEvent):
        # Acks sao contabilidade interna
        return None

    if isinstance(message, ServerErrorEvent):
        return f"[error] {message.message}"

    if isinstance(message, (StopRecordingAckEvent, SessionEndedEvent)):
        return _banner(message.type)

    if isinstance(message, LifecycleEvent):
        if message.type == "post_final_transcript" and message.data:
            transcription = message.data.get("transcription") or {}
            full = transcription.get("full_transcript")
            if full:
                return f"{_banner('full transcript')}\n{full}"
        return _banner(message.type)

    return None


def present_message(message: ServerMessage) -> None:
    """Imprime a mensagem; erros vao para stderr."""
    line = format_message(message)
    if line is None:
        return
    click.echo(line, err=isinstance(message, ServerErrorEvent))
