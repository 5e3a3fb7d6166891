"""Negociacao da sessao ao vivo — POST unico que devolve o endpoint WebSocket.

Nunca encerra o processo: falhas viram ``NegotiationError`` e o driver
decide o que fazer (a CLI sai com o status HTTP).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from relive.exceptions import NegotiationError
from relive.logging import get_logger

if TYPE_CHECKING:
    from relive._types import AudioFormat
    from relive.config import StreamingConfig

logger = get_logger("client.negotiation")

LIVE_ENDPOINT = "/v2/live"
API_KEY_HEADER = "X-Gladia-Key"


class InitiateResponse(BaseModel):
    """Resposta da negociacao: URL do WebSocket e identidade da sessao."""

    model_config = ConfigDict(frozen=True, extra="allow")

    url: str
    id: str | None = None


def build_request_body(
    audio_format: AudioFormat,
    streaming_config: StreamingConfig,
) -> dict[str, object]:
    """Mescla metadados do audio com a configuracao de streaming."""
    return {
        **audio_format.to_request_fields(),
        **streaming_config.to_request_fields(),
    }


async def negotiate_session(
    api_url: str,
    api_key: str,
    audio_format: AudioFormat,
    streaming_config: StreamingConfig,
    *,
    client: httpx.AsyncClient | None = None,
    timeout_s: float = 30.0,
) -> InitiateResponse:
    """Inicia uma sessao ao vivo e retorna o endpoint de streaming.

    Args:
        api_url: URL base do servico (sem barra final).
        api_key: Chave da API enviada no header ``X-Gladia-Key``.
        audio_format: Metadados do audio que sera transmitido.
        streaming_config: Configuracao estatica de idiomas.
        client: Cliente httpx reutilizavel (default: cliente efemero).
        timeout_s: Timeout da request.

    Returns:
        InitiateResponse com ``url`` e campos da sessao.

    Raises:
        NegotiationError: Resposta nao-2xx, falha de rede ou corpo invalido.
    """
    url = f"{api_url}{LIVE_ENDPOINT}"
    body = build_request_body(audio_format, streaming_config)
    headers = {"Content-Type": "application/json", API_KEY_HEADER: api_key}

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout_s)
    try:
        response = await http.post(url, json=body, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("negotiation_request_failed", url=url, error=str(exc))
        raise NegotiationError(None, str(exc)) from exc
    finally:
        if owns_client:
            await http.aclose()

    if not response.is_success:
        detail = response.text or response.reason_phrase
        logger.error(
            "negotiation_failed",
            url=url,
            status_code=response.status_code,
            detail=detail[:500],
        )
        raise NegotiationError(response.status_code, detail)

    try:
        session = InitiateResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        logger.error("negotiation_invalid_body", status_code=response.status_code)
        raise NegotiationError(response.status_code, f"resposta invalida: {exc}") from exc

    logger.info("session_negotiated", session_id=session.id, status_code=response.status_code)
    return session
