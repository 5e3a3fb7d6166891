"""Structured logging para o relive.

Usa structlog com stdlib logging como backend. Logs vao para stderr para
nao se misturar com as transcricoes impressas em stdout. Dois formatos:
- console: legivel para desenvolvimento (default)
- json: estruturado para coleta
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

_configured = False

# Bibliotecas de transporte que logam cada frame/request em DEBUG/INFO
_NOISY_LOGGERS = ("websockets", "httpx", "httpcore")


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
) -> None:
    """Configura logging estruturado do cliente.

    Idempotente: chamadas subsequentes sao ignoradas.

    Args:
        log_format: "json" ou "console". Default via RELIVE_LOG_FORMAT env ou "console".
        level: Nivel de log (DEBUG, INFO, WARNING, ERROR). Default via RELIVE_LOG_LEVEL
            env ou "INFO".
    """
    global _configured
    if _configured:
        return

    resolved_format = log_format or os.environ.get("RELIVE_LOG_FORMAT", "console")
    resolved_level = level or os.environ.get("RELIVE_LOG_LEVEL", "INFO")

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # Logs de websockets/httpx chegam pelo stdlib sem os processors do structlog
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, resolved_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Retorna logger com contexto de componente.

    Args:
        component: Nome do componente (ex: "session.resumable", "client.negotiation").

    Returns:
        BoundLogger com campo component vinculado.
    """
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]
