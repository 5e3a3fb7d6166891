"""Comando `relive stream` — transmite um arquivo para transcricao ao vivo."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from relive.cli.main import cli
from relive.config import load_settings
from relive.exceptions import (
    AudioError,
    ConfigError,
    NegotiationError,
    ProtocolError,
    SessionError,
)
from relive.runner import run_live_session

_EXIT_INTERRUPTED = 130


@cli.command()
@click.argument(
    "file",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
    default=None,
)
def stream(file: Path | None) -> None:
    """Transmite um arquivo de audio para transcricao ao vivo.

    Sem FILE, usa o arquivo configurado em RELIVE_AUDIO_FILE. A conexao e
    derrubada periodicamente de proposito para validar a retomada.
    """
    try:
        settings = load_settings()
    except ConfigError as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)

    click.echo("\n################ Begin session ################\n")

    try:
        asyncio.run(run_live_session(settings, file))
    except NegotiationError as exc:
        status = exc.status_code if exc.status_code is not None else "rede"
        click.echo(f"Erro ({status}): {exc.detail}", err=True)
        sys.exit(exc.status_code or 1)
    except (AudioError, ConfigError) as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)
    except (SessionError, ProtocolError) as exc:
        click.echo(f"Erro: {exc}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\n\nSessao interrompida.")
        sys.exit(_EXIT_INTERRUPTED)

    click.echo("\n################ End of session ################\n")
