"""Grupo principal de comandos CLI do relive."""

from __future__ import annotations

import click

import relive


@click.group()
@click.version_option(version=relive.__version__, prog_name="relive")
def cli() -> None:
    """relive — transcricao ao vivo de arquivos com retomada apos queda de conexao."""
