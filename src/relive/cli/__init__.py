"""CLI do relive.

Registra todos os comandos no grupo principal.
"""

from relive.cli.main import cli
from relive.cli.stream import stream

__all__ = [
    "cli",
    "stream",
]
