"""AudioFileSource — le um arquivo de audio e o entrega em chunks PCM.

Decodifica via libsndfile (soundfile) e emite os bytes PCM intercalados
na cadencia de tempo real, simulando um microfone. Cada chamada a
``iter_chunks()`` recomeca do inicio do arquivo.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import soundfile as sf

from relive._types import AudioFormat
from relive.exceptions import AudioFormatError
from relive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator
    from pathlib import Path

logger = get_logger("audio.source")

# Encoding declarado ao servidor: sempre PCM cru apos decodificacao
_ENCODING = "wav/pcm"

# subtype libsndfile -> (dtype numpy de leitura, bit depth enviado)
# Subtypes fora do mapa sao transcodificados para PCM 16-bit.
_SUBTYPE_DTYPES: dict[str, tuple[str, int]] = {
    "PCM_16": ("int16", 16),
    "PCM_32": ("int32", 32),
}
_DEFAULT_DTYPE = ("int16", 16)


def _resolve_dtype(subtype: str) -> tuple[str, int]:
    return _SUBTYPE_DTYPES.get(subtype, _DEFAULT_DTYPE)


def detect_audio_format(path: Path) -> AudioFormat:
    """Detecta sample rate, canais e bit depth do arquivo.

    Args:
        path: Caminho do arquivo de audio.

    Returns:
        AudioFormat descrevendo o PCM que sera enviado.

    Raises:
        AudioFormatError: Se o arquivo nao existe ou nao pode ser decodificado.
    """
    audio_format, _dtype = _probe(path)
    return audio_format


def _probe(path: Path) -> tuple[AudioFormat, str]:
    """Le os metadados uma unica vez: formato enviado e dtype de leitura."""
    if not path.exists():
        raise AudioFormatError(f"arquivo nao encontrado: {path}")

    try:
        info = sf.info(str(path))
    except RuntimeError as exc:
        raise AudioFormatError(f"nao foi possivel ler {path}: {exc}") from exc

    dtype, bit_depth = _resolve_dtype(info.subtype)
    audio_format = AudioFormat(
        encoding=_ENCODING,
        sample_rate=int(info.samplerate),
        bit_depth=bit_depth,
        channels=int(info.channels),
    )
    logger.debug(
        "audio_format_detected",
        path=str(path),
        subtype=info.subtype,
        sample_rate=audio_format.sample_rate,
        channels=audio_format.channels,
        bit_depth=audio_format.bit_depth,
    )
    return audio_format, dtype


class AudioFileSource:
    """Fonte de audio finita lida de arquivo, em cadencia de tempo real.

    Args:
        path: Caminho do arquivo de audio.
        chunk_duration_ms: Duracao de audio em cada chunk (default: 100ms).
        sleep: Funcao de espera entre chunks (injetavel para testes).
    """

    def __init__(
        self,
        path: Path,
        chunk_duration_ms: int = 100,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if chunk_duration_ms <= 0:
            msg = f"chunk_duration_ms deve ser positivo, recebeu {chunk_duration_ms}"
            raise ValueError(msg)
        self._path = path
        self._chunk_duration_ms = chunk_duration_ms
        self._sleep = sleep or asyncio.sleep
        self._format, self._dtype = _probe(path)

    @property
    def audio_format(self) -> AudioFormat:
        return self._format

    @property
    def chunk_size_frames(self) -> int:
        """Frames (amostras por canal) em cada chunk."""
        return max(1, self._format.sample_rate * self._chunk_duration_ms // 1000)

    def iter_chunks(self) -> Iterator[bytes]:
        """Gera os chunks PCM intercalados do inicio ao fim do arquivo."""
        for block in sf.blocks(
            str(self._path),
            blocksize=self.chunk_size_frames,
            dtype=self._dtype,
        ):
            if len(block) == 0:
                continue
            yield block.tobytes()

    async def play(
        self,
        on_chunk: Callable[[bytes], None],
        on_end: Callable[[], None],
    ) -> int:
        """Entrega cada chunk a ``on_chunk`` na cadencia de tempo real.

        ``on_end`` e chamado exatamente uma vez, apos o ultimo chunk.

        Returns:
            Total de bytes entregues.
        """
        interval_s = self._chunk_duration_ms / 1000.0
        total = 0
        chunks = 0
        for chunk in self.iter_chunks():
            on_chunk(chunk)
            total += len(chunk)
            chunks += 1
            await self._sleep(interval_s)

        logger.info("audio_source_finished", path=str(self._path), chunks=chunks, bytes=total)
        on_end()
        return total
