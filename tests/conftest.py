"""Fixtures compartilhadas para todos os testes."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import numpy as np
import pytest
import soundfile as sf

from relive.exceptions import TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from pathlib import Path


def _write_tone(
    path: Path,
    *,
    sample_rate: int = 16000,
    duration_s: float = 1.0,
    channels: int = 1,
    subtype: str = "PCM_16",
) -> Path:
    """Escreve um tom de 440Hz no caminho dado."""
    n_samples = int(sample_rate * duration_s)
    t = np.arange(n_samples) / sample_rate
    tone = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
    if channels > 1:
        tone = np.repeat(tone[:, np.newaxis], channels, axis=1)
    sf.write(str(path), tone, sample_rate, subtype=subtype)
    return path


@pytest.fixture
def wav_16khz(tmp_path: Path) -> Path:
    """1 segundo de audio PCM 16-bit, 16kHz, mono."""
    return _write_tone(tmp_path / "sample_16khz.wav")


@pytest.fixture
def wav_stereo_8khz(tmp_path: Path) -> Path:
    """0.5 segundo de audio PCM 16-bit, 8kHz, estereo."""
    return _write_tone(tmp_path / "sample_stereo.wav", sample_rate=8000, duration_s=0.5, channels=2)


@pytest.fixture
def wav_24bit(tmp_path: Path) -> Path:
    """1 segundo de audio PCM 24-bit, 16kHz, mono."""
    return _write_tone(tmp_path / "sample_24bit.wav", subtype="PCM_24")


# ---------------------------------------------------------------------------
# Transporte fake
# ---------------------------------------------------------------------------


class FakeConnection:
    """Conexao em memoria que registra frames enviados e simula o servidor."""

    def __init__(self) -> None:
        self.sent: list[bytes | str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.closed_by_client_with: int | None = None
        self.fail_sends = False
        self._inbound: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def audio_frames(self) -> list[bytes]:
        return [frame for frame in self.sent if isinstance(frame, bytes)]

    @property
    def control_frames(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent if isinstance(frame, str)]

    @property
    def stop_frames(self) -> int:
        return sum(1 for frame in self.control_frames if frame == {"type": "stop_recording"})

    async def send(self, data: bytes | str) -> None:
        if self.close_code is not None or self.fail_sends:
            raise TransportError("conexao fechada")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.close_code is not None:
            return
        self.closed_by_client_with = code
        self.server_close(code, reason)

    def server_close(self, code: int, reason: str = "") -> None:
        """Simula o fechamento do socket (servidor ou queda de rede)."""
        if self.close_code is not None:
            return
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(None)

    def push(self, message: dict | str) -> None:
        """Entrega um frame inbound."""
        raw = json.dumps(message) if isinstance(message, dict) else message
        self._inbound.put_nowait(raw)

    def ack(self, end: int, start: int = 0) -> None:
        self.push(
            {
                "type": "audio_chunk",
                "acknowledged": True,
                "data": {"byte_range": [start, end], "time_range": [0.0, 0.0]},
            }
        )

    def ack_stop(self) -> None:
        self.push({"type": "stop_recording", "acknowledged": True})

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._inbound.get()
            if item is None:
                return
            yield item


class FakeConnector:
    """Connector que cria FakeConnections e pode falhar ou segurar tentativas."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self.failures: list[Exception] = []
        self._gate = asyncio.Event()
        self._gate.set()

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]

    def hold(self) -> None:
        """Novas tentativas ficam pendentes ate release()."""
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        await self._gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condicao nao atingida dentro do timeout"
            raise AssertionError(msg)
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_until() -> Callable[..., object]:
    """Aguarda ate o predicado ser verdadeiro (polling no event loop)."""
    return _wait_until
