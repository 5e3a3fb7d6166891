"""Testes do PendingAudioBuffer.

Cobre: append com offsets absolutos, trim por ack, ack repetido (no-op),
regressao e overrun rejeitados sem alterar estado, e a invariante
snapshot == submetido[acknowledged:] sob sequencias aleatorias.
"""

from __future__ import annotations

import random

import pytest

from relive.exceptions import (
    AcknowledgmentOverrunError,
    AcknowledgmentRegressionError,
    ProtocolError,
)
from relive.session.pending_buffer import PendingAudioBuffer


class TestAppend:
    def test_empty_buffer(self) -> None:
        buf = PendingAudioBuffer()
        assert len(buf) == 0
        assert not buf
        assert buf.total_submitted == 0
        assert buf.acknowledged_offset == 0
        assert buf.snapshot() == b""

    def test_append_returns_absolute_start_offset(self) -> None:
        buf = PendingAudioBuffer()
        assert buf.append(b"a" * 100) == 0
        assert buf.append(b"b" * 50) == 100
        assert buf.total_submitted == 150
        assert buf.pending_bytes == 150

    def test_snapshot_preserves_order(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"abc")
        buf.append(b"def")
        assert buf.snapshot() == b"abcdef"


class TestAcknowledge:
    def test_ack_trims_front(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"a" * 100)
        buf.append(b"b" * 50)

        trimmed = buf.acknowledge(100)

        assert trimmed == 100
        assert buf.acknowledged_offset == 100
        assert buf.snapshot() == b"b" * 50

    def test_ack_inside_chunk(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"0123456789")

        buf.acknowledge(4)

        assert buf.snapshot() == b"456789"

    def test_repeated_ack_is_noop(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"x" * 10)
        buf.acknowledge(6)

        assert buf.acknowledge(6) == 0
        assert buf.pending_bytes == 4

    def test_ack_everything_empties_buffer(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"x" * 10)
        buf.acknowledge(10)
        assert not buf
        assert buf.total_submitted == 10

    def test_regression_raises_and_keeps_state(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"x" * 10)
        buf.acknowledge(8)

        with pytest.raises(AcknowledgmentRegressionError) as exc_info:
            buf.acknowledge(5)

        assert exc_info.value.offset == 5
        assert exc_info.value.current == 8
        assert buf.acknowledged_offset == 8
        assert buf.pending_bytes == 2

    def test_overrun_raises_and_keeps_state(self) -> None:
        buf = PendingAudioBuffer()
        buf.append(b"x" * 10)

        with pytest.raises(AcknowledgmentOverrunError) as exc_info:
            buf.acknowledge(11)

        assert exc_info.value.submitted == 10
        assert buf.acknowledged_offset == 0
        assert buf.pending_bytes == 10

    def test_protocol_errors_share_base(self) -> None:
        buf = PendingAudioBuffer()
        with pytest.raises(ProtocolError):
            buf.acknowledge(1)


class TestInvariant:
    def test_snapshot_matches_unacknowledged_suffix(self) -> None:
        rng = random.Random(1234)
        buf = PendingAudioBuffer()
        submitted = bytearray()

        for _ in range(500):
            if rng.random() < 0.6:
                chunk = bytes(rng.randrange(256) for _ in range(rng.randint(1, 64)))
                buf.append(chunk)
                submitted.extend(chunk)
            else:
                offset = rng.randint(buf.acknowledged_offset, buf.total_submitted)
                buf.acknowledge(offset)

            assert buf.snapshot() == bytes(submitted[buf.acknowledged_offset :])
            assert buf.acknowledged_offset <= buf.total_submitted
