from __future__ import annotations

import numpy as np
import pytest

from baselinemode.telemetry.processing import (
    VOLTAGE_FACTOR,
    decode_hex_block,
    extract_samples,
    packet_sequence,
)

from builders import make_frame


def _word(frame: str, pos: int) -> int:
    return int(frame[pos : pos + 4], 16)


def test_samples_follow_fixed_offsets(frame: str) -> None:
    records = extract_samples(frame)
    assert len(records) == 15
    for i, record in enumerate(records):
        ab = 18 + 128 * i
        cd = 978 + 128 * i
        assert record.sample_index == i + 1
        assert record.group_a == tuple(_word(frame, ab + 4 * c) for c in range(16))
        assert record.group_b == tuple(_word(frame, ab + 64 + 4 * c) for c in range(16))
        assert record.group_c == tuple(_word(frame, cd + 4 * c) for c in range(16))
        assert record.group_d == tuple(_word(frame, cd + 64 + 4 * c) for c in range(16))


def test_packet_sequence_read_from_header(frame: str) -> None:
    assert packet_sequence(frame) == int(frame[32:36], 16)
    assert all(r.packet_sequence == int(frame[32:36], 16) for r in extract_samples(frame))


def test_voltage_matches_raw_values() -> None:
    record = extract_samples(make_frame(11))[4]
    for raw, mv in zip(record.group_c, record.voltage_c):
        assert mv == raw * VOLTAGE_FACTOR
    assert np.isclose(16383 * VOLTAGE_FACTOR, 5000.0)


def test_layer_accessors(frame: str) -> None:
    record = extract_samples(frame)[0]
    assert record.layer("L1") == record.group_a
    assert record.layer("l6") == record.group_c
    assert record.layer_voltage("L7") == record.voltage_d
    with pytest.raises(ValueError):
        record.layer("L3")


def test_invalid_hex_digit_decodes_as_zero() -> None:
    assert decode_hex_block("0G10", 0, 2) == bytes([0x00, 0x10])
    assert decode_hex_block("12 4", 0, 2) == bytes([0x12, 0x04])


def test_block_past_end_is_none() -> None:
    assert decode_hex_block("ABCD", 2, 2) is None


def test_short_frame_skips_missing_samples(frame: str) -> None:
    records = extract_samples(frame[:2000])
    # CD blocks end at 978 + 128 * i + 128; only samples with that <= 2000 survive
    assert len(records) == 7
