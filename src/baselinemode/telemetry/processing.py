from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

VOLTAGE_FACTOR = (5.0 / 16383.0) * 1000.0  # mV per ADC count, 14-bit full scale
SAMPLES_PER_FRAME = 15
CHANNELS = 16
LAYERS = ("L1", "L2", "L6", "L7")

SEQUENCE_OFFSET = 32  # hex chars, i.e. frame bytes 16-17
AB_OFFSET = 18
CD_OFFSET = 978
SAMPLE_STRIDE = 128  # hex chars between sample indices
BLOCK_BYTES = 64

_HEX_VALUES = {char: int(char, 16) for char in "0123456789abcdefABCDEF"}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleRecord:
    """One decoded measurement: 4 layers x 16 channels, raw and in millivolts."""

    packet_sequence: int
    sample_index: int
    group_a: Tuple[int, ...]
    group_b: Tuple[int, ...]
    group_c: Tuple[int, ...]
    group_d: Tuple[int, ...]
    voltage_a: Tuple[float, ...]
    voltage_b: Tuple[float, ...]
    voltage_c: Tuple[float, ...]
    voltage_d: Tuple[float, ...]

    def layer(self, name: str) -> Tuple[int, ...]:
        return getattr(self, f"group_{_layer_suffix(name)}")

    def layer_voltage(self, name: str) -> Tuple[float, ...]:
        return getattr(self, f"voltage_{_layer_suffix(name)}")


def _layer_suffix(name: str) -> str:
    try:
        return "abcd"[LAYERS.index(name.upper())]
    except ValueError:
        raise ValueError(f"Unknown layer '{name}', expected one of {list(LAYERS)}") from None


def _hex_byte(text: str, pos: int) -> int:
    return _HEX_VALUES.get(text[pos], 0) * 16 + _HEX_VALUES.get(text[pos + 1], 0)


def decode_hex_block(text: str, offset: int, byte_count: int) -> Optional[bytes]:
    """Decode *byte_count* bytes starting at hex position *offset*.

    Returns None when the block runs past the end of *text*. Characters that
    are not hex digits decode as 0.
    """

    end = offset + byte_count * 2
    if offset < 0 or end > len(text):
        return None
    window = text[offset:end]
    try:
        block = bytes.fromhex(window)
    except ValueError:
        block = b""
    if len(block) != byte_count:
        # fromhex also skips spaces; fall back to per-digit lookup
        block = bytes(_hex_byte(window, i * 2) for i in range(byte_count))
    return block


def packet_sequence(frame_hex: str) -> int:
    if len(frame_hex) < SEQUENCE_OFFSET + 4:
        return 0
    return (_hex_byte(frame_hex, SEQUENCE_OFFSET) << 8) | _hex_byte(frame_hex, SEQUENCE_OFFSET + 2)


def _split_block(block: bytes) -> Tuple[np.ndarray, np.ndarray]:
    # bytes 0..31 -> first 16 channels, bytes 32..63 -> second 16 channels
    values = np.frombuffer(block, dtype=">u2").astype(np.int64)
    return values[:CHANNELS], values[CHANNELS : 2 * CHANNELS]


def _voltages(values: np.ndarray) -> Tuple[float, ...]:
    return tuple(float(v) for v in values * VOLTAGE_FACTOR)


def extract_samples(frame_hex: str) -> List[SampleRecord]:
    """Decode the 15 sample records held by one frame."""

    sequence = packet_sequence(frame_hex)
    records: List[SampleRecord] = []
    for i in range(SAMPLES_PER_FRAME):
        ab = decode_hex_block(frame_hex, AB_OFFSET + SAMPLE_STRIDE * i, BLOCK_BYTES)
        cd = decode_hex_block(frame_hex, CD_OFFSET + SAMPLE_STRIDE * i, BLOCK_BYTES)
        if ab is None or cd is None:
            logger.debug("Sample %d of packet %d out of range, skipping", i + 1, sequence)
            continue
        group_a, group_b = _split_block(ab)
        group_c, group_d = _split_block(cd)
        records.append(
            SampleRecord(
                packet_sequence=sequence,
                sample_index=i + 1,
                group_a=tuple(int(v) for v in group_a),
                group_b=tuple(int(v) for v in group_b),
                group_c=tuple(int(v) for v in group_c),
                group_d=tuple(int(v) for v in group_d),
                voltage_a=_voltages(group_a),
                voltage_b=_voltages(group_b),
                voltage_c=_voltages(group_c),
                voltage_d=_voltages(group_d),
            )
        )
    return records
