from __future__ import annotations

from typing import Sequence

import numpy as np

from baselinemode.telemetry.frames import FRAME_HEX_LENGTH, MARKER
from baselinemode.telemetry.processing import CHANNELS, VOLTAGE_FACTOR, SampleRecord

HEX = np.array(list("0123456789ABCDEF"))


def make_frame(seed: int = 0) -> str:
    """A synthetic frame: the marker followed by random hex digits."""

    rng = np.random.default_rng(seed)
    return MARKER + "".join(rng.choice(HEX, size=FRAME_HEX_LENGTH - len(MARKER)))


def make_record(layer_values: Sequence[float], *, sequence: int = 0, index: int = 1) -> SampleRecord:
    """A record whose L1 (group A) carries *layer_values*; other layers are zero."""

    values = tuple(int(v) for v in layer_values)
    zeros = (0,) * CHANNELS
    volts = tuple(v * VOLTAGE_FACTOR for v in values)
    zero_volts = (0.0,) * CHANNELS
    return SampleRecord(
        packet_sequence=sequence,
        sample_index=index,
        group_a=values,
        group_b=zeros,
        group_c=zeros,
        group_d=zeros,
        voltage_a=volts,
        voltage_b=zero_volts,
        voltage_c=zero_volts,
        voltage_d=zero_volts,
    )


