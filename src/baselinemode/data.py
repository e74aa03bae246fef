"""Tabular views of decoded records and the per-layer mean sidecar files."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from .telemetry.processing import CHANNELS, LAYERS, SampleRecord

MEAN_FILE_TEMPLATE = "MeanValues{layer_id}.txt"


def channel_columns(layer: str) -> list[str]:
    return [f"{layer} CH{index}" for index in range(1, CHANNELS + 1)]


def records_to_dataframe(records: Sequence[SampleRecord], *, voltage: bool = False) -> pd.DataFrame:
    """Flatten records into one row per sample, in decode order."""

    columns = ["packet_sequence", "sample_index"]
    for layer in LAYERS:
        columns.extend(channel_columns(layer))

    rows = []
    for record in records:
        row: list[float] = [record.packet_sequence, record.sample_index]
        for layer in LAYERS:
            row.extend(record.layer_voltage(layer) if voltage else record.layer(layer))
        rows.append(row)
    df = pd.DataFrame(rows, columns=columns)
    if not voltage and not df.empty:
        df = df.astype("int64")
    return df


def layer_matrix(records: Sequence[SampleRecord], layer: str) -> np.ndarray:
    """Return a (len(records), 16) array of raw values for *layer*."""

    if not records:
        return np.zeros((0, CHANNELS), dtype=float)
    return np.array([record.layer(layer) for record in records], dtype=float)


def layer_means(records: Sequence[SampleRecord], layer: str) -> np.ndarray:
    matrix = layer_matrix(records, layer)
    if matrix.shape[0] == 0:
        return np.zeros(CHANNELS, dtype=float)
    return matrix.mean(axis=0)


def mean_values_path(directory: Path | str, layer: str) -> Path:
    layer = layer.upper()
    if layer not in LAYERS:
        raise ValueError(f"Unknown layer '{layer}', expected one of {list(LAYERS)}")
    return Path(directory) / MEAN_FILE_TEMPLATE.format(layer_id=layer[1:])


def write_mean_values(records: Sequence[SampleRecord], directory: Path | str) -> list[Path]:
    """Write one MeanValues<N>.txt per layer: 16 lines, two decimals, no header."""

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for layer in LAYERS:
        path = mean_values_path(directory, layer)
        lines = [f"{value:.2f}" for value in layer_means(records, layer)]
        path.write_text("\n".join(lines), encoding="utf-8")
        written.append(path)
    return written


def read_mean_values(path: Path | str) -> np.ndarray:
    """Load a MeanValues sidecar.

    Parameters
    ----------
    path:
        Text file holding one decimal number per line.

    Returns
    -------
    numpy.ndarray
        16 channel means; channels without a line default to 0.0.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    means = np.zeros(CHANNELS, dtype=float)
    lines = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
    for index, line in enumerate(lines[:CHANNELS]):
        if not line:
            continue
        try:
            means[index] = float(line)
        except ValueError as exc:
            raise ValueError(f"{path.name}: line {index + 1} is not a number: {line!r}") from exc
    return means
