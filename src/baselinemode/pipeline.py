"""High level orchestration: decoded records -> per-channel histograms -> fits."""
from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import BaselineMode, FitConfig, XAxis
from .data import layer_matrix
from .kalman import KalmanFilter
from .metrics import ChannelStatistics, calculate_moments, summarize
from .models import FitResult, fit_curve
from .telemetry.processing import CHANNELS, SampleRecord, VOLTAGE_FACTOR

logger = logging.getLogger(__name__)

HISTOGRAM_MIN = 0.0
HISTOGRAM_MAX = 16383.0
HISTOGRAM_BINS = 16383
MIN_FIT_VALUES = 5
COINCIDENCE_SIZE = CHANNELS // 2


class ChannelStatus(str, enum.Enum):
    OK = "ok"
    NO_DATA = "no data"
    NO_SIGNAL = "no signal"
    CANCELLED = "cancelled"


@dataclass
class ChannelAnalysis:
    channel: int
    status: ChannelStatus
    bin_centers: np.ndarray = field(default_factory=lambda: np.zeros(0))
    counts: np.ndarray = field(default_factory=lambda: np.zeros(0))
    fit: Optional[FitResult] = None
    statistics: Optional[ChannelStatistics] = None
    values_used: int = 0

    @property
    def label(self) -> str:
        return f"CH{self.channel + 1}"


@dataclass(frozen=True)
class AnalysisResult:
    layer: str
    record_count: int
    channels: List[ChannelAnalysis]
    coincidence: np.ndarray
    config: FitConfig
    cancelled: bool = False

    def statistics_frame(self) -> pd.DataFrame:
        rows = []
        for analysis in self.channels:
            stats = analysis.statistics
            fit = analysis.fit
            rows.append(
                {
                    "channel": analysis.label,
                    "status": analysis.status.value,
                    "values": analysis.values_used,
                    "centroid": stats.centroid if stats else np.nan,
                    "sigma": stats.sigma if stats else np.nan,
                    "peak": stats.peak if stats else np.nan,
                    "fwhm": stats.fwhm if stats else np.nan,
                    "resolution_pct": stats.resolution if stats else np.nan,
                    "rms": fit.rms if fit else np.nan,
                    "iterations": fit.iterations if fit else 0,
                    "converged": fit.converged if fit else False,
                }
            )
        return pd.DataFrame(rows)


def channel_values(records: Sequence[SampleRecord], layer: str, channel: int) -> np.ndarray:
    return np.array([record.layer(layer)[channel] for record in records], dtype=float)


def apply_threshold(centered: np.ndarray, k_factor: float) -> np.ndarray:
    """Keep values strictly above ``k_factor * sigma``, sigma being the RMS of *centered*."""

    centered = np.asarray(centered, dtype=float)
    if centered.size == 0:
        return centered
    sigma = float(np.sqrt(np.mean(centered * centered)))
    return centered[centered > k_factor * sigma]


def histogram(values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Unit-width ADC histogram; returns (counts, bin_centers)."""

    counts, edges = np.histogram(values, bins=HISTOGRAM_BINS, range=(HISTOGRAM_MIN, HISTOGRAM_MAX))
    return counts.astype(float), edges[:-1] + 0.5


def to_voltage_axis(bin_centers: np.ndarray) -> np.ndarray:
    return np.asarray(bin_centers, dtype=float) * VOLTAGE_FACTOR


def _log_counts(counts: np.ndarray) -> np.ndarray:
    logged = np.zeros_like(counts, dtype=float)
    positive = counts > 0
    logged[positive] = np.log10(counts[positive])
    return logged


def analyze_channel(
    values: np.ndarray,
    config: FitConfig,
    *,
    channel: int = 0,
    baseline_mean: Optional[float] = None,
    cancel=None,
) -> ChannelAnalysis:
    values = np.asarray(values, dtype=float)
    if values.size == 0:
        return ChannelAnalysis(channel=channel, status=ChannelStatus.NO_DATA)

    if config.kalman.enabled:
        kalman = config.kalman
        smoother = KalmanFilter(kalman.a, kalman.h, kalman.q, kalman.r, kalman.initial_p, float(values[0]))
        values = smoother.smooth(values)

    mode = config.baseline_enum
    if mode is BaselineMode.AUTO:
        values = values - values.mean()
    elif mode is BaselineMode.FILE:
        values = values - (baseline_mean or 0.0)

    if config.threshold.enabled:
        values = apply_threshold(values, config.threshold.k_factor)
    if values.size == 0:
        return ChannelAnalysis(channel=channel, status=ChannelStatus.NO_SIGNAL)

    counts, centers = histogram(values)
    if config.x_axis_enum is XAxis.VOLTAGE:
        centers = to_voltage_axis(centers)
    # log scale only changes the stored counts; fits and moments use linear counts
    shown = _log_counts(counts) if config.log_counts else counts

    if config.use_fit:
        if values.size <= MIN_FIT_VALUES or counts.max() <= 0:
            return ChannelAnalysis(
                channel=channel,
                status=ChannelStatus.NO_SIGNAL,
                bin_centers=centers,
                counts=shown,
                values_used=int(values.size),
            )
        fit = fit_curve(centers, counts, config.model_enum, cancel=cancel)
        statistics = summarize(fit.centroid, fit.width, fit.peak)
    else:
        fit = None
        moments = calculate_moments(centers, counts)
        statistics = summarize(moments.mean, moments.sigma, moments.peak)

    return ChannelAnalysis(
        channel=channel,
        status=ChannelStatus.OK,
        bin_centers=centers,
        counts=shown,
        fit=fit,
        statistics=statistics,
        values_used=int(values.size),
    )


def coincidence_matrix(records: Sequence[SampleRecord], layer: str) -> np.ndarray:
    """
    8x8 hit map per record: column = strongest of CH1-8, row = strongest of CH9-16.
    """
    matrix = np.zeros((COINCIDENCE_SIZE, COINCIDENCE_SIZE), dtype=np.int64)
    values = layer_matrix(records, layer)
    if values.shape[0] == 0:
        return matrix
    cols = np.argmax(values[:, :COINCIDENCE_SIZE], axis=1)
    rows = np.argmax(values[:, COINCIDENCE_SIZE:], axis=1)
    np.add.at(matrix, (rows, cols), 1)
    return matrix


def run_analysis(
    records: Sequence[SampleRecord],
    config: FitConfig,
    *,
    baseline_means: Optional[Sequence[float]] = None,
    on_progress: Optional[Callable[[float], None]] = None,
    cancel=None,
) -> AnalysisResult:
    """
    Analyse all 16 channels of the configured layer.

    Channels are independent and run on a thread pool; each future fills its
    own slot of the result list. Channels not started before *cancel* fires
    are reported as cancelled.
    """
    layer = config.layer_name
    if config.baseline_enum is BaselineMode.FILE:
        if baseline_means is None:
            raise ValueError("fit.baseline=file requires MeanValues baseline means")
        if len(baseline_means) < CHANNELS:
            raise ValueError(f"Expected {CHANNELS} baseline means, got {len(baseline_means)}")

    matrix = layer_matrix(records, layer)
    slots: List[Optional[ChannelAnalysis]] = [None] * CHANNELS

    def work(channel: int) -> ChannelAnalysis:
        if cancel is not None and cancel.is_set():
            return ChannelAnalysis(channel=channel, status=ChannelStatus.CANCELLED)
        mean = float(baseline_means[channel]) if baseline_means is not None else None
        return analyze_channel(matrix[:, channel], config, channel=channel, baseline_mean=mean, cancel=cancel)

    workers = min(config.workers or CHANNELS, CHANNELS)
    finished = 0
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="channel") as pool:
        futures = {pool.submit(work, channel): channel for channel in range(CHANNELS)}
        for future in as_completed(futures):
            slots[futures[future]] = future.result()
            finished += 1
            if on_progress is not None:
                on_progress(finished / CHANNELS)

    channels = [slot for slot in slots if slot is not None]
    cancelled = any(ch.status is ChannelStatus.CANCELLED for ch in channels) or bool(
        cancel is not None and cancel.is_set()
    )
    logger.info(
        "Analysed layer %s: %d records, %d/%d channels with statistics%s",
        layer,
        len(records),
        sum(ch.status is ChannelStatus.OK for ch in channels),
        CHANNELS,
        " (cancelled)" if cancelled else "",
    )
    return AnalysisResult(
        layer=layer,
        record_count=len(records),
        channels=channels,
        coincidence=coincidence_matrix(records, layer),
        config=config,
        cancelled=cancelled,
    )
