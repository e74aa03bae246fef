from __future__ import annotations

import threading

import numpy as np
import pytest

from baselinemode.config import FitConfig, KalmanConfig, ThresholdConfig
from baselinemode.pipeline import (
    ChannelStatus,
    analyze_channel,
    apply_threshold,
    channel_values,
    coincidence_matrix,
    histogram,
    run_analysis,
)
from baselinemode.telemetry.processing import VOLTAGE_FACTOR

from builders import make_record


def _records(count: int = 400, seed: int = 9):
    rng = np.random.default_rng(seed)
    centres = 1000 + 100 * np.arange(16)
    values = np.rint(rng.normal(loc=centres, scale=10.0, size=(count, 16)))
    return [make_record(row, index=i % 15 + 1) for i, row in enumerate(values)], values


def test_histogram_has_unit_bins() -> None:
    counts, centers = histogram(np.array([0.0, 1.0, 1.0, 16383.0]))
    assert counts.size == centers.size == 16383
    assert centers[0] == 0.5
    assert counts[1] == 2
    assert counts[-1] == 1


def test_apply_threshold_keeps_upper_tail() -> None:
    centred = np.array([-1.0, 1.0, -1.0, 1.0, 10.0])
    sigma = np.sqrt(np.mean(centred**2))
    kept = apply_threshold(centred, 1.0)
    assert kept.tolist() == [10.0]
    assert 10.0 > sigma
    assert apply_threshold(np.array([]), 3.0).size == 0


def test_run_analysis_fits_every_channel() -> None:
    records, values = _records()
    seen: list[float] = []
    result = run_analysis(records, FitConfig(), on_progress=seen.append)
    assert result.layer == "L1"
    assert result.record_count == 400
    assert len(result.channels) == 16
    assert [ch.channel for ch in result.channels] == list(range(16))
    for ch in result.channels:
        assert ch.status is ChannelStatus.OK
        assert abs(ch.statistics.centroid - (values[:, ch.channel].mean() + 0.5)) < 3.0
        assert ch.fit.curve.shape == ch.counts.shape
    assert len(seen) == 16
    assert seen[-1] == 1.0
    assert not result.cancelled


def test_moments_path_without_fit() -> None:
    records, values = _records(200)
    column = channel_values(records, "L1", 3)
    analysis = analyze_channel(column, FitConfig(use_fit=False), channel=3)
    assert analysis.fit is None
    assert analysis.statistics.centroid == pytest.approx(values[:, 3].mean() + 0.5)
    assert analysis.label == "CH4"


def test_file_baseline_subtracts_supplied_means() -> None:
    records, values = _records(200)
    means = [900.0] * 16
    result = run_analysis(records, FitConfig(use_fit=False, baseline="file"), baseline_means=means)
    assert result.channels[0].statistics.centroid == pytest.approx(values[:, 0].mean() - 900.0 + 0.5)


def test_file_baseline_requires_means() -> None:
    records, _ = _records(20)
    with pytest.raises(ValueError):
        run_analysis(records, FitConfig(baseline="file"))
    with pytest.raises(ValueError):
        run_analysis(records, FitConfig(baseline="file"), baseline_means=[1.0, 2.0])


def test_auto_baseline_with_threshold_leaves_positive_tail() -> None:
    values = np.array([100.0] * 50 + [160.0] * 5)
    cfg = FitConfig(use_fit=False, baseline="auto", threshold=ThresholdConfig(enabled=True, k_factor=2.0))
    analysis = analyze_channel(values, cfg)
    assert analysis.status is ChannelStatus.OK
    assert analysis.values_used == 5


def test_kalman_prefilter_narrows_distribution() -> None:
    rng = np.random.default_rng(1)
    values = np.rint(rng.normal(2000.0, 20.0, size=500))
    plain = analyze_channel(values, FitConfig(use_fit=False))
    smoothed = analyze_channel(
        values,
        FitConfig(use_fit=False, kalman=KalmanConfig(enabled=True, q=0.01, r=10.0)),
    )
    assert smoothed.statistics.sigma < plain.statistics.sigma


def test_voltage_axis_and_log_counts() -> None:
    values = np.array([100.0] * 100 + [101.0] * 10)
    analysis = analyze_channel(values, FitConfig(use_fit=False, x_axis="voltage", log_counts=True))
    assert analysis.bin_centers[100] == pytest.approx(100.5 * VOLTAGE_FACTOR)
    assert analysis.counts[100] == pytest.approx(2.0)
    assert analysis.counts[101] == pytest.approx(1.0)
    assert analysis.counts[0] == 0.0


@pytest.mark.parametrize("use_fit", [False, True])
def test_log_counts_leave_statistics_unchanged(use_fit: bool) -> None:
    rng = np.random.default_rng(8)
    values = np.rint(rng.normal(3000.0, 15.0, size=300))
    linear = analyze_channel(values, FitConfig(use_fit=use_fit))
    logged = analyze_channel(values, FitConfig(use_fit=use_fit, log_counts=True))
    assert logged.statistics == linear.statistics
    assert np.allclose(logged.counts[linear.counts > 0], np.log10(linear.counts[linear.counts > 0]))


def test_log_counts_keep_single_count_bins_in_moments() -> None:
    values = np.array([100.0] * 100 + [101.0] * 10 + [102.0])
    analysis = analyze_channel(values, FitConfig(use_fit=False, log_counts=True))
    expected = (100.5 * 100 + 101.5 * 10 + 102.5) / 111
    assert analysis.statistics.centroid == pytest.approx(expected)
    assert analysis.counts[102] == 0.0


def test_channel_statuses() -> None:
    assert analyze_channel(np.array([]), FitConfig()).status is ChannelStatus.NO_DATA
    assert analyze_channel(np.array([5.0, 6.0, 7.0]), FitConfig()).status is ChannelStatus.NO_SIGNAL
    # everything below zero falls outside the histogram
    assert analyze_channel(-np.arange(1.0, 20.0), FitConfig()).status is ChannelStatus.NO_SIGNAL


def test_empty_records_report_no_data() -> None:
    result = run_analysis([], FitConfig())
    assert all(ch.status is ChannelStatus.NO_DATA for ch in result.channels)
    assert not result.coincidence.any()


def test_cancel_before_start_marks_channels() -> None:
    records, _ = _records(50)
    cancel = threading.Event()
    cancel.set()
    result = run_analysis(records, FitConfig(), cancel=cancel)
    assert result.cancelled
    assert all(ch.status is ChannelStatus.CANCELLED for ch in result.channels)


def test_coincidence_matrix_counts_strongest_pairs() -> None:
    hit = [0] * 16
    hit[2] = 50  # CH3
    hit[11] = 70  # CH12
    tie = [5] * 16
    matrix = coincidence_matrix([make_record(hit), make_record(hit), make_record(tie)], "L1")
    assert matrix.shape == (8, 8)
    assert matrix[3, 2] == 2
    assert matrix[0, 0] == 1
    assert matrix.sum() == 3


def test_statistics_frame_has_one_row_per_channel() -> None:
    records, _ = _records(100)
    frame = run_analysis(records, FitConfig(use_fit=False)).statistics_frame()
    assert len(frame) == 16
    assert list(frame["channel"][:2]) == ["CH1", "CH2"]
    assert set(frame["status"]) == {"ok"}
