"""Report writers for channel analysis results."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

from .config import AnalysisConfig, config_summary
from .data import records_to_dataframe
from .pipeline import AnalysisResult, ChannelStatus
from .telemetry.processing import SampleRecord


def export_results(
    result: AnalysisResult,
    output_dir: Path,
    *,
    input_paths: Sequence[Path] | None = None,
) -> None:
    """Persist channel statistics, coincidence map, fitted curves and a markdown report."""

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stats = result.statistics_frame()
    stats.to_csv(output_dir / "channel_stats.csv", index=False)
    _write_coincidence_csv(result, output_dir)
    _write_curves_csv(result, output_dir)
    _write_report_md(result, stats, output_dir, input_paths=input_paths)


def export_samples(records: Sequence[SampleRecord], path: Path, *, voltage: bool = False) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    records_to_dataframe(records, voltage=voltage).to_csv(path, index=False)
    return path


def _write_coincidence_csv(result: AnalysisResult, output_dir: Path) -> None:
    size = result.coincidence.shape[0]
    df = pd.DataFrame(
        result.coincidence,
        index=[f"CH{size + i + 1}" for i in range(size)],
        columns=[f"CH{i + 1}" for i in range(size)],
    )
    df.to_csv(output_dir / "coincidence.csv", index_label="row")


def _write_curves_csv(result: AnalysisResult, output_dir: Path) -> None:
    # all channels share the same histogram bins; one wide table
    columns: dict[str, np.ndarray] = {}
    for analysis in result.channels:
        if analysis.bin_centers.size == 0:
            continue
        columns.setdefault("bin_center", analysis.bin_centers)
        columns[f"{analysis.label} counts"] = analysis.counts
        if analysis.fit is not None:
            columns[f"{analysis.label} fit"] = analysis.fit.curve
    pd.DataFrame(columns).to_csv(output_dir / "fit_curves.csv", index=False)


def _fmt(value: object) -> str:
    if isinstance(value, float):
        return "-" if np.isnan(value) else f"{value:.4g}"
    return str(value)


def _write_report_md(
    result: AnalysisResult,
    stats: pd.DataFrame,
    output_dir: Path,
    *,
    input_paths: Sequence[Path] | None,
) -> None:
    lines: list[str] = []
    lines.append(f"# Baseline Mode Report: layer {result.layer}")
    if input_paths:
        joined = ", ".join(f"`{path}`" for path in input_paths)
        lines.append(f"*Input files:* {joined}  ")
    lines.append(f"*Records:* {result.record_count}  ")
    for key, value in config_summary(AnalysisConfig(fit=result.config)).items():
        lines.append(f"*{key}:* {value}  ")
    if result.cancelled:
        lines.append("*Status:* cancelled before all channels were analysed  ")
    lines.append("")

    lines.append("## Channel statistics")
    lines.append("| Channel | Status | Centroid | Sigma | Peak | FWHM | Resolution % |")
    lines.append("| --- | --- | ---: | ---: | ---: | ---: | ---: |")
    for row in stats.itertuples(index=False):
        lines.append(
            f"| {row.channel} | {row.status} | {_fmt(row.centroid)} | {_fmt(row.sigma)} | "
            f"{_fmt(row.peak)} | {_fmt(row.fwhm)} | {_fmt(row.resolution_pct)} |"
        )
    lines.append("")

    ok = sum(ch.status is ChannelStatus.OK for ch in result.channels)
    lines.append("### Notes")
    lines.append(f"- {ok} of {len(result.channels)} channels produced statistics.")
    lines.append("- FWHM = 2.355 sigma; resolution = FWHM / centroid x 100.")
    lines.append("- `coincidence.csv` rows are the strongest of CH9-16, columns the strongest of CH1-8.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
