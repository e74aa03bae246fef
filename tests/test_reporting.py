from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from baselinemode.config import FitConfig
from baselinemode.pipeline import run_analysis
from baselinemode.reporting import export_results, export_samples

from builders import make_record


def _result():
    rng = np.random.default_rng(4)
    rows = np.rint(rng.normal(3000.0, 15.0, size=(120, 16)))
    return run_analysis([make_record(row) for row in rows], FitConfig())


def test_export_results_writes_artefacts(tmp_path: Path) -> None:
    result = _result()
    export_results(result, tmp_path, input_paths=[Path("capture.txt")])

    stats = pd.read_csv(tmp_path / "channel_stats.csv")
    assert len(stats) == 16
    assert {"centroid", "sigma", "fwhm", "resolution_pct"} <= set(stats.columns)

    coincidence = pd.read_csv(tmp_path / "coincidence.csv", index_col="row")
    assert coincidence.shape == (8, 8)
    assert coincidence.to_numpy().sum() == 120

    curves = pd.read_csv(tmp_path / "fit_curves.csv")
    assert len(curves) == 16383
    assert {"bin_center", "CH1 counts", "CH16 fit"} <= set(curves.columns)

    report = (tmp_path / "report.md").read_text(encoding="utf-8")
    assert "layer L1" in report
    assert "`capture.txt`" in report
    assert "| CH16 | ok |" in report


def test_export_samples(tmp_path: Path) -> None:
    path = export_samples([make_record(range(16))], tmp_path / "out" / "samples.csv")
    df = pd.read_csv(path)
    assert df.loc[0, "L1 CH16"] == 15
    assert df.loc[0, "sample_index"] == 1
