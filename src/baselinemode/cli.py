"""Command line interface for the baselinemode package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import FitConfig, load_config
from .data import mean_values_path, read_mean_values, write_mean_values
from .pipeline import run_analysis
from .reporting import export_results, export_samples
from .telemetry import decode_files, validate_header_file

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Baseline mode telemetry decoder and channel analysis.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _decode(inputs: List[Path]):
    try:
        result = decode_files(inputs)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Input file not found: {exc}", param_hint="--in") from exc
    if not result.records:
        typer.echo("[warning] no complete frames found in input")
    return result


@app.command()
def decode(
    inputs: List[Path] = typer.Option(..., "--in", help="Capture file(s), decoded as one stream."),
    out: Path = typer.Option(..., "--out", help="Destination CSV for decoded samples."),
    voltage: bool = typer.Option(False, "--voltage", help="Write millivolts instead of raw ADC counts."),
) -> None:
    """Decode capture files into a per-sample CSV table."""

    result = _decode(inputs)
    export_samples(result.records, out, voltage=voltage)
    typer.echo(f"Wrote {len(result.records)} samples to {out}")


@app.command()
def analyze(
    inputs: List[Path] = typer.Option(..., "--in", help="Capture file(s), decoded as one stream."),
    report_dir: Path = typer.Option(..., "--report", help="Output directory for reports."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Analysis config JSON."),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set fit.model=hyper-emg --set fit.threshold.enabled=true",
    ),
    model: Optional[str] = typer.Option(None, "--model", help="Fit model: gaussian|hyper-emg."),
    layer: Optional[str] = typer.Option(None, "--layer", help="Layer to analyse: L1|L2|L6|L7."),
    means_dir: Optional[Path] = typer.Option(
        None,
        "--means-dir",
        help="Directory holding MeanValues sidecars; implies fit.baseline=file.",
    ),
) -> None:
    """Histogram and fit all 16 channels of one layer."""

    overrides = list(override or [])
    if model:
        overrides.append(f"fit.model={model}")
    if layer:
        overrides.append(f"fit.layer={layer}")
    if means_dir is not None:
        overrides.append("fit.baseline=file")
    try:
        cfg = load_config(config_path, overrides or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    fit_cfg: FitConfig = cfg.fit
    baseline_means = None
    if means_dir is not None:
        sidecar = mean_values_path(means_dir, fit_cfg.layer_name)
        try:
            baseline_means = read_mean_values(sidecar)
        except FileNotFoundError as exc:
            raise typer.BadParameter(f"Missing baseline file {sidecar}", param_hint="--means-dir") from exc
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--means-dir") from exc
        logger.info("Baseline means for %s loaded from %s", fit_cfg.layer_name, sidecar)

    result = _decode(inputs)
    try:
        analysis = run_analysis(result.records, fit_cfg, baseline_means=baseline_means)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    export_results(analysis, report_dir, input_paths=inputs)
    typer.echo(f"Report written to {report_dir}")


@app.command("save-means")
def save_means(
    inputs: List[Path] = typer.Option(..., "--in", help="Baseline capture file(s)."),
    out_dir: Path = typer.Option(Path("."), "--out", help="Directory for MeanValues sidecars."),
) -> None:
    """Write per-layer channel means (MeanValues1/2/6/7.txt)."""

    result = _decode(inputs)
    for path in write_mean_values(result.records, out_dir):
        typer.echo(f"Saved {path}")


@app.command()
def check(
    input_path: Path = typer.Option(..., "--in", help="Line-oriented capture file."),
) -> None:
    """Verify that every non-empty line starts with the E225 frame marker."""

    verdict = validate_header_file(input_path)
    if not verdict.is_valid:
        typer.echo(f"{verdict.error_message}")
        if verdict.error_content:
            typer.echo(f"  {verdict.error_content[:64]}")
        raise typer.Exit(code=1)
    typer.echo("Header OK")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
