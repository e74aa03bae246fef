from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Sequence


class FitModel(str, enum.Enum):
    GAUSSIAN = "gaussian"
    HYPER_EMG = "hyper-emg"


class BaselineMode(str, enum.Enum):
    NONE = "none"
    AUTO = "auto"  # subtract each channel's own mean
    FILE = "file"  # subtract the mean stored in a MeanValues sidecar


class XAxis(str, enum.Enum):
    ADC = "adc"
    VOLTAGE = "voltage"


LAYER_NAMES = ("L1", "L2", "L6", "L7")


@dataclass
class ThresholdConfig:
    enabled: bool = False
    k_factor: float = 3.0


@dataclass
class KalmanConfig:
    enabled: bool = False
    a: float = 1.0
    h: float = 1.0
    q: float = 0.01
    r: float = 0.1
    initial_p: float = 1.0


@dataclass
class FitConfig:
    model: str = FitModel.GAUSSIAN.value
    use_fit: bool = True
    threshold: ThresholdConfig = field(default_factory=ThresholdConfig)
    baseline: str = BaselineMode.NONE.value
    log_counts: bool = False
    x_axis: str = XAxis.ADC.value
    layer: str = "L1"
    kalman: KalmanConfig = field(default_factory=KalmanConfig)
    workers: int = 0  # 0 = one worker per channel

    @property
    def model_enum(self) -> FitModel:
        return _to_enum(FitModel, self.model, "fit.model")

    @property
    def baseline_enum(self) -> BaselineMode:
        return _to_enum(BaselineMode, self.baseline, "fit.baseline")

    @property
    def x_axis_enum(self) -> XAxis:
        return _to_enum(XAxis, self.x_axis, "fit.x_axis")

    @property
    def layer_name(self) -> str:
        name = self.layer.upper()
        if name not in LAYER_NAMES:
            raise ValueError(f"Unsupported fit.layer '{self.layer}', expected one of {list(LAYER_NAMES)}")
        return name


@dataclass
class DecoderConfig:
    chunk_size: int = 1 << 16
    progress_every: int = 1000  # frames between progress callbacks


@dataclass
class AnalysisConfig:
    fit: FitConfig = field(default_factory=FitConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)

    def validate(self) -> "AnalysisConfig":
        self.fit.model_enum
        self.fit.baseline_enum
        self.fit.x_axis_enum
        self.fit.layer_name
        if self.fit.threshold.k_factor < 0:
            raise ValueError("fit.threshold.k_factor must be non-negative")
        if self.fit.workers < 0:
            raise ValueError("fit.workers must be >= 0")
        if self.decoder.chunk_size <= 0:
            raise ValueError("decoder.chunk_size must be positive")
        if self.decoder.progress_every <= 0:
            raise ValueError("decoder.progress_every must be positive")
        return self


def _to_enum(enum_cls, value: str, key: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = [member.value for member in enum_cls]
        raise ValueError(f"Unsupported {key} '{value}', expected one of {choices}") from None


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: an analysis config must be a JSON object")
    return data


def _apply_override(tree: Dict[str, Any], item: str) -> None:
    """Write one ``section.key=value`` override into the raw config tree."""

    dotted, sep, raw = item.partition("=")
    keys = [part.strip() for part in dotted.split(".")]
    if not sep or not all(keys):
        raise ValueError(f"Override '{item}' must look like section.key=value")
    node = tree
    for key in keys[:-1]:
        child = node.setdefault(key, {})
        if not isinstance(child, dict):
            raise ValueError(f"Override '{item}': '{key}' holds a value, not a section")
        node = child
    node[keys[-1]] = _parse_scalar(raw.strip())


def _parse_scalar(raw: str) -> Any:
    # JSON literals (numbers, booleans in any case, lists); anything else stays a string
    text = raw.lower() if raw.lower() in {"true", "false"} else raw
    try:
        return json.loads(text)
    except ValueError:
        return raw


def _section(parent: Dict[str, Any], key: str, schema: type, label: str) -> Dict[str, Any]:
    data = parent.get(key) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{label}' must be an object")
    _reject_unknown(data, schema, label)
    return data


def _reject_unknown(data: Dict[str, Any], schema: type, label: str) -> None:
    unknown = sorted(set(data) - {item.name for item in fields(schema)})
    if unknown:
        raise ValueError(f"Unknown key(s) in '{label}': {', '.join(unknown)}")


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> AnalysisConfig:
    """
    Load an analysis configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["fit.model=hyper-emg", "fit.threshold.k_factor=2.5"]
    Without a path the defaults are used as the base. Keys that no config
    dataclass declares raise ValueError.
    """
    tree: Dict[str, Any] = _read_json(Path(path)) if path is not None else {}
    for item in overrides or []:
        _apply_override(tree, item)
    _reject_unknown(tree, AnalysisConfig, "config")

    fit_data = _section(tree, "fit", FitConfig, "fit")
    threshold_data = _section(fit_data, "threshold", ThresholdConfig, "fit.threshold")
    kalman_data = _section(fit_data, "kalman", KalmanConfig, "fit.kalman")
    decoder_data = _section(tree, "decoder", DecoderConfig, "decoder")

    config = AnalysisConfig(
        fit=FitConfig(
            model=str(fit_data.get("model", FitModel.GAUSSIAN.value)),
            use_fit=bool(fit_data.get("use_fit", True)),
            threshold=ThresholdConfig(
                enabled=bool(threshold_data.get("enabled", False)),
                k_factor=float(threshold_data.get("k_factor", 3.0)),
            ),
            baseline=str(fit_data.get("baseline", BaselineMode.NONE.value)),
            log_counts=bool(fit_data.get("log_counts", False)),
            x_axis=str(fit_data.get("x_axis", XAxis.ADC.value)),
            layer=str(fit_data.get("layer", "L1")),
            kalman=KalmanConfig(
                enabled=bool(kalman_data.get("enabled", False)),
                a=float(kalman_data.get("a", 1.0)),
                h=float(kalman_data.get("h", 1.0)),
                q=float(kalman_data.get("q", 0.01)),
                r=float(kalman_data.get("r", 0.1)),
                initial_p=float(kalman_data.get("initial_p", 1.0)),
            ),
            workers=int(fit_data.get("workers", 0)),
        ),
        decoder=DecoderConfig(
            chunk_size=int(decoder_data.get("chunk_size", 1 << 16)),
            progress_every=int(decoder_data.get("progress_every", 1000)),
        ),
    )
    return config.validate()


def config_summary(config: AnalysisConfig) -> Dict[str, str]:
    fit = config.fit
    summary: Dict[str, str] = {
        "model": fit.model_enum.value,
        "use_fit": str(fit.use_fit).lower(),
        "layer": fit.layer_name,
        "baseline": fit.baseline_enum.value,
        "x_axis": fit.x_axis_enum.value,
    }
    if fit.threshold.enabled:
        summary["threshold_k"] = f"{fit.threshold.k_factor:g}"
    if fit.kalman.enabled:
        summary["kalman"] = f"q={fit.kalman.q:g} r={fit.kalman.r:g}"
    return summary
