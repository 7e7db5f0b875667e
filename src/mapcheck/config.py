from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@dataclass
class VerifyConfig:
    workers: int = 0
    buffer_size: int = 8 * 1024


@dataclass
class ReportConfig:
    missing_summary_width: int = 80


@dataclass
class ObservabilityConfig:
    log_interval_sec: int = 30


@dataclass
class LoggingConfig:
    dir: Optional[Path] = None
    file_name: str = "mapcheck.log"
    max_mb: int = 20
    backup_count: int = 10
    json: bool = True
    to_console: bool = True


@dataclass
class Config:
    manifest_name: str = "update.xml"
    strict_regions: bool = False
    log_level: str = "WARNING"
    verify: VerifyConfig = field(default_factory=VerifyConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> Config:
    if path is None:
        return Config()
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid config file {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("config root must be a mapping")

    verify_raw = _as_dict(raw.get("verify"))
    verify = VerifyConfig(
        workers=int(verify_raw.get("workers", 0)),
        buffer_size=int(verify_raw.get("buffer_size", 8 * 1024)),
    )

    report_raw = _as_dict(raw.get("report"))
    report = ReportConfig(
        missing_summary_width=int(report_raw.get("missing_summary_width", 80)),
    )

    observability_raw = _as_dict(raw.get("observability"))
    observability = ObservabilityConfig(
        log_interval_sec=int(observability_raw.get("log_interval_sec", 30)),
    )

    logging_raw = _as_dict(raw.get("logging"))
    log_dir = logging_raw.get("dir")
    logging_config = LoggingConfig(
        dir=_resolve_path(log_dir) if log_dir else None,
        file_name=str(logging_raw.get("file_name", "mapcheck.log")),
        max_mb=int(logging_raw.get("max_mb", 20)),
        backup_count=int(logging_raw.get("backup_count", 10)),
        json=bool(logging_raw.get("json", True)),
        to_console=bool(logging_raw.get("to_console", True)),
    )

    return Config(
        manifest_name=str(raw.get("manifest_name", "update.xml")),
        strict_regions=bool(raw.get("strict_regions", False)),
        log_level=str(raw.get("log_level", "WARNING")),
        verify=verify,
        report=report,
        observability=observability,
        logging=logging_config,
    )


def _resolve_path(value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}
