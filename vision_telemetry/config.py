from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

import yaml

from .settings import SensorSettings, settings_from_mapping


@dataclass
class ClientConfig:
    sensor_name: str = "limelight"
    broker_host: str = "localhost"
    broker_port: int = 1883
    topic_root: str = "nt"
    client_id: str = "vision_telemetry"
    megatag2: bool = False
    use_alliance: bool = False
    alliance: Optional[str] = None  # "red"/"blue" pins the alliance instead of reading the bus
    alliance_key: str = "FMSInfo/alliance"
    rate_hz: float = 50.0
    duration_sec: float = 30.0
    max_cycles: Optional[int] = None
    max_ambiguity: float = 0.5
    session_root: str = "data/sessions"
    publish_key: Optional[str] = None  # bus entry that receives one CSV line per cycle
    dry_run: bool = False
    settings: Optional[SensorSettings] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "ClientConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _optional(value: Any, cast):
    return None if value is None else cast(value)


def load_config(path: str | Path) -> ClientConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = ClientConfig()
    cfg.sensor_name = str(raw.get("sensor_name", cfg.sensor_name))
    cfg.broker_host = str(raw.get("broker_host", cfg.broker_host))
    cfg.broker_port = int(raw.get("broker_port", cfg.broker_port))
    cfg.topic_root = str(raw.get("topic_root", cfg.topic_root))
    cfg.client_id = str(raw.get("client_id", cfg.client_id))
    cfg.megatag2 = bool(raw.get("megatag2", cfg.megatag2))
    cfg.use_alliance = bool(raw.get("use_alliance", cfg.use_alliance))
    cfg.alliance = _optional(raw.get("alliance", cfg.alliance), str)
    if cfg.alliance is not None and cfg.alliance.strip().lower() not in {"red", "blue"}:
        raise ValueError(f"alliance must be 'red' or 'blue', got {cfg.alliance!r}")
    cfg.alliance_key = str(raw.get("alliance_key", cfg.alliance_key))
    cfg.rate_hz = float(raw.get("rate_hz", cfg.rate_hz))
    if cfg.rate_hz <= 0:
        raise ValueError("rate_hz must be positive")
    cfg.duration_sec = float(raw.get("duration_sec", cfg.duration_sec))
    cfg.max_cycles = _optional(raw.get("max_cycles", cfg.max_cycles), int)
    cfg.max_ambiguity = float(raw.get("max_ambiguity", cfg.max_ambiguity))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.publish_key = _optional(raw.get("publish_key", cfg.publish_key), str)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))

    settings_raw = raw.get("settings")
    if settings_raw is not None:
        cfg.settings = settings_from_mapping(settings_raw)

    return cfg
