from __future__ import annotations

import logging
from typing import Optional

from .alliance import AllianceSource
from .bus import TelemetryBus
from .data import SensorData
from .estimator import BotPoseCache, PoseEstimator
from .settings import SensorSettings

log = logging.getLogger(__name__)

DEFAULT_NAME = "limelight"


def sanitize_name(name: Optional[str]) -> str:
    name = (name or "").strip().strip("/")
    return name or DEFAULT_NAME


class VisionSensor:
    """One camera's table on the telemetry bus."""

    def __init__(self, name: Optional[str], bus: TelemetryBus):
        self.name = sanitize_name(name)
        self.bus = bus
        self.data = SensorData(bus, self.name)
        self.cache = BotPoseCache(bus, self.name)

    def is_available(self) -> bool:
        # the sensor publishes its active pipeline index while it is running
        return self.bus.contains(f"{self.name}/getpipe")

    def pose_estimator(self, megatag2: bool = False, alliance_source: Optional[AllianceSource] = None) -> PoseEstimator:
        return PoseEstimator(self.cache, alliance_source, megatag2)

    def apply_settings(self, settings: SensorSettings) -> None:
        entries = settings.apply(self.bus, self.name)
        log.info("applied %d setting(s) to %s: %s", len(entries), self.name, sorted(entries))

    def flush(self) -> None:
        self.bus.flush()
