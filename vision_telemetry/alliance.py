from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .bus import TelemetryBus
from .types import Alliance


class AllianceSource(ABC):
    @abstractmethod
    def current_alliance(self) -> Optional[Alliance]:
        """Alliance colour, or None when not reported yet."""


class StaticAllianceSource(AllianceSource):
    def __init__(self, alliance: Optional[Alliance] = None):
        self.alliance = alliance

    def set(self, alliance) -> None:
        self.alliance = Alliance.parse(alliance) if alliance is not None else None

    def current_alliance(self) -> Optional[Alliance]:
        return self.alliance


class BusAllianceSource(AllianceSource):
    """Reads the alliance colour from a string entry published by the match service."""

    def __init__(self, bus: TelemetryBus, key: str = "FMSInfo/alliance"):
        self.bus = bus
        self.key = key

    def current_alliance(self) -> Optional[Alliance]:
        return Alliance.parse(self.bus.read_string(self.key, ""))
