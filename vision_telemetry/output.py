from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .bus import TelemetryBus
from .csv_writer import PoseCsvWriter
from .estimator import PoseSnapshot


class OutputSink(ABC):
    @abstractmethod
    def open(self, session_dir: Path) -> None: ...

    @abstractmethod
    def write_estimate(
        self,
        ts_unix: float,
        cycle: int,
        entry: str,
        snapshot: Optional[PoseSnapshot],
        accepted: bool = False,
    ) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class CsvOutput(OutputSink):
    def __init__(self, filename: str = "estimates.csv"):
        self.filename = filename
        self._writer: Optional[PoseCsvWriter] = None

    def open(self, session_dir: Path) -> None:
        path = session_dir / self.filename
        self._writer = PoseCsvWriter(str(path))
        self._writer.open()

    def write_estimate(
        self,
        ts_unix: float,
        cycle: int,
        entry: str,
        snapshot: Optional[PoseSnapshot],
        accepted: bool = False,
    ) -> None:
        if self._writer is None:
            return
        self._writer.append(ts_unix, cycle, entry, snapshot, accepted)

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class BusOutput(OutputSink):
    """Publishes one CSV line per cycle to a bus entry."""

    def __init__(self, bus: TelemetryBus, key: str):
        self.bus = bus
        self.key = key
        self._published_header = False

    def open(self, session_dir: Path) -> None:
        if not self._published_header:
            self.bus.write_string(self.key, ",".join(PoseCsvWriter.HEADER))
            self._published_header = True

    def write_estimate(
        self,
        ts_unix: float,
        cycle: int,
        entry: str,
        snapshot: Optional[PoseSnapshot],
        accepted: bool = False,
    ) -> None:
        line = PoseCsvWriter.to_csv_line(ts_unix, cycle, entry, snapshot, accepted)
        self.bus.write_string(self.key, line)

    def close(self) -> None:
        return None


class NullOutput(OutputSink):
    def open(self, session_dir: Path) -> None:
        return None

    def write_estimate(
        self,
        ts_unix: float,
        cycle: int,
        entry: str,
        snapshot: Optional[PoseSnapshot],
        accepted: bool = False,
    ) -> None:
        return None

    def close(self) -> None:
        return None
