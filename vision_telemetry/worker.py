from __future__ import annotations

import time
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .alliance import AllianceSource, BusAllianceSource, StaticAllianceSource
from .bus import InMemoryBus, MqttTelemetryBus, TelemetryBus
from .config import ClientConfig
from .estimator import BotPose, PoseEstimator, PoseSnapshot
from .logging_utils import add_file_handler, remove_handler, setup_logger
from .output import BusOutput, CsvOutput, OutputSink
from .sensor import VisionSensor
from .storage import SessionStorage
from .types import Alliance


@dataclass
class SessionSummary:
    session_path: str
    cycles: int
    estimates: int
    accepted: int
    misses: int
    csv_path: str
    log_path: str
    avg_hz: float
    errors: int


class TelemetryWorker:
    """Polls one sensor's pose estimate at a fixed rate and records every cycle."""

    def __init__(
        self,
        config: ClientConfig,
        logger=None,
        bus: Optional[TelemetryBus] = None,
        alliance_source: Optional[AllianceSource] = None,
        outputs: Optional[list[OutputSink]] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger(config.sensor_name)
        self.bus = bus
        self.alliance_source = alliance_source
        self.outputs = outputs
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def _build_bus(self) -> tuple[TelemetryBus, bool]:
        if self.bus is not None:
            return self.bus, False
        if self.config.dry_run:
            return InMemoryBus(), True
        bus = MqttTelemetryBus(
            host=self.config.broker_host,
            port=self.config.broker_port,
            topic_root=self.config.topic_root,
            client_id=self.config.client_id,
        )
        bus.start()
        return bus, True

    def _build_alliance_source(self, bus: TelemetryBus) -> AllianceSource:
        if self.alliance_source is not None:
            return self.alliance_source
        if self.config.alliance is not None:
            return StaticAllianceSource(Alliance.parse(self.config.alliance))
        return BusAllianceSource(bus, self.config.alliance_key)

    def _build_outputs(self, bus: TelemetryBus) -> list[OutputSink]:
        if self.outputs is not None:
            return self.outputs
        outputs: list[OutputSink] = [CsvOutput()]
        if self.config.publish_key:
            outputs.append(BusOutput(bus, self.config.publish_key))
        return outputs

    def _poll(self, estimator: PoseEstimator, alliance_source: AllianceSource) -> tuple[str, Optional[PoseSnapshot]]:
        megatag2 = self.config.megatag2
        if not self.config.use_alliance:
            key = BotPose.BLUE_MEGATAG2 if megatag2 else BotPose.BLUE
        else:
            # single alliance read per cycle: the row label names the fetched entry
            alliance = alliance_source.current_alliance()
            if alliance is None:
                return "", None
            key = BotPose.for_alliance(alliance, megatag2)
        return key.entry, estimator.cache.fetch(key)

    def _accepted(self, snapshot: Optional[PoseSnapshot]) -> bool:
        return (
            snapshot is not None
            and snapshot.has_data
            and snapshot.get_avg_tag_ambiguity() <= self.config.max_ambiguity
        )

    def run(self) -> SessionSummary:
        storage = SessionStorage(self.config.session_root, name=f"{self.config.sensor_name}_session")
        session_path = storage.begin()
        storage.write_manifest(self.config.as_dict())

        log_file = str(Path(storage.logs_dir) / "session.log")
        file_handler = add_file_handler(self.logger, self.config.sensor_name, log_file)

        t0 = time.time()
        cycles = 0
        estimates = 0
        accepted = 0
        misses = 0
        errors = 0

        try:
            bus, owns_bus = self._build_bus()
            outputs: list[OutputSink] = []
            try:
                outputs = self._build_outputs(bus)
                for out in outputs:
                    out.open(Path(storage.session_dir))

                sensor = VisionSensor(self.config.sensor_name, bus)
                alliance_source = self._build_alliance_source(bus)
                estimator = sensor.pose_estimator(self.config.megatag2, alliance_source)

                self.logger.info("session started: %s", session_path)
                self.logger.info("config: %s", self.config.as_dict())
                if not sensor.is_available():
                    self.logger.warning("sensor %r has not published getpipe yet", sensor.name)
                if self.config.settings is not None and not self.config.settings.is_empty():
                    sensor.apply_settings(self.config.settings)

                period = 1.0 / self.config.rate_hz
                t0 = time.time()
                last = t0

                while True:
                    if self._stop_event.is_set():
                        break
                    if self.config.duration_sec and (time.time() - t0) >= self.config.duration_sec:
                        break
                    if self.config.max_cycles and cycles >= self.config.max_cycles:
                        break

                    try:
                        entry, snapshot = self._poll(estimator, alliance_source)
                    except Exception as e:
                        errors += 1
                        self.logger.warning("cycle %d: poll failed: %s", cycles, e)
                        entry, snapshot = "", None

                    ok = self._accepted(snapshot)
                    if snapshot is None:
                        misses += 1
                    elif snapshot.has_data:
                        estimates += 1
                    if ok:
                        accepted += 1

                    ts_unix = time.time()
                    for out in outputs:
                        try:
                            out.write_estimate(ts_unix, cycles, entry, snapshot, ok)
                        except Exception as e:
                            errors += 1
                            self.logger.warning("output %s failed: %s", type(out).__name__, e)

                    if snapshot is not None and snapshot.has_data:
                        self.logger.debug(
                            "cycle=%d entry=%s tags=%d avg_ambiguity=%.3f accepted=%s",
                            cycles,
                            entry,
                            snapshot.tag_count,
                            snapshot.get_avg_tag_ambiguity(),
                            ok,
                        )
                    cycles += 1

                    wait = max(0.0, period - (time.time() - last))
                    if wait > 0:
                        self._stop_event.wait(wait)
                    last = time.time()

            finally:
                for out in outputs:
                    try:
                        out.close()
                    except Exception as e:
                        self.logger.warning("closing %s failed: %s", type(out).__name__, e)
                if owns_bus:
                    bus.close()

            avg = cycles / max(1e-6, (time.time() - t0))
            self.logger.info(
                "summary cycles=%d estimates=%d accepted=%d misses=%d avg_hz=%.2f errors=%d",
                cycles, estimates, accepted, misses, avg, errors,
            )
        finally:
            remove_handler(self.logger, file_handler)

        csv_path = str(Path(storage.session_dir) / "estimates.csv")
        return SessionSummary(
            str(session_path),
            cycles,
            estimates,
            accepted,
            misses,
            csv_path,
            log_file,
            avg,
            errors,
        )
