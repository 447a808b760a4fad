"""Robot pose estimates decoded from the sensor's ``botpose_*`` entries.

Entry layout::

    [x, y, z, roll, pitch, yaw, latency_ms, tag_count, tag_span, avg_dist, avg_area,
     <tag_count blocks of: id, txnc, tync, ta, dist_to_camera, dist_to_robot, ambiguity>]

Angles are degrees on the bus and radians in :class:`Pose3D`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional

from .alliance import AllianceSource
from .bus import TelemetryBus
from .decode import (
    SCALAR_FIELDS,
    VALUES_PER_FIDUCIAL,
    decode_fiducial_block,
    decode_legacy_botpose,
    decode_pose,
    extract,
    extract_int,
)
from .fiducials import AMBIGUITY_SENTINEL, FiducialSet
from .types import Alliance, Pose3D, RawSample

log = logging.getLogger(__name__)


class BotPose(Enum):
    """Coordinate frame + solver variant, mapped to the sensor entry that carries it."""

    RED = ("botpose_wpired", False)
    RED_MEGATAG2 = ("botpose_orb_wpired", True)
    BLUE = ("botpose_wpiblue", False)
    BLUE_MEGATAG2 = ("botpose_orb_wpiblue", True)

    def __init__(self, entry: str, megatag2: bool):
        self.entry = entry
        self.is_megatag2 = megatag2

    @classmethod
    def for_alliance(cls, alliance: Alliance, megatag2: bool) -> "BotPose":
        if alliance is Alliance.RED:
            return cls.RED_MEGATAG2 if megatag2 else cls.RED
        return cls.BLUE_MEGATAG2 if megatag2 else cls.BLUE


@dataclass(frozen=True)
class PoseSnapshot:
    """Read-only copy of a :class:`PoseEstimate` taken at refresh time."""

    pose: Pose3D = field(default_factory=Pose3D)
    timestamp_seconds: float = 0.0
    latency_ms: float = 0.0
    tag_count: int = 0
    tag_span: float = 0.0
    avg_tag_dist: float = 0.0
    avg_tag_area: float = 0.0
    fiducials: FiducialSet = field(default_factory=FiducialSet)
    has_data: bool = False
    is_megatag2: bool = False

    def get_min_tag_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return self.fiducials.min_ambiguity()

    def get_max_tag_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return self.fiducials.max_ambiguity()

    def get_avg_tag_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return self.fiducials.avg_ambiguity()

    def __str__(self) -> str:
        if not self.has_data:
            return "No PoseEstimate available.\n"
        lines = [
            "",
            "Pose Estimate Information:",
            f"Timestamp (Seconds): {self.timestamp_seconds:.3f}",
            f"Latency: {self.latency_ms:.3f} ms",
            f"Tag Count: {self.tag_count}",
            f"Tag Span: {self.tag_span:.2f} meters",
            f"Average Tag Distance: {self.avg_tag_dist:.2f} meters",
            f"Average Tag Area: {self.avg_tag_area:.2f}% of image",
            f"Is MegaTag2: {self.is_megatag2}",
            "",
            "Raw Fiducials Details:",
        ]
        out = "\n".join(lines) + "\n"
        for i, fiducial in enumerate(self.fiducials, start=1):
            out += f"Fiducial #{i}:\n{fiducial}"
        return out


def decode_pose_estimate(sample: RawSample, megatag2: bool = False) -> Optional[PoseSnapshot]:
    """
    Decode one bus sample into a snapshot.

    Returns None only for an empty array. A length that does not match
    ``11 + 7 * tag_count`` keeps the scalar fields but drops the tag blocks,
    so ``has_data`` is False.
    """
    raw = sample.values
    if len(raw) == 0:
        return None

    latency_ms = extract(raw, 6)
    tag_count = extract_int(raw, 7)
    # bus clock is microseconds; shift back to when the frame was captured
    timestamp = (sample.timestamp_us / 1_000_000.0) - (latency_ms / 1_000.0)

    fiducials = ()
    if len(raw) == SCALAR_FIELDS + VALUES_PER_FIDUCIAL * tag_count:
        fiducials = decode_fiducial_block(raw, SCALAR_FIELDS, tag_count)

    return PoseSnapshot(
        pose=decode_pose(raw),
        timestamp_seconds=timestamp,
        latency_ms=latency_ms,
        tag_count=tag_count,
        tag_span=extract(raw, 8),
        avg_tag_dist=extract(raw, 9),
        avg_tag_area=extract(raw, 10),
        fiducials=FiducialSet(fiducials),
        has_data=len(fiducials) > 0,
        is_megatag2=megatag2,
    )


class PoseEstimate:
    """
    Live pose estimate bound to one bus entry.

    State is replaced wholesale on every :meth:`refresh`; an empty sample only
    clears ``has_data`` and leaves the previous values in place.
    """

    def __init__(self, bus: TelemetryBus, table: str, entry: str, megatag2: bool = False):
        self.bus = bus
        self.table = table
        self.entry = entry
        self.is_megatag2 = megatag2
        self._state = PoseSnapshot(is_megatag2=megatag2)
        self._lock = threading.Lock()

    @property
    def key(self) -> str:
        return f"{self.table}/{self.entry}"

    def refresh(self) -> Optional[PoseSnapshot]:
        with self._lock:
            sample = self.bus.read_array(self.key)
            decoded = decode_pose_estimate(sample, self.is_megatag2)
            if decoded is None:
                if self._state.has_data:
                    self._state = replace(self._state, has_data=False)
                return None
            if decoded.tag_count and not decoded.has_data:
                log.debug(
                    "%s: %d values does not match %d tags, dropping tag blocks",
                    self.key, len(sample), decoded.tag_count,
                )
            self._state = decoded
            return decoded

    def snapshot(self) -> PoseSnapshot:
        with self._lock:
            return self._state

    @property
    def pose(self) -> Pose3D:
        return self.snapshot().pose

    @property
    def timestamp_seconds(self) -> float:
        return self.snapshot().timestamp_seconds

    @property
    def latency_ms(self) -> float:
        return self.snapshot().latency_ms

    @property
    def tag_count(self) -> int:
        return self.snapshot().tag_count

    @property
    def tag_span(self) -> float:
        return self.snapshot().tag_span

    @property
    def avg_tag_dist(self) -> float:
        return self.snapshot().avg_tag_dist

    @property
    def avg_tag_area(self) -> float:
        return self.snapshot().avg_tag_area

    @property
    def fiducials(self) -> FiducialSet:
        return self.snapshot().fiducials

    @property
    def has_data(self) -> bool:
        return self.snapshot().has_data

    def get_min_tag_ambiguity(self) -> float:
        return self.snapshot().get_min_tag_ambiguity()

    def get_max_tag_ambiguity(self) -> float:
        return self.snapshot().get_max_tag_ambiguity()

    def get_avg_tag_ambiguity(self) -> float:
        return self.snapshot().get_avg_tag_ambiguity()

    def __str__(self) -> str:
        return str(self.snapshot())


class BotPoseCache:
    """One :class:`PoseEstimate` per :class:`BotPose`, created on first use and kept."""

    def __init__(self, bus: TelemetryBus, table: str):
        self.bus = bus
        self.table = table
        self._entries: dict[BotPose, PoseEstimate] = {}
        self._lock = threading.Lock()

    def _entry(self, key: BotPose) -> PoseEstimate:
        with self._lock:
            estimate = self._entries.get(key)
            if estimate is None:
                estimate = PoseEstimate(self.bus, self.table, key.entry, key.is_megatag2)
                self._entries[key] = estimate
                log.debug("created pose estimate for %s", estimate.key)
            return estimate

    def get(self, key: BotPose) -> PoseEstimate:
        """Return the cached estimate for ``key`` after refreshing it."""
        estimate = self._entry(key)
        estimate.refresh()
        return estimate

    def fetch(self, key: BotPose) -> Optional[PoseSnapshot]:
        """Refresh the cached estimate and return the new snapshot, None if the entry is empty."""
        return self._entry(key).refresh()

    def __contains__(self, key: BotPose) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PoseEstimator:
    def __init__(self, cache: BotPoseCache, alliance_source: Optional[AllianceSource] = None, megatag2: bool = False):
        self.cache = cache
        self.alliance_source = alliance_source
        self.megatag2 = megatag2

    def get_pose_estimate(self) -> Optional[PoseSnapshot]:
        """Blue-origin estimate, the recommended frame regardless of alliance."""
        return self.cache.fetch(BotPose.BLUE_MEGATAG2 if self.megatag2 else BotPose.BLUE)

    def get_alliance_pose_estimate(self) -> Optional[PoseSnapshot]:
        """Estimate in the current alliance's origin, None while the alliance is unknown."""
        alliance = None
        if self.alliance_source is not None:
            alliance = self.alliance_source.current_alliance()
        if alliance is None:
            return None
        return self.cache.fetch(BotPose.for_alliance(alliance, self.megatag2))

    def get_bot_pose(self) -> Pose3D:
        """Deprecated field-centre MegaTag1 pose from the ``botpose`` entry."""
        sample = self.cache.bus.read_array(f"{self.cache.table}/botpose")
        return decode_legacy_botpose(sample.values)
