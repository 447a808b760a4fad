from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Pose3D:
    """Field/robot pose. Translation in meters, rotation in radians."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    @classmethod
    def identity(cls) -> "Pose3D":
        return cls()

    @classmethod
    def from_degrees(cls, x, y, z, roll, pitch, yaw) -> "Pose3D":
        return cls(x, y, z, math.radians(roll), math.radians(pitch), math.radians(yaw))

    @property
    def translation(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)

    @property
    def rotation(self) -> tuple[float, float, float]:
        return (self.roll, self.pitch, self.yaw)

    @property
    def is_identity(self) -> bool:
        return self == Pose3D()

    def to_pose2d(self) -> "Pose2D":
        return Pose2D(self.x, self.y, self.yaw)


@dataclass(frozen=True)
class Pose2D:
    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0  # radians


@dataclass(frozen=True)
class AngularVelocity3D:
    """Angular rates in degrees per second."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0


@dataclass(frozen=True)
class Orientation3D:
    """Robot orientation written back to the sensor for MegaTag2.

    Angles are degrees, matching what the sensor expects on the bus.
    """

    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    angular_velocity: AngularVelocity3D = field(default_factory=AngularVelocity3D)


@dataclass(frozen=True)
class RawFiducial:
    id: int
    txnc: float
    tync: float
    ta: float
    dist_to_camera: float
    dist_to_robot: float
    ambiguity: float

    def __str__(self) -> str:
        return (
            f"Tag ID {self.id}\n"
            f"  TXNC: {self.txnc:.2f}\n"
            f"  TYNC: {self.tync:.2f}\n"
            f"  TA: {self.ta:.2f}\n"
            f"  Distance to Camera: {self.dist_to_camera:.2f} m\n"
            f"  Distance to Robot: {self.dist_to_robot:.2f} m\n"
            f"  Ambiguity: {self.ambiguity:.2f}\n"
        )


@dataclass(frozen=True)
class RawDetection:
    class_id: int
    txnc: float
    tync: float
    ta: float
    corners: tuple[tuple[float, float], ...]  # 4 (x, y) pixel corners


@dataclass(frozen=True)
class RawSample:
    values: tuple[float, ...] = ()
    timestamp_us: int = 0

    def __len__(self) -> int:
        return len(self.values)


class Alliance(Enum):
    RED = "red"
    BLUE = "blue"

    @classmethod
    def parse(cls, value) -> Optional["Alliance"]:
        if isinstance(value, Alliance):
            return value
        key = str(value or "").strip().lower()
        for member in cls:
            if member.value == key:
                return member
        return None
