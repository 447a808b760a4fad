"""Fixed-layout array decoding for sensor bus entries.

Every function here is total: short or misaligned input yields an identity
pose, zeros or an empty tuple instead of an exception.
"""

import math
from typing import Sequence

import numpy as np

from .types import Orientation3D, AngularVelocity3D, Pose2D, Pose3D, RawDetection, RawFiducial

POSE_FIELDS = 6
SCALAR_FIELDS = 11
VALUES_PER_FIDUCIAL = 7
VALUES_PER_DETECTION = 12


def extract(raw: Sequence[float], index: int) -> float:
    """Return ``raw[index]`` or 0.0 when the index is out of range."""
    if index < 0 or index >= len(raw):
        return 0.0
    return float(raw[index])


def to_int(value: float) -> int:
    """Truncate toward zero like a C cast; NaN and infinities become 0."""
    value = float(value)
    if not math.isfinite(value):
        return 0
    return int(value)


def extract_int(raw: Sequence[float], index: int) -> int:
    return to_int(extract(raw, index))


def decode_pose(raw: Sequence[float]) -> Pose3D:
    """
    Decode ``[x, y, z, roll, pitch, yaw]`` (angles in degrees) into a Pose3D.

    Arrays shorter than 6 values decode to the identity pose.
    """
    if len(raw) < POSE_FIELDS:
        return Pose3D()
    x, y, z = (float(v) for v in raw[0:3])
    roll, pitch, yaw = np.deg2rad(np.asarray(raw[3:6], dtype=np.float64))
    return Pose3D(x, y, z, float(roll), float(pitch), float(yaw))


def decode_legacy_botpose(raw: Sequence[float]) -> Pose3D:
    """Decode the deprecated field-centre ``botpose`` entry (MegaTag1)."""
    return decode_pose(raw)


def decode_pose2d(raw: Sequence[float]) -> Pose2D:
    if len(raw) < POSE_FIELDS:
        return Pose2D()
    return Pose2D(float(raw[0]), float(raw[1]), float(np.deg2rad(raw[5])))


def pose_to_array(pose: Pose3D) -> list[float]:
    """Inverse of :func:`decode_pose`: meters and degrees."""
    angles = np.rad2deg(np.array(pose.rotation, dtype=np.float64))
    return [pose.x, pose.y, pose.z, *(float(a) for a in angles)]


def pose2d_to_array(pose: Pose2D) -> list[float]:
    return [pose.x, pose.y, 0.0, 0.0, 0.0, float(np.rad2deg(pose.heading))]


def translation_to_array(x: float, y: float, z: float) -> list[float]:
    return [float(x), float(y), float(z)]


def orientation_to_array(orientation: Orientation3D) -> list[float]:
    """Layout ``[yaw, yawRate, pitch, pitchRate, roll, rollRate]`` in degrees."""
    rates = orientation.angular_velocity
    return [
        float(orientation.yaw), float(rates.yaw),
        float(orientation.pitch), float(rates.pitch),
        float(orientation.roll), float(rates.roll),
    ]


def decode_orientation(raw: Sequence[float]) -> Orientation3D:
    return Orientation3D(
        yaw=extract(raw, 0),
        pitch=extract(raw, 2),
        roll=extract(raw, 4),
        angular_velocity=AngularVelocity3D(
            roll=extract(raw, 5),
            pitch=extract(raw, 3),
            yaw=extract(raw, 1),
        ),
    )


def decode_fiducial_block(raw: Sequence[float], offset: int, count: int) -> tuple[RawFiducial, ...]:
    """Decode ``count`` consecutive 7-field tag blocks starting at ``offset``."""
    if count <= 0 or offset < 0:
        return ()
    end = offset + count * VALUES_PER_FIDUCIAL
    if end > len(raw):
        return ()
    block = np.asarray(raw[offset:end], dtype=np.float64).reshape(count, VALUES_PER_FIDUCIAL)
    return tuple(
        RawFiducial(
            id=to_int(row[0]),
            txnc=float(row[1]),
            tync=float(row[2]),
            ta=float(row[3]),
            dist_to_camera=float(row[4]),
            dist_to_robot=float(row[5]),
            ambiguity=float(row[6]),
        )
        for row in block
    )


def decode_raw_fiducials(raw: Sequence[float]) -> tuple[RawFiducial, ...]:
    """Decode the standalone ``rawfiducials`` entry."""
    if len(raw) % VALUES_PER_FIDUCIAL != 0:
        return ()
    return decode_fiducial_block(raw, 0, len(raw) // VALUES_PER_FIDUCIAL)


def decode_raw_detections(raw: Sequence[float]) -> tuple[RawDetection, ...]:
    """Decode the standalone ``rawdetections`` entry (12 values per detection)."""
    if not len(raw) or len(raw) % VALUES_PER_DETECTION != 0:
        return ()
    rows = np.asarray(raw, dtype=np.float64).reshape(-1, VALUES_PER_DETECTION)
    detections = []
    for row in rows:
        corners = tuple((float(cx), float(cy)) for cx, cy in row[4:].reshape(4, 2))
        detections.append(
            RawDetection(
                class_id=to_int(row[0]),
                txnc=float(row[1]),
                tync=float(row[2]),
                ta=float(row[3]),
                corners=corners,
            )
        )
    return tuple(detections)
