from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from enum import IntEnum
from typing import Any, Mapping, Optional

from .bus import TelemetryBus
from .decode import orientation_to_array, pose_to_array, translation_to_array
from .types import AngularVelocity3D, Orientation3D, Pose3D


class LEDMode(IntEnum):
    PIPELINE_CONTROL = 0
    FORCE_OFF = 1
    FORCE_BLINK = 2
    FORCE_ON = 3


class StreamMode(IntEnum):
    STANDARD = 0
    PIP_MAIN = 1
    PIP_SECONDARY = 2


class DownscalingOverride(IntEnum):
    PIPELINE = 0
    NO_DOWNSCALE = 1
    HALF = 2
    DOUBLE = 3
    TRIPLE = 4
    QUADRUPLE = 5


@dataclass(frozen=True)
class SensorSettings:
    """Settings written to the sensor in one batch. ``None`` fields are left untouched."""

    led_mode: Optional[LEDMode] = None
    pipeline_index: Optional[int] = None
    priority_tag_id: Optional[int] = None
    stream_mode: Optional[StreamMode] = None
    crop_window: Optional[tuple[float, float, float, float]] = None  # min_x, max_x, min_y, max_y
    robot_orientation: Optional[Orientation3D] = None
    downscaling: Optional[DownscalingOverride] = None
    apriltag_offset: Optional[tuple[float, float, float]] = None
    apriltag_id_filter: Optional[tuple[int, ...]] = None
    camera_offset: Optional[Pose3D] = None

    def with_changes(self, **changes: Any) -> "SensorSettings":
        return replace(self, **changes)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_entries(self) -> dict[str, Any]:
        entries: dict[str, Any] = {}
        if self.led_mode is not None:
            entries["ledMode"] = float(int(self.led_mode))
        if self.pipeline_index is not None:
            entries["pipeline"] = float(self.pipeline_index)
        if self.priority_tag_id is not None:
            entries["priorityid"] = float(self.priority_tag_id)
        if self.stream_mode is not None:
            entries["stream"] = float(int(self.stream_mode))
        if self.crop_window is not None:
            entries["crop"] = [float(v) for v in self.crop_window]
        if self.robot_orientation is not None:
            entries["robot_orientation_set"] = orientation_to_array(self.robot_orientation)
        if self.downscaling is not None:
            entries["fiducial_downscale_set"] = float(int(self.downscaling))
        if self.apriltag_offset is not None:
            entries["fiducial_offset_set"] = translation_to_array(*self.apriltag_offset)
        if self.apriltag_id_filter is not None:
            entries["fiducial_id_filters_set"] = [float(i) for i in self.apriltag_id_filter]
        if self.camera_offset is not None:
            entries["camerapose_robotspace_set"] = pose_to_array(self.camera_offset)
        return entries

    def apply(self, bus: TelemetryBus, table: str) -> dict[str, Any]:
        """Write every set field under ``table`` and flush once."""
        entries = self.to_entries()
        for name, value in entries.items():
            key = f"{table}/{name}"
            if isinstance(value, list):
                bus.write_array(key, value)
            else:
                bus.write_scalar(key, value)
        bus.flush()
        return entries

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _enum_value(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        return enum_cls[value.strip().upper()]
    return enum_cls(int(value))


def _tuple(value, cast=float, length: Optional[int] = None):
    if value is None:
        return None
    out = tuple(cast(v) for v in value)
    if length is not None and len(out) != length:
        raise ValueError(f"expected {length} values, got {len(out)}")
    return out


def settings_from_mapping(raw: Mapping[str, Any]) -> SensorSettings:
    if not isinstance(raw, Mapping):
        raise ValueError("settings must be a mapping")

    orientation = None
    orient_raw = raw.get("robot_orientation")
    if orient_raw is not None:
        rates = orient_raw.get("angular_velocity", {}) or {}
        orientation = Orientation3D(
            yaw=float(orient_raw.get("yaw", 0.0)),
            pitch=float(orient_raw.get("pitch", 0.0)),
            roll=float(orient_raw.get("roll", 0.0)),
            angular_velocity=AngularVelocity3D(
                roll=float(rates.get("roll", 0.0)),
                pitch=float(rates.get("pitch", 0.0)),
                yaw=float(rates.get("yaw", 0.0)),
            ),
        )

    camera_offset = None
    offset_raw = raw.get("camera_offset")
    if offset_raw is not None:
        # degrees in config files, like on the bus
        camera_offset = Pose3D.from_degrees(*_tuple(offset_raw, length=6))

    pipeline_index = raw.get("pipeline_index")
    priority_tag_id = raw.get("priority_tag_id")
    return SensorSettings(
        led_mode=_enum_value(LEDMode, raw.get("led_mode")),
        pipeline_index=int(pipeline_index) if pipeline_index is not None else None,
        priority_tag_id=int(priority_tag_id) if priority_tag_id is not None else None,
        stream_mode=_enum_value(StreamMode, raw.get("stream_mode")),
        crop_window=_tuple(raw.get("crop_window"), length=4),
        robot_orientation=orientation,
        downscaling=_enum_value(DownscalingOverride, raw.get("downscaling")),
        apriltag_offset=_tuple(raw.get("apriltag_offset"), length=3),
        apriltag_id_filter=_tuple(raw.get("apriltag_id_filter"), cast=int),
        camera_offset=camera_offset,
    )
