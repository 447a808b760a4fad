from __future__ import annotations

from typing import Optional, Sequence

from .bus import TelemetryBus
from .decode import decode_pose, decode_raw_detections, decode_raw_fiducials, to_int
from .transforms import compose
from .types import Pose3D, RawDetection, RawFiducial

# [valid, count, latency, capture latency, tx, ty, txnc, tync, ta, tid,
#  detector class, classifier class, long side, short side, h extent, v extent, skew]
T2D_FIELDS = 17


class _TableReader:
    def __init__(self, bus: TelemetryBus, table: str):
        self.bus = bus
        self.table = table

    def _key(self, entry: str) -> str:
        return f"{self.table}/{entry}"

    def _scalar(self, entry: str, default: float = 0.0) -> float:
        return self.bus.read_scalar(self._key(entry), default)

    def _array(self, entry: str) -> tuple[float, ...]:
        return self.bus.read_array(self._key(entry)).values

    def _string(self, entry: str) -> str:
        return self.bus.read_string(self._key(entry), "")


class TargetData(_TableReader):
    """Primary-target values published every frame."""

    def has_target(self) -> bool:
        return self._scalar("tv") == 1.0

    @property
    def tx(self) -> float:
        return self._scalar("tx")

    @property
    def ty(self) -> float:
        return self._scalar("ty")

    @property
    def txnc(self) -> float:
        return self._scalar("txnc")

    @property
    def tync(self) -> float:
        return self._scalar("tync")

    @property
    def area(self) -> float:
        return self._scalar("ta")

    @property
    def apriltag_id(self) -> int:
        return to_int(self._scalar("tid"))

    @property
    def neural_class_id(self) -> str:
        return self._string("tclass")

    def color(self) -> tuple[float, ...]:
        return self._array("tc")

    def metrics(self) -> tuple[float, ...]:
        return self._array("t2d")

    def _metric(self, index: int) -> int:
        t2d = self.metrics()
        if len(t2d) != T2D_FIELDS:
            return 0
        return to_int(t2d[index])

    def target_count(self) -> int:
        return self._metric(1)

    def detector_class_index(self) -> int:
        return self._metric(10)

    def classifier_class_index(self) -> int:
        return self._metric(11)

    def robot_to_target(self) -> Pose3D:
        """Target pose in robot space."""
        return decode_pose(self._array("targetpose_robotspace"))

    def camera_to_target(self) -> Pose3D:
        """Target pose in camera space."""
        return decode_pose(self._array("targetpose_cameraspace"))

    def target_to_camera(self) -> Pose3D:
        """Camera pose in target space."""
        return decode_pose(self._array("camerapose_targetspace"))

    def target_to_robot(self) -> Pose3D:
        """Robot pose in target space."""
        return decode_pose(self._array("botpose_targetspace"))

    def field_pose(self, robot_pose: Pose3D) -> Optional[Pose3D]:
        """Place the primary target on the field given the robot's field pose."""
        if not self.has_target():
            return None
        return compose(robot_pose, self.robot_to_target())


class PipelineData(_TableReader):
    @property
    def processing_latency_ms(self) -> float:
        return self._scalar("tl")

    @property
    def capture_latency_ms(self) -> float:
        return self._scalar("cl")

    @property
    def total_latency_ms(self) -> float:
        return self.processing_latency_ms + self.capture_latency_ms

    @property
    def pipeline_index(self) -> int:
        return to_int(self._scalar("getpipe"))

    @property
    def pipeline_type(self) -> str:
        return self._string("getpipetype")


class SensorData(_TableReader):
    def __init__(self, bus: TelemetryBus, table: str):
        super().__init__(bus, table)
        self.target = TargetData(bus, table)
        self.pipeline = PipelineData(bus, table)

    def raw_fiducials(self) -> tuple[RawFiducial, ...]:
        return decode_raw_fiducials(self._array("rawfiducials"))

    def raw_detections(self) -> tuple[RawDetection, ...]:
        return decode_raw_detections(self._array("rawdetections"))

    def camera_to_robot(self) -> Pose3D:
        """Camera pose in robot space, as currently configured on the sensor."""
        return decode_pose(self._array("camerapose_robotspace"))

    def python_data(self) -> tuple[float, ...]:
        return self._array("llpython")

    def set_python_data(self, values: Sequence[float]) -> None:
        self.bus.write_array(self._key("llrobot"), values)

    @property
    def classifier_class(self) -> str:
        return self._string("tcclass")

    @property
    def detector_class(self) -> str:
        return self._string("tdclass")
