"""Vision sensor telemetry client: pose estimates from a key-value bus."""

from .config import ClientConfig
from .estimator import BotPose, BotPoseCache, PoseEstimate, PoseEstimator, PoseSnapshot
from .sensor import VisionSensor
from .worker import TelemetryWorker

__all__ = [
    "BotPose",
    "BotPoseCache",
    "ClientConfig",
    "PoseEstimate",
    "PoseEstimator",
    "PoseSnapshot",
    "TelemetryWorker",
    "VisionSensor",
]
