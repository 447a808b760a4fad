"""SE(3) helpers for moving poses between field, robot, camera and target frames."""

import math
from typing import Tuple

import cv2
import numpy as np

from .types import Pose3D


def _rotation_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Extrinsic X-Y-Z rotation: R = Rz(yaw) @ Ry(pitch) @ Rx(roll)."""
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    Rx = np.array([[1, 0, 0], [0, cr, -sr], [0, sr, cr]])
    Ry = np.array([[cp, 0, sp], [0, 1, 0], [-sp, 0, cp]])
    Rz = np.array([[cy, -sy, 0], [sy, cy, 0], [0, 0, 1]])
    return Rz @ Ry @ Rx


def pose_to_matrix(pose: Pose3D) -> np.ndarray:
    """
    Convert a pose to a 4x4 homogeneous transformation matrix.

    Args:
        pose: Pose3D with rotation in radians

    Returns:
        4x4 homogeneous transformation matrix
    """
    T = np.eye(4)
    T[:3, :3] = _rotation_matrix(pose.roll, pose.pitch, pose.yaw)
    T[:3, 3] = pose.translation
    return T


def matrix_to_pose(T: np.ndarray) -> Pose3D:
    """
    Convert a 4x4 homogeneous transformation matrix back to a pose.

    Pitch is clamped to [-pi/2, pi/2]; at gimbal lock roll is folded into yaw.
    """
    R = T[:3, :3]
    pitch = math.asin(float(np.clip(-R[2, 0], -1.0, 1.0)))
    if abs(R[2, 0]) < 1.0 - 1e-9:
        roll = math.atan2(R[2, 1], R[2, 2])
        yaw = math.atan2(R[1, 0], R[0, 0])
    else:
        roll = 0.0
        yaw = math.atan2(-R[0, 1], R[1, 1])
    x, y, z = (float(v) for v in T[:3, 3])
    return Pose3D(x, y, z, roll, pitch, yaw)


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 homogeneous transformation matrix.

    For SE(3): T^-1 = [R^T, -R^T * t; 0, 1]
    """
    T_inv = np.eye(4)
    R = T[:3, :3]
    t = T[:3, 3]

    R_T = R.T
    T_inv[:3, :3] = R_T
    T_inv[:3, 3] = -R_T @ t

    return T_inv


def compose(a: Pose3D, b: Pose3D) -> Pose3D:
    """Apply ``b`` (expressed in ``a``'s frame) on top of ``a``."""
    return matrix_to_pose(pose_to_matrix(a) @ pose_to_matrix(b))


def relative_pose(reference: Pose3D, target: Pose3D) -> Pose3D:
    """
    Compute pose of ``target`` expressed in the ``reference`` frame.

    Both poses must be given in the same parent frame (e.g. field):
        T_ref_target = inv(T_field_ref) @ T_field_target
    """
    T_ref = pose_to_matrix(reference)
    T_target = pose_to_matrix(target)
    return matrix_to_pose(invert_transform(T_ref) @ T_target)


def pose_to_rvec_tvec(pose: Pose3D) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a pose to an OpenCV rotation vector and translation vector.

    Returns:
        (rvec, tvec) where rvec is (3,1) and tvec is (3,1)
    """
    T = pose_to_matrix(pose)
    rvec, _ = cv2.Rodrigues(T[:3, :3])
    tvec = T[:3, 3].reshape(3, 1)
    return rvec, tvec
