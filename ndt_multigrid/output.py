"""Trajectory and point cloud I/O.

Supports TUM format and CSV format for odometry, and CSV per-scan point
clouds with an ``x,y[,z]`` header.
"""
import numpy as np
from scipy.spatial.transform import Rotation

from .transform import to_se3


def rotation_matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Convert 3x3 rotation matrix to quaternion [qx, qy, qz, qw]."""
    return Rotation.from_matrix(R).as_quat()  # [x, y, z, w]


def trajectory_rows(trajectory: list):
    """(timestamp, T) pairs to (timestamp, pos(3,), quat(4,)) rows."""
    for ts, T in trajectory:
        T3 = to_se3(T)
        yield ts, T3[0:3, 3], rotation_matrix_to_quaternion(T3[0:3, 0:3])


def write_tum(filepath: str, trajectory: list):
    """Write trajectory in TUM format.

    Args:
        filepath: Output file path.
        trajectory: List of (timestamp, T) with T a (3, 3) or (4, 4)
                    homogeneous pose.
    """
    with open(filepath, 'w') as f:
        for ts, pos, q in trajectory_rows(trajectory):
            f.write(f"{ts:.6f} {pos[0]:.6f} {pos[1]:.6f} {pos[2]:.6f} "
                    f"{q[0]:.6f} {q[1]:.6f} {q[2]:.6f} {q[3]:.6f}\n")


def write_odometry_csv(filepath: str, trajectory: list):
    """Write trajectory as CSV with header.

    Columns: timestamp,tx,ty,tz,qx,qy,qz,qw
    """
    with open(filepath, 'w') as f:
        f.write("timestamp,tx,ty,tz,qx,qy,qz,qw\n")
        for ts, pos, q in trajectory_rows(trajectory):
            f.write(f"{ts:.6f},{pos[0]:.6f},{pos[1]:.6f},{pos[2]:.6f},"
                    f"{q[0]:.6f},{q[1]:.6f},{q[2]:.6f},{q[3]:.6f}\n")


def write_scan_csv(filepath: str, points: np.ndarray):
    """Write a single 2-D or 3-D point cloud scan as CSV."""
    header = "x,y,z" if points.shape[1] == 3 else "x,y"
    np.savetxt(filepath, points, delimiter=',', header=header,
               comments='', fmt='%.6f')


def read_scan_csv(filepath: str, dim: int = 2) -> np.ndarray:
    """Read an ``x,y[,z,...]`` CSV scan written by write_scan_csv.

    Extra columns (intensity, ...) are ignored.

    Returns:
        (N, dim) float64 array.

    Raises:
        ValueError: if the file has fewer than ``dim`` columns.
    """
    data = np.genfromtxt(filepath, delimiter=',', skip_header=1, ndmin=2)
    if data.size == 0:
        return np.zeros((0, dim))
    if data.shape[1] < dim:
        raise ValueError(f"{filepath}: expected at least {dim} columns, "
                         f"got {data.shape[1]}")
    return data[:, 0:dim].astype(np.float64)
