"""Rigid transforms in 2-D and 3-D as homogeneous matrices.

Pose parameter layouts:
    2-D: [tx, ty, phi]
    3-D: [tx, ty, tz, roll, pitch, yaw] with R = Rz(yaw) @ Ry(pitch) @ Rx(roll)

Rotation factories take a derivative ``order`` so the matcher can build the
first and second derivatives of a rotated point with the same code path.
"""
import math
import numpy as np

# Rotation plane (row, col) for rotations about x, y, z.
_ROTATION_PLANES = {0: (1, 2), 1: (2, 0), 2: (0, 1)}


def rot2d(phi: float, order: int = 0) -> np.ndarray:
    """2-D rotation matrix or its ``order``-th derivative w.r.t. phi.

    d^k/dphi^k cos(phi) = cos(phi + k*pi/2), same for sin.
    """
    c = math.cos(phi + order * math.pi / 2)
    s = math.sin(phi + order * math.pi / 2)
    return np.array([[c, -s],
                     [s, c]])


def axis_rotation(axis: int, angle: float, order: int = 0) -> np.ndarray:
    """Rotation about a single coordinate axis (0=x, 1=y, 2=z).

    Args:
        axis: Axis index.
        angle: Rotation angle in radians.
        order: Derivative order w.r.t. the angle.

    Returns:
        (3, 3) matrix. For order > 0 the entries off the rotation plane are 0.
    """
    i, j = _ROTATION_PLANES[axis]
    R = np.zeros((3, 3)) if order else np.eye(3)
    c = math.cos(angle + order * math.pi / 2)
    s = math.sin(angle + order * math.pi / 2)
    R[i, i] = c
    R[i, j] = -s
    R[j, i] = s
    R[j, j] = c
    return R


def euler_to_rot(angles, orders=(0, 0, 0)) -> np.ndarray:
    """Euler angles [roll, pitch, yaw] to R = Rz @ Ry @ Rx.

    ``orders`` selects the derivative order of each factor, so
    ``euler_to_rot(a, (1, 0, 0))`` is dR/droll.
    """
    return (axis_rotation(2, angles[2], orders[2]) @
            axis_rotation(1, angles[1], orders[1]) @
            axis_rotation(0, angles[0], orders[0]))


def rot_to_euler(R: np.ndarray) -> np.ndarray:
    """Rotation matrix to Euler angles (XYZ convention).

    Inverse of euler_to_rot away from the pitch = +-pi/2 singularity.

    Args:
        R: (3, 3) rotation matrix

    Returns:
        (3,) Euler angles [roll, pitch, yaw] in radians
    """
    sy = np.sqrt(R[0, 0] ** 2 + R[1, 0] ** 2)
    singular = sy < 1e-6
    if not singular:
        x = np.arctan2(R[2, 1], R[2, 2])
        y = np.arctan2(-R[2, 0], sy)
        z = np.arctan2(R[1, 0], R[0, 0])
    else:
        x = np.arctan2(-R[1, 2], R[1, 1])
        y = np.arctan2(-R[2, 0], sy)
        z = 0.0
    return np.array([x, y, z])


def se2(tx: float, ty: float, phi: float) -> np.ndarray:
    """(3, 3) homogeneous transform from translation and heading."""
    T = np.eye(3)
    T[0:2, 0:2] = rot2d(phi)
    T[0, 2] = tx
    T[1, 2] = ty
    return T


def se3(translation, angles) -> np.ndarray:
    """(4, 4) homogeneous transform from translation and Euler angles."""
    T = np.eye(4)
    T[0:3, 0:3] = euler_to_rot(angles)
    T[0:3, 3] = translation
    return T


def pose_matrix(params) -> np.ndarray:
    """Parameter vector (3 or 6 entries) to a homogeneous transform."""
    params = np.asarray(params, dtype=np.float64)
    if params.shape == (3,):
        return se2(params[0], params[1], params[2])
    if params.shape == (6,):
        return se3(params[0:3], params[3:6])
    raise ValueError(f"pose parameters must have 3 or 6 entries, got {params.shape}")


def pose_params(T: np.ndarray) -> np.ndarray:
    """Homogeneous transform to its parameter vector."""
    T = np.asarray(T, dtype=np.float64)
    if T.shape == (3, 3):
        return np.array([T[0, 2], T[1, 2], math.atan2(T[1, 0], T[0, 0])])
    if T.shape == (4, 4):
        return np.concatenate([T[0:3, 3], rot_to_euler(T[0:3, 0:3])])
    raise ValueError(f"transform must be (3, 3) or (4, 4), got {T.shape}")


def invert(T: np.ndarray) -> np.ndarray:
    """Inverse of a rigid homogeneous transform."""
    d = T.shape[0] - 1
    R = T[0:d, 0:d]
    inv = np.eye(d + 1)
    inv[0:d, 0:d] = R.T
    inv[0:d, d] = -R.T @ T[0:d, d]
    return inv


def apply(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Transform (N, D) points by a (D+1, D+1) homogeneous matrix."""
    d = T.shape[0] - 1
    return points @ T[0:d, 0:d].T + T[0:d, d]


def to_se3(T: np.ndarray) -> np.ndarray:
    """Lift a planar transform to 3-D (rotation about z). 3-D input is copied."""
    if T.shape == (4, 4):
        return T.copy()
    out = np.eye(4)
    out[0:2, 0:2] = T[0:2, 0:2]
    out[0:2, 3] = T[0:2, 2]
    return out


def _rotation(angles, orders) -> np.ndarray:
    if len(angles) == 1:
        return rot2d(angles[0], orders[0])
    return euler_to_rot(angles, orders)


def point_derivatives(params, points: np.ndarray):
    """Derivatives of T(params) @ x w.r.t. the pose parameters.

    Args:
        params: (P,) pose parameters, P = 3 (2-D) or 6 (3-D).
        points: (N, D) untransformed source points.

    Returns:
        jac: (N, D, P) first derivatives.
        hess: (N, P, P, D) second derivatives. Only the angular block is
            non-zero since the transform is linear in the translation.
    """
    params = np.asarray(params, dtype=np.float64)
    n, dim = points.shape
    n_params = params.shape[0]
    angles = params[dim:]
    n_rot = n_params - dim

    jac = np.zeros((n, dim, n_params))
    hess = np.zeros((n, n_params, n_params, dim))
    jac[:, :, 0:dim] = np.eye(dim)

    for k in range(n_rot):
        orders = [0] * n_rot
        orders[k] = 1
        jac[:, :, dim + k] = points @ _rotation(angles, orders).T
        for m in range(k, n_rot):
            orders = [0] * n_rot
            orders[k] += 1
            orders[m] += 1
            h = points @ _rotation(angles, orders).T
            hess[:, dim + k, dim + m, :] = h
            hess[:, dim + m, dim + k, :] = h
    return jac, hess
