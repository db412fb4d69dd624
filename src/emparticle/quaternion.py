from __future__ import annotations

"""Quaternion and in-plane rotation helpers.

Quaternions are stored scalar-first, ``(w, x, y, z)``. An in-plane rotation by
``theta`` is stored in the same four-column layout as ``(cos, sin, 0, 0)``.
"""

import numpy as np
from scipy.spatial.transform import Rotation

IDENTITY_QUATERNION = np.asarray([1.0, 0.0, 0.0, 0.0], dtype=np.float64)


def as_quaternions(values: np.ndarray) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[None, :]
    if arr.ndim != 2 or arr.shape[1] != 4:
        raise ValueError("quaternions must be Nx4")
    return arr


def normalize_quaternions(values: np.ndarray, *, canonical: bool = True) -> np.ndarray:
    """Scale rows to unit norm; with ``canonical`` flip rows so that ``w >= 0``."""
    arr = as_quaternions(values).copy()
    norms = np.linalg.norm(arr, axis=1)
    bad = norms <= 1e-12
    if np.any(bad):
        arr[bad] = IDENTITY_QUATERNION
        norms[bad] = 1.0
    arr /= norms[:, None]
    if canonical:
        arr[arr[:, 0] < 0.0] *= -1.0
    return arr


def quaternion_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product ``a * b`` with broadcasting over leading dimensions."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    aw, ax, ay, az = a[..., 0], a[..., 1], a[..., 2], a[..., 3]
    bw, bx, by, bz = b[..., 0], b[..., 1], b[..., 2], b[..., 3]
    return np.stack(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ],
        axis=-1,
    )


def quaternion_conjugate(q: np.ndarray) -> np.ndarray:
    arr = np.array(q, dtype=np.float64)
    arr[..., 1:] *= -1.0
    return arr


def quaternion_to_matrix(q: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix of a single quaternion, or Nx3x3 for a stack."""
    arr = np.asarray(q, dtype=np.float64)
    scalar_last = arr[..., [1, 2, 3, 0]]
    return Rotation.from_quat(scalar_last).as_matrix()


def matrix_to_quaternion(matrix: np.ndarray) -> np.ndarray:
    scalar_last = Rotation.from_matrix(np.asarray(matrix, dtype=np.float64)).as_quat()
    return normalize_quaternions(scalar_last[..., [3, 0, 1, 2]])


def angles_to_vectors(theta: np.ndarray) -> np.ndarray:
    theta = np.atleast_1d(np.asarray(theta, dtype=np.float64))
    out = np.zeros((theta.size, 4), dtype=np.float64)
    out[:, 0] = np.cos(theta)
    out[:, 1] = np.sin(theta)
    return out


def vectors_to_angles(vectors: np.ndarray) -> np.ndarray:
    arr = as_quaternions(vectors)
    return np.arctan2(arr[:, 1], arr[:, 0])


def normalize_vectors_2d(values: np.ndarray) -> np.ndarray:
    """Project rows onto the unit circle and zero the padding columns."""
    return angles_to_vectors(vectors_to_angles(values))


def rotation_matrix_2d(vector: np.ndarray) -> np.ndarray:
    arr = np.asarray(vector, dtype=np.float64)
    theta = float(np.arctan2(arr[1], arr[0]))
    c, s = np.cos(theta), np.sin(theta)
    return np.asarray([[c, -s], [s, c]], dtype=np.float64)


def quaternion_angle(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Geodesic angle in radians between rotations ``a`` and ``b`` (sign-invariant)."""
    dot = np.abs(np.sum(np.asarray(a, dtype=np.float64) * np.asarray(b, dtype=np.float64), axis=-1))
    return 2.0 * np.arccos(np.clip(dot, 0.0, 1.0))


def vector_angle(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Angle in radians between two in-plane rotations stored as unit vectors."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    dot = a[..., 0] * b[..., 0] + a[..., 1] * b[..., 1]
    return np.arccos(np.clip(dot, -1.0, 1.0))
