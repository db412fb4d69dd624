from __future__ import annotations

"""Distribution fits and sampling kernels for the rotation, translation and defocus axes.

Rotation spread is expressed as ratios ``k`` in ``(0, 1]``: ``1`` is the uniform
distribution (minimum concentration) and small values are tightly peaked.

* 3D: Angular Central Gaussian with matrix ``diag(1, k1, k2, k3)`` in the frame
  of the mean orientation. ``k1``/``k2`` cover the out-of-plane tilt, ``k3`` the
  residual in-plane spread.
* 2D: von Mises with concentration ``kappa``, mapped to ``k = 1 / (1 + kappa)``.
"""

import numpy as np
from scipy.stats import chi2

from .quaternion import (
    as_quaternions,
    normalize_quaternions,
    quaternion_conjugate,
    quaternion_multiply,
)
from .resampling import normalize_weights


def sample_uniform_rotations(count: int, rng: np.random.Generator) -> np.ndarray:
    return normalize_quaternions(rng.standard_normal((count, 4)))


def sample_acg(
    count: int,
    k1: float,
    k2: float,
    k3: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw unit quaternions around the identity from ACG(diag(1, k1, k2, k3))."""
    scale = np.sqrt(np.asarray([1.0, k1, k2, k3], dtype=np.float64))
    return normalize_quaternions(rng.standard_normal((count, 4)) * scale[None, :])


def mean_rotation(quaternions: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """Principal axis of the weighted scatter matrix; sign-invariant mean orientation."""
    q = as_quaternions(quaternions)
    w = normalize_weights(weights)
    scatter = (q * w[:, None]).T @ q
    _, vectors = np.linalg.eigh(scatter)
    return normalize_quaternions(vectors[:, -1])[0]


def infer_acg(
    samples: np.ndarray,
    weights: np.ndarray,
    *,
    iterations: int = 8,
    ridge: float = 1e-9,
) -> np.ndarray:
    """Weighted Tyler fixed-point estimate of the ACG matrix, scaled to trace 4."""
    x = as_quaternions(samples)
    w = normalize_weights(weights)
    identity = np.eye(4, dtype=np.float64)

    matrix = (x * w[:, None]).T @ x * 4.0
    for _ in range(max(0, int(iterations))):
        regularized = matrix + ridge * np.trace(matrix) / 4.0 * identity
        inverse = np.linalg.inv(regularized)
        mahalanobis = np.einsum("ij,jk,ik->i", x, inverse, x)
        mahalanobis = np.maximum(mahalanobis, 1e-300)
        matrix = 4.0 * (x * (w / mahalanobis)[:, None]).T @ x
        matrix *= 4.0 / np.trace(matrix)
    return matrix


def acg_spread(
    quaternions: np.ndarray,
    weights: np.ndarray,
    *,
    k_min: float,
    iterations: int = 8,
) -> tuple[float, float, float, np.ndarray]:
    """Fit ``(k1, k2, k3)`` of a weighted quaternion sample and return its mean too."""
    q = as_quaternions(quaternions)
    mean = mean_rotation(q, weights)
    relative = quaternion_multiply(quaternion_conjugate(mean)[None, :], q)
    matrix = infer_acg(relative, weights, iterations=iterations, ridge=k_min * 1e-3)

    lead = float(matrix[0, 0])
    if lead <= 0.0:
        return (1.0, 1.0, 1.0, mean)
    ratios = np.clip(np.diag(matrix)[1:] / lead, k_min, 1.0)
    return (float(ratios[0]), float(ratios[1]), float(ratios[2]), mean)


def _a1_inverse(resultant: float) -> float:
    """Best & Fisher approximation to the inverse of I1(kappa) / I0(kappa)."""
    if resultant < 0.53:
        return 2.0 * resultant + resultant**3 + 5.0 * resultant**5 / 6.0
    if resultant < 0.85:
        return -0.4 + 1.39 * resultant + 0.43 / (1.0 - resultant)
    return 1.0 / (resultant**3 - 4.0 * resultant**2 + 3.0 * resultant)


def infer_von_mises(
    vectors: np.ndarray,
    weights: np.ndarray,
    *,
    kappa_max: float,
) -> tuple[float, float]:
    """Return ``(kappa, mean_angle)`` from the weighted mean resultant length."""
    v = as_quaternions(vectors)
    w = normalize_weights(weights)
    theta = np.arctan2(v[:, 1], v[:, 0])
    c = float(np.sum(w * np.cos(theta)))
    s = float(np.sum(w * np.sin(theta)))
    resultant = min(1.0, float(np.hypot(c, s)))
    mean_angle = float(np.arctan2(s, c))

    if resultant >= 1.0 - 1e-12:
        return (float(kappa_max), mean_angle)
    kappa = _a1_inverse(resultant)
    return (float(np.clip(kappa, 0.0, kappa_max)), mean_angle)


def kappa_to_spread(kappa: float) -> float:
    return 1.0 / (1.0 + max(0.0, float(kappa)))


def spread_to_kappa(spread: float) -> float:
    return max(0.0, 1.0 / max(float(spread), 1e-300) - 1.0)


def sample_von_mises(count: int, kappa: float, rng: np.random.Generator) -> np.ndarray:
    """In-plane angle offsets around zero; ``kappa == 0`` is uniform."""
    return rng.vonmises(0.0, max(0.0, float(kappa)), count)


def fit_gaussian_2d(
    points: np.ndarray,
    weights: np.ndarray,
    *,
    rho_min: float,
    rho_max: float,
) -> tuple[np.ndarray, float, float, float]:
    """Weighted mean, two standard deviations and correlation of 2D samples."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("translations must be Nx2")
    w = normalize_weights(weights)

    mean = w @ arr
    centred = arr - mean[None, :]
    cov = (centred * w[:, None]).T @ centred
    s0 = float(np.sqrt(max(0.0, cov[0, 0])))
    s1 = float(np.sqrt(max(0.0, cov[1, 1])))

    rho = 0.0
    if s0 > 0.0 and s1 > 0.0:
        rho = float(cov[0, 1] / (s0 * s1))
    return (mean, s0, s1, float(np.clip(rho, rho_min, rho_max)))


def sample_gaussian_2d(
    count: int,
    s0: float,
    s1: float,
    rho: float,
    rng: np.random.Generator,
) -> np.ndarray:
    z = rng.standard_normal((count, 2))
    out = np.empty((count, 2), dtype=np.float64)
    out[:, 0] = s0 * z[:, 0]
    out[:, 1] = s1 * (rho * z[:, 0] + np.sqrt(max(0.0, 1.0 - rho * rho)) * z[:, 1])
    return out


def fit_gaussian_1d(values: np.ndarray, weights: np.ndarray) -> tuple[float, float]:
    arr = np.asarray(values, dtype=np.float64)
    w = normalize_weights(weights)
    mean = float(w @ arr)
    variance = float(w @ (arr - mean) ** 2)
    return (mean, float(np.sqrt(max(0.0, variance))))


def confidence_radius(sigma: float, outside: float) -> float:
    """Radius of an isotropic 2D Gaussian holding ``1 - outside`` of its mass."""
    if not 0.0 < outside < 1.0:
        raise ValueError("re-centre threshold must lie in (0, 1)")
    return float(sigma * np.sqrt(chi2.isf(outside, df=2)))
