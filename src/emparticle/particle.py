from __future__ import annotations

"""Factorized particle filter over class, rotation, translation and defocus of one image."""

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping

import numpy as np

from . import directional
from .model import (
    ALL_AXES,
    MODE_2D,
    MODE_3D,
    PAR_C,
    PAR_D,
    PAR_R,
    PAR_T,
    Mode,
    ParticleEstimate,
    ParticleSummary,
    ParticleType,
    ParticleVariance,
    RotationFormat,
    as_axis,
)
from .quaternion import (
    IDENTITY_QUATERNION,
    angles_to_vectors,
    as_quaternions,
    normalize_quaternions,
    normalize_vectors_2d,
    quaternion_angle,
    quaternion_multiply,
    quaternion_to_matrix,
    rotation_matrix_2d,
    vector_angle,
    vectors_to_angles,
)
from .resampling import build_resampler, normalize_weights
from .store import AxisSamples
from .symmetry import Symmetry

logger = logging.getLogger("emparticle.particle")

PEAK_FACTOR_MAX = 0.5
PEAK_FACTOR_MIN = 1e-3
PEAK_FACTOR_C = 1 - 1e-2
PEAK_FACTOR_BASE = 2
RHO_MAX = 1 - 1e-1
RHO_MIN = -1 + 1e-1
PERTURB_K_MAX = 1.0


@dataclass(frozen=True)
class ParticleFilterConfig:
    peak_factor_max: float = PEAK_FACTOR_MAX
    peak_factor_min: float = PEAK_FACTOR_MIN
    peak_factor_c: float = PEAK_FACTOR_C
    peak_factor_base: float = PEAK_FACTOR_BASE
    rho_max: float = RHO_MAX
    rho_min: float = RHO_MIN
    perturb_k_max: float = PERTURB_K_MAX
    k_min: float = 1e-6
    kappa_max: float = 1e6
    defocus_std: float = 0.05
    balance_weight_cap: float = 0.5
    acg_iterations: int = 8
    resampler: str = "systematic"

    def __post_init__(self) -> None:
        if not 0.0 < self.peak_factor_min <= self.peak_factor_max:
            raise ValueError("peak factors require 0 < peak_factor_min <= peak_factor_max")
        if not 0.0 < self.peak_factor_c <= 1.0:
            raise ValueError("peak_factor_c must lie in (0, 1]")
        if self.peak_factor_base <= 1.0:
            raise ValueError("peak_factor_base must be greater than 1")
        if not -1.0 < self.rho_min < self.rho_max < 1.0:
            raise ValueError("rho bounds require -1 < rho_min < rho_max < 1")
        if not 0.0 < self.perturb_k_max <= 1.0:
            raise ValueError("perturb_k_max must lie in (0, 1]")
        if not 0.0 < self.k_min < 1.0:
            raise ValueError("k_min must lie in (0, 1)")
        if self.kappa_max <= 0.0:
            raise ValueError("kappa_max must be positive")
        if self.defocus_std < 0.0:
            raise ValueError("defocus_std must be non-negative")
        if not 0.0 < self.balance_weight_cap <= 1.0:
            raise ValueError("balance_weight_cap must lie in (0, 1]")
        if self.acg_iterations < 0:
            raise ValueError("acg_iterations must be non-negative")
        build_resampler(self.resampler)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ParticleFilterConfig":
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ValueError(f"Unknown particle filter settings: {', '.join(unknown)}")
        return cls(**dict(mapping))


def _positive_count(value: int, name: str) -> int:
    count = int(value)
    if count <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return count


class Particle:
    """Weighted sample sets for the four nuisance axes of a single image.

    Axes are independent (mean-field): each has its own count, values, working
    weights ``w`` and uniform/global weights ``u``. The symmetry descriptor is a
    shared read-only reference and is never copied or modified.
    """

    def __init__(
        self,
        mode: Mode | int = MODE_3D,
        n_c: int = 1,
        n_r: int = 1,
        n_t: int = 1,
        n_d: int = 1,
        trans_s: float = 1.0,
        trans_q: float = 0.01,
        symmetry: Symmetry | None = None,
        *,
        config: ParticleFilterConfig | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self._mode = Mode(mode)
        self._config = config or ParticleFilterConfig()
        self._rng = rng or np.random.default_rng()
        self._resampler = build_resampler(self._config.resampler)
        self._symmetry = symmetry
        self.trans_s = trans_s
        self.trans_q = trans_q

        self._axes: dict[ParticleType, AxisSamples] = {}
        self._peak_factor = {axis: self._config.peak_factor_max for axis in ALL_AXES}

        self._k1 = 1.0
        self._k2 = 1.0
        self._k3 = 1.0
        self._s0 = self._trans_s
        self._s1 = self._trans_s
        self._rho = 0.0
        self._s = self._config.defocus_std
        self._defocus_prior_s = self._config.defocus_std
        self._score = 0.0

        self._top: dict[ParticleType, Any] = {}
        self._top_prev: dict[ParticleType, Any] = {}
        self._reset_top()

        self.reset(n_c, n_r, n_t, n_d)

    # ------------------------------------------------------------------
    # Sample store accessors
    # ------------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def config(self) -> ParticleFilterConfig:
        return self._config

    @property
    def n_c(self) -> int:
        return self._axes[PAR_C].count

    @property
    def n_r(self) -> int:
        return self._axes[PAR_R].count

    @property
    def n_t(self) -> int:
        return self._axes[PAR_T].count

    @property
    def n_d(self) -> int:
        return self._axes[PAR_D].count

    def count(self, axis: ParticleType | int) -> int:
        return self._axes[as_axis(axis)].count

    @property
    def trans_s(self) -> float:
        """Standard deviation of the isotropic 2D Gaussian translation prior."""
        return self._trans_s

    @trans_s.setter
    def trans_s(self, value: float) -> None:
        if not float(value) > 0.0:
            raise ValueError("trans_s must be positive")
        self._trans_s = float(value)

    @property
    def trans_q(self) -> float:
        """Re-centre threshold: translations outside the ``1 - trans_q`` region are reset."""
        return self._trans_q

    @trans_q.setter
    def trans_q(self, value: float) -> None:
        if not 0.0 < float(value) < 1.0:
            raise ValueError("trans_q must lie in (0, 1)")
        self._trans_q = float(value)

    @property
    def symmetry(self) -> Symmetry | None:
        return self._symmetry

    @symmetry.setter
    def symmetry(self, value: Symmetry | None) -> None:
        self._symmetry = value

    def values(self, axis: ParticleType | int) -> np.ndarray:
        return self._axes[as_axis(axis)].values.copy()

    def weights(self, axis: ParticleType | int) -> np.ndarray:
        return self._axes[as_axis(axis)].w.copy()

    def global_weights(self, axis: ParticleType | int) -> np.ndarray:
        return self._axes[as_axis(axis)].u.copy()

    def set_values(self, axis: ParticleType | int, values: np.ndarray) -> None:
        """Replace the samples of an axis; a new count reallocates uniform weights."""
        axis = as_axis(axis)
        arr = self._coerce_values(axis, values)
        current = self._axes.get(axis)
        if current is not None and current.count == len(arr):
            self._axes[axis] = AxisSamples(values=arr, w=current.w, u=current.u)
        else:
            self._axes[axis] = AxisSamples.uniform(arr)

    def set_weights(self, axis: ParticleType | int, weights: np.ndarray) -> None:
        samples = self._axes[as_axis(axis)]
        samples.w = self._coerce_weights(samples, weights)

    def set_global_weights(self, axis: ParticleType | int, weights: np.ndarray) -> None:
        samples = self._axes[as_axis(axis)]
        samples.u = self._coerce_weights(samples, weights)

    def w(self, axis: ParticleType | int, index: int) -> float:
        samples = self._axes[as_axis(axis)]
        return float(samples.w[samples.check_index(index)])

    def set_w(self, axis: ParticleType | int, index: int, value: float) -> None:
        samples = self._axes[as_axis(axis)]
        samples.w[samples.check_index(index)] = self._coerce_weight(value)

    def mul_w(self, axis: ParticleType | int, index: int, factor: float) -> None:
        samples = self._axes[as_axis(axis)]
        i = samples.check_index(index)
        samples.w[i] = self._coerce_weight(samples.w[i] * float(factor))

    def u(self, axis: ParticleType | int, index: int) -> float:
        samples = self._axes[as_axis(axis)]
        return float(samples.u[samples.check_index(index)])

    def set_u(self, axis: ParticleType | int, index: int, value: float) -> None:
        samples = self._axes[as_axis(axis)]
        samples.u[samples.check_index(index)] = self._coerce_weight(value)

    def sample(self, axis: ParticleType | int, index: int) -> Any:
        axis = as_axis(axis)
        samples = self._axes[axis]
        return self._export_value(axis, samples.values[samples.check_index(index)])

    def set_sample(self, axis: ParticleType | int, index: int, value: Any) -> None:
        axis = as_axis(axis)
        samples = self._axes[axis]
        i = samples.check_index(index)
        samples.values[i] = self._coerce_values(axis, np.asarray([value]))[0]

    def quaternion(self, index: int) -> np.ndarray:
        return self.sample(PAR_R, index)

    def rot(self, index: int) -> np.ndarray:
        """2x2 (2D mode) or 3x3 (3D mode) rotation matrix of a rotation sample."""
        return self._rotation_output(self.quaternion(index), RotationFormat.MATRIX)

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def reset(
        self,
        n_c: int | None = None,
        n_r: int | None = None,
        n_t: int | None = None,
        n_d: int | None = None,
    ) -> None:
        """Re-initialise every axis to its non-informative prior."""
        counts = {PAR_C: n_c, PAR_R: n_r, PAR_T: n_t, PAR_D: n_d}
        for axis in ALL_AXES:
            self.reset_axis(axis, counts[axis])

    def reset_axis(self, axis: ParticleType | int, n: int | None = None) -> None:
        axis = as_axis(axis)
        count = _positive_count(n if n is not None else self.count(axis), "sample count")

        if axis == PAR_C:
            self._axes[PAR_C] = AxisSamples.uniform(np.arange(count, dtype=np.int64))
        elif axis == PAR_R:
            if self._mode == MODE_3D:
                rotations = directional.sample_uniform_rotations(count, self._rng)
                if self._has_symmetry():
                    rotations = self._symmetry.fold(rotations, IDENTITY_QUATERNION)
            else:
                rotations = angles_to_vectors(self._rng.uniform(0.0, 2.0 * np.pi, count))
            self._axes[PAR_R] = AxisSamples.uniform(rotations)
            self._k1 = self._k2 = self._k3 = 1.0
        elif axis == PAR_T:
            self._axes[PAR_T] = AxisSamples.uniform(
                directional.sample_gaussian_2d(count, self._trans_s, self._trans_s, 0.0, self._rng)
            )
            self._s0 = self._s1 = self._trans_s
            self._rho = 0.0
        else:
            self.init_d(count)
            return

        self._peak_factor[axis] = self._config.peak_factor_max

    def init_d(self, n_d: int, s_d: float | None = None) -> None:
        """Draw ``n_d`` defocus factors from a Gaussian around 1 with deviation ``s_d``."""
        count = _positive_count(n_d, "n_d")
        sigma = self._config.defocus_std if s_d is None else float(s_d)
        if sigma < 0.0:
            raise ValueError("defocus standard deviation must be non-negative")

        self._axes[PAR_D] = AxisSamples.uniform(1.0 + sigma * self._rng.standard_normal(count))
        self._s = sigma
        self._defocus_prior_s = sigma
        self._peak_factor[PAR_D] = self._config.peak_factor_max

    def load(
        self,
        summary: ParticleSummary,
        *,
        n_r: int,
        n_t: int,
        n_d: int,
    ) -> None:
        """Seed every axis around a stored rank-1 estimate using its spread as the prior."""
        n_r = _positive_count(n_r, "n_r")
        n_t = _positive_count(n_t, "n_t")
        n_d = _positive_count(n_d, "n_d")
        k_min = self._config.k_min
        self._k1, self._k2, self._k3 = (
            float(np.clip(k, k_min, 1.0)) for k in (summary.k1, summary.k2, summary.k3)
        )
        self._s0 = max(0.0, float(summary.s0))
        self._s1 = max(0.0, float(summary.s1))
        self._rho = 0.0
        self._s = max(0.0, float(summary.s))
        self._defocus_prior_s = self._s
        self._score = float(summary.score)

        self._axes[PAR_C] = AxisSamples.uniform(np.asarray([int(summary.cls)], dtype=np.int64))

        centre = as_quaternions(summary.quaternion)
        if self._mode == MODE_3D:
            centre = normalize_quaternions(centre)[0]
            offsets = directional.sample_acg(n_r, self._k1, self._k2, self._k3, self._rng)
            rotations = normalize_quaternions(quaternion_multiply(centre[None, :], offsets))
            if self._has_symmetry():
                rotations = self._symmetry.fold(rotations, centre)
        else:
            centre = normalize_vectors_2d(centre)[0]
            kappa = directional.spread_to_kappa(self._k1)
            theta = vectors_to_angles(centre)[0] + directional.sample_von_mises(n_r, kappa, self._rng)
            rotations = angles_to_vectors(theta)
        self._axes[PAR_R] = AxisSamples.uniform(rotations)

        translation = np.asarray(summary.translation, dtype=np.float64)
        self._axes[PAR_T] = AxisSamples.uniform(
            translation[None, :]
            + directional.sample_gaussian_2d(n_t, self._s0, self._s1, 0.0, self._rng)
        )
        self._axes[PAR_D] = AxisSamples.uniform(
            float(summary.defocus) + self._s * self._rng.standard_normal(n_d)
        )

        self._top = {
            PAR_C: int(summary.cls),
            PAR_R: centre.copy(),
            PAR_T: translation.copy(),
            PAR_D: float(summary.defocus),
        }
        self._top_prev = {axis: self._copy_top(value) for axis, value in self._top.items()}
        self.reset_peak_factor()

    def summary(self) -> ParticleSummary:
        """Rank-1 values, spread and score in the form accepted by :meth:`load`."""
        quaternion = self._top[PAR_R]
        translation = self._top[PAR_T]
        return ParticleSummary(
            quaternion=tuple(float(value) for value in quaternion),
            k1=self._k1,
            k2=self._k2,
            k3=self._k3,
            translation=(float(translation[0]), float(translation[1])),
            s0=self._s0,
            s1=self._s1,
            defocus=float(self._top[PAR_D]),
            s=self._s,
            score=self._score,
            cls=int(self._top[PAR_C]),
        )

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------

    def norm_w(self, axis: ParticleType | int | None = None) -> None:
        """Scale ``w`` and ``u`` of one or all axes to unit sum (uniform when degenerate)."""
        for target in self._targets(axis):
            samples = self._axes[target]
            samples.w = normalize_weights(samples.w)
            samples.u = normalize_weights(samples.u)

    def balance_weight(self, axis: ParticleType | int, cap: float | None = None) -> None:
        """Clip weights at ``cap`` and hand the excess to the rest in proportion to ``u``."""
        axis = as_axis(axis)
        samples = self._axes[axis]
        limit = self._config.balance_weight_cap if cap is None else float(cap)
        if not 0.0 < limit <= 1.0:
            raise ValueError("balance cap must lie in (0, 1]")
        limit = max(limit, 1.0 / samples.count)

        w = normalize_weights(samples.w)
        u = normalize_weights(samples.u)
        capped = np.zeros(samples.count, dtype=bool)
        for _ in range(samples.count):
            over = (w > limit * (1.0 + 1e-12)) & ~capped
            if not np.any(over):
                break
            capped |= over
            excess = float(np.sum(w[over] - limit))
            w[over] = limit
            share = np.where(capped, 0.0, u)
            if float(share.sum()) <= 0.0:
                share = (~capped).astype(np.float64)
            if float(share.sum()) <= 0.0:
                break
            w += excess * share / float(share.sum())
        samples.w = normalize_weights(w)

    # ------------------------------------------------------------------
    # Concentration estimator
    # ------------------------------------------------------------------

    def cal_vari(self, axis: ParticleType | int | None = None) -> None:
        """Fit the spread parameters of one or all axes from the weighted samples."""
        for target in self._targets(axis):
            samples = self._axes[target]
            if target == PAR_R:
                if self._mode == MODE_3D:
                    self._k1, self._k2, self._k3, _ = directional.acg_spread(
                        samples.values,
                        samples.w,
                        k_min=self._config.k_min,
                        iterations=self._config.acg_iterations,
                    )
                else:
                    kappa, _ = directional.infer_von_mises(
                        samples.values,
                        samples.w,
                        kappa_max=self._config.kappa_max,
                    )
                    spread = float(
                        np.clip(directional.kappa_to_spread(kappa), self._config.k_min, 1.0)
                    )
                    self._k1 = self._k2 = self._k3 = spread
            elif target == PAR_T:
                _, self._s0, self._s1, self._rho = directional.fit_gaussian_2d(
                    samples.values,
                    samples.w,
                    rho_min=self._config.rho_min,
                    rho_max=self._config.rho_max,
                )
            elif target == PAR_D:
                _, self._s = directional.fit_gaussian_1d(samples.values, samples.w)

    @property
    def k1(self) -> float:
        return self._k1

    @property
    def k2(self) -> float:
        return self._k2

    @property
    def k3(self) -> float:
        return self._k3

    @property
    def s0(self) -> float:
        return self._s0

    @property
    def s1(self) -> float:
        return self._s1

    @property
    def rho(self) -> float:
        return self._rho

    @property
    def s(self) -> float:
        return self._s

    def set_vari(
        self,
        *,
        k1: float | None = None,
        k2: float | None = None,
        k3: float | None = None,
        s0: float | None = None,
        s1: float | None = None,
        rho: float | None = None,
        s: float | None = None,
    ) -> None:
        k_min = self._config.k_min
        if k1 is not None:
            self._k1 = float(np.clip(k1, k_min, 1.0))
        if k2 is not None:
            self._k2 = float(np.clip(k2, k_min, 1.0))
        if k3 is not None:
            self._k3 = float(np.clip(k3, k_min, 1.0))
        if s0 is not None:
            self._s0 = max(0.0, float(s0))
        if s1 is not None:
            self._s1 = max(0.0, float(s1))
        if rho is not None:
            self._rho = float(np.clip(rho, self._config.rho_min, self._config.rho_max))
        if s is not None:
            self._s = max(0.0, float(s))

    def vari(self) -> ParticleVariance:
        return ParticleVariance(
            k1=self._k1,
            k2=self._k2,
            k3=self._k3,
            s0=self._s0,
            s1=self._s1,
            rho=self._rho,
            s=self._s,
        )

    def vari_r(self) -> float:
        if self._mode == MODE_2D:
            return self._k1
        return float(np.cbrt(self._k1 * self._k2 * self._k3))

    def vari_t(self) -> float:
        return float(np.sqrt(self._s0 * self._s1))

    def vari_d(self) -> float:
        return self._s

    def compress_c(self) -> float:
        """Effective sample size of the class weights as a fraction of ``n_c``."""
        w = normalize_weights(self._axes[PAR_C].w)
        return float(1.0 / np.sum(w * w) / len(w))

    def compress_r(self) -> float:
        return self.vari_r()

    def compress_t(self) -> float:
        return self.vari_t() / self._trans_s

    def compress_d(self) -> float:
        if self._defocus_prior_s <= 0.0:
            return 0.0
        return self._s / self._defocus_prior_s

    def compress(self, axis: ParticleType | int) -> float:
        axis = as_axis(axis)
        if axis == PAR_C:
            return self.compress_c()
        if axis == PAR_R:
            return self.compress_r()
        if axis == PAR_T:
            return self.compress_t()
        return self.compress_d()

    # ------------------------------------------------------------------
    # Perturbation engine
    # ------------------------------------------------------------------

    def peak_factor(self, axis: ParticleType | int) -> float:
        return self._peak_factor[as_axis(axis)]

    def set_peak_factor(self, axis: ParticleType | int) -> None:
        """Halve (by ``peak_factor_base``) the axis bandwidth once its spread has shrunk."""
        axis = as_axis(axis)
        if self.compress(axis) < self._config.peak_factor_c:
            self._peak_factor[axis] = max(
                self._config.peak_factor_min,
                self._peak_factor[axis] / self._config.peak_factor_base,
            )

    def reset_peak_factor(self, axis: ParticleType | int | None = None) -> None:
        for target in self._targets(axis):
            self._peak_factor[target] = self._config.peak_factor_max

    def perturb(self, axis: ParticleType | int, pf: float | None = None) -> None:
        """Diffuse every sample of an axis with a kernel of ``pf`` times the fitted spread.

        Weights are untouched. Class samples are discrete and stay as they are.
        """
        axis = as_axis(axis)
        factor = self._clamp_peak_factor(self._peak_factor[axis] if pf is None else pf)
        samples = self._axes[axis]
        count = samples.count

        if axis == PAR_R:
            k_max = self._config.perturb_k_max
            if self._mode == MODE_3D:
                offsets = directional.sample_acg(
                    count,
                    min(k_max, factor * self._k1),
                    min(k_max, factor * self._k2),
                    min(k_max, factor * self._k3),
                    self._rng,
                )
                samples.values = normalize_quaternions(quaternion_multiply(samples.values, offsets))
                self.symmetrise()
            else:
                kappa = directional.spread_to_kappa(min(k_max, factor * self._k1))
                theta = vectors_to_angles(samples.values)
                samples.values = angles_to_vectors(
                    theta + directional.sample_von_mises(count, kappa, self._rng)
                )
        elif axis == PAR_T:
            samples.values = samples.values + directional.sample_gaussian_2d(
                count,
                factor * self._s0,
                factor * self._s1,
                self._rho,
                self._rng,
            )
        elif axis == PAR_D:
            samples.values = samples.values + factor * self._s * self._rng.standard_normal(count)

    # ------------------------------------------------------------------
    # Resampler
    # ------------------------------------------------------------------

    def resample(self, n: int, axis: ParticleType | int, *, alpha: float = 0.0) -> None:
        """Draw ``n`` samples with replacement proportional to ``w``; weights become ``1/n``.

        A fraction ``alpha`` of the draws follows the uniform/global weights ``u``.
        """
        axis = as_axis(axis)
        count = _positive_count(n, "resample count")
        if not 0.0 <= float(alpha) <= 1.0:
            raise ValueError("alpha must lie in [0, 1]")

        samples = self._axes[axis]
        n_global = int(round(float(alpha) * count))
        parts = []
        if count - n_global > 0:
            parts.append(self._resampler.resample(samples.w, count - n_global, self._rng))
        if n_global > 0:
            parts.append(self._resampler.resample(samples.u, n_global, self._rng))
        chosen = samples.take(np.concatenate(parts))

        chosen.w = np.full(count, 1.0 / count, dtype=np.float64)
        chosen.u = normalize_weights(chosen.u)
        self._axes[axis] = chosen

        if axis == PAR_R:
            self.symmetrise()
        elif axis == PAR_T:
            self.re_centre()

    def symmetrise(self, anchor: np.ndarray | None = None) -> None:
        """Fold rotation samples into the fundamental domain nearest ``anchor`` (3D only).

        The anchor defaults to the rank-1 rotation.
        """
        if self._mode != MODE_3D or not self._has_symmetry():
            return
        reference = self._top[PAR_R] if anchor is None else normalize_quaternions(anchor)[0]
        samples = self._axes[PAR_R]
        samples.values = self._symmetry.fold(samples.values, reference)

    def re_centre(self) -> None:
        """Move translations outside the ``1 - trans_q`` confidence region back to the origin."""
        radius = directional.confidence_radius(self._trans_s, self._trans_q)
        samples = self._axes[PAR_T]
        outside = np.linalg.norm(samples.values, axis=1) > radius
        if np.any(outside):
            logger.debug(
                "re-centred %d of %d translations beyond radius %.4f",
                int(outside.sum()),
                samples.count,
                radius,
            )
            samples.values[outside] = 0.0

    # ------------------------------------------------------------------
    # Rank-1 and diagnostics
    # ------------------------------------------------------------------

    def cal_rank1st(self, axis: ParticleType | int | None = None) -> None:
        for target in self._targets(axis):
            samples = self._axes[target]
            best = int(np.argmax(samples.w))
            self._top_prev[target] = self._top[target]
            self._top[target] = self._export_value(target, samples.values[best])

    def rank1st(
        self,
        axis: ParticleType | int | None = None,
        *,
        rotation: RotationFormat = RotationFormat.QUATERNION,
    ) -> Any:
        """Current rank-1 value of one axis, or a :class:`ParticleEstimate` of all four."""
        values = {target: self._copy_top(self._top[target]) for target in ALL_AXES}
        return self._shape_result(values, axis, rotation)

    def rand(
        self,
        axis: ParticleType | int | None = None,
        *,
        rotation: RotationFormat = RotationFormat.QUATERNION,
    ) -> Any:
        """Draw from the weighted distribution of one axis, or from all four independently."""
        targets = ALL_AXES if axis is None else (as_axis(axis),)
        values = {}
        for target in targets:
            samples = self._axes[target]
            index = int(self._rng.choice(samples.count, p=normalize_weights(samples.w)))
            values[target] = self._export_value(target, samples.values[index])
        return self._shape_result(values, axis, rotation)

    def diff_top_c(self) -> float:
        return 0.0 if self._top[PAR_C] == self._top_prev[PAR_C] else 1.0

    def diff_top_r(self) -> float:
        """Angle in radians between the previous and current rank-1 rotation."""
        current = self._top[PAR_R]
        previous = self._top_prev[PAR_R]
        if np.array_equal(current, previous):
            return 0.0
        if self._mode == MODE_2D:
            return float(vector_angle(previous, current))
        if self._has_symmetry():
            return self._symmetry.distance(previous, current)
        return float(quaternion_angle(previous, current))

    def diff_top_t(self) -> float:
        return float(np.linalg.norm(self._top[PAR_T] - self._top_prev[PAR_T]))

    def diff_top_d(self) -> float:
        return abs(float(self._top[PAR_D]) - float(self._top_prev[PAR_D]))

    def cal_score(self) -> None:
        """Joint weight of the rank-1 combination under the independent-axis model."""
        score = 1.0
        for axis in ALL_AXES:
            score *= float(np.max(normalize_weights(self._axes[axis].w)))
        self._score = score

    @property
    def score(self) -> float:
        return self._score

    # ------------------------------------------------------------------
    # Ordering and pruning
    # ------------------------------------------------------------------

    def i_sort(self, axis: ParticleType | int) -> np.ndarray:
        """Indices of the samples of an axis by descending weight (stable)."""
        return np.argsort(-self._axes[as_axis(axis)].w, kind="stable")

    def sort(self, n: int | None = None, axis: ParticleType | int | None = None) -> None:
        """Order samples by descending weight; with ``n`` keep only the top ``n`` of ``axis``."""
        if n is not None and axis is None:
            raise ValueError("truncating sort needs an axis; use sort_top for all axes")
        for target in self._targets(axis):
            samples = self._axes[target]
            order = self.i_sort(target)
            if n is not None:
                keep = _positive_count(n, "sort count")
                if keep > samples.count:
                    raise ValueError(f"cannot keep {keep} of {samples.count} samples")
                order = order[:keep]
            self._axes[target] = samples.take(order)

    def sort_top(self, n_c: int, n_r: int, n_t: int, n_d: int) -> None:
        for axis, n in zip(ALL_AXES, (n_c, n_r, n_t, n_d), strict=True):
            self.sort(n, axis)

    def shuffle(self, axis: ParticleType | int | None = None) -> None:
        """Randomly permute storage order; every sample keeps its weights."""
        for target in self._targets(axis):
            samples = self._axes[target]
            self._axes[target] = samples.take(self._rng.permutation(samples.count))

    def keep_half_height_peak(self, axis: ParticleType | int) -> None:
        """Drop samples weighing less than half the maximum, then renormalise."""
        axis = as_axis(axis)
        samples = self._axes[axis]
        keep = np.flatnonzero(samples.w >= 0.5 * float(np.max(samples.w)))
        kept = samples.take(keep)
        kept.w = normalize_weights(kept.w)
        kept.u = normalize_weights(kept.u)
        self._axes[axis] = kept

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    def copy(self) -> "Particle":
        """Independent copy with new buffers; the symmetry reference is shared."""
        other = Particle.__new__(Particle)
        other.__dict__.update(self.__dict__)
        other._axes = {axis: samples.copy() for axis, samples in self._axes.items()}
        other._peak_factor = dict(self._peak_factor)
        other._top = {axis: self._copy_top(value) for axis, value in self._top.items()}
        other._top_prev = {axis: self._copy_top(value) for axis, value in self._top_prev.items()}
        other._rng = np.random.default_rng(int(self._rng.integers(0, 2**63 - 1)))
        return other

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _has_symmetry(self) -> bool:
        return self._symmetry is not None and not self._symmetry.is_trivial

    def _targets(self, axis: ParticleType | int | None) -> tuple[ParticleType, ...]:
        return ALL_AXES if axis is None else (as_axis(axis),)

    def _reset_top(self) -> None:
        self._top = {
            PAR_C: 0,
            PAR_R: IDENTITY_QUATERNION.copy(),
            PAR_T: np.zeros(2, dtype=np.float64),
            PAR_D: 1.0,
        }
        self._top_prev = {axis: self._copy_top(value) for axis, value in self._top.items()}

    @staticmethod
    def _copy_top(value: Any) -> Any:
        return value.copy() if isinstance(value, np.ndarray) else value

    def _clamp_peak_factor(self, pf: float) -> float:
        value = float(pf)
        if not np.isfinite(value) or value <= 0.0:
            raise ValueError(f"perturbation factor must be positive, got {pf!r}")
        clamped = float(np.clip(value, self._config.peak_factor_min, self._config.peak_factor_max))
        if clamped != value:
            logger.debug("perturbation factor %.6g clamped to %.6g", value, clamped)
        return clamped

    def _coerce_values(self, axis: ParticleType, values: np.ndarray) -> np.ndarray:
        if axis == PAR_C:
            arr = np.asarray(values).reshape(-1)
            if arr.dtype.kind not in "iu":
                as_float = arr.astype(np.float64)
                if not np.all(np.isfinite(as_float)) or np.any(as_float != np.round(as_float)):
                    raise ValueError("class indices must be integers")
            if np.any(arr < 0):
                raise ValueError("class indices must be non-negative")
            arr = arr.astype(np.int64)
        elif axis == PAR_R:
            arr = as_quaternions(values)
            arr = normalize_quaternions(arr) if self._mode == MODE_3D else normalize_vectors_2d(arr)
        elif axis == PAR_T:
            arr = np.array(values, dtype=np.float64)
            if arr.ndim == 1:
                arr = arr[None, :]
            if arr.ndim != 2 or arr.shape[1] != 2:
                raise ValueError("translations must be Nx2")
        else:
            arr = np.array(values, dtype=np.float64).reshape(-1)
        if len(arr) == 0:
            raise ValueError("an axis needs at least one sample")
        return arr

    @staticmethod
    def _coerce_weights(samples: AxisSamples, weights: np.ndarray) -> np.ndarray:
        arr = np.array(weights, dtype=np.float64).reshape(-1)
        if arr.shape != (samples.count,):
            raise ValueError(f"expected {samples.count} weights, got {arr.size}")
        if not np.all(np.isfinite(arr)) or np.any(arr < 0.0):
            raise ValueError("weights must be finite and non-negative")
        return arr

    @staticmethod
    def _coerce_weight(value: float) -> float:
        weight = float(value)
        if not np.isfinite(weight) or weight < 0.0:
            raise ValueError("weights must be finite and non-negative")
        return weight

    @staticmethod
    def _export_value(axis: ParticleType, value: Any) -> Any:
        if axis == PAR_C:
            return int(value)
        if axis == PAR_D:
            return float(value)
        return np.array(value, dtype=np.float64)

    def _rotation_output(self, value: np.ndarray, rotation: RotationFormat) -> np.ndarray:
        if RotationFormat(rotation) == RotationFormat.QUATERNION:
            return value
        if self._mode == MODE_2D:
            return rotation_matrix_2d(value)
        return quaternion_to_matrix(value)

    def _shape_result(
        self,
        values: Mapping[ParticleType, Any],
        axis: ParticleType | int | None,
        rotation: RotationFormat,
    ) -> Any:
        if axis is not None:
            target = as_axis(axis)
            value = values[target]
            return self._rotation_output(value, rotation) if target == PAR_R else value
        return ParticleEstimate(
            cls=values[PAR_C],
            rotation=self._rotation_output(values[PAR_R], rotation),
            translation=values[PAR_T],
            defocus=values[PAR_D],
        )

    def __repr__(self) -> str:
        return (
            f"Particle(mode={self._mode.name}, n_c={self.n_c}, n_r={self.n_r}, "
            f"n_t={self.n_t}, n_d={self.n_d}, symmetry={self._symmetry!r})"
        )
