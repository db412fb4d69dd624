from __future__ import annotations

"""Shared data model and component interfaces for the per-image particle filter."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, IntEnum

import numpy as np


class ParticleType(IntEnum):
    """Axis tag selecting one of the four independent sample sets."""

    PAR_C = 0
    PAR_R = 1
    PAR_T = 2
    PAR_D = 3


PAR_C = ParticleType.PAR_C
PAR_R = ParticleType.PAR_R
PAR_T = ParticleType.PAR_T
PAR_D = ParticleType.PAR_D

ALL_AXES: tuple[ParticleType, ...] = (PAR_C, PAR_R, PAR_T, PAR_D)


class Mode(IntEnum):
    """MODE_2D: the reference is a 2D image and rotation is in-plane only.

    MODE_3D: the reference is a 3D volume and rotation is a unit quaternion.
    """

    MODE_2D = 0
    MODE_3D = 1


MODE_2D = Mode.MODE_2D
MODE_3D = Mode.MODE_3D


class RotationFormat(str, Enum):
    """Output shape of a rotation returned by rank-1 and random draws."""

    QUATERNION = "quaternion"
    MATRIX = "matrix"


def as_axis(axis: ParticleType | int) -> ParticleType:
    try:
        return ParticleType(axis)
    except ValueError as exc:
        raise ValueError(f"Unknown particle axis: {axis!r}") from exc


@dataclass(frozen=True)
class ParticleEstimate:
    """One value per axis: the rank-1 combination or a joint random draw.

    ``rotation`` is a length-4 quaternion, or a 2x2 / 3x3 rotation matrix when
    requested with ``RotationFormat.MATRIX``.
    """

    cls: int
    rotation: np.ndarray
    translation: np.ndarray
    defocus: float


@dataclass(frozen=True)
class ParticleVariance:
    """Fitted distribution parameters of the rotation, translation and defocus axes."""

    k1: float
    k2: float
    k3: float
    s0: float
    s1: float
    rho: float
    s: float


@dataclass(frozen=True)
class ParticleSummary:
    """Rank-1 result and spread of a converged filter, used to seed the next round."""

    quaternion: tuple[float, float, float, float]
    k1: float
    k2: float
    k3: float
    translation: tuple[float, float]
    s0: float
    s1: float
    defocus: float
    s: float
    score: float
    cls: int = 0


class Resampler(ABC):
    @abstractmethod
    def resample(self, weights: np.ndarray, count: int, rng: np.random.Generator) -> np.ndarray:
        """Indices of ``count`` draws proportional to ``weights``."""
