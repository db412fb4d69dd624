from __future__ import annotations

"""Point-group symmetry descriptor shared read-only between filter instances."""

import re
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from .quaternion import (
    IDENTITY_QUATERNION,
    as_quaternions,
    matrix_to_quaternion,
    normalize_quaternions,
    quaternion_angle,
    quaternion_multiply,
)

_GROUP_RE = re.compile(r"^(?P<family>[CD])(?P<order>[1-9][0-9]*)$|^(?P<poly>[TOI])$")

# Folding keeps the current representative unless another one is closer by more than this.
_FOLD_TOLERANCE = 1e-12


class Symmetry:
    """Finite set of rotations under which the reconstructed structure is invariant.

    Two orientations ``q`` and ``q * g`` are equivalent for every group element
    ``g``. The element array is immutable, with the identity stored first.
    """

    def __init__(self, quaternions: np.ndarray, *, name: str = "custom") -> None:
        elements = normalize_quaternions(quaternions)
        unique: list[np.ndarray] = [IDENTITY_QUATERNION.copy()]
        for element in elements:
            if all(abs(float(np.dot(element, kept))) < 1.0 - 1e-9 for kept in unique):
                unique.append(element)

        self._elements = np.asarray(unique, dtype=np.float64)
        self._elements.setflags(write=False)
        self._name = name

    @classmethod
    def from_name(cls, name: str) -> "Symmetry":
        """Build ``C<n>``, ``D<n>``, ``T``, ``O`` or ``I`` (symmetry axis along z)."""
        normalized = name.strip().upper()
        match = _GROUP_RE.match(normalized)
        if match is None:
            raise ValueError(f"Unknown point group: {name!r}")
        group = Rotation.create_group(normalized)
        return cls(group.as_quat()[:, [3, 0, 1, 2]], name=normalized)

    @classmethod
    def from_matrices(cls, matrices: Sequence[np.ndarray], *, name: str = "custom") -> "Symmetry":
        arr = np.asarray(matrices, dtype=np.float64)
        if arr.ndim != 3 or arr.shape[1:] != (3, 3):
            raise ValueError("symmetry matrices must be Nx3x3")
        return cls(matrix_to_quaternion(arr), name=name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def elements(self) -> np.ndarray:
        return self._elements

    @property
    def order(self) -> int:
        return int(self._elements.shape[0])

    @property
    def is_trivial(self) -> bool:
        return self.order == 1

    def equivalents(self, quaternion: np.ndarray) -> np.ndarray:
        """All orientations equivalent to ``quaternion``, one per group element."""
        q = as_quaternions(quaternion)[0]
        return quaternion_multiply(q[None, :], self._elements)

    def fold(self, quaternions: np.ndarray, anchor: np.ndarray | None = None) -> np.ndarray:
        """Map every orientation to its representative closest to ``anchor``.

        The result is canonical (``w >= 0``) and folding twice equals folding once.
        """
        q = as_quaternions(quaternions)
        reference = IDENTITY_QUATERNION if anchor is None else as_quaternions(anchor)[0]

        # candidates[i, j] = q_i * g_j
        candidates = quaternion_multiply(q[:, None, :], self._elements[None, :, :])
        closeness = np.abs(candidates @ reference)
        best = np.argmax(closeness, axis=1)
        keep = closeness[:, 0] >= closeness[np.arange(len(q)), best] - _FOLD_TOLERANCE
        best[keep] = 0
        return normalize_quaternions(candidates[np.arange(len(q)), best])

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Smallest geodesic angle between ``a`` and any orientation equivalent to ``b``."""
        reference = as_quaternions(a)[0]
        return float(np.min(quaternion_angle(self.equivalents(b), reference[None, :])))

    def __repr__(self) -> str:
        return f"Symmetry(name={self._name!r}, order={self.order})"
