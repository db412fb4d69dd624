from __future__ import annotations

"""Per-axis sample buffers: values plus working and uniform/global weights."""

from dataclasses import dataclass

import numpy as np


@dataclass
class AxisSamples:
    """Values of one axis with two weight vectors aligned by index.

    ``values`` is ``(n,)`` int for classes, ``(n, 4)`` for rotations, ``(n, 2)``
    for translations and ``(n,)`` float for defocus factors.
    """

    values: np.ndarray
    w: np.ndarray
    u: np.ndarray

    def __post_init__(self) -> None:
        count = len(self.values)
        if self.w.shape != (count,) or self.u.shape != (count,):
            raise ValueError("weight vectors must align with the sample values")

    @classmethod
    def uniform(cls, values: np.ndarray) -> "AxisSamples":
        count = len(values)
        if count <= 0:
            raise ValueError("an axis needs at least one sample")
        return cls(
            values=values,
            w=np.full(count, 1.0 / count, dtype=np.float64),
            u=np.full(count, 1.0 / count, dtype=np.float64),
        )

    @property
    def count(self) -> int:
        return int(len(self.values))

    def check_index(self, index: int) -> int:
        i = int(index)
        if not 0 <= i < self.count:
            raise IndexError(f"sample index {index} out of range for {self.count} samples")
        return i

    def take(self, indices: np.ndarray) -> "AxisSamples":
        """New buffers holding the rows at ``indices``, in that order."""
        idx = np.asarray(indices, dtype=np.int64)
        return AxisSamples(
            values=self.values[idx].copy(),
            w=self.w[idx].copy(),
            u=self.u[idx].copy(),
        )

    def copy(self) -> "AxisSamples":
        return AxisSamples(values=self.values.copy(), w=self.w.copy(), u=self.u.copy())
