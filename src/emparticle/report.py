from __future__ import annotations

"""Plain-text dump of a particle filter: one block per axis, one row per sample."""

from pathlib import Path

import numpy as np

from .model import ALL_AXES, PAR_C, PAR_D, PAR_R, PAR_T, ParticleType, as_axis
from .particle import Particle

_VALUE_COLUMNS = {PAR_C: 1, PAR_R: 4, PAR_T: 2, PAR_D: 1}


def _format_value(axis: ParticleType, value: np.ndarray) -> list[str]:
    if axis == PAR_C:
        return [f"{int(value):d}"]
    if axis == PAR_D:
        return [f"{float(value):.12f}"]
    return [f"{float(component):15.9f}" for component in np.atleast_1d(value)]


def particle_table(
    particle: Particle,
    axis: ParticleType | int | None = None,
    *,
    sorted_order: bool = False,
    save_u: bool = False,
) -> str:
    """Render every sample of one or all axes with its aligned weight.

    Each block opens with ``# <AXIS> <count>``; rows hold the value columns,
    then ``w`` and optionally ``u``.
    """
    targets = ALL_AXES if axis is None else (as_axis(axis),)
    lines: list[str] = []
    for target in targets:
        values = particle.values(target)
        w = particle.weights(target)
        u = particle.global_weights(target)
        order = particle.i_sort(target) if sorted_order else np.arange(len(w))

        lines.append(f"# {target.name} {len(w)}")
        for index in order:
            columns = _format_value(target, values[index])
            columns.append(f"{w[index]:.17g}")
            if save_u:
                columns.append(f"{u[index]:.17g}")
            lines.append(" ".join(columns))
    return "\n".join(lines) + "\n"


def save_particles(
    path: str | Path,
    particle: Particle,
    axis: ParticleType | int | None = None,
    *,
    sorted_order: bool = False,
    save_u: bool = False,
) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        particle_table(particle, axis, sorted_order=sorted_order, save_u=save_u),
        encoding="utf-8",
    )
    return output_path


def read_particle_table(path: str | Path) -> dict[ParticleType, dict[str, np.ndarray]]:
    """Parse a table written by :func:`save_particles` into values and weights per axis."""
    blocks: dict[ParticleType, list[list[float]]] = {}
    current: ParticleType | None = None
    with Path(path).open("r", encoding="utf-8") as f:
        for raw in f:
            text = raw.strip()
            if not text:
                continue
            if text.startswith("#"):
                name = text[1:].split()[0]
                try:
                    current = ParticleType[name]
                except KeyError as exc:
                    raise ValueError(f"Unknown axis block {name!r} in {path}") from exc
                blocks[current] = []
                continue
            if current is None:
                raise ValueError(f"{path} has sample rows before any axis block")
            blocks[current].append([float(part) for part in text.split()])

    parsed: dict[ParticleType, dict[str, np.ndarray]] = {}
    for axis, rows in blocks.items():
        width = _VALUE_COLUMNS[axis]
        arr = np.asarray(rows, dtype=np.float64).reshape(len(rows), -1)
        values = arr[:, :width]
        if axis == PAR_C:
            values = values[:, 0].astype(np.int64)
        elif axis == PAR_D:
            values = values[:, 0]
        parsed[axis] = {"values": values, "w": arr[:, width]}
        if arr.shape[1] > width + 1:
            parsed[axis]["u"] = arr[:, width + 1]
    return parsed


def display(particle: Particle) -> str:
    """One summary line per axis: count, rank-1 value and fitted spread."""
    top = particle.rank1st()
    variance = particle.vari()
    quaternion = ", ".join(f"{float(value):.6f}" for value in top.rotation)
    return "\n".join(
        [
            f"{particle!r} score={particle.score:.6g}",
            f"  class       n={particle.n_c:<6d} top={top.cls}",
            f"  rotation    n={particle.n_r:<6d} top=({quaternion}) "
            f"k=({variance.k1:.4g}, {variance.k2:.4g}, {variance.k3:.4g})",
            f"  translation n={particle.n_t:<6d} top=({top.translation[0]:.4f}, {top.translation[1]:.4f}) "
            f"s=({variance.s0:.4g}, {variance.s1:.4g}) rho={variance.rho:.3f}",
            f"  defocus     n={particle.n_d:<6d} top={top.defocus:.6f} s={variance.s:.4g}",
        ]
    )
