from __future__ import annotations

import numpy as np

from .model import MODE_3D, PAR_D, PAR_R, PAR_T
from .particle import Particle
from .quaternion import normalize_quaternions, quaternion_angle
from .report import display
from .symmetry import Symmetry


def main() -> None:
    rng = np.random.default_rng(7)
    true_rotation = normalize_quaternions(np.asarray([0.9, 0.2, -0.3, 0.1]))[0]
    true_translation = np.asarray([1.5, -0.5])

    particle = Particle(
        MODE_3D,
        n_c=1,
        n_r=400,
        n_t=200,
        n_d=20,
        trans_s=3.0,
        symmetry=Symmetry.from_name("C2"),
        rng=rng,
    )

    for iteration in range(12):
        # Synthetic likelihoods stand in for image comparison.
        rotation_error = quaternion_angle(particle.values(PAR_R), true_rotation[None, :])
        translation_error = np.linalg.norm(particle.values(PAR_T) - true_translation, axis=1)
        defocus_error = np.abs(particle.values(PAR_D) - 1.02)
        particle.set_weights(PAR_R, np.exp(-0.5 * (rotation_error / 0.2) ** 2))
        particle.set_weights(PAR_T, np.exp(-0.5 * (translation_error / 0.5) ** 2))
        particle.set_weights(PAR_D, np.exp(-0.5 * (defocus_error / 0.01) ** 2))

        particle.norm_w()
        particle.cal_rank1st()
        particle.cal_vari()
        particle.cal_score()
        for axis in (PAR_R, PAR_T, PAR_D):
            particle.set_peak_factor(axis)
            particle.resample(particle.count(axis), axis)
            particle.perturb(axis)
        particle.shuffle()

        print(
            f"iter={iteration:02d} dR={particle.diff_top_r():.4f} "
            f"dT={particle.diff_top_t():.4f} dD={particle.diff_top_d():.5f} "
            f"score={particle.score:.3g}"
        )

    print(display(particle))


if __name__ == "__main__":
    main()
