from __future__ import annotations

import math

import numpy as np
import pytest

from emparticle.directional import (
    acg_spread,
    confidence_radius,
    fit_gaussian_1d,
    fit_gaussian_2d,
    infer_von_mises,
    kappa_to_spread,
    mean_rotation,
    sample_acg,
    sample_gaussian_2d,
    sample_von_mises,
    spread_to_kappa,
)
from emparticle.quaternion import (
    angles_to_vectors,
    normalize_quaternions,
    quaternion_angle,
    quaternion_multiply,
)
from emparticle.symmetry import Symmetry


def test_sample_acg_is_unit_and_concentrated(rng: np.random.Generator) -> None:
    samples = sample_acg(500, 1e-4, 1e-4, 1e-4, rng)

    np.testing.assert_allclose(np.linalg.norm(samples, axis=1), 1.0, atol=1e-12)
    assert np.all(samples[:, 0] >= 0.0)
    assert float(quaternion_angle(samples, np.asarray([1.0, 0.0, 0.0, 0.0])).max()) < 0.2


def test_acg_spread_recovers_concentration_around_rotated_mean(rng: np.random.Generator) -> None:
    k = (0.01, 0.04, 0.09)
    centre = normalize_quaternions(np.asarray([0.5, -0.5, 0.5, 0.5]))[0]
    offsets = sample_acg(4000, *k, rng)
    samples = normalize_quaternions(quaternion_multiply(centre[None, :], offsets))

    k1, k2, k3, mean = acg_spread(samples, np.ones(4000), k_min=1e-6)

    assert float(quaternion_angle(mean, centre)) < 0.05
    assert k1 == pytest.approx(k[0], rel=0.25)
    assert k2 == pytest.approx(k[1], rel=0.25)
    assert k3 == pytest.approx(k[2], rel=0.25)


def test_acg_spread_fixed_points() -> None:
    uniform = Symmetry.from_name("O").elements
    spread = acg_spread(uniform, np.ones(len(uniform)), k_min=1e-6)
    np.testing.assert_allclose(spread[:3], 1.0, atol=1e-6)

    identical = np.tile([0.0, 1.0, 0.0, 0.0], (10, 1))
    spread = acg_spread(identical, np.ones(10), k_min=1e-5)
    assert spread[:3] == (1e-5, 1e-5, 1e-5)


def test_mean_rotation_ignores_quaternion_sign(rng: np.random.Generator) -> None:
    centre = normalize_quaternions(np.asarray([0.3, 0.8, -0.1, 0.5]))[0]
    samples = normalize_quaternions(
        quaternion_multiply(centre[None, :], sample_acg(200, 1e-3, 1e-3, 1e-3, rng)),
        canonical=False,
    )
    samples[::2] *= -1.0

    mean = mean_rotation(samples, np.ones(200))

    assert float(quaternion_angle(mean, centre)) < 0.05


def test_von_mises_fit_recovers_kappa(rng: np.random.Generator) -> None:
    theta = 1.2 + sample_von_mises(5000, 5.0, rng)

    kappa, mean_angle = infer_von_mises(angles_to_vectors(theta), np.ones(5000), kappa_max=1e6)

    assert kappa == pytest.approx(5.0, rel=0.15)
    assert mean_angle == pytest.approx(1.2, abs=0.05)


def test_von_mises_fixed_points() -> None:
    evenly_spaced = angles_to_vectors(np.arange(12) * (2.0 * np.pi / 12))
    kappa, _ = infer_von_mises(evenly_spaced, np.ones(12), kappa_max=1e6)
    assert kappa == pytest.approx(0.0, abs=1e-9)

    identical = angles_to_vectors(np.full(5, 0.4))
    kappa, mean_angle = infer_von_mises(identical, np.ones(5), kappa_max=250.0)
    assert kappa == 250.0
    assert mean_angle == pytest.approx(0.4)


def test_kappa_and_spread_are_inverse() -> None:
    assert kappa_to_spread(0.0) == 1.0
    assert kappa_to_spread(3.0) == pytest.approx(0.25)
    assert spread_to_kappa(0.25) == pytest.approx(3.0)
    assert spread_to_kappa(1.0) == 0.0


def test_fit_gaussian_2d_recovers_parameters(rng: np.random.Generator) -> None:
    points = np.asarray([2.0, -1.0]) + sample_gaussian_2d(20000, 0.5, 1.5, 0.6, rng)

    mean, s0, s1, rho = fit_gaussian_2d(points, np.ones(20000), rho_min=-0.9, rho_max=0.9)

    np.testing.assert_allclose(mean, [2.0, -1.0], atol=0.05)
    assert s0 == pytest.approx(0.5, rel=0.05)
    assert s1 == pytest.approx(1.5, rel=0.05)
    assert rho == pytest.approx(0.6, abs=0.03)


def test_fit_gaussian_2d_clamps_correlation_and_rejects_bad_shape() -> None:
    line = np.asarray([(1.0, -1.0), (-1.0, 1.0), (2.0, -2.0)])
    _, _, _, rho = fit_gaussian_2d(line, np.ones(3), rho_min=-0.9, rho_max=0.9)
    assert rho == pytest.approx(-0.9)

    _, s0, s1, rho = fit_gaussian_2d(np.zeros((4, 2)), np.ones(4), rho_min=-0.9, rho_max=0.9)
    assert (s0, s1, rho) == (0.0, 0.0, 0.0)

    with pytest.raises(ValueError):
        fit_gaussian_2d(np.zeros((4, 3)), np.ones(4), rho_min=-0.9, rho_max=0.9)


def test_fit_gaussian_1d_uses_weights() -> None:
    mean, sigma = fit_gaussian_1d(np.asarray([1.0, 3.0]), np.asarray([3.0, 1.0]))
    assert mean == pytest.approx(1.5)
    assert sigma == pytest.approx(math.sqrt(0.75))


def test_confidence_radius_follows_chi_square_two_dof() -> None:
    assert confidence_radius(1.0, 0.5) == pytest.approx(math.sqrt(2.0 * math.log(2.0)))
    assert confidence_radius(3.0, 0.01) == pytest.approx(3.0 * math.sqrt(-2.0 * math.log(0.01)))

    for outside in (0.0, 1.0, -0.2):
        with pytest.raises(ValueError):
            confidence_radius(1.0, outside)
