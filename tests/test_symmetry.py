from __future__ import annotations

import numpy as np
import pytest

from emparticle.quaternion import normalize_quaternions, quaternion_angle
from emparticle.symmetry import Symmetry


@pytest.mark.parametrize(
    ("name", "order"),
    [("C4", 4), ("c7", 7), ("D2", 4), ("D5", 10), ("T", 12), ("O", 24), ("I", 60)],
)
def test_named_groups_have_expected_order(name: str, order: int) -> None:
    symmetry = Symmetry.from_name(name)

    assert symmetry.order == order
    assert symmetry.name == name.upper()
    np.testing.assert_array_equal(symmetry.elements[0], [1.0, 0.0, 0.0, 0.0])
    assert not symmetry.is_trivial


@pytest.mark.parametrize("name", ["", "C0", "X3", "Dn", "OO"])
def test_unknown_group_names_raise(name: str) -> None:
    with pytest.raises(ValueError):
        Symmetry.from_name(name)


def test_elements_are_read_only() -> None:
    symmetry = Symmetry.from_name("D3")
    with pytest.raises(ValueError):
        symmetry.elements[0, 0] = 0.5


def test_from_matrices_deduplicates_and_prepends_identity() -> None:
    half_turn = np.diag([-1.0, -1.0, 1.0])
    symmetry = Symmetry.from_matrices([half_turn, half_turn, np.eye(3)], name="C2z")

    assert symmetry.order == 2
    assert repr(symmetry) == "Symmetry(name='C2z', order=2)"
    with pytest.raises(ValueError):
        Symmetry.from_matrices(np.eye(3))


def test_fold_is_idempotent_and_stays_in_orbit(rng: np.random.Generator) -> None:
    symmetry = Symmetry.from_name("I")
    quaternions = normalize_quaternions(rng.standard_normal((100, 4)))
    anchor = normalize_quaternions(np.asarray([0.2, 0.9, 0.1, -0.3]))[0]

    once = symmetry.fold(quaternions, anchor)
    twice = symmetry.fold(once, anchor)

    np.testing.assert_allclose(twice, once, atol=1e-12)
    assert np.all(once[:, 0] >= 0.0)
    for folded, source in zip(once, quaternions):
        assert symmetry.distance(source, folded) == pytest.approx(0.0, abs=1e-6)


def test_fold_picks_representative_nearest_anchor(rng: np.random.Generator) -> None:
    symmetry = Symmetry.from_name("C6")
    anchor = normalize_quaternions(np.asarray([0.6, 0.2, 0.7, 0.3]))[0]
    quaternions = normalize_quaternions(rng.standard_normal((50, 4)))

    folded = symmetry.fold(quaternions, anchor)

    for q, representative in zip(quaternions, folded):
        candidates = symmetry.equivalents(q)
        best = float(quaternion_angle(candidates, anchor[None, :]).min())
        assert float(quaternion_angle(representative, anchor)) == pytest.approx(best, abs=1e-6)


def test_distance_is_zero_between_equivalent_orientations() -> None:
    symmetry = Symmetry.from_name("D2")
    q = normalize_quaternions(np.asarray([0.9, -0.1, 0.3, 0.2]))[0]

    for equivalent in symmetry.equivalents(q):
        assert symmetry.distance(q, equivalent) == pytest.approx(0.0, abs=1e-6)

    far = normalize_quaternions(np.asarray([0.0, 0.6, 0.0, 0.8]))[0]
    assert symmetry.distance(q, far) > 0.1
