from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from emparticle.model import MODE_3D, PAR_C, PAR_D, PAR_R, PAR_T
from emparticle.particle import Particle
from emparticle.report import display, particle_table, read_particle_table, save_particles


def _particle(rng: np.random.Generator) -> Particle:
    particle = Particle(MODE_3D, n_c=2, n_r=6, n_t=5, n_d=3, trans_s=1.5, rng=rng)
    for axis in (PAR_C, PAR_R, PAR_T, PAR_D):
        particle.set_weights(axis, rng.random(particle.count(axis)))
    particle.norm_w()
    return particle


def test_table_lists_every_sample_once(rng: np.random.Generator) -> None:
    particle = _particle(rng)

    lines = particle_table(particle).splitlines()

    headers = [line for line in lines if line.startswith("#")]
    assert headers == ["# PAR_C 2", "# PAR_R 6", "# PAR_T 5", "# PAR_D 3"]
    assert len(lines) == 4 + 2 + 6 + 5 + 3


def test_saved_table_reads_back(tmp_path: Path, rng: np.random.Generator) -> None:
    particle = _particle(rng)

    path = save_particles(tmp_path / "nested" / "particle.txt", particle, save_u=True)
    parsed = read_particle_table(path)

    assert path.exists()
    np.testing.assert_array_equal(parsed[PAR_C]["values"], particle.values(PAR_C))
    np.testing.assert_allclose(parsed[PAR_R]["values"], particle.values(PAR_R), atol=1e-8)
    np.testing.assert_allclose(parsed[PAR_T]["values"], particle.values(PAR_T), atol=1e-8)
    np.testing.assert_allclose(parsed[PAR_D]["values"], particle.values(PAR_D), atol=1e-11)
    for axis in (PAR_C, PAR_R, PAR_T, PAR_D):
        np.testing.assert_array_equal(parsed[axis]["w"], particle.weights(axis))
        np.testing.assert_array_equal(parsed[axis]["u"], particle.global_weights(axis))


def test_sorted_single_axis_table(tmp_path: Path, rng: np.random.Generator) -> None:
    particle = _particle(rng)

    path = save_particles(tmp_path / "t.txt", particle, PAR_T, sorted_order=True)
    parsed = read_particle_table(path)

    assert list(parsed) == [PAR_T]
    assert "u" not in parsed[PAR_T]
    np.testing.assert_array_equal(parsed[PAR_T]["w"], np.sort(particle.weights(PAR_T))[::-1])


def test_read_rejects_malformed_tables(tmp_path: Path) -> None:
    unknown = tmp_path / "unknown.txt"
    unknown.write_text("# PAR_X 1\n1 1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_particle_table(unknown)

    headless = tmp_path / "headless.txt"
    headless.write_text("1.0 0.5\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_particle_table(headless)


def test_display_summarises_each_axis(rng: np.random.Generator) -> None:
    particle = _particle(rng)
    particle.cal_rank1st()
    particle.cal_vari()
    particle.cal_score()

    lines = display(particle).splitlines()

    assert len(lines) == 5
    assert lines[0].startswith("Particle(mode=MODE_3D")
    assert "n=2" in lines[1]
    assert "n=6" in lines[2]
    assert "rho=" in lines[3]
    assert "n=3" in lines[4]
