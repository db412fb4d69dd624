from __future__ import annotations

import numpy as np
import pytest

from emparticle.resampling import (
    MultinomialResampler,
    StratifiedResampler,
    SystematicResampler,
    build_resampler,
    normalize_weights,
)


def test_build_resampler_accepts_known_names() -> None:
    assert isinstance(build_resampler("systematic"), SystematicResampler)
    assert isinstance(build_resampler(" Stratified "), StratifiedResampler)
    assert isinstance(build_resampler("MULTINOMIAL"), MultinomialResampler)
    with pytest.raises(ValueError):
        build_resampler("residual")


def test_normalize_weights_handles_degenerate_vectors() -> None:
    np.testing.assert_allclose(normalize_weights(np.asarray([1.0, 3.0])), [0.25, 0.75])
    np.testing.assert_allclose(normalize_weights(np.zeros(4)), np.full(4, 0.25))
    np.testing.assert_allclose(normalize_weights(np.asarray([-1.0, 2.0])), [0.0, 1.0])
    np.testing.assert_allclose(normalize_weights(np.asarray([np.inf, 1.0])), [0.5, 0.5])
    assert normalize_weights(np.asarray([])).size == 0


@pytest.mark.parametrize("name", ["systematic", "stratified", "multinomial"])
def test_resamplers_return_valid_indices(rng: np.random.Generator, name: str) -> None:
    resampler = build_resampler(name)
    weights = rng.random(30)

    indices = resampler.resample(weights, 75, rng)

    assert indices.shape == (75,)
    assert indices.dtype == np.int64
    assert indices.min() >= 0
    assert indices.max() < 30
    with pytest.raises(ValueError):
        resampler.resample(weights, 0, rng)


@pytest.mark.parametrize("name", ["systematic", "stratified", "multinomial"])
def test_resamplers_only_pick_the_spike(rng: np.random.Generator, name: str) -> None:
    weights = np.zeros(20)
    weights[13] = 4.0

    indices = build_resampler(name).resample(weights, 40, rng)

    np.testing.assert_array_equal(indices, np.full(40, 13))


def test_systematic_counts_stay_within_one_of_expectation(rng: np.random.Generator) -> None:
    weights = normalize_weights(rng.random(12))

    indices = SystematicResampler().resample(weights, 1000, rng)

    counts = np.bincount(indices, minlength=12)
    assert counts.sum() == 1000
    assert np.all(np.abs(counts - 1000 * weights) <= 1.0 + 1e-9)


@pytest.mark.slow
@pytest.mark.parametrize("name", ["systematic", "stratified", "multinomial"])
def test_resampled_frequencies_match_weights(rng: np.random.Generator, name: str) -> None:
    weights = np.asarray([0.1, 0.2, 0.3, 0.4])

    indices = build_resampler(name).resample(weights, 200000, rng)

    frequencies = np.bincount(indices, minlength=4) / 200000
    np.testing.assert_allclose(frequencies, weights, atol=0.005)
