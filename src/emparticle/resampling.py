from __future__ import annotations

"""Weighted index resamplers shared by every particle axis."""

import logging

import numpy as np

from .model import Resampler

logger = logging.getLogger("emparticle.resampling")


def normalize_weights(weights: np.ndarray) -> np.ndarray:
    """Clip negatives and scale to unit sum; a zero-sum vector becomes uniform."""
    raw = np.maximum(np.asarray(weights, dtype=np.float64), 0.0)
    if raw.size == 0:
        return raw

    total = float(raw.sum())
    if not np.isfinite(total) or total <= 0.0:
        logger.debug("degenerate weight vector of %d entries reset to uniform", raw.size)
        return np.full(raw.size, 1.0 / raw.size, dtype=np.float64)
    return raw / total


def _searchsorted_indices(cumulative: np.ndarray, points: np.ndarray) -> np.ndarray:
    cumulative[-1] = 1.0
    indices = np.searchsorted(cumulative, points, side="right")
    return np.clip(indices, 0, len(cumulative) - 1).astype(np.int64)


class SystematicResampler(Resampler):
    def resample(self, weights: np.ndarray, count: int, rng: np.random.Generator) -> np.ndarray:
        if count <= 0:
            raise ValueError("resample count must be positive")

        cumulative = np.cumsum(normalize_weights(weights), dtype=np.float64)
        step = 1.0 / count
        start = rng.random() * step
        points = start + step * np.arange(count, dtype=np.float64)
        return _searchsorted_indices(cumulative, points)


class StratifiedResampler(Resampler):
    def resample(self, weights: np.ndarray, count: int, rng: np.random.Generator) -> np.ndarray:
        if count <= 0:
            raise ValueError("resample count must be positive")

        cumulative = np.cumsum(normalize_weights(weights), dtype=np.float64)
        points = (np.arange(count, dtype=np.float64) + rng.random(count)) / count
        return _searchsorted_indices(cumulative, points)


class MultinomialResampler(Resampler):
    def resample(self, weights: np.ndarray, count: int, rng: np.random.Generator) -> np.ndarray:
        if count <= 0:
            raise ValueError("resample count must be positive")

        normalized = normalize_weights(weights)
        return rng.choice(len(normalized), size=count, replace=True, p=normalized).astype(np.int64)


def build_resampler(name: str) -> Resampler:
    normalized = name.strip().lower()
    if normalized == "systematic":
        return SystematicResampler()
    if normalized == "stratified":
        return StratifiedResampler()
    if normalized == "multinomial":
        return MultinomialResampler()
    raise ValueError("Unknown resampler. Expected one of: systematic, stratified, multinomial")
