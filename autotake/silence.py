"""Noise-gate style silence detection for a single sample block."""
from __future__ import annotations

import numpy as np

# Full-scale magnitude of a signed 32-bit sample; samples are divided by it to land in [-1, 1].
MAX_MAGNITUDE = float(2 ** 31 - 1)
# Normalized level that already counts as full energy. Values are divided by
# it and clamped to 1 so a few loud transients cannot dominate the average.
SENSITIVITY = 0.1
# Blocks whose soft-clamped RMS falls below this are silent.
SILENCE_THRESHOLD = 0.0001


def block_energy(block) -> float:
    """Return the RMS of the normalized, soft-clamped samples in ``block``."""
    samples = np.asarray(block, dtype=np.float64).ravel()
    if samples.size == 0:
        return 0.0
    level = np.abs(samples / MAX_MAGNITUDE)
    clamped = np.minimum(level / SENSITIVITY, 1.0)
    return float(np.sqrt(np.mean(clamped * clamped)))


def is_silent(block) -> bool:
    """True when the block's energy is strictly below ``SILENCE_THRESHOLD``.

    A block exactly at the threshold is not silent. An empty block carries no
    energy and is silent.
    """
    return block_energy(block) < SILENCE_THRESHOLD


__all__ = ["MAX_MAGNITUDE", "SENSITIVITY", "SILENCE_THRESHOLD", "block_energy", "is_silent"]
