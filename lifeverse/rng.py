"""Deterministic uniform random stream used by the multiverse simulator.

A batch draws every random number from one ``Mulberry32`` stream so the whole
batch is reproducible from a single 32-bit seed. The generator keeps a single
32-bit integer of state and does no allocation per draw.
"""

from __future__ import annotations

import math
from numbers import Number
from typing import Any

from .errors import ConfigurationError

_MASK32 = 0xFFFFFFFF
_TWO_POW_32 = 4294967296.0
_GOLDEN_GAMMA = 0x9E3779B9


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def normalize_seed(seed: Any) -> int:
    """Coerce ``seed`` to an unsigned 32-bit integer.

    Non-numeric, non-finite or fractional seeds are configuration errors.
    """
    if isinstance(seed, bool) or not isinstance(seed, Number):
        raise ConfigurationError(f"Seed must be a number, got {seed!r}.")
    numeric = float(seed)
    if not math.isfinite(numeric):
        raise ConfigurationError(f"Seed must be finite, got {seed!r}.")
    if numeric != math.floor(numeric):
        raise ConfigurationError(f"Seed must be an integer, got {seed!r}.")
    return int(numeric) & _MASK32


def derive_seed(seed: int, stream: int) -> int:
    """Derive an independent substream seed for lane ``stream``.

    Uses the murmur3 32-bit finaliser over ``seed`` xor a golden-ratio multiple
    of the stream index, so neighbouring lanes get decorrelated seeds and the
    mapping never depends on the number of worker processes.
    """
    h = (normalize_seed(seed) ^ _imul(stream + 1, _GOLDEN_GAMMA)) & _MASK32
    h ^= h >> 16
    h = _imul(h, 0x85EBCA6B)
    h ^= h >> 13
    h = _imul(h, 0xC2B2AE35)
    h ^= h >> 16
    return h


class Mulberry32:
    """Seeded uniform generator producing floats in ``[0, 1)``.

    Calling the instance returns the next draw, so it can be passed anywhere a
    zero-argument ``rand()`` callable is expected.
    """

    __slots__ = ("_state", "draws")

    def __init__(self, seed: int):
        self._state = normalize_seed(seed)
        self.draws = 0

    def __call__(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        x = _imul(t ^ (t >> 15), 1 | t)
        x ^= (x + _imul(x ^ (x >> 7), 61 | x)) & _MASK32
        self.draws += 1
        return ((x ^ (x >> 14)) & _MASK32) / _TWO_POW_32

    def randrange(self, n: int) -> int:
        """Uniform integer in ``[0, n)``."""
        return int(self() * n)
