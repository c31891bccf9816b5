"""Seeded linear-congruential RNG and sequence helpers.

The generator is deliberately tiny: its whole state is one integer, which
makes it trivial to snapshot and replay.
"""
from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")

_MULTIPLIER = 9301
_INCREMENT = 49297
_MODULUS = 233280


class SeededRandom:
    def __init__(self, seed: int) -> None:
        self._seed = seed

    @property
    def seed(self) -> int:
        """Current generator state. Feeding it to ``reset`` resumes the stream."""
        return self._seed

    def next(self) -> float:
        """Return a float in ``[0, 1)``."""
        self._seed = (self._seed * _MULTIPLIER + _INCREMENT) % _MODULUS
        return self._seed / _MODULUS

    def next_int(self, lo: int, hi: int) -> int:
        """Return an integer in ``[lo, hi)``."""
        return int(self.next() * (hi - lo)) + lo

    def reset(self, seed: int) -> None:
        self._seed = seed


def shuffle(items: Sequence[T], rng: SeededRandom) -> list[T]:
    """Fisher-Yates shuffle into a new list. ``items`` is not modified."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.next_int(0, i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def choice(items: Sequence[T], rng: SeededRandom) -> T:
    if not items:
        raise IndexError("Cannot choose from an empty sequence")
    return items[rng.next_int(0, len(items))]


def sample(items: Sequence[T], count: int, rng: SeededRandom) -> list[T]:
    """Pick up to ``count`` distinct positions without replacement."""
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    return shuffle(items, rng)[: min(count, len(items))]
