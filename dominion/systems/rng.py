"""Domain-separated deterministic RNG using xxhash.

A turn's outcome depends only on WorldSeed + state at the previous turn;
worker thread scheduling order must not matter.

Formula: value = Hash(WorldSeed, Domain, Key, Turn)
"""

from __future__ import annotations

import struct
from typing import Sequence, TypeVar

import xxhash

from dominion.core.enums import Domain

T = TypeVar("T")


class DeterministicRNG:
    """Stateless domain-separated pseudo-random number generator.

    Each call is a pure function of (seed, domain, key, turn), with no
    internal mutable state, therefore fully thread-safe.
    """

    __slots__ = ("_seed",)

    _MAX_UINT64 = (1 << 64) - 1

    def __init__(self, seed: int) -> None:
        self._seed = seed

    @property
    def seed(self) -> int:
        return self._seed

    def _hash(self, domain: Domain, key: int, turn: int) -> int:
        payload = struct.pack("<qiqi", self._seed, domain.value, key, turn)
        return xxhash.xxh64(payload).intdigest()

    def next_float(self, domain: Domain, key: int, turn: int) -> float:
        """Return a deterministic float in [0.0, 1.0)."""
        return self._hash(domain, key, turn) / (self._MAX_UINT64 + 1)

    def next_int(self, domain: Domain, key: int, turn: int, low: int, high: int) -> int:
        """Return a deterministic integer in [low, high] inclusive."""
        f = self.next_float(domain, key, turn)
        return low + int(f * (high - low + 1))

    def next_bool(self, domain: Domain, key: int, turn: int, probability: float = 0.5) -> bool:
        return self.next_float(domain, key, turn) < probability

    def choice(self, domain: Domain, key: int, turn: int, options: Sequence[T]) -> T:
        if not options:
            raise IndexError("choice from an empty sequence")
        return options[self.next_int(domain, key, turn, 0, len(options) - 1)]
