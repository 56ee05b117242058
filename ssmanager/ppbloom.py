"""Bloom filters, including a ping-pong pair for nonce reuse detection."""

from __future__ import annotations

import hashlib
import math

_BytesLike = (bytes, bytearray, memoryview)


def _as_bytes(item) -> bytes:
    if not isinstance(item, _BytesLike):
        raise TypeError(f"expected a bytes-like object, got {type(item).__name__}")
    return bytes(item)


class BloomFilter:
    """A fixed-size Bloom filter sized for *entries* items at false-positive rate *error*."""

    def __init__(self, entries: int, error: float) -> None:
        if entries < 1:
            raise ValueError("entries must be at least 1")
        if not 0 < error < 1:
            raise ValueError("error must be between 0 and 1")
        self.entries = entries
        self.error = error
        bits_per_entry = -math.log(error) / (math.log(2) ** 2)
        self.bits = max(1, int(entries * bits_per_entry))
        self.hashes = max(1, math.ceil(math.log(2) * bits_per_entry))
        self._bitmap = bytearray((self.bits + 7) // 8)

    def _positions(self, item) -> list[int]:
        digest = hashlib.blake2b(_as_bytes(item), digest_size=16).digest()
        a = int.from_bytes(digest[:8], "little")
        b = int.from_bytes(digest[8:], "little") | 1
        return [(a + i * b) % self.bits for i in range(self.hashes)]

    def _is_set(self, position: int) -> bool:
        return bool(self._bitmap[position >> 3] & (1 << (position & 7)))

    def add(self, item) -> bool:
        """Add *item*; return True if it was possibly present already."""
        present = True
        for position in self._positions(item):
            if not self._is_set(position):
                present = False
                self._bitmap[position >> 3] |= 1 << (position & 7)
        return present

    def check(self, item) -> bool:
        """Return True if *item* is possibly in the filter, False if surely not."""
        return all(self._is_set(position) for position in self._positions(item))

    def __contains__(self, item) -> bool:
        return self.check(item)


class PingPongBloom:
    """Two Bloom filters used in turn, so old entries age out.

    Each filter holds half of *entries*. When the active filter is full the
    other one is cleared and becomes active, so the most recent half to full
    set of entries is always remembered.
    """

    def __init__(self, entries: int, error: float) -> None:
        self.entries = entries // 2
        self.error = error
        self._filters = [BloomFilter(self.entries, error), BloomFilter(self.entries, error)]
        self._counts = [0, 0]
        self._current = 0

    def add(self, item) -> None:
        """Record *item* in the active filter, rotating when it is full."""
        current = self._current
        self._filters[current].add(item)
        self._counts[current] += 1
        if self._counts[current] >= self.entries:
            self._counts[current] = 0
            self._current = 1 - current
            self._filters[self._current] = BloomFilter(self.entries, self.error)

    def check(self, item) -> bool:
        """Return True if *item* was possibly added recently."""
        return any(bloom.check(item) for bloom in self._filters)

    def __contains__(self, item) -> bool:
        return self.check(item)