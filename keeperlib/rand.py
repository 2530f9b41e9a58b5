"""Random sources and a generator that reproduces a well-known shuffle sequence."""

from __future__ import annotations

import secrets
from typing import MutableSequence, Protocol, TypeVar

from Crypto.Cipher import AES

_INT63_MASK = (1 << 63) - 1
_INT31_MAX = (1 << 31) - 1
_UINT32_MASK = (1 << 32) - 1

T = TypeVar("T")


class _Source(Protocol):
    def int63(self) -> int: ...


class KeyedCryptoRandSource:
    """Deterministic source: AES-CTR keystream with a zero IV."""

    def __init__(self, key: bytes) -> None:
        key = bytes(key)
        if len(key) != 16:
            raise ValueError("key must be exactly 16 bytes")
        self._cipher = AES.new(key, AES.MODE_CTR, nonce=b"", initial_value=0)

    def int63(self) -> int:
        """Return the next non-negative 63-bit value."""
        return int.from_bytes(self._cipher.encrypt(bytes(8)), "little") & _INT63_MASK


class CryptoRandSource:
    """Source backed by the operating system's secure random generator."""

    def int63(self) -> int:
        return int.from_bytes(secrets.token_bytes(8), "little") & _INT63_MASK


class GoRand:
    """Random number generator over a 63-bit source.

    Its bounded draws and shuffle consume the source exactly as the
    reference generator does, so a keyed source yields the same order on
    every node.
    """

    def __init__(self, source: _Source) -> None:
        self._source = source

    def int63(self) -> int:
        return self._source.int63()

    def uint32(self) -> int:
        return (self.int63() >> 31) & _UINT32_MASK

    def _int31(self) -> int:
        return self.int63() >> 32

    def int63n(self, n: int) -> int:
        """Return a value in [0, n) by rejection sampling."""
        if n <= 0 or n > _INT63_MASK:
            raise ValueError("invalid argument to int63n")
        if n & (n - 1) == 0:
            return self.int63() & (n - 1)
        limit = _INT63_MASK - (1 << 63) % n
        value = self.int63()
        while value > limit:
            value = self.int63()
        return value % n

    def int31n(self, n: int) -> int:
        """Return a value in [0, n) by rejection sampling."""
        if n <= 0 or n > _INT31_MAX:
            raise ValueError("invalid argument to int31n")
        if n & (n - 1) == 0:
            return self._int31() & (n - 1)
        limit = _INT31_MAX - (1 << 31) % n
        value = self._int31()
        while value > limit:
            value = self._int31()
        return value % n

    def _bounded(self, n: int) -> int:
        """Multiply-shift bounded draw used by shuffle."""
        product = self.uint32() * n
        low = product & _UINT32_MASK
        if low < n:
            threshold = ((1 << 32) - n) % n
            while low < threshold:
                product = self.uint32() * n
                low = product & _UINT32_MASK
        return product >> 32

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        """Shuffle ``items`` in place (Fisher-Yates) and return it."""
        i = len(items) - 1
        while i > _INT31_MAX - 1:
            j = self.int63n(i + 1)
            items[i], items[j] = items[j], items[i]
            i -= 1
        while i > 0:
            j = self._bounded(i + 1)
            items[i], items[j] = items[j], items[i]
            i -= 1
        return items