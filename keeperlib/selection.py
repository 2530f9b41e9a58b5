"""Helpers for filtering, deduplicating, ordering and batching upkeeps."""

from __future__ import annotations

import math
import struct
import threading
from typing import Any, Callable, Generic, Iterable, MutableSequence, Sequence, TypeVar, Union

from Crypto.Hash import keccak

from keeperlib.keys import BlockKey, UpkeepKey
from keeperlib.rand import CryptoRandSource, GoRand, KeyedCryptoRandSource
from keeperlib.types import UpkeepResult, UpkeepState

T = TypeVar("T")

Identifier = Union[bytes, bytearray, str]


def _as_float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _keyed_rand(key_rand_source: bytes) -> GoRand:
    return GoRand(KeyedCryptoRandSource(bytes(key_rand_source)))


def _identifier_text(identifier: Identifier) -> str:
    if isinstance(identifier, (bytes, bytearray)):
        return bytes(identifier).decode("utf-8", "surrogateescape")
    return str(identifier)


class CryptoShuffler(Generic[T]):
    """Shuffles sequences using the operating system's secure random source."""

    def shuffle(self, items: MutableSequence[T]) -> MutableSequence[T]:
        """Shuffle ``items`` in place and return it."""
        return GoRand(CryptoRandSource()).shuffle(items)


class SyncedList(Generic[T]):
    """A list that can be appended to from several threads."""

    def __init__(self) -> None:
        self._data: list[T] = []
        self._lock = threading.Lock()

    def append(self, *args: T) -> SyncedList[T]:
        """Append every argument and return this list."""
        with self._lock:
            self._data.extend(args)
        return self

    def values(self) -> list[T]:
        """Return a snapshot of the collected values."""
        with self._lock:
            return list(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def filter_upkeeps(upkeeps: Iterable[UpkeepResult], state: UpkeepState) -> list[UpkeepResult]:
    """Return the results whose state equals ``state``, in order."""
    return [upkeep for upkeep in upkeeps if upkeep.state == state]


def key_list(upkeeps: Iterable[UpkeepResult]) -> list[Any]:
    """Return the keys of ``upkeeps`` sorted by their text."""
    return sorted((upkeep.key for upkeep in upkeeps), key=str)


def filter_and_dedupe(inputs: Iterable[Iterable[T]], *args: Callable[[T], bool]) -> list[T]:
    """Flatten ``inputs``, keep values passing every filter, drop repeats.

    Values are compared by their string form; the first occurrence wins.
    """
    seen: set[str] = set()
    output: list[T] = []
    for values in inputs:
        for value in values:
            if not all(check(value) for check in args):
                continue
            text = str(value)
            if text not in seen:
                seen.add(text)
                output.append(value)
    return output


def filter_dedupe_shuffle_observations(
    upkeep_keys: Iterable[Iterable[Any]],
    key_rand_source: bytes,
    *args: Callable[[Any], bool],
) -> list[Any]:
    """Filter and dedupe keys, then shuffle them deterministically by key."""
    unique = filter_and_dedupe(upkeep_keys, *args)
    _keyed_rand(key_rand_source).shuffle(unique)
    return unique


def shuffle_observations(
    identifiers: MutableSequence[Identifier], key_rand_source: bytes
) -> MutableSequence[Identifier]:
    """Shuffle ``identifiers`` in place, deterministically by key, and return it."""
    return _keyed_rand(key_rand_source).shuffle(identifiers)


def create_keys_with_median_block(
    median_block: Any, identifier_lists: Iterable[Iterable[Identifier]]
) -> list[list[UpkeepKey]]:
    """Pair every identifier of every list with the median block."""
    return [
        [UpkeepKey.from_block_and_id(median_block, identifier) for identifier in identifiers]
        for identifiers in identifier_lists
    ]


def calculate_median_block(block_numbers: Iterable[int], report_block_lag: int) -> BlockKey:
    """Pick the upper median of the block numbers, less the report lag.

    The median is always one of the reported numbers; for an even count the
    higher of the two centre values is chosen. An empty input gives zero.
    """
    ordered = sorted(int(number) for number in block_numbers)
    median = ordered[len(ordered) // 2] if ordered else 0
    if report_block_lag > 0:
        median -= report_block_lag
    return BlockKey(str(median))


def sample_from_probability(rounds: int, nodes: int, probability: float) -> float:
    """Return the per-node sample ratio that reaches ``probability`` in ``rounds``.

    The ratio is rounded to two decimal places.
    """
    if rounds <= 0:
        raise ValueError("number of rounds must be greater than 0")
    if nodes <= 0:
        raise ValueError("number of nodes must be greater than 0")

    p = _as_float32(probability)
    if p > 1 or p <= 0:
        raise ValueError("probability must be less than 1 and greater than 0")

    remaining = 1.0 - p
    x = (remaining ** (1.0 / rounds)) ** (1.0 / nodes)
    ratio = abs(1.0 - x)
    ratio = math.floor(ratio / 0.01 + 0.5) * 0.01
    return _as_float32(ratio)


def lowest(values: Iterable[int]) -> int:
    """Return the smallest value, or 0 when there are none."""
    return min(values, default=0)


def random_key_source(config_digest: bytes, epoch: int, round_number: int) -> bytes:
    """Derive a 16-byte shuffle key shared by all nodes for one round."""
    digest = keccak.new(digest_bits=256)
    digest.update(bytes(config_digest))
    digest.update((epoch & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little"))
    digest.update((round_number & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little"))
    return digest.digest()[:16]


def upkeep_keys_to_string(keys: Iterable[Any]) -> str:
    """Join the keys' text with commas."""
    return ", ".join(str(key) for key in keys)


def upkeep_identifiers_to_string(identifiers: Iterable[Identifier]) -> str:
    """Join the identifiers' text with commas."""
    return ", ".join(_identifier_text(identifier) for identifier in identifiers)


def create_batches(items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split ``items`` into consecutive batches of at most ``size``."""
    if size <= 0:
        raise ValueError("batch size must be greater than 0")
    return [items[start : start + size] for start in range(0, len(items), size)]