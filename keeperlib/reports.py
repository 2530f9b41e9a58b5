"""ABI encoding and decoding of keeper reports."""

from __future__ import annotations

from typing import Any, Sequence

from keeperlib.keys import UpkeepKey, UpkeepKeyNotParsableError
from keeperlib.types import UpkeepResult, UpkeepState, identifier_to_int

_WORD = 32
_UINT256_MOD = 1 << 256
_UINT32_MAX = (1 << 32) - 1
_HEAD_WORDS = 4


class ReportDecodeError(ValueError):
    """Raised when report bytes cannot be decoded."""


def _uint256(value: Any) -> bytes:
    if value is None:
        raise ValueError("missing uint256 value")
    return (int(value) % _UINT256_MOD).to_bytes(_WORD, "big")


def _pad(data: bytes) -> bytes:
    return data + bytes(-len(data) % _WORD)


def _encode_bytes(data: bytes) -> bytes:
    return _uint256(len(data)) + _pad(data)


def _encode_perform(result: UpkeepResult) -> bytes:
    block = int(result.check_block_number)
    if not 0 <= block <= _UINT32_MAX:
        raise ValueError(f"check block number {block} does not fit in uint32")
    block_hash = bytes(result.check_block_hash)
    if len(block_hash) != _WORD:
        raise ValueError("check block hash must be exactly 32 bytes")
    perform = bytes(result.perform_data or b"")
    return _uint256(block) + block_hash + _uint256(3 * _WORD) + _encode_bytes(perform)


def _encode_dynamic_array(elements: Sequence[bytes]) -> bytes:
    heads = []
    offset = len(elements) * _WORD
    for element in elements:
        heads.append(_uint256(offset))
        offset += len(element)
    return _uint256(len(elements)) + b"".join(heads) + b"".join(elements)


def _as_upkeep_key(key: Any) -> UpkeepKey:
    if isinstance(key, UpkeepKey):
        return key
    if isinstance(key, (bytes, bytearray)):
        return UpkeepKey(bytes(key).decode("utf-8", "surrogateescape"))
    return UpkeepKey(str(key))


class _Reader:
    """Bounds-checked access to ABI encoded data."""

    def __init__(self, data: bytes) -> None:
        self.data = data

    def _require(self, end: int) -> None:
        if end > len(self.data):
            raise ReportDecodeError(
                f"abi: cannot marshal in to go type: length insufficient {len(self.data)} require {end}"
            )

    def word(self, pos: int) -> int:
        self._require(pos + _WORD)
        return int.from_bytes(self.data[pos : pos + _WORD], "big")

    def raw(self, pos: int, length: int) -> bytes:
        self._require(pos + length)
        return self.data[pos : pos + length]

    def uint_array(self, pos: int) -> list[int]:
        count = self.word(pos)
        start = pos + _WORD
        self._require(start + count * _WORD)
        return [self.word(start + index * _WORD) for index in range(count)]

    def perform_array(self, pos: int) -> list[tuple[int, bytes, bytes]]:
        count = self.word(pos)
        start = pos + _WORD
        self._require(start + count * _WORD)
        performs = []
        for index in range(count):
            tuple_pos = start + self.word(start + index * _WORD)
            block = self.word(tuple_pos)
            if block > _UINT32_MAX:
                raise ReportDecodeError("abi: check block number overflows uint32")
            block_hash = self.raw(tuple_pos + _WORD, _WORD)
            bytes_pos = tuple_pos + self.word(tuple_pos + 2 * _WORD)
            length = self.word(bytes_pos)
            perform_data = self.raw(bytes_pos + _WORD, length)
            performs.append((block, block_hash, perform_data))
        return performs


class EVMReportEncoder:
    """Encodes upkeep results into the registry's report format and back."""

    def encode_report(self, results: Sequence[UpkeepResult]) -> bytes:
        """Encode results as (fastGasWei, linkNative, upkeepIds, wrappedPerformDatas)."""
        if not results:
            return b""

        base = 0
        for index, result in enumerate(results):
            if result.check_block_number > base:
                base = index

        ids = []
        for result in results:
            _, identifier = _as_upkeep_key(result.key).block_key_and_upkeep_id()
            try:
                ids.append(identifier_to_int(identifier))
            except ValueError:
                raise UpkeepKeyNotParsableError("upkeep key not parsable") from None

        try:
            encoded_ids = _uint256(len(ids)) + b"".join(_uint256(i) for i in ids)
            encoded_performs = _encode_dynamic_array([_encode_perform(r) for r in results])
            head = (
                _uint256(results[base].fast_gas_wei)
                + _uint256(results[base].link_native)
                + _uint256(_HEAD_WORDS * _WORD)
                + _uint256(_HEAD_WORDS * _WORD + len(encoded_ids))
            )
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{exc}: failed to pack report data") from exc

        return head + encoded_ids + encoded_performs

    def decode_report(self, report: bytes) -> list[UpkeepResult]:
        """Decode report bytes; every decoded result is eligible."""
        data = bytes(report)
        if not data:
            raise ReportDecodeError(
                "abi: attempting to unmarshall an empty string while arguments are expected"
            )

        reader = _Reader(data)
        fast_gas = reader.word(0)
        link = reader.word(_WORD)
        ids = reader.uint_array(reader.word(2 * _WORD))
        performs = reader.perform_array(reader.word(3 * _WORD))

        if len(ids) != len(performs):
            raise ReportDecodeError("upkeep ids and performs should have matching length")

        return [
            UpkeepResult(
                key=UpkeepKey.from_ints(block, upkeep_id),
                state=UpkeepState.ELIGIBLE,
                perform_data=perform_data,
                fast_gas_wei=fast_gas,
                link_native=link,
                check_block_number=block,
                check_block_hash=block_hash,
            )
            for upkeep_id, (block, block_hash, perform_data) in zip(ids, performs)
        ]