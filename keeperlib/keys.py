"""Block keys, upkeep keys and upkeep observations."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Optional, Union

from keeperlib.types import _compact_json, _load_json, identifier_to_int

_SEPARATOR = "|"
_MAX_BLOCK_NUMBER = int("18446744073709551615")  # 2**64 - 1
_MAX_UPKEEP_ID = int(
    "115792089237316195423570985008687907853269984665640564039457584007913129639935"
)  # 2**256 - 1


class ChainError(ValueError):
    """Base class for key and observation errors."""


class BlockKeyNotParsableError(ChainError):
    """A block key is not a decimal integer."""


class UpkeepKeyNotParsableError(ChainError):
    """An upkeep key or identifier cannot be parsed."""


class InvalidBlockKeyError(ChainError):
    """A block key is not canonical or out of range."""


class InvalidUpkeepIdentifierError(ChainError):
    """An upkeep identifier is not canonical or out of range."""


def _parse_block(value: Any) -> int:
    try:
        return identifier_to_int(str(value))
    except ValueError:
        raise BlockKeyNotParsableError("block identifier not parsable") from None


def _identifier_text(identifier: Union[bytes, bytearray, str]) -> str:
    if isinstance(identifier, (bytes, bytearray)):
        return bytes(identifier).decode("utf-8", "surrogateescape")
    return str(identifier)


def _identifier_bytes(identifier: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(identifier, str):
        return identifier.encode("utf-8", "surrogateescape")
    return bytes(identifier)


class BlockKey(str):
    """A block number held as its decimal text."""

    __slots__ = ()

    def to_int(self) -> int:
        """Return the block number; raise BlockKeyNotParsableError if invalid."""
        return _parse_block(self)

    def after(self, other: Any) -> bool:
        """Return True if this block is strictly later than ``other``."""
        return self.to_int() > _parse_block(other)

    def next(self) -> BlockKey:
        """Return the key of the following block."""
        return BlockKey(str(self.to_int() + 1))


class UpkeepKey(str):
    """An upkeep at a given block, written as ``block|id``."""

    __slots__ = ()

    @classmethod
    def from_block_and_id(cls, block: Any, identifier: Union[bytes, bytearray, str]) -> UpkeepKey:
        return cls(f"{block}{_SEPARATOR}{_identifier_text(identifier)}")

    @classmethod
    def from_ints(cls, block: int, identifier: int) -> UpkeepKey:
        return cls(f"{block}{_SEPARATOR}{identifier}")

    def block_key_and_upkeep_id(self) -> tuple[BlockKey, bytes]:
        """Split into the block key and the upkeep identifier."""
        parts = self.split(_SEPARATOR)
        if len(parts) != 2:
            raise UpkeepKeyNotParsableError("upkeep key not parsable: missing data in upkeep key")
        return BlockKey(parts[0]), _identifier_bytes(parts[1])


@dataclass
class UpkeepObservation:
    """What one node observed: a block and the upkeeps eligible at it."""

    block_key: BlockKey = BlockKey("")
    upkeep_identifiers: Optional[list[bytes]] = None

    def __post_init__(self) -> None:
        self.block_key = BlockKey(self.block_key)
        if self.upkeep_identifiers is not None:
            self.upkeep_identifiers = [_identifier_bytes(i) for i in self.upkeep_identifiers]

    def to_json(self) -> bytes:
        """Encode as compact JSON; identifiers are base64 encoded."""
        identifiers = None
        if self.upkeep_identifiers is not None:
            identifiers = [base64.b64encode(i).decode("ascii") for i in self.upkeep_identifiers]
        return _compact_json({"1": str(self.block_key), "2": identifiers})

    @classmethod
    def from_json(cls, data: Union[bytes, bytearray, str]) -> UpkeepObservation:
        """Decode and validate an observation."""
        try:
            raw = _load_json(data)
        except ValueError as exc:
            raise ChainError(f"invalid observation encoding: {exc}") from exc

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ChainError("invalid observation encoding: expected an object")

        block = raw.get("1")
        if block is None:
            block = ""
        if not isinstance(block, str):
            raise ChainError("invalid observation encoding: block key must be a string")

        encoded = raw.get("2")
        identifiers: Optional[list[bytes]] = None
        if encoded is not None:
            if not isinstance(encoded, list):
                raise ChainError("invalid observation encoding: identifiers must be a list")
            identifiers = []
            for item in encoded:
                if item is None:
                    identifiers.append(b"")
                    continue
                if not isinstance(item, str):
                    raise ChainError("invalid observation encoding: identifier must be a string")
                try:
                    identifiers.append(base64.b64decode(item, validate=True))
                except (binascii.Error, ValueError) as exc:
                    raise ChainError(f"invalid observation encoding: {exc}") from exc

        observation = cls(BlockKey(block), identifiers)
        observation.validate()
        return observation

    def validate(self) -> None:
        """Raise a ChainError subclass unless every value is canonical and in range."""
        block = _parse_block(self.block_key)
        if str(block) != self.block_key:
            raise InvalidBlockKeyError("invalid block key")
        if not 0 < block <= _MAX_BLOCK_NUMBER:
            raise InvalidBlockKeyError("invalid block key")

        for identifier in self.upkeep_identifiers or ():
            try:
                value = identifier_to_int(identifier)
            except ValueError:
                raise UpkeepKeyNotParsableError("upkeep key not parsable") from None
            if str(value) != _identifier_text(identifier):
                raise InvalidUpkeepIdentifierError("invalid upkeep identifier")
            if not 0 <= value <= _MAX_UPKEEP_ID:
                raise InvalidUpkeepIdentifierError("invalid upkeep identifier")