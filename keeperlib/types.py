"""Core value types shared by registries, encoders and the reporting plugin."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import asdict, dataclass, fields
from typing import Any, Optional, Union

Identifier = Union[bytes, bytearray, str]

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT32_MAX = (1 << 32) - 1

_DECIMAL = re.compile(r"[+-]?[0-9]+")

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _compact_json(value: Any) -> bytes:
    """Serialise to compact JSON with HTML-sensitive characters escaped."""
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _JSON_ESCAPES.items():
        text = text.replace(char, escaped)
    return text.encode("utf-8")


def _reject_constant(token: str) -> Any:
    raise ValueError(f"invalid JSON token {token}")


def _load_json(data: Union[bytes, bytearray, str]) -> Any:
    """Parse strict JSON (no NaN or Infinity)."""
    return json.loads(data, parse_constant=_reject_constant)


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def identifier_to_int(identifier: Identifier) -> int:
    """Parse a base-10 upkeep identifier or block number.

    An optional sign and leading zeros are accepted; anything else raises
    ValueError.
    """
    if isinstance(identifier, (bytes, bytearray)):
        text = bytes(identifier).decode("latin-1")
    else:
        text = str(identifier)
    if not _DECIMAL.fullmatch(text):
        raise ValueError(f"not a decimal integer: {text!r}")
    return int(text)


class UpkeepState(enum.IntEnum):
    """Whether an upkeep should be performed."""

    NOT_ELIGIBLE = 0
    ELIGIBLE = 1


@dataclass
class UpkeepResult:
    """Outcome of checking one upkeep at one block."""

    key: Any
    state: UpkeepState = UpkeepState.NOT_ELIGIBLE
    failure_reason: int = 0
    gas_used: Optional[int] = None
    perform_data: bytes = b""
    fast_gas_wei: Optional[int] = None
    link_native: Optional[int] = None
    check_block_number: int = 0
    check_block_hash: bytes = bytes(32)
    execute_gas: int = 0


@dataclass
class PerformLog:
    """A log entry recording that an upkeep was performed on chain."""

    key: Any
    transmit_block: Any
    confirmations: int
    transaction_hash: str


@dataclass
class StaleReportLog:
    """A log entry recording that a transmitted report was stale."""

    key: Any
    transmit_block: Any
    confirmations: int
    transaction_hash: str


class OffchainConfigError(ValueError):
    """Raised when an encoded offchain config cannot be decoded."""


_CONFIG_FIELDS = (
    ("performLockoutWindow", "perform_lockout_window", "int64"),
    ("targetProbability", "target_probability", "string"),
    ("targetInRounds", "target_in_rounds", "int"),
    ("samplingJobDuration", "sampling_job_duration", "int64"),
    ("minConfirmations", "min_confirmations", "int"),
    ("gasLimitPerReport", "gas_limit_per_report", "uint32"),
    ("gasOverheadPerUpkeep", "gas_overhead_per_upkeep", "uint32"),
    ("maxUpkeepBatchSize", "max_upkeep_batch_size", "int"),
    ("reportBlockLag", "report_block_lag", "int"),
)


@dataclass
class OffchainConfig:
    """Plugin settings agreed upon by all nodes.

    Durations are in milliseconds.
    """

    perform_lockout_window: int = 20 * 60 * 1000
    target_probability: str = "0.99999"
    target_in_rounds: int = 1
    sampling_job_duration: int = 3000
    min_confirmations: int = 0
    gas_limit_per_report: int = 5_300_000
    gas_overhead_per_upkeep: int = 300_000
    max_upkeep_batch_size: int = 1
    report_block_lag: int = 0

    def encode(self) -> bytes:
        """Return the compact JSON encoding of this config."""
        values = asdict(self)
        return _compact_json({json_name: values[attr] for json_name, attr, _ in _CONFIG_FIELDS})


def _unmarshal_error(kind: str, json_name: str, type_name: str) -> OffchainConfigError:
    return OffchainConfigError(
        f"json: cannot unmarshal {kind} into field OffchainConfig.{json_name} of type {type_name}"
    )


def _convert_field(json_name: str, type_name: str, value: Any) -> Any:
    if type_name == "string":
        if isinstance(value, str):
            return value
        raise _unmarshal_error(_json_kind(value), json_name, type_name)

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _unmarshal_error(_json_kind(value), json_name, type_name)

    low, high = (0, _UINT32_MAX) if type_name == "uint32" else (_INT64_MIN, _INT64_MAX)
    if isinstance(value, float) or not low <= value <= high:
        raise _unmarshal_error(f"number {value}", json_name, type_name)
    return value


def decode_offchain_config(data: Union[bytes, bytearray, str]) -> OffchainConfig:
    """Decode a JSON offchain config, filling in defaults for unset values."""
    values: dict[str, Any] = {
        attr: ("" if type_name == "string" else 0) for _, attr, type_name in _CONFIG_FIELDS
    }

    if data:
        try:
            raw = _load_json(data)
        except ValueError as exc:
            raise OffchainConfigError(f"invalid offchain config: {exc}") from exc

        if raw is not None:
            if not isinstance(raw, dict):
                raise OffchainConfigError(
                    f"json: cannot unmarshal {_json_kind(raw)} into value of type OffchainConfig"
                )
            by_name = {spec[0].lower(): spec for spec in _CONFIG_FIELDS}
            for key, value in raw.items():
                spec = by_name.get(key.lower())
                if spec is None or value is None:
                    continue
                json_name, attr, type_name = spec
                values[attr] = _convert_field(json_name, type_name, value)

    if values["perform_lockout_window"] <= 0:
        values["perform_lockout_window"] = 20 * 60 * 1000
    if not values["target_probability"]:
        values["target_probability"] = "0.99999"
    if values["target_in_rounds"] <= 0:
        values["target_in_rounds"] = 1
    if values["sampling_job_duration"] <= 0:
        values["sampling_job_duration"] = 3000
    if values["min_confirmations"] <= 0:
        values["min_confirmations"] = 0
    if values["gas_limit_per_report"] == 0:
        values["gas_limit_per_report"] = 5_300_000
    if values["gas_overhead_per_upkeep"] == 0:
        values["gas_overhead_per_upkeep"] = 300_000
    if values["max_upkeep_batch_size"] <= 0:
        values["max_upkeep_batch_size"] = 1
    if values["report_block_lag"] < 0:
        values["report_block_lag"] = 0

    known = {f.name for f in fields(OffchainConfig)}
    return OffchainConfig(**{k: v for k, v in values.items() if k in known})