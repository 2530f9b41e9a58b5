# keeperlib

Building blocks for an off-chain upkeep automation oracle: the value types,
encodings and concurrency helpers that nodes use to agree on which upkeeps
to perform and to build the report that carries them.

## Modules

- `keeperlib.types`: `UpkeepState` (`NOT_ELIGIBLE`, `ELIGIBLE`),
  `UpkeepResult`, `PerformLog`, `StaleReportLog`, `OffchainConfig` with
  `encode()`, `decode_offchain_config()` (fills in defaults for unset or
  out-of-range values, raises `OffchainConfigError` on bad input) and
  `identifier_to_int()`.
- `keeperlib.keys`: `BlockKey` (`to_int`, `after`, `next`), `UpkeepKey`
  (`"<block>|<upkeep id>"`, with `from_block_and_id`, `from_ints` and
  `block_key_and_upkeep_id`) and `UpkeepObservation` (`to_json`,
  `from_json`, `validate`). Block numbers must be canonical decimals in
  `1 .. 2**64-1`, upkeep identifiers in `0 .. 2**256-1`. Errors derive from
  `ChainError`: `BlockKeyNotParsableError`, `UpkeepKeyNotParsableError`,
  `InvalidBlockKeyError`, `InvalidUpkeepIdentifierError`.
- `keeperlib.reports`: `EVMReportEncoder` with `encode_report` and
  `decode_report`, packing results as the ABI tuple
  `(uint256 fastGasWei, uint256 linkNative, uint256[] upkeepIds,
  (uint32,bytes32,bytes)[] wrappedPerformDatas)`. Decoding failures raise
  `ReportDecodeError`.
- `keeperlib.rand`: `KeyedCryptoRandSource` (AES-CTR keystream from a
  16-byte key), `CryptoRandSource` (OS randomness) and `GoRand`, whose
  `int63`, `uint32`, `int31n`, `int63n` and `shuffle` consume a source in a
  fixed way, so a shared key gives the same order on every node.
- `keeperlib.selection`: `filter_upkeeps`, `key_list`, `filter_and_dedupe`,
  `filter_dedupe_shuffle_observations`, `shuffle_observations`,
  `create_keys_with_median_block`, `calculate_median_block`,
  `sample_from_probability`, `lowest`, `random_key_source` (Keccak-256 of
  config digest, epoch and round), `upkeep_keys_to_string`,
  `upkeep_identifiers_to_string`, `create_batches`, plus `CryptoShuffler`
  and the thread-safe `SyncedList`.
- `keeperlib.cache`: `Cache` with per-key expiry in seconds (`set`, `get`
  returning `None` for missing or expired keys, `keys`, `delete`,
  `clear_expired`) and `IntervalCacheCleaner`, whose blocking `run` evicts
  expired keys every interval until `stop` is called.
- `keeperlib.cancellation`: `Context` objects (`cancel`, `done`, `err`,
  `deadline`, `value`, `wait`) built with `background()`, `with_cancel()`,
  `with_timeout()`, `merge_contexts()` and `merge_contexts_with_cancel()`.
  `err()` returns a `CancelledError` or `DeadlineExceededError` once the
  context has ended.
- `keeperlib.worker`: `WorkerGroup(workers, queue_size)` with `do`,
  `notify_result`, `results` and `stop`, and `run_jobs` for fanning jobs out
  to a group. `do` raises `WorkerContextCancelledError` or
  `ProcessStoppedError`; results are `WorkItemResult` records.
- `keeperlib.config`: `DelegateConfig`, whose `reporting_settings()`
  returns `ReportingSettings` with defaults for zero values (20 minute cache
  expiration, 30 second eviction interval, `default_max_service_workers()`
  workers, a queue of 1000), and `LogWriter`, a file-like object that sends
  everything written to a logger's `debug(msg, fields)`.

## Installation

```
pip install keeperlib
```

For running the tests:

```
pip install "keeperlib[test]"
pytest
```

## Examples

Decode an offchain configuration; missing values get defaults:

```python
from keeperlib.types import decode_offchain_config

config = decode_offchain_config(b'{"targetInRounds": 3}')
config.target_in_rounds      # 3
config.target_probability    # "0.99999"
config.gas_limit_per_report  # 5300000
```

Work with upkeep keys:

```python
from keeperlib.keys import BlockKey, UpkeepKey

key = UpkeepKey.from_block_and_id(BlockKey("42"), b"18")   # "42|18"
block, upkeep_id = key.block_key_and_upkeep_id()           # BlockKey("42"), b"18"
block.next()                                               # BlockKey("43")
```

Encode and decode a report:

```python
from keeperlib.keys import UpkeepKey
from keeperlib.reports import EVMReportEncoder
from keeperlib.types import UpkeepResult

result = UpkeepResult(
    key=UpkeepKey("43|18"),
    perform_data=b"",
    fast_gas_wei=8,
    link_native=16,
    check_block_number=43,
    check_block_hash=bytes([2]) + bytes(31),
)
encoder = EVMReportEncoder()
report = encoder.encode_report([result])
decoded = encoder.decode_report(report)   # one ELIGIBLE result keyed "43|18"
```

Run jobs on a worker group:

```python
from keeperlib.cancellation import background
from keeperlib.worker import WorkerGroup, run_jobs

group = WorkerGroup(4, 100)
totals = []
run_jobs(background(), group, [1, 2, 3],
         lambda ctx, value: value * 10,
         lambda data, err: totals.append(data))
group.stop()
sorted(totals)   # [10, 20, 30]
```

## What the package does not do

There is no chain client and no registry implementation: nothing here makes
RPC calls, subscribes to new heads or checks upkeeps against a contract.
There is also no oracle to start or stop and no command-line program.
`DelegateConfig` only holds the components you supply (`registry`,
`head_subscriber`, `perform_log_provider`, `report_encoder`, `logger`) and
resolves the tuning settings; wiring them into a running service is left to
the caller.