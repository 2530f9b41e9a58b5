import pytest

from keeperlib.keys import UpkeepKey, UpkeepKeyNotParsableError
from keeperlib.reports import EVMReportEncoder, ReportDecodeError
from keeperlib.types import UpkeepResult, UpkeepState


def _hash(first: int) -> bytes:
    return bytes([first]) + bytes(31)


def _words(*hex_words: str) -> bytes:
    return b"".join(bytes.fromhex(w) for w in hex_words)


LONG_DATA = (
    b"long perform data that takes up more than 32 bytes to show how byte arrays "
    b"are abi encoded. this should take up multiple slots."
)

SINGLE_REPORT = _words(
    "0000000000000000000000000000000000000000000000000000000000000008",
    "0000000000000000000000000000000000000000000000000000000000000010",
    "0000000000000000000000000000000000000000000000000000000000000080",
    "00000000000000000000000000000000000000000000000000000000000000c0",
    "0000000000000000000000000000000000000000000000000000000000000001",
    "0000000000000000000000000000000000000000000000000000000000000012",
    "0000000000000000000000000000000000000000000000000000000000000001",
    "0000000000000000000000000000000000000000000000000000000000000020",
    "000000000000000000000000000000000000000000000000000000000000002b",
    "0200000000000000000000000000000000000000000000000000000000000000",
    "0000000000000000000000000000000000000000000000000000000000000060",
    "0000000000000000000000000000000000000000000000000000000000000000",
)


def test_encode_multiple_performs():
    results = [
        UpkeepResult(
            key=UpkeepKey("42|18"),
            perform_data=b"hello",
            fast_gas_wei=16,
            link_native=8,
            check_block_number=42,
            check_block_hash=_hash(1),
        ),
        UpkeepResult(
            key=UpkeepKey("43|23"),
            perform_data=LONG_DATA,
            fast_gas_wei=8,
            link_native=16,
            check_block_number=43,
            check_block_hash=_hash(2),
        ),
    ]
    expected = _words(
        "0000000000000000000000000000000000000000000000000000000000000008",
        "0000000000000000000000000000000000000000000000000000000000000010",
        "0000000000000000000000000000000000000000000000000000000000000080",
        "00000000000000000000000000000000000000000000000000000000000000e0",
        "0000000000000000000000000000000000000000000000000000000000000002",
        "0000000000000000000000000000000000000000000000000000000000000012",
        "0000000000000000000000000000000000000000000000000000000000000017",
        "0000000000000000000000000000000000000000000000000000000000000002",
        "0000000000000000000000000000000000000000000000000000000000000040",
        "00000000000000000000000000000000000000000000000000000000000000e0",
        "000000000000000000000000000000000000000000000000000000000000002a",
        "0100000000000000000000000000000000000000000000000000000000000000",
        "0000000000000000000000000000000000000000000000000000000000000060",
        "0000000000000000000000000000000000000000000000000000000000000005",
        "68656c6c6f000000000000000000000000000000000000000000000000000000",
        "000000000000000000000000000000000000000000000000000000000000002b",
        "0200000000000000000000000000000000000000000000000000000000000000",
        "0000000000000000000000000000000000000000000000000000000000000060",
        "000000000000000000000000000000000000000000000000000000000000007f",
        "6c6f6e6720706572666f726d206461746120746861742074616b657320757020",
        "6d6f7265207468616e20333220627974657320746f2073686f7720686f772062",
        "79746520617272617973206172652061626920656e636f6465642e2074686973",
        "2073686f756c642074616b65207570206d756c7469706c6520736c6f74732e00",
    )
    assert EVMReportEncoder().encode_report(results) == expected


def test_encode_key_parse_error():
    results = [UpkeepResult(key=UpkeepKey("1"), perform_data=b"hello")]
    with pytest.raises(UpkeepKeyNotParsableError):
        EVMReportEncoder().encode_report(results)


def test_encode_non_numeric_identifier():
    results = [UpkeepResult(key=UpkeepKey("1|abc"), fast_gas_wei=1, link_native=1)]
    with pytest.raises(UpkeepKeyNotParsableError):
        EVMReportEncoder().encode_report(results)


def test_encode_empty_perform_data():
    results = [
        UpkeepResult(
            key=UpkeepKey("43|18"),
            perform_data=b"",
            fast_gas_wei=8,
            link_native=16,
            check_block_number=43,
            check_block_hash=_hash(2),
        )
    ]
    assert EVMReportEncoder().encode_report(results) == SINGLE_REPORT


def test_encode_nothing():
    assert EVMReportEncoder().encode_report([]) == b""


def test_encode_missing_gas_value():
    results = [UpkeepResult(key=UpkeepKey("1|1"), check_block_number=1)]
    with pytest.raises(ValueError, match="failed to pack report data"):
        EVMReportEncoder().encode_report(results)


def test_decode_report():
    expected = [
        UpkeepResult(
            key=UpkeepKey("43|18"),
            state=UpkeepState.ELIGIBLE,
            perform_data=b"",
            fast_gas_wei=8,
            link_native=16,
            check_block_number=43,
            check_block_hash=_hash(2),
        )
    ]
    assert EVMReportEncoder().decode_report(SINGLE_REPORT) == expected


def test_round_trip_multiple():
    encoder = EVMReportEncoder()
    results = [
        UpkeepResult(
            key=UpkeepKey("10|5"),
            perform_data=b"abc",
            fast_gas_wei=3,
            link_native=4,
            check_block_number=10,
            check_block_hash=_hash(7),
        ),
        UpkeepResult(
            key=UpkeepKey("11|6"),
            perform_data=LONG_DATA,
            fast_gas_wei=3,
            link_native=4,
            check_block_number=11,
            check_block_hash=_hash(9),
        ),
    ]
    decoded = encoder.decode_report(encoder.encode_report(results))
    assert [r.key for r in decoded] == ["10|5", "11|6"]
    assert [r.perform_data for r in decoded] == [b"abc", LONG_DATA]
    assert all(r.state == UpkeepState.ELIGIBLE for r in decoded)
    assert [r.check_block_hash for r in decoded] == [_hash(7), _hash(9)]


def test_decode_empty():
    with pytest.raises(ReportDecodeError):
        EVMReportEncoder().decode_report(b"")


def test_decode_truncated():
    with pytest.raises(ReportDecodeError):
        EVMReportEncoder().decode_report(SINGLE_REPORT[:-64])


def test_decode_length_mismatch():
    data = _words(
        "0000000000000000000000000000000000000000000000000000000000000008",
        "0000000000000000000000000000000000000000000000000000000000000010",
        "0000000000000000000000000000000000000000000000000000000000000080",
        "00000000000000000000000000000000000000000000000000000000000000c0",
        "0000000000000000000000000000000000000000000000000000000000000001",
        "0000000000000000000000000000000000000000000000000000000000000012",
        "0000000000000000000000000000000000000000000000000000000000000000",
    )
    with pytest.raises(ReportDecodeError, match="matching length"):
        EVMReportEncoder().decode_report(data)