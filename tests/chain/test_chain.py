import dataclasses
import logging
from datetime import datetime, timedelta, timezone

import pytest

from provchain.chain import (
    ILL_TYPED_REASON,
    MAX_INDEX,
    CapacityError,
    Chain,
    MalformedChainError,
    Record,
)
from provchain.config import ChainConfig


FIXED_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIME


@pytest.fixture
def populated_chain(fixed_clock):
    chain = Chain(clock=fixed_clock)
    chain.extend(str(number).encode() for number in range(100))
    return chain


def _replace_record(chain: Chain, position: int, **changes) -> Chain:
    records = list(chain.records)
    records[position] = dataclasses.replace(records[position], **changes)
    return Chain.from_records(records, config=chain.config)


def test_new_chain_holds_only_a_valid_genesis():
    chain = Chain()

    assert len(chain) == 1
    genesis = chain[0]
    assert genesis.index == 0
    assert genesis.payload == b""
    assert genesis.prev_digest == bytes(32)
    assert chain.verify() is True


def test_push_then_verify():
    chain = Chain()

    record = chain.push(b"hello")

    assert len(chain) == 2
    assert record is chain[1]
    assert record.index == 1
    assert record.prev_digest == chain[0].self_digest
    assert chain.head_digest == record.self_digest
    assert chain.verify() is True


@pytest.mark.parametrize("payload", [b"", b"\x00", b"x" * 4 * 1024 * 1024])
def test_push_keeps_chain_valid_for_any_payload(payload):
    chain = Chain()
    chain.push(b"before")

    chain.push(payload)

    assert chain[-1].payload == payload
    assert chain.verify() is True


def test_indices_match_positions(populated_chain):
    assert len(populated_chain) == 101
    assert [record.index for record in populated_chain] == list(range(101))


def test_bit_flip_in_payload_is_detected(populated_chain):
    assert populated_chain.verify() is True

    target = populated_chain[51]
    assert target.payload == b"50"
    flipped = bytes([target.payload[0] ^ 0x01]) + target.payload[1:]
    tampered = _replace_record(populated_chain, 51, payload=flipped)

    assert tampered.verify() is False


def test_in_place_payload_mutation_is_detected(populated_chain):
    populated_chain._records[10] = dataclasses.replace(populated_chain[10], payload=b"forged")

    assert populated_chain.verify() is False


def test_foreign_prev_digest_is_detected(populated_chain):
    tampered = _replace_record(populated_chain, 30, prev_digest=b"\x42" * 32)

    assert tampered.verify() is False
    reasons = [issue.reason for issue in tampered.audit()]
    assert "prev_digest does not match the preceding self_digest" in reasons


def test_index_gap_fails_verification():
    genesis = Record.genesis()
    first = Record.create(1, b"first", genesis.self_digest)
    third = Record.create(3, b"third", first.self_digest)

    chain = Chain.from_records([genesis, first, third])

    assert chain.verify() is False
    issues = chain.audit()
    assert [(issue.position, issue.index) for issue in issues] == [(2, 3)]
    assert issues[0].reason == "index 3 does not follow 1"


def test_tampered_genesis_is_detected():
    chain = Chain()
    chain.push(b"payload")
    genesis = chain[0]
    forged = Record.create(0, b"not empty", genesis.prev_digest, timestamp=genesis.timestamp)
    rebuilt = Chain.from_records([forged, *chain.records[1:]])

    assert rebuilt.verify() is False


def test_genesis_with_non_sentinel_prev_digest_is_detected():
    forged = Record.create(0, b"", b"\x01" * 32)

    chain = Chain.from_records([forged])

    assert chain.verify() is False
    assert chain.audit()[0].reason == "genesis prev_digest is not the sentinel digest"


def test_audit_reports_every_failure_not_only_the_first(populated_chain):
    tampered = _replace_record(populated_chain, 5, payload=b"x")
    records = list(tampered.records)
    records[80] = dataclasses.replace(records[80], payload=b"y")
    tampered = Chain.from_records(records)

    positions = {issue.position for issue in tampered.audit()}

    assert positions == {5, 80}


def test_verification_failures_are_logged(populated_chain, caplog):
    tampered = _replace_record(populated_chain, 42, payload=b"forged")

    with caplog.at_level(logging.WARNING, logger="provchain.chain.ledger"):
        assert tampered.verify() is False

    assert any("position 42" in message for message in caplog.messages)


def test_empty_chain_cannot_be_verified():
    chain = Chain.from_records([])

    assert len(chain) == 0
    with pytest.raises(MalformedChainError):
        chain.verify()


def test_empty_chain_cannot_be_extended():
    chain = Chain.from_records([])

    with pytest.raises(MalformedChainError):
        chain.push(b"data")


def test_identical_pushes_give_identical_digests(fixed_clock):
    payloads = [b"alpha", b"", b"gamma" * 100]
    first = Chain(clock=fixed_clock)
    second = Chain(clock=fixed_clock)

    first.extend(payloads)
    second.extend(payloads)

    assert [record.self_digest for record in first] == [record.self_digest for record in second]


def test_algorithms_produce_different_digests(fixed_clock):
    sha256_chain = Chain(clock=fixed_clock)
    sha3_chain = Chain(ChainConfig(algorithm="sha3_256"), clock=fixed_clock)
    blake_chain = Chain(ChainConfig(algorithm="blake2b_256"), clock=fixed_clock)
    for chain in (sha256_chain, sha3_chain, blake_chain):
        chain.push(b"same payload")
        assert chain.verify() is True

    digests = {chain.head_digest for chain in (sha256_chain, sha3_chain, blake_chain)}
    assert len(digests) == 3


def test_timestamps_never_go_backwards():
    later = FIXED_TIME + timedelta(hours=1)
    readings = iter([later, FIXED_TIME])
    chain = Chain(clock=lambda: next(readings))

    record = chain.push(b"clock stepped back")

    assert record.timestamp == later
    assert chain.verify() is True


def test_naive_clock_readings_are_treated_as_utc():
    chain = Chain(clock=lambda: datetime(2024, 5, 1, 8, 30))

    record = chain.push(b"naive")

    assert record.timestamp == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    assert chain.verify() is True


def test_push_refused_at_max_length():
    chain = Chain(ChainConfig(max_length=3))
    chain.extend([b"one", b"two"])

    with pytest.raises(CapacityError) as excinfo:
        chain.push(b"three")

    assert excinfo.value.limit == 3
    assert len(chain) == 3
    assert chain.verify() is True


def test_extend_keeps_records_appended_before_capacity_error():
    chain = Chain(ChainConfig(max_length=2))

    with pytest.raises(CapacityError):
        chain.extend([b"fits", b"overflows"])

    assert [record.payload for record in chain] == [b"", b"fits"]


def test_push_refused_when_index_counter_is_exhausted():
    genesis = Record.genesis()
    last = Record.create(MAX_INDEX, b"last", genesis.self_digest)
    chain = Chain.from_records([genesis, last])

    with pytest.raises(CapacityError) as excinfo:
        chain.push(b"one too many")

    assert excinfo.value.limit == MAX_INDEX
    assert len(chain) == 2


def test_find_locates_records_by_digest(populated_chain):
    target = populated_chain[17]

    assert populated_chain.find(target.self_digest) is target
    assert populated_chain.find(b"\x00" * 32) is None


def test_records_view_is_read_only(populated_chain):
    snapshot = populated_chain.records

    assert isinstance(snapshot, tuple)
    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot[1].payload = b"changed"


def test_from_records_rejects_non_records():
    with pytest.raises(TypeError):
        Chain.from_records([{"index": 0}])


def test_naive_timestamp_forced_into_a_record_fails_verification(populated_chain):
    object.__setattr__(populated_chain[2], "timestamp", datetime(2020, 1, 1))

    assert populated_chain.verify() is False
    issues = populated_chain.audit()
    assert (2, ILL_TYPED_REASON) in [(issue.position, issue.reason) for issue in issues]


def test_text_payload_forced_into_a_record_fails_verification(populated_chain):
    object.__setattr__(populated_chain[2], "payload", "forged")

    assert populated_chain.verify() is False
    reasons = {issue.position: issue.reason for issue in populated_chain.audit()}
    assert reasons[2] == ILL_TYPED_REASON
    assert reasons[3] == "preceding record is not well-typed"


def test_non_record_element_fails_verification(populated_chain):
    populated_chain._records[2] = None

    assert populated_chain.verify() is False
    issues = populated_chain.audit()
    assert issues[0].position == 2
    assert issues[0].index is None
    assert issues[0].reason == "element is not a Record"
    assert any(issue.position == 3 and issue.reason == "preceding record is not well-typed" for issue in issues)
    assert populated_chain.find(populated_chain[3].self_digest) is populated_chain[3]


def test_ill_typed_genesis_fails_verification():
    chain = Chain()
    chain.push(b"payload")
    object.__setattr__(chain[0], "prev_digest", "00" * 32)

    assert chain.verify() is False
    assert chain.audit()[0].reason == ILL_TYPED_REASON
