import pytest
from web3 import Web3

from yieldsync_services.errors import InvalidInput
from yieldsync_services.merkle.hashing import leaf_hash, pair_hash, to_digest, to_hex
from yieldsync_services.records import SensorRecord

from conftest import make_record


def test_leaf_hash_matches_solidity_tight_packing():
    record = SensorRecord("device-001", 1_700_000_000, '{"value":20}', "temperature", "greenhouse-a")
    packed = (
        b"device-001"
        + (1_700_000_000).to_bytes(32, "big")
        + b'{"value":20}'
        + b"temperature"
        + b"greenhouse-a"
    )
    assert leaf_hash(record) == bytes(Web3.keccak(packed))


def test_leaf_hash_is_32_bytes_and_deterministic():
    record = make_record()
    assert len(leaf_hash(record)) == 32
    assert leaf_hash(record) == leaf_hash(make_record())


@pytest.mark.parametrize("field, value", [
    ("device_id", "device-002"),
    ("timestamp", 1_700_000_001),
    ("data", '{"value": 21}'),
    ("data_type", "humidity"),
    ("location", "greenhouse-b"),
])
def test_every_field_changes_the_leaf(field, value):
    original = SensorRecord("device-001", 1_700_000_000, '{"value": 20}', "temperature", "greenhouse-a")
    changed = SensorRecord(**dict(original.__dict__, **{field: value}))
    assert leaf_hash(changed) != leaf_hash(original)


def test_leaf_hash_rejects_negative_timestamp():
    with pytest.raises(InvalidInput):
        leaf_hash(SensorRecord("d", -5, "x", "t", "l"))


def test_leaf_hash_rejects_non_string_fields():
    with pytest.raises(InvalidInput):
        leaf_hash(SensorRecord("d", 5, {"value": 1}, "t", "l"))


def test_pair_hash_is_commutative_and_sorts_inputs():
    a = leaf_hash(make_record(value=1))
    b = leaf_hash(make_record(value=2))
    low, high = sorted([a, b])
    assert pair_hash(a, b) == pair_hash(b, a) == bytes(Web3.keccak(low + high))


def test_digest_hex_round_trip():
    digest = leaf_hash(make_record())
    encoded = to_hex(digest)
    assert encoded.startswith("0x") and len(encoded) == 66
    assert to_digest(encoded) == digest
    assert to_digest(encoded[2:]) == digest


@pytest.mark.parametrize("value", ["0x1234", b"\x00" * 31, "0xzz", 12])
def test_to_digest_rejects_malformed_values(value):
    with pytest.raises(InvalidInput):
        to_digest(value)
