"""
Leaf and node hashing.

Both hashes use keccak-256 over Solidity tight packing (abi.encodePacked),
the same primitive the IoTData contract uses, so a leaf computed here equals
the hash the contract derives from its stored record.
"""

from web3 import Web3

from yieldsync_services.errors import InvalidInput
from yieldsync_services.records import SensorRecord, canonical_timestamp

DIGEST_SIZE = 32

LEAF_ABI_TYPES = ["string", "uint256", "string", "string", "string"]
NODE_ABI_TYPES = ["bytes32", "bytes32"]


def to_digest(value) -> bytes:
    """Accepts a 32-byte digest as bytes or hex string (with or without 0x)."""
    if isinstance(value, (bytes, bytearray)):
        digest = bytes(value)
    elif isinstance(value, str):
        try:
            digest = Web3.to_bytes(hexstr=value)
        except ValueError as e:
            raise InvalidInput(f"Digest is not valid hex: {value!r}") from e
    else:
        raise InvalidInput(f"Digest must be bytes or a hex string, got {type(value).__name__}")

    if len(digest) != DIGEST_SIZE:
        raise InvalidInput(f"Digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
    return digest


def to_hex(digest: bytes) -> str:
    return Web3.to_hex(digest)


def leaf_hash(record: SensorRecord) -> bytes:
    """keccak256(abi.encodePacked(deviceId, timestamp, data, dataType, location))"""
    for name in ("device_id", "data", "data_type", "location"):
        if not isinstance(getattr(record, name), str):
            raise InvalidInput(f"Field '{name}' must be a string before hashing")
    timestamp = canonical_timestamp(record.timestamp)

    return bytes(Web3.solidity_keccak(
        LEAF_ABI_TYPES,
        [record.device_id, timestamp, record.data, record.data_type, record.location],
    ))


def pair_hash(a: bytes, b: bytes) -> bytes:
    """Commutative node hash: the two children are sorted before packing."""
    low, high = (a, b) if a <= b else (b, a)
    return bytes(Web3.solidity_keccak(NODE_ABI_TYPES, [low, high]))
