import json
from collections.abc import Mapping
from dataclasses import dataclass

from config.settings import TIMESTAMP_UNIT
from yieldsync_services.errors import InvalidInput

UINT256_MAX = 2 ** 256 - 1

# Raw reading field -> accepted spellings (API payloads are camelCase).
_FIELD_NAMES = {
    "device_id": ("device_id", "deviceId"),
    "timestamp": ("timestamp",),
    "data": ("data",),
    "data_type": ("data_type", "dataType"),
    "location": ("location",),
}


@dataclass(frozen=True)
class SensorRecord:
    """Canonical form of a sensor reading. This exact 5-tuple is what gets hashed."""

    device_id: str
    timestamp: int  # seconds since epoch
    data: str
    data_type: str
    location: str

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "timestamp": self.timestamp,
            "data": self.data,
            "dataType": self.data_type,
            "location": self.location,
        }


def _field(reading, name):
    for key in _FIELD_NAMES[name]:
        if isinstance(reading, Mapping):
            if key in reading:
                return reading[key]
        elif hasattr(reading, key):
            return getattr(reading, key)
    raise InvalidInput(f"Reading is missing required field '{name}'")


def canonical_timestamp(value, unit: str = "s") -> int:
    """Normalizes a timestamp to integer chain seconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"Timestamp must be an integer, got {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidInput(f"Timestamp must be an integer, got {value!r}")
        value = int(value)
    if value < 0:
        raise InvalidInput(f"Timestamp must not be negative, got {value}")

    if unit == "ms":
        value //= 1000
    elif unit != "s":
        raise InvalidInput(f"Unknown timestamp unit '{unit}' (expected 's' or 'ms')")

    if value > UINT256_MAX:
        raise InvalidInput("Timestamp does not fit in uint256")
    return value


def canonical_data(data) -> str:
    """
    Strings pass through untouched. Structured values are serialized as
    received (no key reordering) with compact separators. The leaf text is
    whatever `json.dumps` produces here; it matches JSON.stringify for
    strings and integers but not for floats (`20.0` vs `20`, exponent
    format), so producers that need identical leaves elsewhere should send
    `data` as a pre-serialized string.
    """
    if isinstance(data, str):
        return data
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)


def canonicalize(reading, timestamp_unit: str = None) -> SensorRecord:
    """
    Turns a raw reading (SensorReading model, mapping or any object with the
    five fields) into a SensorRecord. Already-canonical records are returned
    as they are.
    """
    if isinstance(reading, SensorRecord):
        return reading

    unit = timestamp_unit or TIMESTAMP_UNIT
    text_fields = {}
    for name in ("device_id", "data_type", "location"):
        value = _field(reading, name)
        if not isinstance(value, str):
            raise InvalidInput(f"Field '{name}' must be a string, got {type(value).__name__}")
        text_fields[name] = value

    return SensorRecord(
        device_id=text_fields["device_id"],
        timestamp=canonical_timestamp(_field(reading, "timestamp"), unit),
        data=canonical_data(_field(reading, "data")),
        data_type=text_fields["data_type"],
        location=text_fields["location"],
    )


def canonicalize_all(readings, timestamp_unit: str = None) -> list:
    return [canonicalize(reading, timestamp_unit) for reading in readings]
