"""
Numeric value extraction from loosely structured reading data.

Strategies are tried in order; the first one that yields a number wins.
"""

import json
import math
from dataclasses import dataclass
from typing import Optional

from yieldsync_services.errors import ParseFailure


def is_number(value) -> bool:
    # bool is an int subclass but never a sensor sample
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def parse_data(data):
    """Parses a record's `data` into a structure. Raises ParseFailure."""
    if not isinstance(data, str):
        return data
    try:
        return json.loads(data)
    except (TypeError, ValueError) as e:
        raise ParseFailure(f"Sensor data is not valid JSON: {e}") from e


@dataclass(frozen=True)
class ByExplicitField:
    name: str = "value"

    def extract(self, parsed, data_type: str) -> Optional[float]:
        value = parsed.get(self.name)
        return value if is_number(value) else None


@dataclass(frozen=True)
class ByTypeNamedField:
    def extract(self, parsed, data_type: str) -> Optional[float]:
        if not data_type:
            return None
        value = parsed.get(data_type)
        return value if is_number(value) else None


@dataclass(frozen=True)
class FirstNumericField:
    def extract(self, parsed, data_type: str) -> Optional[float]:
        for value in parsed.values():
            if is_number(value):
                return value
        return None


DEFAULT_STRATEGIES = (ByExplicitField("value"), ByTypeNamedField(), FirstNumericField())


def extract_numeric_value(record, strategies=DEFAULT_STRATEGIES) -> Optional[float]:
    """
    Returns the record's numeric sample, or None when the data cannot be
    parsed or holds no number. Never raises for bad data.
    """
    try:
        parsed = parse_data(record.data)
    except ParseFailure:
        return None
    if not isinstance(parsed, dict):
        return None

    for strategy in strategies:
        value = strategy.extract(parsed, record.data_type)
        if value is not None:
            return value
    return None
