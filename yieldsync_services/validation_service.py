from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

from yieldsync_services.aggregation.extraction import is_number, parse_data
from yieldsync_services.errors import ParseFailure


@dataclass(frozen=True)
class ValidationRule:
    field: str
    validator: Callable
    error_message: str


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _in_range(low, high):
    return lambda value: is_number(value) and low <= value <= high


SCHEMAS = {
    "temperature": [
        ValidationRule("value", _in_range(-50, 100), "Temperature must be between -50°C and 100°C"),
        ValidationRule("unit", lambda value: value in ("°C", "°F", "K"), "Invalid temperature unit"),
    ],
    "humidity": [
        ValidationRule("value", _in_range(0, 100), "Humidity must be between 0% and 100%"),
    ],
    "soil-moisture": [
        ValidationRule("value", _in_range(0, 100), "Soil moisture must be between 0% and 100%"),
    ],
}


def _get(reading, *names):
    for name in names:
        if isinstance(reading, dict):
            if name in reading:
                return reading[name]
        elif hasattr(reading, name):
            return getattr(reading, name)
    return None


class DataValidator:
    """Checks raw readings before they are handed to the batching core."""

    def __init__(self, schemas: Dict[str, List[ValidationRule]] = None):
        self.schemas = SCHEMAS if schemas is None else schemas

    def validate_reading(self, reading) -> ValidationResult:
        errors = []

        if not _get(reading, "device_id", "deviceId"):
            errors.append("Device ID is required")
        if not _get(reading, "timestamp"):
            errors.append("Timestamp is required")
        data_type = _get(reading, "data_type", "dataType")
        if not data_type:
            errors.append("Data type is required")
        if not _get(reading, "location"):
            errors.append("Location is required")

        try:
            parsed = parse_data(_get(reading, "data"))
        except ParseFailure:
            errors.append("Invalid data format: must be valid JSON")
            return ValidationResult(is_valid=False, errors=errors)

        for rule in self.schemas.get(data_type, []):
            value = parsed.get(rule.field) if isinstance(parsed, dict) else None
            if not rule.validator(value):
                errors.append(rule.error_message)

        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_batch(self, readings) -> Tuple[bool, Dict[int, List[str]]]:
        """Returns (is_valid, {reading index: errors}) for the failing readings."""
        errors = {}
        for index, reading in enumerate(readings):
            result = self.validate_reading(reading)
            if not result.is_valid:
                errors[index] = result.errors
        return not errors, errors
