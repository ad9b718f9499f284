import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional, Tuple

from yieldsync_services.aggregation.extraction import ByExplicitField, ByTypeNamedField, parse_data
from yieldsync_services.anomaly.history import ReadingHistory
from yieldsync_services.errors import ParseFailure
from yieldsync_services.records import canonicalize

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AnomalyType(str, Enum):
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    BELOW_NORMAL = "below_normal"
    ABOVE_NORMAL = "above_normal"
    RAPID_CHANGE = "rapid_change"
    FAST_CHANGE = "fast_change"
    PARSING_ERROR = "parsing_error"


@dataclass(frozen=True)
class SensorThresholds:
    min: float
    max: float
    rate_of_change_warning: float   # units per hour
    rate_of_change_alert: float     # units per hour
    normal_range: Tuple[float, float]


# --- Tunable Parameters ---
DEFAULT_THRESHOLDS = {
    "temperature": SensorThresholds(min=5, max=40, rate_of_change_warning=5, rate_of_change_alert=10,
                                    normal_range=(15, 30)),
    "humidity": SensorThresholds(min=20, max=95, rate_of_change_warning=15, rate_of_change_alert=30,
                                 normal_range=(40, 80)),
    "soil-moisture": SensorThresholds(min=10, max=100, rate_of_change_warning=20, rate_of_change_alert=40,
                                      normal_range=(30, 70)),
    "light": SensorThresholds(min=0, max=100000, rate_of_change_warning=20000, rate_of_change_alert=50000,
                              normal_range=(500, 10000)),
    "co2": SensorThresholds(min=300, max=5000, rate_of_change_warning=500, rate_of_change_alert=1000,
                            normal_range=(400, 1200)),
}
FALLBACK_DATA_TYPE = "temperature"

# The detector reads the sample from `value`, else from the field named after
# the data type. A reading with neither counts as 0.
DETECTION_STRATEGIES = (ByExplicitField("value"), ByTypeNamedField())


@dataclass
class AnomalyDetail:
    type: AnomalyType
    message: str
    actual: Any
    threshold: Optional[float] = None

    def to_dict(self) -> dict:
        detail = {"type": self.type.value, "message": self.message, "actual": self.actual}
        if self.threshold is not None:
            detail["threshold"] = self.threshold
        return detail


@dataclass
class AnomalyReport:
    device_id: str
    data_type: str
    timestamp: int
    location: str
    value: float
    severity: Severity
    anomalies: List[AnomalyDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "dataType": self.data_type,
            "timestamp": self.timestamp,
            "location": self.location,
            "value": self.value,
            "anomalies": [detail.to_dict() for detail in self.anomalies],
            "severity": self.severity.value,
        }


def _detection_value(parsed, data_type: str) -> float:
    for strategy in DETECTION_STRATEGIES:
        value = strategy.extract(parsed, data_type)
        if value is not None:
            return value
    return 0


class AnomalyDetector:
    """
    Range and rate-of-change checks for agricultural sensor readings.

    The rate-of-change history belongs to whoever owns the detector; pass the
    same ReadingHistory to keep it across calls.
    """

    def __init__(self, thresholds: dict = None, history: ReadingHistory = None):
        self.thresholds = dict(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
        self.history = history if history is not None else ReadingHistory()

    def thresholds_for(self, data_type: str, custom_thresholds: dict = None) -> SensorThresholds:
        base = self.thresholds.get(data_type) or DEFAULT_THRESHOLDS[FALLBACK_DATA_TYPE]
        if custom_thresholds:
            return replace(base, **custom_thresholds)
        return base

    def detect(self, reading, custom_thresholds: dict = None) -> Optional[AnomalyReport]:
        """Returns a report when the reading has at least one finding, None otherwise."""
        record = canonicalize(reading)
        thresholds = self.thresholds_for(record.data_type, custom_thresholds)

        try:
            parsed = parse_data(record.data)
            if not isinstance(parsed, dict):
                raise ParseFailure("Sensor data is not a JSON object")
        except ParseFailure as e:
            logger.warning(f"Could not parse data of {record.device_id}/{record.data_type}: {e}")
            return AnomalyReport(
                device_id=record.device_id,
                data_type=record.data_type,
                timestamp=record.timestamp,
                location=record.location,
                value=0,
                severity=Severity.ERROR,
                anomalies=[AnomalyDetail(
                    type=AnomalyType.PARSING_ERROR,
                    message="Failed to parse sensor data",
                    actual=record.data,
                )],
            )

        value = _detection_value(parsed, record.data_type)
        anomalies = []
        severity = Severity.INFO

        # 1. Range checks
        low, high = thresholds.normal_range
        if value < thresholds.min:
            anomalies.append(AnomalyDetail(AnomalyType.BELOW_MINIMUM,
                                           f"Value {value} is below minimum threshold of {thresholds.min}",
                                           value, thresholds.min))
            severity = Severity.ERROR
        elif value > thresholds.max:
            anomalies.append(AnomalyDetail(AnomalyType.ABOVE_MAXIMUM,
                                           f"Value {value} is above maximum threshold of {thresholds.max}",
                                           value, thresholds.max))
            severity = Severity.ERROR
        elif value < low:
            anomalies.append(AnomalyDetail(AnomalyType.BELOW_NORMAL,
                                           f"Value {value} is below normal range of {low}",
                                           value, low))
            severity = Severity.WARNING
        elif value > high:
            anomalies.append(AnomalyDetail(AnomalyType.ABOVE_NORMAL,
                                           f"Value {value} is above normal range of {high}",
                                           value, high))
            severity = Severity.WARNING

        # 2. Rate of change against the previous sample of this device and type
        previous = self.history.append((record.device_id, record.data_type), record.timestamp, value)
        if previous is not None:
            prev_timestamp, prev_value = previous
            hours = (record.timestamp - prev_timestamp) / SECONDS_PER_HOUR
            if hours > 0:
                change_rate = abs(value - prev_value) / hours
                if change_rate > thresholds.rate_of_change_alert:
                    anomalies.append(AnomalyDetail(AnomalyType.RAPID_CHANGE,
                                                   f"Rapid change of {change_rate:.2f} per hour exceeds alert threshold",
                                                   change_rate, thresholds.rate_of_change_alert))
                    if severity == Severity.INFO:
                        severity = Severity.ERROR
                elif change_rate > thresholds.rate_of_change_warning:
                    anomalies.append(AnomalyDetail(AnomalyType.FAST_CHANGE,
                                                   f"Fast change of {change_rate:.2f} per hour exceeds warning threshold",
                                                   change_rate, thresholds.rate_of_change_warning))
                    if severity == Severity.INFO:
                        severity = Severity.WARNING

        if not anomalies:
            return None

        return AnomalyReport(
            device_id=record.device_id,
            data_type=record.data_type,
            timestamp=record.timestamp,
            location=record.location,
            value=value,
            severity=severity,
            anomalies=anomalies,
        )

    def detect_batch(self, readings, custom_thresholds: dict = None) -> List[AnomalyReport]:
        """
        Runs `detect` over the readings in order. `custom_thresholds` maps a
        data type to the threshold fields overriding its defaults.
        """
        reports = []
        for reading in readings:
            overrides = (custom_thresholds or {}).get(canonicalize(reading).data_type)
            report = self.detect(reading, overrides)
            if report is not None:
                reports.append(report)
        return reports

    __call__ = detect_batch


URGENT_TYPES = {AnomalyType.BELOW_MINIMUM, AnomalyType.ABOVE_MAXIMUM, AnomalyType.RAPID_CHANGE}

SUGGESTED_ACTIONS = {
    "temperature": (["Increase ventilation", "Provide shade/cooling"],
                    ["Increase heating", "Check greenhouse insulation"]),
    "humidity": (["Increase ventilation", "Reduce watering frequency"],
                 ["Use humidifier or water misting", "Check for air leaks"]),
    "soil-moisture": (["Check for irrigation system malfunction", "Improve drainage"],
                      ["Increase irrigation", "Check if irrigation system is working properly"]),
    "light": (["Provide shade protection", "Adjust grow light settings"],
              ["Supplement with artificial lighting", "Remove obstructions to natural light"]),
    "co2": (["Increase ventilation immediately", "Check CO₂ enrichment systems for malfunctions"],
            ["Check CO₂ supplementation system", "Ensure adequate air circulation"]),
}


def is_urgent_anomaly(report: AnomalyReport) -> bool:
    return report.severity == Severity.ERROR or any(a.type in URGENT_TYPES for a in report.anomalies)


def get_suggested_actions(report: AnomalyReport) -> List[str]:
    types = {a.type for a in report.anomalies}
    actions = []

    if report.data_type in SUGGESTED_ACTIONS:
        when_high, when_low = SUGGESTED_ACTIONS[report.data_type]
        if types & {AnomalyType.ABOVE_MAXIMUM, AnomalyType.ABOVE_NORMAL}:
            actions.extend(when_high)
        elif types & {AnomalyType.BELOW_MINIMUM, AnomalyType.BELOW_NORMAL}:
            actions.extend(when_low)

    if types & {AnomalyType.RAPID_CHANGE, AnomalyType.FAST_CHANGE}:
        actions.append("Investigate sudden environmental changes")
        actions.append("Check sensor calibration")

    if AnomalyType.PARSING_ERROR in types:
        actions.append("Check sensor hardware for malfunctions")
        actions.append("Verify data transmission system")

    return actions
