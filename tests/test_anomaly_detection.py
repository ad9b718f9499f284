import pytest

from yieldsync_services.anomaly.anomaly_detection import (
    AnomalyDetector,
    AnomalyType,
    Severity,
    get_suggested_actions,
    is_urgent_anomaly,
)
from yieldsync_services.anomaly.history import ReadingHistory

from conftest import BASE_TS, HOUR, make_reading


def anomaly_types(report):
    return [detail.type for detail in report.anomalies]


@pytest.fixture
def detector():
    return AnomalyDetector(history=ReadingHistory(max_size=10, max_keys=10))


class TestRangeChecks:

    def test_normal_value_has_no_report(self, detector):
        assert detector.detect(make_reading(value=22)) is None

    @pytest.mark.parametrize("value, expected, severity", [
        (2, AnomalyType.BELOW_MINIMUM, Severity.ERROR),
        (41, AnomalyType.ABOVE_MAXIMUM, Severity.ERROR),
        (12, AnomalyType.BELOW_NORMAL, Severity.WARNING),
        (33, AnomalyType.ABOVE_NORMAL, Severity.WARNING),
    ])
    def test_temperature_thresholds(self, detector, value, expected, severity):
        report = detector.detect(make_reading(value=value))
        assert anomaly_types(report) == [expected]
        assert report.severity == severity
        assert report.value == value

    def test_type_named_field_is_used_without_value(self, detector):
        reading = make_reading(data_type="humidity")
        reading["data"] = {"humidity": 10}
        report = detector.detect(reading)
        assert anomaly_types(report) == [AnomalyType.BELOW_MINIMUM]

    def test_missing_sample_counts_as_zero(self, detector):
        reading = make_reading()
        reading["data"] = {"unit": "°C"}
        report = detector.detect(reading)
        assert report.value == 0
        assert anomaly_types(report) == [AnomalyType.BELOW_MINIMUM]

    def test_unknown_data_type_falls_back_to_temperature(self, detector):
        report = detector.detect(make_reading(value=50, data_type="wind"))
        assert anomaly_types(report) == [AnomalyType.ABOVE_MAXIMUM]

    def test_custom_thresholds_override_defaults(self, detector):
        assert detector.detect(make_reading(value=33), {"normal_range": (10, 35)}) is None

    @pytest.mark.parametrize("data", ["{not json", "[1, 2]"])
    def test_unparseable_data_is_reported(self, detector, data):
        reading = make_reading()
        reading["data"] = data
        report = detector.detect(reading)
        assert anomaly_types(report) == [AnomalyType.PARSING_ERROR]
        assert report.severity == Severity.ERROR


class TestRateOfChange:

    def test_fast_change_is_a_warning(self, detector):
        detector.detect(make_reading(value=20, timestamp=BASE_TS))
        report = detector.detect(make_reading(value=27, timestamp=BASE_TS + HOUR))
        assert anomaly_types(report) == [AnomalyType.FAST_CHANGE]
        assert report.severity == Severity.WARNING
        assert report.anomalies[0].actual == pytest.approx(7)

    def test_rapid_change_is_an_error(self, detector):
        detector.detect(make_reading(value=16, timestamp=BASE_TS))
        report = detector.detect(make_reading(value=28, timestamp=BASE_TS + HOUR))
        assert anomaly_types(report) == [AnomalyType.RAPID_CHANGE]
        assert report.severity == Severity.ERROR

    def test_rate_is_per_hour(self, detector):
        detector.detect(make_reading(value=20, timestamp=BASE_TS))
        assert detector.detect(make_reading(value=24, timestamp=BASE_TS + 2 * HOUR)) is None

    def test_range_severity_is_kept_when_rate_also_fires(self, detector):
        detector.detect(make_reading(value=20, timestamp=BASE_TS))
        report = detector.detect(make_reading(value=34, timestamp=BASE_TS + HOUR))
        assert anomaly_types(report) == [AnomalyType.ABOVE_NORMAL, AnomalyType.RAPID_CHANGE]
        assert report.severity == Severity.WARNING

    def test_same_timestamp_skips_rate_check(self, detector):
        detector.detect(make_reading(value=20, timestamp=BASE_TS))
        assert detector.detect(make_reading(value=29, timestamp=BASE_TS)) is None

    def test_history_is_per_device_and_type(self, detector):
        detector.detect(make_reading(value=16, device_id="a", timestamp=BASE_TS))
        assert detector.detect(make_reading(value=28, device_id="b", timestamp=BASE_TS + HOUR)) is None

    def test_history_is_shared_through_the_passed_object(self):
        history = ReadingHistory()
        AnomalyDetector(history=history).detect(make_reading(value=16, timestamp=BASE_TS))
        report = AnomalyDetector(history=history).detect(make_reading(value=28, timestamp=BASE_TS + HOUR))
        assert anomaly_types(report) == [AnomalyType.RAPID_CHANGE]

    def test_fresh_detectors_do_not_share_history(self):
        AnomalyDetector().detect(make_reading(value=16, timestamp=BASE_TS))
        assert AnomalyDetector().detect(make_reading(value=28, timestamp=BASE_TS + HOUR)) is None


def test_detect_batch_applies_per_type_overrides(detector):
    readings = [
        make_reading(value=33, timestamp=BASE_TS),
        make_reading(value=50, data_type="humidity", device_id="h1", timestamp=BASE_TS),
    ]
    reports = detector.detect_batch(readings, {"temperature": {"normal_range": (10, 35)}})
    assert [r.data_type for r in reports] == []

    reports = AnomalyDetector()(readings)
    assert [r.data_type for r in reports] == ["temperature"]


def test_report_to_dict():
    report = AnomalyDetector().detect(make_reading(value=41))
    payload = report.to_dict()
    assert payload["severity"] == "error"
    assert payload["anomalies"][0] == {
        "type": "above_maximum",
        "message": "Value 41 is above maximum threshold of 40",
        "actual": 41,
        "threshold": 40,
    }


class TestActions:

    def test_urgent_anomalies(self):
        detector = AnomalyDetector()
        assert is_urgent_anomaly(detector.detect(make_reading(value=41)))
        assert not is_urgent_anomaly(detector.detect(make_reading(value=33, device_id="x")))

    def test_actions_for_high_temperature(self):
        report = AnomalyDetector().detect(make_reading(value=33))
        assert get_suggested_actions(report) == ["Increase ventilation", "Provide shade/cooling"]

    def test_actions_for_parse_failure(self):
        reading = make_reading()
        reading["data"] = "???"
        actions = get_suggested_actions(AnomalyDetector().detect(reading))
        assert "Check sensor hardware for malfunctions" in actions


class TestReadingHistory:

    def test_append_returns_previous_sample(self):
        history = ReadingHistory()
        assert history.append(("d", "t"), 1, 10.0) is None
        assert history.append(("d", "t"), 2, 11.0) == (1, 10.0)

    def test_oldest_samples_are_evicted_first(self):
        history = ReadingHistory(max_size=3)
        for ts in range(5):
            history.append("k", ts, ts)
        assert history.samples("k") == [(2, 2), (3, 3), (4, 4)]

    def test_least_recently_updated_key_is_dropped(self):
        history = ReadingHistory(max_keys=2)
        history.append("a", 1, 1)
        history.append("b", 1, 1)
        history.append("a", 2, 2)
        history.append("c", 1, 1)
        assert "a" in history and "c" in history
        assert "b" not in history
        assert len(history) == 2

    @pytest.mark.parametrize("bounds", [{"max_size": 0}, {"max_keys": 0}])
    def test_bounds_must_be_positive(self, bounds):
        with pytest.raises(ValueError):
            ReadingHistory(**bounds)


def test_integer_beyond_float_range_counts_as_missing_sample(detector):
    reading = make_reading()
    reading["data"] = {"value": 10 ** 400}
    report = detector.detect(reading)
    assert report.value == 0
    assert anomaly_types(report) == [AnomalyType.BELOW_MINIMUM]
