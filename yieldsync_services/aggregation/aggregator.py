"""
Per-(device, data type) summaries prepared for on-chain storage.

Each group gets summary statistics over its numeric samples, the number of
readings the anomaly detector flagged, and the Merkle root over the group's
records in timestamp order.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from yieldsync_services.aggregation.extraction import DEFAULT_STRATEGIES, extract_numeric_value
from yieldsync_services.aggregation.statistics import calculate_statistics
from yieldsync_services.anomaly.anomaly_detection import AnomalyDetector
from yieldsync_services.merkle.hashing import to_hex
from yieldsync_services.merkle.tree import build_from_records
from yieldsync_services.records import canonicalize_all

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Aggregate:
    device_id: str
    data_type: str
    start_timestamp: int
    end_timestamp: int
    record_count: int
    min: float
    max: float
    average: float
    median_value: float
    standard_deviation: float
    anomaly_count: int
    merkle_root: bytes

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "dataType": self.data_type,
            "startTimestamp": self.start_timestamp,
            "endTimestamp": self.end_timestamp,
            "recordCount": self.record_count,
            "min": self.min,
            "max": self.max,
            "average": self.average,
            "medianValue": self.median_value,
            "standardDeviation": self.standard_deviation,
            "anomalyCount": self.anomaly_count,
            "merkleRoot": to_hex(self.merkle_root),
        }


def group_records(records) -> Dict[Tuple[str, str], list]:
    """Groups by exact (device_id, data_type), each group sorted by timestamp (stable)."""
    groups = {}
    for record in records:
        groups.setdefault((record.device_id, record.data_type), []).append(record)
    return {key: sorted(group, key=lambda r: r.timestamp) for key, group in groups.items()}


def aggregate(records, detector=None, strategies=DEFAULT_STRATEGIES) -> Dict[Tuple[str, str], Aggregate]:
    """
    Args:
        records: raw readings or canonical records.
        detector: callable taking a group's readings and returning one report
            per flagged reading. Defaults to a fresh AnomalyDetector.
        strategies: ordered numeric extraction strategies.

    Returns:
        A dict keyed by (device_id, data_type).
    """
    if detector is None:
        detector = AnomalyDetector()

    aggregates = {}
    for key, group in group_records(canonicalize_all(records)).items():
        samples = []
        for record in group:
            value = extract_numeric_value(record, strategies)
            if value is not None:
                samples.append(value)

        if len(samples) < len(group):
            logger.debug(f"{key[0]}/{key[1]}: {len(group) - len(samples)} record(s) without a numeric value")

        stats = calculate_statistics(samples)
        reports = detector(group)
        tree = build_from_records(group)

        aggregates[key] = Aggregate(
            device_id=key[0],
            data_type=key[1],
            start_timestamp=group[0].timestamp,
            end_timestamp=group[-1].timestamp,
            record_count=len(group),
            min=stats.min,
            max=stats.max,
            average=stats.average,
            median_value=stats.median,
            standard_deviation=stats.standard_deviation,
            anomaly_count=len(reports),
            merkle_root=tree.root,
        )

    logger.info(f"Aggregated {len(aggregates)} group(s)")
    return aggregates
