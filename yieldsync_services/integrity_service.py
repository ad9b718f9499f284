import logging
from dataclasses import dataclass, field
from typing import List

from yieldsync_services.errors import InvalidInput
from yieldsync_services.merkle.hashing import leaf_hash, to_digest
from yieldsync_services.merkle.tree import build_from_records
from yieldsync_services.records import canonicalize, canonicalize_all

logger = logging.getLogger(__name__)


@dataclass
class IntegrityIssue:
    record_id: int
    error: str

    def to_dict(self) -> dict:
        return {"recordId": self.record_id, "error": self.error}


@dataclass
class IntegrityReport:
    total_records: int
    valid_records: int
    corrupted_records: int
    details: List[IntegrityIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalRecords": self.total_records,
            "validRecords": self.valid_records,
            "corruptedRecords": self.corrupted_records,
            "details": [issue.to_dict() for issue in self.details],
        }


def verify_data_integrity(record, expected_hash=None) -> bool:
    """Recomputes the record's leaf hash. Without an expected hash the record is accepted."""
    calculated = leaf_hash(canonicalize(record))
    if expected_hash is None:
        return True
    try:
        return calculated == to_digest(expected_hash)
    except InvalidInput:
        return False


def verify_batch_integrity(records, merkle_root) -> bool:
    """Rebuilds the tree over `records` in their given order and compares roots."""
    calculated = build_from_records(canonicalize_all(records)).root
    try:
        return calculated == to_digest(merkle_root)
    except InvalidInput:
        return False


def generate_integrity_report(readings) -> IntegrityReport:
    """
    Checks every reading that carries a `data_hash` against its recomputed
    leaf hash. Readings without one count as valid.
    """
    details = []
    valid = 0

    for index, reading in enumerate(readings):
        expected = getattr(reading, "data_hash", None)
        if expected is None and isinstance(reading, dict):
            expected = reading.get("dataHash", reading.get("data_hash"))
        try:
            if verify_data_integrity(reading, expected):
                valid += 1
            else:
                details.append(IntegrityIssue(index, "Data integrity check failed"))
        except InvalidInput as e:
            details.append(IntegrityIssue(index, str(e)))

    if details:
        logger.warning(f"Integrity report: {len(details)} of {len(readings)} record(s) failed")

    return IntegrityReport(
        total_records=len(readings),
        valid_records=valid,
        corrupted_records=len(readings) - valid,
        details=details,
    )
