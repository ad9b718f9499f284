"""
Batch preparation and anchoring.

`prepare_batch` is the pure entry point: readings in, root + proofs +
aggregates out. `anchor_readings` drives the chain client: it stores the
readings, reads them back so the leaves carry the timestamps the contract
actually recorded, and commits the root over them as a batch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from config.settings import MIN_BATCH_SIZE
from yieldsync_services.aggregation.aggregator import Aggregate, aggregate
from yieldsync_services.anomaly.anomaly_detection import AnomalyDetector, AnomalyReport
from yieldsync_services.errors import ChainError, EmptyInput, InvalidInput, PartialAnchorError
from yieldsync_services.merkle.hashing import leaf_hash, to_digest, to_hex
from yieldsync_services.merkle.proofs import Proof, prove_all
from yieldsync_services.merkle.tree import MerkleTree, build
from yieldsync_services.records import SensorRecord, canonicalize_all

logger = logging.getLogger(__name__)


@dataclass
class PreparedBatch:
    records: List[SensorRecord]
    tree: MerkleTree
    proofs: Dict[int, Proof]
    aggregates: Dict[Tuple[str, str], Aggregate]
    anomalies: List[AnomalyReport]
    matches_expected: Optional[bool] = None

    @property
    def merkle_root(self) -> bytes:
        return self.tree.root

    def to_dict(self) -> dict:
        return {
            "merkleRoot": self.tree.root_hex,
            "records": [
                dict(record.to_dict(), leaf=to_hex(leaf))
                for record, leaf in zip(self.records, self.tree.leaves)
            ],
            "proofs": {str(index): proof.to_hex() for index, proof in self.proofs.items()},
            "contractProofs": {
                str(index): [to_hex(sibling) for sibling in proof.contract_path(self.tree.leaves[index])]
                for index, proof in self.proofs.items()
            },
            "aggregates": [agg.to_dict() for agg in self.aggregates.values()],
            "anomalies": [report.to_dict() for report in self.anomalies],
            "matchesExpected": self.matches_expected,
        }


@dataclass
class AnchoredBatch:
    batch_id: Optional[int]
    record_indices: List[int]
    records: List[SensorRecord]
    tree: MerkleTree
    proofs: Dict[int, Proof] = field(default_factory=dict)

    def contract_proof(self, position: int) -> list:
        """Full-height sibling list for the record at `position`, as verifyRecord folds it."""
        path = self.proofs[position].contract_path(self.tree.leaves[position])
        return [to_hex(sibling) for sibling in path]

    def to_dict(self) -> dict:
        return {
            "batchId": self.batch_id,
            "recordIndices": self.record_indices,
            "merkleRoot": self.tree.root_hex,
            "proofs": {
                str(record_index): self.contract_proof(position)
                for position, record_index in enumerate(self.record_indices)
            },
        }


def prepare_batch(readings, expected_root=None, detector=None, timestamp_unit: str = None) -> PreparedBatch:
    """
    Canonicalizes the readings, builds the tree in input order and derives
    every proof plus the per-group aggregates.

    When `expected_root` is given, `matches_expected` tells whether the
    freshly built root equals it. A mismatch is a result, not an error.
    """
    records = canonicalize_all(readings, timestamp_unit)
    if not records:
        raise EmptyInput("No records for Merkle tree")

    tree = build([leaf_hash(record) for record in records])
    proofs = prove_all(tree.layers)

    # Batch-wide reports share the caller's history; aggregates get a fresh one.
    detector = detector if detector is not None else AnomalyDetector()
    anomalies = detector.detect_batch(records)
    aggregates = aggregate(records, detector=AnomalyDetector(thresholds=detector.thresholds))

    matches_expected = None
    if expected_root is not None:
        try:
            matches_expected = tree.root == to_digest(expected_root)
        except InvalidInput:
            matches_expected = False
        if not matches_expected:
            logger.warning(f"Batch root {tree.root_hex} does not match expected root {expected_root}")

    logger.info(f"Prepared batch of {len(records)} record(s), root {tree.root_hex}")
    return PreparedBatch(
        records=records,
        tree=tree,
        proofs=proofs,
        aggregates=aggregates,
        anomalies=anomalies,
        matches_expected=matches_expected,
    )


def anchor_readings(client, readings, description: str = None, min_batch_size: int = MIN_BATCH_SIZE,
                    timestamp_unit: str = None) -> AnchoredBatch:
    """
    Stores every reading through `client`, rebuilds the tree from the records
    as the contract stored them and creates a batch over the stored index
    range once at least `min_batch_size` records were written.
    """
    records = canonicalize_all(readings, timestamp_unit)
    if not records:
        raise EmptyInput("No records to anchor")

    indices = []
    for record in records:
        try:
            indices.append(client.store_data(record.device_id, record.data, record.data_type, record.location))
        except ChainError as e:
            raise PartialAnchorError(
                f"Stored {len(indices)} of {len(records)} record(s) before failing: {e}", indices
            ) from e
    logger.info(f"Stored {len(indices)} record(s) on-chain: {indices[0]}..{indices[-1]}")

    # The contract stamps records with block time, so hash what it stored.
    stored = [client.get_data(index) for index in indices]
    tree = build([leaf_hash(record) for record in stored])

    batch_id = None
    if len(stored) >= min_batch_size:
        if description is None:
            description = f"Auto-synced batch for {records[0].device_id} at {datetime.now(timezone.utc).isoformat()}"
        batch_id = client.create_batch(min(indices), max(indices), tree.root, description)
    else:
        logger.info(f"Only {len(stored)} record(s); batch creation needs {min_batch_size}")

    return AnchoredBatch(
        batch_id=batch_id,
        record_indices=indices,
        records=stored,
        tree=tree,
        proofs=prove_all(tree.layers),
    )
