import json
import logging
from dataclasses import dataclass
from typing import List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from config.settings import DEVICE_PRIVATE_KEY, ETHEREUM_NODE_URL, IOT_DATA_ABI_PATH, IOT_DATA_CONTRACT_ADDRESS
from yieldsync_services.errors import ChainError
from yieldsync_services.merkle.hashing import leaf_hash, to_digest, to_hex
from yieldsync_services.merkle.proofs import Proof
from yieldsync_services.records import SensorRecord

logger = logging.getLogger(__name__)

CHAIN_ERRORS = (Web3Exception, ValueError, OSError)


@dataclass(frozen=True)
class Batch:
    batch_id: int
    merkle_root: bytes
    from_index: int
    to_index: int
    timestamp: int
    description: str

    def to_dict(self) -> dict:
        return {
            "batchId": self.batch_id,
            "merkleRoot": to_hex(self.merkle_root),
            "fromIndex": self.from_index,
            "toIndex": self.to_index,
            "timestamp": self.timestamp,
            "description": self.description,
        }


class IoTDataClient:
    """
    Thin wrapper around the IoTData contract. Calls either return their
    decoded result or raise ChainError; nothing is retried here.
    """

    def __init__(self, w3: Web3, contract, private_key: str = None):
        self.w3 = w3
        self.contract = contract
        self.account = w3.eth.account.from_key(private_key) if private_key else None
        self._private_key = private_key

    @classmethod
    def from_settings(cls) -> Optional["IoTDataClient"]:
        """Builds a client from config.settings, or returns None when no node is configured."""
        if not ETHEREUM_NODE_URL or not IOT_DATA_CONTRACT_ADDRESS:
            logger.info("Blockchain not configured; on-chain operations are disabled.")
            return None

        w3 = Web3(Web3.HTTPProvider(ETHEREUM_NODE_URL, request_kwargs={"timeout": 30}))
        with open(IOT_DATA_ABI_PATH, "r") as f:
            contract_abi = json.load(f)
        contract = w3.eth.contract(address=Web3.to_checksum_address(IOT_DATA_CONTRACT_ADDRESS), abi=contract_abi)
        logger.info(f"IoTData contract at {IOT_DATA_CONTRACT_ADDRESS} via {ETHEREUM_NODE_URL}")
        return cls(w3, contract, DEVICE_PRIVATE_KEY)

    # --- Transactions ---

    def _transact(self, function, action: str):
        if self.account is None:
            raise ChainError(f"Cannot {action}: no signing key configured")
        try:
            # Preflight simulation surfaces reverts before paying for them
            function.call({"from": self.account.address})
            tx = function.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
            })
            signed_tx = self.w3.eth.account.sign_transaction(tx, private_key=self._private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            logger.info(f"{action}: transaction broadcast {Web3.to_hex(tx_hash)}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except ContractLogicError as e:
            raise ChainError(f"{action} reverted: {e}") from e
        except CHAIN_ERRORS as e:
            raise ChainError(f"{action} failed: {e}") from e

        if receipt["status"] == 0:
            raise ChainError(f"{action}: transaction {Web3.to_hex(tx_hash)} reverted on-chain")
        return receipt

    def store_data(self, device_id: str, data: str, data_type: str, location: str) -> int:
        """Stores one record and returns the index the contract assigned to it."""
        receipt = self._transact(
            self.contract.functions.storeData(device_id, data, data_type, location), "store data"
        )
        events = self.contract.events.DataStored().process_receipt(receipt)
        if not events:
            raise ChainError("store data: no DataStored event in receipt")
        return int(events[0]["args"]["recordId"])

    def create_batch(self, from_index: int, to_index: int, merkle_root, description: str) -> int:
        receipt = self._transact(
            self.contract.functions.createBatch(from_index, to_index, to_digest(merkle_root), description),
            "create batch",
        )
        events = self.contract.events.BatchCreated().process_receipt(receipt)
        if not events:
            raise ChainError("create batch: no BatchCreated event in receipt")
        batch_id = int(events[0]["args"]["batchId"])
        logger.info(f"Batch {batch_id} created for records {from_index}..{to_index}")
        return batch_id

    # --- Views ---

    def _call(self, function, action: str):
        try:
            return function.call()
        except CHAIN_ERRORS as e:
            raise ChainError(f"{action} failed: {e}") from e

    def verify_record(self, record_index: int, merkle_root, proof) -> bool:
        """
        On-chain mirror of the off-chain verifier: a plain fold over `proof`.
        A positional Proof is expanded to full height against the stored
        record's leaf first.
        """
        if isinstance(proof, Proof):
            proof = proof.contract_path(leaf_hash(self.get_data(record_index)))
        path = [to_digest(sibling) for sibling in proof]
        function = self.contract.functions.verifyRecord(record_index, to_digest(merkle_root), path)
        return bool(self._call(function, "verify record"))

    def get_data(self, record_index: int) -> SensorRecord:
        device_id, timestamp, data, data_type, location = self._call(
            self.contract.functions.getData(record_index), "get data"
        )
        return SensorRecord(device_id=device_id, timestamp=int(timestamp), data=data,
                            data_type=data_type, location=location)

    def get_record_count(self) -> int:
        return int(self._call(self.contract.functions.getRecordCount(), "get record count"))

    def get_device_records(self, device_id: str) -> List[int]:
        return [int(i) for i in self._call(self.contract.functions.getDeviceRecords(device_id), "get device records")]

    def get_batch_count(self) -> int:
        return int(self._call(self.contract.functions.getBatchCount(), "get batch count"))

    def get_batch_by_index(self, index: int) -> Batch:
        batch_id, merkle_root, from_index, to_index, timestamp, description = self._call(
            self.contract.functions.getBatchByIndex(index), "get batch"
        )
        return Batch(
            batch_id=int(batch_id),
            merkle_root=bytes(merkle_root),
            from_index=int(from_index),
            to_index=int(to_index),
            timestamp=int(timestamp),
            description=description,
        )

    def is_known_root(self, merkle_root) -> bool:
        return bool(self._call(self.contract.functions.knownRoots(to_digest(merkle_root)), "check root"))
