from unittest.mock import MagicMock

import pytest
from web3.exceptions import ContractLogicError

from yieldsync_services.chain import iot_data_client
from yieldsync_services.chain.iot_data_client import Batch, IoTDataClient
from yieldsync_services.errors import ChainError
from yieldsync_services.merkle.hashing import to_hex
from yieldsync_services.merkle.proofs import prove
from yieldsync_services.merkle.tree import build_from_records
from yieldsync_services.records import SensorRecord

ROOT = bytes(range(32))
TX_HASH = b"\x11" * 32


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 3
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1}
    return w3


@pytest.fixture
def contract():
    contract = MagicMock()
    contract.events.DataStored.return_value.process_receipt.return_value = [{"args": {"recordId": 17}}]
    contract.events.BatchCreated.return_value.process_receipt.return_value = [{"args": {"batchId": 4}}]
    return contract


@pytest.fixture
def client(w3, contract):
    return IoTDataClient(w3, contract, private_key="0x" + "ab" * 32)


class TestTransactions:

    def test_store_data_returns_record_index(self, client, w3, contract):
        assert client.store_data("device-001", '{"value":20}', "temperature", "greenhouse-a") == 17

        contract.functions.storeData.assert_called_once_with(
            "device-001", '{"value":20}', "temperature", "greenhouse-a"
        )
        function = contract.functions.storeData.return_value
        function.call.assert_called_once()
        assert function.build_transaction.call_args[0][0]["nonce"] == 3
        w3.eth.send_raw_transaction.assert_called_once()

    def test_create_batch_accepts_hex_root(self, client, contract):
        assert client.create_batch(0, 9, to_hex(ROOT), "week 42") == 4
        contract.functions.createBatch.assert_called_once_with(0, 9, ROOT, "week 42")

    def test_revert_in_preflight_is_a_chain_error(self, client, w3, contract):
        contract.functions.storeData.return_value.call.side_effect = ContractLogicError("execution reverted")
        with pytest.raises(ChainError, match="reverted"):
            client.store_data("d", "x", "t", "l")
        w3.eth.send_raw_transaction.assert_not_called()

    def test_failed_receipt_is_a_chain_error(self, client, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 0}
        with pytest.raises(ChainError):
            client.create_batch(0, 1, ROOT, "x")

    def test_connection_failure_is_a_chain_error(self, client, w3):
        w3.eth.get_transaction_count.side_effect = ConnectionError("node down")
        with pytest.raises(ChainError, match="node down"):
            client.store_data("d", "x", "t", "l")

    def test_missing_event_is_a_chain_error(self, client, contract):
        contract.events.DataStored.return_value.process_receipt.return_value = []
        with pytest.raises(ChainError):
            client.store_data("d", "x", "t", "l")

    def test_writes_need_a_signing_key(self, w3, contract):
        read_only = IoTDataClient(w3, contract)
        with pytest.raises(ChainError, match="signing key"):
            read_only.store_data("d", "x", "t", "l")


class TestViews:

    def test_get_data_returns_a_record(self, client, contract):
        contract.functions.getData.return_value.call.return_value = (
            "device-001", 1_700_000_000, "{}", "temperature", "greenhouse-a"
        )
        record = client.get_data(3)
        assert record.device_id == "device-001"
        assert record.timestamp == 1_700_000_000
        contract.functions.getData.assert_called_once_with(3)

    def test_verify_record_passes_digests(self, client, contract):
        contract.functions.verifyRecord.return_value.call.return_value = True
        assert client.verify_record(2, ROOT, [to_hex(ROOT)]) is True
        contract.functions.verifyRecord.assert_called_once_with(2, ROOT, [ROOT])

    def test_get_batch_by_index(self, client, contract):
        contract.functions.getBatchByIndex.return_value.call.return_value = (1, ROOT, 0, 9, 123, "desc")
        batch = client.get_batch_by_index(0)
        assert batch == Batch(1, ROOT, 0, 9, 123, "desc")
        assert batch.to_dict()["merkleRoot"] == to_hex(ROOT)

    def test_counts_and_lookups(self, client, contract):
        contract.functions.getRecordCount.return_value.call.return_value = 12
        contract.functions.getBatchCount.return_value.call.return_value = 2
        contract.functions.getDeviceRecords.return_value.call.return_value = [0, 4]
        contract.functions.knownRoots.return_value.call.return_value = True

        assert client.get_record_count() == 12
        assert client.get_batch_count() == 2
        assert client.get_device_records("device-001") == [0, 4]
        assert client.is_known_root(ROOT) is True

    def test_view_failure_is_a_chain_error(self, client, contract):
        contract.functions.getBatchCount.return_value.call.side_effect = OSError("timeout")
        with pytest.raises(ChainError):
            client.get_batch_count()


def test_from_settings_without_node_returns_none(monkeypatch):
    monkeypatch.setattr(iot_data_client, "ETHEREUM_NODE_URL", None)
    assert IoTDataClient.from_settings() is None


def test_verify_record_expands_positional_proof(client, contract):
    records = [SensorRecord("device-001", 1_700_000_000 + i, "{}", "temperature", "greenhouse-a") for i in range(3)]
    tree = build_from_records(records)
    contract.functions.getData.return_value.call.return_value = (
        "device-001", 1_700_000_002, "{}", "temperature", "greenhouse-a"
    )
    contract.functions.verifyRecord.return_value.call.return_value = True

    assert client.verify_record(2, tree.root, prove(tree.layers, 2)) is True

    leaf = tree.leaves[2]
    contract.functions.getData.assert_called_once_with(2)
    contract.functions.verifyRecord.assert_called_once_with(2, tree.root, [leaf, tree.layers[1][0]])
