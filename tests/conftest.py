import json

import pytest

from yieldsync_services.records import SensorRecord

BASE_TS = 1_700_000_000
HOUR = 3600


def make_record(value=20, device_id="device-001", data_type="temperature", timestamp=BASE_TS,
                location="greenhouse-a", **extra):
    payload = {"value": value, "unit": "°C"}
    payload.update(extra)
    return SensorRecord(
        device_id=device_id,
        timestamp=timestamp,
        data=json.dumps(payload),
        data_type=data_type,
        location=location,
    )


def make_reading(value=20, device_id="device-001", data_type="temperature", timestamp=BASE_TS,
                 location="greenhouse-a"):
    return {
        "deviceId": device_id,
        "timestamp": timestamp,
        "dataType": data_type,
        "data": {"value": value, "unit": "°C"},
        "location": location,
    }


@pytest.fixture
def records():
    return [make_record(value=18 + i, timestamp=BASE_TS + i * HOUR) for i in range(7)]


@pytest.fixture
def readings():
    return [make_reading(value=v, timestamp=BASE_TS + i * HOUR) for i, v in enumerate([20, 22, 19])]


class FakeIoTDataClient:
    """In-memory stand-in for IoTDataClient that stamps records with its own block time."""

    def __init__(self, first_index=0, block_time=BASE_TS + 12):
        self.stored = {}
        self.batches = []
        self.next_index = first_index
        self.block_time = block_time

    def store_data(self, device_id, data, data_type, location):
        index = self.next_index
        self.stored[index] = SensorRecord(device_id, self.block_time + index, data, data_type, location)
        self.next_index += 1
        return index

    def get_data(self, index):
        return self.stored[index]

    def create_batch(self, from_index, to_index, merkle_root, description):
        self.batches.append((from_index, to_index, merkle_root, description))
        return len(self.batches) - 1
