from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# 1. Raw reading as produced by a device gateway. `data` may still be a
# structured value; the canonicalizer turns it into a string.
class SensorReading(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    timestamp: int                              # chain seconds unless the caller says otherwise
    data_type: str = Field(alias="dataType")    # e.g. "temperature", "soil-moisture"
    data: Union[str, Dict[str, Any], List[Any]]
    location: str
    data_hash: Optional[str] = Field(default=None, alias="dataHash")


# 2. Request body of POST /batches/prepare
class PrepareBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    readings: List[SensorReading]
    expected_root: Optional[str] = Field(default=None, alias="expectedRoot")
    timestamp_unit: Optional[str] = Field(default=None, alias="timestampUnit")


# 3. Request body of POST /batches/verify
class VerifyBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    records: List[SensorReading]
    merkle_root: str = Field(alias="merkleRoot")


# 4. Request body of POST /proofs/verify. Either the leaf digest or the
# record it was hashed from must be present.
class VerifyProofRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    leaf: Optional[str] = None
    record: Optional[SensorReading] = None
    proof: List[str]
    root: str
    index: Optional[int] = None
    leaf_count: Optional[int] = Field(default=None, alias="leafCount")


# 5. Request body of POST /batches/anchor
class AnchorBatchRequest(BaseModel):
    readings: List[SensorReading]
    description: str = ""


# 6. Request body of POST /records/<index>/verify
class RecordProofRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    merkle_root: str = Field(alias="merkleRoot")
    proof: List[str]
