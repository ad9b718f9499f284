from flask import Flask, request, jsonify
from flask_cors import CORS
from pydantic import ValidationError
import logging
import os
import sys

# --- Path Configuration ---
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(PROJECT_ROOT)

from config.settings import LOG_LEVEL
from yieldsync_services.batching import anchor_readings, prepare_batch
from yieldsync_services.chain.iot_data_client import IoTDataClient
from yieldsync_services.errors import (
    VERIFICATION_FAILED_MESSAGE,
    ChainError,
    PartialAnchorError,
    YieldSyncError,
    user_friendly_message,
)
from yieldsync_services.integrity_service import verify_batch_integrity
from yieldsync_services.merkle.hashing import leaf_hash, to_digest, to_hex
from yieldsync_services.merkle.proofs import Proof, verify
from yieldsync_services.records import canonicalize
from yieldsync_services.schemas import (
    AnchorBatchRequest,
    PrepareBatchRequest,
    RecordProofRequest,
    VerifyBatchRequest,
    VerifyProofRequest,
)
from yieldsync_services.validation_service import DataValidator

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger("yieldsync.api")

app = Flask(__name__)
# Structured sensor data is hashed in the order it was received
app.json.sort_keys = False
CORS(app)

validator = DataValidator()

# Initialize blockchain connection
try:
    iot_client = IoTDataClient.from_settings()
except (OSError, ValueError) as e:
    logger.error(f"Blockchain connection failed: {e}")
    iot_client = None


def error_response(message, status):
    return jsonify({"status": "error", "message": message}), status


@app.errorhandler(ValidationError)
def handle_validation_error(e):
    errors = [{"loc": [str(part) for part in err["loc"]], "msg": err["msg"]} for err in e.errors()]
    return jsonify({"status": "error", "message": "Invalid request body", "errors": errors}), 400


@app.errorhandler(ChainError)
def handle_chain_error(e):
    logger.error(f"Chain call failed: {e}")
    return error_response(user_friendly_message(e), 502)


@app.errorhandler(PartialAnchorError)
def handle_partial_anchor(e):
    logger.error(f"Anchoring interrupted: {e}")
    return jsonify({
        "status": "error",
        "message": user_friendly_message(e),
        "recordIndices": e.record_indices,
    }), 502


@app.errorhandler(YieldSyncError)
def handle_yieldsync_error(e):
    return error_response(str(e), 400)


def require_chain():
    if iot_client is None:
        return error_response("Blockchain connection not available", 503)
    return None


@app.route('/batches/prepare', methods=['POST'])
def prepare():
    """
    Validates the readings, then returns the Merkle root, a proof per
    reading and the per-device aggregates.
    """
    body = PrepareBatchRequest.model_validate(request.get_json(silent=True) or {})

    is_valid, errors = validator.validate_batch(body.readings)
    if not is_valid:
        return jsonify({
            "status": "error",
            "message": "Sensor readings failed validation",
            "errors": {str(index): messages for index, messages in errors.items()},
        }), 400

    batch = prepare_batch(body.readings, expected_root=body.expected_root, timestamp_unit=body.timestamp_unit)
    return jsonify(dict(batch.to_dict(), status="success"))


@app.route('/batches/verify', methods=['POST'])
def verify_batch():
    body = VerifyBatchRequest.model_validate(request.get_json(silent=True) or {})
    matches = verify_batch_integrity(body.records, body.merkle_root)
    return jsonify({
        "status": "success",
        "verified": matches,
        "message": "Batch integrity verified" if matches else VERIFICATION_FAILED_MESSAGE,
    })


@app.route('/proofs/verify', methods=['POST'])
def verify_proof():
    body = VerifyProofRequest.model_validate(request.get_json(silent=True) or {})

    if body.leaf is not None:
        leaf = to_digest(body.leaf)
    elif body.record is not None:
        leaf = leaf_hash(canonicalize(body.record))
    else:
        return error_response("Either 'leaf' or 'record' is required.", 400)

    proof = body.proof
    if body.index is not None and body.leaf_count is not None:
        proof = Proof(index=body.index, leaf_count=body.leaf_count,
                      siblings=tuple(body.proof))

    verified = verify(leaf, proof, body.root)
    return jsonify({
        "status": "success",
        "leaf": to_hex(leaf),
        "verified": verified,
        "message": "Record verified" if verified else VERIFICATION_FAILED_MESSAGE,
    })


@app.route('/batches/anchor', methods=['POST'])
def anchor():
    unavailable = require_chain()
    if unavailable:
        return unavailable

    body = AnchorBatchRequest.model_validate(request.get_json(silent=True) or {})
    is_valid, errors = validator.validate_batch(body.readings)
    if not is_valid:
        return jsonify({
            "status": "error",
            "message": "Sensor readings failed validation",
            "errors": {str(index): messages for index, messages in errors.items()},
        }), 400

    anchored = anchor_readings(iot_client, body.readings, description=body.description or None)
    return jsonify(dict(anchored.to_dict(), status="success"))


@app.route('/batches/<int:index>', methods=['GET'])
def get_batch(index):
    unavailable = require_chain()
    if unavailable:
        return unavailable
    return jsonify(dict(iot_client.get_batch_by_index(index).to_dict(), status="success"))


@app.route('/records/<int:index>/verify', methods=['POST'])
def verify_record(index):
    unavailable = require_chain()
    if unavailable:
        return unavailable

    body = RecordProofRequest.model_validate(request.get_json(silent=True) or {})
    verified = iot_client.verify_record(index, body.merkle_root, body.proof)

    return jsonify({
        "status": "success",
        "recordIndex": index,
        "verified": verified,
        "message": "Record verified" if verified else VERIFICATION_FAILED_MESSAGE,
    })


if __name__ == '__main__':
    logger.info(f"Starting YieldSync anchoring API (project root: {PROJECT_ROOT})")
    logger.info(f"Blockchain: {'Connected' if iot_client else 'Not Available'}")
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port)
