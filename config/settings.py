import logging
import os
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Locate project root ---
# This assumes the 'config' folder is in the project's root directory.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
dotenv_path = os.path.join(PROJECT_ROOT, ".env")

# --- Load variables from .env at project root ---
load_dotenv(dotenv_path)

# --- Blockchain connection ---
ETHEREUM_NODE_URL = os.getenv("ETHEREUM_NODE_URL")
IOT_DATA_CONTRACT_ADDRESS = os.getenv("IOT_DATA_CONTRACT_ADDRESS")
DEVICE_PRIVATE_KEY = os.getenv("DEVICE_PRIVATE_KEY")
IOT_DATA_ABI_PATH = os.getenv("IOT_DATA_ABI_PATH", os.path.join(PROJECT_ROOT, "abis", "iot_data.json"))

# --- Hashing and batching ---
# Unit of the timestamps handed to the canonicalizer. Leaves are always
# hashed in chain seconds; "ms" readings are floored to seconds first.
TIMESTAMP_UNIT = os.getenv("YIELDSYNC_TIMESTAMP_UNIT", "s")
MIN_BATCH_SIZE = int(os.getenv("YIELDSYNC_MIN_BATCH_SIZE", "10"))

# --- Anomaly detection history ---
ANOMALY_HISTORY_SIZE = int(os.getenv("ANOMALY_HISTORY_SIZE", "100"))
ANOMALY_HISTORY_MAX_KEYS = int(os.getenv("ANOMALY_HISTORY_MAX_KEYS", "1000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


if ETHEREUM_NODE_URL and not DEVICE_PRIVATE_KEY:
    logger.warning("DEVICE_PRIVATE_KEY is missing or empty in your .env file; on-chain writes will fail.")
