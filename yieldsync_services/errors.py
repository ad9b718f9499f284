"""
Error kinds raised by the anchoring core and its collaborators.

A failed proof verification is not an exception: `verify` returns False and
callers surface VERIFICATION_FAILED_MESSAGE to the user.
"""

VERIFICATION_FAILED_MESSAGE = "Record could not be verified"


class YieldSyncError(Exception):
    """Base class for all errors raised by yieldsync_services."""

    code = "UNKNOWN"


class EmptyInput(YieldSyncError, ValueError):
    """A Merkle tree was requested over zero records."""

    code = "EMPTY_INPUT"


class InvalidInput(YieldSyncError, ValueError):
    """A caller handed over a malformed record, digest or index."""

    code = "INVALID_DATA"


class ParseFailure(YieldSyncError, ValueError):
    """Structured access to a record's `data` failed. Always degraded by callers."""

    code = "PARSE_FAILURE"


class ChainError(YieldSyncError):
    """A blockchain call failed or reverted."""

    code = "CHAIN_ERROR"


class PartialAnchorError(ChainError):
    """Anchoring stopped after some records were already written on-chain."""

    code = "BATCH_CREATION_FAILED"

    def __init__(self, message, record_indices):
        super().__init__(message)
        self.record_indices = list(record_indices)


ERROR_MESSAGES = {
    "NETWORK_MISMATCH": "Please switch to the configured network",
    "INSUFFICIENT_FUNDS": "Insufficient balance for transaction",
    "RATE_LIMIT_EXCEEDED": "Too many requests. Please wait and try again",
    "INVALID_DATA": "Invalid sensor data format",
    "EMPTY_INPUT": "No records to batch",
    "CONNECTION_LOST": "Connection to blockchain lost. Please retry",
    "CERTIFICATION_FAILED": "Unable to certify record. Check your permissions",
    "BATCH_CREATION_FAILED": "Failed to create data batch",
    "UNAUTHORIZED": "You do not have permission to perform this action",
}


def user_friendly_message(error) -> str:
    """Maps an exception (or anything with `code`/`message`) to a short message for end users."""
    code = getattr(error, "code", None)
    if code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]

    text = str(getattr(error, "message", None) or error).lower()
    if "user rejected" in text:
        return "Transaction was rejected by user"
    if "nonce too low" in text:
        return "Transaction error. Please retry"
    if "insufficient funds" in text:
        return "Insufficient balance to complete transaction"

    return "An unexpected error occurred. Please try again"
