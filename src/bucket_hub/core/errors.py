"""
Error taxonomy for Bucket Hub

Every failure an orchestrated operation can end with is one of these
classes. Lower layers either classify an error into one of them or let it
propagate unchanged; nothing here is retried automatically.
"""

from typing import Optional


class BucketHubError(Exception):
    """Base exception for all Bucket Hub operations"""
    pass


class IdentityMissingError(BucketHubError):
    """No connected identity (wallet address) for a write operation"""

    def __init__(self, message: str = "Wallet not connected"):
        super().__init__(message)


class BackendError(BucketHubError):
    """The indexing backend answered with an error status"""

    def __init__(self, status_code: int, message: str = "", body: Optional[dict] = None):
        self.status_code = status_code
        self.message = message
        self.body = body or {}
        super().__init__(f"Backend error {status_code}: {message}" if message else f"Backend error {status_code}")


class RecordNotFoundError(BackendError):
    """The backend has no record for the requested key (not indexed yet, or deleted)"""

    def __init__(self, message: str = "Not found: Record", body: Optional[dict] = None):
        super().__init__(404, message, body)


class BackendUnavailableError(BucketHubError):
    """The backend could not be reached at all"""
    pass


class AuthRejectedError(BucketHubError):
    """The backend refused the signed login challenge"""
    pass


class AuthExpiredError(BucketHubError):
    """The session is no longer valid and the user must sign in again"""

    def __init__(self, message: str = "Session expired. Please re-authenticate."):
        super().__init__(message)


class StorageProviderError(BucketHubError):
    """The storage provider did not advertise what an operation needs"""
    pass


class LedgerError(BucketHubError):
    """Base class for ledger-side transaction failures"""
    pass


class SubmissionRejectedError(LedgerError):
    """The node refused to accept the transaction"""
    pass


class ExecutionRevertedError(LedgerError):
    """The transaction was included but did not execute successfully"""

    def __init__(self, tx_hash: str, message: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message or f"Transaction failed: {tx_hash}")


class BucketAlreadyExistsError(BucketHubError):
    """A bucket with the derived id is already on the ledger"""

    def __init__(self, bucket_id: str):
        self.bucket_id = bucket_id
        super().__init__(f"Bucket already exists: {bucket_id}")


class VerificationFailedError(BucketHubError):
    """The ledger has no record for something a successful receipt just created"""
    pass


class DefinitivelyFailedError(BucketHubError):
    """A polled system reported a terminal negative outcome"""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)


class PollTimeoutError(BucketHubError):
    """Polling ran out of attempts; the true outcome is unknown"""

    def __init__(self, description: str, attempts: int):
        self.description = description
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {description} after {attempts} attempts")


class TransferFailedError(BucketHubError):
    """Moving bytes to or from the storage provider failed"""

    def __init__(self, status, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"Transfer failed with status: {status}")


__all__ = [
    'BucketHubError',
    'IdentityMissingError',
    'BackendError',
    'RecordNotFoundError',
    'BackendUnavailableError',
    'AuthRejectedError',
    'AuthExpiredError',
    'StorageProviderError',
    'LedgerError',
    'SubmissionRejectedError',
    'ExecutionRevertedError',
    'BucketAlreadyExistsError',
    'VerificationFailedError',
    'DefinitivelyFailedError',
    'PollTimeoutError',
    'TransferFailedError',
]
