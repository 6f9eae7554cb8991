"""
Bucket Hub Core Module

This module contains the protocol-level building blocks:
- Data model and closed status enumerations
- Error taxonomy
- Collaborator interfaces (chain, backend, transfer, content addressing)
- Ledger transaction submission and fee policy
- Convergence polling
"""

from .errors import (
    BucketHubError,
    IdentityMissingError,
    BackendError,
    RecordNotFoundError,
    BackendUnavailableError,
    AuthRejectedError,
    AuthExpiredError,
    StorageProviderError,
    LedgerError,
    SubmissionRejectedError,
    ExecutionRevertedError,
    BucketAlreadyExistsError,
    VerificationFailedError,
    DefinitivelyFailedError,
    PollTimeoutError,
    TransferFailedError,
)
from .models import FileStatus, BucketCreationStep, UploadStep, DeletionStep, Session, Receipt
from .crypto import Sha256ContentAddressing, compute_fingerprint, derive_bucket_id, derive_file_key
from .ledger import FeePolicy, TransactionSubmitter
from .polling import PollPolicy, ProbeResult, poll_until

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
    'FileStatus',
    'BucketCreationStep',
    'UploadStep',
    'DeletionStep',
    'Session',
    'Receipt',
    'Sha256ContentAddressing',
    'compute_fingerprint',
    'derive_bucket_id',
    'derive_file_key',
    'FeePolicy',
    'TransactionSubmitter',
    'PollPolicy',
    'ProbeResult',
    'poll_until',
]
