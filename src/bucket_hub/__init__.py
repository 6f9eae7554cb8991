"""
Bucket Hub

A client for storage provider networks whose ownership and storage
contracts live on a ledger. Every user-facing action (create bucket, upload
file, delete file, delete bucket) submits a transaction, waits for it to be
included, then polls the storage provider's index until it catches up.

Key Features:
- Ledger writes with per-call EIP-1559 fee parameters and strict receipt checks
- Bounded convergence polling with distinct timeout and rejection outcomes
- Challenge-response login with session expiry detection
- Background deletion tracking that can be cancelled or restarted
- Rich terminal interface

Usage:
    from bucket_hub import BucketHubClient

    client = BucketHubClient.from_settings(chain, identity=wallet.identity)
    await client.login(wallet)
    bucket = await client.create_bucket_and_wait("photos")
    upload = await client.upload_file(bucket.bucket_id, "cat.png", data)
"""

__version__ = "0.1.0"
__author__ = "Bucket Hub Contributors"
__license__ = "AGPLv3"

# Core imports
from .core import (
    BucketHubError,
    AuthExpiredError,
    DefinitivelyFailedError,
    PollTimeoutError,
    FileStatus,
    PollPolicy,
)
from .client.client import BucketHubClient
from .auth import SessionManager, KeyringSessionStore
from .config import Settings, get_settings

__all__ = [
    'BucketHubError',
    'AuthExpiredError',
    'DefinitivelyFailedError',
    'PollTimeoutError',
    'FileStatus',
    'PollPolicy',
    'BucketHubClient',
    'SessionManager',
    'KeyringSessionStore',
    'Settings',
    'get_settings',
]
