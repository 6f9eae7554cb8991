"""
Collaborator interfaces for Bucket Hub

Orchestrators only ever talk to these abstractions. Concrete transports
(chain RPC, wallet, MSP backend) implement them; tests replace them with
in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List, Callable

from .models import (
    Bucket,
    BucketRecord,
    Challenge,
    DownloadResponse,
    FeeOptions,
    FileInfo,
    FileListing,
    MspInfo,
    Receipt,
    Session,
    TxIntent,
    UploadReceipt,
    ValueProposition,
)

# Ledger storage namespaces readable through ChainClient.read_record
BUCKETS = "providers.buckets"
STORAGE_REQUESTS = "fileSystem.storageRequests"

SessionProvider = Callable[[], Optional[Session]]


class ChainClient(ABC):
    """Ledger access: submit writes, await receipts, read records"""

    @abstractmethod
    async def submit_transaction(self, intent: TxIntent, fee_options: FeeOptions) -> str:
        """Sign and broadcast a transaction.

        Returns:
            The transaction hash. Raises if the node refuses the transaction.
        """

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> Receipt:
        """Block until the transaction is included and return its receipt."""

    @abstractmethod
    async def read_record(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        """Read a storage record, or None when the key holds nothing."""

    @abstractmethod
    async def current_base_fee(self) -> int:
        """Base fee per gas of the latest block, in wei."""


class Signer(ABC):
    """Wallet side of challenge-response login"""

    @property
    @abstractmethod
    def identity(self) -> str:
        """Address of the signing account."""

    @abstractmethod
    async def sign_message(self, message: str) -> str:
        """Sign a login message and return the hex signature."""


class BackendClient(ABC):
    """Indexing backend operated by the storage provider"""

    @abstractmethod
    def set_session_provider(self, provider: Optional[SessionProvider]) -> None:
        """Install the hook consulted for credentials before every request."""

    @abstractmethod
    async def request_challenge(self, identity: str, chain_id: int, domain: str, uri: str) -> Challenge:
        """Ask for a signable login message bound to domain and uri."""

    @abstractmethod
    async def verify_challenge(self, message: str, signature: str) -> Dict[str, Any]:
        """Exchange a signed message for a session token payload."""

    @abstractmethod
    async def get_profile(self) -> Dict[str, Any]:
        """Profile of the authenticated user."""

    @abstractmethod
    async def get_health(self) -> Dict[str, Any]:
        """Backend health report."""

    @abstractmethod
    async def get_info(self) -> MspInfo:
        """Storage provider id and network addresses."""

    @abstractmethod
    async def get_value_propositions(self) -> List[ValueProposition]:
        """Value propositions the provider offers for new buckets."""

    @abstractmethod
    async def list_buckets(self) -> List[Bucket]:
        """Buckets owned by the authenticated user."""

    @abstractmethod
    async def get_bucket(self, bucket_id: str) -> Bucket:
        """A single bucket; raises RecordNotFoundError until indexed."""

    @abstractmethod
    async def get_files(self, bucket_id: str) -> FileListing:
        """Nested file tree of a bucket."""

    @abstractmethod
    async def get_file_info(self, bucket_id: str, file_key: str) -> FileInfo:
        """A single file; raises RecordNotFoundError when not indexed or deleted."""


class TransferClient(ABC):
    """Byte transfer to and from the storage provider"""

    @abstractmethod
    async def upload_bytes(self, bucket_id: str, file_key: str, data: bytes,
                           identity: str, name: str) -> UploadReceipt:
        """Send file contents for an issued storage request."""

    @abstractmethod
    async def download_bytes(self, file_key: str) -> DownloadResponse:
        """Open a byte stream for a stored file."""


class ContentAddressing(ABC):
    """Content fingerprinting and deterministic id derivation"""

    @abstractmethod
    def fingerprint(self, data: bytes) -> str:
        """Content hash of the raw bytes."""

    @abstractmethod
    def derive_bucket_id(self, identity: str, name: str) -> str:
        """Bucket id for an owner and bucket name."""

    @abstractmethod
    def derive_file_key(self, identity: str, bucket_id: str, name: str) -> str:
        """File key for an owner, bucket and file name."""


__all__ = [
    'BUCKETS',
    'STORAGE_REQUESTS',
    'SessionProvider',
    'ChainClient',
    'Signer',
    'BackendClient',
    'TransferClient',
    'ContentAddressing',
]
