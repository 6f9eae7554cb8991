"""
Data model for Bucket Hub

This module defines the records exchanged with the ledger, the indexing
backend and the storage provider, plus the closed status and progress
enumerations every orchestrator matches on.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, AsyncIterator

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BackendModel(BaseModel):
    """Base for records the backend sends in camelCase"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileStatus(str, Enum):
    """Lifecycle status of a file as reported by the indexing backend"""

    PENDING = "pending"
    READY = "ready"
    REJECTED = "rejected"
    REVOKED = "revoked"
    EXPIRED = "expired"
    DELETION_IN_PROGRESS = "deletionInProgress"

    @property
    def is_terminal_failure(self) -> bool:
        return self in (FileStatus.REJECTED, FileStatus.REVOKED, FileStatus.EXPIRED)


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    REVERTED = "reverted"


class BucketCreationStep(str, Enum):
    CREATING = "creating"
    VERIFYING = "verifying"
    WAITING = "waiting"
    DONE = "done"
    ERROR = "error"


class UploadStep(str, Enum):
    PREPARING = "preparing"
    ISSUING = "issuing"
    CONFIRMING = "confirming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


class DeletionStep(str, Enum):
    REQUESTING = "requesting"
    DELETION_IN_PROGRESS = "deletionInProgress"
    REMOVED = "removed"
    ERROR = "error"


# Sessions

class Challenge(BaseModel):
    """Signable login message issued by the backend"""

    identity: str = Field(..., description="Address the challenge is bound to")
    message: str = Field(..., description="Message the wallet must sign")
    nonce: Optional[str] = Field(None, description="Backend nonce embedded in the message")
    domain: str = Field(..., description="Domain the login is scoped to")
    uri: str = Field(..., description="Origin URI the login is scoped to")


class SignedChallenge(BaseModel):
    challenge: Challenge
    signature: str = Field(..., description="Wallet signature over challenge.message")


class Session(BaseModel):
    """Active authenticated session"""

    token: str = Field(..., description="Opaque bearer credential")
    identity: str = Field(..., description="Address the session belongs to")
    profile: Optional[Dict[str, Any]] = Field(None, description="Profile returned after login")
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator('token')
    @classmethod
    def validate_token(cls, v):
        """Reject empty tokens"""
        if not v or not v.strip():
            raise ValueError("Session token cannot be empty")
        return v


# Ledger

class FeeOptions(BaseModel):
    """EIP-1559 fee parameters for a single submission"""

    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    gas: int


class TxIntent(BaseModel):
    """A state-changing call to submit to the ledger"""

    method: str = Field(..., description="Precompile method name")
    params: Dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Ledger confirmation record for a submitted transaction"""

    transaction_hash: str
    status: ReceiptStatus
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ReceiptStatus.SUCCESS


class BucketRecord(BackendModel):
    """Bucket as stored on the ledger"""

    user_id: Optional[str] = None
    msp_id: Optional[str] = None
    private: bool = False
    root: Optional[str] = None
    value_prop_id: Optional[str] = None
    size: Optional[int] = None


class StorageRequestRecord(BackendModel):
    """Pending storage request as stored on the ledger"""

    owner: Optional[str] = None
    bucket_id: Optional[str] = None
    location: Optional[str] = None
    fingerprint: Optional[str] = None
    size: Optional[int] = None
    msp: Optional[Tuple[str, bool]] = Field(None, description="(msp_id, confirmed)")

    @property
    def msp_confirmed(self) -> bool:
        return bool(self.msp and self.msp[1])


# Backend / storage provider

class MspInfo(BackendModel):
    """Storage provider self-description"""

    msp_id: str
    multiaddresses: List[str] = Field(default_factory=list)
    version: Optional[str] = None
    client: Optional[str] = None

    def peer_ids(self) -> List[str]:
        """Peer identifiers taken from the /p2p/<peerId> segment of each multiaddress"""
        ids = []
        for addr in self.multiaddresses:
            if '/p2p/' not in addr:
                continue
            peer_id = addr.split('/p2p/')[-1].strip('/')
            if peer_id:
                ids.append(peer_id)
        return ids


class ValueProposition(BackendModel):
    id: str
    price_per_giga_unit_of_data_per_block: Optional[str] = None
    data_limit: Optional[int] = None
    is_available: bool = True


class Bucket(BackendModel):
    """Bucket as listed by the indexing backend"""

    bucket_id: str
    name: str
    owner: Optional[str] = Field(None, validation_alias=AliasChoices('owner', 'userId', 'user_id'))
    msp_id: Optional[str] = None
    is_public: bool = True
    value_prop_id: Optional[str] = None
    root: Optional[str] = None
    size_bytes: int = 0
    file_count: int = 0

    @property
    def is_private(self) -> bool:
        return not self.is_public


class FileInfo(BackendModel):
    """File record as indexed by the backend"""

    file_key: str
    fingerprint: str
    bucket_id: str
    location: str
    size_bytes: int = Field(0, validation_alias=AliasChoices('size', 'sizeBytes', 'size_bytes'))
    status: FileStatus
    is_public: bool = True
    uploaded_at: Optional[datetime] = None
    block_hash: Optional[str] = None
    tx_hash: Optional[str] = None


class FileTreeNode(BackendModel):
    """One node of the nested listing returned for a bucket"""

    name: str
    type: Optional[str] = None
    file_key: Optional[str] = None
    size_bytes: Optional[int] = None
    status: Optional[FileStatus] = None
    children: Optional[List['FileTreeNode']] = None

    @property
    def is_file(self) -> bool:
        return self.file_key is not None


class FileListing(BackendModel):
    bucket_id: str
    files: List[FileTreeNode] = Field(default_factory=list)


class FileEntry(BaseModel):
    """Flattened listing row: a file, or a folder path"""

    name: str
    kind: str = Field(..., description="'file' or 'folder'")
    file_key: Optional[str] = None
    size_bytes: Optional[int] = None
    status: Optional[FileStatus] = None


class UploadReceipt(BackendModel):
    status: str
    file_key: Optional[str] = None
    bucket_id: Optional[str] = None
    fingerprint: Optional[str] = None
    location: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "upload_successful"


class DownloadResponse(BaseModel):
    """Raw download answer from the storage provider"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: int
    content_type: Optional[str] = None
    stream: Any = Field(None, description="AsyncIterator[bytes] over the body")

    def iter_bytes(self) -> AsyncIterator[bytes]:
        return self.stream


# Operation results

class BucketCreation(BaseModel):
    bucket_id: str
    name: str
    msp_id: Optional[str] = None
    receipt: Receipt


class PreparedFile(BaseModel):
    name: str
    fingerprint: str
    size_bytes: int


class StorageRequest(BaseModel):
    """Outcome of the issuing step of an upload"""

    bucket_id: str
    file_key: str
    fingerprint: str
    size_bytes: int
    receipt: Receipt


class FileUpload(BaseModel):
    bucket_id: str
    file_key: str
    fingerprint: str
    size_bytes: int
    receipt: Receipt
    file_info: Optional[FileInfo] = None


class DownloadResult(BaseModel):
    file_key: str
    content_type: str = "application/octet-stream"
    data: bytes


def flatten_file_tree(nodes: List[FileTreeNode], path: str = '') -> List[FileEntry]:
    """
    Flatten the backend's nested file tree into listing rows

    The root "/" folder is skipped but its children are kept; every other
    folder is listed by full path before its children.
    """
    result = []
    for node in nodes:
        full_path = f"{path}/{node.name}" if path else node.name

        if node.is_file:
            result.append(FileEntry(
                name=node.name,
                kind='file',
                file_key=node.file_key,
                size_bytes=node.size_bytes,
                status=node.status
            ))
        elif node.children:
            if node.name == '/':
                result.extend(flatten_file_tree(node.children, ''))
            else:
                result.append(FileEntry(name=full_path, kind='folder'))
                result.extend(flatten_file_tree(node.children, full_path))
        elif node.name != '/':
            # Empty folder
            result.append(FileEntry(name=full_path, kind='folder'))
    return result
