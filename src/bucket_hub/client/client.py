"""
Bucket Hub Client

The client is the context object an application owns: it holds the
connected identity, the session manager and the orchestrators, and exposes
one async method per user-facing operation. Nothing in the package keeps
global state; every component receives what it needs from here.
"""

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable, Union

import aiofiles

from ..auth import KeyringSessionStore, SessionManager
from ..config import Settings, get_settings
from ..core.crypto import Sha256ContentAddressing
from ..core.errors import DefinitivelyFailedError, IdentityMissingError
from ..core.interfaces import BackendClient, ChainClient, ContentAddressing, Signer, TransferClient
from ..core.ledger import FeePolicy, TransactionSubmitter
from ..core.models import (
    Bucket,
    BucketCreation,
    BucketRecord,
    DownloadResult,
    FileEntry,
    FileInfo,
    FileStatus,
    FileUpload,
    MspInfo,
    Receipt,
    Session,
    StorageRequest,
    StorageRequestRecord,
)
from ..core.polling import Sleep
from .buckets import BucketOrchestrator
from .files import FileOrchestrator
from .msp import MspHttpClient
from .progress import ProgressCallback

logger = logging.getLogger(__name__)

RemovedCallback = Callable[[str], None]
FailedCallback = Callable[[str, BaseException], None]

FILE_STATUS_VALUES = frozenset(s.value for s in FileStatus)


class DeletionTracker:
    """
    Background removal polls, at most one per file key

    Tracking a key that is already tracked cancels the earlier poll and
    starts over. A cancelled poll reports nothing.
    """

    def __init__(self, files: FileOrchestrator):
        self.files = files
        self._tasks: Dict[str, asyncio.Task] = {}

    def track(self, bucket_id: str, file_key: str,
              on_removed: Optional[RemovedCallback] = None,
              on_failed: Optional[FailedCallback] = None) -> asyncio.Task:
        """Start (or restart) the removal poll for file_key"""
        self.cancel(file_key)
        task = asyncio.create_task(
            self.files.wait_until_removed(bucket_id, file_key),
            name=f"deletion:{file_key}"
        )
        self._tasks[file_key] = task
        task.add_done_callback(partial(self._finished, file_key, on_removed, on_failed))
        return task

    def _finished(self, file_key: str, on_removed: Optional[RemovedCallback],
                  on_failed: Optional[FailedCallback], task: asyncio.Task) -> None:
        if self._tasks.get(file_key) is task:
            del self._tasks[file_key]
        if task.cancelled():
            return

        error = task.exception()
        if error is None:
            logger.info("File %s removed", file_key)
            if on_removed is not None:
                on_removed(file_key)
        else:
            logger.warning("Deletion tracking for %s ended without removal: %s", file_key, error)
            if on_failed is not None:
                on_failed(file_key, error)

    def is_tracking(self, file_key: str) -> bool:
        return file_key in self._tasks

    def tracked_keys(self) -> List[str]:
        return list(self._tasks)

    def task(self, file_key: str) -> Optional[asyncio.Task]:
        """The running removal poll for file_key, if any"""
        return self._tasks.get(file_key)

    def cancel(self, file_key: str) -> bool:
        """Stop polling for file_key; calls already in flight are left alone"""
        task = self._tasks.pop(file_key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        for file_key in list(self._tasks):
            self.cancel(file_key)


class BucketHubClient:
    """Bucket and file operations across ledger, backend and storage provider"""

    def __init__(
        self,
        chain: Optional[ChainClient],
        backend: BackendClient,
        transfer: Optional[TransferClient] = None,
        content: Optional[ContentAddressing] = None,
        settings: Optional[Settings] = None,
        session_store: Optional[KeyringSessionStore] = None,
        identity: Optional[str] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.settings = settings or get_settings()
        self.chain = chain
        self.backend = backend
        if transfer is None:
            if not isinstance(backend, TransferClient):
                raise TypeError("A TransferClient is required when the backend cannot transfer bytes")
            transfer = backend
        self.transfer = transfer
        self.content = content or Sha256ContentAddressing()

        self.sessions = SessionManager(
            backend,
            store=session_store,
            chain_id=self.settings.chain_id,
            domain=self.settings.domain,
            uri=self.settings.uri
        )
        self.submitter = TransactionSubmitter(
            chain,
            FeePolicy(self.settings.priority_fee_wei, self.settings.gas_limit)
        )
        self.buckets = BucketOrchestrator(
            chain, backend, self.submitter, self.sessions, self.content,
            index_policy=self.settings.bucket_index_poll,
            sleep=sleep
        )
        self.files = FileOrchestrator(
            chain, backend, self.transfer, self.submitter, self.sessions, self.content,
            confirmation_policy=self.settings.msp_confirmation_poll,
            ready_policy=self.settings.file_ready_poll,
            deletion_policy=self.settings.file_deletion_poll,
            sleep=sleep
        )
        self.deletions = DeletionTracker(self.files)

        self._identity: Optional[str] = None
        self._listings: Dict[str, List[FileEntry]] = {}
        if identity:
            self.connect(identity)

    @classmethod
    def from_settings(cls, chain: Optional[ChainClient], settings: Optional[Settings] = None,
                      identity: Optional[str] = None, **kwargs) -> 'BucketHubClient':
        """
        Build a client talking HTTP to the configured backend

        chain may be None for read-only use (listings, downloads, login).
        """
        settings = settings or get_settings()
        backend = MspHttpClient(settings.backend_url, timeout=settings.request_timeout)
        store = None
        if settings.persist_session:
            store = KeyringSessionStore(settings.keyring_service, settings.session_ttl_seconds)
        return cls(chain, backend, settings=settings, session_store=store, identity=identity, **kwargs)

    # Identity and session

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    def connect(self, identity: str) -> Optional[Session]:
        """Switch to identity, restoring its persisted session if one is still valid"""
        if not identity:
            raise IdentityMissingError()
        if self._identity and self._identity.lower() != identity.lower():
            self.sessions.invalidate()
            self.deletions.cancel_all()
            self._listings.clear()
        self._identity = identity
        current = self.sessions.current_session()
        if current is not None and current.identity.lower() == identity.lower():
            return current
        return self.sessions.restore(identity)

    def disconnect(self) -> None:
        """Forget the identity and its session"""
        self.deletions.cancel_all()
        self.sessions.invalidate()
        self._identity = None
        self._listings.clear()

    def _require_identity(self) -> str:
        if not self._identity:
            raise IdentityMissingError()
        return self._identity

    async def login(self, signer: Signer) -> Session:
        """Sign in with the wallet behind signer"""
        if self._identity is None or self._identity.lower() != signer.identity.lower():
            self.connect(signer.identity)
        return await self.sessions.login(signer)

    def logout(self) -> None:
        self.sessions.invalidate(self._identity)

    @property
    def is_authenticated(self) -> bool:
        return self.sessions.is_authenticated

    async def close(self) -> None:
        self.deletions.cancel_all()
        aclose = getattr(self.backend, 'aclose', None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> 'BucketHubClient':
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Provider

    async def get_msp_info(self) -> MspInfo:
        with self.sessions.expiry_guard():
            return await self.backend.get_info()

    async def get_health(self) -> Dict[str, Any]:
        with self.sessions.expiry_guard():
            return await self.backend.get_health()

    # Buckets

    async def create_bucket(self, name: str, is_private: bool = False) -> BucketCreation:
        """Submit bucket creation only"""
        return await self.buckets.create(self._require_identity(), name, is_private)

    async def verify_bucket(self, bucket_id: str) -> BucketRecord:
        return await self.buckets.verify(bucket_id, owner=self._identity)

    async def wait_for_bucket(self, bucket_id: str) -> Bucket:
        return await self.buckets.wait_until_indexed(bucket_id)

    async def create_bucket_and_wait(self, name: str, is_private: bool = False,
                                     on_progress: Optional[ProgressCallback] = None) -> BucketCreation:
        """Create, verify on-chain and wait until the backend lists the bucket"""
        return await self.buckets.create_and_track(self._require_identity(), name, is_private, on_progress)

    async def delete_bucket(self, bucket_id: str) -> Receipt:
        self._require_identity()
        receipt = await self.buckets.delete(bucket_id)
        self._listings.pop(bucket_id, None)
        return receipt

    async def list_buckets(self) -> List[Bucket]:
        return await self.buckets.list()

    async def get_bucket(self, bucket_id: str) -> Bucket:
        return await self.buckets.get(bucket_id)

    # Files

    async def upload_file(self, bucket_id: str, name: str, data: bytes,
                          on_progress: Optional[ProgressCallback] = None) -> FileUpload:
        """Run the whole upload: storage request, confirmation, transfer, readiness"""
        upload = await self.files.upload_and_track(self._require_identity(), bucket_id, name, data, on_progress)
        self._listings.pop(bucket_id, None)
        return upload

    async def upload_path(self, bucket_id: str, path: Union[str, Path], name: Optional[str] = None,
                          on_progress: Optional[ProgressCallback] = None) -> FileUpload:
        """Upload a local file, named after its basename unless name is given"""
        path = Path(path)
        async with aiofiles.open(path, 'rb') as f:
            data = await f.read()
        return await self.upload_file(bucket_id, name or path.name, data, on_progress)

    async def issue_storage_request(self, bucket_id: str, name: str, data: bytes) -> StorageRequest:
        prepared = self.files.prepare(name, data)
        return await self.files.issue_storage_request(self._require_identity(), bucket_id, prepared)

    async def wait_for_confirmation(self, file_key: str) -> StorageRequestRecord:
        return await self.files.wait_for_confirmation(file_key)

    async def wait_for_file_ready(self, bucket_id: str, file_key: str) -> FileInfo:
        return await self.files.wait_until_ready(bucket_id, file_key)

    async def delete_file(self, bucket_id: str, file_key: str,
                          on_removed: Optional[RemovedCallback] = None) -> Receipt:
        """
        Request deletion and track removal in the background

        The cached listing shows the file as deletionInProgress right away;
        the entry is dropped once the backend no longer returns the file.
        """
        self._require_identity()
        receipt = await self.files.request_deletion(bucket_id, file_key)
        self._set_cached_status(bucket_id, file_key, FileStatus.DELETION_IN_PROGRESS)
        self.track_deletion(bucket_id, file_key, on_removed)
        return receipt

    def track_deletion(self, bucket_id: str, file_key: str,
                       on_removed: Optional[RemovedCallback] = None) -> asyncio.Task:
        """(Re)start the background removal poll for file_key"""
        def removed(key: str) -> None:
            self._drop_cached(bucket_id, key)
            if on_removed is not None:
                on_removed(key)

        def failed(key: str, error: BaseException) -> None:
            if isinstance(error, DefinitivelyFailedError) and error.reason in FILE_STATUS_VALUES:
                self._set_cached_status(bucket_id, key, FileStatus(error.reason))

        return self.deletions.track(bucket_id, file_key, on_removed=removed, on_failed=failed)

    async def wait_for_file_removed(self, bucket_id: str, file_key: str) -> None:
        """Foreground removal poll; returns at once for a key already gone"""
        await self.files.wait_until_removed(bucket_id, file_key)
        self._drop_cached(bucket_id, file_key)

    async def list_files(self, bucket_id: str) -> List[FileEntry]:
        """Fetch the flattened listing, keeping in-progress deletions marked"""
        entries = await self.files.list_files(bucket_id)
        for i, entry in enumerate(entries):
            if entry.file_key and self.deletions.is_tracking(entry.file_key):
                entries[i] = entry.model_copy(update={'status': FileStatus.DELETION_IN_PROGRESS})
        self._listings[bucket_id] = entries
        return list(entries)

    def cached_files(self, bucket_id: str) -> List[FileEntry]:
        """Last fetched listing with local deletion state applied"""
        return list(self._listings.get(bucket_id, []))

    async def get_file_info(self, bucket_id: str, file_key: str) -> FileInfo:
        return await self.files.get_file_info(bucket_id, file_key)

    async def download_file(self, file_key: str) -> DownloadResult:
        return await self.files.download(file_key)

    async def download_file_to(self, file_key: str, destination: Union[str, Path]) -> int:
        return await self.files.download_to(file_key, destination)

    def _set_cached_status(self, bucket_id: str, file_key: str, status: FileStatus) -> None:
        entries = self._listings.get(bucket_id)
        if not entries:
            return
        self._listings[bucket_id] = [
            e.model_copy(update={'status': status}) if e.file_key == file_key else e
            for e in entries
        ]

    def _drop_cached(self, bucket_id: str, file_key: str) -> None:
        entries = self._listings.get(bucket_id)
        if entries is not None:
            self._listings[bucket_id] = [e for e in entries if e.file_key != file_key]

    def get_user_info(self) -> Dict[str, Any]:
        """Get current identity and session state"""
        session = self.sessions.current_session()
        return {
            'identity': self._identity,
            'authenticated': session is not None,
            'profile': session.profile if session else None,
            'tracked_deletions': self.deletions.tracked_keys(),
        }
