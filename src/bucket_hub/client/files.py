"""
File lifecycle orchestration

Upload runs preparing -> issuing -> confirming -> finalizing -> done:

- preparing: fingerprint and size the raw bytes
- issuing: submit the ledger storage request and derive the file key
- confirming: poll the ledger until the provider countersigns the request
- finalizing: send the bytes, then poll the index until the file is ready

Deletion runs requesting -> deletionInProgress -> removed. Download is a
single pass-through with no retry.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import aiofiles.os

from ..auth import SessionManager
from ..core.errors import (
    IdentityMissingError,
    RecordNotFoundError,
    StorageProviderError,
    TransferFailedError,
    VerificationFailedError,
)
from ..core.interfaces import (
    STORAGE_REQUESTS,
    BackendClient,
    ChainClient,
    ContentAddressing,
    TransferClient,
)
from ..core.ledger import TransactionSubmitter, issue_storage_request_intent, request_delete_file_intent
from ..core.models import (
    DeletionStep,
    DownloadResult,
    FileEntry,
    FileInfo,
    FileStatus,
    FileUpload,
    PreparedFile,
    Receipt,
    StorageRequest,
    StorageRequestRecord,
    UploadReceipt,
    UploadStep,
    flatten_file_tree,
)
from ..core.polling import PollPolicy, ProbeResult, Sleep, poll_until
from .progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)

UPLOAD_FAILURE_MESSAGES: Dict[FileStatus, str] = {
    FileStatus.REVOKED: "File upload was cancelled by user",
    FileStatus.REJECTED: "File upload was rejected by MSP",
    FileStatus.EXPIRED: "Storage request expired",
}


def upload_outcome(info: FileInfo) -> ProbeResult:
    """Classify a file record seen while waiting for an upload to become ready"""
    status = info.status
    if status == FileStatus.READY:
        return ProbeResult.satisfied(info)
    elif status == FileStatus.PENDING:
        return ProbeResult.not_yet_visible()
    elif status in (FileStatus.REJECTED, FileStatus.REVOKED, FileStatus.EXPIRED):
        return ProbeResult.failed(status.value, UPLOAD_FAILURE_MESSAGES[status])
    elif status == FileStatus.DELETION_IN_PROGRESS:
        return ProbeResult.failed(status.value, "File is being deleted")
    raise ValueError(f"Unhandled file status: {status}")


def deletion_outcome(info: FileInfo) -> ProbeResult:
    """Classify a file record that is still indexed while waiting for its removal"""
    status = info.status
    if status == FileStatus.DELETION_IN_PROGRESS:
        return ProbeResult.not_yet_visible()
    elif status in (FileStatus.PENDING, FileStatus.READY, FileStatus.REJECTED,
                    FileStatus.REVOKED, FileStatus.EXPIRED):
        return ProbeResult.failed(
            status.value,
            f"Deletion of {info.file_key} did not complete: file is {status.value}"
        )
    raise ValueError(f"Unhandled file status: {status}")


class FileOrchestrator:
    """Uploads, confirms, lists, downloads and deletes files"""

    def __init__(
        self,
        chain: ChainClient,
        backend: BackendClient,
        transfer: TransferClient,
        submitter: TransactionSubmitter,
        sessions: SessionManager,
        content: ContentAddressing,
        confirmation_policy: PollPolicy,
        ready_policy: PollPolicy,
        deletion_policy: PollPolicy,
        sleep: Sleep = asyncio.sleep
    ):
        self.chain = chain
        self.backend = backend
        self.transfer_client = transfer
        self.submitter = submitter
        self.sessions = sessions
        self.content = content
        self.confirmation_policy = confirmation_policy
        self.ready_policy = ready_policy
        self.deletion_policy = deletion_policy
        self._sleep = sleep

    # Upload steps

    def prepare(self, name: str, data: bytes) -> PreparedFile:
        """Fingerprint and size the file contents"""
        if not name:
            raise ValueError("File name cannot be empty")
        return PreparedFile(name=name, fingerprint=self.content.fingerprint(data), size_bytes=len(data))

    async def issue_storage_request(self, owner: str, bucket_id: str,
                                    prepared: PreparedFile) -> StorageRequest:
        """Submit the storage request and confirm the ledger holds it"""
        if not owner:
            raise IdentityMissingError()
        self.sessions.require_session()

        with self.sessions.expiry_guard():
            info = await self.backend.get_info()

        if not info.multiaddresses:
            raise StorageProviderError("MSP multiaddresses are missing")
        peer_ids = info.peer_ids()
        if not peer_ids:
            raise StorageProviderError("MSP multiaddresses had no /p2p/<peerId> segment")

        intent = issue_storage_request_intent(
            bucket_id=bucket_id,
            location=prepared.name,
            fingerprint=prepared.fingerprint,
            size=prepared.size_bytes,
            msp_id=info.msp_id,
            peer_ids=peer_ids
        )
        receipt = await self.submitter.submit(intent, failure_message="Storage request failed")

        file_key = self.content.derive_file_key(owner, bucket_id, prepared.name)
        if not await self.chain.read_record(STORAGE_REQUESTS, file_key):
            raise VerificationFailedError(f"Storage request {file_key} not found on chain")

        return StorageRequest(
            bucket_id=bucket_id,
            file_key=file_key,
            fingerprint=prepared.fingerprint,
            size_bytes=prepared.size_bytes,
            receipt=receipt
        )

    async def wait_for_confirmation(self, file_key: str) -> StorageRequestRecord:
        """Poll the ledger until the provider has countersigned the request"""
        async def probe() -> ProbeResult:
            raw = await self.chain.read_record(STORAGE_REQUESTS, file_key)
            if not raw:
                return ProbeResult.failed(
                    "missing",
                    f"StorageRequest for {file_key} no longer exists on-chain."
                )
            record = StorageRequestRecord.model_validate(raw)
            if record.msp_confirmed:
                return ProbeResult.satisfied(record)
            return ProbeResult.not_yet_visible()

        return await poll_until(
            probe, self.confirmation_policy, f"MSP confirmation of {file_key}", self._sleep
        )

    async def transfer(self, owner: str, bucket_id: str, file_key: str,
                       name: str, data: bytes) -> UploadReceipt:
        """Send the file contents to the storage provider"""
        self.sessions.require_session()
        with self.sessions.expiry_guard():
            receipt = await self.transfer_client.upload_bytes(bucket_id, file_key, data, owner, name)
        if not receipt.succeeded:
            raise TransferFailedError(receipt.status, "File upload to MSP failed")
        return receipt

    async def wait_until_ready(self, bucket_id: str, file_key: str) -> FileInfo:
        """Poll the index until the file leaves pending"""
        async def probe() -> ProbeResult:
            try:
                info = await self.backend.get_file_info(bucket_id, file_key)
            except RecordNotFoundError:
                return ProbeResult.not_yet_visible()
            return upload_outcome(info)

        with self.sessions.expiry_guard():
            return await poll_until(probe, self.ready_policy, f"file {file_key} to be ready", self._sleep)

    async def upload_and_track(self, owner: str, bucket_id: str, name: str, data: bytes,
                               on_progress: Optional[ProgressCallback] = None) -> FileUpload:
        """Run the full upload state machine"""
        progress = ProgressTracker(UploadStep.ERROR, on_progress)
        with progress.track():
            if not owner:
                raise IdentityMissingError()
            self.sessions.require_session()

            progress.advance(UploadStep.PREPARING)
            prepared = self.prepare(name, data)

            progress.advance(UploadStep.ISSUING)
            request = await self.issue_storage_request(owner, bucket_id, prepared)

            progress.advance(UploadStep.CONFIRMING)
            await self.wait_for_confirmation(request.file_key)

            progress.advance(UploadStep.FINALIZING)
            await self.transfer(owner, bucket_id, request.file_key, name, data)
            file_info = await self.wait_until_ready(bucket_id, request.file_key)

            progress.advance(UploadStep.DONE)

        return FileUpload(
            bucket_id=bucket_id,
            file_key=request.file_key,
            fingerprint=request.fingerprint,
            size_bytes=request.size_bytes,
            receipt=request.receipt,
            file_info=file_info
        )

    # Deletion

    async def request_deletion(self, bucket_id: str, file_key: str) -> Receipt:
        """Submit the deletion using the file's current metadata"""
        with self.sessions.expiry_guard():
            info = await self.backend.get_file_info(bucket_id, file_key)
        return await self.submitter.submit(
            request_delete_file_intent(info), failure_message="File deletion failed"
        )

    async def wait_until_removed(self, bucket_id: str, file_key: str) -> None:
        """Poll the index until the file record is gone"""
        async def probe() -> ProbeResult:
            try:
                info = await self.backend.get_file_info(bucket_id, file_key)
            except RecordNotFoundError:
                return ProbeResult.satisfied()
            return deletion_outcome(info)

        with self.sessions.expiry_guard():
            await poll_until(probe, self.deletion_policy, f"removal of {file_key}", self._sleep)

    async def delete_and_track(self, bucket_id: str, file_key: str,
                               on_progress: Optional[ProgressCallback] = None) -> Receipt:
        """Request deletion and wait in the foreground until it converges"""
        progress = ProgressTracker(DeletionStep.ERROR, on_progress)
        with progress.track():
            progress.advance(DeletionStep.REQUESTING)
            receipt = await self.request_deletion(bucket_id, file_key)

            progress.advance(DeletionStep.DELETION_IN_PROGRESS)
            await self.wait_until_removed(bucket_id, file_key)

            progress.advance(DeletionStep.REMOVED)
        return receipt

    # Reads and download

    async def list_files(self, bucket_id: str) -> List[FileEntry]:
        with self.sessions.expiry_guard():
            listing = await self.backend.get_files(bucket_id)
        return flatten_file_tree(listing.files)

    async def get_file_info(self, bucket_id: str, file_key: str) -> FileInfo:
        with self.sessions.expiry_guard():
            return await self.backend.get_file_info(bucket_id, file_key)

    async def _open_download(self, file_key: str):
        # A 401 status is classified by the guard like any other auth failure
        with self.sessions.expiry_guard():
            response = await self.transfer_client.download_bytes(file_key)
            if response.status != 200:
                raise TransferFailedError(response.status, f"Download failed with status: {response.status}")
        return response

    async def download(self, file_key: str) -> DownloadResult:
        """Fetch a ready file into memory"""
        response = await self._open_download(file_key)
        chunks = []
        async for chunk in response.iter_bytes():
            chunks.append(chunk)
        return DownloadResult(
            file_key=file_key,
            content_type=response.content_type or "application/octet-stream",
            data=b"".join(chunks)
        )

    async def download_to(self, file_key: str, destination: Union[str, Path]) -> int:
        """Stream a ready file to disk; a failed transfer leaves no partial file"""
        response = await self._open_download(file_key)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        written = 0
        try:
            async with aiofiles.open(destination, 'wb') as f:
                async for chunk in response.iter_bytes():
                    await f.write(chunk)
                    written += len(chunk)
        except BaseException:
            if await aiofiles.os.path.exists(destination):
                await aiofiles.os.remove(destination)
            raise
        return written


__all__ = [
    'FileOrchestrator',
    'upload_outcome',
    'deletion_outcome',
    'UPLOAD_FAILURE_MESSAGES',
]
