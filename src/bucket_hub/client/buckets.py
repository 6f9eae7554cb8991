"""
Bucket lifecycle orchestration

Creation runs creating -> verifying -> waiting -> done: a ledger write, a
direct ledger read-back by the client-derived bucket id, then a poll until
the indexing backend lists the bucket. Deletion is a single ledger write;
the index is allowed to catch up in the background.
"""

import asyncio
import logging
from typing import List, Optional

from ..core.errors import (
    BucketAlreadyExistsError,
    ExecutionRevertedError,
    IdentityMissingError,
    RecordNotFoundError,
    StorageProviderError,
    SubmissionRejectedError,
    VerificationFailedError,
)
from ..core.interfaces import BUCKETS, BackendClient, ChainClient, ContentAddressing
from ..core.ledger import TransactionSubmitter, create_bucket_intent, delete_bucket_intent
from ..core.models import Bucket, BucketCreation, BucketCreationStep, BucketRecord, Receipt
from ..core.polling import PollPolicy, ProbeResult, Sleep, poll_until
from ..auth import SessionManager
from .progress import ProgressCallback, ProgressTracker

logger = logging.getLogger(__name__)

BUCKET_DELETION_HINT = "Bucket deletion failed (make sure that the bucket is empty prior to deletion)"


class BucketOrchestrator:
    """Creates, verifies, lists and deletes buckets"""

    def __init__(
        self,
        chain: ChainClient,
        backend: BackendClient,
        submitter: TransactionSubmitter,
        sessions: SessionManager,
        content: ContentAddressing,
        index_policy: PollPolicy,
        sleep: Sleep = asyncio.sleep
    ):
        self.chain = chain
        self.backend = backend
        self.submitter = submitter
        self.sessions = sessions
        self.content = content
        self.index_policy = index_policy
        self._sleep = sleep

    async def _provider_terms(self):
        """Storage provider id and the value proposition new buckets use"""
        with self.sessions.expiry_guard():
            info = await self.backend.get_info()
            value_props = await self.backend.get_value_propositions()

        if not value_props:
            raise StorageProviderError("No value propositions available from MSP")
        # First proposition is the provider's default offer
        return info, value_props[0].id

    async def create(self, owner: str, name: str, is_private: bool = False) -> BucketCreation:
        """Submit the bucket creation and return its derived id and receipt"""
        if not owner:
            raise IdentityMissingError()

        info, value_prop_id = await self._provider_terms()
        bucket_id = self.content.derive_bucket_id(owner, name)

        existing = await self.chain.read_record(BUCKETS, bucket_id)
        if existing:
            raise BucketAlreadyExistsError(bucket_id)

        intent = create_bucket_intent(info.msp_id, name, is_private, value_prop_id)
        receipt = await self.submitter.submit(intent, failure_message="Bucket creation failed")
        return BucketCreation(bucket_id=bucket_id, name=name, msp_id=info.msp_id, receipt=receipt)

    async def verify(self, bucket_id: str, owner: Optional[str] = None,
                     msp_id: Optional[str] = None) -> BucketRecord:
        """Read the bucket back from the ledger after inclusion"""
        raw = await self.chain.read_record(BUCKETS, bucket_id)
        if not raw:
            raise VerificationFailedError("Bucket not found on chain after creation")

        record = BucketRecord.model_validate(raw)
        if owner and record.user_id and record.user_id.lower() != owner.lower():
            logger.warning("Bucket owner mismatch for %s: %s", bucket_id, record.user_id)
        if msp_id and record.msp_id and record.msp_id.lower() != msp_id.lower():
            logger.warning("Bucket MSP mismatch for %s: %s", bucket_id, record.msp_id)
        return record

    async def wait_until_indexed(self, bucket_id: str) -> Bucket:
        """Poll the backend until it lists the bucket"""
        async def probe() -> ProbeResult:
            try:
                bucket = await self.backend.get_bucket(bucket_id)
            except RecordNotFoundError:
                return ProbeResult.not_yet_visible()
            return ProbeResult.satisfied(bucket)

        with self.sessions.expiry_guard():
            return await poll_until(probe, self.index_policy, f"bucket {bucket_id} in MSP backend", self._sleep)

    async def create_and_track(self, owner: str, name: str, is_private: bool = False,
                               on_progress: Optional[ProgressCallback] = None) -> BucketCreation:
        """Run the full creation state machine"""
        progress = ProgressTracker(BucketCreationStep.ERROR, on_progress)
        with progress.track():
            progress.advance(BucketCreationStep.CREATING)
            creation = await self.create(owner, name, is_private)

            progress.advance(BucketCreationStep.VERIFYING)
            await self.verify(creation.bucket_id, owner=owner, msp_id=creation.msp_id)

            progress.advance(BucketCreationStep.WAITING)
            await self.wait_until_indexed(creation.bucket_id)

            progress.advance(BucketCreationStep.DONE)
        return creation

    async def delete(self, bucket_id: str) -> Receipt:
        """Delete a bucket; the ledger refuses non-empty buckets"""
        try:
            return await self.submitter.submit(delete_bucket_intent(bucket_id))
        except ExecutionRevertedError as e:
            raise ExecutionRevertedError(
                e.tx_hash,
                f"{BUCKET_DELETION_HINT}: {e.tx_hash}"
            ) from e
        except SubmissionRejectedError as e:
            raise SubmissionRejectedError(f"{BUCKET_DELETION_HINT}: {e}") from e

    async def list(self) -> List[Bucket]:
        with self.sessions.expiry_guard():
            return await self.backend.list_buckets()

    async def get(self, bucket_id: str) -> Bucket:
        with self.sessions.expiry_guard():
            return await self.backend.get_bucket(bucket_id)
