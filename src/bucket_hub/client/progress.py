"""
Operation progress reporting

Orchestrated calls move through an ordered step enum and may jump to an
error step from anywhere. Progress is reported to an optional callback and
never stored beyond the call.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from ..core.models import BucketCreationStep, DeletionStep, UploadStep

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Enum, str], None]

BUCKET_CREATION_MESSAGES: Dict[BucketCreationStep, str] = {
    BucketCreationStep.CREATING: "Creating bucket on-chain...",
    BucketCreationStep.VERIFYING: "Verifying on-chain...",
    BucketCreationStep.WAITING: "Waiting for backend...",
    BucketCreationStep.DONE: "Done!",
    BucketCreationStep.ERROR: "Bucket creation failed",
}

UPLOAD_MESSAGES: Dict[UploadStep, str] = {
    UploadStep.PREPARING: "Preparing file...",
    UploadStep.ISSUING: "Issuing storage request...",
    UploadStep.CONFIRMING: "Waiting for MSP confirmation...",
    UploadStep.FINALIZING: "Finalizing...",
    UploadStep.DONE: "File uploaded successfully!",
    UploadStep.ERROR: "Upload failed",
}

DELETION_MESSAGES: Dict[DeletionStep, str] = {
    DeletionStep.REQUESTING: "Requesting deletion on-chain...",
    DeletionStep.DELETION_IN_PROGRESS: "Deletion in progress...",
    DeletionStep.REMOVED: "File removed",
    DeletionStep.ERROR: "Deletion failed",
}

STEP_MESSAGES = {
    BucketCreationStep: BUCKET_CREATION_MESSAGES,
    UploadStep: UPLOAD_MESSAGES,
    DeletionStep: DELETION_MESSAGES,
}


def step_message(step: Enum) -> str:
    """Default user-facing message for a step"""
    return STEP_MESSAGES[type(step)][step]


class ProgressTracker:
    """Tracks the current step of one orchestrated call"""

    def __init__(self, error_step: Enum, callback: Optional[ProgressCallback] = None):
        self.error_step = error_step
        self.callback = callback
        self.step: Optional[Enum] = None

    def advance(self, step: Enum, message: Optional[str] = None) -> None:
        self.step = step
        message = message or step_message(step)
        logger.info("%s: %s", step.value, message)
        if self.callback is not None:
            self.callback(step, message)

    @contextmanager
    def track(self) -> Iterator['ProgressTracker']:
        """Move to the error step if the block raises, then re-raise"""
        try:
            yield self
        except Exception as e:
            self.advance(self.error_step, str(e) or step_message(self.error_step))
            raise
