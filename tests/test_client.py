"""Tests for the BucketHubClient facade and background deletion tracking."""

from __future__ import annotations

import asyncio

import pytest

from bucket_hub.auth import KeyringSessionStore
from bucket_hub.client.client import BucketHubClient
from bucket_hub.client.msp import MspHttpClient
from bucket_hub.core.errors import (
    AuthExpiredError,
    BackendError,
    DefinitivelyFailedError,
    IdentityMissingError,
    RecordNotFoundError,
)
from bucket_hub.core.models import FileStatus

from .conftest import OTHER, OWNER

BUCKET = "0xbucket"
KEY_A = "0x" + "0a" * 32
KEY_B = "0x" + "0b" * 32


def listing_with(*keys: str) -> dict:
    return {
        "bucketId": BUCKET,
        "files": [
            {"name": f"{key[-4:]}.txt", "type": "file", "fileKey": key, "sizeBytes": 1, "status": "ready"}
            for key in keys
        ],
    }


class TestConnection:
    """Tests for identity switching and session restore."""

    def test_connect_requires_identity(self, client):
        with pytest.raises(IdentityMissingError):
            client.connect("")

    async def test_switching_identity_drops_session(self, logged_in):
        logged_in.connect(OTHER)

        assert logged_in.identity == OTHER
        assert not logged_in.is_authenticated

    async def test_reconnecting_same_identity_keeps_session(self, logged_in):
        session = logged_in.connect(OWNER.upper().replace("0X", "0x"))

        assert session is not None
        assert logged_in.is_authenticated

    async def test_persisted_session_restored_on_connect(self, memory_keyring, chain, backend, signer, settings):
        store = KeyringSessionStore("bucket-hub-test")
        first = BucketHubClient(chain, backend, settings=settings, session_store=store, identity=OWNER)
        await first.login(signer)

        second = BucketHubClient(chain, backend, settings=settings, session_store=store, identity=OWNER)

        assert second.is_authenticated
        assert second.sessions.current_session().token == "token-1"

    async def test_logout(self, logged_in, backend):
        logged_in.logout()
        await logged_in.get_health()

        assert not logged_in.is_authenticated
        assert backend.tokens[-1] is None

    async def test_backend_401_surfaces_expiry(self, logged_in, backend):
        backend.error_for["list_buckets"] = BackendError(401, "Unauthorized")

        with pytest.raises(AuthExpiredError):
            await logged_in.list_buckets()
        assert not logged_in.is_authenticated

    async def test_forbidden_bucket_keeps_session(self, logged_in, backend):
        backend.error_for["get_bucket"] = BackendError(403, "Unauthorized access to private bucket")

        with pytest.raises(BackendError):
            await logged_in.get_bucket("0xother")
        assert logged_in.is_authenticated

    def test_transfer_client_required(self, chain, settings):
        class IndexOnly:
            def set_session_provider(self, provider):
                pass

        with pytest.raises(TypeError):
            BucketHubClient(chain, IndexOnly(), settings=settings)

    async def test_from_settings_builds_http_backend(self, settings):
        client = BucketHubClient.from_settings(None, settings, identity=OWNER)
        async with client:
            assert isinstance(client.backend, MspHttpClient)
            assert client.backend.base_url == settings.backend_url.rstrip("/")
            assert client.sessions.store is None

    def test_user_info(self, client):
        info = client.get_user_info()

        assert info["identity"] == OWNER
        assert info["authenticated"] is False
        assert info["tracked_deletions"] == []


class TestDeleteFile:
    """Tests for optimistic deletion state and background tracking."""

    async def test_marks_in_progress_then_drops_entry(self, logged_in, backend):
        backend.listings[BUCKET] = listing_with(KEY_A, KEY_B)
        await logged_in.list_files(BUCKET)
        backend.script_file(KEY_A, FileStatus.READY, FileStatus.DELETION_IN_PROGRESS, RecordNotFoundError())
        removed = []

        await logged_in.delete_file(BUCKET, KEY_A, on_removed=removed.append)

        statuses = {e.file_key: e.status for e in logged_in.cached_files(BUCKET)}
        assert statuses[KEY_A] == FileStatus.DELETION_IN_PROGRESS
        assert logged_in.deletions.is_tracking(KEY_A)

        await logged_in.deletions.task(KEY_A)
        await asyncio.sleep(0)

        assert removed == [KEY_A]
        assert [e.file_key for e in logged_in.cached_files(BUCKET)] == [KEY_B]
        assert not logged_in.deletions.is_tracking(KEY_A)

    async def test_refetched_listing_keeps_in_progress_marker(self, logged_in, backend):
        backend.listings[BUCKET] = listing_with(KEY_A)
        backend.script_file(KEY_A, FileStatus.READY, FileStatus.DELETION_IN_PROGRESS)

        await logged_in.delete_file(BUCKET, KEY_A)
        entries = await logged_in.list_files(BUCKET)

        assert entries[0].status == FileStatus.DELETION_IN_PROGRESS
        logged_in.deletions.cancel_all()

    async def test_failed_removal_restores_reported_status(self, logged_in, backend):
        backend.listings[BUCKET] = listing_with(KEY_A)
        await logged_in.list_files(BUCKET)
        backend.script_file(KEY_A, FileStatus.READY, FileStatus.EXPIRED)

        await logged_in.delete_file(BUCKET, KEY_A)
        task = logged_in.deletions.task(KEY_A)
        with pytest.raises(DefinitivelyFailedError):
            await task
        await asyncio.sleep(0)

        assert logged_in.cached_files(BUCKET)[0].status == FileStatus.EXPIRED

    async def test_switching_identity_cancels_tracking(self, logged_in, backend):
        backend.script_file(KEY_A, FileStatus.READY, FileStatus.DELETION_IN_PROGRESS)
        await logged_in.delete_file(BUCKET, KEY_A)
        task = logged_in.deletions.task(KEY_A)

        logged_in.connect(OTHER)
        with pytest.raises(asyncio.CancelledError):
            await task

        assert task.cancelled()
        assert logged_in.deletions.tracked_keys() == []

    async def test_delete_requires_identity(self, client, chain):
        client.disconnect()

        with pytest.raises(IdentityMissingError):
            await client.delete_file(BUCKET, KEY_A)
        assert chain.submitted == []


class TestDeletionTracker:
    """Tests for DeletionTracker restart and cancellation."""

    async def test_restart_cancels_previous_poll(self, logged_in, backend):
        backend.script_file(KEY_A, FileStatus.DELETION_IN_PROGRESS)
        tracker = logged_in.deletions
        removed = []

        first = tracker.track(BUCKET, KEY_A, on_removed=removed.append)
        second = tracker.track(BUCKET, KEY_A, on_removed=removed.append)
        await asyncio.gather(first, return_exceptions=True)

        assert first.cancelled()
        assert tracker.task(KEY_A) is second

        backend.script_file(KEY_A, RecordNotFoundError())
        await second
        await asyncio.sleep(0)

        assert removed == [KEY_A]

    async def test_cancel(self, logged_in, backend):
        backend.script_file(KEY_A, FileStatus.DELETION_IN_PROGRESS)
        tracker = logged_in.deletions
        task = tracker.track(BUCKET, KEY_A)

        assert tracker.cancel(KEY_A)
        assert not tracker.cancel(KEY_A)
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_tracks_keys_independently(self, logged_in, backend):
        backend.script_file(KEY_A, FileStatus.DELETION_IN_PROGRESS)
        backend.script_file(KEY_B, FileStatus.DELETION_IN_PROGRESS)
        tracker = logged_in.deletions

        tracker.track(BUCKET, KEY_A)
        tracker.track(BUCKET, KEY_B)
        tracker.cancel(KEY_A)

        assert tracker.tracked_keys() == [KEY_B]
        tracker.cancel_all()
        assert tracker.tracked_keys() == []

