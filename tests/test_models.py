"""Tests for data model parsing and file tree flattening."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from bucket_hub.core.models import (
    Bucket,
    FileInfo,
    FileStatus,
    FileTreeNode,
    MspInfo,
    Session,
    StorageRequestRecord,
    flatten_file_tree,
)


class TestBackendRecords:
    """Tests for camelCase backend payloads."""

    def test_file_info_from_backend(self):
        info = FileInfo.model_validate({
            "fileKey": "0xk",
            "fingerprint": "0xfp",
            "bucketId": "0xb",
            "location": "docs/a.txt",
            "size": 10,
            "status": "deletionInProgress",
            "isPublic": False,
        })

        assert info.size_bytes == 10
        assert info.status == FileStatus.DELETION_IN_PROGRESS
        assert info.is_public is False

    def test_unknown_file_status_rejected(self):
        """The status set is closed."""
        with pytest.raises(ValidationError):
            FileInfo.model_validate({
                "fileKey": "0xk", "fingerprint": "0xfp", "bucketId": "0xb",
                "location": "a", "status": "archived",
            })

    def test_terminal_failures(self):
        terminal = {s for s in FileStatus if s.is_terminal_failure}

        assert terminal == {FileStatus.REJECTED, FileStatus.REVOKED, FileStatus.EXPIRED}

    def test_bucket_owner_aliases(self):
        bucket = Bucket.model_validate({"bucketId": "0xb", "name": "photos", "userId": "0xaa", "isPublic": False})

        assert bucket.owner == "0xaa"
        assert bucket.is_private

    def test_msp_peer_ids(self):
        info = MspInfo.model_validate({
            "mspId": "0xmsp",
            "multiaddresses": ["/ip4/1.2.3.4/tcp/1/p2p/PeerA", "/dns/x/tcp/2", "/ip6/::1/tcp/3/p2p/PeerB/"],
        })

        assert info.peer_ids() == ["PeerA", "PeerB"]

    def test_storage_request_confirmation(self):
        assert StorageRequestRecord.model_validate({"msp": ["0xmsp", True]}).msp_confirmed
        assert not StorageRequestRecord.model_validate({"msp": ["0xmsp", False]}).msp_confirmed
        assert not StorageRequestRecord.model_validate({}).msp_confirmed

    def test_session_requires_token(self):
        with pytest.raises(ValidationError):
            Session(token=" ", identity="0xaa")


class TestFlattenFileTree:
    """Tests for flatten_file_tree."""

    def tree(self) -> list[FileTreeNode]:
        return [FileTreeNode.model_validate({
            "name": "/",
            "type": "folder",
            "children": [
                {"name": "readme.md", "type": "file", "fileKey": "0x1", "sizeBytes": 5, "status": "ready"},
                {"name": "docs", "type": "folder", "children": [
                    {"name": "a.txt", "type": "file", "fileKey": "0x2", "sizeBytes": 7, "status": "pending"},
                    {"name": "old", "type": "folder", "children": []},
                ]},
            ],
        })]

    def test_root_is_skipped_and_folders_use_full_path(self):
        rows = flatten_file_tree(self.tree())

        assert [(r.kind, r.name) for r in rows] == [
            ("file", "readme.md"),
            ("folder", "docs"),
            ("file", "a.txt"),
            ("folder", "docs/old"),
        ]

    def test_file_rows_carry_metadata(self):
        rows = flatten_file_tree(self.tree())
        a = next(r for r in rows if r.file_key == "0x2")

        assert a.size_bytes == 7
        assert a.status == FileStatus.PENDING

    def test_empty(self):
        assert flatten_file_tree([]) == []
