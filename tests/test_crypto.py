"""Tests for default content addressing."""

from __future__ import annotations

import hashlib

import pytest

from bucket_hub.core.crypto import (
    Sha256ContentAddressing,
    compute_fingerprint,
    derive_bucket_id,
    derive_file_key,
    identity_bytes,
)

from .conftest import OWNER


class TestFingerprint:
    def test_matches_sha256(self):
        data = b"0123456789"

        assert compute_fingerprint(data) == "0x" + hashlib.sha256(data).hexdigest()


class TestDerivation:
    """Tests for bucket id and file key derivation."""

    def test_bucket_id_is_deterministic(self):
        assert derive_bucket_id(OWNER, "photos") == derive_bucket_id(OWNER, "photos")
        assert derive_bucket_id(OWNER, "photos") != derive_bucket_id(OWNER, "music")

    def test_address_casing_does_not_change_ids(self):
        """Checksummed and lowercase addresses derive the same id."""
        upper = "0x" + OWNER[2:].upper()

        assert derive_bucket_id(upper, "photos") == derive_bucket_id(OWNER, "photos")

    def test_file_key_depends_on_all_inputs(self):
        key = derive_file_key(OWNER, "0x01", "a.txt")

        assert key != derive_file_key(OWNER, "0x02", "a.txt")
        assert key != derive_file_key(OWNER, "0x01", "b.txt")
        assert len(key) == 66

    @pytest.mark.parametrize("fn,args", [
        (derive_bucket_id, (OWNER, "")),
        (derive_file_key, (OWNER, "0x01", "")),
    ])
    def test_empty_name_rejected(self, fn, args):
        with pytest.raises(ValueError):
            fn(*args)

    def test_non_hex_identity_is_utf8(self):
        assert identity_bytes("alice") == b"alice"
        assert identity_bytes("0xzz") == b"0xzz"

    def test_primitive_delegates(self):
        content = Sha256ContentAddressing()

        assert content.fingerprint(b"x") == compute_fingerprint(b"x")
        assert content.derive_bucket_id(OWNER, "b") == derive_bucket_id(OWNER, "b")
        assert content.derive_file_key(OWNER, "0x01", "f") == derive_file_key(OWNER, "0x01", "f")
