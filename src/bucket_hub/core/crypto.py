"""
Content addressing for Bucket Hub

This module provides the default fingerprint and id derivation used when
no network-specific primitive is supplied. Ids are SHA-256 digests over a
canonical concatenation of the owner address, bucket id and name, so they
are pure functions of their inputs.
"""

from cryptography.hazmat.primitives import hashes

from .interfaces import ContentAddressing


def _sha256(*parts: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    for part in parts:
        digest.update(part)
    return digest.finalize()


def to_hex(data: bytes) -> str:
    """Encode bytes as a 0x-prefixed lowercase hex string"""
    return '0x' + data.hex()


def identity_bytes(identity: str) -> bytes:
    """
    Canonical bytes of an address

    Hex addresses are decoded so checksum casing does not change derived
    ids; anything else is taken as UTF-8.
    """
    value = identity.strip()
    if value.lower().startswith('0x'):
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            return value.encode('utf-8')
    return value.encode('utf-8')


def compute_fingerprint(data: bytes) -> str:
    """SHA-256 fingerprint of file contents"""
    return to_hex(_sha256(data))


def derive_bucket_id(identity: str, name: str) -> str:
    """Deterministic bucket id from owner and bucket name"""
    if not name:
        raise ValueError("Bucket name cannot be empty")
    return to_hex(_sha256(identity_bytes(identity), name.encode('utf-8')))


def derive_file_key(identity: str, bucket_id: str, name: str) -> str:
    """Deterministic file key from owner, bucket and file name"""
    if not name:
        raise ValueError("File name cannot be empty")
    return to_hex(_sha256(
        identity_bytes(identity),
        identity_bytes(bucket_id),
        name.encode('utf-8')
    ))


class Sha256ContentAddressing(ContentAddressing):
    """Default content-addressing primitive"""

    def fingerprint(self, data: bytes) -> str:
        return compute_fingerprint(data)

    def derive_bucket_id(self, identity: str, name: str) -> str:
        return derive_bucket_id(identity, name)

    def derive_file_key(self, identity: str, bucket_id: str, name: str) -> str:
        return derive_file_key(identity, bucket_id, name)
