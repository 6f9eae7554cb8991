"""Shared pytest fixtures: in-memory ledger, backend, wallet and keyring."""

from __future__ import annotations

import asyncio
from typing import Any

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from bucket_hub.client.client import BucketHubClient
from bucket_hub.config import Settings
from bucket_hub.core.errors import RecordNotFoundError
from bucket_hub.core.interfaces import BackendClient, ChainClient, Signer, TransferClient
from bucket_hub.core.models import (
    Bucket,
    Challenge,
    DownloadResponse,
    FileInfo,
    FileListing,
    FileStatus,
    MspInfo,
    Receipt,
    ReceiptStatus,
    UploadReceipt,
    ValueProposition,
)
from bucket_hub.core.polling import PollPolicy

OWNER = "0x00000000000000000000000000000000000000aa"
OTHER = "0x00000000000000000000000000000000000000bb"
MSP_ID = "0x" + "11" * 32
PEER_ID = "12D3KooWPeer"
MULTIADDRESS = f"/ip4/127.0.0.1/tcp/30333/p2p/{PEER_ID}"


class Scripted:
    """Answers from a queue, repeating the last answer once one remains."""

    def __init__(self, *answers: Any):
        self.answers = list(answers)

    def next(self) -> Any:
        if len(self.answers) > 1:
            return self.answers.pop(0)
        return self.answers[0]


class FakeChain(ChainClient):
    """In-memory ledger recording every submission."""

    def __init__(self):
        self.base_fee = 1_000_000_000
        self.receipt_status = ReceiptStatus.SUCCESS
        self.submit_error: Exception | None = None
        self.records: dict[tuple[str, str], Any] = {}
        self.effects: dict[str, Any] = {}
        self.submitted: list[tuple[Any, Any]] = []
        self.reads: list[tuple[str, str]] = []

    def script_record(self, namespace: str, key: str, *values: Any) -> None:
        self.records[(namespace, key)] = Scripted(*values)

    def set_record(self, namespace: str, key: str, value: Any) -> None:
        self.records[(namespace, key)] = Scripted(value)

    async def submit_transaction(self, intent, fee_options) -> str:
        self.submitted.append((intent, fee_options))
        if self.submit_error is not None:
            raise self.submit_error
        effect = self.effects.get(intent.method)
        if effect is not None:
            effect(intent)
        return f"0x{len(self.submitted):064x}"

    async def wait_for_receipt(self, tx_hash: str) -> Receipt:
        return Receipt(transaction_hash=tx_hash, status=self.receipt_status, block_number=42)

    async def read_record(self, namespace: str, key: str):
        self.reads.append((namespace, key))
        scripted = self.records.get((namespace, key))
        return scripted.next() if scripted is not None else None

    async def current_base_fee(self) -> int:
        return self.base_fee


class FakeBackend(BackendClient, TransferClient):
    """In-memory MSP backend; records the bearer token seen by each call."""

    def __init__(self):
        self._provider = None
        self.calls: list[str] = []
        self.tokens: list[str | None] = []
        self.info = MspInfo(msp_id=MSP_ID, multiaddresses=[MULTIADDRESS])
        self.value_props = [ValueProposition(id="0x" + "22" * 32)]
        self.buckets: dict[str, Scripted] = {}
        self.file_infos: dict[str, Scripted] = {}
        self.listings: dict[str, dict] = {}
        self.downloads: dict[str, tuple[int, list[bytes]]] = {}
        self.upload_status = "upload_successful"
        self.uploads: list[tuple[str, str, bytes]] = []
        self.verify_error: Exception | None = None
        self.profile_error: Exception | None = None
        self.error_for: dict[str, Exception] = {}
        self.next_token = "token-1"

    def set_session_provider(self, provider) -> None:
        self._provider = provider

    def _call(self, name: str) -> None:
        session = self._provider() if self._provider else None
        self.calls.append(name)
        self.tokens.append(session.token if session else None)
        if name in self.error_for:
            raise self.error_for[name]

    def make_file(self, file_key: str, status: FileStatus, bucket_id: str = "0xbucket",
                  location: str = "notes.txt") -> FileInfo:
        return FileInfo(
            file_key=file_key,
            fingerprint="0x" + "33" * 32,
            bucket_id=bucket_id,
            location=location,
            size_bytes=10,
            status=status,
        )

    def script_file(self, file_key: str, *states: Any, bucket_id: str = "0xbucket") -> None:
        """Queue FileStatus values (or exceptions) returned by get_file_info."""
        answers = [
            s if isinstance(s, Exception) else self.make_file(file_key, s, bucket_id)
            for s in states
        ]
        self.file_infos[file_key] = Scripted(*answers)

    async def request_challenge(self, identity, chain_id, domain, uri) -> Challenge:
        self._call("request_challenge")
        return Challenge(
            identity=identity,
            message=f"{domain} wants you to sign in with {identity}\nChain ID: {chain_id}",
            nonce="nonce-1",
            domain=domain,
            uri=uri,
        )

    async def verify_challenge(self, message, signature) -> dict[str, Any]:
        self._call("verify_challenge")
        if self.verify_error is not None:
            raise self.verify_error
        address = message.split(" with ")[1].split("\n")[0]
        return {"token": self.next_token, "user": {"address": address}}

    async def get_profile(self) -> dict[str, Any]:
        self._call("get_profile")
        if self.profile_error is not None:
            raise self.profile_error
        return {"address": OWNER}

    async def get_health(self) -> dict[str, Any]:
        self._call("get_health")
        return {"status": "healthy"}

    async def get_info(self) -> MspInfo:
        self._call("get_info")
        return self.info

    async def get_value_propositions(self) -> list[ValueProposition]:
        self._call("get_value_propositions")
        return self.value_props

    async def list_buckets(self) -> list[Bucket]:
        self._call("list_buckets")
        return []

    async def get_bucket(self, bucket_id: str) -> Bucket:
        self._call("get_bucket")
        scripted = self.buckets.get(bucket_id)
        answer = scripted.next() if scripted is not None else RecordNotFoundError()
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def get_files(self, bucket_id: str) -> FileListing:
        self._call("get_files")
        return FileListing.model_validate(self.listings.get(bucket_id, {"bucketId": bucket_id, "files": []}))

    async def get_file_info(self, bucket_id: str, file_key: str) -> FileInfo:
        self._call("get_file_info")
        scripted = self.file_infos.get(file_key)
        answer = scripted.next() if scripted is not None else RecordNotFoundError()
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def upload_bytes(self, bucket_id, file_key, data, identity, name) -> UploadReceipt:
        self._call("upload_bytes")
        self.uploads.append((bucket_id, file_key, data))
        return UploadReceipt(status=self.upload_status, file_key=file_key)

    async def download_bytes(self, file_key: str) -> DownloadResponse:
        self._call("download_bytes")
        status, chunks = self.downloads.get(file_key, (404, []))
        if status != 200:
            return DownloadResponse(status=status)

        async def stream():
            for chunk in chunks:
                yield chunk

        return DownloadResponse(status=status, content_type="text/plain", stream=stream())


class FakeSigner(Signer):
    def __init__(self, identity: str = OWNER):
        self._identity = identity
        self.signed: list[str] = []

    @property
    def identity(self) -> str:
        return self._identity

    async def sign_message(self, message: str) -> str:
        self.signed.append(message)
        return "0x" + "ab" * 65


class RecordingSleep:
    """Drop-in for asyncio.sleep that records delays and only yields."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.delays)


class MemoryKeyring(KeyringBackend):
    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError(username)
        del self.passwords[(service, username)]


@pytest.fixture
def memory_keyring():
    """Route keyring calls to a dict for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def settings() -> Settings:
    """Settings with short poll budgets and no keyring persistence."""
    return Settings(
        _env_file=None,
        persist_session=False,
        msp_confirmation_poll=PollPolicy(interval=2.0, max_attempts=4),
        bucket_index_poll=PollPolicy(interval=2.0, max_attempts=4),
        file_ready_poll=PollPolicy(interval=5.0, max_attempts=5),
        file_deletion_poll=PollPolicy(interval=3.0, max_attempts=4, initial_delay=3.0),
    )


@pytest.fixture
def client(chain, backend, settings, sleep) -> BucketHubClient:
    return BucketHubClient(chain, backend, settings=settings, identity=OWNER, sleep=sleep)


@pytest.fixture
async def logged_in(client, signer) -> BucketHubClient:
    await client.login(signer)
    return client


def wallet_factory(settings: Settings) -> FakeSigner:
    """Chain plugin factory used by the CLI tests."""
    return FakeSigner()
