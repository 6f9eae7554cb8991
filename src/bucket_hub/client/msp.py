"""HTTP client for the storage provider (MSP) backend.

MspHttpClient implements both the indexing API (auth, info, buckets,
files) and the byte transfer API. Credentials are never stored on the
client: the session provider installed by the SessionManager is asked for
the current session right before each request, so a session invalidated a
moment ago never leaks into the next call.

Example:
    async with MspHttpClient("https://msp.example.com") as msp:
        sessions = SessionManager(msp)
        await sessions.login(wallet)
        buckets = await msp.list_buckets()
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

import httpx

from ..core.errors import BackendError, BackendUnavailableError, RecordNotFoundError
from ..core.interfaces import BackendClient, SessionProvider, TransferClient
from ..core.models import (
    Bucket,
    Challenge,
    DownloadResponse,
    FileInfo,
    FileListing,
    MspInfo,
    UploadReceipt,
    ValueProposition,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Not found: Record"


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"error": resp.text} if resp.text else {}
    return body if isinstance(body, dict) else {"error": str(body)}


def raise_for_backend_status(resp: httpx.Response) -> None:
    """Map an error response to the backend error hierarchy."""
    if resp.status_code < 400:
        return
    body = _error_body(resp)
    message = str(body.get("error") or body.get("message") or resp.reason_phrase or "")
    if resp.status_code == 404 or message == NOT_FOUND_MESSAGE:
        raise RecordNotFoundError(message or NOT_FOUND_MESSAGE, body)
    raise BackendError(resp.status_code, message, body)


class MspHttpClient(BackendClient, TransferClient):
    """httpx-based MSP backend client.

    Args:
        base_url: Backend base URL.
        session_provider: Hook returning the current session or None.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        session_provider: SessionProvider | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._session_provider = session_provider
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> MspHttpClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def set_session_provider(self, provider: SessionProvider | None) -> None:
        self._session_provider = provider

    def _headers(self) -> dict[str, str]:
        """Build request headers from the session current at dispatch time."""
        headers: dict[str, str] = {}
        session = self._session_provider() if self._session_provider else None
        if session is not None:
            headers["Authorization"] = f"Bearer {session.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"Cannot reach backend at {self.base_url}: {e}") from e
        raise_for_backend_status(resp)
        return resp

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self._request("GET", path, params=params)
        return resp.json()

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        resp = await self._request("POST", path, json=payload)
        return resp.json()

    # Auth

    async def request_challenge(self, identity: str, chain_id: int, domain: str, uri: str) -> Challenge:
        data = await self._post(
            "/auth/nonce",
            {"address": identity, "chainId": chain_id, "domain": domain, "uri": uri},
        )
        return Challenge(
            identity=identity,
            message=data["message"],
            nonce=data.get("nonce"),
            domain=domain,
            uri=uri,
        )

    async def verify_challenge(self, message: str, signature: str) -> dict[str, Any]:
        return await self._post("/auth/verify", {"message": message, "signature": signature})

    async def get_profile(self) -> dict[str, Any]:
        return await self._get("/auth/profile")

    # Provider info

    async def get_health(self) -> dict[str, Any]:
        return await self._get("/health")

    async def get_info(self) -> MspInfo:
        return MspInfo.model_validate(await self._get("/info"))

    async def get_value_propositions(self) -> list[ValueProposition]:
        data = await self._get("/value-props")
        return [ValueProposition.model_validate(v) for v in data]

    # Buckets and files

    async def list_buckets(self) -> list[Bucket]:
        data = await self._get("/buckets")
        return [Bucket.model_validate(b) for b in data]

    async def get_bucket(self, bucket_id: str) -> Bucket:
        return Bucket.model_validate(await self._get(f"/buckets/{bucket_id}"))

    async def get_files(self, bucket_id: str) -> FileListing:
        data = await self._get(f"/buckets/{bucket_id}/files")
        data.setdefault("bucketId", bucket_id)
        return FileListing.model_validate(data)

    async def get_file_info(self, bucket_id: str, file_key: str) -> FileInfo:
        return FileInfo.model_validate(await self._get(f"/buckets/{bucket_id}/info/{file_key}"))

    # Transfers

    async def upload_bytes(
        self, bucket_id: str, file_key: str, data: bytes, identity: str, name: str
    ) -> UploadReceipt:
        resp = await self._request(
            "PUT",
            f"/buckets/{bucket_id}/upload/{file_key}",
            files={"file": (name, data, "application/octet-stream")},
            data={"owner": identity, "location": name},
        )
        return UploadReceipt.model_validate(resp.json())

    async def download_bytes(self, file_key: str) -> DownloadResponse:
        """Open a streamed download; the stream closes the response when drained."""
        request = self._http.build_request("GET", f"/download/{file_key}", headers=self._headers())
        try:
            resp = await self._http.send(request, stream=True)
        except httpx.TransportError as e:
            raise BackendUnavailableError(f"Cannot reach backend at {self.base_url}: {e}") from e

        if resp.status_code != 200:
            await resp.aread()
            await resp.aclose()
            if resp.status_code == 401:
                raise_for_backend_status(resp)
            return DownloadResponse(status=resp.status_code, content_type=resp.headers.get("content-type"))

        async def stream() -> AsyncIterator[bytes]:
            try:
                async for chunk in resp.aiter_bytes():
                    yield chunk
            finally:
                await resp.aclose()

        return DownloadResponse(
            status=resp.status_code,
            content_type=resp.headers.get("content-type"),
            stream=stream(),
        )


__all__ = ["MspHttpClient", "raise_for_backend_status"]
