"""
Authenticated session lifecycle

The SessionManager owns the single active session, hands credentials to
the backend client before every request, and decides whether a failure
means the session is gone. Re-authentication always needs a fresh wallet
signature, so an expired session is surfaced and never retried.
"""

import logging
from contextlib import contextmanager
from typing import Optional, Iterator

import httpx

from ..core.errors import (
    AuthExpiredError,
    AuthRejectedError,
    BackendError,
    BackendUnavailableError,
    IdentityMissingError,
)
from ..core.interfaces import BackendClient, Signer
from ..core.models import Challenge, Session, SignedChallenge
from .store import KeyringSessionStore

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_ID = 55931

# Backend error texts naming a missing or expired session, whatever the status code
SESSION_ERROR_MARKERS = (
    "no session",
    "session not found",
    "session expired",
    "jwt expired",
)


def _mentions_missing_session(text) -> bool:
    if not text:
        return False
    lowered = str(text).lower()
    return any(marker in lowered for marker in SESSION_ERROR_MARKERS)


def is_auth_error(err: BaseException) -> bool:
    """True when err means the session is no longer valid, whoever raised it"""
    if isinstance(err, AuthExpiredError):
        return True

    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code == 401

    for attr in ('status_code', 'status'):
        if getattr(err, attr, None) == 401:
            return True

    if isinstance(err, BackendError):
        return _mentions_missing_session(err.message) or _mentions_missing_session(err.body.get('error'))

    body = getattr(err, 'body', None)
    if isinstance(body, dict):
        return _mentions_missing_session(body.get('error'))
    return False


class SessionManager:
    """Owns the authenticated session for one connected identity"""

    def __init__(
        self,
        backend: BackendClient,
        store: Optional[KeyringSessionStore] = None,
        chain_id: int = DEFAULT_CHAIN_ID,
        domain: str = "localhost",
        uri: str = "http://localhost"
    ):
        self.backend = backend
        self.store = store
        self.chain_id = chain_id
        self.domain = domain
        self.uri = uri
        self._session: Optional[Session] = None
        self._pending: Optional[Challenge] = None

        backend.set_session_provider(self.credentials)

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def pending_challenge(self) -> Optional[Challenge]:
        return self._pending

    def current_session(self) -> Optional[Session]:
        """The active session, if any"""
        return self._session

    def credentials(self) -> Optional[Session]:
        """Session-provider hook, consulted by the backend client per request"""
        return self._session

    async def begin_challenge(self, identity: str, domain: Optional[str] = None,
                              uri: Optional[str] = None) -> Challenge:
        """Request a signable login challenge scoped to domain and uri"""
        if not identity:
            raise IdentityMissingError()

        try:
            challenge = await self.backend.request_challenge(
                identity,
                self.chain_id,
                domain or self.domain,
                uri or self.uri
            )
        except BackendError as e:
            if e.status_code >= 500:
                raise BackendUnavailableError(f"Backend could not issue a challenge: {e}") from e
            raise

        self._pending = challenge
        logger.debug("Issued login challenge for %s", identity)
        return challenge

    async def complete_login(self, signed: SignedChallenge) -> Session:
        """
        Exchange a signed challenge for a session

        Any previous session is invalidated first. Raises AuthRejectedError
        when the backend does not accept the signature.
        """
        identity = signed.challenge.identity

        try:
            payload = await self.backend.verify_challenge(signed.challenge.message, signed.signature)
        except BackendError as e:
            if e.status_code in (400, 401, 403):
                raise AuthRejectedError(f"Signature verification failed: {e.message or e}") from e
            raise

        token = payload.get('token')
        user = payload.get('user') or {}
        address = user.get('address') or identity
        if not token:
            raise AuthRejectedError("Backend returned no session token")
        if address.lower() != identity.lower():
            raise AuthRejectedError(f"Session issued for {address}, expected {identity}")

        self.invalidate()
        self._session = Session(token=token, identity=identity)

        try:
            profile = await self.backend.get_profile()
        except Exception:
            self.invalidate()
            raise
        self._session = self._session.model_copy(update={'profile': profile})

        if self.store is not None:
            self.store.save(self._session)

        logger.info("Authenticated %s", identity)
        return self._session

    async def login(self, signer: Signer, domain: Optional[str] = None,
                    uri: Optional[str] = None) -> Session:
        """Run the full challenge, sign, verify exchange"""
        challenge = await self.begin_challenge(signer.identity, domain, uri)
        signature = await signer.sign_message(challenge.message)
        return await self.complete_login(SignedChallenge(challenge=challenge, signature=signature))

    def restore(self, identity: str) -> Optional[Session]:
        """Re-hydrate a persisted, non-expired session for identity"""
        if self.store is None or not identity:
            return None

        session = self.store.load(identity)
        if session is None:
            return None
        if session.identity.lower() != identity.lower():
            return None

        self._session = session
        logger.debug("Restored session for %s", identity)
        return session

    def invalidate(self, identity: Optional[str] = None) -> None:
        """Drop the in-memory and persisted session; safe to call repeatedly"""
        identity = identity or (self._session.identity if self._session else None)
        self._session = None
        self._pending = None
        if self.store is not None and identity:
            self.store.clear(identity)

    def is_auth_error(self, err: BaseException) -> bool:
        return is_auth_error(err)

    @contextmanager
    def expiry_guard(self) -> Iterator[None]:
        """
        Translate auth failures raised inside the block

        An auth error invalidates the session and becomes AuthExpiredError;
        anything else propagates unchanged.
        """
        try:
            yield
        except AuthExpiredError:
            self.invalidate()
            raise
        except Exception as e:
            if not self.is_auth_error(e):
                raise
            logger.info("Session rejected by backend; re-authentication required")
            self.invalidate()
            raise AuthExpiredError() from e

    def require_session(self) -> Session:
        """The active session, or AuthExpiredError when there is none"""
        if self._session is None:
            raise AuthExpiredError("Not authenticated. Please sign in first.")
        return self._session
