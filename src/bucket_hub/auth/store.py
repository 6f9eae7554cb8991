"""
Short-lived session persistence

Sessions are mirrored to the operating system keyring so a restarted
process can resume without a fresh signature until the copy expires.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..core.models import Session

logger = logging.getLogger(__name__)


class KeyringSessionStore:
    """Persists one session per identity in the OS keyring"""

    def __init__(self, service_name: str = "bucket-hub", ttl_seconds: int = 3600):
        self.service_name = service_name
        self.ttl_seconds = ttl_seconds

    def _key_name(self, identity: str) -> str:
        return f"session_{identity.lower()}"

    def save(self, session: Session) -> bool:
        """Save session with an expiry timestamp"""
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        data = {
            'session': session.model_dump(mode='json'),
            'expires_at': expires_at.isoformat()
        }
        try:
            keyring.set_password(self.service_name, self._key_name(session.identity), json.dumps(data))
            return True
        except KeyringError as e:
            logger.warning("Could not persist session for %s: %s", session.identity, e)
            return False

    def load(self, identity: str) -> Optional[Session]:
        """Load a non-expired session, dropping it if it has expired"""
        try:
            raw = keyring.get_password(self.service_name, self._key_name(identity))
        except KeyringError as e:
            logger.warning("Could not read persisted session for %s: %s", identity, e)
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            expires_at = datetime.fromisoformat(data['expires_at'])
            session = Session.model_validate(data['session'])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable persisted session for %s: %s", identity, e)
            self.clear(identity)
            return None

        if expires_at <= datetime.now(timezone.utc):
            logger.debug("Persisted session for %s has expired", identity)
            self.clear(identity)
            return None
        return session

    def clear(self, identity: str) -> None:
        """Remove the persisted session; a missing entry is not an error"""
        try:
            keyring.delete_password(self.service_name, self._key_name(identity))
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            logger.warning("Could not clear persisted session for %s: %s", identity, e)
