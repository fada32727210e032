"""
Relay bridge: ties the GitHub round-trip back to the Requesting Application's request.
The relay key is the only thing GitHub sees; the client's own state stays in the store.
"""
import logging
import secrets

from relay_server.config import RELAY_TTL_SECONDS
from relay_server.models import RelayRecord
from relay_server.storage import EphemeralStore

logger = logging.getLogger(__name__)

RELAY_PREFIX = "relay:"


def generate_relay_key() -> str:
    """256 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(32)


class RelayBridge:
    def __init__(self, store: EphemeralStore, ttl_seconds: int = RELAY_TTL_SECONDS):
        self._store = store
        self._ttl = ttl_seconds

    def create(self, external_state: str, redirect_uri: str, scope: str) -> str:
        """Persist a relay record and return its key (to be sent to GitHub as state)."""
        relay_key = generate_relay_key()
        record = RelayRecord(
            relay_key=relay_key,
            external_state=external_state,
            redirect_uri=redirect_uri,
            scope=scope,
        )
        self._store.set(f"{RELAY_PREFIX}{relay_key}", record.to_payload(), self._ttl)
        return relay_key

    def consume_once(self, relay_key: str) -> RelayRecord | None:
        """
        Read and delete the relay record. None when it never existed, was already
        consumed, or expired; callers cannot tell these apart.
        """
        if not relay_key:
            return None
        payload = self._store.pop(f"{RELAY_PREFIX}{relay_key}")
        if payload is None:
            return None
        record = RelayRecord.from_payload(relay_key, payload)
        if record is None:
            logger.warning("Discarded malformed relay record")
        return record
