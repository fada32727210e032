"""
One-time authorization codes handed to the Requesting Application after GitHub login.
"""
import logging
import secrets
import time

from relay_server.config import CODE_TTL_SECONDS
from relay_server.models import AuthorizationCode
from relay_server.storage import EphemeralStore

logger = logging.getLogger(__name__)

CODE_PREFIX = "code:"


class CodeStore:
    def __init__(self, store: EphemeralStore, ttl_seconds: int = CODE_TTL_SECONDS):
        self._store = store
        self._ttl = ttl_seconds

    def mint(self, user_id: str) -> AuthorizationCode:
        auth_code = AuthorizationCode(
            code=secrets.token_urlsafe(32),
            user_id=user_id,
            issued_at=int(time.time() * 1000),
        )
        self._store.set(f"{CODE_PREFIX}{auth_code.code}", auth_code.to_payload(), self._ttl)
        return auth_code

    def consume_once(self, code: str) -> AuthorizationCode | None:
        """Redeem a code. Unknown, expired, reused, and malformed codes all return None."""
        if not code:
            return None
        payload = self._store.pop(f"{CODE_PREFIX}{code}")
        if payload is None:
            return None
        auth_code = AuthorizationCode.from_payload(code, payload)
        if auth_code is None:
            logger.warning("Discarded authorization code with malformed payload")
        return auth_code
