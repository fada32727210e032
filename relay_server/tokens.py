"""
Access and refresh tokens: HS256 JWTs with a `type` claim.
The type is checked on every verification path so the two kinds are never interchangeable.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from relay_server.config import ACCESS_TOKEN_EXPIRES, DEFAULT_PLAN, REFRESH_TOKEN_EXPIRES
from relay_server.errors import Err, ErrorCode, Ok, Result

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TYPE_ACCESS = "access"
TYPE_REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int = ACCESS_TOKEN_EXPIRES
    token_type: str = "bearer"

    def as_response(self) -> dict:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
        }


class TokenSigner:
    def __init__(
        self,
        secret: str,
        issuer: str,
        access_ttl: int = ACCESS_TOKEN_EXPIRES,
        refresh_ttl: int = REFRESH_TOKEN_EXPIRES,
    ):
        self._secret = secret
        self._issuer = issuer
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl

    def _encode(self, sub: str, plan: str, token_type: str, ttl: int) -> str:
        if not self._secret:
            raise RuntimeError("Token signing secret is not configured")
        now = datetime.now(timezone.utc)
        payload = {
            "iss": self._issuer,
            "sub": sub,
            "plan": plan,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM, headers={"typ": "JWT"})

    def mint_pair(self, sub: str, plan: str = DEFAULT_PLAN) -> TokenPair:
        """Fresh access + refresh token bound to the same subject."""
        return TokenPair(
            access_token=self._encode(sub, plan, TYPE_ACCESS, self._access_ttl),
            refresh_token=self._encode(sub, plan, TYPE_REFRESH, self._refresh_ttl),
            expires_in=self._access_ttl,
        )

    def verify(self, token: str, expected_type: str) -> Result[dict]:
        """
        Check signature, expiry, issuer, and the type claim.
        Returns Ok(claims) or Err(INVALID_GRANT); callers map the error to their own code.
        """
        if not token or not self._secret:
            return Err(ErrorCode.INVALID_GRANT)
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            return Err(ErrorCode.INVALID_GRANT, "Token expired.")
        except jwt.InvalidTokenError as e:
            logger.debug("Token verification failed: %s", e)
            return Err(ErrorCode.INVALID_GRANT)
        if claims.get("type") != expected_type:
            logger.info("Rejected %s token presented where %s was expected", claims.get("type"), expected_type)
            return Err(ErrorCode.INVALID_GRANT, "Wrong token type.")
        if not isinstance(claims.get("sub"), str) or not claims["sub"]:
            return Err(ErrorCode.INVALID_GRANT)
        return Ok(claims)
