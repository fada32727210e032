"""
Bearer-protected profile endpoint (GET /user/me).
Downstream services read the same claims: sub identifies the user, plan selects limits.
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from relay_server.config import DEFAULT_PLAN
from relay_server.dependencies import get_store, get_token_signer
from relay_server.errors import Err, ErrorCode
from relay_server.storage import EphemeralStore
from relay_server.tokens import TYPE_ACCESS, TokenSigner

logger = logging.getLogger(__name__)
router = APIRouter()
security = HTTPBearer(auto_error=False)

PLAN_LIMITS = {
    "free": {"monthly_saves": 10, "retention_days": 30},
}


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": ErrorCode.UNAUTHORIZED.value, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def current_period(now: datetime | None = None) -> str:
    """Usage bucket for the current UTC month, e.g. 2025-12."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def usage_key(user_id: str, period: str) -> str:
    return f"usage:{user_id}:{period}"


def get_access_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    signer: TokenSigner = Depends(get_token_signer),
) -> dict:
    """Dependency: valid access token -> claims. Refresh tokens are rejected."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token.")
    result = signer.verify(credentials.credentials, TYPE_ACCESS)
    if isinstance(result, Err):
        logger.debug("Bearer token rejected: %s", result.description)
        raise _unauthorized("Invalid token.")
    return result.value


@router.get("/user/me")
def user_me(
    claims: dict = Depends(get_access_claims),
    store: EphemeralStore = Depends(get_store),
):
    """Profile, plan limits, and this month's usage for the token's subject."""
    user_id = claims["sub"]
    plan = claims.get("plan") or DEFAULT_PLAN
    period = current_period()
    used = store.get(usage_key(user_id, period))
    return {
        "user_id": user_id,
        "plan": plan,
        "limits": PLAN_LIMITS.get(plan, PLAN_LIMITS[DEFAULT_PLAN]),
        "usage": {"period": period, "saves_used": used if isinstance(used, int) else 0},
    }
