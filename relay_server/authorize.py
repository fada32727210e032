"""
Authorization endpoint (GET /authorize).
Validates the Requesting Application's request, stores a relay record, and redirects to GitHub.
"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from relay_server.audit import (
    EVENT_AUTHORIZE_REDIRECT,
    EVENT_AUTHORIZE_REJECTED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from relay_server.client_auth import client_id_matches
from relay_server.config import DEFAULT_SCOPE, GITHUB_AUTHORIZE_URL, GITHUB_SCOPE, Settings
from relay_server.dependencies import get_relay_bridge, get_settings
from relay_server.errors import Err, ErrorCode, Ok, Result, err_response
from relay_server.relay import RelayBridge

logger = logging.getLogger(__name__)
router = APIRouter()


def github_authorize_url(settings: Settings, relay_key: str) -> str:
    params = {
        "client_id": settings.github_client_id,
        "redirect_uri": settings.callback_url,
        "state": relay_key,
        "scope": GITHUB_SCOPE,
    }
    return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"


def initiate(
    settings: Settings,
    relay: RelayBridge,
    client_id: str | None,
    redirect_uri: str | None,
    external_state: str | None,
    scope: str | None,
) -> Result[str]:
    """Checks run in order; the first failure wins. Ok(github_url) on success."""
    if not client_id_matches(settings, client_id):
        return Err(ErrorCode.INVALID_CLIENT, "Unknown client_id.")
    if not redirect_uri or redirect_uri not in settings.allowed_redirect_uris:
        return Err(ErrorCode.INVALID_REDIRECT_URI)
    if not external_state:
        return Err(ErrorCode.INVALID_STATE, "Missing state parameter.")

    relay_key = relay.create(
        external_state=external_state,
        redirect_uri=redirect_uri,
        scope=scope or DEFAULT_SCOPE,
    )
    return Ok(github_authorize_url(settings, relay_key))


@router.get("/authorize")
def authorize(
    request: Request,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    state: str | None = None,
    scope: str | None = None,
    settings: Settings = Depends(get_settings),
    relay: RelayBridge = Depends(get_relay_bridge),
):
    """
    OAuth2 authorization endpoint for the Requesting Application.
    302 to GitHub with a fresh relay key as GitHub's state; 400 with an error code otherwise.
    """
    result = initiate(settings, relay, client_id, redirect_uri, state, scope)
    if isinstance(result, Err):
        log_audit(
            EVENT_AUTHORIZE_REJECTED,
            client_id=client_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            reason=result.code.value,
        )
        return err_response(result)

    log_audit(EVENT_AUTHORIZE_REDIRECT, client_id=client_id, ip=get_client_ip(request))
    return RedirectResponse(url=result.value, status_code=302)
