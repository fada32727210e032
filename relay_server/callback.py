"""
GitHub callback (GET /github/callback).
Consumes the relay record, trades GitHub's code for the user's GitHub id, mints our own
one-time authorization code, and redirects back to the Requesting Application.
"""
import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from relay_server.audit import (
    EVENT_CALLBACK_FAILED,
    EVENT_CODE_ISSUED,
    EVENT_RELAY_CONSUMED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from relay_server.codes import CodeStore
from relay_server.config import CALLBACK_PATH
from relay_server.dependencies import get_code_store, get_github, get_relay_bridge
from relay_server.errors import Err, ErrorCode, Ok, Result, err_response, error_response
from relay_server.github import GitHubClient
from relay_server.relay import RelayBridge

logger = logging.getLogger(__name__)
router = APIRouter()


def redirect_with_params(redirect_uri: str, params: dict[str, str]) -> str:
    """Append params to redirect_uri, replacing same-named ones and keeping the rest."""
    parts = urlsplit(redirect_uri)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def handle_callback(
    relay: RelayBridge,
    codes: CodeStore,
    github: GitHubClient,
    code: str | None,
    relay_key: str | None,
) -> Result[str]:
    """Ok(redirect URL for the Requesting Application) or Err at the first failing step."""
    if not code or not relay_key:
        return Err(ErrorCode.INVALID_REQUEST, "Missing code or state.")

    # Consumed before talking to GitHub so a failed exchange cannot leave it reusable
    record = relay.consume_once(relay_key)
    if record is None:
        return Err(ErrorCode.INVALID_STATE)
    log_audit(EVENT_RELAY_CONSUMED)

    token_result = github.exchange_code(code)
    if isinstance(token_result, Err):
        return token_result

    user_result = github.fetch_user_id(token_result.value)
    if isinstance(user_result, Err):
        return user_result
    user_id = user_result.value

    auth_code = codes.mint(user_id)
    log_audit(EVENT_CODE_ISSUED, user_id=user_id)

    # redirect_uri comes from the relay record captured at /authorize, never from this request
    return Ok(
        redirect_with_params(
            record.redirect_uri,
            {"code": auth_code.code, "state": record.external_state},
        )
    )


@router.get(CALLBACK_PATH)
def github_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    relay: RelayBridge = Depends(get_relay_bridge),
    codes: CodeStore = Depends(get_code_store),
    github: GitHubClient = Depends(get_github),
):
    """GitHub redirects here with ?code=...&state=<relay key>."""
    try:
        result = handle_callback(relay, codes, github, code, state)
    except Exception:
        logger.exception("Unexpected error handling GitHub callback")
        return error_response(ErrorCode.INTERNAL_ERROR)

    if isinstance(result, Err):
        log_audit(
            EVENT_CALLBACK_FAILED,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            reason=result.code.value,
        )
        return err_response(result)
    return RedirectResponse(url=result.value, status_code=302)
