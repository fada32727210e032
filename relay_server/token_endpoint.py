"""
Token endpoint (POST /token). authorization_code and refresh_token grants.
Bodies may be JSON or form-encoded; both are normalized to a dict before dispatch.
"""
import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from relay_server.audit import (
    EVENT_TOKEN_ISSUED,
    EVENT_TOKEN_REFRESHED,
    EVENT_TOKEN_REJECTED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from relay_server.client_auth import get_client_credentials, verify_client_credentials
from relay_server.codes import CodeStore
from relay_server.config import DEFAULT_PLAN, Settings
from relay_server.dependencies import get_code_store, get_settings, get_token_signer
from relay_server.errors import Err, ErrorCode, Ok, Result, err_response
from relay_server.tokens import TYPE_REFRESH, TokenPair, TokenSigner

logger = logging.getLogger(__name__)
router = APIRouter()

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _parse_json_object(raw: bytes) -> Result[dict]:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return Err(ErrorCode.INVALID_REQUEST, "Malformed JSON.")
    if not isinstance(data, dict):
        return Err(ErrorCode.INVALID_REQUEST, "Request body must be an object.")
    return Ok(data)


def _parse_urlencoded(raw: bytes) -> Result[dict]:
    try:
        return Ok(dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True)))
    except UnicodeDecodeError:
        return Err(ErrorCode.INVALID_REQUEST, "Malformed form body.")


async def read_token_body(request: Request) -> Result[dict]:
    """
    Normalize the request body to a dict. JSON for application/json, form decoding for
    form content types; anything else tries JSON, then urlencoded.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in _FORM_TYPES:
        form = await request.form()
        return Ok({k: v for k, v in form.items() if not isinstance(v, UploadFile)})

    raw = await request.body()
    if content_type == "application/json" or content_type.endswith("+json"):
        return _parse_json_object(raw)
    if not raw.strip():
        return Ok({})
    parsed = _parse_json_object(raw)
    if isinstance(parsed, Ok):
        return parsed
    if b"=" in raw:
        return _parse_urlencoded(raw)
    return Err(ErrorCode.INVALID_REQUEST, "Unsupported request body.")


def _field(body: dict, name: str) -> str | None:
    value: Any = body.get(name)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def exchange(
    settings: Settings,
    codes: CodeStore,
    signer: TokenSigner,
    grant_type: str | None,
    client_id: str | None,
    client_secret: str | None,
    code: str | None = None,
    refresh_token: str | None = None,
) -> Result[tuple[TokenPair, str]]:
    """Ok((token pair, subject)) or Err. Client credentials are checked before anything else."""
    if not verify_client_credentials(settings, client_id, client_secret):
        return Err(ErrorCode.INVALID_CLIENT)

    if grant_type == GRANT_AUTHORIZATION_CODE:
        if not code:
            return Err(ErrorCode.INVALID_REQUEST, "Missing code.")
        auth_code = codes.consume_once(code)
        if auth_code is None:
            return Err(ErrorCode.INVALID_CODE)
        return Ok((signer.mint_pair(auth_code.user_id, DEFAULT_PLAN), auth_code.user_id))

    if grant_type == GRANT_REFRESH_TOKEN:
        if not refresh_token:
            return Err(ErrorCode.INVALID_REQUEST, "Missing refresh_token.")
        verified = signer.verify(refresh_token, TYPE_REFRESH)
        if isinstance(verified, Err):
            return Err(ErrorCode.INVALID_GRANT, verified.message)
        claims = verified.value
        plan = claims.get("plan") if isinstance(claims.get("plan"), str) else DEFAULT_PLAN
        return Ok((signer.mint_pair(claims["sub"], plan), claims["sub"]))

    return Err(ErrorCode.UNSUPPORTED_GRANT_TYPE)


@router.post("/token")
def token(
    request: Request,
    body: Result[dict] = Depends(read_token_body),
    settings: Settings = Depends(get_settings),
    codes: CodeStore = Depends(get_code_store),
    signer: TokenSigner = Depends(get_token_signer),
):
    """
    authorization_code: redeem a one-time code for an access/refresh pair.
    refresh_token: trade a valid refresh token for a new pair with the same subject.
    """
    if isinstance(body, Err):
        return err_response(body)
    fields = body.value
    grant_type = _field(fields, "grant_type")
    client_id, client_secret = get_client_credentials(
        request, _field(fields, "client_id"), _field(fields, "client_secret")
    )

    result = exchange(
        settings,
        codes,
        signer,
        grant_type=grant_type,
        client_id=client_id,
        client_secret=client_secret,
        code=_field(fields, "code"),
        refresh_token=_field(fields, "refresh_token"),
    )
    if isinstance(result, Err):
        log_audit(
            EVENT_TOKEN_REJECTED,
            client_id=client_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            reason=result.code.value,
        )
        return err_response(result)

    pair, sub = result.value
    event = EVENT_TOKEN_REFRESHED if grant_type == GRANT_REFRESH_TOKEN else EVENT_TOKEN_ISSUED
    log_audit(event, client_id=client_id, user_id=sub, ip=get_client_ip(request))
    return JSONResponse(
        content=pair.as_response(),
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )
