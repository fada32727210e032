"""
Audit logging. Security-relevant events only; no tokens, codes, secrets, or request bodies.
Events go to the "relay_server.audit" logger so they can be routed separately.
"""
import logging

from fastapi import Request

EVENT_AUTHORIZE_REDIRECT = "authorize_redirect"
EVENT_AUTHORIZE_REJECTED = "authorize_rejected"
EVENT_RELAY_CONSUMED = "relay_consumed"
EVENT_CALLBACK_FAILED = "callback_failed"
EVENT_CODE_ISSUED = "code_issued"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_REFRESHED = "token_refreshed"
EVENT_TOKEN_REJECTED = "token_rejected"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"

audit_logger = logging.getLogger("relay_server.audit")


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    event_type: str,
    *,
    client_id: str | None = None,
    user_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    reason: str | None = None,
) -> None:
    """Emit one audit record. Never pass tokens or secrets here."""
    level = logging.INFO if outcome == OUTCOME_SUCCESS else logging.WARNING
    audit_logger.log(
        level,
        "audit event=%s outcome=%s client_id=%s user_id=%s ip=%s reason=%s",
        event_type,
        outcome,
        client_id,
        user_id,
        ip,
        reason,
        extra={
            "audit_event": event_type,
            "audit_outcome": outcome,
            "client_id": client_id,
            "user_id": user_id,
            "ip": ip,
        },
    )
