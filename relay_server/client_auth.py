"""
Client authentication for the single registered Requesting Application. RFC 6749 §3.2.1.
Credentials via client_id + client_secret in the body, or Authorization: Basic base64(client_id:client_secret).
"""
import base64
import binascii
import logging
import secrets

from fastapi import Request

from relay_server.config import Settings

logger = logging.getLogger(__name__)


def _parse_basic(header_value: str) -> tuple[str, str] | None:
    """Parse 'Basic <base64(client_id:client_secret)>'. Returns (client_id, client_secret) or None."""
    if not header_value or not header_value.strip().lower().startswith("basic "):
        return None
    try:
        decoded = base64.b64decode(header_value.strip()[6:].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    client_id, _, client_secret = decoded.partition(":")
    return (client_id.strip(), client_secret)


def get_client_credentials(
    request: Request,
    client_id_body: str | None,
    client_secret_body: str | None,
) -> tuple[str | None, str | None]:
    """
    Get (client_id, client_secret) from the body or Authorization Basic.
    Body takes precedence if it carries a client_id.
    """
    if client_id_body:
        return (client_id_body.strip(), client_secret_body)
    auth_header = request.headers.get("Authorization")
    basic = _parse_basic(auth_header) if auth_header else None
    if basic:
        return basic
    return (None, None)


def client_id_matches(settings: Settings, client_id: str | None) -> bool:
    if not settings.client_id or not client_id:
        return False
    return secrets.compare_digest(client_id.encode("utf-8"), settings.client_id.encode("utf-8"))


def verify_client_credentials(settings: Settings, client_id: str | None, client_secret: str | None) -> bool:
    """True only when both id and secret match configuration (constant-time compare)."""
    if not client_id_matches(settings, client_id):
        return False
    if not settings.client_secret or client_secret is None:
        return False
    return secrets.compare_digest(client_secret.encode("utf-8"), settings.client_secret.encode("utf-8"))
