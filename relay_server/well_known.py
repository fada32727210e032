"""
Well-known endpoint: OAuth 2.0 Authorization Server Metadata (RFC 8414).
"""
from fastapi import APIRouter, Depends

from relay_server.config import Settings
from relay_server.dependencies import get_settings

router = APIRouter()


@router.get("/.well-known/oauth-authorization-server")
def authorization_server_metadata(settings: Settings = Depends(get_settings)):
    """Discovery document for the Requesting Application."""
    issuer = settings.issuer
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/authorize",
        "token_endpoint": f"{issuer}/token",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "token_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic"],
    }
