"""
Relay server configuration. Built once at startup and passed into each component.
No secrets in this file; credentials come from env.
"""
import os
from dataclasses import dataclass, field

# Relay record lifetime (seconds): time allowed for the GitHub round-trip
RELAY_TTL_SECONDS = 600

# Authorization code lifetime (seconds)
CODE_TTL_SECONDS = 600

# Access token lifetime (seconds): 1 hour
ACCESS_TOKEN_EXPIRES = 3600

# Refresh token lifetime (seconds): 30 days
REFRESH_TOKEN_EXPIRES = 60 * 60 * 24 * 30

DEFAULT_PLAN = "free"
DEFAULT_SCOPE = "basic"

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_SCOPE = "read:user"

CALLBACK_PATH = "/github/callback"


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(u.strip() for u in value.split(",") if u.strip())


@dataclass(frozen=True)
class Settings:
    # Public base URL of this service; also the token issuer
    base_url: str = "http://127.0.0.1:9000"

    # The single registered Requesting Application
    client_id: str = ""
    client_secret: str = ""
    allowed_redirect_uris: tuple[str, ...] = field(default_factory=tuple)

    # Our confidential GitHub OAuth app
    github_client_id: str = ""
    github_client_secret: str = ""

    # HS256 secret for access/refresh tokens
    jwt_secret: str = ""

    # memory://, any SQLAlchemy URL (sqlite:///...), or redis://
    store_url: str = "memory://"

    http_timeout: float = 10.0
    log_level: str = "INFO"

    @property
    def issuer(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def callback_url(self) -> str:
        return f"{self.issuer}{CALLBACK_PATH}"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the process environment."""
        return cls(
            base_url=os.environ.get("RELAY_BASE_URL", "http://127.0.0.1:9000").rstrip("/"),
            client_id=os.environ.get("RELAY_CLIENT_ID", ""),
            client_secret=os.environ.get("RELAY_CLIENT_SECRET", ""),
            allowed_redirect_uris=_split_csv(os.environ.get("RELAY_ALLOWED_REDIRECT_URIS", "")),
            github_client_id=os.environ.get("GITHUB_CLIENT_ID", ""),
            github_client_secret=os.environ.get("GITHUB_CLIENT_SECRET", ""),
            jwt_secret=os.environ.get("RELAY_JWT_SECRET", ""),
            store_url=os.environ.get("RELAY_STORE_URL", "memory://").strip() or "memory://",
            http_timeout=float(os.environ.get("RELAY_HTTP_TIMEOUT", "10")),
            log_level=os.environ.get("RELAY_LOG_LEVEL", "INFO").upper(),
        )
