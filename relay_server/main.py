"""
GitHub OAuth relay: OAuth provider to one Requesting Application, OAuth client to GitHub.
GET /authorize, GET /github/callback, POST /token, GET /user/me.
Port 9000 by default; run with `uvicorn relay_server.main:create_app --factory`.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay_server.authorize import router as authorize_router
from relay_server.callback import router as callback_router
from relay_server.codes import CodeStore
from relay_server.config import Settings
from relay_server.errors import ErrorCode, error_response
from relay_server.github import GitHubClient
from relay_server.relay import RelayBridge
from relay_server.storage import EphemeralStore, create_store
from relay_server.token_endpoint import router as token_router
from relay_server.tokens import TokenSigner
from relay_server.userinfo import router as userinfo_router
from relay_server.well_known import router as well_known_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: EphemeralStore | None = None,
    github: GitHubClient | None = None,
) -> FastAPI:
    """Build the app with its components. Tests pass a MemoryStore and a GitHubClient on a mock transport."""
    settings = settings if settings is not None else Settings.from_env()
    store = store if store is not None else create_store(settings.store_url)
    github = github if github is not None else GitHubClient(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        callback_url=settings.callback_url,
        timeout=settings.http_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Warn about missing configuration on startup; close clients on shutdown."""
        if not settings.jwt_secret:
            logger.warning("RELAY_JWT_SECRET is not set; token issuance will fail")
        if not settings.client_id or not settings.allowed_redirect_uris:
            logger.warning("No Requesting Application configured (RELAY_CLIENT_ID / RELAY_ALLOWED_REDIRECT_URIS)")
        yield
        github.close()
        store.close()

    app = FastAPI(title="GitHub OAuth Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.github = github
    app.state.relay = RelayBridge(store)
    app.state.codes = CodeStore(store)
    app.state.signer = TokenSigner(settings.jwt_secret, settings.issuer)

    app.include_router(authorize_router, tags=["authorize"])
    app.include_router(callback_router, tags=["callback"])
    app.include_router(token_router, tags=["token"])
    app.include_router(userinfo_router, tags=["user"])
    app.include_router(well_known_router, tags=["well-known"])

    @app.exception_handler(StarletteHTTPException)
    async def relay_http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return error_response(ErrorCode.METHOD_NOT_ALLOWED, headers=exc.headers)
        if isinstance(exc.detail, dict) and "code" in exc.detail:
            return error_response(ErrorCode(exc.detail["code"]), exc.detail.get("message"), headers=exc.headers)
        if exc.status_code == 400:
            return error_response(ErrorCode.INVALID_REQUEST, str(exc.detail))
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Full detail stays in the server log; the body never carries secrets
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(ErrorCode.INTERNAL_ERROR)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "relay_server",
            "store": "ok" if store.ping() else "unavailable",
        }

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = Settings.from_env()
    logging.basicConfig(
        level=_settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "relay_server.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=9000,
        log_level=_settings.log_level.lower(),
    )
