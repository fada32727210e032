"""
Pytest configuration for relay_server. Each test gets its own app, an in-memory store on a
controllable clock, and a fake GitHub behind httpx.MockTransport (no network).
"""
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from relay_server.config import GITHUB_TOKEN_URL, GITHUB_USER_URL, Settings
from relay_server.github import GitHubClient
from relay_server.main import create_app
from relay_server.storage import MemoryStore

CLIENT_ID = "relay-client"
CLIENT_SECRET = "relay-secret"
REDIRECT_URI = "https://app/cb"
REDIRECT_URI_WITH_QUERY = "https://app/cb2?tenant=acme"
GITHUB_ACCESS_TOKEN = "gho_do_not_leak_this_token"
GITHUB_USER_ID = 12345


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGitHub:
    """Answers GitHub's token and user endpoints; records what it was sent."""

    def __init__(self):
        self.token_payload = {"access_token": GITHUB_ACCESS_TOKEN, "token_type": "bearer", "scope": "read:user"}
        self.user_payload = {"id": GITHUB_USER_ID, "login": "octocat"}
        self.token_requests: list[dict] = []
        self.user_requests: list[httpx.Request] = []
        self.token_timeout = False

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == GITHUB_TOKEN_URL:
            self.token_requests.append(json.loads(request.content))
            if self.token_timeout:
                raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(200, json=self.token_payload)
        if url == GITHUB_USER_URL:
            self.user_requests.append(request)
            return httpx.Response(200, json=self.user_payload)
        return httpx.Response(404, json={"message": "Not Found"})


def query_of(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


@pytest.fixture
def settings():
    return Settings(
        base_url="https://relay.example.com",
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        allowed_redirect_uris=(REDIRECT_URI, REDIRECT_URI_WITH_QUERY),
        github_client_id="gh-client-id",
        github_client_secret="gh-client-secret",
        jwt_secret="test-signing-secret-with-enough-length",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def github_stub():
    return FakeGitHub()


@pytest.fixture
def app(settings, store, github_stub):
    github = GitHubClient(
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        callback_url=settings.callback_url,
        transport=httpx.MockTransport(github_stub.handle),
    )
    return create_app(settings, store=store, github=github)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def start_authorize(client):
    """GET /authorize as the Requesting Application; returns the relay key sent to GitHub."""

    def _start(state: str = "abc123", redirect_uri: str = REDIRECT_URI) -> str:
        r = client.get(
            "/authorize",
            params={"client_id": CLIENT_ID, "redirect_uri": redirect_uri, "state": state, "scope": "basic"},
            follow_redirects=False,
        )
        assert r.status_code == 302
        return query_of(r.headers["location"])["state"]

    return _start


@pytest.fixture
def issue_code(client, start_authorize):
    """Run authorize + GitHub callback; returns the authorization code handed to the client."""

    def _issue(state: str = "abc123") -> str:
        relay_key = start_authorize(state=state)
        r = client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
        assert r.status_code == 302
        return query_of(r.headers["location"])["code"]

    return _issue
