"""
Pytest tests for GET /github/callback (GitHub -> relay -> Requesting Application).
"""
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

GITHUB_TOKEN = "gho_do_not_leak_this_token"


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def test_callback_redirects_to_client_with_code_and_original_state(client, store, start_authorize):
    relay_key = start_authorize(state="abc123")
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("https://app/cb?")
    params = _query(location)
    assert params["state"] == "abc123"
    code = params["code"]
    assert store.get(f"code:{code}")["userId"] == "12345"
    # relay record consumed
    assert store.get(f"relay:{relay_key}") is None


def test_callback_sends_github_only_the_relay_key(client, github_stub, start_authorize, settings):
    relay_key = start_authorize(state="csrf-from-client")
    client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
    assert github_stub.token_requests == [
        {
            "client_id": "gh-client-id",
            "client_secret": "gh-client-secret",
            "code": "gh-code",
            "redirect_uri": settings.callback_url,
        }
    ]
    user_request = github_stub.user_requests[0]
    assert user_request.headers["authorization"] == f"token {GITHUB_TOKEN}"
    assert user_request.headers["accept"] == "application/vnd.github+json"
    assert user_request.headers["user-agent"]


def test_callback_unknown_state(client, github_stub):
    response = client.get("/github/callback", params={"code": "gh-code", "state": "never-issued"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE"
    assert github_stub.token_requests == []


def test_callback_missing_code(client, start_authorize):
    relay_key = start_authorize()
    response = client.get("/github/callback", params={"state": relay_key})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_callback_missing_state(client):
    response = client.get("/github/callback", params={"code": "gh-code"})
    assert response.json()["code"] == "INVALID_REQUEST"


def test_callback_replayed_state_rejected(client, start_authorize):
    relay_key = start_authorize()
    first = client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
    assert first.status_code == 302
    second = client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
    assert second.status_code == 400
    assert second.json()["code"] == "INVALID_STATE"


def test_callback_expired_state_same_as_unknown(client, clock, start_authorize):
    relay_key = start_authorize()
    clock.advance(601)
    expired = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    unknown = client.get("/github/callback", params={"code": "gh-code", "state": "nope"})
    assert expired.status_code == unknown.status_code == 400
    assert expired.json() == unknown.json()


def test_callback_token_exchange_failure(client, github_stub, start_authorize):
    github_stub.token_payload = {"error": "bad_verification_code"}
    relay_key = start_authorize()
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    assert response.status_code == 400
    assert response.json()["code"] == "TOKEN_EXCHANGE_FAILED"
    # relay record is gone even though the exchange failed
    retry = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    assert retry.json()["code"] == "INVALID_STATE"


def test_callback_github_timeout(client, github_stub, store, start_authorize):
    github_stub.token_timeout = True
    relay_key = start_authorize()
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    assert response.status_code == 400
    assert response.json()["code"] == "TOKEN_EXCHANGE_FAILED"
    assert len(store) == 0


def test_callback_user_without_id(client, github_stub, store, start_authorize):
    github_stub.user_payload = {"message": "Bad credentials"}
    relay_key = start_authorize()
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_USER"
    assert GITHUB_TOKEN not in response.text
    assert len(store) == 0


def test_callback_non_numeric_user_id(client, github_stub, start_authorize):
    github_stub.user_payload = {"id": "12345"}
    relay_key = start_authorize()
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key})
    assert response.json()["code"] == "INVALID_USER"


def test_callback_keeps_existing_query_on_redirect_uri(client, start_authorize):
    relay_key = start_authorize(redirect_uri="https://app/cb2?tenant=acme")
    response = client.get("/github/callback", params={"code": "gh-code", "state": relay_key}, follow_redirects=False)
    location = response.headers["location"]
    assert location.startswith("https://app/cb2?")
    params = _query(location)
    assert params["tenant"] == "acme"
    assert params["state"] == "abc123"
    assert params["code"]


def test_callback_ignores_redirect_uri_in_request(client, start_authorize):
    relay_key = start_authorize()
    response = client.get(
        "/github/callback",
        params={"code": "gh-code", "state": relay_key, "redirect_uri": "https://evil.example/steal"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    assert response.headers["location"].startswith("https://app/cb?")


def test_callback_post_not_allowed(client):
    response = client.post("/github/callback", data={"code": "x", "state": "y"})
    assert response.status_code == 405
    assert response.json()["code"] == "METHOD_NOT_ALLOWED"


def test_callback_unexpected_error_is_internal_and_hides_token(app, start_authorize, monkeypatch):
    def broken_mint(user_id):
        raise RuntimeError(f"store down while holding {GITHUB_TOKEN}")

    monkeypatch.setattr(app.state.codes, "mint", broken_mint)
    relay_key = start_authorize()
    response = TestClient(app, raise_server_exceptions=False).get(
        "/github/callback", params={"code": "gh-code", "state": relay_key}
    )
    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
    assert GITHUB_TOKEN not in response.text
