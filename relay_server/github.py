"""
Outbound calls to GitHub: exchange the callback code for a GitHub access token, then
read the user's numeric id. The GitHub token never leaves this module's call stack.
"""
import logging

import httpx

from relay_server.config import GITHUB_TOKEN_URL, GITHUB_USER_URL
from relay_server.errors import Err, ErrorCode, Ok, Result

logger = logging.getLogger(__name__)

USER_AGENT = "github-oauth-relay"


class GitHubClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._callback_url = callback_url
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"User-Agent": USER_AGENT},
        )

    def close(self) -> None:
        self._http.close()

    def exchange_code(self, code: str) -> Result[str]:
        """POST the code to GitHub's token endpoint. Ok(github_access_token) or TOKEN_EXCHANGE_FAILED."""
        try:
            r = self._http.post(
                GITHUB_TOKEN_URL,
                json={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "code": code,
                    "redirect_uri": self._callback_url,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.warning("GitHub token exchange request failed: %s", type(e).__name__)
            return Err(ErrorCode.TOKEN_EXCHANGE_FAILED)

        try:
            data = r.json()
        except ValueError:
            logger.warning("GitHub token exchange returned non-JSON (status=%s)", r.status_code)
            return Err(ErrorCode.TOKEN_EXCHANGE_FAILED)

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token or not isinstance(access_token, str):
            # GitHub reports bad/expired codes as 200 with an "error" field
            error = data.get("error") if isinstance(data, dict) else None
            logger.info("GitHub token exchange rejected: status=%s error=%s", r.status_code, error)
            return Err(ErrorCode.TOKEN_EXCHANGE_FAILED)
        return Ok(access_token)

    def fetch_user_id(self, github_token: str) -> Result[str]:
        """GET /user with the GitHub token. Ok(stringified numeric id) or INVALID_USER."""
        try:
            r = self._http.get(
                GITHUB_USER_URL,
                headers={
                    "Authorization": f"token {github_token}",
                    "Accept": "application/vnd.github+json",
                },
            )
        except httpx.HTTPError as e:
            logger.warning("GitHub user fetch failed: %s", type(e).__name__)
            return Err(ErrorCode.INVALID_USER)

        try:
            data = r.json()
        except ValueError:
            logger.warning("GitHub user endpoint returned non-JSON (status=%s)", r.status_code)
            return Err(ErrorCode.INVALID_USER)

        user_id = data.get("id") if isinstance(data, dict) else None
        # bool is an int subclass; GitHub ids are positive integers
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            logger.info("GitHub user response without usable id (status=%s)", r.status_code)
            return Err(ErrorCode.INVALID_USER)
        return Ok(str(user_id))
