"""Fetch a Spotify web player access token from browser session cookies."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests

from config import Config
from errors import AuthError, RetryableError

TOKEN_ENDPOINT = (
    "https://open.spotify.com/get_access_token?reason=transport&productType=web_player"
)
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_13_2) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/63.0.3239.132 Safari/537.36"
)

SP_DC_INSTRUCTIONS = """1. open a new incognito window in a browser at: https://accounts.spotify.com/en/login?continue=https:%2F%2Fopen.spotify.com%2F
2. open Developer Tools in your browser and select the 'Application' tab
3. login to Spotify
4. search/filter for `sp_dc` under Cookies > https://open.spotify.com
5. repeat step 4 for `sp_key`
6. close the window without logging out"""


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expiry_ms: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expiry_ms / 1000, tz=timezone.utc)


def fetch_token(
    sp_dc: str,
    sp_key: str,
    session: Optional[requests.Session] = None,
    timeout: float = Config.REQUEST_TIMEOUT,
    logger: Optional[logging.Logger] = None,
) -> TokenResponse:
    """Exchange the ``sp_dc``/``sp_key`` cookies for a bearer token.

    Args:
        sp_dc: Value of the ``sp_dc`` cookie
        sp_key: Value of the ``sp_key`` cookie
        session: Optional requests session to reuse
        timeout: Request timeout in seconds
        logger: Optional logger instance

    Returns:
        The token and its expiry timestamp

    Raises:
        AuthError: If Spotify rejects the cookies or answers unexpectedly
        RetryableError: On network failures or timeouts
    """
    logger = logger or logging.getLogger(__name__)
    http = session or requests.Session()
    headers = {
        "user-agent": USER_AGENT,
        "cookie": f"sp_dc={sp_dc}; sp_key={sp_key}",
    }

    try:
        response = http.get(TOKEN_ENDPOINT, headers=headers, timeout=timeout)
    except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
        raise RetryableError(f"Failed to reach Spotify token endpoint: {str(e)}") from e

    if response.status_code != 200:
        logger.error(f"Token endpoint returned status {response.status_code}")
        raise AuthError(f"bad response status: {response.status_code}")

    try:
        payload = response.json()
        token = TokenResponse(
            access_token=payload["accessToken"],
            expiry_ms=int(payload["accessTokenExpirationTimestampMs"]),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise AuthError(f"Unexpected token response: {str(e)}") from e

    if not token.access_token:
        raise AuthError("Token endpoint returned an empty access token")

    logger.debug(f"Fetched web player token expiring at {token.expires_at.isoformat()}")
    return token
