from unittest.mock import MagicMock

import pytest
import requests

from clients.access_token import TOKEN_ENDPOINT, fetch_token
from errors import AuthError, RetryableError
from main import accesstoken_main


def _session(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    session = MagicMock()
    session.get.return_value = response
    return session


def test_fetch_token_sends_cookies():
    session = _session(
        payload={"accessToken": "tok", "accessTokenExpirationTimestampMs": 1700000000000}
    )

    token = fetch_token("dc", "key", session=session, timeout=3)

    assert token.access_token == "tok"
    assert token.expires_at.year == 2023
    args, kwargs = session.get.call_args
    assert args[0] == TOKEN_ENDPOINT
    assert kwargs["headers"]["cookie"] == "sp_dc=dc; sp_key=key"
    assert kwargs["timeout"] == 3


def test_fetch_token_bad_status_is_auth_error():
    with pytest.raises(AuthError, match="401"):
        fetch_token("dc", "key", session=_session(status_code=401))


def test_fetch_token_malformed_payload_is_auth_error():
    with pytest.raises(AuthError):
        fetch_token("dc", "key", session=_session(payload={"unexpected": True}))


def test_fetch_token_timeout_is_retryable():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.Timeout("slow")

    with pytest.raises(RetryableError):
        fetch_token("dc", "key", session=session)


def test_accesstoken_command_prints_usage(capsys):
    with pytest.raises(SystemExit) as excinfo:
        accesstoken_main(["only-one"])

    assert excinfo.value.code == 2
    err = capsys.readouterr().err
    assert "<SP_DC> <SP_KEY>" in err
    assert "sp_dc" in err
