from __future__ import annotations

from fleetmon.core.config import get_settings
from fleetmon.core.security import check_admin_credentials, decode_session_token, issue_session_token


def test_token_round_trip_and_expiry():
    token, expires_in = issue_session_token("admin", now=1_000)

    assert expires_in == get_settings().session_ttl_hours * 3600
    claims = decode_session_token(token, now=1_001)
    assert claims["sub"] == "admin"
    assert decode_session_token(token, now=1_000 + expires_in + 1) is None


def test_tampered_token_is_rejected():
    token, _ = issue_session_token("admin")
    header, body, signature = token.split(".")
    forged, _ = issue_session_token("mallory")

    assert decode_session_token(f"{header}.{forged.split('.')[1]}.{signature}") is None
    assert decode_session_token("not-a-token") is None


def test_admin_credentials():
    assert check_admin_credentials("admin", "s3cret") is True
    assert check_admin_credentials("admin", "wrong") is False
    assert check_admin_credentials("root", "s3cret") is False
