from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security.utils import get_authorization_scheme_param

from .config import get_settings
from .errors import AuthenticationError
from .logging import get_logger


def configure_cors(app: FastAPI) -> None:
    # Agents post from arbitrary hosts, so ingestion is open to any origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-Request-Id"],
    )


async def get_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> Optional[str]:
    return x_api_key


async def verify_api_key(api_key: Optional[str] = Depends(get_api_key)) -> Optional[str]:
    settings = get_settings()
    logger = get_logger("security")

    if not settings.api_keys:
        # API key auth disabled
        return None

    if not api_key:
        logger.warning("Missing API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key.",
        )

    if api_key not in settings.api_keys:
        logger.warning("Invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    return api_key


async def get_bearer_token(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Optional[str]:
    if not authorization:
        return None
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer":
        return None
    return credentials


def _b64encode(raw: bytes) -> bytes:
    return base64.urlsafe_b64encode(raw).rstrip(b"=")


def _b64decode(raw: bytes) -> bytes:
    return base64.urlsafe_b64decode(raw + b"=" * (-len(raw) % 4))


def _sign(secret: str, signing_input: bytes) -> bytes:
    return _b64encode(hmac.new(secret.encode(), signing_input, hashlib.sha256).digest())


def issue_session_token(subject: str, *, now: float | None = None) -> tuple[str, int]:
    """Issue an HS256 session token for the operator. Returns (token, expires_in)."""
    settings = get_settings()
    issued_at = int(now if now is not None else time.time())
    expires_in = settings.session_ttl_hours * 3600
    header = _b64encode(b'{"alg":"HS256","typ":"JWT"}')
    body = _b64encode(json.dumps({"sub": subject, "iat": issued_at, "exp": issued_at + expires_in}).encode())
    signing_input = header + b"." + body
    token = signing_input + b"." + _sign(settings.session_secret, signing_input)
    return token.decode(), expires_in


def decode_session_token(token: str, *, now: float | None = None) -> Optional[Dict[str, Any]]:
    """Verify signature and expiry; returns the claims or None."""
    settings = get_settings()
    parts = token.encode().split(b".")
    if len(parts) != 3:
        return None
    signing_input = parts[0] + b"." + parts[1]
    if not hmac.compare_digest(_sign(settings.session_secret, signing_input), parts[2]):
        return None
    try:
        claims = json.loads(_b64decode(parts[1]))
    except ValueError:
        return None
    current = now if now is not None else time.time()
    if claims.get("exp", 0) < current:
        return None
    return claims


def check_admin_credentials(username: str, password: str) -> bool:
    settings = get_settings()
    user_ok = hmac.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = hmac.compare_digest(password.encode(), settings.admin_password.encode())
    return user_ok and password_ok


async def require_operator(token: Optional[str] = Depends(get_bearer_token)) -> str:
    claims = decode_session_token(token) if token else None
    if not claims:
        get_logger("security").warning("Operator session missing or invalid")
        raise AuthenticationError("Operator session required.")
    return str(claims["sub"])
