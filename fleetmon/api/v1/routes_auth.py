from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from fleetmon.core.errors import AuthenticationError
from fleetmon.core.logging import get_logger
from fleetmon.core.security import (
    check_admin_credentials,
    decode_session_token,
    get_bearer_token,
    issue_session_token,
)
from fleetmon.models.api.requests import LoginRequest
from fleetmon.models.api.responses import LoginResponse, SessionResponse

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest) -> LoginResponse:
    logger = get_logger("Auth")
    if not check_admin_credentials(payload.username, payload.password):
        logger.warning("Auth.login_rejected", username=payload.username)
        raise AuthenticationError()

    token, expires_in = issue_session_token(payload.username)
    logger.info("Auth.login", username=payload.username)
    return LoginResponse(success=True, token=token, expires_in=expires_in, username=payload.username)


@router.get("/session", response_model=SessionResponse)
async def session(token: Optional[str] = Depends(get_bearer_token)) -> SessionResponse:
    claims = decode_session_token(token) if token else None
    if not claims:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, username=str(claims["sub"]))
