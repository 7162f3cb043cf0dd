"""Registration, login and token endpoints, mounted under /api."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from doctrack.api.deps import get_db, get_settings, get_token_service, require_user
from doctrack.api.schemas import LoginRequest, RefreshRequest, RegisterRequest
from doctrack.engine.config import ServiceConfig
from doctrack.engine.security import AuthenticatedUser, TokenService
from doctrack.users.auth import AuthService

router = APIRouter(prefix="/api", tags=["auth"])


def _auth_service(session: Session, tokens: TokenService, config: ServiceConfig) -> AuthService:
    return AuthService(
        session,
        tokens,
        bcrypt_rounds=config.security.bcrypt_rounds,
        password_min_length=config.security.password_min_length,
    )


@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    session: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    config: ServiceConfig = Depends(get_settings),
) -> Dict[str, Any]:
    _auth_service(session, tokens, config).register(body.changes())
    return {"message": "User registered successfully."}


@router.post("/login")
def login(
    body: LoginRequest,
    session: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    config: ServiceConfig = Depends(get_settings),
) -> Dict[str, Any]:
    user, pair = _auth_service(session, tokens, config).login(body.username, body.password)
    return {
        "user": {"id": user.id, "name": user.name, "username": user.username, "role": user.role},
        "token": pair.access_token,
        "refreshToken": pair.refresh_token,
    }


@router.get("/check-token")
def check_token(user: AuthenticatedUser = Depends(require_user)) -> Dict[str, Any]:
    return {"valid": True, "user": user.to_dict()}


@router.post("/refresh-token")
def refresh_token(
    body: RefreshRequest,
    tokens: TokenService = Depends(get_token_service),
) -> Dict[str, Any]:
    return {"token": tokens.refresh(body.refresh_token)}
