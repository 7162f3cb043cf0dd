"""
FastAPI dependencies: DB session, config, token service and caller identity.

Everything is read from ``app.state`` so one process can host several apps
(the test suite builds a fresh app per test).
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from doctrack.engine.config import ServiceConfig
from doctrack.engine.errors import AuthenticationError, ForbiddenError
from doctrack.engine.logging import log, log_security_event
from doctrack.engine.security import AuthenticatedUser, TokenService, bearer_token


def get_settings(request: Request) -> ServiceConfig:
    return request.app.state.config


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    One session per request. Services commit their own units of work;
    this only guarantees the session is closed.
    """
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def _authenticate(request: Request, tokens: TokenService, authorization: Optional[str]) -> AuthenticatedUser:
    try:
        user = tokens.authenticate(bearer_token(authorization))
    except (AuthenticationError, ForbiddenError) as e:
        log(log_security_event(
            "token_rejected",
            reason=e.message,
            path=request.url.path,
        ))
        raise
    request.state.user_id = user.user_id
    return user


def require_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> AuthenticatedUser:
    """Always demands a valid access token (401 when absent, 403 when invalid)."""
    return _authenticate(request, tokens, authorization)


def current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    config: ServiceConfig = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[AuthenticatedUser]:
    """
    Caller identity for resource routes. When ``security.require_auth`` is
    off, anonymous requests pass through as ``None``.
    """
    if not config.security.require_auth and not authorization:
        return None
    return _authenticate(request, tokens, authorization)


def actor_id(user: Optional[AuthenticatedUser]) -> Optional[int]:
    return user.user_id if user is not None else None
