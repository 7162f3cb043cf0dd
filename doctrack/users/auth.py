"""
DocTrack AuthService — Registration and credential login.

Login issues an access/refresh token pair through TokenService. Unknown
usernames and wrong passwords fail with the same message so the response
does not reveal which accounts exist.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from doctrack.db.models import User
from doctrack.engine.errors import AuthenticationError
from doctrack.engine.logging import log, log_security_event
from doctrack.engine.security import TokenPair, TokenService, TokenSubject, verify_password
from doctrack.engine.validation import require_fields
from doctrack.users.service import UserService

logger = logging.getLogger("doctrack.users.auth")

INVALID_CREDENTIALS = "Invalid username or password."


class AuthService:
    """
    Account registration and login.

    Usage:
        auth = AuthService(session, TokenService.from_config(config.security))
        user, pair = auth.login("admin", "123456")
    """

    def __init__(
        self,
        session: Session,
        tokens: TokenService,
        bcrypt_rounds: int = 10,
        password_min_length: int = 6,
    ):
        self._tokens = tokens
        self._users = UserService(
            session, bcrypt_rounds=bcrypt_rounds, password_min_length=password_min_length,
        )

    def register(self, data: Dict[str, Any]) -> User:
        """
        Create an account with the given role.

        Raises:
            ValidationError: name, username, password or role missing.
            ConflictError: username already taken.
        """
        require_fields(
            data,
            ("name", "username", "password", "role"),
            "Missing required fields: name, username, password, role.",
        )
        user = self._users.create_user(data)
        log(log_security_event(
            "user_registered", username=user.username, user_id=user.id, level="INFO",
        ))
        return user

    def login(self, username: Optional[str], password: Optional[str]) -> Tuple[User, TokenPair]:
        """
        Check credentials and issue a token pair.

        Raises:
            ValidationError: username or password missing.
            AuthenticationError: unknown user or wrong password.
        """
        require_fields(
            {"username": username, "password": password},
            ("username", "password"),
            "Username and password are required.",
        )

        user = self._users.find_by_username(username)
        if user is None or not verify_password(password, user.password):
            reason = "unknown_user" if user is None else "bad_password"
            logger.warning("Failed login for %s (%s)", username, reason)
            log(log_security_event("login_failed", username=username, reason=reason))
            raise AuthenticationError(INVALID_CREDENTIALS, username=username)

        pair = self._tokens.issue(TokenSubject(id=user.id, username=user.username))
        log(log_security_event("login_success", username=user.username, user_id=user.id, level="INFO"))
        return user, pair
