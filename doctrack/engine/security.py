"""
DocTrack Security Engine — Password hashing and stateless bearer tokens.

Implements:
- bcrypt password hashing / verification
- TokenService: issue(subject) → TokenPair, verify(token) → TokenSubject
  Access tokens (short-lived) and refresh tokens (long-lived) are signed
  with different secrets and carry a "type" claim so one can never be
  used in place of the other.
- AuthenticatedUser: the caller identity resolved from an access token

No revocation list, no rotation, no session store; verification only
checks signature, token type and expiry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from doctrack.engine.errors import AuthenticationError, ForbiddenError, ValidationError

logger = logging.getLogger("doctrack.engine.security")

ACCESS = "access"
REFRESH = "refresh"

# bcrypt only looks at the first 72 bytes of input
BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Password Utilities
# ---------------------------------------------------------------------------

def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password using bcrypt."""
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValidationError(
            f"Password must be at most {BCRYPT_MAX_BYTES} bytes",
            validation_errors=[{"field": "password", "error": "too_long"}],
        )
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenSubject:
    """Identity carried inside a token."""
    id: int
    username: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username}


@dataclass
class AuthenticatedUser:
    """Caller identity attached to a request after token verification."""
    user_id: int
    username: str
    token_claims: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.user_id, "username": self.username}


class TokenService:
    """
    Stateless JWT issue / verify.

    Usage:
        tokens = TokenService(secret="a", refresh_secret="b")
        pair = tokens.issue(TokenSubject(id=1, username="admin"))
        subject = tokens.verify(pair.access_token)
    """

    def __init__(
        self,
        secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_minutes: int = 15,
        refresh_days: int = 7,
    ):
        self._secret = secret
        self._refresh_secret = refresh_secret
        self._algorithm = algorithm
        self._access_ttl = timedelta(minutes=access_minutes)
        self._refresh_ttl = timedelta(days=refresh_days)

    @classmethod
    def from_config(cls, security_config) -> "TokenService":
        return cls(
            secret=security_config.jwt_secret,
            refresh_secret=security_config.jwt_refresh_secret,
            algorithm=security_config.algorithm,
            access_minutes=security_config.access_token_minutes,
            refresh_days=security_config.refresh_token_days,
        )

    def _encode(self, subject: TokenSubject, token_type: str, ttl: timedelta, key: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(subject.id),
            "id": subject.id,
            "username": subject.username,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, key, algorithm=self._algorithm)

    def issue_access(self, subject: TokenSubject) -> str:
        return self._encode(subject, ACCESS, self._access_ttl, self._secret)

    def issue(self, subject: TokenSubject) -> TokenPair:
        """Issue a fresh access + refresh token pair."""
        return TokenPair(
            access_token=self.issue_access(subject),
            refresh_token=self._encode(subject, REFRESH, self._refresh_ttl, self._refresh_secret),
        )

    def decode(self, token: Optional[str], token_type: str = ACCESS) -> Dict[str, Any]:
        """
        Decode and validate a token, returning its claims.

        Raises:
            AuthenticationError: no token supplied.
            ForbiddenError: bad signature, wrong token type or expired.
        """
        if not token:
            raise AuthenticationError(
                "Refresh token is required" if token_type == REFRESH else "Access token is required",
                token_type=token_type,
            )

        key = self._refresh_secret if token_type == REFRESH else self._secret
        try:
            claims = jwt.decode(token, key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as e:
            raise ForbiddenError("Token has expired", token_type=token_type) from e
        except jwt.InvalidTokenError as e:
            raise ForbiddenError("Token is invalid", token_type=token_type, reason=str(e)) from e

        if claims.get("type") != token_type:
            raise ForbiddenError("Token is invalid", token_type=token_type, reason="wrong token type")
        if not isinstance(claims.get("id"), int) or not claims.get("username"):
            raise ForbiddenError("Token is invalid", token_type=token_type, reason="missing subject")
        return claims

    def verify(self, token: Optional[str]) -> TokenSubject:
        """Verify an access token and return its subject."""
        claims = self.decode(token, ACCESS)
        return TokenSubject(id=claims["id"], username=claims["username"])

    def verify_refresh(self, token: Optional[str]) -> TokenSubject:
        """Verify a refresh token and return its subject."""
        claims = self.decode(token, REFRESH)
        return TokenSubject(id=claims["id"], username=claims["username"])

    def refresh(self, refresh_token: Optional[str]) -> str:
        """Exchange a valid refresh token for a new access token."""
        return self.issue_access(self.verify_refresh(refresh_token))

    def authenticate(self, token: Optional[str]) -> AuthenticatedUser:
        claims = self.decode(token, ACCESS)
        return AuthenticatedUser(user_id=claims["id"], username=claims["username"], token_claims=claims)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None
