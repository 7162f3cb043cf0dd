"""Unit tests for doctrack.engine.security — password hashing and TokenService."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from doctrack.engine.errors import AuthenticationError, ForbiddenError, ValidationError
from doctrack.engine.security import (
    TokenService,
    TokenSubject,
    bearer_token,
    hash_password,
    verify_password,
)


class TestPasswordUtils:

    def test_hash_and_verify(self):
        hashed = hash_password("123456", rounds=4)
        assert hashed != "123456"
        assert hashed.startswith("$2")
        assert verify_password("123456", hashed) is True

    def test_wrong_password(self):
        hashed = hash_password("123456", rounds=4)
        assert verify_password("654321", hashed) is False

    def test_salted(self):
        assert hash_password("same", rounds=4) != hash_password("same", rounds=4)

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError, match="72 bytes"):
            hash_password("x" * 73, rounds=4)

    def test_verify_too_long_is_false(self):
        hashed = hash_password("x" * 72, rounds=4)
        assert verify_password("x" * 73, hashed) is False

    def test_verify_against_garbage_hash(self):
        assert verify_password("123456", "not-a-bcrypt-hash") is False


class TestTokenService:

    def setup_method(self):
        self.tokens = TokenService(secret="access-secret", refresh_secret="refresh-secret")
        self.subject = TokenSubject(id=7, username="somchai")

    def test_issue_and_verify(self):
        pair = self.tokens.issue(self.subject)
        assert self.tokens.verify(pair.access_token) == self.subject
        assert self.tokens.verify_refresh(pair.refresh_token) == self.subject

    def test_access_and_refresh_differ(self):
        pair = self.tokens.issue(self.subject)
        assert pair.access_token != pair.refresh_token

    def test_refresh_token_is_not_an_access_token(self):
        pair = self.tokens.issue(self.subject)
        with pytest.raises(ForbiddenError):
            self.tokens.verify(pair.refresh_token)

    def test_access_token_is_not_a_refresh_token(self):
        pair = self.tokens.issue(self.subject)
        with pytest.raises(ForbiddenError):
            self.tokens.verify_refresh(pair.access_token)

    def test_missing_token(self):
        with pytest.raises(AuthenticationError, match="Access token is required"):
            self.tokens.verify(None)
        with pytest.raises(AuthenticationError, match="Refresh token is required"):
            self.tokens.refresh("")

    def test_tampered_token(self):
        token = self.tokens.issue_access(self.subject)
        with pytest.raises(ForbiddenError, match="invalid"):
            self.tokens.verify(token[:-2] + ("aa" if token[-2:] != "aa" else "bb"))

    def test_foreign_secret(self):
        other = TokenService(secret="other", refresh_secret="other-refresh")
        with pytest.raises(ForbiddenError):
            self.tokens.verify(other.issue_access(self.subject))

    def test_expired(self):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "7", "id": 7, "username": "somchai", "type": "access",
             "iat": past - timedelta(minutes=15), "exp": past},
            "access-secret",
            algorithm="HS256",
        )
        with pytest.raises(ForbiddenError, match="expired"):
            self.tokens.verify(token)

    def test_missing_subject(self):
        token = jwt.encode({"type": "access"}, "access-secret", algorithm="HS256")
        with pytest.raises(ForbiddenError):
            self.tokens.verify(token)

    def test_refresh_issues_new_access(self):
        pair = self.tokens.issue(self.subject)
        fresh = self.tokens.refresh(pair.refresh_token)
        assert self.tokens.verify(fresh) == self.subject

    def test_authenticate(self):
        user = self.tokens.authenticate(self.tokens.issue_access(self.subject))
        assert user.user_id == 7
        assert user.to_dict() == {"id": 7, "username": "somchai"}
        assert user.token_claims["type"] == "access"

    def test_ttl_from_config(self, config):
        tokens = TokenService.from_config(config.security)
        claims = tokens.decode(tokens.issue_access(self.subject))
        assert claims["exp"] - claims["iat"] == 15 * 60


class TestBearerToken:

    def test_parses_header(self):
        assert bearer_token("Bearer abc.def") == "abc.def"
        assert bearer_token("bearer abc") == "abc"

    def test_rejects_other_forms(self):
        assert bearer_token(None) is None
        assert bearer_token("") is None
        assert bearer_token("Basic abc") is None
        assert bearer_token("Bearer ") is None
        assert bearer_token("abc") is None
