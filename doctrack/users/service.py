"""
DocTrack User Service — Account CRUD.

Password hashes never leave this module: callers get User rows and
serialize them with ``User.to_dict()``, which omits the hash.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doctrack.db.models import User
from doctrack.db.session import transaction
from doctrack.engine.errors import NotFoundError, ValidationError, conflict_from_integrity
from doctrack.engine.logging import log, log_record_operation
from doctrack.engine.security import hash_password
from doctrack.engine.validation import is_blank, require_fields, validate_role

logger = logging.getLogger("doctrack.users.service")

DUPLICATE_USERNAME = "Username already exists. Please use a different username."
USER_IN_USE = "Cannot delete user. It is associated with other records."


class UserService:
    """User account operations bound to one session."""

    def __init__(self, session: Session, bcrypt_rounds: int = 10, password_min_length: int = 6):
        self._session = session
        self._rounds = bcrypt_rounds
        self._password_min_length = password_min_length

    def list_users(self) -> List[User]:
        return list(self._session.scalars(select(User).order_by(User.id)))

    def get_user(self, user_id: int) -> User:
        user = self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found.", record_type="User", record_id=user_id)
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        return self._session.scalars(select(User).where(User.username == username)).first()

    def _hash(self, password: str) -> str:
        if len(password) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters",
                validation_errors=[{"field": "password", "error": "too_short"}],
            )
        return hash_password(password, rounds=self._rounds)

    def create_user(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> User:
        """
        Create a user from ``{name, username, password, role}``.

        Raises:
            ValidationError: a field is missing, role unknown, password too short.
            ConflictError: the username is taken.
        """
        require_fields(
            data,
            ("name", "username", "password", "role"),
            "Missing required fields: name, username, password, role.",
        )
        role = validate_role(data["role"])
        password_hash = self._hash(data["password"])

        try:
            with transaction(self._session):
                user = User(
                    name=data["name"].strip(),
                    username=data["username"].strip(),
                    password=password_hash,
                    role=role,
                )
                self._session.add(user)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(e, "User", DUPLICATE_USERNAME) from e

        logger.info("Created user %s (id=%s)", user.username, user.id)
        log(log_record_operation("users", "create", record_id=user.id, user_id=actor_id))
        return user

    def update_user(self, user_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None) -> User:
        """
        Partial update: only keys present in ``changes`` are written.
        A blank password is ignored rather than stored.
        """
        user = self.get_user(user_id)

        updates: Dict[str, Any] = {}
        for key in ("name", "username"):
            if key in changes and changes[key] is not None:
                if is_blank(changes[key]):
                    raise ValidationError(
                        f"{key} cannot be blank",
                        validation_errors=[{"field": key, "error": "required"}],
                    )
                updates[key] = changes[key].strip()
        if changes.get("role") is not None:
            updates["role"] = validate_role(changes["role"])
        if not is_blank(changes.get("password")):
            updates["password"] = self._hash(changes["password"])

        if not updates:
            raise ValidationError("No valid fields provided for update.")

        try:
            with transaction(self._session):
                for key, value in updates.items():
                    setattr(user, key, value)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(e, "User", DUPLICATE_USERNAME, record_id=user_id) from e

        log(log_record_operation(
            "users", "update", record_id=user_id, user_id=actor_id, fields_changed=sorted(updates),
        ))
        return user

    def delete_user(self, user_id: int, actor_id: Optional[int] = None) -> None:
        """
        Delete a user. Users still referenced by folders, documents or
        status logs are kept and a ConflictError is raised.
        """
        user = self.get_user(user_id)
        try:
            with transaction(self._session):
                self._session.delete(user)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(
                e, "User", DUPLICATE_USERNAME, USER_IN_USE, record_id=user_id,
            ) from e

        logger.info("Deleted user id=%s", user_id)
        log(log_record_operation("users", "delete", record_id=user_id, user_id=actor_id))
