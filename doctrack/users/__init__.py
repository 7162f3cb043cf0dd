"""User accounts and authentication."""

from doctrack.users.auth import AuthService  # noqa: F401
from doctrack.users.service import UserService  # noqa: F401

__all__ = ["AuthService", "UserService"]
