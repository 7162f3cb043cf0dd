"""
DocTrack Error Hierarchy — Structured exceptions mapped onto HTTP responses.

Every error carries a message plus free-form context, serializes to a
JSON-compatible dict and knows the HTTP status it surfaces as.

Hierarchy:
    DocTrackError                — 500
    ├── ValidationError          — 400  Missing / malformed input
    ├── AuthenticationError      — 401  Credential missing or wrong password
    ├── ForbiddenError           — 403  Credential present but invalid / expired
    ├── NotFoundError            — 404  Unknown id
    ├── ConflictError            — 409  Unique / foreign-key / concurrent update
    └── ConfigError              — 500  Invalid doctrack.yaml (startup only)
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError


class DocTrackError(Exception):
    """Base error for all DocTrack failures."""

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.record_type: Optional[str] = context.get("record_type")
        self.record_id: Optional[Any] = context.get("record_id")
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging and responses."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "record_type": self.record_type,
            "record_id": self.record_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("record_type", "record_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def response_body(self) -> Dict[str, Any]:
        """Body returned to HTTP clients."""
        return {"message": self.message, "error": self.error_type}

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.record_type:
            parts.append(f"record_type={self.record_type}")
        if self.record_id is not None:
            parts.append(f"record_id={self.record_id}")
        return " | ".join(parts)


class ValidationError(DocTrackError):
    """
    Input validation failed (missing required field, bad enum value,
    dangling reference). Includes field-level error details.
    """

    http_status = 400

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[List[Dict[str, Any]]] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d

    def response_body(self) -> Dict[str, Any]:
        body = super().response_body()
        if self.validation_errors:
            body["details"] = self.validation_errors
        return body


class AuthenticationError(DocTrackError):
    """No credential was presented, or the username/password pair is wrong."""

    http_status = 401


class ForbiddenError(DocTrackError):
    """A credential was presented but its signature, type or expiry is invalid."""

    http_status = 403


class NotFoundError(DocTrackError):
    """Record with the given id does not exist."""

    http_status = 404


class ConflictError(DocTrackError):
    """Unique / foreign-key violation or a concurrent modification."""

    http_status = 409

    def __init__(self, message: str, **context: Any):
        self.constraint: Optional[str] = context.get("constraint")
        super().__init__(message, **context)


class ConfigError(DocTrackError):
    """Configuration error — invalid doctrack.yaml or environment."""
    pass


# ---------------------------------------------------------------------------
# Database constraint classification
# ---------------------------------------------------------------------------

# PostgreSQL SQLSTATE codes
_PG_UNIQUE = "23505"
_PG_FOREIGN_KEY = "23503"
_PG_NOT_NULL = "23502"


def classify_integrity_error(exc: IntegrityError) -> Optional[str]:
    """
    Classify an IntegrityError as "unique", "foreign_key" or "not_null".

    Checks the driver's SQLSTATE first (psycopg2 exposes ``pgcode``) and
    falls back to SQLite's message text. Returns None when unknown.
    """
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode == _PG_UNIQUE:
        return "unique"
    if pgcode == _PG_FOREIGN_KEY:
        return "foreign_key"
    if pgcode == _PG_NOT_NULL:
        return "not_null"

    text = str(orig if orig is not None else exc).upper()
    if "UNIQUE CONSTRAINT" in text or "DUPLICATE KEY" in text:
        return "unique"
    if "FOREIGN KEY CONSTRAINT" in text:
        return "foreign_key"
    if "NOT NULL CONSTRAINT" in text:
        return "not_null"
    return None


def conflict_from_integrity(
    exc: IntegrityError,
    record_type: str,
    unique_message: str,
    foreign_key_message: Optional[str] = None,
    **context: Any,
) -> DocTrackError:
    """Translate an IntegrityError into the matching domain error."""
    kind = classify_integrity_error(exc)
    if kind == "unique":
        return ConflictError(unique_message, record_type=record_type, constraint="unique", **context)
    if kind == "foreign_key":
        return ConflictError(
            foreign_key_message or f"{record_type} is referenced by other records",
            record_type=record_type,
            constraint="foreign_key",
            **context,
        )
    if kind == "not_null":
        return ValidationError(
            f"Missing required value for {record_type}",
            record_type=record_type,
            **context,
        )
    return ConflictError(
        f"{record_type} violates a database constraint",
        record_type=record_type,
        **context,
    )
