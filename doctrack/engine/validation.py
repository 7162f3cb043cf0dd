"""
DocTrack input validation helpers shared by every service.

``validate_department`` is the single place destination departments are
checked; every write path that stores one goes through it.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Type

from doctrack.db.models import Department, FolderStatus, UserRole
from doctrack.engine.errors import ValidationError


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def require_fields(data: Dict[str, Any], fields: Iterable[str], message: Optional[str] = None) -> None:
    """Raise ValidationError listing every required field that is missing or blank."""
    missing = [name for name in fields if is_blank(data.get(name))]
    if missing:
        raise ValidationError(
            message or f"Missing required fields: {', '.join(missing)}.",
            validation_errors=[{"field": name, "error": "required"} for name in missing],
        )


def parse_id(value: Any, field: str, required: bool = True) -> Optional[int]:
    """
    Coerce an id-like value (int or numeric string) to a positive int.

    Falsy values (None, "", 0) mean "no reference" when not required.
    """
    if value is None or value == "" or value == 0:
        if required:
            raise ValidationError(
                f"{field} is required",
                validation_errors=[{"field": field, "error": "required"}],
            )
        return None
    if isinstance(value, bool):
        raise ValidationError(
            f"{field} must be a positive integer",
            validation_errors=[{"field": field, "error": "not_an_integer"}],
        )
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field} must be a positive integer",
            validation_errors=[{"field": field, "error": "not_an_integer"}],
        ) from None
    if isinstance(value, float) and value != parsed:
        raise ValidationError(
            f"{field} must be a positive integer",
            validation_errors=[{"field": field, "error": "not_an_integer"}],
        )
    if parsed <= 0:
        raise ValidationError(
            f"{field} must be a positive integer",
            validation_errors=[{"field": field, "error": "not_positive"}],
        )
    return parsed


def _enum_value(value: Any, enum_cls: Type, field: str) -> str:
    if isinstance(value, enum_cls):
        return value.value
    allowed: List[str] = [member.value for member in enum_cls]
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(
            f"Invalid {field} '{value}'. Allowed: {', '.join(allowed)}",
            validation_errors=[{"field": field, "error": "invalid_choice", "allowed": allowed}],
        )
    return value


def validate_status(value: Any) -> str:
    return _enum_value(value, FolderStatus, "status")


def validate_role(value: Any) -> str:
    return _enum_value(value, UserRole, "role")


def validate_department(value: Any) -> Optional[str]:
    """Canonical destination-department check. Blank means no department."""
    if is_blank(value):
        return None
    return _enum_value(value, Department, "department")


def clean_optional_text(value: Any) -> Optional[str]:
    """Blank strings are stored as NULL."""
    if is_blank(value):
        return None
    return str(value)


def ensure_exists(session, model, record_id: Optional[int], field: str) -> None:
    """Raise ValidationError when ``record_id`` names no row of ``model``."""
    if record_id is None:
        return
    if session.get(model, record_id) is None:
        raise ValidationError(
            f"{field} refers to a {model.__name__} that does not exist",
            validation_errors=[{"field": field, "error": "unknown_reference", "value": record_id}],
        )
