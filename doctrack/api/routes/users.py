"""User account endpoints, mounted under /api/users."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from doctrack.api.deps import actor_id, current_user, get_db, get_settings
from doctrack.api.schemas import UserCreate, UserUpdate
from doctrack.engine.config import ServiceConfig
from doctrack.engine.security import AuthenticatedUser
from doctrack.users.service import UserService

router = APIRouter(prefix="/api/users", tags=["users"])


def _service(session: Session, config: ServiceConfig) -> UserService:
    return UserService(
        session,
        bcrypt_rounds=config.security.bcrypt_rounds,
        password_min_length=config.security.password_min_length,
    )


@router.get("")
def list_users(
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> List[Dict[str, Any]]:
    return [u.to_dict() for u in _service(session, config).list_users()]


@router.get("/{user_id}")
def get_user(
    user_id: int,
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return _service(session, config).get_user(user_id).to_dict()


@router.post("", status_code=201)
def create_user(
    body: UserCreate,
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    created = _service(session, config).create_user(body.changes(), actor_id=actor_id(user))
    return {"message": "User created successfully.", "user": created.to_dict()}


@router.put("/{user_id}")
def update_user(
    user_id: int,
    body: UserUpdate,
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    updated = _service(session, config).update_user(user_id, body.changes(), actor_id=actor_id(user))
    return {"message": "User updated successfully.", "user": updated.to_dict()}


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    _service(session, config).delete_user(user_id, actor_id=actor_id(user))
    return {"message": "User deleted successfully."}
