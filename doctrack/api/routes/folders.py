"""Folder endpoints, mounted under /api/folders."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from doctrack.api.deps import actor_id, current_user, get_db, get_settings
from doctrack.api.schemas import FolderCreate, FolderUpdate
from doctrack.engine.config import ServiceConfig
from doctrack.engine.security import AuthenticatedUser
from doctrack.folders.service import FolderService

router = APIRouter(prefix="/api/folders", tags=["folders"])


def _service(session: Session = Depends(get_db), config: ServiceConfig = Depends(get_settings)) -> FolderService:
    return FolderService(session, frontend_url=config.frontend.base_url)


@router.get("")
def list_folders(
    status: Optional[str] = Query(None),
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> List[Dict[str, Any]]:
    return [f.to_dict() for f in folders.list_folders(status=status)]


@router.get("/by-token/{qr_token}")
def get_folder_by_token(
    qr_token: str,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return folders.get_by_token(qr_token).to_dict()


@router.get("/{folder_id}")
def get_folder(
    folder_id: int,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return folders.get_folder(folder_id).to_dict()


@router.get("/{folder_id}/qr")
def get_folder_qr(
    folder_id: int,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return folders.qr_link(folder_id)


@router.post("", status_code=201)
def create_folder(
    body: FolderCreate,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return folders.create_folder(body.changes(), actor_id=actor_id(user)).to_dict()


@router.put("/{folder_id}")
def update_folder(
    folder_id: int,
    body: FolderUpdate,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return folders.update_folder(folder_id, body.changes(), actor_id=actor_id(user)).to_dict()


@router.delete("/{folder_id}")
def delete_folder(
    folder_id: int,
    folders: FolderService = Depends(_service),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    folders.delete_folder(folder_id, actor_id=actor_id(user))
    return {"message": "Folder deleted successfully."}
