"""Document endpoints, mounted under /api/documents."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from doctrack.api.deps import actor_id, current_user, get_db, get_settings
from doctrack.api.schemas import DocumentCreate, DocumentUpdate, FolderWithDocumentsCreate
from doctrack.documents.service import DocumentService
from doctrack.engine.config import ServiceConfig
from doctrack.engine.security import AuthenticatedUser
from doctrack.folders.service import FolderService

router = APIRouter(prefix="/api/documents", tags=["documents"])

# Literal paths are declared before "/{document_id}" so they are matched first.


@router.get("/by-folder")
def list_by_folder(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in DocumentService(session).list_by_folder(folder_id)]


@router.post("/folders-with-documents", status_code=201)
def create_folder_with_documents(
    body: FolderWithDocumentsCreate,
    session: Session = Depends(get_db),
    config: ServiceConfig = Depends(get_settings),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    folders = FolderService(session, frontend_url=config.frontend.base_url)
    folder = folders.create_with_documents(body.changes(), actor_id=actor_id(user))
    return folder.to_dict()


@router.get("")
def list_documents(
    folder_id: Optional[int] = Query(None, alias="folderId"),
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in DocumentService(session).list_documents(folder_id=folder_id)]


@router.get("/{document_id}")
def get_document(
    document_id: int,
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    return DocumentService(session).get_document(document_id).to_dict()


@router.post("", status_code=201)
def create_document(
    body: DocumentCreate,
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    document = DocumentService(session).create_document(body.changes(), actor_id=actor_id(user))
    return document.to_dict()


@router.put("/{document_id}")
def update_document(
    document_id: int,
    body: DocumentUpdate,
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    document = DocumentService(session).update_document(
        document_id, body.changes(), actor_id=actor_id(user),
    )
    return {"message": "Document updated successfully.", "document": document.to_dict()}


@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    session: Session = Depends(get_db),
    user: Optional[AuthenticatedUser] = Depends(current_user),
) -> Dict[str, Any]:
    DocumentService(session).delete_document(document_id, actor_id=actor_id(user))
    return {"message": "Document deleted successfully."}
