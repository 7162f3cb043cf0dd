"""
DocTrack Document Service — Document CRUD.

References to users and folders are checked before anything is written;
an unknown createdById / receiverId / folderId is a ValidationError.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from doctrack.db.models import Document, Folder, User
from doctrack.db.session import transaction
from doctrack.engine.errors import NotFoundError, ValidationError, conflict_from_integrity
from doctrack.engine.logging import log, log_record_operation
from doctrack.engine.validation import (
    clean_optional_text,
    ensure_exists,
    is_blank,
    parse_id,
    require_fields,
)

logger = logging.getLogger("doctrack.documents.service")

DOCUMENT_CONFLICT = "Document conflicts with an existing record."
DOCUMENT_IN_USE = "Cannot delete document. It is referenced by other records."

# Free-text columns a partial update may write
TEXT_FIELDS = ("agency_type", "department", "sender", "status", "description")
REQUIRED_TEXT_FIELDS = ("doc_number", "subject")
REFERENCE_FIELDS = {
    "receiver_id": ("receiverId", User),
    "folder_id": ("folderId", Folder),
}


def _ordered(stmt):
    return stmt.order_by(Document.created_at.desc(), Document.id.desc())


def build_document(session: Session, data: Dict[str, Any], created_by_id: int) -> Document:
    """
    Validate one document payload and return an unsaved Document.

    ``created_by_id`` must already be checked by the caller.
    """
    require_fields(
        data,
        REQUIRED_TEXT_FIELDS,
        "docNumber and subject are required.",
    )
    receiver_id = parse_id(data.get("receiver_id"), "receiverId", required=False)
    folder_id = parse_id(data.get("folder_id"), "folderId", required=False)
    ensure_exists(session, User, receiver_id, "receiverId")
    ensure_exists(session, Folder, folder_id, "folderId")

    return Document(
        doc_number=data["doc_number"].strip(),
        subject=data["subject"].strip(),
        agency_type=data.get("agency_type") or "",
        department=clean_optional_text(data.get("department")),
        sender=clean_optional_text(data.get("sender")),
        status=clean_optional_text(data.get("status")),
        description=clean_optional_text(data.get("description")),
        created_by_id=created_by_id,
        receiver_id=receiver_id,
        folder_id=folder_id,
    )


class DocumentService:
    """Document operations bound to one session."""

    def __init__(self, session: Session):
        self._session = session

    def list_documents(self, folder_id: Optional[int] = None) -> List[Document]:
        """All documents newest first, optionally restricted to one folder."""
        stmt = select(Document)
        if folder_id is not None:
            stmt = stmt.where(Document.folder_id == folder_id)
        return list(self._session.scalars(_ordered(stmt)))

    def list_by_folder(self, folder_id: Any) -> List[Document]:
        folder = parse_id(folder_id, "folderId")
        return self.list_documents(folder_id=folder)

    def get_document(self, document_id: int) -> Document:
        document = self._session.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found.", record_type="Document", record_id=document_id)
        return document

    def create_document(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> Document:
        """
        Create a document.

        Raises:
            ValidationError: docNumber / subject / createdById missing, an id
                is not a positive integer, or a referenced row does not exist.
        """
        start = time.monotonic()
        require_fields(
            data,
            ("doc_number", "subject", "created_by_id"),
            "docNumber, subject and createdById are required.",
        )
        created_by_id = parse_id(data["created_by_id"], "createdById")
        ensure_exists(self._session, User, created_by_id, "createdById")
        document = build_document(self._session, data, created_by_id)

        try:
            with transaction(self._session):
                self._session.add(document)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(e, "Document", DOCUMENT_CONFLICT) from e

        duration = round((time.monotonic() - start) * 1000, 2)
        logger.info("Created document %s (id=%s)", document.doc_number, document.id)
        log(log_record_operation(
            "documents", "create", record_id=document.id, user_id=actor_id, duration_ms=duration,
        ))
        return document

    def update_document(
        self, document_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None,
    ) -> Document:
        """
        Partial update: only keys present in ``changes`` are written.
        A falsy receiverId / folderId clears the reference.
        """
        document = self.get_document(document_id)

        updates: Dict[str, Any] = {}
        for key in REQUIRED_TEXT_FIELDS:
            if key in changes:
                if is_blank(changes[key]):
                    raise ValidationError(
                        f"{key} cannot be blank",
                        validation_errors=[{"field": key, "error": "required"}],
                    )
                updates[key] = changes[key].strip()
        for key in TEXT_FIELDS:
            if key in changes:
                value = changes[key]
                updates[key] = (value or "") if key == "agency_type" else clean_optional_text(value)
        for key, (wire_name, model) in REFERENCE_FIELDS.items():
            if key in changes:
                ref_id = parse_id(changes[key], wire_name, required=False)
                ensure_exists(self._session, model, ref_id, wire_name)
                updates[key] = ref_id

        if not updates:
            raise ValidationError("No valid fields provided for update.")

        try:
            with transaction(self._session):
                for key, value in updates.items():
                    setattr(document, key, value)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(
                e, "Document", DOCUMENT_CONFLICT, record_id=document_id,
            ) from e

        # relationships follow the new foreign keys on next access
        self._session.expire(document, ["receiver", "folder"])
        log(log_record_operation(
            "documents", "update", record_id=document_id, user_id=actor_id,
            fields_changed=sorted(updates),
        ))
        return document

    def delete_document(self, document_id: int, actor_id: Optional[int] = None) -> None:
        document = self.get_document(document_id)
        try:
            with transaction(self._session):
                self._session.delete(document)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(
                e, "Document", DOCUMENT_CONFLICT, DOCUMENT_IN_USE, record_id=document_id,
            ) from e

        logger.info("Deleted document id=%s", document_id)
        log(log_record_operation("documents", "delete", record_id=document_id, user_id=actor_id))
