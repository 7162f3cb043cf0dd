"""
DocTrack Folder Service — Folder lifecycle and status history.

Every folder has exactly one open FolderStatusLog (ended_at IS NULL) from
the moment it is created. A status change closes that interval and opens
a new one in the same transaction as the folder row update:

    ARCHIVED ──(U1, SECRETARIAT)──► SENT ──(U2)──► RECEIVED ──► COMPLETED
       log#1 [t0, t1)               log#2 [t1, t2)   log#3 [t2, …)

The folder row is read FOR UPDATE and carries a version counter, so two
concurrent transitions cannot both succeed.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from doctrack.db.base import utcnow
from doctrack.db.models import (
    DEFAULT_FOLDER_STATUS,
    Document,
    Folder,
    FolderStatusLog,
    User,
)
from doctrack.db.session import transaction
from doctrack.documents.service import build_document
from doctrack.engine.errors import ConflictError, NotFoundError, ValidationError, conflict_from_integrity
from doctrack.engine.logging import log, log_record_operation, log_status_transition
from doctrack.engine.validation import (
    clean_optional_text,
    ensure_exists,
    is_blank,
    parse_id,
    require_fields,
    validate_department,
    validate_status,
)

logger = logging.getLogger("doctrack.folders.service")

DUPLICATE_QR_TOKEN = "QR token is already assigned to another folder."
CONCURRENT_UPDATE = "Folder was modified by another request. Reload and try again."
FOLDER_IN_USE = "Cannot delete folder. It is referenced by other records."

_OPEN_LOG_INDEX = "uq_fsl_one_open_per_folder"


def new_qr_token() -> str:
    return str(uuid.uuid4())


def _is_open_log_violation(exc: IntegrityError) -> bool:
    text = str(exc.orig if exc.orig is not None else exc)
    return _OPEN_LOG_INDEX in text or "folder_status_logs.folder_id" in text


class FolderService:
    """
    Folder operations bound to one session.

    Usage:
        folders = FolderService(session, frontend_url="https://doctrack.example")
        folder = folders.create_folder({"title": "Budget 2025", "created_by_id": 1})
        folders.update_folder(folder.id, {"status": "SENT", "user_id": 1})
    """

    def __init__(self, session: Session, frontend_url: str = "http://localhost:5173"):
        self._session = session
        self._frontend_url = frontend_url.rstrip("/")

    # -- Queries ------------------------------------------------------------

    def list_folders(self, status: Optional[str] = None) -> List[Folder]:
        """All folders newest first, optionally only those in ``status``."""
        stmt = select(Folder)
        if not is_blank(status):
            stmt = stmt.where(Folder.status == validate_status(status))
        stmt = stmt.order_by(Folder.created_at.desc(), Folder.id.desc())
        return list(self._session.scalars(stmt))

    def get_folder(self, folder_id: int) -> Folder:
        folder = self._session.get(Folder, folder_id)
        if folder is None:
            raise NotFoundError("Folder not found.", record_type="Folder", record_id=folder_id)
        return folder

    def find_by_token(self, qr_token: str) -> Optional[Folder]:
        return self._session.scalars(select(Folder).where(Folder.qr_token == qr_token)).first()

    def get_by_token(self, qr_token: str) -> Folder:
        folder = self.find_by_token(qr_token)
        if folder is None:
            raise NotFoundError("Folder not found.", record_type="Folder", qr_token=qr_token)
        return folder

    def deep_link(self, folder_id: int) -> str:
        return f"{self._frontend_url}/qrcode/{folder_id}"

    def qr_link(self, folder_id: int) -> Dict[str, Any]:
        """The payload a scannable code for this folder encodes."""
        folder = self.get_folder(folder_id)
        return {"folderId": folder.id, "qrToken": folder.qr_token, "url": self.deep_link(folder.id)}

    # -- Create -------------------------------------------------------------

    def _add_folder(
        self,
        title: str,
        created_by_id: int,
        qr_token: Optional[str] = None,
        status: Optional[str] = None,
        department: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> Folder:
        """Add a folder plus its opening status log to the session and flush."""
        now = utcnow()
        folder = Folder(
            title=title,
            created_by_id=created_by_id,
            qr_token=qr_token or new_qr_token(),
            status=status or DEFAULT_FOLDER_STATUS.value,
            created_at=now,
            updated_at=now,
        )
        self._session.add(folder)
        self._session.flush()
        self._session.add(FolderStatusLog(
            folder_id=folder.id,
            status=folder.status,
            started_at=now,
            ended_at=None,
            user_id=created_by_id,
            department=department,
            remark=remark,
        ))
        self._session.flush()
        return folder

    def create_folder(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> Folder:
        """
        Create a folder and its opening status interval.

        Raises:
            ValidationError: title / createdById missing, unknown creator,
                unknown status or department.
            ConflictError: qrToken already in use.
        """
        require_fields(data, ("title", "created_by_id"), "title and createdById are required.")
        created_by_id = parse_id(data["created_by_id"], "createdById")
        status = validate_status(data["status"]) if not is_blank(data.get("status")) else None
        department = validate_department(data.get("department"))
        qr_token = None if is_blank(data.get("qr_token")) else data["qr_token"].strip()
        ensure_exists(self._session, User, created_by_id, "createdById")

        try:
            with transaction(self._session):
                folder = self._add_folder(
                    title=data["title"].strip(),
                    created_by_id=created_by_id,
                    qr_token=qr_token,
                    status=status,
                    department=department,
                    remark=clean_optional_text(data.get("remark")),
                )
        except IntegrityError as e:
            raise conflict_from_integrity(e, "Folder", DUPLICATE_QR_TOKEN) from e

        self._session.expire(folder, ["status_logs"])
        logger.info("Created folder %s (id=%s, status=%s)", folder.title, folder.id, folder.status)
        log(log_record_operation("folders", "create", record_id=folder.id, user_id=actor_id))
        return folder

    def create_with_documents(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> Folder:
        """
        Create a folder (fresh QR token, default status, opening log) and
        every document in ``data["documents"]`` atomically.
        """
        require_fields(
            data, ("folder_title", "created_by_id"), "folderTitle and createdById are required.",
        )
        documents = data.get("documents")
        if not isinstance(documents, list):
            raise ValidationError(
                "documents must be a list",
                validation_errors=[{"field": "documents", "error": "not_a_list"}],
            )
        created_by_id = parse_id(data["created_by_id"], "createdById")
        ensure_exists(self._session, User, created_by_id, "createdById")
        department = validate_department(data.get("department"))

        # folder_id is assigned here, not taken from the payload
        pending = [
            build_document(self._session, {**doc, "folder_id": None}, created_by_id)
            for doc in documents
        ]

        try:
            with transaction(self._session):
                folder = self._add_folder(
                    title=data["folder_title"].strip(),
                    created_by_id=created_by_id,
                    department=department,
                    remark=clean_optional_text(data.get("remark")),
                )
                for document in pending:
                    document.folder_id = folder.id
                    self._session.add(document)
                self._session.flush()
        except IntegrityError as e:
            raise conflict_from_integrity(e, "Folder", DUPLICATE_QR_TOKEN) from e

        self._session.expire(folder, ["documents", "status_logs"])
        logger.info("Created folder id=%s with %d documents", folder.id, len(pending))
        log(log_record_operation(
            "folders", "create_with_documents", record_id=folder.id, user_id=actor_id,
        ))
        return folder

    # -- Update / status transition -----------------------------------------

    def _lock_folder(self, folder_id: int) -> Folder:
        stmt = (
            select(Folder)
            .where(Folder.id == folder_id)
            .with_for_update(of=Folder)
            .execution_options(populate_existing=True)
        )
        folder = self._session.scalars(stmt).first()
        if folder is None:
            raise NotFoundError("Folder not found.", record_type="Folder", record_id=folder_id)
        return folder

    def _close_open_logs(self, folder_id: int, ended_at) -> Optional[int]:
        open_logs = self._session.scalars(
            select(FolderStatusLog)
            .where(FolderStatusLog.folder_id == folder_id, FolderStatusLog.ended_at.is_(None))
            .order_by(FolderStatusLog.started_at.desc(), FolderStatusLog.id.desc())
        ).all()
        for entry in open_logs:
            entry.ended_at = ended_at
        # the partial unique index needs the close written before the new row
        self._session.flush()
        return open_logs[0].id if open_logs else None

    def update_folder(
        self, folder_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None,
    ) -> Folder:
        """
        Apply a partial update and, when the status changes, record the
        transition in the folder's history.

        ``changes`` may hold title, qr_token, status, user_id, department and
        remark. A status equal to the current one touches no log rows.

        Raises:
            NotFoundError: no such folder.
            ValidationError: status changes without user_id, unknown status,
                department or user.
            ConflictError: qrToken taken or a concurrent modification.
        """
        updates: Dict[str, Any] = {}
        for key in ("title", "qr_token"):
            if changes.get(key) is not None:
                if is_blank(changes[key]):
                    raise ValidationError(
                        f"{key} cannot be blank",
                        validation_errors=[{"field": key, "error": "required"}],
                    )
                updates[key] = changes[key].strip()

        requested = changes.get("status")
        transition: Optional[Dict[str, Any]] = None

        try:
            with transaction(self._session):
                folder = self._lock_folder(folder_id)

                if not is_blank(requested) and requested != folder.status:
                    new_status = validate_status(requested)
                    user_id = parse_id(changes.get("user_id"), "userId")
                    ensure_exists(self._session, User, user_id, "userId")
                    department = validate_department(changes.get("department"))

                    now = utcnow()
                    from_status = folder.status
                    closed_id = self._close_open_logs(folder.id, now)
                    folder.status = new_status
                    opened = FolderStatusLog(
                        folder_id=folder.id,
                        status=new_status,
                        started_at=now,
                        ended_at=None,
                        user_id=user_id,
                        department=department,
                        remark=clean_optional_text(changes.get("remark")),
                    )
                    self._session.add(opened)
                    transition = {
                        "from_status": from_status,
                        "to_status": new_status,
                        "user_id": user_id,
                        "department": department,
                        "closed_log_id": closed_id,
                        "opened": opened,
                    }

                for key, value in updates.items():
                    setattr(folder, key, value)
                self._session.flush()
        except StaleDataError as e:
            raise ConflictError(CONCURRENT_UPDATE, record_type="Folder", record_id=folder_id) from e
        except IntegrityError as e:
            if _is_open_log_violation(e):
                raise ConflictError(
                    CONCURRENT_UPDATE, record_type="Folder", record_id=folder_id, constraint="unique",
                ) from e
            raise conflict_from_integrity(e, "Folder", DUPLICATE_QR_TOKEN, record_id=folder_id) from e

        if transition is not None:
            self._session.expire(folder, ["status_logs"])
            logger.info(
                "Folder %s: %s -> %s by user %s",
                folder_id, transition["from_status"], transition["to_status"], transition["user_id"],
            )
            log(log_status_transition(
                folder_id=folder_id,
                from_status=transition["from_status"],
                to_status=transition["to_status"],
                user_id=transition["user_id"],
                department=transition["department"],
                closed_log_id=transition["closed_log_id"],
                opened_log_id=transition["opened"].id,
            ))
        if updates:
            log(log_record_operation(
                "folders", "update", record_id=folder_id, user_id=actor_id,
                fields_changed=sorted(updates),
            ))
        return folder

    # -- Delete -------------------------------------------------------------

    def delete_folder(self, folder_id: int, actor_id: Optional[int] = None) -> None:
        """Delete a folder together with its documents and status history."""
        folder = self.get_folder(folder_id)
        try:
            with transaction(self._session):
                doc_count = self._session.execute(
                    delete(Document).where(Document.folder_id == folder_id)
                ).rowcount
                self._session.execute(
                    delete(FolderStatusLog).where(FolderStatusLog.folder_id == folder_id)
                )
                self._session.execute(delete(Folder).where(Folder.id == folder_id))
        except IntegrityError as e:
            raise conflict_from_integrity(
                e, "Folder", DUPLICATE_QR_TOKEN, FOLDER_IN_USE, record_id=folder_id,
            ) from e

        logger.info("Deleted folder id=%s and %s documents", folder_id, doc_count)
        log(log_record_operation("folders", "delete", record_id=folder_id, user_id=actor_id))
