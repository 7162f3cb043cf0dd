"""
DocTrack Models — SQLAlchemy models for the document tracking database.

Tables:
1. users               — Accounts (admin / user) with bcrypt password hashes
2. folders             — Tracked folders with a QR token and lifecycle status
3. documents           — Documents, optionally filed in a folder / sent to a receiver
4. folder_status_logs  — One row per interval a folder held a status

A folder's open interval is the status log with ended_at IS NULL; the partial
unique index on folder_status_logs allows at most one per folder.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from doctrack.db.base import Base, TimestampMixin, utcnow


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class FolderStatus(str, enum.Enum):
    SENT = "SENT"
    RECEIVED = "RECEIVED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class Department(str, enum.Enum):
    """Destination departments a folder can be routed to."""
    STRATEGIC_AND_PROJECTS = "STRATEGIC_AND_PROJECTS"
    FINANCE_GROUP = "FINANCE_GROUP"
    HUMAN_RESOURCES = "HUMAN_RESOURCES"
    NURSING_GROUP = "NURSING_GROUP"
    SECRETARIAT = "SECRETARIAT"
    DIGITAL_HEALTH_MISSION = "DIGITAL_HEALTH_MISSION"
    SUPPLY_GROUP = "SUPPLY_GROUP"


# Status a folder starts in when the caller does not pick one
DEFAULT_FOLDER_STATUS = FolderStatus.ARCHIVED


def _in_list(column: str, enum_cls: type) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    role = Column(String(20), default=UserRole.USER.value, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_list("role", UserRole), name="ck_users_role"),
    )

    def public_profile(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "username": self.username}

    def to_dict(self) -> Dict[str, Any]:
        """Serialized user; the password hash is never included."""
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "role": self.role,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


# ---------------------------------------------------------------------------
# 2. Folders
# ---------------------------------------------------------------------------

class Folder(Base, TimestampMixin):
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    qr_token = Column(String(100), unique=True, nullable=False, index=True)
    status = Column(String(20), default=DEFAULT_FOLDER_STATUS.value, nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)

    created_by = relationship("User", lazy="joined")
    documents = relationship(
        "Document",
        back_populates="folder",
        order_by=lambda: [Document.created_at.desc(), Document.id.desc()],
        passive_deletes="all",
    )
    status_logs = relationship(
        "FolderStatusLog",
        back_populates="folder",
        order_by=lambda: [FolderStatusLog.started_at.desc(), FolderStatusLog.id.desc()],
        passive_deletes="all",
    )

    __table_args__ = (
        CheckConstraint(_in_list("status", FolderStatus), name="ck_folders_status"),
    )

    # Optimistic concurrency: every UPDATE checks and bumps `version`
    __mapper_args__ = {"version_id_col": version}

    def summary(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title}

    def to_dict(self, include_documents: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "qrToken": self.qr_token,
            "status": self.status,
            "createdById": self.created_by_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": self.created_by.public_profile() if self.created_by else None,
            "statusLogs": [entry.to_dict() for entry in self.status_logs],
        }
        if include_documents:
            data["documents"] = [doc.summary() for doc in self.documents]
        return data

    def __repr__(self) -> str:
        return f"<Folder(id={self.id}, title='{self.title}', status='{self.status}')>"


# ---------------------------------------------------------------------------
# 3. Documents
# ---------------------------------------------------------------------------

class Document(Base, TimestampMixin):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    doc_number = Column(String(100), nullable=False, index=True)
    agency_type = Column(String(200), nullable=False, default="")
    department = Column(String(200), nullable=True)
    subject = Column(String(500), nullable=False)
    sender = Column(String(200), nullable=True)
    status = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    folder_id = Column(Integer, ForeignKey("folders.id"), nullable=True, index=True)

    created_by = relationship("User", foreign_keys=[created_by_id], lazy="joined")
    receiver = relationship("User", foreign_keys=[receiver_id], lazy="joined")
    folder = relationship("Folder", back_populates="documents")

    def summary(self) -> Dict[str, Any]:
        return {"id": self.id, "docNumber": self.doc_number, "subject": self.subject}

    @staticmethod
    def _person(user: Optional[User]) -> Optional[Dict[str, Any]]:
        if user is None:
            return None
        return {"id": user.id, "name": user.name, "username": user.username, "role": user.role}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "docNumber": self.doc_number,
            "agencyType": self.agency_type,
            "department": self.department,
            "subject": self.subject,
            "sender": self.sender,
            "status": self.status,
            "description": self.description,
            "createdById": self.created_by_id,
            "receiverId": self.receiver_id,
            "folderId": self.folder_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": self._person(self.created_by),
            "receiver": self._person(self.receiver),
            "folder": self.folder.summary() if self.folder else None,
        }

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, doc_number='{self.doc_number}')>"


# ---------------------------------------------------------------------------
# 4. Folder Status Log
# ---------------------------------------------------------------------------

class FolderStatusLog(Base):
    __tablename__ = "folder_status_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_id = Column(Integer, ForeignKey("folders.id"), nullable=False)
    status = Column(String(20), nullable=False)
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    department = Column(String(50), nullable=True)
    remark = Column(Text, nullable=True)

    folder = relationship("Folder", back_populates="status_logs")
    user = relationship("User", lazy="joined")

    __table_args__ = (
        CheckConstraint(_in_list("status", FolderStatus), name="ck_fsl_status"),
        CheckConstraint(
            "department IS NULL OR " + _in_list("department", Department),
            name="ck_fsl_department",
        ),
        Index("idx_fsl_folder_started", "folder_id", "started_at"),
        Index(
            "uq_fsl_one_open_per_folder",
            "folder_id",
            unique=True,
            sqlite_where=text("ended_at IS NULL"),
            postgresql_where=text("ended_at IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "folderId": self.folder_id,
            "status": self.status,
            "startedAt": _iso(self.started_at),
            "endedAt": _iso(self.ended_at),
            "userId": self.user_id,
            "department": self.department,
            "remark": self.remark,
            "user": self.user.public_profile() if self.user else None,
        }

    def __repr__(self) -> str:
        return (
            f"<FolderStatusLog(id={self.id}, folder_id={self.folder_id}, "
            f"status='{self.status}', open={self.is_open})>"
        )


__all__: List[str] = [
    "Department",
    "DEFAULT_FOLDER_STATUS",
    "Document",
    "Folder",
    "FolderStatus",
    "FolderStatusLog",
    "User",
    "UserRole",
]
