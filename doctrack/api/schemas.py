"""
Request bodies for the DocTrack REST API.

Wire names are camelCase (``docNumber``, ``createdById``); the models also
accept snake_case. Every field is optional at this layer so that missing
required values are reported by the services with their own messages.
Routes pass ``model_dump(exclude_unset=True)`` on, which keeps "not sent"
distinct from "sent as null" for partial updates.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Ids arrive as numbers or numeric strings; the services parse them.
IdValue = Optional[Union[int, str]]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(WireModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(WireModel):
    username: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(WireModel):
    refresh_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserCreate(WireModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class UserUpdate(UserCreate):
    pass


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentFields(WireModel):
    doc_number: Optional[str] = None
    agency_type: Optional[str] = None
    department: Optional[str] = None
    subject: Optional[str] = None
    sender: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    receiver_id: IdValue = None


class DocumentCreate(DocumentFields):
    created_by_id: IdValue = None
    folder_id: IdValue = None


class DocumentUpdate(DocumentFields):
    folder_id: IdValue = None


class FolderWithDocumentsCreate(WireModel):
    folder_title: Optional[str] = None
    created_by_id: IdValue = None
    department: Optional[str] = None
    remark: Optional[str] = None
    documents: Optional[List[DocumentFields]] = None

    def changes(self) -> Dict[str, Any]:
        data = super().changes()
        if self.documents is not None:
            data["documents"] = [doc.changes() for doc in self.documents]
        return data


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------

class FolderCreate(WireModel):
    title: Optional[str] = None
    created_by_id: IdValue = None
    qr_token: Optional[str] = None
    status: Optional[str] = None
    department: Optional[str] = None
    remark: Optional[str] = None


class FolderUpdate(WireModel):
    title: Optional[str] = None
    qr_token: Optional[str] = None
    status: Optional[str] = None
    user_id: IdValue = Field(default=None, description="Acting user, required when status changes")
    department: Optional[str] = None
    remark: Optional[str] = None
