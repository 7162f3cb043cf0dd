"""
Tests for doctrack.folders.service — folder lifecycle and status history.

Covers:
  1. Creation seeds exactly one open status interval
  2. Status transitions close / open intervals atomically
  3. Same-status updates leave history untouched
  4. Validation failures leave no partial writes
  5. Concurrency conflicts surface as ConflictError
  6. Deletion removes documents and history
"""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import func, select

from doctrack.db.base import Base, EngineRegistry
from doctrack.db.models import Document, Folder, FolderStatusLog, User
from doctrack.engine.errors import ConflictError, NotFoundError, ValidationError
from doctrack.folders.service import FolderService


def _open_logs(session, folder_id):
    return session.scalars(
        select(FolderStatusLog).where(
            FolderStatusLog.folder_id == folder_id, FolderStatusLog.ended_at.is_(None),
        )
    ).all()


def _log_count(session, folder_id):
    return session.scalar(
        select(func.count()).select_from(FolderStatusLog).where(FolderStatusLog.folder_id == folder_id)
    )


@pytest.fixture
def folders(session):
    return FolderService(session, frontend_url="https://doctrack.example/")


@pytest.fixture
def folder(folders, admin):
    return folders.create_folder({"title": "Budget 2025", "created_by_id": admin.id})


# ===========================================================================
# 1. Create
# ===========================================================================

class TestCreateFolder:

    def test_default_status_and_opening_log(self, folder, admin):
        assert folder.status == "ARCHIVED"
        logs = folder.status_logs
        assert len(logs) == 1
        assert logs[0].status == "ARCHIVED"
        assert logs[0].ended_at is None
        assert logs[0].user_id == admin.id

    def test_explicit_status_seeds_matching_log(self, folders, session, admin):
        folder = folders.create_folder({
            "title": "Outgoing", "created_by_id": admin.id, "status": "SENT",
            "department": "FINANCE_GROUP", "remark": "first",
        })
        logs = _open_logs(session, folder.id)
        assert len(logs) == 1
        assert logs[0].status == "SENT"
        assert logs[0].department == "FINANCE_GROUP"
        assert logs[0].remark == "first"

    def test_generated_qr_token_is_uuid(self, folder):
        assert str(uuid.UUID(folder.qr_token)) == folder.qr_token

    def test_explicit_qr_token(self, folders, admin):
        folder = folders.create_folder({"title": "T", "created_by_id": admin.id, "qr_token": "QR-42"})
        assert folder.qr_token == "QR-42"

    def test_created_by_id_as_string(self, folders, admin):
        folder = folders.create_folder({"title": "T", "created_by_id": str(admin.id)})
        assert folder.created_by_id == admin.id

    def test_duplicate_qr_token(self, folders, session, admin):
        folders.create_folder({"title": "A", "created_by_id": admin.id, "qr_token": "QR-1"})
        with pytest.raises(ConflictError, match="QR token"):
            folders.create_folder({"title": "B", "created_by_id": admin.id, "qr_token": "QR-1"})
        assert session.scalar(select(func.count()).select_from(Folder)) == 1

    @pytest.mark.parametrize("data", [
        {"created_by_id": 1},
        {"title": "  ", "created_by_id": 1},
        {"title": "No creator"},
    ])
    def test_missing_required(self, folders, admin, data):
        with pytest.raises(ValidationError, match="title and createdById are required"):
            folders.create_folder(data)

    def test_unknown_creator(self, folders, session, admin):
        with pytest.raises(ValidationError, match="createdById"):
            folders.create_folder({"title": "T", "created_by_id": 999})
        assert session.scalar(select(func.count()).select_from(Folder)) == 0

    def test_invalid_status(self, folders, admin):
        with pytest.raises(ValidationError, match="Invalid status"):
            folders.create_folder({"title": "T", "created_by_id": admin.id, "status": "LOST"})

    def test_invalid_department(self, folders, admin):
        with pytest.raises(ValidationError, match="Invalid department"):
            folders.create_folder({"title": "T", "created_by_id": admin.id, "department": "Sales"})


class TestCreateWithDocuments:

    def test_folder_documents_and_log(self, folders, session, admin, u1):
        folder = folders.create_with_documents({
            "folder_title": "Incoming mail",
            "created_by_id": admin.id,
            "documents": [
                {"doc_number": "D-1", "subject": "First", "receiver_id": u1.id},
                {"doc_number": "D-2", "subject": "Second", "agency_type": "Ministry"},
            ],
        })
        assert folder.status == "ARCHIVED"
        assert {d.doc_number for d in folder.documents} == {"D-1", "D-2"}
        assert all(d.created_by_id == admin.id for d in folder.documents)
        assert len(_open_logs(session, folder.id)) == 1

    def test_empty_document_list(self, folders, admin):
        folder = folders.create_with_documents({
            "folder_title": "Empty", "created_by_id": admin.id, "documents": [],
        })
        assert folder.documents == []

    def test_invalid_document_rolls_back_everything(self, folders, session, admin):
        with pytest.raises(ValidationError):
            folders.create_with_documents({
                "folder_title": "Broken",
                "created_by_id": admin.id,
                "documents": [{"doc_number": "D-1", "subject": "ok"}, {"doc_number": "D-2"}],
            })
        assert session.scalar(select(func.count()).select_from(Folder)) == 0
        assert session.scalar(select(func.count()).select_from(Document)) == 0

    def test_documents_must_be_list(self, folders, admin):
        with pytest.raises(ValidationError, match="documents must be a list"):
            folders.create_with_documents({"folder_title": "X", "created_by_id": admin.id})


# ===========================================================================
# 2. Status transitions
# ===========================================================================

class TestStatusTransition:

    def test_archived_to_sent_scenario(self, folders, session, folder, u1):
        updated = folders.update_folder(folder.id, {
            "status": "SENT", "user_id": u1.id, "department": "SECRETARIAT", "remark": "dispatched",
        })
        assert updated.status == "SENT"

        history = updated.status_logs
        assert [entry.status for entry in history] == ["SENT", "ARCHIVED"]
        newest, previous = history
        assert newest.ended_at is None
        assert newest.user_id == u1.id
        assert newest.department == "SECRETARIAT"
        assert newest.remark == "dispatched"
        assert previous.ended_at is not None
        assert previous.ended_at == newest.started_at
        assert len(_open_logs(session, folder.id)) == 1

    def test_history_embeds_actor_profile(self, folders, folder, u1):
        updated = folders.update_folder(folder.id, {"status": "SENT", "user_id": u1.id})
        d = updated.to_dict()
        assert d["statusLogs"][0]["user"] == {"id": u1.id, "name": "Somchai", "username": "somchai"}

    def test_chain_keeps_single_open_interval(self, folders, session, folder, u1, u2):
        for status, actor in (("SENT", u1), ("RECEIVED", u2), ("COMPLETED", u1), ("ARCHIVED", u2)):
            folders.update_folder(folder.id, {"status": status, "user_id": actor.id})
            assert len(_open_logs(session, folder.id)) == 1
        assert _log_count(session, folder.id) == 5
        assert [e.status for e in folder.status_logs] == [
            "ARCHIVED", "COMPLETED", "RECEIVED", "SENT", "ARCHIVED",
        ]

    def test_same_status_is_noop_for_history(self, folders, session, folder, u1):
        before = _log_count(session, folder.id)
        updated = folders.update_folder(folder.id, {"status": "ARCHIVED", "user_id": u1.id})
        assert updated.status == "ARCHIVED"
        assert _log_count(session, folder.id) == before
        assert _open_logs(session, folder.id)[0].ended_at is None

    def test_same_status_still_applies_title(self, folders, session, folder):
        updated = folders.update_folder(folder.id, {"status": "ARCHIVED", "title": "Renamed"})
        assert updated.title == "Renamed"
        assert _log_count(session, folder.id) == 1

    def test_title_and_qr_token_only(self, folders, session, folder):
        updated = folders.update_folder(folder.id, {"title": "New title", "qr_token": "QR-NEW"})
        assert updated.title == "New title"
        assert updated.qr_token == "QR-NEW"
        assert updated.status == "ARCHIVED"
        assert _log_count(session, folder.id) == 1

    def test_empty_update_returns_folder(self, folders, folder):
        assert folders.update_folder(folder.id, {}).id == folder.id

    def test_user_id_as_string(self, folders, folder, u1):
        updated = folders.update_folder(folder.id, {"status": "SENT", "user_id": str(u1.id)})
        assert updated.status_logs[0].user_id == u1.id

    def test_version_increments(self, folders, folder, u1):
        start = folder.version
        folders.update_folder(folder.id, {"status": "SENT", "user_id": u1.id})
        assert folder.version == start + 1


class TestTransitionFailures:

    def test_missing_user_rejected_without_mutation(self, folders, session, folder):
        with pytest.raises(ValidationError, match="userId is required"):
            folders.update_folder(folder.id, {"status": "SENT", "title": "Should not stick"})

        session.expire_all()
        reloaded = session.get(Folder, folder.id)
        assert reloaded.status == "ARCHIVED"
        assert reloaded.title == "Budget 2025"
        assert _log_count(session, folder.id) == 1
        assert _open_logs(session, folder.id)[0].status == "ARCHIVED"

    def test_unknown_user(self, folders, session, folder):
        with pytest.raises(ValidationError, match="userId"):
            folders.update_folder(folder.id, {"status": "SENT", "user_id": 999})
        assert _log_count(session, folder.id) == 1

    def test_invalid_status(self, folders, session, folder, u1):
        with pytest.raises(ValidationError, match="Invalid status"):
            folders.update_folder(folder.id, {"status": "LOST", "user_id": u1.id})
        assert _log_count(session, folder.id) == 1

    def test_invalid_department(self, folders, session, folder, u1):
        with pytest.raises(ValidationError, match="Invalid department"):
            folders.update_folder(folder.id, {
                "status": "SENT", "user_id": u1.id, "department": "Front desk",
            })
        session.expire_all()
        assert session.get(Folder, folder.id).status == "ARCHIVED"
        assert _log_count(session, folder.id) == 1

    def test_not_found(self, folders, u1):
        with pytest.raises(NotFoundError):
            folders.update_folder(999, {"status": "SENT", "user_id": u1.id})

    def test_blank_title(self, folders, folder):
        with pytest.raises(ValidationError, match="title cannot be blank"):
            folders.update_folder(folder.id, {"title": "  "})

    def test_duplicate_qr_token(self, folders, admin, folder):
        folders.create_folder({"title": "Other", "created_by_id": admin.id, "qr_token": "QR-TAKEN"})
        with pytest.raises(ConflictError, match="QR token"):
            folders.update_folder(folder.id, {"qr_token": "QR-TAKEN"})

    def test_second_open_interval_is_a_conflict(self, folders, session, folder, u1, monkeypatch):
        # skip closing the current interval so the partial unique index fires
        monkeypatch.setattr(folders, "_close_open_logs", lambda folder_id, ended_at: None)
        with pytest.raises(ConflictError, match="modified by another request"):
            folders.update_folder(folder.id, {"status": "SENT", "user_id": u1.id})
        session.expire_all()
        assert len(_open_logs(session, folder.id)) == 1
        assert session.get(Folder, folder.id).status == "ARCHIVED"


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database, so each session has its own connection."""
    registry = EngineRegistry()
    engine = registry.register("concurrency", f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(engine)
    yield registry.get_session_factory("concurrency")
    registry.dispose()


class TestConcurrentSessions:

    def test_interleaved_transition_is_a_conflict(self, file_sessions, monkeypatch):
        with file_sessions() as setup:
            clerk = User(name="Clerk", username="clerk", password="x", role="user")
            setup.add(clerk)
            setup.commit()
            shared = FolderService(setup).create_folder({"title": "Shared", "created_by_id": clerk.id})
            folder_id, clerk_id = shared.id, clerk.id

        session_a, session_b = file_sessions(), file_sessions()
        service_a = FolderService(session_a)
        lock_folder = service_a._lock_folder

        # session B commits its transition after A has read the folder row
        def lock_then_interleave(fid):
            locked = lock_folder(fid)
            FolderService(session_b).update_folder(fid, {"status": "RECEIVED", "user_id": clerk_id})
            return locked

        monkeypatch.setattr(service_a, "_lock_folder", lock_then_interleave)
        try:
            with pytest.raises(ConflictError, match="modified by another request"):
                service_a.update_folder(folder_id, {"status": "SENT", "user_id": clerk_id})
        finally:
            session_a.close()
            session_b.close()

        with file_sessions() as check:
            folder = check.get(Folder, folder_id)
            open_logs = _open_logs(check, folder_id)
            assert [entry.status for entry in open_logs] == ["RECEIVED"]
            assert folder.status == open_logs[0].status
            assert _log_count(check, folder_id) == 2
            assert folder.version == 2

    def test_sequential_sessions_both_apply(self, file_sessions):
        with file_sessions() as setup:
            clerk = User(name="Clerk", username="clerk", password="x", role="user")
            setup.add(clerk)
            setup.commit()
            shared = FolderService(setup).create_folder({"title": "Shared", "created_by_id": clerk.id})
            folder_id, clerk_id = shared.id, clerk.id

        for status in ("SENT", "RECEIVED"):
            with file_sessions() as s:
                FolderService(s).update_folder(folder_id, {"status": status, "user_id": clerk_id})

        with file_sessions() as check:
            assert [entry.status for entry in _open_logs(check, folder_id)] == ["RECEIVED"]
            assert _log_count(check, folder_id) == 3


# ===========================================================================
# 3. Queries
# ===========================================================================

class TestQueries:

    def test_list_newest_first(self, folders, admin):
        first = folders.create_folder({"title": "First", "created_by_id": admin.id})
        second = folders.create_folder({"title": "Second", "created_by_id": admin.id})
        assert [f.id for f in folders.list_folders()] == [second.id, first.id]

    def test_list_by_status(self, folders, admin, u1):
        a = folders.create_folder({"title": "A", "created_by_id": admin.id})
        folders.create_folder({"title": "B", "created_by_id": admin.id})
        folders.update_folder(a.id, {"status": "COMPLETED", "user_id": u1.id})
        assert [f.id for f in folders.list_folders(status="COMPLETED")] == [a.id]

    def test_list_by_invalid_status(self, folders):
        with pytest.raises(ValidationError):
            folders.list_folders(status="LOST")

    def test_get_missing(self, folders):
        with pytest.raises(NotFoundError, match="Folder not found"):
            folders.get_folder(42)

    def test_get_by_token(self, folders, folder):
        assert folders.get_by_token(folder.qr_token).id == folder.id
        assert folders.find_by_token("nope") is None
        with pytest.raises(NotFoundError):
            folders.get_by_token("nope")

    def test_qr_link(self, folders, folder):
        assert folders.qr_link(folder.id) == {
            "folderId": folder.id,
            "qrToken": folder.qr_token,
            "url": f"https://doctrack.example/qrcode/{folder.id}",
        }


# ===========================================================================
# 4. Delete
# ===========================================================================

class TestDeleteFolder:

    def test_removes_documents_and_history(self, folders, session, admin, u1):
        folder = folders.create_with_documents({
            "folder_title": "Doomed",
            "created_by_id": admin.id,
            "documents": [{"doc_number": "D-1", "subject": "x"}, {"doc_number": "D-2", "subject": "y"}],
        })
        folders.update_folder(folder.id, {"status": "SENT", "user_id": u1.id})
        keeper = folders.create_folder({"title": "Keeper", "created_by_id": admin.id})
        folder_id = folder.id

        folders.delete_folder(folder_id)

        assert session.get(Folder, folder_id) is None
        assert session.scalar(
            select(func.count()).select_from(Document).where(Document.folder_id == folder_id)
        ) == 0
        assert _log_count(session, folder_id) == 0
        assert _log_count(session, keeper.id) == 1

    def test_unfiled_documents_survive(self, folders, session, folder, admin):
        session.add(Document(doc_number="LOOSE", subject="s", created_by_id=admin.id))
        session.commit()
        folders.delete_folder(folder.id)
        assert session.scalar(select(func.count()).select_from(Document)) == 1

    def test_missing(self, folders):
        with pytest.raises(NotFoundError):
            folders.delete_folder(404)
