"""Tests for doctrack.documents.service — DocumentService CRUD."""

import pytest
from sqlalchemy import func, select

from doctrack.db.models import Document
from doctrack.documents.service import DocumentService, build_document
from doctrack.engine.errors import NotFoundError, ValidationError
from doctrack.folders.service import FolderService


@pytest.fixture
def documents(session):
    return DocumentService(session)


@pytest.fixture
def folder(session, admin):
    return FolderService(session).create_folder({"title": "Inbox", "created_by_id": admin.id})


def _create(documents, admin, **fields):
    data = {"doc_number": "DOC-1", "subject": "Budget request", "created_by_id": admin.id}
    data.update(fields)
    return documents.create_document(data)


class TestBuildDocument:

    def test_unsaved_with_defaults(self, session, admin):
        doc = build_document(session, {"doc_number": " D-9 ", "subject": "Memo"}, admin.id)
        assert doc.id is None
        assert doc.doc_number == "D-9"
        assert doc.agency_type == ""
        assert doc.folder_id is None
        assert doc not in session

    def test_requires_number_and_subject(self, session, admin):
        with pytest.raises(ValidationError, match="docNumber and subject are required"):
            build_document(session, {"doc_number": "D-1"}, admin.id)


class TestCreateDocument:

    def test_minimal(self, documents, admin):
        doc = _create(documents, admin)
        assert doc.id is not None
        assert doc.created_by_id == admin.id
        assert doc.receiver_id is None
        assert doc.folder_id is None
        assert doc.agency_type == ""

    def test_all_fields(self, documents, admin, u1, folder):
        doc = _create(
            documents, admin,
            agency_type="Ministry", department="Academic Affairs", sender="Registrar",
            status="pending", description="Annual budget", receiver_id=str(u1.id), folder_id=folder.id,
        )
        d = doc.to_dict()
        assert d["agencyType"] == "Ministry"
        assert d["department"] == "Academic Affairs"
        assert d["receiverId"] == u1.id
        assert d["receiver"]["name"] == "Somchai"
        assert d["folder"] == {"id": folder.id, "title": "Inbox"}

    @pytest.mark.parametrize("missing", ["doc_number", "subject", "created_by_id"])
    def test_required_fields(self, documents, admin, missing):
        data = {"doc_number": "DOC-1", "subject": "S", "created_by_id": admin.id}
        del data[missing]
        with pytest.raises(ValidationError, match="docNumber, subject and createdById are required"):
            documents.create_document(data)

    def test_invalid_id(self, documents, admin):
        with pytest.raises(ValidationError, match="receiverId must be a positive integer"):
            _create(documents, admin, receiver_id="abc")

    @pytest.mark.parametrize("field,wire", [
        ("receiver_id", "receiverId"),
        ("folder_id", "folderId"),
    ])
    def test_unknown_reference(self, documents, session, admin, field, wire):
        with pytest.raises(ValidationError, match=f"{wire} refers to"):
            _create(documents, admin, **{field: 999})
        assert session.scalar(select(func.count()).select_from(Document)) == 0

    def test_unknown_creator(self, documents, admin):
        with pytest.raises(ValidationError, match="createdById refers to"):
            _create(documents, admin, created_by_id=999)

    def test_duplicate_numbers_allowed(self, documents, admin):
        _create(documents, admin)
        _create(documents, admin)
        assert len(documents.list_documents()) == 2


class TestQueries:

    def test_list_newest_first(self, documents, admin):
        first = _create(documents, admin, doc_number="A")
        second = _create(documents, admin, doc_number="B")
        assert [d.id for d in documents.list_documents()] == [second.id, first.id]

    def test_list_by_folder(self, documents, admin, folder):
        filed = _create(documents, admin, folder_id=folder.id)
        _create(documents, admin)
        assert [d.id for d in documents.list_documents(folder_id=folder.id)] == [filed.id]
        assert [d.id for d in documents.list_by_folder(str(folder.id))] == [filed.id]

    def test_list_by_folder_requires_id(self, documents):
        with pytest.raises(ValidationError, match="folderId is required"):
            documents.list_by_folder(None)
        with pytest.raises(ValidationError, match="positive integer"):
            documents.list_by_folder("x")

    def test_get_missing(self, documents):
        with pytest.raises(NotFoundError, match="Document not found"):
            documents.get_document(1)


class TestUpdateDocument:

    def test_partial_update(self, documents, admin):
        doc = _create(documents, admin, sender="Registrar")
        updated = documents.update_document(doc.id, {"subject": "Revised"})
        assert updated.subject == "Revised"
        assert updated.sender == "Registrar"
        assert updated.doc_number == "DOC-1"

    def test_move_between_folders_and_receivers(self, documents, admin, u1, u2, folder):
        doc = _create(documents, admin, receiver_id=u1.id)
        assert doc.receiver.username == "somchai"
        updated = documents.update_document(doc.id, {"receiver_id": u2.id, "folder_id": folder.id})
        assert updated.receiver.username == "sumitra"
        assert updated.folder.title == "Inbox"

    def test_clear_references(self, documents, admin, u1, folder):
        doc = _create(documents, admin, receiver_id=u1.id, folder_id=folder.id)
        updated = documents.update_document(doc.id, {"receiver_id": None, "folder_id": ""})
        assert updated.receiver_id is None
        assert updated.folder_id is None
        assert updated.to_dict()["folder"] is None

    def test_blank_required_field(self, documents, admin):
        doc = _create(documents, admin)
        with pytest.raises(ValidationError, match="subject cannot be blank"):
            documents.update_document(doc.id, {"subject": " "})

    def test_no_fields(self, documents, admin):
        doc = _create(documents, admin)
        with pytest.raises(ValidationError, match="No valid fields"):
            documents.update_document(doc.id, {"created_by_id": 5})

    def test_unknown_folder(self, documents, session, admin):
        doc = _create(documents, admin)
        with pytest.raises(ValidationError, match="folderId refers to"):
            documents.update_document(doc.id, {"folder_id": 404})
        session.expire_all()
        assert session.get(Document, doc.id).folder_id is None

    def test_missing(self, documents):
        with pytest.raises(NotFoundError):
            documents.update_document(3, {"subject": "x"})


class TestDeleteDocument:

    def test_delete(self, documents, session, admin):
        doc = _create(documents, admin)
        doc_id = doc.id
        documents.delete_document(doc_id)
        assert session.get(Document, doc_id) is None

    def test_missing(self, documents):
        with pytest.raises(NotFoundError):
            documents.delete_document(77)
