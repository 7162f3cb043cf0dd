"""Document records."""

from doctrack.documents.service import DocumentService  # noqa: F401

__all__ = ["DocumentService"]
