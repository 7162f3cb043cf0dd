"""Folders and their status history."""

from doctrack.folders.service import FolderService  # noqa: F401

__all__ = ["FolderService"]
