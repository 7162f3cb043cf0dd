"""
DocTrack — Folder and document tracking service.

Folders are addressed by QR code, move through SENT / RECEIVED / COMPLETED /
ARCHIVED, and keep an interval history of every status they held.
"""

__version__ = "1.0.0"
__all__ = ["api", "client", "db", "documents", "engine", "folders", "users"]
