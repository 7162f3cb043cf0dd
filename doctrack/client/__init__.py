"""Python client for the DocTrack API."""

from doctrack.client.api import ClientError, DocTrackClient  # noqa: F401
from doctrack.client.session import SessionStore  # noqa: F401

__all__ = ["ClientError", "DocTrackClient", "SessionStore"]
