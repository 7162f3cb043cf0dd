"""
Client-side session state: the tokens and user profile of whoever is
logged in.

The store has an explicit lifecycle (``set`` at login, ``update_token`` on
refresh, ``clear`` at logout) and notifies subscribers on every change.
With ``path=`` it persists to a JSON file so a later process picks the
session back up.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("doctrack.client.session")

Listener = Callable[["SessionStore"], None]


class SessionStore:
    """Holds the access token, refresh token and user profile."""

    def __init__(self, path: Optional[str] = None):
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self.token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.user: Optional[Dict[str, Any]] = None
        if self._path is not None:
            self._load()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def set(self, token: str, refresh_token: str, user: Dict[str, Any]) -> None:
        with self._lock:
            self.token = token
            self.refresh_token = refresh_token
            self.user = dict(user)
            self._save()
        self._notify()

    def update_token(self, token: str) -> None:
        with self._lock:
            self.token = token
            self._save()
        self._notify()

    def clear(self) -> None:
        with self._lock:
            self.token = None
            self.refresh_token = None
            self.user = None
            if self._path is not None and self._path.exists():
                self._path.unlink()
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "refreshToken": self.refresh_token, "user": self.user}

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self.to_dict()), encoding="utf-8")

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, e)
            return
        self.token = data.get("token")
        self.refresh_token = data.get("refreshToken")
        self.user = data.get("user")
