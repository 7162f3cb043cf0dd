"""
DocTrack API client on httpx.

Usage:
    client = DocTrackClient("http://localhost:5000", store=SessionStore("~/.doctrack.json"))
    client.login("admin", "123456")
    folder = client.create_folder("Budget 2025")
    client.update_folder_status(folder["id"], "SENT", department="SECRETARIAT")

An authenticated call answered with 403 (expired access token) triggers one
refresh and one replay of the call. Any other non-2xx response raises
ClientError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic.alias_generators import to_camel

from doctrack.client.session import SessionStore

logger = logging.getLogger("doctrack.client")


class ClientError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str, body: Optional[Any] = None):
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(f"{status_code}: {message}")


def _wire(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {to_camel(key): value for key, value in fields.items()}


class DocTrackClient:

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        store: Optional[SessionStore] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.store = store or SessionStore()
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "DocTrackClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- Transport ----------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
        replay: bool = True,
    ) -> Any:
        headers = {}
        if auth and self.store.token:
            headers["Authorization"] = f"Bearer {self.store.token}"

        response = self._http.request(method, path, json=json, params=params, headers=headers)

        if response.status_code == 403 and auth and replay and self.store.refresh_token:
            logger.debug("Access token rejected on %s %s; refreshing", method, path)
            self.refresh()
            return self._request(method, path, json=json, params=params, auth=auth, replay=False)

        if response.status_code >= 400:
            raise self._error(response)
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    @staticmethod
    def _error(response: httpx.Response) -> ClientError:
        try:
            body = response.json()
        except ValueError:
            return ClientError(response.status_code, response.text or response.reason_phrase)
        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("detail")
        return ClientError(response.status_code, str(message or response.reason_phrase), body)

    def _current_user_id(self) -> int:
        if not self.store.user:
            raise ClientError(401, "Not logged in")
        return self.store.user["id"]

    # -- Auth ---------------------------------------------------------------

    def login(self, username: str, password: str) -> Dict[str, Any]:
        data = self._request(
            "POST", "/api/login", json={"username": username, "password": password}, auth=False,
        )
        self.store.set(data["token"], data["refreshToken"], data["user"])
        return data["user"]

    def logout(self) -> None:
        self.store.clear()

    def register(self, name: str, username: str, password: str, role: str = "user") -> Dict[str, Any]:
        return self._request(
            "POST",
            "/api/register",
            json={"name": name, "username": username, "password": password, "role": role},
            auth=False,
        )

    def check_token(self) -> Dict[str, Any]:
        return self._request("GET", "/api/check-token")

    def refresh(self) -> str:
        """Exchange the stored refresh token for a new access token."""
        if not self.store.refresh_token:
            raise ClientError(401, "No refresh token available")
        try:
            data = self._request(
                "POST", "/api/refresh-token",
                json={"refreshToken": self.store.refresh_token}, auth=False,
            )
        except ClientError:
            self.store.clear()
            raise
        self.store.update_token(data["token"])
        return data["token"]

    # -- Folders ------------------------------------------------------------

    def list_folders(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return self._request("GET", "/api/folders", params=params)

    def get_folder(self, folder_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/folders/{folder_id}")

    def get_folder_by_token(self, qr_token: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/folders/by-token/{qr_token}")

    def folder_qr(self, folder_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/folders/{folder_id}/qr")

    def create_folder(self, title: str, **fields: Any) -> Dict[str, Any]:
        """Create a folder owned by the logged-in user."""
        body = _wire(fields)
        body["title"] = title
        body.setdefault("createdById", self._current_user_id())
        return self._request("POST", "/api/folders", json=body)

    def update_folder(self, folder_id: int, **changes: Any) -> Dict[str, Any]:
        return self._request("PUT", f"/api/folders/{folder_id}", json=_wire(changes))

    def update_folder_status(
        self,
        folder_id: int,
        status: str,
        department: Optional[str] = None,
        remark: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Move a folder to ``status`` with the logged-in user as the actor."""
        return self.update_folder(
            folder_id,
            status=status,
            user_id=self._current_user_id(),
            department=department,
            remark=remark,
        )

    def delete_folder(self, folder_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/folders/{folder_id}")

    # -- Documents ----------------------------------------------------------

    def list_documents(self, folder_id: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"folderId": folder_id} if folder_id is not None else None
        return self._request("GET", "/api/documents", params=params)

    def documents_by_folder(self, folder_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/documents/by-folder", params={"folderId": folder_id})

    def get_document(self, document_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/documents/{document_id}")

    def create_document(self, doc_number: str, subject: str, **fields: Any) -> Dict[str, Any]:
        body = _wire(fields)
        body.update({"docNumber": doc_number, "subject": subject})
        body.setdefault("createdById", self._current_user_id())
        return self._request("POST", "/api/documents", json=body)

    def create_folder_with_documents(
        self, folder_title: str, documents: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        body = {
            "folderTitle": folder_title,
            "createdById": self._current_user_id(),
            "documents": [_wire(doc) for doc in documents],
        }
        return self._request("POST", "/api/documents/folders-with-documents", json=body)

    def update_document(self, document_id: int, **changes: Any) -> Dict[str, Any]:
        return self._request("PUT", f"/api/documents/{document_id}", json=_wire(changes))

    def delete_document(self, document_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/documents/{document_id}")

    # -- Users --------------------------------------------------------------

    def list_users(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/users")

    def get_user(self, user_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/users/{user_id}")

    def create_user(self, name: str, username: str, password: str, role: str = "user") -> Dict[str, Any]:
        return self._request(
            "POST", "/api/users",
            json={"name": name, "username": username, "password": password, "role": role},
        )

    def update_user(self, user_id: int, **changes: Any) -> Dict[str, Any]:
        return self._request("PUT", f"/api/users/{user_id}", json=_wire(changes))

    def delete_user(self, user_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/users/{user_id}")
