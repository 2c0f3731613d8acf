# backend/app/database.py

from typing import Any, Dict, Optional

import requests

from .credentials import Credential
from .errors import looks_like_auth_failure
from .logging_config import log

PERMISSION_DENIED = "42501"


class BackendError(Exception):
    """Failure reported by the hosted backend (database or auth API)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        self.hint = hint

    @property
    def is_auth_failure(self) -> bool:
        if self.status_code == 401 or self.code == "AUTH_INVALID_CREDENTIALS":
            return True
        return looks_like_auth_failure(self.message)

    @property
    def is_permission_denied(self) -> bool:
        return self.code == PERMISSION_DENIED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "hint": self.hint,
        }


def _error_from_response(resp: requests.Response) -> BackendError:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return BackendError(resp.text or resp.reason or "Backend request failed", status_code=resp.status_code)

    code = body.get("code")
    if code is None and isinstance(body.get("error"), str):
        code = body["error"]
    return BackendError(
        body.get("message") or body.get("error") or "Backend request failed",
        status_code=body.get("statusCode") or resp.status_code,
        code=str(code) if code is not None else None,
        details=body.get("details"),
        hint=body.get("hint"),
    )


class BackendClient:
    """
    Database + auth access on the hosted backend's REST API, authenticated
    with whatever credential the request resolved to. Row-level security
    on the backend decides what that credential may write.
    """

    def __init__(self, base_url: str, credential: Credential, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.credential = credential
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credential.token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Could not reach backend: {e}") from e

        if not resp.ok:
            raise _error_from_response(resp)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError("Backend returned a non-JSON body", status_code=resp.status_code,
                               details=resp.text[:500]) from e

    @staticmethod
    def _first_row(data: Any) -> Optional[Dict[str, Any]]:
        if isinstance(data, list):
            return data[0] if data else None
        if isinstance(data, dict):
            return data
        return None

    def insert(self, table: str, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self._request("POST", f"/api/database/records/{table}", json=[record])
        return self._first_row(data)

    def update(self, table: str, record_id: Any, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        data = self._request(
            "PATCH",
            f"/api/database/records/{table}",
            params={"id": f"eq.{record_id}"},
            json=patch,
        )
        return self._first_row(data)

    def current_user_id(self) -> Optional[str]:
        """Id of the user behind a user token, or None for anything else."""
        if not self.credential.is_user:
            return None
        try:
            data = self._request("GET", "/api/auth/sessions/current")
        except BackendError as e:
            log.info("Anonymous analysis - no user ID (%s)", e.message)
            return None
        user = (data or {}).get("user") if isinstance(data, dict) else None
        if isinstance(user, dict) and user.get("id"):
            return str(user["id"])
        return None
