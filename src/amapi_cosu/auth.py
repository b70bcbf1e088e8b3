from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account


OAUTH_SCOPE = "https://www.googleapis.com/auth/androidmanagement"


class CredentialsError(RuntimeError):
    pass


def load_credentials(path: str | Path) -> service_account.Credentials:
    """Load a service-account JSON key scoped to the Android Management API."""
    p = Path(path).expanduser()
    if not p.is_file():
        raise CredentialsError(f"Credentials file not found: {p}")
    try:
        info = json.loads(p.read_text(encoding="utf-8"))
        if not isinstance(info, dict):
            raise ValueError("expected a JSON object")
        return service_account.Credentials.from_service_account_info(
            info, scopes=[OAUTH_SCOPE]
        )
    except (ValueError, OSError) as e:
        raise CredentialsError(f"Invalid service account file {p}: {e}") from e


class GoogleCredentialsAuth(httpx.Auth):
    """Attach a bearer token from google-auth credentials, refreshing when stale."""

    def __init__(self, credentials: Any, request_factory: Callable[[], Any] = Request):
        self._credentials = credentials
        self._request_factory = request_factory

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if not self._credentials.valid:
            try:
                self._credentials.refresh(self._request_factory())
            except GoogleAuthError as e:
                raise CredentialsError(f"Token refresh failed: {e}") from e
        request.headers["Authorization"] = f"Bearer {self._credentials.token}"
        yield request
