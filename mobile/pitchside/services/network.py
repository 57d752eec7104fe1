"""HTTP client helpers for the Pitchside attempt API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..store.settings_store import SettingsStore


class ApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, step: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.step = step

    @property
    def retryable(self) -> bool:
        """Client errors (bad request, unauthorized) will fail again unchanged."""
        return self.status_code is None or self.status_code >= 500


class ApiClient:
    def __init__(self, settings: SettingsStore, *, timeout: float = 60.0, client: Optional[httpx.Client] = None) -> None:
        self.settings_store = settings
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        api_key = self.settings_store.get().api_key
        if not api_key:
            raise ApiError("API key missing")
        return {"X-API-Key": api_key}

    def _url(self, path: str) -> str:
        base = self.settings_store.get().server_url.rstrip("/")
        if not base:
            raise ApiError("Server URL missing")
        return f"{base}{path}"

    def test_connection(self) -> bool:
        try:
            resp = self._client.get(self._url("/healthz"), headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(str(exc)) from exc
        return resp.status_code == 200

    def submit_attempt(
        self,
        attempt_id: str,
        audio: bytes,
        *,
        filename: str,
        mime_type: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        payload = {key: str(value) for key, value in fields.items() if value is not None}
        payload["attempt_id"] = attempt_id
        files = {"file": (filename, audio, mime_type)}
        try:
            resp = self._client.post(
                self._url("/v1/attempts"),
                headers=self._headers(),
                files=files,
                data=payload,
            )
        except httpx.HTTPError as exc:
            raise ApiError(f"Network error: {exc}", step="network") from exc
        if resp.status_code == 401:
            raise ApiError("Unauthorized: check API key", status_code=401)
        if resp.is_error:
            raise self._error_from(resp)
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(f"Invalid response: {exc}", status_code=resp.status_code) from exc

    def fetch_attempt(self, attempt_id: str) -> Dict[str, Any]:
        try:
            resp = self._client.get(self._url(f"/v1/attempts/{attempt_id}"), headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(f"Network error: {exc}", step="network") from exc
        if resp.is_error:
            raise self._error_from(resp)
        return resp.json()

    @staticmethod
    def _error_from(resp: httpx.Response) -> ApiError:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("error") or body.get("detail") or f"HTTP {resp.status_code}"
        return ApiError(str(message), status_code=resp.status_code, step=body.get("step"))

    def close(self) -> None:
        self._client.close()
