"""Object storage adapters for attempt recordings."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Protocol

import httpx

from ..errors import UploadError
from ..settings import APISettings

LOGGER = logging.getLogger("pitchside.api.storage")

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_SAFE_EXTENSION = re.compile(r"^[a-z0-9]{1,8}$")

_EXTENSIONS = {
    "audio/flac": "flac",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/aac": "aac",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
}


class ObjectStorage(Protocol):
    name: str

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        ...


def is_safe_segment(value: str | None) -> bool:
    return bool(value) and _SAFE_SEGMENT.match(value) is not None


def safe_segment(value: str | None) -> str:
    """Map free-form text (player ids, namespaces) onto a single path segment."""
    return _UNSAFE_CHARS.sub("_", (value or "").strip())[:64]


def object_path(namespace: str, attempt_id: str, ext: str) -> str:
    if not is_safe_segment(attempt_id):
        raise UploadError(f"Invalid attempt id for storage: {attempt_id!r}")
    ext = (ext or "bin").lstrip(".").lower()
    if not _SAFE_EXTENSION.match(ext):
        ext = "bin"
    namespace = safe_segment(namespace)
    return f"{namespace}/{attempt_id}.{ext}" if namespace else f"{attempt_id}.{ext}"


def guess_extension(filename: Optional[str], content_type: Optional[str]) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower()
    base_type = (content_type or "").split(";", 1)[0].strip().lower()
    return _EXTENSIONS.get(base_type, "bin")


class LocalObjectStorage:
    """Writes objects below ``root``; URLs use ``public_base_url`` when configured."""

    name = "local"

    def __init__(self, root: Path | str, public_base_url: str | None = None) -> None:
        self.root = Path(root)
        self.public_base_url = (public_base_url or "").rstrip("/")

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if not data:
            raise UploadError("Refusing to store an empty recording")
        root = self.root.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise UploadError(f"Object path escapes storage root: {path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise UploadError(f"Local storage write failed: {exc}") from exc
        LOGGER.info("Stored %s (%d bytes, %s)", path, len(data), content_type)
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return target.resolve().as_uri()


class SupabaseObjectStorage:
    """Supabase Storage over its REST API. Uploads upsert so retries reuse the same object."""

    name = "supabase"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if not data:
            raise UploadError("Refusing to store an empty recording")
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "true",
        }
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        try:
            resp = await self._client.post(url, content=data, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UploadError(
                f"Storage upload failed: {exc.response.status_code} {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Storage upload failed: {exc}") from exc
        LOGGER.info("Uploaded %s to bucket %s", path, self.bucket)
        return self.public_url(path)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_storage(settings: APISettings) -> ObjectStorage:
    if settings.storage_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise RuntimeError("STORAGE_BACKEND=supabase but SUPABASE_URL/SUPABASE_SERVICE_KEY are missing")
        return SupabaseObjectStorage(
            settings.supabase_url,
            settings.supabase_service_key,
            settings.supabase_bucket,
            timeout=settings.storage_timeout_sec,
        )
    return LocalObjectStorage(Path(settings.data_dir) / "audio", settings.public_audio_base_url)


__all__ = [
    "LocalObjectStorage",
    "ObjectStorage",
    "SupabaseObjectStorage",
    "build_storage",
    "guess_extension",
    "object_path",
]
