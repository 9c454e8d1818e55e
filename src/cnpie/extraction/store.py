"""Read-only document stores the loader resolves references against."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import unquote, urlsplit

import httpx

from cnpie.extraction.errors import DocumentError, ErrorKind

logger = logging.getLogger(__name__)

_PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/"


@runtime_checkable
class DocumentStore(Protocol):
    """Anything that can turn a reference into raw bytes."""

    def read(self, reference: str) -> bytes:
        """Return the stored payload or raise ``DocumentError``."""


class LocalDocumentStore:
    """Serve documents from a directory tree; references are relative paths."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def read(self, reference: str) -> bytes:
        target = (self._root / reference).resolve()
        if not target.is_relative_to(self._root):
            raise DocumentError(ErrorKind.NOT_FOUND, f"Reference escapes store root: {reference}")
        if not target.is_file():
            raise DocumentError(ErrorKind.NOT_FOUND, f"Document not found: {reference}")
        try:
            return target.read_bytes()
        except OSError as exc:
            raise DocumentError(ErrorKind.NOT_FOUND, f"Failed to read document: {exc}") from exc


def split_storage_reference(reference: str) -> tuple[str, str]:
    """Return ``(bucket, object_path)`` for a public URL or ``bucket/path`` reference."""

    cleaned = reference.strip()
    if cleaned.startswith(("http://", "https://")):
        path = urlsplit(cleaned).path
        marker_at = path.find(_PUBLIC_OBJECT_MARKER)
        if marker_at == -1:
            raise DocumentError(ErrorKind.NOT_FOUND, f"Invalid document URL format: {reference}")
        cleaned = path[marker_at + len(_PUBLIC_OBJECT_MARKER):]

    bucket, _, object_path = unquote(cleaned).lstrip("/").partition("/")
    if not bucket or not object_path:
        raise DocumentError(ErrorKind.NOT_FOUND, f"Reference has no bucket/path: {reference}")
    return bucket, object_path


class SupabaseStorageStore:
    """Download objects from Supabase Storage with the service-role key."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        timeout_seconds: float = 20.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        if not service_key:
            raise ValueError("service_key cannot be empty")

        self._client = client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SupabaseStorageStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def read(self, reference: str) -> bytes:
        bucket, object_path = split_storage_reference(reference)
        logger.info("Downloading from bucket=%s path=%s", bucket, object_path)

        try:
            resp = self._client.get(f"/storage/v1/object/{bucket}/{object_path}")
        except httpx.TimeoutException as exc:
            raise DocumentError(ErrorKind.TIMEOUT, f"Storage read timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise DocumentError(ErrorKind.TRANSPORT_FAILURE, f"Storage transport error: {exc}") from exc

        # Storage answers 400 for missing objects on some deployments.
        if resp.status_code in (400, 404):
            raise DocumentError(ErrorKind.NOT_FOUND, f"Document not found: {bucket}/{object_path}")
        if resp.status_code != 200:
            raise DocumentError(
                ErrorKind.TRANSPORT_FAILURE,
                f"Storage returned HTTP {resp.status_code} for {bucket}/{object_path}",
            )
        return resp.content
