import logging
import secrets
import time
from pathlib import PurePosixPath
from urllib.parse import quote, unquote, urlparse

import httpx

from .errors import StorageError, UploadError

logger = logging.getLogger(__name__)

STORAGE_TIMEOUT = 30.0  # seconds


def object_key(user_id: str, file_name: str) -> str:
    """``<user>/<epoch ms>-<random>.<ext>``, unique per upload."""
    suffix = PurePosixPath(file_name or "").suffix.lower()
    return f"{user_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}{suffix}"


class SupabaseStorage:
    """Minimal Supabase Storage REST client for one public bucket."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        bucket: str = "resumes",
    ):
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_key}", "apikey": api_key}
        self.bucket = bucket

    def public_url(self, key: str) -> str:
        return (
            f"{self._base_url}/storage/v1/object/public/{self.bucket}/{quote(key)}"
        )

    def path_from_url(self, file_url: str) -> str:
        parts = urlparse(file_url).path.split("/")
        try:
            bucket_index = parts.index(self.bucket)
        except ValueError:
            raise StorageError("Invalid file URL")
        path = unquote("/".join(parts[bucket_index + 1:]))
        if not path:
            raise StorageError("Invalid file URL")
        return path

    async def upload(
        self, user_id: str, file_name: str, data: bytes, content_type: str
    ) -> str:
        """Store ``data`` and return its public URL."""
        key = object_key(user_id, file_name)
        try:
            response = await self._http.post(
                f"{self._base_url}/storage/v1/object/{self.bucket}/{quote(key)}",
                content=data,
                headers={
                    **self._headers,
                    "Content-Type": content_type or "application/octet-stream",
                    "Cache-Control": "max-age=3600",
                    "x-upsert": "false",
                },
                timeout=STORAGE_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Error uploading resume %r: %s", file_name, exc)
            raise UploadError() from exc

        try:
            stored = response.json().get("Key")
        except (ValueError, AttributeError):
            stored = None
        if isinstance(stored, str) and stored.startswith(f"{self.bucket}/"):
            key = stored[len(self.bucket) + 1:]
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return self.public_url(key)

    async def delete(self, file_url: str) -> None:
        path = self.path_from_url(file_url)
        try:
            response = await self._http.request(
                "DELETE",
                f"{self._base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": [path]},
                headers=self._headers,
                timeout=STORAGE_TIMEOUT,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Error deleting resume %s: %s", path, exc)
            raise StorageError("Failed to delete resume from storage") from exc
