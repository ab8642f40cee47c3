"""
PDFSign Backend: Object Store
===============================

What:  Byte storage for uploaded and signed PDFs, plus retrieval of source
       PDFs by URL.
How:   `ObjectStore` is the abstract contract the services depend on.
       `LocalObjectStore` keeps objects on disk in date-organized folders,
       serves them back through GET /api/files/{id}, and downloads foreign
       URLs with httpx (retried with tenacity on transport errors).
Who:   SigningService (fetch source, store artifact, compensating delete),
       DocumentService (upload, bulk delete), files route (serve).

Identifier scheme:
    <folder>/<YYYY>/<MM>/<DD>/<uuid>.pdf
    e.g. signed_pdfs/2024/05/01/0b6f...e2.pdf

    The id is also the path below STORAGE_ROOT, and the public URL is
    PUBLIC_BASE_URL + /api/files/ + id. A URL that points back at this store
    is read from disk instead of looping through HTTP.
"""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

import aiofiles
import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from pdfsign.exceptions import NotFoundError, SourceFetchError, StoreError, ValidationError

logger = logging.getLogger(__name__)

FILES_ROUTE_PREFIX = "/api/files/"


@dataclass(frozen=True)
class StoredObject:
    """Location of a stored object: public URL and store identifier."""
    url: str
    id: str


class ObjectStore(ABC):
    """
    Abstract byte store.

    Contract:
        - put_bytes() never overwrites: every call yields a fresh id
        - fetch_bytes() raises SourceFetchError carrying the upstream status
        - delete_by_id() returns False (not raise) when the object is gone
    """

    @abstractmethod
    async def put_bytes(self, content: bytes, folder: str, extension: str = ".pdf") -> StoredObject:
        """Persist bytes under a new identifier. Raises StoreError."""
        ...

    @abstractmethod
    async def fetch_bytes(self, url: str) -> bytes:
        """Return the bytes behind `url`. Raises SourceFetchError."""
        ...

    @abstractmethod
    async def delete_by_id(self, object_id: str) -> bool:
        """Delete an object. True if deleted, False if it did not exist."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    async def close(self) -> None:
        """Release network resources. Called by the lifespan handler."""


class LocalObjectStore(ObjectStore):
    """
    Disk-backed object store with an HTTP fetcher for foreign URLs.

    Directory Structure:
        storage/
        ├── pdfs/2024/05/01/<uuid>.pdf          (uploads)
        └── signed_pdfs/2024/05/01/<uuid>.pdf   (signed artifacts)
    """

    def __init__(
        self,
        storage_root: str,
        public_base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        fetch_timeout: float = 30.0,
        retry_max_attempts: int = 3,
        retry_min_wait: int = 1,
        retry_max_wait: int = 8,
    ):
        self.storage_root = Path(storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self.http_client = http_client or httpx.AsyncClient(
            timeout=fetch_timeout, follow_redirects=True
        )
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        logger.info("LocalObjectStore initialized with storage_root=%s", self.storage_root)

    # ── Identifier helpers ────────────────────────────────────────────────

    def url_for(self, object_id: str) -> str:
        return f"{self.public_base_url}{FILES_ROUTE_PREFIX}{object_id}"

    def object_id_from_url(self, url: str) -> Optional[str]:
        """Return the object id if `url` points into this store, else None."""
        prefix = f"{self.public_base_url}{FILES_ROUTE_PREFIX}"
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):].split("?", 1)[0])

    def resolve(self, object_id: str) -> Path:
        """
        Map an object id to a path below storage_root.

        Raises ValidationError for ids that would escape the root
        (e.g. ../../etc/passwd).
        """
        path = (self.storage_root / object_id).resolve()
        if not path.is_relative_to(self.storage_root) or path == self.storage_root:
            raise ValidationError(message="Invalid file path", field="path")
        return path

    def _new_object_id(self, folder: str, extension: str) -> str:
        now = datetime.now(timezone.utc)
        return f"{folder.strip('/')}/{now.strftime('%Y/%m/%d')}/{uuid.uuid4()}{extension}"

    # ── ObjectStore contract ──────────────────────────────────────────────

    async def put_bytes(self, content: bytes, folder: str, extension: str = ".pdf") -> StoredObject:
        object_id = self._new_object_id(folder, extension)
        path = self.storage_root / object_id
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store object at %s: %s", path, str(e))
            raise StoreError(context={"object_id": object_id, "os_error": str(e)})

        logger.info("Object stored: %s (%d bytes)", object_id, len(content))
        return StoredObject(url=self.url_for(object_id), id=object_id)

    async def fetch_bytes(self, url: str) -> bytes:
        object_id = self.object_id_from_url(url)
        if object_id is not None:
            return await self._read_local(object_id)
        return await self._download(url)

    async def delete_by_id(self, object_id: str) -> bool:
        path = self.resolve(object_id)
        if not path.exists():
            logger.debug("Delete: object already gone: %s", object_id)
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to delete object %s: %s", object_id, str(e))
            raise StoreError(
                message="Failed to delete the stored document.",
                context={"object_id": object_id, "os_error": str(e)},
            )
        logger.info("Object deleted: %s", object_id)
        return True

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)

    async def close(self) -> None:
        await self.http_client.aclose()

    def open_path(self, object_id: str) -> Path:
        """Path of an existing object, for streaming it back. Raises NotFoundError."""
        path = self.resolve(object_id)
        if not path.is_file():
            raise NotFoundError(resource="file", resource_id=object_id)
        return path

    # ── Internals ─────────────────────────────────────────────────────────

    async def _read_local(self, object_id: str) -> bytes:
        try:
            path = self.resolve(object_id)
        except ValidationError:
            raise SourceFetchError(status=400, context={"object_id": object_id})
        if not path.is_file():
            raise SourceFetchError(status=404, context={"object_id": object_id})
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def _download(self, url: str) -> bytes:
        """
        GET a foreign URL, retrying transport failures with backoff.

        HTTP error statuses are not retried: a 403/404 will not fix itself,
        and the status is reported to the caller as-is.
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.retry_max_attempts),
                # min_wait..max_wait exponential, plus 0-1s of jitter
                wait=wait_exponential(min=self.retry_min_wait, max=self.retry_max_wait)
                + wait_random(0, 1),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await self.http_client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Source download failed for %s: %s", url, str(e))
            raise SourceFetchError(context={"error_type": type(e).__name__})

        if not response.is_success:
            logger.warning("Source download for %s returned HTTP %d", url, response.status_code)
            raise SourceFetchError(status=response.status_code)

        return response.content
