"""
PDFSign Backend: Local Object Store Tests
==========================================

Disk operations run against a temporary directory; remote fetches go
through httpx.MockTransport, so no network is touched.
"""

import re

import httpx
import pytest

from pdfsign.exceptions import NotFoundError, SourceFetchError, ValidationError
from pdfsign.services.object_store import LocalObjectStore

BASE_URL = "http://test"


def _store(temp_storage, handler=None, attempts=1):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler)) if handler else None
    return LocalObjectStore(
        storage_root=temp_storage,
        public_base_url=BASE_URL + "/",
        http_client=client,
        retry_max_attempts=attempts,
        retry_min_wait=0,
        retry_max_wait=1,
    )


class TestLocalStorage:

    @pytest.mark.asyncio
    async def test_put_bytes_writes_dated_object(self, temp_storage):
        store = _store(temp_storage)

        stored = await store.put_bytes(b"%PDF-1.7 data", folder="signed_pdfs")

        assert re.fullmatch(r"signed_pdfs/\d{4}/\d{2}/\d{2}/[0-9a-f-]{36}\.pdf", stored.id)
        assert stored.url == f"{BASE_URL}/api/files/{stored.id}"
        assert store.resolve(stored.id).read_bytes() == b"%PDF-1.7 data"
        await store.close()

    @pytest.mark.asyncio
    async def test_put_bytes_never_overwrites(self, temp_storage):
        store = _store(temp_storage)
        first = await store.put_bytes(b"a", folder="pdfs")
        second = await store.put_bytes(b"a", folder="pdfs")
        assert first.id != second.id
        await store.close()

    @pytest.mark.asyncio
    async def test_fetch_own_url_reads_disk(self, temp_storage):
        def handler(request):
            raise AssertionError("own URLs must not go over HTTP")

        store = _store(temp_storage, handler)
        stored = await store.put_bytes(b"%PDF-local", folder="pdfs")

        assert await store.fetch_bytes(stored.url) == b"%PDF-local"
        await store.close()

    @pytest.mark.asyncio
    async def test_fetch_missing_own_object(self, temp_storage):
        store = _store(temp_storage)

        with pytest.raises(SourceFetchError) as exc_info:
            await store.fetch_bytes(f"{BASE_URL}/api/files/pdfs/missing.pdf")

        assert exc_info.value.status == 404
        await store.close()

    @pytest.mark.asyncio
    async def test_delete_by_id(self, temp_storage):
        store = _store(temp_storage)
        stored = await store.put_bytes(b"x", folder="pdfs")

        assert await store.delete_by_id(stored.id) is True
        assert await store.delete_by_id(stored.id) is False
        await store.close()

    @pytest.mark.parametrize("object_id", ["../outside.pdf", "pdfs/../../outside.pdf", "/etc/passwd", ""])
    def test_resolve_rejects_escapes(self, temp_storage, object_id):
        store = _store(temp_storage)
        with pytest.raises(ValidationError, match="Invalid file path"):
            store.resolve(object_id)

    def test_open_path_missing(self, temp_storage):
        store = _store(temp_storage)
        with pytest.raises(NotFoundError):
            store.open_path("pdfs/none.pdf")

    @pytest.mark.asyncio
    async def test_health_check(self, temp_storage):
        store = _store(temp_storage)
        assert await store.health_check() is True
        await store.close()


class TestRemoteFetch:

    @pytest.mark.asyncio
    async def test_success(self, temp_storage):
        def handler(request):
            assert str(request.url) == "https://files.example.com/a.pdf"
            return httpx.Response(200, content=b"%PDF-remote")

        store = _store(temp_storage, handler)
        assert await store.fetch_bytes("https://files.example.com/a.pdf") == b"%PDF-remote"
        await store.close()

    @pytest.mark.asyncio
    async def test_http_error_status_is_reported_without_retry(self, temp_storage):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(403)

        store = _store(temp_storage, handler, attempts=3)
        with pytest.raises(SourceFetchError, match="Failed to fetch PDF: 403") as exc_info:
            await store.fetch_bytes("https://files.example.com/a.pdf")

        assert exc_info.value.status == 403
        assert len(calls) == 1
        await store.close()

    @pytest.mark.asyncio
    @pytest.mark.filterwarnings("error:The 'initial' parameter is deprecated:DeprecationWarning")
    async def test_transport_errors_are_retried(self, temp_storage):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        store = _store(temp_storage, handler, attempts=2)
        with pytest.raises(SourceFetchError) as exc_info:
            await store.fetch_bytes("https://files.example.com/a.pdf")

        assert exc_info.value.status is None
        assert len(calls) == 2
        await store.close()
