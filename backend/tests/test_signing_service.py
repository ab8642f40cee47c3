"""
PDFSign Backend: Signing Service Tests
========================================

The object store and signature store are mocks; the PDF work is real.

What we test:
    ✅ Stored record carries the mapped content-space position
    ✅ Out-of-range page raises InvalidPageError and writes nothing
    ✅ Unsupported image fails before the source is fetched
    ✅ Identical requests produce distinct artifacts and records
    ✅ Metadata failure triggers a compensating artifact delete
    ✅ Input validation rules
"""

import io

import pytest
from unittest.mock import AsyncMock, MagicMock
from pypdf import PdfWriter

from pdfsign.exceptions import (
    DatabaseError,
    InvalidPageError,
    SourceFetchError,
    StoreError,
    UnsupportedFormatError,
    ValidationError,
)
from pdfsign.schemas.signature import SignPdfRequest
from pdfsign.services.mark_renderer import MarkKind
from pdfsign.services.object_store import StoredObject
from pdfsign.services.signing_service import (
    SIGNED_FOLDER,
    SigningService,
    validate_sign_request,
)

SOURCE_URL = "http://files.example.com/contract.pdf"


def _request(**overrides) -> SignPdfRequest:
    body = {
        "pdfUrl": SOURCE_URL,
        "documentId": "contract-42",
        "type": "text",
        "text": "Approved",
        "x": 100,
        "y": 50,
        "page": 1,
    }
    body.update(overrides)
    return SignPdfRequest.model_validate(body)


class TestSignDocument:

    def setup_method(self):
        self.object_store = MagicMock()
        self.object_store.fetch_bytes = AsyncMock()
        self.object_store.put_bytes = AsyncMock(
            return_value=StoredObject(
                url="http://test/api/files/signed_pdfs/2024/05/01/a.pdf",
                id="signed_pdfs/2024/05/01/a.pdf",
            )
        )
        self.object_store.delete_by_id = AsyncMock(return_value=True)

        self.signature_store = MagicMock()
        self.signature_store.insert = AsyncMock(side_effect=lambda db, record: record)

        self.service = SigningService(self.object_store, self.signature_store)

    @pytest.mark.asyncio
    async def test_text_mark_records_mapped_position(self, mock_db_session, sample_pdf_bytes):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes

        result = await self.service.sign_document(mock_db_session, _request(), "user-1")

        assert result.success is True
        assert result.public_id == "signed_pdfs/2024/05/01/a.pdf"
        assert result.signed_url.endswith("/a.pdf")

        self.object_store.fetch_bytes.assert_awaited_once_with(SOURCE_URL)
        content, = self.object_store.put_bytes.await_args.args
        assert content.startswith(b"%PDF-")
        assert self.object_store.put_bytes.await_args.kwargs["folder"] == SIGNED_FOLDER

        record = self.signature_store.insert.await_args.args[1]
        assert record.x == 100
        assert record.y == 792 - 50 - 10
        assert record.page_number == 1
        assert record.status == "signed"
        assert record.owner_id == "user-1"
        assert record.document_id == "contract-42"
        assert record.storage_id == result.public_id
        assert record.stored_url == result.signed_url

    @pytest.mark.asyncio
    async def test_mapping_uses_selected_page_height(self, mock_db_session):
        writer = PdfWriter()
        writer.add_blank_page(width=612, height=792)
        writer.add_blank_page(width=595, height=842)
        buffer = io.BytesIO()
        writer.write(buffer)
        self.object_store.fetch_bytes.return_value = buffer.getvalue()

        await self.service.sign_document(mock_db_session, _request(page=2, y=100), "user-1")

        record = self.signature_store.insert.await_args.args[1]
        assert record.y == 842 - 100 - 10
        assert record.page_number == 2

    @pytest.mark.asyncio
    async def test_image_mark(self, mock_db_session, sample_pdf_bytes, png_data_url):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes

        await self.service.sign_document(
            mock_db_session,
            _request(type="image", text=None, imageData=png_data_url, status="pending"),
            "user-1",
        )

        content, = self.object_store.put_bytes.await_args.args
        assert b"/Image" in content
        record = self.signature_store.insert.await_args.args[1]
        assert record.status == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page", [0, 2, 99])
    async def test_invalid_page_writes_nothing(self, mock_db_session, sample_pdf_bytes, page):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes

        with pytest.raises(InvalidPageError) as exc_info:
            await self.service.sign_document(mock_db_session, _request(page=page), "user-1")

        assert exc_info.value.page_count == 1
        self.object_store.put_bytes.assert_not_awaited()
        self.signature_store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gif_rejected_before_fetch(self, mock_db_session, gif_data_url):
        with pytest.raises(UnsupportedFormatError):
            await self.service.sign_document(
                mock_db_session,
                _request(type="image", imageData=gif_data_url),
                "user-1",
            )

        self.object_store.fetch_bytes.assert_not_awaited()
        self.object_store.put_bytes.assert_not_awaited()
        self.signature_store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, mock_db_session):
        self.object_store.fetch_bytes.side_effect = SourceFetchError(status=404)

        with pytest.raises(SourceFetchError, match="Failed to fetch PDF: 404"):
            await self.service.sign_document(mock_db_session, _request(), "user-1")

        self.object_store.put_bytes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_source_is_validation_error(self, mock_db_session):
        self.object_store.fetch_bytes.return_value = b"<html>not a pdf</html>"

        with pytest.raises(ValidationError, match="not a readable PDF"):
            await self.service.sign_document(mock_db_session, _request(), "user-1")

        self.object_store.put_bytes.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_persists_nothing(self, mock_db_session, sample_pdf_bytes):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes
        self.object_store.put_bytes.side_effect = StoreError()

        with pytest.raises(StoreError):
            await self.service.sign_document(mock_db_session, _request(), "user-1")

        self.signature_store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identical_requests_are_not_deduplicated(self, mock_db_session, sample_pdf_bytes):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes
        self.object_store.put_bytes.side_effect = [
            StoredObject(url="http://test/api/files/a.pdf", id="a.pdf"),
            StoredObject(url="http://test/api/files/b.pdf", id="b.pdf"),
        ]

        first = await self.service.sign_document(mock_db_session, _request(), "user-1")
        second = await self.service.sign_document(mock_db_session, _request(), "user-1")

        assert first.public_id != second.public_id
        assert self.signature_store.insert.await_count == 2

    @pytest.mark.asyncio
    async def test_metadata_failure_removes_artifact(self, mock_db_session, sample_pdf_bytes):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes
        self.signature_store.insert.side_effect = DatabaseError()

        with pytest.raises(DatabaseError):
            await self.service.sign_document(mock_db_session, _request(), "user-1")

        self.object_store.delete_by_id.assert_awaited_once_with("signed_pdfs/2024/05/01/a.pdf")

    @pytest.mark.asyncio
    async def test_failed_compensation_still_raises_original(self, mock_db_session, sample_pdf_bytes):
        self.object_store.fetch_bytes.return_value = sample_pdf_bytes
        self.signature_store.insert.side_effect = DatabaseError()
        self.object_store.delete_by_id.side_effect = StoreError()

        with pytest.raises(DatabaseError):
            await self.service.sign_document(mock_db_session, _request(), "user-1")


class TestValidateSignRequest:

    def test_defaults(self):
        command = validate_sign_request(_request(page=None, status=None), "user-1")
        assert command.page_number == 1
        assert command.status == "signed"
        assert command.mark.kind is MarkKind.TEXT
        assert command.mark.font_size == 12

    def test_numeric_strings_are_accepted(self):
        command = validate_sign_request(_request(x="100.5", y="50", page="2"), "user-1")
        assert (command.ui_x, command.ui_y, command.page_number) == (100.5, 50.0, 2)

    @pytest.mark.parametrize("font_size, expected", [("14", 14), (14.9, 14), ("12.7", 12), (None, 12)])
    def test_font_size_coercion(self, font_size, expected):
        command = validate_sign_request(_request(fontSize=font_size), "user-1")
        assert command.mark.font_size == expected

    @pytest.mark.parametrize("font_size", ["abc", 0, -3, True])
    def test_invalid_font_size(self, font_size):
        with pytest.raises(ValidationError, match="font size"):
            validate_sign_request(_request(fontSize=font_size), "user-1")

    @pytest.mark.parametrize("field", ["pdfUrl", "documentId", "type", "x", "y"])
    def test_missing_required_field(self, field):
        with pytest.raises(ValidationError, match="Missing required fields") as exc_info:
            validate_sign_request(_request(**{field: None}), "user-1")
        assert field in exc_info.value.context["missing"]

    def test_missing_caller(self):
        with pytest.raises(ValidationError):
            validate_sign_request(_request(), "")

    @pytest.mark.parametrize("value", ["abc", "nan", "inf", True, [1]])
    def test_non_numeric_coordinates(self, value):
        with pytest.raises(ValidationError):
            validate_sign_request(_request(x=value), "user-1")

    def test_fractional_page(self):
        with pytest.raises(ValidationError, match="whole number"):
            validate_sign_request(_request(page=1.5), "user-1")

    @pytest.mark.parametrize("url", ["ftp://example.com/a.pdf", "file:///etc/passwd", "contract.pdf"])
    def test_non_http_url(self, url):
        with pytest.raises(ValidationError, match="http"):
            validate_sign_request(_request(pdfUrl=url), "user-1")

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="type must be"):
            validate_sign_request(_request(type="stamp"), "user-1")

    def test_blank_text(self):
        with pytest.raises(ValidationError, match="Text is required"):
            validate_sign_request(_request(text="   "), "user-1")

    def test_image_without_payload(self):
        with pytest.raises(ValidationError, match="Base64 image required"):
            validate_sign_request(_request(type="image", imageData=None), "user-1")

    def test_unknown_status(self):
        with pytest.raises(ValidationError, match="status must be one of"):
            validate_sign_request(_request(status="approved"), "user-1")

    def test_document_id_longer_than_column(self):
        with pytest.raises(ValidationError, match="at most 255") as exc_info:
            validate_sign_request(_request(documentId="d" * 256), "user-1")
        assert exc_info.value.context["field"] == "documentId"

    def test_document_id_at_column_width(self):
        command = validate_sign_request(_request(documentId="d" * 255), "user-1")
        assert len(command.document_id) == 255
