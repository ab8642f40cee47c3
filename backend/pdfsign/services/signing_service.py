"""
PDFSign Backend: Signing Service (Core Orchestrator)
======================================================

What:  Turns a sign request into a signed PDF artifact and one
       SignatureRecord.
How:   A strictly linear pipeline; each step either succeeds or raises, and
       nothing after a failed step runs.
Who:   Called by POST /pdf/sign/{id}.

Orchestration Flow:
    ┌──────────┐  ┌────────┐  ┌──────────────┐  ┌────────┐  ┌───────┐  ┌─────────┐
    │ Validate │─▶│ Fetch  │─▶│ Load + page  │─▶│ Render │─▶│ Store │─▶│ Persist │
    │          │  │ source │  │ map position │  │ + save │  │ bytes │  │ record  │
    └──────────┘  └────────┘  └──────────────┘  └────────┘  └───────┘  └─────────┘
       400/415        502         400                500        500        500

    Fetch, store and persist are the network-bound steps. Load, render and
    serialize are CPU-bound and run in Starlette's threadpool.

Consistency:
    Store and persist are two different systems and are not transactional.
    If persisting the record fails, the freshly stored artifact is deleted
    (best-effort) before the error propagates. A crash between the two
    writes can still leave an orphaned artifact; nothing sweeps those.

Idempotency:
    None. Identical requests produce distinct artifacts and records.
"""

import io
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Tuple
from urllib.parse import urlparse

from pypdf import PdfReader, PdfWriter
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from pdfsign.exceptions import InvalidPageError, RenderFailureError, StoreError, ValidationError
from pdfsign.models.signature import SIGNATURE_STATUSES, SignatureRecord
from pdfsign.schemas.signature import SignPdfRequest, SignResponse
from pdfsign.services.coordinates import map_to_content_space
from pdfsign.services.mark_renderer import MarkKind, MarkSpec, render_mark, sniff_image_media_type
from pdfsign.services.object_store import ObjectStore, StoredObject
from pdfsign.services.signature_store import SignatureStore

logger = logging.getLogger(__name__)

SIGNED_FOLDER = "signed_pdfs"
DEFAULT_FONT_SIZE = 12
# Width of signatures.document_id
MAX_DOCUMENT_ID_LENGTH = 255


@dataclass(frozen=True)
class SignCommand:
    """A sign request after validation: every field typed and present."""
    pdf_url: str
    document_id: str
    caller_id: str
    mark: MarkSpec
    ui_x: float
    ui_y: float
    page_number: int
    status: str


# ══════════════════════════════════════════════════════════════════════════
# Validation helpers
# ══════════════════════════════════════════════════════════════════════════

def _to_number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(message=f"'{field}' must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message=f"'{field}' must be a number", field=field)
    if not math.isfinite(number):
        raise ValidationError(message=f"'{field}' must be a finite number", field=field)
    return number


def _to_font_size(value: Any) -> int:
    """Integer font size; "14", 14.0 and 14.9 all become 14."""
    if value is None or value == "":
        return DEFAULT_FONT_SIZE
    if isinstance(value, bool):
        raise ValidationError(message="Invalid font size", field="fontSize")
    try:
        size = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(message="Invalid font size", field="fontSize")
    if size <= 0:
        raise ValidationError(message="Invalid font size", field="fontSize")
    return size


def _to_page_number(value: Any) -> int:
    if value is None or value == "":
        return 1
    number = _to_number(value, "page")
    if not number.is_integer():
        raise ValidationError(message="'page' must be a whole number", field="page")
    return int(number)


def validate_sign_request(request: SignPdfRequest, caller_id: str) -> SignCommand:
    """
    Step 1 of the pipeline.

    Rules:
        - pdfUrl, documentId, type, x, y and an authenticated caller are required
        - documentId is at most 255 characters
        - pdfUrl must be http(s)
        - type is 'text' (non-blank text required) or 'image' (PNG/JPEG data
          URL required; the media type is sniffed here so an unsupported image
          fails before anything is downloaded)
        - x, y, page, fontSize must coerce to numbers
        - status is one of signed | pending | rejected

    Raises:
        ValidationError, UnsupportedFormatError
    """
    document_id = (request.document_id or "").strip()
    missing = [
        name for name, present in (
            ("pdfUrl", bool(request.pdf_url and request.pdf_url.strip())),
            ("documentId", bool(document_id)),
            ("type", bool(request.mark_kind)),
            ("x", request.x is not None),
            ("y", request.y is not None),
        ) if not present
    ]
    if missing or not caller_id:
        raise ValidationError(
            message="Missing required fields",
            context={"missing": missing},
        )

    if len(document_id) > MAX_DOCUMENT_ID_LENGTH:
        raise ValidationError(
            message=f"documentId must be at most {MAX_DOCUMENT_ID_LENGTH} characters",
            field="documentId",
        )

    pdf_url = request.pdf_url.strip()
    if urlparse(pdf_url).scheme not in ("http", "https"):
        raise ValidationError(message="pdfUrl must be an http(s) URL", field="pdfUrl")

    try:
        kind = MarkKind(request.mark_kind.strip().lower())
    except ValueError:
        raise ValidationError(message="type must be 'text' or 'image'", field="type")

    ui_x = _to_number(request.x, "x")
    ui_y = _to_number(request.y, "y")
    page_number = _to_page_number(request.page)

    status = (request.status or "signed").strip().lower()
    if status not in SIGNATURE_STATUSES:
        raise ValidationError(
            message=f"status must be one of: {', '.join(SIGNATURE_STATUSES)}",
            field="status",
        )

    if kind is MarkKind.TEXT:
        if not (request.text and request.text.strip()):
            raise ValidationError(message="Text is required for text signature", field="text")
        mark = MarkSpec(kind=kind, text=request.text, font_size=_to_font_size(request.font_size))
    else:
        if not (request.image_data and request.image_data.strip()):
            raise ValidationError(
                message="Base64 image required for image signature", field="imageData"
            )
        sniff_image_media_type(request.image_data)
        mark = MarkSpec(kind=kind, image_data=request.image_data)

    return SignCommand(
        pdf_url=pdf_url,
        document_id=document_id,
        caller_id=caller_id,
        mark=mark,
        ui_x=ui_x,
        ui_y=ui_y,
        page_number=page_number,
        status=status,
    )


# ══════════════════════════════════════════════════════════════════════════
# Document transform (runs in the threadpool)
# ══════════════════════════════════════════════════════════════════════════

def _load_document(source: bytes) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(source))
        if reader.is_encrypted:
            raise ValidationError(
                message="Encrypted PDFs cannot be signed", field="pdfUrl"
            )
        # Forces page tree parsing so broken files fail here
        len(reader.pages)
    except ValidationError:
        raise
    except Exception as e:
        logger.warning("Source is not a readable PDF: %s", str(e))
        raise ValidationError(
            message="The source file is not a readable PDF",
            field="pdfUrl",
            context={"error_type": type(e).__name__},
        )
    return reader


def apply_mark(source: bytes, command: SignCommand) -> Tuple[bytes, Tuple[float, float]]:
    """
    Steps 3 to 6: load, select page, map position, render, serialize.

    Returns:
        (signed_pdf_bytes, content_space_position)
    """
    reader = _load_document(source)
    page_count = len(reader.pages)
    if not 1 <= command.page_number <= page_count:
        raise InvalidPageError(command.page_number, page_count)

    writer = PdfWriter(clone_from=reader)
    page = writer.pages[command.page_number - 1]
    page_height = float(page.mediabox.height)
    position = map_to_content_space(command.ui_x, command.ui_y, page_height)

    render_mark(page, command.mark, position, command.status)

    buffer = io.BytesIO()
    try:
        writer.write(buffer)
    except Exception as e:
        logger.error("Serializing signed PDF failed: %s", str(e), exc_info=True)
        raise RenderFailureError(
            message="The signed document could not be saved.",
            context={"error_type": type(e).__name__},
        )
    return buffer.getvalue(), position


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

class SigningService:
    """
    Signing orchestrator.

    Dependencies are injected at construction (see create_app); the service
    keeps no per-request state, so one instance serves all requests.
    """

    def __init__(self, object_store: ObjectStore, signature_store: SignatureStore):
        self.object_store = object_store
        self.signature_store = signature_store

    async def sign_document(
        self,
        db: AsyncSession,
        request: SignPdfRequest,
        caller_id: str,
    ) -> SignResponse:
        """
        Run the full pipeline for one request.

        Raises:
            ValidationError / UnsupportedFormatError: bad input (400)
            SourceFetchError: source download failed (502)
            InvalidPageError: page outside the document (400)
            RenderFailureError: mark could not be drawn or saved (500)
            StoreError: artifact write failed (500), nothing persisted
            DatabaseError: record insert failed (500), artifact removed
        """
        # ── Step 1: Validate ──────────────────────────────────────────────
        command = validate_sign_request(request, caller_id)
        logger.info(
            "Sign request: document=%s kind=%s page=%d caller=%s",
            command.document_id,
            command.mark.kind.value,
            command.page_number,
            command.caller_id,
        )

        # ── Step 2: Fetch source ──────────────────────────────────────────
        source = await self.object_store.fetch_bytes(command.pdf_url)

        # ── Steps 3-6: Load, map, render, serialize ───────────────────────
        signed_bytes, (x, y) = await run_in_threadpool(apply_mark, source, command)

        # ── Step 7: Store artifact ────────────────────────────────────────
        stored = await self.object_store.put_bytes(signed_bytes, folder=SIGNED_FOLDER)

        # ── Step 8: Persist metadata ──────────────────────────────────────
        now = datetime.now(timezone.utc)
        record = SignatureRecord(
            document_id=command.document_id,
            owner_id=command.caller_id,
            x=x,
            y=y,
            page_number=command.page_number,
            status=command.status,
            signed_at=now,
            stored_url=stored.url,
            storage_id=stored.id,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.signature_store.insert(db, record)
        except Exception:
            await self._discard_artifact(stored)
            raise

        logger.info(
            "Document %s signed at (%.1f, %.1f) on page %d → %s",
            command.document_id, x, y, command.page_number, stored.id,
        )

        # ── Step 9: Return ────────────────────────────────────────────────
        return SignResponse(signed_url=stored.url, public_id=stored.id)

    async def _discard_artifact(self, stored: StoredObject) -> None:
        """Compensating delete after a failed insert. Never raises."""
        try:
            await self.object_store.delete_by_id(stored.id)
            logger.warning("Removed orphaned artifact %s after metadata failure", stored.id)
        except StoreError as e:
            logger.error("Orphaned artifact %s could not be removed: %s", stored.id, e.message)
