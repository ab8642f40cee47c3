"""
PDFSign Backend: Document Service
===================================

What:  Everything around a signature that is not the signing pipeline:
       source uploads, listing, owner-only deletion and emailing a link.
How:   Composes the ObjectStore, SignatureStore and MailSender handed to it
       by create_app().
Who:   Called by the /pdf route handlers.

Upload Validation Order:
    1. Extension  (.pdf)          cheapest, no bytes read
    2. Size       (Content-Length first, then actual bytes)
    3. Header     (%PDF- magic bytes)
    4. Store      (date-organized id under pdfs/)

Deletion Policy:
    Ownership is all-or-nothing: a document id whose records belong to more
    than one caller cannot be deleted by any of them. Metadata removal is
    committed first and must succeed; artifact removal follows and is
    best-effort.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pdfsign.exceptions import ForbiddenError, NotFoundError, StoreError, ValidationError
from pdfsign.models.signature import SIGNATURE_STATUSES, SignatureRecord
from pdfsign.schemas.signature import (
    DeleteResponse,
    SignatureItem,
    SignatureListResponse,
    UploadResponse,
)
from pdfsign.services.mail_service import SIGNED_PDF_SUBJECT, SmtpMailSender, render_signed_pdf_email
from pdfsign.services.object_store import ObjectStore
from pdfsign.services.signature_store import SignatureStore

logger = logging.getLogger(__name__)

UPLOAD_FOLDER = "pdfs"
PDF_EXTENSION = ".pdf"
PDF_MAGIC = b"%PDF-"
MAX_LIST_LIMIT = 200


def to_signature_item(record: SignatureRecord) -> SignatureItem:
    return SignatureItem(
        id=record.id,
        document_id=record.document_id,
        owner_id=record.owner_id,
        x=record.x,
        y=record.y,
        page=record.page_number,
        status=record.status,
        signed_at=record.signed_at,
        signed_url=record.stored_url,
        public_id=record.storage_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class DocumentService:

    def __init__(
        self,
        object_store: ObjectStore,
        signature_store: SignatureStore,
        mail_sender: SmtpMailSender,
        max_file_size: int,
    ):
        self.object_store = object_store
        self.signature_store = signature_store
        self.mail_sender = mail_sender
        self.max_file_size = max_file_size

    # ── Upload ────────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> None:
        ext = Path(filename or "").suffix.lower()
        if ext != PDF_EXTENSION:
            raise ValidationError(
                message=f"File type '{ext or 'none'}' is not supported. Only PDF files are allowed.",
                field="file",
                context={"extension": ext},
            )

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Reject empty uploads and anything over MAX_FILE_SIZE.

        The Content-Length header is checked too, since some clients report
        a size that does not match the body.
        """
        max_mb = self.max_file_size / (1024 * 1024)
        if content_length and content_length > self.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )
        if actual_size == 0:
            raise ValidationError(message="Uploaded file is empty.", field="file")
        if actual_size > self.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_pdf_header(self, content: bytes) -> None:
        # The header may follow a few bytes of junk; readers accept it within 1KB
        if PDF_MAGIC not in content[:1024]:
            raise ValidationError(
                message="File content is not a PDF document.",
                field="file",
            )

    async def upload_pdf(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> UploadResponse:
        self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_pdf_header(content)

        stored = await self.object_store.put_bytes(content, folder=UPLOAD_FOLDER)
        logger.info("PDF uploaded: %s as %s", filename, stored.id)
        return UploadResponse(url=stored.url, public_id=stored.id)

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_signed(
        self,
        db: AsyncSession,
        caller_id: str,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> SignatureListResponse:
        """
        The caller's signature records, newest first.

        Raises:
            ValidationError: unknown status filter or limit outside 1..200
        """
        if status is not None and status not in SIGNATURE_STATUSES:
            raise ValidationError(
                message=f"status must be one of: {', '.join(SIGNATURE_STATUSES)}",
                field="status",
            )
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError(
                message=f"limit must be between 1 and {MAX_LIST_LIMIT}",
                field="limit",
            )

        records, total = await self.signature_store.list_for_owner(
            db, caller_id, status=status, limit=limit
        )
        return SignatureListResponse(
            files=[to_signature_item(r) for r in records],
            total_count=total,
        )

    # ── Deletion ──────────────────────────────────────────────────────────

    async def delete_document(
        self,
        db: AsyncSession,
        document_id: str,
        caller_id: str,
    ) -> DeleteResponse:
        """
        Delete every record (and stored artifact) under a document id.

        Raises:
            DatabaseError: the record delete did not commit; no artifact
                has been touched
            NotFoundError: no records exist for the document id
            ForbiddenError: at least one record belongs to another caller;
                nothing is removed
        """
        records = await self.signature_store.find_by_document_id(db, document_id)
        if not records:
            raise NotFoundError(resource="document", resource_id=document_id)

        foreign = [r for r in records if r.owner_id != caller_id]
        if foreign:
            logger.warning(
                "Caller %s denied deletion of document %s (%d record(s) owned by others)",
                caller_id, document_id, len(foreign),
            )
            raise ForbiddenError()

        # Records go first: a failed delete leaves every signed URL intact
        deleted = await self.signature_store.delete_by_document_id(db, document_id)
        for record in records:
            await self._remove_artifact(record)

        logger.info("Document %s deleted: %d record(s)", document_id, deleted)
        return DeleteResponse(message="File deleted successfully", deleted=deleted)

    async def _remove_artifact(self, record: SignatureRecord) -> None:
        try:
            removed = await self.object_store.delete_by_id(record.storage_id)
        except (StoreError, ValidationError) as e:
            logger.warning(
                "Artifact %s of document %s could not be removed: %s",
                record.storage_id, record.document_id, e.message,
            )
            return
        if not removed:
            logger.warning(
                "Artifact %s of document %s was already gone",
                record.storage_id, record.document_id,
            )

    # ── Email ─────────────────────────────────────────────────────────────

    async def email_document(self, file_url: str, to_email: str) -> None:
        """Send the signed-document link. MailError propagates (502)."""
        await self.mail_sender.send(
            to_address=to_email,
            subject=SIGNED_PDF_SUBJECT,
            body_html=render_signed_pdf_email(file_url),
        )
