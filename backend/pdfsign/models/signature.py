"""
PDFSign Backend: SignatureRecord SQLAlchemy Model
===================================================

What:  ORM model for the `signatures` table: one row per completed sign call.
Who:   Written by SigningService, read and bulk-deleted by DocumentService.

Table Design Rationale:
    - UUID primary key generated in Python (portable across PostgreSQL/SQLite)
    - document_id: caller-chosen grouping key; every record sharing it is
      deleted together, so it is indexed
    - x / y: position in page content space (after UI mapping), not UI space
    - stored_url / storage_id: where the rendered artifact lives
    - Rows are immutable after insert; updated_at exists for auditing parity
      with created_at and is never bumped by application code
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pdfsign.database import Base

SIGNATURE_STATUSES = ("signed", "pending", "rejected")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignatureRecord(Base):
    """
    Metadata describing one signing operation.

    Lifecycle:
        1. Inserted once, after the signed artifact was stored
        2. Never updated
        3. Deleted in bulk with every other record of its document_id, and
           only when the requesting caller owns all of them
    """

    __tablename__ = "signatures"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    document_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Caller-supplied document identifier shared by related signatures",
    )

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Identity of the caller that created the record",
    )

    # Content-space coordinates (origin bottom-left)
    x: Mapped[float] = mapped_column(Float, nullable=False)
    y: Mapped[float] = mapped_column(Float, nullable=False)

    page_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="1-indexed page the mark was drawn on",
    )

    # Values: signed | pending | rejected
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="signed",
    )

    signed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    stored_url: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        comment="Public URL of the signed artifact",
    )

    storage_id: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        comment="Object store identifier of the signed artifact",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    __table_args__ = (
        Index("idx_signatures_document_id", "document_id"),
        Index("idx_signatures_owner_signed_at", "owner_id", "signed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SignatureRecord(id={self.id}, document_id='{self.document_id}', "
            f"status='{self.status}')>"
        )
