"""
Metadata store for SignatureRecord rows.

Thin SQLAlchemy wrapper so the services talk in records, not queries. Every
method takes the request-scoped AsyncSession. Writes commit before they
return, so a failed commit reaches the calling service as DatabaseError while
the response is still undecided. SQLAlchemy failures are translated into
DatabaseError with the driver message kept in the log only.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pdfsign.exceptions import DatabaseError
from pdfsign.models.signature import SignatureRecord

logger = logging.getLogger(__name__)


class SignatureStore:

    async def insert(self, db: AsyncSession, record: SignatureRecord) -> SignatureRecord:
        """Add and commit a record; constraint and commit errors both surface here."""
        try:
            db.add(record)
            await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to insert signature record: %s", str(e))
            await db.rollback()
            raise DatabaseError(
                message="Could not save the signature. Please try again.",
                context={"document_id": record.document_id, "error_type": type(e).__name__},
            )
        return record

    async def find_by_document_id(self, db: AsyncSession, document_id: str) -> List[SignatureRecord]:
        try:
            result = await db.execute(
                select(SignatureRecord).where(SignatureRecord.document_id == document_id)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error fetching document %s: %s", document_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the document. Please try again.",
                context={"document_id": document_id},
            )

    async def delete_by_document_id(self, db: AsyncSession, document_id: str) -> int:
        try:
            result = await db.execute(
                delete(SignatureRecord).where(SignatureRecord.document_id == document_id)
            )
            deleted = result.rowcount or 0
            await db.commit()
        except SQLAlchemyError as e:
            logger.error("Database error deleting document %s: %s", document_id, str(e))
            await db.rollback()
            raise DatabaseError(
                message="Could not delete the document. Please try again.",
                context={"document_id": document_id},
            )
        return deleted

    async def list_for_owner(
        self,
        db: AsyncSession,
        owner_id: str,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> Tuple[List[SignatureRecord], int]:
        """
        The owner's records, newest signed_at first, plus the unpaged total.

        Query plan:
            Uses idx_signatures_owner_signed_at for both filter and sort.
        """
        query = select(SignatureRecord).where(SignatureRecord.owner_id == owner_id)
        count_query = select(func.count(SignatureRecord.id)).where(
            SignatureRecord.owner_id == owner_id
        )
        if status:
            query = query.where(SignatureRecord.status == status)
            count_query = count_query.where(SignatureRecord.status == status)
        query = query.order_by(desc(SignatureRecord.signed_at)).limit(limit)

        try:
            result = await db.execute(query)
            records = list(result.scalars().all())
            count_result = await db.execute(count_query)
            total = count_result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error("Database error listing signatures for %s: %s", owner_id, str(e))
            raise DatabaseError(
                message="Could not retrieve signed documents. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return records, total
