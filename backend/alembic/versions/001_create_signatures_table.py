"""Create signatures table

Revision ID: 001
Revises: None
Create Date: 2024-05-01 00:00:00.000000+00:00

One row per successful sign operation. Rows are never updated; they are
deleted together with every other row sharing the same document_id.

Rollback: downgrade() drops the table and its indexes (all records lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "signatures",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "document_id",
            sa.String(255),
            nullable=False,
            comment="Caller-supplied document identifier shared by related signatures",
        ),
        sa.Column(
            "owner_id",
            sa.String(255),
            nullable=False,
            comment="Identity of the caller that created the record",
        ),
        # Content-space coordinates after mapping (origin bottom-left)
        sa.Column("x", sa.Float(), nullable=False),
        sa.Column("y", sa.Float(), nullable=False),
        sa.Column(
            "page_number",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="1-indexed page the mark was drawn on",
        ),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'signed'"),
        ),
        sa.Column(
            "signed_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "stored_url",
            sa.String(1024),
            nullable=False,
            comment="Public URL of the signed artifact",
        ),
        sa.Column(
            "storage_id",
            sa.String(512),
            nullable=False,
            comment="Object store identifier of the signed artifact",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('signed', 'pending', 'rejected')",
            name="ck_signatures_status",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Ownership checks on delete look up every row of a document
    op.create_index("idx_signatures_document_id", "signatures", ["document_id"])
    # GET /pdf/list filters by owner and sorts by signed_at
    op.create_index(
        "idx_signatures_owner_signed_at",
        "signatures",
        ["owner_id", "signed_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_signatures_owner_signed_at", table_name="signatures")
    op.drop_index("idx_signatures_document_id", table_name="signatures")
    op.drop_table("signatures")
