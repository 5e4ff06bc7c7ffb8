"""Initial term store schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

_STATUSES = ("UNSUBMITTED", "SUBMITTED", "ACCEPTED", "REJECTED", "SYNONYM", "PUBLISHED")


def upgrade() -> None:
    op.create_table(
        "term",
        sa.Column("local_id", sa.String(32), nullable=False),
        sa.Column("authority_id", sa.String(32), nullable=True),
        sa.Column("ticket_id", sa.String(32), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("synonyms", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("parent_ids", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*_STATUSES, name="termstatus", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cache_validator", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("local_id", name="pk_term"),
    )
    op.create_index("ix_term_authority_id", "term", ["authority_id"])
    op.create_index("ix_term_ticket_id", "term", ["ticket_id"])
    op.create_index("ix_term_status", "term", ["status"])

    op.create_table(
        "term_label",
        sa.Column("local_id", sa.String(32), nullable=False),
        sa.Column("label_key", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(
            ["local_id"],
            ["term.local_id"],
            name="fk_term_label_local_id_term",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("local_id", "label_key", name="pk_term_label"),
    )
    op.create_index("ix_term_label_label_key", "term_label", ["label_key"])


def downgrade() -> None:
    op.drop_index("ix_term_label_label_key", table_name="term_label")
    op.drop_table("term_label")
    op.drop_index("ix_term_status", table_name="term")
    op.drop_index("ix_term_ticket_id", table_name="term")
    op.drop_index("ix_term_authority_id", table_name="term")
    op.drop_table("term")
