"""Create scans table

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Creates the `scans` table: one row per successfully analyzed upload.
How:   PostgreSQL UUID primary key with gen_random_uuid(), TIMESTAMP WITH
       TIME ZONE, and the two indexes behind "my scans, newest first".

Rollback: downgrade() drops the table entirely (destructive, all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the scans table with all columns, constraints, and indexes."""
    op.create_table(
        "scans",

        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
            comment="Unique identifier generated at insert time",
        ),

        # Owner id from the external identity provider (users live there)
        sa.Column(
            "user_id",
            sa.String(255),
            nullable=False,
            comment="Owner id from the external identity provider",
        ),

        # Durable storage key; signed URLs are derived per read, never stored
        sa.Column(
            "image_key",
            sa.Text(),
            nullable=False,
            comment="Durable object-storage key of the uploaded image",
        ),

        # Analysis fields, one per FloraFaunaAnalysis property
        sa.Column("species", sa.Text(), nullable=False, comment="Scientific name"),
        sa.Column("common_name", sa.Text(), nullable=False),
        sa.Column("is_safe_to_eat", sa.Boolean(), nullable=False),
        sa.Column("is_safe_to_touch", sa.Boolean(), nullable=False),
        sa.Column(
            "confidence",
            sa.String(16),
            nullable=False,
            comment="Model self-reported certainty: high, medium, low",
        ),
        sa.Column("warnings", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("description", sa.Text(), nullable=False),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this scan was created (UTC)",
        ),

        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "confidence IN ('high', 'medium', 'low')",
            name="ck_scans_confidence",
        ),
    )

    op.create_index("idx_scans_user_id", "scans", ["user_id"])
    op.create_index(
        "idx_scans_created_at",
        "scans",
        [sa.text("created_at DESC")],
    )


def downgrade() -> None:
    """Drop the scans table. Destructive: every scan row is lost."""
    op.drop_index("idx_scans_created_at", table_name="scans")
    op.drop_index("idx_scans_user_id", table_name="scans")
    op.drop_table("scans")
