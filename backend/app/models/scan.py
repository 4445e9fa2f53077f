"""
FloraLens Backend - Scan SQLAlchemy Model
===========================================

What:  ORM model representing the `scans` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by ScanService for insert and lookups, and by Alembic.

Table Design:
    - UUID primary key, generated at insert time
    - user_id: opaque id from the external identity provider (text)
    - image_key: durable object-storage key. The signed URL is derived
      from it on every read and is never stored.
    - seven analysis columns, one per FloraFaunaAnalysis field
    - created_at: UTC with timezone, assigned at insert

Query Patterns:
    - List a user's scans: WHERE user_id = :uid ORDER BY created_at DESC
      → idx_scans_user_id + idx_scans_created_at
    - Get single scan: WHERE id = :uuid → primary key
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

CONFIDENCE_LEVELS = ("high", "medium", "low")


class Scan(Base):
    """
    One persisted flora/fauna analysis tied to an uploaded image and its owner.

    Lifecycle:
        Created exactly once, after a successful analysis. Never updated
        or deleted by application code; rows go away only through the
        owner's cascade in the identity store.
    """

    __tablename__ = "scans"

    # ── Primary Key ───────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier generated at insert time",
    )

    # ── Ownership ─────────────────────────────────────────────────────────
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Owner id from the external identity provider",
    )

    # ── Image Reference ───────────────────────────────────────────────────
    # Format: scans/<user_id>/<epoch_ms>-<nonce>-<filename>
    image_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Durable object-storage key of the uploaded image",
    )

    # ── Analysis ──────────────────────────────────────────────────────────
    species: Mapped[str] = mapped_column(Text, nullable=False, comment="Scientific name")
    common_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_safe_to_eat: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_safe_to_touch: Mapped[bool] = mapped_column(Boolean, nullable=False)
    confidence: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="Model self-reported certainty: high, medium, low",
    )
    warnings: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
        comment="When this scan was created (UTC)",
    )

    __table_args__ = (
        Index("idx_scans_user_id", "user_id"),
        Index("idx_scans_created_at", created_at.desc()),
        CheckConstraint(
            "confidence IN (" + ", ".join(f"'{level}'" for level in CONFIDENCE_LEVELS) + ")",
            name="ck_scans_confidence",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Scan(id={self.id}, user_id='{self.user_id}', "
            f"species='{self.species}', created_at='{self.created_at}')>"
        )
