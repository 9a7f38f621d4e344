"""
Doll Pin API: Doll SQLAlchemy Model
=====================================

What:  ORM model for the `dolls` table. One row holds the whole Doll
       aggregate: scalar fields plus the embedded pin list as a JSON document.
How:   Portable column types (Uuid, JSON, DateTime(timezone=True)) so the same
       model runs on PostgreSQL/asyncpg and on SQLite/aiosqlite in tests.
Who:   DollService for CRUD; Alembic for migrations.

Pin document layout (one element of `pins`):
    {"id": "<uuid4 hex>", "x": 10.0, "y": 20.0,
     "color": "#ff0000", "timestamp": "2025-10-06T10:30:00+00:00"}

Pins are never stored anywhere else, so deleting the row deletes them.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

DEFAULT_COLOR = "#ff0000"
DEFAULT_SIZE = 50
NAME_MAX_LENGTH = 50
SIZE_MIN = 1
SIZE_MAX = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Doll(Base):
    """
    A user-created doll and its pins.

    Lifecycle:
        1. Created with an empty pin list
        2. Field edits and pin appends/removals rewrite the row
        3. Deleted explicitly; pins go with it
    """

    __tablename__ = "dolls"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Trimmed before it gets here; length is enforced by DollService
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)

    color: Mapped[str] = mapped_column(String(7), nullable=False, default=DEFAULT_COLOR)

    size: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_SIZE)

    # Absolute URL of a derivative produced by the image pipeline
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    # Reassign a new list on every change; in-place mutation is not tracked
    pins: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint(f"size >= {SIZE_MIN} AND size <= {SIZE_MAX}", name="ck_dolls_size_range"),
        Index("idx_dolls_created_at", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Doll(id={self.id}, name='{self.name}', pins={len(self.pins or [])})>"
