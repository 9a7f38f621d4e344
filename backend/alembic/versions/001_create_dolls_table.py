"""Create dolls table

Revision ID: 001
Revises: None
Create Date: 2025-10-06 00:00:00.000000+00:00

What:  Creates the `dolls` table. Each row is a whole Doll aggregate; pins
       are embedded in the JSON `pins` column.
How:   Portable types (sa.Uuid, sa.JSON) so the migration also applies to
       SQLite. On PostgreSQL sa.JSON maps to JSON, sa.Uuid to UUID.

Rollback: downgrade() drops the table, pins included.
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "dolls",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "name",
            sa.String(50),
            nullable=False,
            comment="Display name, 1-50 characters after trimming",
        ),
        sa.Column(
            "color",
            sa.String(7),
            nullable=False,
            server_default=sa.text("'#ff0000'"),
            comment="Hex color #RRGGBB",
        ),
        sa.Column(
            "size",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("50"),
        ),
        sa.Column(
            "image_url",
            sa.Text(),
            nullable=True,
            comment="URL of the processed image served under /api/uploads",
        ),
        sa.Column(
            "pins",
            sa.JSON(),
            nullable=False,
            comment="Ordered list of {id, x, y, color, timestamp}",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("size >= 1 AND size <= 100", name="ck_dolls_size_range"),
    )

    # Listing is always newest first
    op.create_index(
        "idx_dolls_created_at",
        "dolls",
        [sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_dolls_created_at", table_name="dolls")
    op.drop_table("dolls")
