"""Create the catalog_entry table."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "catalog_entry",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("slug", sa.String(length=128), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "is_folder", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")
        ),
        sa.Column("section", sa.String(length=32), nullable=False),
        sa.Column("content_type", sa.String(length=32), nullable=False),
        sa.Column("extension", sa.String(length=16)),
        sa.Column("file_size_bytes", sa.BigInteger()),
        sa.Column("duration_seconds", sa.Integer()),
        sa.Column("mime_type", sa.String(length=128)),
        sa.Column("metadata_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column(
            "parent_id",
            sa.String(length=32),
            sa.ForeignKey("catalog_entry.id", ondelete="SET NULL"),
        ),
        sa.Column("parent_folder_slug", sa.String(length=128)),
        sa.Column("file_path", sa.String(length=2048), nullable=False),
        sa.Column("slug_path", sa.String(length=2048), nullable=False),
        sa.Column("source_url", sa.String(length=1024)),
        sa.Column("thumbnail_ref", sa.String(length=2048)),
        sa.Column("video_preview_ref", sa.String(length=2048)),
        sa.Column(
            "is_available", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")
        ),
        sa.Column("last_synced_at", sa.DateTime()),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_catalog_entry_slug", "catalog_entry", ["slug"], unique=True)
    op.create_index("ix_catalog_entry_section", "catalog_entry", ["section"])
    op.create_index("ix_catalog_entry_parent_id", "catalog_entry", ["parent_id"])


def downgrade() -> None:
    op.drop_index("ix_catalog_entry_parent_id", table_name="catalog_entry")
    op.drop_index("ix_catalog_entry_section", table_name="catalog_entry")
    op.drop_index("ix_catalog_entry_slug", table_name="catalog_entry")
    op.drop_table("catalog_entry")
