"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base declarative class."""


class CatalogEntryModel(Base):
    __tablename__ = "catalog_entry"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_folder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    section: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    extension: Mapped[str | None] = mapped_column(String(16))
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    duration_seconds: Mapped[int | None] = mapped_column(Integer)
    mime_type: Mapped[str | None] = mapped_column(String(128))
    metadata_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    parent_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("catalog_entry.id", ondelete="SET NULL"), index=True
    )
    parent_folder_slug: Mapped[str | None] = mapped_column(String(128))
    file_path: Mapped[str] = mapped_column(String(2048), nullable=False)
    slug_path: Mapped[str] = mapped_column(String(2048), nullable=False)
    source_url: Mapped[str | None] = mapped_column(String(1024))
    thumbnail_ref: Mapped[str | None] = mapped_column(String(2048))
    video_preview_ref: Mapped[str | None] = mapped_column(String(2048))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    parent: Mapped["CatalogEntryModel | None"] = relationship(
        remote_side="CatalogEntryModel.id",
        back_populates="children",
    )
    children: Mapped[list["CatalogEntryModel"]] = relationship(back_populates="parent")
