"""Database models and schema helpers."""

from .db_init import init_db
from .db_models import Base, CatalogEntryModel

__all__ = ["Base", "CatalogEntryModel", "init_db"]
