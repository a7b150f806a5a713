"""Application configuration builder."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, cast

from pydantic import Field
from pydantic_settings import BaseSettings
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


def _default_media_root() -> Path:
    return Path("./var/media")


class SyncSettings(BaseSettings):
    """Pydantic settings container for a sync run."""

    model_config = cast(Any, {"env_prefix": "LIBRARYSYNC_", "env_file": ".env", "extra": "ignore"})

    database_url: str = Field(
        default="sqlite:///librarysync.db",
        description="SQLAlchemy URL of the catalog store.",
    )
    remote_base_url: str = Field(
        default="https://apis.uloz.to",
        description="Base URL of the remote file host API.",
    )
    remote_username: str = Field(default="", description="Account login on the remote host.")
    remote_password: str = Field(default="", description="Account password on the remote host.")
    remote_app_token: str = Field(
        default="",
        description="Application token sent with every remote request.",
    )
    remote_timeout_seconds: float = Field(default=30.0, ge=0.1)
    remote_max_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts per remote request before a TransientError is raised.",
    )
    remote_retry_base_delay: float = Field(default=0.6, ge=0.0)
    file_detail_delay_seconds: float = Field(
        default=0.2,
        ge=0.0,
        description="Pause between consecutive file-detail fetches during a walk.",
    )
    resolver_max_depth: int = Field(default=8, ge=1)
    walk_max_depth: int = Field(default=32, ge=1)
    mirror_concurrency: int = Field(default=5, ge=1)
    mirror_max_attempts: int = Field(default=3, ge=1)
    mirror_backoff_seconds: float = Field(default=1.0, ge=0.0)
    mirror_timeout_seconds: float = Field(default=60.0, ge=0.1)
    storage_backend: Literal["local", "s3"] = Field(default="local")
    media_root: Path = Field(
        default_factory=_default_media_root,
        description="Filesystem root used by the local object storage backend.",
    )
    s3_endpoint: str | None = Field(default=None)
    s3_bucket: str = Field(default="library-media")
    s3_region: str = Field(default="us-east-1")
    s3_access_key_id: str | None = Field(default=None)
    s3_secret_access_key: str | None = Field(default=None)


@dataclass(slots=True)
class AppConfig:
    settings: SyncSettings
    engine: Engine
    session_factory: sessionmaker[Session]


def load_config(settings: SyncSettings | None = None) -> AppConfig:
    """Load configuration from environment and prepare the catalog store."""
    resolved = settings or SyncSettings()
    engine = create_engine(resolved.database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(
        settings=resolved,
        engine=engine,
        session_factory=session_factory,
    )


__all__ = ["AppConfig", "SyncSettings", "load_config"]
