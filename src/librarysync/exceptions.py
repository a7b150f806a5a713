"""Error taxonomy shared by the remote client, catalog and mirror queue."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "LibrarySyncError",
    "AuthError",
    "ResolutionError",
    "NotFoundError",
    "TransientError",
    "ExpiredLinkError",
    "UploadError",
    "ValidationError",
    "CatalogError",
    "CatalogIntegrityError",
    "handle_sqlalchemy_errors",
]


class LibrarySyncError(Exception):
    """Base class for application specific errors."""


class AuthError(LibrarySyncError):
    """Raised when the remote host rejects credentials or the session token."""


class ResolutionError(LibrarySyncError):
    """Raised when a configured folder reference cannot be located remotely."""

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Folder '{reference}' was not found in the remote account")


class NotFoundError(LibrarySyncError):
    """Raised when a remote folder or file no longer exists."""


class TransientError(LibrarySyncError):
    """Raised for failures that may succeed when retried later."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ExpiredLinkError(TransientError):
    """Raised when a transient preview link was rejected by the remote host."""


class UploadError(LibrarySyncError):
    """Raised when object storage refuses or fails to persist a payload."""


class ValidationError(LibrarySyncError):
    """Raised for malformed section configuration."""


class CatalogError(LibrarySyncError):
    """Base class for catalog persistence failures."""


class CatalogIntegrityError(CatalogError):
    """Raised when a catalog invariant or database constraint is violated."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


def _translate_sqlalchemy_error(exc: Exception, *, context: _EntityContext) -> CatalogError:
    if isinstance(exc, sa_exc.IntegrityError):
        return CatalogIntegrityError(context.format("integrity constraint violated"))
    if isinstance(exc, sa_exc.DBAPIError):
        return CatalogError(context.format("database operation failed"))
    return CatalogError(context.format(str(exc)))


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into catalog specific ones."""

    context = _EntityContext(entity)
    try:
        yield
    except (sa_exc.IntegrityError, sa_exc.DBAPIError) as exc:
        raise _translate_sqlalchemy_error(exc, context=context) from exc
