"""
Object storage adapter interface.

Lesson content lives in an external object store keyed by provider. The
core only records metadata; adapters for the concrete providers implement
``StorageAdapter`` and report failures as ``StorageError``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from lms.errors import ProviderError
from lms.models import StorageProvider


class StorageError(ProviderError):
    """
    Failure reported by a storage provider.

    Attributes:
        provider: Provider that failed
        code: unauthorized, not_found, rate_limited, invalid_request or provider_error
        status: Upstream HTTP status, if any
        details: Raw upstream error payload, never sent to clients
    """

    default_code = "provider_error"

    def __init__(
        self,
        provider: str,
        message: str,
        code: str | None = None,
        status: int | None = None,
        details: Any = None,
    ):
        super().__init__(message, code=code)
        self.provider = provider
        self.status = status
        self.details = details


def map_http_error(provider: str, status: int, details: Any = None) -> StorageError:
    """Translate an upstream HTTP status into a ``StorageError``."""
    if status in (401, 403):
        return StorageError(provider, f"{provider} authorization failed", "unauthorized", status, details)
    if status == 404:
        return StorageError(provider, f"{provider} file not found", "not_found", status, details)
    if status == 429:
        return StorageError(provider, f"{provider} rate limited", "rate_limited", status, details)
    if 400 <= status < 500:
        return StorageError(provider, f"{provider} request rejected", "invalid_request", status, details)
    return StorageError(provider, f"{provider} internal error", "provider_error", status, details)


@dataclass(frozen=True)
class UploadResult:
    provider: StorageProvider
    key: str
    file_id: str
    size: int


@dataclass(frozen=True)
class DownloadResult:
    provider: StorageProvider
    key: str
    file_id: str
    content: bytes
    content_type: str


@dataclass(frozen=True)
class DeleteResult:
    provider: StorageProvider
    key: str
    deleted: bool


@dataclass(frozen=True)
class ObjectMetadata:
    provider: StorageProvider
    key: str
    file_id: str
    content_type: str
    size: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@runtime_checkable
class StorageAdapter(Protocol):
    provider: StorageProvider

    async def upload_object(self, key: str, content: bytes, content_type: str) -> UploadResult: ...

    async def download_object(self, key: str) -> DownloadResult: ...

    async def delete_object(self, key: str) -> DeleteResult: ...

    async def get_metadata(self, key: str) -> ObjectMetadata: ...
