from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class StorageError(Exception):
    """Base error raised by key-value media.

    ``cause`` keeps the underlying driver/OS exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class StorageQuotaError(StorageError):
    """The medium refused a write because its capacity would be exceeded."""


class StorageUnavailableError(StorageError):
    """The medium cannot be reached or accessed at all."""


class KeyValueMedium(Protocol):
    """Minimal host key-value medium: string keys, string values.

    Keep this tiny and stable so media can be swapped without touching the
    store. Implementations raise ``StorageError`` subclasses, never driver
    specific exceptions.
    """

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    def set(self, key: str, value: str) -> None:
        """Store value under key. Raises StorageQuotaError when full."""

    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""

    def keys(self) -> Iterable[str]:
        """Every key currently held by the medium."""

    def is_available(self) -> bool:
        """Cheap availability check used for diagnostics."""


__all__ = [
    "KeyValueMedium",
    "StorageError",
    "StorageQuotaError",
    "StorageUnavailableError",
]
