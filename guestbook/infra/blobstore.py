from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class StorageRef:
    path: str
    version_token: str | None = None


@dataclass(frozen=True)
class VersionedObject:
    data: bytes
    version_token: str


class StoreError(Exception):
    pass


class ObjectNotFound(StoreError):
    def __init__(self, path: str) -> None:
        super().__init__(f"object not found: {path}")
        self.path = path


class VersionConflict(StoreError):
    def __init__(self, path: str, expected_token: str | None) -> None:
        super().__init__(f"version conflict on {path} (expected {expected_token})")
        self.path = path
        self.expected_token = expected_token


class LinkAlreadyExists(StoreError):
    def __init__(self, path: str, url: str) -> None:
        super().__init__(f"shared link already exists for {path}")
        self.path = path
        self.url = url


class StoreUnavailable(StoreError):
    """Network failure, 5xx, or any response the adapter cannot interpret."""


class BlobStore(Protocol):
    """Object store contract.

    `timeout` caps a single call in seconds; `None` means the store's default.
    """

    supports_conditional_writes: bool

    def put_object(
        self, path: str, data: bytes, *, overwrite: bool, autorename: bool, timeout: float | None = None
    ) -> StorageRef: ...

    def get_object(self, path: str, *, timeout: float | None = None) -> VersionedObject: ...

    def put_object_if_version_matches(
        self, path: str, data: bytes, expected_token: str | None, *, timeout: float | None = None
    ) -> str:
        """Replace `path` only if its current token equals `expected_token`.

        `expected_token=None` means the object must not exist yet. Returns the
        new version token; raises VersionConflict otherwise.
        """
        ...

    def create_public_link(self, path: str, *, timeout: float | None = None) -> str: ...

    def create_temporary_link(self, path: str, *, timeout: float | None = None) -> str: ...
