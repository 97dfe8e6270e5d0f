import logging
import re
from datetime import datetime, timezone
from pathlib import PurePosixPath

from guestbook.domain.deadline import Deadline, call_timeout
from guestbook.errors import DeadlineExceeded, UpstreamUnavailable, ValidationError
from guestbook.infra.blobstore import BlobStore, StorageRef, StoreError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"
MAX_NAME_LENGTH = 100

_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(original_name: str) -> str:
    """Reduce a user-supplied filename to `[A-Za-z0-9._-]`.

    Directory components are dropped, whitespace becomes `_`, leading dots are
    stripped, and a name without an extension gets `.jpg`.
    """

    name = PurePosixPath((original_name or "").replace("\\", "/")).name
    name = _WHITESPACE.sub("_", name.strip())
    name = _UNSAFE.sub("", name).lstrip(".")
    if not name:
        name = "upload"
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        name = f"{name}{DEFAULT_EXTENSION}"
    if len(name) > MAX_NAME_LENGTH:
        suffix = PurePosixPath(name).suffix[:16]
        name = name[: MAX_NAME_LENGTH - len(suffix)] + suffix
    return name


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


class MediaUploader:
    def __init__(self, store: BlobStore, prefix: str) -> None:
        self._store = store
        self._prefix = prefix.rstrip("/")

    def build_path(self, original_name: str) -> str:
        return f"{self._prefix}/{_timestamp()}_{sanitize_filename(original_name)}"

    def upload(self, data: bytes, original_name: str, deadline: Deadline | None = None) -> StorageRef:
        if not data:
            raise ValidationError("media payload is empty", code="empty_media")
        path = self.build_path(original_name)
        try:
            ref = self._store.put_object(
                path, data, overwrite=False, autorename=True, timeout=call_timeout(deadline)
            )
        except StoreError as e:
            logger.error(f"Media upload to {path} failed: {e}")
            if deadline is not None and deadline.expired():
                raise DeadlineExceeded("deadline exceeded during media upload") from e
            raise UpstreamUnavailable("media upload failed") from e
        if ref.path != path:
            logger.info(f"Media path collision, store renamed {path} -> {ref.path}")
        logger.info(f"Uploaded {len(data)} bytes to {ref.path}")
        return ref
