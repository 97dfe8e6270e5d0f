import logging
from urllib.parse import urlsplit, urlunsplit

from guestbook.domain.deadline import Deadline, call_timeout
from guestbook.errors import MediaLinkUnresolved
from guestbook.infra.blobstore import BlobStore, LinkAlreadyExists, StorageRef, StoreError

logger = logging.getLogger(__name__)


def normalize_media_url(url: str) -> str:
    """Rewrite a share URL so it serves the raw bytes instead of a viewer page.

    `dl=0` becomes `raw=1`; `dl=1` and `raw=1` are already direct and pass
    through unchanged; any other `dl`/`raw` value is dropped and `raw=1`
    appended.
    """

    parts = urlsplit(url)
    segments = [s for s in parts.query.split("&") if s]
    flags = [s.partition("=")[::2] for s in segments]

    if ("raw", "1") in flags or ("dl", "1") in flags:
        return url
    # Untouched segments are kept byte-for-byte; only dl/raw are replaced.
    kept = [s for s, (k, _) in zip(segments, flags) if k not in ("dl", "raw")]
    kept.append("raw=1")
    return urlunsplit(parts._replace(query="&".join(kept)))


class LinkResolver:
    def __init__(self, store: BlobStore) -> None:
        self._store = store

    def _shared_link(self, path: str, timeout: float | None) -> str:
        try:
            return self._store.create_public_link(path, timeout=timeout)
        except LinkAlreadyExists as e:
            logger.debug(f"Reusing existing shared link for {path}")
            return e.url

    def _resolve_chain(self, path: str, deadline: Deadline | None) -> str:
        try:
            return self._shared_link(path, call_timeout(deadline))
        except StoreError as e:
            logger.info(f"Shared link for {path} failed ({e}), trying temporary link")
        try:
            if deadline is not None and deadline.expired():
                raise StoreError("deadline reached before temporary link")
            return self._store.create_temporary_link(path, timeout=call_timeout(deadline))
        except StoreError as e:
            raise MediaLinkUnresolved(f"no link could be created for {path}") from e

    def resolve(self, ref: StorageRef, deadline: Deadline | None = None) -> str | None:
        try:
            url = self._resolve_chain(ref.path, deadline)
        except MediaLinkUnresolved as e:
            logger.warning(f"{e.code}: {e.message}")
            return None
        return normalize_media_url(url)
