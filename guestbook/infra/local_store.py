import fcntl
import hashlib
import os
import uuid
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import Iterator

from guestbook.infra.blobstore import (
    LinkAlreadyExists,
    ObjectNotFound,
    StorageRef,
    StoreUnavailable,
    VersionConflict,
    VersionedObject,
)

# Bookkeeping lives beside the objects but outside their namespace.
_META_DIR = ".store"


def _token(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@contextmanager
def _fs(op: str, path: str) -> Iterator[None]:
    try:
        yield
    except OSError as e:
        raise StoreUnavailable(f"local {op} failed for {path}: {type(e).__name__}") from e


class LocalBlobStore:
    """Filesystem-backed store with the same semantics as the remote one.

    Version tokens are content hashes. Every mutation holds an exclusive
    `fcntl.flock` on a sidecar lock file, so conditional writes stay atomic
    across worker processes sharing the root. Objects land via atomic rename,
    so readers never observe a partially written object.
    """

    supports_conditional_writes = True

    def __init__(self, root: Path, public_base_url: str = "http://localhost:8000/files") -> None:
        self._root = root
        self._public_base = public_base_url.rstrip("/")
        self._meta = root / _META_DIR
        with _fs("init", str(root)):
            (self._meta / "links").mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        # A fresh descriptor per acquisition, so threads of one process exclude each other too.
        with open(self._meta / "lock", "a+b") as fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _rel(self, path: str) -> PurePosixPath:
        rel = PurePosixPath(path.lstrip("/"))
        if not rel.parts or ".." in rel.parts or rel.parts[0] == _META_DIR:
            raise StoreUnavailable(f"invalid path: {path}")
        return rel

    def _file(self, path: str) -> Path:
        return self._root.joinpath(*self._rel(path).parts)

    def _link_marker(self, path: str) -> Path:
        return self._meta.joinpath("links", *self._rel(path).parts)

    def _write_atomic(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.{os.getpid()}.{uuid.uuid4().hex}.tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, target)
        finally:
            tmp.unlink(missing_ok=True)

    def _autorename(self, path: str) -> str:
        p = PurePosixPath(path)
        n = 1
        candidate = path
        while self._file(candidate).exists():
            candidate = str(p.with_name(f"{p.stem} ({n}){p.suffix}"))
            n += 1
        return candidate

    def put_object(
        self, path: str, data: bytes, *, overwrite: bool, autorename: bool, timeout: float | None = None
    ) -> StorageRef:
        with _fs("put", path), self._locked():
            if not overwrite and self._file(path).exists():
                if not autorename:
                    raise VersionConflict(path, None)
                path = self._autorename(path)
            self._write_atomic(self._file(path), data)
        return StorageRef(path=path, version_token=_token(data))

    def get_object(self, path: str, *, timeout: float | None = None) -> VersionedObject:
        f = self._file(path)
        with _fs("get", path):
            try:
                data = f.read_bytes()
            except FileNotFoundError:
                raise ObjectNotFound(path)
        return VersionedObject(data=data, version_token=_token(data))

    def put_object_if_version_matches(
        self, path: str, data: bytes, expected_token: str | None, *, timeout: float | None = None
    ) -> str:
        f = self._file(path)
        with _fs("conditional put", path), self._locked():
            current = _token(f.read_bytes()) if f.exists() else None
            if current != expected_token:
                raise VersionConflict(path, expected_token)
            self._write_atomic(f, data)
        return _token(data)

    def _url(self, path: str) -> str:
        return f"{self._public_base}/{path.lstrip('/')}"

    def create_public_link(self, path: str, *, timeout: float | None = None) -> str:
        marker = self._link_marker(path)
        with _fs("share", path), self._locked():
            if not self._file(path).is_file():
                raise ObjectNotFound(path)
            if marker.exists():
                raise LinkAlreadyExists(path, marker.read_text(encoding="utf-8"))
            url = f"{self._url(path)}?dl=0"
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.write_text(url, encoding="utf-8")
        return url

    def create_temporary_link(self, path: str, *, timeout: float | None = None) -> str:
        if not self._file(path).is_file():
            raise ObjectNotFound(path)
        return f"{self._url(path)}?dl=1"
