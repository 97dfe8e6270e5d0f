import logging

import pytest

from fakes import NoLinksStore
from guestbook.features.comments.links import LinkResolver, normalize_media_url
from guestbook.infra.blobstore import StorageRef, StoreError
from guestbook.infra.local_store import LocalBlobStore


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.dropbox.com/s/abc/x?dl=0", "https://www.dropbox.com/s/abc/x?raw=1"),
        ("https://www.dropbox.com/s/abc/x?dl=1", "https://www.dropbox.com/s/abc/x?dl=1"),
        ("https://www.dropbox.com/s/abc/x?raw=1", "https://www.dropbox.com/s/abc/x?raw=1"),
        ("https://www.dropbox.com/s/abc/x", "https://www.dropbox.com/s/abc/x?raw=1"),
        (
            "https://www.dropbox.com/scl/fi/abc/x.jpg?rlkey=k1&dl=0",
            "https://www.dropbox.com/scl/fi/abc/x.jpg?rlkey=k1&raw=1",
        ),
    ],
)
def test_normalize_media_url(url: str, expected: str) -> None:
    assert normalize_media_url(url) == expected


def test_resolve_uses_fresh_shared_link(store: LocalBlobStore) -> None:
    ref = store.put_object("/media/a.jpg", b"img", overwrite=False, autorename=True)

    url = LinkResolver(store).resolve(ref)

    assert url is not None
    assert url.endswith("/media/a.jpg?raw=1")


def test_resolve_reuses_existing_shared_link(store: LocalBlobStore) -> None:
    ref = store.put_object("/media/a.jpg", b"img", overwrite=False, autorename=True)
    first = LinkResolver(store).resolve(ref)

    second = LinkResolver(store).resolve(ref)

    assert second == first


class _SharedLinkFails(LocalBlobStore):
    def create_public_link(self, path: str, *, timeout: float | None = None) -> str:
        raise StoreError("settings_error")


def test_resolve_falls_back_to_temporary_link(tmp_path) -> None:
    store = _SharedLinkFails(tmp_path)
    ref = store.put_object("/media/a.jpg", b"img", overwrite=False, autorename=True)

    url = LinkResolver(store).resolve(ref)

    # Temporary links are already direct downloads.
    assert url is not None
    assert url.endswith("/media/a.jpg?dl=1")


def test_resolve_returns_none_when_every_link_fails(tmp_path, caplog: pytest.LogCaptureFixture) -> None:
    store = NoLinksStore(tmp_path)

    with caplog.at_level(logging.WARNING):
        url = LinkResolver(store).resolve(StorageRef(path="/media/a.jpg"))

    assert url is None
    assert "media_link_unresolved" in caplog.text


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://host/x?raw=0", "https://host/x?raw=1"),
        ("https://host/x?foo&dl=0", "https://host/x?foo&raw=1"),
        ("https://host/x?a=%20b&raw=0&dl=0", "https://host/x?a=%20b&raw=1"),
    ],
)
def test_normalize_replaces_stale_flags_and_keeps_other_segments(url: str, expected: str) -> None:
    assert normalize_media_url(url) == expected
