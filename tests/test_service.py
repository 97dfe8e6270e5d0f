from pathlib import Path

import pytest

from fakes import BrokenUploadStore, NoLinksStore, RecordingStore
from guestbook.domain.models import DEFAULT_AUTHOR, CommentInput, MediaPayload
from guestbook.errors import UpstreamUnavailable, ValidationError
from guestbook.features.comments.ledger import CommentLedger
from guestbook.features.comments.links import LinkResolver
from guestbook.features.comments.media import MediaUploader
from guestbook.features.comments.service import CommentService

LEDGER = "/komentar-web/comments.json"


def _service(store) -> CommentService:
    return CommentService(
        uploader=MediaUploader(store, "/komentar-web/media"),
        resolver=LinkResolver(store),
        ledger=CommentLedger(store, LEDGER),
    )


@pytest.mark.parametrize("body", ["", "   \n\t"])
def test_empty_body_fails_without_network_calls(store, body: str) -> None:
    recording = RecordingStore(store)
    data = CommentInput(author="Ani", body=body, media=MediaPayload(data=b"img", filename="a.jpg"))

    with pytest.raises(ValidationError) as exc:
        _service(recording).submit(data)

    assert exc.value.code == "empty_body"
    assert recording.calls == []


def test_submit_without_media(store) -> None:
    record = _service(store).submit(CommentInput(body="Mantap!", rating=5))

    assert record.author == DEFAULT_AUTHOR
    assert record.rating == 5
    assert record.media_url is None
    assert record.media_path is None
    assert record.created_at


def test_submit_with_media_uploads_then_links_then_appends(store) -> None:
    recording = RecordingStore(store)
    data = CommentInput(author="Budi", body="Nice", rating=4, media=MediaPayload(data=b"jpeg", filename="me.jpg"))

    record = _service(recording).submit(data)

    assert recording.calls == [
        "put_object",
        "create_public_link",
        "get_object",
        "put_object_if_version_matches",
    ]
    assert record.media_path is not None and record.media_path.endswith("_me.jpg")
    assert record.media_url is not None and record.media_url.endswith("?raw=1")
    assert store.get_object(record.media_path).data == b"jpeg"
    assert _service(store).list_comments() == [record]


def test_unresolvable_link_still_appends_with_null_media_url(tmp_path: Path) -> None:
    store = NoLinksStore(tmp_path)
    data = CommentInput(body="hello", media=MediaPayload(data=b"jpeg", filename="me.jpg"))

    record = _service(store).submit(data)

    assert record.media_url is None
    assert record.media_path is not None
    assert _service(store).list_comments() == [record]


def test_failed_upload_never_touches_ledger(tmp_path: Path) -> None:
    recording = RecordingStore(BrokenUploadStore(tmp_path))
    data = CommentInput(body="hello", media=MediaPayload(data=b"jpeg", filename="me.jpg"))

    with pytest.raises(UpstreamUnavailable):
        _service(recording).submit(data)

    assert recording.calls == ["put_object"]


def test_out_of_range_rating_is_clamped(store) -> None:
    record = _service(store).submit(CommentInput(body="wow", rating=11))
    assert record.rating == 5


def test_sequential_submissions_are_newest_first(store) -> None:
    svc = _service(store)
    a = svc.submit(CommentInput(author="A", body="one"))
    b = svc.submit(CommentInput(author="B", body="two"))

    assert svc.list_comments() == [b, a]
