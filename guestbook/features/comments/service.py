import logging

from guestbook.domain.deadline import Deadline
from guestbook.domain.models import CommentInput, CommentRecord, utc_now_iso
from guestbook.errors import ValidationError
from guestbook.features.comments.ledger import CommentLedger
from guestbook.features.comments.links import LinkResolver
from guestbook.features.comments.media import MediaUploader

logger = logging.getLogger(__name__)


class CommentService:
    def __init__(self, *, uploader: MediaUploader, resolver: LinkResolver, ledger: CommentLedger) -> None:
        self._uploader = uploader
        self._resolver = resolver
        self._ledger = ledger

    def submit(self, data: CommentInput, deadline: Deadline | None = None) -> CommentRecord:
        """Upload media (if any), resolve its link, and append one record.

        Validation and upload failures abort before the ledger is touched. A
        media link that cannot be resolved is not fatal: the record is stored
        with `media_url=None`.
        """

        body = (data.body or "").strip()
        if not body:
            raise ValidationError("comment body is required", code="empty_body")
        if data.media is not None and not data.media.data:
            raise ValidationError("media payload is empty", code="empty_media")

        media_url: str | None = None
        media_path: str | None = None
        if data.media is not None:
            if deadline is not None:
                deadline.check("media upload")
            ref = self._uploader.upload(data.media.data, data.media.filename, deadline=deadline)
            media_path = ref.path
            if deadline is not None:
                deadline.check("link resolution")
            media_url = self._resolver.resolve(ref, deadline=deadline)

        record = CommentRecord(
            author=data.author,
            body=body,
            rating=data.rating,
            media_url=media_url,
            media_path=media_path,
            created_at=utc_now_iso(),
        )
        self._ledger.append(record, deadline=deadline)
        logger.info(f"Appended comment by {record.author!r} (media={'yes' if media_path else 'no'})")
        return record

    def list_comments(self) -> list[CommentRecord]:
        records, _ = self._ledger.load()
        return records
