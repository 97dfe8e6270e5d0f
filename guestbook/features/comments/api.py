import base64
import binascii
import mimetypes
from typing import Any

from fastapi import APIRouter, File, Form, Request, UploadFile
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from guestbook.domain.deadline import Deadline
from guestbook.domain.models import CommentInput, CommentRecord, MediaPayload
from guestbook.errors import ValidationError
from guestbook.features.comments.service import CommentService

router = APIRouter(prefix="/api", tags=["comments"])


class LegacyUpload(BaseModel):
    name: str | None = None
    comment: str | None = None
    rating: int | None = None
    file: str | None = None


def _service(request: Request) -> CommentService:
    return request.app.state.comments


def _deadline(request: Request) -> Deadline:
    return Deadline.after(request.app.state.cfg.submit_timeout)


def _build_input(**fields: Any) -> CommentInput:
    try:
        return CommentInput(**fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc") or [])
        raise ValidationError(f"{loc}: {first.get('msg') or 'invalid'}")


def _decode_data_url(value: str, name: str | None) -> MediaPayload:
    header, sep, payload = value.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValidationError("file must be a base64 data URL", code="invalid_file")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("file is not valid base64", code="invalid_file")
    mime = header[len("data:") :].split(";", 1)[0] or None
    ext = (mimetypes.guess_extension(mime) if mime else None) or ".jpg"
    return MediaPayload(data=data, filename=f"{name or 'upload'}{ext}", content_type=mime)


def _created(record: CommentRecord) -> dict[str, object]:
    # Position is where the record landed at commit time; later appends shift it.
    return {"success": True, "position": 0, "comment": record.to_dict()}


@router.get("/comments")
def list_comments(request: Request) -> dict[str, object]:
    records = _service(request).list_comments()
    return {"comments": [r.to_dict() for r in records]}


@router.post("/comments", status_code=201)
def create_comment(
    request: Request,
    author: str | None = Form(None),
    body: str = Form(""),
    rating: int | None = Form(None),
    file: UploadFile | None = File(None),
) -> dict[str, object]:
    media = None
    if file is not None and file.filename:
        media = MediaPayload(data=file.file.read(), filename=file.filename, content_type=file.content_type)
    data = _build_input(author=author, body=body, rating=rating, media=media)
    record = _service(request).submit(data, deadline=_deadline(request))
    return _created(record)


@router.post("/upload", status_code=201)
def legacy_upload(request: Request, payload: LegacyUpload) -> dict[str, object]:
    media = _decode_data_url(payload.file, payload.name) if payload.file else None
    data = _build_input(author=payload.name, body=payload.comment or "", rating=payload.rating, media=media)
    record = _service(request).submit(data, deadline=_deadline(request))
    return _created(record)
