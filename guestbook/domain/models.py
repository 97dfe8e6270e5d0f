from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Anonim"
MIN_RATING = 0
MAX_RATING = 5


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class MediaPayload:
    data: bytes
    filename: str
    content_type: str | None = None


class CommentInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    author: str | None = Field(default=None, max_length=200)
    body: str = Field(max_length=4000)
    rating: int | None = None
    media: MediaPayload | None = None


class CommentRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    author: str = DEFAULT_AUTHOR
    body: str = Field(min_length=1)
    rating: int = 0
    media_url: str | None = None
    media_path: str | None = None
    created_at: str

    @field_validator("author", mode="before")
    @classmethod
    def _default_author(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_AUTHOR
        return v.strip() if isinstance(v, str) else v

    @field_validator("rating", mode="before")
    @classmethod
    def _default_rating(cls, v: object) -> object:
        return 0 if v is None else v

    @field_validator("rating")
    @classmethod
    def _clamp_rating(cls, v: int) -> int:
        if MIN_RATING <= v <= MAX_RATING:
            return v
        clamped = max(MIN_RATING, min(MAX_RATING, v))
        logger.warning(f"Rating {v} outside {MIN_RATING}..{MAX_RATING}, stored as {clamped}")
        return clamped

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()
