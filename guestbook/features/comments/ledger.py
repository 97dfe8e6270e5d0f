"""
Comment ledger.

A single JSON array, newest first, stored as one object. Appends run a bounded
compare-and-swap loop against the object's version token:

    Start -> Loaded -> Attempting-Write -> Committed
                            |
                            +-> Conflict -> Loaded (retry, with backoff)
                            +-> ExhaustedFailure (ConflictExhausted)

The stored object is only ever replaced whole, so readers see either the
pre-append or the post-append array.
"""
from __future__ import annotations

import json
import logging
import random
import time
from enum import Enum
from typing import Callable, NoReturn

from pydantic import ValidationError as PydanticValidationError

from guestbook.domain.deadline import Deadline, call_timeout
from guestbook.domain.models import CommentRecord
from guestbook.errors import (
    ConflictExhausted,
    DeadlineExceeded,
    LedgerCorrupt,
    UpstreamUnavailable,
)
from guestbook.infra.blobstore import BlobStore, ObjectNotFound, StoreError, VersionConflict

logger = logging.getLogger(__name__)


class AppendState(str, Enum):
    start = "start"
    loaded = "loaded"
    attempting_write = "attempting_write"
    conflict = "conflict"
    committed = "committed"
    exhausted = "exhausted"


def parse_ledger(data: bytes) -> list[CommentRecord]:
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise LedgerCorrupt(f"ledger is not valid JSON: {e}")
    if not isinstance(raw, list):
        raise LedgerCorrupt(f"ledger is a {type(raw).__name__}, expected an array")
    try:
        return [CommentRecord.model_validate(item) for item in raw]
    except PydanticValidationError as e:
        raise LedgerCorrupt(f"ledger entry failed validation: {e.error_count()} error(s)")


def serialize_ledger(records: list[CommentRecord]) -> bytes:
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2).encode("utf-8")


def _raise_store_failure(e: StoreError, stage: str, deadline: Deadline | None) -> NoReturn:
    # A call cut short by the deadline may still have committed upstream.
    if deadline is not None and deadline.expired():
        raise DeadlineExceeded(f"deadline exceeded during {stage}") from e
    raise UpstreamUnavailable(f"{stage} failed") from e


class CommentLedger:
    def __init__(
        self,
        store: BlobStore,
        path: str,
        *,
        max_attempts: int = 5,
        backoff_base: float = 0.05,
        backoff_cap: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._path = path
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._conditional = bool(getattr(store, "supports_conditional_writes", False))
        if not self._conditional:
            logger.warning(
                f"Store has no conditional writes; ledger {path} falls back to "
                "load-modify-overwrite and concurrent appends may be lost"
            )

    @property
    def path(self) -> str:
        return self._path

    def load(self, deadline: Deadline | None = None) -> tuple[list[CommentRecord], str | None]:
        try:
            obj = self._store.get_object(self._path, timeout=call_timeout(deadline))
        except ObjectNotFound:
            return [], None
        except StoreError as e:
            _raise_store_failure(e, "ledger read", deadline)
        try:
            records = parse_ledger(obj.data)
        except LedgerCorrupt as e:
            logger.warning(f"{e.code}: {e.message}; treating {self._path} as empty")
            records = []
        return records, obj.version_token

    def _backoff(self, attempt: int, deadline: Deadline | None) -> None:
        # Full jitter: uniform in [0, min(cap, base * 2^attempt)].
        delay = self._rng.uniform(0, min(self._backoff_cap, self._backoff_base * (2 ** attempt)))
        if deadline is not None:
            remaining = deadline.remaining()
            if remaining <= delay:
                raise DeadlineExceeded("deadline exceeded while backing off from a ledger conflict")
        self._sleep(delay)

    def append(self, record: CommentRecord, deadline: Deadline | None = None) -> list[CommentRecord]:
        if not self._conditional:
            return self._append_unconditional(record, deadline)

        state = AppendState.start
        for attempt in range(1, self._max_attempts + 1):
            if deadline is not None:
                deadline.check("ledger load")
            records, token = self.load(deadline)
            state = AppendState.loaded
            updated = [record, *records]

            if deadline is not None:
                deadline.check("ledger write")
            state = AppendState.attempting_write
            logger.debug(f"Ledger {self._path} attempt {attempt}: {state.value} on token {token}")
            try:
                new_token = self._store.put_object_if_version_matches(
                    self._path, serialize_ledger(updated), token, timeout=call_timeout(deadline)
                )
            except VersionConflict:
                state = AppendState.conflict
                logger.info(f"Ledger {self._path} conflict on attempt {attempt}/{self._max_attempts}")
                if attempt < self._max_attempts:
                    self._backoff(attempt, deadline)
                continue
            except StoreError as e:
                _raise_store_failure(e, "ledger write", deadline)

            state = AppendState.committed
            logger.debug(f"Ledger {self._path} {state.value} at token {new_token} ({len(updated)} records)")
            return updated

        state = AppendState.exhausted
        logger.error(f"Ledger {self._path} {state.value} after {self._max_attempts} attempts")
        raise ConflictExhausted(self._max_attempts)

    def _append_unconditional(self, record: CommentRecord, deadline: Deadline | None) -> list[CommentRecord]:
        if deadline is not None:
            deadline.check("ledger load")
        records, _ = self.load(deadline)
        updated = [record, *records]
        if deadline is not None:
            deadline.check("ledger write")
        try:
            self._store.put_object(
                self._path,
                serialize_ledger(updated),
                overwrite=True,
                autorename=False,
                timeout=call_timeout(deadline),
            )
        except StoreError as e:
            _raise_store_failure(e, "ledger write", deadline)
        return updated
