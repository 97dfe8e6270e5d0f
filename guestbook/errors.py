from __future__ import annotations


class GuestbookError(Exception):
    """Base error carrying a stable code and the HTTP status it maps to."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code is not None:
            self.code = code


class ConfigError(GuestbookError):
    code = "config_error"


class ValidationError(GuestbookError):
    code = "validation_error"
    status_code = 400


class UpstreamUnavailable(GuestbookError):
    code = "upstream_unavailable"
    status_code = 502


class ConflictExhausted(GuestbookError):
    code = "conflict_exhausted"
    status_code = 409

    def __init__(self, attempts: int) -> None:
        super().__init__(f"ledger append gave up after {attempts} conflicting attempts")
        self.attempts = attempts


class DeadlineExceeded(GuestbookError):
    code = "deadline_exceeded"
    status_code = 504


class MediaLinkUnresolved(GuestbookError):
    # Logged only; the record is kept with a null media reference.
    code = "media_link_unresolved"


class LedgerCorrupt(GuestbookError):
    # Logged only; the ledger reads as empty.
    code = "ledger_corrupt"
