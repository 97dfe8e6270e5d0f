import os
from dataclasses import dataclass
from pathlib import Path

from guestbook.errors import ConfigError

DEFAULT_LEDGER_PATH = "/komentar-web/comments.json"
DEFAULT_MEDIA_PREFIX = "/komentar-web/media"


@dataclass(frozen=True)
class AppConfig:
    storage_backend: str = "dropbox"
    access_token: str | None = None
    data_dir: Path = Path("data")
    ledger_path: str = DEFAULT_LEDGER_PATH
    media_prefix: str = DEFAULT_MEDIA_PREFIX
    max_append_attempts: int = 5
    submit_timeout: float = 20.0
    http_timeout: float = 10.0
    log_level: str = "INFO"

    @property
    def blobs_dir(self) -> Path:
        return self.data_dir / "blobs"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def load_config() -> AppConfig:
    """Read process configuration once at startup.

    The access token is only required for the dropbox backend; its absence is
    a startup error, never a per-request one.
    """

    backend = (os.getenv("GUESTBOOK_STORAGE") or "dropbox").strip().lower()
    if backend not in ("dropbox", "local"):
        raise ConfigError(f"unknown storage backend: {backend}")

    token = os.getenv("DROPBOX_ACCESS_TOKEN") or None
    if backend == "dropbox" and not token:
        raise ConfigError("DROPBOX_ACCESS_TOKEN is not set")

    attempts = _env_int("GUESTBOOK_MAX_APPEND_ATTEMPTS", 5)
    if attempts < 1:
        raise ConfigError("GUESTBOOK_MAX_APPEND_ATTEMPTS must be at least 1")

    return AppConfig(
        storage_backend=backend,
        access_token=token,
        data_dir=Path(os.getenv("GUESTBOOK_DATA_DIR") or "data"),
        ledger_path=os.getenv("GUESTBOOK_LEDGER_PATH") or DEFAULT_LEDGER_PATH,
        media_prefix=(os.getenv("GUESTBOOK_MEDIA_PREFIX") or DEFAULT_MEDIA_PREFIX).rstrip("/"),
        max_append_attempts=attempts,
        submit_timeout=_env_float("GUESTBOOK_SUBMIT_TIMEOUT", 20.0),
        http_timeout=_env_float("GUESTBOOK_HTTP_TIMEOUT", 10.0),
        log_level=(os.getenv("GUESTBOOK_LOG_LEVEL") or "INFO").upper(),
    )
