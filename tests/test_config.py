import pytest

from guestbook.config import DEFAULT_LEDGER_PATH, load_config
from guestbook.errors import ConfigError


def test_missing_token_is_a_startup_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DROPBOX_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("GUESTBOOK_STORAGE", raising=False)

    with pytest.raises(ConfigError):
        load_config()


def test_load_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GUESTBOOK_STORAGE", raising=False)
    monkeypatch.delenv("GUESTBOOK_LEDGER_PATH", raising=False)
    monkeypatch.setenv("DROPBOX_ACCESS_TOKEN", "sl.token")
    monkeypatch.setenv("GUESTBOOK_MEDIA_PREFIX", "/photos/")
    monkeypatch.setenv("GUESTBOOK_MAX_APPEND_ATTEMPTS", "7")

    cfg = load_config()

    assert cfg.storage_backend == "dropbox"
    assert cfg.access_token == "sl.token"
    assert cfg.media_prefix == "/photos"
    assert cfg.ledger_path == DEFAULT_LEDGER_PATH
    assert cfg.max_append_attempts == 7


def test_local_backend_needs_no_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DROPBOX_ACCESS_TOKEN", raising=False)
    monkeypatch.setenv("GUESTBOOK_STORAGE", "local")

    assert load_config().access_token is None


@pytest.mark.parametrize("value", ["0", "many"])
def test_bad_attempt_count_is_rejected(monkeypatch: pytest.MonkeyPatch, value: str) -> None:
    monkeypatch.setenv("GUESTBOOK_STORAGE", "local")
    monkeypatch.setenv("GUESTBOOK_MAX_APPEND_ATTEMPTS", value)

    with pytest.raises(ConfigError):
        load_config()
