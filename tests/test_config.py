import pytest

from docsync.config import SyncSettings
from docsync.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in [
        "DOCSYNC_ROOT",
        "DOCSYNC_WORKERS",
        "DOCSYNC_CHUNK_SIZE",
        "DOCSYNC_CHUNK_OVERLAP",
        "DOCSYNC_CUTOFF_MODE",
        "EMBEDDING_MODEL",
        "OPENROUTER_API_KEY",
        "OPENAI_API_KEY",
    ]:
        monkeypatch.delenv(name, raising=False)


class TestSyncSettings:
    def test_defaults(self) -> None:
        settings = SyncSettings.from_env()
        assert settings.chunk_size == 1000
        assert settings.chunk_overlap == 200
        assert settings.min_content_chars == 50
        assert settings.lookback_days == 30
        assert settings.cutoff_mode == "global"
        assert settings.embedding_dimensions == 3072

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCSYNC_ROOT", "/srv/docs")
        monkeypatch.setenv("DOCSYNC_WORKERS", "8")
        monkeypatch.setenv("DOCSYNC_CUTOFF_MODE", "per_document")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        settings = SyncSettings.from_env()
        assert settings.root == "/srv/docs"
        assert settings.workers == 8
        assert settings.cutoff_mode == "per_document"
        assert settings.api_key == "sk-test"

    def test_openrouter_key_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert SyncSettings.from_env().api_key == "or-key"

    def test_none_overrides_are_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCSYNC_WORKERS", "8")
        assert SyncSettings.from_env(workers=None).workers == 8
        assert SyncSettings.from_env(workers=2).workers == 2

    def test_overlap_must_be_smaller_than_chunk(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCSYNC_CHUNK_SIZE", "100")
        monkeypatch.setenv("DOCSYNC_CHUNK_OVERLAP", "100")
        with pytest.raises(ConfigError, match="chunk_overlap"):
            SyncSettings.from_env()

    def test_bad_cutoff_mode(self) -> None:
        with pytest.raises(ConfigError):
            SyncSettings.from_env(cutoff_mode="sometimes")

    def test_unknown_model_has_no_dimensions(self) -> None:
        settings = SyncSettings.from_env(embedding_model="my-model")
        with pytest.raises(ConfigError, match="Unknown model"):
            settings.embedding_dimensions
