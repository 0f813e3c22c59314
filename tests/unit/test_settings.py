from pathlib import Path

import pytest

from pdf_shrinker.settings import Settings

_VARS = [
    "HOST", "PORT", "INCOMING_DIR", "OUTGOING_DIR", "LOGS_DIR", "MAX_DOCUMENT_SIZE",
    "CHUNK_SIZE", "REWRITE_ENGINE", "OBJECT_STREAMS", "LINEARIZE", "CORS_ORIGINS", "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettingsDefaults:
    def test_default_port(self) -> None:
        assert Settings.from_env().port == 5000

    def test_default_storage_dirs(self) -> None:
        s = Settings.from_env()
        assert s.incoming_dir == Path("uploads")
        assert s.outgoing_dir == Path("compressed")

    def test_default_rewrite_options(self) -> None:
        s = Settings.from_env()
        assert s.rewrite_engine == "pikepdf"
        assert s.object_streams == "disable"
        assert s.linearize is True

    def test_default_max_document_size(self) -> None:
        assert Settings.from_env().max_document_size == 100 * 1024 * 1024

    def test_default_cors_allows_any_origin(self) -> None:
        assert Settings.from_env().cors_origins == ("*",)


class TestSettingsFromEnv:
    def test_loads_port(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "8080")
        assert Settings.from_env().port == 8080

    def test_bad_int_falls_back_to_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "not_a_number")
        assert Settings.from_env().port == 5000

    def test_loads_dirs(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("INCOMING_DIR", str(tmp_path / "in"))
        monkeypatch.setenv("OUTGOING_DIR", str(tmp_path / "out"))
        s = Settings.from_env()
        assert s.incoming_dir == tmp_path / "in"
        assert s.outgoing_dir == tmp_path / "out"

    def test_engine_is_lowercased(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REWRITE_ENGINE", "PyMuPDF")
        assert Settings.from_env().rewrite_engine == "pymupdf"

    @pytest.mark.parametrize("raw,expected", [("false", False), ("0", False), ("yes", True), ("junk", True)])
    def test_linearize_flag(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("LINEARIZE", raw)
        assert Settings.from_env().linearize is expected

    def test_cors_origins_are_split(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://example.com ,")
        assert Settings.from_env().cors_origins == ("http://localhost:3000", "https://example.com")
