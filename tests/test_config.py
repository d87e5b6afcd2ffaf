import pytest
from pydantic import ValidationError

from fieldsign.config import Settings


class TestSettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FIELDSIGN_LOG_LEVEL", "debug")
        monkeypatch.setenv("FIELDSIGN_PAGE_BOUND", "100")
        settings = Settings()
        assert settings.log_level == "DEBUG"
        assert settings.page_bound == 100

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")

    def test_postgres_url_normalized(self):
        settings = Settings(database_url="postgres://user:pw@db:5432/fieldsign")
        assert settings.database_url == "postgresql://user:pw@db:5432/fieldsign"
        assert not settings.is_sqlite

    def test_page_bound_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(page_bound=0)


class TestRunHook:
    def test_main_serves_app_with_settings(self, monkeypatch):
        from fieldsign import __main__ as entry

        calls = []
        monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))
        monkeypatch.setattr(entry.settings, "port", 9001)

        entry.main()

        app, kwargs = calls[0]
        assert app == "fieldsign.main:app"
        assert kwargs["port"] == 9001
        assert kwargs["log_level"] == entry.settings.log_level.lower()
