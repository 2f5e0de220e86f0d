"""Tests for configuration helpers."""

import os
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from enhancement_tracker import config  # noqa: E402

REQUIRED = ("DATABASE_URL", "SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")


def _seed_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///local.db")
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:5173, https://tracker.example.com ,")
    monkeypatch.delenv("SLACK_SIGNING_SECRET", raising=False)
    monkeypatch.delenv("REQUEST_ID_PREFIX", raising=False)
    config.get_settings.cache_clear()


def test_get_settings_parses_expected_fields(monkeypatch):
    _seed_env(monkeypatch)

    settings = config.get_settings()

    assert settings.database_url == "sqlite:///local.db"
    assert settings.supabase_url == "https://project.supabase.co"
    assert settings.supabase_service_role_key == "service-role-key"
    assert settings.allowed_origins == ["http://localhost:5173", "https://tracker.example.com"]
    assert settings.slack_signing_secret is None
    assert settings.request_id_prefix == "REQ"
    assert settings.api_rate_limit == 100
    assert settings.api_rate_window_seconds == 900
    assert settings.auth_rate_limit == 20
    assert settings.slack_rate_limit == 60
    assert settings.slack_rate_window_seconds == 60
    assert settings.trusted_proxy_hops == 0


def test_blank_signing_secret_is_treated_as_unset(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "   ")
    config.get_settings.cache_clear()

    assert config.get_settings().slack_signing_secret is None


def test_missing_environment_variables_raise_runtime_error(monkeypatch):
    for var in REQUIRED:
        monkeypatch.delenv(var, raising=False)
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    message = str(err.value)
    for var in REQUIRED:
        assert var in message


def test_non_positive_rate_limit_is_rejected(monkeypatch):
    _seed_env(monkeypatch)
    monkeypatch.setenv("API_RATE_LIMIT", "0")
    config.get_settings.cache_clear()

    with pytest.raises(RuntimeError) as err:
        config.get_settings()

    assert "API_RATE_LIMIT" in str(err.value)
    monkeypatch.delenv("API_RATE_LIMIT")
    config.get_settings.cache_clear()


def test_load_local_env_reads_env_local_without_overriding(monkeypatch, tmp_path):
    (tmp_path / "env.local").write_text(
        "SUPABASE_URL=https://from-file.supabase.co\nREQUEST_ID_PREFIX=ENH\n",
        encoding="utf-8",
    )
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.setenv("SUPABASE_URL", "https://from-shell.supabase.co")
    monkeypatch.delenv("REQUEST_ID_PREFIX", raising=False)

    config.load_local_env(tmp_path)

    assert os.environ["SUPABASE_URL"] == "https://from-shell.supabase.co"
    assert os.environ["REQUEST_ID_PREFIX"] == "ENH"
    monkeypatch.delenv("REQUEST_ID_PREFIX")


def test_load_local_env_skipped_in_production(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("REQUEST_ID_PREFIX=ENH\n", encoding="utf-8")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("REQUEST_ID_PREFIX", raising=False)

    config.load_local_env(tmp_path)

    assert "REQUEST_ID_PREFIX" not in os.environ
