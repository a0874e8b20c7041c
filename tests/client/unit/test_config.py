from partyrooms.client.config import load_settings

ENV_KEYS = (
    "PARTYROOMS_SUPABASE_URL",
    "PARTYROOMS_SUPABASE_ANON_KEY",
    "PARTYROOMS_DATABASE_URL",
    "PARTYROOMS_HOST",
    "PARTYROOMS_PORT",
    "PARTYROOMS_POLL_INTERVAL",
    "PARTYROOMS_SESSION_PATH",
    "PARTYROOMS_CONTENT_BASE",
    "PARTYROOMS_PUBLIC_URL",
)


def _clear_env(monkeypatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("PARTYROOMS_SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("PARTYROOMS_SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("PARTYROOMS_HOST", "localhost")
    monkeypatch.setenv("PARTYROOMS_PORT", "9000")
    monkeypatch.setenv("PARTYROOMS_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("PARTYROOMS_SESSION_PATH", "/tmp/sessions.json")

    settings = load_settings()

    assert settings.supabase_url == "https://demo.supabase.co"
    assert settings.supabase_anon_key == "anon"
    assert settings.host == "localhost"
    assert settings.port == 9000
    assert settings.poll_interval_s == 0.5
    assert settings.session_path == "/tmp/sessions.json"
    assert settings.public_url == "http://localhost:9000"
    assert settings.is_configured is True


def test_load_settings_applies_defaults(monkeypatch) -> None:
    _clear_env(monkeypatch)

    settings = load_settings()

    assert settings.supabase_url is None
    assert settings.database_url is None
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.poll_interval_s == 2.0
    assert settings.session_path is None
    assert settings.content_base is None
    assert settings.is_configured is False


def test_url_without_anon_key_is_not_configured(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("PARTYROOMS_SUPABASE_URL", "https://demo.supabase.co")

    assert load_settings().is_configured is False


def test_database_url_alone_is_configured(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("PARTYROOMS_DATABASE_URL", "postgresql://local")

    assert load_settings().is_configured is True
