import pytest
from pydantic import ValidationError

from erpbridge.app.core.config import AuthSecrets, Settings, _parse_cors_origins


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, []),
        ("", []),
        ("[]", []),
        ("*", ["*"]),
        ('["https://shop.example.com"]', ["https://shop.example.com"]),
        (
            "https://a.example.com, https://b.example.com",
            ["https://a.example.com", "https://b.example.com"],
        ),
        ("shop.example.com", ["http://shop.example.com", "https://shop.example.com"]),
        ("https://a.example.com *", ["*"]),
    ],
)
def test_parse_cors_origins(raw, expected):
    assert _parse_cors_origins(raw) == expected


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ODOO_URL", "https://erp.example.com/")
    monkeypatch.setenv("ODOO_TIMEOUT", "12")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_MS", "1500")
    monkeypatch.setenv("CORS_ORIGINS", "https://shop.example.com")

    settings = Settings(_env_file=None)

    assert settings.odoo_url == "https://erp.example.com"
    assert settings.odoo_timeout == 12.0
    assert settings.rate_limit_window_seconds == 1.5
    assert settings.cors_origins == ["https://shop.example.com"]


def test_defaults(monkeypatch):
    for name in ("RATE_LIMIT_MAX_REQUESTS", "RATE_LIMIT_WINDOW_MS", "ODOO_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.rate_limit_max_requests == 100
    assert settings.rate_limit_window_seconds == 60.0
    assert settings.odoo_timeout == 30.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"rate_limit_max_requests": 0},
        {"rate_limit_window_ms": -1},
        {"rate_limit_window_ms": 500},
        {"odoo_timeout": 0},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_auth_secrets_are_stripped(monkeypatch):
    monkeypatch.setenv("API_BEARER_TOKEN", "  token\n")
    monkeypatch.setenv("API_KEY", "   ")

    secrets = AuthSecrets(_env_file=None)

    assert secrets.api_bearer_token == "token"
    assert secrets.api_key is None
