"""Tests for configuration settings."""
import pytest

from config.settings import Settings

pytestmark = pytest.mark.unit

ENV_VARS = [
    "OPENROUTER_API_KEY",
    "MODEL",
    "OPENROUTER_BASE_URL",
    "PORT",
    "STAN_DB_PATH",
    "STAN_PERSONA_NAME",
    "STAN_REPLY_TEMPERATURE",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove settings env vars so defaults apply."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    """Defaults match the documented configuration."""
    s = Settings(_env_file=None)

    assert s.model == "openrouter/auto"
    assert s.openrouter_base_url == "https://openrouter.ai/api/v1"
    assert s.port == 3000
    assert s.persona_name == "Stan"
    assert s.reply_temperature == 0.7
    assert s.app_title == "stan-bot"
    assert s.session_cookie == "session_id"
    assert str(s.db_path).endswith("facts.db")


def test_env_aliases(clean_env):
    """Settings are read from their environment variable names."""
    clean_env.setenv("OPENROUTER_API_KEY", "sk-or-123")
    clean_env.setenv("MODEL", "mistralai/mistral-7b-instruct")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("STAN_PERSONA_NAME", "Stanley")

    s = Settings(_env_file=None)

    assert s.openrouter_api_key == "sk-or-123"
    assert s.model == "mistralai/mistral-7b-instruct"
    assert s.port == 8080
    assert s.persona_name == "Stanley"


def test_api_key_configured(clean_env):
    assert Settings(_env_file=None).api_key_configured is False
    assert Settings(_env_file=None, openrouter_api_key="   ").api_key_configured is False
    assert Settings(_env_file=None, openrouter_api_key="sk-or-1").api_key_configured is True
