"""
Stan Chat Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Server
    port: int = Field(default=3000, alias="PORT")
    host: str = Field(default="0.0.0.0", alias="STAN_HOST")
    public_dir: Path = Field(
        default=Path("./public"),
        alias="STAN_PUBLIC_DIR",
        description="Static chat page served at /"
    )

    # OpenRouter (no prefix - same env var names the old Node server used)
    openrouter_api_key: str = Field(default="", alias="OPENROUTER_API_KEY")
    model: str = Field(default="openrouter/auto", alias="MODEL")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        alias="OPENROUTER_BASE_URL"
    )
    openrouter_timeout: float = Field(default=30.0, alias="OPENROUTER_TIMEOUT")
    openrouter_max_retries: int = Field(default=2, alias="OPENROUTER_MAX_RETRIES")

    # Sent as HTTP-Referer / X-Title so OpenRouter can attribute traffic
    app_url: str = Field(default="http://localhost", alias="STAN_APP_URL")
    app_title: str = Field(default="stan-bot", alias="STAN_APP_TITLE")

    # Persona
    persona_name: str = Field(default="Stan", alias="STAN_PERSONA_NAME")
    reply_temperature: float = Field(default=0.7, alias="STAN_REPLY_TEMPERATURE")
    reply_max_tokens: int = Field(default=512, alias="STAN_REPLY_MAX_TOKENS")

    # Storage
    db_path: Path = Field(
        default=Path("./data/facts.db"),
        alias="STAN_DB_PATH",
        description="SQLite database holding per-user facts"
    )

    # Sessions
    session_cookie: str = Field(default="session_id", alias="STAN_SESSION_COOKIE")

    @property
    def api_key_configured(self) -> bool:
        return bool(self.openrouter_api_key and self.openrouter_api_key.strip())


settings = Settings()
