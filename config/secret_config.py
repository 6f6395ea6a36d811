from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Sensitive config.

    This module is safe to commit: it contains *no* secrets, only loading logic.
    Real secret values should come from:
      - environment variables (preferred in production)
      - optional local `.env.secrets` file (developer convenience)
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Generation service key (Gemini REST API)
    gemini_api_key: SecretStr | None = Field(default=None, alias="GEMINI_API_KEY")

    # Shared secret clients send as X-API-Key
    app_secret_key: SecretStr | None = Field(default=None, alias="APP_SECRET_KEY")
