from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig

# env var -> SecretConfig field
REQUIRED_SECRETS = {
    "GEMINI_API_KEY": "gemini_api_key",
    "APP_SECRET_KEY": "app_secret_key",
}


class ConfigError(RuntimeError):
    pass


def _reveal(v: SecretStr | None) -> str:
    return v.get_secret_value().strip() if v is not None else ""


@dataclass(frozen=True, slots=True)
class Settings:
    """
    One view over public + secret config.

    Attribute lookups fall through to the secret half first, then the public half,
    so `s.log_dir` and `s.gemini_api_key` both work.
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if name in type(self.secret).model_fields:
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def cors_origin_list(self) -> list[str]:
        return self.public.cors_origin_list()

    def missing_secrets(self) -> list[str]:
        return sorted(
            env for env, field in REQUIRED_SECRETS.items() if not _reveal(getattr(self.secret, field))
        )


def _flag(name: str) -> bool:
    return str(os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


def _is_production_env() -> bool:
    env = str(os.environ.get("ENV") or os.environ.get("APP_ENV") or "").strip().lower()
    return env in {"prod", "production"}


def _validate_secrets(s: Settings) -> None:
    """Missing secrets are fatal in production or under STRICT_SECRETS, a warning otherwise."""
    missing = s.missing_secrets()
    if not missing:
        return
    if _is_production_env() or _flag("STRICT_SECRETS"):
        raise ConfigError(
            f"Missing required secrets: {', '.join(missing)}. "
            "Set them in the environment or in `.env.secrets`."
        )
    logging.getLogger("briefing_pipeline").warning(
        "missing_secrets_detected", extra={"missing": missing, "production": False}
    )


def get_safe_config_report() -> dict[str, Any]:
    """
    Config dump that is safe to print: public values verbatim (paths as strings),
    secrets only as SET/UNSET.
    """
    s = get_settings()
    public = {k: (str(v) if hasattr(v, "__fspath__") else v) for k, v in s.public.model_dump().items()}
    secrets = {
        field: ("SET" if _reveal(getattr(s.secret, field)) else "UNSET")
        for field in sorted(type(s.secret).model_fields)
    }
    return {"strict_secrets": _flag("STRICT_SECRETS"), "public": public, "secrets": secrets}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings(public=PublicConfig(), secret=SecretConfig())
    _validate_secrets(s)
    return s
