from __future__ import annotations

import os
from typing import Any, Dict, List

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from cmcimock.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime settings for the mock CMCI server."""

    host: str = env_field("0.0.0.0", "HOST")
    port: int = env_field(9080, "PORT")
    mock_credentials: str = env_field(
        "testuser:testpass,adminusr:adminpas",
        "MOCK_CREDENTIALS",
        description="Comma separated user:password pairs accepted by Basic auth",
    )
    result_set_ttl_minutes: int = env_field(
        15,
        "RESULT_SET_TTL_MINUTES",
        description="Idle time after which a retained result set expires",
    )
    sweep_interval_seconds: int = env_field(
        300,
        "SWEEP_INTERVAL_SECONDS",
        description="How often the background sweep evicts expired result sets",
    )
    token_cookie_name: str = env_field("LtpaToken2", "TOKEN_COOKIE_NAME")
    token_cookie_max_age_seconds: int = env_field(
        8 * 60 * 60, "TOKEN_COOKIE_MAX_AGE_SECONDS"
    )
    token_cookie_secure: bool = env_field(False, "TOKEN_COOKIE_SECURE")
    default_record_count: int = env_field(10, "DEFAULT_RECORD_COUNT")
    max_orderby_fields: int = env_field(32, "MAX_ORDERBY_FIELDS")
    schema_base_url: str = env_field("http://localhost:9080", "SCHEMA_BASE_URL")
    cors_allow_origins: str = env_field("*", "CORS_ALLOW_ORIGINS")
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allows the runtime singleton to be rebuilt between tests",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("port must be between 1 and 65535")
        return value

    @field_validator(
        "result_set_ttl_minutes",
        "sweep_interval_seconds",
        "token_cookie_max_age_seconds",
        "default_record_count",
        "max_orderby_fields",
    )
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @field_validator("mock_credentials")
    @classmethod
    def _validate_credentials(cls, value: str) -> str:
        for pair in _split_csv(value):
            username, sep, password = pair.partition(":")
            if not sep or not username or not password:
                raise ValueError(f"credential entry '{username or pair}' must be user:password")
        return value

    def credential_pairs(self) -> Dict[str, str]:
        """Return the accepted username -> password map."""
        pairs: Dict[str, str] = {}
        for pair in _split_csv(self.mock_credentials):
            username, _, password = pair.partition(":")
            pairs[username] = password
        return pairs

    def allowed_origins(self) -> List[str]:
        return _split_csv(self.cors_allow_origins) or ["*"]


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
