"""Application configuration via pydantic-settings.

Values come from environment variables prefixed with ``FIELDSIGN_`` or from a
``.env`` file in the working directory.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="FIELDSIGN_", extra="ignore")

    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    database_url: str = Field(
        default="sqlite:///./fieldsign.db",
        description="SQLAlchemy URL; postgres:// URLs are accepted as well",
    )
    create_tables: bool = Field(
        default=True,
        description="Run metadata.create_all on startup",
    )
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, gt=0)
    page_bound: float = Field(
        default=1.0,
        gt=0,
        description="Upper bound of the normalized page coordinate space",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            msg = f"Invalid log level: {v}. Must be one of {valid}"
            raise ValueError(msg)
        return upper

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        # Hosted Postgres often hands out postgres:// but SQLAlchemy needs postgresql://
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
