"""Configuration models and helpers for store selection."""

from __future__ import annotations

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

STORE_ENV_VAR = "BLUEPRINT_STORE"
DEFAULT_STORE = "memory"


class StoreConfig(BaseModel):
    """Connection settings for the persistence collaborator."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["memory", "postgres"] = DEFAULT_STORE
    database_url: Optional[str] = None
    pool_min_size: int = Field(1, ge=1)
    pool_max_size: int = Field(10, ge=1)

    @model_validator(mode="after")
    def validate_connection(self) -> "StoreConfig":
        if self.kind == "postgres" and not self.database_url:
            raise ValueError("DATABASE_URL is required for the postgres store")
        if self.pool_max_size < self.pool_min_size:
            raise ValueError("Pool max size must not be smaller than min size")
        return self

    @property
    def conninfo(self) -> Optional[str]:
        # psycopg connection URLs do not use SQLAlchemy's driver suffix.
        if self.database_url is None:
            return None
        return self.database_url.replace("+psycopg", "")


def load_store_config(kind: str | None = None) -> StoreConfig:
    """Load store configuration from environment variables.

    Args:
        kind: Optional store kind overriding ``BLUEPRINT_STORE``.

    Environment variables used:
        BLUEPRINT_STORE (``memory`` or ``postgres``)
        DATABASE_URL (required for postgres)
        BLUEPRINT_DB_POOL_MIN (optional)
        BLUEPRINT_DB_POOL_MAX (optional)

    Returns:
        StoreConfig populated from environment variables.

    Raises:
        ValidationError: If required variables are missing or invalid.
    """

    store_kind = (kind or os.getenv(STORE_ENV_VAR, DEFAULT_STORE)).strip().lower()

    def read_int(key: str, default: int) -> Any:
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return default
        # Left as text so pydantic reports a non-integer value as a ValidationError.
        return raw.strip()

    return StoreConfig(
        kind=store_kind,
        database_url=os.getenv("DATABASE_URL") or None,
        pool_min_size=read_int("BLUEPRINT_DB_POOL_MIN", 1),
        pool_max_size=read_int("BLUEPRINT_DB_POOL_MAX", 10),
    )
