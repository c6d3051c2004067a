"""Factory utilities for instantiating stores."""

from __future__ import annotations

from typing import Callable, Dict

from .base import ProjectRepository
from .config import StoreConfig, load_store_config
from .exceptions import StoreConfigError
from .memory import MemoryStore


def _create_postgres(config: StoreConfig) -> ProjectRepository:
    # Imported lazily so the memory store works without a database driver configured.
    from .postgres import PostgresStore

    return PostgresStore(config)


STORE_MAP: Dict[str, Callable[[StoreConfig], ProjectRepository]] = {
    "memory": lambda config: MemoryStore(),
    "postgres": _create_postgres,
}


class StoreFactory:
    """Factory for creating stores based on configuration."""

    @staticmethod
    def create(config: StoreConfig | None = None) -> ProjectRepository:
        if config is None:
            config = load_store_config()
        builder = STORE_MAP.get(config.kind.lower())
        if builder is None:
            raise StoreConfigError(f"Unknown store: {config.kind}")
        return builder(config)
