"""Persistence collaborator used by the blueprint engine."""

from .base import ProjectRepository
from .config import StoreConfig, load_store_config
from .exceptions import StoreConfigError, StoreError, StoreIntegrityError
from .factory import StoreFactory
from .memory import MemoryStore

__all__ = [
    "ProjectRepository",
    "StoreConfig",
    "load_store_config",
    "StoreConfigError",
    "StoreError",
    "StoreIntegrityError",
    "StoreFactory",
    "MemoryStore",
]
