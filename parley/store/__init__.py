"""Record stores backing conversations, turns and documents."""

from .base import Store
from .memory import InMemoryStore
from .sql import SQLStore

__all__ = ["Store", "InMemoryStore", "SQLStore"]
