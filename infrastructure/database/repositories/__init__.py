"""Repository facades exposing typed accessors over low-level mixins.

The base protocol is available for type-checking and dependency injection::

    from infrastructure.database.repositories.base import HistoryStore
"""

from infrastructure.database.repositories.base import HistoryStore
from infrastructure.database.repositories.history import HistoryRepository

__all__ = [
    "HistoryRepository",
    "HistoryStore",
]
