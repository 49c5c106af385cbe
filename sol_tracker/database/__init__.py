"""
Persistence layer: record models and swappable snapshot backends
(JSON file, memory, SQLite) behind PersistenceGateway.
"""

from sol_tracker.database.models import Direction, StoredSnapshot, TransactionRecord
from sol_tracker.database.storage import PersistenceGateway, SaveOutcome, build_backend

__all__ = [
    "Direction",
    "PersistenceGateway",
    "SaveOutcome",
    "StoredSnapshot",
    "TransactionRecord",
    "build_backend",
]
