"""
Store implementations for data access.
"""

from src.repositories.base import IssueStore, StoreSession
from src.repositories.cache_repo import TeamExistenceCache
from src.repositories.memory_store import InMemoryStore
from src.repositories.sql_store import SqlStore

__all__ = [
    "IssueStore",
    "StoreSession",
    "InMemoryStore",
    "SqlStore",
    "TeamExistenceCache",
]
