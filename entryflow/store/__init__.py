"""
Record store module.
Contains the store contract and its SQL and in-memory implementations.
"""

from entryflow.store.base import RecordStore
from entryflow.store.memory import InMemoryRecordStore
from entryflow.store.sql import SqlRecordStore

__all__ = ["RecordStore", "SqlRecordStore", "InMemoryRecordStore"]
