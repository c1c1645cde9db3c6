"""
Event store backends.
"""

from .base import GROUPABLE_FIELDS, EventStore
from .memory import InMemoryEventStore
from .postgres import PostgresEventStore

__all__ = ["EventStore", "InMemoryEventStore", "PostgresEventStore", "GROUPABLE_FIELDS"]
