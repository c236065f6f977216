"""Data access layer for passport verification."""

from .repository import (
    ProfileStore,
    ProductStore,
    AuditSink,
    JsonPassportRepository,
    JsonlAuditLog,
)
from .memory import InMemoryPassportStore, InMemoryAuditLog

__all__ = [
    "ProfileStore",
    "ProductStore",
    "AuditSink",
    "JsonPassportRepository",
    "JsonlAuditLog",
    "InMemoryPassportStore",
    "InMemoryAuditLog",
]
