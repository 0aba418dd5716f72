"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend; any transactional store can implement the interface.
"""

from docengine.services.storage.interface import (
    AuditStorageInterface,
    DocumentStorageInterface,
    DuplicateError,
    RecordNotFoundError,
    StorageError,
    TransactionInterface,
    TransactionTimeoutError,
)
from docengine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "DocumentStorageInterface",
    "TransactionInterface",
    # Exceptions
    "DuplicateError",
    "RecordNotFoundError",
    "StorageError",
    "TransactionTimeoutError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryDocumentStorage",
]
