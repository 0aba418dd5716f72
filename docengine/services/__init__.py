"""Services package."""

from docengine.services.email import (
    EmailDeliveryError,
    EmailError,
    EmailResult,
    EmailSenderInterface,
    LogOnlyEmailSender,
)
from docengine.services.storage import (
    AuditStorageInterface,
    DocumentStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    RecordNotFoundError,
    StorageError,
    TransactionInterface,
    TransactionTimeoutError,
)

__all__ = [
    # Email services
    "EmailDeliveryError",
    "EmailError",
    "EmailResult",
    "EmailSenderInterface",
    "LogOnlyEmailSender",
    # Storage services
    "AuditStorageInterface",
    "DocumentStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryDocumentStorage",
    "RecordNotFoundError",
    "StorageError",
    "TransactionInterface",
    "TransactionTimeoutError",
]
