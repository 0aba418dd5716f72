"""
Data Models Package

This package contains all Pydantic models used by the Financial Document Engine.
All data flowing through the engine must conform to these schemas.
"""

from docengine.models.document import (
    AnyDocument,
    Client,
    Document,
    DocumentKind,
    DocumentQuery,
    Invoice,
    InvoicePatch,
    InvoiceStatus,
    LineItem,
    LineItemInput,
    PaymentType,
    Project,
    ProjectStatus,
    QueryResult,
    Quote,
    QuotePatch,
    QuoteStatus,
    Totals,
    ValidationIssue,
    ValidationResult,
    utc_now,
)
from docengine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Document models
    "AnyDocument",
    "Client",
    "Document",
    "DocumentKind",
    "DocumentQuery",
    "Invoice",
    "InvoicePatch",
    "InvoiceStatus",
    "LineItem",
    "LineItemInput",
    "PaymentType",
    "Project",
    "ProjectStatus",
    "QueryResult",
    "Quote",
    "QuotePatch",
    "QuoteStatus",
    "Totals",
    "ValidationIssue",
    "ValidationResult",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
