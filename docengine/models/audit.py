"""
Audit Models for the Financial Document Engine

Every significant action on a quote, invoice or project is logged for audit purposes.
This provides:
1. Complete traceability of every number allocated and every status change
2. Debugging information when a transaction is rolled back
3. A history of who sent which document to whom

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from docengine.models.document import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every lifecycle operation has its own event type.
    """
    # Numbering
    NUMBER_ALLOCATED = "number_allocated"

    # Quotes
    QUOTE_CREATED = "quote_created"
    QUOTE_UPDATED = "quote_updated"
    QUOTE_DELETED = "quote_deleted"
    QUOTE_STATUS_CHANGED = "quote_status_changed"
    QUOTE_SENT = "quote_sent"
    QUOTE_CONVERTED = "quote_converted"

    # Invoices
    INVOICE_CREATED = "invoice_created"
    INVOICE_UPDATED = "invoice_updated"
    INVOICE_DELETED = "invoice_deleted"
    INVOICE_STATUS_CHANGED = "invoice_status_changed"
    INVOICE_SENT = "invoice_sent"

    # Projects
    PROJECT_STATUS_PROJECTED = "project_status_projected"

    # Rejections and failures
    MUTATION_REJECTED = "mutation_rejected"
    TRANSACTION_ROLLED_BACK = "transaction_rolled_back"
    EMAIL_DELIVERY_FAILED = "email_delivery_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - who did it and what entity is this about?
    owner_id: Optional[UUID] = Field(
        default=None,
        description="Owner on whose behalf the operation ran"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'quote', 'invoice', 'project')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one conversion)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.document_created(quote, correlation_id)
        event = AuditEventBuilder.status_changed(invoice, "sent", correlation_id)
    """

    @staticmethod
    def number_allocated(
        owner_id: UUID,
        kind: str,
        number: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NUMBER_ALLOCATED,
            severity=AuditSeverity.DEBUG,
            owner_id=owner_id,
            entity_type=kind,
            correlation_id=correlation_id,
            description=f"Allocated {kind} number {number}",
            details={"number": number},
        )

    @staticmethod
    def document_created(
        document,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=(
                AuditEventType.QUOTE_CREATED
                if kind == "quote"
                else AuditEventType.INVOICE_CREATED
            ),
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} {document.number} created",
            details={
                "number": document.number,
                "line_count": len(document.lines),
                "total": str(document.total),
            },
        )

    @staticmethod
    def document_updated(
        document,
        lines_replaced: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=(
                AuditEventType.QUOTE_UPDATED
                if kind == "quote"
                else AuditEventType.INVOICE_UPDATED
            ),
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} {document.number} updated",
            details={
                "lines_replaced": lines_replaced,
                "total": str(document.total),
            },
        )

    @staticmethod
    def document_deleted(
        document,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=(
                AuditEventType.QUOTE_DELETED
                if kind == "quote"
                else AuditEventType.INVOICE_DELETED
            ),
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} {document.number} deleted",
            details={"number": document.number},
        )

    @staticmethod
    def status_changed(
        document,
        previous_status: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=(
                AuditEventType.QUOTE_STATUS_CHANGED
                if kind == "quote"
                else AuditEventType.INVOICE_STATUS_CHANGED
            ),
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=(
                f"{kind.capitalize()} {document.number} status: "
                f"{previous_status} -> {document.status.value}"
            ),
            details={
                "previous_status": previous_status,
                "status": document.status.value,
            },
        )

    @staticmethod
    def document_sent(
        document,
        recipient: str,
        message_id: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=(
                AuditEventType.QUOTE_SENT
                if kind == "quote"
                else AuditEventType.INVOICE_SENT
            ),
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} {document.number} sent to {recipient}",
            details={
                "recipient": recipient,
                "message_id": message_id,
            },
        )

    @staticmethod
    def quote_converted(
        quote,
        invoice,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUOTE_CONVERTED,
            owner_id=quote.owner_id,
            entity_type="invoice",
            entity_id=invoice.id,
            correlation_id=correlation_id,
            description=f"Quote {quote.number} converted to invoice {invoice.number}",
            details={
                "quote_id": str(quote.id),
                "quote_number": quote.number,
                "invoice_number": invoice.number,
                "total": str(invoice.total),
            },
        )

    @staticmethod
    def project_projected(
        project_id: UUID,
        previous_status: str,
        status: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_STATUS_PROJECTED,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            description=f"Project status: {previous_status} -> {status}",
            details={
                "previous_status": previous_status,
                "status": status,
                "changed": previous_status != status,
            },
        )

    @staticmethod
    def mutation_rejected(
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Mutation of {entity_type} rejected: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def transaction_rolled_back(
        operation: str,
        error: Exception,
        owner_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Transaction rolled back: {operation}",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
        )

    @staticmethod
    def email_delivery_failed(
        document,
        recipient: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = document.kind.value
        return AuditEvent(
            event_type=AuditEventType.EMAIL_DELIVERY_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=document.owner_id,
            entity_type=kind,
            entity_id=document.id,
            correlation_id=correlation_id,
            description=f"Could not send {kind} {document.number} to {recipient}",
            error_message=error_message,
            details={"recipient": recipient},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
