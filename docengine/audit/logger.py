"""
Audit Logger

DESIGN DECISION: Every lifecycle operation of the engine is logged.
This provides:
1. Complete traceability of numbers, totals and status changes
2. Debugging capability when a transaction is rolled back
3. A per-document history the UI can show

The audit logger:
- Is async so it fits the engine's flow
- Gracefully handles storage failures (a lost audit row never fails an operation)
- Supports correlation IDs to trace the events of one operation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from docengine.config import get_settings
from docengine.models.audit import AuditEvent, AuditEventBuilder
from docengine.services.storage import AuditStorageInterface


def configure_logging() -> None:
    """Configure structlog (and the stdlib root level) from LoggingSettings."""
    settings = get_settings().logging

    logging.basicConfig(format="%(message)s", level=settings.level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("docengine.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_number_allocated(
        self,
        owner_id: UUID,
        kind: str,
        number: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.number_allocated(
            owner_id=owner_id,
            kind=kind,
            number=number,
            correlation_id=correlation_id,
        ))

    async def log_document_created(
        self,
        document,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.document_created(document, correlation_id))

    async def log_document_updated(
        self,
        document,
        lines_replaced: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.document_updated(
            document, lines_replaced, correlation_id
        ))

    async def log_document_deleted(
        self,
        document,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.document_deleted(document, correlation_id))

    async def log_status_changed(
        self,
        document,
        previous_status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.status_changed(
            document, previous_status, correlation_id
        ))

    async def log_document_sent(
        self,
        document,
        recipient: str,
        message_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.document_sent(
            document, recipient, message_id, correlation_id
        ))

    async def log_quote_converted(
        self,
        quote,
        invoice,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.quote_converted(quote, invoice, correlation_id))

    async def log_project_projected(
        self,
        project_id: UUID,
        previous_status: str,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.project_projected(
            project_id=project_id,
            previous_status=previous_status,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_mutation_rejected(
        self,
        entity_type: str,
        entity_id: UUID,
        owner_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_rejected(
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_transaction_rolled_back(
        self,
        operation: str,
        error: Exception,
        owner_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_rolled_back(
            operation=operation,
            error=error,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    async def log_email_failed(
        self,
        document,
        recipient: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.email_delivery_failed(
            document, recipient, error_message, correlation_id
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an engine operation and pass it
    through everything that operation does.
    """
    return uuid4()
