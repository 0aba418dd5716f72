"""
Main Orchestrator for the Financial Document Engine

This module ties together all the components and exposes the
caller-facing operations:
1. Quotes (create / get / list / update / delete / status / send)
2. Invoices (the same, plus conversion from an accepted quote)
3. Tax previews (tax, line totals, document totals, regimes and rates)
4. Document queries (listings and per-status sums)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every write goes through one lifecycle and one storage transaction
- Every operation is traced with a single correlation id
- Ownership is checked before anything is read back to the caller

The HTTP layer, authentication and email rendering live outside this
package; they talk to DocumentEngine only.
"""

from typing import Any, Optional
from uuid import UUID

from docengine.audit import AuditLogger, create_correlation_id
from docengine.lifecycle import InvoiceLifecycle, QuoteLifecycle
from docengine.lifecycle.base import Clock
from docengine.models.document import (
    DocumentQuery,
    Invoice,
    Project,
    QueryResult,
    Quote,
    Totals,
    utc_now,
)
from docengine.numbering import SequenceAllocator
from docengine.projects import ProjectStatusProjector
from docengine.queries import DocumentQueryExecutor
from docengine.services.email import EmailSenderInterface, LogOnlyEmailSender
from docengine.services.storage import (
    AuditStorageInterface,
    DocumentStorageInterface,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
)
from docengine.tax import (
    available_countries,
    document_totals,
    line_totals,
    preview_tax,
    tax_rate_options,
)
from docengine.validation import DocumentValidator


class DocumentEngine:
    """
    Facade over the quote and invoice lifecycles.

    All document operations take the acting owner's id; documents of
    other owners are reported as not found.
    """

    def __init__(
        self,
        storage: DocumentStorageInterface,
        email_sender: Optional[EmailSenderInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

        allocator = SequenceAllocator(storage)
        validator = DocumentValidator()
        email_sender = email_sender or LogOnlyEmailSender()

        self._projector = ProjectStatusProjector(storage, audit_logger)
        self.quotes = QuoteLifecycle(
            storage,
            allocator=allocator,
            validator=validator,
            email_sender=email_sender,
            audit_logger=audit_logger,
            projector=self._projector,
            clock=clock,
        )
        self.invoices = InvoiceLifecycle(
            storage,
            allocator=allocator,
            validator=validator,
            email_sender=email_sender,
            audit_logger=audit_logger,
            clock=clock,
        )
        self._query_executor = DocumentQueryExecutor(storage)

    # =========================================================================
    # QUOTES
    # =========================================================================

    async def create_quote(
        self,
        owner_id: UUID,
        project_id: UUID,
        lines: Any,
        country_code: Optional[str] = None,
        tax_rate_key: Optional[str] = None,
        notes: Optional[str] = None,
        payment_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Quote:
        return await self.quotes.create(
            owner_id,
            project_id,
            lines,
            country_code=country_code,
            tax_rate_key=tax_rate_key,
            notes=notes,
            payment_type=payment_type,
            status=status,
            correlation_id=create_correlation_id(),
        )

    async def get_quote(self, quote_id: UUID, owner_id: UUID) -> Quote:
        return await self.quotes.get(quote_id, owner_id)

    async def list_quotes(
        self,
        owner_id: UUID,
        status: Optional[str] = None,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
    ) -> list[Quote]:
        """An owner's quotes ordered by number; status "all" means no filter."""
        return await self.quotes.list_documents(
            owner_id, status=status, project_id=project_id, search=search
        )

    async def update_quote(self, quote_id: UUID, owner_id: UUID, patch: Any) -> Quote:
        return await self.quotes.update(
            quote_id, owner_id, patch, correlation_id=create_correlation_id()
        )

    async def delete_quote(self, quote_id: UUID, owner_id: UUID) -> None:
        await self.quotes.delete(
            quote_id, owner_id, correlation_id=create_correlation_id()
        )

    async def set_quote_status(self, quote_id: UUID, owner_id: UUID, status: Any) -> Quote:
        return await self.quotes.set_status(
            quote_id, owner_id, status, correlation_id=create_correlation_id()
        )

    async def send_quote_email(
        self,
        quote_id: UUID,
        owner_id: UUID,
        recipient_email: Optional[str],
    ) -> Quote:
        return await self.quotes.send(
            quote_id, owner_id, recipient_email, correlation_id=create_correlation_id()
        )

    # =========================================================================
    # INVOICES
    # =========================================================================

    async def create_invoice(
        self,
        owner_id: UUID,
        project_id: UUID,
        lines: Any,
        country_code: Optional[str] = None,
        tax_rate_key: Optional[str] = None,
        notes: Optional[str] = None,
        payment_type: Optional[str] = None,
        due_date=None,
        quote_id: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> Invoice:
        return await self.invoices.create(
            owner_id,
            project_id,
            lines,
            country_code=country_code,
            tax_rate_key=tax_rate_key,
            notes=notes,
            payment_type=payment_type,
            due_date=due_date,
            quote_id=quote_id,
            status=status,
            correlation_id=create_correlation_id(),
        )

    async def get_invoice(self, invoice_id: UUID, owner_id: UUID) -> Invoice:
        return await self.invoices.get(invoice_id, owner_id)

    async def list_invoices(
        self,
        owner_id: UUID,
        status: Optional[str] = None,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
    ) -> list[Invoice]:
        """An owner's invoices ordered by number; status "all" means no filter."""
        return await self.invoices.list_documents(
            owner_id, status=status, project_id=project_id, search=search
        )

    async def update_invoice(self, invoice_id: UUID, owner_id: UUID, patch: Any) -> Invoice:
        return await self.invoices.update(
            invoice_id, owner_id, patch, correlation_id=create_correlation_id()
        )

    async def delete_invoice(self, invoice_id: UUID, owner_id: UUID) -> None:
        await self.invoices.delete(
            invoice_id, owner_id, correlation_id=create_correlation_id()
        )

    async def set_invoice_status(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        status: Any,
    ) -> Invoice:
        return await self.invoices.set_status(
            invoice_id, owner_id, status, correlation_id=create_correlation_id()
        )

    async def send_invoice_email(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        recipient_email: Optional[str],
    ) -> Invoice:
        return await self.invoices.send(
            invoice_id, owner_id, recipient_email, correlation_id=create_correlation_id()
        )

    async def convert_quote_to_invoice(self, quote_id: UUID, owner_id: UUID) -> Invoice:
        return await self.invoices.convert_quote(
            quote_id, owner_id, correlation_id=create_correlation_id()
        )

    # =========================================================================
    # PROJECTS
    # =========================================================================

    async def reproject_project(self, project_id: UUID) -> Optional[Project]:
        """Re-derive a project's status from its quotes on demand."""
        return await self._projector.reproject(project_id, create_correlation_id())

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def query(self, query: DocumentQuery) -> QueryResult:
        return await self._query_executor.execute(query)

    # =========================================================================
    # TAX PREVIEWS (pure, no storage access)
    # =========================================================================

    @staticmethod
    def compute_tax(amount, country_code: str, tax_rate_key: Optional[str] = None) -> dict:
        return preview_tax(amount, country_code, tax_rate_key)

    @staticmethod
    def compute_line_totals(
        quantity,
        unit_price,
        country_code: str,
        tax_rate_key: Optional[str] = None,
    ) -> Totals:
        return line_totals(quantity, unit_price, country_code, tax_rate_key)

    @staticmethod
    def compute_document_totals(
        lines,
        country_code: str,
        tax_rate_key: Optional[str] = None,
    ) -> Totals:
        return document_totals(lines, country_code, tax_rate_key)

    @staticmethod
    def available_countries() -> list[dict]:
        return available_countries()

    @staticmethod
    def tax_rate_options(country_code: str) -> list[dict]:
        return tax_rate_options(country_code)


def create_engine_components(
    storage: Optional[DocumentStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    email_sender: Optional[EmailSenderInterface] = None,
    clock: Clock = utc_now,
) -> tuple[DocumentEngine, DocumentStorageInterface, AuditLogger]:
    """
    Factory function to create all engine components.

    Args:
        storage: Document storage. Defaults to in-memory storage.
        audit_storage: Audit persistence. Defaults to in-memory storage.
        email_sender: Email collaborator. Defaults to a log-only sender.
        clock: Source of "now", for tests.

    Returns:
        (engine, storage, audit_logger)
    """
    storage = storage or InMemoryDocumentStorage()
    audit_logger = AuditLogger(audit_storage or InMemoryAuditStorage())

    engine = DocumentEngine(
        storage,
        email_sender=email_sender,
        audit_logger=audit_logger,
        clock=clock,
    )
    return engine, storage, audit_logger
