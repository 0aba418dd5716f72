"""
Invoice Lifecycle

Create, read, update, delete, status change and send for invoices, plus
the conversion of an accepted quote into an invoice.

CRITICAL: A PAID invoice is immutable. Update and delete are refused
with InvalidStateError, checked again on the row read inside the
transaction. Its status can still be changed explicitly, but sending it
again leaves it paid.

CONVERSION RULES (checked in this order):
1. The quote exists and belongs to the caller      -> else NotFoundError
2. The quote status is exactly "accepted"          -> else InvalidStateError
3. The quote is at most 30 days old                -> else InvalidStateError

The invoice takes the quote's totals, country, rate key, notes, payment
type, client and project as they are, and a verbatim copy of every line.
Nothing is recomputed, so the invoice always bills what the client
accepted.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from docengine.config import get_settings
from docengine.errors import InvalidStateError, NotFoundError
from docengine.lifecycle.base import Clock, DocumentLifecycle
from docengine.models.document import (
    DocumentKind,
    Invoice,
    InvoicePatch,
    InvoiceStatus,
    Quote,
    QuoteStatus,
    utc_now,
)
from docengine.services.storage import TransactionInterface


class InvoiceLifecycle(DocumentLifecycle[Invoice, InvoicePatch]):
    """Lifecycle operations for invoices."""

    kind = DocumentKind.INVOICE
    document_type = Invoice
    patch_type = InvoicePatch
    status_type = InvoiceStatus

    def __init__(
        self,
        storage,
        allocator=None,
        validator=None,
        email_sender=None,
        audit_logger=None,
        clock: Clock = utc_now,
        due_days: Optional[int] = None,
        conversion_window_days: Optional[int] = None,
    ):
        super().__init__(
            storage,
            allocator=allocator,
            validator=validator,
            email_sender=email_sender,
            audit_logger=audit_logger,
            clock=clock,
        )
        settings = get_settings().engine
        self._due_days = settings.invoice_due_days if due_days is None else due_days
        self._conversion_window = timedelta(
            days=(
                settings.quote_conversion_window_days
                if conversion_window_days is None
                else conversion_window_days
            )
        )

    def _default_due_date(self) -> datetime:
        return self._clock() + timedelta(days=self._due_days)

    async def _ensure_not_paid(
        self,
        invoice: Invoice,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        if not invoice.is_paid:
            return
        if self._audit_logger:
            await self._audit_logger.log_mutation_rejected(
                entity_type="invoice",
                entity_id=invoice.id,
                owner_id=invoice.owner_id,
                reason=f"{operation} refused: invoice is paid",
                correlation_id=correlation_id,
            )
        raise InvalidStateError("Cannot modify a paid invoice")

    async def _check_mutable(
        self,
        invoice: Invoice,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        if operation in ("update", "delete"):
            await self._ensure_not_paid(invoice, operation, correlation_id)

    def _should_mark_sent(self, invoice: Invoice, sent_status: Any) -> bool:
        # Delivering a paid invoice again never reopens it.
        return not invoice.is_paid and invoice.status != sent_status

    async def create(
        self,
        owner_id: UUID,
        project_id: UUID,
        lines: Any,
        country_code: Optional[str] = None,
        tax_rate_key: Optional[str] = None,
        notes: Optional[str] = None,
        payment_type: Optional[str] = None,
        due_date: Optional[datetime] = None,
        quote_id: Optional[UUID] = None,
        status: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Create an invoice with the next F- number of its owner.

        Args:
            due_date: Defaults to creation time + invoice_due_days (30)
            quote_id: Optional originating quote, must belong to the owner

        Raises:
            NotFoundError: Unknown project, or quote not found / not owned
            ForbiddenError: Project owned by someone else
            InvalidInputError: Missing, empty or malformed lines
            UnsupportedCountryError: No tax regime for country_code
            ConflictError: Number collision at insert
        """
        correlation_id = self._correlation(correlation_id)
        project = await self._owned_project(project_id, owner_id)

        if quote_id is not None:
            quote = await self._storage.get_document(DocumentKind.QUOTE, quote_id)
            if quote is None or quote.owner_id != owner_id:
                raise NotFoundError("quote", quote_id)

        initial_status = (
            self._validator.ensure_status(status, InvoiceStatus)
            if status is not None
            else InvoiceStatus.DRAFT
        )
        due_date = due_date or self._default_due_date()

        return await self._create(
            owner_id=owner_id,
            raw_lines=lines,
            country_code=country_code,
            rate_key=tax_rate_key,
            fields={
                "project_id": project.id,
                "client_id": project.client_id,
                "notes": notes,
                "payment_type": payment_type,
                "status": initial_status,
                "due_date": due_date,
                "quote_id": quote_id,
            },
            correlation_id=correlation_id,
            due_date=due_date,
        )

    async def update(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        patch: Any,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Apply a partial update.

        Raises:
            NotFoundError: Missing or not owned
            InvalidStateError: The invoice is paid
            InvalidInputError: Malformed patch
            UnsupportedCountryError: Patched country has no tax regime
        """
        correlation_id = self._correlation(correlation_id)
        invoice = await self.get(invoice_id, owner_id)
        await self._ensure_not_paid(invoice, "update", correlation_id)
        return await self._update(invoice, self._coerce_patch(patch), correlation_id)

    async def delete(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an invoice and its lines.

        Raises:
            NotFoundError: Missing or not owned
            InvalidStateError: The invoice is paid
        """
        correlation_id = self._correlation(correlation_id)
        invoice = await self.get(invoice_id, owner_id)
        await self._ensure_not_paid(invoice, "delete", correlation_id)
        await self._delete(invoice, correlation_id)

    async def set_status(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        status: Any,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """Set the status to any valid invoice status."""
        correlation_id = self._correlation(correlation_id)
        new_status = self._validator.ensure_status(status, InvoiceStatus)
        invoice = await self.get(invoice_id, owner_id)
        return await self._set_status(invoice, new_status, correlation_id)

    async def send(
        self,
        invoice_id: UUID,
        owner_id: UUID,
        recipient_email: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """Email the invoice and mark it sent, unless it is already sent or paid."""
        correlation_id = self._correlation(correlation_id)
        invoice = await self.get(invoice_id, owner_id)
        return await self._send(
            invoice, recipient_email, InvoiceStatus.SENT, correlation_id
        )

    async def convert_quote(
        self,
        quote_id: UUID,
        owner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Create a draft invoice from an accepted quote.

        The quote is checked once up front and again on the row read
        inside the transaction; the invoice is built from that row.

        Raises:
            NotFoundError: Quote missing or not owned
            InvalidStateError: Quote not accepted, or too old
            ConflictError: Number collision at insert
        """
        correlation_id = self._correlation(correlation_id)

        quote = await self._storage.get_document(DocumentKind.QUOTE, quote_id)
        now = self._clock()
        self._ensure_convertible(quote, quote_id, owner_id, now)

        invoice: Optional[Invoice] = None
        async with self._allocator.reserve(owner_id, self.kind) as number:

            async def statements(tx: TransactionInterface) -> None:
                nonlocal quote, invoice
                quote = await tx.get_document(DocumentKind.QUOTE, quote_id)
                self._ensure_convertible(quote, quote_id, owner_id, now)
                invoice = self._invoice_from(quote, number, now)
                await tx.insert_document(invoice)
                await tx.insert_lines(invoice.lines)

            await self._commit("convert_quote", owner_id, statements, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_number_allocated(
                owner_id, self.kind.value, number, correlation_id
            )
            await self._audit_logger.log_quote_converted(quote, invoice, correlation_id)

        self._logger.info(
            "quote_converted",
            quote_number=quote.number,
            invoice_number=invoice.number,
            total=str(invoice.total),
        )
        return await self.get(invoice.id, owner_id)

    def _ensure_convertible(
        self,
        quote: Optional[Quote],
        quote_id: UUID,
        owner_id: UUID,
        now: datetime,
    ) -> None:
        if quote is None or quote.owner_id != owner_id:
            raise NotFoundError("quote", quote_id)

        if quote.status != QuoteStatus.ACCEPTED:
            raise InvalidStateError(
                f"Quote {quote.number} must be accepted to generate an invoice "
                f"(status: {quote.status.value})"
            )

        if now - quote.created_at > self._conversion_window:
            raise InvalidStateError(
                f"Quote {quote.number} is too old to generate invoice"
            )

    def _invoice_from(self, quote: Quote, number: str, now: datetime) -> Invoice:
        """Draft invoice carrying the quote's totals and a copy of its lines."""
        invoice = self._construct(
            number=number,
            owner_id=quote.owner_id,
            client_id=quote.client_id,
            project_id=quote.project_id,
            country_code=quote.country_code,
            tax_rate_key=quote.tax_rate_key,
            subtotal=quote.subtotal,
            tax_amount=quote.tax_amount,
            total=quote.total,
            notes=quote.notes,
            payment_type=quote.payment_type,
            status=InvoiceStatus.DRAFT,
            due_date=now + timedelta(days=self._due_days),
            quote_id=quote.id,
            created_at=now,
            updated_at=now,
        )
        lines = [line.copy_to(invoice.id) for line in quote.lines]
        return invoice.model_copy(update={"lines": lines})
