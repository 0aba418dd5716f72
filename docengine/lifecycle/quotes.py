"""
Quote Lifecycle

Create, read, update, delete, status change and send for quotes.

The owning project's status is re-projected from its quotes after
update, delete, status change and send. Creation does not re-project.
"""

from typing import Any, Optional
from uuid import UUID

from docengine.lifecycle.base import Clock, DocumentLifecycle
from docengine.models.document import (
    DocumentKind,
    Quote,
    QuotePatch,
    QuoteStatus,
    utc_now,
)
from docengine.projects import ProjectStatusProjector


class QuoteLifecycle(DocumentLifecycle[Quote, QuotePatch]):
    """Lifecycle operations for quotes."""

    kind = DocumentKind.QUOTE
    document_type = Quote
    patch_type = QuotePatch
    status_type = QuoteStatus

    def __init__(
        self,
        storage,
        allocator=None,
        validator=None,
        email_sender=None,
        audit_logger=None,
        projector: Optional[ProjectStatusProjector] = None,
        clock: Clock = utc_now,
    ):
        super().__init__(
            storage,
            allocator=allocator,
            validator=validator,
            email_sender=email_sender,
            audit_logger=audit_logger,
            clock=clock,
        )
        self._projector = projector or ProjectStatusProjector(storage, audit_logger)

    async def create(
        self,
        owner_id: UUID,
        project_id: UUID,
        lines: Any,
        country_code: Optional[str] = None,
        tax_rate_key: Optional[str] = None,
        notes: Optional[str] = None,
        payment_type: Optional[str] = None,
        status: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Quote:
        """
        Create a quote with the next Q- number of its owner.

        The client is the project's client. The project status is not
        re-projected, even if the quote is created directly as sent.

        Raises:
            NotFoundError: Unknown project
            ForbiddenError: Project owned by someone else
            InvalidInputError: Missing, empty or malformed lines
            UnsupportedCountryError: No tax regime for country_code
            ConflictError: Number collision at insert
        """
        correlation_id = self._correlation(correlation_id)
        project = await self._owned_project(project_id, owner_id)

        initial_status = (
            self._validator.ensure_status(status, QuoteStatus)
            if status is not None
            else QuoteStatus.DRAFT
        )

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
            },
            correlation_id=correlation_id,
        )

    async def update(
        self,
        quote_id: UUID,
        owner_id: UUID,
        patch: Any,
        correlation_id: Optional[UUID] = None,
    ) -> Quote:
        """
        Apply a partial update, then re-project the project status.

        Raises:
            NotFoundError: Missing or not owned
            InvalidInputError: Malformed patch
            UnsupportedCountryError: Patched country has no tax regime
        """
        correlation_id = self._correlation(correlation_id)
        quote = await self.get(quote_id, owner_id)
        updated = await self._update(quote, self._coerce_patch(patch), correlation_id)
        await self._projector.reproject(quote.project_id, correlation_id)
        return updated

    async def delete(
        self,
        quote_id: UUID,
        owner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete a quote and its lines, then re-project the project status."""
        correlation_id = self._correlation(correlation_id)
        quote = await self.get(quote_id, owner_id)
        await self._delete(quote, correlation_id)
        await self._projector.reproject(quote.project_id, correlation_id)

    async def set_status(
        self,
        quote_id: UUID,
        owner_id: UUID,
        status: Any,
        correlation_id: Optional[UUID] = None,
    ) -> Quote:
        """
        Set the status to any valid quote status, then re-project.

        Raises:
            InvalidInputError: Missing or unknown status
            NotFoundError: Missing or not owned
        """
        correlation_id = self._correlation(correlation_id)
        new_status = self._validator.ensure_status(status, QuoteStatus)
        quote = await self.get(quote_id, owner_id)
        updated = await self._set_status(quote, new_status, correlation_id)
        await self._projector.reproject(quote.project_id, correlation_id)
        return updated

    async def send(
        self,
        quote_id: UUID,
        owner_id: UUID,
        recipient_email: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> Quote:
        """
        Email the quote and mark it sent.

        Raises:
            InvalidInputError: No recipient
            NotFoundError: Missing or not owned
            EmailDeliveryError: Delivery failed; status left untouched
        """
        correlation_id = self._correlation(correlation_id)
        quote = await self.get(quote_id, owner_id)
        sent = await self._send(quote, recipient_email, QuoteStatus.SENT, correlation_id)
        await self._projector.reproject(quote.project_id, correlation_id)
        return sent
