"""
Tests for converting an accepted quote into an invoice.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from docengine.errors import InvalidStateError, NotFoundError
from docengine.models.audit import AuditEventType
from docengine.models.document import InvoiceStatus


QUOTE_LINES = [
    {"description": "Workshop", "quantity": 3, "unit_price": "19.99"},
    {"description": "Travel", "quantity": "1.5", "unit_price": "42.10"},
    {"description": "Slides", "quantity": 1, "unit_price": "0.03"},
]


async def accepted_quote(world, **kwargs):
    quote = await world.engine.create_quote(
        world.owner_id,
        world.project.id,
        QUOTE_LINES,
        "FRANCE",
        tax_rate_key="SUPER_REDUCED",
        notes="Valid 30 days",
        payment_type="check",
        **kwargs,
    )
    return await world.engine.set_quote_status(quote.id, world.owner_id, "accepted")


class TestConvertQuote:
    """Tests for the conversion rules."""

    def test_accepted_recent_quote_converts(self, world):
        """Test that a quote accepted yesterday becomes a draft invoice."""

        async def scenario():
            quote = await accepted_quote(world)
            world.clock.advance(days=1)
            invoice = await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return quote, invoice

        quote, invoice = asyncio.run(scenario())

        assert invoice.number == "F-0001"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.quote_id == quote.id
        assert invoice.due_date == world.clock.now + timedelta(days=30)
        assert invoice.client_id == quote.client_id
        assert invoice.project_id == quote.project_id
        assert invoice.country_code == quote.country_code
        assert invoice.tax_rate_key == quote.tax_rate_key
        assert invoice.notes == quote.notes
        assert invoice.payment_type == quote.payment_type
        assert invoice.totals == quote.totals

    def test_lines_are_copied_verbatim(self, world):
        """Test that every line keeps its exact quantities and amounts."""

        async def scenario():
            quote = await accepted_quote(world)
            invoice = await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return quote, invoice

        quote, invoice = asyncio.run(scenario())

        def fields(line):
            return (
                line.description,
                line.quantity,
                line.unit_price,
                line.subtotal,
                line.tax_amount,
                line.total,
            )

        assert sorted(map(fields, invoice.lines)) == sorted(map(fields, quote.lines))
        assert {line.document_id for line in invoice.lines} == {invoice.id}
        assert not {line.id for line in invoice.lines} & {line.id for line in quote.lines}

    def test_copied_totals_are_not_recomputed(self, world):
        """Test that totals come from the quote even if the quote row was edited."""

        async def scenario():
            quote = await accepted_quote(world)
            # Changing the rate without new lines keeps the stored totals.
            quote = await world.engine.update_quote(
                quote.id, world.owner_id, {"tax_rate_key": "STANDARD"}
            )
            invoice = await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return quote, invoice

        quote, invoice = asyncio.run(scenario())
        assert invoice.tax_rate_key == "STANDARD"
        assert invoice.tax_amount == quote.tax_amount
        assert invoice.tax_amount != Decimal("0.00")

    def test_sent_quote_is_rejected(self, world):
        """Test that only accepted quotes convert."""

        async def scenario():
            quote = await world.engine.create_quote(
                world.owner_id, world.project.id, QUOTE_LINES, "FRANCE"
            )
            await world.engine.set_quote_status(quote.id, world.owner_id, "sent")
            with pytest.raises(InvalidStateError):
                await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return await world.engine.list_invoices(world.owner_id)

        assert asyncio.run(scenario()) == []

    def test_old_quote_is_rejected(self, world):
        """Test that a quote accepted 31 days ago is too old."""

        async def scenario():
            quote = await accepted_quote(world)
            world.clock.advance(days=31)
            with pytest.raises(InvalidStateError, match="too old to generate invoice"):
                await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return await world.engine.list_invoices(world.owner_id)

        assert asyncio.run(scenario()) == []

    def test_exactly_thirty_days_is_allowed(self, world):
        """Test the window boundary."""

        async def scenario():
            quote = await accepted_quote(world)
            world.clock.advance(days=30)
            return await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)

        assert asyncio.run(scenario()).number == "F-0001"

    def test_missing_or_foreign_quote(self, world):
        """Test that the existence check comes first."""

        async def scenario():
            quote = await accepted_quote(world)
            with pytest.raises(NotFoundError):
                await world.engine.convert_quote_to_invoice(uuid4(), world.owner_id)
            with pytest.raises(NotFoundError):
                await world.engine.convert_quote_to_invoice(quote.id, world.other_owner_id)

        asyncio.run(scenario())

    def test_existence_checked_before_status(self, world):
        """Test that a non-owner gets NotFound even for a non-accepted quote."""

        async def scenario():
            quote = await world.engine.create_quote(
                world.owner_id, world.project.id, QUOTE_LINES, "FRANCE"
            )
            await world.engine.convert_quote_to_invoice(quote.id, world.other_owner_id)

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_conversion_continues_invoice_sequence(self, world, lines):
        """Test that converted invoices share the invoice number sequence."""

        async def scenario():
            await world.engine.create_invoice(world.owner_id, world.project.id, lines, "FRANCE")
            quote = await accepted_quote(world)
            return await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)

        assert asyncio.run(scenario()).number == "F-0002"

    def test_conversion_is_audited(self, world):
        """Test that the conversion event links quote and invoice."""

        async def scenario():
            quote = await accepted_quote(world)
            invoice = await world.engine.convert_quote_to_invoice(quote.id, world.owner_id)
            return quote, invoice, await world.audit_storage.get_events_by_entity(
                "invoice", invoice.id
            )

        quote, invoice, events = asyncio.run(scenario())
        converted = [e for e in events if e.event_type == AuditEventType.QUOTE_CONVERTED]
        assert len(converted) == 1
        assert converted[0].details["quote_number"] == quote.number
