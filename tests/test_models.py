"""
Tests for the Financial Document Engine models

Test strategy:
1. Unit tests for individual components (models, calculator, validators)
2. Integration tests for lifecycles (with fake collaborators)
3. No real email delivery in tests (use fakes)
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from docengine.models.document import (
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
    Quote,
    QuotePatch,
    QuoteStatus,
    ValidationIssue,
    ValidationResult,
    format_number,
    parse_number,
)
from docengine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_quote(**overrides) -> Quote:
    fields = dict(
        number="Q-0001",
        owner_id=uuid4(),
        client_id=uuid4(),
        project_id=uuid4(),
        country_code="FRANCE",
        tax_rate_key="STANDARD",
        subtotal=Decimal("200.00"),
        tax_amount=Decimal("40.00"),
        total=Decimal("240.00"),
    )
    fields.update(overrides)
    return Quote(**fields)


class TestDocumentModels:
    """Tests for quote, invoice and line models."""

    def test_line_item_input_strips_whitespace(self):
        """Test that whitespace is stripped from the description."""
        line = LineItemInput(description="  Design  ", quantity=1, unit_price=10)
        assert line.description == "Design"

    def test_line_item_input_rejects_zero_quantity(self):
        """Test that quantities must be strictly positive."""
        with pytest.raises(ValueError):
            LineItemInput(description="Design", quantity=0, unit_price=10)

    def test_line_item_input_rejects_negative_price(self):
        """Test that negative unit prices are rejected."""
        with pytest.raises(ValueError):
            LineItemInput(description="Design", quantity=1, unit_price=-1)

    def test_line_item_input_accepts_free_line(self):
        """Test that a zero unit price is allowed."""
        line = LineItemInput(description="Offered audit", quantity=1, unit_price=0)
        assert line.unit_price == Decimal("0")

    def test_quote_defaults(self):
        """Test that a new quote starts as a draft with empty lines."""
        quote = make_quote()
        assert quote.status == QuoteStatus.DRAFT
        assert quote.kind == DocumentKind.QUOTE
        assert quote.lines == []

    def test_number_format_is_enforced(self):
        """Test that malformed numbers are rejected."""
        with pytest.raises(ValueError):
            make_quote(number="Q-12")
        with pytest.raises(ValueError):
            make_quote(number="quote-0001")

    def test_five_digit_numbers_are_valid(self):
        """Test that numbers past 9999 are accepted."""
        assert make_quote(number="Q-10000").number == "Q-10000"

    def test_invoice_requires_due_date(self):
        """Test that an invoice cannot exist without a due date."""
        with pytest.raises(ValueError):
            Invoice(
                number="F-0001",
                owner_id=uuid4(),
                client_id=uuid4(),
                project_id=uuid4(),
                country_code="FRANCE",
            )

    def test_invoice_is_paid(self):
        """Test the paid flag follows the status."""
        invoice = Invoice(
            number="F-0001",
            owner_id=uuid4(),
            client_id=uuid4(),
            project_id=uuid4(),
            country_code="MONACO",
            due_date=datetime(2024, 4, 1, tzinfo=timezone.utc),
            status=InvoiceStatus.PAID,
        )
        assert invoice.is_paid
        assert invoice.kind == DocumentKind.INVOICE

    def test_line_copy_keeps_amounts(self):
        """Test that copying a line onto another document keeps every amount."""
        line = LineItem(
            document_id=uuid4(),
            description="Design",
            quantity=Decimal("2"),
            unit_price=Decimal("100.00"),
            subtotal=Decimal("200.00"),
            tax_amount=Decimal("40.00"),
            total=Decimal("240.00"),
        )
        target = uuid4()
        copy = line.copy_to(target)
        assert copy.document_id == target
        assert copy.id != line.id
        assert (copy.subtotal, copy.tax_amount, copy.total) == (
            line.subtotal, line.tax_amount, line.total
        )

    def test_to_record_uses_floats_and_iso_dates(self):
        """Test the persisted representation."""
        quote = make_quote(payment_type=PaymentType.BANK_TRANSFER)
        record = quote.to_record()
        assert record["kind"] == "quote"
        assert record["total"] == 240.0
        assert record["payment_type"] == "bank_transfer"
        assert record["created_at"].startswith(quote.created_at.date().isoformat())

    def test_kind_is_a_class_constant(self):
        """Test that kind belongs to the class and is not a model field."""
        assert Quote.kind == DocumentKind.QUOTE
        assert Invoice.kind == DocumentKind.INVOICE
        assert "kind" not in Quote.model_fields
        assert "kind" not in make_quote().model_dump()

    def test_project_defaults_to_pending(self):
        """Test a new project's status."""
        project = Project(owner_id=uuid4(), client_id=uuid4(), name="Refonte")
        assert project.status == ProjectStatus.PENDING


class TestDocumentNumbers:
    """Tests for number formatting and parsing."""

    def test_format_pads_to_four_digits(self):
        """Test zero padding."""
        assert format_number(DocumentKind.QUOTE, 7) == "Q-0007"
        assert format_number(DocumentKind.INVOICE, 42) == "F-0042"

    def test_format_does_not_truncate(self):
        """Test that wide sequences grow instead of wrapping."""
        assert format_number(DocumentKind.QUOTE, 10000) == "Q-10000"

    def test_parse_number(self):
        """Test suffix parsing."""
        assert parse_number("F-0042") == 42
        assert parse_number("Q-10000") == 10000

    def test_parse_rejects_malformed(self):
        """Test that garbage numbers raise ValueError."""
        with pytest.raises(ValueError):
            parse_number("Q0001")
        with pytest.raises(ValueError):
            parse_number("Q-00A1")


class TestPatches:
    """Tests for partial update models."""

    def test_only_set_fields_are_tracked(self):
        """Test that unset fields are distinguishable from explicit None."""
        patch = QuotePatch(notes=None)
        assert patch.model_fields_set == {"notes"}

    def test_invoice_patch_validates_status(self):
        """Test that an unknown status is rejected."""
        with pytest.raises(ValueError):
            InvoicePatch(status="archived")


class TestQueryModels:
    """Tests for query models."""

    def test_all_status_means_no_filter(self):
        """Test that 'all' is normalized away."""
        query = DocumentQuery(owner_id=uuid4(), kind=DocumentKind.QUOTE, status_filter="all")
        assert query.status_filter is None

    def test_query_type_is_restricted(self):
        """Test that only list and aggregate queries exist."""
        with pytest.raises(ValueError):
            DocumentQuery(owner_id=uuid4(), kind=DocumentKind.QUOTE, query_type="delete")


class TestValidationModels:
    """Tests for validation-related models."""

    def test_validation_result_is_valid(self):
        """Test ValidationResult.is_valid property."""
        result = ValidationResult(schema_valid=True, semantic_valid=True)
        assert result.is_valid

    def test_validation_result_has_errors(self):
        """Test ValidationResult.has_errors and warnings."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=False,
            issues=[
                ValidationIssue(
                    field="country_code",
                    issue_type="unsupported_country",
                    message="Country SPAIN not supported",
                    severity="error",
                ),
                ValidationIssue(
                    field="tax_rate_key",
                    issue_type="unknown_rate_key",
                    message="Rate XX does not exist",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors
        assert result.error_count == 1
        assert len(result.warnings) == 1

    def test_issue_severity_is_restricted(self):
        """Test that severities outside error/warning/info are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


class TestAuditModels:
    """Tests for audit event models."""

    def test_document_created_event(self):
        """Test the creation event carries number and total."""
        quote = make_quote()
        correlation_id = uuid4()
        event = AuditEventBuilder.document_created(quote, correlation_id)
        assert event.event_type == AuditEventType.QUOTE_CREATED
        assert event.entity_id == quote.id
        assert event.owner_id == quote.owner_id
        assert event.correlation_id == correlation_id
        assert event.details["number"] == "Q-0001"

    def test_status_changed_event(self):
        """Test status change events record both statuses."""
        quote = make_quote(status=QuoteStatus.ACCEPTED)
        event = AuditEventBuilder.status_changed(quote, "sent")
        assert event.event_type == AuditEventType.QUOTE_STATUS_CHANGED
        assert "sent -> accepted" in event.description

    def test_to_log_dict(self):
        """Test AuditEvent.to_log_dict method."""
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description="Test error",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "system_error"
        assert log_dict["severity"] == "error"
        assert "timestamp" in log_dict

    def test_invoice_event_types(self):
        """Test that invoice events get invoice event types."""
        invoice = Invoice(
            number="F-0001",
            owner_id=uuid4(),
            client_id=uuid4(),
            project_id=uuid4(),
            country_code="FRANCE",
            due_date=datetime.now(timezone.utc) + timedelta(days=30),
        )
        event = AuditEventBuilder.document_deleted(invoice)
        assert event.event_type == AuditEventType.INVOICE_DELETED
