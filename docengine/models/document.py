"""
Core Data Models for the Financial Document Engine

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always Decimal, never float.
Line and document totals are rounded half-up to the cent by the tax
calculator before they ever reach these models; the models only hold them.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class DocumentKind(str, Enum):
    """
    The two concrete document kinds.

    Each kind has its own number sequence per owner.
    """
    QUOTE = "quote"
    INVOICE = "invoice"

    @property
    def prefix(self) -> str:
        """Number prefix: Q for quotes, F (facture) for invoices."""
        return "Q" if self is DocumentKind.QUOTE else "F"


class QuoteStatus(str, Enum):
    """
    Quote acceptance states.

    draft -> sent -> {accepted, refused}; sent -> expired.
    Transitions are externally driven; the engine only checks membership.
    """
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    EXPIRED = "expired"


class InvoiceStatus(str, Enum):
    """
    Invoice payment states.

    CRITICAL: A PAID invoice can no longer be updated or deleted.
    """
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ProjectStatus(str, Enum):
    """Project status. QUOTE_SENT and QUOTE_ACCEPTED are set by projection only."""
    PROSPECT = "prospect"
    PENDING = "pending"
    QUOTE_SENT = "quote_sent"
    QUOTE_ACCEPTED = "quote_accepted"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class PaymentType(str, Enum):
    """How the client is expected to pay."""
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    CRYPTO = "crypto"
    CASH = "cash"
    OTHER = "other"


# =============================================================================
# AMOUNTS AND LINES
# =============================================================================

class Totals(BaseModel):
    """Subtotal / tax / total triple, already rounded to the cent."""
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class LineItemInput(BaseModel):
    """
    A line as supplied by the caller.

    Only the raw fields; the monetary fields are always derived.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What is being billed"
    )
    quantity: Decimal = Field(
        ...,
        gt=0,
        description="Quantity (strictly positive)"
    )
    unit_price: Decimal = Field(
        ...,
        ge=0,
        description="Unit price before tax"
    )


class LineItem(BaseModel):
    """
    A persisted line item.

    Exclusively owned by one document. The whole set is replaced
    (delete-all, insert-new) whenever a document is updated with new lines.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    document_id: UUID
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)

    # Derived, rounded to the cent
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal

    def copy_to(self, document_id: UUID) -> "LineItem":
        """Structural copy of this line onto another document, amounts untouched."""
        return LineItem(
            document_id=document_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total=self.total,
        )


# =============================================================================
# DOCUMENTS
# =============================================================================

class Document(BaseModel):
    """
    Fields shared by quotes and invoices.

    Invariant: total == subtotal + tax_amount; subtotal and tax_amount each
    equal the rounded sum of the corresponding line fields.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    number: str = Field(
        ...,
        pattern=r"^[A-Z]-\d{4,}$",
        description="Human-readable sequential number, e.g. Q-0001"
    )

    owner_id: UUID
    client_id: UUID
    project_id: UUID

    country_code: str
    tax_rate_key: Optional[str] = None

    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")

    notes: Optional[str] = Field(default=None, max_length=2000)
    payment_type: Optional[PaymentType] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    lines: list[LineItem] = Field(default_factory=list)

    # Set by each concrete document class.
    kind: ClassVar[DocumentKind]

    @property
    def totals(self) -> Totals:
        return Totals(
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total=self.total,
        )

    def to_record(self) -> dict[str, Any]:
        """
        Persisted representation.

        Money as 2-decimal floats, timestamps as ISO-8601 strings.
        """
        record = self.model_dump(mode="json", exclude={"lines"})
        for field in ("subtotal", "tax_amount", "total"):
            record[field] = float(getattr(self, field))
        record["kind"] = self.kind.value
        record["lines"] = [
            {
                **line.model_dump(mode="json"),
                "quantity": float(line.quantity),
                "unit_price": float(line.unit_price),
                "subtotal": float(line.subtotal),
                "tax_amount": float(line.tax_amount),
                "total": float(line.total),
            }
            for line in self.lines
        ]
        return record


class Quote(Document):
    """A quote (devis) sent to a client for acceptance."""

    kind: ClassVar[DocumentKind] = DocumentKind.QUOTE

    status: QuoteStatus = QuoteStatus.DRAFT


class Invoice(Document):
    """
    An invoice (facture).

    CRITICAL: once PAID, the invoice is immutable.
    """

    kind: ClassVar[DocumentKind] = DocumentKind.INVOICE

    status: InvoiceStatus = InvoiceStatus.DRAFT
    due_date: datetime
    quote_id: Optional[UUID] = Field(
        default=None,
        description="Quote this invoice was generated from, if any"
    )

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID


AnyDocument = Union[Quote, Invoice]


# =============================================================================
# DOCUMENT NUMBERS
# =============================================================================

def format_number(kind: DocumentKind, sequence: int, padding: int = 4) -> str:
    """format_number(QUOTE, 7) -> 'Q-0007'. Wider sequences are not truncated."""
    return f"{kind.prefix}-{str(sequence).zfill(padding)}"


def parse_number(number: str) -> int:
    """
    Numeric suffix of a document number.

    Raises:
        ValueError: If the number is not '<letter>-<digits>'
    """
    prefix, sep, digits = number.partition("-")
    if not sep or len(prefix) != 1 or not digits.isdigit():
        raise ValueError(f"Malformed document number: {number!r}")
    return int(digits)


# =============================================================================
# UPDATE PATCHES
# =============================================================================

class QuotePatch(BaseModel):
    """
    Partial update of a quote.

    Only fields explicitly set are applied. When `lines` is set, the whole
    line set is replaced and totals are recomputed; otherwise the stored
    totals are kept as they are.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    lines: Optional[list[LineItemInput]] = None
    country_code: Optional[str] = None
    tax_rate_key: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    payment_type: Optional[PaymentType] = None
    status: Optional[QuoteStatus] = None


class InvoicePatch(BaseModel):
    """Partial update of an invoice. Same rules as QuotePatch."""
    model_config = ConfigDict(str_strip_whitespace=True)

    lines: Optional[list[LineItemInput]] = None
    country_code: Optional[str] = None
    tax_rate_key: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    payment_type: Optional[PaymentType] = None
    status: Optional[InvoiceStatus] = None
    due_date: Optional[datetime] = None


# =============================================================================
# PROJECTS AND CLIENTS (referenced, not managed, by the engine)
# =============================================================================

class Client(BaseModel):
    """A freelancer's client. Handed to the email collaborator with documents."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)


class Project(BaseModel):
    """
    A project documents are attached to.

    The status is derived from the project's quotes; document CRUD never
    sets it directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    client_id: UUID
    name: str = Field(..., min_length=2, max_length=200)
    status: ProjectStatus = ProjectStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue, e.g. 'lines[2].quantity'"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_rate_key')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (line shapes, required fields)
    Stage 2: Semantic validation (tax regime, rate key, dates)
    """

    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool

    lines: list[LineItemInput] = Field(
        default_factory=list,
        description="Normalized lines, populated when schema validation passed"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# QUERY MODELS
# =============================================================================

class DocumentQuery(BaseModel):
    """
    A structured listing or aggregation over one owner's documents.

    Executed deterministically by DocumentQueryExecutor.
    """

    query_id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    kind: DocumentKind
    query_type: str = Field(
        default="list",
        pattern="^(list|aggregate)$",
    )

    # Filters
    status_filter: Optional[str] = Field(
        default=None,
        description="Status value, or None / 'all' for every status"
    )
    project_id: Optional[UUID] = None
    search: Optional[str] = Field(
        default=None,
        description="Case-insensitive match on number or notes"
    )

    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def normalize_status_filter(self) -> "DocumentQuery":
        """'all' means no status filter."""
        if self.status_filter == "all":
            self.status_filter = None
        return self


class QueryResult(BaseModel):
    """Result of executing a DocumentQuery."""

    query_id: UUID
    executed_at: datetime = Field(default_factory=utc_now)

    success: bool
    error_message: Optional[str] = None

    result_count: int = Field(ge=0)
    results: list[dict] = Field(
        default_factory=list,
        description="Matching documents as persisted records"
    )

    # Aggregation result if applicable: {status: total}
    aggregation_result: Optional[dict[str, Decimal]] = None

    query_description: str
