"""
Shared Document Lifecycle

Quotes and invoices share their whole create / update / delete / send
machinery; only their status enum, a few fields and the side effects
differ. This module holds the shared part.

TRANSACTIONS:
Every multi-row write (document + lines; line delete + line insert +
field update) runs inside one storage transaction. If any statement
fails, the transaction is rolled back, the failure is audited and the
original error reaches the caller. Nothing is retried.

Updates, deletes and status changes re-read their row inside the
transaction and apply to that row, so a write committed by a concurrent
operation on the same document is never overwritten by a stale copy.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from docengine.audit import AuditLogger, create_correlation_id
from docengine.config import get_settings
from docengine.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from docengine.models.document import (
    Client,
    DocumentKind,
    LineItem,
    LineItemInput,
    Project,
    ValidationIssue,
    utc_now,
)
from docengine.numbering import SequenceAllocator
from docengine.services.email import (
    EmailDeliveryError,
    EmailSenderInterface,
    LogOnlyEmailSender,
)
from docengine.services.storage import (
    DocumentStorageInterface,
    DuplicateError,
    StorageError,
    TransactionInterface,
)
from docengine.tax import document_totals, line_totals
from docengine.validation import DocumentValidator

DocT = TypeVar("DocT")
PatchT = TypeVar("PatchT", bound=BaseModel)

Clock = Callable[[], datetime]

# Patch fields that cannot be cleared; an explicit None means "leave as is".
_NON_NULLABLE_FIELDS = {"status", "country_code", "due_date"}


def invalid_input_from(error: ValidationError, prefix: str = "") -> InvalidInputError:
    """Translate a pydantic ValidationError into InvalidInputError."""
    issues = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        field = f"{prefix}.{location}" if prefix and location else (location or prefix)
        issues.append(ValidationIssue(
            field=field or "input",
            issue_type=detail["type"],
            message=detail["msg"],
            severity="error",
        ))
    summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
    return InvalidInputError(f"Invalid input: {summary}", issues)


class DocumentLifecycle(Generic[DocT, PatchT]):
    """
    Base lifecycle for one document kind.

    Subclasses set `kind`, `document_type` and `patch_type`, and add the
    kind-specific operations.
    """

    kind: DocumentKind
    document_type: type
    patch_type: type[PatchT]
    status_type: type

    def __init__(
        self,
        storage: DocumentStorageInterface,
        allocator: Optional[SequenceAllocator] = None,
        validator: Optional[DocumentValidator] = None,
        email_sender: Optional[EmailSenderInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._allocator = allocator or SequenceAllocator(storage)
        self._validator = validator or DocumentValidator()
        self._email_sender = email_sender or LogOnlyEmailSender()
        self._audit_logger = audit_logger
        self._clock = clock
        self._logger = structlog.get_logger(__name__).bind(kind=self.kind.value)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, document_id: UUID, owner_id: UUID) -> DocT:
        """
        Fetch a document owned by `owner_id`.

        Raises:
            NotFoundError: Missing, or owned by someone else
        """
        document = await self._storage.get_document(self.kind, document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError(self.kind.value, document_id)
        return document

    async def list_documents(
        self,
        owner_id: UUID,
        status: Optional[str] = None,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[DocT]:
        """
        An owner's documents, ordered by number.

        `status` may be None or "all" for every status.
        """
        if status is not None and status != "all":
            status = self._validator.ensure_status(status, self.status_type).value
        else:
            status = None
        return await self._storage.list_documents(
            owner_id=owner_id,
            kind=self.kind,
            status=status,
            project_id=project_id,
            search=search,
            limit=limit,
            offset=offset,
        )

    # -------------------------------------------------------------------------
    # Building blocks
    # -------------------------------------------------------------------------

    def _build_lines(
        self,
        document_id: UUID,
        inputs: Iterable[LineItemInput],
        country_code: str,
        rate_key: Optional[str],
    ) -> list[LineItem]:
        lines = []
        for line in inputs:
            totals = line_totals(line.quantity, line.unit_price, country_code, rate_key)
            lines.append(LineItem(
                document_id=document_id,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total=totals.total,
            ))
        return lines

    async def _owned_project(self, project_id: UUID, owner_id: UUID) -> Project:
        """
        Raises:
            NotFoundError: Unknown project
            ForbiddenError: Project owned by someone else
        """
        project = await self._storage.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        if project.owner_id != owner_id:
            if self._audit_logger:
                await self._audit_logger.log_mutation_rejected(
                    entity_type="project",
                    entity_id=project_id,
                    owner_id=owner_id,
                    reason="project belongs to another owner",
                )
            raise ForbiddenError("Project does not belong to this owner")
        return project

    def _coerce_patch(self, patch: Any) -> PatchT:
        if isinstance(patch, self.patch_type):
            return patch
        try:
            return self.patch_type.model_validate(patch)
        except ValidationError as e:
            raise invalid_input_from(e, "patch")

    def _construct(self, **fields: Any) -> DocT:
        try:
            return self.document_type(**fields)
        except ValidationError as e:
            raise invalid_input_from(e)

    async def _commit(
        self,
        operation: str,
        owner_id: UUID,
        statements: Callable[[TransactionInterface], Awaitable[None]],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Run `statements` in one transaction.

        Engine errors raised by `statements` (a row that vanished, a paid
        invoice, a bad patch) are refusals, not failures: the transaction
        is discarded and the error is re-raised without a rollback event.

        Raises:
            ConflictError: The store rejected a duplicate document number
            Any error raised by `statements` or the store, unchanged
        """
        try:
            async with self._storage.transaction() as tx:
                await statements(tx)
        except EngineError:
            raise
        except DuplicateError as e:
            await self._audit_rollback(operation, e, owner_id, correlation_id)
            raise ConflictError(f"Document number collision: {e}") from e
        except Exception as e:
            await self._audit_rollback(operation, e, owner_id, correlation_id)
            if not isinstance(e, StorageError) and self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"operation": f"{self.kind.value}.{operation}"},
                    correlation_id=correlation_id,
                )
            raise

    async def _current(
        self,
        tx: TransactionInterface,
        document: DocT,
        operation: str,
        correlation_id: UUID,
    ) -> DocT:
        """
        Re-read `document` inside the transaction.

        Writes are applied to this row, never to the copy read before the
        transaction started, so a change committed in between is kept.

        Raises:
            NotFoundError: The document was deleted meanwhile
        """
        current = await tx.get_document(self.kind, document.id)
        if current is None or current.owner_id != document.owner_id:
            raise NotFoundError(self.kind.value, document.id)
        await self._check_mutable(current, operation, correlation_id)
        return current

    async def _check_mutable(
        self,
        document: DocT,
        operation: str,
        correlation_id: UUID,
    ) -> None:
        """Kind-specific guard run on the fresh row; raise to refuse."""

    def _should_mark_sent(self, document: DocT, sent_status: Any) -> bool:
        return document.status != sent_status

    async def _audit_rollback(
        self,
        operation: str,
        error: Exception,
        owner_id: UUID,
        correlation_id: Optional[UUID],
    ) -> None:
        self._logger.warning(
            "transaction_rolled_back",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_rolled_back(
                operation=f"{self.kind.value}.{operation}",
                error=error,
                owner_id=owner_id,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Shared workflows
    # -------------------------------------------------------------------------

    async def _create(
        self,
        owner_id: UUID,
        raw_lines: Any,
        country_code: Optional[str],
        rate_key: Optional[str],
        fields: dict[str, Any],
        correlation_id: UUID,
        due_date: Optional[datetime] = None,
    ) -> DocT:
        """
        Validate, total, number and insert a document with its lines.

        The number is allocated while the per-owner reservation is held,
        and the reservation lasts until the insert has committed.
        """
        if country_code is None:
            country_code = get_settings().engine.default_country
        now = self._clock()
        inputs = self._validator.ensure_valid(
            raw_lines,
            country_code,
            rate_key,
            document_date=now,
            due_date=due_date,
        )
        totals = document_totals(inputs, country_code, rate_key)

        async with self._allocator.reserve(owner_id, self.kind) as number:
            document = self._construct(
                number=number,
                owner_id=owner_id,
                country_code=country_code,
                tax_rate_key=rate_key,
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total=totals.total,
                created_at=now,
                updated_at=now,
                **fields,
            )
            lines = self._build_lines(document.id, inputs, country_code, rate_key)
            document = document.model_copy(update={"lines": lines})

            async def statements(tx: TransactionInterface) -> None:
                await tx.insert_document(document)
                await tx.insert_lines(lines)

            await self._commit("create", owner_id, statements, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_number_allocated(
                owner_id, self.kind.value, number, correlation_id
            )
            await self._audit_logger.log_document_created(document, correlation_id)

        self._logger.info(
            "document_created",
            number=document.number,
            document_id=str(document.id),
            total=str(document.total),
        )
        return await self.get(document.id, owner_id)

    async def _update(
        self,
        document: DocT,
        patch: PatchT,
        correlation_id: UUID,
    ) -> DocT:
        """
        Apply the fields explicitly set on `patch`.

        With `lines`: old lines are deleted, new ones inserted and totals
        recomputed, all in the same transaction as the field update.
        Without: stored totals are kept untouched.
        """
        changes = {
            name: value
            for name, value in patch.model_dump(exclude_unset=True, exclude={"lines"}).items()
            if not (value is None and name in _NON_NULLABLE_FIELDS)
        }
        if "status" in changes:
            changes["status"] = self._validator.ensure_status(
                changes["status"], self.status_type
            )
        replace_lines = "lines" in patch.model_fields_set and patch.lines is not None
        updated: Optional[DocT] = None

        async def statements(tx: TransactionInterface) -> None:
            nonlocal updated
            current = await self._current(tx, document, "update", correlation_id)
            updated, new_lines = self._apply_patch(current, patch, changes, replace_lines)
            if replace_lines:
                await tx.delete_lines(current.id)
            await tx.update_document(updated)
            if replace_lines:
                await tx.insert_lines(new_lines)

        await self._commit("update", document.owner_id, statements, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_document_updated(
                updated, replace_lines, correlation_id
            )
        return await self.get(document.id, document.owner_id)

    def _apply_patch(
        self,
        current: DocT,
        patch: PatchT,
        changes: dict[str, Any],
        replace_lines: bool,
    ) -> tuple[DocT, list[LineItem]]:
        """Build the updated row and its new lines from the current row."""
        changes = dict(changes)
        country_code = changes.get("country_code", current.country_code)
        rate_key = changes.get("tax_rate_key", current.tax_rate_key)

        new_lines: list[LineItem] = []
        if replace_lines:
            inputs = self._validator.ensure_valid(
                patch.lines,
                country_code,
                rate_key,
                document_date=current.created_at,
                due_date=changes.get("due_date", getattr(current, "due_date", None)),
            )
            totals = document_totals(inputs, country_code, rate_key)
            new_lines = self._build_lines(current.id, inputs, country_code, rate_key)
            changes.update(
                subtotal=totals.subtotal,
                tax_amount=totals.tax_amount,
                total=totals.total,
            )
        else:
            self._validator.ensure_country(country_code)

        changes["updated_at"] = self._clock()
        try:
            updated = self.document_type.model_validate({
                **current.model_dump(exclude={"lines"}),
                **changes,
            })
        except ValidationError as e:
            raise invalid_input_from(e, "patch")
        return updated, new_lines

    async def _delete(self, document: DocT, correlation_id: UUID) -> None:
        """Delete the lines, then the document, atomically."""

        async def statements(tx: TransactionInterface) -> None:
            current = await self._current(tx, document, "delete", correlation_id)
            await tx.delete_lines(current.id)
            await tx.delete_document(self.kind, current.id)

        await self._commit("delete", document.owner_id, statements, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_document_deleted(document, correlation_id)
        self._logger.info("document_deleted", number=document.number)

    async def _set_status(
        self,
        document: DocT,
        status: Any,
        correlation_id: UUID,
        operation: str = "set_status",
    ) -> DocT:
        """
        Write `status` onto the current row.

        For a send, the row is left alone when _should_mark_sent() says so.
        """
        previous = None
        updated: Optional[DocT] = None

        async def statements(tx: TransactionInterface) -> None:
            nonlocal previous, updated
            current = await self._current(tx, document, operation, correlation_id)
            if operation == "send" and not self._should_mark_sent(current, status):
                return
            previous = current.status
            updated = current.model_copy(update={
                "status": status,
                "updated_at": self._clock(),
            })
            await tx.update_document(updated)

        await self._commit(operation, document.owner_id, statements, correlation_id)

        if updated is not None and self._audit_logger:
            await self._audit_logger.log_status_changed(
                updated, previous.value, correlation_id
            )
        return await self.get(document.id, document.owner_id)

    async def _send(
        self,
        document: DocT,
        recipient_email: str,
        sent_status: Any,
        correlation_id: UUID,
    ) -> DocT:
        """
        Deliver the document through the email collaborator.

        On success the current row moves to `sent_status` unless it is
        already there (or the kind refuses it, see _should_mark_sent).
        On failure the status is left as it was.

        Raises:
            InvalidInputError: No recipient
            EmailDeliveryError: The collaborator reported a failure
        """
        if not recipient_email or not str(recipient_email).strip():
            raise InvalidInputError("Recipient email is required")
        recipient_email = str(recipient_email).strip()

        client: Optional[Client] = await self._storage.get_client(document.client_id)

        try:
            result = await self._email_sender.send(recipient_email, document, client)
        except EmailDeliveryError as e:
            await self._audit_email_failure(document, recipient_email, str(e), correlation_id)
            raise

        if not result.success:
            message = result.error_message or "Email delivery failed"
            await self._audit_email_failure(document, recipient_email, message, correlation_id)
            raise EmailDeliveryError(recipient_email, message)

        if self._audit_logger:
            await self._audit_logger.log_document_sent(
                document, recipient_email, result.message_id, correlation_id
            )

        return await self._set_status(document, sent_status, correlation_id, operation="send")

    async def _audit_email_failure(
        self,
        document: DocT,
        recipient: str,
        message: str,
        correlation_id: UUID,
    ) -> None:
        self._logger.error(
            "email_delivery_failed",
            number=document.number,
            recipient=recipient,
            error=message,
        )
        if self._audit_logger:
            await self._audit_logger.log_email_failed(
                document, recipient, message, correlation_id
            )

    @staticmethod
    def _correlation(correlation_id: Optional[UUID]) -> UUID:
        return correlation_id or create_correlation_id()
