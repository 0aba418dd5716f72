"""
In-Memory Storage Implementation

DESIGN DECISION: The engine ships with an in-memory backend because:
1. Tests need a storage that honours the full transactional contract
2. Embedding the engine (scripts, previews) should not require a database
3. It documents, in running code, what a real backend must guarantee

TRANSACTIONS:
- Writers are serialized by a single asyncio.Lock
- A transaction works on a copy of the committed state
- Commit swaps the copy in; any exception discards it
- Readers outside a transaction only see committed state

Rows are stored without their lines; lines live in their own table and
are re-attached on read, like a relational store would do with a join.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

from docengine.config import get_settings
from docengine.models.document import (
    AnyDocument,
    Client,
    DocumentKind,
    LineItem,
    Project,
    ProjectStatus,
    Quote,
    parse_number,
)
from docengine.models.audit import AuditEvent
from docengine.services.storage.interface import (
    AuditStorageInterface,
    DocumentStorageInterface,
    DuplicateError,
    RecordNotFoundError,
    StorageError,
    TransactionInterface,
    TransactionTimeoutError,
)


class _Tables:
    """Document and line tables. Copied per transaction."""

    def __init__(
        self,
        documents: Optional[dict[UUID, AnyDocument]] = None,
        lines: Optional[dict[UUID, LineItem]] = None,
    ):
        self.documents: dict[UUID, AnyDocument] = documents or {}
        self.lines: dict[UUID, LineItem] = lines or {}

    def copy(self) -> "_Tables":
        # Rows are replaced, never mutated in place, so shallow copies suffice.
        return _Tables(dict(self.documents), dict(self.lines))

    def find(self, kind: DocumentKind, document_id: UUID) -> Optional[AnyDocument]:
        document = self.documents.get(document_id)
        if document is None or document.kind != kind:
            return None
        return document

    def assemble(self, document: AnyDocument) -> AnyDocument:
        """Return a detached copy of the document with its lines attached."""
        lines = [
            line.model_copy(deep=True)
            for line in self.lines.values()
            if line.document_id == document.id
        ]
        return document.model_copy(deep=True, update={"lines": lines})


class _MemoryTransaction(TransactionInterface):
    """Statements of one in-memory transaction."""

    def __init__(self, tables: _Tables):
        self._tables = tables
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Transaction is no longer active")

    def close(self) -> None:
        self._closed = True

    async def get_document(
        self,
        kind: DocumentKind,
        document_id: UUID,
    ) -> Optional[AnyDocument]:
        self._check_open()
        document = self._tables.find(kind, document_id)
        return self._tables.assemble(document) if document else None

    async def insert_document(self, document: AnyDocument) -> None:
        self._check_open()
        if document.id in self._tables.documents:
            raise DuplicateError(f"Document {document.id} already exists")
        for existing in self._tables.documents.values():
            if (
                existing.owner_id == document.owner_id
                and existing.kind == document.kind
                and existing.number == document.number
            ):
                raise DuplicateError(
                    f"Number {document.number} already used by this owner"
                )
        self._tables.documents[document.id] = document.model_copy(
            deep=True, update={"lines": []}
        )

    async def update_document(self, document: AnyDocument) -> None:
        self._check_open()
        if self._tables.find(document.kind, document.id) is None:
            raise RecordNotFoundError(f"Document {document.id} not found")
        self._tables.documents[document.id] = document.model_copy(
            deep=True, update={"lines": []}
        )

    async def delete_document(self, kind: DocumentKind, document_id: UUID) -> None:
        self._check_open()
        if self._tables.find(kind, document_id) is None:
            raise RecordNotFoundError(f"Document {document_id} not found")
        del self._tables.documents[document_id]

    async def insert_lines(self, lines: list[LineItem]) -> None:
        self._check_open()
        for line in lines:
            if line.document_id not in self._tables.documents:
                raise RecordNotFoundError(
                    f"Line {line.id} references missing document {line.document_id}"
                )
            if line.id in self._tables.lines:
                raise DuplicateError(f"Line {line.id} already exists")
            self._tables.lines[line.id] = line.model_copy(deep=True)

    async def delete_lines(self, document_id: UUID) -> int:
        self._check_open()
        doomed = [
            line_id
            for line_id, line in self._tables.lines.items()
            if line.document_id == document_id
        ]
        for line_id in doomed:
            del self._tables.lines[line_id]
        return len(doomed)


class InMemoryDocumentStorage(DocumentStorageInterface):
    """
    Document storage held in process memory.

    Not shared between processes and lost on exit.
    """

    def __init__(self, transaction_timeout: Optional[float] = None):
        """
        Args:
            transaction_timeout: Seconds to wait for the writer lock.
                                 Defaults to the engine settings.
        """
        if transaction_timeout is None:
            transaction_timeout = get_settings().engine.transaction_timeout_seconds
        self._timeout = transaction_timeout
        self._committed = _Tables()
        self._projects: dict[UUID, Project] = {}
        self._clients: dict[UUID, Client] = {}
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TransactionInterface]:
        try:
            await asyncio.wait_for(self._write_lock.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise TransactionTimeoutError(
                f"Could not start a transaction within {self._timeout}s"
            )

        working = self._committed.copy()
        tx = _MemoryTransaction(working)
        try:
            yield tx
            # Reached only if the block did not raise: commit.
            self._committed = working
        finally:
            tx.close()
            self._write_lock.release()

    async def get_document(
        self,
        kind: DocumentKind,
        document_id: UUID,
    ) -> Optional[AnyDocument]:
        tables = self._committed
        document = tables.find(kind, document_id)
        return tables.assemble(document) if document else None

    async def list_documents(
        self,
        owner_id: UUID,
        kind: DocumentKind,
        status: Optional[str] = None,
        project_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AnyDocument]:
        tables = self._committed
        needle = search.strip().lower() if search else None

        matches = []
        for document in tables.documents.values():
            if document.owner_id != owner_id or document.kind != kind:
                continue
            if status is not None and document.status.value != status:
                continue
            if project_id is not None and document.project_id != project_id:
                continue
            if needle and not self._matches_search(document, needle):
                continue
            matches.append(document)

        matches.sort(key=lambda d: parse_number(d.number))
        return [tables.assemble(d) for d in matches[offset:offset + limit]]

    def _matches_search(self, document: AnyDocument, needle: str) -> bool:
        """Search number, notes, client name and project name."""
        haystack = [document.number, document.notes or ""]
        client = self._clients.get(document.client_id)
        if client:
            haystack.append(client.name)
        project = self._projects.get(document.project_id)
        if project:
            haystack.append(project.name)
        return any(needle in value.lower() for value in haystack)

    async def list_project_quotes(self, project_id: UUID) -> list[Quote]:
        tables = self._committed
        return [
            tables.assemble(document)
            for document in tables.documents.values()
            if document.kind == DocumentKind.QUOTE
            and document.project_id == project_id
        ]

    async def highest_number(
        self,
        owner_id: UUID,
        kind: DocumentKind,
    ) -> Optional[str]:
        numbers = [
            document.number
            for document in self._committed.documents.values()
            if document.owner_id == owner_id and document.kind == kind
        ]
        if not numbers:
            return None
        return max(numbers, key=parse_number)

    async def get_project(self, project_id: UUID) -> Optional[Project]:
        project = self._projects.get(project_id)
        return project.model_copy() if project else None

    async def save_project(self, project: Project) -> None:
        self._projects[project.id] = project.model_copy()

    async def set_project_status(
        self,
        project_id: UUID,
        status: ProjectStatus,
    ) -> None:
        project = self._projects.get(project_id)
        if project is None:
            raise RecordNotFoundError(f"Project {project_id} not found")
        self._projects[project_id] = project.model_copy(update={"status": status})

    async def get_client(self, client_id: UUID) -> Optional[Client]:
        client = self._clients.get(client_id)
        return client.model_copy() if client else None

    async def save_client(self, client: Client) -> None:
        self._clients[client.id] = client.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
