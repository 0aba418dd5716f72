"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Plug the engine onto any relational store
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The engine needs three things from storage:
1. Point lookups and ordered scans filtered by owner and kind
2. An all-or-nothing transaction spanning several statements
3. Uniqueness of (owner, kind, number), checked at insert time

Reads outside a transaction only ever see committed state.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional
from uuid import UUID

from docengine.models.document import (
    AnyDocument,
    Client,
    DocumentKind,
    LineItem,
    Project,
    ProjectStatus,
    Quote,
)
from docengine.models.audit import AuditEvent


class TransactionInterface(ABC):
    """
    Statements available inside a transaction.

    Nothing written here is visible outside until the transaction commits.
    If the `async with` block raises, every statement is discarded.
    """

    @abstractmethod
    async def get_document(
        self,
        kind: DocumentKind,
        document_id: UUID,
    ) -> Optional[AnyDocument]:
        """Read a document (with its lines) as seen by this transaction."""
        pass

    @abstractmethod
    async def insert_document(self, document: AnyDocument) -> None:
        """
        Insert a document row. Its `lines` are ignored; use insert_lines.

        Raises:
            DuplicateError: If (owner, kind, number) or id already exists
        """
        pass

    @abstractmethod
    async def update_document(self, document: AnyDocument) -> None:
        """
        Overwrite a document row. Its `lines` are ignored.

        Raises:
            RecordNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete_document(self, kind: DocumentKind, document_id: UUID) -> None:
        """
        Delete a document row.

        Raises:
            RecordNotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def insert_lines(self, lines: list[LineItem]) -> None:
        """Insert line items. Each line's document must exist in this transaction."""
        pass

    @abstractmethod
    async def delete_lines(self, document_id: UUID) -> int:
        """Delete every line of a document. Returns the number deleted."""
        pass


class DocumentStorageInterface(ABC):
    """
    Abstract interface for document storage operations.

    Any storage implementation (PostgreSQL, SQLite, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[TransactionInterface]:
        """
        Open an atomic transaction.

        Usage:
            async with storage.transaction() as tx:
                await tx.insert_document(quote)
                await tx.insert_lines(quote.lines)

        Raises:
            TransactionTimeoutError: If the transaction could not start in time
        """
        pass

    @abstractmethod
    async def get_document(
        self,
        kind: DocumentKind,
        document_id: UUID,
    ) -> Optional[AnyDocument]:
        """
        Retrieve a committed document, with its lines.

        Returns:
            The document if found, None otherwise
        """
        pass

    @abstractmethod
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
        """
        List an owner's documents of one kind, ordered by number ascending.

        Args:
            owner_id: Owner of the documents
            kind: Quote or invoice
            status: Filter by status value
            project_id: Filter by project
            search: Case-insensitive substring of number or notes
            limit: Maximum number of results
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def list_project_quotes(self, project_id: UUID) -> list[Quote]:
        """All committed quotes attached to a project, whatever their owner."""
        pass

    @abstractmethod
    async def highest_number(
        self,
        owner_id: UUID,
        kind: DocumentKind,
    ) -> Optional[str]:
        """
        Highest committed document number for owner and kind.

        Returns:
            e.g. "F-0042", or None if the owner has no document of this kind
        """
        pass

    @abstractmethod
    async def get_project(self, project_id: UUID) -> Optional[Project]:
        pass

    @abstractmethod
    async def save_project(self, project: Project) -> None:
        """Insert or replace a project."""
        pass

    @abstractmethod
    async def set_project_status(
        self,
        project_id: UUID,
        status: ProjectStatus,
    ) -> None:
        """
        Raises:
            RecordNotFoundError: If the project doesn't exist
        """
        pass

    @abstractmethod
    async def get_client(self, client_id: UUID) -> Optional[Client]:
        pass

    @abstractmethod
    async def save_client(self, client: Client) -> None:
        """Insert or replace a client."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one engine operation, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one quote, invoice or project, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class TransactionTimeoutError(StorageError):
    """A transaction could not be started before the configured timeout."""
    pass
