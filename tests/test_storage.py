"""
Tests for the in-memory storage and its transactional contract.
"""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import uuid4

import pytest

from docengine.audit import AuditLogger
from docengine.models.audit import AuditEventType
from docengine.models.document import DocumentKind, LineItem, Quote
from docengine.orchestrator import DocumentEngine
from docengine.services.storage import (
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    RecordNotFoundError,
    StorageError,
    TransactionInterface,
    TransactionTimeoutError,
)


def make_quote(owner_id, number="Q-0001", **kwargs) -> Quote:
    return Quote(
        number=number,
        owner_id=owner_id,
        client_id=kwargs.pop("client_id", uuid4()),
        project_id=kwargs.pop("project_id", uuid4()),
        country_code="FRANCE",
        **kwargs,
    )


def make_line(document_id) -> LineItem:
    return LineItem(
        document_id=document_id,
        description="Design",
        quantity=Decimal("1"),
        unit_price=Decimal("10.00"),
        subtotal=Decimal("10.00"),
        tax_amount=Decimal("2.00"),
        total=Decimal("12.00"),
    )


class _LinesFailTransaction(TransactionInterface):
    """Delegates every statement but refuses to insert lines."""

    def __init__(self, inner: TransactionInterface, error: Exception):
        self._inner = inner
        self._error = error

    async def get_document(self, kind, document_id):
        return await self._inner.get_document(kind, document_id)

    async def insert_document(self, document):
        await self._inner.insert_document(document)

    async def update_document(self, document):
        await self._inner.update_document(document)

    async def delete_document(self, kind, document_id):
        await self._inner.delete_document(kind, document_id)

    async def insert_lines(self, lines):
        raise self._error

    async def delete_lines(self, document_id):
        return await self._inner.delete_lines(document_id)


class LinesFailStorage(InMemoryDocumentStorage):
    """Storage whose transactions fail on the line insert, once armed."""

    armed = True
    error: Exception = StorageError("disk full")

    @asynccontextmanager
    async def transaction(self):
        async with super().transaction() as tx:
            yield _LinesFailTransaction(tx, self.error) if self.armed else tx


class TestTransactions:
    """Tests for atomicity and isolation."""

    def test_commit(self):
        """Test that a clean block commits every statement."""
        storage = InMemoryDocumentStorage()
        owner_id = uuid4()
        quote = make_quote(owner_id)

        async def scenario():
            async with storage.transaction() as tx:
                await tx.insert_document(quote)
                await tx.insert_lines([make_line(quote.id)])
            return await storage.get_document(DocumentKind.QUOTE, quote.id)

        stored = asyncio.run(scenario())
        assert stored.number == "Q-0001"
        assert len(stored.lines) == 1

    def test_rollback_on_error(self):
        """Test that an exception discards every statement of the block."""
        storage = InMemoryDocumentStorage()
        quote = make_quote(uuid4())

        async def scenario():
            with pytest.raises(RuntimeError):
                async with storage.transaction() as tx:
                    await tx.insert_document(quote)
                    await tx.insert_lines([make_line(quote.id)])
                    raise RuntimeError("boom")
            return await storage.get_document(DocumentKind.QUOTE, quote.id)

        assert asyncio.run(scenario()) is None

    def test_uncommitted_writes_are_invisible(self):
        """Test that readers outside the transaction see committed state only."""
        storage = InMemoryDocumentStorage()
        quote = make_quote(uuid4())

        async def scenario():
            async with storage.transaction() as tx:
                await tx.insert_document(quote)
                inside = await tx.get_document(DocumentKind.QUOTE, quote.id)
                outside = await storage.get_document(DocumentKind.QUOTE, quote.id)
            return inside, outside

        inside, outside = asyncio.run(scenario())
        assert inside is not None
        assert outside is None

    def test_transaction_cannot_be_reused(self):
        """Test that a finished transaction refuses statements."""
        storage = InMemoryDocumentStorage()

        async def scenario():
            async with storage.transaction() as tx:
                pass
            await tx.insert_document(make_quote(uuid4()))

        with pytest.raises(StorageError):
            asyncio.run(scenario())

    def test_timeout_waiting_for_transaction(self):
        """Test that a transaction that cannot start in time fails."""
        storage = InMemoryDocumentStorage(transaction_timeout=0.05)

        async def scenario():
            release = asyncio.Event()
            started = asyncio.Event()

            async def hold():
                async with storage.transaction():
                    started.set()
                    await release.wait()

            holder = asyncio.create_task(hold())
            await started.wait()
            try:
                with pytest.raises(TransactionTimeoutError):
                    async with storage.transaction():
                        pass
            finally:
                release.set()
                await holder

            # The store is usable again once the holder is done.
            async with storage.transaction() as tx:
                await tx.insert_document(make_quote(uuid4()))

        asyncio.run(scenario())


class TestConstraints:
    """Tests for uniqueness and referential checks."""

    def test_duplicate_number_per_owner(self):
        """Test that an owner cannot have two quotes with one number."""
        storage = InMemoryDocumentStorage()
        owner_id = uuid4()

        async def scenario():
            async with storage.transaction() as tx:
                await tx.insert_document(make_quote(owner_id))
            with pytest.raises(DuplicateError):
                async with storage.transaction() as tx:
                    await tx.insert_document(make_quote(owner_id))
            # Another owner may reuse the number.
            async with storage.transaction() as tx:
                await tx.insert_document(make_quote(uuid4()))

        asyncio.run(scenario())

    def test_lines_need_a_document(self):
        """Test that orphan lines are refused."""
        storage = InMemoryDocumentStorage()

        async def scenario():
            async with storage.transaction() as tx:
                await tx.insert_lines([make_line(uuid4())])

        with pytest.raises(RecordNotFoundError):
            asyncio.run(scenario())

    def test_update_missing_document(self):
        """Test that updating an unknown document fails."""
        storage = InMemoryDocumentStorage()

        async def scenario():
            async with storage.transaction() as tx:
                await tx.update_document(make_quote(uuid4()))

        with pytest.raises(RecordNotFoundError):
            asyncio.run(scenario())


class TestQueries:
    """Tests for ordered scans."""

    def test_numeric_ordering_and_highest(self):
        """Test that Q-10000 sorts after Q-9999."""
        storage = InMemoryDocumentStorage()
        owner_id = uuid4()

        async def scenario():
            async with storage.transaction() as tx:
                for number in ("Q-10000", "Q-0002", "Q-9999"):
                    await tx.insert_document(make_quote(owner_id, number))
            listed = await storage.list_documents(owner_id, DocumentKind.QUOTE)
            highest = await storage.highest_number(owner_id, DocumentKind.QUOTE)
            page = await storage.list_documents(owner_id, DocumentKind.QUOTE, limit=1, offset=1)
            return listed, highest, page

        listed, highest, page = asyncio.run(scenario())
        assert [q.number for q in listed] == ["Q-0002", "Q-9999", "Q-10000"]
        assert highest == "Q-10000"
        assert [q.number for q in page] == ["Q-9999"]

    def test_kinds_are_separate(self):
        """Test that a quote is not returned as an invoice."""
        storage = InMemoryDocumentStorage()
        quote = make_quote(uuid4())

        async def scenario():
            async with storage.transaction() as tx:
                await tx.insert_document(quote)
            return (
                await storage.get_document(DocumentKind.INVOICE, quote.id),
                await storage.highest_number(quote.owner_id, DocumentKind.INVOICE),
            )

        assert asyncio.run(scenario()) == (None, None)


class TestEngineRollback:
    """Tests that a failing statement leaves no partial document behind."""

    def test_failed_create_leaves_nothing(self, world, lines):
        """Test that a create failing on its lines writes no document."""
        storage = LinesFailStorage(transaction_timeout=1.0)
        audit_storage = InMemoryAuditStorage()
        engine = DocumentEngine(storage, audit_logger=AuditLogger(audit_storage))

        async def scenario():
            await storage.save_project(world.project)
            with pytest.raises(StorageError):
                await engine.create_quote(world.owner_id, world.project.id, lines, "FRANCE")
            listed = await engine.list_quotes(world.owner_id)
            events = await audit_storage.get_recent_events()
            # The number was never used, so the next creation gets it.
            storage.armed = False
            quote = await engine.create_quote(world.owner_id, world.project.id, lines, "FRANCE")
            return listed, events, quote

        listed, events, quote = asyncio.run(scenario())
        assert listed == []
        assert AuditEventType.TRANSACTION_ROLLED_BACK in {e.event_type for e in events}
        assert quote.number == "Q-0001"

    def test_failed_update_keeps_old_lines(self, world, lines):
        """Test that an update failing on its new lines keeps the old ones."""
        storage = LinesFailStorage(transaction_timeout=1.0)
        storage.armed = False
        engine = DocumentEngine(storage)

        async def scenario():
            await storage.save_project(world.project)
            quote = await engine.create_quote(world.owner_id, world.project.id, lines, "FRANCE")
            storage.armed = True
            with pytest.raises(StorageError):
                await engine.update_quote(
                    quote.id,
                    world.owner_id,
                    {"lines": [{"description": "Other", "quantity": 1, "unit_price": 1}]},
                )
            return quote, await engine.get_quote(quote.id, world.owner_id)

        before, after = asyncio.run(scenario())
        assert after.totals == before.totals
        assert {line.id for line in after.lines} == {line.id for line in before.lines}

    def test_unexpected_error_is_reported(self, world, lines):
        """Test that a non-storage failure is rolled back and logged as a system error."""
        storage = LinesFailStorage(transaction_timeout=1.0)
        storage.error = RuntimeError("driver bug")
        audit_storage = InMemoryAuditStorage()
        engine = DocumentEngine(storage, audit_logger=AuditLogger(audit_storage))

        async def scenario():
            await storage.save_project(world.project)
            with pytest.raises(RuntimeError):
                await engine.create_quote(world.owner_id, world.project.id, lines, "FRANCE")
            return await audit_storage.get_recent_events()

        events = asyncio.run(scenario())
        errors = [e for e in events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert AuditEventType.TRANSACTION_ROLLED_BACK in {e.event_type for e in events}
        assert len(errors) == 1
        assert errors[0].error_message == "driver bug"
        assert errors[0].details["operation"] == "quote.create"

    def test_storage_error_is_not_a_system_error(self, world, lines):
        """Test that an expected storage failure only records the rollback."""
        storage = LinesFailStorage(transaction_timeout=1.0)
        audit_storage = InMemoryAuditStorage()
        engine = DocumentEngine(storage, audit_logger=AuditLogger(audit_storage))

        async def scenario():
            await storage.save_project(world.project)
            with pytest.raises(StorageError):
                await engine.create_quote(world.owner_id, world.project.id, lines, "FRANCE")
            return await audit_storage.get_recent_events()

        events = asyncio.run(scenario())
        assert AuditEventType.SYSTEM_ERROR not in {e.event_type for e in events}
