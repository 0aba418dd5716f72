"""
Shared fixtures for the Financial Document Engine tests.

Engine operations are async; tests drive them with asyncio.run() and run
each scenario inside a single event loop.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import pytest

from docengine.audit import AuditLogger
from docengine.models.document import AnyDocument, Client, Project
from docengine.orchestrator import DocumentEngine
from docengine.services.email import (
    EmailDeliveryError,
    EmailResult,
    EmailSenderInterface,
)
from docengine.services.storage import InMemoryAuditStorage, InMemoryDocumentStorage


class FakeClock:
    """Controllable replacement for utc_now()."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now = self.now + timedelta(days=days, hours=hours)


class RecordingEmailSender(EmailSenderInterface):
    """Succeeds and remembers what it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, AnyDocument, Optional[Client]]] = []

    async def send(self, recipient, document, client) -> EmailResult:
        self.sent.append((recipient, document, client))
        return EmailResult(success=True, message_id=f"msg-{len(self.sent)}")


class SlowEmailSender(RecordingEmailSender):
    """Succeeds after a delay, leaving room for concurrent writes."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay

    async def send(self, recipient, document, client) -> EmailResult:
        await asyncio.sleep(self.delay)
        return await super().send(recipient, document, client)


class FailingEmailSender(EmailSenderInterface):
    """Reports a failed delivery, either as a result or as an exception."""

    def __init__(self, raise_error: bool = False):
        self.raise_error = raise_error
        self.attempts = 0

    async def send(self, recipient, document, client) -> EmailResult:
        self.attempts += 1
        if self.raise_error:
            raise EmailDeliveryError(recipient, "SMTP connection refused")
        return EmailResult(success=False, error_message="Mailbox unavailable")


@dataclass
class World:
    """An engine wired to in-memory storage, with one owner and one project."""

    engine: DocumentEngine
    storage: InMemoryDocumentStorage
    audit_storage: InMemoryAuditStorage
    email: EmailSenderInterface
    clock: FakeClock
    owner_id: UUID
    client: Client
    project: Project
    other_owner_id: UUID = field(default_factory=uuid4)


def build_world(email_sender: Optional[EmailSenderInterface] = None) -> World:
    storage = InMemoryDocumentStorage(transaction_timeout=1.0)
    audit_storage = InMemoryAuditStorage()
    clock = FakeClock()
    email_sender = email_sender or RecordingEmailSender()
    engine = DocumentEngine(
        storage,
        email_sender=email_sender,
        audit_logger=AuditLogger(audit_storage),
        clock=clock,
    )

    owner_id = uuid4()
    client = Client(owner_id=owner_id, name="Atelier Dupont", email="contact@dupont.fr")
    project = Project(owner_id=owner_id, client_id=client.id, name="Site vitrine")
    asyncio.run(storage.save_client(client))
    asyncio.run(storage.save_project(project))

    return World(
        engine=engine,
        storage=storage,
        audit_storage=audit_storage,
        email=email_sender,
        clock=clock,
        owner_id=owner_id,
        client=client,
        project=project,
    )


@pytest.fixture
def world() -> World:
    return build_world()


@pytest.fixture
def failing_world() -> World:
    return build_world(FailingEmailSender())


@pytest.fixture
def raising_world() -> World:
    return build_world(FailingEmailSender(raise_error=True))


@pytest.fixture
def slow_world() -> World:
    return build_world(SlowEmailSender())


@pytest.fixture
def lines() -> list[dict]:
    return [
        {"description": "Design", "quantity": 2, "unit_price": "100.00"},
        {"description": "Integration", "quantity": 1, "unit_price": "350.00"},
    ]
