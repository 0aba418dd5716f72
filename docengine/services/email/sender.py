"""
Email Delivery

The engine does not render or deliver email itself. It hands a fully
populated quote or invoice, plus its client, to an EmailSenderInterface
and only looks at whether delivery succeeded.

Rendering (templates, currency formatting) and transport (SMTP, API)
belong to the implementation.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field

from docengine.models.document import AnyDocument, Client


class EmailError(Exception):
    """Base exception for email errors."""
    pass


class EmailDeliveryError(EmailError):
    """The collaborator could not deliver the message."""

    def __init__(self, recipient: str, message: str):
        self.recipient = recipient
        super().__init__(message)


class EmailResult(BaseModel):
    """Outcome reported by the email collaborator."""

    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = Field(
        default=None,
        description="Why delivery failed, when success is False"
    )


class EmailSenderInterface(ABC):
    """
    Abstract email delivery collaborator.

    Implementations may raise EmailDeliveryError or return
    EmailResult(success=False); the engine treats both as a failure.
    """

    @abstractmethod
    async def send(
        self,
        recipient: str,
        document: AnyDocument,
        client: Optional[Client],
    ) -> EmailResult:
        """
        Render and deliver a document to a recipient.

        Args:
            recipient: Email address to deliver to
            document: Quote or invoice, with its lines
            client: The document's client, if it could be resolved

        Returns:
            EmailResult with the provider's message id on success
        """
        pass


class LogOnlyEmailSender(EmailSenderInterface):
    """
    Development sender: logs the message instead of delivering it.

    Used when no real email collaborator is wired in.
    """

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    async def send(
        self,
        recipient: str,
        document: AnyDocument,
        client: Optional[Client],
    ) -> EmailResult:
        message_id = f"<{uuid4()}@docengine.local>"
        self._logger.info(
            "email_not_delivered",
            recipient=recipient,
            kind=document.kind.value,
            number=document.number,
            client=client.name if client else None,
            message_id=message_id,
        )
        return EmailResult(success=True, message_id=message_id)
