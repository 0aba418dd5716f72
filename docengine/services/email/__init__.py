"""Email delivery package."""

from docengine.services.email.sender import (
    EmailDeliveryError,
    EmailError,
    EmailResult,
    EmailSenderInterface,
    LogOnlyEmailSender,
)

__all__ = [
    "EmailDeliveryError",
    "EmailError",
    "EmailResult",
    "EmailSenderInterface",
    "LogOnlyEmailSender",
]
