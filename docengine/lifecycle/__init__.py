"""Document lifecycle: quotes, invoices and quote-to-invoice conversion."""

from docengine.lifecycle.base import DocumentLifecycle
from docengine.lifecycle.invoices import InvoiceLifecycle
from docengine.lifecycle.quotes import QuoteLifecycle

__all__ = [
    "DocumentLifecycle",
    "InvoiceLifecycle",
    "QuoteLifecycle",
]
