"""Input validation package."""

from docengine.validation.validator import DocumentValidator

__all__ = ["DocumentValidator"]
