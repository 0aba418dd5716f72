"""
Engine Errors

Every failure the engine reports to its caller is one of these types.
The HTTP layer (out of this package) maps them to status codes:

    NotFoundError            -> 404
    ForbiddenError           -> 403
    InvalidInputError        -> 400
    UnsupportedCountryError  -> 400
    InvalidStateError        -> 409 / 400
    ConflictError            -> 409

DESIGN DECISION: The engine never retries. A failed transaction is
rolled back and the error is surfaced as-is.
"""

from typing import Optional


class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class NotFoundError(EngineError):
    """
    Document, project or client is absent or not owned by the caller.

    The same error is raised in both cases so that non-owners cannot
    discover the existence of other users' documents.
    """

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class ForbiddenError(EngineError):
    """Project ownership mismatch on document creation."""
    pass


class InvalidInputError(EngineError):
    """Missing or malformed lines, empty line set, unknown status value."""

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        super().__init__(message)


class UnsupportedCountryError(EngineError):
    """Tax lookup for a country code that has no registered regime."""

    def __init__(self, country_code: str):
        self.country_code = country_code
        super().__init__(f"Country {country_code} not supported")


class InvalidStateError(EngineError):
    """Operation not allowed in the document's current state."""
    pass


class ConflictError(EngineError):
    """Document number collision detected at commit time."""
    pass
