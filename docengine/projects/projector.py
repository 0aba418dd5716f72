"""
Project Status Projector

A project's status follows its quotes:

    any quote accepted  -> quote_accepted
    else any quote sent -> quote_sent
    else                -> unchanged

The projection only ever pushes a project towards quote_sent or
quote_accepted. It never brings it back (e.g. to pending) when the quotes
that triggered it are deleted or move away from sent/accepted. This
matches the behaviour existing projects were built with.

Re-projection runs after quote update, delete, status change and send,
but NOT after quote creation.
"""

from typing import Iterable, Optional
from uuid import UUID

from docengine.audit import AuditLogger
from docengine.models.document import Project, ProjectStatus, Quote, QuoteStatus
from docengine.services.storage import DocumentStorageInterface


def project_status(
    quotes: Iterable[Quote],
    current: ProjectStatus,
) -> ProjectStatus:
    """Pure projection of a project's status from its quotes."""
    statuses = {quote.status for quote in quotes}
    if QuoteStatus.ACCEPTED in statuses:
        return ProjectStatus.QUOTE_ACCEPTED
    if QuoteStatus.SENT in statuses:
        return ProjectStatus.QUOTE_SENT
    return current


class ProjectStatusProjector:
    """Recomputes and stores a project's status from its committed quotes."""

    def __init__(
        self,
        storage: DocumentStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    async def reproject(
        self,
        project_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Project]:
        """
        Re-derive and persist the project's status.

        Returns:
            The project after projection, or None if it no longer exists
        """
        project = await self._storage.get_project(project_id)
        if project is None:
            return None

        quotes = await self._storage.list_project_quotes(project_id)
        status = project_status(quotes, project.status)

        if status != project.status:
            await self._storage.set_project_status(project_id, status)

        if self._audit_logger:
            await self._audit_logger.log_project_projected(
                project_id=project_id,
                previous_status=project.status.value,
                status=status.value,
                correlation_id=correlation_id,
            )

        return project.model_copy(update={"status": status})
