"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
A DocumentQuery is executed against committed, stored documents only.
Listings return persisted records; aggregations are computed from the
stored (already rounded) document totals and never re-derive amounts.

Aggregations feed the dashboard figures: turnover already paid, pending
payment, or not yet sent, i.e. the sum of `total` per status.
"""

from decimal import Decimal
from typing import Optional

from docengine.models.document import (
    AnyDocument,
    DocumentKind,
    DocumentQuery,
    InvoiceStatus,
    QueryResult,
    QuoteStatus,
)
from docengine.services.storage import DocumentStorageInterface

# Page size used when an aggregation walks every document of an owner.
_AGGREGATE_PAGE_SIZE = 500


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class DocumentQueryExecutor:
    """
    Executes structured document queries against storage.

    GUARANTEES:
    - Only returns real data from storage
    - Only the query owner's documents are ever visible
    - A failed query is reported in the result, never raised
    """

    def __init__(self, storage: DocumentStorageInterface):
        self._storage = storage

    async def execute(self, query: DocumentQuery) -> QueryResult:
        """Execute a structured query and return its result."""
        try:
            status = self._status_filter(query)
            if query.query_type == "aggregate":
                return await self._execute_aggregate(query, status)
            return await self._execute_list(query, status)

        except Exception as e:
            return QueryResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                result_count=0,
                query_description=f"Query failed: {str(e)}",
            )

    def _status_filter(self, query: DocumentQuery) -> Optional[str]:
        if query.status_filter is None:
            return None
        status_type = (
            QuoteStatus if query.kind == DocumentKind.QUOTE else InvoiceStatus
        )
        try:
            return status_type(query.status_filter).value
        except ValueError:
            raise QueryExecutionError(
                f"Unknown {query.kind.value} status: {query.status_filter}"
            )

    async def _execute_list(
        self,
        query: DocumentQuery,
        status: Optional[str],
    ) -> QueryResult:
        """Execute a list query, ordered by number."""
        documents = await self._storage.list_documents(
            owner_id=query.owner_id,
            kind=query.kind,
            status=status,
            project_id=query.project_id,
            search=query.search,
            limit=query.limit,
            offset=query.offset,
        )

        results = [document.to_record() for document in documents]

        return QueryResult(
            query_id=query.query_id,
            success=True,
            result_count=len(results),
            results=results,
            query_description=self._describe(f"Listing {query.kind.value}s", query),
        )

    async def _execute_aggregate(
        self,
        query: DocumentQuery,
        status: Optional[str],
    ) -> QueryResult:
        """Sum document totals per status, plus an overall total."""
        documents = await self._all_documents(query, status)

        status_type = QuoteStatus if query.kind == DocumentKind.QUOTE else InvoiceStatus
        aggregation_result: dict[str, Decimal] = {
            member.value: Decimal("0.00")
            for member in status_type
            if status is None or member.value == status
        }
        for document in documents:
            aggregation_result[document.status.value] += document.total
        aggregation_result["total"] = sum(
            (document.total for document in documents), Decimal("0.00")
        )

        return QueryResult(
            query_id=query.query_id,
            success=True,
            result_count=len(documents),
            aggregation_result=aggregation_result,
            query_description=self._describe(
                f"Summing {query.kind.value} totals by status", query
            ),
        )

    async def _all_documents(
        self,
        query: DocumentQuery,
        status: Optional[str],
    ) -> list[AnyDocument]:
        documents: list[AnyDocument] = []
        offset = 0
        while True:
            page = await self._storage.list_documents(
                owner_id=query.owner_id,
                kind=query.kind,
                status=status,
                project_id=query.project_id,
                search=query.search,
                limit=_AGGREGATE_PAGE_SIZE,
                offset=offset,
            )
            documents.extend(page)
            if len(page) < _AGGREGATE_PAGE_SIZE:
                return documents
            offset += _AGGREGATE_PAGE_SIZE

    def _describe(self, action: str, query: DocumentQuery) -> str:
        desc_parts = [action]
        if query.status_filter:
            desc_parts.append(f"status: {query.status_filter}")
        if query.project_id:
            desc_parts.append(f"project: {query.project_id}")
        if query.search:
            desc_parts.append(f"matching: {query.search}")
        return " | ".join(desc_parts)
