"""Query execution package."""

from docengine.queries.executor import DocumentQueryExecutor, QueryExecutionError

__all__ = ["DocumentQueryExecutor", "QueryExecutionError"]
