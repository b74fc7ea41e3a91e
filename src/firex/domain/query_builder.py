"""Query building and execution against a document database."""

import logging
import re
import time
from typing import Any, List, Optional

from ..client.exceptions import FirestoreError, InvalidQueryError
from ..client.protocol import DocumentDatabase, DocumentSnapshotLike
from ..result import Result, err, ok
from .models import (
    FIRESTORE_OPERATORS,
    ORDER_DIRECTIONS,
    DocumentMetadata,
    DocumentWithMeta,
    OrderBy,
    QueryOptions,
    QueryResult,
    WhereCondition,
)

logger = logging.getLogger(__name__)

_WHERE_RE = re.compile(r"^([^=!<>]+)(==|!=|<=|>=|<|>)(.+)$", re.S)
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def snapshot_metadata(snapshot: DocumentSnapshotLike, with_times: bool = True) -> DocumentMetadata:
    """Build metadata from a snapshot; ``with_times=False`` keeps only id and path."""
    if not with_times:
        return DocumentMetadata(id=snapshot.id, path=snapshot.reference.path)
    return DocumentMetadata(
        id=snapshot.id,
        path=snapshot.reference.path,
        create_time=snapshot.create_time,
        update_time=snapshot.update_time,
        read_time=snapshot.read_time,
    )


def snapshot_to_document(snapshot: DocumentSnapshotLike) -> DocumentWithMeta:
    """Map a backend snapshot to the normalized document shape."""
    return DocumentWithMeta(data=snapshot.to_dict() or {}, metadata=snapshot_metadata(snapshot))


# =============================================================================
# CLI EXPRESSION PARSING
# =============================================================================

def _coerce_value(text: str) -> Any:
    """Interpret a filter value: true, false, null and numbers become typed values."""
    value = text.strip()
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if _INTEGER_RE.match(value):
        return int(value)
    if _NUMBER_RE.match(value):
        return float(value)
    return value


def parse_where(expression: str) -> WhereCondition:
    """Parse ``field<op>value`` (op is one of ==, !=, <, <=, >, >=).

    Raises:
        InvalidQueryError: If the expression does not match
    """
    match = _WHERE_RE.match(expression)
    if not match:
        raise InvalidQueryError(
            f"Invalid where condition: {expression} (format: field==value)"
        )
    field, operator, value = match.groups()
    return WhereCondition(field=field.strip(), operator=operator, value=_coerce_value(value))


def parse_order_by(expression: str) -> OrderBy:
    """Parse ``field:asc`` or ``field:desc``.

    Raises:
        InvalidQueryError: If the expression does not match
    """
    parts = expression.split(":")
    if len(parts) != 2:
        raise InvalidQueryError(
            f"Invalid order-by condition: {expression} (format: field:asc or field:desc)"
        )
    field, direction = parts
    direction = direction.strip()
    if direction not in ORDER_DIRECTIONS:
        raise InvalidQueryError(f"Invalid sort direction: {direction} (use asc or desc)")
    return OrderBy(field=field.strip(), direction=direction)


# =============================================================================
# QUERY BUILDER
# =============================================================================

class QueryBuilder:
    """Validates, builds and runs collection queries."""

    def __init__(self, db: DocumentDatabase):
        self.db = db

    def validate_where_condition(self, condition: WhereCondition) -> Result[None]:
        if not condition.field or not condition.field.strip():
            return err(InvalidQueryError("Field name is empty"))

        if condition.operator not in FIRESTORE_OPERATORS:
            return err(InvalidQueryError(
                f"Invalid operator: {condition.operator}", field=condition.field
            ))

        return ok(None)

    def validate_order_by(self, order_by: OrderBy) -> Result[None]:
        if not order_by.field or not order_by.field.strip():
            return err(InvalidQueryError("Sort field name is empty"))

        if order_by.direction not in ORDER_DIRECTIONS:
            return err(InvalidQueryError(
                f"Invalid sort direction: {order_by.direction}", field=order_by.field
            ))

        return ok(None)

    async def execute_query(
        self,
        collection_path: str,
        options: Optional[QueryOptions] = None,
    ) -> Result[QueryResult]:
        """Run a query on a collection.

        Filters and sorts are applied in the given order; the first invalid
        clause aborts before the backend is called.

        Args:
            collection_path: Collection to query
            options: Filters, sort, limit and pagination cursor

        Returns:
            Result with a ``QueryResult``, or INVALID_QUERY / FIRESTORE_ERROR
        """
        options = options or QueryOptions()
        started = time.perf_counter()

        try:
            query = self.db.collection(collection_path)

            for condition in options.where or []:
                validation = self.validate_where_condition(condition)
                if validation.is_err:
                    return validation
                logger.debug("where %s %s %r", condition.field, condition.operator, condition.value)
                query = query.where(condition.field, condition.operator, condition.value)

            for order in options.order_by or []:
                validation = self.validate_order_by(order)
                if validation.is_err:
                    return validation
                logger.debug("order by %s %s", order.field, order.direction)
                query = query.order_by(order.field, order.direction)

            if options.limit is not None and options.limit > 0:
                query = query.limit(options.limit)

            if options.start_after is not None:
                query = query.start_after(options.start_after)

            snapshots = await query.get()

            documents: List[DocumentWithMeta] = [
                snapshot_to_document(snapshot) for snapshot in snapshots if snapshot.exists
            ]
        except Exception as e:
            logger.debug("Query on %s failed: %s", collection_path, e)
            return err(FirestoreError(f"Query execution failed: {e}", original_error=e))

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(
            "Query on %s returned %d documents in %.1fms",
            collection_path, len(documents), elapsed_ms,
        )
        return ok(QueryResult(documents=documents, execution_time_ms=elapsed_ms))
