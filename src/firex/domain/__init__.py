"""Query, watch and write execution."""

from .batch_processor import BatchProcessor
from .field_values import FieldValueTransformer
from .models import (
    BatchWrite,
    ChangeType,
    DeleteResult,
    DocumentChange,
    DocumentMetadata,
    DocumentWithMeta,
    ExportResult,
    FieldTransform,
    FieldTransformKind,
    FirestoreTimestamp,
    ImportResult,
    OrderBy,
    QueryOptions,
    QueryResult,
    TimestampFormatOptions,
    WatchOptions,
    WhereCondition,
)
from .query_builder import QueryBuilder, parse_order_by, parse_where
from .watch_service import WatchService

__all__ = [
    "BatchWrite",
    "ChangeType",
    "DeleteResult",
    "DocumentChange",
    "DocumentMetadata",
    "DocumentWithMeta",
    "ExportResult",
    "FieldTransform",
    "FieldTransformKind",
    "FirestoreTimestamp",
    "ImportResult",
    "OrderBy",
    "QueryOptions",
    "QueryResult",
    "TimestampFormatOptions",
    "WatchOptions",
    "WhereCondition",
    "BatchProcessor",
    "FieldValueTransformer",
    "QueryBuilder",
    "parse_order_by",
    "parse_where",
    "WatchService",
]
