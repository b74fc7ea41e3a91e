"""Data models shared by the query, watch and output layers.

All models are immutable snapshots built per request, per change event or per write.
Attribute names are snake_case; ``to_output()`` dumps them with the camelCase
keys used in rendered output (``createTime``, ``updateTime``, ...).
"""

import calendar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# QUERY CLAUSES
# =============================================================================

FIRESTORE_OPERATORS: List[str] = [
    "==",
    "!=",
    "<",
    "<=",
    ">",
    ">=",
    "array-contains",
    "array-contains-any",
    "in",
    "not-in",
]

ORDER_DIRECTIONS: List[str] = ["asc", "desc"]


class WhereCondition(BaseModel):
    """A single filter clause. Validated by ``QueryBuilder``, not here."""

    model_config = ConfigDict(frozen=True)

    field: str
    operator: str
    value: Any = None


class OrderBy(BaseModel):
    """A single sort clause."""

    model_config = ConfigDict(frozen=True)

    field: str
    direction: str = "asc"


class QueryOptions(BaseModel):
    """Filters, sort, limit and pagination cursor for a collection query."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    where: Optional[List[WhereCondition]] = None
    order_by: Optional[List[OrderBy]] = None
    limit: Optional[int] = None
    start_after: Any = None


# =============================================================================
# DOCUMENTS
# =============================================================================

class FirestoreTimestamp(BaseModel):
    """Database-native timestamp value, tagged by the backend adapter.

    Rendered as ``{"_seconds": ..., "_nanoseconds": ...}`` when timestamp
    conversion is disabled.
    """

    model_config = ConfigDict(frozen=True)

    seconds: int
    nanoseconds: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> "FirestoreTimestamp":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        nanos = getattr(value, "nanosecond", None)
        if nanos is None:
            nanos = value.microsecond * 1000
        return cls(seconds=calendar.timegm(value.utctimetuple()), nanoseconds=int(nanos))

    def to_datetime(self) -> datetime:
        """Return the instant as an aware UTC datetime (microsecond precision)."""
        return datetime.fromtimestamp(self.seconds, tz=timezone.utc).replace(
            microsecond=self.nanoseconds // 1000
        )

    def to_raw(self) -> Dict[str, int]:
        return {"_seconds": self.seconds, "_nanoseconds": self.nanoseconds}


class DocumentMetadata(BaseModel):
    """Identity and server times of a document snapshot."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    path: str
    create_time: Optional[datetime] = None
    update_time: Optional[datetime] = None
    read_time: Optional[datetime] = None

    def to_output(self) -> Dict[str, Any]:
        """Dump with camelCase keys, omitting times that are not set."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DocumentWithMeta(BaseModel):
    """Document data tree together with its metadata."""

    model_config = ConfigDict(frozen=True)

    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: DocumentMetadata

    @field_validator("data", mode="before")
    @classmethod
    def _none_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class ChangeType(str, Enum):
    """Classification of a realtime change."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class DocumentChange(BaseModel):
    """A single change delivered by a watch."""

    model_config = ConfigDict(frozen=True)

    type: ChangeType
    document: DocumentWithMeta


class QueryResult(BaseModel):
    """Documents returned by a query and the wall-clock time it took."""

    model_config = ConfigDict(frozen=True)

    documents: List[DocumentWithMeta] = Field(default_factory=list)
    execution_time_ms: float = Field(ge=0)


# =============================================================================
# WATCH AND RENDERING OPTIONS
# =============================================================================

class WatchOptions(BaseModel):
    """Callbacks and retry policy for a watch."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    on_change: Callable[[DocumentChange], None]
    on_error: Optional[Callable[[BaseException], None]] = None
    show_initial: bool = False
    max_retries: int = 3
    on_retries_exhausted: Optional[Callable[[BaseException], None]] = None


class TimestampFormatOptions(BaseModel):
    """How timestamp values are rendered in output."""

    model_config = ConfigDict(frozen=True)

    date_format: str
    timezone: str
    no_date_format: bool = False


# =============================================================================
# WRITES
# =============================================================================

class FieldTransformKind(str, Enum):
    """Server-side field operations accepted in write payloads."""

    SERVER_TIMESTAMP = "serverTimestamp"
    INCREMENT = "increment"
    ARRAY_UNION = "arrayUnion"
    ARRAY_REMOVE = "arrayRemove"
    DELETE = "delete"


class FieldTransform(BaseModel):
    """Backend-neutral field operation; the adapter maps it to a native sentinel."""

    model_config = ConfigDict(frozen=True)

    kind: FieldTransformKind
    operand: Optional[Union[int, float]] = None
    elements: Optional[List[Any]] = None


class BatchWrite(BaseModel):
    """One operation of an atomic write batch."""

    model_config = ConfigDict(frozen=True)

    op: Literal["set", "delete"]
    path: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


class ExportResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    exported_count: int
    file_path: Optional[str] = None


class ImportResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    imported_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0


class DeleteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted_count: int = 0
