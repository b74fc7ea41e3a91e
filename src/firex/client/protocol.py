"""Abstract document-database capability consumed by the query, watch and write layers.

Any backend that satisfies these protocols can be used; ``FirestoreDatabase``
in ``firex.client.firestore`` adapts ``google.cloud.firestore``. Snapshot
attribute names follow the Google client so the adapter stays thin.
"""

from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Optional,
    Protocol,
    Sequence,
)

if TYPE_CHECKING:
    from ..domain.models import BatchWrite


Unsubscribe = Callable[[], None]
ErrorCallback = Callable[[BaseException], None]


class DocumentReferenceLike(Protocol):
    path: str


class DocumentSnapshotLike(Protocol):
    """Point-in-time read of a single document."""

    exists: bool
    id: str
    reference: DocumentReferenceLike
    create_time: Optional[datetime]
    update_time: Optional[datetime]
    read_time: Optional[datetime]

    def to_dict(self) -> Optional[Dict[str, Any]]:
        ...


class ChangeRecordLike(Protocol):
    """A backend-classified change: ``type`` is added, modified or removed."""

    type: str
    doc: DocumentSnapshotLike


class QuerySnapshotLike(Protocol):
    docs: Sequence[DocumentSnapshotLike]

    def doc_changes(self) -> Iterable[ChangeRecordLike]:
        ...


class QueryLike(Protocol):
    """Chainable query handle; every call returns a new handle."""

    def where(self, field: str, operator: str, value: Any) -> "QueryLike":
        ...

    def order_by(self, field: str, direction: str) -> "QueryLike":
        ...

    def limit(self, count: int) -> "QueryLike":
        ...

    def start_after(self, cursor: Any) -> "QueryLike":
        ...

    def get(self) -> Awaitable[Sequence[DocumentSnapshotLike]]:
        ...

    def on_snapshot(
        self,
        on_next: Callable[[QuerySnapshotLike], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        ...


class DocumentHandleLike(Protocol):
    def on_snapshot(
        self,
        on_next: Callable[[DocumentSnapshotLike], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        ...


class DocumentDatabase(Protocol):
    """Entry point of the abstract client."""

    def collection(self, path: str) -> QueryLike:
        ...

    def doc(self, path: str) -> DocumentHandleLike:
        ...

    def get_document(self, path: str) -> Awaitable[DocumentSnapshotLike]:
        ...

    def list_collections(self, document_path: Optional[str] = None) -> Awaitable[Sequence[str]]:
        ...

    def set_document(
        self, path: str, data: Dict[str, Any], merge: bool = False
    ) -> Awaitable[None]:
        """Create or overwrite a document; ``merge`` keeps fields not in ``data``."""
        ...

    def delete_document(self, path: str) -> Awaitable[None]:
        ...

    def write_batch(self, writes: Sequence["BatchWrite"]) -> Awaitable[None]:
        """Apply the writes atomically."""
        ...
