"""Cloud Firestore adapter for the abstract document-database protocol.

Wraps ``google.cloud.firestore.Client`` so that:
- query ``get()`` is awaitable (the blocking SDK call runs in a worker thread)
- ``on_snapshot`` takes separate ``on_next``/``on_error`` callbacks and returns
  a plain unsubscribe function
- ``datetime`` values inside document data are tagged as ``FirestoreTimestamp``
- written data has ``FieldTransform`` markers replaced by the SDK sentinels
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..config import Config
from ..domain.models import BatchWrite, FieldTransform, FieldTransformKind, FirestoreTimestamp
from .protocol import ErrorCallback, Unsubscribe

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    "asc": firestore.Query.ASCENDING,
    "desc": firestore.Query.DESCENDING,
}


def create_firestore_client(config: Config) -> firestore.Client:
    """Build a Firestore client from configuration.

    Emulator host is exported before the client is created because the SDK
    reads ``FIRESTORE_EMULATOR_HOST`` at construction time.
    """
    if config.emulator_host:
        os.environ["FIRESTORE_EMULATOR_HOST"] = config.emulator_host
        logger.debug("Using Firestore emulator at %s", config.emulator_host)

    kwargs: Dict[str, Any] = {}
    if config.project_id:
        kwargs["project"] = config.project_id

    if config.credential_path and not config.emulator_host:
        return firestore.Client.from_service_account_json(config.credential_path, **kwargs)
    return firestore.Client(**kwargs)


def tag_timestamps(value: Any) -> Any:
    """Replace ``datetime`` values in a document tree with ``FirestoreTimestamp``."""
    if isinstance(value, datetime):
        return FirestoreTimestamp.from_datetime(value)
    if isinstance(value, dict):
        return {k: tag_timestamps(v) for k, v in value.items()}
    if isinstance(value, list):
        return [tag_timestamps(v) for v in value]
    return value


def to_sdk_value(value: Any) -> Any:
    """Replace ``FieldTransform`` and ``FirestoreTimestamp`` values with SDK types."""
    if isinstance(value, FieldTransform):
        return _sentinel(value)
    if isinstance(value, FirestoreTimestamp):
        return value.to_datetime()
    if isinstance(value, dict):
        return {k: to_sdk_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_sdk_value(v) for v in value]
    return value


def _sentinel(transform: FieldTransform) -> Any:
    kind = transform.kind
    if kind is FieldTransformKind.SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if kind is FieldTransformKind.INCREMENT:
        return firestore.Increment(transform.operand)
    if kind is FieldTransformKind.ARRAY_UNION:
        return firestore.ArrayUnion(to_sdk_value(transform.elements or []))
    if kind is FieldTransformKind.ARRAY_REMOVE:
        return firestore.ArrayRemove(to_sdk_value(transform.elements or []))
    return firestore.DELETE_FIELD


# =============================================================================
# SNAPSHOT WRAPPERS
# =============================================================================

class _Reference:
    def __init__(self, path: str):
        self.path = path


class Snapshot:
    """Document snapshot view with tagged timestamp values."""

    def __init__(self, raw: Any):
        self._raw = raw
        self.exists = bool(raw.exists)
        self.id = raw.id
        self.reference = _Reference(raw.reference.path)
        self.create_time = raw.create_time
        self.update_time = raw.update_time
        self.read_time = raw.read_time

    def to_dict(self) -> Optional[Dict[str, Any]]:
        data = self._raw.to_dict()
        if data is None:
            return None
        return tag_timestamps(data)


class MissingSnapshot:
    """Snapshot for a document the backend reports as absent."""

    exists = False
    create_time = None
    update_time = None
    read_time = None

    def __init__(self, path: str):
        self.id = path.rstrip("/").split("/")[-1]
        self.reference = _Reference(path)

    def to_dict(self) -> None:
        return None


class ChangeRecord:
    def __init__(self, type: str, doc: Snapshot):
        self.type = type
        self.doc = doc


class QuerySnapshot:
    def __init__(self, docs: Sequence[Any], changes: Sequence[Any]):
        self.docs = [Snapshot(d) for d in docs]
        self._changes = [
            ChangeRecord(change.type.name.lower(), Snapshot(change.document))
            for change in changes
        ]

    def doc_changes(self) -> List[ChangeRecord]:
        return list(self._changes)


# =============================================================================
# QUERY / DOCUMENT HANDLES
# =============================================================================

class FirestoreQuery:
    """Immutable, chainable query handle."""

    def __init__(self, query: Any):
        self._query = query

    def where(self, field: str, operator: str, value: Any) -> "FirestoreQuery":
        return FirestoreQuery(self._query.where(filter=FieldFilter(field, operator, value)))

    def order_by(self, field: str, direction: str = "asc") -> "FirestoreQuery":
        return FirestoreQuery(self._query.order_by(field, direction=_DIRECTIONS[direction]))

    def limit(self, count: int) -> "FirestoreQuery":
        return FirestoreQuery(self._query.limit(count))

    def start_after(self, cursor: Any) -> "FirestoreQuery":
        if isinstance(cursor, Snapshot):
            cursor = cursor._raw
        return FirestoreQuery(self._query.start_after(cursor))

    async def get(self) -> List[Snapshot]:
        raw_docs = await asyncio.to_thread(self._query.get)
        return [Snapshot(d) for d in raw_docs]

    def on_snapshot(
        self,
        on_next: Callable[[QuerySnapshot], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        def _callback(docs: Sequence[Any], changes: Sequence[Any], read_time: Any) -> None:
            try:
                on_next(QuerySnapshot(docs, changes))
            except Exception as e:
                on_error(e)

        watch = self._query.on_snapshot(_callback)
        return watch.unsubscribe


class FirestoreDocument:
    def __init__(self, ref: Any):
        self._ref = ref

    def on_snapshot(
        self,
        on_next: Callable[[Any], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        path = self._ref.path

        def _callback(docs: Sequence[Any], changes: Sequence[Any], read_time: Any) -> None:
            try:
                if docs:
                    on_next(Snapshot(docs[0]))
                else:
                    on_next(MissingSnapshot(path))
            except Exception as e:
                on_error(e)

        watch = self._ref.on_snapshot(_callback)
        return watch.unsubscribe


class FirestoreDatabase:
    """``DocumentDatabase`` implementation backed by Cloud Firestore.

    Usage:
        db = FirestoreDatabase(create_firestore_client(config))
        result = await QueryBuilder(db).execute_query("users")
    """

    def __init__(self, client: firestore.Client):
        self.client = client

    def collection(self, path: str) -> FirestoreQuery:
        return FirestoreQuery(self.client.collection(path))

    def doc(self, path: str) -> FirestoreDocument:
        return FirestoreDocument(self.client.document(path))

    async def get_document(self, path: str) -> Snapshot:
        raw = await asyncio.to_thread(self.client.document(path).get)
        return Snapshot(raw)

    async def list_collections(self, document_path: Optional[str] = None) -> List[str]:
        """Return collection ids at the root or under a document."""
        def _list() -> List[str]:
            if document_path:
                refs = self.client.document(document_path).collections()
            else:
                refs = self.client.collections()
            return sorted(ref.id for ref in refs)

        return await asyncio.to_thread(_list)

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        ref = self.client.document(path)
        await asyncio.to_thread(ref.set, to_sdk_value(data), merge=merge)

    async def delete_document(self, path: str) -> None:
        await asyncio.to_thread(self.client.document(path).delete)

    async def write_batch(self, writes: Sequence[BatchWrite]) -> None:
        """Commit the writes as one ``WriteBatch``."""
        batch = self.client.batch()
        for write in writes:
            ref = self.client.document(write.path)
            if write.op == "delete":
                batch.delete(ref)
            else:
                batch.set(ref, to_sdk_value(write.data or {}), merge=write.merge)
        await asyncio.to_thread(batch.commit)
