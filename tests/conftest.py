"""Shared fixtures: an in-memory document database and a manual retry scheduler."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest


CREATED = datetime(2024, 1, 10, 9, 0, 0, tzinfo=timezone.utc)
UPDATED = datetime(2024, 1, 15, 14, 30, 0, tzinfo=timezone.utc)
READ = datetime(2024, 1, 16, 8, 0, 0, tzinfo=timezone.utc)


class FakeReference:
    def __init__(self, path: str):
        self.path = path


class FakeSnapshot:
    """Document snapshot with the attributes the query and watch layers read."""

    def __init__(self, path: str, data: Optional[Dict[str, Any]] = None, exists: bool = True,
                 create_time=CREATED, update_time=UPDATED, read_time=READ):
        self.id = path.split("/")[-1]
        self.reference = FakeReference(path)
        self.exists = exists
        self._data = data if exists else None
        self.create_time = create_time if exists else None
        self.update_time = update_time if exists else None
        self.read_time = read_time

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return None if self._data is None else dict(self._data)


class FakeChange:
    def __init__(self, type: str, doc: FakeSnapshot):
        self.type = type
        self.doc = doc


class FakeQuerySnapshot:
    def __init__(self, changes: List[FakeChange]):
        self._changes = changes
        self.docs = [change.doc for change in changes if change.type != "removed"]

    def doc_changes(self) -> List[FakeChange]:
        return list(self._changes)


class FakeListener:
    """A registered realtime listener; tests push snapshots or errors into it."""

    def __init__(self, path: str, on_next: Callable, on_error: Callable):
        self.path = path
        self.on_next = on_next
        self.on_error = on_error
        self.unsubscribe_calls = 0
        self.unsubscribe_error: Optional[BaseException] = None

    def emit(self, snapshot: Any) -> None:
        self.on_next(snapshot)

    def fail(self, error: BaseException) -> None:
        self.on_error(error)

    def unsubscribe(self) -> None:
        self.unsubscribe_calls += 1
        if self.unsubscribe_error is not None:
            raise self.unsubscribe_error


class FakeQuery:
    """Immutable query handle recording the clauses applied to it."""

    def __init__(self, db: "FakeDatabase", path: str, clauses: Tuple = ()):
        self.db = db
        self.path = path
        self.clauses = clauses

    def _with(self, clause: Tuple) -> "FakeQuery":
        query = FakeQuery(self.db, self.path, self.clauses + (clause,))
        self.db.last_query = query
        return query

    def where(self, field: str, operator: str, value: Any) -> "FakeQuery":
        return self._with(("where", field, operator, value))

    def order_by(self, field: str, direction: str) -> "FakeQuery":
        return self._with(("order_by", field, direction))

    def limit(self, count: int) -> "FakeQuery":
        return self._with(("limit", count))

    def start_after(self, cursor: Any) -> "FakeQuery":
        return self._with(("start_after", cursor))

    async def get(self) -> List[FakeSnapshot]:
        self.db.get_calls += 1
        if self.db.get_error is not None:
            raise self.db.get_error
        docs = list(self.db.collections_data.get(self.path, []))
        for clause in self.clauses:
            if clause[0] == "limit":
                docs = docs[:clause[1]]
        return docs

    def on_snapshot(self, on_next: Callable, on_error: Callable) -> Callable[[], None]:
        return self.db.listen(self.path, on_next, on_error)


class FakeDocumentHandle:
    def __init__(self, db: "FakeDatabase", path: str):
        self.db = db
        self.path = path

    def on_snapshot(self, on_next: Callable, on_error: Callable) -> Callable[[], None]:
        return self.db.listen(self.path, on_next, on_error)


class FakeDatabase:
    """In-memory implementation of the document database protocol."""

    def __init__(self):
        self.collections_data: Dict[str, List[FakeSnapshot]] = {}
        self.documents: Dict[str, FakeSnapshot] = {}
        self.collection_names: Dict[Optional[str], List[str]] = {None: []}
        self.listeners: List[FakeListener] = []
        self.get_error: Optional[BaseException] = None
        self.listen_error: Optional[BaseException] = None
        self.get_calls = 0
        self.last_query: Optional[FakeQuery] = None
        self.writes: List[Tuple[str, str, Any, bool]] = []
        self.batches: List[List[Any]] = []
        self.write_error: Optional[BaseException] = None
        # Index of the batch (0-based) whose commit fails
        self.fail_batch: Optional[int] = None

    def add_document(self, path: str, data: Dict[str, Any]) -> FakeSnapshot:
        self._remove(path)
        snapshot = FakeSnapshot(path, data)
        collection = path.rsplit("/", 1)[0]
        self.collections_data.setdefault(collection, []).append(snapshot)
        self.documents[path] = snapshot
        return snapshot

    def _remove(self, path: str) -> None:
        snapshot = self.documents.pop(path, None)
        if snapshot is not None:
            self.collections_data[path.rsplit("/", 1)[0]].remove(snapshot)

    def _apply(self, op: str, path: str, data: Any, merge: bool) -> None:
        self.writes.append((op, path, data, merge))
        if op == "delete":
            self._remove(path)
            return
        existing = self.documents.get(path)
        if merge and existing is not None:
            data = {**existing.to_dict(), **data}
        self.add_document(path, data)

    def collection(self, path: str) -> FakeQuery:
        query = FakeQuery(self, path)
        self.last_query = query
        return query

    def doc(self, path: str) -> FakeDocumentHandle:
        return FakeDocumentHandle(self, path)

    async def get_document(self, path: str) -> FakeSnapshot:
        if self.get_error is not None:
            raise self.get_error
        return self.documents.get(path) or FakeSnapshot(path, exists=False)

    async def list_collections(self, document_path: Optional[str] = None) -> List[str]:
        if self.get_error is not None:
            raise self.get_error
        return list(self.collection_names.get(document_path, []))

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        if self.write_error is not None:
            raise self.write_error
        self._apply("set", path, data, merge)

    async def delete_document(self, path: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        self._apply("delete", path, None, False)

    async def write_batch(self, writes: List[Any]) -> None:
        if self.fail_batch == len(self.batches):
            raise RuntimeError("batch rejected")
        self.batches.append(list(writes))
        for write in writes:
            self._apply(write.op, write.path, write.data, write.merge)

    def listen(self, path: str, on_next: Callable, on_error: Callable) -> Callable[[], None]:
        if self.listen_error is not None:
            raise self.listen_error
        listener = FakeListener(path, on_next, on_error)
        self.listeners.append(listener)
        return listener.unsubscribe


class ScheduledCall:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.done = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Retry scheduler that only runs callbacks when the test asks."""

    def __init__(self):
        self.calls: List[ScheduledCall] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def delays(self) -> List[float]:
        return [call.delay for call in self.calls]

    def run_pending(self) -> None:
        """Fire the calls that have not run or been cancelled yet."""
        for call in list(self.calls):
            if not call.cancelled and not call.done:
                call.done = True
                call.callback()


@pytest.fixture
def fake_db():
    """Empty in-memory database."""
    return FakeDatabase()


@pytest.fixture
def scheduler():
    """Manual retry scheduler."""
    return ManualScheduler()
