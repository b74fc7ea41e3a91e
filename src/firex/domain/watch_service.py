"""Realtime watches on documents and collections with retry on failure.

Each watch keeps its own state (retry attempt, current backend handle,
pending retry timer) in a registry keyed by subscription id. Backend
callbacks and retry timers run on other threads, so registry changes are
made under a lock and user callbacks are invoked outside it.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from ..client.exceptions import MaxRetriesExceededError, WatchError
from ..client.protocol import (
    DocumentDatabase,
    DocumentSnapshotLike,
    ErrorCallback,
    QuerySnapshotLike,
    Unsubscribe,
)
from ..result import Result, err, ok
from .models import ChangeType, DocumentChange, DocumentWithMeta, WatchOptions
from .query_builder import snapshot_metadata, snapshot_to_document

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 1.0


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]

# Starts a backend listener: (on_next, on_error) -> unsubscribe
Listen = Callable[[Callable[[Any], None], ErrorCallback], Unsubscribe]


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run ``callback`` after ``delay`` seconds on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class WatchState:
    """Mutable state of one watch."""

    id: str
    path: str
    options: WatchOptions
    listen: Listen
    deliver: Callable[["WatchState", Any, bool], None]
    attempt: int = 0
    generation: int = 0
    initial: bool = True
    active: bool = True
    handle: Optional[Unsubscribe] = None
    timer: Optional[Cancellable] = None


class WatchService:
    """Subscribes to change streams and tracks active watches.

    Usage:
        service = WatchService(db)
        result = service.watch_collection("users", WatchOptions(on_change=print))
        unsubscribe = result.unwrap()
        ...
        service.unsubscribe_all()
    """

    def __init__(
        self,
        db: DocumentDatabase,
        scheduler: Optional[Scheduler] = None,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        self.db = db
        self.scheduler = scheduler or timer_scheduler
        self.retry_delay = retry_delay
        self._watches: Dict[str, WatchState] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def watch_document(self, path: str, options: WatchOptions) -> Result[Unsubscribe]:
        """Watch a single document.

        The first delivered snapshot is ``added``, later ones ``modified``; a
        snapshot of a missing document is ``removed`` with empty data.

        Returns:
            Result with the unsubscribe function, or WATCH_ERROR
        """
        try:
            handle = self.db.doc(path)
            return ok(self._start(path, options, handle.on_snapshot, self._deliver_document))
        except Exception as e:
            return err(WatchError(f"Failed to start watching document {path}: {e}", path, e))

    def watch_collection(self, path: str, options: WatchOptions) -> Result[Unsubscribe]:
        """Watch a collection; change types come from the backend.

        Returns:
            Result with the unsubscribe function, or WATCH_ERROR
        """
        try:
            query = self.db.collection(path)
            return ok(self._start(path, options, query.on_snapshot, self._deliver_collection))
        except Exception as e:
            return err(WatchError(f"Failed to start watching collection {path}: {e}", path, e))

    def unsubscribe_all(self) -> None:
        """Stop every watch. Individual unsubscribe failures are ignored."""
        with self._lock:
            states = list(self._watches.values())
            self._watches.clear()

        for state in states:
            handle = self._deactivate(state)
            if handle is None:
                continue
            try:
                handle()
            except Exception as e:
                logger.debug("Ignoring unsubscribe failure for %s: %s", state.path, e)

    def is_watching(self) -> bool:
        with self._lock:
            return bool(self._watches)

    def watcher_count(self) -> int:
        with self._lock:
            return len(self._watches)

    # =========================================================================
    # SUBSCRIPTION LIFECYCLE
    # =========================================================================

    def _start(
        self,
        path: str,
        options: WatchOptions,
        listen: Listen,
        deliver: Callable[[WatchState, Any, bool], None],
    ) -> Unsubscribe:
        state = WatchState(
            id=uuid.uuid4().hex,
            path=path,
            options=options,
            listen=listen,
            deliver=deliver,
        )
        # Setup errors propagate to the caller as WATCH_ERROR
        state.handle = self._listen(state, state.generation)

        with self._lock:
            if state.active:
                self._watches[state.id] = state
        logger.debug("Watch %s started on %s", state.id, path)

        def unsubscribe() -> None:
            self._stop(state.id)

        return unsubscribe

    def _listen(self, state: WatchState, generation: int) -> Unsubscribe:
        def on_next(snapshot: Any) -> None:
            if self._is_current(state, generation):
                self._on_snapshot(state, snapshot)

        def on_error(error: BaseException) -> None:
            if self._is_current(state, generation):
                self._on_error(state, generation, error)

        return state.listen(on_next, on_error)

    def _stop(self, watch_id: str) -> None:
        with self._lock:
            state = self._watches.pop(watch_id, None)
        if state is None:
            return
        handle = self._deactivate(state)
        logger.debug("Watch %s on %s stopped", watch_id, state.path)
        if handle is not None:
            handle()

    def _deactivate(self, state: WatchState) -> Optional[Unsubscribe]:
        """Mark a watch inactive, cancel its retry timer and return its handle."""
        with self._lock:
            state.active = False
            timer, state.timer = state.timer, None
            handle, state.handle = state.handle, None
        if timer is not None:
            timer.cancel()
        return handle

    def _is_current(self, state: WatchState, generation: int) -> bool:
        with self._lock:
            return state.active and state.generation == generation

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _on_snapshot(self, state: WatchState, snapshot: Any) -> None:
        with self._lock:
            first = state.initial
            state.initial = False

        if first and not state.options.show_initial:
            logger.debug("Skipping initial snapshot for %s", state.path)
            return

        state.deliver(state, snapshot, first)

    def _on_error(self, state: WatchState, generation: int, error: BaseException) -> None:
        logger.debug("Watch %s on %s failed: %s", state.id, state.path, error)
        if state.options.on_error is not None:
            try:
                state.options.on_error(error)
            except Exception as e:
                logger.debug("Ignoring on_error callback failure for %s: %s", state.path, e)

        with self._lock:
            if not state.active or state.generation != generation:
                return
            if state.attempt < state.options.max_retries:
                state.attempt += 1
                delay = self.retry_delay * state.attempt
                state.timer = self.scheduler(delay, lambda: self._retry(state))
                logger.info(
                    "Retrying watch on %s in %.1fs (attempt %d/%d)",
                    state.path, delay, state.attempt, state.options.max_retries,
                )
                return

            # Retries exhausted
            self._watches.pop(state.id, None)
            state.active = False
            handle, state.handle = state.handle, None
            attempts = state.attempt

        if handle is not None:
            try:
                handle()
            except Exception as e:
                logger.debug("Ignoring unsubscribe failure for %s: %s", state.path, e)

        logger.warning("Watch on %s stopped after %d retries", state.path, attempts)
        if state.options.on_retries_exhausted is not None:
            try:
                state.options.on_retries_exhausted(
                    MaxRetriesExceededError(state.path, attempts, original_error=error)
                )
            except Exception as e:
                logger.debug("Ignoring on_retries_exhausted callback failure for %s: %s", state.path, e)

    def _retry(self, state: WatchState) -> None:
        with self._lock:
            if not state.active:
                return
            state.timer = None
            state.generation += 1
            generation = state.generation
            stale, state.handle = state.handle, None

        # The failed listener is detached before its replacement starts
        if stale is not None:
            try:
                stale()
            except Exception as e:
                logger.debug("Ignoring unsubscribe failure for %s: %s", state.path, e)

        try:
            handle = self._listen(state, generation)
        except Exception as e:
            self._on_error(state, generation, e)
            return

        with self._lock:
            current = state.active and state.generation == generation
            if current:
                state.handle = handle
        if not current:
            handle()

    # =========================================================================
    # CHANGE MAPPING
    # =========================================================================

    @staticmethod
    def _deliver_document(state: WatchState, snapshot: DocumentSnapshotLike, first: bool) -> None:
        if not snapshot.exists:
            document = DocumentWithMeta(data={}, metadata=snapshot_metadata(snapshot, with_times=False))
            change = DocumentChange(type=ChangeType.REMOVED, document=document)
        else:
            change = DocumentChange(
                type=ChangeType.ADDED if first else ChangeType.MODIFIED,
                document=snapshot_to_document(snapshot),
            )
        state.options.on_change(change)

    @staticmethod
    def _deliver_collection(state: WatchState, snapshot: QuerySnapshotLike, first: bool) -> None:
        for record in snapshot.doc_changes():
            change = DocumentChange(
                type=ChangeType(record.type),
                document=snapshot_to_document(record.doc),
            )
            state.options.on_change(change)
