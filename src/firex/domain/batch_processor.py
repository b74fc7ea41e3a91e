"""Collection export, file import and recursive collection delete.

Export files are JSON documents of the form::

    {"documents": [{"id": "alice", "path": "users/alice", "data": {...},
                    "subcollections": {"orders": [...]}}]}

Timestamps are written as ``{"_seconds": ..., "_nanoseconds": ...}`` and
restored to timestamps on import. Writes go through atomic batches of at most
``MAX_BATCH_SIZE`` operations.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..client.exceptions import BatchCommitError, FileIOError, FirestoreError, InvalidDataError
from ..client.protocol import DocumentDatabase, DocumentSnapshotLike
from ..result import Result, err, ok
from .models import BatchWrite, DeleteResult, ExportResult, FirestoreTimestamp, ImportResult
from .paths import is_document_path

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 500
MIN_BATCH_SIZE = 1

# (done, total)
ProgressCallback = Callable[[int, int], None]


def to_export_value(value: Any) -> Any:
    """Make a document tree JSON-serializable; unknown types become strings."""
    if isinstance(value, FirestoreTimestamp):
        return value.to_raw()
    if isinstance(value, dict):
        return {k: to_export_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_export_value(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def restore_timestamps(value: Any) -> Any:
    """Turn exported ``{"_seconds", "_nanoseconds"}`` maps back into timestamps."""
    if isinstance(value, dict):
        if set(value) == {"_seconds", "_nanoseconds"} and all(
            isinstance(v, int) and not isinstance(v, bool) for v in value.values()
        ):
            return FirestoreTimestamp(seconds=value["_seconds"], nanoseconds=value["_nanoseconds"])
        return {k: restore_timestamps(v) for k, v in value.items()}
    if isinstance(value, list):
        return [restore_timestamps(v) for v in value]
    return value


def _flatten(documents: List[Any]) -> Iterator[Any]:
    """Yield exported entries depth first, subcollection documents included."""
    for entry in documents:
        yield entry
        if isinstance(entry, dict) and isinstance(entry.get("subcollections"), dict):
            for children in entry["subcollections"].values():
                if isinstance(children, list):
                    yield from _flatten(children)


def _is_entry(entry: Any) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("path"), str)
        and isinstance(entry.get("data"), dict)
    )


def _chunks(items: List[Any], size: int) -> Iterator[Tuple[int, List[Any]]]:
    for start in range(0, len(items), size):
        yield start, items[start:start + size]


class BatchProcessor:
    """Bulk reads and writes over whole collections.

    Usage:
        processor = BatchProcessor(db)
        result = await processor.export_collection("users", "users.json")
        print(result.unwrap().exported_count)
    """

    def __init__(self, db: DocumentDatabase):
        self.db = db

    # =========================================================================
    # EXPORT
    # =========================================================================

    async def export_collection(
        self,
        collection_path: str,
        output_path: Optional[str] = None,
        include_subcollections: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> Result[ExportResult]:
        """Read every document of a collection and write them to ``output_path``.

        Progress is reported per top-level document. Without ``output_path``
        nothing is written and only the count is returned.

        Returns:
            Result with an ``ExportResult``, or FIRESTORE_ERROR / FILE_IO_ERROR
        """
        try:
            documents = await self.collect_documents(
                collection_path, include_subcollections, progress
            )
        except Exception as e:
            logger.debug("Export of %s failed: %s", collection_path, e)
            return err(FirestoreError(f"Export failed: {e}", original_error=e))

        if output_path:
            payload = json.dumps({"documents": documents}, indent=2, ensure_ascii=False)
            try:
                Path(output_path).write_text(payload, encoding="utf-8")
            except OSError as e:
                return err(FileIOError(
                    f"Failed to write file {output_path}: {e}", output_path, e
                ))

        logger.info("Exported %d documents from %s", len(documents), collection_path)
        return ok(ExportResult(exported_count=len(documents), file_path=output_path))

    async def collect_documents(
        self,
        collection_path: str,
        include_subcollections: bool = False,
        progress: Optional[ProgressCallback] = None,
    ) -> List[Dict[str, Any]]:
        """Return exported entries for a collection, recursing into subcollections."""
        snapshots = [s for s in await self.db.collection(collection_path).get() if s.exists]
        documents = []
        for done, snapshot in enumerate(snapshots, start=1):
            documents.append(await self._export_document(snapshot, include_subcollections))
            if progress is not None:
                progress(done, len(snapshots))
        return documents

    async def _export_document(
        self,
        snapshot: DocumentSnapshotLike,
        include_subcollections: bool,
    ) -> Dict[str, Any]:
        path = snapshot.reference.path
        entry: Dict[str, Any] = {
            "id": snapshot.id,
            "path": path,
            "data": to_export_value(snapshot.to_dict() or {}),
        }
        if include_subcollections:
            subcollections = {}
            for name in await self.db.list_collections(path):
                subcollections[name] = await self.collect_documents(f"{path}/{name}", True)
            if subcollections:
                entry["subcollections"] = subcollections
        return entry

    # =========================================================================
    # IMPORT
    # =========================================================================

    async def import_data(
        self,
        input_path: str,
        batch_size: int = MAX_BATCH_SIZE,
        progress: Optional[ProgressCallback] = None,
    ) -> Result[ImportResult]:
        """Write the documents of an export file, ``batch_size`` per batch.

        Entries that are not objects with a ``path`` and a ``data`` object are
        skipped; entries whose path is not a document path count as failed.
        A failing batch stops the import; earlier batches stay committed.

        Returns:
            Result with an ``ImportResult``, or INVALID_DATA / FILE_IO_ERROR /
            BATCH_COMMIT_ERROR
        """
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            return err(InvalidDataError(
                f"Invalid batch size: {batch_size} "
                f"(must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE})",
                field="batch_size",
            ))

        loaded = self._read_export_file(input_path)
        if loaded.is_err:
            return loaded

        writes: List[BatchWrite] = []
        skipped = failed = 0
        for entry in _flatten(loaded.value):
            if not _is_entry(entry):
                skipped += 1
                continue
            if not is_document_path(entry["path"]):
                logger.warning("Skipping entry with invalid document path: %s", entry["path"])
                failed += 1
                continue
            writes.append(BatchWrite(
                op="set",
                path=entry["path"].strip("/"),
                data=restore_timestamps(entry["data"]),
            ))

        imported = 0
        for start, chunk in _chunks(writes, batch_size):
            try:
                await self.db.write_batch(chunk)
            except Exception as e:
                logger.debug("Batch starting at entry %d failed: %s", start, e)
                return err(BatchCommitError(
                    f"Batch commit failed: {e}", committed_count=imported, original_error=e
                ))
            imported += len(chunk)
            if progress is not None:
                progress(imported, len(writes))

        logger.info("Imported %d documents from %s", imported, input_path)
        return ok(ImportResult(imported_count=imported, skipped_count=skipped, failed_count=failed))

    @staticmethod
    def _read_export_file(input_path: str) -> Result[List[Any]]:
        try:
            content = Path(input_path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            return err(FileIOError(f"File not found: {input_path}", input_path, e))
        except OSError as e:
            return err(FileIOError(f"Failed to read file {input_path}: {e}", input_path, e))

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            return err(InvalidDataError(
                f"Invalid JSON in {input_path} (line {e.lineno}): {e.msg}"
            ))

        documents = payload.get("documents") if isinstance(payload, dict) else None
        if not isinstance(documents, list):
            return err(InvalidDataError(
                f"Invalid import file {input_path}: a \"documents\" list is required"
            ))
        return ok(documents)

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_collection(self, collection_path: str) -> Result[DeleteResult]:
        """Delete every document of a collection and, first, their subcollections.

        Returns:
            Result with the number of deleted documents, or FIRESTORE_ERROR
        """
        try:
            deleted = await self._delete_all(collection_path)
        except Exception as e:
            logger.debug("Delete of %s failed: %s", collection_path, e)
            return err(FirestoreError(
                f"Failed to delete collection {collection_path}: {e}", original_error=e
            ))
        logger.info("Deleted %d documents under %s", deleted, collection_path)
        return ok(DeleteResult(deleted_count=deleted))

    async def _delete_all(self, collection_path: str) -> int:
        deleted = 0
        while True:
            snapshots = await self.db.collection(collection_path).limit(MAX_BATCH_SIZE).get()
            if not snapshots:
                break

            for snapshot in snapshots:
                path = snapshot.reference.path
                for name in await self.db.list_collections(path):
                    deleted += await self._delete_all(f"{path}/{name}")

            await self.db.write_batch(
                [BatchWrite(op="delete", path=s.reference.path) for s in snapshots]
            )
            deleted += len(snapshots)
            if len(snapshots) < MAX_BATCH_SIZE:
                break
        return deleted
