"""Command line interface for firex."""

import asyncio
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click

from . import __version__
from .client.exceptions import (
    BatchCommitError,
    FileIOError,
    FirestoreError,
    FirexError,
    InvalidDataError,
)
from .client.protocol import DocumentDatabase, Unsubscribe
from .config import Config
from .domain.batch_processor import MAX_BATCH_SIZE, MIN_BATCH_SIZE, BatchProcessor
from .domain.field_values import FieldValueTransformer
from .domain.models import (
    DocumentChange,
    DocumentMetadata,
    DocumentWithMeta,
    QueryOptions,
    WatchOptions,
)
from .domain.paths import is_collection_path, is_document_path
from .domain.query_builder import QueryBuilder, parse_order_by, parse_where, snapshot_to_document
from .domain.watch_service import WatchService
from .formats.date_formatter import LdmlDateFormatter
from .formats.formatter import FormatOptions, OutputFormat, OutputFormatter, resolve_format
from .formats.output_options import OutputOptionsResolver, ResolvedOutputOptions
from .result import Result

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Exit codes by error code; anything else exits with 1
EXIT_CODES = {
    "INVALID_QUERY": 2,
    "INVALID_TIMEZONE": 2,
    "INVALID_PATTERN": 2,
    "INVALID_DATA": 2,
    "FIRESTORE_ERROR": 3,
    "WATCH_ERROR": 3,
    "MAX_RETRIES_EXCEEDED": 3,
    "BATCH_COMMIT_ERROR": 3,
    "FORMAT_ERROR": 4,
}


def configure_logging(level: str = "WARNING", verbose: bool = False) -> None:
    """Send log records to stderr; ``verbose`` forces DEBUG."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def _default_database(config: Config) -> DocumentDatabase:
    from .client.firestore import FirestoreDatabase, create_firestore_client

    return FirestoreDatabase(create_firestore_client(config))


class CliState:
    """Objects shared by all commands of one invocation."""

    def __init__(
        self,
        config: Optional[Config] = None,
        database_factory: Optional[Callable[[Config], DocumentDatabase]] = None,
    ):
        self.config = config
        self.database_factory = database_factory or _default_database
        self._db: Optional[DocumentDatabase] = None

    def database(self) -> DocumentDatabase:
        if self._db is None:
            try:
                self._db = self.database_factory(self.config)
            except Exception as e:
                click.echo(f"❌ Could not connect to Firestore: {e}", err=True)
                sys.exit(1)
        return self._db


def fail(error: FirexError) -> None:
    """Report an error on stderr and exit with its category code."""
    click.echo(f"❌ {error.message}", err=True)
    sys.exit(EXIT_CODES.get(error.code, 1))


def wait_for_interrupt(stop: threading.Event) -> bool:
    """Block until Ctrl+C or until ``stop`` is set. Returns True on Ctrl+C."""
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        return True
    return False


# =============================================================================
# SHARED OPTIONS
# =============================================================================

FORMAT_OPTIONS = [
    click.option("--format", "-f", "format_name",
                 type=click.Choice([f.value for f in OutputFormat], case_sensitive=False),
                 default=None, help="Output format (default: json)"),
    click.option("--json", "as_json", is_flag=True, help="Shorthand for --format json"),
    click.option("--yaml", "as_yaml", is_flag=True, help="Shorthand for --format yaml"),
    click.option("--table", "as_table", is_flag=True, help="Shorthand for --format table"),
    click.option("--toon", "as_toon", is_flag=True, help="Shorthand for --format toon"),
]


def format_options(command: Callable) -> Callable:
    """Attach the output format options to a command."""
    for option in reversed(FORMAT_OPTIONS):
        command = option(command)
    return command


def output_options(command: Callable) -> Callable:
    """Attach the format and timestamp rendering options to a command."""
    options = FORMAT_OPTIONS + [
        click.option("--include-metadata", is_flag=True, help="Include document metadata"),
        click.option("--timezone", "-z", "timezone_name", default=None,
                     help="IANA timezone for timestamps (default: system)"),
        click.option("--date-format", default=None,
                     help="Timestamp pattern, e.g. \"yyyy-MM-dd HH:mm\""),
        click.option("--raw-output", is_flag=True,
                     help="Print timestamps as raw {_seconds, _nanoseconds}"),
        click.option("--no-date-format", is_flag=True, help="Do not convert timestamps"),
    ]
    for option in reversed(options):
        command = option(command)
    return command


def _resolve_rendering(
    config: Config,
    timezone_name: Optional[str],
    date_format: Optional[str],
    raw_output: Optional[bool],
    no_date_format: bool,
) -> ResolvedOutputOptions:
    if date_format:
        validation = LdmlDateFormatter().validate_pattern(date_format)
        if validation.is_err:
            fail(validation.error)
    return OutputOptionsResolver().resolve(
        config,
        timezone=timezone_name,
        date_format=date_format,
        raw_output=raw_output or None,
        no_date_format=no_date_format,
    )


def load_payload(data: Optional[str], from_file: Optional[str]) -> Dict[str, Any]:
    """Parse document data from the argument or a file and convert field value markers.

    Raises:
        FileIOError: If the file cannot be read
        InvalidDataError: If no data is given, or it is not a JSON object
    """
    if from_file:
        try:
            text = Path(from_file).read_text(encoding="utf-8")
        except OSError as e:
            raise FileIOError(f"Failed to read file {from_file}: {e}", from_file, e)
    elif data is not None:
        text = data
    else:
        raise InvalidDataError("No document data given (pass a JSON object or --from-file)")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidDataError(f"Invalid JSON (line {e.lineno}): {e.msg}")
    if not isinstance(payload, dict):
        raise InvalidDataError("Document data must be a JSON object")
    return FieldValueTransformer().transform(payload).unwrap()


def _write_document(
    state: CliState,
    document_path: str,
    data: Optional[str],
    from_file: Optional[str],
    merge: bool,
) -> None:
    if not is_document_path(document_path):
        click.echo(f"❌ Invalid document path: {document_path}", err=True)
        sys.exit(2)

    try:
        payload = load_payload(data, from_file)
    except FirexError as e:
        fail(e)
        return

    db = state.database()
    try:
        asyncio.run(db.set_document(document_path, payload, merge=merge))
    except Exception as e:
        fail(FirestoreError(f"Failed to write document: {e}", original_error=e))


def _progress(label: str) -> Callable[[int, int], None]:
    def report(done: int, total: int) -> None:
        if total > 0:
            click.echo(f"\r{label}: {done}/{total} ({done * 100 // total}%)", err=True, nl=False)

    return report


def _watch_until_interrupted(
    service: WatchService,
    start: Callable[[WatchOptions], Result[Unsubscribe]],
    path: str,
    output_format: OutputFormat,
    format_options: FormatOptions,
    rendering: ResolvedOutputOptions,
    show_initial: bool,
) -> None:
    formatter = OutputFormatter()
    stop = threading.Event()
    exhausted = []

    def on_change(change: DocumentChange) -> None:
        result = formatter.format_change(
            change, output_format, format_options, rendering.timestamp_options()
        )
        if result.is_err:
            logger.error("Could not format change: %s", result.error.message)
            return
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        click.echo(f"[{stamp}] {change.type.value.upper()}")
        click.echo(result.value)
        click.echo("")

    def on_error(error: BaseException) -> None:
        logger.error("Watch error: %s", error)

    def on_retries_exhausted(error: BaseException) -> None:
        exhausted.append(error)
        stop.set()

    options = WatchOptions(
        on_change=on_change,
        on_error=on_error,
        show_initial=show_initial,
        on_retries_exhausted=on_retries_exhausted,
    )
    result = start(options)
    if result.is_err:
        fail(result.error)

    click.echo(f"Watching {path} for changes... Press Ctrl+C to stop.", err=True)
    interrupted = wait_for_interrupt(stop)
    if interrupted:
        click.echo("\nStopping watch...", err=True)
    service.unsubscribe_all()

    if exhausted:
        fail(exhausted[0])


# =============================================================================
# COMMANDS
# =============================================================================

@click.group()
@click.version_option(version=__version__, prog_name="firex")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """firex - query and watch Cloud Firestore from the command line."""
    state = ctx.ensure_object(CliState)
    if state.config is None:
        try:
            state.config = Config()
        except Exception as e:
            click.echo(f"❌ Configuration error: {e}", err=True)
            sys.exit(1)
    configure_logging(state.config.log_level, verbose or state.config.verbose)


@cli.command("get")
@click.argument("document_path")
@output_options
@click.option("--watch", "-w", is_flag=True, help="Watch the document for changes")
@click.option("--show-initial", is_flag=True, help="Print the current state when watching")
@click.option("--quiet", "-q", is_flag=True, help="Print the document only, without metadata")
@click.pass_obj
def get_document(state: CliState, document_path: str, format_name, as_json, as_yaml, as_table,
                 as_toon, include_metadata, timezone_name, date_format, raw_output,
                 no_date_format, watch, show_initial, quiet):
    """Fetch a document, or watch it for changes."""
    config = state.config
    if not is_document_path(document_path):
        click.echo(f"❌ Invalid document path: {document_path}", err=True)
        sys.exit(2)

    output_format = resolve_format(format_name, as_json, as_yaml, as_table, as_toon)
    rendering = _resolve_rendering(config, timezone_name, date_format, raw_output, no_date_format)
    format_options = FormatOptions(include_metadata=include_metadata)
    db = state.database()

    if watch:
        service = WatchService(db)
        _watch_until_interrupted(
            service,
            lambda options: service.watch_document(document_path, options),
            document_path,
            output_format,
            format_options,
            rendering,
            show_initial or config.watch_show_initial,
        )
        return

    try:
        snapshot = asyncio.run(db.get_document(document_path))
    except Exception as e:
        fail(FirestoreError(f"Failed to fetch document: {e}", original_error=e))
        return

    if not snapshot.exists:
        fail(FirestoreError(f"Document not found: {document_path}"))
        return

    document = snapshot_to_document(snapshot)
    formatter = OutputFormatter()
    result = formatter.format_document(
        document, output_format, format_options, rendering.timestamp_options()
    )
    if result.is_err:
        fail(result.error)
    click.echo(result.value)

    if not quiet:
        metadata = formatter.format_metadata(document.metadata)
        if metadata.is_ok:
            click.echo("\n--- Metadata ---", err=True)
            click.echo(metadata.value, err=True)


@cli.command("list")
@click.argument("collection_path")
@output_options
@click.option("--where", "-w", "where_clauses", multiple=True,
              help="Filter, e.g. \"age>=18\" (repeatable)")
@click.option("--order-by", "-o", "order_clauses", multiple=True,
              help="Sort, e.g. \"name:asc\" (repeatable)")
@click.option("--limit", "-l", type=click.IntRange(min=1), default=None,
              help="Maximum number of documents (default: FIREX_DEFAULT_LIMIT)")
@click.option("--watch", is_flag=True, help="Watch the collection for changes")
@click.option("--show-initial", is_flag=True, help="Print existing documents when watching")
@click.pass_obj
def list_documents(state: CliState, collection_path: str, format_name, as_json, as_yaml,
                   as_table, as_toon, include_metadata, timezone_name, date_format, raw_output,
                   no_date_format, where_clauses, order_clauses, limit, watch, show_initial):
    """Query the documents of a collection, or watch it for changes."""
    config = state.config
    if not is_collection_path(collection_path):
        click.echo(f"❌ Invalid collection path: {collection_path}", err=True)
        sys.exit(2)

    try:
        where = [parse_where(clause) for clause in where_clauses]
        order_by = [parse_order_by(clause) for clause in order_clauses]
    except FirexError as e:
        fail(e)
        return

    output_format = resolve_format(format_name, as_json, as_yaml, as_table, as_toon)
    rendering = _resolve_rendering(config, timezone_name, date_format, raw_output, no_date_format)
    format_options = FormatOptions(include_metadata=include_metadata)
    db = state.database()

    if watch:
        if where or order_by:
            logger.warning("--where and --order-by are ignored in watch mode")
        service = WatchService(db)
        _watch_until_interrupted(
            service,
            lambda options: service.watch_collection(collection_path, options),
            collection_path,
            output_format,
            format_options,
            rendering,
            show_initial or config.watch_show_initial,
        )
        return

    query_options = QueryOptions(
        where=where or None,
        order_by=order_by or None,
        limit=limit or config.default_list_limit,
    )
    result = asyncio.run(QueryBuilder(db).execute_query(collection_path, query_options))
    if result.is_err:
        fail(result.error)
    query_result = result.value

    formatted = OutputFormatter().format_documents(
        query_result.documents, output_format, format_options, rendering.timestamp_options()
    )
    if formatted.is_err:
        fail(formatted.error)
    click.echo(formatted.value)

    count = len(query_result.documents)
    if count == 0:
        click.echo("\nNo matching documents found", err=True)
    else:
        click.echo(f"\nFound: {count} documents", err=True)
    click.echo(f"Execution time: {query_result.execution_time_ms:.0f}ms", err=True)


@cli.command("collections")
@click.argument("document_path", required=False)
@format_options
@click.option("--quiet", "-q", is_flag=True, help="Print only the collection names")
@click.pass_obj
def list_collections(state: CliState, document_path: Optional[str], format_name, as_json,
                     as_yaml, as_table, as_toon, quiet):
    """List root collections, or the subcollections of a document."""
    if document_path and not is_document_path(document_path):
        click.echo(f"❌ Invalid document path: {document_path}", err=True)
        sys.exit(2)

    output_format = resolve_format(format_name, as_json, as_yaml, as_table, as_toon)
    db = state.database()

    try:
        names = asyncio.run(db.list_collections(document_path))
    except Exception as e:
        fail(FirestoreError(f"Failed to list collections: {e}", original_error=e))
        return

    result = OutputFormatter().format_collections(names, output_format, FormatOptions(quiet=quiet))
    if result.is_err:
        fail(result.error)
    click.echo(result.value)

    if not quiet:
        if names:
            click.echo(f"\n{len(names)} collections found", err=True)
        else:
            click.echo("\nNo collections found", err=True)


@cli.command("set")
@click.argument("document_path")
@click.argument("data", required=False)
@click.option("--merge", "-m", is_flag=True,
              help="Merge into the existing document instead of replacing it")
@click.option("--from-file", type=click.Path(dir_okay=False), default=None,
              help="Read the document data from a JSON file")
@click.pass_obj
def set_document(state: CliState, document_path: str, data: Optional[str], merge: bool,
                 from_file: Optional[str]):
    """Create or overwrite a document from a JSON object.

    Values such as {"$fieldValue": "serverTimestamp"} or
    {"$timestampValue": "2025-01-01T00:00:00Z"} are converted before writing.
    """
    _write_document(state, document_path, data, from_file, merge)
    click.echo(f"✅ Document {'updated' if merge else 'created'}: {document_path}")


@cli.command("update")
@click.argument("document_path")
@click.argument("data", required=False)
@click.option("--from-file", type=click.Path(dir_okay=False), default=None,
              help="Read the fields from a JSON file")
@click.pass_obj
def update_document(state: CliState, document_path: str, data: Optional[str],
                    from_file: Optional[str]):
    """Merge fields into a document, creating it if missing."""
    _write_document(state, document_path, data, from_file, merge=True)
    click.echo(f"✅ Document updated: {document_path}")


@cli.command("delete")
@click.argument("path")
@click.option("--recursive", "-r", is_flag=True,
              help="Delete a collection with all its documents and subcollections")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete(state: CliState, path: str, recursive: bool, yes: bool):
    """Delete a document, or a whole collection with --recursive."""
    if recursive and not is_collection_path(path):
        click.echo("❌ --recursive can only be used with collection paths", err=True)
        sys.exit(2)
    if not recursive and not is_document_path(path):
        if is_collection_path(path):
            click.echo("❌ Use --recursive to delete a collection", err=True)
        else:
            click.echo(f"❌ Invalid path: {path}", err=True)
        sys.exit(2)

    if recursive:
        prompt = f"Delete collection {path} with all its documents and subcollections?"
    else:
        prompt = f"Delete document {path}?"
    if not yes and not click.confirm(prompt, default=False):
        click.echo("Cancelled")
        return

    db = state.database()
    if not recursive:
        try:
            asyncio.run(db.delete_document(path))
        except Exception as e:
            fail(FirestoreError(f"Failed to delete document: {e}", original_error=e))
            return
        click.echo(f"✅ Document deleted: {path}")
        return

    result = asyncio.run(BatchProcessor(db).delete_collection(path))
    if result.is_err:
        fail(result.error)
    deleted = result.value.deleted_count
    if deleted == 0:
        click.echo("No documents to delete")
    else:
        click.echo(f"✅ {deleted} documents deleted")


@cli.command("export")
@click.argument("collection_path")
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False),
              help="JSON file to write")
@click.option("--include-subcollections", is_flag=True,
              help="Export the subcollections of every document too")
@click.pass_obj
def export_collection(state: CliState, collection_path: str, output: str,
                      include_subcollections: bool):
    """Export the documents of a collection to a JSON file."""
    if not is_collection_path(collection_path):
        click.echo(f"❌ Invalid collection path: {collection_path}", err=True)
        sys.exit(2)

    db = state.database()
    click.echo(f"Exporting {collection_path}...", err=True)
    if include_subcollections:
        click.echo("Including subcollections", err=True)

    result = asyncio.run(BatchProcessor(db).export_collection(
        collection_path, output, include_subcollections, _progress("Export progress")
    ))
    click.echo("", err=True)
    if result.is_err:
        fail(result.error)

    click.echo(f"✅ {result.value.exported_count} documents exported")
    click.echo(f"Output file: {result.value.file_path}")


@cli.command("import")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--batch-size", type=int, default=MAX_BATCH_SIZE, show_default=True,
              help=f"Documents per write batch ({MIN_BATCH_SIZE}-{MAX_BATCH_SIZE})")
@click.pass_obj
def import_documents(state: CliState, file: str, batch_size: int):
    """Import documents from a JSON file written by export."""
    if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
        fail(InvalidDataError(
            f"Invalid batch size: {batch_size} "
            f"(must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE})",
            field="batch_size",
        ))

    db = state.database()
    click.echo(f"Importing {file}...", err=True)
    click.echo(f"Batch size: {batch_size}", err=True)

    result = asyncio.run(BatchProcessor(db).import_data(
        file, batch_size, _progress("Import progress")
    ))
    click.echo("", err=True)
    if result.is_err:
        error = result.error
        if isinstance(error, BatchCommitError) and error.partial_success:
            click.echo(f"{error.committed_count} documents were committed before the failure",
                       err=True)
            click.echo("Re-running the import overwrites them, it does not duplicate them",
                       err=True)
        fail(error)

    summary = result.value
    click.echo("✅ Import complete")
    click.echo(f"  Imported: {summary.imported_count}")
    if summary.skipped_count:
        click.echo(f"  Skipped: {summary.skipped_count}")
    if summary.failed_count:
        click.echo(f"  Failed: {summary.failed_count}")


@cli.command("config")
@format_options
@click.pass_obj
def show_config(state: CliState, format_name, as_json, as_yaml, as_table, as_toon):
    """Show the resolved configuration."""
    output_format = resolve_format(format_name, as_json, as_yaml, as_table, as_toon)
    document = DocumentWithMeta(
        data=state.config.describe(),
        metadata=DocumentMetadata(id="config", path="firex/config"),
    )
    result = OutputFormatter().format_document(document, output_format)
    if result.is_err:
        fail(result.error)
    click.echo("Current configuration:", err=True)
    click.echo(result.value)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"firex v{__version__}")
    click.echo("Cloud Firestore command line client")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
