"""Output formatter for documents, change events, metadata and collection lists.

Every ``format_*`` method returns a ``Result``: serialization problems
(unsupported format, cyclic data, failed timestamp processing) come back as
FORMAT_ERROR instead of being raised.
"""

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict

from ..client.exceptions import FirexError, FormatError
from ..domain.models import (
    DocumentChange,
    DocumentMetadata,
    DocumentWithMeta,
    FirestoreTimestamp,
    TimestampFormatOptions,
)
from ..result import Result, err, ok
from .table import render_table
from .timestamp_processor import TimestampProcessor, iso_fallback
from .toon_encoder import ToonEncoder

logger = logging.getLogger(__name__)


class OutputFormat(Enum):
    """Supported output formats."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TOON = "toon"


DEFAULT_FORMAT = OutputFormat.JSON

METADATA_KEY = "_metadata"

# Sentinel for keys absent from a table row
_MISSING = object()


class FormatOptions(BaseModel):
    """Rendering switches shared by all ``format_*`` methods."""

    model_config = ConfigDict(frozen=True)

    include_metadata: bool = False
    quiet: bool = False


def resolve_format(
    format: Optional[str] = None,
    as_json: bool = False,
    as_yaml: bool = False,
    as_table: bool = False,
    as_toon: bool = False,
) -> OutputFormat:
    """Pick the output format from CLI options.

    Shorthand flags win over ``--format``; without either, JSON is used.

    Raises:
        ValueError: If ``format`` is not a known format name
    """
    if as_json:
        return OutputFormat.JSON
    if as_yaml:
        return OutputFormat.YAML
    if as_table:
        return OutputFormat.TABLE
    if as_toon:
        return OutputFormat.TOON
    if format:
        return OutputFormat(format.lower().strip())
    return DEFAULT_FORMAT


# =============================================================================
# SERIALIZERS
# =============================================================================

def _json_default(value: Any) -> Any:
    if isinstance(value, FirestoreTimestamp):
        return value.to_raw()
    if isinstance(value, datetime):
        return iso_fallback(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=_json_default)


def _compact_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=_json_default)


class _YamlDumper(yaml.SafeDumper):
    """Safe dumper that writes repeated objects in full instead of as anchors."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _represent_timestamp(dumper: yaml.SafeDumper, value: FirestoreTimestamp) -> yaml.Node:
    return dumper.represent_dict(value.to_raw())


def _represent_datetime(dumper: yaml.SafeDumper, value: datetime) -> yaml.Node:
    return dumper.represent_str(iso_fallback(value))


_YamlDumper.add_representer(FirestoreTimestamp, _represent_timestamp)
_YamlDumper.add_representer(datetime, _represent_datetime)
_YamlDumper.add_representer(tuple, yaml.SafeDumper.represent_list)


def to_yaml(data: Any) -> str:
    text = yaml.dump(
        data,
        Dumper=_YamlDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return text.rstrip("\n")


def _cell(value: Any) -> str:
    """Text for one table cell."""
    if value is _MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple, FirestoreTimestamp)):
        return _compact_json(value)
    if isinstance(value, datetime):
        return iso_fallback(value)
    return str(value)


def _flatten(obj: Dict[str, Any], prefix: str = "") -> List[Tuple[str, Any]]:
    """Flatten nested mappings into dotted key/value pairs."""
    pairs: List[Tuple[str, Any]] = []
    for key, value in obj.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            pairs.extend(_flatten(value, full_key))
        else:
            pairs.append((full_key, value))
    return pairs


# =============================================================================
# FORMATTER
# =============================================================================

class OutputFormatter:
    """Renders query and watch results as JSON, YAML, table or TOON."""

    def __init__(
        self,
        toon_encoder: Optional[ToonEncoder] = None,
        timestamp_processor: Optional[TimestampProcessor] = None,
    ):
        self.toon_encoder = toon_encoder or ToonEncoder()
        self.timestamp_processor = timestamp_processor or TimestampProcessor()

    def format_document(
        self,
        document: DocumentWithMeta,
        format: Union[OutputFormat, str],
        options: Optional[FormatOptions] = None,
        timestamp_options: Optional[TimestampFormatOptions] = None,
    ) -> Result[str]:
        """Format a single document.

        Args:
            document: Document to render
            format: Output format
            options: ``include_metadata`` merges metadata under ``_metadata``
            timestamp_options: When given, timestamps are converted first

        Returns:
            Result with the rendered text, or FORMAT_ERROR
        """
        options = options or FormatOptions()
        try:
            output_format = self._coerce(format)
            prepared = self._prepare(self._document_payload(document, options), timestamp_options)
            if prepared.is_err:
                return prepared
            data = prepared.value

            if output_format is OutputFormat.TABLE:
                return ok(self._table_from_rows([data]))
            return self._serialize(data, output_format)
        except FirexError as e:
            return err(e)
        except Exception as e:
            return err(FormatError(f"Failed to format document: {e}", original_error=e))

    def format_documents(
        self,
        documents: Sequence[DocumentWithMeta],
        format: Union[OutputFormat, str],
        options: Optional[FormatOptions] = None,
        timestamp_options: Optional[TimestampFormatOptions] = None,
    ) -> Result[str]:
        """Format a list of documents; an empty list is ``[]`` in every format."""
        options = options or FormatOptions()
        try:
            output_format = self._coerce(format)
            if not documents:
                return ok("[]")

            payload = [self._document_payload(doc, options) for doc in documents]
            prepared = self._prepare(payload, timestamp_options)
            if prepared.is_err:
                return prepared
            rows = prepared.value

            if output_format is OutputFormat.TABLE:
                return ok(self._table_from_rows(rows))
            return self._serialize(rows, output_format)
        except FirexError as e:
            return err(e)
        except Exception as e:
            return err(FormatError(f"Failed to format document list: {e}", original_error=e))

    def format_change(
        self,
        change: DocumentChange,
        format: Union[OutputFormat, str],
        options: Optional[FormatOptions] = None,
        timestamp_options: Optional[TimestampFormatOptions] = None,
    ) -> Result[str]:
        """Format a change event delivered in watch mode."""
        options = options or FormatOptions()
        try:
            output_format = self._coerce(format)
            payload: Dict[str, Any] = {
                "changeType": change.type.value,
                "data": change.document.data,
            }
            if options.include_metadata:
                payload["metadata"] = change.document.metadata.to_output()

            prepared = self._prepare(payload, timestamp_options)
            if prepared.is_err:
                return prepared
            data = prepared.value

            if output_format is OutputFormat.TABLE:
                rows = [["", "Type", change.type.value]]
                rows.extend(["", key, _cell(value)] for key, value in _flatten(data["data"]))
                return ok(render_table(["Change Type", "Field", "Value"], rows))
            return self._serialize(data, output_format)
        except FirexError as e:
            return err(e)
        except Exception as e:
            return err(FormatError(f"Failed to format change: {e}", original_error=e))

    def format_metadata(
        self,
        metadata: DocumentMetadata,
        format: Union[OutputFormat, str] = OutputFormat.TABLE,
        options: Optional[FormatOptions] = None,
    ) -> Result[str]:
        """Format document metadata, as a property table by default."""
        try:
            output_format = self._coerce(format)
            if output_format is OutputFormat.TABLE:
                rows = [["ID", metadata.id], ["Path", metadata.path]]
                if metadata.create_time:
                    rows.append(["Created", iso_fallback(metadata.create_time)])
                if metadata.update_time:
                    rows.append(["Updated", iso_fallback(metadata.update_time)])
                if metadata.read_time:
                    rows.append(["Read Time", iso_fallback(metadata.read_time)])
                return ok(render_table(["Property", "Value"], rows))
            return self._serialize(metadata.to_output(), output_format)
        except FirexError as e:
            return err(e)
        except Exception as e:
            return err(FormatError(f"Failed to format metadata: {e}", original_error=e))

    def format_collections(
        self,
        collections: Sequence[str],
        format: Union[OutputFormat, str],
        options: Optional[FormatOptions] = None,
    ) -> Result[str]:
        """Format collection names.

        Unless ``quiet`` is set the names are wrapped as
        ``{"collections": [...], "count": N}``.
        """
        options = options or FormatOptions()
        try:
            output_format = self._coerce(format)
            names = list(collections)

            if output_format is OutputFormat.TABLE:
                if not names:
                    return ok("(No collections)")
                return ok(render_table(["Collection"], [[name] for name in names]))

            if options.quiet:
                return self._serialize(names, output_format)
            return self._serialize({"collections": names, "count": len(names)}, output_format)
        except FirexError as e:
            return err(e)
        except Exception as e:
            return err(FormatError(f"Failed to format collection list: {e}", original_error=e))

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _coerce(format: Union[OutputFormat, str]) -> OutputFormat:
        if isinstance(format, OutputFormat):
            return format
        try:
            return OutputFormat(str(format).lower())
        except ValueError:
            raise FormatError(f"Unsupported output format: {format}")

    @staticmethod
    def _document_payload(document: DocumentWithMeta, options: FormatOptions) -> Dict[str, Any]:
        data = dict(document.data)
        if options.include_metadata:
            data[METADATA_KEY] = document.metadata.to_output()
        return data

    def _prepare(self, data: Any, timestamp_options: Optional[TimestampFormatOptions]) -> Result[Any]:
        if timestamp_options is None:
            return ok(data)
        return self.timestamp_processor.process_data(data, timestamp_options)

    def _serialize(self, data: Any, output_format: OutputFormat) -> Result[str]:
        if output_format is OutputFormat.JSON:
            return ok(to_json(data))
        if output_format is OutputFormat.YAML:
            return ok(to_yaml(data))
        if output_format is OutputFormat.TOON:
            return self.toon_encoder.encode(data)
        return err(FormatError(f"Unsupported output format: {output_format.value}"))

    @staticmethod
    def _table_from_rows(rows: List[Dict[str, Any]]) -> str:
        if not rows:
            return "(No data)"

        # Union of keys in first-seen order
        keys: Dict[str, None] = {}
        for row in rows:
            for key in row:
                keys.setdefault(key, None)
        head = list(keys)
        if not head:
            return "(No data)"

        body = [[_cell(row.get(key, _MISSING)) for key in head] for row in rows]
        return render_table(head, body)
