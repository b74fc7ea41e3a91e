"""TOON (Token-Oriented Object Notation) encoder for firex output.

TOON is a compact, whitespace-significant format: uniform arrays of objects
become a single header plus one comma-separated row per item, which makes it
noticeably smaller than JSON for typical query results.

Format specification: https://github.com/toon-format/toon
"""

import math
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Union

from ..client.exceptions import FormatError
from ..domain.models import FirestoreTimestamp
from ..result import Result, err, ok


class ToonEncoder:
    """Encoder for TOON format.

    TOON uses:
    - Tabular format for arrays of uniform objects: [N]{field1,field2}:
    - YAML-like indentation for nested objects
    - Minimal quoting (only when necessary)
    - Compact number representation

    Input is sanitized first: non-finite numbers become null, dates become ISO
    strings, and a cyclic structure is reported as FORMAT_ERROR.
    """

    # Characters that require quoting in values
    SPECIAL_CHARS = re.compile(r'[,\[\]\{\}:\n\r\t"]')

    # Pattern for values that look like numbers but should be strings
    NUMBER_PATTERN = re.compile(r'^-?\d+\.?\d*([eE][+-]?\d+)?$')

    # Keys that can be written bare
    BARE_KEY = re.compile(r'^[A-Za-z_][\w.\-]*$')

    def __init__(self, indent: int = 2):
        """Initialize encoder.

        Args:
            indent: Number of spaces for indentation (default 2)
        """
        self.indent = indent

    def encode(self, data: Any) -> Result[str]:
        """Encode data to TOON format.

        Args:
            data: JSON-like data to encode (dict, list, or primitive)

        Returns:
            Result with the TOON string, or FORMAT_ERROR
        """
        try:
            sanitized = self.sanitize(data)
            return ok(self._encode_value(sanitized))
        except Exception as e:
            return err(FormatError(f"Failed to encode TOON: {e}", original_error=e))

    # =========================================================================
    # SANITIZING
    # =========================================================================

    def sanitize(self, data: Any, _path: set = None) -> Any:
        """Return a JSON-compatible copy of ``data``.

        Raises:
            ValueError: If ``data`` contains a reference cycle.
        """
        if _path is None:
            _path = set()

        if data is None or isinstance(data, (bool, str, int)):
            return data

        if isinstance(data, float):
            return data if math.isfinite(data) else None

        if isinstance(data, Decimal):
            return data if data.is_finite() else None

        if isinstance(data, (datetime, date)):
            return data.isoformat()

        if isinstance(data, FirestoreTimestamp):
            return data.to_raw()

        if not isinstance(data, (dict, list, tuple, set, frozenset)):
            return str(data)

        marker = id(data)
        if marker in _path:
            raise ValueError("Converting circular structure to TOON")
        _path.add(marker)
        try:
            if isinstance(data, dict):
                return {str(key): self.sanitize(value, _path) for key, value in data.items()}
            return [self.sanitize(item, _path) for item in data]
        finally:
            _path.discard(marker)

    # =========================================================================
    # ENCODING
    # =========================================================================

    def _encode_value(self, data: Any) -> str:
        if data is None:
            return "null"

        if isinstance(data, bool):
            return "true" if data else "false"

        if isinstance(data, (int, float, Decimal)):
            return self._encode_number(data)

        if isinstance(data, str):
            return self._encode_string(data)

        if isinstance(data, list):
            return self._encode_list(data)

        if isinstance(data, dict):
            return self._encode_dict(data)

        return self._encode_string(str(data))

    def _encode_number(self, value: Union[int, float, Decimal]) -> str:
        """Encode number with minimal representation."""
        if isinstance(value, float):
            if value.is_integer() and abs(value) < 1e16:
                return str(int(value))
            return repr(value)
        if isinstance(value, Decimal):
            # Normalize to remove trailing zeros
            return str(value.normalize())
        return str(value)

    def _encode_string(self, value: str) -> str:
        """Encode string, quoting only when necessary."""
        if not value:
            return '""'

        needs_quotes = (
            self.SPECIAL_CHARS.search(value) is not None or
            value.startswith((' ', '\t', '-')) or
            value.endswith((' ', '\t')) or
            value in ('true', 'false', 'null') or
            self.NUMBER_PATTERN.match(value)
        )

        if needs_quotes:
            return self._quote(value)

        return value

    def _encode_key(self, key: str) -> str:
        if self.BARE_KEY.match(key):
            return key
        return self._quote(key)

    @staticmethod
    def _quote(value: str) -> str:
        escaped = (
            value.replace('\\', '\\\\')
            .replace('"', '\\"')
            .replace('\n', '\\n')
            .replace('\r', '\\r')
            .replace('\t', '\\t')
        )
        return f'"{escaped}"'

    def _encode_list(self, items: List[Any], level: int = 0) -> str:
        """Encode list, using tabular format for uniform objects."""
        if not items:
            return "[]"

        if self._is_uniform_dict_list(items):
            return self._encode_tabular(items, level)

        lines = []
        for item in items:
            lines.append(self._list_item(item, level))
        return '\n'.join(lines)

    def _list_item(self, item: Any, level: int) -> str:
        indent = self._indent(level)
        if isinstance(item, dict) and item:
            nested = self._encode_dict(item, level + 1)
            return f"{indent}-\n{nested}"
        if isinstance(item, list) and item:
            nested = self._encode_list(item, level + 1)
            return f"{indent}-\n{nested}"
        return f"{indent}- {self._encode_value(item)}"

    def _is_uniform_dict_list(self, items: List[Any]) -> bool:
        """Check if all items are non-empty dicts with identical keys."""
        if not items or not isinstance(items[0], dict) or not items[0]:
            return False

        first_keys = list(items[0].keys())
        return all(
            isinstance(item, dict) and list(item.keys()) == first_keys
            for item in items
        )

    def _encode_tabular(self, items: List[Dict[str, Any]], level: int = 0) -> str:
        """Encode uniform dict list as TOON tabular format.

        Format: [N]{field1,field2}:
                value1,value2
                value3,value4
        """
        fields = list(items[0].keys())
        header = f"[{len(items)}]{{{','.join(self._encode_key(f) for f in fields)}}}:"

        indent = self._indent(level)
        lines = [f"{indent}{header}"]
        for item in items:
            row = ','.join(self._encode_value_for_table(item[field]) for field in fields)
            lines.append(f"{indent}{row}")
        return '\n'.join(lines)

    def _encode_value_for_table(self, value: Any) -> str:
        """Encode a value for use in tabular row (no newlines allowed)."""
        if value is None:
            return ""

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, (int, float, Decimal)):
            return self._encode_number(value)

        if isinstance(value, str):
            return self._encode_string(value)

        if isinstance(value, (list, dict)):
            # Nested structures in tables - use compact JSON-like
            return self._encode_nested_compact(value)

        return self._encode_string(str(value))

    def _encode_nested_compact(self, value: Any) -> str:
        """Encode nested structure compactly for table cells."""
        if isinstance(value, list):
            if not value:
                return "[]"
            items = [self._encode_value_for_table(v) for v in value]
            return f"[{';'.join(items)}]"

        if isinstance(value, dict):
            if not value:
                return "{}"
            pairs = [f"{self._encode_key(k)}:{self._encode_value_for_table(v)}" for k, v in value.items()]
            return f"{{{';'.join(pairs)}}}"

        return self._encode_value_for_table(value)

    def _encode_dict(self, obj: Dict[str, Any], level: int = 0) -> str:
        """Encode dict with YAML-like indentation."""
        if not obj:
            return f"{self._indent(level)}{{}}"

        lines = []
        indent = self._indent(level)

        for key, value in obj.items():
            name = self._encode_key(key)
            if isinstance(value, dict):
                if value:
                    lines.append(f"{indent}{name}:")
                    lines.append(self._encode_dict(value, level + 1))
                else:
                    lines.append(f"{indent}{name}: {{}}")
            elif isinstance(value, list):
                if not value:
                    lines.append(f"{indent}{name}: []")
                elif self._is_uniform_dict_list(value):
                    lines.append(f"{indent}{name}:")
                    lines.append(self._encode_tabular(value, level + 1))
                else:
                    lines.append(f"{indent}{name}:")
                    lines.append(self._encode_list(value, level + 1))
            else:
                lines.append(f"{indent}{name}: {self._encode_value(value)}")

        return '\n'.join(lines)

    def _indent(self, level: int) -> str:
        """Get indentation string for given level."""
        return ' ' * (self.indent * level)


def encode_toon(data: Any, indent: int = 2) -> str:
    """Convenience function to encode data as TOON.

    Args:
        data: Data to encode
        indent: Indentation level (default 2)

    Returns:
        TOON-formatted string

    Raises:
        FormatError: If the data cannot be encoded
    """
    return ToonEncoder(indent=indent).encode(data).unwrap()
