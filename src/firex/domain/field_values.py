"""Conversion of field value markers in write payloads.

A write payload is plain JSON, so server-side operations are written as
marker maps that are replaced before the write:

    {"$fieldValue": "serverTimestamp"}
    {"$fieldValue": "increment", "operand": 1}
    {"$fieldValue": "arrayUnion", "elements": ["a", "b"]}
    {"$fieldValue": "arrayRemove", "elements": ["a"]}
    {"$fieldValue": "delete"}
    {"$timestampValue": "2025-02-18T12:00:00Z"}

Markers may appear at any depth, inside maps or lists. Field value markers
become ``FieldTransform`` models; timestamp markers become aware datetimes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from ..client.exceptions import InvalidDataError
from ..result import Result, err, ok
from .models import FieldTransform, FieldTransformKind

logger = logging.getLogger(__name__)

FIELD_VALUE_KEY = "$fieldValue"
TIMESTAMP_VALUE_KEY = "$timestampValue"
MAX_DEPTH = 100

_KINDS = {kind.value: kind for kind in FieldTransformKind}


def is_field_value_spec(value: Any) -> bool:
    return isinstance(value, dict) and FIELD_VALUE_KEY in value


def is_timestamp_value_spec(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and TIMESTAMP_VALUE_KEY in value
        and FIELD_VALUE_KEY not in value
    )


def parse_timestamp_value(text: str) -> datetime:
    """Parse an ISO 8601 date or date-time; values without an offset are UTC.

    Raises:
        ValueError: If ``text`` is not ISO 8601
    """
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FieldValueTransformer:
    """Replaces marker maps in a write payload.

    Usage:
        result = FieldValueTransformer().transform({"visits": {"$fieldValue": "increment", "operand": 1}})
        data = result.unwrap()
    """

    def transform(self, data: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """Return a copy of ``data`` with every marker replaced.

        Returns:
            Result with the converted payload, or INVALID_DATA naming the
            offending field path
        """
        try:
            return ok(self._map(data, "", 0))
        except InvalidDataError as e:
            logger.debug("Rejected field value at %s: %s", e.field, e.message)
            return err(e)

    def _map(self, data: Dict[str, Any], parent: str, depth: int) -> Dict[str, Any]:
        self._check_depth(parent, depth)
        return {
            key: self._value(value, f"{parent}.{key}" if parent else key, depth)
            for key, value in data.items()
        }

    def _list(self, items: List[Any], parent: str, depth: int) -> List[Any]:
        self._check_depth(parent, depth)
        return [self._value(item, f"{parent}[{i}]", depth) for i, item in enumerate(items)]

    def _value(self, value: Any, path: str, depth: int) -> Any:
        if is_field_value_spec(value):
            return self._field_value(value, path)
        if is_timestamp_value_spec(value):
            return self._timestamp_value(value, path)
        if isinstance(value, dict):
            return self._map(value, path, depth + 1)
        if isinstance(value, list):
            return self._list(value, path, depth + 1)
        return value

    @staticmethod
    def _check_depth(path: str, depth: int) -> None:
        if depth > MAX_DEPTH:
            raise InvalidDataError(
                f"Maximum nesting depth ({MAX_DEPTH}) exceeded", field=path or "root"
            )

    @staticmethod
    def _field_value(spec: Dict[str, Any], path: str) -> FieldTransform:
        name = spec[FIELD_VALUE_KEY]
        kind = _KINDS.get(name) if isinstance(name, str) else None
        if kind is None:
            raise InvalidDataError(
                f'Field "{path}": unknown $fieldValue type {name!r} '
                f"(valid types: {', '.join(_KINDS)})",
                field=path,
            )

        if kind is FieldTransformKind.INCREMENT:
            operand = spec.get("operand")
            if isinstance(operand, bool) or not isinstance(operand, (int, float)):
                raise InvalidDataError(
                    f'Field "{path}": increment requires a numeric "operand"', field=path
                )
            return FieldTransform(kind=kind, operand=operand)

        if kind in (FieldTransformKind.ARRAY_UNION, FieldTransformKind.ARRAY_REMOVE):
            elements = spec.get("elements")
            if not isinstance(elements, list):
                raise InvalidDataError(
                    f'Field "{path}": {kind.value} requires an "elements" list', field=path
                )
            return FieldTransform(kind=kind, elements=elements)

        return FieldTransform(kind=kind)

    @staticmethod
    def _timestamp_value(spec: Dict[str, Any], path: str) -> datetime:
        text = spec[TIMESTAMP_VALUE_KEY]
        if not isinstance(text, str):
            raise InvalidDataError(
                f'Field "{path}": $timestampValue must be an ISO 8601 string', field=path
            )
        try:
            return parse_timestamp_value(text)
        except ValueError:
            raise InvalidDataError(
                f'Field "{path}": invalid $timestampValue {text!r}', field=path
            )
