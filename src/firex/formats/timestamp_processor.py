"""Recursive conversion of timestamp values inside document data."""

import logging
from datetime import date, datetime
from numbers import Real
from typing import Any, Mapping, Optional

from ..client.exceptions import FormatError
from ..domain.models import FirestoreTimestamp, TimestampFormatOptions
from ..result import Result, err, ok
from .date_formatter import DateFormatter, LdmlDateFormatter, to_utc_datetime

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def iso_fallback(timestamp: Any) -> str:
    """UTC rendering with millisecond precision, used when formatting fails."""
    dt = to_utc_datetime(timestamp)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class TimestampProcessor:
    """Walks arbitrary data and replaces timestamps with formatted strings."""

    def __init__(self, formatter: Optional[DateFormatter] = None):
        self.formatter = formatter or LdmlDateFormatter()

    def is_timestamp(self, value: Any) -> bool:
        """Check whether a value is a database timestamp.

        True for ``FirestoreTimestamp`` values and for mappings carrying numeric
        ``_seconds`` and ``_nanoseconds``. Lists and native dates never match.
        """
        if isinstance(value, FirestoreTimestamp):
            return True
        if value is None or isinstance(value, (list, tuple, date)):
            return False
        if not isinstance(value, Mapping):
            return False
        return _is_number(value.get("_seconds")) and _is_number(value.get("_nanoseconds"))

    def process_data(self, data: Any, options: TimestampFormatOptions) -> Result[Any]:
        """Return a copy of ``data`` with every timestamp formatted.

        With ``no_date_format`` the input object itself is returned.
        """
        if options.no_date_format:
            return ok(data)

        try:
            return ok(self._process_value(data, options))
        except Exception as e:
            return err(FormatError(f"Failed to process data: {e}", original_error=e))

    def _process_value(self, value: Any, options: TimestampFormatOptions) -> Any:
        if value is None or isinstance(value, (str, bytes, bool, Real, datetime, date)):
            return value

        if isinstance(value, list):
            return [self._process_value(item, options) for item in value]

        if isinstance(value, tuple):
            return tuple(self._process_value(item, options) for item in value)

        if self.is_timestamp(value):
            return self._format_timestamp(value, options)

        if isinstance(value, Mapping):
            return {key: self._process_value(val, options) for key, val in value.items()}

        return value

    def _format_timestamp(self, timestamp: Any, options: TimestampFormatOptions) -> str:
        result = self.formatter.format(timestamp, options.date_format, options.timezone)
        if result.is_err:
            logger.debug("Timestamp formatting failed, using ISO fallback: %s", result.error)
            return iso_fallback(timestamp)
        return result.value
