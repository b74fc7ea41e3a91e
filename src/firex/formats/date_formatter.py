"""Timezone-aware timestamp formatting with Unicode (LDML) date patterns.

Patterns use the same tokens as date-fns and the CLDR date format syntax,
e.g. ``yyyy-MM-dd'T'HH:mm:ssXXX``. Text between single quotes is literal and
``''`` is a literal quote.

Supported letters: era G; years y u R; quarters Q q; months M L; weeks w
(Sunday-start, week 1 holds January 1st) and I (ISO); day d; weekdays E e c i;
day periods a b B; hours h H K k; minutes m; seconds s; fractions S; zones
X x O z; epoch t T. A trailing ``o`` gives the ordinal form (``do`` is
"5th"). ``P`` and ``p`` runs expand to the en-US localized date and time
formats, e.g. ``PP`` is "Mar 5, 2024" and ``Pp`` is "03/05/2024, 7:04 AM".
``Y`` and ``D`` are rejected because they are almost always typos for ``y``
and ``d``. Any other unquoted ASCII letter is rejected.
"""

import re
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Union

import pytz

from ..client.exceptions import FormatError, InvalidPatternError, InvalidTimezoneError
from ..domain.models import FirestoreTimestamp
from ..result import Result, err, ok

DEFAULT_DATE_FORMAT = "yyyy-MM-dd'T'HH:mm:ssXXX"

# Fixed instant used to check that a pattern can be rendered
_REFERENCE_INSTANT = datetime(2024, 1, 15, 14, 30, 0, tzinfo=timezone.utc)

_TOKEN_RE = re.compile(r"'(?:[^']|'')*'?|([A-Za-z])\1*(o?)|.", re.S)

_MONTHS = [
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
]
_WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

TimestampInput = Union[FirestoreTimestamp, Mapping[str, Any], datetime]


def to_utc_datetime(value: TimestampInput) -> datetime:
    """Convert a timestamp value to an aware UTC datetime."""
    if isinstance(value, FirestoreTimestamp):
        return value.to_datetime()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    seconds = value["_seconds"]
    nanos = value.get("_nanoseconds") or 0
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc) + timedelta(
        microseconds=int(nanos) // 1000
    )


# =============================================================================
# PATTERN RENDERING
# =============================================================================

def _offset_minutes(dt: datetime) -> int:
    offset = dt.utcoffset() or timedelta(0)
    return int(offset.total_seconds() // 60)


def _iso_offset(dt: datetime, count: int, z_for_zero: bool) -> str:
    minutes = _offset_minutes(dt)
    if minutes == 0 and z_for_zero:
        return "Z"
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    if count == 1:
        return f"{sign}{hours:02d}" + (f"{mins:02d}" if mins else "")
    if count in (2, 4):
        return f"{sign}{hours:02d}{mins:02d}"
    return f"{sign}{hours:02d}:{mins:02d}"


def _gmt_offset(dt: datetime, long: bool) -> str:
    minutes = _offset_minutes(dt)
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    if long:
        return f"GMT{sign}{hours:02d}:{mins:02d}"
    return f"GMT{sign}{hours}" + (f":{mins:02d}" if mins else "")


def _year(dt: datetime, n: int) -> str:
    if n == 2:
        return f"{dt.year % 100:02d}"
    return str(dt.year).zfill(n)


def _era(dt: datetime, n: int) -> str:
    if n == 4:
        return "Anno Domini"
    if n == 5:
        return "A"
    return "AD"


def _month(dt: datetime, n: int) -> str:
    if n <= 2:
        return str(dt.month).zfill(n)
    name = _MONTHS[dt.month - 1]
    if n == 3:
        return name[:3]
    if n == 4:
        return name
    return name[0]


def _quarter(dt: datetime, n: int) -> str:
    quarter = (dt.month - 1) // 3 + 1
    if n <= 2:
        return str(quarter).zfill(n)
    if n == 3:
        return f"Q{quarter}"
    if n == 4:
        return f"{ordinal(quarter)} quarter"
    return str(quarter)


def _weekday(dt: datetime, n: int) -> str:
    name = _WEEKDAYS[dt.weekday()]
    if n <= 3:
        return name[:3]
    if n == 4:
        return name
    if n == 5:
        return name[0]
    return name[:2]


def _local_weekday_number(dt: datetime) -> int:
    # Weeks start on Sunday: Sunday is 1, Saturday is 7
    return (dt.weekday() + 1) % 7 + 1


def _local_weekday(dt: datetime, n: int) -> str:
    if n <= 2:
        return str(_local_weekday_number(dt)).zfill(n)
    return _weekday(dt, n)


def _iso_weekday(dt: datetime, n: int) -> str:
    if n <= 2:
        return str(dt.isoweekday()).zfill(n)
    return _weekday(dt, n)


def _week_start(day: date) -> date:
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _local_week(dt: datetime) -> int:
    """Week of year with Sunday-start weeks; week 1 contains January 1st."""
    day = dt.date()
    year = day.year
    if day >= _week_start(date(year + 1, 1, 1)):
        year += 1
    return (_week_start(day) - _week_start(date(year, 1, 1))).days // 7 + 1


def _day_period(dt: datetime, n: int) -> str:
    am = dt.hour < 12
    if n == 3:
        return "am" if am else "pm"
    if n == 4:
        return "a.m." if am else "p.m."
    if n == 5:
        return "a" if am else "p"
    return "AM" if am else "PM"


def _day_period_with_noon(dt: datetime, n: int) -> str:
    if dt.hour == 12:
        return "n" if n == 5 else "noon"
    if dt.hour == 0:
        return "mi" if n == 5 else "midnight"
    return _day_period(dt, n)


def _flexible_day_period(dt: datetime, n: int) -> str:
    if dt.hour >= 17:
        return "in the evening"
    if dt.hour >= 12:
        return "in the afternoon"
    if dt.hour >= 4:
        return "in the morning"
    return "at night"


def _hour12(dt: datetime, n: int) -> str:
    hour = dt.hour % 12 or 12
    return str(hour).zfill(n)


def _fraction(dt: datetime, n: int) -> str:
    digits = f"{dt.microsecond:06d}"
    return (digits + "000")[:n]


def _tz_name(dt: datetime, n: int) -> str:
    name = dt.tzname()
    if name and not name.startswith(("+", "-")):
        return name
    return _gmt_offset(dt, long=n == 4)


def ordinal(number: int) -> str:
    """English ordinal: 1st, 2nd, 3rd, 4th, 11th, 21st."""
    rem100 = number % 100
    if rem100 > 20 or rem100 < 10:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    else:
        suffix = "th"
    return f"{number}{suffix}"


_FIELDS: Dict[str, Callable[[datetime, int], str]] = {
    "G": _era,
    "y": _year,
    "u": lambda dt, n: str(dt.year).zfill(n),
    "R": lambda dt, n: str(dt.isocalendar()[0]).zfill(n),
    "Q": _quarter,
    "q": _quarter,
    "M": _month,
    "L": _month,
    "w": lambda dt, n: str(_local_week(dt)).zfill(n),
    "I": lambda dt, n: str(dt.isocalendar()[1]).zfill(n),
    "d": lambda dt, n: str(dt.day).zfill(n),
    "E": _weekday,
    "e": _local_weekday,
    "c": _local_weekday,
    "i": _iso_weekday,
    "a": _day_period,
    "b": _day_period_with_noon,
    "B": _flexible_day_period,
    "h": _hour12,
    "H": lambda dt, n: str(dt.hour).zfill(n),
    "K": lambda dt, n: str(dt.hour % 12).zfill(n),
    "k": lambda dt, n: str(dt.hour or 24).zfill(n),
    "m": lambda dt, n: str(dt.minute).zfill(n),
    "s": lambda dt, n: str(dt.second).zfill(n),
    "S": _fraction,
    "X": lambda dt, n: _iso_offset(dt, n, z_for_zero=True),
    "x": lambda dt, n: _iso_offset(dt, n, z_for_zero=False),
    "O": lambda dt, n: _gmt_offset(dt, long=n == 4),
    "z": _tz_name,
    "t": lambda dt, n: str(int(dt.timestamp())),
    "T": lambda dt, n: str(int(dt.timestamp() * 1000)),
}

# Numeric value rendered by an ordinal token such as ``do`` or ``Mo``
_ORDINALS: Dict[str, Callable[[datetime], int]] = {
    "y": lambda dt: dt.year,
    "Q": lambda dt: (dt.month - 1) // 3 + 1,
    "q": lambda dt: (dt.month - 1) // 3 + 1,
    "M": lambda dt: dt.month,
    "L": lambda dt: dt.month,
    "w": _local_week,
    "I": lambda dt: dt.isocalendar()[1],
    "d": lambda dt: dt.day,
    "e": _local_weekday_number,
    "c": _local_weekday_number,
    "i": lambda dt: dt.isoweekday(),
    "h": lambda dt: dt.hour % 12 or 12,
    "H": lambda dt: dt.hour,
    "K": lambda dt: dt.hour % 12,
    "k": lambda dt: dt.hour or 24,
    "m": lambda dt: dt.minute,
    "s": lambda dt: dt.second,
}

_MISUSED = {
    "Y": "Use `yyyy` instead of `YYYY` for formatting years",
    "D": "Use `d` instead of `D` for formatting days of the month",
}

# Localized date (P) and time (p) formats, by token length
_LONG_DATES = {1: "MM/dd/yyyy", 2: "MMM d, y", 3: "MMMM do, y", 4: "EEEE, MMMM do, y"}
_LONG_TIMES = {1: "h:mm a", 2: "h:mm:ss a", 3: "h:mm:ss a z", 4: "h:mm:ss a zzzz"}

_LONG_RE = re.compile(r"'(?:[^']|'')*'?|(P+)(p+)|(P+)|(p+)|.", re.S)


def _expand_long_formats(pattern: str) -> str:
    """Replace ``P``/``p`` runs with the patterns they stand for."""
    parts = []
    for match in _LONG_RE.finditer(pattern):
        date_run, time_run, date_only, time_only = match.groups()
        if date_run:
            width = min(len(date_run), 4)
            joiner = ", " if width <= 2 else " 'at' "
            parts.append(_LONG_DATES[width] + joiner + _LONG_TIMES[min(len(time_run), 4)])
        elif date_only:
            parts.append(_LONG_DATES[min(len(date_only), 4)])
        elif time_only:
            parts.append(_LONG_TIMES[min(len(time_only), 4)])
        else:
            parts.append(match.group(0))
    return "".join(parts)


def _literal(token: str) -> str:
    if token == "''":
        return "'"
    body = token[1:-1] if len(token) > 1 and token.endswith("'") else token[1:]
    return body.replace("''", "'")


def render_pattern(dt: datetime, pattern: str) -> str:
    """Render an aware datetime with an LDML pattern.

    Raises:
        ValueError: If the pattern contains an unsupported or unquoted letter.
    """
    parts = []
    for match in _TOKEN_RE.finditer(_expand_long_formats(pattern)):
        token = match.group(0)
        letter = match.group(1)
        if token.startswith("'"):
            parts.append(_literal(token))
            continue
        if letter is None:
            parts.append(token)
            continue
        if letter in _MISUSED:
            raise ValueError(_MISUSED[letter])
        if match.group(2):
            value = _ORDINALS.get(letter)
            if value is None:
                raise ValueError(f"Format token `{token}` has no ordinal form")
            parts.append(ordinal(value(dt)))
            continue
        field = _FIELDS.get(letter)
        if field is None:
            raise ValueError(
                f"Format string contains an unescaped latin alphabet character `{letter}`"
            )
        parts.append(field(dt, len(token)))
    return "".join(parts)


# =============================================================================
# FORMATTERS
# =============================================================================

class DateFormatter(ABC):
    """Abstraction for timestamp formatting."""

    @abstractmethod
    def format(self, timestamp: TimestampInput, pattern: str, timezone_name: str) -> Result[str]:
        """Format a timestamp as a string in the given timezone."""

    @abstractmethod
    def validate_pattern(self, pattern: str) -> Result[None]:
        """Check that a pattern is usable."""

    @abstractmethod
    def validate_timezone(self, timezone_name: str) -> Result[None]:
        """Check that a timezone name is a known IANA zone."""


class LdmlDateFormatter(DateFormatter):
    """``DateFormatter`` using LDML patterns and pytz timezones."""

    def format(self, timestamp: TimestampInput, pattern: str, timezone_name: str) -> Result[str]:
        """Format a timestamp.

        The timezone is validated first, then the pattern.

        Returns:
            Result with the formatted string, or INVALID_TIMEZONE,
            INVALID_PATTERN or FORMAT_ERROR.
        """
        tz_result = self.validate_timezone(timezone_name)
        if tz_result.is_err:
            return tz_result

        pattern_result = self.validate_pattern(pattern)
        if pattern_result.is_err:
            return pattern_result

        try:
            zoned = to_utc_datetime(timestamp).astimezone(pytz.timezone(timezone_name))
            return ok(render_pattern(zoned, pattern))
        except Exception as e:
            return err(FormatError(f"Failed to format timestamp: {e}", original_error=e))

    def validate_pattern(self, pattern: str) -> Result[None]:
        if not pattern or not pattern.strip():
            return err(InvalidPatternError(pattern, "No format pattern given"))

        try:
            render_pattern(_REFERENCE_INSTANT, pattern)
        except ValueError as e:
            return err(InvalidPatternError(pattern, f"Invalid format pattern: {pattern} ({e})"))
        return ok(None)

    def validate_timezone(self, timezone_name: str) -> Result[None]:
        if not timezone_name or not timezone_name.strip():
            return err(InvalidTimezoneError(timezone_name, "No timezone given"))

        try:
            pytz.timezone(timezone_name)
        except pytz.UnknownTimeZoneError:
            return err(InvalidTimezoneError(timezone_name))
        return ok(None)
