"""Output rendering for firex.

Supports JSON, YAML, bordered tables and TOON (Token-Oriented Object Notation),
with timezone-aware conversion of timestamp values.
"""

from .date_formatter import DEFAULT_DATE_FORMAT, DateFormatter, LdmlDateFormatter
from .formatter import FormatOptions, OutputFormat, OutputFormatter, resolve_format
from .output_options import OutputOptionsResolver, ResolvedOutputOptions, TimezoneService
from .timestamp_processor import TimestampProcessor
from .toon_encoder import ToonEncoder, encode_toon

__all__ = [
    "DEFAULT_DATE_FORMAT",
    "DateFormatter",
    "LdmlDateFormatter",
    "FormatOptions",
    "OutputFormat",
    "OutputFormatter",
    "resolve_format",
    "OutputOptionsResolver",
    "ResolvedOutputOptions",
    "TimezoneService",
    "TimestampProcessor",
    "ToonEncoder",
    "encode_toon",
]
