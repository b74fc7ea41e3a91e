"""
firex

Command line client for Cloud Firestore: queries, realtime watches and
JSON/YAML/table/TOON output with timezone-aware timestamps.
"""

__version__ = "1.0.0"

from .config import Config
from .domain import QueryBuilder, WatchService
from .formats import OutputFormatter

__all__ = [
    "Config",
    "QueryBuilder",
    "WatchService",
    "OutputFormatter",
]
