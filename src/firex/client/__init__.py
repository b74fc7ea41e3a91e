"""Backend access for firex: error types, the database protocol and the Firestore adapter."""

from .exceptions import (
    ERROR_CODES,
    BatchCommitError,
    FileIOError,
    FirestoreError,
    FirexError,
    FormatError,
    InvalidDataError,
    InvalidPatternError,
    InvalidQueryError,
    InvalidTimezoneError,
    MaxRetriesExceededError,
    WatchError,
)
from .protocol import DocumentDatabase

__all__ = [
    "ERROR_CODES",
    "BatchCommitError",
    "FileIOError",
    "FirestoreError",
    "FirexError",
    "FormatError",
    "InvalidDataError",
    "InvalidPatternError",
    "InvalidQueryError",
    "InvalidTimezoneError",
    "MaxRetriesExceededError",
    "WatchError",
    "DocumentDatabase",
]
