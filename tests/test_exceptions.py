"""Tests for the error hierarchy and the Result wrapper."""

import pytest

from firex.client.exceptions import (
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
from firex.result import Result, err, ok


class TestErrorCodes:
    """Each error type carries its own code."""

    @pytest.mark.parametrize("error,code", [
        (InvalidQueryError("bad", field="age"), "INVALID_QUERY"),
        (FirestoreError("down"), "FIRESTORE_ERROR"),
        (WatchError("no listener", path="users"), "WATCH_ERROR"),
        (MaxRetriesExceededError("users", 3), "MAX_RETRIES_EXCEEDED"),
        (InvalidTimezoneError("Mars/Base"), "INVALID_TIMEZONE"),
        (InvalidPatternError("YYYY"), "INVALID_PATTERN"),
        (FormatError("broken"), "FORMAT_ERROR"),
        (InvalidDataError("not an object"), "INVALID_DATA"),
        (FileIOError("missing", path="a.json"), "FILE_IO_ERROR"),
        (BatchCommitError("rejected", committed_count=0), "BATCH_COMMIT_ERROR"),
    ])
    def test_codes(self, error, code):
        assert isinstance(error, FirexError)
        assert error.code == code
        assert error.retriable is False
        assert str(error) == f"[{code}] {error.message}"

    def test_max_retries_message(self):
        cause = ConnectionError("reset")
        error = MaxRetriesExceededError("users/alice", 3, original_error=cause)
        assert error.message == "Watch on users/alice stopped after 3 retries"
        assert error.original_error is cause
        assert error.details == {"path": "users/alice", "attempts": 3}

    def test_batch_commit_details(self):
        error = BatchCommitError("rejected", committed_count=500)
        assert error.partial_success
        assert error.details == {"committed_count": 500}
        assert not BatchCommitError("rejected", committed_count=0).partial_success

    def test_default_messages(self):
        assert InvalidTimezoneError("Mars/Base").message == "Invalid timezone: Mars/Base"
        assert InvalidPatternError("YYYY").message == "Invalid format pattern: YYYY"


class TestToDict:
    def test_structure(self):
        payload = InvalidQueryError("Invalid operator: ~", field="age").to_dict()

        assert payload["success"] is False
        error = payload["error"]
        assert error["code"] == "INVALID_QUERY"
        assert error["message"] == "Invalid operator: ~"
        assert error["details"] == {"field": "age"}
        assert error["timestamp"].endswith("Z")
        assert "original_error" not in error

    def test_original_error_included(self):
        payload = FirestoreError("Query failed", original_error=TimeoutError("deadline")).to_dict()
        assert payload["error"]["original_error"] == "deadline"
        assert payload["error"]["error_type"] == "TimeoutError"


class TestResult:
    def test_ok(self):
        result = ok(5)
        assert result.is_ok and not result.is_err
        assert result.unwrap() == 5

    def test_err(self):
        error = FormatError("nope")
        result = err(error)
        assert result.is_err and not result.is_ok
        with pytest.raises(FormatError):
            result.unwrap()
        assert result.error is error

    def test_ok_without_value(self):
        assert ok() == Result(value=None)
        assert ok().is_ok
