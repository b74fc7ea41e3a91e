"""Tests for $fieldValue and $timestampValue conversion in write payloads."""

from datetime import datetime, timedelta, timezone

import pytest

from firex.domain.field_values import (
    MAX_DEPTH,
    FieldValueTransformer,
    is_field_value_spec,
    is_timestamp_value_spec,
    parse_timestamp_value,
)
from firex.domain.models import FieldTransform, FieldTransformKind


def transform(data):
    return FieldValueTransformer().transform(data)


class TestDetection:
    def test_field_value_spec(self):
        assert is_field_value_spec({"$fieldValue": "delete"})
        assert not is_field_value_spec({"name": "x"})
        assert not is_field_value_spec(["$fieldValue"])
        assert not is_field_value_spec(None)

    def test_timestamp_value_spec(self):
        assert is_timestamp_value_spec({"$timestampValue": "2025-02-18T12:00:00Z"})
        assert not is_timestamp_value_spec({"$fieldValue": "serverTimestamp"})
        assert not is_timestamp_value_spec("2025-02-18")


class TestFieldValues:
    """Test each supported operation."""

    def test_plain_values_untouched(self):
        data = {"name": "Alice", "age": 30, "tags": ["a"], "address": {"city": "Oslo"}, "x": None}
        assert transform(data).unwrap() == data

    def test_server_timestamp(self):
        result = transform({"updatedAt": {"$fieldValue": "serverTimestamp"}}).unwrap()
        assert result["updatedAt"] == FieldTransform(kind=FieldTransformKind.SERVER_TIMESTAMP)

    def test_increment(self):
        result = transform({"visits": {"$fieldValue": "increment", "operand": 2.5}}).unwrap()
        assert result["visits"].kind is FieldTransformKind.INCREMENT
        assert result["visits"].operand == 2.5

    def test_array_operations(self):
        result = transform({
            "tags": {"$fieldValue": "arrayUnion", "elements": ["a", "b"]},
            "old": {"$fieldValue": "arrayRemove", "elements": ["c"]},
        }).unwrap()
        assert result["tags"] == FieldTransform(kind=FieldTransformKind.ARRAY_UNION, elements=["a", "b"])
        assert result["old"] == FieldTransform(kind=FieldTransformKind.ARRAY_REMOVE, elements=["c"])

    def test_delete(self):
        result = transform({"legacy": {"$fieldValue": "delete"}}).unwrap()
        assert result["legacy"].kind is FieldTransformKind.DELETE

    def test_nested_maps_and_lists(self):
        result = transform({
            "stats": {"daily": {"count": {"$fieldValue": "increment", "operand": 1}}},
            "log": [{"at": {"$fieldValue": "serverTimestamp"}}, "plain"],
        }).unwrap()
        assert result["stats"]["daily"]["count"].operand == 1
        assert result["log"][0]["at"].kind is FieldTransformKind.SERVER_TIMESTAMP
        assert result["log"][1] == "plain"

    def test_input_not_mutated(self):
        data = {"n": {"$fieldValue": "delete"}}
        transform(data)
        assert data == {"n": {"$fieldValue": "delete"}}


class TestFieldValueErrors:
    """Test rejected markers."""

    @pytest.mark.parametrize("operand", [None, "1", True])
    def test_increment_needs_number(self, operand):
        result = transform({"stats": {"n": {"$fieldValue": "increment", "operand": operand}}})
        assert result.error.code == "INVALID_DATA"
        assert result.error.field == "stats.n"
        assert "operand" in result.error.message

    def test_missing_operand(self):
        assert transform({"n": {"$fieldValue": "increment"}}).is_err

    @pytest.mark.parametrize("kind", ["arrayUnion", "arrayRemove"])
    def test_array_operations_need_elements(self, kind):
        result = transform({"tags": [{"$fieldValue": kind, "elements": "a"}]})
        assert result.error.field == "tags[0]"
        assert "elements" in result.error.message

    @pytest.mark.parametrize("name", ["bogus", 5])
    def test_unknown_type(self, name):
        result = transform({"x": {"$fieldValue": name}})
        assert result.error.code == "INVALID_DATA"
        assert "serverTimestamp" in result.error.message

    def test_depth_limit(self):
        data = value = {}
        for _ in range(MAX_DEPTH + 1):
            value["n"] = {}
            value = value["n"]

        result = transform(data)

        assert result.is_err
        assert "depth" in result.error.message


class TestTimestampValues:
    def test_utc(self):
        result = transform({"at": {"$timestampValue": "2025-02-18T12:00:00Z"}}).unwrap()
        assert result["at"] == datetime(2025, 2, 18, 12, tzinfo=timezone.utc)

    def test_offset_kept_as_same_instant(self):
        value = parse_timestamp_value("2025-02-18T21:00:00+09:00")
        assert value.utcoffset() == timedelta(hours=9)
        assert value == datetime(2025, 2, 18, 12, tzinfo=timezone.utc)

    def test_date_only_is_utc_midnight(self):
        assert parse_timestamp_value("2000-01-15") == datetime(2000, 1, 15, tzinfo=timezone.utc)

    def test_in_list(self):
        result = transform({"events": [{"at": {"$timestampValue": "2025-01-01T00:00:00Z"}}]}).unwrap()
        assert result["events"][0]["at"].year == 2025

    @pytest.mark.parametrize("value", ["yesterday", 12345])
    def test_invalid(self, value):
        result = transform({"at": {"$timestampValue": value}})
        assert result.error.code == "INVALID_DATA"
        assert result.error.field == "at"
