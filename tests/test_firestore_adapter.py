"""Tests for the Cloud Firestore adapter, with the SDK objects mocked."""

import os
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from google.cloud import firestore

from firex.client.firestore import (
    FirestoreDatabase,
    FirestoreDocument,
    FirestoreQuery,
    QuerySnapshot,
    Snapshot,
    create_firestore_client,
    tag_timestamps,
    to_sdk_value,
)
from firex.config import Config
from firex.domain.models import BatchWrite, FieldTransform, FieldTransformKind, FirestoreTimestamp

STAMP = datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)


def raw_snapshot(path="users/alice", data=None, exists=True):
    return SimpleNamespace(
        exists=exists,
        id=path.split("/")[-1],
        reference=SimpleNamespace(path=path),
        create_time=STAMP,
        update_time=STAMP,
        read_time=STAMP,
        to_dict=lambda: data,
    )


class TestTagTimestamps:
    def test_nested_datetimes_are_tagged(self):
        result = tag_timestamps({"at": STAMP, "log": [{"when": STAMP}, "x"], "n": 1})
        expected = FirestoreTimestamp(seconds=1705329000)
        assert result == {"at": expected, "log": [{"when": expected}, "x"], "n": 1}


class TestSnapshots:
    def test_snapshot_wraps_raw(self):
        snapshot = Snapshot(raw_snapshot(data={"at": STAMP}))
        assert snapshot.exists
        assert snapshot.id == "alice"
        assert snapshot.reference.path == "users/alice"
        assert snapshot.to_dict() == {"at": FirestoreTimestamp(seconds=1705329000)}

    def test_missing_snapshot_data(self):
        assert Snapshot(raw_snapshot(exists=False)).to_dict() is None

    def test_query_snapshot_change_types(self):
        changes = [
            SimpleNamespace(type=SimpleNamespace(name="ADDED"), document=raw_snapshot("users/a", {})),
            SimpleNamespace(type=SimpleNamespace(name="REMOVED"), document=raw_snapshot("users/b", {})),
        ]
        snapshot = QuerySnapshot([raw_snapshot("users/a", {})], changes)
        assert [(c.type, c.doc.id) for c in snapshot.doc_changes()] == [("added", "a"), ("removed", "b")]


class TestQuery:
    def test_where_uses_field_filter(self):
        raw = MagicMock()
        FirestoreQuery(raw).where("age", ">=", 18)
        field_filter = raw.where.call_args.kwargs["filter"]
        assert (field_filter.field_path, field_filter.op_string, field_filter.value) == ("age", ">=", 18)

    @pytest.mark.asyncio
    async def test_get_wraps_snapshots(self):
        raw = MagicMock()
        raw.get.return_value = [raw_snapshot("users/a", {"n": 1})]
        docs = await FirestoreQuery(raw).get()
        assert [d.to_dict() for d in docs] == [{"n": 1}]

    def test_listener_errors_route_to_on_error(self):
        raw = MagicMock()
        errors = []

        def broken(snapshot):
            raise ValueError("bad handler")

        unsubscribe = FirestoreQuery(raw).on_snapshot(broken, errors.append)
        callback = raw.on_snapshot.call_args.args[0]
        callback([], [], STAMP)

        assert [str(e) for e in errors] == ["bad handler"]
        assert unsubscribe is raw.on_snapshot.return_value.unsubscribe


class TestDocument:
    def test_absent_document_delivers_missing_snapshot(self):
        ref = MagicMock()
        ref.path = "users/ghost"
        received = []

        FirestoreDocument(ref).on_snapshot(received.append, lambda e: None)
        ref.on_snapshot.call_args.args[0]([], [], STAMP)

        assert received[0].exists is False
        assert received[0].id == "ghost"
        assert received[0].to_dict() is None


class TestDatabase:
    @pytest.mark.asyncio
    async def test_list_collections_sorted(self):
        client = MagicMock()
        client.collections.return_value = [SimpleNamespace(id="users"), SimpleNamespace(id="orders")]
        client.document.return_value.collections.return_value = [SimpleNamespace(id="items")]
        db = FirestoreDatabase(client)

        assert await db.list_collections() == ["orders", "users"]
        assert await db.list_collections("users/alice") == ["items"]
        client.document.assert_called_with("users/alice")

    @pytest.mark.asyncio
    async def test_set_document_converts_markers(self):
        client = MagicMock()
        db = FirestoreDatabase(client)

        await db.set_document(
            "users/alice",
            {"seen": FieldTransform(kind=FieldTransformKind.SERVER_TIMESTAMP), "n": 1},
            merge=True,
        )

        client.document.assert_called_once_with("users/alice")
        ref = client.document.return_value
        ref.set.assert_called_once_with({"seen": firestore.SERVER_TIMESTAMP, "n": 1}, merge=True)

    @pytest.mark.asyncio
    async def test_delete_document(self):
        client = MagicMock()
        await FirestoreDatabase(client).delete_document("users/alice")
        client.document.return_value.delete.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_write_batch(self):
        client = MagicMock()
        client.document.side_effect = lambda path: SimpleNamespace(path=path)
        batch = client.batch.return_value

        await FirestoreDatabase(client).write_batch([
            BatchWrite(op="set", path="users/a", data={"at": FirestoreTimestamp(seconds=1705329000)}),
            BatchWrite(op="delete", path="users/b"),
        ])

        set_ref, set_data = batch.set.call_args.args
        assert set_ref.path == "users/a"
        assert set_data == {"at": STAMP}
        assert batch.set.call_args.kwargs == {"merge": False}
        assert batch.delete.call_args.args[0].path == "users/b"
        batch.commit.assert_called_once_with()


class TestSdkValues:
    def test_sentinels(self):
        converted = to_sdk_value({
            "inc": FieldTransform(kind=FieldTransformKind.INCREMENT, operand=2),
            "union": FieldTransform(kind=FieldTransformKind.ARRAY_UNION, elements=["a"]),
            "remove": FieldTransform(kind=FieldTransformKind.ARRAY_REMOVE, elements=["b"]),
            "gone": FieldTransform(kind=FieldTransformKind.DELETE),
        })
        assert isinstance(converted["inc"], firestore.Increment)
        assert converted["inc"].value == 2
        assert isinstance(converted["union"], firestore.ArrayUnion)
        assert converted["union"].values == ["a"]
        assert isinstance(converted["remove"], firestore.ArrayRemove)
        assert converted["gone"] is firestore.DELETE_FIELD

    def test_nested_timestamps(self):
        assert to_sdk_value({"log": [{"at": FirestoreTimestamp(seconds=1705329000)}]}) == {
            "log": [{"at": STAMP}]
        }


class TestCreateClient:
    def test_emulator_host_exported(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config(_env_file=None, project_id="demo", emulator_host="localhost:8080")
            with patch("firex.client.firestore.firestore.Client") as client_cls:
                create_firestore_client(config)
                assert os.environ["FIRESTORE_EMULATOR_HOST"] == "localhost:8080"
        client_cls.assert_called_once_with(project="demo")

    def test_service_account_file(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config(_env_file=None, credential_path="/keys/sa.json")
        with patch("firex.client.firestore.firestore.Client") as client_cls:
            create_firestore_client(config)
        client_cls.from_service_account_json.assert_called_once_with("/keys/sa.json")
