import json

import pytest

from jinnie.client.storage import PENDING_PAYLOAD_KEY, LocalStore
from jinnie.database import ConditionFailed, FileBackedDB


def test_local_store_round_trip(tmp_path):
    store = LocalStore(tmp_path / "local.json")
    assert store.get(PENDING_PAYLOAD_KEY) is None
    store.set(PENDING_PAYLOAD_KEY, {"wishId": "w1"})
    store.set("jinnie.other", 1)

    # a second handle on the same file sees the writes
    again = LocalStore(tmp_path / "local.json")
    assert again.get(PENDING_PAYLOAD_KEY) == {"wishId": "w1"}
    assert sorted(again.keys()) == ["jinnie.other", PENDING_PAYLOAD_KEY]

    assert again.pop(PENDING_PAYLOAD_KEY) == {"wishId": "w1"}
    assert store.get(PENDING_PAYLOAD_KEY) is None
    store.remove("jinnie.other", "jinnie.missing")
    assert store.keys() == []


def test_local_store_requires_prefix(tmp_path):
    store = LocalStore(tmp_path / "local.json")
    with pytest.raises(KeyError):
        store.set("pendingPayload", {})
    with pytest.raises(KeyError):
        store.get("token")


def test_corrupt_store_reads_empty(tmp_path):
    path = tmp_path / "local.json"
    path.write_text("{not json", encoding="utf-8")
    store = LocalStore(path)
    assert store.get("jinnie.x", "default") == "default"
    store.set("jinnie.x", 2)
    assert json.loads(path.read_text(encoding="utf-8")) == {"jinnie.x": 2}


def test_update_record_if_compare_and_set(tmp_path):
    db = FileBackedDB(tmp_path)
    row = db.create_record("wishes", {"title": "Lamp", "status": "available", "version": "0"})

    updated = db.update_record_if("wishes", "id", row["id"], {"status": "available", "version": "0"},
                                  {"status": "reserved", "version": 1})
    assert updated["status"] == "reserved"
    assert updated["version"] == "1"

    with pytest.raises(ConditionFailed) as exc:
        db.update_record_if("wishes", "id", row["id"], {"status": "available", "version": "0"},
                            {"status": "reserved", "version": 1})
    assert exc.value.current["status"] == "reserved"

    assert db.update_record_if("wishes", "id", "missing", {"status": "available"}, {"status": "x"}) is None


def test_find_and_delete(tmp_path):
    db = FileBackedDB(tmp_path)
    db.create_record("wishes", {"wishlist_id": "a", "title": "one"})
    db.create_record("wishes", {"wishlist_id": "b", "title": "two"})
    db.create_record("wishes", {"wishlist_id": "a", "title": "three"})
    assert [r["title"] for r in db.find_records("wishes", "wishlist_id", "a")] == ["one", "three"]
    assert db.delete_record("wishes", "wishlist_id", "a") is True
    assert [r["title"] for r in db.list_records("wishes")] == ["two"]
    assert db.delete_record("wishes", "wishlist_id", "a") is False
