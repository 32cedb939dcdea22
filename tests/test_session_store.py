import json

from upload_engine.client.session_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    SavedUploadSession,
    TransferSessionStore,
)


def record(session_id: str, timestamp: float, **metadata) -> SavedUploadSession:
    return SavedUploadSession(
        session_id=session_id,
        file_name=f"{session_id}.mp4",
        file_size=1234,
        metadata=metadata,
        timestamp=timestamp,
    )


def test_save_load_remove():
    store = TransferSessionStore(InMemoryKeyValueStore())
    store.save(record("abc", 1.0, title="Lecture 1"))

    loaded = store.load("abc")
    assert loaded.file_name == "abc.mp4"
    assert loaded.metadata == {"title": "Lecture 1"}

    store.remove("abc")
    assert store.load("abc") is None
    store.remove("abc")


def test_records_are_namespaced_and_camel_case():
    kv = InMemoryKeyValueStore()
    kv.set("theme", "dark")
    TransferSessionStore(kv).save(record("abc", 1.0))

    assert set(kv.keys()) == {"theme", "upload_session_abc"}
    raw = json.loads(kv.get("upload_session_abc"))
    assert raw["sessionId"] == "abc"
    assert raw["fileSize"] == 1234


def test_list_all_is_newest_first_and_skips_corrupt_records():
    kv = InMemoryKeyValueStore()
    store = TransferSessionStore(kv)
    store.save(record("old", 100.0))
    store.save(record("new", 300.0))
    store.save(record("middle", 200.0))
    kv.set("upload_session_broken", "{not json")
    kv.set("upload_session_partial", json.dumps({"sessionId": "partial"}))

    assert [r.session_id for r in store.list_all()] == ["new", "middle", "old"]
    assert store.load("broken") is None


def test_json_file_store_survives_reopen(tmp_path):
    path = tmp_path / "state" / "sessions.json"
    TransferSessionStore(JsonFileKeyValueStore(path)).save(record("abc", 1.0, course="cs101"))

    reopened = TransferSessionStore(JsonFileKeyValueStore(path))
    assert reopened.load("abc").metadata == {"course": "cs101"}
    assert not (tmp_path / "state" / ".sessions.json.tmp").exists()


def test_unreadable_file_counts_as_empty(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("garbage", encoding="utf-8")

    kv = JsonFileKeyValueStore(path)
    assert kv.keys() == []

    kv.set("upload_session_x", "{}")
    assert kv.keys() == ["upload_session_x"]
