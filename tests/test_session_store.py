"""
Tests for the session store component.
"""
import json

from resumable_upload.models import CompletedPart, RemoteSession, UploadTarget
from resumable_upload.session_store import SESSION_KEY, SessionStore

TARGET = UploadTarget(file_name="a.mp4", file_size=100)
SESSION = RemoteSession(upload_id="mpu-123", object_key="videos/1-a.mp4")


def test_save_persists_record(session_store, tmp_state_file):
    """Test that saving a session writes the expected record."""
    session_store.save(TARGET, SESSION)

    with open(tmp_state_file) as f:
        data = json.load(f)
    assert data[SESSION_KEY] == {
        "uploadId": "mpu-123",
        "key": "videos/1-a.mp4",
        "fileName": "a.mp4",
        "fileSize": 100,
        "parts": []
    }


def test_load_returns_session_for_matching_target(session_store, tmp_state_file):
    """Test that a fresh store recovers a session saved by another instance."""
    session_store.save(TARGET, SESSION)

    store = SessionStore(state_file=tmp_state_file)
    assert store.load(UploadTarget(file_name="a.mp4", file_size=100)) == SESSION


def test_load_discards_record_for_different_size(write_record, tmp_state_file):
    """Test that a record for a.mp4/100 is not resumed for a.mp4/50."""
    write_record(file_name="a.mp4", file_size=100)
    store = SessionStore(state_file=tmp_state_file)

    assert store.load(UploadTarget(file_name="a.mp4", file_size=50)) is None
    assert store.snapshot() is None
    assert json.loads(tmp_state_file.read_text()) == {}


def test_load_discards_record_for_different_name(write_record, tmp_state_file):
    write_record(file_name="b.mp4", file_size=100)
    store = SessionStore(state_file=tmp_state_file)

    assert store.load(TARGET) is None
    assert store.snapshot() is None


def test_load_discards_malformed_record(tmp_state_file):
    tmp_state_file.write_text(json.dumps({SESSION_KEY: {"fileName": "a.mp4"}}))
    store = SessionStore(state_file=tmp_state_file)

    assert store.load(TARGET) is None


def test_store_handles_corrupt_state_file(tmp_state_file):
    """Test that a corrupt state file means no session rather than an error."""
    # Write invalid JSON
    tmp_state_file.write_text("invalid json{")

    store = SessionStore(state_file=tmp_state_file)
    assert store.load(TARGET) is None
    assert store.snapshot() is None


def test_store_handles_unexpected_json_shape(tmp_state_file):
    tmp_state_file.write_text(json.dumps(["not", "a", "dict"]))

    store = SessionStore(state_file=tmp_state_file)
    assert store.load(TARGET) is None


def test_record_part_appends_and_replaces(session_store):
    """Test incremental part persistence keeps one entry per part number."""
    session_store.save(TARGET, SESSION)
    session_store.record_part(CompletedPart(part_number=2, etag='"b"'))
    session_store.record_part(CompletedPart(part_number=1, etag='"a"'))
    session_store.record_part(CompletedPart(part_number=2, etag='"c"'))

    parts = session_store.snapshot()["parts"]
    assert sorted((p["PartNumber"], p["ETag"]) for p in parts) == [(1, '"a"'), (2, '"c"')]


def test_replace_parts_sorts_by_part_number(session_store):
    session_store.save(TARGET, SESSION)
    session_store.record_part(CompletedPart(part_number=4, etag='"stale"'))

    session_store.replace_parts([CompletedPart(3, '"c"'), CompletedPart(1, '"a"')])

    assert session_store.snapshot()["parts"] == [
        {"PartNumber": 1, "ETag": '"a"'},
        {"PartNumber": 3, "ETag": '"c"'}
    ]


def test_record_part_without_session_is_ignored(session_store):
    session_store.record_part(CompletedPart(part_number=1, etag='"a"'))
    assert session_store.snapshot() is None


def test_clear_removes_record(session_store, tmp_state_file):
    session_store.save(TARGET, SESSION)
    session_store.clear()

    assert session_store.load(TARGET) is None
    assert SessionStore(state_file=tmp_state_file).load(TARGET) is None


def test_memory_only_store():
    """Test that a store without a state file still keeps the session."""
    store = SessionStore()
    store.save(TARGET, SESSION)

    assert store.load(TARGET) == SESSION
    store.clear()
    assert store.load(TARGET) is None
