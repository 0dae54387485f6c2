from __future__ import annotations

import json
import os
import subprocess
import sys
import time
from pathlib import Path

import pytest

from socialstore.durable import ABSENT, DurableStore
from socialstore.errors import CorruptionError, LockTimeoutError, WriteError


def _backups(directory: Path, stem: str) -> list[Path]:
    return sorted(directory.glob(f"{stem}.corrupt-*.json"))


# ---------------------------------------------------------------------------
# resolve_path / handles
# ---------------------------------------------------------------------------

def test_resolve_path_appends_json_suffix(durable, data_dir):
    assert durable.resolve_path("queue") == data_dir / "queue.json"
    assert durable.resolve_path("content-graph.json") == data_dir / "content-graph.json"


@pytest.mark.parametrize("name", ["", "..", "../escape", "a/b", ".hidden"])
def test_resolve_path_rejects_unsafe_names(durable, name):
    with pytest.raises(ValueError):
        durable.resolve_path(name)


def test_constructor_creates_data_dir(tmp_path):
    target = tmp_path / "nested" / "data"
    DurableStore(target)
    assert target.is_dir()


def test_handle_is_created_once_per_document(durable):
    h1 = durable.handle("queue")
    h2 = durable.handle("queue.json")
    assert h1 is h2
    assert h1.cached_value is ABSENT
    assert not h1.is_cached


def test_reset_drops_handles(durable):
    h1 = durable.handle("queue")
    h1.cached_value = {"items": []}
    durable.reset()
    h2 = durable.handle("queue")
    assert h2 is not h1
    assert not h2.is_cached


# ---------------------------------------------------------------------------
# read / write
# ---------------------------------------------------------------------------

def test_write_then_read_round_trips(durable):
    path = durable.resolve_path("doc")
    value = {
        "version": 1,
        "updated_at": "2026-01-01T00:00:00+00:00",
        "items": [{"id": "1", "text": "héllo 👋", "score": 0.5, "tags": [], "extra": None}],
        "nested": {"deep": {"flag": True, "count": 3}},
    }
    durable.write(path, value)
    assert durable.read(path) == value


def test_read_missing_file_is_absent(durable):
    assert durable.read(durable.resolve_path("nothing")) is ABSENT


@pytest.mark.parametrize(
    "payload",
    [b"{not json", b"", b"   \n", b"\xff\xfe\x00garbage", b'{"a": NaN}', b'{"a": 1} trailing'],
)
def test_read_malformed_raises_corruption(durable, payload):
    path = durable.resolve_path("bad")
    path.write_bytes(payload)
    with pytest.raises(CorruptionError) as excinfo:
        durable.read(path)
    assert excinfo.value.reason == "corrupted"
    assert excinfo.value.file_path == path


def test_write_leaves_no_temp_files(durable, data_dir):
    path = durable.resolve_path("doc")
    for i in range(3):
        durable.write(path, {"n": i})
    assert sorted(p.name for p in data_dir.iterdir()) == ["doc.json"]


def test_write_unserializable_value_keeps_old_document(durable):
    path = durable.resolve_path("doc")
    durable.write(path, {"n": 1})
    with pytest.raises(WriteError):
        durable.write(path, {"n": object()})
    with pytest.raises(WriteError):
        durable.write(path, {"n": float("nan")})
    assert durable.read(path) == {"n": 1}


def test_write_text_that_is_not_utf8_encodable(durable, data_dir):
    path = durable.resolve_path("doc")
    durable.write(path, {"t": "ok"})
    with pytest.raises(WriteError) as excinfo:
        durable.write(path, {"t": "bad \udcff"})
    assert excinfo.value.reason == "write"
    assert isinstance(excinfo.value.__cause__, UnicodeEncodeError)
    assert durable.read(path) == {"t": "ok"}
    assert sorted(p.name for p in data_dir.iterdir()) == ["doc.json"]


def test_failed_rename_raises_write_error_and_cleans_up(durable, data_dir, monkeypatch):
    path = durable.resolve_path("doc")
    durable.write(path, {"n": 1})

    def _refuse(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(os, "replace", _refuse)
    with pytest.raises(WriteError) as excinfo:
        durable.write(path, {"n": 2})
    monkeypatch.undo()

    assert excinfo.value.reason == "write"
    assert isinstance(excinfo.value.__cause__, OSError)
    assert durable.read(path) == {"n": 1}
    assert sorted(p.name for p in data_dir.iterdir()) == ["doc.json"]


@pytest.mark.skipif(os.geteuid() == 0, reason="root ignores directory permissions")
def test_write_into_read_only_dir_is_permission_error(tmp_path):
    ro = tmp_path / "ro"
    store = DurableStore(ro)
    ro.chmod(0o500)
    try:
        with pytest.raises(WriteError) as excinfo:
            store.write(store.resolve_path("doc"), {"n": 1})
        assert excinfo.value.reason == "permission"
        assert "permissions" in excinfo.value.user_message
    finally:
        ro.chmod(0o700)


# ---------------------------------------------------------------------------
# read_with_recovery
# ---------------------------------------------------------------------------

def test_recovery_on_empty_dir_returns_default_without_writing(durable, data_dir):
    path = durable.resolve_path("queue.json")
    assert durable.read_with_recovery(path, {"items": []}) == {"items": []}
    assert not path.exists()
    assert list(data_dir.iterdir()) == []


@pytest.mark.parametrize("payload", [b"{\"items\": [", b"", b"\x00\x01\x02", b"null null"])
def test_recovery_backs_up_malformed_bytes(durable, data_dir, payload):
    path = durable.resolve_path("queue.json")
    path.write_bytes(payload)

    result = durable.read_with_recovery(path, {"items": []})

    assert result == {"items": []}
    backups = _backups(data_dir, "queue")
    assert len(backups) == 1
    assert backups[0].read_bytes() == payload
    # the default is now the canonical document
    assert json.loads(path.read_text()) == {"items": []}


def test_recovery_calls_hook_with_backup_path(durable, data_dir):
    path = durable.resolve_path("content-graph")
    path.write_text("{oops")
    seen = []

    durable.read_with_recovery(path, {"posts": []}, lambda p, err, backup: seen.append((p, err, backup)))

    assert len(seen) == 1
    p, err, backup = seen[0]
    assert p == path
    assert isinstance(err, CorruptionError)
    assert backup.parent == data_dir
    assert backup.name.startswith("content-graph.corrupt-")
    assert backup.read_text() == "{oops"


def test_repeated_corruption_keeps_every_backup(durable, data_dir):
    path = durable.resolve_path("doc")
    for payload in ("{1", "{2", "{3"):
        path.write_text(payload)
        durable.read_with_recovery(path, {})
    contents = sorted(b.read_text() for b in _backups(data_dir, "doc"))
    assert contents == ["{1", "{2", "{3"]


def test_recovery_returns_stored_value_when_valid(durable):
    path = durable.resolve_path("doc")
    durable.write(path, {"items": [1, 2]})
    assert durable.read_with_recovery(path, {"items": []}) == {"items": [1, 2]}


def test_delete_missing_is_fine_and_invalidates_handle(durable):
    h = durable.handle("doc")
    durable.write(h.file_path, {"n": 1})
    h.cached_value = {"n": 1}
    durable.delete(h.file_path)
    durable.delete(h.file_path)
    assert not durable.exists(h.file_path)
    assert not h.is_cached


# ---------------------------------------------------------------------------
# acquire_lock
# ---------------------------------------------------------------------------

def test_lock_times_out_after_budget(durable):
    path = durable.resolve_path("queue")
    with durable.acquire_lock(path):
        start = time.monotonic()
        with pytest.raises(LockTimeoutError) as excinfo, durable.acquire_lock(path, timeout_ms=50):
            pass
        elapsed = time.monotonic() - start
    assert 0.045 <= elapsed < 1.0
    assert excinfo.value.reason == "locked"
    assert excinfo.value.timeout_ms == 50


def test_lock_is_released_on_error(durable):
    path = durable.resolve_path("queue")
    with pytest.raises(RuntimeError), durable.acquire_lock(path) as held:
        raise RuntimeError("boom")
    assert held.released
    with durable.acquire_lock(path, timeout_ms=0) as again:
        assert not again.released


def test_locks_on_different_documents_do_not_conflict(durable):
    with durable.acquire_lock(durable.resolve_path("a")), durable.acquire_lock(durable.resolve_path("b"), timeout_ms=0):
        pass


def test_lock_waits_for_release_across_processes(durable):
    path = durable.resolve_path("queue")
    lock_path = path.with_name(path.name + ".lock")
    holder = subprocess.Popen(
        [
            sys.executable,
            "-c",
            (
                "import fcntl, os, sys, time\n"
                f"fd = os.open({str(lock_path)!r}, os.O_RDWR | os.O_CREAT, 0o644)\n"
                "fcntl.flock(fd, fcntl.LOCK_EX)\n"
                "print('locked', flush=True)\n"
                "time.sleep(0.3)\n"
            ),
        ],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert holder.stdout is not None
        assert holder.stdout.readline().strip() == "locked"
        with pytest.raises(LockTimeoutError), durable.acquire_lock(path, timeout_ms=20):
            pass
        # the holder exits after ~0.3s and the kernel drops its lock
        with durable.acquire_lock(path, timeout_ms=5000) as held:
            assert held.waited_ms > 0
    finally:
        holder.wait(timeout=10)
        if holder.stdout is not None:
            holder.stdout.close()
