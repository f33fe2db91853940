"""Tests for FilesystemArtifactStore."""

from uuid import uuid4

import pytest

from receipt_kernel.exceptions import ArtifactConflictError, ArtifactStoreError
from receipt_kernel.utils.hashing import hash_content
from receipt_services.filesystem_store import FilesystemArtifactStore

CONTENT = b"%PDF-1.4 receipt R-00011"


@pytest.fixture
def store(tmp_path):
    return FilesystemArtifactStore(tmp_path / "receipts")


def test_put_writes_document_and_sidecar(store):
    member_id = uuid4()
    handle = store.put("R-00011", CONTENT, member_id)

    assert (store.root / "R-00011.pdf").read_bytes() == CONTENT
    assert handle.uri.startswith("file://")
    assert handle.uri.endswith("/R-00011.pdf")
    assert handle.sha256 == hash_content(CONTENT)

    meta = store.metadata("R-00011")
    assert meta["member_id"] == str(member_id)
    assert meta["sha256"] == handle.sha256
    assert meta["size"] == len(CONTENT)


def test_identical_put_is_idempotent(store):
    member_id = uuid4()
    first = store.put("R-00011", CONTENT, member_id)
    assert store.put("R-00011", CONTENT, member_id) == first
    assert store.list_keys() == ["R-00011"]


def test_different_bytes_conflict_and_keep_original(store):
    store.put("R-00011", CONTENT, uuid4())
    with pytest.raises(ArtifactConflictError):
        store.put("R-00011", b"%PDF-1.4 tampered", uuid4())
    assert store.get("R-00011") == CONTENT


def test_no_temporary_files_left_behind(store):
    store.put("R-00011", CONTENT, uuid4())
    store.put("R-00011", CONTENT, uuid4())
    names = sorted(p.name for p in store.root.iterdir())
    assert names == ["R-00011.json", "R-00011.pdf"]


@pytest.mark.parametrize("key", ["", "../R-00011", "a/b", ".hidden"])
def test_unsafe_keys_rejected(store, key):
    with pytest.raises(ArtifactStoreError):
        store.put(key, CONTENT, uuid4())


def test_empty_content_rejected(store):
    with pytest.raises(ArtifactStoreError):
        store.put("R-00011", b"", uuid4())


def test_os_error_maps_to_store_error(store, monkeypatch):
    def disk_full(target, content):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(store, "_publish", disk_full)
    with pytest.raises(ArtifactStoreError) as exc_info:
        store.put("R-00011", CONTENT, uuid4())
    assert "OSError" in exc_info.value.reason


def test_missing_key(store):
    assert store.get("R-99999") is None
    assert store.metadata("R-99999") is None
