"""
Tests for object store backends.
"""

import pytest

from shellsight.server.storage import (
    FilesystemObjectStore,
    MemoryObjectStore,
    ObjectNotFoundError,
    StorageError,
    create_object_store,
)


@pytest.fixture(params=["memory", "filesystem"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryObjectStore()
    return FilesystemObjectStore(str(tmp_path / "bucket"))


class TestObjectStore:
    """Behavior shared by every backend."""

    def test_put_and_get(self, store):
        store.put_object("rec1/timing", b"0.5 10\n")

        assert store.get_object("rec1/timing") == b"0.5 10\n"
        assert store.get_text("rec1/timing") == "0.5 10\n"

    def test_missing_object(self, store):
        store.put_object("rec1/timing", b"x")

        with pytest.raises(ObjectNotFoundError) as exc_info:
            store.get_object("rec1/typescript")

        assert exc_info.value.key == "rec1/typescript"
        assert isinstance(exc_info.value, KeyError)

    def test_list_by_prefix(self, store):
        for key in ["SSNREC/a/timing", "SSNREC/a/typescript", "SSNREC/b/timing", "other/c/timing"]:
            store.put_object(key, b"x")

        page = store.list_objects("SSNREC/")

        assert page.keys == ["SSNREC/a/timing", "SSNREC/a/typescript", "SSNREC/b/timing"]
        assert page.next_token is None

    def test_partial_segment_prefix(self, store):
        store.put_object("SSNREC/deploy_1/timing", b"x")
        store.put_object("SSNREC/debug_2/timing", b"x")

        assert store.list_objects("SSNREC/dep").keys == ["SSNREC/deploy_1/timing"]

    def test_pagination(self, store):
        keys = [f"rec{i:02d}/timing" for i in range(7)]
        for key in keys:
            store.put_object(key, b"x")

        first = store.list_objects("", max_keys=3)
        assert first.keys == keys[:3]
        assert first.next_token == keys[2]

        second = store.list_objects("", continuation_token=first.next_token, max_keys=3)
        assert second.keys == keys[3:6]

        assert list(store.iter_keys("", max_keys=3)) == keys
        assert len(list(store.iter_pages("", max_keys=3))) == 3

    def test_exact_page_boundary(self, store):
        for i in range(4):
            store.put_object(f"rec{i}/timing", b"x")

        page = store.list_objects("", max_keys=4)
        assert len(page.keys) == 4
        assert page.next_token is None


class TestFilesystemObjectStore:
    def test_rejects_escaping_keys(self, tmp_path):
        store = FilesystemObjectStore(str(tmp_path / "bucket"))

        for key in ["../secret", "/etc/passwd", "a/../../b", ""]:
            with pytest.raises(ObjectNotFoundError):
                store.get_object(key)

    def test_directory_is_not_an_object(self, tmp_path):
        store = FilesystemObjectStore(str(tmp_path))
        store.put_object("rec1/timing", b"x")

        with pytest.raises(ObjectNotFoundError):
            store.get_object("rec1")

    def test_missing_bucket_fails_listing(self, tmp_path):
        store = FilesystemObjectStore(str(tmp_path / "nope"))

        with pytest.raises(StorageError):
            store.list_objects("")

    def test_missing_prefix_directory(self, tmp_path):
        store = FilesystemObjectStore(str(tmp_path))
        assert store.list_objects("nothing/here/").keys == []


def test_create_object_store(tmp_path):
    assert isinstance(create_object_store("memory", ""), MemoryObjectStore)
    assert isinstance(create_object_store("filesystem", str(tmp_path)), FilesystemObjectStore)

    with pytest.raises(ValueError):
        create_object_store("s3", "")
