"""
Shared fixtures for integration tests.
"""

import pytest
from fastapi.testclient import TestClient

from shellsight.server.api import create_app
from shellsight.server.storage import FilesystemObjectStore, RecordingLibrary, StorageConfig


RECORDINGS = {
    "deploy_1700000000": (
        b"0.01 16\n0.01 4\n",
        b"Script started on 2023-11-14 22:13:20+00:00\n$ make deploy\r\ndone",
    ),
    "build_1700003600": (
        b"0.02 5\nbroken line\n0.02 6\n",
        b"hello world",
    ),
}


@pytest.fixture
def storage_config(tmp_path):
    """Filesystem bucket holding two recordings and one incomplete folder."""
    config = StorageConfig(
        backend="filesystem",
        root_dir=str(tmp_path / "buckets"),
        bucket="recordings",
        prefix="SSNREC/",
        config_file=str(tmp_path / "data" / "storage-config.json"),
    )

    store = FilesystemObjectStore(str(config.bucket_path))
    for folder, (timing, typescript) in RECORDINGS.items():
        store.put_object(f"SSNREC/{folder}/timing", timing)
        store.put_object(f"SSNREC/{folder}/typescript", typescript)
    store.put_object("SSNREC/partial_1700007200/timing", b"1.0 5\n")
    store.put_object("SSNREC/README", b"not a recording")

    return config


@pytest.fixture
def per_user_config(tmp_path):
    config = StorageConfig(
        backend="filesystem",
        root_dir=str(tmp_path / "buckets"),
        bucket="recordings",
        prefix="SSNREC",
        per_user=True,
        config_file=str(tmp_path / "data" / "storage-config.json"),
    )

    store = FilesystemObjectStore(str(config.bucket_path))
    store.put_object("SSNREC/alice@example.com/shell_1700000000/timing", b"0.01 5\n")
    store.put_object("SSNREC/alice@example.com/shell_1700000000/typescript", b"alice")
    store.put_object("SSNREC/bob@example.com/shell_1700000500/timing", b"0.01 3\n")
    store.put_object("SSNREC/bob@example.com/shell_1700000500/typescript", b"bob")

    return config


@pytest.fixture
def library(storage_config):
    return RecordingLibrary.from_config(storage_config)


@pytest.fixture
def app(library, storage_config):
    return create_app(library=library, storage_config=storage_config, default_speed=50.0)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def per_user_client(per_user_config):
    app = create_app(
        library=RecordingLibrary.from_config(per_user_config),
        storage_config=per_user_config,
        default_speed=50.0,
    )
    with TestClient(app) as test_client:
        yield test_client
