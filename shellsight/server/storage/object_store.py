"""
Object store backends for recordings.

Recordings live in a flat key-space addressed by ``/``-separated keys.
Backends only need to get, put and list keys with pagination.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import logging
import os
import threading

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000


class StorageError(Exception):
    """The object store could not complete a request."""


class ObjectNotFoundError(StorageError, KeyError):
    """The requested key does not exist."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Object not found: {self.key}"


@dataclass
class ListPage:
    keys: List[str] = field(default_factory=list)
    next_token: Optional[str] = None


def paginate(keys: List[str], continuation_token: Optional[str], max_keys: int) -> ListPage:
    """Page through sorted ``keys``; the token is the last key already returned."""
    if continuation_token:
        keys = [k for k in keys if k > continuation_token]

    page = keys[:max_keys]
    next_token = page[-1] if len(keys) > max_keys and page else None
    return ListPage(keys=page, next_token=next_token)


class ObjectStore(ABC):
    """Minimal object storage interface."""

    name = "store"

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        """Return the object body. Raises ObjectNotFoundError if missing."""

    @abstractmethod
    def put_object(self, key: str, data: bytes):
        pass

    @abstractmethod
    def list_objects(
        self,
        prefix: str = "",
        continuation_token: Optional[str] = None,
        max_keys: int = DEFAULT_PAGE_SIZE,
    ) -> ListPage:
        """List keys starting with ``prefix`` in lexicographic order."""

    def iter_pages(self, prefix: str = "", max_keys: int = DEFAULT_PAGE_SIZE) -> Iterator[List[str]]:
        token = None
        while True:
            page = self.list_objects(prefix, continuation_token=token, max_keys=max_keys)
            yield page.keys
            token = page.next_token
            if not token:
                break

    def iter_keys(self, prefix: str = "", max_keys: int = DEFAULT_PAGE_SIZE) -> Iterator[str]:
        for keys in self.iter_pages(prefix, max_keys=max_keys):
            yield from keys

    def get_text(self, key: str) -> str:
        return self.get_object(key).decode("utf-8", errors="replace")


class MemoryObjectStore(ObjectStore):
    """Dict-backed store, mostly for tests and demos."""

    name = "memory"

    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self._objects: Dict[str, bytes] = dict(objects or {})
        self._lock = threading.Lock()

    def get_object(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key]
            except KeyError:
                raise ObjectNotFoundError(key)

    def put_object(self, key: str, data: bytes):
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._objects[key] = data

    def list_objects(
        self,
        prefix: str = "",
        continuation_token: Optional[str] = None,
        max_keys: int = DEFAULT_PAGE_SIZE,
    ) -> ListPage:
        with self._lock:
            keys = sorted(k for k in self._objects if k.startswith(prefix))
        return paginate(keys, continuation_token, max_keys)


class FilesystemObjectStore(ObjectStore):
    """
    Store objects as files below a bucket directory.

    Key ``a/b/timing`` maps to ``<root>/a/b/timing``.
    """

    name = "filesystem"

    def __init__(self, root: str):
        self.root = Path(root).expanduser()

    def _path_for(self, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or any(p in ("", ".", "..") for p in parts):
            raise ObjectNotFoundError(key)
        return self.root.joinpath(*parts)

    def get_object(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise ObjectNotFoundError(key)
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def put_object(self, key: str, data: bytes):
        if isinstance(data, str):
            data = data.encode("utf-8")
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def list_objects(
        self,
        prefix: str = "",
        continuation_token: Optional[str] = None,
        max_keys: int = DEFAULT_PAGE_SIZE,
    ) -> ListPage:
        if not self.root.is_dir():
            raise StorageError(f"Bucket directory not found: {self.root}")

        # Only walk the deepest directory the prefix pins down
        base_dir, _, _ = prefix.rpartition("/")
        start = self.root.joinpath(*base_dir.split("/")) if base_dir else self.root
        if ".." in base_dir.split("/") or not start.is_dir():
            return ListPage()

        keys = []
        try:
            for dirpath, _, filenames in os.walk(start):
                rel_dir = Path(dirpath).relative_to(self.root).as_posix()
                for filename in filenames:
                    key = filename if rel_dir == "." else f"{rel_dir}/{filename}"
                    if key.startswith(prefix):
                        keys.append(key)
        except OSError as e:
            raise StorageError(f"Failed to list {prefix!r}: {e}") from e

        keys.sort()
        return paginate(keys, continuation_token, max_keys)


def create_object_store(backend: str, root: str) -> ObjectStore:
    if backend == "filesystem":
        return FilesystemObjectStore(root)
    if backend == "memory":
        return MemoryObjectStore()
    raise ValueError(f"Unknown storage backend: {backend}")
