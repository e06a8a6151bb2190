"""
Recording library: resolves, validates and fetches recordings from an object store.
"""

import dataclasses
import io
import json
import logging
import tarfile
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from shellsight.server.replay import Recording, format_duration, total_duration
from .keys import (
    TIMING_FILE,
    TYPESCRIPT_FILE,
    RecordingKey,
    collect_folders,
    folder_prefix,
    is_safe_folder,
    is_valid_recording,
    namespace_prefix,
    normalize_prefix,
    parse_folder_timestamp,
)
from .object_store import ObjectNotFoundError, ObjectStore, create_object_store

logger = logging.getLogger(__name__)


class RecordingNotFoundError(LookupError):
    """The folder is missing its timing or typescript file."""

    def __init__(self, folder: str, namespace: Optional[str] = None):
        super().__init__(folder)
        self.folder = folder
        self.namespace = namespace

    def __str__(self) -> str:
        if self.namespace:
            return f"Recording not found: {self.namespace}/{self.folder}"
        return f"Recording not found: {self.folder}"


@dataclass
class StorageConfig:
    backend: str = "filesystem"
    root_dir: str = "data/buckets"
    bucket: str = "shellsight-recordings"
    prefix: str = ""
    per_user: bool = False
    config_file: str = "data/storage-config.json"

    @property
    def bucket_path(self) -> Path:
        return Path(self.root_dir) / self.bucket


def load_storage_overrides(path: str) -> dict:
    """Read saved storage settings. They take precedence over the main config."""
    config_file = Path(path)
    if not config_file.exists():
        return {}

    try:
        with open(config_file) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read storage config {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring storage config {path}: not a JSON object")
        return {}
    return {k: data[k] for k in ("bucket", "root_dir") if data.get(k)}


def save_storage_overrides(path: str, bucket: str, root_dir: Optional[str] = None) -> bool:
    config_file = Path(path)
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)

        existing = load_storage_overrides(path)
        data = {
            "bucket": bucket,
            "root_dir": root_dir or existing.get("root_dir"),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        with open(config_file, "w") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        logger.error(f"Failed to save storage config: {e}")
        return False

    logger.info(f"Saved storage config to {path}")
    return True


def apply_storage_overrides(config: StorageConfig) -> StorageConfig:
    overrides = load_storage_overrides(config.config_file)
    if not overrides:
        return config
    return dataclasses.replace(config, **overrides)


@dataclass
class RecordingInfo:
    name: str
    duration: float
    namespace: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name[1:] if self.name.startswith(".") else self.name

    @property
    def started_at(self) -> Optional[int]:
        return parse_folder_timestamp(self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "duration": self.duration,
            "displayDuration": format_duration(self.duration),
            "startedAt": self.started_at,
        }


class RecordingLibrary:
    """
    Finds playable recordings in an object store.

    With ``per_user`` enabled every lookup is scoped to a user namespace
    below the prefix.
    """

    def __init__(self, store: ObjectStore, prefix: str = "", per_user: bool = False, bucket: str = ""):
        self.store = store
        self.prefix = normalize_prefix(prefix)
        self.per_user = per_user
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: StorageConfig) -> "RecordingLibrary":
        store = create_object_store(config.backend, str(config.bucket_path))
        return cls(store, prefix=config.prefix, per_user=config.per_user, bucket=config.bucket)

    def resolve_namespace(self, user: Optional[str]) -> Optional[str]:
        if not self.per_user:
            return None
        if not user or not is_safe_folder(user):
            raise ValueError("A user is required when recordings are stored per user")
        return user

    def list_folders(self, namespace: Optional[str] = None) -> List[str]:
        listing_prefix = namespace_prefix(self.prefix, namespace)
        logger.debug(f"Listing folders under {listing_prefix!r}")

        folders = collect_folders(
            self.store.iter_pages(listing_prefix),
            self.prefix,
            namespace,
        )
        return sorted(folders)

    def is_valid_recording(self, folder: str, namespace: Optional[str] = None) -> bool:
        if not is_safe_folder(folder):
            return False
        keys = self.store.iter_keys(folder_prefix(self.prefix, namespace, folder))
        return is_valid_recording(keys)

    def key_for(self, folder: str, file: str, namespace: Optional[str] = None) -> str:
        return RecordingKey(folder=folder, file=file, namespace=namespace).physical(self.prefix)

    def list_recordings(self, namespace: Optional[str] = None) -> List[RecordingInfo]:
        """
        List playable recordings, newest first.

        Folders missing either file are left out. A timing file that can't
        be fetched gives a duration of 0 rather than failing the listing.
        """
        recordings = []

        for folder in self.list_folders(namespace):
            if not self.is_valid_recording(folder, namespace):
                logger.debug(f"Skipping incomplete recording {folder}")
                continue

            try:
                timing = self.store.get_text(self.key_for(folder, TIMING_FILE, namespace))
                duration = total_duration(timing)
            except Exception as e:
                logger.debug(f"Error getting duration for {folder}: {e}")
                duration = 0.0

            recordings.append(RecordingInfo(name=folder, duration=duration, namespace=namespace))

        recordings.sort(key=lambda r: (r.started_at or 0, r.name), reverse=True)
        return recordings

    def _fetch(self, folder: str, file: str, namespace: Optional[str]) -> bytes:
        if not is_safe_folder(folder):
            raise RecordingNotFoundError(folder, namespace)
        try:
            return self.store.get_object(self.key_for(folder, file, namespace))
        except ObjectNotFoundError:
            raise RecordingNotFoundError(folder, namespace)

    def load_recording(self, folder: str, namespace: Optional[str] = None) -> Recording:
        """Fetch and prepare both files of a recording for playback."""
        timing = self._fetch(folder, TIMING_FILE, namespace)
        typescript = self._fetch(folder, TYPESCRIPT_FILE, namespace)

        recording = Recording.from_files(
            folder,
            timing.decode("utf-8", errors="replace"),
            typescript,
            namespace=namespace,
        )
        logger.info(
            f"Loaded recording {folder}: {len(recording.timing)} timing entries, "
            f"{len(typescript)} bytes of output"
        )
        return recording

    def get_typescript_text(self, folder: str, namespace: Optional[str] = None) -> str:
        return self._fetch(folder, TYPESCRIPT_FILE, namespace).decode("utf-8", errors="replace")

    def build_archive(self, folder: str, namespace: Optional[str] = None) -> bytes:
        """Pack both files into a gzipped tarball under ``<folder>/``."""
        members = {
            TIMING_FILE: self._fetch(folder, TIMING_FILE, namespace),
            TYPESCRIPT_FILE: self._fetch(folder, TYPESCRIPT_FILE, namespace),
        }

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            for name, data in members.items():
                info = tarfile.TarInfo(name=f"{folder}/{name}")
                info.size = len(data)
                info.mtime = int(time.time())
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))

        return buffer.getvalue()

    def check_connection(self) -> str:
        """List a single key to prove the store is reachable."""
        self.store.list_objects(self.prefix, max_keys=1)
        return f"Connected to bucket: {self.bucket or self.store.name}"
